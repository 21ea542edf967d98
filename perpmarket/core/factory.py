"""Governance collaborator that deploys and administers markets.

Roles are plain account names:
- ``governor``: registers feed factories, deploys markets, edits risk params.
- ``guardian``: may shut a market down (the governor may too).

The factory is the only account a ``Market`` accepts ``shutdown`` and
``set_risk_param`` from; governance bounds are enforced here, the market
itself only re-runs the cross-parameter safety guards.
"""

from __future__ import annotations

import logging

from .errors import AuthorizationError, ErrorCode, MarketStateError
from .market.engine import Market
from .oracle import Clock, FeedFactory, PriceFeed, system_clock
from .risk import RiskParameter, RiskParameters, check_bounds
from .token import Token

LOGGER = logging.getLogger(__name__)


class MarketFactory:
    def __init__(
        self,
        token: Token,
        fee_recipient: str,
        governor: str,
        guardian: str,
        *,
        address: str = "factory",
        clock: Clock = system_clock,
    ) -> None:
        self.token = token
        self.fee_recipient = fee_recipient
        self.governor = governor
        self.guardian = guardian
        self.address = address
        self._clock = clock
        self._feed_factories: list[FeedFactory] = []
        self._markets: dict[int, Market] = {}

    # -- roles ---------------------------------------------------------------

    def _require_governor(self, caller: str) -> None:
        if caller != self.governor:
            raise AuthorizationError(ErrorCode.NOT_GOVERNOR, caller)

    def _require_guardian(self, caller: str) -> None:
        if caller not in (self.guardian, self.governor):
            raise AuthorizationError(ErrorCode.NOT_GUARDIAN, caller)

    # -- feed factories ------------------------------------------------------

    def is_feed_factory(self, feed_factory: FeedFactory) -> bool:
        return any(f is feed_factory for f in self._feed_factories)

    def add_feed_factory(self, caller: str, feed_factory: FeedFactory) -> None:
        self._require_governor(caller)
        if self.is_feed_factory(feed_factory):
            raise MarketStateError(ErrorCode.FEED_FACTORY_EXISTS)
        self._feed_factories.append(feed_factory)

    def remove_feed_factory(self, caller: str, feed_factory: FeedFactory) -> None:
        self._require_governor(caller)
        if not self.is_feed_factory(feed_factory):
            raise MarketStateError(ErrorCode.FEED_FACTORY_NOT_FOUND)
        self._feed_factories = [f for f in self._feed_factories if f is not feed_factory]

    # -- markets -------------------------------------------------------------

    def get_market(self, feed: PriceFeed) -> Market | None:
        return self._markets.get(id(feed))

    def _require_market(self, feed: PriceFeed) -> Market:
        market = self.get_market(feed)
        if market is None:
            raise MarketStateError(ErrorCode.MARKET_NOT_FOUND)
        return market

    @property
    def markets(self) -> list[Market]:
        return list(self._markets.values())

    def deploy_market(
        self,
        caller: str,
        feed_factory: FeedFactory,
        feed: PriceFeed,
        params: RiskParameters,
        *,
        tick_quantized: bool = False,
    ) -> Market:
        """Create the market for ``feed`` and grant it the minter role.

        Raises:
            AuthorizationError: caller is not the governor.
            MarketStateError: unknown feed factory or feed, or a market
                already exists for the feed.
            RiskParameterError: any slot out of bounds or a safety guard fails.
        """
        self._require_governor(caller)
        if not self.is_feed_factory(feed_factory):
            raise MarketStateError(ErrorCode.FEED_FACTORY_NOT_FOUND)
        if not feed_factory.is_feed(feed):
            raise MarketStateError(ErrorCode.FEED_NOT_FOUND)
        if self.get_market(feed) is not None:
            raise MarketStateError(ErrorCode.MARKET_EXISTS)
        for name in RiskParameter:
            check_bounds(name, params.get(name))

        market = Market(
            feed=feed,
            token=self.token,
            params=params,
            factory=self.address,
            fee_recipient=self.fee_recipient,
            address=f"market-{len(self._markets)}",
            clock=self._clock,
            tick_quantized=tick_quantized,
        )
        self._markets[id(feed)] = market
        self.token.grant_minter(market.address)
        LOGGER.info("Market deployed", extra={"market": market.address})
        return market

    def set_risk_param(self, caller: str, feed: PriceFeed, name: RiskParameter, value: int) -> None:
        self._require_governor(caller)
        check_bounds(name, value)
        self._require_market(feed).set_risk_param(self.address, name, value)

    def shutdown(self, caller: str, feed: PriceFeed) -> None:
        self._require_guardian(caller)
        self._require_market(feed).shutdown(self.address)
