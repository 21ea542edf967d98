"""Market engine: position lifecycle against one price feed.

Every mutating call follows the same shape:

1. Check caller arguments and market status.
2. Pay funding and read the feed (``_updated``), rejecting invalid data.
3. Build a candidate ``MarketState`` and position record with ``replace()``.
4. Move tokens inside ``token.atomic()`` and check invariants there, so a
   failure in either leaves every balance untouched.
5. Commit the candidate state and position.

Public calls are serialized with a re-entrant lock; an observer sees either
the state before a call or the state after it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace

from ..errors import (
    AuthorizationError,
    ErrorCode,
    InputValidationError,
    MarketInvariantError,
    MarketStateError,
    SlippageError,
)
from ..fixed_point import ONE, mul_down, mul_up, sub_floor
from ..oracle import Clock, FeedData, PriceFeed, system_clock
from ..position import PositionInfo, PositionLedger
from ..risk import RiskParameter, RiskParameters, check_safety
from ..token import Token
from . import pricing
from .invariants import check_all
from .types import (
    BuildResult,
    EmergencyWithdrawResult,
    Event,
    LiquidateResult,
    MarketState,
    UnwindResult,
)

LOGGER = logging.getLogger(__name__)


class Market:
    """One perpetual market settled in ``token`` and priced off ``feed``.

    ``address`` is the market's own account on the token ledger; it holds all
    posted collateral and needs the minter role to settle P&L.
    """

    def __init__(
        self,
        *,
        feed: PriceFeed,
        token: Token,
        params: RiskParameters,
        factory: str = "factory",
        fee_recipient: str = "fee_recipient",
        address: str = "market",
        clock: Clock = system_clock,
        tick_quantized: bool = False,
    ) -> None:
        data = feed.latest()
        check_safety(params, data.macro_window)
        if pricing.mid(data) == 0:
            raise MarketStateError(ErrorCode.INVALID_DATA, "mid is zero")

        self.feed = feed
        self.token = token
        self.factory = factory
        self.fee_recipient = fee_recipient
        self.address = address
        self.tick_quantized = tick_quantized
        self._clock = clock
        self._params = params
        self._state = MarketState(timestamp_update_last=clock())
        self._positions = PositionLedger()
        self._lock = threading.RLock()

    # -- views ---------------------------------------------------------------

    @property
    def params(self) -> RiskParameters:
        return self._params

    @property
    def state(self) -> MarketState:
        return self._state

    def position(self, owner: str, position_id: int) -> PositionInfo | None:
        return self._positions.get(owner, position_id)

    def mid(self) -> int:
        return pricing.mid(self.feed.latest())

    def bid(self, volume: int = 0) -> int:
        return pricing.bid(self.feed.latest(), volume, self._params)

    def ask(self, volume: int = 0) -> int:
        return pricing.ask(self.feed.latest(), volume, self._params)

    def front_run_bound(self) -> int:
        return pricing.front_run_bound(self._params, self.feed.latest())

    def back_run_bound(self) -> int:
        return pricing.back_run_bound(self._params, self.feed.latest())

    def cap_notional_adjusted_for_bounds(self, cap: int | None = None) -> int:
        if cap is None:
            cap = self._params.cap_notional
        return pricing.cap_notional_adjusted_for_bounds(self._params, self.feed.latest(), cap)

    def circuit_breaker(self, cap: int | None = None) -> int:
        """Cap after the minted-roller breaker, projected to now."""
        if cap is None:
            cap = self._params.cap_notional
        snapshot = self._state.snapshot_minted.transform(
            self._clock(), self._params.circuit_breaker_window, 0,
        )
        return pricing.circuit_breaker(snapshot, cap, self._params.circuit_breaker_mint_target)

    def data_is_valid(self, data: FeedData | None = None) -> bool:
        if data is None:
            data = self.feed.latest()
        return pricing.data_is_valid(data, self._params.price_drift_upper_limit)

    def oi_after_funding(self, over: int, under: int, elapsed: int) -> tuple[int, int]:
        return pricing.oi_after_funding(over, under, elapsed, self._params.k)

    def position_value(self, owner: str, position_id: int, fraction: int = ONE) -> int:
        """Value at mid against the stored aggregates (funding not projected)."""
        pos = self._require_position(owner, position_id)
        s = self._state
        return pos.value(
            fraction, s.oi_side(pos.is_long), s.shares_side(pos.is_long),
            self.mid(), self._params.cap_payoff,
        )

    def liquidatable(self, owner: str, position_id: int) -> bool:
        pos = self._require_position(owner, position_id)
        s = self._state
        return pos.liquidatable(
            s.oi_side(pos.is_long), s.shares_side(pos.is_long), self.mid(),
            self._params.cap_payoff,
            self._params.maintenance_margin_fraction,
            self._params.liquidation_fee_rate,
        )

    # -- funding + feed ------------------------------------------------------

    def update(self) -> FeedData:
        """Pay funding up to now and return fresh, validated feed data."""
        with self._lock:
            state, data = self._updated(self._state, self._clock())
            self._state = state
            return data

    def _updated(self, state: MarketState, now: int) -> tuple[MarketState, FeedData]:
        elapsed = now - state.timestamp_update_last
        if elapsed > 0:
            long_heavy = state.oi_long >= state.oi_short
            over, under = (state.oi_long, state.oi_short) if long_heavy else (state.oi_short, state.oi_long)
            over_now, under_now = pricing.oi_after_funding(over, under, elapsed, self._params.k)
            oi_long, oi_short = (over_now, under_now) if long_heavy else (under_now, over_now)
            LOGGER.debug(
                "Funding paid",
                extra={
                    "elapsed": elapsed,
                    "oi_long": oi_long,
                    "oi_short": oi_short,
                    "oi_burned": (state.oi_long + state.oi_short) - (oi_long + oi_short),
                },
            )
            state = replace(state, oi_long=oi_long, oi_short=oi_short, timestamp_update_last=now)

        data = self.feed.latest()
        if not pricing.data_is_valid(data, self._params.price_drift_upper_limit):
            raise MarketStateError(ErrorCode.INVALID_DATA)
        return state, data

    # -- helpers -------------------------------------------------------------

    def _require_position(self, owner: str, position_id: int) -> PositionInfo:
        pos = self._positions.get(owner, position_id)
        if pos is None:
            raise MarketStateError(ErrorCode.POSITION_NOT_FOUND, f"{owner}/{position_id}")
        return pos

    def _require_open(self, owner: str, position_id: int) -> PositionInfo:
        pos = self._require_position(owner, position_id)
        if pos.liquidated:
            raise MarketStateError(ErrorCode.ALREADY_LIQUIDATED, f"{owner}/{position_id}")
        if not pos.is_open:
            raise MarketStateError(ErrorCode.POSITION_CLOSED, f"{owner}/{position_id}")
        return pos

    def _require_live(self) -> None:
        if self._state.is_shutdown:
            raise MarketStateError(ErrorCode.SHUTDOWN)

    def _require_factory(self, caller: str) -> None:
        if caller != self.factory:
            raise AuthorizationError(ErrorCode.NOT_FACTORY, caller)

    def _check_invariants(self, state: MarketState, owner: str, position_id: int, pos: PositionInfo) -> None:
        key = (owner, position_id)
        positions = [p for k, p in self._positions.items() if k != key]
        positions.append(pos)
        violations = check_all(state, positions)
        if violations:
            raise MarketInvariantError(violations)

    def _settle_supply(self, delta: int) -> None:
        """Mint ``delta`` to the market, or burn ``-delta`` from it."""
        if delta > 0:
            self.token.mint(self.address, self.address, delta)
        elif delta < 0:
            self.token.burn(self.address, self.address, -delta)

    def _with_side(self, state: MarketState, is_long: bool, oi: int, shares: int) -> MarketState:
        if is_long:
            return replace(state, oi_long=oi, oi_long_shares=shares)
        return replace(state, oi_short=oi, oi_short_shares=shares)

    def _cap_oi(self, data: FeedData, cap: int, mid: int) -> int:
        adjusted = pricing.cap_notional_adjusted_for_bounds(self._params, data, cap)
        return pricing.oi_from_notional(adjusted, mid)

    # -- build ---------------------------------------------------------------

    def build(
        self,
        owner: str,
        collateral: int,
        leverage: int,
        is_long: bool,
        price_limit: int,
    ) -> BuildResult:
        """Open a position; the owner pays ``collateral`` plus the trading fee.

        Raises:
            MarketStateError: shut down, invalid feed data, OI cap or circuit
                breaker hit, or the position would be liquidatable at once.
            InputValidationError: leverage, collateral or resulting OI out of range.
            SlippageError: fill worse than ``price_limit`` or impact too large.
        """
        with self._lock:
            p = self._params
            self._require_live()
            if leverage < ONE:
                raise InputValidationError(ErrorCode.LEVERAGE_TOO_LOW, f"{leverage}")
            if leverage > p.cap_leverage:
                raise InputValidationError(ErrorCode.LEVERAGE_TOO_HIGH, f"{leverage}")
            if collateral < p.min_collateral:
                raise InputValidationError(ErrorCode.COLLATERAL_TOO_LOW, f"{collateral}")

            now = self._clock()
            state, data = self._updated(self._state, now)
            mid = pricing.mid(data)

            notional = mul_up(collateral, leverage)
            oi = pricing.oi_from_notional(notional, mid)
            if oi == 0:
                raise InputValidationError(ErrorCode.OI_ZERO)
            debt = notional - collateral
            fee = mul_up(notional, p.trading_fee_rate)

            minted = state.snapshot_minted.transform(now, p.circuit_breaker_window, 0)
            cap = pricing.circuit_breaker(minted, p.cap_notional, p.circuit_breaker_mint_target)
            if cap == 0 and p.cap_notional > 0:
                raise MarketStateError(ErrorCode.CIRCUIT_BREAKER_ENGAGED)
            cap_oi = self._cap_oi(data, cap, mid)

            oi_total = state.oi_side(is_long)
            shares_total = state.shares_side(is_long)
            if oi_total + oi > cap_oi:
                raise MarketStateError(ErrorCode.OI_CAP_EXCEEDED, f"{oi_total + oi} > {cap_oi}")

            volume = pricing.volume_fraction(oi, cap_oi)
            if is_long:
                snapshot = state.snapshot_volume_ask.transform(now, data.micro_window, volume)
                price = pricing.ask(data, snapshot.cumulative(), p)
                if price > price_limit:
                    raise SlippageError(ErrorCode.SLIPPAGE_LIMIT, f"ask {price} > {price_limit}")
                state = replace(state, snapshot_volume_ask=snapshot)
            else:
                snapshot = state.snapshot_volume_bid.transform(now, data.micro_window, volume)
                price = pricing.bid(data, snapshot.cumulative(), p)
                if price < price_limit:
                    raise SlippageError(ErrorCode.SLIPPAGE_LIMIT, f"bid {price} < {price_limit}")
                state = replace(state, snapshot_volume_bid=snapshot)

            if oi_total == 0 or shares_total == 0:
                shares = oi
            else:
                shares = (oi * shares_total) // oi_total

            pos = PositionInfo.build(
                notional=notional,
                debt=debt,
                mid_price=mid,
                entry_price=price,
                is_long=is_long,
                oi_shares=shares,
                tick_quantized=self.tick_quantized,
            )
            position_id = state.next_position_id
            state = self._with_side(state, is_long, oi_total + oi, shares_total + shares)
            state = replace(state, next_position_id=position_id + 1)

            if pos.liquidatable(
                oi_total + oi, shares_total + shares, mid,
                p.cap_payoff, p.maintenance_margin_fraction, p.liquidation_fee_rate,
            ):
                raise MarketStateError(ErrorCode.IMMEDIATELY_LIQUIDATABLE)

            with self.token.atomic():
                self.token.transfer(owner, self.address, collateral + fee)
                self.token.transfer(self.address, self.fee_recipient, fee)
                self._check_invariants(state, owner, position_id, pos)

            self._state = state
            self._positions.set(owner, position_id, pos)

        LOGGER.info(
            "Position built",
            extra={
                "owner": owner,
                "position_id": position_id,
                "is_long": is_long,
                "collateral": collateral,
                "notional": notional,
                "price": price,
            },
        )
        return BuildResult(
            event=Event.BUILD,
            owner=owner,
            position_id=position_id,
            is_long=is_long,
            collateral=collateral,
            notional=notional,
            debt=debt,
            oi=oi,
            oi_shares=shares,
            price=price,
            trading_fee=fee,
        )

    # -- unwind --------------------------------------------------------------

    def unwind(self, owner: str, position_id: int, fraction: int, price_limit: int) -> UnwindResult:
        """Close ``fraction`` (1e18) of a position at the exit quote.

        Longs exit at the bid and shorts at the ask, with the exit size
        registered as volume. The owner receives ``value - fee``. Still
        allowed after shutdown.
        """
        with self._lock:
            p = self._params
            if fraction <= 0 or fraction > ONE:
                raise InputValidationError(ErrorCode.FRACTION_OUT_OF_BOUNDS, f"{fraction}")

            now = self._clock()
            state, data = self._updated(self._state, now)
            pos = self._require_open(owner, position_id)
            is_long = pos.is_long
            mid = pricing.mid(data)

            cap_oi = self._cap_oi(data, p.cap_notional, mid)
            oi_total = state.oi_side(is_long)
            shares_total = state.shares_side(is_long)
            oi_unwound = pos.oi_current(fraction, oi_total, shares_total)

            volume = pricing.volume_fraction(oi_unwound, cap_oi)
            if is_long:
                snapshot = state.snapshot_volume_bid.transform(now, data.micro_window, volume)
                price = pricing.bid(data, snapshot.cumulative(), p)
                if price < price_limit:
                    raise SlippageError(ErrorCode.SLIPPAGE_LIMIT, f"bid {price} < {price_limit}")
                state = replace(state, snapshot_volume_bid=snapshot)
            else:
                snapshot = state.snapshot_volume_ask.transform(now, data.micro_window, volume)
                price = pricing.ask(data, snapshot.cumulative(), p)
                if price > price_limit:
                    raise SlippageError(ErrorCode.SLIPPAGE_LIMIT, f"ask {price} > {price_limit}")
                state = replace(state, snapshot_volume_ask=snapshot)

            value = pos.value(fraction, oi_total, shares_total, price, p.cap_payoff)
            cost = pos.cost(fraction)
            fee = min(
                pos.trading_fee(fraction, oi_total, shares_total, price, p.cap_payoff, p.trading_fee_rate),
                value,
            )

            shares_unwound = pos.oi_shares_current(fraction)
            state = self._with_side(
                state, is_long, sub_floor(oi_total, oi_unwound), shares_total - shares_unwound,
            )
            state = replace(
                state,
                snapshot_minted=state.snapshot_minted.transform(now, p.circuit_breaker_window, value - cost),
            )
            new_pos = pos.after_unwind(fraction)

            with self.token.atomic():
                self._settle_supply(value - cost)
                self.token.transfer(self.address, owner, value - fee)
                self.token.transfer(self.address, self.fee_recipient, fee)
                self._check_invariants(state, owner, position_id, new_pos)

            self._state = state
            self._positions.set(owner, position_id, new_pos)

        LOGGER.info(
            "Position unwound",
            extra={
                "owner": owner,
                "position_id": position_id,
                "fraction": fraction,
                "price": price,
                "value": value,
                "cost": cost,
            },
        )
        return UnwindResult(
            event=Event.UNWIND,
            owner=owner,
            position_id=position_id,
            fraction=fraction,
            price=price,
            value=value,
            cost=cost,
            trading_fee=fee,
            minted=value - cost,
            pnl=value - fee - cost,
        )

    # -- liquidate -----------------------------------------------------------

    def liquidate(self, caller: str, owner: str, position_id: int) -> LiquidateResult:
        """Close an under-margined position at mid; ``caller`` earns the fee."""
        with self._lock:
            p = self._params

            now = self._clock()
            state, data = self._updated(self._state, now)
            pos = self._require_open(owner, position_id)
            is_long = pos.is_long
            price = pricing.mid(data)

            oi_total = state.oi_side(is_long)
            shares_total = state.shares_side(is_long)
            if not pos.liquidatable(
                oi_total, shares_total, price,
                p.cap_payoff, p.maintenance_margin_fraction, p.liquidation_fee_rate,
            ):
                raise MarketStateError(ErrorCode.NOT_LIQUIDATABLE, f"{owner}/{position_id}")

            oi_removed = pos.oi_current(ONE, oi_total, shares_total)
            value = pos.value(ONE, oi_total, shares_total, price, p.cap_payoff)
            cost = pos.cost(ONE)

            liquidation_fee = mul_down(value, p.liquidation_fee_rate)
            margin_remaining = value - liquidation_fee
            margin_burned = mul_down(margin_remaining, p.maintenance_margin_burn_rate)
            margin_remaining -= margin_burned
            minted = value - cost - margin_burned

            state = self._with_side(
                state, is_long, sub_floor(oi_total, oi_removed), shares_total - pos.oi_shares,
            )
            state = replace(
                state,
                snapshot_minted=state.snapshot_minted.transform(now, p.circuit_breaker_window, minted),
            )
            new_pos = pos.after_liquidation()

            with self.token.atomic():
                self._settle_supply(minted)
                self.token.transfer(self.address, caller, liquidation_fee)
                self.token.transfer(self.address, self.fee_recipient, margin_remaining)
                self._check_invariants(state, owner, position_id, new_pos)

            self._state = state
            self._positions.set(owner, position_id, new_pos)

        LOGGER.info(
            "Position liquidated",
            extra={
                "liquidator": caller,
                "owner": owner,
                "position_id": position_id,
                "price": price,
                "value": value,
                "margin_burned": margin_burned,
            },
        )
        return LiquidateResult(
            event=Event.LIQUIDATE,
            liquidator=caller,
            owner=owner,
            position_id=position_id,
            price=price,
            value=value,
            cost=cost,
            liquidation_fee=liquidation_fee,
            margin_burned=margin_burned,
            margin_remaining=margin_remaining,
            minted=minted,
        )

    # -- shutdown ------------------------------------------------------------

    def emergency_withdraw(self, owner: str, position_id: int) -> EmergencyWithdrawResult:
        """Return a position's collateral at cost once the market is shut down.

        No feed read and no P&L; the payout is capped by what the market holds.
        """
        with self._lock:
            state = self._state
            if not state.is_shutdown:
                raise MarketStateError(ErrorCode.NOT_SHUTDOWN)
            pos = self._require_open(owner, position_id)
            is_long = pos.is_long

            oi_total = state.oi_side(is_long)
            shares_total = state.shares_side(is_long)
            oi_removed = pos.oi_current(ONE, oi_total, shares_total)
            amount = min(pos.cost(ONE), self.token.balance_of(self.address))

            state = self._with_side(
                state, is_long, sub_floor(oi_total, oi_removed), shares_total - pos.oi_shares,
            )
            new_pos = pos.after_withdrawal()

            with self.token.atomic():
                self.token.transfer(self.address, owner, amount)
                self._check_invariants(state, owner, position_id, new_pos)

            self._state = state
            self._positions.set(owner, position_id, new_pos)

        LOGGER.info(
            "Emergency withdraw",
            extra={"owner": owner, "position_id": position_id, "amount": amount},
        )
        return EmergencyWithdrawResult(
            event=Event.EMERGENCY_WITHDRAW,
            owner=owner,
            position_id=position_id,
            amount=amount,
        )

    def shutdown(self, caller: str) -> Event:
        with self._lock:
            self._require_factory(caller)
            self._require_live()
            self._state = replace(self._state, is_shutdown=True)
        LOGGER.info("Market shut down", extra={"market": self.address})
        return Event.SHUTDOWN

    # -- governance ----------------------------------------------------------

    def set_risk_param(self, caller: str, name: RiskParameter, value: int) -> Event:
        """Replace one risk parameter, re-running the guards it can break."""
        with self._lock:
            self._require_factory(caller)
            candidate = self._params.replace(name, value)
            check_safety(candidate, self.feed.latest().macro_window, [name])
            self._params = candidate
        LOGGER.info(
            "Risk parameter set",
            extra={"market": self.address, "param": name.key, "value": value},
        )
        return Event.RISK_PARAM_SET
