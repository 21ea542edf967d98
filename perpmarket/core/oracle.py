"""Price feed contract.

The market only ever calls ``feed.latest()``. How a feed computes its TWAPs is
its own business; concrete adapters (Uniswap, Balancer, Chainlink, ...) live
outside this package. ``MockFeed`` is a settable feed for tests and
simulations.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


@dataclass(frozen=True)
class FeedData:
    """One read of a feed. Prices and reserve are 1e18 fixed point."""

    timestamp: int
    micro_window: int
    macro_window: int
    price_over_micro_window: int
    price_over_macro_window: int
    price_one_macro_window_ago: int
    reserve_over_micro_window: int
    has_reserve: bool


@runtime_checkable
class PriceFeed(Protocol):
    def latest(self) -> FeedData: ...


@runtime_checkable
class FeedFactory(Protocol):
    def is_feed(self, feed: PriceFeed) -> bool: ...


class MockFeed:
    """Feed with directly settable prices and reserve.

    By default the micro, macro and macro-window-ago prices all equal
    ``price``; set them individually to model a spread between TWAPs or a
    drift over the macro window.
    """

    def __init__(
        self,
        price: int,
        reserve: int,
        *,
        micro_window: int = 600,
        macro_window: int = 1800,
        has_reserve: bool = True,
        clock: Clock = system_clock,
    ) -> None:
        self.micro_window = micro_window
        self.macro_window = macro_window
        self.price_micro = price
        self.price_macro = price
        self.price_macro_ago = price
        self.reserve = reserve
        self.has_reserve = has_reserve
        self._clock = clock

    def set_price(self, price: int) -> None:
        """Move every TWAP to ``price`` (a settled market with no drift)."""
        self.price_micro = price
        self.price_macro = price
        self.price_macro_ago = price

    def set_prices(self, *, micro: int | None = None, macro: int | None = None, macro_ago: int | None = None) -> None:
        if micro is not None:
            self.price_micro = micro
        if macro is not None:
            self.price_macro = macro
        if macro_ago is not None:
            self.price_macro_ago = macro_ago

    def set_reserve(self, reserve: int, has_reserve: bool = True) -> None:
        self.reserve = reserve
        self.has_reserve = has_reserve

    def latest(self) -> FeedData:
        return FeedData(
            timestamp=self._clock(),
            micro_window=self.micro_window,
            macro_window=self.macro_window,
            price_over_micro_window=self.price_micro,
            price_over_macro_window=self.price_macro,
            price_one_macro_window_ago=self.price_macro_ago,
            reserve_over_micro_window=self.reserve,
            has_reserve=self.has_reserve,
        )


class MockFeedFactory:
    """Deploys ``MockFeed`` instances and remembers which feeds it made."""

    def __init__(self, *, micro_window: int = 600, macro_window: int = 1800, clock: Clock = system_clock) -> None:
        self.micro_window = micro_window
        self.macro_window = macro_window
        self._clock = clock
        self._feeds: list[MockFeed] = []

    def deploy_feed(self, price: int, reserve: int, has_reserve: bool = True) -> MockFeed:
        feed = MockFeed(
            price,
            reserve,
            micro_window=self.micro_window,
            macro_window=self.macro_window,
            has_reserve=has_reserve,
            clock=self._clock,
        )
        self._feeds.append(feed)
        return feed

    def is_feed(self, feed: PriceFeed) -> bool:
        return any(f is feed for f in self._feeds)
