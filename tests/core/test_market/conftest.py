"""Shared fixtures for market engine tests."""

from __future__ import annotations

import pytest

from perpmarket.core import ONE, Market, MockFeed, RiskParameters, Token

START = 1_700_000_000

# k, lmbda, delta, cap_payoff, cap_notional, cap_leverage,
# circuit_breaker_window, circuit_breaker_mint_target,
# maintenance_margin_fraction, maintenance_margin_burn_rate,
# liquidation_fee_rate, trading_fee_rate, min_collateral,
# price_drift_upper_limit, average_block_time
DEFAULT_PARAMS = RiskParameters.from_sequence([
    122_000_000_000,
    500_000_000_000_000_000,
    2_500_000_000_000_000,
    5 * ONE,
    800_000 * ONE,
    5 * ONE,
    2_592_000,
    66_670 * ONE,
    100_000_000_000_000_000,
    100_000_000_000_000_000,
    50_000_000_000_000_000,
    750_000_000_000_000,
    100_000_000_000_000,
    25_000_000_000_000,
    14,
])

RESERVE = 2_000_000 * ONE
BALANCE = 1_000_000 * ONE


class FakeClock:
    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def token() -> Token:
    t = Token()
    for account in ("alice", "bob", "carol"):
        t.faucet(account, BALANCE)
    return t


@pytest.fixture
def feed(clock) -> MockFeed:
    return MockFeed(ONE, RESERVE, clock=clock)


@pytest.fixture
def params() -> RiskParameters:
    return DEFAULT_PARAMS


@pytest.fixture
def make_market(feed, token, clock):
    """Build a market on the shared feed/token; minter role already granted."""

    def _make(params: RiskParameters = DEFAULT_PARAMS, **kwargs) -> Market:
        market = Market(feed=feed, token=token, params=params, clock=clock, **kwargs)
        token.grant_minter(market.address)
        return market

    return _make


@pytest.fixture
def market(make_market, params) -> Market:
    return make_market(params)
