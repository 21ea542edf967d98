"""Tests for the stateless pricing helpers in perpmarket.core.market.pricing."""

import pytest

from perpmarket.core import ONE, ErrorCode, FeedData, RiskParameter, RollerSnapshot, SlippageError
from perpmarket.core.fixed_point import div_down, exp_up, mul_up
from perpmarket.core.market import pricing


def _data(micro=ONE, macro=ONE, macro_ago=None, reserve=2_000_000 * ONE, has_reserve=True):
    return FeedData(
        timestamp=1_700_000_000,
        micro_window=600,
        macro_window=1800,
        price_over_micro_window=micro,
        price_over_macro_window=macro,
        price_one_macro_window_ago=macro if macro_ago is None else macro_ago,
        reserve_over_micro_window=reserve,
        has_reserve=has_reserve,
    )


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

class TestQuotes:
    def test_mid_averages_windows(self):
        assert pricing.mid(_data(micro=2 * ONE, macro=4 * ONE)) == 3 * ONE

    def test_bid_uses_lower_twap(self, params):
        data = _data(micro=ONE, macro=2 * ONE)
        expected = div_down(ONE, exp_up(params.delta))
        assert pricing.bid(data, 0, params) == expected

    def test_ask_uses_higher_twap(self, params):
        data = _data(micro=ONE, macro=2 * ONE)
        expected = mul_up(2 * ONE, exp_up(params.delta))
        assert pricing.ask(data, 0, params) == expected

    def test_zero_volume_ignores_lmbda(self, params):
        data = _data()
        steep = params.replace(RiskParameter.LMBDA, 10 * ONE)
        assert pricing.bid(data, 0, steep) == pricing.bid(data, 0, params)
        assert pricing.ask(data, 0, steep) == pricing.ask(data, 0, params)

    def test_volume_widens_spread(self, params):
        data = _data()
        assert pricing.ask(data, ONE // 10, params) > pricing.ask(data, 0, params)
        assert pricing.bid(data, ONE // 10, params) < pricing.bid(data, 0, params)

    def test_no_spread_is_flat(self, params):
        flat = params.replace(RiskParameter.DELTA, 0).replace(RiskParameter.LMBDA, 0)
        assert pricing.bid(_data(), ONE, flat) == ONE
        assert pricing.ask(_data(), ONE, flat) == ONE

    def test_impact_ceiling(self, params):
        with pytest.raises(SlippageError) as exc:
            pricing.ask(_data(), 40 * ONE, params)
        assert exc.value.code == ErrorCode.SLIPPAGE_MAX
        with pytest.raises(SlippageError):
            pricing.bid(_data(), 40 * ONE, params)


class TestVolumeFraction:
    def test_rounds_up(self):
        assert pricing.volume_fraction(ONE, 800_000 * ONE) == 1_250_000_000_000
        assert pricing.volume_fraction(1, 3 * ONE) == 1

    def test_zero_oi(self):
        assert pricing.volume_fraction(0, 0) == 0

    def test_zero_cap(self):
        with pytest.raises(SlippageError) as exc:
            pricing.volume_fraction(ONE, 0)
        assert exc.value.code == ErrorCode.SLIPPAGE_MAX


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------

class TestBounds:
    def test_front_run_bound(self, params):
        assert pricing.front_run_bound(params, _data()) == 1_000_000 * ONE

    def test_back_run_bound(self, params):
        # 2 * 0.0025 * 2e6 * (1800 / 14)
        assert pricing.back_run_bound(params, _data()) == 1_285_714_285_714_285_714_280_000

    def test_cap_unbounded_without_reserve(self, params):
        data = _data(reserve=ONE, has_reserve=False)
        assert pricing.cap_notional_adjusted_for_bounds(params, data, 800_000 * ONE) == 800_000 * ONE

    def test_cap_limited_by_thin_reserve(self, params):
        data = _data(reserve=1_000 * ONE)
        assert pricing.cap_notional_adjusted_for_bounds(params, data, 800_000 * ONE) == 500 * ONE

    def test_cap_wins_when_smallest(self, params):
        assert pricing.cap_notional_adjusted_for_bounds(params, _data(), 10 * ONE) == 10 * ONE

    def test_oi_from_notional(self):
        assert pricing.oi_from_notional(100 * ONE, 2 * ONE) == 50 * ONE


class TestCircuitBreaker:
    CAP = 800_000 * ONE
    TARGET = 66_670 * ONE

    def _cb(self, minted):
        return pricing.circuit_breaker(RollerSnapshot(1, 100, minted), self.CAP, self.TARGET)

    def test_at_target(self):
        assert self._cb(self.TARGET) == self.CAP

    def test_halfway(self):
        assert self._cb(3 * self.TARGET // 2) == self.CAP // 2

    def test_double_target(self):
        assert self._cb(2 * self.TARGET) == 0
        assert self._cb(3 * self.TARGET) == 0

    def test_net_burned(self):
        assert self._cb(-self.TARGET) == self.CAP

    def test_empty_snapshot(self):
        assert pricing.circuit_breaker(RollerSnapshot(), self.CAP, self.TARGET) == self.CAP


# ---------------------------------------------------------------------------
# Feed sanity
# ---------------------------------------------------------------------------

class TestDataIsValid:
    DRIFT = 25_000_000_000_000  # 0.25 bps per second

    def test_settled(self):
        assert pricing.data_is_valid(_data(), self.DRIFT) is True

    @pytest.mark.parametrize("field", ["micro", "macro", "macro_ago"])
    def test_zero_price(self, field):
        assert pricing.data_is_valid(_data(**{field: 0}), self.DRIFT) is False

    def test_small_drift(self):
        # e^(2.5e-5 * 1800) ~ 1.046
        assert pricing.data_is_valid(_data(macro=104 * ONE // 100, macro_ago=ONE), self.DRIFT) is True
        assert pricing.data_is_valid(_data(macro=96 * ONE // 100, macro_ago=ONE), self.DRIFT) is True

    def test_large_drift(self):
        assert pricing.data_is_valid(_data(macro=105 * ONE // 100, macro_ago=ONE), self.DRIFT) is False
        assert pricing.data_is_valid(_data(macro=95 * ONE // 100, macro_ago=ONE), self.DRIFT) is False

    def test_micro_not_drift_checked(self):
        assert pricing.data_is_valid(_data(micro=2 * ONE), self.DRIFT) is True
