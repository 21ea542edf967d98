"""Tests for Market.set_risk_param() and the market's read-only views."""

import pytest

from perpmarket.core import (
    ONE,
    AuthorizationError,
    ErrorCode,
    Market,
    MarketStateError,
    RiskParameter,
    RiskParameterError,
)
from perpmarket.core.market import Event


class TestSetRiskParam:
    def test_updates(self, market):
        assert market.set_risk_param("factory", RiskParameter.K, 10**12) == Event.RISK_PARAM_SET
        assert market.params.k == 10**12

    @pytest.mark.parametrize("name", list(RiskParameter))
    def test_each_slot_settable(self, market, params, name):
        # re-setting the current value never trips a guard
        market.set_risk_param("factory", name, params.get(name))
        assert market.params == params

    def test_not_factory(self, market, params):
        with pytest.raises(AuthorizationError) as exc:
            market.set_risk_param("eve", RiskParameter.K, 10**12)
        assert exc.value.code == ErrorCode.NOT_FACTORY
        assert market.params == params

    def test_cap_leverage_guard(self, market, params):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", RiskParameter.CAP_LEVERAGE, 10 * ONE)
        assert exc.value.code == ErrorCode.MAX_LEVERAGE_LIQUIDATABLE
        assert market.params == params

    def test_mmf_guard(self, market):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", RiskParameter.MAINTENANCE_MARGIN_FRACTION, 2 * 10**17)
        assert exc.value.code == ErrorCode.MAX_LEVERAGE_LIQUIDATABLE

    def test_delta_guard(self, market):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", RiskParameter.DELTA, 5 * 10**16)
        assert exc.value.code == ErrorCode.MAX_LEVERAGE_LIQUIDATABLE

    def test_price_drift_guard(self, market):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", RiskParameter.PRICE_DRIFT_UPPER_LIMIT, 2 * 10**16)
        assert exc.value.code == ErrorCode.PRICE_DRIFT_EXCEEDS_MAX_EXP

    @pytest.mark.parametrize(
        "name, value",
        [
            (RiskParameter.K, -1),
            (RiskParameter.LIQUIDATION_FEE_RATE, ONE),
            (RiskParameter.AVERAGE_BLOCK_TIME, 0),
        ],
    )
    def test_out_of_range_value(self, market, params, name, value):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", name, value)
        assert exc.value.code == ErrorCode.PARAM_OUT_OF_BOUNDS
        assert market.params == params

    def test_non_int_value(self, market, params):
        with pytest.raises(RiskParameterError) as exc:
            market.set_risk_param("factory", RiskParameter.K, True)
        assert exc.value.code == ErrorCode.PARAM_INVALID
        assert market.params == params

    def test_unrelated_param_skips_leverage_guard(self, make_market, params):
        # a market already past the leverage guard can still take a k edit
        market = make_market()
        market._params = params.replace(RiskParameter.CAP_LEVERAGE, 10 * ONE)
        market.set_risk_param("factory", RiskParameter.K, 10**12)
        assert market.params.k == 10**12

    def test_lower_cap_rejects_builds(self, market):
        market.set_risk_param("factory", RiskParameter.CAP_NOTIONAL, 10 * ONE)
        with pytest.raises(MarketStateError) as exc:
            market.build("alice", 11 * ONE, ONE, True, 10**30)
        assert exc.value.code == ErrorCode.OI_CAP_EXCEEDED


class TestMarketConstruction:
    def test_rejects_unsafe_params(self, feed, token, params, clock):
        with pytest.raises(RiskParameterError):
            Market(
                feed=feed, token=token, clock=clock,
                params=params.replace(RiskParameter.CAP_LEVERAGE, 10 * ONE),
            )

    def test_rejects_zero_mid(self, feed, token, params, clock):
        feed.set_price(0)
        with pytest.raises(MarketStateError) as exc:
            Market(feed=feed, token=token, params=params, clock=clock)
        assert exc.value.code == ErrorCode.INVALID_DATA

    def test_initial_state(self, market, clock):
        s = market.state
        assert s.timestamp_update_last == clock.now
        assert (s.oi_long, s.oi_short, s.oi_long_shares, s.oi_short_shares) == (0, 0, 0, 0)
        assert s.is_shutdown is False


class TestViews:
    def test_quotes(self, market):
        assert market.mid() == ONE
        assert market.bid() < ONE < market.ask()

    def test_bounds(self, market):
        assert market.front_run_bound() == 1_000_000 * ONE
        assert market.cap_notional_adjusted_for_bounds() == 800_000 * ONE

    def test_circuit_breaker_idle(self, market):
        assert market.circuit_breaker() == 800_000 * ONE

    def test_data_is_valid(self, market, feed):
        assert market.data_is_valid() is True
        feed.set_prices(macro_ago=2 * ONE)
        assert market.data_is_valid() is False

    def test_back_run_bound(self, market):
        assert market.back_run_bound() == 1_285_714_285_714_285_714_280_000

    def test_oi_after_funding_uses_k(self, market):
        over, under = market.oi_after_funding(4 * ONE, ONE, 3_600)
        assert under < over < 4 * ONE
