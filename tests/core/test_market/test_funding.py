"""Tests for funding: Market.update() and pricing.oi_after_funding()."""

import pytest

from perpmarket.core import ONE, ErrorCode, MarketStateError
from perpmarket.core.market.pricing import oi_after_funding

MAX_LIMIT = 10**30
EIGHT_HOURS = 8 * 3600


# ---------------------------------------------------------------------------
# oi_after_funding
# ---------------------------------------------------------------------------

class TestOiAfterFunding:
    def test_balanced_unchanged(self):
        assert oi_after_funding(5 * ONE, 5 * ONE, EIGHT_HOURS, 122_000_000_000) == (5 * ONE, 5 * ONE)

    def test_no_time_unchanged(self):
        assert oi_after_funding(5 * ONE, ONE, 0, 122_000_000_000) == (5 * ONE, ONE)

    def test_zero_k_unchanged(self):
        assert oi_after_funding(5 * ONE, ONE, EIGHT_HOURS, 0) == (5 * ONE, ONE)

    def test_empty_market(self):
        assert oi_after_funding(0, 0, EIGHT_HOURS, 122_000_000_000) == (0, 0)

    def test_lone_side_decays(self):
        over, under = oi_after_funding(10 * ONE, 0, EIGHT_HOURS, 122_000_000_000)
        assert 0 < over < 10 * ONE
        assert under == 0

    def test_imbalance_shrinks(self):
        over, under = oi_after_funding(4 * ONE, ONE, EIGHT_HOURS, 122_000_000_000)
        assert over < 4 * ONE
        assert under > ONE
        assert over - under < 3 * ONE
        assert over >= under

    def test_product_preserved(self):
        over, under = oi_after_funding(4 * ONE, ONE, EIGHT_HOURS, 122_000_000_000)
        before = 4 * ONE * ONE
        assert abs(over * under - before) <= before // 10**12

    def test_saturates_at_equilibrium(self):
        # 2 * k * elapsed far past the exponent ceiling
        over, under = oi_after_funding(4 * ONE, ONE, 10**7, 4_000_000_000_000)
        assert over == 2 * ONE
        assert under == 2 * ONE


# ---------------------------------------------------------------------------
# Market.update
# ---------------------------------------------------------------------------

class TestMarketUpdate:
    def test_lone_long_decays(self, market, clock):
        b = market.build("alice", 10 * ONE, ONE, True, MAX_LIMIT)
        clock.advance(EIGHT_HOURS)
        market.update()
        expected, _ = oi_after_funding(b.oi, 0, EIGHT_HOURS, market.params.k)
        assert market.state.oi_long == expected < b.oi
        assert market.state.oi_long_shares == b.oi_shares
        assert market.state.timestamp_update_last == clock.now

    def test_longs_pay_shorts(self, market, clock):
        a = market.build("alice", 100 * ONE, ONE, True, MAX_LIMIT)
        s = market.build("bob", 50 * ONE, ONE, False, 0)
        clock.advance(EIGHT_HOURS)
        market.update()
        st = market.state
        assert st.oi_long < a.oi
        assert st.oi_short > s.oi
        assert st.oi_long >= st.oi_short
        assert st.oi_long_shares == a.oi_shares
        assert st.oi_short_shares == s.oi_shares

    def test_shorts_pay_longs(self, market, clock):
        a = market.build("alice", 50 * ONE, ONE, True, MAX_LIMIT)
        s = market.build("bob", 100 * ONE, ONE, False, 0)
        clock.advance(EIGHT_HOURS)
        market.update()
        st = market.state
        assert st.oi_short < s.oi
        assert st.oi_long > a.oi

    def test_same_timestamp_noop(self, market):
        market.build("alice", 10 * ONE, ONE, True, MAX_LIMIT)
        before = market.state
        market.update()
        assert market.state == before

    def test_returns_feed_data(self, market, feed):
        data = market.update()
        assert data.price_over_micro_window == feed.price_micro
        assert data.macro_window == feed.macro_window

    def test_invalid_data_does_not_commit(self, market, feed, clock):
        market.build("alice", 10 * ONE, ONE, True, MAX_LIMIT)
        before = market.state
        clock.advance(EIGHT_HOURS)
        feed.set_prices(micro=0)
        with pytest.raises(MarketStateError) as exc:
            market.update()
        assert exc.value.code == ErrorCode.INVALID_DATA
        assert market.state == before

    def test_funding_moves_value(self, market, clock):
        a = market.build("alice", 100 * ONE, ONE, True, MAX_LIMIT)
        s = market.build("bob", 50 * ONE, ONE, False, 0)
        long_before = market.position_value("alice", a.position_id)
        short_before = market.position_value("bob", s.position_id)
        clock.advance(EIGHT_HOURS)
        market.update()
        assert market.position_value("alice", a.position_id) < long_before
        assert market.position_value("bob", s.position_id) > short_before
