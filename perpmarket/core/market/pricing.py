"""Pure pricing and capacity arithmetic for the market engine.

Every function is stateless and operates on plain ints (1e18 fixed point) and
frozen inputs. Rounding always goes against the trader: asks round up, bids
round down, caps round down.
"""

from __future__ import annotations

from math import isqrt

from ..errors import ErrorCode, SlippageError
from ..fixed_point import ONE, div_down, div_up, exp_down, exp_up, mul_down, mul_up
from ..oracle import FeedData
from ..risk import MAX_NATURAL_EXPONENT, RiskParameters
from ..roller import RollerSnapshot


# -- Quotes ------------------------------------------------------------------

def mid(data: FeedData) -> int:
    return (data.price_over_micro_window + data.price_over_macro_window) // 2


def _impact(params: RiskParameters, volume: int) -> int:
    """Exponent ``delta + lmbda * volume``; raises past the impact ceiling."""
    power = params.delta + mul_up(params.lmbda, volume)
    if power >= MAX_NATURAL_EXPONENT:
        raise SlippageError(ErrorCode.SLIPPAGE_MAX, f"pow={power}")
    return power


def bid(data: FeedData, volume: int, params: RiskParameters) -> int:
    """``min(micro, macro) * e^-(delta + lmbda * volume)``, rounded down."""
    price = min(data.price_over_micro_window, data.price_over_macro_window)
    return div_down(price, exp_up(_impact(params, volume)))


def ask(data: FeedData, volume: int, params: RiskParameters) -> int:
    """``max(micro, macro) * e^(delta + lmbda * volume)``, rounded up."""
    price = max(data.price_over_micro_window, data.price_over_macro_window)
    return mul_up(price, exp_up(_impact(params, volume)))


def volume_fraction(oi: int, cap_oi: int) -> int:
    """Trade size as a fraction of the OI cap, rounded up.

    A zero cap means any non-zero trade has unbounded impact.
    """
    if oi == 0:
        return 0
    if cap_oi == 0:
        raise SlippageError(ErrorCode.SLIPPAGE_MAX, "cap oi is zero")
    return div_up(oi, cap_oi)


# -- Capacity ----------------------------------------------------------------

def front_run_bound(params: RiskParameters, data: FeedData) -> int:
    """Notional a trader can push through before impact outweighs a front-run."""
    return mul_down(params.lmbda, data.reserve_over_micro_window)


def back_run_bound(params: RiskParameters, data: FeedData) -> int:
    """Notional the spread covers for a back-run over one macro window of blocks."""
    window = (data.macro_window * ONE) // params.average_block_time
    return mul_down(mul_down(2 * params.delta, data.reserve_over_micro_window), window)


def cap_notional_adjusted_for_bounds(params: RiskParameters, data: FeedData, cap: int) -> int:
    if not data.has_reserve:
        return cap
    return min(cap, front_run_bound(params, data), back_run_bound(params, data))


def circuit_breaker(snapshot: RollerSnapshot, cap: int, target: int) -> int:
    """Scale ``cap`` down linearly as minted goes from ``target`` to ``2 * target``.

    ``snapshot`` must already be projected to now.
    """
    minted = snapshot.cumulative()
    if minted <= target:
        return cap
    if minted >= 2 * target:
        return 0
    return mul_down(cap, 2 * ONE - div_down(minted, target))


def oi_from_notional(notional: int, price: int) -> int:
    return div_down(notional, price)


# -- Funding -----------------------------------------------------------------

def oi_after_funding(over: int, under: int, elapsed: int, k: int) -> tuple[int, int]:
    """OI of the (overweight, underweight) sides after ``elapsed`` seconds.

    The imbalance decays by ``e^(-2k * elapsed)`` while ``over * under`` is
    held fixed. With no counterparty the lone side simply decays.
    """
    imbalance = over - under
    power = 2 * k * elapsed
    if imbalance <= 0 or power == 0:
        return over, under

    if power >= MAX_NATURAL_EXPONENT:
        factor = 0
    else:
        factor = div_down(ONE, exp_up(power))
    imbalance_now = mul_down(imbalance, factor)

    invariant = mul_up(under, over)
    total_now = isqrt(imbalance_now * imbalance_now + 4 * invariant * ONE)
    over_now = (total_now + imbalance_now) // 2
    if invariant == 0:
        return over_now, 0
    # rounding may overshoot by a wei at equilibrium
    under_now = min(div_up(invariant, over_now), over_now)
    return over_now, under_now


# -- Feed sanity -------------------------------------------------------------

def data_is_valid(data: FeedData, price_drift_upper_limit: int) -> bool:
    """Prices present and the macro TWAP drift within ``e^(+-drift * window)``."""
    if (
        data.price_over_micro_window == 0
        or data.price_over_macro_window == 0
        or data.price_one_macro_window_ago == 0
    ):
        return False
    power = price_drift_upper_limit * data.macro_window
    dp = div_up(data.price_over_macro_window, data.price_one_macro_window_ago)
    return exp_down(-power) <= dp <= exp_up(power)
