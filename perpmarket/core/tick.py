"""Price <-> tick conversion on a log-base-1.0001 grid.

``price = 1.0001 ** tick``, prices in 1e18 fixed point. The grid spacing is one
basis point, so a round trip through a tick loses at most ~1bp.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Context, Decimal

from .errors import ErrorCode, TickError
from .fixed_point import ONE

MIN_TICK: int = -410_000
MAX_TICK: int = 1_200_000

_CTX = Context(prec=80)
_BASE = Decimal("1.0001")
_LN_BASE = _CTX.ln(_BASE)
_D_ONE = Decimal(ONE)


def _check_tick(tick: int) -> None:
    if tick < MIN_TICK or tick > MAX_TICK:
        raise TickError(ErrorCode.TICK_OUT_OF_BOUNDS, f"tick={tick}")


def price_to_tick(price: int) -> int:
    """Largest tick whose price does not exceed ``price``."""
    if price <= 0:
        raise TickError(ErrorCode.TICK_OUT_OF_BOUNDS, f"price={price}")
    ratio = _CTX.divide(Decimal(price), _D_ONE)
    tick = int(_CTX.divide(_CTX.ln(ratio), _LN_BASE).to_integral_value(rounding=ROUND_FLOOR))
    _check_tick(tick)
    return tick


def tick_to_price(tick: int) -> int:
    """``1.0001 ** tick`` in fixed point, rounded down."""
    _check_tick(tick)
    price = _CTX.multiply(_CTX.power(_BASE, tick), _D_ONE)
    return int(price.to_integral_value(rounding=ROUND_FLOOR))


def quantize_price(price: int) -> int:
    """Round ``price`` down onto the tick grid."""
    return tick_to_price(price_to_tick(price))
