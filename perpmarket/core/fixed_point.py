"""Fixed-point arithmetic for the perpmarket risk engine.

Every value is a plain Python ``int`` scaled by ``ONE = 10**18``. The
``*_up`` / ``*_down`` pairs round toward +inf / -inf respectively so callers can
always round against the trader.

Transcendental functions (exp, log, pow) are evaluated with ``decimal`` at 80
significant digits and then rounded in the requested direction, which makes
them deterministic across platforms.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, Context, Decimal

from .errors import ErrorCode, FixedPointError

ONE: int = 10**18

# Domain of exp(); e^130 still fits a 256-bit fixed-point word.
MAX_NATURAL_EXPONENT: int = 130 * ONE
MIN_NATURAL_EXPONENT: int = -41 * ONE

# Largest accepted argument for log()/pow().
MAX_POW_INPUT: int = 2**255 - 1

_CTX = Context(prec=80)
_D_ONE = Decimal(ONE)


# -- Basic helpers -----------------------------------------------------------

def mul_down(a: int, b: int) -> int:
    return (a * b) // ONE


def mul_up(a: int, b: int) -> int:
    product = a * b
    if product == 0:
        return 0
    return (product - 1) // ONE + 1


def div_down(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("div_down by zero")
    return (a * ONE) // b


def div_up(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("div_up by zero")
    if a == 0:
        return 0
    return (a * ONE - 1) // b + 1


def sub_floor(a: int, b: int) -> int:
    """``max(a - b, 0)``."""
    return a - b if a > b else 0


# -- Rounding ----------------------------------------------------------------

def _to_fixed(x: Decimal, rounding: str) -> int:
    return int(_CTX.multiply(x, _D_ONE).to_integral_value(rounding=rounding))


def _from_fixed(x: int) -> Decimal:
    return _CTX.divide(Decimal(x), _D_ONE)


# -- exp ---------------------------------------------------------------------

def _exp(x: int, rounding: str) -> int:
    if x < MIN_NATURAL_EXPONENT or x > MAX_NATURAL_EXPONENT:
        raise FixedPointError(ErrorCode.X_OUT_OF_BOUNDS, f"x={x}")
    if x == 0:
        return ONE
    return _to_fixed(_CTX.exp(_from_fixed(x)), rounding)


def exp_up(x: int) -> int:
    """e^x rounded up."""
    return _exp(x, ROUND_CEILING)


def exp_down(x: int) -> int:
    """e^x rounded down."""
    return _exp(x, ROUND_FLOOR)


# -- log ---------------------------------------------------------------------

def _ln_checked(v: int, code: ErrorCode) -> Decimal:
    if v <= 0 or v > MAX_POW_INPUT:
        raise FixedPointError(code, f"{v}")
    return _CTX.ln(_from_fixed(v))


def _log(a: int, b: int, rounding: str) -> int:
    ln_a = _ln_checked(a, ErrorCode.A_OUT_OF_BOUNDS)
    ln_b = _ln_checked(b, ErrorCode.B_OUT_OF_BOUNDS)
    if ln_b == 0:
        raise FixedPointError(ErrorCode.B_OUT_OF_BOUNDS, "log base one")
    return _to_fixed(_CTX.divide(ln_a, ln_b), rounding)


def log_up(a: int, b: int) -> int:
    """log_b(a) rounded up. Negative when ``a < ONE < b`` and so on."""
    return _log(a, b, ROUND_CEILING)


def log_down(a: int, b: int) -> int:
    """log_b(a) rounded down."""
    return _log(a, b, ROUND_FLOOR)


# -- pow ---------------------------------------------------------------------

def _pow(base: int, exp: int, rounding: str) -> int:
    if base == 0:
        return ONE if exp == 0 else 0
    if base == ONE or exp == 0:
        return ONE
    ln_base = _ln_checked(base, ErrorCode.A_OUT_OF_BOUNDS)
    if exp < 0 or exp > MAX_POW_INPUT:
        raise FixedPointError(ErrorCode.B_OUT_OF_BOUNDS, f"{exp}")
    power = _CTX.multiply(ln_base, _from_fixed(exp))
    # exponent bounds are checked in fixed-point units, same as exp()
    scaled = _CTX.multiply(power, _D_ONE)
    if scaled > MAX_NATURAL_EXPONENT or scaled < MIN_NATURAL_EXPONENT:
        raise FixedPointError(ErrorCode.X_OUT_OF_BOUNDS, f"base={base} exp={exp}")
    return _to_fixed(_CTX.exp(power), rounding)


def pow_up(base: int, exp: int) -> int:
    """base^exp rounded up."""
    return _pow(base, exp, ROUND_CEILING)


def pow_down(base: int, exp: int) -> int:
    """base^exp rounded down."""
    return _pow(base, exp, ROUND_FLOOR)
