"""Exception types for the perpmarket risk engine.

Every failure carries a stable ``ErrorCode`` so callers can branch on
``exc.code`` instead of parsing messages. All of them are raised before any
state is committed.
"""

from __future__ import annotations

from enum import Enum, unique


@unique
class ErrorCode(str, Enum):
    """One member per distinct failure condition."""

    # input validation
    LEVERAGE_TOO_LOW = "lev<min"
    LEVERAGE_TOO_HIGH = "lev>max"
    COLLATERAL_TOO_LOW = "collateral<min"
    FRACTION_OUT_OF_BOUNDS = "fraction out of bounds"
    OI_ZERO = "oi==0"
    ENTRY_VALUE_ZERO = "value==0 at entry"
    NEGATIVE_AMOUNT = "amount<0"

    # market state
    SHUTDOWN = "shutdown"
    NOT_SHUTDOWN = "!shutdown"
    OI_CAP_EXCEEDED = "oi>cap"
    CIRCUIT_BREAKER_ENGAGED = "circuit breaker engaged"
    INVALID_DATA = "!data"
    POSITION_NOT_FOUND = "!position"
    POSITION_CLOSED = "position closed"
    ALREADY_LIQUIDATED = "already liquidated"
    NOT_LIQUIDATABLE = "!liquidatable"
    IMMEDIATELY_LIQUIDATABLE = "liquidatable"
    MARKET_EXISTS = "market exists"
    MARKET_NOT_FOUND = "!market"
    FEED_FACTORY_EXISTS = "feed factory exists"
    FEED_FACTORY_NOT_FOUND = "!feed factory"
    FEED_NOT_FOUND = "!feed"

    # slippage
    SLIPPAGE_LIMIT = "slippage>limit"
    SLIPPAGE_MAX = "slippage>max"

    # authorization
    NOT_FACTORY = "!factory"
    NOT_GOVERNOR = "!governor"
    NOT_GUARDIAN = "!guardian"
    NOT_MINTER = "!minter"

    # risk parameters
    PARAM_OUT_OF_BOUNDS = "param out of bounds"
    PARAM_INVALID = "param invalid"
    MAX_LEVERAGE_LIQUIDATABLE = "max lev immediately liquidatable"
    PRICE_DRIFT_EXCEEDS_MAX_EXP = "price drift exceeds max exp"

    # numeric domain
    X_OUT_OF_BOUNDS = "x out of bounds"
    A_OUT_OF_BOUNDS = "a out of bounds"
    B_OUT_OF_BOUNDS = "b out of bounds"
    TICK_OUT_OF_BOUNDS = "tick out of bounds"

    # token
    INSUFFICIENT_BALANCE = "insufficient balance"

    # post-state checks
    INVARIANT = "invariant"


class MarketError(Exception):
    """Base class. ``code`` identifies the failure condition."""

    def __init__(self, code: ErrorCode, detail: str = "") -> None:
        self.code = code
        self.detail = detail
        msg = code.value if not detail else f"{code.value}: {detail}"
        super().__init__(msg)


class InputValidationError(MarketError):
    """Raised when caller-supplied arguments are outside their allowed range."""


class MarketStateError(MarketError):
    """Raised when the market's state forbids the requested action."""


class SlippageError(MarketError):
    """Raised when a quote breaches the caller's limit or the impact ceiling."""


class AuthorizationError(MarketError):
    """Raised when the caller lacks the role required for an action."""


class MathDomainError(MarketError):
    """Raised when a fixed-point or tick computation leaves its domain."""


class FixedPointError(MathDomainError):
    pass


class TickError(MathDomainError):
    pass


class RiskParameterError(MarketError):
    """Raised when a risk parameter edit violates a bound or a safety guard."""


class InsufficientBalanceError(MarketError):
    """Raised when a token transfer or burn exceeds the available balance."""


class MarketInvariantError(MarketError):
    """Raised when a candidate post-state violates one or more invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(ErrorCode.INVARIANT, ", ".join(violations))
