"""`core`: integer-only risk engine for leveraged perpetual markets.

- fixed-point math and tick conversion,
- immutable market state (frozen dataclasses),
- fail-closed checks and post-state invariants.
"""

from .errors import (
    AuthorizationError,
    ErrorCode,
    FixedPointError,
    InputValidationError,
    InsufficientBalanceError,
    MarketError,
    MarketInvariantError,
    MarketStateError,
    MathDomainError,
    RiskParameterError,
    SlippageError,
    TickError,
)
from .factory import MarketFactory
from .fixed_point import ONE
from .market import Market, MarketState
from .oracle import FeedData, MockFeed, MockFeedFactory, PriceFeed
from .position import PositionInfo, PositionLedger
from .risk import RiskParameter, RiskParameters
from .roller import RollerSnapshot
from .token import Token

__all__ = [
    "ONE",
    "Market",
    "MarketFactory",
    "MarketState",
    "FeedData",
    "MockFeed",
    "MockFeedFactory",
    "PriceFeed",
    "PositionInfo",
    "PositionLedger",
    "RiskParameter",
    "RiskParameters",
    "RollerSnapshot",
    "Token",
    "ErrorCode",
    "MarketError",
    "AuthorizationError",
    "FixedPointError",
    "InputValidationError",
    "InsufficientBalanceError",
    "MarketInvariantError",
    "MarketStateError",
    "MathDomainError",
    "RiskParameterError",
    "SlippageError",
    "TickError",
]
