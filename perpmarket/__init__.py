"""perpmarket: leveraged perpetual markets priced off an external feed."""

from .config import MarketPreset, load_presets, load_risk_parameters
from .core import (
    ONE,
    ErrorCode,
    Market,
    MarketError,
    MarketFactory,
    MockFeed,
    MockFeedFactory,
    RiskParameter,
    RiskParameters,
    Token,
)

__all__ = [
    "ONE",
    "ErrorCode",
    "Market",
    "MarketError",
    "MarketFactory",
    "MarketPreset",
    "MockFeed",
    "MockFeedFactory",
    "RiskParameter",
    "RiskParameters",
    "Token",
    "load_presets",
    "load_risk_parameters",
]
