"""Market engine: pricing, invariants and the ``Market`` state machine.

Public API:
- ``Market(feed=..., token=..., params=...)``
- ``Market.build / unwind / liquidate / emergency_withdraw``
- ``Market.update / shutdown / set_risk_param``
"""

from .engine import Market
from .invariants import check_all
from .types import (
    BuildResult,
    EmergencyWithdrawResult,
    Event,
    LiquidateResult,
    MarketState,
    UnwindResult,
)

__all__ = [
    "Market",
    "check_all",
    "BuildResult",
    "EmergencyWithdrawResult",
    "Event",
    "LiquidateResult",
    "MarketState",
    "UnwindResult",
]
