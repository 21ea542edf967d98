"""Data types for the market engine.

All types are frozen dataclasses (immutable). The engine builds a candidate
``MarketState`` with ``dataclasses.replace`` and swaps it in only once the
call has fully succeeded.

Units/conventions:
- OI, shares and token amounts are 1e18 fixed point ints.
- timestamps are unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique

from ..roller import RollerSnapshot


@unique
class Event(Enum):
    """One member per state-changing market call."""
    BUILD = "Build"
    UNWIND = "Unwind"
    LIQUIDATE = "Liquidate"
    EMERGENCY_WITHDRAW = "EmergencyWithdraw"
    SHUTDOWN = "Shutdown"
    RISK_PARAM_SET = "RiskParamSet"


@dataclass(frozen=True)
class MarketState:
    """Aggregate state of one market. Positions live in the ledger."""

    # Open interest per side (funding moves these, never the shares)
    oi_long: int = 0
    oi_short: int = 0
    oi_long_shares: int = 0
    oi_short_shares: int = 0

    # Rolling accumulators
    snapshot_volume_ask: RollerSnapshot = RollerSnapshot()
    snapshot_volume_bid: RollerSnapshot = RollerSnapshot()
    snapshot_minted: RollerSnapshot = RollerSnapshot()

    timestamp_update_last: int = 0
    is_shutdown: bool = False
    next_position_id: int = 0

    def oi_side(self, is_long: bool) -> int:
        return self.oi_long if is_long else self.oi_short

    def shares_side(self, is_long: bool) -> int:
        return self.oi_long_shares if is_long else self.oi_short_shares


@dataclass(frozen=True)
class BuildResult:
    event: Event
    owner: str
    position_id: int
    is_long: bool
    collateral: int
    notional: int
    debt: int
    oi: int
    oi_shares: int
    price: int
    trading_fee: int


@dataclass(frozen=True)
class UnwindResult:
    """``minted`` is the supply delta ``value - cost``; ``pnl`` nets out the fee."""

    event: Event
    owner: str
    position_id: int
    fraction: int
    price: int
    value: int
    cost: int
    trading_fee: int
    minted: int
    pnl: int


@dataclass(frozen=True)
class LiquidateResult:
    event: Event
    liquidator: str
    owner: str
    position_id: int
    price: int
    value: int
    cost: int
    liquidation_fee: int
    margin_burned: int
    margin_remaining: int
    minted: int


@dataclass(frozen=True)
class EmergencyWithdrawResult:
    event: Event
    owner: str
    position_id: int
    amount: int
