"""Invariant checkers for the market engine.

Each function returns True when the invariant holds, and ``check_all()``
returns the list of violated invariant IDs (empty = all pass). The engine runs
them on every candidate post-state before committing it.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..position import PositionInfo
from .types import MarketState


def inv_oi_nonneg(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    return s.oi_long >= 0 and s.oi_short >= 0


def inv_shares_nonneg(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    return s.oi_long_shares >= 0 and s.oi_short_shares >= 0


def inv_long_shares_conserved(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    return s.oi_long_shares == sum(p.oi_shares for p in positions if p.is_long)


def inv_short_shares_conserved(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    return s.oi_short_shares == sum(p.oi_shares for p in positions if not p.is_long)


def inv_no_oi_without_shares(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    if s.oi_long_shares == 0 and s.oi_long != 0:
        return False
    return not (s.oi_short_shares == 0 and s.oi_short != 0)


def inv_liquidated_zeroed(s: MarketState, positions: Sequence[PositionInfo]) -> bool:
    return all(p.oi_shares == 0 and p.fraction_remaining == 0 for p in positions if p.liquidated)


# ---------------------------------------------------------------------------
# Registry + check_all
# ---------------------------------------------------------------------------

InvariantFn = Callable[[MarketState, Sequence[PositionInfo]], bool]

INVARIANT_REGISTRY: dict[str, InvariantFn] = {
    "inv_oi_nonneg": inv_oi_nonneg,
    "inv_shares_nonneg": inv_shares_nonneg,
    "inv_long_shares_conserved": inv_long_shares_conserved,
    "inv_short_shares_conserved": inv_short_shares_conserved,
    "inv_no_oi_without_shares": inv_no_oi_without_shares,
    "inv_liquidated_zeroed": inv_liquidated_zeroed,
}


def check_all(state: MarketState, positions: Sequence[PositionInfo]) -> list[str]:
    """Return list of violated invariant IDs (empty = all pass)."""
    return [
        inv_id
        for inv_id, check_fn in INVARIANT_REGISTRY.items()
        if not check_fn(state, positions)
    ]
