"""Position records and their valuation formulas.

Units/conventions:
- notional, debt, prices, shares: 1e18 fixed point ints.
- ``fraction`` arguments: 1e18 fixed point in (0, ONE].
- ``fraction_remaining``: share of the *initial* position still open, out of
  ``RESOLUTION`` (10_000 = all of it).

Initial quantities (notional, debt, initial OI, cost) are stored once at build
and scaled by ``fraction_remaining * fraction`` on every read. ``oi_shares``
is stored net of earlier unwinds, so it only scales by ``fraction``.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, replace

from .errors import ErrorCode, InputValidationError
from .fixed_point import ONE, div_down, mul_down, mul_up, sub_floor
from .tick import price_to_tick, quantize_price

RESOLUTION: int = 10_000

PositionKey = tuple[str, int]


@dataclass(frozen=True)
class PositionInfo:
    notional_initial: int
    debt_initial: int
    mid_price: int
    entry_price: int
    is_long: bool
    liquidated: bool = False
    oi_shares: int = 0
    fraction_remaining: int = RESOLUTION

    def __post_init__(self) -> None:
        if not 0 <= self.fraction_remaining <= RESOLUTION:
            raise ValueError(f"fraction_remaining out of range: {self.fraction_remaining}")
        if self.liquidated and (self.oi_shares != 0 or self.fraction_remaining != 0):
            raise ValueError("liquidated position must have no shares and no fraction remaining")

    @classmethod
    def build(
        cls,
        *,
        notional: int,
        debt: int,
        mid_price: int,
        entry_price: int,
        is_long: bool,
        oi_shares: int,
        tick_quantized: bool = False,
    ) -> PositionInfo:
        """New open position. Rejects entries more than 2x the mid price."""
        if tick_quantized:
            mid_price = quantize_price(mid_price)
            entry_price = quantize_price(entry_price)
        if entry_price > 2 * mid_price:
            raise InputValidationError(ErrorCode.ENTRY_VALUE_ZERO, f"entry={entry_price} mid={mid_price}")
        return cls(
            notional_initial=notional,
            debt_initial=debt,
            mid_price=mid_price,
            entry_price=entry_price,
            is_long=is_long,
            oi_shares=oi_shares,
        )

    # -- derived attributes --------------------------------------------------

    @property
    def is_open(self) -> bool:
        return not self.liquidated and self.fraction_remaining > 0

    @property
    def mid_tick(self) -> int:
        return price_to_tick(self.mid_price)

    @property
    def entry_tick(self) -> int:
        return price_to_tick(self.entry_price)

    @property
    def entry_to_mid_ratio(self) -> int:
        return (self.entry_price * RESOLUTION) // self.mid_price

    # -- fraction scalars ----------------------------------------------------

    def _scale(self, amount: int, fraction: int) -> int:
        return mul_down((amount * self.fraction_remaining) // RESOLUTION, fraction)

    def notional_initial_at(self, fraction: int) -> int:
        return self._scale(self.notional_initial, fraction)

    def debt_at(self, fraction: int) -> int:
        return self._scale(self.debt_initial, fraction)

    def oi_initial(self, fraction: int) -> int:
        return div_down(self.notional_initial_at(fraction), self.mid_price)

    def cost(self, fraction: int) -> int:
        """Collateral backing ``fraction`` of the remaining position.

        Scaled from the posted collateral in a single floor. Costs of
        successive partial unwinds sum to at most the posted collateral.
        """
        return self._scale(self.notional_initial - self.debt_initial, fraction)

    def oi_shares_current(self, fraction: int) -> int:
        return min(self.oi_shares, mul_up(self.oi_shares, fraction))

    def oi_current(self, fraction: int, total_oi: int, total_shares: int) -> int:
        """Pro-rata claim on the side's aggregate OI."""
        if total_oi == 0 or total_shares == 0:
            return 0
        return (self.oi_shares_current(fraction) * total_oi) // total_shares

    def updated_fraction_remaining(self, fraction: int) -> int:
        return (self.fraction_remaining * (ONE - fraction)) // ONE

    # -- valuation -----------------------------------------------------------

    def payoff(self, price: int, cap_payoff: int) -> int:
        """Signed return since entry, clamped to ``[-ONE, cap_payoff]``."""
        change = price - self.entry_price if self.is_long else self.entry_price - price
        raw = (change * ONE) // self.entry_price
        return max(-ONE, min(raw, cap_payoff))

    def notional_with_pnl(
        self, fraction: int, total_oi: int, total_shares: int, price: int, cap_payoff: int,
    ) -> int:
        """Initial notional adjusted for funding and capped P&L, floored at debt."""
        oi_now = self.oi_current(fraction, total_oi, total_shares)
        oi_then = self.oi_initial(fraction)
        debt = self.debt_at(fraction)

        # funding shows up as oi_now drifting away from oi_then
        base = (self.notional_initial_at(fraction) * oi_now) // oi_then if oi_then else 0
        pnl = mul_down(mul_down(oi_now, self.entry_price), self.payoff(price, cap_payoff))
        return max(base + pnl, debt)

    def value(self, fraction: int, total_oi: int, total_shares: int, price: int, cap_payoff: int) -> int:
        """Equity of the position; never negative."""
        return sub_floor(
            self.notional_with_pnl(fraction, total_oi, total_shares, price, cap_payoff),
            self.debt_at(fraction),
        )

    def trading_fee(
        self,
        fraction: int,
        total_oi: int,
        total_shares: int,
        price: int,
        cap_payoff: int,
        trading_fee_rate: int,
    ) -> int:
        notional = self.notional_with_pnl(fraction, total_oi, total_shares, price, cap_payoff)
        return mul_up(notional, trading_fee_rate)

    def liquidatable(
        self,
        total_oi: int,
        total_shares: int,
        price: int,
        cap_payoff: int,
        maintenance_margin_fraction: int,
        liquidation_fee_rate: int,
    ) -> bool:
        if self.liquidated or self.oi_shares == 0:
            return False
        val = self.value(ONE, total_oi, total_shares, price, cap_payoff)
        maintenance_margin = mul_up(self.notional_initial_at(ONE), maintenance_margin_fraction)
        return mul_down(val, ONE - liquidation_fee_rate) < maintenance_margin

    # -- transitions ---------------------------------------------------------

    def after_unwind(self, fraction: int) -> PositionInfo:
        return replace(
            self,
            oi_shares=self.oi_shares - self.oi_shares_current(fraction),
            fraction_remaining=self.updated_fraction_remaining(fraction),
        )

    def after_liquidation(self) -> PositionInfo:
        return replace(self, liquidated=True, oi_shares=0, fraction_remaining=0)

    def after_withdrawal(self) -> PositionInfo:
        return replace(self, oi_shares=0, fraction_remaining=0)


class PositionLedger:
    """Positions keyed by ``(owner, position_id)``."""

    def __init__(self) -> None:
        self._positions: dict[PositionKey, PositionInfo] = {}

    def get(self, owner: str, position_id: int) -> PositionInfo | None:
        return self._positions.get((owner, position_id))

    def exists(self, owner: str, position_id: int) -> bool:
        return (owner, position_id) in self._positions

    def set(self, owner: str, position_id: int, pos: PositionInfo) -> None:
        self._positions[(owner, position_id)] = pos

    def items(self) -> Iterator[tuple[PositionKey, PositionInfo]]:
        return iter(self._positions.items())

    def open_on_side(self, is_long: bool) -> Iterator[PositionInfo]:
        return (p for p in self._positions.values() if p.is_long == is_long and p.is_open)

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, key: object) -> bool:
        return key in self._positions
