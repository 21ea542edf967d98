"""Rolling, time-decaying accumulator.

A ``RollerSnapshot`` holds ``(timestamp, window, value)``. Each contribution
decays linearly to zero over the window it was recorded with. When a new value
is rolled in, the surviving part of the old value and the new value are summed
and their windows are blended, weighted by magnitude.

The market keeps three of these: ask volume, bid volume (both feed the
price-impact term) and net minted (feeds the circuit breaker). Values are
signed so the minted roller can go negative when burns dominate.
"""

from __future__ import annotations

from dataclasses import dataclass

# Timestamps are stored as 32-bit seconds; elapsed time wraps at this modulus.
TIMESTAMP_MODULUS: int = 2**32


@dataclass(frozen=True)
class RollerSnapshot:
    timestamp: int = 0
    window: int = 0
    value: int = 0

    @property
    def is_cold(self) -> bool:
        return self.window == 0 or self.timestamp == 0

    def transform(self, now: int, window: int, value: int) -> RollerSnapshot:
        """Decay the stored value to ``now`` and add ``value`` over ``window``."""
        dt = (now - self.timestamp) % TIMESTAMP_MODULUS
        if self.is_cold or dt >= self.window:
            return RollerSnapshot(timestamp=now, window=window, value=value)

        # truncate toward zero so the decayed magnitude never grows
        magnitude = (abs(self.value) * (self.window - dt)) // self.window
        decayed = magnitude if self.value >= 0 else -magnitude
        value_now = decayed + value

        if value_now == 0:
            # |decayed| + |value| may be zero as well
            window_now = window
        else:
            weight_last = abs(decayed)
            weight_now = abs(value)
            window_now = (
                (self.window - dt) * weight_last + window * weight_now
            ) // (weight_last + weight_now)

        return RollerSnapshot(timestamp=now, window=window_now, value=value_now)

    def cumulative(self) -> int:
        """Stored value as-is; call ``transform(now, window, 0)`` first to project it."""
        return self.value
