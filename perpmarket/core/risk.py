"""Risk parameters for a market.

Fifteen ordered slots, each an int in 1e18 fixed point unless noted:

==  ===========================  ======================================
#   name                         meaning
==  ===========================  ======================================
0   k                            funding constant (per second)
1   lmbda                        market impact per unit of cap volume
2   delta                        static spread
3   cap_payoff                   max payoff multiple
4   cap_notional                 max notional per side
5   cap_leverage                 max leverage
6   circuit_breaker_window       seconds (plain int)
7   circuit_breaker_mint_target  minted amount where the breaker starts
8   maintenance_margin_fraction  of initial notional
9   maintenance_margin_burn_rate of margin left after liquidation fee
10  liquidation_fee_rate         of value, paid to the liquidator
11  trading_fee_rate             of notional
12  min_collateral               smallest accepted collateral
13  price_drift_upper_limit      per second
14  average_block_time           seconds (plain int)
==  ===========================  ======================================
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum, unique

from .errors import ErrorCode, RiskParameterError
from .fixed_point import ONE, div_down

# Ceiling for every exponent the market itself evaluates (impact, drift,
# funding). Kept well under the fixed-point exp() domain.
MAX_NATURAL_EXPONENT: int = 20 * ONE


@unique
class RiskParameter(IntEnum):
    K = 0
    LMBDA = 1
    DELTA = 2
    CAP_PAYOFF = 3
    CAP_NOTIONAL = 4
    CAP_LEVERAGE = 5
    CIRCUIT_BREAKER_WINDOW = 6
    CIRCUIT_BREAKER_MINT_TARGET = 7
    MAINTENANCE_MARGIN_FRACTION = 8
    MAINTENANCE_MARGIN_BURN_RATE = 9
    LIQUIDATION_FEE_RATE = 10
    TRADING_FEE_RATE = 11
    MIN_COLLATERAL = 12
    PRICE_DRIFT_UPPER_LIMIT = 13
    AVERAGE_BLOCK_TIME = 14

    @property
    def key(self) -> str:
        return self.name.lower()

    @classmethod
    def from_key(cls, key: str) -> RiskParameter:
        try:
            return cls[key.upper()]
        except KeyError:
            raise KeyError(f"unknown risk parameter {key!r}") from None


NUM_PARAMS: int = len(RiskParameter)

# Governance bounds, 1bps = 1e14.
PARAMS_MIN: tuple[int, ...] = (
    400_000_000,            # k ~ 0.1 bps / 8 hr
    10**16,                 # lmbda = 0.01
    10**14,                 # delta = 1 bps
    10**17,                 # cap_payoff = 0.1x
    0,                      # cap_notional
    ONE,                    # cap_leverage = 1x
    86_400,                 # circuit_breaker_window = 1 day
    0,                      # circuit_breaker_mint_target
    10**16,                 # maintenance_margin_fraction = 1%
    10**16,                 # maintenance_margin_burn_rate = 1%
    10**14,                 # liquidation_fee_rate = 1 bps
    10**14,                 # trading_fee_rate = 1 bps
    10**12,                 # min_collateral = 1e-6
    10**12,                 # price_drift_upper_limit = 0.01 bps/s
    1,                      # average_block_time = 1s
)
PARAMS_MAX: tuple[int, ...] = (
    4_000_000_000_000,      # k ~ 1000 bps / 8 hr
    10 * ONE,               # lmbda = 10
    2 * 10**16,             # delta = 200 bps
    10 * ONE,               # cap_payoff = 10x
    8_000_000 * ONE,        # cap_notional
    20 * ONE,               # cap_leverage = 20x
    31_536_000,             # circuit_breaker_window = 365 days
    8_000_000 * ONE,        # circuit_breaker_mint_target
    2 * 10**17,             # maintenance_margin_fraction = 20%
    5 * 10**17,             # maintenance_margin_burn_rate = 50%
    10**17,                 # liquidation_fee_rate = 10%
    5 * 10**15,             # trading_fee_rate = 50 bps
    ONE,                    # min_collateral = 1
    10**16,                 # price_drift_upper_limit = 1 bps/s
    3_600,                  # average_block_time = 1h
)


def check_bounds(name: RiskParameter, value: int) -> None:
    """Raise ``RiskParameterError`` if ``value`` is outside the governance bounds."""
    lo, hi = PARAMS_MIN[name], PARAMS_MAX[name]
    if value < lo or value > hi:
        raise RiskParameterError(
            ErrorCode.PARAM_OUT_OF_BOUNDS, f"{name.key}={value} not in [{lo}, {hi}]"
        )


@dataclass(frozen=True)
class RiskParameters:
    """Immutable ordered risk parameter set. Use ``replace()`` to edit."""

    values: tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.values) != NUM_PARAMS:
            raise RiskParameterError(
                ErrorCode.PARAM_INVALID, f"expected {NUM_PARAMS} risk parameters, got {len(self.values)}"
            )
        for name, val in zip(RiskParameter, self.values):
            if not isinstance(val, int) or isinstance(val, bool):
                raise RiskParameterError(
                    ErrorCode.PARAM_INVALID, f"{name.key} must be int, got {type(val).__name__}"
                )
            if val < 0:
                raise RiskParameterError(ErrorCode.PARAM_OUT_OF_BOUNDS, f"{name.key} must be non-negative: {val}")
        if self.values[RiskParameter.AVERAGE_BLOCK_TIME] == 0:
            raise RiskParameterError(ErrorCode.PARAM_OUT_OF_BOUNDS, "average_block_time must be positive")
        if self.values[RiskParameter.LIQUIDATION_FEE_RATE] >= ONE:
            raise RiskParameterError(ErrorCode.PARAM_OUT_OF_BOUNDS, "liquidation_fee_rate must be below 100%")

    @classmethod
    def from_sequence(cls, values: Sequence[int]) -> RiskParameters:
        return cls(values=tuple(int(v) for v in values))

    @classmethod
    def from_mapping(cls, values: Mapping[str, int]) -> RiskParameters:
        """Build from ``{name: value}``. Raises KeyError on missing or unknown names."""
        unknown = set(values) - {p.key for p in RiskParameter}
        if unknown:
            raise KeyError(f"unknown risk parameters: {sorted(unknown)}")
        return cls(values=tuple(int(values[p.key]) for p in RiskParameter))

    def get(self, name: RiskParameter) -> int:
        return self.values[name]

    def replace(self, name: RiskParameter, value: int) -> RiskParameters:
        vals = list(self.values)
        vals[name] = value
        return RiskParameters(values=tuple(vals))

    def to_list(self) -> list[int]:
        return list(self.values)

    def to_dict(self) -> dict[str, int]:
        return {p.key: self.values[p] for p in RiskParameter}

    def __iter__(self) -> Iterator[int]:
        return iter(self.values)

    # convenience accessors used throughout the engine
    @property
    def k(self) -> int:
        return self.values[RiskParameter.K]

    @property
    def lmbda(self) -> int:
        return self.values[RiskParameter.LMBDA]

    @property
    def delta(self) -> int:
        return self.values[RiskParameter.DELTA]

    @property
    def cap_payoff(self) -> int:
        return self.values[RiskParameter.CAP_PAYOFF]

    @property
    def cap_notional(self) -> int:
        return self.values[RiskParameter.CAP_NOTIONAL]

    @property
    def cap_leverage(self) -> int:
        return self.values[RiskParameter.CAP_LEVERAGE]

    @property
    def circuit_breaker_window(self) -> int:
        return self.values[RiskParameter.CIRCUIT_BREAKER_WINDOW]

    @property
    def circuit_breaker_mint_target(self) -> int:
        return self.values[RiskParameter.CIRCUIT_BREAKER_MINT_TARGET]

    @property
    def maintenance_margin_fraction(self) -> int:
        return self.values[RiskParameter.MAINTENANCE_MARGIN_FRACTION]

    @property
    def maintenance_margin_burn_rate(self) -> int:
        return self.values[RiskParameter.MAINTENANCE_MARGIN_BURN_RATE]

    @property
    def liquidation_fee_rate(self) -> int:
        return self.values[RiskParameter.LIQUIDATION_FEE_RATE]

    @property
    def trading_fee_rate(self) -> int:
        return self.values[RiskParameter.TRADING_FEE_RATE]

    @property
    def min_collateral(self) -> int:
        return self.values[RiskParameter.MIN_COLLATERAL]

    @property
    def price_drift_upper_limit(self) -> int:
        return self.values[RiskParameter.PRICE_DRIFT_UPPER_LIMIT]

    @property
    def average_block_time(self) -> int:
        return self.values[RiskParameter.AVERAGE_BLOCK_TIME]


# -- Cross-parameter guards --------------------------------------------------

# Parameters whose edit can make max leverage instantly liquidatable.
MAX_LEVERAGE_GUARDED: frozenset[RiskParameter] = frozenset({
    RiskParameter.DELTA,
    RiskParameter.CAP_LEVERAGE,
    RiskParameter.MAINTENANCE_MARGIN_FRACTION,
    RiskParameter.LIQUIDATION_FEE_RATE,
})


def max_leverage_liquidatable(params: RiskParameters) -> bool:
    """True when a position built at ``cap_leverage`` could be liquidated at once.

    Building pays ``2 * delta`` of notional in spread on a round trip, so the
    position must keep ``mmf / (1 - liquidation_fee_rate)`` of notional after
    that: ``cap_leverage <= 1 / (2 * delta + mmf / (1 - liq_fee))``.
    """
    margin = div_down(params.maintenance_margin_fraction, ONE - params.liquidation_fee_rate)
    denom = 2 * params.delta + margin
    if denom == 0:
        return False
    return params.cap_leverage > div_down(ONE, denom)


def price_drift_exceeds_max_exp(params: RiskParameters, macro_window: int) -> bool:
    """True when the drift bound ``e^(drift * macro_window)`` is out of range."""
    return params.price_drift_upper_limit * macro_window >= MAX_NATURAL_EXPONENT


def check_safety(params: RiskParameters, macro_window: int, names: Sequence[RiskParameter] | None = None) -> None:
    """Run the cross-parameter guards relevant to ``names`` (all when None)."""
    check_lev = names is None or any(n in MAX_LEVERAGE_GUARDED for n in names)
    check_drift = names is None or RiskParameter.PRICE_DRIFT_UPPER_LIMIT in names
    if check_lev and max_leverage_liquidatable(params):
        raise RiskParameterError(ErrorCode.MAX_LEVERAGE_LIQUIDATABLE)
    if check_drift and price_drift_exceeds_max_exp(params, macro_window):
        raise RiskParameterError(ErrorCode.PRICE_DRIFT_EXCEEDS_MAX_EXP)
