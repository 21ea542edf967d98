"""Market presets loaded from YAML.

A preset file looks like::

    markets:
      default:
        feed: {micro_window: 600, macro_window: 1800}
        tick_quantized: false
        risk:
          k: 122000000000          # int: raw 1e18 units
          lmbda: "0.5"             # str: decimal, scaled by 1e18
          circuit_breaker_window: 2592000
          ...

Risk values given as ints are taken as-is (already fixed point, or plain
seconds for the window/block-time slots). Strings are decimals and get scaled
by ``ONE``; they must land on a whole fixed-point unit.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Context, Decimal, InvalidOperation
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .core.fixed_point import ONE
from .core.risk import RiskParameter, RiskParameters

_CTX = Context(prec=80)


def default_config_path() -> Path:
    # perpmarket/config.py -> repo root -> configs/markets.yaml
    return Path(__file__).resolve().parents[1] / "configs" / "markets.yaml"


@dataclass(frozen=True)
class MarketPreset:
    name: str
    params: RiskParameters
    micro_window: int = 600
    macro_window: int = 1800
    tick_quantized: bool = False


def to_fixed(value: Any, field: str = "value") -> int:
    """Convert a YAML scalar to a fixed-point int (see module docstring)."""
    if isinstance(value, bool):
        raise TypeError(f"{field} must be int or decimal string, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            scaled = _CTX.multiply(Decimal(value.strip()), Decimal(ONE))
        except InvalidOperation:
            raise ValueError(f"{field}: not a decimal: {value!r}") from None
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{field}: {value!r} is finer than 1e-18")
        return int(scaled)
    raise TypeError(f"{field} must be int or decimal string, got {type(value).__name__}")


def _parse_preset(name: str, raw: Any) -> MarketPreset:
    if not isinstance(raw, Mapping):
        raise TypeError(f"preset {name!r} must be a mapping")
    risk = raw.get("risk")
    if not isinstance(risk, Mapping):
        raise TypeError(f"preset {name!r}: 'risk' must be a mapping")
    missing = [p.key for p in RiskParameter if p.key not in risk]
    if missing:
        raise KeyError(f"preset {name!r}: missing risk parameters {missing}")

    params = RiskParameters.from_mapping(
        {key: to_fixed(val, f"{name}.risk.{key}") for key, val in risk.items()}
    )
    feed = raw.get("feed") or {}
    return MarketPreset(
        name=name,
        params=params,
        micro_window=int(feed.get("micro_window", 600)),
        macro_window=int(feed.get("macro_window", 1800)),
        tick_quantized=bool(raw.get("tick_quantized", False)),
    )


def parse_presets(obj: Any) -> dict[str, MarketPreset]:
    if not isinstance(obj, Mapping) or not isinstance(obj.get("markets"), Mapping):
        raise TypeError("config YAML must be a mapping with a 'markets' mapping")
    return {str(name): _parse_preset(str(name), raw) for name, raw in obj["markets"].items()}


@lru_cache(maxsize=8)
def _load_cached(path: Path) -> dict[str, MarketPreset]:
    obj = yaml.safe_load(path.read_text(encoding="utf-8"))
    return parse_presets(obj)


def load_presets(path: Path | str | None = None) -> dict[str, MarketPreset]:
    """All presets in ``path`` (the bundled ``configs/markets.yaml`` by default)."""
    resolved = Path(path).resolve() if path is not None else default_config_path()
    return dict(_load_cached(resolved))


def load_risk_parameters(path: Path | str | None = None, name: str = "default") -> RiskParameters:
    presets = load_presets(path)
    if name not in presets:
        raise KeyError(f"no market preset named {name!r}")
    return presets[name].params
