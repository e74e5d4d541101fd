"""Strategy profiles — one parameterized pipeline, many configurations.

A profile is a frozen bag of thresholds and lookbacks.  Variants are
built with ``with_overrides`` instead of subclassing.
"""

from dataclasses import dataclass, replace
from typing import Literal

from tradeguard.strategy.models import interval_ms

PIPELINES = ("sweep_2cr", "foundation_gap")


@dataclass(frozen=True)
class StrategyProfile:
    """Thresholds, windows and targets for one entry pipeline."""

    name: str
    pipeline: Literal["sweep_2cr", "foundation_gap"] = "sweep_2cr"
    rr_ratio: float = 3.0
    min_candles: int = 15

    # Feed
    fast_interval: str = "1m"
    anchor_interval: str = "5m"
    fast_limit: int = 120
    anchor_limit: int = 288

    # 2CR resolver
    reversal_lookahead: int = 20
    invalidation_lookahead: int = 15
    stop_buffer_pct: float = 0.001
    require_trend: bool = False

    # Trend validator
    trend_window: int = 15
    structure_threshold: float = 0.6
    volume_threshold: float = 0.15

    # Gap detector / selection
    gap_window: int = 20
    gap_min_pct: float = 0.005
    gap_min_body_ratio: float = 0.6
    gap_volume_factor: float = 1.2
    gap_max_distance_pct: float = 0.02
    gap_min_quality: int = 2

    def __post_init__(self) -> None:
        if self.pipeline not in PIPELINES:
            raise ValueError(
                f"pipeline must be one of {', '.join(PIPELINES)}, got '{self.pipeline}'"
            )
        if self.rr_ratio <= 0:
            raise ValueError(f"rr_ratio must be positive, got {self.rr_ratio}")
        interval_ms(self.fast_interval)
        interval_ms(self.anchor_interval)

    def with_overrides(self, **overrides) -> "StrategyProfile":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)


_SWEEP_2CR = StrategyProfile(name="sweep_2cr")

PROFILE_REGISTRY: dict[str, StrategyProfile] = {
    "sweep_2cr": _SWEEP_2CR,
    "sweep_2cr_trend": _SWEEP_2CR.with_overrides(
        name="sweep_2cr_trend", require_trend=True,
    ),
    "foundation_gap": StrategyProfile(
        name="foundation_gap", pipeline="foundation_gap", min_candles=20,
    ),
}


def get_profile(name: str) -> StrategyProfile:
    """Look up a profile by registry key.

    Raises ``KeyError`` if the profile name is not registered.
    """
    if name not in PROFILE_REGISTRY:
        raise KeyError(
            f"Unknown strategy profile '{name}'. "
            f"Available: {', '.join(PROFILE_REGISTRY.keys())}"
        )
    return PROFILE_REGISTRY[name]
