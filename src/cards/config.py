"""Tunable constants for axis projection, energy allocation and selection."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Mapping


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"true", "1", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class EngineConfig:
    # Axis share hysteresis
    axis_share_min: float = 0.05
    axis_share_max: float = 0.25
    axis_share_default: float = 0.15
    gap_amplification: float = 2.0
    hysteresis_alpha: float = 0.3

    # Label-path multipliers
    strong_multiplier: float = 1.5
    moderate_multiplier: float = 1.0
    aspect_density_tempo_weight: float = 3.0

    # Feature-path scales
    angular_momentum_scale: float = 5.0
    transit_contribution_to_action: float = 0.5
    aspect_density_weight: float = 0.3

    daily_variation: bool = True
    balance_axes: bool = False

    # Energy allocation
    outlier_cap_share: float = 0.6

    # Stage 1 filter
    base_floor: float = 0.65
    min_floor: float = 0.45
    strong_alignment: float = 0.70
    medium_alignment: float = 0.50
    strong_reduction: float = 0.15
    medium_reduction: float = 0.08
    top_energy_weights: tuple[float, float, float] = (0.60, 0.25, 0.15)

    # Stage 2 weights (percent of the achievable score)
    axis_weight: float = 35.0
    vibe_weight: float = 50.0
    boost_weight: float = 15.0

    # Stage 3
    tie_epsilon: float = 0.5
    vibe_tie_margin: float = 0.05

    # Recency
    cooldown_days: int = 3
    hard_cooldown: bool = False
    recency_penalties: Mapping[int, float] = field(
        default_factory=lambda: {0: 100.0, 1: 25.0, 2: 12.0, 3: 5.0}
    )
    cooldown_exhausted_penalty: float = 60.0
    retention_days: int = 7

    def penalty_for(self, days_ago: int | None) -> float:
        if days_ago is None or days_ago < 0 or days_ago > self.cooldown_days:
            return 0.0
        return float(self.recency_penalties.get(days_ago, 0.0))

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config honouring the ``CARD_*`` environment toggles."""

        base = cls()
        return replace(
            base,
            hard_cooldown=_env_flag("CARD_HARD_COOLDOWN", "false"),
            cooldown_days=max(_env_int("CARD_COOLDOWN_DAYS", base.cooldown_days), 0),
            balance_axes=_env_flag("CARD_BALANCE_AXES", "false"),
            daily_variation=_env_flag("CARD_DAILY_VARIATION", "true"),
        )


DEFAULT_CONFIG = EngineConfig()


__all__ = ["EngineConfig", "DEFAULT_CONFIG"]
