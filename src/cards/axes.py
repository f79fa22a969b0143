"""Projection of weighted labels onto the four daily energy axes."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import PersistenceUnavailable
from .labels import (
    AIR_SIGNS,
    EARTH_SIGNS,
    FIRE_SIGNS,
    NumericFeatures,
    OriginTag,
    WeightedLabel,
)

if TYPE_CHECKING:  # pragma: no cover
    from .hysteresis import HysteresisState

logger = logging.getLogger(__name__)

AXIS_MIN = 1.0
AXIS_MAX = 10.0
MIDPOINT = 5.0
NEUTRAL = 5.5
AXIS_NAMES: tuple[str, ...] = ("action", "tempo", "strategy", "visibility")


def _clamp(value: float, low: float = AXIS_MIN, high: float = AXIS_MAX) -> float:
    if not math.isfinite(value):
        return MIDPOINT
    return min(max(value, low), high)


@dataclass(frozen=True)
class AxisVector:
    """Four axis scores, always clamped to [1, 10]."""

    action: float = MIDPOINT
    tempo: float = MIDPOINT
    strategy: float = MIDPOINT
    visibility: float = MIDPOINT

    def __post_init__(self) -> None:
        for name in AXIS_NAMES:
            object.__setattr__(self, name, _clamp(float(getattr(self, name))))

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.action, self.tempo, self.strategy, self.visibility)

    def as_dict(self) -> dict[str, float]:
        return dict(zip(AXIS_NAMES, self.as_tuple()))

    @property
    def kinetic(self) -> float:
        return (self.action + self.tempo) / 2.0

    @classmethod
    def neutral(cls) -> "AxisVector":
        return cls()


# Keyword vocabularies matched as case-insensitive substrings of label names.
ACTION_KEYWORDS: tuple[str, ...] = (
    "drive", "motion", "momentum", "direction", "dynamic", "energetic",
    "bold", "assertive", "active", "decisive", "powerful",
)
TEMPO_KEYWORDS: tuple[str, ...] = (
    "speed", "quick", "fast", "slow", "pace", "flow", "intensity",
    "rapid", "swift", "hurried", "leisurely", "rushed",
)
SLOW_WORDS: tuple[str, ...] = ("slow", "leisurely", "calm")
STRATEGY_KEYWORDS: tuple[str, ...] = (
    "structure", "discipline", "control", "precision", "organised",
    "planned", "methodical", "systematic", "ordered", "strategic",
    "structured", "disciplined", "grounded", "practical",
)
VISIBILITY_KEYWORDS: tuple[str, ...] = (
    "presence", "exposure", "confidence", "bold", "visible",
    "prominent", "standout", "noticeable", "dramatic", "striking",
    "radiant", "magnetic", "commanding",
)
INTROVERSION_KEYWORDS: tuple[str, ...] = (
    "subtle", "quiet", "reserved", "understated", "muted", "private",
)


def _matches(label: WeightedLabel, keywords: Iterable[str]) -> bool:
    name = label.normalized_name
    return any(keyword in name for keyword in keywords)


def _has_aspect(label: WeightedLabel, needle: str) -> bool:
    return bool(label.aspect_source) and needle.lower() in label.aspect_source.lower()


def _action_from_labels(labels: Sequence[WeightedLabel], config: EngineConfig) -> float:
    score = MIDPOINT
    for label in labels:
        if label.planet_source == "Mars":
            score += label.weight * config.strong_multiplier
        elif label.planet_source == "Jupiter":
            score += label.weight * config.moderate_multiplier * 0.7
        if label.sign_source in FIRE_SIGNS:
            score += label.weight * 0.5
        if _matches(label, ACTION_KEYWORDS):
            score += label.weight * 0.4
    return _clamp(score)


def _tempo_from_labels(
    labels: Sequence[WeightedLabel],
    features: NumericFeatures | None,
    config: EngineConfig,
) -> float:
    score = MIDPOINT
    if features is not None:
        score += (features.lunar_phase * 9.0 + 1.0) - NEUTRAL
    for label in labels:
        if label.origin is OriginTag.PHASE:
            if _has_aspect(label, "full moon"):
                score += label.weight * 1.2
            elif _has_aspect(label, "new moon"):
                score -= label.weight * 0.8
        if label.sign_source in AIR_SIGNS:
            score += label.weight * 0.8
        if _matches(label, TEMPO_KEYWORDS):
            multiplier = -0.6 if _matches(label, SLOW_WORDS) else 0.6
            score += label.weight * multiplier
    aspected = sum(1 for label in labels if label.aspect_source)
    density = aspected / max(1, len(labels))
    score += density * config.aspect_density_tempo_weight
    return _clamp(score)


def _strategy_from_labels(labels: Sequence[WeightedLabel], config: EngineConfig) -> float:
    score = MIDPOINT
    for label in labels:
        if label.planet_source == "Saturn":
            score += label.weight * config.strong_multiplier
        elif label.planet_source == "Mercury":
            score += label.weight * config.moderate_multiplier * 0.8
        if label.sign_source in EARTH_SIGNS:
            score += label.weight * 0.6
        if _matches(label, STRATEGY_KEYWORDS):
            score += label.weight * 0.5
    return _clamp(score)


def _visibility_from_labels(labels: Sequence[WeightedLabel], config: EngineConfig) -> float:
    score = MIDPOINT
    for label in labels:
        if label.planet_source == "Sun":
            score += label.weight * config.strong_multiplier
        elif label.planet_source == "Jupiter":
            score += label.weight * config.moderate_multiplier * 0.9
        if label.sign_source == "Leo":
            score += label.weight * 0.7
        if _has_aspect(label, "mc") or _has_aspect(label, "midheaven"):
            score += label.weight * 1.0
        if _matches(label, VISIBILITY_KEYWORDS):
            score += label.weight * 0.5
        if _matches(label, INTROVERSION_KEYWORDS):
            score -= label.weight * 0.4
    return _clamp(score)


def axes_from_labels(
    labels: Sequence[WeightedLabel],
    features: NumericFeatures | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> AxisVector:
    return AxisVector(
        action=_action_from_labels(labels, config),
        tempo=_tempo_from_labels(labels, features, config),
        strategy=_strategy_from_labels(labels, config),
        visibility=_visibility_from_labels(labels, config),
    )


def axes_from_features(features: NumericFeatures, config: EngineConfig = DEFAULT_CONFIG) -> AxisVector:
    action = (
        features.angular_momentum * config.angular_momentum_scale
        + features.transit_aspect_count * config.transit_contribution_to_action
    )
    lunar = features.lunar_phase * 9.0 + 1.0
    density = (
        features.transit_aspect_count + features.progressed_aspect_count
    ) * config.aspect_density_weight
    return AxisVector(
        action=action,
        tempo=(lunar + density) / 2.0,
        strategy=features.structural_tension * 9.0 + 1.0,
        visibility=features.visibility_index * 9.0 + 1.0,
    )


def semantic_gap(vector: AxisVector) -> float:
    """Average distance from neutral, 0 for a flat day and 1 at the extremes."""

    gaps = [abs(value - NEUTRAL) / (AXIS_MAX - NEUTRAL) for value in vector.as_tuple()]
    return min(max(sum(gaps) / len(gaps), 0.0), 1.0)


def smoothed_share(gap: float, last_share: float, config: EngineConfig = DEFAULT_CONFIG) -> float:
    low, high = config.axis_share_min, config.axis_share_max
    raw = config.axis_share_default + gap * config.gap_amplification * (high - low)
    raw = min(max(raw, low), high)
    if not math.isfinite(last_share):
        last_share = config.axis_share_default
    smoothed = last_share * config.hysteresis_alpha + raw * (1.0 - config.hysteresis_alpha)
    return min(max(smoothed, low), high)


def project(
    labels: Sequence[WeightedLabel] | None,
    features: NumericFeatures | None = None,
    last_share: float = DEFAULT_CONFIG.axis_share_default,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> tuple[AxisVector, float]:
    """Return the day's axis vector and the hysteresis-smoothed axis share."""

    pool = list(labels or ())
    if not pool and features is None:
        return AxisVector.neutral(), last_share
    if features is not None:
        vector = axes_from_features(features, config)
    else:
        vector = axes_from_labels(pool, None, config)
    if config.balance_axes:
        vector = balance(vector)
    return vector, smoothed_share(semantic_gap(vector), last_share, config)


_AXIS_LABEL_VOCABULARY: Mapping[str, Mapping[str, tuple[tuple[str, str], ...]]] = {
    "action": {
        "high": (("kinetic", "mood"), ("momentum", "expression"), ("drive", "mood")),
        "low": (("anchored", "mood"), ("grounded", "expression"), ("steady", "structure")),
        "moderate": (("balanced", "mood"),),
    },
    "tempo": {
        "high": (("rapid", "expression"), ("quick", "mood"), ("pulsing", "texture")),
        "low": (("measured", "expression"), ("deliberate", "mood"), ("sustained", "structure")),
        "moderate": (("rhythmic", "mood"),),
    },
    "strategy": {
        "high": (("structured", "structure"), ("precise", "expression"), ("organized", "mood")),
        "low": (("flowing", "structure"), ("fluid", "texture"), ("adaptive", "mood")),
        "moderate": (("flexible", "structure"),),
    },
    "visibility": {
        "high": (("prominent", "expression"), ("visible", "structure"), ("expressive", "mood")),
        "low": (("understated", "expression"), ("subtle", "texture"), ("refined", "mood")),
        "moderate": (("present", "expression"),),
    },
}
_LABEL_SPLIT = (0.5, 0.3, 0.2)


def axis_labels(vector: AxisVector, share: float, existing_weight: float) -> list[WeightedLabel]:
    """Turn the axis vector into labels carrying ``share`` of the final pool."""

    share = min(max(share, 0.0), 0.95)
    if existing_weight <= 0 or share <= 0:
        return []
    per_axis = existing_weight * share / (1.0 - share) / len(AXIS_NAMES)
    labels: list[WeightedLabel] = []
    for axis, value in vector.as_dict().items():
        band = "high" if value >= 7.0 else "low" if value <= 4.0 else "moderate"
        vocabulary = _AXIS_LABEL_VOCABULARY[axis][band]
        splits = _LABEL_SPLIT[: len(vocabulary)]
        scale = 1.0 / sum(splits)
        for (name, category), split in zip(vocabulary, splits):
            labels.append(
                WeightedLabel(
                    name=name,
                    category=category,
                    weight=per_axis * split * scale,
                    origin=OriginTag.AXIS,
                    planet_source="DerivedAxes",
                )
            )
    return labels


_VARIATION: Mapping[str, tuple[float, float]] = {
    "action": (0.0731, 1.2),
    "tempo": (0.1047, 1.5),
    "strategy": (0.0613, 1.0),
    "visibility": (0.0891, 1.3),
}


def apply_daily_variation(vector: AxisVector, seed: int) -> AxisVector:
    offsets = {
        axis: math.sin(float(seed) * frequency) * amplitude
        for axis, (frequency, amplitude) in _VARIATION.items()
    }
    return AxisVector(**{axis: value + offsets[axis] for axis, value in vector.as_dict().items()})


BALANCE_CEILING = 8.5
BALANCE_FLOOR = 2.0
BALANCE_EFFICIENCY = 0.7
BALANCE_RECIPIENT_BELOW = 6.0


def balance(vector: AxisVector) -> AxisVector:
    """Cap dominant axes and hand part of the excess to the weaker ones."""

    values = vector.as_dict()
    pool = 0.0
    for axis, value in values.items():
        if value > BALANCE_CEILING:
            pool += (value - BALANCE_CEILING) * BALANCE_EFFICIENCY
            values[axis] = BALANCE_CEILING
    recipients = [axis for axis, value in values.items() if value < BALANCE_RECIPIENT_BELOW]
    if recipients and pool > 0:
        each = pool / len(recipients)
        for axis in recipients:
            values[axis] = min(BALANCE_CEILING, values[axis] + each)
    return AxisVector(**{axis: max(BALANCE_FLOOR, value) for axis, value in values.items()})


class AxisProjector:
    """Binds :func:`project` to a persisted hysteresis share."""

    def __init__(self, state: "HysteresisState", config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.state = state
        self.config = config
        self._lock = threading.Lock()

    def _last_share(self) -> float:
        try:
            value = self.state.get()
        except PersistenceUnavailable:
            logger.warning("axis_share_read_failed")
            return self.config.axis_share_default
        if not math.isfinite(value) or value <= 0:
            return self.config.axis_share_default
        return value

    def project(
        self,
        labels: Sequence[WeightedLabel] | None,
        features: NumericFeatures | None = None,
    ) -> tuple[AxisVector, float]:
        # get, smooth and set must not interleave across requests
        with self._lock:
            last_share = self._last_share()
            vector, share = project(labels, features, last_share, config=self.config)
            if not labels and features is None:
                return vector, share
            try:
                self.state.set(share)
            except PersistenceUnavailable:
                logger.warning("axis_share_write_failed", extra={"share": share})
        logger.debug(
            "axis_projection",
            extra={"axes": vector.as_dict(), "last_share": last_share, "share": share},
        )
        return vector, share


__all__ = [
    "AxisVector",
    "AxisProjector",
    "project",
    "axes_from_labels",
    "axes_from_features",
    "semantic_gap",
    "smoothed_share",
    "axis_labels",
    "apply_daily_variation",
    "balance",
]
