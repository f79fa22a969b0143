"""Weighted label and raw chart feature types consumed by the selection core."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence


class OriginTag(str, Enum):
    NATAL = "natal"
    PROGRESSED = "progressed"
    TRANSIT = "transit"
    PHASE = "phase"
    WEATHER = "weather"
    AXIS = "axis"
    CURRENT_EVENT = "current_event"

    @classmethod
    def coerce(cls, value: Any) -> "OriginTag":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("-", "_")
        if text == "currentevent":
            text = "current_event"
        try:
            return cls(text)
        except ValueError:
            return cls.NATAL


FIRE_SIGNS = frozenset({"Aries", "Leo", "Sagittarius"})
EARTH_SIGNS = frozenset({"Taurus", "Virgo", "Capricorn"})
AIR_SIGNS = frozenset({"Gemini", "Libra", "Aquarius"})
WATER_SIGNS = frozenset({"Cancer", "Scorpio", "Pisces"})


def _clean_weight(value: Any) -> float:
    try:
        weight = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


@dataclass(frozen=True)
class WeightedLabel:
    """Single semantic label produced by upstream chart interpretation."""

    name: str
    category: str
    weight: float = 1.0
    origin: OriginTag = OriginTag.NATAL
    planet_source: str | None = None
    sign_source: str | None = None
    house_source: int | None = None
    aspect_source: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "weight", _clean_weight(self.weight))
        object.__setattr__(self, "origin", OriginTag.coerce(self.origin))

    @property
    def normalized_name(self) -> str:
        return self.name.strip().lower()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WeightedLabel":
        house = data.get("house_source")
        return cls(
            name=str(data.get("name") or ""),
            category=str(data.get("category") or ""),
            weight=data.get("weight", 1.0),
            origin=data.get("origin") or OriginTag.NATAL,
            planet_source=data.get("planet_source") or None,
            sign_source=data.get("sign_source") or None,
            house_source=int(house) if isinstance(house, (int, float)) else None,
            aspect_source=data.get("aspect_source") or None,
        )


def total_weight(labels: Iterable[WeightedLabel]) -> float:
    return sum(label.weight for label in labels)


HARD_ASPECTS = frozenset({"square", "opposition", "quincunx"})
SOFT_ASPECTS = frozenset({"trine", "sextile"})
LUMINARIES = frozenset({"Sun", "Moon"})
ANGLES = frozenset({"Ascendant", "Midheaven", "MC", "ASC"})
MAX_ORB = 10.0


@dataclass(frozen=True)
class Aspect:
    body1: str
    body2: str
    kind: str
    orb: float
    applying: bool = False

    @property
    def strength(self) -> float:
        return max(0.0, 1.0 - (abs(self.orb) / MAX_ORB))

    @property
    def is_hard(self) -> bool:
        return self.kind.lower() in HARD_ASPECTS

    @property
    def is_soft(self) -> bool:
        return self.kind.lower() in SOFT_ASPECTS

    def touches(self, bodies: frozenset[str]) -> bool:
        return self.body1 in bodies or self.body2 in bodies


@dataclass(frozen=True)
class NumericFeatures:
    """Raw chart scalars that drive the alternate axis path."""

    angular_momentum: float = 0.0
    transit_aspect_count: int = 0
    progressed_aspect_count: int = 0
    lunar_phase: float = 0.5
    structural_tension: float = 0.5
    visibility_index: float = 0.0

    @classmethod
    def from_aspects(
        cls,
        natal: Sequence[Aspect],
        transit: Sequence[Aspect],
        progressed: Sequence[Aspect],
        lunar_phase: float,
    ) -> "NumericFeatures":
        momentum = (
            sum(a.strength for a in natal) * 0.3
            + sum(a.strength for a in transit) * 1.0
            + sum(a.strength for a in progressed) * 0.5
        ) / 3.0

        everything = [*natal, *transit, *progressed]
        hard = sum(1 for a in everything if a.is_hard)
        soft = sum(1 for a in everything if a.is_soft)
        tension = hard / (hard + soft) if hard + soft else 0.5

        luminary = sum(1 for a in everything if a.touches(LUMINARIES))
        angle = sum(1 for a in everything if a.touches(ANGLES))
        visibility = min(1.0, (luminary * 0.4 + angle * 0.6) / 10.0)

        return cls(
            angular_momentum=momentum,
            transit_aspect_count=len(transit),
            progressed_aspect_count=len(progressed),
            lunar_phase=min(max(float(lunar_phase), 0.0), 1.0),
            structural_tension=tension,
            visibility_index=visibility,
        )


__all__ = [
    "OriginTag",
    "WeightedLabel",
    "Aspect",
    "NumericFeatures",
    "total_weight",
    "FIRE_SIGNS",
    "EARTH_SIGNS",
    "AIR_SIGNS",
    "WATER_SIGNS",
]
