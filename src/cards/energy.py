"""Fixed-sum allocation of a label pool across the six style energies."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields
from enum import Enum
from typing import Iterable, Mapping, Sequence

from .config import DEFAULT_CONFIG, EngineConfig
from .labels import AIR_SIGNS, EARTH_SIGNS, FIRE_SIGNS, WATER_SIGNS, OriginTag, WeightedLabel

logger = logging.getLogger(__name__)


class Energy(str, Enum):
    CLASSIC = "classic"
    PLAYFUL = "playful"
    ROMANTIC = "romantic"
    UTILITY = "utility"
    DRAMA = "drama"
    EDGE = "edge"


ENERGIES: tuple[Energy, ...] = tuple(Energy)

MAXIMA: Mapping[Energy, int] = {
    Energy.CLASSIC: 10,
    Energy.PLAYFUL: 8,
    Energy.ROMANTIC: 8,
    Energy.UTILITY: 7,
    Energy.DRAMA: 6,
    Energy.EDGE: 5,
}

BALANCED_DEFAULT: Mapping[Energy, int] = {
    Energy.CLASSIC: 6,
    Energy.PLAYFUL: 3,
    Energy.ROMANTIC: 4,
    Energy.UTILITY: 4,
    Energy.DRAMA: 2,
    Energy.EDGE: 2,
}

# Order used when a distribution has to be nudged up (reversed to nudge down).
ADJUST_ORDER: tuple[Energy, ...] = (
    Energy.CLASSIC,
    Energy.ROMANTIC,
    Energy.UTILITY,
    Energy.PLAYFUL,
    Energy.DRAMA,
    Energy.EDGE,
)

TOTAL = 21


@dataclass(frozen=True)
class EnergyDistribution:
    classic: int = 0
    playful: int = 0
    romantic: int = 0
    utility: int = 0
    drama: int = 0
    edge: int = 0

    def __getitem__(self, energy: Energy | str) -> int:
        return getattr(self, Energy(energy).value)

    def as_dict(self) -> dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @property
    def total(self) -> int:
        return sum(self.as_dict().values())

    @property
    def is_valid(self) -> bool:
        if self.total != TOTAL:
            return False
        return all(0 <= self[energy] <= MAXIMA[energy] for energy in ENERGIES)

    def ranked(self) -> list[tuple[Energy, int]]:
        """Energies by descending points; ties keep canonical order."""

        order = {energy: index for index, energy in enumerate(ENERGIES)}
        return sorted(
            ((energy, self[energy]) for energy in ENERGIES),
            key=lambda item: (-item[1], order[item[0]]),
        )

    @property
    def dominant(self) -> Energy:
        return self.ranked()[0][0]

    def share(self, energy: Energy | str) -> float:
        total = self.total
        if total <= 0:
            return 0.0
        return self[energy] / total

    @classmethod
    def from_mapping(cls, values: Mapping[Energy | str, int]) -> "EnergyDistribution":
        cleaned = {Energy(key).value: int(value) for key, value in values.items()}
        return cls(**cleaned)

    @classmethod
    def balanced(cls) -> "EnergyDistribution":
        return cls.from_mapping(BALANCED_DEFAULT)

    def repaired(self) -> "EnergyDistribution":
        """Clamp every field to its ceiling and force the total back to 21."""

        if self.is_valid:
            return self
        values = {energy: min(max(self[energy], 0), MAXIMA[energy]) for energy in ENERGIES}
        difference = TOTAL - sum(values.values())
        if difference > 0:
            for energy in ADJUST_ORDER:
                room = MAXIMA[energy] - values[energy]
                step = min(room, difference)
                values[energy] += step
                difference -= step
                if difference == 0:
                    break
        elif difference < 0:
            excess = -difference
            for energy in reversed(ADJUST_ORDER):
                step = min(values[energy], excess)
                values[energy] -= step
                excess -= step
                if excess == 0:
                    break
        return EnergyDistribution.from_mapping(values)


VOCABULARIES: Mapping[Energy, frozenset[str]] = {
    Energy.CLASSIC: frozenset({
        "structured", "grounded", "reserved", "solid", "refined", "polished",
        "professional", "timeless", "balanced", "harmonious", "elegant",
        "sophisticated", "classic", "conservative", "traditional", "disciplined",
        "authoritative", "enduring", "substantial", "commanding", "navy",
        "charcoal", "slate gray", "stone", "cream", "tailored", "crisp",
    }),
    Energy.PLAYFUL: frozenset({
        "bright", "vibrant", "dynamic", "energetic", "fun", "expressive",
        "creative", "colorful", "light", "airy", "versatile", "quick",
        "adaptable", "communicative", "cheerful", "bright yellow",
        "neon turquoise", "electric blue", "playful", "lively", "spirited",
    }),
    Energy.ROMANTIC: frozenset({
        "flowing", "soft", "gentle", "dreamy", "ethereal", "luxurious",
        "sensual", "beautiful", "harmonious", "nurturing", "comfortable",
        "warm", "delicate", "feminine", "graceful", "misty lavender",
        "pale yellow", "seafoam", "opalescent blue", "fluid",
    }),
    Energy.UTILITY: frozenset({
        "practical", "functional", "comfortable", "waterproof", "durable",
        "purposeful", "protective", "substantial", "enduring", "reliable",
        "versatile", "structured", "tactical", "insulating", "layerable",
        "breathable", "weatherproof",
    }),
    Energy.DRAMA: frozenset({
        "bold", "intense", "powerful", "dramatic", "striking", "rich",
        "deep", "transformative", "commanding", "magnetic", "luxurious",
        "royal", "electric", "plutonium", "metallic", "royal purple",
        "deep burgundy", "electric blue", "plutonium purple", "radiant",
    }),
    Energy.EDGE: frozenset({
        "unconventional", "innovative", "unique", "unexpected", "electric",
        "neon", "metallic", "textured", "distinctive", "rebellious",
        "avant-garde", "edgy", "alternative", "disruptive", "experimental",
    }),
}


def _name_has(label: WeightedLabel, words: Iterable[str]) -> bool:
    name = label.normalized_name
    return any(word in name for word in words)


def _classic_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.category == "structure":
        bonus += 1.0
    if label.weight > 2.0:
        bonus += 1.0
    if label.planet_source == "Saturn":
        bonus += 1.5
    if label.sign_source in EARTH_SIGNS:
        bonus += 0.5
    return bonus


def _playful_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.category == "expression":
        bonus += 1.0
    if label.category == "color_quality" and _name_has(label, ("bright", "vibrant", "electric")):
        bonus += 1.5
    if label.planet_source == "Mercury":
        bonus += 1.0
    if label.sign_source in AIR_SIGNS:
        bonus += 0.5
    return bonus


def _romantic_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.category == "texture":
        bonus += 1.0
    if label.planet_source == "Venus":
        bonus += 2.0
    if label.planet_source == "Moon":
        bonus += 1.5
    if label.sign_source in WATER_SIGNS:
        bonus += 1.0
    return bonus


def _utility_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.origin is OriginTag.WEATHER:
        bonus += 2.0
    if label.planet_source == "Saturn":
        bonus += 1.5
    if label.planet_source == "Mars" and _name_has(label, ("practical", "protective", "tactical")):
        bonus += 1.0
    return bonus


def _drama_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.weight > 3.0:
        bonus += 1.5
    if label.planet_source == "Pluto":
        bonus += 2.0
    if label.planet_source == "Mars":
        bonus += 1.0
    if label.sign_source in FIRE_SIGNS:
        bonus += 1.0
    return bonus


def _edge_bonus(label: WeightedLabel) -> float:
    bonus = 0.0
    if label.planet_source == "Uranus":
        bonus += 2.5
    if label.weight > 2.5:
        bonus += 1.5
    if label.origin is OriginTag.TRANSIT and _name_has(label, ("innovative", "unexpected", "disruptive")):
        bonus += 1.0
    return bonus


BONUSES = {
    Energy.CLASSIC: _classic_bonus,
    Energy.PLAYFUL: _playful_bonus,
    Energy.ROMANTIC: _romantic_bonus,
    Energy.UTILITY: _utility_bonus,
    Energy.DRAMA: _drama_bonus,
    Energy.EDGE: _edge_bonus,
}

PERSONALITY_MULTIPLIERS: Mapping[str, Mapping[Energy, float]] = {
    "fire": {
        Energy.CLASSIC: 0.9, Energy.PLAYFUL: 1.1, Energy.ROMANTIC: 0.9,
        Energy.UTILITY: 0.9, Energy.DRAMA: 1.25, Energy.EDGE: 1.1,
    },
    "earth": {
        Energy.CLASSIC: 1.2, Energy.PLAYFUL: 0.9, Energy.ROMANTIC: 1.0,
        Energy.UTILITY: 1.2, Energy.DRAMA: 0.9, Energy.EDGE: 0.85,
    },
    "air": {
        Energy.CLASSIC: 0.95, Energy.PLAYFUL: 1.2, Energy.ROMANTIC: 0.95,
        Energy.UTILITY: 0.9, Energy.DRAMA: 1.0, Energy.EDGE: 1.15,
    },
    "water": {
        Energy.CLASSIC: 0.95, Energy.PLAYFUL: 0.9, Energy.ROMANTIC: 1.25,
        Energy.UTILITY: 0.95, Energy.DRAMA: 1.05, Energy.EDGE: 0.9,
    },
    "balanced": {energy: 1.0 for energy in Energy},
}


def multipliers_for(personality_key: str | None) -> Mapping[Energy, float]:
    key = (personality_key or "").strip().lower()
    return PERSONALITY_MULTIPLIERS.get(key, PERSONALITY_MULTIPLIERS["balanced"])


def raw_scores(labels: Sequence[WeightedLabel]) -> dict[Energy, float]:
    scores = {energy: 0.0 for energy in ENERGIES}
    for label in labels:
        name = label.normalized_name
        for energy in ENERGIES:
            if name in VOCABULARIES[energy]:
                scores[energy] += label.weight * 2.0 + BONUSES[energy](label)
    return scores


def _distribute(scores: Mapping[Energy, float], total: int) -> dict[Energy, int]:
    score_sum = sum(scores.values())
    exact = {energy: scores[energy] / score_sum * total for energy in ENERGIES}
    assigned = {energy: min(int(math.floor(exact[energy])), MAXIMA[energy]) for energy in ENERGIES}
    order = {energy: index for index, energy in enumerate(ENERGIES)}

    remaining = total - sum(assigned.values())
    while remaining > 0:
        open_energies = [energy for energy in ENERGIES if assigned[energy] < MAXIMA[energy]]
        if not open_energies:
            break
        winner = max(
            open_energies,
            key=lambda energy: (
                exact[energy] - assigned[energy],
                BALANCED_DEFAULT[energy],
                -order[energy],
            ),
        )
        assigned[winner] += 1
        remaining -= 1
    return assigned


def allocate(
    labels: Sequence[WeightedLabel] | None,
    personality_key: str | None = None,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> EnergyDistribution:
    """Allocate ``config.energy_total`` points across the six energies.

    Each label found in an energy's vocabulary contributes ``weight * 2``
    plus a metadata bonus. Scores are scaled by the personality row, capped
    at ``outlier_cap_share`` of the raw total, then distributed by largest
    remainder. A pool with no signal returns the balanced default.
    """

    scores = raw_scores(list(labels or ()))
    multipliers = multipliers_for(personality_key)
    scores = {energy: max(scores[energy] * multipliers.get(energy, 1.0), 0.0) for energy in ENERGIES}

    total_raw = sum(scores.values())
    if total_raw <= 0 or not math.isfinite(total_raw):
        return EnergyDistribution.balanced()

    cap = config.outlier_cap_share * total_raw
    capped = {energy: min(score, cap) for energy, score in scores.items()}

    distribution = EnergyDistribution.from_mapping(_distribute(capped, TOTAL)).repaired()
    logger.debug(
        "energy_allocation",
        extra={"raw": {e.value: round(s, 3) for e, s in scores.items()}, "result": distribution.as_dict()},
    )
    return distribution


__all__ = [
    "Energy",
    "ENERGIES",
    "MAXIMA",
    "BALANCED_DEFAULT",
    "EnergyDistribution",
    "PERSONALITY_MULTIPLIERS",
    "multipliers_for",
    "raw_scores",
    "allocate",
]
