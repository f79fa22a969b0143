"""Filter, score and tie-break pipeline that picks the card of the day."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .axes import AxisVector
from .catalog import Candidate, CatalogStore
from .config import DEFAULT_CONFIG, EngineConfig
from .energy import EnergyDistribution
from .errors import CatalogUnavailable, CooldownExhausted, FilterExhausted, PersistenceUnavailable
from .labels import WeightedLabel, total_weight
from .recency import RecencyStore
from .seeds import SeededRandom

logger = logging.getLogger(__name__)

HIGH_AXIS = 7.0
LOW_AXIS = 4.0
MAX_AXIS_DISTANCE = math.sqrt(4 * 9.0 ** 2)
SUIT_BOOST_LIMIT = 3.0
VARIETY_WINDOW = 7
VARIETY_MINIMUM = 5

KINETIC_HIGH_BOOSTS: Mapping[str, float] = {"wands": 1.5, "swords": 1.0, "pentacles": -0.5}
KINETIC_LOW_BOOSTS: Mapping[str, float] = {"pentacles": 1.5, "cups": 1.0, "wands": -0.5}

STRUCTURED_MAJORS = frozenset({
    "the-emperor", "the-hierophant", "justice", "temperance", "the-world",
})
IMPULSIVE_MAJORS = frozenset({
    "the-fool", "the-magician", "the-chariot", "wheel-of-fortune", "the-tower",
})
PUBLIC_CARDS = frozenset({
    "the-sun", "the-star", "the-world", "the-emperor", "the-empress",
    "the-chariot", "the-magician", "judgement", "strength",
    "six-of-wands", "king-of-wands", "queen-of-wands", "three-of-pentacles",
    "three-of-cups", "ten-of-pentacles",
})
PRIVATE_CARDS = frozenset({
    "the-hermit", "the-high-priestess", "the-moon", "the-hanged-man", "death",
    "four-of-swords", "two-of-swords", "eight-of-cups", "four-of-cups",
    "seven-of-cups", "nine-of-pentacles", "page-of-cups", "queen-of-cups",
})


def _clamp(value: float, low: float, high: float) -> float:
    if not math.isfinite(value):
        return low
    return min(max(value, low), high)


def axis_similarity(candidate: Candidate, axes: AxisVector) -> float:
    distance = math.sqrt(
        sum((card / 10.0 - day) ** 2 for card, day in zip(candidate.axes, axes.as_tuple()))
    )
    return _clamp(1.0 - distance / MAX_AXIS_DISTANCE, 0.0, 1.0)


def energy_alignment(
    candidate: Candidate,
    energy: EnergyDistribution,
    weights: Sequence[float] = DEFAULT_CONFIG.top_energy_weights,
) -> float:
    """Blend of the card's affinity for the day's three strongest energies.

    Rank weights are scaled by each energy's share of the day so a thin
    third place counts for less than a strong one.
    """

    numerator = 0.0
    denominator = 0.0
    for (category, _points), weight in zip(energy.ranked(), weights):
        share = energy.share(category)
        numerator += weight * candidate.affinity(category) * share
        denominator += weight * share
    if denominator <= 0:
        return 0.0
    return _clamp(numerator / denominator, 0.0, 1.0)


def acceptance_floor(alignment: float, config: EngineConfig = DEFAULT_CONFIG) -> float:
    if alignment >= config.strong_alignment:
        return max(config.min_floor, config.base_floor - config.strong_reduction)
    if alignment >= config.medium_alignment:
        return max(config.min_floor, config.base_floor - config.medium_reduction)
    return config.base_floor


def suit_boost(candidate: Candidate, axes: AxisVector) -> float:
    boost = 0.0
    kinetic = axes.kinetic
    if kinetic >= HIGH_AXIS:
        boost += KINETIC_HIGH_BOOSTS.get(candidate.group_tag, 0.0)
    elif kinetic <= LOW_AXIS:
        boost += KINETIC_LOW_BOOSTS.get(candidate.group_tag, 0.0)

    if axes.strategy >= HIGH_AXIS:
        if candidate.is_special_rank:
            boost += 1.0
        if candidate.id in STRUCTURED_MAJORS:
            boost += 1.0
    elif axes.strategy <= LOW_AXIS:
        if candidate.rank == "ace":
            boost += 1.0
        elif candidate.rank == "page":
            boost += 0.5
        if candidate.id in IMPULSIVE_MAJORS:
            boost += 1.0

    if axes.visibility >= HIGH_AXIS and candidate.id in PUBLIC_CARDS:
        boost += 1.0
    elif axes.visibility <= LOW_AXIS and candidate.id in PRIVATE_CARDS:
        boost += 1.0
    return _clamp(boost, -SUIT_BOOST_LIMIT, SUIT_BOOST_LIMIT)


def keyword_match(candidate: Candidate, labels: Sequence[WeightedLabel]) -> float:
    weight = total_weight(labels)
    if weight <= 0 or not candidate.keywords:
        return 0.0
    matched = sum(label.weight for label in labels if label.normalized_name in candidate.keywords)
    return _clamp(matched / weight, 0.0, 1.0)


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    position: int
    axis_similarity: float = 0.0
    energy_alignment: float = 0.0
    dominant_match: float = 0.0
    suit_boost: float = 0.0
    keyword_match: float = 0.0
    axis_score: float = 0.0
    vibe_score: float = 0.0
    boost_score: float = 0.0
    penalty: float = 0.0
    total: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.candidate.id,
            "name": self.candidate.display_name,
            "axis_similarity": round(self.axis_similarity, 4),
            "energy_alignment": round(self.energy_alignment, 4),
            "axis_score": round(self.axis_score, 3),
            "vibe_score": round(self.vibe_score, 3),
            "boost_score": round(self.boost_score, 3),
            "penalty": round(self.penalty, 3),
            "total": round(self.total, 3),
        }


@dataclass(frozen=True)
class SelectionOutcome:
    winner: Candidate
    ranking: tuple[ScoredCandidate, ...]
    floor: Optional[float] = None
    filter_exhausted: bool = False
    cooldown_exhausted: bool = False
    scoring_failed: bool = False
    seeded_tie_break: bool = False
    tie_group: int = 1
    recent: Mapping[str, int] = field(default_factory=dict)

    @property
    def fallback(self) -> bool:
        return self.filter_exhausted or self.scoring_failed

    @property
    def top(self) -> ScoredCandidate:
        return self.ranking[0]


class SelectionEngine:
    """Ranks the catalog against the day's axes and energy distribution.

    The engine is a pure function of its inputs and the recency snapshot it
    reads; the only write is the selection record appended by :meth:`select`.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        recency: Optional[RecencyStore] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.catalog = catalog
        self.recency = recency
        self.config = config

    # History ------------------------------------------------------------

    def _history(self, profile_id: Optional[str], on: date) -> tuple[Dict[str, int], Optional[str]]:
        if not profile_id or self.recency is None:
            return {}, None
        try:
            recent = dict(self.recency.recent_selections(profile_id, on, self.config.cooldown_days))
            yesterday = self.recency.yesterday(profile_id, on)
        except PersistenceUnavailable:
            logger.warning("card_recency_unavailable", extra={"profile_id": profile_id})
            return {}, None
        return recent, yesterday

    def _pool(
        self, cards: Sequence[Candidate], recent: Mapping[str, int]
    ) -> List[tuple[int, Candidate]]:
        indexed = list(enumerate(cards))
        if not self.config.hard_cooldown or not recent:
            return indexed
        pool = [(index, card) for index, card in indexed if card.id not in recent]
        if not pool:
            raise CooldownExhausted(f"all {len(cards)} cards are cooling down")
        return pool

    # Scoring ------------------------------------------------------------

    def _score(
        self,
        pool: Sequence[tuple[int, Candidate]],
        labels: Sequence[WeightedLabel],
        axes: AxisVector,
        energy: EnergyDistribution,
        penalties: Mapping[str, float],
    ) -> tuple[List[ScoredCandidate], float]:
        config = self.config
        dominant = energy.dominant
        scored: List[ScoredCandidate] = []
        floors: List[float] = []
        for position, card in pool:
            similarity = axis_similarity(card, axes)
            alignment = energy_alignment(card, energy, config.top_energy_weights)
            floor = acceptance_floor(alignment, config)
            floors.append(floor)
            if similarity < floor:
                continue
            boost = suit_boost(card, axes)
            keywords = keyword_match(card, labels)
            axis_score = similarity * config.axis_weight
            vibe_score = alignment * config.vibe_weight
            boost_score = _clamp(
                (boost / SUIT_BOOST_LIMIT * 0.6 + keywords * 0.4) * config.boost_weight,
                -config.boost_weight,
                config.boost_weight,
            )
            penalty = penalties.get(card.id, 0.0)
            scored.append(
                ScoredCandidate(
                    candidate=card,
                    position=position,
                    axis_similarity=similarity,
                    energy_alignment=alignment,
                    dominant_match=card.affinity(dominant),
                    suit_boost=boost,
                    keyword_match=keywords,
                    axis_score=axis_score,
                    vibe_score=vibe_score,
                    boost_score=boost_score,
                    penalty=penalty,
                    total=axis_score + vibe_score + boost_score - penalty,
                )
            )
        if not scored:
            raise FilterExhausted(f"no card cleared the axis floor (lowest {min(floors):.2f})")
        return scored, min(floors)

    def _energy_only(
        self,
        pool: Sequence[tuple[int, Candidate]],
        energy: EnergyDistribution,
        penalties: Mapping[str, float],
    ) -> List[ScoredCandidate]:
        dominant = energy.dominant
        ranking: List[ScoredCandidate] = []
        for position, card in pool:
            alignment = energy_alignment(card, energy, self.config.top_energy_weights)
            vibe_score = alignment * self.config.vibe_weight
            penalty = penalties.get(card.id, 0.0)
            ranking.append(
                ScoredCandidate(
                    candidate=card,
                    position=position,
                    energy_alignment=alignment,
                    dominant_match=card.affinity(dominant),
                    vibe_score=vibe_score,
                    penalty=penalty,
                    total=vibe_score - penalty,
                )
            )
        return ranking

    def _break_tie(
        self, ranking: Sequence[ScoredCandidate], seed: Optional[int]
    ) -> tuple[ScoredCandidate, int, bool]:
        config = self.config
        best = ranking[0].total
        group = [entry for entry in ranking if best - entry.total <= config.tie_epsilon]
        tied = len(group)
        if tied == 1:
            return group[0], tied, False

        top_vibe = max(entry.vibe_score for entry in group)
        group = [entry for entry in group if top_vibe - entry.vibe_score <= config.vibe_tie_margin]

        top_match = max(entry.dominant_match for entry in group)
        group = [entry for entry in group if math.isclose(entry.dominant_match, top_match)]

        top_axis = max(entry.axis_score for entry in group)
        group = [entry for entry in group if math.isclose(entry.axis_score, top_axis)]

        group.sort(key=lambda entry: entry.position)
        if len(group) > 1 and seed is not None:
            rng = SeededRandom(seed + len(group))
            return group[rng.below(len(group))], tied, True
        return group[0], tied, False

    # Public API ---------------------------------------------------------

    def rank(
        self,
        labels: Sequence[WeightedLabel] | None,
        axes: AxisVector,
        energy: EnergyDistribution,
        seed: Optional[int] = None,
        profile_id: Optional[str] = None,
        *,
        on: Optional[date] = None,
    ) -> SelectionOutcome:
        """Score the catalog without recording anything."""

        cards = self.catalog.load()
        if not cards:
            raise CatalogUnavailable("catalog is empty")
        labels = list(labels or ())
        energy = energy if energy.is_valid else energy.repaired()
        on = on or datetime.now(timezone.utc).date()
        config = self.config

        recent, yesterday = self._history(profile_id, on)
        penalties = {card_id: config.penalty_for(days) for card_id, days in recent.items()}

        cooldown_exhausted = False
        try:
            pool = self._pool(cards, recent)
        except CooldownExhausted:
            logger.warning(
                "card_selection_cooldown_exhausted",
                extra={"profile_id": profile_id, "yesterday": yesterday},
            )
            cooldown_exhausted = True
            pool = list(enumerate(cards))
            penalties = {yesterday: config.cooldown_exhausted_penalty} if yesterday else {}

        floor: Optional[float] = None
        filter_exhausted = False
        scoring_failed = False
        try:
            ranking, floor = self._score(pool, labels, axes, energy, penalties)
        except FilterExhausted as exc:
            logger.info("card_selection_filter_exhausted", extra={"reason": str(exc)})
            filter_exhausted = True
            ranking = self._energy_only(pool, energy, penalties)
        except Exception:
            logger.exception("card_selection_scoring_failed", extra={"profile_id": profile_id})
            scoring_failed = True
            ranking = self._energy_only(pool, energy, penalties)

        ranking.sort(key=lambda entry: (-entry.total, entry.position))
        winner, tie_group, seeded = self._break_tie(ranking, seed)
        ordered = [winner, *[entry for entry in ranking if entry is not winner]]

        outcome = SelectionOutcome(
            winner=winner.candidate,
            ranking=tuple(ordered),
            floor=floor,
            filter_exhausted=filter_exhausted,
            cooldown_exhausted=cooldown_exhausted,
            scoring_failed=scoring_failed,
            seeded_tie_break=seeded,
            tie_group=tie_group,
            recent=recent,
        )
        self._log_outcome(outcome, axes, energy, on)
        return outcome

    def select(
        self,
        labels: Sequence[WeightedLabel] | None,
        axes: AxisVector,
        energy: EnergyDistribution,
        seed: Optional[int] = None,
        profile_id: Optional[str] = None,
        *,
        on: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Candidate:
        return self.select_outcome(labels, axes, energy, seed, profile_id, on=on, now=now).winner

    def select_outcome(
        self,
        labels: Sequence[WeightedLabel] | None,
        axes: AxisVector,
        energy: EnergyDistribution,
        seed: Optional[int] = None,
        profile_id: Optional[str] = None,
        *,
        on: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> SelectionOutcome:
        """Rank, then append the winner to the profile's history."""

        now = now or datetime.now(timezone.utc)
        on = on or now.date()
        outcome = self.rank(labels, axes, energy, seed, profile_id, on=on)
        if profile_id and self.recency is not None:
            try:
                self.recency.record(outcome.winner.id, profile_id, now)
            except PersistenceUnavailable:
                logger.warning(
                    "card_recency_record_failed",
                    extra={"profile_id": profile_id, "card": outcome.winner.id},
                )
            else:
                self._prune(profile_id, on)
                self._check_variety(profile_id)
        return outcome

    # Monitoring ---------------------------------------------------------

    def _log_outcome(
        self, outcome: SelectionOutcome, axes: AxisVector, energy: EnergyDistribution, on: date
    ) -> None:
        logger.info(
            "card_selection",
            extra={
                "date": on.isoformat(),
                "winner": outcome.winner.id,
                "axes": axes.as_dict(),
                "energy": energy.as_dict(),
                "top": [entry.as_dict() for entry in outcome.ranking[:5]],
                "tie_group": outcome.tie_group,
                "seeded_tie_break": outcome.seeded_tie_break,
                "filter_exhausted": outcome.filter_exhausted,
                "cooldown_exhausted": outcome.cooldown_exhausted,
            },
        )

    def _prune(self, profile_id: str, on: date) -> None:
        try:
            removed = self.recency.prune(profile_id, on, self.config.retention_days)
        except PersistenceUnavailable:
            logger.warning("card_recency_prune_failed", extra={"profile_id": profile_id})
            return
        if removed:
            logger.debug("card_recency_pruned", extra={"profile_id": profile_id, "removed": removed})

    def _check_variety(self, profile_id: str) -> None:
        try:
            history = self.recency.history(profile_id) if self.recency else []
        except PersistenceUnavailable:
            return
        window = history[-VARIETY_WINDOW:]
        if len(window) < VARIETY_WINDOW:
            return
        distinct = len({entry.candidate_id for entry in window})
        if distinct < VARIETY_MINIMUM:
            logger.warning(
                "card_selection_low_variety",
                extra={"profile_id": profile_id, "distinct": distinct, "window": len(window)},
            )


__all__ = [
    "ScoredCandidate",
    "SelectionOutcome",
    "SelectionEngine",
    "axis_similarity",
    "energy_alignment",
    "acceptance_floor",
    "suit_boost",
    "keyword_match",
]
