"""Static card catalog loading and validation."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from jsonschema import Draft7Validator

from .energy import ENERGIES, Energy
from .errors import CatalogUnavailable

logger = logging.getLogger(__name__)

DATA_PATH = Path(__file__).resolve().parents[2] / "data" / "cards" / "tarot_cards.json"

SUITS = ("wands", "cups", "swords", "pentacles")
MAJOR = "major"
COURT_RANKS = frozenset({"page", "knight", "queen", "king"})

_AXIS_SCHEMA = {"type": "number", "minimum": 0, "maximum": 100}

CATALOG_SCHEMA: Mapping[str, Any] = {
    "type": "array",
    "minItems": 1,
    "items": {
        "type": "object",
        "required": ["id", "name", "arcana", "axes", "energy_affinity"],
        "properties": {
            "id": {"type": "string", "minLength": 1},
            "name": {"type": "string", "minLength": 1},
            "arcana": {"enum": ["major", "minor"]},
            "suit": {"enum": [*SUITS, None]},
            "rank": {"type": ["string", "integer"]},
            "axes": {
                "type": "object",
                "required": ["action", "tempo", "strategy", "visibility"],
                "properties": {
                    "action": _AXIS_SCHEMA,
                    "tempo": _AXIS_SCHEMA,
                    "strategy": _AXIS_SCHEMA,
                    "visibility": _AXIS_SCHEMA,
                },
            },
            "energy_affinity": {
                "type": "object",
                "propertyNames": {"enum": [energy.value for energy in ENERGIES]},
                "additionalProperties": {"type": "number", "minimum": 0, "maximum": 1},
            },
            "keywords": {"type": "array", "items": {"type": "string"}},
            "description": {"type": "string"},
        },
    },
}

CATALOG_VALIDATOR = Draft7Validator(CATALOG_SCHEMA)


@dataclass(frozen=True)
class Candidate:
    id: str
    display_name: str
    axes: tuple[float, float, float, float]
    energy_affinity: Mapping[Energy, float] = field(default_factory=dict)
    keywords: frozenset[str] = frozenset()
    group_tag: str = MAJOR
    is_special_rank: bool = False
    arcana: str = "major"
    rank: str = ""
    description: str = ""

    def affinity(self, energy: Energy) -> float:
        return float(self.energy_affinity.get(energy, 0.0))

    @property
    def is_major(self) -> bool:
        return self.group_tag == MAJOR

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Candidate":
        axes = record["axes"]
        suit = record.get("suit")
        rank = str(record.get("rank", "")).strip().lower()
        group_tag = suit if record.get("arcana") == "minor" and suit else MAJOR
        return cls(
            id=record["id"],
            display_name=record["name"],
            axes=(
                float(axes["action"]),
                float(axes["tempo"]),
                float(axes["strategy"]),
                float(axes["visibility"]),
            ),
            energy_affinity={
                Energy(key): float(value) for key, value in record.get("energy_affinity", {}).items()
            },
            keywords=frozenset(str(word).strip().lower() for word in record.get("keywords", ())),
            group_tag=group_tag,
            is_special_rank=group_tag != MAJOR and rank in COURT_RANKS,
            arcana=record["arcana"],
            rank=rank,
            description=record.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "arcana": self.arcana,
            "suit": None if self.is_major else self.group_tag,
            "rank": self.rank,
            "axes": dict(zip(("action", "tempo", "strategy", "visibility"), self.axes)),
            "energy_affinity": {energy.value: self.affinity(energy) for energy in ENERGIES},
            "keywords": sorted(self.keywords),
            "description": self.description,
        }


def _validate(payload: Any) -> list[str]:
    return [
        f"{'/'.join(str(p) for p in err.path)}: {err.message}"
        for err in CATALOG_VALIDATOR.iter_errors(payload)
    ]


class CatalogStore:
    """Loads the catalog once; later reads skip the lock."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else catalog_path()
        self._lock = threading.Lock()
        self._cards: tuple[Candidate, ...] | None = None
        self._index: dict[str, Candidate] = {}

    @classmethod
    def from_candidates(cls, candidates: Iterable[Candidate]) -> "CatalogStore":
        store = cls(path=DATA_PATH)
        store._install(tuple(candidates))
        return store

    def _install(self, cards: tuple[Candidate, ...]) -> None:
        if not cards:
            raise CatalogUnavailable("catalog is empty")
        self._index = {card.id: card for card in cards}
        if len(self._index) != len(cards):
            raise CatalogUnavailable("catalog contains duplicate ids")
        self._cards = cards

    def _read(self) -> tuple[Candidate, ...]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("card_catalog_unreadable", extra={"path": str(self.path), "error": str(exc)})
            raise CatalogUnavailable(f"cannot read catalog at {self.path}") from exc

        errors = _validate(payload)
        if errors:
            logger.error("card_catalog_invalid", extra={"path": str(self.path), "errors": errors[:5]})
            raise CatalogUnavailable(f"catalog failed validation: {errors[0]}")
        return tuple(Candidate.from_record(record) for record in payload)

    def load(self) -> tuple[Candidate, ...]:
        if self._cards is not None:
            return self._cards
        with self._lock:
            if self._cards is None:
                self._install(self._read())
                logger.info("card_catalog_loaded", extra={"path": str(self.path), "count": len(self._index)})
        return self._cards  # type: ignore[return-value]

    def get(self) -> tuple[Candidate, ...]:
        if self._cards is None:
            raise CatalogUnavailable("catalog has not been loaded")
        return self._cards

    def by_id(self, candidate_id: str) -> Candidate | None:
        return self._index.get(candidate_id)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.get())

    def __len__(self) -> int:
        return len(self._cards or ())


def catalog_path() -> Path:
    override = os.getenv("CARD_CATALOG_PATH")
    return Path(override) if override else DATA_PATH


@lru_cache(maxsize=1)
def default_catalog() -> CatalogStore:
    store = CatalogStore(catalog_path())
    store.load()
    return store


__all__ = [
    "Candidate",
    "CatalogStore",
    "CATALOG_SCHEMA",
    "COURT_RANKS",
    "DATA_PATH",
    "SUITS",
    "catalog_path",
    "default_catalog",
]
