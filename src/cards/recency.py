"""Per-profile selection history used for cooldowns and recency penalties."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

import redis

from .errors import PersistenceUnavailable

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 3
DEFAULT_RETENTION_DAYS = 7
MAX_RECORDS_PER_PROFILE = 64


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class SelectionRecord:
    candidate_id: str
    profile_id: str
    timestamp: datetime

    def days_before(self, on: date) -> int:
        return (on - _as_utc(self.timestamp).date()).days

    def to_json(self) -> str:
        return json.dumps(
            {
                "candidate_id": self.candidate_id,
                "profile_id": self.profile_id,
                "timestamp": _as_utc(self.timestamp).isoformat(),
            },
            sort_keys=True,
        )

    @classmethod
    def from_json(cls, raw: str) -> "SelectionRecord":
        data = json.loads(raw)
        return cls(
            candidate_id=data["candidate_id"],
            profile_id=data["profile_id"],
            timestamp=_as_utc(datetime.fromisoformat(data["timestamp"])),
        )


class RecencyStore(ABC):
    """Read/write contract over a profile's selection log.

    Implementations only provide raw access to the log; the windowed
    queries are derived here so every backend answers them identically.
    """

    @abstractmethod
    def history(self, profile_id: str) -> List[SelectionRecord]:
        """All retained records for ``profile_id``, oldest first."""

    @abstractmethod
    def record(self, candidate_id: str, profile_id: str, timestamp: datetime) -> None:
        ...

    @abstractmethod
    def _replace(self, profile_id: str, records: List[SelectionRecord]) -> None:
        ...

    def recent_selections(
        self, profile_id: str, on: date, window: int = DEFAULT_LOOKBACK_DAYS
    ) -> List[tuple[str, int]]:
        """``(candidate_id, days_ago)`` pairs within ``window`` days of ``on``.

        Each candidate appears once with its most recent selection. Records
        dated after ``on`` are ignored.
        """

        latest: Dict[str, int] = {}
        for entry in self.history(profile_id):
            days_ago = entry.days_before(on)
            if days_ago < 0 or days_ago > window:
                continue
            if entry.candidate_id not in latest or days_ago < latest[entry.candidate_id]:
                latest[entry.candidate_id] = days_ago
        return sorted(latest.items(), key=lambda item: (item[1], item[0]))

    def cooldown_set(
        self, profile_id: str, on: date, window: int = DEFAULT_LOOKBACK_DAYS
    ) -> set[str]:
        return {candidate_id for candidate_id, _ in self.recent_selections(profile_id, on, window)}

    def yesterday(self, profile_id: str, on: date) -> Optional[str]:
        latest: Optional[SelectionRecord] = None
        for entry in self.history(profile_id):
            if entry.days_before(on) != 1:
                continue
            if latest is None or _as_utc(entry.timestamp) >= _as_utc(latest.timestamp):
                latest = entry
        return latest.candidate_id if latest else None

    def prune(self, profile_id: str, on: date, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
        """Drop records older than ``retention_days``; returns the number removed."""

        entries = self.history(profile_id)
        kept = [entry for entry in entries if entry.days_before(on) <= retention_days]
        removed = len(entries) - len(kept)
        if removed:
            self._replace(profile_id, kept)
        return removed


class InMemoryRecencyStore(RecencyStore):
    def __init__(self) -> None:
        self._records: Dict[str, List[SelectionRecord]] = {}
        self._lock = threading.Lock()

    def history(self, profile_id: str) -> List[SelectionRecord]:
        with self._lock:
            return list(self._records.get(profile_id, ()))

    def record(self, candidate_id: str, profile_id: str, timestamp: datetime) -> None:
        entry = SelectionRecord(candidate_id, profile_id, _as_utc(timestamp))
        with self._lock:
            entries = self._records.setdefault(profile_id, [])
            entries.append(entry)
            del entries[:-MAX_RECORDS_PER_PROFILE]

    def _replace(self, profile_id: str, records: List[SelectionRecord]) -> None:
        with self._lock:
            self._records[profile_id] = list(records)


class RedisRecencyStore(RecencyStore):
    """Selection log kept as one Redis list per profile."""

    def __init__(self, client: "redis.Redis", prefix: str = "cards:recency") -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, profile_id: str) -> str:
        return f"{self.prefix}:{profile_id}"

    def history(self, profile_id: str) -> List[SelectionRecord]:
        try:
            raw_entries = self.client.lrange(self._key(profile_id), 0, -1)
        except redis.RedisError as exc:
            raise PersistenceUnavailable(f"recency read failed for {profile_id}") from exc
        entries: List[SelectionRecord] = []
        for raw in raw_entries or ():
            try:
                entries.append(SelectionRecord.from_json(raw))
            except (ValueError, KeyError, TypeError):
                logger.warning("card_recency_entry_invalid", extra={"profile_id": profile_id})
        return entries

    def record(self, candidate_id: str, profile_id: str, timestamp: datetime) -> None:
        entry = SelectionRecord(candidate_id, profile_id, _as_utc(timestamp))
        key = self._key(profile_id)
        try:
            pipe = self.client.pipeline()
            pipe.rpush(key, entry.to_json())
            pipe.ltrim(key, -MAX_RECORDS_PER_PROFILE, -1)
            pipe.execute()
        except redis.RedisError as exc:
            raise PersistenceUnavailable(f"recency write failed for {profile_id}") from exc

    def _replace(self, profile_id: str, records: List[SelectionRecord]) -> None:
        key = self._key(profile_id)
        try:
            pipe = self.client.pipeline()
            pipe.delete(key)
            if records:
                pipe.rpush(key, *(entry.to_json() for entry in records))
            pipe.execute()
        except redis.RedisError as exc:
            raise PersistenceUnavailable(f"recency prune failed for {profile_id}") from exc


__all__ = [
    "SelectionRecord",
    "RecencyStore",
    "InMemoryRecencyStore",
    "RedisRecencyStore",
]
