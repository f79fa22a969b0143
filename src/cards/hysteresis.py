"""Installation-wide storage for the last smoothed axis share."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Optional

import redis

from .config import DEFAULT_CONFIG
from .errors import PersistenceUnavailable


class HysteresisState(ABC):
    @abstractmethod
    def get(self) -> float:
        """Last persisted share, or the configured default when absent."""

    @abstractmethod
    def set(self, value: float) -> None:
        ...


class InMemoryHysteresisState(HysteresisState):
    def __init__(self, initial: float = DEFAULT_CONFIG.axis_share_default) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def get(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)


class RedisHysteresisState(HysteresisState):
    def __init__(
        self,
        client: "redis.Redis",
        key: str = "cards:axis_share",
        default: float = DEFAULT_CONFIG.axis_share_default,
    ) -> None:
        self.client = client
        self.key = key
        self.default = default

    def get(self) -> float:
        try:
            raw: Optional[str] = self.client.get(self.key)
        except redis.RedisError as exc:
            raise PersistenceUnavailable("axis share read failed") from exc
        if raw is None:
            return self.default
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return self.default
        return value if value > 0 else self.default

    def set(self, value: float) -> None:
        try:
            self.client.set(self.key, repr(float(value)))
        except redis.RedisError as exc:
            raise PersistenceUnavailable("axis share write failed") from exc


__all__ = ["HysteresisState", "InMemoryHysteresisState", "RedisHysteresisState"]
