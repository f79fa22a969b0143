"""Stable per-day seeds and the generator used for tie-breaking."""

from __future__ import annotations

from datetime import date, datetime, timezone
from hashlib import sha256
from typing import Sequence, TypeVar

T = TypeVar("T")

_MASK64 = (1 << 64) - 1
_MULTIPLIER = 6364136223846793005
_INCREMENT = 1442695040888963407


def int_seed(text: str) -> int:
    """First 32 bits of the SHA-256 digest of ``text``."""

    digest = sha256(text.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def daily_seed(profile_id: str, on: date) -> int:
    return int_seed(f"{profile_id}_{on:%Y%m%d}")


def birth_seed(birth: datetime, latitude: float, longitude: float, on: date) -> int:
    """Seed for callers without a stable profile id. Naive ``birth`` is read as UTC."""

    if birth.tzinfo is None:
        birth = birth.replace(tzinfo=timezone.utc)
    else:
        birth = birth.astimezone(timezone.utc)
    profile = f"{birth:%Y-%m-%d_%H:%M}_{latitude:.4f}_{longitude:.4f}"
    return int_seed(f"{profile}_{on:%Y%m%d}")


class SeededRandom:
    """64-bit linear congruential generator with wrap-around arithmetic."""

    def __init__(self, seed: int) -> None:
        self.state = seed & _MASK64
        self._step()

    def _step(self) -> None:
        self.state = (self.state * _MULTIPLIER + _INCREMENT) & _MASK64

    def next_u64(self) -> int:
        self._step()
        return self.state

    def below(self, n: int) -> int:
        if n <= 0:
            raise ValueError("n must be positive")
        return self.next_u64() % n

    def shuffled(self, items: Sequence[T]) -> list[T]:
        result = list(items)
        for index in range(len(result) - 1, 0, -1):
            swap = self.below(index + 1)
            result[index], result[swap] = result[swap], result[index]
        return result


__all__ = ["int_seed", "daily_seed", "birth_seed", "SeededRandom"]
