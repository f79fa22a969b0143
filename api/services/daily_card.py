"""Daily card pipeline wiring the selection core to its stores."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional, Sequence

import redis

from src.cards.axes import AxisProjector, AxisVector, apply_daily_variation, axis_labels
from src.cards.catalog import CatalogStore, catalog_path
from src.cards.config import EngineConfig
from src.cards.energy import EnergyDistribution, allocate
from src.cards.engine import SelectionEngine, SelectionOutcome
from src.cards.hysteresis import HysteresisState, InMemoryHysteresisState, RedisHysteresisState
from src.cards.labels import NumericFeatures, WeightedLabel, total_weight
from src.cards.recency import InMemoryRecencyStore, RecencyStore, RedisRecencyStore
from src.cards.seeds import birth_seed, daily_seed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BirthData:
    moment: datetime
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DailyCardResult:
    on: date
    seed: int
    profile_id: Optional[str]
    axes: AxisVector
    axis_share: float
    energy: EnergyDistribution
    outcome: SelectionOutcome
    pool_size: int


class DailyCardService:
    def __init__(
        self,
        catalog: CatalogStore,
        recency: RecencyStore,
        hysteresis: HysteresisState,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.catalog = catalog
        self.recency = recency
        self.hysteresis = hysteresis
        self.projector = AxisProjector(hysteresis, self.config)
        self.engine = SelectionEngine(catalog, recency, self.config)

    def run(
        self,
        labels: Sequence[WeightedLabel],
        profile_id: Optional[str] = None,
        *,
        on: Optional[date] = None,
        personality_key: Optional[str] = None,
        features: Optional[NumericFeatures] = None,
        birth: Optional[BirthData] = None,
        now: Optional[datetime] = None,
    ) -> DailyCardResult:
        now = now or datetime.now(timezone.utc)
        if on is None:
            on = now.date()
        elif on != now.date():
            # history is keyed by the requested day, not the wall clock
            now = datetime.combine(on, time(12), tzinfo=timezone.utc)
        if profile_id:
            seed = daily_seed(profile_id, on)
        elif birth is not None:
            seed = birth_seed(birth.moment, birth.latitude, birth.longitude, on)
        else:
            raise ValueError("profile_id or birth data is required to derive a seed")

        labels = list(labels)
        vector, share = self.projector.project(labels, features)
        if self.config.daily_variation:
            vector = apply_daily_variation(vector, seed)

        pool = labels + axis_labels(vector, share, total_weight(labels))
        energy = allocate(pool, personality_key, config=self.config)
        outcome = self.engine.select_outcome(
            pool, vector, energy, seed, profile_id, on=on, now=now
        )
        logger.info(
            "daily_card_selected",
            extra={
                "profile_id": profile_id,
                "date": on.isoformat(),
                "card": outcome.winner.id,
                "seed": seed,
                "fallback": outcome.fallback,
            },
        )
        return DailyCardResult(
            on=on,
            seed=seed,
            profile_id=profile_id,
            axes=vector,
            axis_share=share,
            energy=energy,
            outcome=outcome,
            pool_size=len(pool),
        )


_redis_client: Optional[redis.Redis] = None
_redis_initialized = False


def _get_redis_client() -> Optional[redis.Redis]:
    global _redis_initialized, _redis_client
    if _redis_initialized:
        return _redis_client

    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        try:
            _redis_client = redis.Redis.from_url(redis_url, decode_responses=True)
        except Exception:  # pragma: no cover - connection errors logged but not fatal
            logger.exception("daily_card_redis_init_failed", extra={"redis_url": redis_url})
            _redis_client = None
    else:
        logger.info("daily_card_redis_url_missing")

    _redis_initialized = True
    return _redis_client


def build_service(config: Optional[EngineConfig] = None) -> DailyCardService:
    config = config or EngineConfig.from_env()
    client = _get_redis_client()
    if client is not None:
        recency: RecencyStore = RedisRecencyStore(client)
        hysteresis: HysteresisState = RedisHysteresisState(client, default=config.axis_share_default)
    else:
        recency = InMemoryRecencyStore()
        hysteresis = InMemoryHysteresisState(config.axis_share_default)
    return DailyCardService(CatalogStore(catalog_path()), recency, hysteresis, config)


_service: Optional[DailyCardService] = None
_service_lock = threading.Lock()


def get_service() -> DailyCardService:
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = build_service()
    return _service


def reset_service() -> None:
    """Drop the cached service and Redis client so env changes take effect."""

    global _service, _redis_client, _redis_initialized
    with _service_lock:
        _service = None
    _redis_client = None
    _redis_initialized = False


__all__ = [
    "BirthData",
    "DailyCardResult",
    "DailyCardService",
    "build_service",
    "get_service",
    "reset_service",
]
