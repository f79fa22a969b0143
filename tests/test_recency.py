from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
import redis

from src.cards.errors import PersistenceUnavailable
from src.cards.hysteresis import InMemoryHysteresisState, RedisHysteresisState
from src.cards.recency import InMemoryRecencyStore, RedisRecencyStore

TODAY = date(2025, 3, 14)


def _at(day: int, hour: int = 9) -> datetime:
    return datetime(2025, 3, day, hour, tzinfo=timezone.utc)


class _FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def rpush(self, key, *values):
        self.ops.append(("rpush", key, values))
        return self

    def ltrim(self, key, start, end):
        self.ops.append(("ltrim", key, (start, end)))
        return self

    def delete(self, key):
        self.ops.append(("delete", key, ()))
        return self

    def execute(self):
        for op, key, args in self.ops:
            if op == "rpush":
                self.client.lists.setdefault(key, []).extend(args)
            elif op == "ltrim":
                start, end = args
                items = self.client.lists.get(key, [])
                stop = None if end == -1 else end + 1
                self.client.lists[key] = items[start:stop]
            elif op == "delete":
                self.client.lists.pop(key, None)
        self.ops = []
        return []


class FakeRedis:
    def __init__(self):
        self.lists = {}
        self.values = {}

    def pipeline(self):
        return _FakePipeline(self)

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value
        return True


class BrokenRedis:
    def pipeline(self):
        raise redis.ConnectionError("down")

    def lrange(self, *args):
        raise redis.ConnectionError("down")

    def get(self, *args):
        raise redis.ConnectionError("down")

    def set(self, *args):
        raise redis.ConnectionError("down")


@pytest.fixture(params=["memory", "redis"])
def store(request):
    if request.param == "memory":
        return InMemoryRecencyStore()
    return RedisRecencyStore(FakeRedis())


def test_recent_selections_report_days_ago(store):
    store.record("the-sun", "p1", _at(14))
    store.record("the-moon", "p1", _at(13))
    store.record("the-star", "p1", _at(9))
    store.record("the-fool", "p2", _at(14))

    assert store.recent_selections("p1", TODAY) == [("the-sun", 0), ("the-moon", 1)]
    assert store.cooldown_set("p1", TODAY) == {"the-sun", "the-moon"}
    assert store.yesterday("p1", TODAY) == "the-moon"
    assert store.yesterday("p3", TODAY) is None


def test_most_recent_selection_wins(store):
    store.record("the-sun", "p1", _at(11))
    store.record("the-sun", "p1", _at(13))
    assert store.recent_selections("p1", TODAY) == [("the-sun", 1)]


def test_future_records_are_ignored(store):
    store.record("the-sun", "p1", _at(15))
    assert store.recent_selections("p1", TODAY) == []


def test_prune_drops_records_past_retention(store):
    store.record("the-star", "p1", _at(1))
    store.record("the-sun", "p1", _at(10))
    store.record("the-moon", "p1", _at(14))
    assert store.prune("p1", TODAY) == 1
    assert [entry.candidate_id for entry in store.history("p1")] == ["the-sun", "the-moon"]
    assert store.prune("p1", TODAY) == 0


def test_naive_timestamps_are_treated_as_utc(store):
    store.record("the-sun", "p1", datetime(2025, 3, 13, 23, 30))
    assert store.yesterday("p1", TODAY) == "the-sun"


def test_redis_store_maps_errors():
    store = RedisRecencyStore(BrokenRedis())
    with pytest.raises(PersistenceUnavailable):
        store.history("p1")
    with pytest.raises(PersistenceUnavailable):
        store.record("the-sun", "p1", _at(14))
    with pytest.raises(PersistenceUnavailable):
        store.recent_selections("p1", TODAY)


def test_redis_store_skips_corrupt_entries():
    client = FakeRedis()
    client.lists["cards:recency:p1"] = ["not json"]
    store = RedisRecencyStore(client)
    store.record("the-sun", "p1", _at(14))
    assert [entry.candidate_id for entry in store.history("p1")] == ["the-sun"]


def test_hysteresis_state_round_trips():
    memory = InMemoryHysteresisState()
    assert memory.get() == 0.15
    memory.set(0.2)
    assert memory.get() == 0.2

    client = FakeRedis()
    state = RedisHysteresisState(client)
    assert state.get() == 0.15
    state.set(0.21)
    assert state.get() == pytest.approx(0.21)
    client.values["cards:axis_share"] = "-1"
    assert state.get() == 0.15


def test_redis_hysteresis_maps_errors():
    state = RedisHysteresisState(BrokenRedis())
    with pytest.raises(PersistenceUnavailable):
        state.get()
    with pytest.raises(PersistenceUnavailable):
        state.set(0.2)
