"""Tests for TTL caches and their stores."""

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from cache import CacheManager, JsonFileStore, MemoryStore, TTLCache

DAY_S = 24 * 60 * 60


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_set_stamps_timestamp():
    clock = FakeClock()
    cache = TTLCache(MemoryStore(), ttl_s=DAY_S, clock=clock)
    record = cache.set("k", {"result": {"a": 1}})
    assert record["timestamp"] == int(clock.now * 1000)
    assert cache.get("k")["result"] == {"a": 1}


def test_entry_just_inside_ttl_is_returned():
    clock = FakeClock()
    cache = TTLCache(MemoryStore(), ttl_s=DAY_S, clock=clock)
    stored = cache.set("k", {"result": "v"})
    clock.advance(DAY_S - 60)  # 23h59m
    assert cache.get("k") == stored


def test_entry_past_ttl_is_purged():
    clock = FakeClock()
    store = MemoryStore()
    cache = TTLCache(store, ttl_s=DAY_S, clock=clock)
    cache.set("k", {"result": "v"})
    clock.advance(DAY_S + 1)
    assert cache.get("k") is None
    assert len(store) == 0


def test_lookup_purges_all_stale_entries():
    clock = FakeClock()
    store = MemoryStore()
    cache = TTLCache(store, ttl_s=60, clock=clock)
    cache.set("old1", {"v": 1})
    cache.set("old2", {"v": 2})
    clock.advance(61)
    cache.set("fresh", {"v": 3})
    assert cache.get("missing") is None
    assert [k for k, _ in store.items()] == ["fresh"]


def test_no_ttl_never_expires():
    clock = FakeClock()
    cache = TTLCache(MemoryStore(), ttl_s=None, clock=clock)
    cache.set("k", {"v": 1})
    clock.advance(365 * DAY_S)
    assert cache.get("k")["v"] == 1
    assert cache.purge_expired() == 0


def test_clear_with_predicate():
    cache = TTLCache(MemoryStore(), clock=FakeClock())
    cache.set("a", {"identifier": "河南"})
    cache.set("b", {"identifier": "山东"})
    assert cache.clear(lambda _k, rec: rec["identifier"] == "河南") == 1
    assert cache.get("a") is None
    assert cache.get("b") is not None


def test_status_reports_age_and_remaining():
    clock = FakeClock()
    cache = TTLCache(MemoryStore(), ttl_s=4 * 60 * 60, clock=clock)
    cache.set("scenic_areas_河南", {"data": {}, "identifier": "河南"})
    clock.advance(30 * 60)
    entry = cache.status()["entries"]["scenic_areas_河南"]
    assert entry["age_minutes"] == 30
    assert entry["remaining_minutes"] == 210
    assert entry["expired"] is False
    assert entry["identifier"] == "河南"


def test_json_store_persists(tmp_path):
    path = tmp_path / "coordinates-cache.json"
    store = JsonFileStore(path)
    store.set("龙门石窟_洛阳", {"name": "龙门石窟", "timestamp": 1})
    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["龙门石窟_洛阳"]["name"] == "龙门石窟"

    reloaded = JsonFileStore(path)
    assert reloaded.get("龙门石窟_洛阳")["timestamp"] == 1


def test_json_store_delete_rewrites_file(tmp_path):
    path = tmp_path / "cache.json"
    store = JsonFileStore(path)
    store.set("a", {"v": 1})
    store.set("b", {"v": 2})
    assert store.delete("a") is True
    assert store.delete("a") is False
    assert list(json.loads(path.read_text(encoding="utf-8"))) == ["b"]


def test_json_store_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(JsonFileStore(path)) == 0


def test_json_store_no_temp_files_left(tmp_path):
    store = JsonFileStore(tmp_path / "cache.json")
    store.set("a", {"v": 1})
    assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]


def test_manager_namespaces_are_independent():
    caches = CacheManager.in_memory(clock=FakeClock())
    caches.coordinates.set("k", {"v": 1})
    caches.ai_calls.set("k", {"v": 2})
    assert caches.clear("ai_calls") == {"ai_calls": 1}
    assert caches.coordinates.get("k")["v"] == 1


def test_manager_clear_all():
    caches = CacheManager.in_memory(clock=FakeClock())
    caches.coordinates.set("a", {})
    caches.provinces.set("b", {})
    assert caches.clear() == {"coordinates": 1, "ai_calls": 0, "provinces": 1}


def test_manager_json_backend_uses_cache_dir(tmp_path):
    caches = CacheManager.create(backend="json", cache_dir=str(tmp_path), clock=FakeClock())
    caches.coordinates.set("a", {"v": 1})
    assert (tmp_path / "coordinates-cache.json").exists()
