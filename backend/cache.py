"""Two-tier cache for geocodes and upstream AI responses.

A `KeyValueStore` owns persistence (memory, JSON file, or libsql via `db.py`);
`TTLCache` layers timestamps and lazy expiry on top; `CacheManager` wires the
three namespaces used by the pipeline:

- coordinates   name_address -> geocode record, never expires
- ai_calls      ai_call_<hash> -> {result, identifier, timestamp}, 24 h
- provinces     scenic_areas_<province> -> {data, timestamp}, 4 h

Expiry is evaluated on read: a lookup first purges every stale entry, then
checks for a hit. There is no background sweep. Single-process use only.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Iterator

import config
from storage import write_json

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> dict | None: ...

    @abstractmethod
    def set(self, key: str, value: dict) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def items(self) -> Iterator[tuple[str, dict]]: ...

    def delete_many(self, keys: list[str]) -> int:
        return sum(1 for k in keys if self.delete(k))

    def clear(self) -> int:
        return self.delete_many([k for k, _ in self.items()])

    def __len__(self) -> int:
        return sum(1 for _ in self.items())


class MemoryStore(KeyValueStore):
    def __init__(self, initial: dict[str, dict] | None = None):
        self._data: dict[str, dict] = dict(initial or {})

    def get(self, key: str) -> dict | None:
        return self._data.get(key)

    def set(self, key: str, value: dict) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def items(self) -> Iterator[tuple[str, dict]]:
        return iter(list(self._data.items()))

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(MemoryStore):
    """JSON object file loaded eagerly and rewritten on every mutation.

    Writes go to a temp file in the same directory followed by `os.replace`,
    so readers never observe a half-written cache.

    Writes are synchronous and happen inside async request handlers. That is
    fine for one process with small cache files; move `_flush` onto a worker
    thread if the files grow.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not load cache %s, starting empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("Cache %s is not a JSON object, starting empty", self.path)
            return {}
        logger.info("Loaded %d entries from %s", len(data), self.path)
        return data

    def _flush(self) -> None:
        write_json(self.path, self._data)

    def set(self, key: str, value: dict) -> None:
        super().set(key, value)
        self._flush()

    def delete(self, key: str) -> bool:
        removed = super().delete(key)
        if removed:
            self._flush()
        return removed

    def delete_many(self, keys: list[str]) -> int:
        removed = sum(1 for k in keys if self._data.pop(k, None) is not None)
        if removed:
            self._flush()
        return removed


class TTLCache:
    """Timestamped records over a store. `ttl_s=None` disables expiry."""

    def __init__(self, store: KeyValueStore, ttl_s: float | None = None, clock: Clock = time.time, name: str = "cache"):
        self.store = store
        self.ttl_s = ttl_s
        self.clock = clock
        self.name = name

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def age_ms(self, record: dict) -> int:
        return self.now_ms() - int(record.get("timestamp", 0))

    def remaining_ms(self, record: dict) -> int | None:
        if self.ttl_s is None:
            return None
        return int(self.ttl_s * 1000) - self.age_ms(record)

    def is_expired(self, record: dict) -> bool:
        remaining = self.remaining_ms(record)
        return remaining is not None and remaining <= 0

    def purge_expired(self) -> int:
        if self.ttl_s is None:
            return 0
        stale = [k for k, rec in self.store.items() if self.is_expired(rec)]
        removed = self.store.delete_many(stale) if stale else 0
        if removed:
            logger.info("Purged %d expired %s entries", removed, self.name)
        return removed

    def get(self, key: str) -> dict | None:
        self.purge_expired()
        record = self.store.get(key)
        if record is None or self.is_expired(record):
            return None
        return record

    def set(self, key: str, value: dict) -> dict:
        record = dict(value)
        record.setdefault("timestamp", self.now_ms())
        self.store.set(key, record)
        return record

    def delete(self, key: str) -> bool:
        return self.store.delete(key)

    def clear(self, predicate: Callable[[str, dict], bool] | None = None) -> int:
        if predicate is None:
            removed = self.store.clear()
        else:
            removed = self.store.delete_many([k for k, rec in self.store.items() if predicate(k, rec)])
        logger.info("Cleared %d %s entries", removed, self.name)
        return removed

    def items(self) -> Iterator[tuple[str, dict]]:
        return self.store.items()

    def status(self) -> dict[str, Any]:
        entries = {}
        for key, rec in self.store.items():
            remaining = self.remaining_ms(rec)
            entries[key] = {
                "age_minutes": self.age_ms(rec) // 60_000,
                "remaining_minutes": None if remaining is None else remaining // 60_000,
                "expired": self.is_expired(rec),
            }
            if "identifier" in rec:
                entries[key]["identifier"] = rec["identifier"]
        return {"total": len(entries), "ttl_s": self.ttl_s, "entries": entries}

    def __len__(self) -> int:
        return len(self.store)


def _make_store(backend: str, cache_dir: str, filename: str, namespace: str) -> KeyValueStore:
    if backend == "memory":
        return MemoryStore()
    if backend == "json":
        return JsonFileStore(Path(cache_dir) / filename)
    if backend == "libsql":
        import db  # optional backend; pulls in libsql only when selected
        return db.LibsqlStore(namespace, path=str(Path(cache_dir) / "cache.db"))
    raise ValueError(f"Unknown cache backend: {backend!r}")


class CacheManager:
    NAMESPACES = ("coordinates", "ai_calls", "provinces")

    def __init__(self, coordinates: TTLCache, ai_calls: TTLCache, provinces: TTLCache):
        self.coordinates = coordinates
        self.ai_calls = ai_calls
        self.provinces = provinces

    @classmethod
    def create(cls, backend: str | None = None, cache_dir: str | None = None, clock: Clock = time.time) -> "CacheManager":
        backend = backend or config.CACHE_BACKEND
        cache_dir = cache_dir or config.CACHE_DIR
        return cls(
            coordinates=TTLCache(
                _make_store(backend, cache_dir, config.COORDINATES_CACHE_FILE, "coordinates"),
                ttl_s=config.COORDINATE_CACHE_TTL_S, clock=clock, name="coordinates",
            ),
            ai_calls=TTLCache(
                _make_store(backend, cache_dir, config.AI_CALL_CACHE_FILE, "ai_calls"),
                ttl_s=config.AI_CALL_CACHE_TTL_S, clock=clock, name="ai_calls",
            ),
            provinces=TTLCache(
                _make_store(backend, cache_dir, config.SCENIC_AREAS_CACHE_FILE, "provinces"),
                ttl_s=config.PROVINCE_CACHE_TTL_S, clock=clock, name="provinces",
            ),
        )

    @classmethod
    def in_memory(cls, clock: Clock = time.time) -> "CacheManager":
        return cls.create(backend="memory", clock=clock)

    def namespace(self, name: str) -> TTLCache:
        if name not in self.NAMESPACES:
            raise KeyError(name)
        return getattr(self, name)

    def clear(self, name: str | None = None) -> dict[str, int]:
        names = [name] if name else list(self.NAMESPACES)
        return {n: self.namespace(n).clear() for n in names}

    def status(self) -> dict[str, Any]:
        return {n: self.namespace(n).status() for n in self.NAMESPACES}
