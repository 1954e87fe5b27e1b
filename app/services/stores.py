"""
Storage adapters the core talks to.

- ConfigStore: key -> JSON value (`field_markers_<empresa>`,
  `ocr_replacements_<empresa>`). In-memory and JSON-file flavours.
- TTLCache: explicit read cache with an injected TTL and clock. Writers call
  invalidate() for the key they touched; nothing is a module-level singleton.
- CachedConfigStore: ConfigStore + TTLCache, invalidating on every set().
- ReceiptStore: append-only receipt history with a content-hash index.
- ConsolidatedStore: legajo||periodo -> ConsolidatedRecord, with a per-key
  lock so read-modify-write merges are atomic.

The real app swaps these for database-backed versions; the interfaces are
what matters.
"""

from __future__ import annotations

import json
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from app.models.schemas import ConsolidatedRecord, ReceiptRecord
from app.util.logger import get_logger


class ConfigStore:
    def get(self, key: str) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryConfigStore(ConfigStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = {}
        for k, v in (initial or {}).items():
            self.set(k, v)

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # stored as JSON text so callers never share mutable state with the store
        self._data[key] = json.dumps(value, default=str)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileConfigStore(ConfigStore):
    """One JSON file holding every key; rewritten on each set()."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str, ensure_ascii=False)
        tmp.replace(self.path)

    def get(self, key: str) -> Any:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = json.loads(json.dumps(value, default=str))
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)


class TTLCache:
    """
    String-keyed cache whose entries expire `ttl` seconds after being put.

    `clock` is injectable so tests can move time without sleeping.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return default
            expires, value = hit
            if self._clock() >= expires:
                del self._entries[key]
                return default
            return value

    def __contains__(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for k in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class CachedConfigStore(ConfigStore):
    def __init__(self, inner: ConfigStore, cache: TTLCache):
        self.inner = inner
        self.cache = cache

    def get(self, key: str) -> Any:
        sentinel = object()
        value = self.cache.get(key, sentinel)
        if value is not sentinel:
            return value
        value = self.inner.get(key)
        self.cache.put(key, value)
        return value

    def set(self, key: str, value: Any) -> None:
        self.inner.set(key, value)
        self.cache.invalidate(key)

    def delete(self, key: str) -> None:
        self.inner.delete(key)
        self.cache.invalidate(key)


class ReceiptStore:
    """Append-only receipt history, deduplicated by content hash."""

    def __init__(self):
        self._records: List[ReceiptRecord] = []
        self._hashes: set = set()
        self._lock = threading.Lock()

    def has_hash(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._hashes

    def add(self, record: ReceiptRecord) -> bool:
        """False (and nothing stored) when any of its hashes was seen before."""
        with self._lock:
            if any(h in self._hashes for h in record.hashes):
                return False
            self._records.append(record.model_copy(deep=True))
            self._hashes.update(record.hashes)
            return True

    def all(self) -> List[ReceiptRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records]

    def by_key(self, legajo: str, periodo: str) -> List[ReceiptRecord]:
        return [r for r in self.all() if r.legajo == legajo and r.periodo == periodo]

    def __len__(self) -> int:
        return len(self._records)


class ConsolidatedStore:
    def __init__(self):
        self._records: Dict[str, ConsolidatedRecord] = {}
        self._guard = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """Hold the merge lock for one key (read-modify-write section)."""
        with self._guard:
            lock = self._key_locks[key]
        with lock:
            yield

    def get_by_key(self, key: str) -> Optional[ConsolidatedRecord]:
        with self._guard:
            rec = self._records.get(key)
            return rec.model_copy(deep=True) if rec else None

    def upsert(self, record: ConsolidatedRecord) -> None:
        with self._guard:
            self._records[record.key] = record.model_copy(deep=True)

    def all(self) -> List[ConsolidatedRecord]:
        with self._guard:
            return [r.model_copy(deep=True) for r in sorted(self._records.values(), key=lambda r: r.key)]

    def purge(self, key: Optional[str] = None) -> int:
        """Administrative delete; one key or everything."""
        logger = get_logger()
        with self._guard:
            if key is None:
                n = len(self._records)
                self._records.clear()
                keys = list(self._key_locks)
            else:
                n = 1 if self._records.pop(key, None) is not None else 0
                keys = [key]
            # a lock still held by a merge stays until the next purge
            for k in keys:
                lock = self._key_locks.get(k)
                if lock is not None and not lock.locked():
                    del self._key_locks[k]
        logger.info(f"Purged {n} consolidated record(s)")
        return n

    def __len__(self) -> int:
        return len(self._records)
