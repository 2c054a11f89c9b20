"""Read-through TTL cache for registry payloads.

Entries are keyed by ``(operation, name)`` and hold decoded JSON payloads.
The cache is one-directional: it is filled by reads and invalidated only by
``force`` reloads or TTL expiry, never by writes elsewhere.

Concurrent misses on the same key are single-flighted: a per-key
``asyncio.Lock`` makes the second caller wait for the first caller's load
and then read the fresh entry, so one key is never fetched twice at once.

When ``cache_dir`` is given, entries are also persisted as one JSON file
per key (file name = truncated SHA-256 of the key) so separate processes
share the cache.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Default time-to-live for cached payloads (seconds).
DEFAULT_TTL: float = 3600.0

# Default maximum number of in-memory entries.
DEFAULT_MAX_ENTRIES: int = 1000

CacheKey = tuple[str, str]


@dataclass
class CacheStats:
    """Counters describing cache effectiveness.

    Attributes:
        hits: Lookups served from cache.
        misses: Lookups that required a load.
        writes: Entries stored.
        evictions: Entries dropped to honour ``max_entries``.
    """

    hits: int = 0
    misses: int = 0
    writes: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups served from cache (0.0 when none)."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass
class _Entry:
    data: Any
    stored_at: float
    expires_at: float


class RegistryCache:
    """In-memory (optionally disk-backed) TTL cache with per-key locking.

    Args:
        ttl: Seconds an entry stays valid. ``0`` disables caching.
        max_entries: Maximum in-memory entries; oldest are evicted first.
        cache_dir: Optional directory for persisted entries.
        clock: Time source returning seconds; injectable for tests.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        cache_dir: Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.cache_dir = cache_dir
        self._clock = clock
        self._entries: dict[CacheKey, _Entry] = {}
        self._locks: dict[CacheKey, asyncio.Lock] = {}
        self.stats = CacheStats()

    # -- Public API ---------------------------------------------------------

    async def get_or_load(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[Any]],
        *,
        force: bool = False,
    ) -> Any:
        """Return the cached payload for ``key``, loading it on a miss.

        Args:
            key: ``(operation, name)`` cache key.
            loader: Coroutine factory producing the payload on a miss.
            force: Ignore any cached entry and reload.

        Returns:
            The cached or freshly loaded payload.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                if not force:
                    cached = self._lookup(key)
                    if cached is not None:
                        self.stats.hits += 1
                        logger.debug("Cache hit for %s:%s", *key)
                        return cached.data
                self.stats.misses += 1
                data = await loader()
                self._store(key, data)
                return data
        finally:
            if key not in self._entries:
                self._drop_lock(key)

    def get(self, key: CacheKey) -> Any | None:
        """Return a live cached payload without loading, or None."""
        entry = self._lookup(key)
        return entry.data if entry is not None else None

    def invalidate(self, key: CacheKey) -> None:
        """Drop a single entry from memory and disk."""
        self._entries.pop(key, None)
        self._drop_lock(key)
        path = self._path_for(key)
        if path is not None:
            path.unlink(missing_ok=True)

    def clear(self) -> None:
        """Drop every entry and reset statistics."""
        self._entries.clear()
        for key in list(self._locks):
            self._drop_lock(key)
        if self.cache_dir is not None and self.cache_dir.is_dir():
            for path in self.cache_dir.glob("*.json"):
                path.unlink(missing_ok=True)
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    # -- Internals ----------------------------------------------------------

    def _lookup(self, key: CacheKey) -> _Entry | None:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None:
            entry = self._read_disk(key)
            if entry is not None:
                self._entries[key] = entry
        if entry is None:
            return None
        if now >= entry.expires_at:
            self.invalidate(key)
            return None
        return entry

    def _drop_lock(self, key: CacheKey) -> None:
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def _store(self, key: CacheKey, data: Any) -> None:
        if self.ttl <= 0:
            return
        now = self._clock()
        entry = _Entry(data=data, stored_at=now, expires_at=now + self.ttl)
        self._entries[key] = entry
        self.stats.writes += 1
        self._write_disk(key, entry)
        self._enforce_limit()

    def _enforce_limit(self) -> None:
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda kv: kv[1].stored_at)
        for key, _ in oldest[:overflow]:
            self.invalidate(key)
            self.stats.evictions += 1

    def _path_for(self, key: CacheKey) -> Path | None:
        if self.cache_dir is None:
            return None
        digest = hashlib.sha256(":".join(key).encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / f"{digest}.json"

    def _read_disk(self, key: CacheKey) -> _Entry | None:
        path = self._path_for(key)
        if path is None or not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            if raw.get("key") != list(key):
                return None
            return _Entry(
                data=raw["data"],
                stored_at=float(raw["stored_at"]),
                expires_at=float(raw["expires_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError):
            logger.debug("Ignoring unreadable cache entry %s", path)
            return None

    def _write_disk(self, key: CacheKey, entry: _Entry) -> None:
        path = self._path_for(key)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            payload = {"key": list(key), **asdict(entry)}
            path.write_text(json.dumps(payload), encoding="utf-8")
        except (OSError, TypeError, ValueError):
            logger.warning("Failed to persist cache entry %s:%s", *key, exc_info=True)
