import logging
import math
import threading
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import cachetools

from .config import CacheConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 100
DEFAULT_MAX_MEMORY_MB = 50
EVICTION_FRACTION = 0.3

# Rough per-entry estimate; listings are small records, not file contents
ENTRY_OVERHEAD_BYTES = 1024
ITEM_BYTES = 256


@dataclass
class CacheEntry:
    data: Any
    created_at: float
    access_count: int = 1


def _approx_size(entry: CacheEntry) -> int:
    try:
        items = len(entry.data)
    except TypeError:
        items = 1
    return ENTRY_OVERHEAD_BYTES + items * ITEM_BYTES


class _AccessRankedStore(cachetools.Cache):
    """cachetools store that gives up its least-read entry first."""

    def popitem(self):
        try:
            key = min(self, key=lambda k: self[k].access_count)
        except ValueError:
            raise KeyError(f"{type(self).__name__} is empty") from None
        return key, self.pop(key)


class TTLCache(Generic[T]):
    """
    Bounded key -> value cache with time-based expiry.

    Entries expire ``ttl_seconds`` after they were stored. When the cache is
    full (entry count or approximate memory), expired entries are purged and,
    if that is not enough, the least-read 30% are dropped before inserting.
    Read counts are the only ranking signal; this is a cheap frequency
    approximation, not true LRU.

    Thread-safe: the janitor thread purges while the event loop reads.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_memory_mb: float = DEFAULT_MAX_MEMORY_MB,
        timer: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.name = name
        self._timer = timer
        self._store = _AccessRankedStore(
            maxsize=int(max_memory_mb * 1024 * 1024), getsizeof=_approx_size
        )
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: CacheConfig, name: str = "cache", **kwargs) -> "TTLCache":
        return cls(
            ttl_seconds=config.ttl_seconds,
            max_entries=config.max_entries,
            max_memory_mb=config.max_memory_mb,
            name=name,
            **kwargs,
        )

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def _live_entry(self, key: str) -> CacheEntry | None:
        """Return the entry for key, deleting it if expired. Caller holds lock."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._timer()):
            del self._store[key]
            return None
        return entry

    def get(self, key: str) -> T | None:
        """
        Retrieve a value if cached and not expired.

        A successful read bumps the entry's access count.

        Returns:
            The cached value, or None if absent or expired.
        """
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return None
            entry.access_count += 1
            return entry.data

    def peek(self, key: str) -> T | None:
        """Like get(), but the read does not count towards eviction ranking."""
        with self._lock:
            entry = self._live_entry(key)
            return None if entry is None else entry.data

    def has(self, key: str) -> bool:
        """Check for a live entry without counting it as a read."""
        with self._lock:
            return self._live_entry(key) is not None

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def set(self, key: str, data: T) -> None:
        """
        Store a value, evicting first if the cache is full.

        Args:
            key: Cache key.
            data: Value to store. Callers should pass immutable data.
        """
        with self._lock:
            entry = CacheEntry(data=data, created_at=self._timer())
            if self._needs_eviction(key, entry):
                self._evict()
            self._store[key] = entry

    def _needs_eviction(self, key: str, entry: CacheEntry) -> bool:
        if key not in self._store and len(self._store) >= self.max_entries:
            return True
        return self._store.currsize + _approx_size(entry) > self._store.maxsize

    def _evict(self) -> None:
        """Drop expired entries, then the least-read ones. Caller holds lock."""
        expired = self._purge_expired_locked()

        evicted = 0
        if len(self._store) >= self.max_entries:
            ranked = sorted(self._store.items(), key=lambda item: item[1].access_count)
            count = max(1, math.floor(len(ranked) * EVICTION_FRACTION))
            for key, _ in ranked[:count]:
                del self._store[key]
            evicted = count

        logger.debug(
            "%s: evicted %d expired and %d least-read entries (%d left)",
            self.name,
            expired,
            evicted,
            len(self._store),
        )

    def _purge_expired_locked(self) -> int:
        now = self._timer()
        expired_keys = [k for k, e in self._store.items() if self._is_expired(e, now)]
        for key in expired_keys:
            del self._store[key]
        return len(expired_keys)

    def purge_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._purge_expired_locked()

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    def __len__(self) -> int:
        return self.size()

    @property
    def approx_memory_bytes(self) -> int:
        return self._store.currsize


@dataclass
class CachePair:
    """The two caches a picker needs. Never mixed."""

    directories: TTLCache
    searches: TTLCache

    @classmethod
    def create(cls, config: CacheConfig | None = None, **kwargs) -> "CachePair":
        config = config or CacheConfig()
        return cls(
            directories=TTLCache.from_config(config, name="directories", **kwargs),
            searches=TTLCache.from_config(config, name="searches", **kwargs),
        )

    def clear(self) -> None:
        self.directories.clear()
        self.searches.clear()


class CacheJanitor:
    """
    Background thread that periodically purges expired entries.

    Caches are held weakly, so registering a cache does not keep it alive.
    """

    def __init__(self, interval_seconds: float = 60):
        self.interval_seconds = interval_seconds
        self._caches: weakref.WeakSet[TTLCache] = weakref.WeakSet()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def register(self, *caches: TTLCache) -> None:
        with self._lock:
            for cache in caches:
                self._caches.add(cache)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="cache-janitor", daemon=True
            )
            self._thread.start()
        logger.debug("Cache janitor started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    def run_once(self) -> int:
        """Purge every registered cache once. Returns entries removed."""
        with self._lock:
            caches = list(self._caches)
        removed = 0
        for cache in caches:
            removed += cache.purge_expired()
        if removed:
            logger.debug("Cache janitor reclaimed %d expired entries", removed)
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.exception("Cache janitor pass failed: %s", e)


_janitor: CacheJanitor | None = None
_janitor_lock = threading.Lock()


def ensure_janitor(*caches: TTLCache, interval_seconds: float = 60) -> CacheJanitor:
    """
    Start the process-wide janitor once and register caches with it.

    Later calls only register; the first caller's interval wins.
    """
    global _janitor
    with _janitor_lock:
        if _janitor is None:
            _janitor = CacheJanitor(interval_seconds)
        janitor = _janitor
    janitor.register(*caches)
    janitor.start()
    return janitor


def shutdown_janitor() -> None:
    """Stop the process-wide janitor (interpreter exit and tests only)."""
    global _janitor
    with _janitor_lock:
        janitor, _janitor = _janitor, None
    if janitor is not None:
        janitor.stop(timeout=1)
