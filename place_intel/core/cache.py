"""
Time-boxed caches and in-flight request sharing

Each key space (results, external signals, context signals) gets one
TTLCache plus one InflightRegistry. The cache answers repeat lookups inside
the TTL; the registry makes N concurrent misses for the same key share a
single upstream call.
"""
import asyncio
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple, TypeVar

from place_intel.core.metrics import metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache:
    """
    A bounded cache with LRU eviction and TTL (time-to-live).

    Entries are (timestamp, value) pairs; writes are plain replacements so
    readers never wait on a writer for longer than a dict operation.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        maxsize: int = 5000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0, "expired": 0}

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._miss()
                return None

            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self._stats["expired"] += 1
                self._miss()
                return None

            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            metrics.cache_lookups_total.labels(cache=self.name, result="hit").inc()
            return value

    def _miss(self):
        self._stats["misses"] += 1
        metrics.cache_lookups_total.labels(cache=self.name, result="miss").inc()

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = (self._clock(), value)
            while len(self._entries) > self.maxsize:
                evicted, _ = self._entries.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"Cache '{self.name}' LRU eviction: {evicted}")

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching predicate. Returns the number removed."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and self._clock() - entry[0] < self.ttl_seconds

    @property
    def stats(self) -> Dict:
        with self._lock:
            lookups = self._stats["hits"] + self._stats["misses"]
            return {
                **self._stats,
                "size": len(self._entries),
                "maxsize": self.maxsize,
                "hit_rate": self._stats["hits"] / max(1, lookups),
            }


class InflightRegistry:
    """
    Map of key -> running task so concurrent callers share one upstream call.

    Late joiners await the existing task. The entry is removed when the
    task finishes, whether it succeeded or failed. Joiners are shielded:
    a caller that gives up does not cancel the shared work, whose result
    still lands in the cache for the next caller.
    """

    def __init__(self, name: str):
        self.name = name
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is not None:
            metrics.inflight_joins_total.labels(cache=self.name).inc()
            return await asyncio.shield(task)

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda _t, k=key: self._forget(k, _t))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def discard(self, predicate: Callable[[Hashable], bool]) -> None:
        """Detach matching keys so the next caller starts fresh work."""
        for key in [k for k in self._tasks if predicate(k)]:
            del self._tasks[key]

    def clear(self) -> None:
        self._tasks.clear()


class CacheSpace:
    """One key space: a TTL cache plus its in-flight registry."""

    def __init__(self, name: str, ttl_seconds: float, maxsize: int = 5000,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.cache = TTLCache(name, ttl_seconds, maxsize=maxsize, clock=clock)
        self.inflight = InflightRegistry(name)
        # Bumped on every purge; work started under an older generation is not stored
        self.generation = 0

    def store_if_current(self, key: Hashable, value: Any, generation: int) -> bool:
        if generation != self.generation:
            logger.debug(f"Cache '{self.name}' dropped stale write for {key}")
            return False
        self.cache.set(key, value)
        return True

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        should_cache: Callable[[T], bool] = lambda _value: True,
    ) -> T:
        """Cached value if fresh; otherwise one shared fetch whose result is cached."""
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        generation = self.generation

        async def fetch_and_store() -> T:
            value = await fetch()
            if should_cache(value):
                self.store_if_current(key, value, generation)
            return value

        return await self.inflight.run(key, fetch_and_store)

    def purge(self, predicate: Optional[Callable[[Hashable], bool]] = None) -> int:
        self.generation += 1
        if predicate is None:
            removed = len(self.cache)
            self.cache.clear()
            self.inflight.clear()
            return removed
        self.inflight.discard(predicate)
        return self.cache.delete_where(predicate)
