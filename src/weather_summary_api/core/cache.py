"""Namespaced TTL cache with LRU eviction and request coalescing.

Implements the fastapi-cache2 ``Backend`` interface on top of an in-process
``OrderedDict``. One instance exists per data kind (weather, forecast,
location), each with its own TTL.
"""

import asyncio
import math
import time
from collections import OrderedDict, defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi_cache.backends import Backend
from loguru import logger

from .errors import ServiceUnavailableError
from .metrics import cache_requests


@dataclass
class CacheEntry:
    """Cached value and the clock reading when it was stored."""

    key: str
    value: Any
    inserted_at: float


@dataclass(frozen=True)
class CacheStats:
    """Counters for one cache namespace."""

    namespace: str
    hits: int
    misses: int
    evictions: int
    size: int
    max_size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class TTLCache(Backend):
    """In-memory cache with per-namespace TTL, LRU eviction and max size limit.

    Entries expire ``ttl`` seconds after they were stored; expired entries are
    dropped lazily on read and never returned. When the cache reaches
    ``max_size``, the least recently used entry is evicted.

    Concurrent ``get_or_load`` calls for the same missing key share a single
    loader call instead of each hitting the upstream API.

    Example:
        >>> cache = TTLCache("weather", ttl=900, max_size=3)
        >>> # Cache holds max 3 items for 15 minutes each
    """

    def __init__(
        self,
        namespace: str,
        ttl: float,
        max_size: int = 10000,
        clock: Callable[[], float] = time.monotonic,
        max_waiters: int = 100,
    ):
        """Initialize the cache.

        Args:
            namespace: Prefix keeping keys of different data kinds apart
            ttl: Time-to-live of every entry in seconds
            max_size: Maximum number of entries before LRU eviction
            clock: Monotonic clock in seconds, replaceable in tests
            max_waiters: Maximum concurrent waiters on one in-flight load
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.namespace = namespace
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._max_waiters = max_waiters
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Future] = {}
        self._waiter_counts: defaultdict[str, int] = defaultdict(int)
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _namespaced(self, key: str) -> str:
        return f"{self.namespace}_{key}"

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.inserted_at > self.ttl

    def _lookup(self, namespaced_key: str) -> CacheEntry | None:
        # Caller must hold self._lock
        entry = self._store.get(namespaced_key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._store[namespaced_key]
            return None
        self._store.move_to_end(namespaced_key)
        return entry

    def _record(self, hit: bool, key: str) -> None:
        # Caller must hold self._lock
        if hit:
            self._hits += 1
        else:
            self._misses += 1
        result = "hit" if hit else "miss"
        logger.debug(f"Cache {result}", namespace=self.namespace, key=key)
        cache_requests.add(1, {"namespace": self.namespace, "result": result})

    async def get(self, key: str) -> Any:
        """Get a value and mark it as recently used.

        Returns:
            Cached value, or None if absent or expired
        """
        async with self._lock:
            entry = self._lookup(self._namespaced(key))
            self._record(entry is not None, key)
            return entry.value if entry is not None else None

    async def get_with_ttl(self, key: str) -> tuple[int, Any]:
        """Get a value together with its remaining lifetime in whole seconds."""
        async with self._lock:
            entry = self._lookup(self._namespaced(key))
            self._record(entry is not None, key)
            if entry is None:
                return 0, None
            remaining = self.ttl - (self._clock() - entry.inserted_at)
            return max(0, math.ceil(remaining)), entry.value

    async def put(self, key: str, value: Any) -> None:
        """Insert or overwrite a value with a fresh insertion time.

        If the cache is at max_size, evicts the least recently used entry.
        """
        namespaced_key = self._namespaced(key)
        async with self._lock:
            if namespaced_key not in self._store and len(self._store) >= self.max_size:
                evicted_key, _ = self._store.popitem(last=False)
                self._evictions += 1
                logger.debug("Cache eviction", namespace=self.namespace, key=evicted_key)

            self._store[namespaced_key] = CacheEntry(namespaced_key, value, self._clock())
            self._store.move_to_end(namespaced_key)

    async def set(self, key: str, value: Any, expire: int | None = None) -> None:
        """Backend alias of ``put``.

        ``expire`` is ignored: the TTL belongs to the namespace, not the entry.
        """
        await self.put(key, value)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Return the cached value, loading it on a miss.

        The loader runs at most once per miss, even with concurrent callers.
        Only a non-None result is cached; a None result or a loader error is
        returned/raised to every waiting caller and the next call retries.

        Raises:
            ServiceUnavailableError: If too many callers already wait on this key,
                or the load this caller waited on was cancelled
        """
        value = await self.get(key)
        if value is not None:
            return value

        namespaced_key = self._namespaced(key)
        async with self._lock:
            entry = self._lookup(namespaced_key)
            if entry is not None:
                return entry.value

            future = self._inflight.get(namespaced_key)
            if future is not None:
                if self._waiter_counts[namespaced_key] >= self._max_waiters:
                    logger.warning(
                        "Request coalescing limit exceeded",
                        namespace=self.namespace,
                        waiters=self._waiter_counts[namespaced_key],
                        max_waiters=self._max_waiters,
                    )
                    raise ServiceUnavailableError(
                        "Service temporarily unavailable - too many concurrent requests"
                    )
                self._waiter_counts[namespaced_key] += 1
                is_loader = False
            else:
                future = asyncio.get_running_loop().create_future()
                self._inflight[namespaced_key] = future
                is_loader = True

        if not is_loader:
            logger.debug("Request coalescing - waiting for existing load", key=key)
            try:
                return await asyncio.shield(future)
            finally:
                async with self._lock:
                    self._waiter_counts[namespaced_key] -= 1
                    if self._waiter_counts[namespaced_key] <= 0:
                        self._waiter_counts.pop(namespaced_key, None)

        try:
            value = await loader()
            if value is not None:
                await self.put(key, value)
            future.set_result(value)
            return value

        except asyncio.CancelledError:
            # Only this caller is cancelled; waiters get a service error
            logger.warning("Cache load cancelled", namespace=self.namespace, key=key)
            future.set_exception(
                ServiceUnavailableError("Service temporarily unavailable - load was cancelled")
            )
            future.exception()
            raise

        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so a load without waiters does not warn on GC
            future.exception()
            raise

        finally:
            async with self._lock:
                self._inflight.pop(namespaced_key, None)

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._store.pop(self._namespaced(key), None)
        logger.debug("Cache entry invalidated", namespace=self.namespace, key=key)

    async def invalidate_all(self) -> None:
        async with self._lock:
            self._store.clear()
        logger.debug("Cache cleared", namespace=self.namespace)

    async def clear(self, namespace: str | None = None, key: str | None = None) -> int:
        """Clear cache entries.

        Args:
            namespace: Only clear when it names this cache (None clears too)
            key: Specific key to clear

        Returns:
            Number of removed entries
        """
        if namespace is not None and namespace != self.namespace:
            return 0

        async with self._lock:
            if key is not None:
                return 1 if self._store.pop(self._namespaced(key), None) is not None else 0
            removed = len(self._store)
            self._store.clear()
            return removed

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet dropped."""
        return len(self._store)

    def stats(self) -> CacheStats:
        return CacheStats(
            namespace=self.namespace,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            size=len(self._store),
            max_size=self.max_size,
        )
