"""Token bucket rate limiting.

``TokenBucket`` guards a single quota (the upstream API allowance).
``LayeredRateLimiter`` chains a global daily bucket, a per-client hourly bucket
and a per-client burst bucket in front of the HTTP endpoints.
"""

import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta

from loguru import logger

from .metrics import rate_limit_rejections


@dataclass(frozen=True)
class RateLimitStats:
    """Snapshot of a token bucket."""

    capacity: int
    remaining: int
    consumed: int
    rejected: int
    reset_in: timedelta
    algorithm: str = "TOKEN_BUCKET"


class TokenBucket:
    """Thread-safe token bucket.

    Starts full. Tokens refill continuously at ``capacity / window`` and never
    exceed ``capacity``. Every operation refills first and then acts while
    holding the same lock, so concurrent callers can never be admitted past
    the available tokens.

    Example:
        >>> bucket = TokenBucket(capacity=2, window=timedelta(hours=1))
        >>> bucket.try_consume(), bucket.try_consume(), bucket.try_consume()
        (True, True, False)
    """

    def __init__(
        self,
        capacity: int,
        window: timedelta,
        clock: Callable[[], float] = time.monotonic,
        name: str = "upstream",
    ):
        """Initialize the bucket.

        Args:
            capacity: Maximum number of tokens (requests per window)
            window: Time to refill the bucket from empty
            clock: Monotonic clock in seconds, replaceable in tests
            name: Bucket name used in logs and metrics
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        window_ms = window.total_seconds() * 1000.0
        if window_ms <= 0:
            raise ValueError("window must be positive")

        self.name = name
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._refill_rate_per_ms = capacity / window_ms
        self._tokens = float(capacity)
        self._last_refill = clock()
        self._consumed = 0
        self._rejected = 0
        self._lock = threading.Lock()

    def _refill(self) -> None:
        # Caller must hold self._lock
        now = self._clock()
        elapsed_ms = (now - self._last_refill) * 1000.0
        if elapsed_ms > 0:
            self._tokens = min(
                float(self.capacity),
                self._tokens + elapsed_ms * self._refill_rate_per_ms,
            )
            self._last_refill = now

    def try_consume(self) -> bool:
        """Take one token if available.

        Returns:
            True if the request is admitted, False if the bucket is empty
        """
        with self._lock:
            self._refill()
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                self._consumed += 1
                logger.debug(
                    "Token consumed",
                    bucket=self.name,
                    remaining=math.floor(self._tokens),
                )
                return True

            self._rejected += 1

        logger.warning("Token bucket empty, request rejected", bucket=self.name)
        rate_limit_rejections.add(1, {"layer": self.name})
        return False

    def can_consume(self) -> bool:
        """Report whether a token is available without taking it."""
        with self._lock:
            self._refill()
            return self._tokens >= 1.0

    def record_rejection(self) -> None:
        """Count a rejection decided by a caller that checked with ``can_consume``."""
        with self._lock:
            self._rejected += 1

    def remaining(self) -> int:
        with self._lock:
            self._refill()
            return math.floor(self._tokens)

    def time_until_reset(self) -> timedelta:
        """Time until the bucket is full again; zero when already full."""
        with self._lock:
            self._refill()
            return self._time_to_reach(float(self.capacity))

    def time_until_available(self) -> timedelta:
        """Time until at least one token can be consumed."""
        with self._lock:
            self._refill()
            return self._time_to_reach(1.0)

    def _time_to_reach(self, tokens: float) -> timedelta:
        missing = tokens - self._tokens
        if missing <= 0:
            return timedelta(0)
        return timedelta(milliseconds=missing / self._refill_rate_per_ms)

    def stats(self) -> RateLimitStats:
        with self._lock:
            self._refill()
            return RateLimitStats(
                capacity=self.capacity,
                remaining=math.floor(self._tokens),
                consumed=self._consumed,
                rejected=self._rejected,
                reset_in=self._time_to_reach(float(self.capacity)),
            )


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a layered rate limit check.

    ``layer`` and ``retry_after`` are only set when the request was rejected.
    """

    admitted: bool
    layer: str | None = None
    retry_after: timedelta | None = None


class LayeredRateLimiter:
    """Global, per-client and burst token buckets evaluated in sequence.

    A request is admitted only when every layer has a token. All layers are
    checked before any token is taken, so a rejection by one layer does not
    drain the others. Per-client buckets live in a bounded LRU map.

    Example:
        >>> limiter = LayeredRateLimiter(
        ...     global_limit=100, per_client_limit=10, burst_limit=1,
        ...     burst_window=timedelta(minutes=5),
        ... )
        >>> limiter.try_acquire("10.0.0.1").admitted
        True
        >>> limiter.try_acquire("10.0.0.1").layer
        'burst'
    """

    GLOBAL = "global"
    PER_CLIENT = "per_client"
    BURST = "burst"

    def __init__(
        self,
        global_limit: int,
        per_client_limit: int,
        burst_limit: int,
        global_window: timedelta = timedelta(days=1),
        per_client_window: timedelta = timedelta(hours=1),
        burst_window: timedelta = timedelta(minutes=5),
        max_clients: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self._per_client_limit = per_client_limit
        self._per_client_window = per_client_window
        self._burst_limit = burst_limit
        self._burst_window = burst_window
        self._max_clients = max_clients
        self._global = TokenBucket(global_limit, global_window, clock=clock, name=self.GLOBAL)
        self._clients: OrderedDict[str, tuple[TokenBucket, TokenBucket]] = OrderedDict()
        self._lock = threading.Lock()

    def _client_buckets(self, client_key: str) -> tuple[TokenBucket, TokenBucket]:
        # Caller must hold self._lock
        buckets = self._clients.get(client_key)
        if buckets is not None:
            self._clients.move_to_end(client_key)
            return buckets

        if len(self._clients) >= self._max_clients:
            evicted_key, _ = self._clients.popitem(last=False)
            logger.debug("Evicted rate limit buckets for idle client", client=evicted_key)

        buckets = (
            TokenBucket(
                self._per_client_limit,
                self._per_client_window,
                clock=self._clock,
                name=self.PER_CLIENT,
            ),
            TokenBucket(
                self._burst_limit,
                self._burst_window,
                clock=self._clock,
                name=self.BURST,
            ),
        )
        self._clients[client_key] = buckets
        return buckets

    def try_acquire(self, client_key: str) -> RateLimitDecision:
        """Admit or reject one request from ``client_key``."""
        with self._lock:
            per_client, burst = self._client_buckets(client_key)
            layers = ((self.GLOBAL, self._global), (self.PER_CLIENT, per_client), (self.BURST, burst))

            for layer, bucket in layers:
                if not bucket.can_consume():
                    bucket.record_rejection()
                    retry_after = bucket.time_until_available()
                    break
            else:
                for _, bucket in layers:
                    bucket.try_consume()
                return RateLimitDecision(admitted=True)

        logger.warning(
            "Request rejected by rate limit layer",
            layer=layer,
            retry_after_seconds=math.ceil(retry_after.total_seconds()),
        )
        rate_limit_rejections.add(1, {"layer": layer})
        return RateLimitDecision(admitted=False, layer=layer, retry_after=retry_after)

    def layer_stats(self, client_key: str) -> dict[str, RateLimitStats]:
        """Stats of every layer as seen by ``client_key``."""
        with self._lock:
            per_client, burst = self._client_buckets(client_key)
            layers = ((self.GLOBAL, self._global), (self.PER_CLIENT, per_client), (self.BURST, burst))
        return {layer: bucket.stats() for layer, bucket in layers}

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._clients)
