"""Tests for token bucket and layered rate limiting."""

import threading
from datetime import timedelta

import pytest

from src.weather_summary_api.core.rate_limit import LayeredRateLimiter, TokenBucket


class TestTokenBucket:
    """Test the token bucket algorithm."""

    def test_capacity_then_reject(self, fake_clock):
        """Test that exactly `capacity` requests are admitted from a full bucket."""
        clock = fake_clock
        bucket = TokenBucket(capacity=5, window=timedelta(hours=1), clock=clock)

        assert [bucket.try_consume() for _ in range(5)] == [True] * 5
        assert bucket.try_consume() is False
        assert bucket.remaining() == 0

    def test_refill_is_proportional(self, fake_clock):
        """Test that tokens refill at capacity per window."""
        clock = fake_clock
        bucket = TokenBucket(capacity=10, window=timedelta(seconds=100), clock=clock)
        for _ in range(10):
            bucket.try_consume()

        clock.advance(25)

        assert bucket.remaining() == 2
        assert bucket.try_consume() is True

    def test_refill_saturates_at_capacity(self, fake_clock):
        clock = fake_clock
        bucket = TokenBucket(capacity=3, window=timedelta(seconds=30), clock=clock)
        bucket.try_consume()

        clock.advance(3600)

        assert bucket.remaining() == 3
        assert bucket.time_until_reset() == timedelta(0)

    def test_time_until_reset_and_available(self, fake_clock):
        clock = fake_clock
        bucket = TokenBucket(capacity=4, window=timedelta(seconds=40), clock=clock)
        for _ in range(4):
            bucket.try_consume()

        assert bucket.time_until_reset() == timedelta(seconds=40)
        assert bucket.time_until_available() == timedelta(seconds=10)

    def test_can_consume_does_not_take_tokens(self, fake_clock):
        bucket = TokenBucket(capacity=1, window=timedelta(minutes=1), clock=fake_clock)

        assert bucket.can_consume()
        assert bucket.can_consume()
        assert bucket.remaining() == 1

    def test_stats(self, fake_clock):
        bucket = TokenBucket(capacity=2, window=timedelta(minutes=1), clock=fake_clock)
        bucket.try_consume()
        bucket.try_consume()
        bucket.try_consume()

        stats = bucket.stats()

        assert stats.capacity == 2
        assert stats.remaining == 0
        assert stats.consumed == 2
        assert stats.rejected == 1
        assert stats.algorithm == "TOKEN_BUCKET"

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            TokenBucket(capacity=0, window=timedelta(minutes=1))

        with pytest.raises(ValueError):
            TokenBucket(capacity=1, window=timedelta(0))

    def test_concurrent_consumers_never_exceed_capacity(self, fake_clock):
        """Test that threads racing on one bucket get exactly `capacity` tokens."""
        bucket = TokenBucket(capacity=50, window=timedelta(days=1), clock=fake_clock)
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                if bucket.try_consume():
                    with lock:
                        admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(admitted) == 50


class TestLayeredRateLimiter:
    """Test the global / per-client / burst composition."""

    def _limiter(self, clock, **overrides):
        options = {
            "global_limit": 100,
            "per_client_limit": 10,
            "burst_limit": 3,
            "clock": clock,
        }
        options.update(overrides)
        return LayeredRateLimiter(**options)

    def test_burst_layer_rejects_first(self, fake_clock):
        """Test that rapid requests from one client trigger burst protection."""
        limiter = self._limiter(fake_clock)

        decisions = [limiter.try_acquire("10.0.0.1") for _ in range(4)]

        assert [d.admitted for d in decisions] == [True, True, True, False]
        assert decisions[-1].layer == LayeredRateLimiter.BURST
        assert decisions[-1].retry_after > timedelta(0)

    def test_clients_are_independent(self, fake_clock):
        limiter = self._limiter(fake_clock)
        for _ in range(3):
            limiter.try_acquire("10.0.0.1")

        assert limiter.try_acquire("10.0.0.2").admitted
        assert limiter.tracked_clients() == 2

    def test_per_client_layer(self, fake_clock):
        """Test the hourly per-client limit."""
        clock = fake_clock
        limiter = self._limiter(clock, per_client_limit=2, burst_limit=5)

        assert limiter.try_acquire("a").admitted
        assert limiter.try_acquire("a").admitted
        decision = limiter.try_acquire("a")

        assert not decision.admitted
        assert decision.layer == LayeredRateLimiter.PER_CLIENT

    def test_global_layer(self, fake_clock):
        limiter = self._limiter(fake_clock, global_limit=2)

        assert limiter.try_acquire("a").admitted
        assert limiter.try_acquire("b").admitted
        decision = limiter.try_acquire("c")

        assert decision.layer == LayeredRateLimiter.GLOBAL

    def test_rejection_does_not_drain_other_layers(self, fake_clock):
        """Test that a burst rejection leaves the global bucket untouched."""
        clock = fake_clock
        limiter = self._limiter(clock, global_limit=4, burst_limit=1)

        assert limiter.try_acquire("a").admitted
        for _ in range(5):
            assert not limiter.try_acquire("a").admitted

        assert limiter.try_acquire("b").admitted
        assert limiter.try_acquire("c").admitted
        assert limiter.try_acquire("d").admitted

    def test_idle_clients_evicted(self, fake_clock):
        limiter = self._limiter(fake_clock, max_clients=2)

        limiter.try_acquire("a")
        limiter.try_acquire("b")
        limiter.try_acquire("c")

        assert limiter.tracked_clients() == 2

    def test_rejections_counted_on_rejecting_layer(self, fake_clock):
        """Test that only the layer that rejected a request counts the rejection."""
        limiter = self._limiter(fake_clock, burst_limit=1)

        limiter.try_acquire("a")
        limiter.try_acquire("a")
        limiter.try_acquire("a")
        stats = limiter.layer_stats("a")

        assert stats[LayeredRateLimiter.BURST].rejected == 2
        assert stats[LayeredRateLimiter.PER_CLIENT].rejected == 0
        assert stats[LayeredRateLimiter.GLOBAL].rejected == 0
        assert stats[LayeredRateLimiter.GLOBAL].consumed == 1
