"""Tests for the token bucket and per-client limiter."""

from __future__ import annotations

import math
import threading

import pytest

from degrees.errors import Cancelled
from degrees.utils.rate_limiter import ClientRateLimiter, TokenBucket


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_bucket_starts_full_and_drains() -> None:
    clock = FakeClock()
    bucket = TokenBucket(rate=4.0, burst=5, clock=clock)

    assert [bucket.try_acquire() for _ in range(6)] == [True] * 5 + [False]


def test_bucket_refills_at_rate_capped_at_burst() -> None:
    clock = FakeClock()
    bucket = TokenBucket(rate=4.0, burst=5, clock=clock)
    for _ in range(5):
        bucket.try_acquire()

    clock.advance(0.5)
    assert bucket.get_available_tokens() == pytest.approx(2.0)

    clock.advance(60)
    assert bucket.get_available_tokens() == pytest.approx(5.0)


def test_per_period_quota() -> None:
    bucket = TokenBucket.per_period(40, 10.0, burst=5)
    assert bucket.rate == pytest.approx(4.0)


def test_invalid_parameters_rejected() -> None:
    with pytest.raises(ValueError):
        TokenBucket(rate=0, burst=5)
    with pytest.raises(ValueError):
        TokenBucket(rate=1.0, burst=0)


def test_unlimited_bucket_never_blocks() -> None:
    bucket = TokenBucket(rate=math.inf, burst=1)
    assert bucket.unlimited
    assert all(bucket.acquire() for _ in range(100))


def test_acquire_raises_when_already_cancelled() -> None:
    bucket = TokenBucket(rate=1.0, burst=1)
    event = threading.Event()
    event.set()

    with pytest.raises(Cancelled):
        bucket.acquire(cancel_event=event)


def test_cancel_interrupts_wait() -> None:
    bucket = TokenBucket(rate=0.001, burst=1)
    bucket.try_acquire()
    event = threading.Event()
    timer = threading.Timer(0.05, event.set)
    timer.start()

    try:
        with pytest.raises(Cancelled):
            bucket.acquire(cancel_event=event)
    finally:
        timer.cancel()


def test_acquire_timeout_returns_false() -> None:
    bucket = TokenBucket(rate=0.001, burst=1)
    bucket.try_acquire()

    assert bucket.acquire(timeout=0.01) is False


def test_reset_refills() -> None:
    clock = FakeClock()
    bucket = TokenBucket(rate=1.0, burst=3, clock=clock)
    for _ in range(3):
        bucket.try_acquire()

    bucket.reset()

    assert bucket.get_available_tokens() == pytest.approx(3.0)


def test_client_limiter_isolates_clients() -> None:
    clock = FakeClock()
    limiter = ClientRateLimiter(rate=0.5, burst=2, clock=clock)

    assert limiter.allow("a")
    assert limiter.allow("a")
    assert not limiter.allow("a")
    assert limiter.allow("b")

    clock.advance(2.0)
    assert limiter.allow("a")


def test_client_limiter_evicts_idle_buckets() -> None:
    clock = FakeClock()
    limiter = ClientRateLimiter(rate=1.0, burst=1, idle_ttl=600, cleanup_interval=300, clock=clock)

    limiter.allow("idle")
    clock.advance(400)
    limiter.allow("active")
    assert len(limiter) == 2

    clock.advance(301)
    limiter.allow("active")

    assert len(limiter) == 1
