"""
Rate limiting primitives built on the token bucket algorithm.

A single :class:`TokenBucket` throttles outbound calls to the metadata provider,
and :class:`ClientRateLimiter` keeps one bucket per client for the public query
surface. Both are ordinary instances injected where they are needed; there is no
module-level limiter state.

The token bucket works as follows:

1. The bucket starts full with ``burst`` tokens
2. Every call consumes one token
3. Tokens refill continuously at ``rate`` tokens per second, capped at ``burst``
4. When the bucket is empty, :meth:`TokenBucket.acquire` waits for the next token

Waiting is done on a ``threading.Event`` when the caller passes one, so a
shutdown request interrupts the wait instead of sleeping it out.

Example:
    Provider quota of 40 requests per 10 seconds, burst of 5::

        bucket = TokenBucket(rate=4.0, burst=5)
        stop = threading.Event()
        bucket.acquire(cancel_event=stop)  # raises Cancelled once stop is set
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from loguru import logger

from degrees.errors import Cancelled


class TokenBucket:
    """
    Thread-safe token bucket.

    Attributes
    ----------
    rate : float
        Refill rate in tokens per second (``math.inf`` disables limiting)
    burst : int
        Bucket capacity
    tokens : float
        Currently available tokens (may be fractional)
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize a full bucket.

        Parameters
        ----------
        rate : float
            Tokens added per second. Must be positive.
        burst : int
            Maximum tokens held at once. Must be at least 1.
        clock : callable, optional
            Monotonic time source, replaceable in tests.

        Raises
        ------
        ValueError
            If rate is not positive or burst is below 1.
        """
        if not rate > 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = float(rate)
        self.burst = burst
        self.tokens = float(burst)
        self._clock = clock
        self._last_update = clock()
        self._lock = threading.Lock()

    @classmethod
    def per_period(cls, requests: int, period: float, burst: int) -> "TokenBucket":
        """Build a bucket from a quota such as "40 requests per 10 seconds"."""
        return cls(rate=requests / period, burst=burst)

    @property
    def unlimited(self) -> bool:
        return math.isinf(self.rate)

    def _refill(self) -> None:
        """Add tokens for the time elapsed since the last refill. Caller holds the lock."""
        now = self._clock()
        if self.unlimited:
            self.tokens = float(self.burst)
        else:
            elapsed = max(now - self._last_update, 0.0)
            self.tokens = min(float(self.burst), self.tokens + elapsed * self.rate)
        self._last_update = now

    def _take_or_delay(self) -> float:
        """Consume a token and return 0, or return the seconds until one is available."""
        with self._lock:
            self._refill()
            if self.tokens >= 1:
                self.tokens -= 1
                return 0.0
            return (1 - self.tokens) / self.rate

    def try_acquire(self) -> bool:
        """Consume a token if one is available right now."""
        return self._take_or_delay() == 0.0

    def acquire(
        self,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Block until a token is available.

        Args:
            cancel_event: Shutdown signal; once set, the wait ends with Cancelled
            timeout: Maximum seconds to wait (None = wait indefinitely)

        Returns:
            True if a token was acquired, False if the timeout elapsed first

        Raises:
            Cancelled: If cancel_event is set before or during the wait
        """
        deadline = None if timeout is None else self._clock() + timeout
        wait_logged = False

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise Cancelled("rate limiter wait cancelled")

            delay = self._take_or_delay()
            if delay == 0.0:
                return True

            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning(f"Rate limit timeout after {timeout:.2f}s")
                    return False
                delay = min(delay, remaining)

            if not wait_logged:
                logger.debug(f"Rate limit reached, waiting ~{delay:.2f}s")
                wait_logged = True

            if cancel_event is not None:
                if cancel_event.wait(delay):
                    raise Cancelled("rate limiter wait cancelled")
            else:
                time.sleep(delay)

    def get_available_tokens(self) -> float:
        """Current token count after refilling."""
        with self._lock:
            self._refill()
            return self.tokens

    def reset(self) -> None:
        """Refill the bucket to capacity."""
        with self._lock:
            self.tokens = float(self.burst)
            self._last_update = self._clock()


@dataclass
class _ClientBucket:
    bucket: TokenBucket
    last_seen: float


class ClientRateLimiter:
    """Per-client token buckets with idle eviction.

    Example:
        >>> limiter = ClientRateLimiter(rate=0.5, burst=5)
        >>> limiter.allow("203.0.113.7")
        True
    """

    def __init__(
        self,
        rate: float,
        burst: int,
        *,
        idle_ttl: float = 600.0,
        cleanup_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not rate > 0:
            raise ValueError("rate must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = rate
        self.burst = burst
        self.idle_ttl = idle_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._clients: Dict[str, _ClientBucket] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    def allow(self, client_key: str) -> bool:
        """Consume a token from the client's bucket, creating it on first use."""
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup >= self.cleanup_interval:
                self._evict_idle(now)

            entry = self._clients.get(client_key)
            if entry is None:
                entry = _ClientBucket(
                    bucket=TokenBucket(self.rate, self.burst, clock=self._clock),
                    last_seen=now,
                )
                self._clients[client_key] = entry
            entry.last_seen = now

        allowed = entry.bucket.try_acquire()
        if not allowed:
            logger.warning(f"Rate limit exceeded for client {client_key}")
        return allowed

    def _evict_idle(self, now: float) -> None:
        stale = [key for key, entry in self._clients.items() if now - entry.last_seen > self.idle_ttl]
        for key in stale:
            del self._clients[key]
        self._last_cleanup = now
        if stale:
            logger.debug(f"Evicted {len(stale)} idle client buckets")

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
