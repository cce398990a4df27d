"""Token bucket shared by every market data request in the process."""

from __future__ import annotations

import logging
import threading
import time
from functools import lru_cache
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from ..config import RateLimitSettings

LOGGER = logging.getLogger(__name__)


class TokenBucket:
    """Blocking token bucket.

    Tokens refill continuously at ``refill_per_second`` up to ``capacity``.
    :meth:`acquire` takes one token, sleeping outside the lock until enough
    has accrued. The clock and sleep functions are injectable so tests can run
    without wall-clock delays.
    """

    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must allow at least one token")
        if refill_per_second <= 0:
            raise ValueError("refill_per_second must be positive")

        self.capacity = float(capacity)
        self.refill_per_second = float(refill_per_second)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(capacity)
        self._updated_at = clock()

    @classmethod
    def per_minute(cls, requests_per_minute: float, burst: float = 1, **kwargs) -> "TokenBucket":
        return cls(burst, requests_per_minute / 60.0, **kwargs)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._updated_at = now

    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Take one token, blocking until it is granted.

        Returns ``False`` when ``timeout`` seconds pass without a token.
        """

        deadline = None if timeout is None else self._clock() + timeout
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return True
                wait = (1 - self._tokens) / self.refill_per_second

            if deadline is not None:
                remaining = deadline - self._clock()
                if remaining <= 0 or wait > remaining:
                    return False

            LOGGER.debug("Rate limiter waiting %.2fs for a token", wait)
            self._sleep(wait)


@lru_cache(maxsize=None)
def _shared_bucket(requests_per_minute: float, burst: float) -> TokenBucket:
    LOGGER.info(
        "Initialising market data rate limiter: %s requests/minute (burst %s)",
        requests_per_minute,
        burst,
    )
    return TokenBucket.per_minute(requests_per_minute, burst)


def get_rate_limiter(limits: Optional["RateLimitSettings"] = None) -> TokenBucket:
    """Return the process-wide bucket for the given provider quota.

    ``limits`` defaults to the active environment's ``rate_limit`` section.
    Every caller asking for the same quota shares one bucket.
    """

    if limits is None:
        from ..config import get_settings

        limits = get_settings().rate_limit
    return _shared_bucket(limits.requests_per_minute, limits.burst)


def reset_rate_limiter() -> None:
    """Drop the process-wide buckets. Intended for tests only."""

    _shared_bucket.cache_clear()


__all__ = ["TokenBucket", "get_rate_limiter", "reset_rate_limiter"]
