"""Token bucket rate limiter shared by concurrent status pollers."""

import threading
import time


class RateLimiter:
    """Token bucket rate limiter.

    Allows up to `burst` tokens to be consumed instantly, then
    refills at `rate` tokens per second. One instance is shared by
    every polling task so the total call rate stays bounded no
    matter how many tables are being waited on.
    """

    def __init__(self, rate: float = 1.0, burst: int = 1):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self._tokens: float = float(burst)
        self._max_tokens: float = float(burst)
        self._rate: float = rate
        self._last_refill: float = time.monotonic()
        self._lock = threading.Lock()
        self._total_allowed: int = 0

    @classmethod
    def from_delay(cls, delay: float) -> "RateLimiter":
        """One call every `delay` seconds."""
        return cls(rate=1.0 / delay if delay > 0 else 1000.0, burst=1)

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def total_allowed(self) -> int:
        return self._total_allowed

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self._last_refill
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._rate)
        self._last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Try to consume tokens. Returns True if allowed, False if limited."""
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                self._total_allowed += 1
                return True
            return False

    def retry_after(self) -> float:
        """Return seconds until at least 1 token is available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                return 0.0
            return (1.0 - self._tokens) / self._rate

    def acquire(self, stop_event: threading.Event = None) -> bool:
        """Block until a token is available.

        Returns False without consuming when `stop_event` is set first.
        """
        while not self.consume():
            delay = self.retry_after()
            if stop_event is not None:
                if stop_event.wait(delay):
                    return False
            else:
                time.sleep(delay)
        return True

