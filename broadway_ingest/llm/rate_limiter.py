"""Token bucket throttling for LLM provider calls."""

import threading
import time
from typing import Callable, Optional

from loguru import logger


class TokenBucket:
    """
    Continuously refilling token bucket.

    Attributes:
        capacity: Maximum number of tokens the bucket can hold
        refill_rate: Tokens added per second
        tokens: Current number of tokens available
        last_refill: Clock reading at the last refill
        lock: Thread lock for safe concurrent access
    """

    def __init__(
        self,
        capacity: int,
        refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            capacity: Maximum tokens (e.g., 15 for 15 RPM)
            refill_rate: Tokens per second (e.g., 0.25 = 15 per minute)
            clock: Monotonic time source
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.clock = clock
        self.tokens = float(capacity)
        self.last_refill = clock()
        self.lock = threading.Lock()

    def _refill(self) -> None:
        """Add the tokens accrued since the last refill. Caller holds the lock."""
        now = self.clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def available(self) -> float:
        with self.lock:
            self._refill()
            return self.tokens

    def acquire(self, tokens: int = 1) -> bool:
        """
        Take ``tokens`` from the bucket if there are enough.

        Returns:
            True if tokens were acquired, False if insufficient tokens available
        """
        with self.lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return True
            return False


class RateLimiter:
    """
    Requests-per-minute and tokens-per-minute limits for one LLM provider.

    A request proceeds only when both buckets can cover it; otherwise
    nothing is consumed and the caller moves on to another provider.

    Attributes:
        name: Provider name used in log messages
        rpm_bucket: Token bucket for request rate limiting
        tpm_bucket: Token bucket for token rate limiting
    """

    def __init__(
        self,
        max_rpm: Optional[int] = None,
        max_tpm: Optional[int] = None,
        name: str = "llm",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_rpm: Maximum requests per minute (defaults to settings)
            max_tpm: Maximum tokens per minute (defaults to settings)
            name: Provider name for logs
            clock: Monotonic time source shared by both buckets
        """
        from broadway_ingest.config.settings import settings

        rpm = max_rpm or settings.max_rpm
        tpm = max_tpm or settings.max_tpm
        self.name = name
        self.rpm_bucket = TokenBucket(capacity=rpm, refill_rate=rpm / 60.0, clock=clock)
        self.tpm_bucket = TokenBucket(capacity=tpm, refill_rate=tpm / 60.0, clock=clock)
        self._lock = threading.Lock()

        logger.debug(f"RateLimiter[{name}] initialized: {rpm} RPM, {tpm:,} TPM")

    def can_proceed(self, token_count: int) -> bool:
        """
        Reserve one request and ``token_count`` tokens if both limits allow it.

        Args:
            token_count: Estimated tokens the request will consume

        Returns:
            True if the request may go ahead, False if throttled
        """
        with self._lock:
            if self.rpm_bucket.available() < 1:
                logger.warning(f"{self.name}: RPM limit reached, request throttled")
                return False

            tpm_available = self.tpm_bucket.available()
            if tpm_available < token_count:
                logger.warning(
                    f"{self.name}: TPM limit reached, request throttled "
                    f"(need {token_count}, have {tpm_available:.0f})"
                )
                return False

            self.rpm_bucket.acquire(1)
            self.tpm_bucket.acquire(token_count)
            return True


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token) for TPM accounting."""
    return max(1, len(text) // 4)
