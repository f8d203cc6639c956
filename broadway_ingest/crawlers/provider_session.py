"""Per-provider session state shared by every request a gateway serves.

GatewayState replaces module-level globals: each gateway owns one, so
independent pipelines (and tests) never see each other's throttling or
down flags. Every read-modify-write of a ProviderSession happens under that
provider's asyncio.Lock.

Rate-limit ratchet:
- The minimum inter-call delay depends on the cumulative number of
  rate-limit rejections seen for the provider in this session.
- normal (< cautious_after) -> cautious (< slow_after) -> slow.
- The count only grows, so the delay never decreases until reset().

Cooldown:
- A hard block marks the provider down until ``retry_at``.
- After that, exactly one request is admitted as a probe. Success restores
  the provider; failure restarts the cooldown.
"""

import asyncio
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Optional

from loguru import logger

from broadway_ingest.data_management.schemas import ProviderKind


class RateTier(str, Enum):
    NORMAL = "normal"
    CAUTIOUS = "cautious"
    SLOW = "slow"


class Admission(str, Enum):
    """Whether a request may call a provider right now."""

    ALLOWED = "allowed"
    PROBE = "probe"  # single call after cooldown, no retries
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RateLimitTiers:
    """Delay tiers for the rate-limit ratchet.

    Attributes:
        normal: Seconds between calls before any rate limit was seen.
        cautious: Seconds between calls once ``cautious_after`` rate limits were seen.
        slow: Seconds between calls once ``slow_after`` rate limits were seen.
        window_seconds: Length of the sliding call window.
        max_calls_per_window: Optional cap on calls inside the window.
    """

    normal: float = 7.0
    cautious: float = 12.0
    slow: float = 20.0
    cautious_after: int = 2
    slow_after: int = 5
    window_seconds: float = 60.0
    max_calls_per_window: Optional[int] = None

    def __post_init__(self) -> None:
        if not (self.normal <= self.cautious <= self.slow):
            raise ValueError("tier delays must be non-decreasing")
        if not (0 < self.cautious_after <= self.slow_after):
            raise ValueError("tier thresholds must satisfy 0 < cautious_after <= slow_after")

    def tier_for(self, rate_limit_count: int) -> RateTier:
        if rate_limit_count >= self.slow_after:
            return RateTier.SLOW
        if rate_limit_count >= self.cautious_after:
            return RateTier.CAUTIOUS
        return RateTier.NORMAL

    def delay_for(self, rate_limit_count: int) -> float:
        tier = self.tier_for(rate_limit_count)
        if tier is RateTier.SLOW:
            return self.slow
        if tier is RateTier.CAUTIOUS:
            return self.cautious
        return self.normal


@dataclass
class ProviderSession:
    """Mutable state for one provider. Only GatewayState touches it."""

    kind: ProviderKind
    recent_calls: Deque[float] = field(default_factory=deque)
    rate_limit_count: int = 0
    down: bool = False
    retry_at: float = 0.0
    probe_in_flight: bool = False
    last_error: Optional[str] = None

    def prune(self, now: float, window_seconds: float) -> None:
        while self.recent_calls and self.recent_calls[0] < now - window_seconds:
            self.recent_calls.popleft()


@dataclass
class GatewayStats:
    """Session counters for observability."""

    calls: Counter = field(default_factory=Counter)
    successes: Counter = field(default_factory=Counter)
    rate_limits: int = 0
    backoff_retries: int = 0
    fallbacks: int = 0
    hard_blocks: int = 0
    errors: int = 0

    def reset(self) -> None:
        self.calls.clear()
        self.successes.clear()
        self.rate_limits = 0
        self.backoff_retries = 0
        self.fallbacks = 0
        self.hard_blocks = 0
        self.errors = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "calls": {kind.value: n for kind, n in self.calls.items()},
            "successes": {kind.value: n for kind, n in self.successes.items()},
            "rate_limits": self.rate_limits,
            "backoff_retries": self.backoff_retries,
            "fallbacks": self.fallbacks,
            "hard_blocks": self.hard_blocks,
            "errors": self.errors,
        }


class GatewayState:
    """Provider sessions, their locks and the session counters."""

    def __init__(
        self,
        tiers: Optional[RateLimitTiers] = None,
        cooldown_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize gateway state.

        Args:
            tiers: Delay tiers for the rate-limit ratchet
            cooldown_seconds: How long a hard-blocked provider stays down
            clock: Monotonic time source, injectable for tests
        """
        self.tiers = tiers or RateLimitTiers()
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.sessions: dict[ProviderKind, ProviderSession] = {
            kind: ProviderSession(kind) for kind in ProviderKind
        }
        self._locks: dict[ProviderKind, asyncio.Lock] = {
            kind: asyncio.Lock() for kind in ProviderKind
        }
        self.stats = GatewayStats()
        self._logger = logger.bind(component="GatewayState")

    async def admit(self, kind: ProviderKind) -> Admission:
        """Decide whether a request may call ``kind`` now."""
        async with self._locks[kind]:
            session = self.sessions[kind]
            if not session.down:
                return Admission.ALLOWED
            if session.probe_in_flight or self.clock() < session.retry_at:
                return Admission.SKIPPED
            session.probe_in_flight = True
            self._logger.info(f"Cooldown elapsed for {kind.value}, admitting probe call")
            return Admission.PROBE

    async def reserve_slot(self, kind: ProviderKind) -> float:
        """Reserve the next call slot for ``kind``.

        The slot is recorded immediately so concurrent requests queue behind
        it; the caller sleeps for the returned number of seconds outside the
        lock.
        """
        async with self._locks[kind]:
            session = self.sessions[kind]
            now = self.clock()
            session.prune(now, self.tiers.window_seconds)

            earliest = now
            if session.recent_calls:
                delay = self.tiers.delay_for(session.rate_limit_count)
                earliest = max(earliest, session.recent_calls[-1] + delay)

            cap = self.tiers.max_calls_per_window
            if cap and len(session.recent_calls) >= cap:
                earliest = max(earliest, session.recent_calls[-cap] + self.tiers.window_seconds)

            session.recent_calls.append(earliest)
            return earliest - now

    async def record_rate_limit(self, kind: ProviderKind) -> RateTier:
        """Count a rate-limit rejection and return the provider's new tier."""
        async with self._locks[kind]:
            session = self.sessions[kind]
            before = self.tiers.tier_for(session.rate_limit_count)
            session.rate_limit_count += 1
            self.stats.rate_limits += 1
            after = self.tiers.tier_for(session.rate_limit_count)
            if after is not before:
                self._logger.warning(
                    f"{kind.value} moved to {after.value} tier after "
                    f"{session.rate_limit_count} rate limits "
                    f"({self.tiers.delay_for(session.rate_limit_count)}s between calls)"
                )
            return after

    async def mark_down(self, kind: ProviderKind, reason: str) -> None:
        """Mark ``kind`` down and (re)start its cooldown."""
        async with self._locks[kind]:
            session = self.sessions[kind]
            session.down = True
            session.probe_in_flight = False
            session.retry_at = self.clock() + self.cooldown_seconds
            session.last_error = reason
            self._logger.warning(
                f"{kind.value} marked down for {self.cooldown_seconds:.0f}s: {reason}"
            )

    async def mark_healthy(self, kind: ProviderKind) -> None:
        """Record a successful call, restoring a provider that was probed."""
        async with self._locks[kind]:
            session = self.sessions[kind]
            if session.down:
                self._logger.info(f"{kind.value} restored after successful probe")
            session.down = False
            session.probe_in_flight = False
            session.last_error = None

    def release_probe(self, kind: ProviderKind) -> None:
        """Give up a probe slot without a verdict (the probing request was cancelled).

        Runs without the lock: it never suspends, so no other coroutine can
        interleave with the update.
        """
        self.sessions[kind].probe_in_flight = False

    def current_delay(self, kind: ProviderKind) -> float:
        return self.tiers.delay_for(self.sessions[kind].rate_limit_count)

    def is_down(self, kind: ProviderKind) -> bool:
        return self.sessions[kind].down

    def reset(self) -> None:
        """Forget all sessions and counters (test isolation, new crawl run)."""
        self.sessions = {kind: ProviderSession(kind) for kind in ProviderKind}
        self.stats.reset()

    def snapshot(self) -> dict[str, Any]:
        now = self.clock()
        return {
            kind.value: {
                "rate_limit_count": s.rate_limit_count,
                "tier": self.tiers.tier_for(s.rate_limit_count).value,
                "delay_seconds": self.tiers.delay_for(s.rate_limit_count),
                "down": s.down,
                "cooldown_remaining": max(0.0, s.retry_at - now) if s.down else 0.0,
                "last_error": s.last_error,
            }
            for kind, s in self.sessions.items()
        }
