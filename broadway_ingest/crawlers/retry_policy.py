"""Retry policy value object and the generic async retry driver.

The policy is plain data (attempt budget plus the delay before each retry);
the driver hands it to tenacity so every caller retries the same way.

Usage:
    policy = RetryPolicy(max_attempts=4, delays=(30.0, 60.0, 120.0))
    result = await run_with_retry(call_provider, policy, retry_on=(RateLimitedError,))
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
    wait_none,
)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to call an operation and how long to wait in between.

    Attributes:
        max_attempts: Total calls including the first one (>= 1).
        delays: Seconds to wait before retry 1, 2, ...; the last delay is
            reused if there are more retries than delays.
    """

    max_attempts: int = 4
    delays: tuple[float, ...] = (30.0, 60.0, 120.0)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_attempts > 1 and not self.delays:
            raise ValueError("a policy with retries needs at least one delay")
        if any(d < 0 for d in self.delays):
            raise ValueError("delays must be non-negative")

    @classmethod
    def from_delays(cls, delays: Sequence[float]) -> "RetryPolicy":
        """One attempt per delay plus the initial call."""
        return cls(max_attempts=len(delays) + 1, delays=tuple(float(d) for d in delays))

    @classmethod
    def single_attempt(cls) -> "RetryPolicy":
        return cls(max_attempts=1, delays=())

    @property
    def retries(self) -> int:
        return self.max_attempts - 1

    def delay_before(self, retry_number: int) -> float:
        """Delay before the given retry (1-based)."""
        if retry_number < 1 or not self.delays:
            return 0.0
        return self.delays[min(retry_number, len(self.delays)) - 1]

    def wait_strategy(self):
        if not self.delays:
            return wait_none()
        return wait_chain(*[wait_fixed(d) for d in self.delays])


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[Type[BaseException], ...],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[RetryCallState], None]] = None,
) -> T:
    """Call ``operation`` until it succeeds or the policy is exhausted.

    Only exceptions listed in ``retry_on`` trigger a retry; anything else
    (including cancellation) propagates immediately. When attempts run out
    the last exception is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt budget and delay sequence.
        retry_on: Exception types that are worth retrying.
        sleep: Awaitable sleep, injectable for tests.
        on_retry: Called before each sleep with tenacity's retry state.

    Returns:
        The operation's result.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception_type(retry_on),
        sleep=sleep,
        before_sleep=on_retry,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await operation()
    return result
