"""Retry policy and shared backoff state for remote calls.

A :class:`RetryPolicy` bundles the three decisions every retry loop makes
(how many attempts, how long to wait, which errors qualify) and turns them
into a ``tenacity.AsyncRetrying`` controller. A :class:`BackoffGate` is the
piece of state that concurrent callers of one remote service share: when
any caller is told to back off, every caller waits out the same window.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

logger = logging.getLogger(__name__)


def _never(exc: BaseException) -> bool:
    return False


def _no_hint(exc: BaseException) -> float | None:
    return None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with an optional server-directed delay.

    Attributes
    ----------
    max_retries:
        Retries after the first attempt; the call is tried at most
        ``max_retries + 1`` times.
    base_delay:
        Delay in seconds before the first retry.
    max_delay:
        Cap on the computed exponential delay (server hints are not capped).
    jitter:
        Upper bound of a uniform random delay added to computed delays.
    is_retryable:
        Predicate selecting the exceptions that are retried.
    retry_after:
        Extracts a server-provided delay in seconds from an exception,
        or returns ``None`` when the error carries no hint.
    """

    max_retries: int = 5
    base_delay: float = 1.5
    max_delay: float = 15.0
    jitter: float = 0.0
    is_retryable: Callable[[BaseException], bool] = field(default=_never)
    retry_after: Callable[[BaseException], float | None] = field(default=_no_hint)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def compute_delay(self, attempt: int, exc: BaseException | None = None) -> float:
        """Seconds to wait after the zero-based *attempt* failed with *exc*."""
        if exc is not None:
            hinted = self.retry_after(exc)
            if hinted is not None:
                return max(hinted, 0.0)
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def retrying(
        self,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        label: str = "remote call",
    ) -> AsyncRetrying:
        """Build a tenacity controller enforcing this policy.

        The last exception is re-raised unchanged once attempts run out or
        when it is not retryable.
        """

        def _wait(retry_state: RetryCallState) -> float:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            return self.compute_delay(retry_state.attempt_number - 1, exc)

        def _before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.warning(
                "%s failed (%s); waiting %.1fs before retry %d/%d",
                label,
                exc,
                delay,
                retry_state.attempt_number,
                self.max_retries,
            )

        return AsyncRetrying(
            sleep=sleep,
            stop=stop_after_attempt(self.max_attempts),
            wait=_wait,
            retry=retry_if_exception(self.is_retryable),
            before_sleep=_before_sleep,
            reraise=True,
        )


class BackoffGate:
    """Shared "not before" instant for one remote service.

    ``hold(seconds)`` pushes the instant forward and waits it out;
    ``wait()`` is called before every attempt so that callers who were not
    themselves rate limited still respect the window.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._resume_at = 0.0

    @property
    def remaining(self) -> float:
        return max(self._resume_at - self._clock(), 0.0)

    async def wait(self) -> None:
        delay = self.remaining
        if delay > 0:
            await self._sleep(delay)

    async def hold(self, seconds: float) -> None:
        self._resume_at = max(self._resume_at, self._clock() + seconds)
        await self.wait()
