"""Bounded retry with exponential backoff."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings. All durations are in seconds."""

    max_retries: int = 3
    initial_backoff: float = 1.0
    backoff_factor: float = 2.0
    max_backoff: float = 30.0
    max_total_timeout: Optional[float] = 120.0  # None disables the overall budget


class RetryError(Exception):
    """Base class for retry aborts."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.last_error = last_error


class MaxRetriesExceededError(RetryError):
    """All attempts failed."""


class TotalTimeoutExceededError(RetryError):
    """The policy's wall-clock budget ran out before the next attempt."""


class RetryCancelledError(RetryError):
    """The caller cancelled the operation."""

    def __init__(self, reason: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(f"cancelled: {reason}", last_error)
        self.reason = reason


class CancellationToken:
    """Cancellation signal shared between a caller and retrying operations."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


def retry_on_any_error(error: BaseException) -> bool:
    """Predicate for operations whose every failure is worth another try."""
    return True


def next_backoff(current: float, policy: RetryPolicy) -> float:
    return min(current * policy.backoff_factor, policy.max_backoff)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    should_retry: Callable[[Exception], bool],
    policy: RetryPolicy,
    *,
    cancel: Optional[CancellationToken] = None,
    wait_override: Optional[Callable[[Exception], Optional[float]]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Run ``operation`` until it succeeds or the policy gives up.

    Makes at most ``policy.max_retries + 1`` attempts. The first attempt runs
    immediately; between attempts the executor sleeps for the current
    backoff, which then grows by ``backoff_factor`` up to ``max_backoff``.

    Args:
        operation: Zero-argument coroutine function performing one attempt.
        should_retry: Decides whether a failed attempt may be repeated. When
            it returns False the original exception is re-raised as is.
        policy: Attempt count, backoff curve and total budget.
        cancel: Checked before every attempt and while sleeping.
        wait_override: Optional hook returning a delay (seconds) that replaces
            the computed backoff for the next wait, e.g. from ``Retry-After``.
        sleep: Awaitable sleep, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Raises:
        RetryCancelledError: The token was cancelled.
        TotalTimeoutExceededError: ``max_total_timeout`` elapsed.
        MaxRetriesExceededError: Every attempt failed with a retryable error.
    """
    current_backoff = policy.initial_backoff
    start = clock()
    last_error: Optional[Exception] = None

    for attempt in range(policy.max_retries + 1):
        if cancel is not None and cancel.cancelled:
            raise RetryCancelledError(cancel.reason or "cancelled", last_error)

        elapsed = clock() - start
        if policy.max_total_timeout is not None and elapsed > policy.max_total_timeout:
            raise TotalTimeoutExceededError(
                f"exceeded maximum total timeout of {policy.max_total_timeout}s", last_error
            ) from last_error

        try:
            return await operation()
        except Exception as e:
            last_error = e

        if not should_retry(last_error):
            raise last_error

        if attempt == policy.max_retries:
            break

        delay = current_backoff
        if wait_override is not None:
            override = wait_override(last_error)
            if override is not None:
                delay = override

        if policy.max_total_timeout is not None:
            remaining = policy.max_total_timeout - (clock() - start)
            delay = max(0.0, min(delay, remaining))

        logger.warning(
            f"Attempt {attempt + 1}/{policy.max_retries + 1} failed ({last_error}), "
            f"retrying in {delay:.2f}s"
        )
        await _wait(delay, cancel, sleep)

        current_backoff = next_backoff(current_backoff, policy)

    raise MaxRetriesExceededError("max retries exceeded", last_error) from last_error


async def _wait(
    delay: float,
    cancel: Optional[CancellationToken],
    sleep: Callable[[float], Awaitable[None]],
) -> None:
    """Sleep for ``delay`` seconds, waking early if ``cancel`` fires."""
    if cancel is None:
        await sleep(delay)
        return

    sleeper = asyncio.ensure_future(sleep(delay))
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, waiter, return_exceptions=True)

    if sleeper.done() and not sleeper.cancelled():
        sleeper.result()
