"""
Retry-with-backoff for cache producers.

Transient failures (network errors, 408, 429, 5xx) are retried with a
linear backoff of ``base_delay * attempt``. The backoff sleep is cancellable
by the same token as the producer call.
"""
import functools
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from .cancellation import CancellationToken, cancellable_sleep
from .core import RetryPolicy
from .errors import is_transient_error

logger = logging.getLogger("cache.retry")

Producer = Callable[[], Awaitable[Any]]
SleepFn = Callable[..., Awaitable[None]]


async def _attempt(producer: Producer, token: Optional[CancellationToken]) -> Any:
    if token is None:
        return await producer()

    token.raise_if_cancelled()
    return await token.guard(producer())


async def run_with_retry(
    producer: Producer,
    policy: RetryPolicy,
    token: Optional[CancellationToken] = None,
    sleep: SleepFn = cancellable_sleep,
) -> Any:
    """
    Call ``producer`` until it succeeds or the policy gives up.

    Args:
        producer: Zero-argument coroutine function
        policy: Number of extra attempts and base backoff delay
        token: Cancellation scope shared by the producer and the backoff
        sleep: ``sleep(delay, token=...)`` coroutine used between attempts

    Returns:
        The producer's value

    Raises:
        The last failure once retries are exhausted, or the first
        non-transient failure (cancellation included) right away.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.count + 1),
        wait=wait_incrementing(start=policy.base_delay, increment=policy.base_delay),
        retry=retry_if_exception(is_transient_error),
        sleep=functools.partial(sleep, token=token),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return await retrying(_attempt, producer, token)
