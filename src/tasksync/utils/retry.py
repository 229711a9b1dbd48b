"""
Bounded retry for fallible async store calls.

    policy = RetryPolicy(max_attempts=3, delay_seconds=0.1)
    rows = await call_with_retry(lambda: fetch(), policy, on_retry=reopen)

Waits grow linearly (delay * attempt). `on_retry` runs between attempts and
is where the caller recovers its resources (e.g. reopening a connection);
the helper itself knows nothing about connections. Errors outside
`retry_on` propagate on the first failure.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 0.1
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return max(0.0, self.delay_seconds * attempt)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    on_retry: Optional[Callable[[BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await `operation()` up to `policy.max_attempts` times.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        policy: Attempts, linear delay and the exception types worth retrying.
        on_retry: Called with the error before each new attempt.
        sleep: Injectable sleep (tests pass an AsyncMock).

    Returns:
        The first successful result.

    Raises:
        The last error once attempts are exhausted, or any error not in
        `policy.retry_on` immediately.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except policy.retry_on as exc:
            if attempt >= attempts:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Attempt %d/%d failed, retrying in %.2fs: %s",
                attempt, attempts, delay, exc,
            )
            if on_retry is not None:
                on_retry(exc)
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
