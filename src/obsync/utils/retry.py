"""Fixed-delay retry combinator for network requests."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from obsync.exceptions import AppBaseError
from obsync.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def is_retriable(error: BaseException) -> bool:
    """Only errors flagged retriable by the adapters are retried."""
    return isinstance(error, AppBaseError) and error.retriable


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    delay: float,
    description: str = "request",
    should_retry: Callable[[BaseException], bool] = is_retriable,
) -> T:
    """
    Run ``operation`` up to ``attempts`` times, sleeping ``delay`` seconds between tries.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        attempts: Total number of attempts (at least one is always made)
        delay: Seconds to wait between attempts
        description: Label used in log messages
        should_retry: Predicate deciding whether a failure is transient

    Returns:
        The first successful result

    Raises:
        The last error raised by ``operation`` once attempts are exhausted,
        or immediately for errors ``should_retry`` rejects
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= attempts or not should_retry(e):
                raise
            logger.debug(
                "Retrying after transient failure",
                request=description,
                attempt=attempt,
                attempts=attempts,
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
