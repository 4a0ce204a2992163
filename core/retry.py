"""
Bounded retry with a fixed delay between attempts.

The scheduling loop never retries on its own: a pass calls an operation
through ``retry_async`` and receives a ``RetryOutcome`` describing what
happened. Converting a failed outcome into a domain error is left to the
caller, which knows the URL, cursor, and so on.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryOutcome(Generic[T]):
    """Result of a bounded retry: either a value or the last error."""
    value: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    delay: float,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    label: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome[T]:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Exceptions listed in ``retry_on`` are retried after ``delay`` seconds;
    anything else propagates immediately. The outcome of the final attempt
    is returned rather than raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"{label}: attempt {attempt}/{max_attempts}")
            value = await operation()
            return RetryOutcome(value=value, attempts=attempt)
        except retry_on as e:
            last_error = e
            logger.warning(
                f"{label}: attempt {attempt}/{max_attempts} failed "
                f"({type(e).__name__}: {e})"
            )
            if attempt < max_attempts:
                await sleep(delay)

    return RetryOutcome(error=last_error, attempts=max_attempts)
