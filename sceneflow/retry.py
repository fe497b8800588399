"""Retry-with-backoff combinator shared by locator lookups and submission steps."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from sceneflow.clock import Clock

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    clock: Clock,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 1.5,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
    label: str = "operation",
) -> T:
    """
    Await ``operation`` until it succeeds or ``max_attempts`` is exhausted.

    The wait before attempt ``n + 1`` is ``base_delay * backoff_factor ** (n - 1)``
    seconds; a factor of 1.0 gives constant spacing. The last error is re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    last_error: BaseException | None = None
    for attempt in range(max_attempts):
        try:
            return await operation()
        except retry_on as e:
            last_error = e
            if attempt + 1 >= max_attempts:
                break
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt + 1, max_attempts, e)
            if on_retry is not None:
                on_retry(attempt, e)
            await clock.sleep(base_delay * (backoff_factor ** attempt))
    assert last_error is not None
    raise last_error
