"""
RETRY UTILITY
=============

Calls an async attempt function and, while its result is classified as
retryable, tries again with exponential backoff. Used by the upstream client
so temporary rate limits (429), server errors (5xx) or network blips don't
immediately fail the request.

Waits use an awaitable sleep, so a retrying request never blocks the event
loop for other requests.

Example:
  result = await with_retry(
      lambda: client.attempt(request),
      is_retryable=lambda outcome: outcome.retryable,
      max_retries=3,
      initial_delay=1.0,
  )
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar


logger = logging.getLogger("AURA")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, initial_delay: float = 1.0) -> float:
    """Delay after failed attempt number `attempt` (1-based): initial_delay * 2**attempt."""
    return initial_delay * (2 ** attempt)


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    is_retryable: Callable[[T], bool],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await fn() up to max_retries times. Returns the first result that is not
    retryable, or the last (retryable) result once the budget is spent; the
    caller decides what an exhausted budget means.

    Delays between attempts are 2s, 4s, 8s, ... for initial_delay=1.0.
    """
    attempt = 0
    while True:
        result = await fn()
        if not is_retryable(result):
            return result

        attempt += 1
        if attempt >= max_retries:
            return result

        delay = backoff_delay(attempt, initial_delay)
        logger.warning(
            "Attempt %s/%s failed (%s). Retrying in %.1fs",
            attempt,
            max_retries,
            result,
            delay,
        )
        await sleep(delay)
