"""
Utility functions.
"""

import asyncio
import posixpath
import random
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

RETRY_STATUSES = (429, 500, 502, 503, 504)

TaggedResult = Tuple[bool, Any, Optional[int]]


async def retry_with_backoff_async(
    func: Callable[[], Awaitable[TaggedResult]],
    max_retries: int = 4,
    initial_delay: float = 2.0,
    backoff_factor: float = 2.0,
    retry_on_status: Iterable[int] = RETRY_STATUSES,
    max_delay: float = 60.0
) -> TaggedResult:
    """
    Call `func` until it succeeds, fails with a final status, or retries run out.

    `func` returns (success, result, status_code). A raised exception counts as
    a transient failure with result str(exc) and no status code.

    Returns:
        The last (success, result, status_code) seen
    """
    retry_on_status = set(retry_on_status)
    outcome: TaggedResult = (False, None, None)

    for attempt in range(max_retries + 1):
        try:
            outcome = await func()
        except Exception as e:
            outcome = (False, str(e), None)

        success, _, status_code = outcome
        # Status codes outside the retry list are final
        if success or (status_code and status_code not in retry_on_status):
            return outcome

        if attempt < max_retries:
            delay = min(initial_delay * backoff_factor ** attempt, max_delay)
            await asyncio.sleep(delay + random.uniform(0, delay / 10))

    return outcome


def url_dirname(url: str) -> str:
    """
    Directory portion of a URL.
    Example: https://shop.test/uploads/feed-abc.xml -> https://shop.test/uploads
    """
    return posixpath.dirname(url or "")
