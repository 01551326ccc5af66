"""Bridges between synchronous Celery workers and the async token manager."""

import asyncio
from functools import wraps
from typing import Callable, Optional, Sequence

from ..constants.retry_policy import DEFAULT_RETRY_SCHEDULE

# One loop per worker process. asyncpg connections and the token manager's
# in-flight refresh tasks are bound to the loop that created them.
_worker_loop: Optional[asyncio.AbstractEventLoop] = None


def get_worker_loop() -> asyncio.AbstractEventLoop:
    global _worker_loop
    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()
    return _worker_loop


def close_worker_loop() -> None:
    """Close and forget the worker loop; the next task starts a fresh one."""
    global _worker_loop
    if _worker_loop is not None and not _worker_loop.is_closed():
        _worker_loop.close()
        asyncio.set_event_loop(None)
    _worker_loop = None


def async_task(coroutine_func: Callable):
    """Run an async task body to completion on the shared worker loop."""

    @wraps(coroutine_func)
    def wrapper(*args, **kwargs):
        loop = get_worker_loop()
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coroutine_func(*args, **kwargs))

    return wrapper


def get_retry_delay(retry_index: int, schedule: Sequence[int] | None = None) -> int:
    """Countdown in seconds for the given retry; the last delay repeats."""
    delays = schedule or DEFAULT_RETRY_SCHEDULE
    return delays[min(max(retry_index, 0), len(delays) - 1)]
