"""Async utilities for bridging blocking store I/O to the orchestrator."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for every store call (cache file, ``db.json``, HTTP fetch) so the
    merge and diff code never waits on I/O.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_with_timeout(
    timeout: float | None,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread, bounded by *timeout* seconds.

    The worker thread cannot be interrupted; on timeout the caller stops
    waiting and the thread's eventual result is discarded.

    Args:
        timeout: Deadline in seconds, or ``None`` for no deadline.
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Raises:
        TimeoutError: If the deadline passes first.
    """
    if timeout is None:
        return await run_sync(func, *args, **kwargs)
    try:
        return await asyncio.wait_for(
            run_sync(func, *args, **kwargs), timeout
        )
    except asyncio.TimeoutError:
        logger.debug(
            "%s did not finish within %.1fs",
            getattr(func, "__name__", func),
            timeout,
        )
        raise TimeoutError(
            f"Operation timed out after {timeout:g}s"
        ) from None
