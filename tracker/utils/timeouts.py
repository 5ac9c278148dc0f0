"""
Bounded execution of network calls.

Every network-dependent profile operation races its fetch against a fixed
timeout. The fetch runs as its own task so it can be cancelled cooperatively,
and it is always awaited after cancellation so no request task outlives the
caller.
"""

import asyncio
from typing import Awaitable, TypeVar

from tracker.utils.exceptions import FetchCancelledError, FetchTimeoutError

T = TypeVar("T")


async def _reap(task: asyncio.Future):
    task.cancel()
    # Wait for the task to observe cancellation; its outcome is discarded
    await asyncio.gather(task, return_exceptions=True)


async def bounded_fetch(awaitable: Awaitable[T], timeout: float) -> T:
    """
    Await a fetch with an upper time bound.

    Args:
        awaitable: Coroutine performing the fetch
        timeout: Seconds to wait before giving up

    Returns:
        The fetch result

    Raises:
        FetchTimeoutError: The fetch did not finish in time and was cancelled
        FetchCancelledError: The fetch task was cancelled by someone else
        asyncio.CancelledError: The caller was cancelled; the fetch is cancelled too
        Exception: Whatever the fetch itself raised
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        await _reap(task)
        raise

    if not done:
        await _reap(task)
        raise FetchTimeoutError(timeout)

    if task.cancelled():
        raise FetchCancelledError()

    return task.result()
