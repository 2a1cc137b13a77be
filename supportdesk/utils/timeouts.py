import asyncio
import logging
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_late_outcome(label: str):
    def callback(task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"{label} failed after its deadline: {error!r}")
        else:
            logger.warning(f"{label} completed after its deadline; "
                           f"result discarded")
    return callback


async def run_bounded(awaitable: Awaitable[T], timeout: float,
                      label: str) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    On timeout the call keeps running in the background and only its outcome
    is discarded; callers treat the timeout as a failure and move on.
    """
    task = asyncio.ensure_future(awaitable)
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if not done:
        task.add_done_callback(_log_late_outcome(label))
        raise asyncio.TimeoutError(f"{label} exceeded {timeout}s")
    return task.result()
