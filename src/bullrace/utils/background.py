"""
Background task tracking

Work that is started outside of a request, such as mirroring an
automatic time limit finish to storage or running event callbacks,
is registered here so that it can be drained on shutdown.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from bullrace import ctx
from bullrace.utils.asyncio import ensure_async

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_tasks: set[asyncio.Task] = set()


def _task_done(task: asyncio.Task) -> None:
    _tasks.discard(task)

    if not task.cancelled() and (ex := task.exception()) is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=ex)


def add_background_task(
    func: Callable[..., _T], *args: Any, **kwargs: Any
) -> asyncio.Task[_T]:
    """
    Schedules a function to run as a background task.

    :param func: The function to run as a background task
    :return: The created task
    """

    async def _wrapper(awaitable: Awaitable[_T]) -> _T:
        return await awaitable

    awaitable = ensure_async(func, *args, **kwargs)

    task = ctx.loop_ctx.get().create_task(_wrapper(awaitable))
    _tasks.add(task)
    task.add_done_callback(_task_done)

    return task


async def shutdown(timeout: float) -> None:
    """
    Wait for all background tasks to complete. Tasks still running
    after the timeout are cancelled.

    :param timeout: The duration to wait for background tasks to finish
    """
    try:
        async with asyncio.timeout(timeout):
            while _tasks:
                await asyncio.sleep(0)

    except asyncio.TimeoutError:
        logger.warning("%d background tasks did not finish in time", len(_tasks))
        await _cancel_tasks(tuple(_tasks))


async def _cancel_tasks(tasks: Iterable[asyncio.Task]) -> None:
    """
    Cancel the provided tasks and wait for them to unwind

    :param tasks: The tasks to cancel
    """
    for task in tasks:
        task.cancel()

    await asyncio.gather(*tasks, return_exceptions=True)
