"""
Asyncio helpers
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from bullrace import ctx

T = TypeVar("T")
P = ParamSpec("P")


def ensure_async(func: Callable[P, T], *args, **kwargs) -> Awaitable[T]:
    """
    Ensures that the provided function is ran asynchronously

    Synchronous callables are handed to the default executor. Keyword
    arguments are bound before handing off since `run_in_executor` only
    forwards positional arguments.

    :param func: The function to run
    :return: A generated coroutine
    """
    if asyncio.iscoroutinefunction(func):
        return func(*args, **kwargs)

    def _call() -> T:
        return func(*args, **kwargs)

    return ctx.loop_ctx.get().run_in_executor(None, _call)
