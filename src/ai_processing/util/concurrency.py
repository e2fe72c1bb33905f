"""Async helpers for running blocking operations off the event loop."""

from __future__ import annotations

import asyncio
import contextvars
import functools
from concurrent.futures import Executor
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


async def run_blocking(
    executor: Optional[Executor], func: Callable[..., T], *args, **kwargs
) -> T:
    """Run ``func`` on ``executor``, or on the default thread pool when none is given.

    The caller's context variables (including bound log context) are carried
    into the worker, matching :func:`asyncio.to_thread`.
    """

    if executor is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    loop = asyncio.get_running_loop()
    context = contextvars.copy_context()
    call = functools.partial(context.run, func, *args, **kwargs)
    return await loop.run_in_executor(executor, call)


__all__ = ["run_blocking"]
