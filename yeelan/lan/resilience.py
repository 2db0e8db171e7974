"""Background tasks that report their own failure.

The command channel runs its receive loop and any async notification
handlers as detached tasks. Nobody awaits those tasks, so an exception
escaping one of them would otherwise surface only as "Task exception was
never retrieved" at garbage collection. ``supervised_task`` logs the crash
as soon as it happens and lets the owner react through ``on_error``.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, Coroutine

from loguru import logger

ErrorHook = Callable[[BaseException], Any]


def supervised_task(
    coro: Coroutine[Any, Any, Any],
    *,
    name: str = "",
    on_error: ErrorHook | None = None,
) -> asyncio.Task:
    """Schedule *coro* and report a crash instead of losing it.

    Cancellation is a normal ending and is not reported. Any other exception
    is logged, then passed to *on_error* (if given) from the task's
    done-callback, on the event loop thread.
    """
    task = asyncio.create_task(coro, name=name or None)
    task.add_done_callback(functools.partial(_report_crash, on_error=on_error))
    return task


def _report_crash(task: asyncio.Task, *, on_error: ErrorHook | None) -> None:
    if task.cancelled() or task.exception() is None:
        return
    exc = task.exception()
    logger.error("[Yeelight/Task] {} crashed: {!r}", task.get_name(), exc)
    if on_error is None:
        return
    try:
        on_error(exc)
    except Exception as hook_exc:
        logger.error("[Yeelight/Task] error hook for {} raised {!r}", task.get_name(), hook_exc)
