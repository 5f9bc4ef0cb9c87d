from __future__ import annotations

import functools
import logging
from typing import Callable

from ..context import Context
from .types import ErrorTarget, PanicError, is_error

log = logging.getLogger(__name__)

Task = Callable[[Context], None]


def task_name(task: Task) -> str:
    """Best-effort readable name for a task, used in logs and thread names."""
    name = getattr(task, "__name__", None)
    if name is None and isinstance(task, functools.partial):
        name = getattr(task.func, "__name__", None)
    return name or type(task).__name__


def catch_panic(task: Task) -> Task:
    """
    Wrap a task so that a panic never escapes it.

    Ordinary ``Exception``s pass through unchanged. Any other ``BaseException``
    (``SystemExit``, ``KeyboardInterrupt`` raised inside the task, ...) is turned
    into a :class:`PanicError` chained to the original.

    Usage example
    -------------
        safe = catch_panic(lambda ctx: sys.exit(3))
        safe(ctx)  # raises PanicError("panic: SystemExit(3)")
    """

    @functools.wraps(task)
    def guarded(ctx: Context) -> None:
        try:
            task(ctx)
        except Exception:
            raise
        except BaseException as exc:
            raise PanicError(exc) from exc

    return guarded


def filter_errors(task: Task, *filtered: ErrorTarget) -> Task:
    """
    Wrap a task so that errors matching any of `filtered` count as success.

    Matching uses :func:`is_error`, so wrapped errors match as well.

    Usage example
    -------------
        quiet = filter_errors(worker, Canceled)
    """

    @functools.wraps(task)
    def filtering(ctx: Context) -> None:
        try:
            task(ctx)
        except Exception as exc:
            if any(is_error(exc, target) for target in filtered):
                log.debug("task %s: filtered error %r", task_name(task), exc)
                return
            raise

    return filtering


def log_errors(task: Task) -> Task:
    """Wrap a task so that a raised error is logged before it propagates unchanged."""

    @functools.wraps(task)
    def logging_task(ctx: Context) -> None:
        try:
            task(ctx)
        except Exception as exc:
            log.warning("run %s failed: %s", task_name(task), exc)
            raise

    return logging_task
