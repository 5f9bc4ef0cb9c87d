"""
Run a group of tasks until the first one finishes.

Every task gets its own worker thread and the same derived lifetime handle.
Whichever task returns or raises first decides the outcome of the group; the
handle is then cancelled so the others stop.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .context import Canceled, Context, with_cancel
from .errors.guards import Task, catch_panic, filter_errors, log_errors, task_name

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Outcome:
    index: int
    name: str
    error: Optional[BaseException]


def _execute(index: int, task: Task, ctx: Context, outcomes: "queue.Queue[_Outcome]") -> None:
    name = task_name(task)
    try:
        task(ctx)
    except BaseException as exc:  # delivered to the caller thread
        outcomes.put(_Outcome(index=index, name=name, error=exc))
    else:
        outcomes.put(_Outcome(index=index, name=name, error=None))


def _start(tasks: tuple[Task, ...], ctx: Context, outcomes: "queue.Queue[_Outcome]") -> list[threading.Thread]:
    threads = []
    for index, task in enumerate(tasks):
        thread = threading.Thread(
            target=_execute,
            args=(index, task, ctx, outcomes),
            name=f"task-{index}-{task_name(task)}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)
    return threads


def _first_finished(tasks: tuple[Task, ...], ctx: Context) -> tuple[_Outcome, list[threading.Thread]]:
    child, cancel = with_cancel(ctx)
    outcomes: "queue.Queue[_Outcome]" = queue.Queue()
    try:
        threads = _start(tasks, child, outcomes)
        first = outcomes.get()
    finally:
        cancel()
    log.debug("task %s finished first (error=%r), cancelled %d sibling(s)", first.name, first.error, len(tasks) - 1)
    return first, threads


def cancel_on_first_finish(ctx: Context, *tasks: Task) -> None:
    """
    Run `tasks` concurrently and return as soon as one of them finishes.

    The first task to return or raise cancels the shared child context; its
    outcome becomes the outcome of this call (the exact exception object is
    re-raised). Losing tasks are not waited for; they only see their context
    cancelled. Zero tasks return immediately.

    Usage example
    -------------
        cancel_on_first_finish(ctx, serve_http, consume_queue)
    """
    if not tasks:
        return
    first, _ = _first_finished(tasks, ctx)
    if first.error is not None:
        raise first.error


def cancel_on_first_finish_wait(ctx: Context, *tasks: Task, timeout: Optional[float] = None) -> None:
    """
    Like :func:`cancel_on_first_finish`, but drain the losing tasks before returning.

    `timeout` bounds the total drain time; tasks still running afterwards are
    logged and left behind.
    """
    if not tasks:
        return
    first, threads = _first_finished(tasks, ctx)
    deadline = None if timeout is None else time.monotonic() + timeout
    for thread in threads:
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        thread.join(remaining)
    stalled = [thread.name for thread in threads if thread.is_alive()]
    if stalled:
        log.warning("%d task(s) still running after cancel: %s", len(stalled), ", ".join(stalled))
    if first.error is not None:
        raise first.error


def run(ctx: Context, *tasks: Task, wait: bool = False, timeout: Optional[float] = None) -> None:
    """
    Run a task group the way long-running services should.

    Each task is wrapped as ``log_errors(filter_errors(catch_panic(task), Canceled))``
    before it is handed to the runner, so that:

    - no panic escapes a task,
    - a task stopping because a sibling finished is not a failure,
    - a real failure is logged once, where it happens.

    With ``wait=True`` the losing tasks are drained (bounded by `timeout`).

    Usage example
    -------------
        def application(ctx, reporter):
            run(ctx, serve_http, refresh_cache)
    """
    wrapped = tuple(log_errors(filter_errors(catch_panic(task), Canceled)) for task in tasks)
    if wait:
        cancel_on_first_finish_wait(ctx, *wrapped, timeout=timeout)
    else:
        cancel_on_first_finish(ctx, *wrapped)
