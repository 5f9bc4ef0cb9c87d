"""
Cancellable lifetime handles shared by every task of a run.

A :class:`Context` carries a cancellation flag, an optional deadline and a few
values. Cancelling a context cancels every context derived from it; the first
cause wins and later cancels are no-ops.

Usage example
-------------
    ctx, cancel = with_cancel(background())
    try:
        while not ctx.done():
            do_work()
            ctx.sleep(1.0)
    finally:
        cancel()
"""

from __future__ import annotations

import logging
import signal
import threading
import time
import weakref
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

log = logging.getLogger(__name__)

CancelFunc = Callable[[], None]


class Canceled(Exception):
    """Raised or returned when a context was cancelled."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(TimeoutError):
    """Raised or returned when a context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Context:
    """
    Lifetime handle observed by tasks.

    Contexts are created through :func:`background`, :func:`with_cancel`,
    :func:`with_timeout`, :func:`with_deadline`, :func:`with_value` and
    :func:`with_signals`; the constructor is not part of the public API.
    """

    def __init__(
        self,
        parent: Optional["Context"] = None,
        *,
        deadline: Optional[float] = None,
        values: Optional[dict[Any, Any]] = None,
        cancelable: bool = True,
    ) -> None:
        self._parent = parent
        self._deadline = deadline
        self._values = values or {}
        self._cancelable = cancelable
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._err: Optional[BaseException] = None
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        self._callbacks: list[Callable[["Context"], None]] = []

        if parent is not None:
            if self._deadline is None or (parent.deadline is not None and parent.deadline < self._deadline):
                self._deadline = parent.deadline
            parent._attach(self)

    def __repr__(self) -> str:
        state = "done" if self.done() else "active"
        remaining = self.time_remaining()
        deadline = "none" if remaining is None else f"{remaining:.3f}s"
        return f"<Context {state} err={self._err!r} deadline_in={deadline}>"

    @property
    def deadline(self) -> Optional[float]:
        """Deadline as a ``time.monotonic()`` timestamp, or None."""
        return self._deadline

    def time_remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def done(self) -> bool:
        """Return True once the context was cancelled or its deadline passed."""
        return self._event.is_set()

    def err(self) -> Optional[BaseException]:
        """Return None while active, otherwise the cancellation cause."""
        with self._lock:
            return self._err

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the context is done or `timeout` elapsed. Returns ``done()``."""
        return self._event.wait(timeout)

    def sleep(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, waking early on cancellation.

        Returns
        -------
        completed
            True if the full interval elapsed, False if the context ended first.
        """
        return not self._event.wait(seconds)

    def raise_if_done(self) -> None:
        """Raise the cancellation cause if the context is done."""
        err = self.err()
        if err is not None:
            raise err

    def value(self, key: Any, default: Any = None) -> Any:
        """Look up `key` in this context and its ancestors."""
        ctx: Optional[Context] = self
        while ctx is not None:
            if key in ctx._values:
                return ctx._values[key]
            ctx = ctx._parent
        return default

    def add_done_callback(self, fn: Callable[["Context"], None]) -> None:
        """Call `fn(ctx)` once the context is done (immediately if it already is)."""
        with self._lock:
            if self._err is None:
                self._callbacks.append(fn)
                return
        fn(self)

    def _attach(self, child: "Context") -> None:
        with self._lock:
            err = self._err
            if err is None:
                if self._cancelable:
                    self._children.add(child)
                return
        child._cancel(err)

    def _detach(self, child: "Context") -> None:
        with self._lock:
            self._children.discard(child)

    def _cancel(self, err: BaseException) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            self._event.set()
            children = list(self._children)
            self._children.clear()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for child in children:
            child._cancel(err)
        for callback in callbacks:
            callback(self)
        if self._parent is not None:
            self._parent._detach(self)


_BACKGROUND = Context(cancelable=False)


def background() -> Context:
    """Return the root context; it is never cancelled and has no deadline."""
    return _BACKGROUND


def with_cancel(parent: Context) -> tuple[Context, CancelFunc]:
    """
    Derive a child context plus the function that cancels it.

    The cancel function is idempotent and safe to call from any thread.
    """
    ctx = Context(parent)

    def cancel() -> None:
        ctx._cancel(Canceled())

    return ctx, cancel


def with_deadline(parent: Context, deadline: float) -> tuple[Context, CancelFunc]:
    """Derive a child context that ends at the ``time.monotonic()`` timestamp `deadline`."""
    ctx = Context(parent, deadline=deadline)

    def cancel() -> None:
        ctx._cancel(Canceled())

    remaining = ctx.time_remaining()
    if remaining is not None:
        if remaining <= 0:
            ctx._cancel(DeadlineExceeded())
        else:
            timer = threading.Timer(remaining, ctx._cancel, args=(DeadlineExceeded(),))
            timer.daemon = True
            timer.start()
            ctx.add_done_callback(lambda _: timer.cancel())
    return ctx, cancel


def with_timeout(parent: Context, timeout: float) -> tuple[Context, CancelFunc]:
    """Derive a child context that ends after `timeout` seconds."""
    return with_deadline(parent, time.monotonic() + timeout)


def with_value(parent: Context, key: Any, value: Any) -> Context:
    """Derive a child context carrying `key` -> `value`; it ends with its parent."""
    return Context(parent, values={key: value})


@contextmanager
def with_signals(
    parent: Context,
    signals: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM),
) -> Iterator[Context]:
    """
    Yield a child context that is cancelled when the process receives a shutdown signal.

    Handlers can only be installed from the main thread; elsewhere the child
    context is yielded without them. Previous handlers are restored on exit.

    Usage example
    -------------
        with with_signals(background()) as ctx:
            service.run(ctx)
    """
    ctx, cancel = with_cancel(parent)
    originals: dict[signal.Signals, Any] = {}

    def _cancel_on_signal(name: str) -> None:
        log.info("got signal %s => cancel context", name)
        cancel()

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        # the interrupted main thread may hold a context or logging lock
        threading.Thread(target=_cancel_on_signal, args=(name,), name=f"signal-{name}", daemon=True).start()

    if threading.current_thread() is threading.main_thread():
        for sig in signals:
            originals[sig] = signal.getsignal(sig)
            signal.signal(sig, _handler)
    else:
        log.debug("not on main thread, signal handlers not installed")

    try:
        yield ctx
    finally:
        for sig, original in originals.items():
            signal.signal(sig, original)
        cancel()
