from __future__ import annotations

import os
import signal
import threading
import time

import pytest

from runharness.context import (
    Canceled,
    DeadlineExceeded,
    background,
    with_cancel,
    with_deadline,
    with_signals,
    with_timeout,
    with_value,
)


def test_background_is_never_done() -> None:
    ctx = background()

    assert ctx.done() is False
    assert ctx.err() is None
    assert ctx.deadline is None
    assert ctx.wait(0.01) is False


def test_cancel_sets_canceled_and_is_idempotent() -> None:
    ctx, cancel = with_cancel(background())

    cancel()
    first = ctx.err()
    cancel()

    assert ctx.done() is True
    assert isinstance(first, Canceled)
    assert ctx.err() is first  # first cause wins


def test_cancel_propagates_to_children_but_not_parent() -> None:
    parent, cancel_parent = with_cancel(background())
    child, cancel_child = with_cancel(parent)
    grandchild, _ = with_cancel(child)

    cancel_child()

    assert child.done() and grandchild.done()
    assert parent.done() is False

    sibling, _ = with_cancel(parent)
    cancel_parent()
    assert sibling.done() is True
    assert isinstance(sibling.err(), Canceled)


def test_child_of_done_parent_starts_done() -> None:
    parent, cancel = with_cancel(background())
    cancel()

    child, _ = with_cancel(parent)

    assert child.done() is True
    assert child.err() is parent.err()


def test_timeout_expires_with_deadline_exceeded() -> None:
    ctx, cancel = with_timeout(background(), 0.05)
    try:
        assert ctx.wait(2.0) is True
        assert isinstance(ctx.err(), DeadlineExceeded)
        with pytest.raises(DeadlineExceeded):
            ctx.raise_if_done()
    finally:
        cancel()


def test_deadline_in_the_past_is_done_immediately() -> None:
    ctx, _ = with_deadline(background(), time.monotonic() - 1)

    assert ctx.done() is True
    assert isinstance(ctx.err(), DeadlineExceeded)


def test_child_inherits_earlier_parent_deadline() -> None:
    parent, cancel_parent = with_timeout(background(), 10.0)
    child, cancel_child = with_timeout(parent, 60.0)
    try:
        assert child.deadline == parent.deadline
        remaining = child.time_remaining()
        assert remaining is not None and remaining <= 10.0
    finally:
        cancel_child()
        cancel_parent()


def test_cancel_before_timeout_reports_canceled() -> None:
    ctx, cancel = with_timeout(background(), 10.0)

    cancel()

    assert isinstance(ctx.err(), Canceled)


def test_sleep_wakes_up_on_cancel() -> None:
    ctx, cancel = with_cancel(background())
    timer = threading.Timer(0.05, cancel)
    timer.start()

    started = time.monotonic()
    completed = ctx.sleep(5.0)

    assert completed is False
    assert time.monotonic() - started < 2.0


def test_sleep_completes_when_not_cancelled() -> None:
    ctx, cancel = with_cancel(background())
    try:
        assert ctx.sleep(0.01) is True
    finally:
        cancel()


def test_values_are_inherited() -> None:
    ctx = with_value(background(), "request_id", "abc")
    child, cancel = with_cancel(ctx)
    try:
        assert child.value("request_id") == "abc"
        assert child.value("missing", 7) == 7
    finally:
        cancel()


def test_done_callback_runs_once_and_immediately_when_done() -> None:
    ctx, cancel = with_cancel(background())
    calls: list[object] = []

    ctx.add_done_callback(calls.append)
    cancel()
    cancel()
    ctx.add_done_callback(calls.append)

    assert calls == [ctx, ctx]


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs POSIX signals")
def test_with_signals_cancels_on_signal_and_restores_handlers() -> None:
    original = signal.getsignal(signal.SIGUSR1)

    with with_signals(background(), signals=(signal.SIGUSR1,)) as ctx:
        assert ctx.done() is False
        os.kill(os.getpid(), signal.SIGUSR1)
        assert ctx.wait(2.0) is True
        assert isinstance(ctx.err(), Canceled)

    assert signal.getsignal(signal.SIGUSR1) == original


@pytest.mark.skipif(not hasattr(signal, "SIGUSR1"), reason="needs POSIX signals")
def test_signal_during_locked_section_cancels_after_release() -> None:
    with with_signals(background(), signals=(signal.SIGUSR1,)) as ctx:
        with ctx._lock:
            signal.raise_signal(signal.SIGUSR1)
            assert ctx.done() is False
        assert ctx.wait(2.0) is True
        assert isinstance(ctx.err(), Canceled)


def test_with_signals_cancels_context_on_exit() -> None:
    with with_signals(background(), signals=()) as ctx:
        pass

    assert ctx.done() is True
