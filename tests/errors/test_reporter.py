from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from runharness.context import Canceled, DeadlineExceeded
from runharness.errors.reporter import (
    CrashReporter,
    JsonlCrashReporter,
    new_crash_reporter,
    resolve_report_path,
)
from runharness.errors.types import ReporterSetupError, matches


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_capture_exception_writes_report_and_returns_id(tmp_path: Path) -> None:
    path = tmp_path / "crashes.jsonl"
    reporter = JsonlCrashReporter(path)

    try:
        raise ValueError("boom")
    except ValueError as exc:
        report_id = reporter.capture_exception(exc, context={"task": "http"})
    reporter.close()

    payloads = _lines(path)
    assert report_id is not None
    assert len(payloads) == 1
    assert payloads[0]["report_id"] == report_id
    assert payloads[0]["exc_type"] == "ValueError"
    assert payloads[0]["exc_msg"] == "boom"
    assert payloads[0]["context"] == {"task": "http"}
    assert "Traceback" in payloads[0]["traceback"]
    assert [r.report_id for r in reporter.reports] == [report_id]


@pytest.mark.parametrize("err", [Canceled(), DeadlineExceeded()], ids=["canceled", "deadline"])
def test_cancellation_errors_are_skipped(tmp_path: Path, err: Exception) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl")

    try:
        raise RuntimeError("wrapper") from err
    except RuntimeError as exc:
        assert reporter.capture_exception(exc) is None
    assert reporter.capture_exception(err) is None
    reporter.close()

    assert reporter.reports == ()
    assert _lines(tmp_path / "crashes.jsonl") == []


def test_custom_excludes_are_skipped(tmp_path: Path) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl", excludes=[matches(BrokenPipeError)])

    assert reporter.capture_exception(BrokenPipeError()) is None
    assert reporter.capture_exception(ValueError("kept")) is not None
    reporter.close()

    assert [p["exc_msg"] for p in _lines(tmp_path / "crashes.jsonl")] == ["kept"]


def test_close_is_idempotent_and_drops_later_reports(tmp_path: Path) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl")

    reporter.close()
    reporter.close()

    assert reporter.closed is True
    assert reporter.flush() is True
    assert reporter.capture_exception(ValueError("late")) is None


def test_concurrent_captures_are_all_written(tmp_path: Path) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl")

    def capture(n: int) -> None:
        for i in range(20):
            reporter.capture_exception(ValueError(f"{n}-{i}"))

    threads = [threading.Thread(target=capture, args=(n,)) for n in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    reporter.close()

    assert len(_lines(tmp_path / "crashes.jsonl")) == 100


def test_in_memory_history_is_bounded(tmp_path: Path) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl", keep_reports=3)

    for i in range(10):
        reporter.capture_exception(ValueError(f"err-{i}"))
    reporter.close()

    assert [r.message for r in reporter.reports] == ["err-7", "err-8", "err-9"]
    assert len(_lines(tmp_path / "crashes.jsonl")) == 10


def test_jsonl_reporter_satisfies_protocol(tmp_path: Path) -> None:
    reporter = JsonlCrashReporter(tmp_path / "crashes.jsonl")
    try:
        assert isinstance(reporter, CrashReporter)
    finally:
        reporter.close()


def test_resolve_report_path_forms(tmp_path: Path) -> None:
    target = tmp_path / "r.jsonl"

    assert resolve_report_path(f"file://{target}") == target
    assert resolve_report_path(str(target)) == target
    assert resolve_report_path("file:relative/r.jsonl") == Path("relative/r.jsonl")


@pytest.mark.parametrize("dsn", ["", "   ", "https://key@sentry.example/1", "file://"])
def test_resolve_report_path_rejects_bad_dsn(dsn: str) -> None:
    with pytest.raises(ReporterSetupError):
        resolve_report_path(dsn)


def test_new_crash_reporter_wraps_os_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(ReporterSetupError, match="create crash reporter failed"):
        new_crash_reporter(str(blocker / "crashes.jsonl"))


def test_new_crash_reporter_creates_parent_dirs(tmp_path: Path) -> None:
    reporter = new_crash_reporter(f"file://{tmp_path}/nested/dir/crashes.jsonl")
    try:
        assert reporter.path == tmp_path / "nested" / "dir" / "crashes.jsonl"
        assert reporter.path.exists()
    finally:
        reporter.close()
