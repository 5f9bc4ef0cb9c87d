from __future__ import annotations

import json
import logging
import threading
from collections import deque
from pathlib import Path
from typing import IO, Any, Mapping, Optional, Protocol, Sequence, runtime_checkable
from urllib.parse import unquote, urlparse

from ..context import Canceled, DeadlineExceeded
from .types import CrashReport, ErrorPredicate, ReporterSetupError, is_error

log = logging.getLogger(__name__)


@runtime_checkable
class CrashReporter(Protocol):
    """
    Sink for application errors that deserve offline triage.

    Implementations must be safe for concurrent use.
    """

    def capture_exception(
        self,
        exc: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """Record `exc` and return a report id, or None if it was skipped."""
        ...

    def flush(self, timeout: float = 2.0) -> bool:
        """Push buffered reports out; True if everything was written within `timeout`."""
        ...

    def close(self) -> None:
        ...


class JsonlCrashReporter:
    """
    Crash reporter that appends one JSON line per captured exception.

    Cancellation-class errors (and anything matched by `excludes`) are skipped,
    so a shutdown never produces a report.

    Usage example
    -------------
        reporter = JsonlCrashReporter(Path("logs/crashes.jsonl"))
        report_id = reporter.capture_exception(exc, context={"task": "http"})
        reporter.close()
    """

    def __init__(self, path: Path, *, excludes: Sequence[ErrorPredicate] = (), keep_reports: int = 100) -> None:
        self.path = path
        self._excludes = tuple(excludes)
        self._lock = threading.Lock()
        self._reports: deque[CrashReport] = deque(maxlen=keep_reports)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh: Optional[IO[str]] = self.path.open("a", encoding="utf-8")

    @property
    def reports(self) -> tuple[CrashReport, ...]:
        """The most recent `keep_reports` reports captured by this instance, oldest first."""
        with self._lock:
            return tuple(self._reports)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._fh is None

    def _skipped(self, exc: BaseException) -> bool:
        if is_error(exc, Canceled) or is_error(exc, DeadlineExceeded):
            return True
        return any(predicate(exc) for predicate in self._excludes)

    def capture_exception(
        self,
        exc: BaseException,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        if self._skipped(exc):
            log.debug("skip error: %s", exc)
            return None

        rec = CrashReport.from_exception(exc=exc, context=context)
        line = json.dumps(rec.to_dict(), ensure_ascii=False, default=str) + "\n"
        with self._lock:
            if self._fh is None:
                log.warning("crash reporter already closed, dropping report for %s", exc)
                return None
            self._fh.write(line)
            self._reports.append(rec)

        log.info("captured exception with id %s: %s", rec.report_id, exc)
        return rec.report_id

    def flush(self, timeout: float = 2.0) -> bool:
        acquired = self._lock.acquire(timeout=timeout)
        if not acquired:
            return False
        try:
            if self._fh is not None:
                self._fh.flush()
            return True
        finally:
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._fh is None:
                return
            self._fh.flush()
            self._fh.close()
            self._fh = None


def resolve_report_path(dsn: str) -> Path:
    """
    Turn a reporter DSN into the file path reports are written to.

    Accepted forms are ``file:///abs/path.jsonl``, ``file:relative.jsonl`` and a
    plain filesystem path.
    """
    if not dsn.strip():
        raise ReporterSetupError("reporter dsn is empty")
    parsed = urlparse(dsn)
    if parsed.scheme in ("", "file"):
        raw = unquote(parsed.netloc + parsed.path) if parsed.scheme else dsn
        if not raw:
            raise ReporterSetupError(f"reporter dsn {dsn!r} has no path")
        return Path(raw)
    if len(parsed.scheme) == 1:
        # windows drive letter
        return Path(dsn)
    raise ReporterSetupError(f"unsupported reporter dsn scheme {parsed.scheme!r}")


def new_crash_reporter(dsn: str, *, excludes: Sequence[ErrorPredicate] = ()) -> JsonlCrashReporter:
    """Create the crash reporter for `dsn`; raises ReporterSetupError on any problem."""
    path = resolve_report_path(dsn)
    try:
        reporter = JsonlCrashReporter(path, excludes=excludes)
    except OSError as error:
        raise ReporterSetupError(f"create crash reporter failed: {error}") from error
    log.debug("crash reporter writes to %s", path)
    return reporter
