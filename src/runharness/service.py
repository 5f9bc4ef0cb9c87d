"""Run one application and decide whether its failure gets reported."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .context import Context
from .errors.reporter import CrashReporter
from .errors.types import ApplicationError
from .options import Options, OptionsFn, new_options

log = logging.getLogger(__name__)


class Application(Protocol):
    """Long-lived business logic driven by a `Service`."""

    def run(self, ctx: Context, crash_reporter: CrashReporter) -> None:
        ...


class Service:
    """
    Binds an application to a crash reporter and an exclusion policy.

    Rules
    -----
    - The application returns normally: success, nothing reported.
    - It raises an excluded error: success, nothing reported.
    - It raises anything else: exactly one report, then ``ApplicationError``
      chained to the original is raised.

    Usage example
    -------------
        service = new_service(reporter, app)
        service.run(ctx)
    """

    def __init__(self, crash_reporter: CrashReporter, app: Application, options: Optional[Options] = None) -> None:
        self._crash_reporter = crash_reporter
        self._app = app
        self._options = options if options is not None else new_options()

    @property
    def options(self) -> Options:
        return self._options

    def run(self, ctx: Context) -> None:
        try:
            self._app.run(ctx, self._crash_reporter)
        except Exception as exc:
            if self._options.is_excluded(exc):
                log.debug("run finished with error, but is excluded: %s", exc)
                return
            self._crash_reporter.capture_exception(
                exc,
                context={"lifetime": ctx, "original_exception": exc},
            )
            raise ApplicationError(f"application failed: {exc}") from exc
        log.debug("run finished without error")


def new_service(crash_reporter: CrashReporter, app: Application, *fns: OptionsFn) -> Service:
    """Create a `Service` whose options are `new_options(*fns)`."""
    return Service(crash_reporter, app, new_options(*fns))
