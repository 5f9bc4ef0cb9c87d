"""
runharness: lifecycle harness for long-running services.

Start a fixed group of tasks, stop all of them as soon as one finishes, keep
panics contained, and report only the failures that matter.
"""

from .context import (
    Canceled,
    Context,
    DeadlineExceeded,
    background,
    with_cancel,
    with_deadline,
    with_signals,
    with_timeout,
    with_value,
)
from .errors import ApplicationError, CrashReporter, PanicError, is_error
from .main import (
    EXIT_ARGUMENT_PARSE_FAILED,
    EXIT_OK,
    EXIT_REPORTER_CONFIG_MISSING,
    EXIT_REPORTER_SETUP_FAILED,
    EXIT_RUNTIME_ERROR,
    ProcessConfig,
    main,
    main_basic,
    main_cmd,
)
from .options import Options, exclude, new_options, replace_excludes
from .runner import cancel_on_first_finish, cancel_on_first_finish_wait, run
from .service import Application, Service, new_service
from .version import __version__

__all__ = [
    "Application",
    "ApplicationError",
    "Canceled",
    "Context",
    "CrashReporter",
    "DeadlineExceeded",
    "EXIT_ARGUMENT_PARSE_FAILED",
    "EXIT_OK",
    "EXIT_REPORTER_CONFIG_MISSING",
    "EXIT_REPORTER_SETUP_FAILED",
    "EXIT_RUNTIME_ERROR",
    "Options",
    "PanicError",
    "ProcessConfig",
    "Service",
    "__version__",
    "background",
    "cancel_on_first_finish",
    "cancel_on_first_finish_wait",
    "exclude",
    "is_error",
    "main",
    "main_basic",
    "main_cmd",
    "new_options",
    "new_service",
    "replace_excludes",
    "run",
    "with_cancel",
    "with_deadline",
    "with_signals",
    "with_timeout",
    "with_value",
]
