"""
errors subpackage: failure containment, error matching and reporting.

Key primitives
--------------
- is_error() / matches(): "is-a" matching over explicit wrapping chains
- catch_panic(), filter_errors(), log_errors(): task wrappers used by `run`
- CrashReporter / JsonlCrashReporter: sink for errors worth triaging
- ErrorHandlingConfig + configure_logging(): console + file logging, optional JSONL events
"""

from .config import ConfigError, ErrorHandlingConfig, load_config
from .guards import Task, catch_panic, filter_errors, log_errors
from .logging import JsonlEventLogger, configure_logging
from .reporter import CrashReporter, JsonlCrashReporter, new_crash_reporter
from .types import (
    ApplicationError,
    CrashReport,
    ErrorPredicate,
    ErrorTarget,
    PanicError,
    ReporterSetupError,
    error_chain,
    is_error,
    matches,
)

__all__ = [
    "ApplicationError",
    "ConfigError",
    "CrashReport",
    "CrashReporter",
    "ErrorHandlingConfig",
    "ErrorPredicate",
    "ErrorTarget",
    "JsonlCrashReporter",
    "JsonlEventLogger",
    "PanicError",
    "ReporterSetupError",
    "Task",
    "catch_panic",
    "configure_logging",
    "error_chain",
    "filter_errors",
    "is_error",
    "load_config",
    "log_errors",
    "matches",
    "new_crash_reporter",
]
