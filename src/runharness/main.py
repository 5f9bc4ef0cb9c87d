"""
Process entry points: configure the process, parse settings, run, map to an exit code.

Exit codes
----------
0  success (including a cancelled or timed-out run)
1  the application failed
2  the crash reporter could not be set up
3  the crash reporter configuration is missing
4  the settings could not be parsed
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

from .args import parse, parse_and_print
from .context import Context, background, with_signals
from .errors.config import ConfigError, ErrorHandlingConfig, load_config
from .errors.logging import JsonlEventLogger, configure_logging
from .errors.reporter import new_crash_reporter
from .errors.types import ApplicationError, ReporterSetupError
from .options import OptionsFn, new_options
from .service import Application, Service

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_REPORTER_SETUP_FAILED = 2
EXIT_REPORTER_CONFIG_MISSING = 3
EXIT_ARGUMENT_PARSE_FAILED = 4


class Runnable(Protocol):
    """Settings dataclass that is also its own unit of work."""

    def run(self, ctx: Context) -> None:
        ...


@dataclass(frozen=True)
class ProcessConfig:
    """
    Process-wide settings applied once by :func:`bootstrap`.

    Parameters
    ----------
    timezone
        Value for ``TZ``; the original process timezone is replaced.
    error_handling
        Logging configuration.
    config_path
        Optional YAML file (or directory holding ``runharness.yaml``) whose
        ``arguments`` section provides setting defaults.
    reporter_flush_timeout
        Seconds to wait for the crash reporter on shutdown.
    """

    timezone: str = "UTC"
    error_handling: ErrorHandlingConfig = field(default_factory=ErrorHandlingConfig)
    config_path: Optional[Path] = None
    reporter_flush_timeout: float = 2.0

    @classmethod
    def from_env(cls, *, env_prefix: str = "RUNHARNESS_") -> "ProcessConfig":
        """
        Read <PFX>TIMEZONE, <PFX>CONFIG and the logging variables of `ErrorHandlingConfig.from_env`.

        Usage example
        -------------
            sys.exit(main(App(), process_config=ProcessConfig.from_env()))
        """
        config_raw = os.getenv(f"{env_prefix}CONFIG", "").strip()
        return cls(
            timezone=os.getenv(f"{env_prefix}TIMEZONE", "UTC").strip() or "UTC",
            error_handling=ErrorHandlingConfig.from_env(default=ErrorHandlingConfig(env_prefix=env_prefix)),
            config_path=Path(config_raw) if config_raw else None,
        )


@dataclass
class Bootstrap:
    """What :func:`bootstrap` hands back to the entry points."""

    logger: logging.Logger
    event_logger: Optional[JsonlEventLogger]
    defaults: Mapping[str, Any]

    def event(self, event: str, level: str, **kwargs: Any) -> None:
        if self.event_logger is not None:
            self.event_logger.write(event=event, level=level, **kwargs)


def bootstrap(config: ProcessConfig) -> Bootstrap:
    """Apply `config` to the process: timezone, logging and config-file defaults."""
    os.environ["TZ"] = config.timezone
    if hasattr(time, "tzset"):
        time.tzset()

    logger, event_logger = configure_logging(cfg=config.error_handling)
    logger.debug("set global timezone to %s", config.timezone)

    defaults: Mapping[str, Any] = {}
    if config.config_path is not None:
        loaded = load_config(config.config_path)
        section = loaded.get("arguments", {})
        if not isinstance(section, dict):
            raise ConfigError(f"'arguments' in {config.config_path} must be a mapping")
        defaults = section
    return Bootstrap(logger=logger, event_logger=event_logger, defaults=defaults)


def _parse_settings(
    boot: Bootstrap,
    app: Any,
    *,
    argv: Optional[Sequence[str]],
    environ: Optional[Mapping[str, str]],
    quiet: bool,
) -> bool:
    try:
        if quiet:
            parse(app, argv=argv, environ=environ, defaults=boot.defaults)
        else:
            parse_and_print(app, argv=argv, environ=environ, defaults=boot.defaults)
    except ConfigError as exc:
        boot.logger.error("parse app failed: %s", exc)
        boot.event("argument_parse_failed", "ERROR", exc=exc)
        return False
    return True


def main(
    app: Application,
    *fns: OptionsFn,
    ctx: Optional[Context] = None,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    process_config: Optional[ProcessConfig] = None,
    dsn_attr: str = "reporter_dsn",
) -> int:
    """
    Run a reporting application as the whole process and return its exit code.

    `app` is a settings dataclass (see :mod:`runharness.args`) implementing
    `Application`; its `dsn_attr` setting names the crash reporter target.

    Usage example
    -------------
        if __name__ == "__main__":
            sys.exit(main(MyApp()))
    """
    config = process_config if process_config is not None else ProcessConfig()
    try:
        boot = bootstrap(config)
    except ConfigError as exc:
        logging.getLogger(config.error_handling.logger_name).error("load config failed: %s", exc)
        return EXIT_ARGUMENT_PARSE_FAILED

    if not _parse_settings(boot, app, argv=argv, environ=environ, quiet=False):
        return EXIT_ARGUMENT_PARSE_FAILED

    options = new_options(*fns)

    dsn = getattr(app, dsn_attr, None)
    if not dsn or not str(dsn).strip():
        boot.logger.error("%s args missing", dsn_attr)
        return EXIT_REPORTER_CONFIG_MISSING

    try:
        crash_reporter = new_crash_reporter(str(dsn), excludes=options.exclude_errors)
    except ReporterSetupError as exc:
        boot.logger.error("setting up crash reporter failed: %s", exc)
        boot.event("reporter_setup_failed", "ERROR", exc=exc)
        return EXIT_REPORTER_SETUP_FAILED

    service = Service(crash_reporter, app, options)
    boot.logger.info("application started")
    boot.event("application_started", "INFO")
    try:
        with with_signals(ctx if ctx is not None else background()) as run_ctx:
            service.run(run_ctx)
    except ApplicationError as exc:
        boot.logger.error("%s", exc)
        boot.event("application_failed", "ERROR", exc=exc)
        return EXIT_RUNTIME_ERROR
    finally:
        crash_reporter.flush(config.reporter_flush_timeout)
        crash_reporter.close()
    boot.logger.info("application finished")
    boot.event("application_finished", "INFO")
    return EXIT_OK


def _main_runnable(
    app: Runnable,
    *,
    ctx: Optional[Context],
    argv: Optional[Sequence[str]],
    environ: Optional[Mapping[str, str]],
    process_config: Optional[ProcessConfig],
    quiet: bool,
) -> int:
    config = process_config if process_config is not None else ProcessConfig()
    try:
        boot = bootstrap(config)
    except ConfigError as exc:
        logging.getLogger(config.error_handling.logger_name).error("load config failed: %s", exc)
        return EXIT_ARGUMENT_PARSE_FAILED

    if not _parse_settings(boot, app, argv=argv, environ=environ, quiet=quiet):
        return EXIT_ARGUMENT_PARSE_FAILED

    level = logging.DEBUG if quiet else logging.INFO
    boot.logger.log(level, "application started")
    try:
        with with_signals(ctx if ctx is not None else background()) as run_ctx:
            app.run(run_ctx)
    except Exception as exc:
        boot.logger.error("%s", exc)
        boot.event("application_failed", "ERROR", exc=exc)
        return EXIT_RUNTIME_ERROR
    boot.logger.log(level, "application finished")
    return EXIT_OK


def main_basic(
    app: Runnable,
    *,
    ctx: Optional[Context] = None,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    process_config: Optional[ProcessConfig] = None,
) -> int:
    """Run a service without crash reporting; settings are logged after parsing."""
    return _main_runnable(app, ctx=ctx, argv=argv, environ=environ, process_config=process_config, quiet=False)


def main_cmd(
    app: Runnable,
    *,
    ctx: Optional[Context] = None,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    process_config: Optional[ProcessConfig] = None,
) -> int:
    """Run a one-shot command: settings are not logged and lifecycle messages are debug-level."""
    return _main_runnable(app, ctx=ctx, argv=argv, environ=environ, process_config=process_config, quiet=True)
