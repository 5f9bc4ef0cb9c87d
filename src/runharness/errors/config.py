from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import logging
import os
import uuid

import yaml


class ConfigError(ValueError):
    """Raised when required runtime configuration is missing or invalid."""


CONFIG_FILENAMES = ("runharness.yaml", "runharness.yml")


def load_config(root: Path) -> dict[str, Any]:
    """
    Load harness config from a directory (or an explicit file) if present.

    Search order inside a directory:
    1) ``runharness.yaml``
    2) ``runharness.yml``

    The file must contain a mapping at top level; an empty file yields ``{}``.
    """

    candidates = [root] if root.is_file() else [root / name for name in CONFIG_FILENAMES]
    for config_path in candidates:
        if not config_path.exists():
            continue
        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as error:
            raise ConfigError(f"Invalid YAML in {config_path}: {error}") from error
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping, got {type(data).__name__}.")
        return data
    return {}


_LEVEL_NAMES = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_level(raw: str, fallback: int) -> int:
    value = raw.strip().upper()
    if value in _LEVEL_NAMES:
        return getattr(logging, value)
    try:
        return int(value)
    except ValueError:
        return fallback


@dataclass(frozen=True)
class ErrorHandlingConfig:
    """
    Configuration for logging and event output.

    Parameters
    ----------
    log_dir
        Directory where log files and JSONL event logs are written.
    run_id
        Unique identifier for the run. If "auto", a UUID4 is generated.
    logger_name
        Name of the logger configured by `configure_logging`.
    console_level
        Logging level for console output.
    file_level
        Logging level for file output.
    write_jsonl
        If True, writes structured JSONL events to <log_dir>/events_<run_id>.jsonl.
    env_prefix
        If you want environment-variable overrides, set a prefix like "RUNHARNESS_".

    Usage example
    -------------
        cfg = ErrorHandlingConfig(log_dir=Path("logs"))
    """

    log_dir: Path = Path("logs")
    run_id: str = "auto"
    logger_name: str = "runharness"

    console_level: int = 20  # logging.INFO
    file_level: int = 10  # logging.DEBUG

    write_jsonl: bool = True

    env_prefix: str = field(default="", repr=False)

    def resolved_run_id(self) -> str:
        """Return a non-auto run id."""
        if self.run_id != "auto":
            return self.run_id
        return uuid.uuid4().hex[:10]

    @classmethod
    def from_env(cls, *, default: Optional["ErrorHandlingConfig"] = None) -> "ErrorHandlingConfig":
        """
        Create config from environment variables.

        Supported variables (prefix controlled by env_prefix on `default`):
        - <PFX>LOG_DIR: path
        - <PFX>LOG_LEVEL: level name or number, applied to the console
        - <PFX>WRITE_JSONL: "1"/"0"
        - <PFX>RUN_ID: explicit run id

        Invalid values fall back to `default`.

        Usage example
        -------------
            cfg = ErrorHandlingConfig.from_env(default=ErrorHandlingConfig(env_prefix="RUNHARNESS_"))
        """
        base = default if default is not None else cls()
        pfx = base.env_prefix

        log_dir = Path(os.getenv(f"{pfx}LOG_DIR", str(base.log_dir)))

        console_level = _parse_level(os.getenv(f"{pfx}LOG_LEVEL", ""), base.console_level)

        write_jsonl_raw = os.getenv(f"{pfx}WRITE_JSONL", "1" if base.write_jsonl else "0").strip()
        write_jsonl = write_jsonl_raw not in ("0", "false", "False", "")

        run_id = os.getenv(f"{pfx}RUN_ID", "").strip() or base.run_id

        return cls(
            log_dir=log_dir,
            run_id=run_id,
            logger_name=base.logger_name,
            console_level=console_level,
            file_level=base.file_level,
            write_jsonl=write_jsonl,
            env_prefix=pfx,
        )
