"""
Fill application settings from command-line flags, environment and defaults.

Settings are dataclass fields declared with :func:`argument`. Values are merged
with increasing priority: field default < config file < command line <
environment. Every value is converted to the field's annotated type and
required fields are validated; any problem raises ``ConfigError``.

Usage example
-------------
    @dataclass
    class App:
        listen: str = argument(arg="listen", env="LISTEN", required=True, usage="address to listen to")
        reporter_dsn: str = argument(arg="reporter-dsn", env="REPORTER_DSN", display="length")

    app = App()
    parse_and_print(app, argv=["--listen", ":8080"])
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import re
import types
import typing
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from .errors.config import ConfigError

log = logging.getLogger(__name__)

_METADATA_KEY = "runharness.argument"

_TRUE = {"1", "t", "true", "yes", "y", "on"}
_FALSE = {"0", "f", "false", "no", "n", "off"}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|w|d|h|m|s)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3_600.0,
    "d": 86_400.0,
    "w": 604_800.0,
}


@dataclass(frozen=True)
class ArgumentSpec:
    """Where a setting comes from and how it is shown."""

    arg: Optional[str] = None
    env: Optional[str] = None
    required: bool = False
    usage: str = ""
    display: Optional[str] = None  # None | "length" | "hidden"


def argument(
    *,
    arg: Optional[str] = None,
    env: Optional[str] = None,
    default: Any = None,
    required: bool = False,
    usage: str = "",
    display: Optional[str] = None,
) -> Any:
    """Declare a dataclass field as a setting filled by :func:`parse`."""
    if display not in (None, "length", "hidden"):
        raise ValueError(f"unsupported display {display!r}")
    spec = ArgumentSpec(arg=arg, env=env, required=required, usage=usage, display=display)
    return dataclasses.field(default=default, metadata={_METADATA_KEY: spec})


def parse_duration(raw: str) -> timedelta:
    """
    Parse ``"1h30m"``, ``"90s"``, ``"2d"``, ``"1w"`` or a plain number of seconds.

    A leading ``-`` negates the result.
    """
    text = raw.strip()
    sign = 1
    if text.startswith("-"):
        sign, text = -1, text[1:]
    if not text:
        raise ConfigError(f"invalid duration {raw!r}")
    try:
        return timedelta(seconds=sign * float(text))
    except (ValueError, OverflowError):
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ConfigError(f"invalid duration {raw!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ConfigError(f"invalid duration {raw!r}")
    return timedelta(seconds=sign * total)


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean {raw!r}")


def _unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        members = [m for m in typing.get_args(hint) if m is not type(None)]
        if len(members) == 1:
            return members[0]
    return hint


def _convert(name: str, raw: Any, hint: Any) -> Any:
    if raw is None:
        return None
    target = _unwrap_optional(hint)
    try:
        if target is bool:
            return raw if isinstance(raw, bool) else _parse_bool(str(raw))
        if target is int:
            if isinstance(raw, bool):
                raise ValueError(f"invalid int {raw!r}")
            return int(raw)
        if target is float:
            return float(raw)
        if target is str:
            return str(raw)
        if target is Path:
            return Path(raw)
        if target is timedelta:
            if isinstance(raw, timedelta):
                return raw
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                return timedelta(seconds=raw)
            return parse_duration(str(raw))
    except (TypeError, ValueError) as error:
        raise ConfigError(f"parse field {name} as {getattr(target, '__name__', target)} failed: {error}") from error
    if isinstance(target, type) and isinstance(raw, target):
        return raw
    raise ConfigError(f"field {name} with type {target!r} is unsupported")


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> typing.NoReturn:  # type: ignore[override]
        raise ConfigError(f"parse commandline failed: {message}")


def _specs(app: Any) -> list[tuple[dataclasses.Field, ArgumentSpec]]:
    if not dataclasses.is_dataclass(app) or isinstance(app, type):
        raise ConfigError(f"expected a dataclass instance, got {type(app).__name__}")
    return [(f, f.metadata[_METADATA_KEY]) for f in dataclasses.fields(app) if _METADATA_KEY in f.metadata]


def build_parser(app: Any, *, prog: Optional[str] = None) -> argparse.ArgumentParser:
    """Build the command-line parser for the settings declared on `app`."""
    hints = typing.get_type_hints(type(app))
    parser = _ArgumentParser(prog=prog, description=(type(app).__doc__ or "").strip() or None)
    for f, spec in _specs(app):
        if spec.arg is None:
            continue
        kwargs: dict[str, Any] = {"dest": f.name, "default": argparse.SUPPRESS, "help": spec.usage}
        if spec.env:
            kwargs["help"] = f"{spec.usage} (env {spec.env})".strip()
        if _unwrap_optional(hints.get(f.name)) is bool:
            kwargs.update(nargs="?", const="true", metavar="BOOL")
        parser.add_argument(f"--{spec.arg}", **kwargs)
    return parser


def _config_value(defaults: Mapping[str, Any], f: dataclasses.Field, spec: ArgumentSpec) -> tuple[bool, Any]:
    for key in (spec.arg, f.name):
        if key is not None and key in defaults:
            return True, defaults[key]
    return False, None


def parse(
    app: Any,
    *,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    defaults: Optional[Mapping[str, Any]] = None,
    prog: Optional[str] = None,
) -> Any:
    """
    Fill the settings of `app` in place and return it.

    Parameters
    ----------
    argv
        Command-line arguments; ``sys.argv[1:]`` when None.
    environ
        Environment mapping; ``os.environ`` when None.
    defaults
        Values from a config file, keyed by flag name or field name.
    """
    environ = os.environ if environ is None else environ
    defaults = defaults or {}
    hints = typing.get_type_hints(type(app))
    specs = _specs(app)

    values: dict[str, Any] = {f.name: getattr(app, f.name) for f, _ in specs}
    for f, spec in specs:
        found, value = _config_value(defaults, f, spec)
        if found:
            values[f.name] = value

    namespace = build_parser(app, prog=prog).parse_args(argv)
    values.update(vars(namespace))

    for f, spec in specs:
        if spec.env and spec.env in environ:
            values[f.name] = environ[spec.env]

    for f, _ in specs:
        setattr(app, f.name, _convert(f.name, values[f.name], hints.get(f.name, str)))

    missing = [
        spec.arg or f.name
        for f, spec in specs
        if spec.required and getattr(app, f.name) in (None, "")
    ]
    if missing:
        raise ConfigError(f"required argument(s) missing: {', '.join(missing)}")
    return app


def _shown(value: Any, spec: ArgumentSpec) -> str:
    if spec.display == "hidden":
        return "***"
    if spec.display == "length":
        return f"length={len('' if value is None else str(value))}"
    return repr(value)


def print_arguments(app: Any) -> None:
    """Log every declared setting, masking values according to `display`."""
    for f, spec in _specs(app):
        log.info("argument %s=%s", f.name, _shown(getattr(app, f.name), spec))


def parse_and_print(
    app: Any,
    *,
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    defaults: Optional[Mapping[str, Any]] = None,
    prog: Optional[str] = None,
) -> Any:
    """:func:`parse`, then :func:`print_arguments`."""
    parse(app, argv=argv, environ=environ, defaults=defaults, prog=prog)
    print_arguments(app)
    return app
