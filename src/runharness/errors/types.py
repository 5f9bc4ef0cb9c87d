from __future__ import annotations

import traceback as _traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, Mapping, Optional, Union

ErrorTarget = Union[type[BaseException], BaseException]
ErrorPredicate = Callable[[BaseException], bool]


class PanicError(RuntimeError):
    """A task raised a non-``Exception`` ``BaseException``; the payload is kept on `.payload`."""

    def __init__(self, payload: BaseException) -> None:
        super().__init__(f"panic: {payload!r}")
        self.payload = payload


class ApplicationError(RuntimeError):
    """An application run failed with an error that is not excluded from reporting."""


class ReporterSetupError(RuntimeError):
    """Raised when the crash reporter cannot be created."""


def error_chain(err: BaseException) -> Iterator[BaseException]:
    """
    Yield `err` and every error it wraps.

    Wrapping is explicit: ``raise X from err`` (``__cause__``) and the members of
    exception groups. Implicit ``__context__`` is not followed.
    """
    pending: list[BaseException] = [err]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        if isinstance(current, BaseExceptionGroup):
            pending.extend(current.exceptions)
        if current.__cause__ is not None:
            pending.append(current.__cause__)


def _matches_target(err: BaseException, target: ErrorTarget) -> bool:
    if isinstance(target, type):
        return isinstance(err, target)
    return err is target


def is_error(err: Optional[BaseException], target: ErrorTarget) -> bool:
    """
    Return True if `err` is, or wraps, `target`.

    `target` is either an exception class (matched with ``isinstance``) or an
    exception instance (matched by identity).

    Usage example
    -------------
        try:
            service.run(ctx)
        except ApplicationError as exc:
            assert is_error(exc, ValueError)
    """
    if err is None:
        return False
    return any(_matches_target(e, target) for e in error_chain(err))


def matches(*targets: ErrorTarget) -> ErrorPredicate:
    """Build a predicate that is True when an error is any of `targets`."""

    def predicate(err: BaseException) -> bool:
        return any(is_error(err, target) for target in targets)

    return predicate


def describe_chain(err: BaseException) -> list[str]:
    """Render the wrapping chain as ``"Type: message"`` strings, outermost first."""
    return [f"{type(e).__name__}: {e}" for e in error_chain(err)]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return repr(value)


@dataclass(frozen=True)
class CrashReport:
    """
    A structured record of one captured exception.

    Usage example
    -------------
        rec = CrashReport.from_exception(exc=exc, context={"task": "http"})
    """
    exc_type: str
    message: str
    chain: tuple[str, ...] = ()
    traceback: Optional[str] = None
    context: Optional[Mapping[str, Any]] = None
    report_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    time_utc: str = field(default_factory=_utc_now_iso)

    @staticmethod
    def from_exception(*, exc: BaseException, context: Optional[Mapping[str, Any]] = None) -> "CrashReport":
        tb = "".join(_traceback.format_exception(type(exc), exc, exc.__traceback__))
        return CrashReport(
            exc_type=type(exc).__name__,
            message=str(exc),
            chain=tuple(describe_chain(exc)),
            traceback=tb,
            context=context,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "report_id": self.report_id,
            "time_utc": self.time_utc,
            "exc_type": self.exc_type,
            "exc_msg": self.message,
            "chain": list(self.chain),
        }
        if self.traceback:
            payload["traceback"] = self.traceback
        if self.context:
            payload["context"] = {str(k): _jsonable(v) for k, v in self.context.items()}
        return payload
