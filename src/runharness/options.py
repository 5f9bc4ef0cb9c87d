"""Exclusion policy deciding which application errors are not worth reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Union

from .context import Canceled, DeadlineExceeded
from .errors.types import ErrorPredicate, ErrorTarget, matches

Exclusion = Union[ErrorTarget, ErrorPredicate]


def default_exclude_errors() -> list[ErrorPredicate]:
    """Cancellation and deadline-exceeded errors are never reported."""
    return [matches(Canceled), matches(DeadlineExceeded)]


@dataclass
class OptionsBuilder:
    """Mutable view handed to option functions while `Options` are being built."""

    exclude_errors: list[ErrorPredicate] = field(default_factory=default_exclude_errors)


OptionsFn = Callable[[OptionsBuilder], None]


@dataclass(frozen=True)
class Options:
    """Immutable exclusion policy bound to one `Service`."""

    exclude_errors: tuple[ErrorPredicate, ...]

    def is_excluded(self, err: BaseException) -> bool:
        """True if any exclusion predicate matches `err`."""
        return any(predicate(err) for predicate in self.exclude_errors)


def _as_predicate(item: Exclusion) -> ErrorPredicate:
    if isinstance(item, (type, BaseException)):
        return matches(item)
    if callable(item):
        return item
    raise TypeError(f"exclusion must be an exception class, instance or predicate, got {item!r}")


def new_options(*fns: OptionsFn) -> Options:
    """
    Build `Options` from the defaults and `fns`, applied in order.

    Later functions see what earlier ones left, so a replacing function
    followed by an appending one keeps both effects, and vice versa.

    Usage example
    -------------
        options = new_options(exclude(BrokenPipeError))
    """
    builder = OptionsBuilder()
    for fn in fns:
        fn(builder)
    return Options(exclude_errors=tuple(_as_predicate(item) for item in builder.exclude_errors))


def exclude(*items: Exclusion) -> OptionsFn:
    """Option function appending exclusions (exception classes, instances or predicates)."""
    predicates = [_as_predicate(item) for item in items]

    def apply(builder: OptionsBuilder) -> None:
        builder.exclude_errors.extend(predicates)

    return apply


def replace_excludes(*items: Exclusion) -> OptionsFn:
    """Option function replacing every exclusion set so far, defaults included."""
    predicates = [_as_predicate(item) for item in items]

    def apply(builder: OptionsBuilder) -> None:
        builder.exclude_errors[:] = predicates

    return apply
