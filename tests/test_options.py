from __future__ import annotations

import pytest

from runharness.context import Canceled, DeadlineExceeded
from runharness.options import OptionsBuilder, exclude, new_options, replace_excludes


def _wrap(inner: BaseException) -> RuntimeError:
    err = RuntimeError("wrapped")
    err.__cause__ = inner
    return err


def test_defaults_exclude_cancellation_and_deadline() -> None:
    options = new_options()

    assert len(options.exclude_errors) == 2
    assert options.is_excluded(Canceled())
    assert options.is_excluded(DeadlineExceeded())
    assert options.is_excluded(_wrap(Canceled()))
    assert not options.is_excluded(ValueError("boom"))


def test_exclude_appends_to_defaults() -> None:
    options = new_options(exclude(BrokenPipeError, lambda err: "transient" in str(err)))

    assert len(options.exclude_errors) == 4
    assert options.is_excluded(Canceled())
    assert options.is_excluded(BrokenPipeError())
    assert options.is_excluded(ValueError("transient glitch"))
    assert not options.is_excluded(ValueError("boom"))


def test_replace_excludes_drops_defaults() -> None:
    options = new_options(replace_excludes(KeyError))

    assert not options.is_excluded(Canceled())
    assert options.is_excluded(KeyError("k"))


def test_option_functions_apply_in_order() -> None:
    append_then_replace = new_options(exclude(OSError), replace_excludes(KeyError))
    replace_then_append = new_options(replace_excludes(KeyError), exclude(OSError))

    assert not append_then_replace.is_excluded(OSError())
    assert append_then_replace.is_excluded(KeyError())
    assert replace_then_append.is_excluded(OSError())
    assert replace_then_append.is_excluded(KeyError())


def test_raw_option_function_gets_mutable_builder() -> None:
    def clear(builder: OptionsBuilder) -> None:
        builder.exclude_errors.clear()

    options = new_options(clear)

    assert options.exclude_errors == ()
    assert not options.is_excluded(Canceled())


def test_instance_exclusion_matches_identity() -> None:
    sentinel = ValueError("sentinel")
    options = new_options(exclude(sentinel))

    assert options.is_excluded(_wrap(sentinel))
    assert not options.is_excluded(ValueError("sentinel"))


def test_options_are_immutable() -> None:
    options = new_options()

    with pytest.raises(AttributeError):
        options.exclude_errors = ()  # type: ignore[misc]


def test_invalid_exclusion_is_rejected() -> None:
    with pytest.raises(TypeError):
        exclude("not an error")  # type: ignore[arg-type]

    def sneaky(builder: OptionsBuilder) -> None:
        builder.exclude_errors.append(42)  # type: ignore[arg-type]

    with pytest.raises(TypeError):
        new_options(sneaky)
