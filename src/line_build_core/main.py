"""Process entrypoint for the ``linebuild`` command and ``python -m line_build_core``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from line_build_core.config.loader import ConfigLoadError
from line_build_core.config.schema import ConfigValidationError
from line_build_core.reasoning.base import ReasoningProviderError
from line_build_core.validation.rule_library import RuleLibraryError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit codes returned by every ``linebuild`` subcommand."""

    SUCCESS = 0
    VALIDATION_FAILED = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


# Bad input on disk or on the command line.
_INPUT_ERRORS: tuple[type[BaseException], ...] = (
    ConfigLoadError,
    ConfigValidationError,
    RuleLibraryError,
    FileNotFoundError,
    NotADirectoryError,
    PermissionError,
    ValueError,
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    from line_build_core.ui.cli import run_cli

    try:
        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except Exception as exc:  # noqa: BLE001 - last stop before the shell sees a traceback.
        code = classify_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            _stderr(str(exc).strip() or type(exc).__name__)
        return int(code)


def classify_exception(exc: BaseException) -> ExitCode:
    """Map an uncaught exception, or anything in its cause chain, to an exit code."""

    for link in _causes(exc):
        # ReasoningProviderError is a RuntimeError; test it before the input group.
        if isinstance(link, ReasoningProviderError):
            return ExitCode.PROVIDER_ERROR
        if isinstance(link, ModuleNotFoundError) and link.name == "anthropic":
            return ExitCode.PROVIDER_ERROR
        if isinstance(link, _INPUT_ERRORS):
            return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in {code.value for code in ExitCode}:
        return raw
    if isinstance(raw, str) and raw.strip():
        _stderr(raw.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
