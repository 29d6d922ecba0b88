"""
Unified error handling for infragraph.

Graph construction failures are raised synchronously at the call that caused
them. CLI commands convert them to exit codes through
``main_with_error_handling``.

Exit Codes:
- 0: Success
- 1: Warning (graph finalized with lint warnings)
- 10: Configuration error (invalid topology declaration)
- 12: Validation error
- 13: Cycle in the resource graph
- 14: Builder used after finalization
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    VALIDATION_ERROR = 12
    CYCLE_ERROR = 13
    STATE_ERROR = 14
    UNKNOWN_ERROR = 127


class InfraGraphError(Exception):
    """Base exception for infragraph errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(InfraGraphError):
    """Raised for invalid user input outside the graph (config files, flags)."""

    exit_code = ExitCode.VALIDATION_ERROR


class TopologyConfigError(InfraGraphError):
    """
    A structural or cardinality invariant of the resource graph is violated.

    ``issues`` holds every violation found. Errors raised by a single
    declaration carry one issue; ``finalize()`` aggregates all of them.
    """

    exit_code = ExitCode.CONFIG_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        issues: list[str] | None = None,
    ):
        super().__init__(message, details)
        self.issues = list(issues) if issues else [message]

    @classmethod
    def aggregate(cls, issues: list[str]) -> TopologyConfigError:
        """Build one error reporting every issue in order."""
        if len(issues) == 1:
            return cls(issues[0], issues=issues)
        summary = f"{len(issues)} topology invariants violated: " + "; ".join(issues)
        return cls(summary, details={"issue_count": len(issues)}, issues=issues)


class TopologyCycleError(InfraGraphError):
    """An ordering or reference edge would make the resource graph cyclic."""

    exit_code = ExitCode.CYCLE_ERROR

    def __init__(self, message: str, cycle: list[str] | None = None):
        super().__init__(message, details={"cycle": " -> ".join(cycle)} if cycle else None)
        self.cycle = cycle or []


class TopologyStateError(InfraGraphError):
    """A mutation was attempted on a finalized builder."""

    exit_code = ExitCode.STATE_ERROR


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI command functions that provides unified error handling.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Usage:
        @main_with_error_handling()
        def synth_command() -> int:
            ...
            return 0

    Exit codes:
        - InfraGraphError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except InfraGraphError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: InfraGraphError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
