"""
Unified error handling for jobwarden.

Every failure a run can end with is a JobWardenError subclass carrying an
exit code, so the CLI can report it consistently.

Exit Codes:
- 0: Success
- 10: Configuration error
- 11: Cluster error (submission, watch attach, cleanup)
- 12: Render error (bad template or schema mismatch)
- 13: Timeout waiting for a condition
- 14: Workload failed (pod or job reached Failed)
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
    CONFIG_ERROR = 10
    CLUSTER_ERROR = 11
    RENDER_ERROR = 12
    TIMEOUT = 13
    WORKLOAD_FAILED = 14
    UNKNOWN_ERROR = 127


class JobWardenError(Exception):
    """Base exception for jobwarden errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(JobWardenError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class RenderError(JobWardenError):
    """Raised when a template references an undefined variable or the
    rendered tree does not map onto the Job schema."""

    exit_code = ExitCode.RENDER_ERROR


class SubmissionError(JobWardenError):
    """Raised when the cluster rejects the Job definition."""

    exit_code = ExitCode.CLUSTER_ERROR


class WatchAttachError(JobWardenError):
    """Raised when an event or log subscription cannot be established."""

    exit_code = ExitCode.CLUSTER_ERROR


class WaitTimeoutError(JobWardenError):
    """Raised when a condition wait exceeds its budget."""

    exit_code = ExitCode.TIMEOUT

    def __init__(
        self,
        description: str,
        timeout: float,
        last_state: Any = None,
    ):
        super().__init__(
            f"Timed out after {timeout:g}s waiting for {description}",
            details={"timeout": timeout, "condition": description},
        )
        self.description = description
        self.timeout = timeout
        self.last_state = last_state


class UnitFailedError(JobWardenError):
    """Raised when the pod spawned by the Job reaches the Failed phase."""

    exit_code = ExitCode.WORKLOAD_FAILED

    def __init__(self, message: str, reason: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.reason = reason


class WorkloadFailedError(JobWardenError):
    """Raised when the Job itself finishes with a Failed condition."""

    exit_code = ExitCode.WORKLOAD_FAILED

    def __init__(self, message: str, reason: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.reason = reason


class CleanupError(JobWardenError):
    """Raised internally when deleting the Job fails. Never escalated."""

    exit_code = ExitCode.CLUSTER_ERROR


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Exit codes:
        - JobWardenError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except JobWardenError as e:
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


def format_error_message(error: JobWardenError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
