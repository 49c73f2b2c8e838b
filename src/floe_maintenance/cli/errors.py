"""CLI error handling for floe-maintenance.

Maps maintenance exceptions onto user-facing messages and exit codes:
input and lookup problems are user errors, catalog, commit and filesystem
failures are system errors.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, NoReturn

import click
from pydantic import ValidationError as PydanticValidationError

from floe_maintenance.cli.output import error
from floe_maintenance.errors import (
    CatalogConnectionError,
    CommitConflictError,
    FilesystemOpError,
    InvalidGranularityError,
    InvalidPathError,
    MaintenanceError,
    TableNotFoundError,
)

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


# Exit codes following sysexits.h convention
EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1  # User error (bad option, unknown table, invalid config)
EXIT_SYSTEM_ERROR = 2  # System error (catalog unreachable, commit conflict, I/O)

USER_ERRORS: tuple[type[Exception], ...] = (
    TableNotFoundError,
    InvalidGranularityError,
    InvalidPathError,
)
SYSTEM_ERRORS: tuple[type[Exception], ...] = (
    CatalogConnectionError,
    CommitConflictError,
    FilesystemOpError,
)


class CLIError(click.ClickException):
    """CLI-specific exception with exit code support.

    Attributes:
        message: User-facing error message.
        exit_code: Exit code for the CLI (default: 1).
    """

    def __init__(self, message: str, exit_code: int = EXIT_USER_ERROR) -> None:
        """Initialize CLIError.

        Args:
            message: User-facing error message.
            exit_code: Exit code for the CLI.
        """
        super().__init__(message)
        self.exit_code = exit_code

    def show(self, file: object = None) -> None:
        """Display the error message using Rich formatting."""
        error(self.format_message())


def format_pydantic_error(err: PydanticValidationError) -> str:
    """Format Pydantic validation error into user-friendly message.

    Example:
        >>> format_pydantic_error(err)
        "Validation failed:\\n  - count: Input should be greater than or equal to 0"
    """
    errors: list[ErrorDetails] = err.errors()
    lines = ["Validation failed:"]
    for e in errors:
        loc = ".".join(str(x) for x in e["loc"])
        lines.append(f"  - {loc}: {e['msg']}")
    return "\n".join(lines)


def handle_yaml_error(err: Exception, file_path: str) -> NoReturn:
    """Handle YAML parsing errors with line number information.

    Raises:
        CLIError: Always raises with formatted error message.
    """
    error_msg = str(err)
    if hasattr(err, "problem_mark") and err.problem_mark is not None:
        mark = err.problem_mark
        error_msg = (
            f"YAML syntax error at line {mark.line + 1}, column {mark.column + 1}: "
            f"{err.problem}"  # type: ignore[attr-defined]
        )
    raise CLIError(f"Invalid YAML in {file_path}: {error_msg}")


def to_cli_error(exc: Exception) -> CLIError:
    """Convert an exception raised by a maintenance operation to a CLIError."""
    if isinstance(exc, PydanticValidationError):
        return CLIError(format_pydantic_error(exc), exit_code=EXIT_USER_ERROR)
    if isinstance(exc, USER_ERRORS):
        return CLIError(str(exc), exit_code=EXIT_USER_ERROR)
    if isinstance(exc, SYSTEM_ERRORS):
        return CLIError(str(exc), exit_code=EXIT_SYSTEM_ERROR)
    if isinstance(exc, MaintenanceError):
        return CLIError(str(exc), exit_code=EXIT_SYSTEM_ERROR)
    if isinstance(exc, ValueError):
        return CLIError(str(exc), exit_code=EXIT_USER_ERROR)
    if isinstance(exc, PermissionError):
        return CLIError(f"Permission denied: {exc}", exit_code=EXIT_SYSTEM_ERROR)
    return CLIError(f"Unexpected error: {exc}", exit_code=EXIT_SYSTEM_ERROR)


@contextmanager
def maintenance_errors() -> Iterator[None]:
    """Translate maintenance exceptions into CLIError within a command.

    Example:
        >>> with maintenance_errors():
        ...     ops.quarantine_orphans(table)
    """
    try:
        yield
    except click.ClickException:
        raise
    except (MaintenanceError, ValueError, OSError) as exc:
        raise to_cli_error(exc) from exc
