"""Custom exceptions for floe-maintenance.

This module defines the exception hierarchy:
- MaintenanceError (base)
- CatalogConnectionError
- TableNotFoundError
- InvalidPathError
- InvalidGranularityError
- FilesystemOpError
- CommitConflictError
- SchemaDriftWarning (advisory, a warning category rather than an error)
"""

from __future__ import annotations


class MaintenanceError(Exception):
    """Base exception for all table maintenance operations.

    Attributes:
        message: Human-readable error description.
        details: Optional additional context about the error.

    Example:
        >>> try:
        ...     ops.quarantine_orphans("bronze.customers")
        ... except MaintenanceError as e:
        ...     print(f"Maintenance failed: {e}")
    """

    def __init__(self, message: str, *, details: dict[str, str] | None = None) -> None:
        """Initialize MaintenanceError.

        Args:
            message: Human-readable error description.
            details: Optional additional context about the error.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details if present."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class CatalogConnectionError(MaintenanceError):
    """Failed to load or connect to the table catalog.

    Example:
        >>> try:
        ...     catalog = load_catalog(config)
        ... except CatalogConnectionError as e:
        ...     print(f"Cannot connect: {e}")
    """

    def __init__(
        self,
        message: str = "Failed to connect to catalog",
        *,
        uri: str | None = None,
        cause: str | None = None,
    ) -> None:
        """Initialize CatalogConnectionError.

        Args:
            message: Human-readable error description.
            uri: The catalog URI that was unreachable.
            cause: The underlying cause of the connection failure.
        """
        details: dict[str, str] = {}
        if uri:
            details["uri"] = uri
        if cause:
            details["cause"] = cause
        super().__init__(message, details=details)
        self.uri = uri
        self.cause = cause


class TableNotFoundError(MaintenanceError):
    """Table not found in the catalog.

    Fatal to the invocation: nothing can be maintained without a table handle.
    """

    def __init__(
        self,
        table: str,
        message: str | None = None,
    ) -> None:
        """Initialize TableNotFoundError.

        Args:
            table: The table identifier that was not found.
            message: Optional custom error message.
        """
        msg = message or f"Table not found: {table}"
        super().__init__(msg, details={"table": table})
        self.table = table


class InvalidPathError(MaintenanceError):
    """A file path does not lie under the directory it was expected in.

    Raised by the trash path translation when a candidate file is not
    located under the table location (or, for the inverse translation,
    not under the trash directory).
    """

    def __init__(
        self,
        path: str,
        base: str,
        message: str | None = None,
    ) -> None:
        """Initialize InvalidPathError.

        Args:
            path: The offending file path.
            base: The directory the path was expected to be under.
            message: Optional custom error message.
        """
        msg = message or f"Path {path} is not under {base}"
        super().__init__(msg, details={"path": path, "base": base})
        self.path = path
        self.base = base


class InvalidGranularityError(MaintenanceError):
    """Retention granularity is not one of hour, day, month or year."""

    def __init__(self, granularity: str) -> None:
        """Initialize InvalidGranularityError.

        Args:
            granularity: The rejected granularity value.
        """
        super().__init__(
            f"Invalid retention granularity: {granularity!r}. "
            "Expected one of: hour, day, month, year",
            details={"granularity": granularity},
        )
        self.granularity = granularity


class FilesystemOpError(MaintenanceError):
    """A single filesystem move or delete failed.

    Bulk operations catch this per file, record the failure and continue
    with the remaining files.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str,
        operation: str,
        cause: str | None = None,
    ) -> None:
        """Initialize FilesystemOpError.

        Args:
            message: Human-readable error description.
            path: The file the operation was applied to.
            operation: Operation name (move, delete, mkdirs).
            cause: The underlying cause of the failure.
        """
        details = {"path": path, "operation": operation}
        if cause:
            details["cause"] = cause
        super().__init__(message, details=details)
        self.path = path
        self.operation = operation
        self.cause = cause


class CommitConflictError(MaintenanceError):
    """A table commit lost an optimistic-concurrency race after all retries.

    Example:
        >>> try:
        ...     ops.rewrite_data_files("bronze.customers", options)
        ... except CommitConflictError as e:
        ...     print(f"Concurrent writer won: {e}")
    """

    def __init__(
        self,
        table: str,
        *,
        operation: str,
        cause: str | None = None,
    ) -> None:
        """Initialize CommitConflictError.

        Args:
            table: The table whose commit failed.
            operation: The maintenance operation that was committing.
            cause: The underlying cause of the failure.
        """
        details = {"table": table, "operation": operation}
        if cause:
            details["cause"] = cause
        super().__init__(f"Commit conflict on {table} during {operation}", details=details)
        self.table = table
        self.operation = operation
        self.cause = cause


class SchemaDriftWarning(UserWarning):
    """Sampled values of a retention column no longer match its pattern.

    Advisory only: retention still runs, rows that cannot be parsed are
    simply never selected for deletion.
    """
