"""floe-maintenance: Lifecycle maintenance for Apache Iceberg tables.

This package provides:
- Orphan file quarantine (trash-based soft delete)
- Staged (trashed) file garbage collection
- Time-window retention with schema drift detection
- Data file compaction with partial-progress commit budgeting
- Snapshot expiry

Example:
    >>> from floe_maintenance import CatalogConfig, MaintenanceOperations
    >>>
    >>> config = CatalogConfig(
    ...     uri="http://localhost:8181/api/catalog",
    ...     warehouse="my_warehouse",
    ... )
    >>> with MaintenanceOperations(config) as ops:
    ...     ops.quarantine_orphans("bronze.customers")
    ...     ops.run_retention("bronze.customers", "ds", "yyyy-MM-dd", "day", 30)
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    # Entry point
    "MaintenanceOperations",
    # Engine
    "IcebergEngine",
    "TableEngine",
    "RetentionPredicate",
    "load_catalog",
    # Configuration models
    "CatalogConfig",
    "CatalogSettings",
    "CompactionOptions",
    "Granularity",
    "MaintenanceConfig",
    "RetentionWindow",
    "RetryConfig",
    "TableIdentifier",
    # Result models
    "ExpireSnapshotsResult",
    "OrphanFilesResult",
    "RetentionResult",
    "RewriteResult",
    "SnapshotInfo",
    "StagedFilesResult",
    # Exceptions
    "MaintenanceError",
    "CatalogConnectionError",
    "CommitConflictError",
    "FilesystemOpError",
    "InvalidGranularityError",
    "InvalidPathError",
    "SchemaDriftWarning",
    "TableNotFoundError",
]


def __getattr__(name: str) -> object:
    """Lazy import of public API members."""
    if name == "MaintenanceOperations":
        from floe_maintenance.operations import MaintenanceOperations

        return MaintenanceOperations
    if name == "load_catalog":
        from floe_maintenance.catalog import load_catalog

        return load_catalog
    if name in ("IcebergEngine", "TableEngine", "RetentionPredicate"):
        from floe_maintenance import engine as engine_module

        return getattr(engine_module, name)
    if name in (
        "CatalogConfig",
        "CatalogSettings",
        "CompactionOptions",
        "Granularity",
        "MaintenanceConfig",
        "RetentionWindow",
        "RetryConfig",
        "TableIdentifier",
    ):
        from floe_maintenance import config as config_module

        return getattr(config_module, name)
    if name in (
        "ExpireSnapshotsResult",
        "OrphanFilesResult",
        "RetentionResult",
        "RewriteResult",
        "SnapshotInfo",
        "StagedFilesResult",
    ):
        from floe_maintenance import models as models_module

        return getattr(models_module, name)
    if name in (
        "MaintenanceError",
        "CatalogConnectionError",
        "CommitConflictError",
        "FilesystemOpError",
        "InvalidGranularityError",
        "InvalidPathError",
        "SchemaDriftWarning",
        "TableNotFoundError",
    ):
        from floe_maintenance import errors as errors_module

        return getattr(errors_module, name)
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
