"""Per-table maintenance entry points.

MaintenanceOperations loads one table from a catalog built from an explicit
CatalogConfig and runs one maintenance algorithm against it. The catalog is
acquired on __enter__ and released on __exit__, on success and on error.

Example:
    >>> with MaintenanceOperations(CatalogConfig(uri="http://localhost:8181/api/catalog")) as ops:
    ...     result = ops.quarantine_orphans("bronze.customers")
    ...     print(result.orphan_count)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import TYPE_CHECKING, Any

from floe_maintenance.catalog import load_catalog
from floe_maintenance.compaction import plan_compaction
from floe_maintenance.config import (
    CatalogConfig,
    CatalogSettings,
    CompactionOptions,
    Granularity,
    MaintenanceConfig,
    validate_trash_dir,
)
from floe_maintenance.engine import IcebergEngine, TableEngine
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.models import (
    ExpireSnapshotsResult,
    OrphanFilesResult,
    RetentionResult,
    RewriteResult,
    SnapshotInfo,
    StagedFilesResult,
)
from floe_maintenance.observability import get_logger, maintenance_operation
from floe_maintenance.orphans import quarantine_orphans
from floe_maintenance.paths import trash_root
from floe_maintenance.retention import check_records, run_retention
from floe_maintenance.snapshots import expire_snapshots
from floe_maintenance.staged import purge_staged

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from pyiceberg.catalog import Catalog
    from pyiceberg.table import Table
    from structlog.stdlib import BoundLogger


class MaintenanceOperations:
    """Maintenance operations for tables of one catalog.

    Attributes:
        config: Job defaults (trash directory, ages, retry policy).
        catalog_config: Catalog connection used when no engine is injected.

    Example:
        >>> ops = MaintenanceOperations(engine=fake_engine)
        >>> with ops:
        ...     ops.expire_snapshots("db.events", older_than=cutoff)
    """

    def __init__(
        self,
        catalog_config: CatalogConfig | None = None,
        *,
        config: MaintenanceConfig | None = None,
        engine: TableEngine | None = None,
        filesystem: FileSystemClient | None = None,
        meter: Meter | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize MaintenanceOperations.

        Args:
            catalog_config: Catalog connection. Falls back to config.catalog,
                then to FLOE_CATALOG_* environment settings.
            config: Job defaults. Defaults to MaintenanceConfig().
            engine: Table engine to use instead of an IcebergEngine over the
                configured catalog.
            filesystem: Filesystem client for table locations. Resolved from
                each table location when omitted.
            meter: Optional OpenTelemetry meter for retention drift counters.
            logger: Optional structlog logger.
        """
        self.config = config or MaintenanceConfig()
        self.catalog_config = catalog_config or self.config.catalog
        self._injected_engine = engine
        self._engine: TableEngine | None = None
        self._catalog: Catalog | None = None
        self._filesystem = filesystem
        self._meter = meter
        self._logger = logger or get_logger()

    def __enter__(self) -> MaintenanceOperations:
        if self._injected_engine is not None:
            self._engine = self._injected_engine
            return self
        catalog_config = self.catalog_config or CatalogSettings().to_config()
        self._catalog = load_catalog(catalog_config)
        self._engine = IcebergEngine(
            self._catalog,
            filesystem=self._filesystem,
            retry=self.config.retry,
            logger=self._logger,
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        catalog, self._catalog = self._catalog, None
        self._engine = None
        close = getattr(catalog, "close", None)
        if callable(close):
            close()
            self._logger.debug("catalog_closed")

    @property
    def engine(self) -> TableEngine:
        """Return the active engine.

        Raises:
            RuntimeError: If used outside a ``with`` block.
        """
        if self._engine is None:
            msg = "MaintenanceOperations must be used as a context manager"
            raise RuntimeError(msg)
        return self._engine

    def _filesystem_for(self, table: Table) -> FileSystemClient:
        return self._filesystem or FileSystemClient.from_uri(table.location())

    # ------------------------------------------------------------------
    # Tables and snapshots
    # ------------------------------------------------------------------

    def get_table(self, identifier: str) -> Table:
        """Load a table.

        Raises:
            TableNotFoundError: If the table does not exist.
        """
        return self.engine.load_table(identifier)

    def list_snapshots(self, identifier: str, limit: int | None = None) -> list[SnapshotInfo]:
        """List table snapshots, newest first."""
        table = self.get_table(identifier)
        snapshots = [SnapshotInfo.from_snapshot(s) for s in table.metadata.snapshots]
        snapshots.sort(key=lambda s: s.timestamp_ms, reverse=True)
        return snapshots[:limit] if limit else snapshots

    def expire_snapshots(
        self,
        identifier: str,
        *,
        older_than: datetime | None = None,
        retain_last: int | None = None,
    ) -> ExpireSnapshotsResult:
        """Expire snapshots created before older_than.

        Raises:
            TableNotFoundError: If the table does not exist.
            ValueError: If neither older_than nor retain_last is given.
            CommitConflictError: If the commit kept conflicting.
        """
        older_than_ms = int(older_than.timestamp() * 1000) if older_than else None
        with maintenance_operation(
            "expire_snapshots", table=identifier, older_than_ms=older_than_ms
        ):
            table = self.get_table(identifier)
            return expire_snapshots(
                table,
                self.engine,
                older_than=older_than,
                retain_last=retain_last,
                logger=self._logger,
            )

    # ------------------------------------------------------------------
    # Orphan and staged files
    # ------------------------------------------------------------------

    def quarantine_orphans(
        self,
        identifier: str,
        *,
        older_than: datetime | None = None,
        trash_dir: str | None = None,
        skip_staging: bool = False,
    ) -> OrphanFilesResult:
        """Move files no snapshot references into the table's trash directory.

        Raises:
            ValueError: If trash_dir is not a single directory name.
            TableNotFoundError: If the table does not exist.
            FilesystemOpError: If the table location cannot be listed.
        """
        trash_dir = validate_trash_dir(trash_dir or self.config.trash_dir)
        if older_than is None:
            older_than = datetime.now(timezone.utc) - timedelta(
                days=self.config.orphan_older_than_days
            )
        with maintenance_operation(
            "quarantine_orphans",
            table=identifier,
            trash_dir=trash_dir,
            older_than_ms=int(older_than.timestamp() * 1000),
        ):
            table = self.get_table(identifier)
            return quarantine_orphans(
                table,
                self.engine,
                self._filesystem_for(table),
                trash_dir=trash_dir,
                older_than=older_than,
                skip_staging=skip_staging,
                logger=self._logger,
            )

    def purge_staged(
        self,
        identifier: str,
        *,
        older_than_days: int | None = None,
        trash_dir: str | None = None,
        recursive: bool = True,
    ) -> StagedFilesResult:
        """Delete trashed files of a table older than older_than_days.

        Raises:
            ValueError: If trash_dir is not a single directory name.
            TableNotFoundError: If the table does not exist.
        """
        trash_dir = validate_trash_dir(trash_dir or self.config.trash_dir)
        if older_than_days is None:
            older_than_days = self.config.staged_older_than_days
        with maintenance_operation("purge_staged", table=identifier, trash_dir=trash_dir):
            table = self.get_table(identifier)
            return purge_staged(
                self._filesystem_for(table),
                trash_root(table.location(), trash_dir),
                older_than_days,
                recursive,
                table=identifier,
                logger=self._logger,
            )

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def check_records(self, identifier: str, column: str, pattern: str) -> bool:
        """Check sampled column values against a datetime pattern.

        Returns:
            True if schema drift was detected.
        """
        with maintenance_operation("check_records", table=identifier):
            table = self.get_table(identifier)
            return check_records(
                table,
                self.engine,
                column,
                pattern,
                meter=self._meter,
                logger=self._logger,
            )

    def run_retention(
        self,
        identifier: str,
        column: str,
        pattern: str,
        granularity: Granularity | str,
        count: int,
        *,
        now: datetime | None = None,
    ) -> RetentionResult:
        """Delete rows older than ``count`` units of ``granularity``.

        Raises:
            InvalidGranularityError: If the granularity is unknown.
            TableNotFoundError: If the table does not exist.
            ValueError: If the window or column is invalid.
            CommitConflictError: If the delete commit kept conflicting.
        """
        unit = Granularity.parse(granularity)
        with maintenance_operation("run_retention", table=identifier, granularity=unit.value):
            table = self.get_table(identifier)
            return run_retention(
                table,
                self.engine,
                column,
                pattern,
                unit,
                count,
                now=now,
                meter=self._meter,
                logger=self._logger,
            )

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def rewrite_data_files(
        self,
        identifier: str,
        options: CompactionOptions | None = None,
        **option_overrides: Any,
    ) -> RewriteResult:
        """Compact a table's data files.

        Args:
            identifier: Table identifier.
            options: Compaction options, defaults to CompactionOptions().
            **option_overrides: Individual CompactionOptions fields.

        Raises:
            TableNotFoundError: If the table does not exist.
            CommitConflictError: If a commit kept conflicting.
        """
        opts = options or CompactionOptions()
        if option_overrides:
            opts = CompactionOptions(**{**opts.model_dump(), **option_overrides})
        with maintenance_operation("rewrite_data_files", table=identifier):
            table = self.get_table(identifier)
            return plan_compaction(table, self.engine, opts, logger=self._logger)
