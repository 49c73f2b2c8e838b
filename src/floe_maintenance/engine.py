"""Table engine port and its pyiceberg implementation.

This module provides:
- RetentionPredicate: Engine-neutral "column older than cutoff" predicate
- TableEngine: Protocol the maintenance algorithms are written against
- IcebergEngine: pyiceberg/pyarrow implementation of TableEngine

The algorithms in orphans, retention, compaction and snapshots decide what to
do; the engine only reads table state and performs commits. Every commit goes
through the tenacity commit retry policy and re-reads table metadata before a
retried attempt.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import pyarrow.compute as pc
from pyiceberg.exceptions import NoSuchNamespaceError, NoSuchTableError
from pyiceberg.expressions import AlwaysTrue, BooleanExpression, In, LessThan, LessThanOrEqual
from pyiceberg.io.pyarrow import ArrowScan, _dataframe_to_data_files
from pyiceberg.table import TableProperties
from pyiceberg.types import DateType, StringType, TimestamptzType

from floe_maintenance.compaction import (
    DataFileInfo,
    FileGroup,
    RewrittenGroup,
    execute_rewrite,
    plan_file_groups,
)
from floe_maintenance.config import RetryConfig, TableIdentifier
from floe_maintenance.errors import CommitConflictError, TableNotFoundError
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.models import RewriteResult
from floe_maintenance.observability import get_logger
from floe_maintenance.paths import strip_scheme
from floe_maintenance.retention import is_expired
from floe_maintenance.retry import commit_with_retry

if TYPE_CHECKING:
    from pyiceberg.catalog import Catalog
    from pyiceberg.manifest import DataFile
    from pyiceberg.table import FileScanTask, Table
    from structlog.stdlib import BoundLogger

    from floe_maintenance.config import CompactionOptions


@dataclass(frozen=True)
class RetentionPredicate:
    """Rows whose column value lies strictly before ``cutoff``.

    Attributes:
        column: Retention column.
        cutoff: Retention cutoff (UTC).
        pattern: Datetime pattern for string columns, blank otherwise.
    """

    column: str
    cutoff: datetime
    pattern: str = ""


@runtime_checkable
class TableEngine(Protocol):
    """Operations the maintenance algorithms need from a table format engine."""

    def load_table(self, identifier: str | TableIdentifier) -> Table:
        """Load a table handle. Raises TableNotFoundError."""
        ...

    def scan_orphan_candidates(self, table: Table, older_than: datetime) -> Iterator[str]:
        """Yield files under the table location no snapshot references."""
        ...

    def expire_snapshots(self, table: Table, expire_ids: list[int]) -> None:
        """Remove the given snapshots from table metadata in one commit."""
        ...

    def rewrite_data_files(self, table: Table, options: CompactionOptions) -> RewriteResult:
        """Compact data files according to options."""
        ...

    def delete_matching(self, table: Table, predicate: RetentionPredicate) -> None:
        """Delete rows matching the predicate in one commit."""
        ...

    def has_matching(self, table: Table, predicate: RetentionPredicate) -> bool:
        """Check whether at least one row matches the predicate."""
        ...

    def sample_column(self, table: Table, column: str, limit: int) -> list[Any]:
        """Return up to ``limit`` values of a column."""
        ...


def is_hidden_path(relative_path: str) -> bool:
    """Check whether a path relative to the table location is hidden.

    Segments starting with "." or "_" are hidden unless they are partition
    directories ("_key=value").

    Example:
        >>> is_hidden_path(".trash/data/a.parquet")
        True
        >>> is_hidden_path("data/_bucket=1/a.parquet")
        False
    """
    for segment in relative_path.split("/"):
        if segment.startswith((".", "_")) and "=" not in segment:
            return True
    return False


def _partition_key(data_file: DataFile) -> tuple[Any, ...]:
    partition = data_file.partition
    values = tuple(partition[i] for i in range(len(partition))) if partition is not None else ()
    return (data_file.spec_id, *values)


def _table_name(table: Table) -> str:
    return ".".join(table.name())


class IcebergEngine:
    """TableEngine backed by a pyiceberg Catalog.

    Example:
        >>> engine = IcebergEngine(load_catalog(config))
        >>> table = engine.load_table("db.events")
        >>> list(engine.scan_orphan_candidates(table, cutoff))
        ['s3://bucket/db/events/data/stray.parquet']
    """

    def __init__(
        self,
        catalog: Catalog,
        *,
        filesystem: FileSystemClient | None = None,
        retry: RetryConfig | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize IcebergEngine.

        Args:
            catalog: pyiceberg Catalog.
            filesystem: Filesystem for listing table locations. Resolved from
                each table location when omitted.
            retry: Commit retry policy.
            logger: Optional structlog logger.
        """
        self.catalog = catalog
        self._filesystem = filesystem
        self._retry = retry or RetryConfig()
        self._logger = logger or get_logger()

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def load_table(self, identifier: str | TableIdentifier) -> Table:
        """Load a table.

        Args:
            identifier: ``namespace.table`` string or TableIdentifier.

        Raises:
            ValueError: If the identifier has no namespace.
            TableNotFoundError: If the table or its namespace does not exist.
        """
        table_id = self._normalize_identifier(identifier)
        table_str = str(table_id)
        try:
            table = self.catalog.load_table((table_id.namespace, table_id.name))
        except (NoSuchTableError, NoSuchNamespaceError) as exc:
            raise TableNotFoundError(table_str) from exc
        self._logger.debug("table_loaded", table=table_str, location=table.location())
        return table

    @staticmethod
    def _normalize_identifier(identifier: str | TableIdentifier) -> TableIdentifier:
        """Normalize a table identifier to TableIdentifier."""
        if isinstance(identifier, TableIdentifier):
            return identifier
        return TableIdentifier.from_string(identifier)

    def filesystem_for(self, location: str) -> FileSystemClient:
        """Return the filesystem client serving a table location."""
        return self._filesystem or FileSystemClient.from_uri(location)

    # ------------------------------------------------------------------
    # Orphan files
    # ------------------------------------------------------------------

    def referenced_files(self, table: Table) -> set[str]:
        """Collect every file path reachable from table metadata, without scheme.

        Includes metadata files (current and logged), statistics files, and
        for every snapshot its manifest list, manifests and live data and
        delete files.
        """
        io = table.io
        metadata = table.metadata
        referenced: set[str] = {strip_scheme(table.metadata_location)}
        referenced.update(strip_scheme(entry.metadata_file) for entry in metadata.metadata_log)
        referenced.update(strip_scheme(s.statistics_path) for s in metadata.statistics)
        referenced.update(
            strip_scheme(s.statistics_path) for s in getattr(metadata, "partition_statistics", [])
        )

        seen_manifests: set[str] = set()
        for snapshot in metadata.snapshots:
            referenced.add(strip_scheme(snapshot.manifest_list))
            for manifest in snapshot.manifests(io):
                if manifest.manifest_path in seen_manifests:
                    continue
                seen_manifests.add(manifest.manifest_path)
                referenced.add(strip_scheme(manifest.manifest_path))
                for entry in manifest.fetch_manifest_entry(io, discard_deleted=True):
                    referenced.add(strip_scheme(entry.data_file.file_path))
        return referenced

    def scan_orphan_candidates(self, table: Table, older_than: datetime) -> Iterator[str]:
        """Yield unreferenced, non-hidden files older than older_than.

        Raises:
            FilesystemOpError: If the table location cannot be listed.
        """
        if older_than.tzinfo is None:
            older_than = older_than.replace(tzinfo=timezone.utc)
        location = table.location().rstrip("/")
        base = strip_scheme(location)
        referenced = self.referenced_files(table)
        self._logger.debug(
            "referenced_files_collected",
            table=_table_name(table),
            count=len(referenced),
        )

        for status in self.filesystem_for(location).list_files(location):
            path = strip_scheme(status.path)
            relative = path[len(base) + 1 :] if path.startswith(f"{base}/") else path
            if is_hidden_path(relative):
                continue
            if not status.is_older_than(older_than):
                continue
            if path in referenced:
                continue
            yield status.path

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def expire_snapshots(self, table: Table, expire_ids: list[int]) -> None:
        """Expire snapshots by id in one commit.

        Raises:
            CommitConflictError: If the commit kept conflicting.
        """
        attempts = 0

        def commit() -> None:
            nonlocal attempts
            attempts += 1
            ids = expire_ids
            if attempts > 1:
                table.refresh()
                live = {s.snapshot_id for s in table.metadata.snapshots}
                ids = [i for i in expire_ids if i in live]
                if not ids:
                    return
            table.maintenance.expire_snapshots().by_ids(ids).commit()

        commit_with_retry(
            commit,
            self._retry,
            table=_table_name(table),
            operation="expire_snapshots",
        )

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def sample_column(self, table: Table, column: str, limit: int) -> list[Any]:
        """Return up to limit values of a column."""
        arrow = table.scan(selected_fields=(column,), limit=limit).to_arrow()
        return arrow.column(column).to_pylist()

    def expired_values(self, table: Table, predicate: RetentionPredicate) -> list[Any]:
        """Return the distinct values of a string column that parse to before the cutoff."""
        arrow = table.scan(selected_fields=(predicate.column,)).to_arrow()
        distinct = pc.unique(arrow.column(predicate.column)).to_pylist()
        return sorted(v for v in distinct if is_expired(v, predicate))

    def to_expression(
        self, table: Table, predicate: RetentionPredicate
    ) -> BooleanExpression | None:
        """Translate a retention predicate into a pyiceberg row filter.

        Returns:
            Row filter, or None when a pattern predicate matches no value.
        """
        field_type = table.schema().find_field(predicate.column).field_type
        if predicate.pattern and isinstance(field_type, StringType):
            values = self.expired_values(table, predicate)
            return In(predicate.column, values) if values else None

        cutoff = predicate.cutoff.astimezone(timezone.utc)
        if isinstance(field_type, DateType):
            if cutoff.time() == datetime.min.time():
                return LessThan(predicate.column, cutoff.date().isoformat())
            return LessThanOrEqual(predicate.column, cutoff.date().isoformat())
        if isinstance(field_type, TimestamptzType):
            return LessThan(predicate.column, cutoff.isoformat())
        return LessThan(predicate.column, cutoff.replace(tzinfo=None).isoformat())

    def has_matching(self, table: Table, predicate: RetentionPredicate) -> bool:
        """Check for at least one row older than the cutoff."""
        expression = self.to_expression(table, predicate)
        if expression is None:
            return False
        arrow = table.scan(
            row_filter=expression,
            selected_fields=(predicate.column,),
            limit=1,
        ).to_arrow()
        return arrow.num_rows > 0

    def delete_matching(self, table: Table, predicate: RetentionPredicate) -> None:
        """Delete rows older than the cutoff in one commit.

        Raises:
            CommitConflictError: If the commit kept conflicting.
        """
        expression = self.to_expression(table, predicate)
        if expression is None:
            return
        attempts = 0

        def commit() -> None:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                table.refresh()
            table.delete(delete_filter=expression)

        self._logger.info("retention_delete", table=_table_name(table), filter=str(expression))
        commit_with_retry(commit, self._retry, table=_table_name(table), operation="retention")

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    def data_files(self, table: Table) -> list[DataFileInfo]:
        """List live data files of the current snapshot with their scan tasks."""
        if table.current_snapshot() is None:
            return []
        return [
            DataFileInfo(
                path=task.file.file_path,
                size_bytes=task.file.file_size_in_bytes,
                partition=_partition_key(task.file),
                record_count=task.file.record_count,
                handle=task,
            )
            for task in table.scan().plan_files()
        ]

    def rewrite_data_files(self, table: Table, options: CompactionOptions) -> RewriteResult:
        """Bin-pack data files and swap each commit batch in an overwrite snapshot.

        Raises:
            CommitConflictError: If a batch commit kept conflicting, or its
                input files were removed by a concurrent writer.
        """
        name = _table_name(table)
        groups = plan_file_groups(self.data_files(table), options)
        self._logger.info("file_groups_planned", table=name, group_count=len(groups))
        if not groups:
            return RewriteResult(table=name)

        commit_count, rewritten = execute_rewrite(
            groups,
            options,
            partial(self._rewrite_group, table, options),
            partial(self._commit_rewrite, table),
            logger=self._logger,
        )
        return RewriteResult(
            table=name,
            commit_count=commit_count,
            group_results=[r.to_result() for r in rewritten],
        )

    def _rewrite_group(
        self,
        table: Table,
        options: CompactionOptions,
        group: FileGroup,
    ) -> RewrittenGroup[DataFile]:
        tasks: list[FileScanTask] = [f.handle for f in group.files]
        arrow = ArrowScan(
            table_metadata=table.metadata,
            io=table.io,
            projected_schema=table.schema(),
            row_filter=AlwaysTrue(),
        ).to_table(tasks)
        if arrow.num_rows == 0:
            return RewrittenGroup(group=group, added_files=[])

        write_metadata = table.metadata.model_copy(
            update={
                "properties": {
                    **table.metadata.properties,
                    TableProperties.WRITE_TARGET_FILE_SIZE_BYTES: str(
                        options.target_file_size_bytes
                    ),
                }
            }
        )
        added = list(_dataframe_to_data_files(table_metadata=write_metadata, df=arrow, io=table.io))
        self._logger.debug(
            "file_group_written",
            table=_table_name(table),
            global_index=group.global_index,
            input_files=group.file_count,
            output_files=len(added),
        )
        return RewrittenGroup(group=group, added_files=added)

    def _commit_rewrite(self, table: Table, batch: list[RewrittenGroup[DataFile]]) -> None:
        name = _table_name(table)
        attempts = 0

        def commit() -> None:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                table.refresh()
                self._ensure_inputs_live(table, batch)
            with table.transaction() as tx:
                with tx.update_snapshot().overwrite() as overwrite:
                    for rewritten in batch:
                        for file in rewritten.group.files:
                            overwrite.delete_data_file(file.handle.file)
                        for data_file in rewritten.added_files:
                            overwrite.append_data_file(data_file)

        commit_with_retry(commit, self._retry, table=name, operation="rewrite_data_files")

    def _ensure_inputs_live(self, table: Table, batch: list[RewrittenGroup[DataFile]]) -> None:
        live = {f.path for f in self.data_files(table)}
        missing = [f.path for r in batch for f in r.group.files if f.path not in live]
        if missing:
            raise CommitConflictError(
                _table_name(table),
                operation="rewrite_data_files",
                cause=f"{len(missing)} input files were removed concurrently",
            )
