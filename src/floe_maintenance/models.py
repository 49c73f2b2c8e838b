"""Result models returned by maintenance operations.

This module provides:
- SnapshotInfo: Iceberg snapshot information
- OrphanFilesResult: Outcome of an orphan file quarantine run
- StagedFilesResult: Outcome of a trash purge run
- ExpireSnapshotsResult: Outcome of snapshot expiry
- RetentionResult: Outcome of a retention run
- FileGroupRewriteResult / RewriteResult: Outcome of a data file rewrite

Every bulk result reports what was detected separately from what was acted
upon, so callers can reconcile the two when per-file actions fail.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SnapshotInfo(BaseModel):
    """Information about an Iceberg table snapshot.

    Attributes:
        snapshot_id: Unique snapshot identifier.
        timestamp_ms: Snapshot creation timestamp in milliseconds since epoch.
        operation: Operation that created the snapshot (append, overwrite, delete).
        summary: Snapshot summary statistics.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    snapshot_id: int = Field(..., description="Unique snapshot identifier")
    timestamp_ms: int = Field(
        ...,
        ge=0,
        description="Snapshot creation timestamp in milliseconds since epoch",
    )
    operation: str = Field(default="unknown", description="Operation that created the snapshot")
    summary: dict[str, str] = Field(default_factory=dict, description="Snapshot summary")

    @property
    def timestamp(self) -> datetime:
        """Return snapshot creation time as a UTC datetime."""
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)

    @classmethod
    def from_snapshot(cls, snapshot: Any) -> SnapshotInfo:
        """Convert a pyiceberg Snapshot.

        In pyiceberg the operation is nested inside snapshot.summary.
        """
        operation = "unknown"
        summary: dict[str, str] = {}
        if snapshot.summary is not None:
            if snapshot.summary.operation:
                operation = snapshot.summary.operation.value
            summary = {
                k: str(v) for k, v in snapshot.summary.model_dump().items() if k != "operation"
            }
        return cls(
            snapshot_id=snapshot.snapshot_id,
            timestamp_ms=snapshot.timestamp_ms,
            operation=operation,
            summary=summary,
        )


class OrphanFilesResult(BaseModel):
    """Outcome of an orphan file quarantine run.

    Attributes:
        table: Fully qualified table name.
        orphan_paths: Every path the engine reported as unreferenced,
            independent of whether the action on it succeeded.
        quarantined: Paths moved into the trash directory.
        deleted: Paths deleted outright (staging disabled).
        skipped: Paths left in place (metadata files, already trashed files).
        failed: Paths whose move or delete failed, mapped to the error message.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    orphan_paths: list[str] = Field(default_factory=list)
    quarantined: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)

    @property
    def orphan_count(self) -> int:
        """Number of orphan files detected."""
        return len(self.orphan_paths)

    @property
    def processed_count(self) -> int:
        """Number of orphan files successfully moved or deleted."""
        return len(self.quarantined) + len(self.deleted)


class StagedFilesResult(BaseModel):
    """Outcome of purging a trash directory.

    Attributes:
        base_dir: Directory that was purged.
        older_than_days: Age threshold in days.
        matched: Every file older than the threshold (attempted for deletion).
        deleted: Files actually deleted.
        failed: Files whose delete failed, mapped to the error message.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_dir: str
    older_than_days: int
    matched: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


class ExpireSnapshotsResult(BaseModel):
    """Outcome of snapshot expiry.

    Attributes:
        table: Fully qualified table name.
        expired_snapshot_ids: Snapshots removed from table metadata.
        retained_snapshot_ids: Snapshots still live after the run.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    expired_snapshot_ids: list[int] = Field(default_factory=list)
    retained_snapshot_ids: list[int] = Field(default_factory=list)

    @property
    def expired_count(self) -> int:
        """Number of snapshots expired."""
        return len(self.expired_snapshot_ids)


class RetentionResult(BaseModel):
    """Outcome of a retention run.

    Attributes:
        table: Fully qualified table name.
        column: Retention column.
        cutoff: Rows older than this were selected for deletion.
        deleted: True if a delete was committed, False for a no-op run.
        schema_drift: True if sampled values failed to parse with the pattern.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    column: str
    cutoff: datetime
    deleted: bool = False
    schema_drift: bool = False


class FileGroupRewriteResult(BaseModel):
    """Outcome of rewriting one file group.

    Attributes:
        partition: Partition values of the group, rendered as a string.
        partition_index: Index of the group within its partition.
        global_index: Index of the group within the whole rewrite.
        added_data_files_count: Data files written for the group.
        rewritten_data_files_count: Input data files replaced by the group.
        rewritten_bytes_count: Input bytes replaced by the group.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    partition: str
    partition_index: int
    global_index: int
    added_data_files_count: int = 0
    rewritten_data_files_count: int = 0
    rewritten_bytes_count: int = 0


class RewriteResult(BaseModel):
    """Outcome of a data file rewrite (compaction).

    Attributes:
        table: Fully qualified table name.
        commit_count: Number of commits produced.
        group_results: Per file group results, in global index order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    table: str
    commit_count: int = 0
    group_results: list[FileGroupRewriteResult] = Field(default_factory=list)

    @property
    def added_data_files_count(self) -> int:
        """Total data files added."""
        return sum(r.added_data_files_count for r in self.group_results)

    @property
    def rewritten_data_files_count(self) -> int:
        """Total data files rewritten."""
        return sum(r.rewritten_data_files_count for r in self.group_results)

    @property
    def rewritten_bytes_count(self) -> int:
        """Total bytes rewritten."""
        return sum(r.rewritten_bytes_count for r in self.group_results)

    def summary(self) -> dict[str, int]:
        """Return the aggregate counts as a plain dictionary."""
        return {
            "added_data_files_count": self.added_data_files_count,
            "rewritten_data_files_count": self.rewritten_data_files_count,
            "rewritten_bytes_count": self.rewritten_bytes_count,
            "file_group_count": len(self.group_results),
            "commit_count": self.commit_count,
        }
