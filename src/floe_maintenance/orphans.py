"""Orphan file quarantine.

The table engine reports files under the table location that no live
snapshot references. Each candidate goes through a pure decision step
(OrphanDecider) and the decisions are then applied against the filesystem
one file at a time; a failed move or delete is recorded and the run goes on.

Example:
    >>> result = quarantine_orphans(table, engine, filesystem, trash_dir=".trash")
    >>> result.orphan_count, result.processed_count
    (1, 1)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from floe_maintenance.config import (
    DEFAULT_ORPHAN_OLDER_THAN_DAYS,
    DEFAULT_TRASH_DIR,
    validate_trash_dir,
)
from floe_maintenance.errors import FilesystemOpError, InvalidPathError
from floe_maintenance.models import OrphanFilesResult
from floe_maintenance.observability import (
    ORPHAN_FILE_COUNT,
    get_logger,
    increment_counter,
)
from floe_maintenance.paths import (
    is_metadata_file,
    is_under_directory,
    to_trash_path,
    trash_root,
)

if TYPE_CHECKING:
    from pyiceberg.table import Table
    from structlog.stdlib import BoundLogger

    from floe_maintenance.engine import TableEngine
    from floe_maintenance.filesystem import FileSystemClient


class OrphanAction(str, Enum):
    """What to do with one orphan candidate."""

    KEEP = "keep"
    QUARANTINE = "quarantine"
    DELETE = "delete"


@dataclass(frozen=True)
class OrphanDecision:
    """Decision for one candidate path.

    Attributes:
        path: Candidate path.
        action: Action to apply.
        target: Trash path for QUARANTINE, None otherwise.
        reason: Short reason for KEEP decisions.
    """

    path: str
    action: OrphanAction
    target: str | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.action is OrphanAction.QUARANTINE and not self.target:
            msg = f"Quarantine decision for {self.path} requires a trash target"
            raise ValueError(msg)


class OrphanDecider:
    """Pure per-file policy for orphan candidates.

    Rules, in order:
    1. metadata files are kept; their lifecycle belongs to table commits
    2. with staging, files already inside the trash directory are kept,
       every other file is quarantined under the trash directory
    3. without staging, files are deleted
    """

    def __init__(
        self,
        table_location: str,
        trash_dir: str = DEFAULT_TRASH_DIR,
        *,
        skip_staging: bool = False,
    ) -> None:
        self.table_location = table_location
        self.trash_dir = validate_trash_dir(trash_dir)
        self.skip_staging = skip_staging
        self._trash_root = trash_root(table_location, self.trash_dir)

    def decide(self, path: str) -> OrphanDecision:
        """Decide what to do with a candidate path.

        Raises:
            InvalidPathError: If a path to quarantine is not under the table location.
        """
        if is_metadata_file(path):
            return OrphanDecision(path, OrphanAction.KEEP, reason="metadata_file")
        if self.skip_staging:
            return OrphanDecision(path, OrphanAction.DELETE)
        if is_under_directory(path, self._trash_root):
            return OrphanDecision(path, OrphanAction.KEEP, reason="already_in_trash")
        target = to_trash_path(self.table_location, path, self.trash_dir)
        return OrphanDecision(path, OrphanAction.QUARANTINE, target=target)


def apply_decisions(
    candidates: Iterable[str],
    decider: OrphanDecider,
    filesystem: FileSystemClient,
    *,
    table: str,
    logger: BoundLogger | None = None,
) -> OrphanFilesResult:
    """Decide and act on every candidate, isolating per-file failures.

    Args:
        candidates: Orphan candidate paths, consumed once.
        decider: Per-file policy.
        filesystem: Filesystem used to move or delete files.
        table: Fully qualified table name for the result.
        logger: Optional structlog logger.

    Returns:
        OrphanFilesResult listing every candidate plus the per-action outcome.
    """
    log = logger or get_logger()
    orphan_paths: list[str] = []
    quarantined: list[str] = []
    deleted: list[str] = []
    skipped: list[str] = []
    failed: dict[str, str] = {}

    for path in candidates:
        log.info("orphan_file_detected", table=table, path=path)
        orphan_paths.append(path)
        try:
            decision = decider.decide(path)
        except InvalidPathError as exc:
            log.error("orphan_file_rejected", path=path, error=str(exc))
            failed[path] = str(exc)
            continue

        try:
            if decision.action is OrphanAction.KEEP:
                log.info("orphan_file_skipped", path=path, reason=decision.reason)
                skipped.append(path)
            elif decision.action is OrphanAction.DELETE:
                filesystem.delete(path)
                log.info("orphan_file_deleted", path=path)
                deleted.append(path)
            elif decision.target is None:
                msg = f"Quarantine decision for {path} requires a trash target"
                raise ValueError(msg)
            else:
                filesystem.rename(path, decision.target)
                log.info("orphan_file_moved", path=path, target=decision.target)
                quarantined.append(path)
        except (FilesystemOpError, OSError) as exc:
            log.error(
                "orphan_file_action_failed",
                path=path,
                action=decision.action.value,
                error=str(exc),
            )
            failed[path] = str(exc)

    return OrphanFilesResult(
        table=table,
        orphan_paths=orphan_paths,
        quarantined=quarantined,
        deleted=deleted,
        skipped=skipped,
        failed=failed,
    )


def quarantine_orphans(
    table: Table,
    engine: TableEngine,
    filesystem: FileSystemClient,
    *,
    trash_dir: str = DEFAULT_TRASH_DIR,
    older_than: datetime | None = None,
    skip_staging: bool = False,
    logger: BoundLogger | None = None,
) -> OrphanFilesResult:
    """Move (or delete) files no live snapshot references.

    Args:
        table: Table handle.
        engine: Table engine providing the orphan scan.
        filesystem: Filesystem used to move or delete files.
        trash_dir: Trash directory name under the table location.
        older_than: Only files modified before this are candidates.
            Defaults to three days ago.
        skip_staging: Delete files outright instead of moving them to trash.
        logger: Optional structlog logger.

    Returns:
        OrphanFilesResult. ``orphan_paths`` holds every reported candidate
        whether or not its move/delete succeeded.
    """
    log = logger or get_logger()
    table_name = ".".join(table.name())
    if older_than is None:
        older_than = datetime.now(timezone.utc) - timedelta(days=DEFAULT_ORPHAN_OLDER_THAN_DAYS)

    decider = OrphanDecider(table.location(), trash_dir, skip_staging=skip_staging)
    log.info(
        "orphan_scan_started",
        table=table_name,
        location=table.location(),
        older_than=older_than.isoformat(),
        skip_staging=skip_staging,
    )
    result = apply_decisions(
        engine.scan_orphan_candidates(table, older_than),
        decider,
        filesystem,
        table=table_name,
        logger=log,
    )
    increment_counter(ORPHAN_FILE_COUNT, result.orphan_count, table=table_name)
    log.info(
        "orphan_scan_finished",
        table=table_name,
        orphan_count=result.orphan_count,
        processed_count=result.processed_count,
        failed_count=len(result.failed),
    )
    return result
