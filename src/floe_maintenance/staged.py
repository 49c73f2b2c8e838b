"""Garbage collection of quarantined (staged) files.

Files moved to a table's trash directory by the orphan quarantine are kept
for a grace period and then deleted here, based on modification time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from floe_maintenance.errors import FilesystemOpError
from floe_maintenance.filesystem import FileStatus, walk_files
from floe_maintenance.models import StagedFilesResult
from floe_maintenance.observability import STAGED_FILE_COUNT, get_logger, increment_counter

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger

    from floe_maintenance.filesystem import FileSystemClient


def purge_staged(
    filesystem: FileSystemClient,
    base_dir: str,
    older_than_days: int,
    recursive: bool = True,
    *,
    now: datetime | None = None,
    table: str | None = None,
    logger: BoundLogger | None = None,
) -> StagedFilesResult:
    """Delete files under base_dir last modified more than older_than_days ago.

    Args:
        filesystem: Filesystem client.
        base_dir: Trash directory to purge.
        older_than_days: Age threshold in days.
        recursive: If True, descend into subdirectories.
        now: Reference time, defaults to the current UTC time.
        table: Table name used to attribute the staged file counter.
        logger: Optional structlog logger.

    Returns:
        StagedFilesResult. ``matched`` holds every file older than the
        threshold, whether or not its delete succeeded. A missing base_dir
        yields an empty result.

    Raises:
        ValueError: If older_than_days is negative.
    """
    if older_than_days < 0:
        msg = f"older_than_days must be >= 0, got {older_than_days}"
        raise ValueError(msg)

    log = logger or get_logger()
    if not filesystem.exists(base_dir):
        log.info("trash_dir_missing", path=base_dir)
        return StagedFilesResult(base_dir=base_dir, older_than_days=older_than_days)

    threshold = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)

    def predicate(status: FileStatus) -> bool:
        return status.is_older_than(threshold)

    matching = walk_files(filesystem, base_dir, predicate, recursive)
    log.info(
        "staged_files_deleting",
        path=base_dir,
        count=len(matching),
        older_than_days=older_than_days,
        modification_time_threshold=threshold.isoformat(),
    )

    deleted: list[str] = []
    failed: dict[str, str] = {}
    for status in matching:
        try:
            filesystem.delete(status.path)
            deleted.append(status.path)
        except (FilesystemOpError, OSError) as exc:
            log.error("staged_file_delete_failed", path=status.path, error=str(exc))
            failed[status.path] = str(exc)

    if table:
        increment_counter(STAGED_FILE_COUNT, len(matching), table=table)

    return StagedFilesResult(
        base_dir=base_dir,
        older_than_days=older_than_days,
        matched=[s.path for s in matching],
        deleted=deleted,
        failed=failed,
    )
