"""Snapshot expiry.

Removes old snapshots from table metadata. Data files that only expired
snapshots referenced are not deleted here; they become orphans and are picked
up by the orphan file quarantine.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from floe_maintenance.models import ExpireSnapshotsResult
from floe_maintenance.observability import EXPIRED_SNAPSHOT_COUNT, get_logger, increment_counter

if TYPE_CHECKING:
    from pyiceberg.table import Table
    from structlog.stdlib import BoundLogger

    from floe_maintenance.engine import TableEngine


def protected_snapshot_ids(table: Table) -> set[int]:
    """Return ids that must never expire: the current snapshot and every ref head."""
    protected = {ref.snapshot_id for ref in table.metadata.refs.values()}
    current = table.current_snapshot()
    if current is not None:
        protected.add(current.snapshot_id)
    return protected


def select_expired_snapshots(
    snapshots: Iterable[Any],
    *,
    older_than: datetime | None,
    retain_last: int | None = None,
    protected: set[int] | None = None,
) -> list[int]:
    """Select snapshot ids to expire.

    Args:
        snapshots: Snapshot objects with snapshot_id and timestamp_ms.
        older_than: Expire snapshots created strictly before this time.
            None applies no time filter (only retain_last limits expiry).
        retain_last: Always keep this many most recent snapshots.
        protected: Snapshot ids that are never expired.

    Returns:
        Snapshot ids to expire, oldest first.

    Raises:
        ValueError: If neither older_than nor retain_last is given, or
            retain_last is not positive.

    Example:
        >>> select_expired_snapshots(snaps, older_than=cutoff, protected={current_id})
        [101, 102]
    """
    if older_than is None and retain_last is None:
        msg = "At least one of older_than or retain_last must be specified"
        raise ValueError(msg)
    if retain_last is not None and retain_last < 1:
        msg = f"retain_last must be >= 1, got {retain_last}"
        raise ValueError(msg)

    ordered = sorted(snapshots, key=lambda s: s.timestamp_ms, reverse=True)
    keep: set[int] = set(protected or ())
    if retain_last is not None:
        keep.update(s.snapshot_id for s in ordered[:retain_last])
    if older_than is not None:
        older_than_ms = int(older_than.timestamp() * 1000)
        keep.update(s.snapshot_id for s in ordered if s.timestamp_ms >= older_than_ms)

    return [s.snapshot_id for s in reversed(ordered) if s.snapshot_id not in keep]


def expire_snapshots(
    table: Table,
    engine: TableEngine,
    *,
    older_than: datetime | None,
    retain_last: int | None = None,
    logger: BoundLogger | None = None,
) -> ExpireSnapshotsResult:
    """Expire snapshots older than a timestamp.

    The current snapshot and all branch and tag heads are always retained,
    so a table with a single snapshot is never left without one.

    Args:
        table: Table handle.
        engine: Table engine performing the expiry commit.
        older_than: Expire snapshots created before this time.
        retain_last: Always keep this many most recent snapshots.
        logger: Optional structlog logger.

    Returns:
        ExpireSnapshotsResult. No commit is made when nothing qualifies.
    """
    log = logger or get_logger()
    table_name = ".".join(table.name())
    snapshots = list(table.metadata.snapshots)
    expire_ids = select_expired_snapshots(
        snapshots,
        older_than=older_than,
        retain_last=retain_last,
        protected=protected_snapshot_ids(table),
    )
    retained = [s.snapshot_id for s in snapshots if s.snapshot_id not in set(expire_ids)]

    if not expire_ids:
        log.info("no_snapshots_to_expire", table=table_name, snapshot_count=len(snapshots))
        return ExpireSnapshotsResult(table=table_name, retained_snapshot_ids=retained)

    log.info(
        "expire_snapshots_planned",
        table=table_name,
        expire_count=len(expire_ids),
        retain_count=len(retained),
    )
    engine.expire_snapshots(table, expire_ids)
    increment_counter(EXPIRED_SNAPSHOT_COUNT, len(expire_ids), table=table_name)
    log.info("snapshots_expired", table=table_name, expired_snapshot_ids=expire_ids)
    return ExpireSnapshotsResult(
        table=table_name,
        expired_snapshot_ids=expire_ids,
        retained_snapshot_ids=retained,
    )
