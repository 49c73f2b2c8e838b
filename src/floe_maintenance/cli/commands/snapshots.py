"""floe-maintenance expire-snapshots command - Expire old snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import click

from floe_maintenance.cli.errors import CLIError, maintenance_errors
from floe_maintenance.cli.options import CommandSettings, catalog_options
from floe_maintenance.cli.output import print_result, success


@click.command("expire-snapshots")
@click.argument("table")
@click.option(
    "--older-than-days",
    type=click.IntRange(min=0),
    default=None,
    help="Expire snapshots older than this many days.",
)
@click.option(
    "--retain-last",
    type=click.IntRange(min=1),
    default=None,
    help="Always keep this many most recent snapshots.",
)
@catalog_options
def expire_snapshots(
    table: str,
    older_than_days: int | None,
    retain_last: int | None,
    settings: CommandSettings,
) -> None:
    """Expire table snapshots.

    The current snapshot and all branch and tag heads are always kept.
    Data files are not deleted; run orphan-files afterwards to reclaim them.

    Examples:

        floe-maintenance expire-snapshots db.events --older-than-days 7

        floe-maintenance expire-snapshots db.events --retain-last 10
    """
    if older_than_days is None and retain_last is None:
        raise CLIError("At least one of --older-than-days or --retain-last is required")

    with maintenance_errors():
        with settings.operations() as ops:
            older_than = None
            if older_than_days is not None:
                older_than = datetime.now(timezone.utc) - timedelta(days=older_than_days)
            result = ops.expire_snapshots(table, older_than=older_than, retain_last=retain_last)

    print_result(
        result,
        title=f"Expired snapshots: {table}",
        summary={
            "expired_count": result.expired_count,
            "retained_count": len(result.retained_snapshot_ids),
        },
        as_json=settings.as_json,
    )
    if not settings.as_json:
        success(f"Expired {result.expired_count} snapshots")
