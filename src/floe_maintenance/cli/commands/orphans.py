"""floe-maintenance orphan-files command - Quarantine unreferenced files."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import click

from floe_maintenance.cli.errors import maintenance_errors
from floe_maintenance.cli.options import CommandSettings, catalog_options, check_trash_dir
from floe_maintenance.cli.output import print_result, success, warning


@click.command("orphan-files")
@click.argument("table")
@click.option(
    "--older-than-days",
    type=click.IntRange(min=0),
    default=None,
    help="Only consider files older than this many days [default: 3].",
)
@click.option(
    "--trash-dir",
    default=None,
    callback=check_trash_dir,
    help="Trash directory under the table location [default: .trash].",
)
@click.option(
    "--skip-staging",
    is_flag=True,
    default=False,
    help="Delete orphan files immediately instead of moving them to trash.",
)
@catalog_options
def orphan_files(
    table: str,
    older_than_days: int | None,
    trash_dir: str | None,
    skip_staging: bool,
    settings: CommandSettings,
) -> None:
    """Quarantine files that no table snapshot references.

    Orphan files are moved to the table's trash directory, keeping their
    path relative to the table location. Table metadata files are never
    touched.

    Examples:

        floe-maintenance orphan-files db.events

        floe-maintenance orphan-files db.events --older-than-days 7 --skip-staging
    """
    with maintenance_errors():
        with settings.operations() as ops:
            older_than = None
            if older_than_days is not None:
                older_than = datetime.now(timezone.utc) - timedelta(days=older_than_days)
            result = ops.quarantine_orphans(
                table,
                older_than=older_than,
                trash_dir=trash_dir,
                skip_staging=skip_staging,
            )

    print_result(
        result,
        title=f"Orphan files: {table}",
        summary={
            "orphan_count": result.orphan_count,
            "processed_count": result.processed_count,
            "skipped_count": len(result.skipped),
            "failed_count": len(result.failed),
        },
        as_json=settings.as_json,
    )
    if settings.as_json:
        return
    if result.failed:
        warning(f"{len(result.failed)} orphan files could not be processed")
    else:
        success(f"Processed {result.processed_count} of {result.orphan_count} orphan files")
