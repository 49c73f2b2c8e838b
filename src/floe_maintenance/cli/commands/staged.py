"""floe-maintenance staged-files command - Purge old quarantined files."""

from __future__ import annotations

import click

from floe_maintenance.cli.errors import maintenance_errors
from floe_maintenance.cli.options import CommandSettings, catalog_options, check_trash_dir
from floe_maintenance.cli.output import print_result, success, warning


@click.command("staged-files")
@click.argument("table")
@click.option(
    "--older-than-days",
    type=click.IntRange(min=0),
    default=None,
    help="Delete trashed files older than this many days [default: 3].",
)
@click.option(
    "--trash-dir",
    default=None,
    callback=check_trash_dir,
    help="Trash directory under the table location [default: .trash].",
)
@click.option(
    "--recursive/--no-recursive",
    default=True,
    help="Descend into subdirectories of the trash directory.",
)
@catalog_options
def staged_files(
    table: str,
    older_than_days: int | None,
    trash_dir: str | None,
    recursive: bool,
    settings: CommandSettings,
) -> None:
    """Permanently delete files quarantined in the trash directory.

    Examples:

        floe-maintenance staged-files db.events

        floe-maintenance staged-files db.events --older-than-days 7
    """
    with maintenance_errors():
        with settings.operations() as ops:
            result = ops.purge_staged(
                table,
                older_than_days=older_than_days,
                trash_dir=trash_dir,
                recursive=recursive,
            )

    print_result(
        result,
        title=f"Staged files: {table}",
        summary={
            "matched_count": len(result.matched),
            "deleted_count": len(result.deleted),
            "failed_count": len(result.failed),
        },
        as_json=settings.as_json,
    )
    if settings.as_json:
        return
    if result.failed:
        warning(f"{len(result.failed)} staged files could not be deleted")
    else:
        success(f"Deleted {len(result.deleted)} staged files from {result.base_dir}")
