"""floe-maintenance compaction command - Rewrite small data files."""

from __future__ import annotations

from typing import Any

import click

from floe_maintenance.cli.errors import maintenance_errors
from floe_maintenance.cli.options import CommandSettings, catalog_options
from floe_maintenance.cli.output import print_result, success


@click.command("compaction")
@click.argument("table")
@click.option("--target-file-size-bytes", type=click.IntRange(min=1), default=None)
@click.option("--min-file-size-bytes", type=click.IntRange(min=0), default=None)
@click.option("--max-file-size-bytes", type=click.IntRange(min=1), default=None)
@click.option("--min-input-files", type=click.IntRange(min=1), default=None)
@click.option(
    "--max-concurrent-file-groups",
    type=click.IntRange(min=1),
    default=None,
    help="File groups rewritten in parallel.",
)
@click.option(
    "--partial-progress/--no-partial-progress",
    default=None,
    help="Commit rewritten file groups in several commits.",
)
@click.option(
    "--max-commits",
    type=click.IntRange(min=1),
    default=None,
    help="Commit budget when partial progress is enabled.",
)
@catalog_options
def compaction(
    table: str,
    target_file_size_bytes: int | None,
    min_file_size_bytes: int | None,
    max_file_size_bytes: int | None,
    min_input_files: int | None,
    max_concurrent_file_groups: int | None,
    partial_progress: bool | None,
    max_commits: int | None,
    settings: CommandSettings,
) -> None:
    """Bin-pack small (and oversized) data files into target-sized files.

    Files are grouped per partition. Sizes default to a 512 MB target.

    Examples:

        floe-maintenance compaction db.events

        floe-maintenance compaction db.events --partial-progress --max-commits 5
    """
    overrides: dict[str, Any] = {
        "target_file_size_bytes": target_file_size_bytes,
        "min_file_size_bytes": min_file_size_bytes,
        "max_file_size_bytes": max_file_size_bytes,
        "min_input_files": min_input_files,
        "max_concurrent_file_groups": max_concurrent_file_groups,
        "partial_progress_enabled": partial_progress,
        "partial_progress_max_commits": max_commits,
    }
    with maintenance_errors():
        from floe_maintenance.config import CompactionOptions

        options = CompactionOptions(**{k: v for k, v in overrides.items() if v is not None})
        with settings.operations() as ops:
            result = ops.rewrite_data_files(table, options)

    print_result(
        result,
        title=f"Compaction: {table}",
        summary=result.summary(),
        as_json=settings.as_json,
    )
    if not settings.as_json:
        success(
            f"Rewrote {result.rewritten_data_files_count} data files into "
            f"{result.added_data_files_count} in {result.commit_count} commits"
        )
