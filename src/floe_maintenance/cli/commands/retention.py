"""floe-maintenance retention command - Delete rows outside a time window."""

from __future__ import annotations

import click

from floe_maintenance.cli.errors import maintenance_errors
from floe_maintenance.cli.options import CommandSettings, catalog_options
from floe_maintenance.cli.output import print_result, success, warning


@click.command("retention")
@click.argument("table")
@click.option("--column", required=True, help="Retention column.")
@click.option(
    "--pattern",
    default="",
    help="Datetime pattern of a string column, e.g. yyyy-MM-dd or %Y-%m-%d.",
)
@click.option(
    "--granularity",
    required=True,
    help="Retention unit: hour, day, month or year.",
)
@click.option(
    "--count",
    type=int,
    required=True,
    help="Number of granularity units to retain.",
)
@catalog_options
def retention(
    table: str,
    column: str,
    pattern: str,
    granularity: str,
    count: int,
    settings: CommandSettings,
) -> None:
    """Delete rows whose retention column is older than the retention window.

    Rows are kept for COUNT whole units of GRANULARITY before the start of
    the current unit. String columns are parsed with --pattern; values that
    do not parse are never deleted.

    Examples:

        floe-maintenance retention db.events --column ts --granularity day --count 30

        floe-maintenance retention db.events --column ds --pattern yyyy-MM-dd \\
            --granularity month --count 6
    """
    with maintenance_errors():
        with settings.operations() as ops:
            result = ops.run_retention(table, column, pattern, granularity, count)

    print_result(
        result,
        title=f"Retention: {table}",
        summary={
            "cutoff": result.cutoff.isoformat(),
            "deleted": result.deleted,
            "schema_drift": result.schema_drift,
        },
        as_json=settings.as_json,
    )
    if settings.as_json:
        return
    if result.schema_drift:
        warning(f"Column {column} has values that do not match pattern {pattern!r}")
    if result.deleted:
        success(f"Deleted rows older than {result.cutoff.isoformat()}")
    else:
        success(f"No rows older than {result.cutoff.isoformat()}")
