"""Rich console output utilities for the maintenance CLI.

This module provides formatted console output with Rich, supporting
colored success/error/warning messages, result summaries and JSON output,
respecting the NO_COLOR environment variable.
"""

from __future__ import annotations

import json
import os
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from pydantic import BaseModel

# Rich respects NO_COLOR on its own, --no-color is handled by set_no_color()
_force_no_color = os.environ.get("NO_COLOR") is not None


def create_console(no_color: bool = False) -> Console:
    """Create a Rich Console instance with appropriate color settings.

    Args:
        no_color: If True, disable colored output. Also respects NO_COLOR env var.

    Returns:
        Configured Console instance.
    """
    force_terminal = None
    if no_color or _force_no_color:
        force_terminal = False
    return Console(force_terminal=force_terminal, no_color=no_color or _force_no_color)


# Default console instance
console = create_console()


def success(message: str, **kwargs: Any) -> None:
    """Print a success message with green checkmark.

    Example:
        >>> success("Expired 3 snapshots")
        ✓ Expired 3 snapshots
    """
    console.print(f"[green]✓[/green] {message}", **kwargs)


def error(message: str, **kwargs: Any) -> None:
    """Print an error message with red X.

    Example:
        >>> error("Table not found: db.events")
        ✗ Table not found: db.events
    """
    console.print(f"[red]✗[/red] {message}", **kwargs)


def warning(message: str, **kwargs: Any) -> None:
    """Print a warning message with yellow triangle.

    Example:
        >>> warning("2 files could not be moved")
        ⚠ 2 files could not be moved
    """
    console.print(f"[yellow]⚠[/yellow] {message}", **kwargs)


def info(message: str, **kwargs: Any) -> None:
    """Print an informational message."""
    console.print(message, **kwargs)


def print_json(data: dict[str, Any], **kwargs: Any) -> None:
    """Print JSON data with syntax highlighting."""
    console.print_json(json.dumps(data, default=str), **kwargs)


def print_summary(title: str, rows: dict[str, Any]) -> None:
    """Print a two-column summary table.

    Args:
        title: Table title.
        rows: Metric names mapped to values.
    """
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    for name, value in rows.items():
        table.add_row(name, str(value))
    console.print(table)


def print_result(
    result: BaseModel,
    *,
    title: str,
    summary: dict[str, Any],
    as_json: bool = False,
) -> None:
    """Print a maintenance result as JSON or as a summary table.

    Args:
        result: Result model.
        title: Summary table title.
        summary: Headline counts; merged into the JSON output as well.
        as_json: Print JSON instead of a table.
    """
    if as_json:
        print_json({**result.model_dump(mode="json"), **summary})
    else:
        print_summary(title, summary)


def set_no_color(no_color: bool) -> None:
    """Update the global console to enable/disable colors.

    Note:
        This updates the module-level console instance.
    """
    global console
    console = create_console(no_color=no_color)
