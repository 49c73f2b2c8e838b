"""CLI entry point for floe-maintenance.

Commands are loaded lazily so ``floe-maintenance --help`` does not import
pyiceberg or pyarrow.
"""

from __future__ import annotations

import importlib
from typing import Any

import click
import rich_click as rclick

from floe_maintenance import __version__
from floe_maintenance.cli.output import set_no_color

# Configure rich-click for better help formatting
rclick.rich_click.TEXT_MARKUP = "markdown"
rclick.rich_click.SHOW_ARGUMENTS = True
rclick.rich_click.GROUP_ARGUMENTS_OPTIONS = True


class LazyGroup(rclick.RichGroup):
    """Click group that imports command modules only when a command is invoked.

    Attributes:
        lazy_subcommands: Mapping of command names to "module.attribute" paths.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize LazyGroup.

        Args:
            *args: Positional arguments for parent class.
            lazy_subcommands: Mapping of command name to module path.
                Format: {"compaction": "floe_maintenance.cli.commands.compaction.compaction"}
            **kwargs: Keyword arguments for parent class.
        """
        super().__init__(*args, **kwargs)
        self.lazy_subcommands: dict[str, str] = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """Return sorted names of registered and lazy commands."""
        commands = set(super().list_commands(ctx))
        commands.update(self.lazy_subcommands.keys())
        return sorted(commands)

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get a command by name, importing its module if needed."""
        cmd = super().get_command(ctx, cmd_name)  # type: ignore[arg-type]
        if cmd is not None:
            return cmd

        if cmd_name not in self.lazy_subcommands:
            return None

        module_name, attr_name = self.lazy_subcommands[cmd_name].rsplit(".", 1)
        mod = importlib.import_module(module_name)
        return getattr(mod, attr_name)  # type: ignore[no-any-return]


LAZY_COMMANDS = {
    "orphan-files": "floe_maintenance.cli.commands.orphans.orphan_files",
    "staged-files": "floe_maintenance.cli.commands.staged.staged_files",
    "expire-snapshots": "floe_maintenance.cli.commands.snapshots.expire_snapshots",
    "retention": "floe_maintenance.cli.commands.retention.retention",
    "compaction": "floe_maintenance.cli.commands.compaction.compaction",
}


def _remember_log_format(ctx: click.Context, param: click.Parameter, value: str) -> str:
    ctx.meta["log_format"] = value
    return value


def _configure_logging(ctx: click.Context, param: click.Parameter, value: str) -> str:
    from floe_maintenance.observability import configure_logging

    json_format = ctx.meta.get("log_format", "console") == "json"
    configure_logging(log_level=value, json_format=json_format)
    return value


@click.command(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.version_option(version=__version__, prog_name="floe-maintenance")
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output.",
    is_eager=True,
    expose_value=False,
    callback=lambda ctx, param, value: set_no_color(value) if value else None,
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    is_eager=True,
    expose_value=False,
    callback=_remember_log_format,
    help="Log output format.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    expose_value=False,
    callback=_configure_logging,
    help="Minimum log level.",
)
def cli() -> None:
    """Floe Maintenance - Lifecycle maintenance for Iceberg tables.

    Each command runs one maintenance operation against one table.

    **Commands:**

    - `floe-maintenance orphan-files db.table` - Quarantine unreferenced files
    - `floe-maintenance staged-files db.table` - Purge old quarantined files
    - `floe-maintenance expire-snapshots db.table` - Expire old snapshots
    - `floe-maintenance retention db.table` - Delete rows outside a time window
    - `floe-maintenance compaction db.table` - Rewrite small data files

    Catalog options fall back to `FLOE_CATALOG_*` environment variables.
    """


if __name__ == "__main__":
    cli()
