"""Options shared by every maintenance command.

Catalog connection precedence: command line flags, then the ``catalog``
section of the --config file, then FLOE_CATALOG_* environment variables.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click

from floe_maintenance.cli.errors import CLIError, EXIT_SYSTEM_ERROR, handle_yaml_error

if TYPE_CHECKING:
    from floe_maintenance.config import MaintenanceConfig
    from floe_maintenance.operations import MaintenanceOperations

F = TypeVar("F", bound=Callable[..., Any])


def check_trash_dir(ctx: click.Context, param: click.Parameter, value: str | None) -> str | None:
    """Reject --trash-dir values that are not a single directory name."""
    if value is None:
        return None
    from floe_maintenance.config import validate_trash_dir

    try:
        return validate_trash_dir(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


def catalog_options(func: F) -> F:
    """Add catalog connection, config file and output options to a command.

    The decorated command receives a ``settings`` keyword argument (a
    CommandSettings) instead of the individual option values.
    """

    @click.option(
        "--json",
        "as_json",
        is_flag=True,
        default=False,
        help="Print the result as JSON.",
    )
    @click.option(
        "--catalog-name",
        default=None,
        help="Catalog name [env: FLOE_CATALOG_NAME].",
    )
    @click.option(
        "--catalog-type",
        default=None,
        help="Catalog type, e.g. rest, sql, glue [env: FLOE_CATALOG_TYPE].",
    )
    @click.option(
        "--warehouse",
        default=None,
        help="Warehouse name or location [env: FLOE_CATALOG_WAREHOUSE].",
    )
    @click.option(
        "--catalog-uri",
        default=None,
        help="Catalog endpoint URI [env: FLOE_CATALOG_URI].",
    )
    @click.option(
        "-c",
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        default=None,
        help="Maintenance YAML config (catalog and job defaults).",
    )
    @wraps(func)
    def wrapper(
        *args: Any,
        config_path: Path | None,
        catalog_uri: str | None,
        warehouse: str | None,
        catalog_type: str | None,
        catalog_name: str | None,
        as_json: bool,
        **kwargs: Any,
    ) -> Any:
        settings = CommandSettings(
            config_path=config_path,
            catalog_uri=catalog_uri,
            warehouse=warehouse,
            catalog_type=catalog_type,
            catalog_name=catalog_name,
            as_json=as_json,
        )
        return func(*args, settings=settings, **kwargs)

    return wrapper  # type: ignore[return-value]


class CommandSettings:
    """Resolved shared options of one command invocation."""

    def __init__(
        self,
        *,
        config_path: Path | None = None,
        catalog_uri: str | None = None,
        warehouse: str | None = None,
        catalog_type: str | None = None,
        catalog_name: str | None = None,
        as_json: bool = False,
    ) -> None:
        self.config_path = config_path
        self.catalog_uri = catalog_uri
        self.warehouse = warehouse
        self.catalog_type = catalog_type
        self.catalog_name = catalog_name
        self.as_json = as_json

    def load_config(self) -> MaintenanceConfig:
        """Load the --config file, or defaults when none was given.

        Raises:
            CLIError: If the file is missing, is not valid YAML or fails validation.
        """
        import yaml
        from pydantic import ValidationError as PydanticValidationError

        from floe_maintenance.cli.errors import format_pydantic_error
        from floe_maintenance.config import MaintenanceConfig

        if self.config_path is None:
            return MaintenanceConfig()
        try:
            return MaintenanceConfig.from_yaml(self.config_path)
        except FileNotFoundError:
            raise CLIError(
                f"File not found: {self.config_path}",
                exit_code=EXIT_SYSTEM_ERROR,
            ) from None
        except yaml.YAMLError as exc:
            handle_yaml_error(exc, str(self.config_path))
        except PydanticValidationError as exc:
            raise CLIError(
                f"Invalid configuration in {self.config_path}:\n{format_pydantic_error(exc)}"
            ) from None

    def operations(self) -> MaintenanceOperations:
        """Build MaintenanceOperations for the resolved catalog and config."""
        from floe_maintenance.config import CatalogConfig, CatalogSettings
        from floe_maintenance.operations import MaintenanceOperations

        config = self.load_config()
        overrides = {
            "uri": self.catalog_uri,
            "warehouse": self.warehouse,
            "type": self.catalog_type,
            "name": self.catalog_name,
        }
        if config.catalog is not None:
            values = config.catalog.model_dump()
            values.update({k: v for k, v in overrides.items() if v is not None})
            catalog_config = CatalogConfig.model_validate(values)
        else:
            catalog_config = CatalogSettings().to_config(**overrides)
        return MaintenanceOperations(catalog_config, config=config)
