"""Catalog loading from an explicit CatalogConfig.

Each maintenance run builds its own catalog; there is no process-wide
catalog registry or global configuration lookup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pyiceberg.catalog import load_catalog as pyiceberg_load_catalog

from floe_maintenance.errors import CatalogConnectionError
from floe_maintenance.observability import get_logger, span

if TYPE_CHECKING:
    from pyiceberg.catalog import Catalog

    from floe_maintenance.config import CatalogConfig


def load_catalog(config: CatalogConfig) -> Catalog:
    """Create a pyiceberg Catalog from configuration.

    Args:
        config: Catalog connection configuration.

    Returns:
        Connected pyiceberg Catalog.

    Raises:
        CatalogConnectionError: If the catalog cannot be created or reached.

    Example:
        >>> catalog = load_catalog(CatalogConfig(uri="http://localhost:8181/api/catalog"))
    """
    logger = get_logger()
    with span(
        "catalog.connect",
        attributes={"catalog.name": config.name, "catalog.uri": config.uri or ""},
        log_start=False,
        log_end=False,
    ):
        try:
            catalog = pyiceberg_load_catalog(config.name, **config.to_properties())
        except Exception as exc:
            logger.error("catalog_connection_failed", uri=config.uri, error=str(exc))
            raise CatalogConnectionError(
                "Failed to connect to catalog",
                uri=config.uri,
                cause=str(exc),
            ) from exc
    logger.info("catalog_connected", name=config.name, uri=config.uri, warehouse=config.warehouse)
    return catalog
