"""Pydantic configuration models for floe-maintenance.

This module provides:
- TableIdentifier: Table identifier model
- RetryConfig: Commit retry policy with exponential backoff
- CatalogConfig: Explicit catalog connection configuration
- CatalogSettings: Environment-derived catalog settings (FLOE_CATALOG_ prefix)
- Granularity: Retention time unit
- RetentionWindow: Retention column, pattern and time window
- CompactionOptions: Data file rewrite sizing and commit budgeting
- MaintenanceConfig: Job defaults loaded from YAML
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from floe_maintenance.errors import InvalidGranularityError

# Job defaults
DEFAULT_TRASH_DIR = ".trash"
DEFAULT_ORPHAN_OLDER_THAN_DAYS = 3

MB = 1024 * 1024


def validate_trash_dir(value: str) -> str:
    """Validate a trash directory name.

    Returns:
        The name without surrounding slashes.

    Raises:
        ValueError: If the value is not a single directory name.

    Example:
        >>> validate_trash_dir("/.trash/")
        '.trash'
    """
    name = value.strip("/")
    if not name or "/" in name or name in (".", ".."):
        msg = f"trash_dir must be a single directory name, got: {value!r}"
        raise ValueError(msg)
    return name


class TableIdentifier(BaseModel):
    """Table identifier with namespace and name.

    Attributes:
        namespace: Namespace (can be nested, e.g., "bronze.raw").
        name: Table name without namespace prefix.

    Example:
        >>> TableIdentifier.from_string("db.events")
        TableIdentifier(namespace='db', name='events')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = Field(
        ...,
        min_length=1,
        description="Namespace (can be nested with dots)",
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Table name",
    )

    def __str__(self) -> str:
        """Return fully qualified table identifier."""
        return f"{self.namespace}.{self.name}"

    @classmethod
    def from_string(cls, identifier: str) -> TableIdentifier:
        """Parse table identifier from string.

        Args:
            identifier: Table identifier string (namespace.table).

        Returns:
            TableIdentifier instance.

        Raises:
            ValueError: If identifier format is invalid.
        """
        parts = identifier.rsplit(".", 1)
        if len(parts) != 2:
            msg = f"Invalid table identifier format: {identifier}. Expected 'namespace.table'"
            raise ValueError(msg)
        return cls(namespace=parts[0], name=parts[1])

    @field_validator("name")
    @classmethod
    def validate_name_no_dots(cls, v: str) -> str:
        """Validate that table name doesn't contain dots."""
        if "." in v:
            msg = f"Table name cannot contain dots: {v}"
            raise ValueError(msg)
        return v


class RetryConfig(BaseModel):
    """Retry policy for table commits that lose an optimistic-concurrency race.

    Attributes:
        max_attempts: Maximum commit attempts (1-10, default 3).
        initial_wait_seconds: Initial backoff wait (0.1-30s, default 1.0).
        max_wait_seconds: Maximum backoff cap (1-300s, default 30.0).
        jitter_seconds: Random jitter range (0-10s, default 1.0).

    Example:
        >>> RetryConfig(max_attempts=5).max_attempts
        5
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of commit attempts",
    )
    initial_wait_seconds: float = Field(
        default=1.0,
        ge=0.1,
        le=30.0,
        description="Initial backoff wait time in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Maximum backoff wait time in seconds",
    )
    jitter_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=10.0,
        description="Random jitter range in seconds",
    )

    @model_validator(mode="after")
    def max_wait_must_exceed_initial(self) -> Self:
        """Validate that max_wait_seconds >= initial_wait_seconds."""
        if self.max_wait_seconds < self.initial_wait_seconds:
            msg = (
                f"max_wait_seconds ({self.max_wait_seconds}) must be >= "
                f"initial_wait_seconds ({self.initial_wait_seconds})"
            )
            raise ValueError(msg)
        return self


class CatalogConfig(BaseModel):
    """Catalog connection configuration.

    Passed explicitly to load_catalog() so several maintenance runs in one
    process can target different catalogs.

    Attributes:
        name: Catalog name used by pyiceberg.
        type: Catalog implementation (rest, sql, glue, hive, ...). Inferred
            by pyiceberg from the URI when omitted.
        uri: Catalog endpoint (REST URL, SQLAlchemy URL, thrift URI).
        warehouse: Warehouse name or location.
        credential: OAuth2 client credential ("client_id:client_secret").
        token: Pre-fetched bearer token.
        scope: OAuth2 scope for token requests.
        s3_endpoint: S3-compatible endpoint for FileIO.
        s3_region: S3 region.
        s3_path_style_access: Use path-style S3 access.
        properties: Extra pyiceberg catalog properties, applied last.

    Example:
        >>> config = CatalogConfig(
        ...     uri="http://localhost:8181/api/catalog",
        ...     warehouse="my_warehouse",
        ... )
        >>> config.to_properties()["uri"]
        'http://localhost:8181/api/catalog'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(
        default="default",
        min_length=1,
        description="Catalog name",
    )
    type: str | None = Field(
        default=None,
        description="Catalog implementation type",
    )
    uri: str | None = Field(
        default=None,
        description="Catalog endpoint URI",
    )
    warehouse: str | None = Field(
        default=None,
        description="Warehouse name or location",
    )
    credential: SecretStr | None = Field(
        default=None,
        description="OAuth2 client credential (client_id:client_secret)",
    )
    token: SecretStr | None = Field(
        default=None,
        description="Pre-fetched bearer token",
    )
    scope: str | None = Field(
        default=None,
        description="OAuth2 scope for token requests",
    )
    s3_endpoint: str | None = Field(
        default=None,
        description="S3-compatible endpoint URL (e.g., http://localhost:4566 for LocalStack)",
    )
    s3_region: str | None = Field(
        default=None,
        description="S3 region",
    )
    s3_path_style_access: bool = Field(
        default=False,
        description="Use path-style S3 access (required for LocalStack/MinIO)",
    )
    properties: dict[str, str] = Field(
        default_factory=dict,
        description="Additional pyiceberg catalog properties",
    )

    @field_validator("uri")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Normalize URI by removing a trailing slash."""
        return v.rstrip("/") if v else v

    def to_properties(self) -> dict[str, str]:
        """Build pyiceberg catalog properties.

        Returns:
            Dictionary of properties for pyiceberg.catalog.load_catalog().
        """
        props: dict[str, str] = {}
        if self.type:
            props["type"] = self.type
        if self.uri:
            props["uri"] = self.uri
        if self.warehouse:
            props["warehouse"] = self.warehouse
        if self.credential:
            props["credential"] = self.credential.get_secret_value()
        elif self.token:
            props["token"] = self.token.get_secret_value()
        if self.scope:
            props["scope"] = self.scope
        if self.s3_endpoint:
            props["s3.endpoint"] = self.s3_endpoint
            props["s3.path-style-access"] = str(self.s3_path_style_access).lower()
        if self.s3_region:
            props["s3.region"] = self.s3_region
        props.update(self.properties)
        return props


class CatalogSettings(BaseSettings):
    """Catalog settings read from the environment.

    Uses the FLOE_CATALOG_ prefix, e.g. FLOE_CATALOG_URI. The settings are
    converted once into an explicit CatalogConfig; nothing downstream reads
    the environment.

    Example:
        >>> config = CatalogSettings().to_config()
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOE_CATALOG_",
        env_file=".env",
        extra="ignore",
    )

    name: str = Field(default="default", description="Catalog name")
    type: str | None = Field(default=None, description="Catalog implementation type")
    uri: str | None = Field(default=None, description="Catalog endpoint URI")
    warehouse: str | None = Field(default=None, description="Warehouse name or location")
    credential: SecretStr | None = Field(default=None, description="OAuth2 credential")
    token: SecretStr | None = Field(default=None, description="Bearer token")
    scope: str | None = Field(default=None, description="OAuth2 scope")
    s3_endpoint: str | None = Field(default=None, description="S3 endpoint override")
    s3_region: str | None = Field(default=None, description="S3 region")

    def to_config(self, **overrides: Any) -> CatalogConfig:
        """Convert to an explicit CatalogConfig.

        Args:
            **overrides: Field values that take precedence over the environment.
                None values are ignored.

        Returns:
            CatalogConfig instance.
        """
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return CatalogConfig(**values)


class Granularity(str, Enum):
    """Time unit used to compute retention cutoffs."""

    HOUR = "hour"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: str | Granularity) -> Granularity:
        """Parse a granularity name case-insensitively.

        Raises:
            InvalidGranularityError: If the value is not a known granularity.
        """
        if isinstance(value, Granularity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidGranularityError(str(value)) from None


class RetentionWindow(BaseModel):
    """Retention policy for one table.

    Rows whose column value is older than ``count`` units of ``granularity``
    before the start of the current unit are deleted.

    Attributes:
        column: Partition or timestamp column the policy is applied to.
        pattern: Datetime pattern for string columns (e.g. "yyyy-MM-dd").
        granularity: Time unit of the window.
        count: Number of units to retain (0 keeps only the current unit).

    Example:
        >>> window = RetentionWindow(column="ts", granularity="day", count=1)
        >>> window.granularity
        <Granularity.DAY: 'day'>
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    column: str = Field(
        ...,
        min_length=1,
        description="Retention column name",
    )
    pattern: str = Field(
        default="",
        description="Datetime pattern used to parse string columns",
    )
    granularity: Granularity = Field(
        ...,
        description="Retention time unit",
    )
    count: int = Field(
        ...,
        ge=0,
        description="Number of granularity units to retain",
    )

    @field_validator("granularity", mode="before")
    @classmethod
    def parse_granularity(cls, v: Any) -> Granularity:
        """Accept granularity names in any case."""
        return Granularity.parse(v)

    @field_validator("pattern")
    @classmethod
    def strip_pattern(cls, v: str) -> str:
        """Treat whitespace-only patterns as blank."""
        return v.strip()


class CompactionOptions(BaseModel):
    """Sizing, concurrency and commit budget for a data file rewrite.

    Defaults follow Iceberg's bin-pack rewrite defaults with a 512MB target.

    Attributes:
        target_file_size_bytes: Desired output file size.
        min_file_size_bytes: Files below this size are rewrite candidates.
        max_file_size_bytes: Files above this size are rewrite candidates.
        min_input_files: A file group with at least this many files is rewritten.
        max_concurrent_file_groups: File groups rewritten in parallel.
        partial_progress_enabled: Commit completed groups before the run ends.
        partial_progress_max_commits: Commit budget when partial progress is on.
        max_file_group_size_bytes: Upper bound of input bytes per file group.

    Example:
        >>> opts = CompactionOptions(
        ...     target_file_size_bytes=1024 * 1024,
        ...     min_file_size_bytes=1024,
        ...     max_file_size_bytes=2 * 1024 * 1024,
        ...     min_input_files=2,
        ... )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    target_file_size_bytes: int = Field(
        default=512 * MB,
        ge=1,
        description="Target output data file size in bytes",
    )
    min_file_size_bytes: int = Field(
        default=384 * MB,
        ge=0,
        description="Files smaller than this are always rewrite candidates",
    )
    max_file_size_bytes: int = Field(
        default=int(512 * MB * 1.8),
        ge=1,
        description="Files larger than this are always rewrite candidates",
    )
    min_input_files: int = Field(
        default=5,
        ge=1,
        description="File groups with at least this many files are rewritten",
    )
    max_concurrent_file_groups: int = Field(
        default=5,
        ge=1,
        description="Maximum number of file groups rewritten simultaneously",
    )
    partial_progress_enabled: bool = Field(
        default=False,
        description="Commit groups of rewritten files before the whole rewrite completes",
    )
    partial_progress_max_commits: int = Field(
        default=10,
        ge=1,
        description="Maximum commits a rewrite may produce with partial progress",
    )
    max_file_group_size_bytes: int = Field(
        default=100 * 1024 * MB,
        ge=1,
        description="Maximum input bytes in one file group",
    )

    @model_validator(mode="after")
    def validate_size_ordering(self) -> Self:
        """Validate min_file_size_bytes <= target_file_size_bytes <= max_file_size_bytes."""
        if not (
            self.min_file_size_bytes <= self.target_file_size_bytes <= self.max_file_size_bytes
        ):
            msg = (
                "File sizes must satisfy min <= target <= max, got "
                f"min={self.min_file_size_bytes}, target={self.target_file_size_bytes}, "
                f"max={self.max_file_size_bytes}"
            )
            raise ValueError(msg)
        return self

    def to_rewrite_options(self) -> dict[str, str]:
        """Return the option map understood by Iceberg's rewrite action.

        Returns:
            Dictionary of rewrite option names to string values.
        """
        return {
            "max-concurrent-file-group-rewrites": str(self.max_concurrent_file_groups),
            "partial-progress.enabled": str(self.partial_progress_enabled).lower(),
            "partial-progress.max-commits": str(self.partial_progress_max_commits),
            "min-input-files": str(self.min_input_files),
            "target-file-size-bytes": str(self.target_file_size_bytes),
            "min-file-size-bytes": str(self.min_file_size_bytes),
            "max-file-size-bytes": str(self.max_file_size_bytes),
            "max-file-group-size-bytes": str(self.max_file_group_size_bytes),
        }


class MaintenanceConfig(BaseModel):
    """Maintenance job defaults, typically loaded from a YAML file.

    Attributes:
        catalog: Catalog connection (optional, CLI flags and environment
            can supply it instead).
        trash_dir: Trash directory name under each table location.
        orphan_older_than_days: Minimum age of orphan candidates.
        staged_older_than_days: Age after which trashed files are purged.
        retry: Commit retry policy.

    Example:
        >>> config = MaintenanceConfig.from_yaml(Path("maintenance.yaml"))
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    catalog: CatalogConfig | None = Field(
        default=None,
        description="Catalog connection configuration",
    )
    trash_dir: str = Field(
        default=DEFAULT_TRASH_DIR,
        min_length=1,
        description="Trash directory name under the table location",
    )
    orphan_older_than_days: int = Field(
        default=DEFAULT_ORPHAN_OLDER_THAN_DAYS,
        ge=0,
        description="Only files older than this are considered orphan",
    )
    staged_older_than_days: int = Field(
        default=3,
        ge=0,
        description="Trashed files older than this are permanently deleted",
    )
    retry: RetryConfig = Field(
        default_factory=RetryConfig,
        description="Commit retry policy",
    )

    @field_validator("trash_dir")
    @classmethod
    def check_trash_dir(cls, v: str) -> str:
        """Trash directory must be a single relative path segment."""
        return validate_trash_dir(v)

    @classmethod
    def from_yaml(cls, path: Path) -> MaintenanceConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML file.

        Returns:
            Validated MaintenanceConfig.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the content does not match the model.
        """
        with path.open() as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}
        return cls.model_validate(data)
