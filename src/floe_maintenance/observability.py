"""Structured logging, OpenTelemetry spans and metrics for floe-maintenance.

This module provides:
- Structured logging setup via structlog
- OpenTelemetry span helpers for maintenance operations
- OpenTelemetry counters for maintenance outcomes (orphan files, schema drift, ...)
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

import structlog
from opentelemetry import metrics, trace
from opentelemetry.trace import SpanKind, Status, StatusCode

if TYPE_CHECKING:
    from opentelemetry.metrics import Counter, Meter
    from opentelemetry.trace import Span, Tracer
    from structlog.stdlib import BoundLogger

# Module-level logger, tracer and meter
_logger: BoundLogger | None = None
_tracer: Tracer | None = None
_meter: Meter | None = None
_counters: dict[str, Counter] = {}

# Instrumentation scope name for OpenTelemetry
TRACER_NAME = "floe.maintenance"

# Metric attribute and instrument names
TABLE_NAME = "table_name"
INCOMPATIBLE_DATE_COLUMN = "incompatible_date_column"
ORPHAN_FILE_COUNT = "orphan_file_count"
STAGED_FILE_COUNT = "staged_file_count"
EXPIRED_SNAPSHOT_COUNT = "expired_snapshot_count"
ADDED_DATA_FILE_COUNT = "added_data_file_count"
REWRITTEN_DATA_FILE_COUNT = "rewritten_data_file_count"
REWRITTEN_DATA_FILE_BYTES = "rewritten_data_file_bytes"
REWRITTEN_DATA_FILE_GROUP_COUNT = "rewritten_data_file_group_count"


def get_logger() -> BoundLogger:
    """Get the module logger, creating it if necessary.

    Returns:
        Configured structlog BoundLogger instance.

    Example:
        >>> logger = get_logger()
        >>> logger.info("orphan_file_moved", path="s3://bucket/t/a.parquet")
    """
    global _logger
    if _logger is None:
        _logger = structlog.get_logger(TRACER_NAME)
    assert _logger is not None  # Type narrowing for mypy
    return _logger


def get_tracer() -> Tracer:
    """Get the OpenTelemetry tracer for floe-maintenance.

    Returns:
        OpenTelemetry Tracer instance.
    """
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(TRACER_NAME)
    return _tracer


def get_meter() -> Meter:
    """Get the OpenTelemetry meter for floe-maintenance.

    Returns:
        OpenTelemetry Meter instance. Without a configured MeterProvider
        this is the no-op meter of the OpenTelemetry API.
    """
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(TRACER_NAME)
    return _meter


def configure_logging(
    *,
    log_level: str = "INFO",
    json_format: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for floe-maintenance.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: If True, output JSON format. If False, output human-readable.
        add_timestamp: If True, add ISO timestamp to log entries.

    Example:
        >>> configure_logging(log_level="DEBUG", json_format=False)
    """
    import logging

    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )


def increment_counter(
    name: str,
    value: int = 1,
    *,
    table: str,
    meter: Meter | None = None,
) -> None:
    """Add to a maintenance counter attributed with the table name.

    Args:
        name: Instrument name (e.g. INCOMPATIBLE_DATE_COLUMN).
        value: Amount to add, must be non-negative.
        table: Fully qualified table name used as the counter attribute.
        meter: Optional meter; the module meter is used when omitted.

    Example:
        >>> increment_counter(ORPHAN_FILE_COUNT, 3, table="bronze.customers")
    """
    if meter is not None:
        counter = meter.create_counter(name)
    else:
        counter = _counters.get(name)
        if counter is None:
            counter = get_meter().create_counter(name)
            _counters[name] = counter
    counter.add(value, {TABLE_NAME: table})


@contextmanager
def span(
    name: str,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
    log_start: bool = True,
    log_end: bool = True,
) -> Iterator[Span]:
    """Create an OpenTelemetry span with structured logging.

    Args:
        name: Span name (e.g., "quarantine_orphans", "run_retention").
        kind: Span kind (INTERNAL, CLIENT, SERVER, PRODUCER, CONSUMER).
        attributes: Optional span attributes.
        log_start: If True, log span start.
        log_end: If True, log span end.

    Yields:
        OpenTelemetry Span instance.
    """
    tracer = get_tracer()
    logger = get_logger()
    attrs = attributes or {}

    with tracer.start_as_current_span(name, kind=kind, attributes=attrs) as s:
        if log_start:
            logger.debug(f"{name}_started", **attrs)
        try:
            yield s
            s.set_status(Status(StatusCode.OK))
            if log_end:
                logger.info(f"{name}_completed", **attrs)
        except Exception as exc:
            s.set_status(Status(StatusCode.ERROR, str(exc)))
            s.record_exception(exc)
            logger.error(f"{name}_failed", error=str(exc), **attrs)
            raise


@contextmanager
def maintenance_operation(
    operation: str,
    *,
    table: str | None = None,
    trash_dir: str | None = None,
    older_than_ms: int | None = None,
    granularity: str | None = None,
) -> Iterator[Span]:
    """Create a span for maintenance operations with standard attributes.

    Convenience wrapper around span() with maintenance-specific attributes.

    Args:
        operation: Operation name (e.g., "quarantine_orphans", "expire_snapshots").
        table: Fully qualified table identifier.
        trash_dir: Trash directory name for orphan and staged file operations.
        older_than_ms: Age cutoff in milliseconds since epoch.
        granularity: Retention granularity.

    Yields:
        OpenTelemetry Span instance.

    Example:
        >>> with maintenance_operation("expire_snapshots", table="bronze.customers"):
        ...     ops.expire_snapshots("bronze.customers", older_than=cutoff)
    """
    attrs: dict[str, Any] = {"maintenance.operation": operation}
    if table:
        attrs["maintenance.table"] = table
    if trash_dir:
        attrs["maintenance.trash_dir"] = trash_dir
    if older_than_ms is not None:
        attrs["maintenance.older_than_ms"] = older_than_ms
    if granularity:
        attrs["maintenance.granularity"] = granularity

    with span(f"maintenance.{operation}", kind=SpanKind.CLIENT, attributes=attrs) as s:
        yield s
