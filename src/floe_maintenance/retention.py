"""Time-window retention for partitioned tables.

This module provides:
- compute_cutoff: Start of the retention window for a granularity and count
- to_strptime_format: Translate a Java/Spark datetime pattern to strptime
- parse_datetime: Parse one column value with a pattern
- check_records: Sample a column and report values the pattern cannot parse
- run_retention: Delete rows older than the retention window

Rows are retained when their column value falls within ``count`` whole units
of ``granularity`` before the start of the current unit. For example
``granularity=day, count=1`` evaluated at 2024-03-10T15:00 keeps rows from
2024-03-09T00:00 onwards.

String columns are parsed with the configured pattern. Values that cannot be
parsed are never deleted. Date and timestamp columns are compared directly
and any pattern is ignored.
"""

from __future__ import annotations

import re
import warnings
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from pyiceberg.types import DateType, StringType, TimestampType, TimestamptzType

from floe_maintenance.config import Granularity, RetentionWindow
from floe_maintenance.errors import SchemaDriftWarning
from floe_maintenance.models import RetentionResult
from floe_maintenance.observability import (
    INCOMPATIBLE_DATE_COLUMN,
    get_logger,
    increment_counter,
)

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter
    from pyiceberg.table import Table
    from pyiceberg.types import IcebergType
    from structlog.stdlib import BoundLogger

    from floe_maintenance.engine import RetentionPredicate, TableEngine

# Rows sampled by check_records
SAMPLE_SIZE = 10

# Java DateTimeFormatter letters and their strptime equivalents, longest first
_JAVA_TOKENS: list[tuple[str, str]] = [
    ("yyyy", "%Y"),
    ("uuuu", "%Y"),
    ("SSSSSS", "%f"),
    ("SSS", "%f"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("EEEE", "%A"),
    ("EEE", "%a"),
    ("yy", "%y"),
    ("MM", "%m"),
    ("dd", "%d"),
    ("HH", "%H"),
    ("hh", "%I"),
    ("mm", "%M"),
    ("ss", "%S"),
    ("XXX", "%z"),
    ("Z", "%z"),
    ("a", "%p"),
    ("D", "%j"),
]
_JAVA_TOKEN_RE = re.compile("|".join(re.escape(t) for t, _ in _JAVA_TOKENS) + r"|'[^']*'|.")
_JAVA_TOKEN_MAP = dict(_JAVA_TOKENS)


def to_strptime_format(pattern: str) -> str:
    """Translate a Java/Spark datetime pattern into a strptime format.

    Patterns already containing ``%`` are treated as strptime formats and
    returned unchanged. Quoted literals ('T') are kept verbatim.

    Example:
        >>> to_strptime_format("yyyy-MM-dd-HH")
        '%Y-%m-%d-%H'
        >>> to_strptime_format("yyyy-MM-dd'T'HH:mm:ss")
        '%Y-%m-%dT%H:%M:%S'
    """
    if "%" in pattern:
        return pattern
    parts: list[str] = []
    for token in _JAVA_TOKEN_RE.findall(pattern):
        if token in _JAVA_TOKEN_MAP:
            parts.append(_JAVA_TOKEN_MAP[token])
        elif token.startswith("'") and token.endswith("'") and len(token) >= 2:
            parts.append(token[1:-1] or "'")
        else:
            parts.append(token)
    return "".join(parts)


def parse_datetime(value: Any, pattern: str) -> datetime | None:
    """Parse a column value with a pattern.

    Returns:
        Parsed datetime (UTC when the pattern has no offset), or None if the
        value is null or does not match the pattern.
    """
    if value is None:
        return None
    try:
        parsed = datetime.strptime(str(value), to_strptime_format(pattern))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def truncate(moment: datetime, granularity: Granularity) -> datetime:
    """Truncate a datetime to the start of its granularity unit."""
    moment = moment.replace(minute=0, second=0, microsecond=0)
    if granularity is Granularity.HOUR:
        return moment
    moment = moment.replace(hour=0)
    if granularity is Granularity.DAY:
        return moment
    moment = moment.replace(day=1)
    if granularity is Granularity.MONTH:
        return moment
    return moment.replace(month=1)


def _shift_months(moment: datetime, months: int) -> datetime:
    # Only called on month-truncated values, so day=1 is always valid
    index = moment.year * 12 + (moment.month - 1) - months
    return moment.replace(year=index // 12, month=index % 12 + 1)


def compute_cutoff(
    granularity: Granularity | str,
    count: int,
    now: datetime | None = None,
) -> datetime:
    """Compute the retention cutoff.

    Args:
        granularity: Retention time unit.
        count: Number of units to retain, >= 0.
        now: Evaluation time, defaults to the current UTC time.

    Returns:
        ``truncate(now, granularity) - count * granularity``. Month and year
        steps are calendar based.

    Raises:
        InvalidGranularityError: If the granularity is unknown.
        ValueError: If count is negative.

    Example:
        >>> compute_cutoff("day", 1, datetime(2024, 3, 10, 15, tzinfo=timezone.utc))
        datetime.datetime(2024, 3, 9, 0, 0, tzinfo=datetime.timezone.utc)
    """
    unit = Granularity.parse(granularity)
    if count < 0:
        msg = f"count must be >= 0, got {count}"
        raise ValueError(msg)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    start = truncate(now, unit)
    if unit is Granularity.HOUR:
        return start - timedelta(hours=count)
    if unit is Granularity.DAY:
        return start - timedelta(days=count)
    if unit is Granularity.MONTH:
        return _shift_months(start, count)
    return _shift_months(start, count * 12)


def check_records(
    table: Table,
    engine: TableEngine,
    column: str,
    pattern: str,
    *,
    meter: Meter | None = None,
    logger: BoundLogger | None = None,
) -> bool:
    """Verify a sample of the retention column against its pattern.

    Advisory: a parse failure increments the ``incompatible_date_column``
    counter, logs a warning and emits SchemaDriftWarning, but never blocks
    retention.

    Args:
        table: Table handle.
        engine: Table engine used to sample the column.
        column: Retention column name.
        pattern: Datetime pattern. Nothing is checked when blank.
        meter: Optional OpenTelemetry meter for the drift counter.
        logger: Optional structlog logger.

    Returns:
        True if schema drift was detected.
    """
    if not pattern.strip():
        return False

    log = logger or get_logger()
    table_name = ".".join(table.name())
    values = engine.sample_column(table, column, SAMPLE_SIZE)
    log.debug("retention_pattern_check", table=table_name, column=column, sampled=len(values))

    if all(parse_datetime(value, pattern) is not None for value in values):
        return False

    increment_counter(INCOMPATIBLE_DATE_COLUMN, table=table_name, meter=meter)
    log.warning(
        "retention_pattern_mismatch",
        table=table_name,
        column=column,
        pattern=pattern,
    )
    warnings.warn(
        f"Failed to parse column {column} with provided retention column pattern "
        f"{pattern} for table {table_name}",
        SchemaDriftWarning,
        stacklevel=2,
    )
    return True


def validate_column(table: Table, window: RetentionWindow) -> IcebergType:
    """Validate the retention column against the table schema.

    Returns:
        The column's Iceberg type.

    Raises:
        ValueError: If the column does not exist, has an unsupported type,
            or is a string column without a pattern.
    """
    try:
        field = table.schema().find_field(window.column)
    except ValueError:
        msg = f"Retention column {window.column} not found in table {'.'.join(table.name())}"
        raise ValueError(msg) from None

    if isinstance(field.field_type, StringType):
        if not window.pattern:
            msg = f"Retention column {window.column} is a string column and requires a pattern"
            raise ValueError(msg)
    elif not isinstance(field.field_type, (DateType, TimestampType, TimestamptzType)):
        msg = (
            f"Retention column {window.column} has unsupported type {field.field_type}; "
            "expected date, timestamp or string"
        )
        raise ValueError(msg)
    return field.field_type


def is_expired(value: Any, predicate: RetentionPredicate) -> bool:
    """Evaluate a retention predicate against one column value.

    Null and unparseable values are never expired.
    """
    if value is None:
        return False
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return moment < predicate.cutoff
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc) < predicate.cutoff
    if predicate.pattern:
        parsed = parse_datetime(value, predicate.pattern)
        return parsed is not None and parsed < predicate.cutoff
    return False


def run_retention(
    table: Table,
    engine: TableEngine,
    column: str,
    pattern: str,
    granularity: Granularity | str,
    count: int,
    *,
    now: datetime | None = None,
    meter: Meter | None = None,
    logger: BoundLogger | None = None,
) -> RetentionResult:
    """Delete rows whose retention column is older than the retention window.

    The window is validated before the table is queried. When no row
    qualifies, no commit is issued.

    Args:
        table: Table handle.
        engine: Table engine performing the delete.
        column: Retention column.
        pattern: Datetime pattern for string columns. Ignored for date and
            timestamp columns.
        granularity: hour, day, month or year.
        count: Number of units to retain.
        now: Evaluation time, defaults to the current UTC time.
        meter: Optional OpenTelemetry meter for the drift counter.
        logger: Optional structlog logger.

    Returns:
        RetentionResult.

    Raises:
        InvalidGranularityError: If the granularity is unknown.
        ValueError: If count is negative or the column is invalid.
        CommitConflictError: If the delete commit kept conflicting.
    """
    from floe_maintenance.engine import RetentionPredicate

    log = logger or get_logger()
    window = RetentionWindow(column=column, pattern=pattern, granularity=granularity, count=count)
    field_type = validate_column(table, window)

    table_name = ".".join(table.name())
    # Native date and timestamp columns are compared directly
    pattern = window.pattern if isinstance(field_type, StringType) else ""
    if window.pattern and not pattern:
        log.debug(
            "retention_pattern_ignored",
            table=table_name,
            column=window.column,
            column_type=str(field_type),
        )
    drift = check_records(table, engine, window.column, pattern, meter=meter, logger=log)
    cutoff = compute_cutoff(window.granularity, window.count, now)
    predicate = RetentionPredicate(column=window.column, cutoff=cutoff, pattern=pattern)

    log.info(
        "retention_started",
        table=table_name,
        column=window.column,
        pattern=pattern or None,
        granularity=window.granularity.value,
        count=window.count,
        cutoff=cutoff.isoformat(),
    )
    if not engine.has_matching(table, predicate):
        log.info("retention_no_expired_rows", table=table_name, cutoff=cutoff.isoformat())
        return RetentionResult(
            table=table_name,
            column=window.column,
            cutoff=cutoff,
            schema_drift=drift,
        )

    engine.delete_matching(table, predicate)
    log.info("retention_rows_deleted", table=table_name, cutoff=cutoff.isoformat())
    return RetentionResult(
        table=table_name,
        column=window.column,
        cutoff=cutoff,
        deleted=True,
        schema_drift=drift,
    )
