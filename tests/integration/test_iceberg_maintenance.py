"""Integration tests against a pyiceberg SqlCatalog on a local warehouse.

Requires pyiceberg[sql-sqlite]; skipped when SQLAlchemy is not installed.
"""

from __future__ import annotations

import importlib.util
import os
import time
import warnings
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import pyarrow as pa
import pytest

from floe_maintenance.config import CompactionOptions, RetryConfig
from floe_maintenance.engine import IcebergEngine
from floe_maintenance.errors import SchemaDriftWarning
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.operations import MaintenanceOperations
from floe_maintenance.paths import strip_scheme

if TYPE_CHECKING:
    from pyiceberg.catalog.sql import SqlCatalog


def is_sql_catalog_available() -> bool:
    """Check whether SQLAlchemy is installed for pyiceberg's SqlCatalog."""
    return importlib.util.find_spec("sqlalchemy") is not None


# Skip all tests if the sqlite-backed catalog cannot be created
pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not is_sql_catalog_available(),
        reason="pyiceberg[sql-sqlite] is not installed",
    ),
]

ARROW_SCHEMA = pa.schema(
    [
        pa.field("id", pa.int64()),
        pa.field("event_ts", pa.timestamp("us", tz="UTC")),
        pa.field("ds", pa.string()),
    ]
)


def rows(*days_ago: int, start_id: int = 0) -> pa.Table:
    now = datetime.now(timezone.utc)
    stamps = [now - timedelta(days=d) for d in days_ago]
    return pa.Table.from_pylist(
        [
            {"id": start_id + i, "event_ts": ts, "ds": ts.strftime("%Y-%m-%d")}
            for i, ts in enumerate(stamps)
        ],
        schema=ARROW_SCHEMA,
    )


@pytest.fixture
def catalog(tmp_path: Path) -> SqlCatalog:
    """SqlCatalog backed by sqlite with a file:// warehouse and a db namespace."""
    from pyiceberg.catalog.sql import SqlCatalog

    warehouse = tmp_path / "warehouse"
    warehouse.mkdir()
    catalog = SqlCatalog(
        "test",
        uri=f"sqlite:///{tmp_path / 'catalog.db'}",
        warehouse=f"file://{warehouse}",
    )
    catalog.create_namespace("db")
    return catalog


@pytest.fixture
def ops(catalog: SqlCatalog) -> MaintenanceOperations:
    """MaintenanceOperations over an IcebergEngine for the catalog."""
    retry = RetryConfig(initial_wait_seconds=0.1, max_wait_seconds=1.0, jitter_seconds=0.0)
    engine = IcebergEngine(catalog, filesystem=FileSystemClient(), retry=retry)
    return MaintenanceOperations(engine=engine, filesystem=FileSystemClient())


def table_dir(catalog: SqlCatalog) -> Path:
    return Path(strip_scheme(catalog.load_table("db.events").location()))


def age(path: Path, days: float) -> None:
    mtime = time.time() - days * 24 * 60 * 60
    os.utime(path, (mtime, mtime))


class TestOrphanFiles:
    """Orphan quarantine against real table metadata."""

    def test_quarantine_is_idempotent(self, catalog: SqlCatalog, ops: MaintenanceOperations) -> None:
        """Test only the stray file is moved and a second run finds nothing."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(1, 2))
        table.append(rows(3, start_id=10))
        stray = table_dir(catalog) / "data" / "stray.parquet"
        stray.write_bytes(b"orphan")
        age(stray, 5)
        future = datetime.now(timezone.utc) + timedelta(hours=1)

        with ops:
            first = ops.quarantine_orphans("db.events", older_than=future)
            second = ops.quarantine_orphans("db.events", older_than=future)

        assert [strip_scheme(p) for p in first.orphan_paths] == [str(stray)]
        assert first.processed_count == 1
        assert (table_dir(catalog) / ".trash" / "data" / "stray.parquet").exists()
        assert second.orphan_count == 0
        assert catalog.load_table("db.events").scan().to_arrow().num_rows == 3

    def test_recent_files_ignored(self, catalog: SqlCatalog, ops: MaintenanceOperations) -> None:
        """Test files newer than the age threshold are not candidates."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(1))
        (table_dir(catalog) / "data" / "fresh.parquet").write_bytes(b"orphan")

        with ops:
            result = ops.quarantine_orphans("db.events")

        assert result.orphan_count == 0


class TestExpireSnapshots:
    """Snapshot expiry against real table metadata."""

    def test_current_snapshot_kept(self, catalog: SqlCatalog, ops: MaintenanceOperations) -> None:
        """Test older snapshots expire while the current one survives."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(1))
        table.append(rows(2, start_id=10))
        current = catalog.load_table("db.events").current_snapshot()
        assert current is not None

        with ops:
            result = ops.expire_snapshots(
                "db.events", older_than=datetime.now(timezone.utc) + timedelta(hours=1)
            )

        reloaded = catalog.load_table("db.events")
        assert result.expired_count == 1
        assert [s.snapshot_id for s in reloaded.metadata.snapshots] == [current.snapshot_id]
        assert reloaded.scan().to_arrow().num_rows == 2


class TestRetention:
    """Row retention against real data."""

    def test_timestamp_column(self, catalog: SqlCatalog, ops: MaintenanceOperations) -> None:
        """Test rows older than the window are deleted and a re-run is a no-op."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(0, 1, 10, 20))

        with ops:
            first = ops.run_retention("db.events", "event_ts", "", "day", 7)
            second = ops.run_retention("db.events", "event_ts", "", "day", 7)

        remaining = catalog.load_table("db.events").scan().to_arrow()
        assert first.deleted is True
        assert second.deleted is False
        assert sorted(remaining.column("id").to_pylist()) == [0, 1]

    def test_timestamp_column_with_pattern(
        self, catalog: SqlCatalog, ops: MaintenanceOperations
    ) -> None:
        """Test a pattern on a timestamp column is ignored and old rows still go."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(0, 2, start_id=1))

        with ops, warnings.catch_warnings():
            warnings.simplefilter("error", SchemaDriftWarning)
            result = ops.run_retention("db.events", "event_ts", "yyyy-MM-dd", "day", 1)

        remaining = catalog.load_table("db.events").scan().to_arrow()
        assert result.deleted is True
        assert result.schema_drift is False
        assert remaining.column("id").to_pylist() == [1]

    def test_string_column_with_pattern(
        self, catalog: SqlCatalog, ops: MaintenanceOperations
    ) -> None:
        """Test string partitions are parsed with the pattern and junk is kept."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        table.append(rows(0, 40))
        junk = pa.Table.from_pylist(
            [{"id": 99, "event_ts": datetime.now(timezone.utc), "ds": "not-a-date"}],
            schema=ARROW_SCHEMA,
        )
        table.append(junk)

        with ops, pytest.warns(UserWarning):
            result = ops.run_retention("db.events", "ds", "yyyy-MM-dd", "day", 30)

        remaining = catalog.load_table("db.events").scan().to_arrow()
        assert result.deleted is True
        assert result.schema_drift is True
        assert sorted(remaining.column("id").to_pylist()) == [0, 99]


class TestCompaction:
    """Data file rewrite against real data files."""

    def test_small_files_compacted(self, catalog: SqlCatalog, ops: MaintenanceOperations) -> None:
        """Test small files are merged and a re-run plans nothing."""
        table = catalog.create_table("db.events", schema=ARROW_SCHEMA)
        for batch in range(4):
            table.append(rows(batch, start_id=batch * 10))
        options = CompactionOptions(
            target_file_size_bytes=1024 * 1024,
            min_file_size_bytes=512 * 1024,
            max_file_size_bytes=2 * 1024 * 1024,
            min_input_files=2,
        )

        with ops:
            first = ops.rewrite_data_files("db.events", options)
            second = ops.rewrite_data_files("db.events", options)

        reloaded = catalog.load_table("db.events")
        assert first.rewritten_data_files_count == 4
        assert first.added_data_files_count == 1
        assert first.commit_count == 1
        assert second.commit_count == 0
        assert second.group_results == []
        assert len(list(reloaded.scan().plan_files())) == 1
        assert reloaded.scan().to_arrow().num_rows == 4
