"""Shared test fixtures for floe-maintenance tests.

Provides a fake TableEngine, MagicMock table handles and helpers for
creating files with controlled modification times on a local filesystem.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from floe_maintenance.config import CompactionOptions
from floe_maintenance.engine import RetentionPredicate
from floe_maintenance.errors import TableNotFoundError
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.models import RewriteResult

DAY_SECONDS = 24 * 60 * 60


class FakeEngine:
    """In-memory TableEngine recording every call."""

    def __init__(
        self,
        tables: dict[str, Any] | None = None,
        *,
        orphans: list[str] | None = None,
        samples: list[Any] | None = None,
        matching: bool = True,
        rewrite_result: RewriteResult | None = None,
    ) -> None:
        self.tables = tables or {}
        self.orphans = orphans or []
        self.samples = samples or []
        self.matching = matching
        self.rewrite_result = rewrite_result
        self.calls: list[tuple[str, Any]] = []

    def load_table(self, identifier: str) -> Any:
        self.calls.append(("load_table", identifier))
        if identifier not in self.tables:
            raise TableNotFoundError(identifier)
        return self.tables[identifier]

    def scan_orphan_candidates(self, table: Any, older_than: datetime) -> Iterator[str]:
        self.calls.append(("scan_orphan_candidates", older_than))
        yield from self.orphans

    def expire_snapshots(self, table: Any, expire_ids: list[int]) -> None:
        self.calls.append(("expire_snapshots", list(expire_ids)))

    def rewrite_data_files(self, table: Any, options: CompactionOptions) -> RewriteResult:
        self.calls.append(("rewrite_data_files", options))
        return self.rewrite_result or RewriteResult(table=".".join(table.name()))

    def delete_matching(self, table: Any, predicate: RetentionPredicate) -> None:
        self.calls.append(("delete_matching", predicate))

    def has_matching(self, table: Any, predicate: RetentionPredicate) -> bool:
        self.calls.append(("has_matching", predicate))
        return self.matching

    def sample_column(self, table: Any, column: str, limit: int) -> list[Any]:
        self.calls.append(("sample_column", (column, limit)))
        return self.samples[:limit]

    def called(self, name: str) -> list[Any]:
        """Return the arguments of every call to ``name``."""
        return [args for call, args in self.calls if call == name]


def make_snapshot(snapshot_id: int, timestamp_ms: int) -> MagicMock:
    """Create a mock pyiceberg Snapshot."""
    snapshot = MagicMock()
    snapshot.snapshot_id = snapshot_id
    snapshot.timestamp_ms = timestamp_ms
    snapshot.summary = None
    return snapshot


def make_table(
    name: str = "db.events",
    location: str = "/warehouse/db/events",
    *,
    snapshots: list[MagicMock] | None = None,
    current_snapshot_id: int | None = None,
    refs: dict[str, int] | None = None,
    schema: Any = None,
) -> MagicMock:
    """Create a mock pyiceberg Table."""
    table = MagicMock()
    table.name.return_value = tuple(name.split("."))
    table.location.return_value = location
    snapshots = snapshots or []
    table.metadata.snapshots = snapshots
    table.metadata.refs = {
        ref: MagicMock(snapshot_id=snapshot_id) for ref, snapshot_id in (refs or {}).items()
    }
    current = next((s for s in snapshots if s.snapshot_id == current_snapshot_id), None)
    table.current_snapshot.return_value = current
    if schema is not None:
        table.schema.return_value = schema
    return table


@pytest.fixture
def fake_engine() -> FakeEngine:
    """Create an empty FakeEngine."""
    return FakeEngine()


@pytest.fixture
def local_fs() -> FileSystemClient:
    """Create a FileSystemClient over the local filesystem."""
    return FileSystemClient()


@pytest.fixture
def make_file() -> Callable[..., str]:
    """Return a helper that creates a file aged ``age_days`` days.

    Example:
        >>> path = make_file(tmp_path / "t" / "data" / "a.parquet", age_days=5)
    """

    def _make(path: Path, *, age_days: float = 0, content: bytes = b"x") -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        mtime = time.time() - age_days * DAY_SECONDS
        os.utime(path, (mtime, mtime))
        return str(path)

    return _make


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()
