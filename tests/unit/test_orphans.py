"""Unit tests for orphan file quarantine."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeEngine, make_table

from floe_maintenance.errors import FilesystemOpError, InvalidPathError
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.orphans import (
    OrphanAction,
    OrphanDecider,
    OrphanDecision,
    apply_decisions,
    quarantine_orphans,
)


class TestOrphanDecider:
    """Tests for the per-file decision policy."""

    def test_data_file_is_quarantined(self) -> None:
        """Test an orphan data file is moved under the trash directory."""
        decider = OrphanDecider("/wh/t", ".trash")

        decision = decider.decide("/wh/t/data/a.parquet")

        assert decision.action is OrphanAction.QUARANTINE
        assert decision.target == "/wh/t/.trash/data/a.parquet"

    def test_metadata_file_is_kept(self) -> None:
        """Test metadata files are never moved."""
        decider = OrphanDecider("/wh/t", ".trash")

        decision = decider.decide("/wh/t/metadata/00003-abc.metadata.json")

        assert decision.action is OrphanAction.KEEP
        assert decision.reason == "metadata_file"

    def test_metadata_file_kept_when_skipping_staging(self) -> None:
        """Test metadata files are not deleted either."""
        decider = OrphanDecider("/wh/t", ".trash", skip_staging=True)

        assert decider.decide("/wh/t/metadata/v2.metadata.json").action is OrphanAction.KEEP

    def test_trashed_file_is_kept(self) -> None:
        """Test a file already in the trash is not moved again."""
        decider = OrphanDecider("/wh/t", ".trash")

        decision = decider.decide("/wh/t/.trash/data/a.parquet")

        assert decision.action is OrphanAction.KEEP
        assert decision.reason == "already_in_trash"

    def test_trash_check_compares_segments(self) -> None:
        """Test a directory that only shares the trash name prefix is not trash."""
        decider = OrphanDecider("/wh/t", ".trash")

        decision = decider.decide("/wh/t/.trash-old/a.parquet")

        assert decision.action is OrphanAction.QUARANTINE
        assert decision.target == "/wh/t/.trash/.trash-old/a.parquet"

    def test_skip_staging_deletes(self) -> None:
        """Test files are deleted outright when staging is skipped."""
        decider = OrphanDecider("/wh/t", ".trash", skip_staging=True)

        decision = decider.decide("/wh/t/data/a.parquet")

        assert decision.action is OrphanAction.DELETE
        assert decision.target is None

    def test_file_outside_location_raises(self) -> None:
        """Test a candidate outside the table location is rejected."""
        decider = OrphanDecider("/wh/t", ".trash")

        with pytest.raises(InvalidPathError):
            decider.decide("/wh/other/a.parquet")

    @pytest.mark.parametrize("trash_dir", ["a/b", "/", "..", ""])
    def test_invalid_trash_dir_rejected(self, trash_dir: str) -> None:
        """Test the trash directory must be a single directory name."""
        with pytest.raises(ValueError, match="single directory name"):
            OrphanDecider("/wh/t", trash_dir)

    def test_quarantine_decision_requires_target(self) -> None:
        """Test a quarantine decision cannot be built without a trash path."""
        with pytest.raises(ValueError, match="requires a trash target"):
            OrphanDecision("/wh/t/data/a.parquet", OrphanAction.QUARANTINE)


class TestApplyDecisions:
    """Tests for applying decisions against a filesystem."""

    def test_failure_is_isolated(self) -> None:
        """Test a failed move is recorded and the remaining files are processed."""
        filesystem = MagicMock(spec=FileSystemClient)
        filesystem.rename.side_effect = [
            FilesystemOpError("move failed", path="/wh/t/a", operation="move"),
            None,
        ]
        decider = OrphanDecider("/wh/t", ".trash")

        result = apply_decisions(["/wh/t/a", "/wh/t/b"], decider, filesystem, table="db.t")

        assert result.orphan_paths == ["/wh/t/a", "/wh/t/b"]
        assert result.quarantined == ["/wh/t/b"]
        assert list(result.failed) == ["/wh/t/a"]
        assert result.orphan_count == 2
        assert result.processed_count == 1

    def test_os_error_is_isolated(self) -> None:
        """Test raw OSError from the filesystem is isolated as well."""
        filesystem = MagicMock(spec=FileSystemClient)
        filesystem.delete.side_effect = OSError("gone")
        decider = OrphanDecider("/wh/t", ".trash", skip_staging=True)

        result = apply_decisions(["/wh/t/a"], decider, filesystem, table="db.t")

        assert result.failed == {"/wh/t/a": "gone"}
        assert result.deleted == []

    def test_path_outside_location_is_isolated(self) -> None:
        """Test a candidate outside the table location fails alone and the run goes on."""
        filesystem = MagicMock(spec=FileSystemClient)
        decider = OrphanDecider("/wh/t", ".trash")

        result = apply_decisions(
            ["/wh/t/data/a.parquet", "/wh/other/b.parquet", "/wh/t/data/c.parquet"],
            decider,
            filesystem,
            table="db.t",
        )

        assert result.orphan_count == 3
        assert result.quarantined == ["/wh/t/data/a.parquet", "/wh/t/data/c.parquet"]
        assert list(result.failed) == ["/wh/other/b.parquet"]
        assert filesystem.rename.call_count == 2


class TestQuarantineOrphans:
    """Tests for quarantine_orphans against a local filesystem."""

    def test_moves_orphans_to_trash(
        self,
        local_fs: FileSystemClient,
        make_file: Callable[..., str],
        tmp_path: Path,
    ) -> None:
        """Test orphan data files end up under the trash with their relative path."""
        location = str(tmp_path / "t")
        orphan = make_file(tmp_path / "t" / "data" / "stray.parquet", age_days=5)
        table = make_table(location=location)
        engine = FakeEngine(orphans=[orphan])

        result = quarantine_orphans(table, engine, local_fs, trash_dir=".trash")

        assert result.orphan_paths == [orphan]
        assert result.quarantined == [orphan]
        assert (tmp_path / "t" / ".trash" / "data" / "stray.parquet").exists()
        assert not Path(orphan).exists()

    def test_metadata_orphans_stay_in_place(
        self,
        local_fs: FileSystemClient,
        make_file: Callable[..., str],
        tmp_path: Path,
    ) -> None:
        """Test orphan metadata files are reported but not moved."""
        location = str(tmp_path / "t")
        data = make_file(tmp_path / "t" / "data" / "stray.parquet", age_days=5)
        meta = make_file(tmp_path / "t" / "metadata" / "00001-x.metadata.json", age_days=5)
        engine = FakeEngine(orphans=[data, meta])

        result = quarantine_orphans(make_table(location=location), engine, local_fs)

        assert result.orphan_count == 2
        assert result.processed_count == 1
        assert result.skipped == [meta]
        assert Path(meta).exists()

    def test_skip_staging_deletes_files(
        self,
        local_fs: FileSystemClient,
        make_file: Callable[..., str],
        tmp_path: Path,
    ) -> None:
        """Test skip_staging deletes orphans without creating a trash directory."""
        location = str(tmp_path / "t")
        orphan = make_file(tmp_path / "t" / "data" / "stray.parquet", age_days=5)
        engine = FakeEngine(orphans=[orphan])

        result = quarantine_orphans(
            make_table(location=location), engine, local_fs, skip_staging=True
        )

        assert result.deleted == [orphan]
        assert not Path(orphan).exists()
        assert not (tmp_path / "t" / ".trash").exists()

    def test_default_age_is_three_days(self, local_fs: FileSystemClient) -> None:
        """Test the default older_than is three days before now."""
        engine = FakeEngine()
        before = datetime.now(timezone.utc)

        quarantine_orphans(make_table(), engine, local_fs)

        (older_than,) = engine.called("scan_orphan_candidates")
        assert before - timedelta(days=3, seconds=5) < older_than <= before - timedelta(days=3)

    def test_no_orphans(self, local_fs: FileSystemClient) -> None:
        """Test an empty scan yields an empty result."""
        result = quarantine_orphans(make_table(), FakeEngine(), local_fs)

        assert result.orphan_count == 0
        assert result.processed_count == 0
        assert result.table == "db.events"

    def test_orphan_counter_incremented(self, local_fs: FileSystemClient) -> None:
        """Test the orphan file counter is attributed with the table name."""
        engine = FakeEngine(orphans=["/warehouse/db/events/metadata/v1.metadata.json"])

        with patch("floe_maintenance.orphans.increment_counter") as counter:
            quarantine_orphans(make_table(), engine, local_fs)

        counter.assert_called_once_with("orphan_file_count", 1, table="db.events")
