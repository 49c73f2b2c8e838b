"""Unit tests for the maintenance CLI commands.

Commands run against a FakeEngine: CommandSettings.operations is patched to
return MaintenanceOperations with the fake engine injected, so no catalog is
contacted.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import FakeEngine, make_snapshot, make_table

from floe_maintenance.cli.main import cli
from floe_maintenance.cli.options import CommandSettings
from floe_maintenance.config import CatalogConfig
from floe_maintenance.errors import CommitConflictError
from floe_maintenance.filesystem import FileSystemClient
from floe_maintenance.models import FileGroupRewriteResult, RewriteResult
from floe_maintenance.operations import MaintenanceOperations


def flat(output: str) -> str:
    """Collapse Rich wrapping and panel borders so messages can be matched."""
    return " ".join(output.replace("\u2502", " ").split())


@pytest.fixture
def table_root(tmp_path: Path) -> Path:
    """Location of the db.events table."""
    return tmp_path / "t"


@pytest.fixture
def engine(table_root: Path) -> FakeEngine:
    """FakeEngine serving db.events."""
    snapshots = [make_snapshot(i, 1_000 * i) for i in (1, 2, 3)]
    table = make_table(
        location=str(table_root), snapshots=snapshots, current_snapshot_id=3, refs={"main": 3}
    )
    return FakeEngine({"db.events": table})


@pytest.fixture(autouse=True)
def fake_operations(engine: FakeEngine) -> Iterator[None]:
    """Route every command to the FakeEngine."""

    def operations(self: CommandSettings) -> MaintenanceOperations:
        return MaintenanceOperations(
            config=self.load_config(), engine=engine, filesystem=FileSystemClient()
        )

    with patch.object(CommandSettings, "operations", operations):
        yield


class TestOrphanFilesCommand:
    """Tests for orphan-files."""

    def test_quarantines_orphans(
        self,
        cli_runner: CliRunner,
        engine: FakeEngine,
        make_file: Callable[..., str],
        table_root: Path,
    ) -> None:
        """Test orphan files are moved and a summary is printed."""
        engine.orphans = [make_file(table_root / "data" / "stray.parquet", age_days=5)]

        result = cli_runner.invoke(cli, ["orphan-files", "db.events"])

        assert result.exit_code == 0, result.output
        assert "Processed 1 of 1 orphan files" in result.output
        assert (table_root / ".trash" / "data" / "stray.parquet").exists()

    def test_json_output(self, cli_runner: CliRunner) -> None:
        """Test --json prints the result with summary counts."""
        result = cli_runner.invoke(cli, ["orphan-files", "db.events", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["table"] == "db.events"
        assert data["orphan_count"] == 0
        assert data["processed_count"] == 0

    def test_unknown_table(self, cli_runner: CliRunner) -> None:
        """Test an unknown table is a user error."""
        result = cli_runner.invoke(cli, ["orphan-files", "db.missing"])

        assert result.exit_code == 1
        assert "Table not found: db.missing" in flat(result.output)

    def test_negative_age_rejected(self, cli_runner: CliRunner) -> None:
        """Test --older-than-days must be non-negative."""
        result = cli_runner.invoke(cli, ["orphan-files", "db.events", "--older-than-days", "-1"])

        assert result.exit_code == 2

    @pytest.mark.parametrize("command", ["orphan-files", "staged-files"])
    @pytest.mark.parametrize("trash_dir", ["a/b", "/", ".."])
    def test_invalid_trash_dir_rejected(
        self, cli_runner: CliRunner, engine: FakeEngine, command: str, trash_dir: str
    ) -> None:
        """Test --trash-dir must be a single directory name."""
        result = cli_runner.invoke(cli, [command, "db.events", "--trash-dir", trash_dir])

        assert result.exit_code == 2
        assert "single directory name" in flat(result.output)
        assert engine.calls == []


class TestStagedFilesCommand:
    """Tests for staged-files."""

    def test_purges_trash(
        self, cli_runner: CliRunner, make_file: Callable[..., str], table_root: Path
    ) -> None:
        """Test old trashed files are deleted."""
        old = make_file(table_root / ".trash" / "data" / "old.parquet", age_days=10)

        result = cli_runner.invoke(cli, ["staged-files", "db.events", "--older-than-days", "3"])

        assert result.exit_code == 0, result.output
        assert "Deleted 1 staged files" in result.output
        assert not Path(old).exists()

    def test_trash_dir_from_config(
        self,
        cli_runner: CliRunner,
        make_file: Callable[..., str],
        table_root: Path,
        tmp_path: Path,
    ) -> None:
        """Test the trash directory defaults to the --config value."""
        old = make_file(table_root / ".quarantine" / "old.parquet", age_days=10)
        config = tmp_path / "maintenance.yaml"
        config.write_text("trash_dir: .quarantine\nstaged_older_than_days: 1\n")

        result = cli_runner.invoke(cli, ["staged-files", "db.events", "-c", str(config)])

        assert result.exit_code == 0, result.output
        assert not Path(old).exists()


class TestExpireSnapshotsCommand:
    """Tests for expire-snapshots."""

    def test_expires_snapshots(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test snapshots older than the age are expired, keeping the current one."""
        result = cli_runner.invoke(
            cli, ["expire-snapshots", "db.events", "--older-than-days", "1", "--json"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["expired_snapshot_ids"] == [1, 2]
        assert data["expired_count"] == 2
        assert engine.called("expire_snapshots") == [[1, 2]]

    def test_retain_last(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test --retain-last alone is accepted."""
        result = cli_runner.invoke(cli, ["expire-snapshots", "db.events", "--retain-last", "2"])

        assert result.exit_code == 0, result.output
        assert engine.called("expire_snapshots") == [[1]]

    def test_requires_criterion(self, cli_runner: CliRunner) -> None:
        """Test one of --older-than-days and --retain-last is required."""
        result = cli_runner.invoke(cli, ["expire-snapshots", "db.events"])

        assert result.exit_code == 1
        assert "--older-than-days or --retain-last" in flat(result.output)

    def test_commit_conflict_is_system_error(
        self, cli_runner: CliRunner, engine: FakeEngine
    ) -> None:
        """Test a lost commit race exits with the system error code."""

        def conflict(table: object, expire_ids: list[int]) -> None:
            raise CommitConflictError("db.events", operation="expire_snapshots")

        engine.expire_snapshots = conflict  # type: ignore[method-assign]

        result = cli_runner.invoke(
            cli, ["expire-snapshots", "db.events", "--older-than-days", "1"]
        )

        assert result.exit_code == 2
        assert "Commit conflict on db.events" in flat(result.output)


class TestRetentionCommand:
    """Tests for retention."""

    @pytest.fixture(autouse=True)
    def schema(self, engine: FakeEngine) -> None:
        from pyiceberg.schema import Schema
        from pyiceberg.types import NestedField, StringType, TimestamptzType

        engine.tables["db.events"].schema.return_value = Schema(
            NestedField(1, "event_ts", TimestamptzType(), required=False),
            NestedField(2, "ds", StringType(), required=False),
        )

    def test_deletes_rows(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test a retention run deletes expired rows."""
        result = cli_runner.invoke(
            cli,
            ["retention", "db.events", "--column", "event_ts", "--granularity", "day", "--count", "7"],
        )

        assert result.exit_code == 0, result.output
        assert "Deleted rows older than" in result.output
        assert len(engine.called("delete_matching")) == 1

    def test_pattern_json(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test a string column with a pattern reports its cutoff as JSON."""
        engine.samples = ["2024-03-09"]
        engine.matching = False

        result = cli_runner.invoke(
            cli,
            [
                "retention",
                "db.events",
                "--column",
                "ds",
                "--pattern",
                "yyyy-MM-dd",
                "--granularity",
                "month",
                "--count",
                "1",
                "--json",
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["deleted"] is False
        assert data["schema_drift"] is False
        assert data["column"] == "ds"

    def test_invalid_granularity(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test an invalid granularity is a user error and nothing is queried."""
        result = cli_runner.invoke(
            cli,
            ["retention", "db.events", "--column", "event_ts", "--granularity", "week", "--count", "1"],
        )

        assert result.exit_code == 1
        assert "Invalid retention granularity" in flat(result.output)
        assert engine.calls == []

    def test_string_column_without_pattern(self, cli_runner: CliRunner) -> None:
        """Test a string column without --pattern is rejected."""
        result = cli_runner.invoke(
            cli,
            ["retention", "db.events", "--column", "ds", "--granularity", "day", "--count", "1"],
        )

        assert result.exit_code == 1
        assert "requires a pattern" in flat(result.output)


class TestCompactionCommand:
    """Tests for compaction."""

    def test_options_passed(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test command line sizes and commit budget reach the rewrite."""
        result = cli_runner.invoke(
            cli,
            [
                "compaction",
                "db.events",
                "--target-file-size-bytes",
                "1000",
                "--min-file-size-bytes",
                "500",
                "--max-file-size-bytes",
                "2000",
                "--min-input-files",
                "2",
                "--partial-progress",
                "--max-commits",
                "4",
            ],
        )

        assert result.exit_code == 0, result.output
        (options,) = engine.called("rewrite_data_files")
        assert options.target_file_size_bytes == 1000
        assert options.min_input_files == 2
        assert options.partial_progress_enabled is True
        assert options.partial_progress_max_commits == 4

    def test_json_summary(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test the JSON output includes aggregate counts."""
        engine.rewrite_result = RewriteResult(
            table="db.events",
            commit_count=1,
            group_results=[
                FileGroupRewriteResult(
                    partition="unpartitioned",
                    partition_index=1,
                    global_index=1,
                    added_data_files_count=1,
                    rewritten_data_files_count=5,
                    rewritten_bytes_count=5000,
                )
            ],
        )

        result = cli_runner.invoke(cli, ["compaction", "db.events", "--json"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["rewritten_data_files_count"] == 5
        assert data["added_data_files_count"] == 1
        assert data["commit_count"] == 1
        assert data["group_results"][0]["global_index"] == 1

    def test_invalid_sizes(self, cli_runner: CliRunner, engine: FakeEngine) -> None:
        """Test inconsistent sizes are rejected before any rewrite."""
        result = cli_runner.invoke(
            cli, ["compaction", "db.events", "--min-file-size-bytes", str(10 * 1024**3)]
        )

        assert result.exit_code == 1
        assert "min <= target <= max" in flat(result.output)
        assert engine.calls == []


class TestConfigFile:
    """Tests for --config handling."""

    @pytest.fixture(autouse=True)
    def in_tmp_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)

    def test_missing_config(self, cli_runner: CliRunner) -> None:
        """Test a missing config file is a system error."""
        result = cli_runner.invoke(cli, ["orphan-files", "db.events", "-c", "missing.yaml"])

        assert result.exit_code == 2
        assert "File not found" in flat(result.output)

    def test_invalid_yaml(self, cli_runner: CliRunner) -> None:
        """Test malformed YAML is a user error with its position."""
        Path("bad.yaml").write_text("catalog: [unclosed\n")

        result = cli_runner.invoke(cli, ["orphan-files", "db.events", "-c", "bad.yaml"])

        assert result.exit_code == 1
        assert "YAML syntax error" in flat(result.output)

    def test_invalid_config(self, cli_runner: CliRunner) -> None:
        """Test schema violations are reported per field."""
        Path("bad.yaml").write_text("orphan_older_than_days: -1\n")

        result = cli_runner.invoke(cli, ["orphan-files", "db.events", "-c", "bad.yaml"])

        assert result.exit_code == 1
        assert "orphan_older_than_days" in flat(result.output)


class TestCatalogPrecedence:
    """Tests for catalog connection resolution (unpatched operations)."""

    @pytest.fixture(autouse=True)
    def fake_operations(self) -> None:
        """Use the real CommandSettings.operations."""

    def test_flags_override_config_file(self, tmp_path: Path) -> None:
        """Test command line flags win over the config file catalog section."""
        config = tmp_path / "maintenance.yaml"
        config.write_text("catalog:\n  type: rest\n  uri: http://file:8181\n  warehouse: wh\n")
        settings = CommandSettings(config_path=config, catalog_uri="http://flag:8181")

        ops = settings.operations()

        assert ops.catalog_config == CatalogConfig(type="rest", uri="http://flag:8181", warehouse="wh")

    def test_environment_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test FLOE_CATALOG_* variables are used without a config file."""
        monkeypatch.setenv("FLOE_CATALOG_URI", "http://env:8181")
        monkeypatch.setenv("FLOE_CATALOG_WAREHOUSE", "env_wh")

        ops = CommandSettings(warehouse="flag_wh").operations()

        assert ops.catalog_config is not None
        assert ops.catalog_config.uri == "http://env:8181"
        assert ops.catalog_config.warehouse == "flag_wh"
