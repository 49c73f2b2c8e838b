"""Data file compaction policy.

This module provides:
- DataFileInfo / FileGroup: Planner inputs and outputs
- plan_file_groups: Bin-pack policy selecting which files to rewrite together
- batch_commits: Partial-progress commit budgeting
- execute_rewrite: Bounded-concurrency rewrite and commit orchestration
- plan_compaction: Run a table rewrite through the engine and record metrics

The policy follows Iceberg's bin-pack rewrite strategy:

1. Files are grouped by partition; a group never spans partitions.
2. Files with a size inside [min_file_size_bytes, max_file_size_bytes] are
   left alone.
3. The remaining files are split into groups of at most
   max_file_group_size_bytes input bytes.
4. A group is rewritten when it has at least min_input_files files (and more
   than one), when it has more than one file totalling more than the target
   size, or when it contains a file above max_file_size_bytes.

A table that was just compacted therefore plans zero groups and produces no
commit.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from floe_maintenance.models import FileGroupRewriteResult, RewriteResult
from floe_maintenance.observability import (
    ADDED_DATA_FILE_COUNT,
    REWRITTEN_DATA_FILE_BYTES,
    REWRITTEN_DATA_FILE_COUNT,
    REWRITTEN_DATA_FILE_GROUP_COUNT,
    get_logger,
    increment_counter,
)

if TYPE_CHECKING:
    from pyiceberg.table import Table
    from structlog.stdlib import BoundLogger

    from floe_maintenance.config import CompactionOptions
    from floe_maintenance.engine import TableEngine

T = TypeVar("T")


@dataclass(frozen=True)
class DataFileInfo:
    """A data file considered for compaction.

    Attributes:
        path: Data file path.
        size_bytes: File size in bytes.
        partition: Hashable partition key (spec id plus partition values).
        record_count: Number of records in the file.
        handle: Engine-specific file object (a pyiceberg DataFile).
    """

    path: str
    size_bytes: int
    partition: tuple[Any, ...] = ()
    record_count: int = 0
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass
class FileGroup:
    """Files of one partition that are rewritten together.

    Attributes:
        partition: Partition key shared by every file.
        files: Input files.
        partition_index: 1-based index of the group within its partition.
        global_index: 1-based index of the group within the whole plan.
    """

    partition: tuple[Any, ...]
    files: list[DataFileInfo]
    partition_index: int = 0
    global_index: int = 0

    @property
    def total_bytes(self) -> int:
        """Total input bytes."""
        return sum(f.size_bytes for f in self.files)

    @property
    def file_count(self) -> int:
        """Number of input files."""
        return len(self.files)


@dataclass
class RewrittenGroup(Generic[T]):
    """A file group whose replacement files have been written.

    Attributes:
        group: The input file group.
        added_files: Engine-specific output file objects.
    """

    group: FileGroup
    added_files: list[T]

    def to_result(self) -> FileGroupRewriteResult:
        """Summarize the rewrite of this group."""
        return FileGroupRewriteResult(
            partition=render_partition(self.group.partition),
            partition_index=self.group.partition_index,
            global_index=self.group.global_index,
            added_data_files_count=len(self.added_files),
            rewritten_data_files_count=self.group.file_count,
            rewritten_bytes_count=self.group.total_bytes,
        )


def render_partition(partition: tuple[Any, ...]) -> str:
    """Render a partition key for results and logs."""
    if not partition:
        return "unpartitioned"
    return "/".join(str(v) for v in partition)


def is_rewrite_candidate(file: DataFileInfo, options: CompactionOptions) -> bool:
    """Check whether a file's size falls outside [min, max]."""
    return (
        file.size_bytes < options.min_file_size_bytes
        or file.size_bytes > options.max_file_size_bytes
    )


def should_rewrite(files: list[DataFileInfo], options: CompactionOptions) -> bool:
    """Decide whether a candidate group is worth rewriting."""
    count = len(files)
    total = sum(f.size_bytes for f in files)
    enough_input_files = count > 1 and count >= options.min_input_files
    enough_content = count > 1 and total > options.target_file_size_bytes
    too_much_content = total > options.max_file_group_size_bytes
    has_too_large_file = any(f.size_bytes > options.max_file_size_bytes for f in files)
    return enough_input_files or enough_content or too_much_content or has_too_large_file


def _split_by_size(files: list[DataFileInfo], max_group_bytes: int) -> list[list[DataFileInfo]]:
    groups: list[list[DataFileInfo]] = []
    current: list[DataFileInfo] = []
    current_bytes = 0
    for file in files:
        if current and current_bytes + file.size_bytes > max_group_bytes:
            groups.append(current)
            current, current_bytes = [], 0
        current.append(file)
        current_bytes += file.size_bytes
    if current:
        groups.append(current)
    return groups


def plan_file_groups(
    files: Iterable[DataFileInfo],
    options: CompactionOptions,
) -> list[FileGroup]:
    """Select file groups to rewrite.

    Args:
        files: Live data files of the table.
        options: Compaction options.

    Returns:
        File groups in partition order, indexed per partition and globally.

    Example:
        >>> groups = plan_file_groups(files, CompactionOptions(min_input_files=2))
        >>> [g.file_count for g in groups]
        [3]
    """
    by_partition: dict[tuple[Any, ...], list[DataFileInfo]] = {}
    for file in files:
        if is_rewrite_candidate(file, options):
            by_partition.setdefault(file.partition, []).append(file)

    planned: list[FileGroup] = []
    for partition, candidates in by_partition.items():
        partition_index = 0
        for group_files in _split_by_size(candidates, options.max_file_group_size_bytes):
            if not should_rewrite(group_files, options):
                continue
            partition_index += 1
            planned.append(
                FileGroup(
                    partition=partition,
                    files=group_files,
                    partition_index=partition_index,
                    global_index=len(planned) + 1,
                )
            )
    return planned


def batch_commits(
    groups: list[FileGroup],
    options: CompactionOptions,
) -> list[list[FileGroup]]:
    """Split file groups into commit batches.

    Without partial progress every group goes into a single commit. With
    partial progress, groups are spread over at most
    ``partial_progress_max_commits`` commits of roughly equal size.

    Example:
        >>> opts = CompactionOptions(partial_progress_enabled=True, partial_progress_max_commits=3)
        >>> [len(b) for b in batch_commits(groups_of_10, opts)]
        [4, 4, 2]
    """
    if not groups:
        return []
    if not options.partial_progress_enabled:
        return [list(groups)]
    per_commit = math.ceil(len(groups) / options.partial_progress_max_commits)
    return [groups[i : i + per_commit] for i in range(0, len(groups), per_commit)]


def execute_rewrite(
    groups: list[FileGroup],
    options: CompactionOptions,
    rewrite_group: Callable[[FileGroup], RewrittenGroup[T]],
    commit: Callable[[list[RewrittenGroup[T]]], None],
    *,
    logger: BoundLogger | None = None,
) -> tuple[int, list[RewrittenGroup[T]]]:
    """Rewrite file groups on a bounded thread pool and commit them in batches.

    Args:
        groups: Planned file groups.
        options: Compaction options (concurrency and commit budget).
        rewrite_group: Writes the replacement files of one group.
        commit: Atomically swaps the input files of a batch for its outputs.
        logger: Optional structlog logger.

    Returns:
        Number of commits and the rewritten groups in global index order.
    """
    log = logger or get_logger()
    batches = batch_commits(groups, options)
    rewritten: list[RewrittenGroup[T]] = []
    if not batches:
        return 0, rewritten

    with ThreadPoolExecutor(
        max_workers=options.max_concurrent_file_groups,
        thread_name_prefix="rewrite-file-group",
    ) as pool:
        for batch_number, batch in enumerate(batches, start=1):
            done = list(pool.map(rewrite_group, batch))
            commit(done)
            rewritten.extend(done)
            log.info(
                "rewrite_batch_committed",
                batch=batch_number,
                batch_count=len(batches),
                group_count=len(done),
            )
    return len(batches), rewritten


def plan_compaction(
    table: Table,
    engine: TableEngine,
    options: CompactionOptions,
    *,
    logger: BoundLogger | None = None,
) -> RewriteResult:
    """Compact a table's data files through the engine.

    Args:
        table: Table handle.
        engine: Table engine performing the rewrite.
        options: Compaction options.
        logger: Optional structlog logger.

    Returns:
        RewriteResult with per-group counts; all zero when nothing qualified.
    """
    log = logger or get_logger()
    table_name = ".".join(table.name())
    log.info("rewrite_data_files_started", table=table_name, **options.to_rewrite_options())

    result = engine.rewrite_data_files(table, options)

    increment_counter(
        REWRITTEN_DATA_FILE_COUNT, result.rewritten_data_files_count, table=table_name
    )
    increment_counter(ADDED_DATA_FILE_COUNT, result.added_data_files_count, table=table_name)
    increment_counter(REWRITTEN_DATA_FILE_BYTES, result.rewritten_bytes_count, table=table_name)
    increment_counter(
        REWRITTEN_DATA_FILE_GROUP_COUNT, len(result.group_results), table=table_name
    )
    for group in result.group_results:
        log.info(
            "file_group_rewritten",
            table=table_name,
            partition=group.partition,
            partition_index=group.partition_index,
            global_index=group.global_index,
            added_data_files_count=group.added_data_files_count,
            rewritten_data_files_count=group.rewritten_data_files_count,
            rewritten_bytes_count=group.rewritten_bytes_count,
        )
    log.info("rewrite_data_files_finished", table=table_name, **result.summary())
    return result
