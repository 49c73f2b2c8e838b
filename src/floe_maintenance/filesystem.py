"""Filesystem access for table maintenance via pyarrow.fs.

This module provides:
- FileStatus: path, size and modification time of a listed file
- FileSystemClient: exists/list/rename/delete/mkdirs over a pyarrow FileSystem
- walk_files: predicate-filtered (recursive or shallow) file listing

Paths are accepted and returned in the caller's form: a "s3://" or "file://"
prefix on the input is kept on every path derived from it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pyarrow import fs as pafs

from floe_maintenance.errors import FilesystemOpError
from floe_maintenance.observability import get_logger
from floe_maintenance.paths import split_scheme

if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger


@dataclass(frozen=True)
class FileStatus:
    """A file returned by a directory listing.

    Attributes:
        path: File path, carrying the scheme prefix of the listed directory.
        size: File size in bytes.
        mtime: Last modification time (UTC), None if the store does not report it.
    """

    path: str
    size: int
    mtime: datetime | None

    def is_older_than(self, cutoff: datetime) -> bool:
        """Return True if the file was last modified strictly before cutoff."""
        return self.mtime is not None and self.mtime < cutoff


class FileSystemClient:
    """Blocking filesystem operations used by the maintenance algorithms.

    Wraps a pyarrow FileSystem. No operation defines a timeout.

    Example:
        >>> client = FileSystemClient.from_uri("s3://bucket/warehouse")
        >>> client.exists("s3://bucket/warehouse/db/t/.trash")
        False
    """

    def __init__(
        self,
        filesystem: pafs.FileSystem | None = None,
        *,
        logger: BoundLogger | None = None,
    ) -> None:
        """Initialize FileSystemClient.

        Args:
            filesystem: pyarrow FileSystem; a LocalFileSystem when omitted.
            logger: Optional structlog logger.
        """
        self._fs = filesystem or pafs.LocalFileSystem()
        self._logger = logger or get_logger()

    @classmethod
    def from_uri(cls, uri: str) -> FileSystemClient:
        """Create a client for the filesystem that serves ``uri``."""
        filesystem, _ = pafs.FileSystem.from_uri(uri)
        return cls(filesystem)

    @property
    def filesystem(self) -> pafs.FileSystem:
        """Return the underlying pyarrow FileSystem."""
        return self._fs

    def exists(self, path: str) -> bool:
        """Check whether a file or directory exists."""
        info = self._fs.get_file_info(_fs_path(path))
        return info.type != pafs.FileType.NotFound

    def get_file(self, path: str) -> FileStatus | None:
        """Return the status of a single file, or None if it does not exist."""
        info = self._fs.get_file_info(_fs_path(path))
        if info.type != pafs.FileType.File:
            return None
        return _to_status(split_scheme(path)[0], info)

    def list_files(self, directory: str, recursive: bool = True) -> Iterator[FileStatus]:
        """List files (not directories) under a directory.

        Args:
            directory: Directory to list.
            recursive: If True, descend into subdirectories.

        Yields:
            FileStatus for each file.

        Raises:
            FilesystemOpError: If the directory cannot be listed.
        """
        prefix, rest = split_scheme(directory)
        selector = pafs.FileSelector(rest.rstrip("/"), recursive=recursive)
        try:
            infos = self._fs.get_file_info(selector)
        except OSError as exc:
            raise FilesystemOpError(
                f"Failed to list files in dir {directory}",
                path=directory,
                operation="list",
                cause=str(exc),
            ) from exc
        for info in infos:
            if info.type == pafs.FileType.File:
                yield _to_status(prefix, info)

    def mkdirs(self, path: str) -> None:
        """Create a directory and its parents."""
        try:
            self._fs.create_dir(_fs_path(path), recursive=True)
        except OSError as exc:
            raise FilesystemOpError(
                f"Failed to create directory {path}",
                path=path,
                operation="mkdirs",
                cause=str(exc),
            ) from exc

    def rename(self, src: str, dest: str) -> None:
        """Move a file, creating the destination's parent directory if needed.

        Raises:
            FilesystemOpError: If the move fails.
        """
        parent = dest.rstrip("/").rsplit("/", 1)[0]
        if not self.exists(parent):
            self.mkdirs(parent)
        try:
            self._fs.move(_fs_path(src), _fs_path(dest))
        except OSError as exc:
            raise FilesystemOpError(
                f"FileSystem move operation failed from src: {src} to dest {dest}",
                path=src,
                operation="move",
                cause=str(exc),
            ) from exc
        self._logger.info("file_moved", src=src, dest=dest)

    def delete(self, path: str) -> None:
        """Delete a single file (non-recursive).

        Raises:
            FilesystemOpError: If the delete fails.
        """
        try:
            self._fs.delete_file(_fs_path(path))
        except OSError as exc:
            raise FilesystemOpError(
                f"Failed to delete file {path}",
                path=path,
                operation="delete",
                cause=str(exc),
            ) from exc


def walk_files(
    client: FileSystemClient,
    directory: str,
    predicate: Callable[[FileStatus], bool],
    recursive: bool = True,
) -> list[FileStatus]:
    """Collect files under a directory that match a predicate.

    Args:
        client: Filesystem client.
        directory: Directory to walk.
        predicate: Filter applied to every listed file.
        recursive: If True, descend into subdirectories.

    Returns:
        Matching files in listing order.

    Raises:
        FilesystemOpError: If the directory cannot be listed.
    """
    get_logger().info("walking_files", path=directory, recursive=recursive)
    return [status for status in client.list_files(directory, recursive) if predicate(status)]


def _fs_path(path: str) -> str:
    return split_scheme(path)[1].rstrip("/")


def _to_status(prefix: str, info: pafs.FileInfo) -> FileStatus:
    mtime = None
    if info.mtime_ns is not None:
        mtime = datetime.fromtimestamp(info.mtime_ns / 1e9, tz=timezone.utc)
    return FileStatus(path=f"{prefix}{info.path}", size=info.size or 0, mtime=mtime)
