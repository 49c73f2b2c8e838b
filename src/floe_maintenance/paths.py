"""Trash path translation for table files.

Pure string transforms, no filesystem access. A trashed file keeps its path
relative to the table location:

    <location>/data/a.parquet  <->  <location>/<trash_dir>/data/a.parquet

Scheme prefixes ("s3://", "file://", "file:") are compared loosely because
catalogs and filesystem listings do not always agree on them; the scheme of
the input file path is preserved in the output.
"""

from __future__ import annotations

from floe_maintenance.errors import InvalidPathError

# Suffix of Iceberg table metadata files (v3.metadata.json, 00001-<uuid>.metadata.json)
METADATA_FILE_SUFFIX = "metadata.json"


def split_scheme(path: str) -> tuple[str, str]:
    """Split a path into its scheme prefix and the remainder.

    Example:
        >>> split_scheme("s3://bucket/db/t/data/a.parquet")
        ('s3://', 'bucket/db/t/data/a.parquet')
        >>> split_scheme("/tmp/wh/t")
        ('', '/tmp/wh/t')
    """
    if "://" in path:
        scheme, rest = path.split("://", 1)
        return f"{scheme}://", rest
    if path.startswith("file:/"):
        return "file:", path[len("file:") :]
    return "", path


def strip_scheme(path: str) -> str:
    """Return the path without its scheme prefix."""
    return split_scheme(path)[1]


def is_under_directory(path: str, directory: str) -> bool:
    """Check whether ``path`` lies strictly below ``directory``.

    Compares whole path segments, so "/t/.trash-old/a" is not under "/t/.trash".
    """
    base = strip_scheme(directory).rstrip("/")
    return strip_scheme(path).startswith(f"{base}/")


def is_metadata_file(path: str) -> bool:
    """Check whether the path names a table metadata file."""
    return path.endswith(METADATA_FILE_SUFFIX)


def trash_root(table_location: str, trash_dir: str) -> str:
    """Return the trash directory of a table."""
    return f"{table_location.rstrip('/')}/{trash_dir.strip('/')}"


def to_trash_path(table_location: str, file_path: str, trash_dir: str) -> str:
    """Map a table file to its location inside the table's trash directory.

    Args:
        table_location: Table root location.
        file_path: Absolute path of a file under the table location.
        trash_dir: Trash directory name (e.g. ".trash").

    Returns:
        ``<table_location>/<trash_dir>/<path relative to table_location>``,
        carrying the scheme prefix of ``file_path``.

    Raises:
        InvalidPathError: If file_path is not under table_location.

    Example:
        >>> to_trash_path("s3://b/db/t", "s3://b/db/t/data/a.parquet", ".trash")
        's3://b/db/t/.trash/data/a.parquet'
    """
    location = strip_scheme(table_location).rstrip("/")
    prefix, rest = split_scheme(file_path)
    if not rest.startswith(f"{location}/"):
        raise InvalidPathError(file_path, table_location)
    relative = rest[len(location) + 1 :]
    return f"{prefix}{location}/{trash_dir.strip('/')}/{relative}"


def from_trash_path(table_location: str, trash_path: str, trash_dir: str) -> str:
    """Map a trashed file back to its original location.

    Inverse of to_trash_path().

    Raises:
        InvalidPathError: If trash_path is not inside the table's trash directory.
    """
    root = strip_scheme(trash_root(table_location, trash_dir))
    prefix, rest = split_scheme(trash_path)
    if not rest.startswith(f"{root}/"):
        raise InvalidPathError(trash_path, trash_root(table_location, trash_dir))
    relative = rest[len(root) + 1 :]
    location = strip_scheme(table_location).rstrip("/")
    return f"{prefix}{location}/{relative}"
