"""Filesystem helpers used while reconciling edits."""

from .files import SourceFile, content_digest, discover_files, file_lock, read_source, write_atomic

__all__ = [
    "SourceFile",
    "content_digest",
    "discover_files",
    "file_lock",
    "read_source",
    "write_atomic",
]
