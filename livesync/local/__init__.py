"""
Local filesystem access.

Atomic JSON persistence for session state and directory listings
for the watcher and batcher.
"""

from .file_ops import (
    FileEntry,
    ensure_directory,
    list_files,
    read_bytes,
    read_json,
    write_json_atomic,
)

__all__ = [
    "FileEntry",
    "ensure_directory",
    "list_files",
    "read_bytes",
    "read_json",
    "write_json_atomic",
]
