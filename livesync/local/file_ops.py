"""
Local file operations.

Provides the filesystem primitives used by the watcher and the session:
- Atomic JSON writes using temp file + rename
- Whole-file reads for blob uploads
- Directory listings with size and modification time
"""

import json
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ..exceptions import NotFoundError, StorageIOError, TransientIOError


@dataclass(frozen=True)
class FileEntry:
    """A regular file found in a directory listing."""

    name: str
    path: Path
    size: int
    mtime: float


async def ensure_directory(path: Path) -> None:
    """Ensure directory exists, creating if necessary.

    Args:
        path: Directory path to ensure exists
    """
    try:
        await aiofiles.os.makedirs(path, exist_ok=True)
    except OSError as e:
        raise StorageIOError("create_directory", str(path), e) from e


async def read_json(path: Path) -> dict[str, Any] | None:
    """Read a JSON file.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON data or None if file doesn't exist
    """
    try:
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
            return json.loads(content) if content.strip() else None
    except json.JSONDecodeError as e:
        raise StorageIOError("parse_json", str(path), e) from e
    except OSError as e:
        raise StorageIOError("read_json", str(path), e) from e


async def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON file atomically using temp file + rename.

    Args:
        path: Target path for JSON file
        data: Data to serialize as JSON
    """
    await ensure_directory(path.parent)

    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=".tmp_",
        suffix=".json",
    )
    try:
        os.close(fd)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, sort_keys=True))
            await f.flush()
            os.fsync(f.fileno())

        await aiofiles.os.rename(temp_path, path)
    except Exception as e:
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            pass
        raise StorageIOError("write_json", str(path), e) from e


async def read_bytes(path: Path) -> bytes:
    """Read a whole file.

    Args:
        path: File to read

    Returns:
        File contents

    Raises:
        NotFoundError: If the file no longer exists
        TransientIOError: If the read fails for any other reason
    """
    try:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
    except FileNotFoundError as e:
        raise NotFoundError(str(path)) from e
    except OSError as e:
        raise TransientIOError("read_file", str(path), e) from e


async def list_files(path: Path) -> list[FileEntry]:
    """List regular files in a directory, sorted by name.

    Files that disappear while the listing is in progress are skipped.

    Args:
        path: Directory to list

    Returns:
        List of file entries (empty if the directory does not exist)
    """
    try:
        if not await aiofiles.os.path.isdir(path):
            return []
        names = await aiofiles.os.listdir(path)
    except OSError as e:
        raise TransientIOError("list_directory", str(path), e) from e

    entries = []
    for name in sorted(names):
        entry_path = path / name
        try:
            st = await aiofiles.os.stat(entry_path)
        except FileNotFoundError:
            continue
        except OSError as e:
            raise TransientIOError("stat", str(entry_path), e) from e
        if not stat.S_ISREG(st.st_mode):
            continue
        entries.append(
            FileEntry(name=name, path=entry_path, size=st.st_size, mtime=st.st_mtime)
        )
    return entries
