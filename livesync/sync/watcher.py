"""
Directory watcher.

Polls a directory and reports created, modified and deleted files to a
callback. Polling works on every filesystem, including the network and
container mounts media servers often write into.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from ..local.file_ops import list_files

logger = logging.getLogger(__name__)

EventCallback = Callable[[str, Path], None]


class DirectoryWatcher:
    """Reports file changes in one directory.

    A file counts as modified when its mtime or size changes between
    polls. Files present when the watcher starts are treated as already
    seen; callers publish them with an initial batcher cycle.
    """

    def __init__(
        self,
        directory: Path,
        callback: EventCallback,
        poll_interval: float = 0.25,
        is_ignored: Callable[[str], bool] | None = None,
    ):
        """
        Args:
            directory: Directory to watch
            callback: Called with ("created" | "modified" | "deleted", path)
            poll_interval: Seconds between polls
            is_ignored: Predicate on file names that should never be reported
        """
        self.directory = Path(directory)
        self.callback = callback
        self.poll_interval = poll_interval
        self.is_ignored = is_ignored
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._snapshot: dict[str, tuple[float, int]] = {}

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start watching for file changes."""
        if self._running:
            logger.warning(f"Watcher for {self.directory} already running")
            return

        await self._scan()
        self._running = True
        self._task = asyncio.create_task(self._watch_loop())
        logger.info(f"Watching {self.directory} ({len(self._snapshot)} existing files)")

    async def stop(self) -> None:
        """Stop watching for file changes."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Stopped watching {self.directory}")

    async def _watch_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Polling {self.directory} failed: {e}")

    async def poll(self) -> list[tuple[str, Path]]:
        """Compare the directory with the last snapshot and report differences.

        Returns:
            The events reported, in the order they were delivered
        """
        events = await self._detect_changes()
        for event_type, path in events:
            try:
                self.callback(event_type, path)
            except Exception as e:
                logger.warning(f"Event callback failed for {path.name}: {e}")
        return events

    async def _scan(self) -> None:
        self._snapshot = {
            entry.name: (entry.mtime, entry.size)
            for entry in await list_files(self.directory)
            if not self._ignored(entry.name)
        }

    async def _detect_changes(self) -> list[tuple[str, Path]]:
        current = {
            entry.name: (entry.mtime, entry.size)
            for entry in await list_files(self.directory)
            if not self._ignored(entry.name)
        }

        events: list[tuple[str, Path]] = []
        for name, signature in current.items():
            previous = self._snapshot.get(name)
            if previous is None:
                logger.debug(f"New file detected: {name}")
                events.append(("created", self.directory / name))
            elif previous != signature:
                logger.debug(f"Modified file detected: {name}")
                events.append(("modified", self.directory / name))

        for name in sorted(set(self._snapshot) - set(current)):
            logger.debug(f"Deleted file detected: {name}")
            events.append(("deleted", self.directory / name))

        self._snapshot = current
        return events

    def _ignored(self, name: str) -> bool:
        return self.is_ignored is not None and self.is_ignored(name)

    def get_watched_files(self) -> list[str]:
        """Names of the files currently known to the watcher."""
        return sorted(self._snapshot)
