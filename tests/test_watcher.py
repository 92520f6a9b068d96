"""Tests for the polling directory watcher."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from conftest import write_file

from livesync.sync import DirectoryWatcher


class Recorder:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def __call__(self, event_type: str, path: Path) -> None:
        self.events.append((event_type, path.name))


class TestDirectoryWatcher:
    """Tests for DirectoryWatcher."""

    @pytest.mark.asyncio
    async def test_existing_files_are_baseline(self, watch_dir: Path) -> None:
        write_file(watch_dir, "segment0.ts", b"0")
        recorder = Recorder()
        watcher = DirectoryWatcher(watch_dir, recorder)

        await watcher._scan()
        events = await watcher.poll()

        assert events == []
        assert watcher.get_watched_files() == ["segment0.ts"]

    @pytest.mark.asyncio
    async def test_created_modified_deleted(self, watch_dir: Path) -> None:
        write_file(watch_dir, "segment0.ts", b"0", mtime=1_000_000.0)
        write_file(watch_dir, "old.ts", b"old")
        recorder = Recorder()
        watcher = DirectoryWatcher(watch_dir, recorder)
        await watcher._scan()

        write_file(watch_dir, "segment1.ts", b"1")
        write_file(watch_dir, "segment0.ts", b"0 and more", mtime=1_000_001.0)
        (watch_dir / "old.ts").unlink()
        await watcher.poll()

        assert sorted(recorder.events) == [
            ("created", "segment1.ts"),
            ("deleted", "old.ts"),
            ("modified", "segment0.ts"),
        ]

    @pytest.mark.asyncio
    async def test_size_change_counts_as_modified(self, watch_dir: Path) -> None:
        write_file(watch_dir, "segment0.ts", b"0", mtime=1_000_000.0)
        recorder = Recorder()
        watcher = DirectoryWatcher(watch_dir, recorder)
        await watcher._scan()

        write_file(watch_dir, "segment0.ts", b"0123", mtime=1_000_000.0)
        await watcher.poll()

        assert recorder.events == [("modified", "segment0.ts")]

    @pytest.mark.asyncio
    async def test_ignored_files(self, watch_dir: Path) -> None:
        recorder = Recorder()
        watcher = DirectoryWatcher(
            watch_dir, recorder, is_ignored=lambda name: name.endswith(".tmp")
        )
        await watcher._scan()

        write_file(watch_dir, "upload.tmp", b"x")
        write_file(watch_dir, "segment0.ts", b"x")
        await watcher.poll()

        assert recorder.events == [("created", "segment0.ts")]

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self, watch_dir: Path) -> None:
        def explode(event_type: str, path: Path) -> None:
            raise RuntimeError("boom")

        watcher = DirectoryWatcher(watch_dir, explode)
        await watcher._scan()
        write_file(watch_dir, "segment0.ts", b"x")

        events = await watcher.poll()

        assert [e[0] for e in events] == ["created"]

    @pytest.mark.asyncio
    async def test_polling_loop(self, watch_dir: Path) -> None:
        recorder = Recorder()
        watcher = DirectoryWatcher(watch_dir, recorder, poll_interval=0.01)

        await watcher.start()
        assert watcher.is_running
        write_file(watch_dir, "segment0.ts", b"x")
        await asyncio.sleep(0.1)
        await watcher.stop()

        assert ("created", "segment0.ts") in recorder.events
        assert not watcher.is_running

    @pytest.mark.asyncio
    async def test_missing_directory(self, temp_dir: Path) -> None:
        watcher = DirectoryWatcher(temp_dir / "missing", Recorder())
        await watcher._scan()
        assert await watcher.poll() == []
