"""
Change batcher.

Collapses bursts of directory events into single processing cycles.
Each event re-arms a cancellable delayed task; when the directory has
been quiet for the debounce window, one cycle runs against the
*current* directory listing:

1. List the directory and skip files already finalized.
2. Upload the live index (every cycle) and every file not yet finalized.
3. Build one patch per uploaded file and commit them in one transaction.
4. Once the commit is accepted, finalize every uploaded segment except
   the most recently written one, which may still be growing.

Cycles never overlap. Events arriving during a cycle re-arm the timer
once the cycle finishes. A failure in one file excludes only that file,
and no error stops the batcher.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..blobs.store import BlobStore
from ..config import SyncConfig
from ..exceptions import (
    NotFoundError,
    StorageIOError,
    TransientIOError,
    ValidationError,
)
from ..identity.types import PeerIdentity
from ..local.file_ops import FileEntry, list_files
from ..logging_utils import SyncLoggerAdapter
from ..state.builder import build_patches, patch_for
from ..state.session import SyncSession
from ..state.types import ContentDigest
from .commit import CausalCommitClient, CommitOutcome

logger = logging.getLogger(__name__)

# Stand-in digest used to check that a file name can be published
_NAME_CHECK_DIGEST = ContentDigest(algorithm="sha3", hex="0" * 64)


@dataclass
class CycleReport:
    """Result of one processing cycle.

    Attributes:
        uploaded: Files uploaded this cycle and their digests
        finalized: Files marked final after the commit was accepted
        skipped: Files skipped because they were already final
        failed: Files excluded from the cycle, with the reason
        outcome: Commit outcome (None when there was nothing to commit)
        duration_ms: Wall time of the cycle
    """

    uploaded: dict[str, ContentDigest] = field(default_factory=dict)
    finalized: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    outcome: CommitOutcome | None = None
    duration_ms: int = 0

    @property
    def committed(self) -> bool:
        return self.outcome is not None and self.outcome.committed


class ChangeBatcher:
    """Debounces directory events and runs publishing cycles for one directory."""

    def __init__(
        self,
        config: SyncConfig,
        identity: PeerIdentity,
        session: SyncSession,
        blob_store: BlobStore,
        committer: CausalCommitClient,
        on_cycle: Callable[[CycleReport], None] | None = None,
    ):
        """Initialize the batcher.

        Args:
            config: Sync configuration (directory, index name, debounce window)
            identity: Publisher identity; its address keys the published streams
            session: Session owning the UploadedSet for this directory
            blob_store: Store receiving file contents
            committer: Commit client for the session's stateURI
            on_cycle: Optional callback invoked with every cycle report
        """
        self.config = config
        self.identity = identity
        self.session = session
        self.blob_store = blob_store
        self.committer = committer
        self.on_cycle = on_cycle

        self._timer: asyncio.Task[None] | None = None
        self._active: asyncio.Task[None] | None = None
        self._cycle_lock = asyncio.Lock()
        self._pending = False
        self._stopping = False
        self._last_event: str | None = None
        self.cycle_count = 0
        self.last_report: CycleReport | None = None
        self._log = SyncLoggerAdapter(logger, {"state_uri": session.state_uri})

    @property
    def is_cycle_running(self) -> bool:
        return self._active is not None

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    async def start(self, initial_cycle: bool = True) -> None:
        """Start accepting events.

        Args:
            initial_cycle: Publish the directory's current contents right away
        """
        self._stopping = False
        if initial_cycle:
            self._pending = True
            self._arm_timer()

    async def stop(self) -> None:
        """Stop the batcher.

        A pending timer is cancelled. An active cycle is given
        ``shutdown_timeout`` seconds to finish before it is cancelled.
        """
        self._stopping = True
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        active = self._active
        if active is not None:
            try:
                await asyncio.wait_for(asyncio.shield(active), self.config.shutdown_timeout)
            except TimeoutError:
                self._log.warning("Active cycle did not finish in time, cancelling it")
                active.cancel()
                try:
                    await active
                except asyncio.CancelledError:
                    pass

    def notify(self, event_type: str, path: str | Path) -> None:
        """Record a filesystem event.

        Args:
            event_type: "created", "modified" or "deleted"
            path: Path of the file the event is about
        """
        if self._stopping:
            return
        name = Path(path).name
        if event_type != "deleted":
            self._last_event = name
        self._pending = True
        self._log.debug(f"Event {event_type}: {name}")
        if self._active is None:
            self._arm_timer()

    def _arm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._fire_after(self.config.debounce_seconds))

    async def _fire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point the task is a running cycle, not a timer
        self._timer = None
        self._active = asyncio.current_task()
        self._pending = False
        try:
            await self._run_guarded()
        finally:
            self._active = None
            if self._pending and not self._stopping:
                self._arm_timer()

    async def _run_guarded(self) -> None:
        try:
            report = await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log.exception(f"Processing cycle failed: {e}")
            return
        if self.on_cycle is not None:
            try:
                self.on_cycle(report)
            except Exception as e:
                self._log.warning(f"Cycle callback failed: {e}")

    async def run_cycle(self) -> CycleReport:
        """Run one processing cycle against the current directory contents.

        Returns:
            Report describing what was uploaded, committed and finalized
        """
        async with self._cycle_lock:
            started = time.monotonic()
            report = await self._process()
            report.duration_ms = int((time.monotonic() - started) * 1000)
            self.cycle_count += 1
            self.last_report = report
            self._log_report(report)
            return report

    async def _process(self) -> CycleReport:
        report = CycleReport()
        index = self.config.index_filename
        # Events arriving during this cycle lead the next one
        last_event, self._last_event = self._last_event, None

        entries = [
            e for e in await list_files(self.config.watch_dir)
            if e.name == index or not self.config.is_ignored(e.name)
        ]

        candidates: list[FileEntry] = []
        for entry in entries:
            if entry.name != index and self.session.is_finalized(entry.name):
                report.skipped.append(entry.name)
            else:
                candidates.append(entry)

        segments = [e for e in candidates if e.name != index]
        newest = max(segments, key=lambda e: (e.mtime, e.name)).name if segments else None

        for entry in candidates:
            try:
                # Reject names that cannot be published before spending an upload
                patch_for(
                    self.identity.address, entry.name, _NAME_CHECK_DIGEST, self.config.patch_root
                )
                digest = await self.blob_store.store_file(entry.path)
            except (TransientIOError, NotFoundError, ValidationError) as e:
                report.failed[entry.name] = str(e)
                self._log.warning(f"Excluding {entry.name} from this cycle: {e}")
                continue
            report.uploaded[entry.name] = digest

        if not report.uploaded:
            return report

        patches = build_patches(
            self.identity.address,
            report.uploaded,
            root=self.config.patch_root,
            first=index,
        )
        lead = last_event if last_event in report.uploaded else index
        report.outcome = await self.committer.commit(patches, lead=lead)

        if report.outcome.committed:
            report.finalized = [
                name for name in sorted(report.uploaded) if name not in (index, newest)
            ]
            if report.finalized:
                self.session.mark_final(report.finalized)
                try:
                    await self.session.save()
                except StorageIOError as e:
                    self._log.error(f"Failed to persist uploaded set: {e}")

        return report

    def _log_report(self, report: CycleReport) -> None:
        if report.outcome is None:
            self._log.debug(
                f"Cycle {self.cycle_count}: nothing to publish "
                f"({len(report.skipped)} final, {len(report.failed)} failed)"
            )
            return
        status = report.outcome.state.value
        self._log.info(
            f"Cycle {self.cycle_count}: {status}, uploaded {len(report.uploaded)}, "
            f"finalized {len(report.finalized)}, skipped {len(report.skipped)}, "
            f"failed {len(report.failed)} in {report.duration_ms}ms"
        )
