"""
Causal commit client.

Submits patch batches as transactions parented on the session Frontier.

States per commit:

    IDLE -> COMMITTING -> COMMITTED
                       -> CONFLICTED -> FALLBACK_COMMITTING -> COMMITTED
                                                            -> FAILED

A conflict (stale or unknown parents) or a network failure on the first
attempt triggers exactly one fallback transaction, parented on the same
pre-batch Frontier and led by the most recent single-file patch. If the
fallback fails too, the Frontier is left unchanged and the batch is
dropped for this cycle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..exceptions import LiveSyncError, StorageIOError, TransientIOError, ValidationError
from ..logging_utils import SyncLoggerAdapter
from ..peer.base import PeerClient
from ..state.session import SyncSession
from ..state.types import Patch, Transaction

logger = logging.getLogger(__name__)


class CommitState(Enum):
    """State of the commit state machine."""

    IDLE = "idle"
    COMMITTING = "committing"
    CONFLICTED = "conflicted"
    FALLBACK_COMMITTING = "fallback_committing"
    COMMITTED = "committed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class CommitOutcome:
    """Result of one commit.

    Attributes:
        state: Terminal state (COMMITTED, FAILED or SKIPPED)
        transaction: The transaction the peer accepted, if any
        attempts: Every transaction submitted, in order
        error: Last error seen, if the batch was not committed
    """

    state: CommitState
    transaction: Transaction | None = None
    attempts: list[Transaction] = field(default_factory=list)
    error: Exception | None = None

    @property
    def committed(self) -> bool:
        return self.state == CommitState.COMMITTED

    @property
    def used_fallback(self) -> bool:
        return len(self.attempts) > 1


def fallback_patches(patches: Sequence[Patch], lead: str | None = None) -> list[Patch]:
    """Order patches for the fallback transaction.

    The patch for ``lead`` (or the first patch when ``lead`` is not in the
    batch) comes first, followed by every other pending patch.
    """
    if not patches:
        return []
    lead_patch = next((p for p in patches if p.key == lead), patches[0])
    return [lead_patch, *(p for p in patches if p is not lead_patch)]


class CausalCommitClient:
    """Commits patch batches for one stateURI.

    At most one commit is in flight at a time: a new batch waits for the
    previous one to return to IDLE before it snapshots the Frontier, so a
    transaction is never submitted with parents that are already stale
    locally.
    """

    def __init__(
        self,
        peer: PeerClient,
        session: SyncSession,
        timeout: float | None = 30.0,
    ):
        """Initialize the commit client.

        Args:
            peer: Replication peer receiving transactions
            session: Session owning the Frontier for this stateURI
            timeout: Seconds allowed per submission (None for no limit)
        """
        self.peer = peer
        self.session = session
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self._state = CommitState.IDLE
        self._log = SyncLoggerAdapter(logger, {"state_uri": session.state_uri})

    @property
    def state(self) -> CommitState:
        """Current state of the commit state machine."""
        return self._state

    @property
    def state_uri(self) -> str:
        return self.session.state_uri

    @property
    def frontier(self) -> frozenset[str]:
        return self.session.frontier

    async def commit(self, patches: Sequence[Patch], *, lead: str | None = None) -> CommitOutcome:
        """Commit a batch of patches.

        Args:
            patches: Patches to apply, in order
            lead: Key of the most recent single-file patch, which leads the fallback

        Returns:
            Outcome of the commit; errors are reported, not raised
        """
        if not patches:
            return CommitOutcome(state=CommitState.SKIPPED)

        async with self._lock:
            parents = self.session.frontier
            outcome = CommitOutcome(state=CommitState.COMMITTING)
            try:
                primary = Transaction.create(self.state_uri, parents, patches)
                self._state = CommitState.COMMITTING
                error = await self._submit(primary, outcome)
                if error is None:
                    return await self._accept(primary, outcome)

                if isinstance(error, ValidationError):
                    self._log.error(f"Transaction {primary.id[:12]} rejected as invalid: {error}")
                    return self._fail(outcome, error)

                self._state = CommitState.CONFLICTED
                self._log.warning(
                    f"Transaction {primary.id[:12]} not accepted ({error}); "
                    f"retrying once with a fallback transaction"
                )

                fallback = Transaction.create(
                    self.state_uri, parents, fallback_patches(patches, lead)
                )
                self._state = CommitState.FALLBACK_COMMITTING
                error = await self._submit(fallback, outcome)
                if error is None:
                    return await self._accept(fallback, outcome)

                self._log.error(
                    f"Fallback transaction {fallback.id[:12]} failed ({error}); "
                    f"dropping {len(patches)} patches, frontier unchanged"
                )
                return self._fail(outcome, error)
            finally:
                self._state = CommitState.IDLE

    async def _submit(self, tx: Transaction, outcome: CommitOutcome) -> Exception | None:
        """Submit one transaction; return the error instead of raising it."""
        outcome.attempts.append(tx)
        try:
            await asyncio.wait_for(self.peer.put(tx), self.timeout)
        except TimeoutError as e:
            return TransientIOError("put", tx.id, e)
        except LiveSyncError as e:
            return e
        except OSError as e:
            return TransientIOError("put", tx.id, e)
        return None

    async def _accept(self, tx: Transaction, outcome: CommitOutcome) -> CommitOutcome:
        # Frontier moves in the same step the acknowledgement is observed
        self.session.advance_frontier(tx.id)
        outcome.state = CommitState.COMMITTED
        outcome.transaction = tx
        self._log.info(
            f"Committed {tx.id[:12]} with {len(tx.patches)} patches "
            f"(parents: {', '.join(p[:12] for p in tx.sorted_parents())})"
        )
        try:
            await asyncio.shield(self.session.save())
        except StorageIOError as e:
            self._log.error(f"Failed to persist frontier: {e}")
        return outcome

    def _fail(self, outcome: CommitOutcome, error: Exception) -> CommitOutcome:
        outcome.state = CommitState.FAILED
        outcome.error = error
        return outcome
