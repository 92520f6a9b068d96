"""
In-process replication peer.

A reference peer that keeps blobs, acknowledged transactions and the
resulting state tree in memory. It enforces the same causal rule as a
real peer (every parent must already be acknowledged, or be genesis)
and notifies subscriptions when a transaction touches their keypath.

Used for local runs without a network peer and throughout the tests,
where failures can be injected with :meth:`MemoryPeer.fail_next_puts`
and :meth:`MemoryPeer.fail_uploads_for`.
"""

from __future__ import annotations

import asyncio
import copy
import hashlib
import logging
from typing import Any

from ..exceptions import ConflictError, TransientIOError
from ..state.types import GENESIS_TX_ID, Transaction
from .base import PeerClient, StateSubscription, normalize_keypath, resolve_keypath

logger = logging.getLogger(__name__)


def _touches(a: tuple[str, ...], b: tuple[str, ...]) -> bool:
    """Whether one keypath is a prefix of the other."""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class MemoryPeer(PeerClient):
    """Replication peer living in the current process."""

    def __init__(self) -> None:
        self.authorized = False
        self._blobs: dict[str, bytes] = {}
        self._acked: dict[str, dict[str, Transaction]] = {}
        self._history: dict[str, list[Transaction]] = {}
        self._trees: dict[str, dict[str, Any]] = {}
        self._leaves: dict[str, set[str]] = {}
        self._subscriptions: list[StateSubscription] = []
        self._put_failures: list[Exception] = []
        self._upload_failures: dict[bytes, Exception] = {}
        self._lock = asyncio.Lock()

        # Counters for assertions
        self.put_attempts: list[Transaction] = []
        self.upload_count = 0

    # Failure injection

    def fail_next_puts(self, *errors: Exception) -> None:
        """Make the next ``len(errors)`` calls to :meth:`put` raise these errors."""
        self._put_failures.extend(errors)

    def fail_uploads_for(self, data: bytes, error: Exception | None = None) -> None:
        """Make every upload of exactly ``data`` fail."""
        self._upload_failures[bytes(data)] = error or TransientIOError("store_ref", "memory")

    def clear_failures(self) -> None:
        self._put_failures.clear()
        self._upload_failures.clear()

    # PeerClient

    async def authorize(self) -> None:
        self.authorized = True

    async def store_ref(self, data: bytes) -> dict[str, str]:
        self.upload_count += 1
        error = self._upload_failures.get(bytes(data))
        if error is not None:
            raise error
        sha3 = hashlib.sha3_256(data).hexdigest()
        self._blobs.setdefault(sha3, bytes(data))
        return {"sha1": hashlib.sha1(data).hexdigest(), "sha3": sha3}

    async def put(self, tx: Transaction) -> None:
        async with self._lock:
            self.put_attempts.append(tx)
            if self._put_failures:
                raise self._put_failures.pop(0)

            acked = self._acked.setdefault(tx.state_uri, {})
            if tx.id in acked:
                raise ConflictError(tx.state_uri, tx.id, tx.sorted_parents(), "duplicate id")
            unknown = [p for p in tx.parents if p != GENESIS_TX_ID and p not in acked]
            if unknown:
                raise ConflictError(
                    tx.state_uri, tx.id, tx.sorted_parents(), f"unknown parents {sorted(unknown)}"
                )

            tree = self._trees.setdefault(tx.state_uri, {})
            for patch in tx.patches:
                node = tree
                for segment in patch.path:
                    child = node.get(segment)
                    if not isinstance(child, dict):
                        child = {}
                        node[segment] = child
                    node = child
                node[patch.key] = copy.deepcopy(patch.value)

            acked[tx.id] = tx
            self._history.setdefault(tx.state_uri, []).append(tx)
            leaves = self._leaves.setdefault(tx.state_uri, set())
            leaves.difference_update(tx.parents)
            leaves.add(tx.id)

        logger.debug(f"Accepted tx {tx.id[:12]} on {tx.state_uri} ({len(tx.patches)} patches)")
        self._notify(tx)

    async def fetch_state(self, state_uri: str, keypath: str | tuple[str, ...] = ()) -> Any:
        value = resolve_keypath(self._trees.get(state_uri, {}), normalize_keypath(keypath))
        return copy.deepcopy(value)

    async def subscribe(
        self, state_uri: str, keypath: str | tuple[str, ...] = ()
    ) -> StateSubscription:
        sub = StateSubscription(
            state_uri, normalize_keypath(keypath), on_close=self._subscriptions.remove
        )
        self._subscriptions.append(sub)
        current = await self.fetch_state(state_uri, sub.keypath)
        if current is not None:
            sub.publish(current)
        return sub

    async def close(self) -> None:
        for sub in list(self._subscriptions):
            await sub.close()

    # Inspection

    def blob(self, sha3_hex: str) -> bytes | None:
        return self._blobs.get(sha3_hex)

    def leaves(self, state_uri: str) -> set[str]:
        """Current leaves of the transaction DAG (genesis when empty)."""
        return set(self._leaves.get(state_uri) or {GENESIS_TX_ID})

    def transactions(self, state_uri: str) -> list[Transaction]:
        """Acknowledged transactions in acceptance order."""
        return list(self._history.get(state_uri, []))

    def is_acknowledged(self, state_uri: str, tx_id: str) -> bool:
        return tx_id in self._acked.get(state_uri, {})

    def _notify(self, tx: Transaction) -> None:
        tree = self._trees.get(tx.state_uri, {})
        for sub in list(self._subscriptions):
            if sub.state_uri != tx.state_uri:
                continue
            if any(_touches(sub.keypath, patch.keypath) for patch in tx.patches):
                sub.publish(copy.deepcopy(resolve_keypath(tree, sub.keypath)))
