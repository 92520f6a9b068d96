"""
Per-stateURI sync session.

Owns the Frontier (the transaction ids the next commit will be parented
on) and the UploadedSet (filenames already published in final form).
Both are persisted to a local JSON file keyed by stateURI so a restart
neither re-uploads finalized segments nor forks the causal history.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ..exceptions import StorageIOError
from ..local.file_ops import read_json, write_json_atomic
from .types import GENESIS_TX_ID, validate_tx_id

STATE_FORMAT_VERSION = 1


def state_file_name(state_uri: str) -> str:
    """Stable, filesystem-safe file name for a stateURI."""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", state_uri).strip("_") or "state"
    digest = hashlib.sha256(state_uri.encode("utf-8")).hexdigest()[:12]
    return f"{slug}-{digest}.json"


class SyncSession:
    """Frontier and UploadedSet for one stateURI.

    The session is owned by a single processing context (the batcher
    for its directory); it does no locking of its own.

    Attributes:
        state_uri: State tree this session publishes to
        state_path: JSON file backing the session, or None for memory only
    """

    def __init__(
        self,
        state_uri: str,
        state_path: Path | None = None,
        frontier: Iterable[str] | None = None,
        uploaded: dict[str, bool] | None = None,
    ):
        self.state_uri = state_uri
        self.state_path = state_path
        self._frontier: frozenset[str] = frozenset(frontier or {GENESIS_TX_ID})
        self._uploaded: dict[str, bool] = dict(uploaded or {})

    @classmethod
    async def load(cls, state_uri: str, state_dir: Path | None) -> SyncSession:
        """Load a session from ``state_dir``, or start a fresh one.

        Args:
            state_uri: State tree to load
            state_dir: Directory holding session files; None disables persistence

        Returns:
            The loaded (or new) session
        """
        if state_dir is None:
            return cls(state_uri)

        path = state_dir / state_file_name(state_uri)
        data = await read_json(path)
        if data is None:
            return cls(state_uri, state_path=path)
        if not isinstance(data, dict):
            raise StorageIOError("load_session", str(path), TypeError("expected a JSON object"))
        if data.get("state_uri") != state_uri:
            return cls(state_uri, state_path=path)

        frontier = data.get("frontier", [])
        uploaded = data.get("uploaded", {})
        if not isinstance(frontier, list) or not isinstance(uploaded, dict):
            raise StorageIOError("load_session", str(path), TypeError("malformed session fields"))

        frontier = [validate_tx_id(tx_id) for tx_id in frontier]
        uploaded = {str(k): bool(v) for k, v in uploaded.items()}
        return cls(state_uri, state_path=path, frontier=frontier or None, uploaded=uploaded)

    @property
    def frontier(self) -> frozenset[str]:
        """Current Frontier (never empty)."""
        return self._frontier

    @property
    def uploaded(self) -> dict[str, bool]:
        """Copy of the UploadedSet."""
        return dict(self._uploaded)

    def advance_frontier(self, tx_id: str) -> None:
        """Replace the Frontier with a newly acknowledged transaction."""
        self._frontier = frozenset({validate_tx_id(tx_id)})

    def is_finalized(self, filename: str) -> bool:
        """Whether a file has been published in its final form."""
        return self._uploaded.get(filename, False)

    def mark_final(self, filenames: Iterable[str]) -> None:
        """Mark files as published in final form."""
        for name in filenames:
            self._uploaded[name] = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "version": STATE_FORMAT_VERSION,
            "state_uri": self.state_uri,
            "frontier": sorted(self._frontier),
            "uploaded": dict(sorted(self._uploaded.items())),
        }

    async def save(self) -> None:
        """Persist the session if it has a backing file."""
        if self.state_path is None:
            return
        await write_json_atomic(self.state_path, self.to_dict())
