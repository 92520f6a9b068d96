"""
Shared test configuration and fixtures.

Provides a temporary watch directory, an in-process peer, and the
session / commit client / batcher wiring used by the sync tests.
"""

import os
import tempfile
from collections.abc import Iterator
from pathlib import Path

# The fake peer server in test_http_peer.py receives the custom AUTHORIZE
# method, which aiohttp's C (llhttp) request parser rejects with a 400; use
# aiohttp's pure-Python parser instead. Must be set before aiohttp is imported.
os.environ.setdefault("AIOHTTP_NO_EXTENSIONS", "1")

import pytest

from livesync.blobs import PeerBlobStore
from livesync.config import SyncConfig
from livesync.identity import PeerIdentity
from livesync.peer import MemoryPeer
from livesync.state import SyncSession, state_file_name
from livesync.sync import CausalCommitClient, ChangeBatcher

STATE_URI = "p2pair.local/video"
ADDRESS = "96216849c49358b10257cb55b28ea603c874b05e"


@pytest.fixture
def temp_dir() -> Iterator[Path]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def watch_dir(temp_dir: Path) -> Path:
    path = temp_dir / "live"
    path.mkdir()
    return path


@pytest.fixture
def state_dir(temp_dir: Path) -> Path:
    return temp_dir / "state"


@pytest.fixture
def identity() -> PeerIdentity:
    return PeerIdentity(address=ADDRESS, display_name="test encoder")


@pytest.fixture
def config(watch_dir: Path, state_dir: Path) -> SyncConfig:
    return SyncConfig(
        state_uri=STATE_URI,
        watch_dir=watch_dir,
        debounce_seconds=0.05,
        poll_interval=0.02,
        request_timeout=2.0,
        shutdown_timeout=1.0,
        state_dir=state_dir,
    )


@pytest.fixture
def peer() -> MemoryPeer:
    return MemoryPeer()


@pytest.fixture
def session(state_dir: Path) -> SyncSession:
    return SyncSession(STATE_URI, state_path=state_dir / state_file_name(STATE_URI))


@pytest.fixture
def committer(peer: MemoryPeer, session: SyncSession) -> CausalCommitClient:
    return CausalCommitClient(peer, session, timeout=2.0)


@pytest.fixture
def batcher(
    config: SyncConfig,
    identity: PeerIdentity,
    session: SyncSession,
    peer: MemoryPeer,
    committer: CausalCommitClient,
) -> ChangeBatcher:
    return ChangeBatcher(config, identity, session, PeerBlobStore(peer, timeout=2.0), committer)


def write_file(directory: Path, name: str, data: bytes, mtime: float | None = None) -> Path:
    """Write a file and optionally pin its modification time."""
    path = directory / name
    path.write_bytes(data)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
