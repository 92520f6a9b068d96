"""
livesync

Publishes a directory of live media segments into a replicated,
content-addressed state tree.

Provides:
- Content-addressed blob uploads with local digest verification
- Pure patch building for ``streams.<address>["<file>"]`` links
- Causal commits parented on the session Frontier, with one fallback
- Debounced change batching that finalizes segments once committed

Usage:

    >>> from livesync import SyncConfig, HttpPeerClient, PeerBlobStore, SyncSession
    >>> from livesync import CausalCommitClient, ChangeBatcher, DirectoryWatcher
    >>> config = SyncConfig.from_yaml(Path("settings.yaml"))
    >>> async with HttpPeerClient(config.peer_url, identity) as peer:
    ...     session = await SyncSession.load(config.state_uri, config.effective_state_dir)
    ...     committer = CausalCommitClient(peer, session, timeout=config.request_timeout)
    ...     batcher = ChangeBatcher(config, identity, session, PeerBlobStore(peer), committer)
    ...     watcher = DirectoryWatcher(config.watch_dir, batcher.notify)
    ...     await batcher.start()
    ...     await watcher.start()

Reading the published tree:

    sub = await peer.subscribe(state_uri, "streams")
    async for value in sub:
        ...
"""

from .blobs import BlobStore, MemoryBlobStore, PeerBlobStore, compute_digest
from .config import SyncConfig
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    LiveSyncError,
    NotFoundError,
    StorageIOError,
    TransientIOError,
    ValidationError,
)
from .identity import (
    ConfigFileIdentityProvider,
    IdentityProvider,
    KeySigner,
    PeerIdentity,
    Signer,
)
from .peer import HttpPeerClient, MemoryPeer, PeerClient, StateSubscription
from .state import (
    GENESIS_TX_ID,
    ContentDigest,
    Patch,
    SyncSession,
    Transaction,
    build_link,
    build_patches,
)
from .sync import (
    CausalCommitClient,
    ChangeBatcher,
    CommitOutcome,
    CommitState,
    CycleReport,
    DirectoryWatcher,
)

__version__ = "0.1.0"

__all__ = [
    # Blobs
    "BlobStore",
    "MemoryBlobStore",
    "PeerBlobStore",
    "compute_digest",
    # Config
    "SyncConfig",
    # Exceptions
    "LiveSyncError",
    "TransientIOError",
    "ConflictError",
    "ValidationError",
    "NotFoundError",
    "StorageIOError",
    "AuthenticationError",
    "ConfigurationError",
    # Identity
    "PeerIdentity",
    "Signer",
    "IdentityProvider",
    "ConfigFileIdentityProvider",
    "KeySigner",
    # Peers
    "PeerClient",
    "HttpPeerClient",
    "MemoryPeer",
    "StateSubscription",
    # State
    "GENESIS_TX_ID",
    "ContentDigest",
    "Patch",
    "Transaction",
    "SyncSession",
    "build_link",
    "build_patches",
    # Sync
    "CausalCommitClient",
    "CommitOutcome",
    "CommitState",
    "ChangeBatcher",
    "CycleReport",
    "DirectoryWatcher",
]
