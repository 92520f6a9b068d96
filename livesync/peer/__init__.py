"""
Replication peer clients.

Provides the abstract peer contract, the HTTP transport client and an
in-process reference peer, plus the reactive state subscription used by
read-only consumers of the state tree.
"""

from .base import PeerClient, StateSubscription, normalize_keypath, resolve_keypath
from .http import HttpPeerClient, classify_put_failure
from .memory import MemoryPeer

__all__ = [
    "PeerClient",
    "StateSubscription",
    "HttpPeerClient",
    "MemoryPeer",
    "classify_put_failure",
    "normalize_keypath",
    "resolve_keypath",
]
