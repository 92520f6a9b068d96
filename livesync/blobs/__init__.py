"""
Content-addressed blob storage clients.
"""

from .store import BlobStore, MemoryBlobStore, PeerBlobStore, compute_digest

__all__ = [
    "BlobStore",
    "MemoryBlobStore",
    "PeerBlobStore",
    "compute_digest",
]
