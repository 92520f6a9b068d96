"""
Content-addressed blob storage.

Blobs are identified by the SHA3-256 of their bytes. Storing the same
bytes twice returns the same digest; the bytes may be transferred again
but the peer keeps one copy.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from ..exceptions import LiveSyncError, TransientIOError, ValidationError
from ..local.file_ops import read_bytes
from ..peer.base import PeerClient
from ..state.types import ContentDigest

logger = logging.getLogger(__name__)

_HASHERS = {
    "sha3": hashlib.sha3_256,
    "sha1": hashlib.sha1,
}


def compute_digest(data: bytes, algorithm: str = "sha3") -> ContentDigest:
    """Hash bytes locally.

    Args:
        data: Blob contents
        algorithm: "sha3" (SHA3-256) or "sha1"

    Returns:
        Digest of the bytes
    """
    hasher = _HASHERS.get(algorithm)
    if hasher is None:
        raise ValidationError("algorithm", "unsupported digest algorithm", algorithm)
    return ContentDigest(algorithm=algorithm, hex=hasher(data).hexdigest())


class BlobStore(ABC):
    """Abstract content-addressed blob store."""

    @abstractmethod
    async def store(self, data: bytes) -> ContentDigest:
        """Persist a blob and return its digest.

        Raises:
            TransientIOError: If the blob could not be persisted
        """
        ...

    async def store_file(self, path: Path) -> ContentDigest:
        """Read a file and store its contents.

        Raises:
            NotFoundError: If the file vanished before it could be read
            TransientIOError: If the read or upload failed
        """
        data = await read_bytes(path)
        return await self.store(data)


class PeerBlobStore(BlobStore):
    """Blob store backed by the replication peer's ``store_ref``.

    The digest is computed locally and checked against the one the peer
    reports, so a corrupted transfer never becomes a published link.
    """

    def __init__(self, peer: PeerClient, timeout: float | None = 30.0, algorithm: str = "sha3"):
        """Initialize the blob store.

        Args:
            peer: Peer client used for uploads
            timeout: Seconds before an upload is abandoned (None for no limit)
            algorithm: Digest algorithm used in blob links
        """
        self.peer = peer
        self.timeout = timeout
        self.algorithm = algorithm

    async def store(self, data: bytes) -> ContentDigest:
        local = compute_digest(data, self.algorithm)
        try:
            response = await asyncio.wait_for(self.peer.store_ref(data), self.timeout)
        except TimeoutError as e:
            raise TransientIOError("store_ref", local.ref, e) from e
        except LiveSyncError:
            raise
        except OSError as e:
            raise TransientIOError("store_ref", local.ref, e) from e

        remote_hex = str(response.get(self.algorithm, "")).lower()
        if remote_hex != local.hex:
            raise ValidationError(
                "digest",
                f"peer reported {self.algorithm} {remote_hex or '<missing>'}",
                local.hex,
            )
        logger.debug(f"Stored blob {local.ref} ({len(data)} bytes)")
        return local


class MemoryBlobStore(BlobStore):
    """In-process blob store, keyed by digest."""

    def __init__(self, algorithm: str = "sha3"):
        self.algorithm = algorithm
        self._blobs: dict[ContentDigest, bytes] = {}
        self.upload_count = 0

    async def store(self, data: bytes) -> ContentDigest:
        digest = compute_digest(data, self.algorithm)
        self.upload_count += 1
        self._blobs.setdefault(digest, bytes(data))
        return digest

    def get(self, digest: ContentDigest) -> bytes | None:
        """Return the blob for a digest, if stored."""
        return self._blobs.get(digest)

    def __contains__(self, digest: object) -> bool:
        return digest in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
