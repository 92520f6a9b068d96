"""
Core types for the replicated state tree.

Defines content digests, patches and transactions. Patches are typed
values (path segments, key, JSON value) and are only rendered to the
textual patch syntax at the protocol boundary:

    .streams.0xabc["index.m3u8"] = {"Content-Type":"link","value":"ref:sha3:..."}
"""

from __future__ import annotations

import json
import re
import secrets
from dataclasses import dataclass
from typing import Any

from ..exceptions import ValidationError

# 32-byte version ids, rendered as hex
TX_ID_BYTES = 32

# "genesis" right-padded with zeros to 32 bytes
GENESIS_TX_ID = b"genesis".ljust(TX_ID_BYTES, b"\x00").hex()

DIGEST_LENGTHS = {
    "sha1": 40,
    "sha3": 64,
}

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_HEX_RE = re.compile(r"^[0-9a-f]+$")
_TX_ID_RE = re.compile(r"^[0-9a-f]{64}$")
_PATCH_RE = re.compile(r'^((?:\.[A-Za-z0-9_-]+)+)\[("(?:[^"\\]|\\.)*")\] = (.+)$')


def random_tx_id() -> str:
    """Generate a fresh random transaction id."""
    return secrets.token_hex(TX_ID_BYTES)


def validate_tx_id(tx_id: str) -> str:
    """Check that a transaction id is 64 lowercase hex characters.

    Raises:
        ValidationError: If the id is malformed
    """
    if not isinstance(tx_id, str) or not _TX_ID_RE.match(tx_id):
        raise ValidationError("tx_id", "must be 64 lowercase hex characters", str(tx_id))
    return tx_id


@dataclass(frozen=True)
class ContentDigest:
    """Hash of a byte stream; identifies a blob.

    Attributes:
        algorithm: Hash algorithm name ("sha3" or "sha1")
        hex: Lowercase hex digest
    """

    algorithm: str
    hex: str

    def __post_init__(self) -> None:
        expected = DIGEST_LENGTHS.get(self.algorithm)
        if expected is None:
            raise ValidationError("digest.algorithm", "unsupported algorithm", self.algorithm)
        if len(self.hex) != expected or not _HEX_RE.match(self.hex):
            raise ValidationError(
                "digest.hex", f"expected {expected} lowercase hex characters", self.hex
            )

    @property
    def ref(self) -> str:
        """Blob reference string, e.g. ``ref:sha3:<hex>``."""
        return f"ref:{self.algorithm}:{self.hex}"

    @classmethod
    def from_ref(cls, ref: str) -> ContentDigest:
        """Parse a ``ref:<algo>:<hex>`` string."""
        parts = ref.split(":")
        if len(parts) != 3 or parts[0] != "ref":
            raise ValidationError("ref", "expected ref:<algo>:<digest>", ref)
        return cls(algorithm=parts[1], hex=parts[2].lower())

    def __str__(self) -> str:
        return self.ref


@dataclass(frozen=True)
class Patch:
    """A single path-scoped assignment against the state tree.

    Attributes:
        path: Dotted path segments leading to the parent object
        key: Key assigned under the parent object
        value: JSON-serializable value
    """

    path: tuple[str, ...]
    key: str
    value: Any

    def __post_init__(self) -> None:
        if not self.path:
            raise ValidationError("patch.path", "path must have at least one segment")
        for segment in self.path:
            if not isinstance(segment, str) or not _SEGMENT_RE.match(segment):
                raise ValidationError("patch.path", "invalid path segment", str(segment))
        if not isinstance(self.key, str) or not self.key:
            raise ValidationError("patch.key", "key must be a non-empty string")
        if any(ord(ch) < 0x20 for ch in self.key):
            raise ValidationError("patch.key", "key contains control characters", self.key)
        try:
            self.key.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValidationError("patch.key", "not valid UTF-8", repr(self.key)) from e
        try:
            json.dumps(self.value)
        except (TypeError, ValueError) as e:
            raise ValidationError("patch.value", f"not JSON serializable: {e}") from e

    @property
    def keypath(self) -> tuple[str, ...]:
        """Full keypath including the assigned key."""
        return (*self.path, self.key)

    def serialize(self) -> str:
        """Render the patch in the textual patch syntax."""
        dotted = "".join(f".{segment}" for segment in self.path)
        key = json.dumps(self.key, ensure_ascii=False)
        value = json.dumps(self.value, separators=(",", ":"), sort_keys=True)
        return f"{dotted}[{key}] = {value}"

    @classmethod
    def parse(cls, text: str) -> Patch:
        """Parse a patch produced by :meth:`serialize`."""
        match = _PATCH_RE.match(text.strip())
        if match is None:
            raise ValidationError("patch", "unrecognized patch syntax", text)
        dotted, raw_key, raw_value = match.groups()
        try:
            key = json.loads(raw_key)
            value = json.loads(raw_value)
        except json.JSONDecodeError as e:
            raise ValidationError("patch", f"invalid JSON: {e}", text) from e
        return cls(path=tuple(dotted.lstrip(".").split(".")), key=key, value=value)

    def __hash__(self) -> int:
        return hash((self.path, self.key, self.serialize()))


@dataclass(frozen=True)
class Transaction:
    """A set of patches parented on previously acknowledged transactions.

    Attributes:
        id: Transaction id (64 hex chars)
        parents: Ids of the transactions this one causally follows
        patches: Patches, applied in order
        state_uri: State tree the transaction belongs to
    """

    id: str
    parents: frozenset[str]
    patches: tuple[Patch, ...]
    state_uri: str

    @classmethod
    def create(
        cls,
        state_uri: str,
        parents: set[str] | frozenset[str],
        patches: list[Patch] | tuple[Patch, ...],
        tx_id: str | None = None,
    ) -> Transaction:
        """Build a transaction with a fresh id unless one is supplied."""
        if not parents:
            raise ValidationError("parents", "a transaction needs at least one parent")
        for parent in parents:
            validate_tx_id(parent)
        return cls(
            id=validate_tx_id(tx_id) if tx_id else random_tx_id(),
            parents=frozenset(parents),
            patches=tuple(patches),
            state_uri=state_uri,
        )

    def sorted_parents(self) -> list[str]:
        """Parents in a stable order for headers and logs."""
        return sorted(self.parents)

    def patch_lines(self) -> list[str]:
        """Serialized patches, one per line."""
        return [patch.serialize() for patch in self.patches]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "parents": self.sorted_parents(),
            "patches": self.patch_lines(),
            "state_uri": self.state_uri,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transaction:
        """Create from dictionary."""
        return cls(
            id=validate_tx_id(data["id"]),
            parents=frozenset(data.get("parents", [])),
            patches=tuple(Patch.parse(line) for line in data.get("patches", [])),
            state_uri=data["state_uri"],
        )
