"""
Identity types.

The publisher's identity is the address under which its streams appear
in the state tree (``streams.<address>``). Signing goes through the
``Signer`` protocol; ``KeySigner`` in ``livesync.identity.keys`` implements
it with a secp256k1 key.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..state.types import Transaction


@runtime_checkable
class Signer(Protocol):
    """Produces hex signatures for peer challenges and transactions."""

    def sign_challenge(self, challenge: bytes) -> str: ...

    def sign_transaction(self, tx: Transaction) -> str: ...


@dataclass
class PeerIdentity:
    """Identity of this publisher.

    Attributes:
        address: Address used as the stream key in the state tree
        display_name: Human readable name for logs
        device_id: Persistent id of this machine
        signer: Optional signer for authorization and transaction signatures
    """

    address: str
    display_name: str | None = None
    device_id: str | None = None
    signer: Signer | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary (the signer is never serialized)."""
        return {
            "address": self.address,
            "display_name": self.display_name,
            "device_id": self.device_id,
        }
