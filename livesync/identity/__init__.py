"""
Publisher identity.

Resolves the address streams are published under and carries the
signer used by the HTTP peer client. Keys are secp256k1, loaded from
a hex private key or derived from a BIP-39 mnemonic.
"""

from .config_provider import ConfigFileIdentityProvider, derive_address
from .keys import KeySigner, recover_address, transaction_hash
from .provider import IdentityProvider
from .types import PeerIdentity, Signer

__all__ = [
    "PeerIdentity",
    "Signer",
    "IdentityProvider",
    "ConfigFileIdentityProvider",
    "derive_address",
    "KeySigner",
    "recover_address",
    "transaction_hash",
]
