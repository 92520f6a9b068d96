"""
secp256k1 signing keys.

A publisher key is either a raw hex private key or derived from a BIP-39
mnemonic on the ``m/44'/60'/0'/0/<index>`` path. Hashes are Keccak-256 and
signatures are 65-byte recoverable ``r || s || v`` values (``v`` is 0 or 1),
hex encoded. The address is the last 20 bytes of the Keccak-256 hash of the
uncompressed public key.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING

from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_utils import ValidationError as KeyFormatError
from eth_utils import keccak

from ..exceptions import ConfigurationError

if TYPE_CHECKING:
    from ..state.types import Transaction

logger = logging.getLogger(__name__)

HD_PATH_TEMPLATE = "m/44'/60'/0'/0/{index}"


class KeySigner:
    """Signs peer challenges and transactions with a secp256k1 key."""

    def __init__(self, private_key: keys.PrivateKey):
        self._key = private_key

    @classmethod
    def from_hex(cls, key_hex: str) -> KeySigner:
        """Load a key from 64 hex chars (an ``0x`` prefix is accepted).

        Raises:
            ConfigurationError: If the value is not a 32-byte hex key
        """
        try:
            key_bytes = bytes.fromhex(key_hex.strip().removeprefix("0x"))
            return cls(keys.PrivateKey(key_bytes))
        except (ValueError, KeyFormatError) as e:
            raise ConfigurationError("identity.private_key", "expected a 32-byte hex key") from e

    @classmethod
    def from_mnemonic(cls, mnemonic: str, account_index: int = 0) -> KeySigner:
        """Derive the key at ``account_index`` from a BIP-39 mnemonic.

        Raises:
            ConfigurationError: If the mnemonic or index is invalid
        """
        if account_index < 0:
            raise ConfigurationError("identity.account_index", "must be non-negative")
        Account.enable_unaudited_hdwallet_features()
        try:
            account = Account.from_mnemonic(
                " ".join(mnemonic.split()),
                account_path=HD_PATH_TEMPLATE.format(index=account_index),
            )
        except (ValueError, KeyFormatError) as e:
            raise ConfigurationError("identity.mnemonic", f"invalid mnemonic: {e}") from e
        return cls(keys.PrivateKey(bytes(account.key)))

    @classmethod
    def generate(cls) -> KeySigner:
        """Create a signer with a fresh random key."""
        return cls(keys.PrivateKey(secrets.token_bytes(32)))

    @property
    def address(self) -> str:
        """Lowercase hex address without the ``0x`` prefix."""
        return self._key.public_key.to_canonical_address().hex()

    @property
    def public_key_hex(self) -> str:
        return self._key.public_key.to_bytes().hex()

    def sign_hash(self, digest: bytes) -> str:
        """Sign a 32-byte hash, returning the hex recoverable signature."""
        return self._key.sign_msg_hash(digest).to_bytes().hex()

    def sign_challenge(self, challenge: bytes) -> str:
        return self.sign_hash(keccak(challenge))

    def sign_transaction(self, tx: Transaction) -> str:
        return self.sign_hash(transaction_hash(tx))


def transaction_hash(tx: Transaction) -> bytes:
    """Keccak-256 over the transaction's id, parents, stateURI and patches.

    Fields are joined by newlines in that order, with parents sorted and
    comma separated, so the hash matches what ``HttpPeerClient.put`` sends.
    """
    lines = [tx.id, ",".join(tx.sorted_parents()), tx.state_uri, *tx.patch_lines()]
    return keccak("\n".join(lines).encode("utf-8"))


def recover_address(digest: bytes, signature_hex: str) -> str | None:
    """Address that produced ``signature_hex`` over ``digest``, or None if invalid."""
    try:
        signature = keys.Signature(bytes.fromhex(signature_hex.removeprefix("0x")))
        public_key = signature.recover_public_key_from_msg_hash(digest)
    except (ValueError, KeyFormatError, BadSignature) as e:
        logger.debug(f"Signature recovery failed: {e}")
        return None
    return public_key.to_canonical_address().hex()
