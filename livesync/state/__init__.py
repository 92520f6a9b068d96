"""
Replicated state tree model.

Digests, typed patches and transactions, the pure transaction builder,
and the per-stateURI session holding Frontier and UploadedSet.
"""

from .builder import build_link, build_patches, patch_for
from .session import SyncSession, state_file_name
from .types import (
    GENESIS_TX_ID,
    ContentDigest,
    Patch,
    Transaction,
    random_tx_id,
    validate_tx_id,
)

__all__ = [
    "GENESIS_TX_ID",
    "ContentDigest",
    "Patch",
    "Transaction",
    "random_tx_id",
    "validate_tx_id",
    "build_link",
    "build_patches",
    "patch_for",
    "SyncSession",
    "state_file_name",
]
