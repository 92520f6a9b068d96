"""
Sync engine.

Watches a directory, batches its changes and commits them to the
replication peer as causally ordered transactions.
"""

from .batcher import ChangeBatcher, CycleReport
from .commit import CausalCommitClient, CommitOutcome, CommitState, fallback_patches
from .watcher import DirectoryWatcher

__all__ = [
    "ChangeBatcher",
    "CycleReport",
    "CausalCommitClient",
    "CommitOutcome",
    "CommitState",
    "fallback_patches",
    "DirectoryWatcher",
]
