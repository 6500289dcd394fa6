"""Persistence: listing store, merge engine and backup snapshots."""

from .backup import BackupStore, SnapshotResult, compute_hash
from .listing_store import ListingStore
from .merge import MergeEngine, MergeResult, MergeRule, MergeRuleSet, is_empty

__all__ = [
    "BackupStore",
    "ListingStore",
    "MergeEngine",
    "MergeResult",
    "MergeRule",
    "MergeRuleSet",
    "SnapshotResult",
    "compute_hash",
    "is_empty",
]
