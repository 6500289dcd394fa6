"""Content-hash deduplicated backup snapshots of listing records."""

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from utils.errors import DatabaseError

logger = logging.getLogger(__name__)

MAX_BACKUPS_PER_LISTING = 5

# Keys that do not describe the listing itself
HASH_EXCLUDED_KEYS = ("_meta", "content_hash")


def compute_hash(data: Dict[str, Any]) -> str:
    """SHA-256 of the record serialized with sorted keys."""
    payload = {k: v for k, v in data.items() if k not in HASH_EXCLUDED_KEYS}
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@dataclass
class SnapshotResult:
    written: bool
    hash: str
    path: Optional[Path] = None
    pruned: int = 0


class BackupStore:
    """
    Filesystem snapshot store: `<backup_dir>/<listing_id>/<timestamp>.json`.

    Each snapshot holds the full record plus a `_meta` block with
    backupTimestamp, listingId and hash. Writing identical content twice is a
    no-op, and only the newest `max_backups` snapshots are kept per listing.
    """

    def __init__(
        self,
        backup_dir: str = "data/backups",
        max_backups: int = MAX_BACKUPS_PER_LISTING,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backup_dir = Path(backup_dir)
        self.max_backups = max(1, max_backups)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _listing_dir(self, listing_id: str) -> Path:
        safe_id = re.sub(r"[^\w.-]+", "_", str(listing_id))
        return self.backup_dir / safe_id

    def list_snapshots(self, listing_id: str) -> List[Path]:
        """Snapshot files for a listing, oldest first."""
        directory = self._listing_dir(listing_id)
        if not directory.exists():
            return []
        return sorted(directory.glob("*.json"))

    def latest(self, listing_id: str) -> Optional[Dict[str, Any]]:
        """Most recent snapshot document, or None if there is none."""
        snapshots = self.list_snapshots(listing_id)
        if not snapshots:
            return None
        try:
            with open(snapshots[-1], "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable snapshot {snapshots[-1]}: {e}")
            return None

    def snapshot(self, listing_id: str, data: Dict[str, Any]) -> SnapshotResult:
        """
        Store a snapshot unless it matches the latest one.

        Args:
            listing_id: Listing the snapshot belongs to
            data: Full record dictionary

        Returns:
            SnapshotResult (written=False when content was unchanged)

        Raises:
            DatabaseError: If the snapshot cannot be written
        """
        content_hash = compute_hash(data)

        previous = self.latest(listing_id)
        if previous and previous.get("_meta", {}).get("hash") == content_hash:
            logger.debug(f"Snapshot for {listing_id} unchanged ({content_hash[:12]}), skipping")
            return SnapshotResult(written=False, hash=content_hash)

        timestamp = self._clock().isoformat()
        document = dict(data)
        document["_meta"] = {
            "backupTimestamp": timestamp,
            "listingId": listing_id,
            "hash": content_hash,
        }

        directory = self._listing_dir(listing_id)
        stem = timestamp.replace(":", "-")
        path = directory / f"{stem}.json"
        counter = 1
        while path.exists():
            path = directory / f"{stem}_{counter}.json"
            counter += 1

        try:
            directory.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2, default=str)
        except OSError as e:
            raise DatabaseError(
                f"Failed to write snapshot for {listing_id}: {e}", {"listing_id": listing_id}
            ) from e

        pruned = self.prune(listing_id)
        logger.info(f"Backed up listing {listing_id} ({content_hash[:12]})")
        return SnapshotResult(written=True, hash=content_hash, path=path, pruned=pruned)

    def prune(self, listing_id: str) -> int:
        """Delete the oldest snapshots beyond max_backups. Returns the count removed."""
        snapshots = self.list_snapshots(listing_id)
        excess = len(snapshots) - self.max_backups
        if excess <= 0:
            return 0
        removed = 0
        for path in snapshots[:excess]:
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Could not prune snapshot {path}: {e}")
        logger.debug(f"Pruned {removed} old snapshots for {listing_id}")
        return removed
