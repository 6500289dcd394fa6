"""SQLite persistence for listing records."""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from models.constants import ListingStatus
from models.listing import ListingRecord
from utils.errors import DatabaseError

logger = logging.getLogger(__name__)


class ListingStore:
    """
    SQLite store for listing records, one JSON document per row.

    Updates are row-level: each write reads and rewrites a single record
    inside one transaction, keyed by listing id.
    """

    def __init__(self, db_path: str = "data/listings.db"):
        """Initialize database connection and create tables if needed."""
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._init_tables()
        except sqlite3.Error as e:
            raise DatabaseError(f"Cannot open listing store {db_path}: {e}") from e
        self._lock = threading.Lock()

    def _init_tables(self):
        """Create tables if they don't exist."""
        cursor = self.conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS listings (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                last_updated TEXT
            )
        """)
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_listings_status ON listings(status)"
        )
        self.conn.commit()

    def _row_to_record(self, row: sqlite3.Row) -> ListingRecord:
        return ListingRecord.from_dict(json.loads(row["data"]))

    def _write(self, record: ListingRecord) -> None:
        self.conn.execute(
            """
            INSERT INTO listings (id, data, status, last_updated)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                data = excluded.data,
                status = excluded.status,
                last_updated = excluded.last_updated
            """,
            (
                record.id,
                json.dumps(record.to_dict(), ensure_ascii=False),
                record.status,
                record.last_updated,
            ),
        )

    def get(self, listing_id: str) -> Optional[ListingRecord]:
        """Return the stored record, or None if the listing is unknown."""
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT data FROM listings WHERE id = ?", (listing_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read listing {listing_id}: {e}", {"listing_id": listing_id}) from e
        return self._row_to_record(row) if row else None

    def insert(self, record: ListingRecord) -> ListingRecord:
        """Insert a new record (or replace an existing row with the same id)."""
        try:
            with self._lock, self.conn:
                self._write(record)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to insert listing {record.id}: {e}", {"listing_id": record.id}) from e
        logger.info(f"Inserted listing {record.id}")
        return record

    def update_fields(self, listing_id: str, changes: Dict[str, Any]) -> ListingRecord:
        """
        Apply a changed-field delta to one record.

        Raises:
            DatabaseError: If the record does not exist or the write fails
        """
        try:
            with self._lock, self.conn:
                row = self.conn.execute(
                    "SELECT data FROM listings WHERE id = ?", (listing_id,)
                ).fetchone()
                if row is None:
                    raise DatabaseError(
                        f"Listing {listing_id} not found for update", {"listing_id": listing_id}
                    )
                data = json.loads(row["data"])
                data.update(changes)
                record = ListingRecord.from_dict(data)
                self._write(record)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to update listing {listing_id}: {e}", {"listing_id": listing_id}) from e
        logger.debug(f"Updated listing {listing_id}: {sorted(changes)}")
        return record

    def mark_removed(self, listing_id: str, url: str = "", reason: str = "") -> ListingRecord:
        """
        Flag a listing as removed from the source. Rows are never deleted.

        Unknown listings get a minimal record so the removal is remembered.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, self.conn:
                row = self.conn.execute(
                    "SELECT data FROM listings WHERE id = ?", (listing_id,)
                ).fetchone()
                if row is None:
                    record = ListingRecord(id=listing_id, listing_url=url, created_at=now)
                else:
                    record = self._row_to_record(row)
                record.status = ListingStatus.REMOVED
                record.removed_at = record.removed_at or now
                record.last_updated = now
                self._write(record)
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to mark listing {listing_id} removed: {e}", {"listing_id": listing_id}) from e
        logger.info(f"Marked listing {listing_id} as removed ({reason or 'no reason given'})")
        return record

    def is_removed(self, listing_id: str) -> bool:
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT status FROM listings WHERE id = ?", (listing_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to read listing {listing_id}: {e}", {"listing_id": listing_id}) from e
        return row is not None and row["status"] == ListingStatus.REMOVED

    def _select(self, columns: str, status: Optional[str]) -> List[sqlite3.Row]:
        query = f"SELECT {columns} FROM listings"
        params: tuple = ()
        if status:
            query += " WHERE status = ?"
            params = (status,)
        try:
            with self._lock:
                return self.conn.execute(query + " ORDER BY id", params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to list listings: {e}", {"status": status}) from e

    def list_ids(self, status: Optional[str] = None) -> List[str]:
        return [row["id"] for row in self._select("id", status)]

    def list_records(self, status: Optional[str] = None) -> List[ListingRecord]:
        """All records (optionally only those with the given status), ordered by id."""
        return [self._row_to_record(row) for row in self._select("data", status)]

    def count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM listings").fetchone()[0]

    def close(self):
        """Close database connection."""
        self.conn.close()
