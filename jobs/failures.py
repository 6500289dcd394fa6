"""Durable registry of jobs that exhausted their attempts."""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from models.constants import PRIORITY_RETRY
from models.job import FailedJobRecord, Job, JobKind, utc_now
from utils.errors import ScraperError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class RetrySummary:
    """Aggregate outcome of a bulk retry."""

    queued: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    # queued, but the registry file still lists them
    unsaved: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, int]:
        return {
            "queued": len(self.queued),
            "failed": len(self.failed),
            "missing": len(self.missing),
            "unsaved": len(self.unsaved),
        }


class FailureRegistry:
    """
    JSON-file backed list of failed jobs for operator triage.

    Entries are keyed by listing id when the job has one, so repeated failures
    of the same listing update one entry instead of piling up.

    Args:
        path: JSON file holding the registry
        retry_attempts: Attempt budget given to retried jobs
        retry_backoff_delay: Base backoff delay for retried jobs
    """

    def __init__(
        self,
        path: str = "data/failed-jobs.json",
        retry_attempts: int = 2,
        retry_backoff_delay: float = 10.0,
    ):
        self.path = Path(path)
        self.retry_attempts = retry_attempts
        self.retry_backoff_delay = retry_backoff_delay
        self.queue = None
        self._lock = threading.Lock()
        self._records: Dict[str, FailedJobRecord] = self._load()

    def bind(self, queue) -> None:
        """Attach to a JobQueue: record its terminal failures and retry into it."""
        self.queue = queue
        queue.on_failed(lambda job, error: self.record(job, error.message))

    def _load(self) -> Dict[str, FailedJobRecord]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning(f"Failed jobs file {self.path} is corrupt, starting empty: {e}")
            return {}
        except OSError as e:
            logger.error(f"Cannot read failed jobs file {self.path}, starting empty: {e}")
            return {}
        records = {}
        for item in data if isinstance(data, list) else []:
            try:
                record = FailedJobRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed failed job entry {item!r}: {e}")
                continue
            records[record.id] = record
        logger.info(f"Loaded {len(records)} failed jobs from {self.path}")
        return records

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(
                [r.to_dict() for r in self._records.values()], f, ensure_ascii=False, indent=2
            )
        os.replace(tmp_path, self.path)

    def _persist(self) -> bool:
        """Write the registry; on failure keep the in-memory state and report False."""
        try:
            self._save()
        except OSError as e:
            logger.error(f"Could not write failed jobs file {self.path}: {e}")
            return False
        return True

    def record(self, job: Job, reason: str) -> FailedJobRecord:
        """
        Persist a terminally failed job.

        retryCount is the total number of attempts made for the listing,
        including attempts made before earlier registry retries.
        """
        entry_id = job.listing_id or job.id
        kind = job.payload.get("original_kind") or job.kind.value
        payload = {
            k: v
            for k, v in job.payload.items()
            if k not in ("original_kind", "retry_count", "failed_job_id")
        }
        with self._lock:
            record = FailedJobRecord(
                id=entry_id,
                url=job.url or "",
                reason=reason,
                retry_count=job.retry_count + job.attempts,
                failed_at=utc_now(),
                listing_id=job.listing_id,
                kind=kind,
                payload=payload,
            )
            if entry_id in self._records:
                logger.info(f"Updating failed job entry {entry_id}")
            self._records[entry_id] = record
            self._persist()
        logger.warning(f"Recorded failed job {entry_id} ({record.retry_count} attempts): {reason}")
        return record

    def list(self) -> List[Dict]:
        """Failed jobs in operator format: id, url, failedAt, reason, retryCount."""
        with self._lock:
            return [r.to_listing() for r in self._records.values()]

    def get(self, entry_id: str) -> Optional[FailedJobRecord]:
        return self._records.get(entry_id)

    def __len__(self) -> int:
        return len(self._records)

    def remove(self, entry_id: str) -> bool:
        """
        Drop an entry.

        Returns:
            False if the entry is unknown or the file could not be written
        """
        with self._lock:
            if self._records.pop(entry_id, None) is None:
                return False
            return self._persist()

    def clear(self, entry_ids: Optional[Iterable[str]] = None) -> int:
        """
        Remove entries (all of them when entry_ids is None).

        Returns:
            Number of entries removed
        """
        with self._lock:
            if entry_ids is None:
                removed = len(self._records)
                self._records.clear()
            else:
                removed = sum(1 for i in set(entry_ids) if self._records.pop(i, None) is not None)
            self._persist()
        logger.info(f"Cleared {removed} failed jobs")
        return removed

    async def retry(
        self,
        entry_ids: Optional[Iterable[str]] = None,
        worker_count: Optional[int] = None,
    ) -> RetrySummary:
        """
        Re-enqueue failed jobs as retry jobs.

        An entry leaves the registry as soon as its retry job is queued. A
        later failure of that job records a new entry.

        Args:
            entry_ids: Entries to retry (all when None)
            worker_count: Size of the retry worker pool

        Returns:
            RetrySummary with queued job ids, failed, unknown and unsaved entry ids
        """
        if self.queue is None:
            raise ValidationError("Failure registry is not bound to a job queue")

        summary = RetrySummary()
        if entry_ids is None:
            targets = list(self._records.values())
        else:
            targets = []
            for entry_id in entry_ids:
                record = self._records.get(entry_id)
                if record is None:
                    summary.missing.append(entry_id)
                else:
                    targets.append(record)

        if worker_count:
            self.queue.set_concurrency(JobKind.RETRY, worker_count)

        for record in targets:
            payload = dict(record.payload)
            payload.update(
                {
                    "url": record.url,
                    "listing_id": record.listing_id,
                    "original_kind": record.kind,
                    "retry_count": record.retry_count,
                    "retries": int(record.payload.get("retries", 0)) + 1,
                    "failed_job_id": record.id,
                }
            )
            try:
                job = await self.queue.enqueue(
                    JobKind.RETRY,
                    payload,
                    priority=PRIORITY_RETRY,
                    max_attempts=self.retry_attempts,
                    backoff_delay=self.retry_backoff_delay,
                )
            except (ScraperError, OSError) as e:
                logger.error(f"Could not queue retry for {record.id}: {e}")
                summary.failed.append(record.id)
                continue
            summary.queued.append(job.id)
            with self._lock:
                self._records.pop(record.id, None)
                saved = self._persist()
            if not saved:
                summary.unsaved.append(record.id)

        logger.info(f"Retry summary: {summary.to_dict()}")
        return summary
