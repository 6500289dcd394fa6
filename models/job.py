"""Job and failed-job data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .constants import PRIORITY_DETAIL


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JobKind(str, Enum):
    SEARCH = "search"
    DETAIL = "detail"
    RETRY = "retry"


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Job:
    """A unit of work consumed by a worker pool."""

    kind: JobKind
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    priority: int = PRIORITY_DETAIL
    max_attempts: int = 3
    backoff_delay: float = 5.0
    attempts: int = 0
    status: JobStatus = JobStatus.WAITING
    created_at: str = field(default_factory=utc_now)
    finished_at: Optional[str] = None
    failed_reason: Optional[str] = None
    result: Any = None

    @property
    def url(self) -> Optional[str]:
        return self.payload.get("url")

    @property
    def listing_id(self) -> Optional[str]:
        return self.payload.get("listing_id")

    @property
    def retry_count(self) -> int:
        return int(self.payload.get("retry_count", 0))

    def backoff_for(self, attempt: int) -> float:
        """
        Delay before the attempt following `attempt`.

        Args:
            attempt: Number of attempts made so far (1-indexed)

        Returns:
            backoff_delay * 2^(attempt-1) seconds
        """
        return self.backoff_delay * (2 ** (attempt - 1))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "priority": self.priority,
            "attempts": self.attempts,
            "maxAttempts": self.max_attempts,
            "status": self.status.value,
            "createdAt": self.created_at,
            "finishedAt": self.finished_at,
            "failedReason": self.failed_reason,
        }


@dataclass
class FailedJobRecord:
    """Persisted copy of a job that exhausted its attempts."""

    id: str
    url: str
    reason: str
    retry_count: int = 1
    failed_at: str = field(default_factory=utc_now)
    listing_id: Optional[str] = None
    kind: str = JobKind.DETAIL.value
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_listing(self) -> Dict[str, Any]:
        """Operator-facing format."""
        return {
            "id": self.id,
            "url": self.url,
            "failedAt": self.failed_at,
            "reason": self.reason,
            "retryCount": self.retry_count,
        }

    def to_dict(self) -> Dict[str, Any]:
        result = self.to_listing()
        result.update(
            {"listingId": self.listing_id, "kind": self.kind, "payload": self.payload}
        )
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailedJobRecord":
        return cls(
            id=str(data["id"]),
            url=data.get("url", ""),
            reason=data.get("reason", ""),
            retry_count=int(data.get("retryCount", 1)),
            failed_at=data.get("failedAt") or utc_now(),
            listing_id=data.get("listingId"),
            kind=data.get("kind", JobKind.DETAIL.value),
            payload=data.get("payload") or {},
        )
