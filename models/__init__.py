"""Data models for listings and jobs."""

from .constants import ListingStatus
from .job import FailedJobRecord, Job, JobKind, JobStatus
from .listing import ListingRecord

__all__ = [
    "FailedJobRecord",
    "Job",
    "JobKind",
    "JobStatus",
    "ListingRecord",
    "ListingStatus",
]
