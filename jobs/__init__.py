"""Job queue, handlers, failure registry and trigger service."""

from .failures import FailureRegistry, RetrySummary
from .queue import JobQueue
from .service import ScraperService

__all__ = [
    "FailureRegistry",
    "JobQueue",
    "RetrySummary",
    "ScraperService",
]
