"""Error taxonomy shared by the scraping pipeline."""

import asyncio
import logging
import sqlite3
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Categories used to decide whether a failed job is retried."""

    NETWORK = "network"
    PARSER = "parser"
    DATABASE = "database"
    VALIDATION = "validation"
    LISTING_REMOVED = "listing_removed"
    UNKNOWN = "unknown"


class ScraperError(Exception):
    """
    Base error for everything raised inside the pipeline.

    Attributes:
        error_type: Category of the failure
        retriable: Whether the job queue may schedule another attempt
        context: Extra diagnostic values (url, selector, listing id, ...)
    """

    error_type = ErrorType.UNKNOWN
    retriable = True

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and failure records."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "retriable": self.retriable,
            "context": self.context,
        }

    def __str__(self) -> str:
        return self.message


class NetworkError(ScraperError):
    """Navigation, timeout or connection failure."""

    error_type = ErrorType.NETWORK
    retriable = True


class ParserError(ScraperError):
    """Malformed or missing DOM structure for a single selector."""

    error_type = ErrorType.PARSER
    retriable = False

    def __init__(
        self,
        message: str,
        selector: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.selector = selector
        if selector:
            self.context.setdefault("selector", selector)


class DatabaseError(ScraperError):
    """Persistent store read or write failure."""

    error_type = ErrorType.DATABASE
    retriable = True


class ValidationError(ScraperError):
    """Input that can never succeed, such as a bad URL or payload."""

    error_type = ErrorType.VALIDATION
    retriable = False


class ListingRemovedError(ScraperError):
    """The listing no longer exists at the source."""

    error_type = ErrorType.LISTING_REMOVED
    retriable = False


NETWORK_MARKERS = ("timeout", "timed out", "network", "connection", "net::")


def classify_error(error: BaseException) -> ScraperError:
    """
    Map an arbitrary exception onto the pipeline taxonomy.

    Args:
        error: Exception raised by a handler or library call

    Returns:
        ScraperError instance (the original one when already classified)

    Example:
        >>> classify_error(asyncio.TimeoutError()).retriable
        True
    """
    if isinstance(error, ScraperError):
        return error

    message = str(error) or error.__class__.__name__
    context = {"exception": error.__class__.__name__}

    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return NetworkError(message, context)
    if isinstance(error, sqlite3.Error):
        return DatabaseError(message, context)

    lowered = message.lower()
    if any(marker in lowered for marker in NETWORK_MARKERS):
        return NetworkError(message, context)

    logger.debug(f"Unclassified error {error.__class__.__name__}: {message}")
    return ScraperError(message, context)
