"""Utility modules for configuration, logging, errors, parsing and page access."""

from .errors import (
    DatabaseError,
    ListingRemovedError,
    NetworkError,
    ParserError,
    ScraperError,
    ValidationError,
    classify_error,
)
from .page_reader import HtmlPageReader, NetworkResponse, PageReader
from .parsing import JapaneseListingParser

__all__ = [
    "DatabaseError",
    "HtmlPageReader",
    "JapaneseListingParser",
    "ListingRemovedError",
    "NetworkError",
    "NetworkResponse",
    "PageReader",
    "ParserError",
    "ScraperError",
    "ValidationError",
    "classify_error",
]
