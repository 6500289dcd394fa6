"""Abstract base class for portal-specific adapters."""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin


class PortalAdapter(ABC):
    """
    Abstract base class for listing site adapters.

    Each source site implements this interface to handle site-specific logic
    like URL building, listing ids, selectors and removed-listing detection.

    Site-agnostic logic (field parsing, coordinate resolution, merging,
    backups) remains in shared modules.
    """

    REMOVAL_TEXT_MARKERS: List[str] = []
    REMOVAL_PATTERNS: List[str] = []
    REQUIRED_MARKERS: List[str] = []

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize adapter with configuration.

        Args:
            config: Full configuration dictionary from config.json
        """
        self.config = config
        self.source = config.get("source", {})
        self._removal_patterns = [
            re.compile(p, re.IGNORECASE) for p in self.REMOVAL_PATTERNS
        ]

    @abstractmethod
    def get_portal_name(self) -> str:
        """
        Return portal identifier.

        Returns:
            Portal name (e.g., "shiawasehome")
        """
        pass

    @abstractmethod
    def get_base_url(self) -> str:
        """Return the site root used to resolve relative links."""
        pass

    @abstractmethod
    def build_search_url(self, page: int = 1, **kwargs) -> str:
        """
        Build search URL for a listing results page.

        Args:
            page: Page number (1-indexed)
            **kwargs: Additional portal-specific parameters

        Returns:
            Full search URL with pagination
        """
        pass

    @abstractmethod
    def extract_listing_id(self, url: str) -> str:
        """
        Extract unique listing ID from a detail page URL.

        Args:
            url: Listing detail URL

        Returns:
            Unique listing ID (string)
        """
        pass

    @property
    @abstractmethod
    def detail_selectors(self) -> Dict[str, str]:
        """Field name -> CSS selector for detail pages."""
        pass

    @property
    @abstractmethod
    def search_selectors(self) -> Dict[str, str]:
        """Role -> CSS selector for search result pages."""
        pass

    def normalize_url(self, url: str) -> str:
        """Resolve a possibly relative link against the site root."""
        if not url:
            return ""
        return urljoin(self.get_base_url(), url.strip())

    def is_listing_removed(self, status: Optional[int], html: str) -> Optional[str]:
        """
        Decide whether a detail page shows a removed listing.

        Args:
            status: HTTP status of the navigation (None if unknown)
            html: Page HTML

        Returns:
            Reason string when removed, None otherwise
        """
        if status in (404, 410):
            return f"HTTP {status}"

        lowered = (html or "").lower()
        for marker in self.REMOVAL_TEXT_MARKERS:
            if marker.lower() in lowered:
                return f"text marker '{marker}'"
        for pattern in self._removal_patterns:
            if pattern.search(html or ""):
                return f"text pattern '{pattern.pattern}'"

        if self.REQUIRED_MARKERS and not any(
            marker in (html or "") for marker in self.REQUIRED_MARKERS
        ):
            return "missing detail page structure"
        return None

    def get_page_config(self, kind: str = "detail") -> Dict[str, Any]:
        """
        Get page loading options for a page kind.

        Returns:
            Dict with a "wait_for" CSS selector (or None)
        """
        return {"wait_for": None}
