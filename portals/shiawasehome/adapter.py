"""shiawasehome-reuse.com portal adapter."""

import logging
import re
from typing import Any, Dict
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from portals.base import PortalAdapter

from .constants import (
    BASE_URL,
    DEFAULT_SEARCH_URL,
    DETAIL_SELECTORS,
    DETAIL_WAIT_FOR,
    REMOVAL_PATTERNS,
    REMOVAL_TEXT_MARKERS,
    REQUIRED_MARKERS,
    SEARCH_SELECTORS,
    SEARCH_WAIT_FOR,
)

logger = logging.getLogger(__name__)


class ShiawasehomeAdapter(PortalAdapter):
    """Adapter for shiawasehome-reuse.com listings."""

    REMOVAL_TEXT_MARKERS = REMOVAL_TEXT_MARKERS
    REMOVAL_PATTERNS = REMOVAL_PATTERNS
    REQUIRED_MARKERS = REQUIRED_MARKERS

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.search_url = self.source.get("search_url") or DEFAULT_SEARCH_URL

    def get_portal_name(self) -> str:
        """Return portal identifier."""
        return "shiawasehome"

    def get_base_url(self) -> str:
        return BASE_URL

    @property
    def detail_selectors(self) -> Dict[str, str]:
        return DETAIL_SELECTORS

    @property
    def search_selectors(self) -> Dict[str, str]:
        return SEARCH_SELECTORS

    def build_search_url(self, page: int = 1, **kwargs) -> str:
        """Build the search URL, adding `paged=N` after the first page."""
        base_url = kwargs.get("base_url") or self.search_url
        if page <= 1:
            return base_url

        parsed = urlparse(base_url)
        params = parse_qs(parsed.query, keep_blank_values=True)
        params["paged"] = [str(page)]
        query = urlencode(params, doseq=True)
        return urlunparse(parsed._replace(query=query))

    def extract_listing_id(self, url: str) -> str:
        """
        Extract listing ID from URL.

        Examples:
            https://www.shiawasehome-reuse.com/bukken/12345/ -> "12345"
            https://www.shiawasehome-reuse.com/?p=678 -> "678"
        """
        parsed = urlparse(url)
        params = parse_qs(parsed.query)
        for key in ("p", "id", "bukken_id"):
            if params.get(key):
                return params[key][0]

        segments = [s for s in parsed.path.split("/") if s]
        if segments:
            last = segments[-1]
            return re.sub(r"\.html?$", "", last)

        logger.warning(f"Could not derive listing id from {url}")
        return re.sub(r"\W+", "-", url).strip("-")

    def get_page_config(self, kind: str = "detail") -> Dict[str, Any]:
        if kind == "search":
            return {"wait_for": SEARCH_WAIT_FOR}
        return {"wait_for": DETAIL_WAIT_FOR}
