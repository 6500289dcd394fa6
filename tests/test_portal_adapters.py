"""Unit tests for portal adapters."""

import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from urllib.parse import parse_qs, urlparse

from fakes import load_fixture
from portals import get_adapter
from portals.base import PortalAdapter
from portals.shiawasehome.adapter import ShiawasehomeAdapter
from portals.shiawasehome.constants import DEFAULT_SEARCH_URL


@pytest.fixture
def adapter():
    return ShiawasehomeAdapter({"source": {"portal": "shiawasehome"}})


class TestShiawasehomeAdapter:
    """Test ShiawasehomeAdapter functionality."""

    def test_portal_identity(self, adapter):
        assert adapter.get_portal_name() == "shiawasehome"
        assert adapter.get_base_url() == "https://www.shiawasehome-reuse.com"

    def test_first_page_is_configured_url(self, adapter):
        """Page 1 is the search URL unchanged."""
        assert adapter.build_search_url(1) == DEFAULT_SEARCH_URL

    def test_configured_search_url(self):
        config = {"source": {"search_url": "https://www.shiawasehome-reuse.com/?bukken=jsearch"}}
        adapter = ShiawasehomeAdapter(config)
        assert adapter.build_search_url(1) == "https://www.shiawasehome-reuse.com/?bukken=jsearch"

    def test_url_building_pagination(self, adapter):
        """Later pages add paged=N and keep the filters."""
        url = adapter.build_search_url(page=3)
        params = parse_qs(urlparse(url).query, keep_blank_values=True)
        assert params["paged"] == ["3"]
        assert params["bukken"] == ["jsearch"]
        assert params["kahb"] == ["kp120"]

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://www.shiawasehome-reuse.com/bukken/12345/", "12345"),
            ("https://www.shiawasehome-reuse.com/bukken/12345", "12345"),
            ("https://www.shiawasehome-reuse.com/bukken/12345.html", "12345"),
            ("https://www.shiawasehome-reuse.com/?p=678", "678"),
            ("https://www.shiawasehome-reuse.com/detail?bukken_id=42", "42"),
        ],
    )
    def test_listing_id_extraction(self, adapter, url, expected):
        """Test listing ID extraction from URL."""
        assert adapter.extract_listing_id(url) == expected

    def test_normalize_relative_url(self, adapter):
        assert adapter.normalize_url("/bukken/1/") == "https://www.shiawasehome-reuse.com/bukken/1/"
        assert adapter.normalize_url("https://other.example/x") == "https://other.example/x"
        assert adapter.normalize_url("") == ""

    def test_page_config(self, adapter):
        assert adapter.get_page_config("search")["wait_for"] == "#bukken_list"
        assert ".top_price" in adapter.get_page_config("detail")["wait_for"]

    def test_selectors(self, adapter):
        assert adapter.detail_selectors["price"] == ".top_price"
        assert adapter.search_selectors["item"] == "#bukken_list > li.cf"


class TestRemovedDetection:
    """Deciding whether a detail page shows a removed listing."""

    @pytest.mark.parametrize("status", [404, 410])
    def test_gone_statuses(self, adapter, status):
        assert adapter.is_listing_removed(status, "") == f"HTTP {status}"

    def test_sold_marker(self, adapter):
        reason = adapter.is_listing_removed(200, load_fixture("removed_page.html"))
        assert "物件は売却済みです" in reason

    def test_english_pattern(self, adapter):
        html = "<div class='property-details'>This property has been sold.</div>"
        assert adapter.is_listing_removed(200, html).startswith("text pattern")

    def test_missing_structure(self, adapter):
        """A page without any detail markup is treated as removed."""
        assert adapter.is_listing_removed(200, "<html><body>Home</body></html>") == (
            "missing detail page structure"
        )

    def test_live_listing(self, adapter):
        assert adapter.is_listing_removed(200, load_fixture("detail_page.html")) is None


class TestAdapterFactory:
    """Test get_adapter factory function."""

    def test_factory_default(self):
        """Without a portal setting the shiawasehome adapter is used."""
        adapter = get_adapter({})
        assert isinstance(adapter, ShiawasehomeAdapter)
        assert isinstance(adapter, PortalAdapter)

    def test_factory_case_insensitive(self):
        adapter = get_adapter({"source": {"portal": "ShiawaseHome"}})
        assert adapter.get_portal_name() == "shiawasehome"

    def test_factory_invalid_portal(self):
        """Test factory raises error for invalid portal."""
        with pytest.raises(ValueError, match="Unsupported portal"):
            get_adapter({"source": {"portal": "suumo"}})
