"""Unit tests for search results extraction."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from extractors.search import extract_search_results
from fakes import load_fixture
from portals import get_adapter
from utils.page_reader import HtmlPageReader

BASE = "https://www.shiawasehome-reuse.com"


@pytest.fixture
def adapter():
    return get_adapter({"source": {"portal": "shiawasehome"}})


@pytest.fixture
def results(adapter):
    page = HtmlPageReader(load_fixture("search_page.html"), url=f"{BASE}/?bukken=jsearch")
    return asyncio.run(extract_search_results(page, adapter))


class TestSearchResults:
    """Listing summaries from the search fixture."""

    def test_items_without_link_are_skipped(self, results):
        assert [listing.listing_id for listing in results.listings] == ["12345", "67890"]

    def test_detail_urls_are_absolute(self, results):
        assert results.listings[0].detail_url == f"{BASE}/bukken/12345/"
        assert results.listings[1].detail_url == f"{BASE}/bukken/67890/"

    def test_summary_fields(self, results):
        first = results.listings[0]
        assert first.title == "女池の家"
        assert first.is_new is True
        assert first.is_updated is False
        assert first.thumbnail == f"{BASE}/wp-content/uploads/thumb1.jpg"
        assert first.price == 6930000.0
        assert first.price_text == "693万円"
        assert first.floor_plan == "4LDK"
        assert first.address == "新潟市中央区女池1丁目"
        assert first.nearest_station == "JR越後線 白山駅 徒歩15分"
        assert first.built_date == "1998-04-01"
        assert first.build_area == 98.55
        assert first.land_area == 165.29
        assert first.transaction_type == "売主"
        assert first.tags == ["駐車場2台", "リフォーム済"]
        assert first.recommendation == "日当たり良好な南向きの住宅です。"

    def test_oku_price_and_update_badge(self, results):
        second = results.listings[1]
        assert second.price == 120000000.0
        assert second.floor_plan == "5SLDK"
        assert second.is_updated is True
        assert second.is_new is False
        assert second.tags == []

    def test_next_page_link(self, results):
        assert results.next_url == f"{BASE}/?bukken=jsearch&paged=2"

    def test_summary_serializes(self, results):
        data = results.listings[0].to_dict()
        assert data["listing_id"] == "12345"
        assert data["tags"] == ["駐車場2台", "リフォーム済"]


class TestEdgeCases:
    """Pages without usable results."""

    def test_empty_page(self, adapter):
        page = HtmlPageReader("<html><body><ul id='bukken_list'></ul></body></html>")
        results = asyncio.run(extract_search_results(page, adapter))
        assert results.listings == []
        assert results.next_url is None

    def test_duplicate_listings_collapsed(self, adapter):
        item = '<li class="cf"><a href="/bukken/1/">x</a></li>'
        page = HtmlPageReader(f"<html><body><ul id='bukken_list'>{item}{item}</ul></body></html>")
        results = asyncio.run(extract_search_results(page, adapter))
        assert len(results.listings) == 1
