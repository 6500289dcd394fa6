"""Unit tests for detail page field extractors."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from extractors import DETAIL_EXTRACTORS, run_extractors
from extractors.base import FieldResult
from extractors.details import extract_dates, extract_facilities, extract_schools
from extractors.fields import (
    extract_about_property,
    extract_address,
    extract_build_area,
    extract_floor_plan,
    extract_images,
    extract_is_sold,
    extract_land_area,
    extract_listing_url,
    extract_price,
    extract_recommended_text,
    extract_tags,
)
from fakes import load_fixture
from utils.errors import ParserError
from utils.page_reader import HtmlPageReader

BASE = "https://www.shiawasehome-reuse.com"
EMPTY_PAGE = "<html><head></head><body><div class='property-details'></div></body></html>"


def run(extractor, page, **kwargs):
    return asyncio.run(extractor(page, **kwargs))


@pytest.fixture
def detail_page():
    """Detail fixture loaded as a static page."""
    return HtmlPageReader(load_fixture("detail_page.html"), url=f"{BASE}/bukken/12345/")


@pytest.fixture
def empty_page():
    return HtmlPageReader(EMPTY_PAGE, url=f"{BASE}/bukken/404/")


class TestDetailFields:
    """Values read from the detail fixture."""

    def test_address(self, detail_page):
        assert run(extract_address, detail_page).value == "新潟県新潟市中央区女池1丁目2-3"

    def test_price_in_man(self, detail_page):
        result = run(extract_price, detail_page)
        assert result.ok
        assert result.value == 6930000.0

    def test_floor_plan_strips_label(self, detail_page):
        assert run(extract_floor_plan, detail_page).value == "4LDK"

    def test_areas(self, detail_page):
        assert run(extract_land_area, detail_page).value == 165.29
        assert run(extract_build_area, detail_page).value == 98.55

    def test_tags_one_per_line(self, detail_page):
        assert run(extract_tags, detail_page).value == ["駐車場2台", "リフォーム済", "南向き"]

    def test_listing_url_is_absolute(self, detail_page):
        assert run(extract_listing_url, detail_page).value == f"{BASE}/bukken/12345/"

    def test_not_sold(self, detail_page):
        result = run(extract_is_sold, detail_page)
        assert result.value is False
        assert result.ok

    def test_images_deduplicated_and_absolute(self, detail_page):
        assert run(extract_images, detail_page).value == [
            f"{BASE}/wp-content/uploads/2024/03/photo1.jpg",
            f"{BASE}/wp-content/uploads/2024/03/photo2.jpg",
        ]

    def test_recommended_text_whitespace_collapsed(self, detail_page):
        assert (
            run(extract_recommended_text, detail_page).value
            == "駅まで徒歩10分。 スーパーも近く、生活便利な立地です。"
        )

    def test_about_property_from_outline(self, detail_page):
        text = run(extract_about_property, detail_page).value
        assert "木造2階建て" in text


class TestMissingFields:
    """Absent markup yields empty values plus a ParserError, never an exception."""

    @pytest.mark.parametrize(
        "extractor,empty",
        [
            (extract_address, ""),
            (extract_price, 0.0),
            (extract_floor_plan, ""),
            (extract_land_area, 0.0),
            (extract_build_area, 0.0),
            (extract_tags, []),
            (extract_images, []),
            (extract_recommended_text, None),
            (extract_about_property, None),
        ],
    )
    def test_empty_value_and_error(self, empty_page, extractor, empty):
        result = run(extractor, empty_page)
        assert result.value == empty
        assert isinstance(result.error, ParserError)
        assert result.error.selector
        assert result.error.retriable is False

    def test_listing_url_falls_back_to_page_url(self, empty_page):
        result = run(extract_listing_url, empty_page)
        assert result.value == f"{BASE}/bukken/404/"
        assert result.ok

    def test_structured_sections_empty(self, empty_page):
        """Dates, facilities and schools report all-empty dictionaries."""
        for extractor in (extract_dates, extract_facilities, extract_schools):
            result = run(extractor, empty_page)
            assert not result.ok
            assert all(v is None for v in result.value.values())


class TestFallbacks:
    """Secondary selectors."""

    def test_sold_banner(self):
        page = HtmlPageReader(html_page('<div class="detail_sold">成約済</div>'))
        assert run(extract_is_sold, page).value is True

    def test_gallery_fallback_with_lazy_images(self):
        page = HtmlPageReader(
            html_page('<div class="gallery"><img data-src="/wp-content/uploads/lazy.jpg"></div>')
        )
        assert run(extract_images, page).value == [f"{BASE}/wp-content/uploads/lazy.jpg"]

    def test_about_property_from_meta_description(self):
        page = HtmlPageReader(
            '<html><head><meta name="description" content="駅近の中古住宅です。"></head>'
            "<body></body></html>"
        )
        assert run(extract_about_property, page).value == "駅近の中古住宅です。"

    def test_custom_selectors(self):
        """Selectors passed by the adapter override the defaults per field."""
        page = HtmlPageReader(html_page('<span class="kakaku">1億2000万円</span>'))
        result = run(extract_price, page, selectors={"price": ".kakaku"})
        assert result.value == 120000000.0

    def test_unparseable_price_is_zero(self):
        page = HtmlPageReader(html_page('<div class="top_price">価格応談</div>'))
        assert run(extract_price, page).value == 0.0


class TestDetailSections:
    """Dates, facilities and schools."""

    def test_sections_from_spec_table(self, detail_page):
        assert run(extract_dates, detail_page).value == {
            "posted": "2024-03-15",
            "renovated": "2023-10-01",
            "built": "1998-04-01",
        }
        assert run(extract_facilities, detail_page).value == {
            "gas": "都市ガス",
            "sewage": "公共下水",
            "grey_water": "公共下水",
            "water": "公営水道",
        }
        assert run(extract_schools, detail_page).value == {
            "primary": "女池小学校",
            "junior_high": "鳥屋野中学校",
        }

    def test_sections_from_free_text(self):
        page = HtmlPageReader(
            html_page(
                "<p>2024.03.15 掲載</p>"
                "<p>築年月：1985年6月</p>"
                "<p>ガス：プロパン</p>"
                "<p>下水：浄化槽</p>"
                "<p>学区：女池小学校</p>"
                "<p>2019年3月にリフォーム</p>"
            )
        )
        assert run(extract_dates, page).value == {
            "posted": "2024-03-15",
            "renovated": "2019-03-01",
            "built": "1985-06-01",
        }
        facilities = run(extract_facilities, page).value
        assert facilities["gas"] == "プロパン"
        assert facilities["sewage"] == "浄化槽"
        assert facilities["water"] is None
        schools = run(extract_schools, page).value
        assert schools == {"primary": "女池小学校", "junior_high": None}

    def test_zoning_values_are_not_utilities(self):
        page = HtmlPageReader(
            html_page("<table><tr><th>ガス</th><td>都市計画区域内</td></tr></table>")
        )
        result = run(extract_facilities, page)
        assert result.value["gas"] is None


class TestRunExtractors:
    """Running the whole extractor table."""

    def test_detail_fixture_has_no_missing_fields(self, detail_page):
        values, errors = asyncio.run(
            run_extractors(detail_page, DETAIL_EXTRACTORS, base_url=BASE)
        )
        assert errors == []
        assert set(values) == set(DETAIL_EXTRACTORS)
        assert values["price"] == 6930000.0

    def test_failing_extractor_is_isolated(self, detail_page):
        """An exception in one extractor leaves the others intact."""

        async def broken(page, **kwargs):
            raise RuntimeError("unexpected markup")

        async def constant(page, **kwargs):
            return FieldResult("ok")

        values, errors = asyncio.run(
            run_extractors(detail_page, {"a": (broken, ""), "b": (constant, None)})
        )
        assert values == {"a": "", "b": "ok"}
        assert len(errors) == 1
        assert errors[0].context["field"] == "a"


def html_page(body):
    return f"<html><head></head><body>{body}</body></html>"
