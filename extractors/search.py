"""Search results page extraction."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import Tag

from portals.base import PortalAdapter
from portals.shiawasehome.constants import SEARCH_LABELS
from utils.page_reader import PageReader
from utils.parsing import JapaneseListingParser

logger = logging.getLogger(__name__)

parser = JapaneseListingParser()


@dataclass
class SearchListing:
    """Summary of one listing as shown on a search results page."""

    listing_id: str
    detail_url: str
    title: str = ""
    is_new: bool = False
    is_updated: bool = False
    thumbnail: Optional[str] = None
    price: float = 0.0
    price_text: str = ""
    floor_plan: str = ""
    address: str = ""
    nearest_station: str = ""
    built_date: Optional[str] = None
    build_area: float = 0.0
    land_area: float = 0.0
    transaction_type: str = ""
    tags: List[str] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SearchPage:
    listings: List[SearchListing] = field(default_factory=list)
    next_url: Optional[str] = None


def _text(item: Tag, selector: str) -> str:
    element = item.select_one(selector)
    return parser.clean_text(element.get_text(" ")) if element is not None else ""


def _parse_item(item: Tag, adapter: PortalAdapter) -> Optional[SearchListing]:
    selectors = adapter.search_selectors

    link = item.select_one(selectors["link"])
    href = link.get("href") if link is not None else None
    if not href:
        return None
    detail_url = adapter.normalize_url(href)

    listing = SearchListing(
        listing_id=adapter.extract_listing_id(detail_url),
        detail_url=detail_url,
        title=_text(item, selectors["title"]),
    )

    badge = item.select_one(selectors["badge"])
    if badge is not None:
        classes = badge.get("class") or []
        listing.is_new = "new" in classes
        listing.is_updated = "update" in classes

    thumbnail = item.select_one(selectors["thumbnail"])
    if thumbnail is not None and thumbnail.get("src"):
        listing.thumbnail = adapter.normalize_url(thumbnail["src"])

    for row in item.select(selectors["detail_rows"]):
        label_el, value_el = row.find("dt"), row.find("dd")
        if label_el is None or value_el is None:
            continue
        label = parser.clean_text(label_el.get_text())
        value = parser.clean_text(value_el.get_text(" "))
        key = next((k for text, k in SEARCH_LABELS.items() if text in label), None)
        if key is None:
            continue
        if key == "price":
            listing.price_text = value
            listing.price = parser.parse_price(value)
        elif key in ("build_area", "land_area"):
            setattr(listing, key, parser.parse_area(value))
        elif key == "built_date":
            listing.built_date = parser.parse_date(value) or value
        else:
            setattr(listing, key, value)

    listing.tags = [
        tag for tag in (parser.clean_text(li.get_text()) for li in item.select(selectors["tags"])) if tag
    ]
    listing.recommendation = _text(item, selectors["recommendation"])
    return listing


async def extract_search_results(page: PageReader, adapter: PortalAdapter) -> SearchPage:
    """
    Extract listing summaries and the next page link.

    Items without a detail link are skipped; a page with no items yields an
    empty SearchPage rather than an error.

    Args:
        page: Loaded search results page
        adapter: Portal adapter providing selectors and URL handling

    Returns:
        SearchPage with listings in page order
    """
    selectors = adapter.search_selectors
    items = await page.select(selectors["item"])
    result = SearchPage()
    seen = set()

    for item in items:
        listing = _parse_item(item, adapter)
        if listing is None:
            logger.debug(f"Skipping search item without detail link on {page.url}")
            continue
        if listing.listing_id in seen:
            continue
        seen.add(listing.listing_id)
        result.listings.append(listing)

    next_href = await page.query_attribute(selectors["next_page"], "href")
    if next_href:
        result.next_url = adapter.normalize_url(next_href)

    if not result.listings:
        logger.warning(f"No listings found on search page {page.url}")
    else:
        logger.info(f"Found {len(result.listings)} listings on {page.url}")
    return result
