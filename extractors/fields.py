"""Detail page field extractors.

Each extractor reads one attribute from a loaded page and returns a
FieldResult. Missing content yields the empty/zero value plus a ParserError;
nothing here raises for absent markup.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urljoin

from extractors.base import FieldResult, missing
from portals.shiawasehome.constants import (
    BASE_URL,
    DESCRIPTION_FALLBACK_SELECTORS,
    DETAIL_SELECTORS,
    IMAGE_FALLBACK_SELECTORS,
)
from utils.page_reader import PageReader
from utils.parsing import JapaneseListingParser

logger = logging.getLogger(__name__)

parser = JapaneseListingParser()

FLOOR_PLAN_PATTERN = re.compile(r"(\d+\s*[SLDKR]+(?:\s*\+\s*S)?|ワンルーム)", re.IGNORECASE)
LABEL_PREFIX_PATTERN = re.compile(r"^(?:所在地|住所|価格|間取り)\s*[:：]?\s*")
IMAGE_ATTRIBUTES = ("src", "data-src", "data-lazy", "data-original")


def _selector(selectors: Optional[Dict[str, str]], key: str) -> str:
    return (selectors or DETAIL_SELECTORS).get(key) or DETAIL_SELECTORS[key]


async def extract_address(page: PageReader, selectors=None, **kwargs) -> FieldResult[str]:
    """Raw (Japanese) address text."""
    selector = _selector(selectors, "address")
    text = parser.clean_text(await page.query_text(selector))
    text = LABEL_PREFIX_PATTERN.sub("", text)
    if not text:
        return missing("address", selector, "", page.url)
    return FieldResult(text)


async def extract_price(page: PageReader, selectors=None, **kwargs) -> FieldResult[float]:
    """
    Listing price in yen.

    Example:
        "693万円" -> 6930000.0
    """
    selector = _selector(selectors, "price")
    text = await page.query_text(selector)
    if not text:
        return missing("price", selector, 0.0, page.url)
    price = parser.parse_price(text)
    if price == 0.0:
        logger.warning(f"price: could not parse '{text}' on {page.url}")
    return FieldResult(price)


async def extract_floor_plan(page: PageReader, selectors=None, **kwargs) -> FieldResult[str]:
    selector = _selector(selectors, "floor_plan")
    text = parser.clean_text(await page.query_text(selector))
    if not text:
        return missing("floor_plan", selector, "", page.url)
    match = FLOOR_PLAN_PATTERN.search(text)
    if match:
        return FieldResult(re.sub(r"\s+", "", match.group(1)).upper())
    return FieldResult(LABEL_PREFIX_PATTERN.sub("", text))


async def extract_land_area(page: PageReader, selectors=None, **kwargs) -> FieldResult[float]:
    """Land area in m² (土地面積)."""
    selector = _selector(selectors, "land_area")
    text = await page.query_text(selector)
    if not text:
        return missing("land_area", selector, 0.0, page.url)
    return FieldResult(parser.parse_area(text, parser.LAND_AREA_PATTERNS))


async def extract_build_area(page: PageReader, selectors=None, **kwargs) -> FieldResult[float]:
    """Building area in m² (建物面積)."""
    selector = _selector(selectors, "build_area")
    text = await page.query_text(selector)
    if not text:
        return missing("build_area", selector, 0.0, page.url)
    return FieldResult(parser.parse_area(text, parser.BUILD_AREA_PATTERNS))


async def extract_tags(page: PageReader, selectors=None, **kwargs) -> FieldResult[List[str]]:
    """Feature tags, one per line of the pickup box."""
    selector = _selector(selectors, "tags")
    elements = await page.select(selector)
    tags: List[str] = []
    for element in elements:
        for line in element.get_text("\n").split("\n"):
            tag = line.strip()
            if tag and tag not in tags:
                tags.append(tag)
    if not tags:
        return missing("tags", selector, [], page.url)
    return FieldResult(tags)


async def extract_listing_url(
    page: PageReader, selectors=None, base_url: str = BASE_URL, **kwargs
) -> FieldResult[str]:
    """Canonical detail URL; falls back to the URL the page was loaded from."""
    selector = _selector(selectors, "listing_url")
    href = await page.query_attribute(selector, "href")
    if href:
        return FieldResult(urljoin(base_url, href.strip()))
    if page.url:
        return FieldResult(page.url)
    return missing("listing_url", selector, "", page.url)


async def extract_is_sold(page: PageReader, selectors=None, **kwargs) -> FieldResult[bool]:
    """True when the sold banner is present. Absence is not an error."""
    return FieldResult(await page.exists(_selector(selectors, "sold")))


async def extract_images(
    page: PageReader, selectors=None, base_url: str = BASE_URL, **kwargs
) -> FieldResult[List[str]]:
    """Gallery image URLs, falling back to secondary galleries."""
    primary = _selector(selectors, "images")
    images: List[str] = []

    for selector in [primary] + IMAGE_FALLBACK_SELECTORS:
        for element in await page.select(selector):
            src = next((element.get(a) for a in IMAGE_ATTRIBUTES if element.get(a)), None)
            if not src or src.startswith("data:"):
                continue
            url = urljoin(base_url, src.strip())
            if url not in images:
                images.append(url)
        if images:
            if selector != primary:
                logger.debug(f"images: used fallback selector '{selector}' on {page.url}")
            break

    if not images:
        return missing("listing_images", primary, [], page.url)
    return FieldResult(images)


async def extract_recommended_text(
    page: PageReader, selectors=None, **kwargs
) -> FieldResult[Optional[str]]:
    selector = _selector(selectors, "recommended_text")
    text = parser.clean_text(await page.query_text(selector))
    if not text:
        return missing("recommended_text", selector, None, page.url)
    return FieldResult(text)


async def extract_about_property(
    page: PageReader, selectors=None, **kwargs
) -> FieldResult[Optional[str]]:
    """
    Free-text property description.

    Tries the outline section, then the meta description, generic content
    containers and finally the outline table rendered as "label: value" lines.
    """
    selector = _selector(selectors, "about_property")
    text = parser.clean_text(await page.query_text(selector))
    if text:
        return FieldResult(text)

    for fallback in DESCRIPTION_FALLBACK_SELECTORS:
        if fallback.startswith("meta"):
            text = parser.clean_text(await page.query_attribute(fallback, "content"))
        elif "table" in fallback:
            rows = []
            for row in await page.select(f"{fallback} tr"):
                header, cell = row.find("th"), row.find("td")
                if header and cell:
                    rows.append(
                        f"{parser.clean_text(header.get_text())}: "
                        f"{parser.clean_text(cell.get_text())}"
                    )
            text = "\n".join(rows)
        else:
            text = parser.clean_text(await page.query_text(fallback))
        if text:
            logger.debug(f"about_property: used fallback '{fallback}' on {page.url}")
            return FieldResult(text)

    return missing("about_property", selector, None, page.url)
