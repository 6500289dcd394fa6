"""Structured detail sections: listing dates, utilities and school districts."""

import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from extractors.base import FieldResult, missing
from utils.page_reader import PageReader
from utils.parsing import JapaneseListingParser

logger = logging.getLogger(__name__)

parser = JapaneseListingParser()

SPEC_ROW_SELECTOR = "table tr"


class DetailSectionPatterns:
    """Keyword and regex tables for the free-form detail sections."""

    POSTED_PATTERNS: List[Pattern] = [
        re.compile(r"(\d{4}\.\d{1,2}\.\d{1,2})\s*掲載"),
        re.compile(r"(?:掲載日|登録日|公開日)\s*[:：]?\s*(\d{4}[年./-]\s*\d{1,2}[月./-]\s*\d{1,2}日?)"),
        re.compile(r"(?:Posted|Listed)(?:\s+on)?\s*[:：]?\s*(\d{4}[./-]\d{1,2}[./-]\d{1,2})", re.IGNORECASE),
    ]
    RENOVATED_PATTERNS: List[Pattern] = [
        re.compile(r"(?:リフォーム|改装|リノベーション)[^0-9]{0,12}(\d{4}年\s*\d{1,2}月(?:\s*\d{1,2}日)?)"),
        re.compile(r"(\d{4}年\s*\d{1,2}月(?:\s*\d{1,2}日)?)\s*(?:に)?(?:リフォーム|改装)"),
        re.compile(r"Renovated(?:\s+on)?\s*[:：]?\s*(\d{4}[./-]\d{1,2}(?:[./-]\d{1,2})?)", re.IGNORECASE),
    ]
    BUILT_PATTERNS: List[Pattern] = [
        re.compile(r"(?:築年月|新築年月|建築年月|完成年月)\s*[:：]?\s*(\d{4}年\s*\d{1,2}月)"),
        re.compile(r"Built(?:\s+in)?\s*[:：]?\s*(\d{4}[./-]\d{1,2})", re.IGNORECASE),
    ]

    # Table header keywords -> date key
    DATE_HEADERS: Dict[str, Tuple[str, ...]] = {
        "posted": ("掲載日", "登録日", "公開日"),
        "renovated": ("リフォーム", "改装"),
        "built": ("築年月", "新築年月", "建築年月", "完成年月"),
    }

    # Utility key -> (keywords, inline pattern)
    FACILITY_KEYWORDS: Dict[str, Tuple[Tuple[str, ...], Pattern]] = {
        "gas": (
            ("ガス", "都市ガス", "プロパン", "LPG", "gas"),
            re.compile(r"(?:ガス|gas)\s*[:：]\s*([^、。\n]+)", re.IGNORECASE),
        ),
        "sewage": (
            ("下水", "汚水", "浄化槽", "sewage"),
            re.compile(r"(?:下水道|下水|汚水|sewage)\s*[:：]\s*([^、。\n]+)", re.IGNORECASE),
        ),
        "grey_water": (
            ("雑排水", "排水", "drainage"),
            re.compile(r"(?:雑排水|排水|drainage)\s*[:：]\s*([^、。\n]+)", re.IGNORECASE),
        ),
        "water": (
            ("上水", "水道", "water supply"),
            re.compile(r"(?:(?<!下)水道|上水|water supply)\s*[:：]\s*([^、。\n]+)", re.IGNORECASE),
        ),
    }
    # Bare mentions used when no "label: value" pair exists
    FACILITY_FALLBACKS: Dict[str, List[Tuple[str, str]]] = {
        "water": [("公営水道", "公営水道"), ("井戸", "井戸")],
        "gas": [("都市ガス", "都市ガス"), ("プロパン", "プロパンガス"), ("LPG", "LPGガス")],
        "sewage": [("公共下水", "公共下水"), ("浄化槽", "浄化槽")],
        "grey_water": [],
    }
    # Values mentioning these are zoning or school data, not utilities
    FACILITY_EXCLUDE_TERMS = (
        "都市計画", "用途地域", "学区", "小学校", "中学校",
        "urban planning", "coverage rate", "volume rate", "school district",
    )

    PRIMARY_SCHOOL_PATTERN: Pattern = re.compile(r"([^\s:：、。,()（）]+?小学校)")
    JUNIOR_HIGH_PATTERN: Pattern = re.compile(r"([^\s:：、。,()（）]+?中学校)")


async def _spec_rows(page: PageReader) -> List[Tuple[str, str]]:
    rows = []
    for row in await page.select(SPEC_ROW_SELECTOR):
        header, cell = row.find("th"), row.find("td")
        if header is not None and cell is not None:
            rows.append((parser.clean_text(header.get_text()), parser.clean_text(cell.get_text())))
    return rows


async def _page_text(page: PageReader) -> str:
    soup = await page.soup()
    body = soup.body or soup
    return body.get_text("\n")


def _first_date(text: str, patterns: List[Pattern]) -> Optional[str]:
    raw = parser.extract_field(text, patterns)
    return parser.parse_date(raw) if raw else None


async def extract_dates(page: PageReader, **kwargs) -> FieldResult[Dict[str, Optional[str]]]:
    """
    Posted, renovated and built dates as ISO strings.

    Spec table rows win over free text.
    """
    dates: Dict[str, Optional[str]] = {"posted": None, "renovated": None, "built": None}

    for header, value in await _spec_rows(page):
        for key, keywords in DetailSectionPatterns.DATE_HEADERS.items():
            if dates[key] is None and any(k in header for k in keywords):
                dates[key] = parser.parse_date(value)

    text = await _page_text(page)
    if dates["posted"] is None:
        dates["posted"] = _first_date(text, DetailSectionPatterns.POSTED_PATTERNS)
    if dates["renovated"] is None:
        dates["renovated"] = _first_date(text, DetailSectionPatterns.RENOVATED_PATTERNS)
    if dates["built"] is None:
        dates["built"] = _first_date(text, DetailSectionPatterns.BUILT_PATTERNS)

    if not any(dates.values()):
        return missing("dates", SPEC_ROW_SELECTOR, dates, page.url)
    return FieldResult(dates)


async def extract_facilities(page: PageReader, **kwargs) -> FieldResult[Dict[str, Optional[str]]]:
    """Water, gas, sewage and grey-water descriptions."""
    facilities: Dict[str, Optional[str]] = {key: None for key in DetailSectionPatterns.FACILITY_KEYWORDS}

    for header, value in await _spec_rows(page):
        for key, (keywords, _) in DetailSectionPatterns.FACILITY_KEYWORDS.items():
            if facilities[key] is None and value and any(k in header for k in keywords):
                facilities[key] = value
                break

    text = await _page_text(page)
    for key, (keywords, pattern) in DetailSectionPatterns.FACILITY_KEYWORDS.items():
        if facilities[key] is not None:
            continue
        match = pattern.search(text)
        if match:
            facilities[key] = match.group(1).replace("：", ":").strip()
            continue
        for marker, label in DetailSectionPatterns.FACILITY_FALLBACKS[key]:
            if marker in text:
                facilities[key] = label
                break

    for key, value in facilities.items():
        if value and any(term in value for term in DetailSectionPatterns.FACILITY_EXCLUDE_TERMS):
            logger.debug(f"facilities: dropped {key}='{value}' (not utility data)")
            facilities[key] = None

    if not any(facilities.values()):
        return missing("facilities", SPEC_ROW_SELECTOR, facilities, page.url)
    return FieldResult(facilities)


async def extract_schools(page: PageReader, **kwargs) -> FieldResult[Dict[str, Optional[str]]]:
    """Primary and junior high school district names."""
    schools: Dict[str, Optional[str]] = {"primary": None, "junior_high": None}

    for header, value in await _spec_rows(page):
        if "小学校" in header and schools["primary"] is None:
            schools["primary"] = parser.extract_field(value, [DetailSectionPatterns.PRIMARY_SCHOOL_PATTERN]) or value
        if "中学校" in header and schools["junior_high"] is None:
            schools["junior_high"] = parser.extract_field(value, [DetailSectionPatterns.JUNIOR_HIGH_PATTERN]) or value

    text = await _page_text(page)
    if schools["primary"] is None:
        schools["primary"] = parser.extract_field(text, [DetailSectionPatterns.PRIMARY_SCHOOL_PATTERN])
    if schools["junior_high"] is None:
        schools["junior_high"] = parser.extract_field(text, [DetailSectionPatterns.JUNIOR_HIGH_PATTERN])

    if not any(schools.values()):
        return missing("schools", "body", schools, page.url)
    return FieldResult(schools)
