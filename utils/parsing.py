"""Japanese real estate number, area and date parsing."""

import logging
import re
from datetime import date
from typing import List, Optional, Pattern

logger = logging.getLogger(__name__)

MAN = 10_000
OKU = 100_000_000


class JapaneseListingParser:
    """Parser for the locale-specific values found on Japanese listing pages."""

    # Price patterns, tried in order. 億 must be checked before 万.
    MILLION_PATTERN: Pattern = re.compile(r"(\d+(?:\.\d+)?)Million", re.IGNORECASE)
    OKU_PATTERN: Pattern = re.compile(r"(\d+(?:\.\d+)?)億(?:(\d+(?:\.\d+)?)万)?円?")
    MAN_PATTERN: Pattern = re.compile(r"(\d+(?:\.\d+)?)万円?")
    NUMBER_PATTERN: Pattern = re.compile(r"(\d+(?:\.\d+)?)")

    # Area patterns
    AREA_PATTERNS: List[Pattern] = [
        re.compile(r"(\d+(?:\.\d+)?)\s*(?:m²|㎡|m2|平米)", re.IGNORECASE),
        re.compile(r"(\d+(?:\.\d+)?)\s*(?:sqm|square\s*meters?)", re.IGNORECASE),
    ]
    LAND_AREA_PATTERNS: List[Pattern] = [
        re.compile(r"土地面積[:：]?\s*(\d+(?:\.\d+)?)\s*(?:m²|㎡|m2)"),
        re.compile(r"敷地面積[:：]?\s*(\d+(?:\.\d+)?)\s*(?:m²|㎡|m2)"),
    ]
    BUILD_AREA_PATTERNS: List[Pattern] = [
        re.compile(r"建物面積[:：]?\s*(\d+(?:\.\d+)?)\s*(?:m²|㎡|m2)"),
        re.compile(r"延床面積[:：]?\s*(\d+(?:\.\d+)?)\s*(?:m²|㎡|m2)"),
    ]

    # Date patterns: (pattern, has_day)
    DATE_PATTERNS: List[Pattern] = [
        re.compile(r"(\d{4})\.(\d{1,2})\.(\d{1,2})"),
        re.compile(r"(\d{4})年\s*(\d{1,2})月\s*(\d{1,2})日"),
        re.compile(r"(\d{4})/(\d{1,2})/(\d{1,2})"),
        re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})"),
        re.compile(r"(\d{4})年\s*(\d{1,2})月"),
    ]

    WHITESPACE_PATTERN: Pattern = re.compile(r"\s+")

    def extract_field(
        self, text: str, patterns: List[Pattern], group: int = 1
    ) -> Optional[str]:
        """
        Extract first matching value from text using patterns.

        Args:
            text: Text to search
            patterns: List of regex patterns to try
            group: Regex group number to extract (default: 1)

        Returns:
            Matched string value, or None if no pattern matched
        """
        if not text:
            return None
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                return match.group(group)
        return None

    def parse_number(self, value: str) -> Optional[float]:
        """Parse a plain number with optional thousands commas.

        Examples:
            "1,234" → 1234.0
            "12.5" → 12.5
        """
        if not value:
            return None
        cleaned = value.strip().replace(",", "").replace(" ", "")
        try:
            return float(cleaned)
        except ValueError:
            return None

    def parse_price(self, value) -> float:
        """
        Parse a listing price into currency units.

        Args:
            value: Raw price text (or an already numeric value)

        Returns:
            Price as float, 0.0 when nothing numeric is found

        Examples:
            "693万円" → 6930000.0
            "1億2000万円" → 120000000.0
            "18.8 Million" → 18800000.0
        """
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if not value:
            return 0.0

        normalized = re.sub(r"[,\s]+", "", str(value))

        match = self.MILLION_PATTERN.search(normalized)
        if match:
            return round(float(match.group(1)) * 1_000_000, 2)

        match = self.OKU_PATTERN.search(normalized)
        if match:
            oku = float(match.group(1))
            man = float(match.group(2) or 0)
            return round(oku * OKU + man * MAN, 2)

        match = self.MAN_PATTERN.search(normalized)
        if match:
            return round(float(match.group(1)) * MAN, 2)

        match = self.NUMBER_PATTERN.search(normalized)
        if match:
            return float(match.group(1))

        logger.debug(f"Could not parse price from '{value}'")
        return 0.0

    def parse_area(self, value: str, patterns: Optional[List[Pattern]] = None) -> float:
        """
        Parse an area in square meters.

        Args:
            value: Raw text such as "123.45m²" or "土地面積: 98.2㎡"
            patterns: Patterns to try first (labeled forms)

        Returns:
            Area as float, 0.0 when malformed
        """
        if not value:
            return 0.0
        text = str(value).replace(",", "")
        found = self.extract_field(text, (patterns or []) + self.AREA_PATTERNS)
        if found is None:
            found = self.extract_field(text.strip(), [re.compile(r"^(\d+(?:\.\d+)?)$")])
        if found is None:
            logger.debug(f"Could not parse area from '{value}'")
            return 0.0
        parsed = self.parse_number(found)
        return parsed if parsed is not None else 0.0

    def parse_date(self, value: str) -> Optional[str]:
        """
        Parse the first recognizable date into an ISO string.

        Month-only dates ("2019年3月") resolve to the first of the month.

        Returns:
            ISO date string (YYYY-MM-DD) or None
        """
        if not value:
            return None
        for pattern in self.DATE_PATTERNS:
            match = pattern.search(value)
            if not match:
                continue
            groups = match.groups()
            year, month = int(groups[0]), int(groups[1])
            day = int(groups[2]) if len(groups) > 2 else 1
            try:
                return date(year, month, day).isoformat()
            except ValueError:
                logger.debug(f"Rejected invalid date {groups} from '{value}'")
                continue
        return None

    def clean_text(self, value: Optional[str]) -> str:
        """Collapse runs of whitespace and strip."""
        if not value:
            return ""
        return self.WHITESPACE_PATTERN.sub(" ", value).strip()
