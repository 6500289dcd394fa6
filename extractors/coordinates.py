"""Geocoordinate resolution with an ordered chain of strategies.

Coordinates are published inconsistently across listing pages: in map API
responses, map links, inline scripts, meta tags, iframe embeds or only in the
client-side map object. Each location is handled by one CoordinateStrategy and
the resolver tries them in priority order until one yields a valid pair.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Pattern, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from utils.page_reader import NetworkResponse, PageReader

logger = logging.getLogger(__name__)

NUMBER = r"(-?\d{1,3}(?:\.\d+)?)"
PAIR_PATTERN: Pattern = re.compile(rf"^\s*{NUMBER}\s*,\s*{NUMBER}")


@dataclass
class Coordinates:
    """A validated latitude/longitude pair and the strategy that found it."""

    lat: float
    long: float
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "long": self.long, "source": self.source}


def is_valid_pair(lat: float, lng: float) -> bool:
    """Range check; (0, 0) is treated as a placeholder, not a location."""
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return False
    return not (lat == 0.0 and lng == 0.0)


def make_coordinates(lat: Any, lng: Any, source: str) -> Optional[Coordinates]:
    """Parse and validate a pair, returning None when unusable."""
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return None
    if not is_valid_pair(lat_f, lng_f):
        logger.debug(f"Rejected out-of-range pair ({lat}, {lng}) from {source}")
        return None
    return Coordinates(lat=lat_f, long=lng_f, source=source)


def parse_pair(text: Optional[str], source: str) -> Optional[Coordinates]:
    """Parse a "lat,lng" string."""
    if not text:
        return None
    match = PAIR_PATTERN.match(unquote(text))
    if not match:
        return None
    return make_coordinates(match.group(1), match.group(2), source)


def coordinates_from_url(
    url: str, params: Iterable[str], source: str
) -> Optional[Coordinates]:
    """
    Read a "lat,lng" pair from the first query parameter that holds one.

    Also understands Google embed URLs that carry "!3d<lat>!2d<lng>" or an
    "@lat,lng" path segment.
    """
    if not url:
        return None
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    for name in params:
        for value in query.get(name, []):
            found = parse_pair(value, source)
            if found:
                return found

    embed = re.search(rf"!3d{NUMBER}!2d{NUMBER}", url)
    if embed:
        return make_coordinates(embed.group(1), embed.group(2), source)
    embed = re.search(rf"!2d{NUMBER}!3d{NUMBER}", url)
    if embed:
        return make_coordinates(embed.group(2), embed.group(1), source)

    at_path = re.search(rf"/@{NUMBER},{NUMBER}", parsed.path)
    if at_path:
        return make_coordinates(at_path.group(1), at_path.group(2), source)
    return None


class CoordinateStrategy(ABC):
    """One way of recovering coordinates from a loaded page."""

    name: str = "strategy"

    @abstractmethod
    async def find(self, page: PageReader) -> Optional[Coordinates]:
        """
        Look for coordinates on the page.

        Returns:
            Coordinates, or None when this strategy found nothing
        """
        pass


class NetworkResponseStrategy(CoordinateStrategy):
    """Scan map/geocode API responses captured while the page loaded."""

    name = "network"

    URL_KEYWORDS = ("maps.google", "maps.googleapis", "api/maps", "geocode", "coordinates", "map")

    # (lat pattern, lng pattern) searched as one regex each
    BODY_PATTERNS: List[Pattern] = [
        re.compile(rf'"lat"\s*:\s*"?{NUMBER}"?\s*,.*?"(?:lng|lon|long)"\s*:\s*"?{NUMBER}', re.DOTALL),
        re.compile(rf'"latitude"\s*:\s*"?{NUMBER}"?\s*,.*?"longitude"\s*:\s*"?{NUMBER}', re.DOTALL),
        re.compile(rf'"y"\s*:\s*"?{NUMBER}"?\s*,.*?"x"\s*:\s*"?{NUMBER}', re.DOTALL),
        re.compile(rf"[?&]ll={NUMBER},{NUMBER}"),
        re.compile(rf"\[\s*{NUMBER}\s*,\s*{NUMBER}\s*\]"),
    ]

    KEY_PAIRS = (("lat", "lng"), ("lat", "lon"), ("lat", "long"), ("latitude", "longitude"), ("y", "x"))

    @classmethod
    def matches_url(cls, url: str) -> bool:
        """Predicate used to decide which responses to capture."""
        lowered = (url or "").lower()
        return any(keyword in lowered for keyword in cls.URL_KEYWORDS)

    def _walk(self, node: Any, depth: int = 0) -> Optional[Coordinates]:
        if depth > 12:
            return None
        if isinstance(node, dict):
            for lat_key, lng_key in self.KEY_PAIRS:
                if lat_key in node and lng_key in node:
                    found = make_coordinates(node[lat_key], node[lng_key], self.name)
                    if found:
                        return found
            children: Iterable[Any] = node.values()
        elif isinstance(node, list):
            children = node
        else:
            return None
        for child in children:
            found = self._walk(child, depth + 1)
            if found:
                return found
        return None

    def scan_body(self, response: NetworkResponse) -> Optional[Coordinates]:
        body = response.body or ""
        if not body:
            return None

        try:
            found = self._walk(json.loads(body))
            if found:
                return found
        except ValueError:
            pass

        for pattern in self.BODY_PATTERNS:
            for match in pattern.finditer(body):
                found = make_coordinates(match.group(1), match.group(2), self.name)
                if found:
                    return found
        return None

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        for response in page.network_responses(self.matches_url):
            found = self.scan_body(response)
            if found:
                logger.debug(f"Coordinates found in response {response.url}")
                return found
        return None


class MapLinkStrategy(CoordinateStrategy):
    """Anchors linking to a map service with a coordinate query parameter."""

    name = "map_link"

    SELECTOR = 'a[href*="maps.google"], a[href*="google.com/maps"], a[href*="goo.gl/maps"]'
    PARAMS = ("ll", "q", "query", "daddr")

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        hrefs = await page.query_all_attributes(self.SELECTOR, "href")
        # Every link is checked for ll= before any q= is accepted
        for param in self.PARAMS:
            for href in hrefs:
                found = coordinates_from_url(href, [param], self.name)
                if found:
                    return found
        return None


class ScriptVariableStrategy(CoordinateStrategy):
    """Coordinate variables and map URLs embedded in inline scripts."""

    name = "script"

    # Separate lat/lng declarations, most specific naming first
    VARIABLE_PATTERNS: List[Tuple[Pattern, Pattern]] = [
        (
            re.compile(rf"bukken_lat\s*=\s*['\"]?{NUMBER}"),
            re.compile(rf"bukken_lng\s*=\s*['\"]?{NUMBER}"),
        ),
        (
            re.compile(rf"\bmlat\s*=\s*['\"]?{NUMBER}"),
            re.compile(rf"\bmlng\s*=\s*['\"]?{NUMBER}"),
        ),
        (
            re.compile(rf"\bvar\s+lat\s*=\s*['\"]?{NUMBER}"),
            re.compile(rf"\bvar\s+(?:lng|lon|long)\s*=\s*['\"]?{NUMBER}"),
        ),
        (
            re.compile(rf"\bvar\s+latitude\s*=\s*['\"]?{NUMBER}"),
            re.compile(rf"\bvar\s+longitude\s*=\s*['\"]?{NUMBER}"),
        ),
        (
            re.compile(rf"[\"']?\blat(?:itude)?[\"']?\s*:\s*['\"]?{NUMBER}"),
            re.compile(rf"[\"']?\b(?:lng|long|longitude)[\"']?\s*:\s*['\"]?{NUMBER}"),
        ),
    ]

    # Patterns capturing (lat, lng) together
    PAIR_PATTERNS: List[Pattern] = [
        re.compile(rf"\bvar\s+ju\s*=\s*[\"']{NUMBER}\s*,\s*{NUMBER}[\"']"),
        re.compile(rf"google\.maps\.LatLng\(\s*{NUMBER}\s*,\s*{NUMBER}\s*\)"),
        re.compile(rf"maps\.google\.[a-z.]+/maps\?[^\"']*?ll={NUMBER},{NUMBER}"),
        re.compile(rf"maps\.google\.[a-z.]+/maps\?[^\"']*?q={NUMBER},{NUMBER}"),
        re.compile(rf"\b\w+\s*=\s*[\"']{NUMBER},\s*{NUMBER}[\"']"),
    ]

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        scripts = await page.select("script")

        for script in scripts:
            content = script.string or script.get_text() or ""
            if not content.strip():
                continue

            for lat_pattern, lng_pattern in self.VARIABLE_PATTERNS:
                lat_match = lat_pattern.search(content)
                lng_match = lng_pattern.search(content)
                if lat_match and lng_match:
                    found = make_coordinates(lat_match.group(1), lng_match.group(1), self.name)
                    if found:
                        return found

            for pattern in self.PAIR_PATTERNS:
                for match in pattern.finditer(content):
                    found = make_coordinates(match.group(1), match.group(2), self.name)
                    if found:
                        return found

        # Static Maps / Maps API script URLs carrying 1d/2d parameters
        for src in await page.query_all_attributes('script[src*="maps.googleapis.com"]', "src"):
            lat_match = re.search(rf"[?&!]1d{NUMBER}", src)
            lng_match = re.search(rf"[?&!]2d{NUMBER}", src)
            if lat_match and lng_match:
                found = make_coordinates(lat_match.group(1), lng_match.group(1), self.name)
                if found:
                    return found
        return None


class MetaAttributeStrategy(CoordinateStrategy):
    """Meta tags, schema.org microdata and data-* attributes."""

    name = "meta"

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        position = await page.query_attribute('meta[name="geo.position"]', "content")
        if position:
            found = parse_pair(position.replace(";", ","), self.name)
            if found:
                return found

        icbm = await page.query_attribute('meta[name="ICBM"]', "content")
        found = parse_pair(icbm, self.name)
        if found:
            return found

        og_lat = await page.query_attribute('meta[property$="latitude"]', "content")
        og_lng = await page.query_attribute('meta[property$="longitude"]', "content")
        if og_lat and og_lng:
            found = make_coordinates(og_lat, og_lng, self.name)
            if found:
                return found

        for geo in await page.select('[itemprop="geo"]'):
            lat_el = geo.select_one('[itemprop="latitude"]')
            lng_el = geo.select_one('[itemprop="longitude"]')
            if lat_el is not None and lng_el is not None:
                lat = lat_el.get("content") or lat_el.get_text(strip=True)
                lng = lng_el.get("content") or lng_el.get_text(strip=True)
                found = make_coordinates(lat, lng, self.name)
                if found:
                    return found

        for lat_attr, lng_attr in (("data-lat", "data-lng"), ("data-latitude", "data-longitude")):
            for element in await page.select(f"[{lat_attr}][{lng_attr}]"):
                found = make_coordinates(element.get(lat_attr), element.get(lng_attr), self.name)
                if found:
                    return found

        for attr in ("data-coordinates", "data-latlng"):
            for value in await page.query_all_attributes(f"[{attr}]", attr):
                found = parse_pair(value, self.name)
                if found:
                    return found
        return None


class IframeStrategy(CoordinateStrategy):
    """Map embeds whose iframe src carries the coordinates."""

    name = "iframe"

    SELECTOR = (
        'iframe.detail-googlemap, iframe[src*="maps.google"], '
        'iframe[src*="google.com/maps"], iframe[data-src*="google.com/maps"]'
    )
    PARAMS = ("q", "ll", "center")

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        for frame in await page.select(self.SELECTOR):
            src = frame.get("src") or frame.get("data-src") or ""
            found = coordinates_from_url(src, self.PARAMS, self.name)
            if found:
                return found
        return None


MAP_CENTER_SCRIPT = """() => {
  const g = window.google && window.google.maps;
  if (!g) { return null; }
  const candidates = [window.map, window.gmap, window.googleMap, window.mapObj];
  for (const key of Object.keys(window)) {
    try {
      if (g.Map && window[key] instanceof g.Map) { candidates.push(window[key]); }
    } catch (e) {}
  }
  for (const m of candidates) {
    if (m && typeof m.getCenter === 'function') {
      const c = m.getCenter();
      if (c) { return {lat: c.lat(), lng: c.lng()}; }
    }
  }
  return null;
}"""


class MapApiStrategy(CoordinateStrategy):
    """Ask the client-side map object for its current center."""

    name = "map_api"

    async def find(self, page: PageReader) -> Optional[Coordinates]:
        center = await page.evaluate(MAP_CENTER_SCRIPT)
        if not isinstance(center, dict):
            return None
        return make_coordinates(center.get("lat"), center.get("lng"), self.name)


def default_strategies() -> List[CoordinateStrategy]:
    """Strategies in priority order."""
    return [
        NetworkResponseStrategy(),
        MapLinkStrategy(),
        ScriptVariableStrategy(),
        MetaAttributeStrategy(),
        IframeStrategy(),
        MapApiStrategy(),
    ]


class CoordinateResolver:
    """
    Run coordinate strategies in order and stop at the first hit.

    Each strategy is attempted up to `max_retries` times with `retry_delay`
    seconds between attempts, since map data may only appear after client
    scripts run. Failing to find coordinates is not an error: the caller
    receives None and the fields stay empty.

    Args:
        strategies: Ordered strategies (defaults to default_strategies())
        max_retries: Attempts per strategy
        retry_delay: Seconds to wait between attempts
        sleep: Awaitable sleep function (injectable for tests)
    """

    def __init__(
        self,
        strategies: Optional[List[CoordinateStrategy]] = None,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.strategies = strategies if strategies is not None else default_strategies()
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def _attempt(self, strategy: CoordinateStrategy, page: PageReader) -> Optional[Coordinates]:
        for attempt in range(1, self.max_retries + 1):
            try:
                found = await strategy.find(page)
            except Exception as e:
                logger.debug(
                    f"Strategy {strategy.name} failed on {page.url} "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                found = None
            if found:
                return found
            if attempt < self.max_retries:
                await self._sleep(self.retry_delay)
                page.refresh()
        return None

    async def resolve(self, page: PageReader) -> Optional[Coordinates]:
        """
        Resolve coordinates for a loaded page.

        Returns:
            Coordinates with the winning strategy name as source, or None
        """
        attempted: List[str] = []
        for strategy in self.strategies:
            attempted.append(strategy.name)
            found = await self._attempt(strategy, page)
            if found:
                logger.info(
                    f"Coordinates ({found.lat}, {found.long}) from {found.source} for {page.url}"
                )
                return found

        logger.warning(
            f"No coordinates found for {page.url}; strategies tried: {', '.join(attempted)}"
        )
        return None
