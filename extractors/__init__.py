"""Field, coordinate and search result extractors."""

from .base import FieldResult, run_extractors
from .coordinates import CoordinateResolver, Coordinates, NetworkResponseStrategy
from .details import extract_dates, extract_facilities, extract_schools
from .fields import (
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
from .search import SearchListing, SearchPage, extract_search_results

# ListingRecord field -> (extractor, empty value)
DETAIL_EXTRACTORS = {
    "address": (extract_address, ""),
    "price": (extract_price, 0.0),
    "floor_plan": (extract_floor_plan, ""),
    "land_area": (extract_land_area, 0.0),
    "build_area": (extract_build_area, 0.0),
    "tags": (extract_tags, []),
    "listing_url": (extract_listing_url, ""),
    "is_sold": (extract_is_sold, False),
    "listing_images": (extract_images, []),
    "recommended_text": (extract_recommended_text, None),
    "about_property": (extract_about_property, None),
    "dates": (extract_dates, {}),
    "facilities": (extract_facilities, {}),
    "schools": (extract_schools, {}),
}

__all__ = [
    "CoordinateResolver",
    "Coordinates",
    "DETAIL_EXTRACTORS",
    "FieldResult",
    "NetworkResponseStrategy",
    "SearchListing",
    "SearchPage",
    "extract_search_results",
    "run_extractors",
]
