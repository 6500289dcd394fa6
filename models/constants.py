"""Shared constants for listing records, jobs and merge rules."""

from typing import Dict


class ListingStatus:
    ACTIVE = "active"
    REMOVED = "removed"


class DetailMode:
    """What a detail job does once the page has loaded."""

    FULL = "full"
    COORDINATES = "coordinates"
    EXISTS = "exists"
    ALL = (FULL, COORDINATES, EXISTS)


# Job priorities (lower runs first)
PRIORITY_MANUAL = 1
PRIORITY_RETRY = 2
PRIORITY_DETAIL = 10

# Merge policy names
NEVER_OVERWRITE = "never_overwrite"
ALWAYS_OVERWRITE = "always_overwrite"
OVERWRITE_IF_CHANGED = "overwrite_if_changed"
OVERWRITE_IF_EMPTY = "overwrite_if_empty"

MERGE_POLICIES = (
    NEVER_OVERWRITE,
    ALWAYS_OVERWRITE,
    OVERWRITE_IF_CHANGED,
    OVERWRITE_IF_EMPTY,
)

# Field -> rule. Fields not listed fall back to never_overwrite.
DEFAULT_MERGE_RULES: Dict[str, Dict] = {
    # Write-once identity
    "address": {"policy": NEVER_OVERWRITE},
    "listing_url": {"policy": NEVER_OVERWRITE},
    # Tracked state
    "is_sold": {"policy": OVERWRITE_IF_CHANGED},
    "status": {"policy": OVERWRITE_IF_CHANGED},
    "price": {
        "policy": OVERWRITE_IF_CHANGED,
        "comparator": "numeric_tolerance",
        "tolerance": 0.01,
    },
    "floor_plan": {"policy": OVERWRITE_IF_CHANGED},
    "tags": {"policy": OVERWRITE_IF_CHANGED, "comparator": "unordered"},
    # Filled once, then kept
    "english_address": {"policy": OVERWRITE_IF_EMPTY},
    "build_area": {"policy": OVERWRITE_IF_EMPTY},
    "land_area": {"policy": OVERWRITE_IF_EMPTY},
    "lat": {"policy": OVERWRITE_IF_EMPTY},
    "long": {"policy": OVERWRITE_IF_EMPTY},
    "coordinate_source": {"policy": OVERWRITE_IF_EMPTY},
    "listing_images": {"policy": OVERWRITE_IF_EMPTY},
    "about_property": {"policy": OVERWRITE_IF_EMPTY},
    "recommended_text": {"policy": OVERWRITE_IF_EMPTY},
    "facilities": {"policy": OVERWRITE_IF_EMPTY},
    "schools": {"policy": OVERWRITE_IF_EMPTY},
    "dates": {"policy": OVERWRITE_IF_EMPTY},
    # Bookkeeping
    "last_updated": {"policy": ALWAYS_OVERWRITE},
}

# Fields the merge engine never copies from scraped data
PROTECTED_FIELDS = ("id", "created_at", "content_hash")
