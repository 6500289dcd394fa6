"""Listing record data model."""

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from .constants import ListingStatus


@dataclass
class ListingRecord:
    """Canonical property record synced from the listing site."""

    # Core identifiers
    id: str
    listing_url: str = ""

    # Address information
    address: str = ""
    english_address: Optional[str] = None

    # Price and layout
    price: float = 0.0
    floor_plan: str = ""
    build_area: float = 0.0
    land_area: float = 0.0

    # Descriptive
    tags: List[str] = field(default_factory=list)
    is_sold: bool = False
    about_property: Optional[str] = None
    recommended_text: Optional[str] = None
    listing_images: List[str] = field(default_factory=list)

    # Location
    lat: Optional[float] = None
    long: Optional[float] = None
    coordinate_source: Optional[str] = None

    # Sub-records
    facilities: Dict[str, Optional[str]] = field(default_factory=dict)
    schools: Dict[str, Optional[str]] = field(default_factory=dict)
    dates: Dict[str, Optional[str]] = field(default_factory=dict)

    # Lifecycle
    status: str = ListingStatus.ACTIVE
    removed_at: Optional[str] = None
    created_at: Optional[str] = None
    last_updated: Optional[str] = None
    content_hash: Optional[str] = None

    @property
    def coordinates(self) -> Optional[Dict[str, float]]:
        if self.lat is None or self.long is None:
            return None
        return {"lat": self.lat, "long": self.long}

    @property
    def is_removed(self) -> bool:
        return self.status == ListingStatus.REMOVED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage and backups."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            result[f.name] = value
        return result

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingRecord":
        """Create instance from dictionary, ignoring unknown keys."""
        valid_fields = set(cls.field_names())
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}
        for key in ("tags", "listing_images"):
            if filtered_data.get(key) is None:
                filtered_data.pop(key, None)
        for key in ("facilities", "schools", "dates"):
            if filtered_data.get(key) is None:
                filtered_data.pop(key, None)
        return cls(**filtered_data)
