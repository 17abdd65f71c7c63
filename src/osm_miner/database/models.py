"""
Data models and schema definitions for the places collection
Uses dataclasses for Python-side representation, MongoDB for storage
"""
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from pymongo import ASCENDING, GEOSPHERE, TEXT


OSM_ID_PATTERN = re.compile(r"^(node|way|relation)/\d+$")


@dataclass
class Address:
    """Structured address built from addr:* tags"""
    street: Optional[str] = None
    city: Optional[str] = None
    postcode: Optional[str] = None
    country: str = ""


@dataclass
class Contact:
    """Contact details from phone/email/website (or contact:*) tags"""
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None


@dataclass
class Place:
    """
    Canonical point of interest

    One document per osm_id. `location` is always a GeoJSON Point (the
    centroid for areas and lines); `geometry` keeps the full shape.
    """
    osm_id: str  # "<type>/<id>", e.g. "node/12345"
    osm_type: str
    name: str
    category: str  # tourism, amenity, historic, natural, leisure, other
    subcategory: str  # Tag value, e.g. "museum"
    location: Optional[Dict[str, Any]] = None
    geometry: Optional[Dict[str, Any]] = None
    name_si: Optional[str] = None
    name_ta: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    address: Address = field(default_factory=Address)
    contact: Contact = field(default_factory=Contact)
    opening_hours: Optional[str] = None
    wheelchair: Optional[str] = None
    description: Optional[str] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "OpenStreetMap"
    created_at: Optional[datetime] = None  # Set by the store on first insert

    def to_document(self) -> Dict[str, Any]:
        """Fields written on every sync (created_at is insert-only)"""
        doc = asdict(self)
        doc.pop("created_at")
        return doc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StorageResult:
    """Summary of one store_features batch"""
    inserted: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class CategoryCount:
    id: str
    count: int


@dataclass
class Statistics:
    """Aggregate counts over the places collection"""
    total: int = 0
    by_category: List[CategoryCount] = field(default_factory=list)
    top_subcategories: List[CategoryCount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =========================
# Collection Schema
# =========================
# Server-side validator applied when the collection is created
PLACE_VALIDATOR = {
    "$jsonSchema": {
        "bsonType": "object",
        "required": ["osm_id", "name", "category"],
        "properties": {
            "osm_id": {
                "bsonType": "string",
                "description": "OSM ID is required",
            },
            "name": {
                "bsonType": "string",
                "description": "Name is required",
            },
            "category": {
                "bsonType": "string",
                "description": "Category is required",
            },
        },
    }
}

# (keys, options) pairs created on connect
PLACE_INDEXES = [
    ([("location", GEOSPHERE)], {}),
    ([("name", TEXT), ("tags.name", TEXT), ("tags.description", TEXT)], {}),
    ([("category", ASCENDING)], {}),
    ([("subcategory", ASCENDING)], {}),
    ([("osm_id", ASCENDING)], {"unique": True}),
    ([("fetched_at", ASCENDING)], {}),
]


def validate_document(doc: Dict[str, Any]) -> List[str]:
    """
    Check a document against the collection schema

    Returns:
        List of problems (empty when valid)
    """
    problems = []
    for key in PLACE_VALIDATOR["$jsonSchema"]["required"]:
        if not isinstance(doc.get(key), str):
            problems.append(f"'{key}' must be a string")

    osm_id = doc.get("osm_id")
    if isinstance(osm_id, str) and not OSM_ID_PATTERN.match(osm_id):
        problems.append(f"'osm_id' is malformed: {osm_id!r}")

    location = doc.get("location")
    if location is not None and location.get("type") != "Point":
        problems.append("'location' must be a GeoJSON Point")

    return problems
