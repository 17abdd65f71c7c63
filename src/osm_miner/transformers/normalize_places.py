# src/osm_miner/transformers/normalize_places.py
# feature -> Place: category, centroid, names, address/contact
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from .. import config
from ..database.models import Address, Contact, Place
from .osm_to_geojson import Feature, features_from_collection

logger = logging.getLogger(__name__)

# (category, tag key) in tie-break order: the first key present wins
CATEGORY_PRIORITY: Tuple[Tuple[str, str], ...] = (
    ("tourism", "tourism"),
    ("amenity", "amenity"),
    ("historic", "historic"),
    ("natural", "natural"),
    ("leisure", "leisure"),
)
FALLBACK_CATEGORY = ("other", "unknown")


def determine_category(tags: Dict[str, Any]) -> Tuple[str, str]:
    """
    Resolve (category, subcategory) from tags

    Returns ("other", "unknown") when no priority key has a value.
    """
    for category, key in CATEGORY_PRIORITY:
        value = tags.get(key)
        if value:
            return category, str(value)
    return FALLBACK_CATEGORY


def _mean(coords: List[List[float]]) -> Optional[List[float]]:
    if not coords:
        return None
    sum_lon = sum(c[0] for c in coords)
    sum_lat = sum(c[1] for c in coords)
    return [sum_lon / len(coords), sum_lat / len(coords)]


def calculate_centroid(geometry: Optional[Dict[str, Any]]) -> Optional[List[float]]:
    """
    Representative [lon, lat] for a geometry

    Point is returned unchanged. Polygon uses its outer ring, LineString
    all vertices, MultiPolygon the first polygon's outer ring and
    MultiLineString the first line. Vertices are averaged, not
    area-weighted.
    """
    if not geometry:
        return None

    geometry_type = geometry.get("type")
    coordinates = geometry.get("coordinates") or []

    if geometry_type == "Point":
        return list(coordinates) if len(coordinates) >= 2 else None
    if geometry_type == "Polygon":
        return _mean(coordinates[0] if coordinates else [])
    if geometry_type == "LineString":
        return _mean(coordinates)
    if geometry_type == "MultiPolygon":
        first_polygon = coordinates[0] if coordinates else []
        return _mean(first_polygon[0] if first_polygon else [])
    if geometry_type == "MultiLineString":
        return _mean(coordinates[0] if coordinates else [])
    return None


def extract_osm_type(feature_id: Union[str, int, None]) -> str:
    """'node/123' -> 'node'"""
    if not feature_id:
        return "unknown"
    parts = str(feature_id).split("/")
    return parts[0] if len(parts) > 1 and parts[0] else "unknown"


def _first(tags: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = tags.get(key)
        if value:
            return str(value)
    return None


def normalize_feature(
    feature: Feature,
    fetched_at: Optional[datetime] = None
) -> Optional[Place]:
    """
    Map one feature to a Place

    Returns None when no location can be derived from the geometry.
    """
    coordinates = calculate_centroid(feature.geometry)
    if coordinates is None:
        return None

    props = feature.properties or {}
    tags = props.get("tags")
    if isinstance(tags, dict):
        osm_type = str(props.get("type") or extract_osm_type(feature.id))
    else:
        tags = {k: v for k, v in props.items() if not k.startswith("@")}
        osm_type = str(props.get("@type") or extract_osm_type(feature.id))

    category, subcategory = determine_category(tags)

    return Place(
        osm_id=str(feature.id or props.get("id") or ""),
        osm_type=osm_type,
        name=_first(tags, "name", "name:en") or config.UNNAMED_PLACE,
        name_si=_first(tags, "name:si"),
        name_ta=_first(tags, "name:ta"),
        category=category,
        subcategory=subcategory,
        geometry=feature.geometry,
        location={"type": "Point", "coordinates": coordinates},
        tags=dict(tags),
        address=Address(
            street=_first(tags, "addr:street"),
            city=_first(tags, "addr:city"),
            postcode=_first(tags, "addr:postcode"),
            country=config.ADDRESS_COUNTRY,
        ),
        contact=Contact(
            phone=_first(tags, "phone", "contact:phone"),
            email=_first(tags, "email", "contact:email"),
            website=_first(tags, "website", "contact:website"),
        ),
        opening_hours=_first(tags, "opening_hours"),
        wheelchair=_first(tags, "wheelchair"),
        description=_first(tags, "description"),
        fetched_at=fetched_at or datetime.now(timezone.utc),
        source=config.DATA_SOURCE,
    )


def process_features(
    features: Union[List[Feature], Dict[str, Any]],
    fetched_at: Optional[datetime] = None
) -> List[Place]:
    """
    Normalize features into Place records ready for storage

    Args:
        features: List of Feature or a GeoJSON FeatureCollection dict
        fetched_at: Retrieval timestamp (defaults to now, UTC)

    Returns:
        Places for every feature with a resolvable location; the rest
        are skipped
    """
    logger.info("Processing features for MongoDB...")
    fetched_at = fetched_at or datetime.now(timezone.utc)

    places = []
    skipped = 0
    for feature in features_from_collection(features):
        place = normalize_feature(feature, fetched_at=fetched_at)
        if place is None:
            logger.debug(f"No location for {feature.id}, skipping")
            skipped += 1
            continue
        places.append(place)

    logger.info(
        f"Processed {len(places)} valid features for MongoDB "
        f"({skipped} without location)"
    )
    return places
