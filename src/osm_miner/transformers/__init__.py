"""
Transformers Module - OSM element conversion and place normalization

This module turns raw Overpass responses into storable records:
- osm_to_geojson: Resolve nodes/ways/relations into GeoJSON features
- normalize_places: Category, centroid, names, address/contact per feature

Pipeline Stage: Between fetch and storage
Input:  OsmResponse from the Overpass API
Output: List of Place records for the places collection
"""

from .osm_to_geojson import (
    Feature,
    OsmResponse,
    RawElement,
    RawMember,
    OsmToGeoJSONConverter,
    convert_to_geojson,
    feature_collection_to_dict,
    features_from_collection,
)

from .normalize_places import (
    CATEGORY_PRIORITY,
    calculate_centroid,
    determine_category,
    extract_osm_type,
    normalize_feature,
    process_features,
)

__all__ = [
    # Conversion
    "Feature",
    "OsmResponse",
    "RawElement",
    "RawMember",
    "OsmToGeoJSONConverter",
    "convert_to_geojson",
    "feature_collection_to_dict",
    "features_from_collection",
    # Normalization
    "CATEGORY_PRIORITY",
    "calculate_centroid",
    "determine_category",
    "extract_osm_type",
    "normalize_feature",
    "process_features",
]
