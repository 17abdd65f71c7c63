"""
OSM Miner - OpenStreetMap Point-of-Interest Mining Pipeline

A pipeline for:
1. Building Overpass QL queries for a bounding box and tag selectors
2. Fetching raw OSM elements from the Overpass API
3. Converting nodes/ways/relations to GeoJSON and normalizing places
4. Storing and querying places in a geospatially indexed MongoDB collection

Usage:
    from osm_miner import config, utils
    from osm_miner.fetch import OsmDataFetcher
    from osm_miner.database import PlaceStore, PlaceQueries
    from osm_miner.main import Pipeline
"""

__version__ = "1.0.0"

# Make key modules available at package level
from . import config
from . import utils


def get_place_store(*args, **kwargs):
    """Get a PlaceStore instance (lazy import)"""
    from .database import PlaceStore
    return PlaceStore(*args, **kwargs)


def get_place_queries(store):
    """Get a PlaceQueries instance (lazy import)"""
    from .database import PlaceQueries
    return PlaceQueries(store)


__all__ = [
    "config",
    "utils",
    "__version__",
    "get_place_store",
    "get_place_queries",
]
