"""
Database module for OSM Miner
Provides MongoDB-based storage and queries for places
"""
from .manager import PlaceStore
from .models import Place, Address, Contact, StorageResult, Statistics, CategoryCount
from .queries import PlaceQueries, stats_to_frame

__all__ = [
    "PlaceStore",
    "Place",
    "Address",
    "Contact",
    "StorageResult",
    "Statistics",
    "CategoryCount",
    "PlaceQueries",
    "stats_to_frame",
]
