"""
Pre-built queries over the places collection
Proximity, category and text lookups plus aggregate statistics and export
"""
import logging
from typing import Optional, List, Dict, Any

import pandas as pd
from pymongo import DESCENDING

from .models import Statistics, CategoryCount

logger = logging.getLogger(__name__)

TOP_SUBCATEGORIES = 20


class PlaceQueries:
    """
    Collection of read queries for stored places
    Uses MongoDB's 2dsphere and text indexes
    """

    def __init__(self, store):
        """
        Initialize with a place store

        Args:
            store: PlaceStore instance (must be connected before querying)
        """
        self.store = store

    @property
    def collection(self):
        return self.store.collection

    # =========================
    # Lookups
    # =========================
    def find_near(
        self,
        longitude: float,
        latitude: float,
        max_distance: float = 5000,
        filter: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Find places near a location, nearest first

        Args:
            longitude: Longitude of the center
            latitude: Latitude of the center
            max_distance: Maximum distance in meters
            filter: Additional filter criteria; may not constrain `location`

        Returns:
            Matching place documents

        Raises:
            ValueError: If filter has a `location` key
        """
        filter = dict(filter or {})
        if "location" in filter:
            raise ValueError("filter cannot constrain 'location', it carries the $near clause")

        query = {
            "location": {
                "$near": {
                    "$geometry": {
                        "type": "Point",
                        "coordinates": [longitude, latitude],
                    },
                    "$maxDistance": max_distance,
                }
            }
        }
        query.update(filter)

        return list(self.collection.find(query))

    def find_by_category(
        self,
        category: str,
        limit: Optional[int] = None,
        skip: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Find places by category, skip applied before limit"""
        cursor = self.collection.find({"category": category})

        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)

        return list(cursor)

    def search(
        self,
        search_text: str,
        category: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Full-text search over name, tags.name and tags.description

        Args:
            search_text: Text to search for
            category: Optional category restriction
            limit: Optional maximum number of results

        Returns:
            Matching documents with a `score` field, best first
        """
        query: Dict[str, Any] = {"$text": {"$search": search_text}}
        if category:
            query["category"] = category

        cursor = self.collection.find(
            query,
            projection={"score": {"$meta": "textScore"}},
        ).sort([("score", {"$meta": "textScore"})])

        if limit:
            cursor = cursor.limit(limit)

        return list(cursor)

    # =========================
    # Statistics
    # =========================
    def _group_counts(self, field: str, limit: Optional[int] = None) -> List[CategoryCount]:
        pipeline: List[Dict[str, Any]] = [
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"count": DESCENDING}},
        ]
        if limit:
            pipeline.append({"$limit": limit})

        return [
            CategoryCount(id=row["_id"], count=row["count"])
            for row in self.collection.aggregate(pipeline)
        ]

    def get_stats(self) -> Statistics:
        """Get total count, counts per category and top subcategories"""
        return Statistics(
            total=self.collection.count_documents({}),
            by_category=self._group_counts("category"),
            top_subcategories=self._group_counts("subcategory", TOP_SUBCATEGORIES),
        )

    # =========================
    # Export
    # =========================
    def export_as_geojson(self) -> Dict[str, Any]:
        """Export all places as a GeoJSON FeatureCollection"""
        features = []
        for doc in self.collection.find({}):
            features.append({
                "type": "Feature",
                "id": doc.get("osm_id"),
                "properties": {
                    "name": doc.get("name"),
                    "category": doc.get("category"),
                    "subcategory": doc.get("subcategory"),
                    "tags": doc.get("tags"),
                    "address": doc.get("address"),
                    "contact": doc.get("contact"),
                },
                "geometry": doc.get("geometry") or doc.get("location"),
            })

        logger.info(f"Exported {len(features)} places as GeoJSON")
        return {"type": "FeatureCollection", "features": features}


def stats_to_frame(stats: Statistics) -> Dict[str, pd.DataFrame]:
    """
    Tabulate statistics for reporting

    Returns:
        {"by_category": DataFrame, "top_subcategories": DataFrame}, each
        with `name` and `count` columns, largest first
    """
    def _frame(rows: List[CategoryCount]) -> pd.DataFrame:
        return pd.DataFrame(
            [{"name": r.id, "count": r.count} for r in rows],
            columns=["name", "count"],
        )

    return {
        "by_category": _frame(stats.by_category),
        "top_subcategories": _frame(stats.top_subcategories),
    }
