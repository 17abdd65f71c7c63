"""
Step 1: OSM Data Fetching
Builds Overpass queries for the configured area, executes them and
converts the element graph into features
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict, Iterable, Union, Any

from . import config
from .query_builder import BoundingBox, OverpassQueryBuilder
from .utils import OverpassClient
from .transformers import (
    Feature,
    OsmResponse,
    convert_to_geojson,
    process_features,
)
from .database.models import Place

logger = logging.getLogger(__name__)


class OsmDataFetcher:
    """
    Fetches OSM data for one bounding box from the Overpass API

    Every fetch_* method issues exactly one query and returns the
    converted features.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        bbox: Optional[Union[BoundingBox, Dict[str, float]]] = None,
        tag_config: Optional[Dict[str, List[str]]] = None,
        client: Optional[OverpassClient] = None,
        debug: bool = False
    ):
        """
        Create a new OSM data fetcher

        Args:
            api_url: Overpass endpoint (uses config if None)
            bbox: Area to fetch, BoundingBox or dict (uses config if None)
            tag_config: Mapping of category -> tag values (uses config if None)
            client: Preconfigured OverpassClient
            debug: Enable debug logging
        """
        if bbox is None:
            bbox = config.BBOX
        if isinstance(bbox, dict):
            bbox = BoundingBox.from_dict(bbox)

        self.bbox = bbox
        self.tag_config = tag_config if tag_config is not None else config.TAG_CONFIG
        self.client = client or OverpassClient(api_url=api_url, debug=debug)
        self.query_builder = OverpassQueryBuilder(self.bbox)
        self.debug = debug

    def execute_query(self, query: str) -> OsmResponse:
        """Execute an Overpass query (errors propagate)"""
        return self.client.execute_query(query)

    def convert_to_geojson(
        self,
        osm_data: Union[OsmResponse, Dict[str, Any]],
        flat_properties: bool = False
    ) -> List[Feature]:
        return convert_to_geojson(osm_data, flat_properties=flat_properties)

    def _fetch(self, query: str) -> List[Feature]:
        return self.convert_to_geojson(self.execute_query(query))

    # =========================
    # Per-category fetches
    # =========================
    def _category_values(self, category: str) -> List[str]:
        return list(self.tag_config.get(category) or [])

    def fetch_tourism_data(self) -> List[Feature]:
        return self._fetch(
            self.query_builder.build_tourism_query(self._category_values("tourism"))
        )

    def fetch_amenity_data(self) -> List[Feature]:
        return self._fetch(
            self.query_builder.build_amenity_query(self._category_values("amenity"))
        )

    def fetch_historic_data(self) -> List[Feature]:
        return self._fetch(
            self.query_builder.build_historic_query(self._category_values("historic"))
        )

    def fetch_natural_data(self) -> List[Feature]:
        return self._fetch(
            self.query_builder.build_natural_query(self._category_values("natural"))
        )

    def fetch_leisure_data(self) -> List[Feature]:
        return self._fetch(
            self.query_builder.build_leisure_query(self._category_values("leisure"))
        )

    def fetch_all_data(self) -> List[Feature]:
        """Fetch every configured category in one comprehensive query"""
        return self._fetch(
            self.query_builder.build_comprehensive_query(self.tag_config)
        )

    def fetch_by_category(self, category: str) -> List[Feature]:
        """
        Fetch data by category name

        Args:
            category: 'tourism', 'amenity', 'historic', 'natural',
                'leisure' or 'all'

        Raises:
            ValueError: If the category is unknown
        """
        fetchers = {
            "tourism": self.fetch_tourism_data,
            "amenity": self.fetch_amenity_data,
            "historic": self.fetch_historic_data,
            "natural": self.fetch_natural_data,
            "leisure": self.fetch_leisure_data,
            "all": self.fetch_all_data,
        }
        fetcher = fetchers.get(category.lower())
        if fetcher is None:
            raise ValueError(f"Unknown category: {category}")

        logger.info(f"Fetching {category} data...")
        return fetcher()

    def process_features(
        self,
        features: Iterable[Feature],
        fetched_at: Optional[datetime] = None
    ) -> List[Place]:
        """Normalize fetched features into places ready for storage"""
        return process_features(list(features), fetched_at=fetched_at)
