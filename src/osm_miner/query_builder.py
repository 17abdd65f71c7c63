"""
Overpass query builder
Builds Overpass QL queries from a bounding box and tag selectors
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from . import config
from .utils import InvalidBoundingBoxError


@dataclass(frozen=True)
class BoundingBox:
    """Rectangular lat/lon region: south < north, west < east"""
    south: float
    west: float
    north: float
    east: float

    def __post_init__(self):
        if not (-90 <= self.south <= 90 and -90 <= self.north <= 90):
            raise InvalidBoundingBoxError(
                f"Latitudes out of range: south={self.south}, north={self.north}"
            )
        if not (-180 <= self.west <= 180 and -180 <= self.east <= 180):
            raise InvalidBoundingBoxError(
                f"Longitudes out of range: west={self.west}, east={self.east}"
            )
        if self.south >= self.north:
            raise InvalidBoundingBoxError(
                f"south ({self.south}) must be less than north ({self.north})"
            )
        if self.west >= self.east:
            raise InvalidBoundingBoxError(
                f"west ({self.west}) must be less than east ({self.east})"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "BoundingBox":
        return cls(
            south=float(data["south"]),
            west=float(data["west"]),
            north=float(data["north"]),
            east=float(data["east"]),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "south": self.south,
            "west": self.west,
            "north": self.north,
            "east": self.east,
        }


@dataclass(frozen=True)
class TagSelector:
    """A category dimension paired with the tag values to select"""
    category: str
    values: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.category not in config.CATEGORY_KEYS:
            raise ValueError(
                f"Unknown category: {self.category}. "
                f"Must be one of: {config.CATEGORY_KEYS}"
            )
        # Accept any iterable of values but store an immutable tuple
        object.__setattr__(self, "values", tuple(self.values))


def selectors_from_tag_config(tag_config: Dict[str, Iterable[str]]) -> List[TagSelector]:
    """Build selectors in priority order from a {category: [values]} mapping"""
    return [
        TagSelector(category, tuple(tag_config.get(category) or ()))
        for category in config.CATEGORY_KEYS
        if category in tag_config
    ]


def _quote(value: str) -> str:
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class OverpassQueryBuilder:
    """
    Builds deterministic Overpass QL queries

    The same bounding box and selectors always produce the same string.
    """

    def __init__(
        self,
        bbox: BoundingBox,
        include_relations: bool = False,
        query_timeout: Optional[int] = None,
        comprehensive_timeout: Optional[int] = None,
        seconds_per_clause: Optional[int] = None
    ):
        """
        Create a new query builder

        Args:
            bbox: Bounding box to restrict every clause to
            include_relations: Also select relations (multipolygon areas)
            query_timeout: [timeout:N] for single-category queries
            comprehensive_timeout: Minimum [timeout:N] for composite queries
            seconds_per_clause: Composite budget per clause
        """
        self.bbox = bbox
        self.include_relations = include_relations
        self.query_timeout = query_timeout or config.OVERPASS_CONFIG["query_timeout"]
        self.comprehensive_timeout = (
            comprehensive_timeout
            or config.OVERPASS_CONFIG["comprehensive_query_timeout"]
        )
        self.seconds_per_clause = (
            seconds_per_clause or config.OVERPASS_CONFIG["seconds_per_clause"]
        )

    @property
    def element_types(self) -> Tuple[str, ...]:
        if self.include_relations:
            return ("node", "way", "relation")
        return ("node", "way")

    def get_bbox_string(self) -> str:
        """Bounding box in Overpass order: south,west,north,east"""
        b = self.bbox
        return f"{b.south},{b.west},{b.north},{b.east}"

    def _clause(self, element_type: str, key: str, value: str) -> str:
        return f"{element_type}[{_quote(key)}={_quote(value)}]({self.get_bbox_string()});"

    def _wrap(self, clauses: List[str], timeout: int) -> str:
        body = "\n  ".join(clauses)
        return f"""
[out:json][timeout:{timeout}];
(
  {body}
);
out body;
>;
out skel qt;
"""

    def category_clauses(self, category: str, values: Iterable[str]) -> List[str]:
        """Clauses for one dimension: all nodes first, then ways (then relations)"""
        values = list(values or [])
        clauses = []
        for element_type in self.element_types:
            clauses.extend(
                self._clause(element_type, category, value) for value in values
            )
        return clauses

    def build_category_query(self, category: str, values: Iterable[str]) -> str:
        """
        Build a query for one category dimension

        Args:
            category: Tag key (tourism, amenity, historic, natural, leisure)
            values: Accepted tag values

        Returns:
            Overpass QL query
        """
        selector = TagSelector(category, tuple(values or ()))
        clauses = self.category_clauses(selector.category, selector.values)
        return self._wrap(clauses, self.query_timeout)

    def build_tourism_query(self, tags: List[str]) -> str:
        return self.build_category_query("tourism", tags)

    def build_amenity_query(self, tags: List[str]) -> str:
        return self.build_category_query("amenity", tags)

    def build_historic_query(self, tags: List[str]) -> str:
        return self.build_category_query("historic", tags)

    def build_natural_query(self, tags: List[str]) -> str:
        return self.build_category_query("natural", tags)

    def build_leisure_query(self, tags: List[str]) -> str:
        return self.build_category_query("leisure", tags)

    def composite_timeout(self, n_clauses: int) -> int:
        """Execution budget for a composite query with n_clauses"""
        return max(
            self.comprehensive_timeout,
            self.query_timeout + self.seconds_per_clause * n_clauses,
        )

    def build_query(self, selectors: Iterable[TagSelector]) -> str:
        """
        Build a composite query unioning every selector's clauses

        Node and way clauses are interleaved per value, selectors are
        kept in the order given.
        """
        clauses: List[str] = []
        for selector in selectors:
            for value in selector.values:
                for element_type in self.element_types:
                    clauses.append(
                        self._clause(element_type, selector.category, value)
                    )
        return self._wrap(clauses, self.composite_timeout(len(clauses)))

    def build_comprehensive_query(self, tag_config: Dict[str, Iterable[str]]) -> str:
        """
        Build a comprehensive query for all configured dimensions

        Args:
            tag_config: Mapping of category -> tag values; missing or
                empty categories contribute no clauses

        Returns:
            Overpass QL query
        """
        return self.build_query(selectors_from_tag_config(tag_config))
