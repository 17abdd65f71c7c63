# src/osm_miner/transformers/osm_to_geojson.py
# raw Overpass element graph -> GeoJSON features
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from shapely.geometry import MultiLineString, Polygon
from shapely.ops import linemerge

from ..utils import ParseError

logger = logging.getLogger(__name__)

ELEMENT_TYPES = ("node", "way", "relation")

# Tags that do not make an element a feature on their own (osmtogeojson)
UNINTERESTING_TAGS = frozenset({
    "source",
    "source_ref",
    "source:ref",
    "history",
    "attribution",
    "created_by",
    "tiger:county",
    "tiger:tlid",
    "tiger:upload_uuid",
})

AREA_RELATION_TYPES = frozenset({"multipolygon", "boundary"})

Coordinate = List[float]


# =========================
# Raw element graph
# =========================
@dataclass
class RawMember:
    """Ordered member reference of a relation"""
    type: str
    ref: int
    role: str = ""


@dataclass
class RawElement:
    """
    One element of an Overpass response

    Nodes carry lat/lon, ways carry ordered node ids, relations carry
    ordered members.
    """
    type: str
    id: int
    tags: Dict[str, str] = field(default_factory=dict)
    lat: Optional[float] = None
    lon: Optional[float] = None
    nodes: List[int] = field(default_factory=list)
    members: List[RawMember] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawElement":
        if not isinstance(data, dict):
            raise ParseError(f"Element is not an object: {data!r}")

        element_type = data.get("type")
        if element_type not in ELEMENT_TYPES:
            raise ParseError(f"Unknown element type: {element_type!r}")

        element_id = data.get("id")
        if isinstance(element_id, bool) or not isinstance(element_id, int):
            raise ParseError(f"Element id must be an integer: {element_id!r}")

        try:
            tags = data.get("tags") or {}
            if not isinstance(tags, dict):
                raise TypeError(f"tags must be an object, got {type(tags).__name__}")
            members = [
                RawMember(type=m["type"], ref=int(m["ref"]), role=m.get("role") or "")
                for m in data.get("members") or []
            ]
            nodes = [int(ref) for ref in data.get("nodes") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(
                f"Malformed element {element_type}/{element_id}: {e}"
            ) from e

        return cls(
            type=element_type,
            id=element_id,
            tags=dict(tags),
            lat=data.get("lat"),
            lon=data.get("lon"),
            nodes=nodes,
            members=members,
        )

    @property
    def key(self) -> Tuple[str, int]:
        return (self.type, self.id)


@dataclass
class OsmResponse:
    """Parsed Overpass JSON response"""
    elements: List[RawElement]
    version: Optional[float] = None
    generator: Optional[str] = None
    timestamp_osm_base: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "OsmResponse":
        if not isinstance(data, dict) or not isinstance(data.get("elements"), list):
            raise ParseError("Response has no 'elements' array")

        osm3s = data.get("osm3s") or {}
        return cls(
            elements=[RawElement.from_dict(e) for e in data["elements"]],
            version=data.get("version"),
            generator=data.get("generator"),
            timestamp_osm_base=osm3s.get("timestamp_osm_base"),
        )


# =========================
# Features
# =========================
@dataclass
class Feature:
    """GeoJSON feature with resolved geometry (or None)"""
    id: str
    geometry: Optional[Dict[str, Any]]
    properties: Dict[str, Any] = field(default_factory=dict)

    @property
    def geometry_type(self) -> Optional[str]:
        return self.geometry["type"] if self.geometry else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "id": self.id,
            "properties": self.properties,
            "geometry": self.geometry,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feature":
        properties = data.get("properties") or {}
        return cls(
            id=str(data.get("id") or properties.get("id") or ""),
            geometry=data.get("geometry"),
            properties=properties,
        )


def feature_collection_to_dict(features: List[Feature]) -> Dict[str, Any]:
    return {
        "type": "FeatureCollection",
        "features": [f.to_dict() for f in features],
    }


def features_from_collection(collection: Union[Dict[str, Any], List]) -> List[Feature]:
    """Accept a FeatureCollection dict or a list of Feature/dicts"""
    if isinstance(collection, dict):
        items = collection.get("features") or []
    else:
        items = collection
    return [f if isinstance(f, Feature) else Feature.from_dict(f) for f in items]


class _MissingReference(Exception):
    pass


# =========================
# Geometry helpers
# =========================
def _is_closed(coords: List[Coordinate]) -> bool:
    return len(coords) >= 4 and coords[0] == coords[-1]


def _join_segments(segments: List[List[Coordinate]]) -> List[List[Coordinate]]:
    """Join way segments sharing endpoints into rings (or open chains)"""
    lines = [s for s in segments if len(s) >= 2]
    if not lines:
        return []
    merged = linemerge(MultiLineString(lines))
    parts = getattr(merged, "geoms", [merged])
    return [[list(xy) for xy in part.coords] for part in parts if not part.is_empty]


def _assemble_multipolygon(
    outer_segments: List[List[Coordinate]],
    inner_segments: List[List[Coordinate]]
) -> Optional[List[List[List[Coordinate]]]]:
    outers = _join_segments(outer_segments)
    inners = _join_segments(inner_segments)
    if not outers or not all(_is_closed(r) for r in outers + inners):
        return None

    shells = [Polygon(outer) for outer in outers]
    polygons = [[outer] for outer in outers]
    for inner in inners:
        # inner rings may touch their shell, so test an interior point
        interior = Polygon(inner).representative_point()
        index = next(
            (i for i, shell in enumerate(shells) if shell.contains(interior)),
            0,
        )
        polygons[index].append(inner)
    return polygons


# =========================
# Converter
# =========================
class OsmToGeoJSONConverter:
    """
    Resolves an element graph into a flat list of features

    Only elements present in the same response are used. A feature with
    any reference that cannot be resolved is dropped.
    """

    def __init__(self, flat_properties: bool = False):
        self.flat_properties = flat_properties

    def convert(self, osm_data: Union[OsmResponse, Dict[str, Any]]) -> List[Feature]:
        if not isinstance(osm_data, OsmResponse):
            osm_data = OsmResponse.from_dict(osm_data)

        self._index(osm_data.elements)

        features: List[Feature] = []
        dropped = 0

        for node in self.nodes.values():
            if self._has_interesting_tags(node) or node.key not in self.referenced:
                feature = self._try_build(node, self._node_geometry)
                if feature is None:
                    dropped += 1
                else:
                    features.append(feature)

        for way in self.ways.values():
            if self._has_interesting_tags(way) or way.key not in self.referenced:
                feature = self._try_build(way, self._way_geometry)
                if feature is None:
                    dropped += 1
                else:
                    features.append(feature)

        for relation in self.relations.values():
            if self._has_interesting_tags(relation) or relation.key not in self.referenced:
                feature = self._try_build(
                    relation,
                    lambda r: self._relation_geometry(r, set()),
                )
                if feature is None:
                    dropped += 1
                else:
                    features.append(feature)

        if dropped:
            logger.info(f"Dropped {dropped} features with unresolved references")
        return features

    # ---------- indexing ----------
    def _index(self, elements: List[RawElement]):
        self.nodes: Dict[int, RawElement] = {}
        self.ways: Dict[int, RawElement] = {}
        self.relations: Dict[int, RawElement] = {}
        self.referenced: Set[Tuple[str, int]] = set()
        self.parents: Dict[Tuple[str, int], List[Dict[str, Any]]] = {}

        tables = {"node": self.nodes, "way": self.ways, "relation": self.relations}
        for element in elements:
            table = tables[element.type]
            existing = table.get(element.id)
            if existing is None:
                # merged copies keep the caller's response untouched
                table[element.id] = replace(
                    element,
                    tags=dict(element.tags),
                    nodes=list(element.nodes),
                    members=list(element.members),
                )
                continue
            # "out body" and "out skel" may both return the same element
            existing.tags.update(element.tags)
            if existing.lat is None:
                existing.lat, existing.lon = element.lat, element.lon
            existing.nodes = existing.nodes or element.nodes
            existing.members = existing.members or element.members

        for way in self.ways.values():
            self.referenced.update(("node", ref) for ref in way.nodes)

        for relation in self.relations.values():
            for member in relation.members:
                self.referenced.add((member.type, member.ref))
                self.parents.setdefault((member.type, member.ref), []).append({
                    "rel": relation.id,
                    "role": member.role,
                    "reltags": relation.tags,
                })

    @staticmethod
    def _has_interesting_tags(element: RawElement) -> bool:
        return any(key not in UNINTERESTING_TAGS for key in element.tags)

    # ---------- feature building ----------
    def _try_build(self, element: RawElement, geometry_fn) -> Optional[Feature]:
        try:
            geometry = geometry_fn(element)
        except _MissingReference as e:
            logger.debug(f"Dropping {element.type}/{element.id}: missing {e}")
            return None
        return Feature(
            id=f"{element.type}/{element.id}",
            geometry=geometry,
            properties=self._properties(element),
        )

    def _properties(self, element: RawElement) -> Dict[str, Any]:
        relations = self.parents.get(element.key, [])
        if self.flat_properties:
            props = dict(element.tags)
            props["@id"] = f"{element.type}/{element.id}"
            props["@type"] = element.type
            if relations:
                props["@relations"] = relations
            return props
        return {
            "type": element.type,
            "id": element.id,
            "tags": dict(element.tags),
            "relations": relations,
        }

    # ---------- geometry resolution ----------
    def _node_coordinate(self, ref: int) -> Coordinate:
        node = self.nodes.get(ref)
        if node is None or node.lat is None or node.lon is None:
            raise _MissingReference(f"node/{ref}")
        return [node.lon, node.lat]

    def _way_coordinates(self, ref: int) -> List[Coordinate]:
        way = self.ways.get(ref)
        if way is None:
            raise _MissingReference(f"way/{ref}")
        return [self._node_coordinate(node_ref) for node_ref in way.nodes]

    def _node_geometry(self, node: RawElement) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": self._node_coordinate(node.id)}

    def _way_geometry(self, way: RawElement) -> Dict[str, Any]:
        coords = self._way_coordinates(way.id)
        if _is_closed(coords) and way.tags.get("area") != "no":
            return {"type": "Polygon", "coordinates": [coords]}
        return {"type": "LineString", "coordinates": coords}

    def _collect_members(
        self,
        relation: RawElement,
        visiting: Set[int]
    ) -> Tuple[List[Tuple[List[Coordinate], str]], List[Coordinate]]:
        visiting = visiting | {relation.id}
        ways: List[Tuple[List[Coordinate], str]] = []
        points: List[Coordinate] = []

        for member in relation.members:
            if member.type == "node":
                points.append(self._node_coordinate(member.ref))
            elif member.type == "way":
                ways.append((self._way_coordinates(member.ref), member.role))
            elif member.type == "relation":
                if member.ref in visiting:
                    continue
                child = self.relations.get(member.ref)
                if child is None:
                    raise _MissingReference(f"relation/{member.ref}")
                child_ways, child_points = self._collect_members(child, visiting)
                ways.extend(child_ways)
                points.extend(child_points)
        return ways, points

    def _relation_geometry(
        self,
        relation: RawElement,
        visiting: Set[int]
    ) -> Optional[Dict[str, Any]]:
        ways, _points = self._collect_members(relation, visiting)
        if not ways:
            return None

        if relation.tags.get("type") in AREA_RELATION_TYPES:
            outer = [coords for coords, role in ways if role != "inner"]
            inner = [coords for coords, role in ways if role == "inner"]
            polygons = _assemble_multipolygon(outer, inner)
            if polygons is not None:
                return {"type": "MultiPolygon", "coordinates": polygons}
            return {
                "type": "MultiLineString",
                "coordinates": _join_segments([coords for coords, _ in ways]),
            }

        lines = [coords for coords, _ in ways]
        if all(_is_closed(coords) for coords in lines):
            return {
                "type": "MultiPolygon",
                "coordinates": [[coords] for coords in lines],
            }
        return {"type": "MultiLineString", "coordinates": lines}


def convert_to_geojson(
    osm_data: Union[OsmResponse, Dict[str, Any]],
    flat_properties: bool = False
) -> List[Feature]:
    """
    Convert an Overpass response into a list of features

    Args:
        osm_data: OsmResponse or raw decoded JSON
        flat_properties: Merge tags into properties instead of nesting

    Returns:
        List of Feature; order follows nodes, ways, relations
    """
    logger.info("Converting OSM data to GeoJSON...")
    features = OsmToGeoJSONConverter(flat_properties=flat_properties).convert(osm_data)
    logger.info(f"Converted to GeoJSON with {len(features)} features")
    return features
