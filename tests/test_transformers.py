"""
Unit tests for transformers module
Tests OSM → GeoJSON conversion and place normalization
"""
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from osm_miner.utils import ParseError
from osm_miner.transformers import (
    CATEGORY_PRIORITY,
    Feature,
    OsmResponse,
    RawElement,
    calculate_centroid,
    convert_to_geojson,
    determine_category,
    extract_osm_type,
    feature_collection_to_dict,
    normalize_feature,
    process_features,
)


def _by_id(features):
    return {f.id: f for f in features}


# =========================
# Raw Element Parsing Tests
# =========================
@pytest.mark.unit
class TestRawElementParsing:
    """Test parsing of the Overpass element graph"""

    def test_parse_response(self, mixed_response):
        response = OsmResponse.from_dict(mixed_response)
        assert len(response.elements) == len(mixed_response["elements"])

    def test_relation_members_keep_order(self, mixed_response):
        response = OsmResponse.from_dict(mixed_response)
        relation = next(e for e in response.elements if e.type == "relation")
        assert [m.ref for m in relation.members] == [31, 32]
        assert relation.members[0].role == "outer"

    def test_missing_elements_raises(self):
        with pytest.raises(ParseError):
            OsmResponse.from_dict({"remark": "timeout"})

    def test_non_object_response_raises(self):
        with pytest.raises(ParseError):
            OsmResponse.from_dict(["not", "a", "response"])

    def test_unknown_type_raises(self):
        with pytest.raises(ParseError):
            RawElement.from_dict({"type": "area", "id": 1})

    def test_non_integer_id_raises(self):
        with pytest.raises(ParseError):
            RawElement.from_dict({"type": "node", "id": "abc", "lat": 0, "lon": 0})

    def test_malformed_member_raises(self):
        with pytest.raises(ParseError):
            RawElement.from_dict({"type": "relation", "id": 1, "members": [{"ref": 2}]})

    @pytest.mark.parametrize("tags", [["tourism", "museum"], "tourism=museum", 7])
    def test_non_object_tags_raise(self, tags):
        with pytest.raises(ParseError, match="node/1"):
            RawElement.from_dict({"type": "node", "id": 1, "lat": 0, "lon": 0, "tags": tags})


# =========================
# Converter Tests
# =========================
@pytest.mark.unit
class TestConvertToGeoJSON:
    """Test OsmToGeoJSONConverter"""

    def test_standalone_museum_node(self, museum_response):
        features = convert_to_geojson(museum_response)

        assert len(features) == 1
        feature = features[0]
        assert feature.id == "node/1001"
        assert feature.geometry == {"type": "Point", "coordinates": [80.0, 7.0]}
        assert feature.properties["tags"]["tourism"] == "museum"

    def test_accepts_parsed_response(self, museum_response):
        features = convert_to_geojson(OsmResponse.from_dict(museum_response))
        assert len(features) == 1

    def test_mixed_graph_feature_set(self, mixed_response):
        features = convert_to_geojson(mixed_response)
        assert [f.id for f in features] == ["node/1", "way/10", "way/20", "relation/30"]

    def test_skeleton_nodes_are_not_features(self, mixed_response):
        ids = _by_id(convert_to_geojson(mixed_response))
        assert "node/11" not in ids
        assert "way/31" not in ids

    def test_closed_way_is_polygon(self, mixed_response):
        park = _by_id(convert_to_geojson(mixed_response))["way/10"]
        assert park.geometry_type == "Polygon"
        ring = park.geometry["coordinates"][0]
        assert ring[0] == ring[-1]
        assert ring[1] == [2.0, 0.0]

    def test_open_way_is_linestring(self, mixed_response):
        trail = _by_id(convert_to_geojson(mixed_response))["way/20"]
        assert trail.geometry == {
            "type": "LineString",
            "coordinates": [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]],
        }

    def test_area_no_stays_linestring(self):
        data = {"elements": [
            {"type": "way", "id": 1, "nodes": [1, 2, 3, 1],
             "tags": {"highway": "pedestrian", "area": "no"}},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0},
            {"type": "node", "id": 3, "lat": 1.0, "lon": 1.0},
        ]}
        feature = _by_id(convert_to_geojson(data))["way/1"]
        assert feature.geometry_type == "LineString"

    def test_multipolygon_relation_joins_ways(self, mixed_response):
        beach = _by_id(convert_to_geojson(mixed_response))["relation/30"]
        assert beach.geometry_type == "MultiPolygon"
        polygons = beach.geometry["coordinates"]
        assert len(polygons) == 1
        outer = polygons[0][0]
        assert outer[0] == outer[-1]
        assert len(outer) == 5

    def test_multipolygon_with_inner_ring(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [
                 {"type": "way", "ref": 10, "role": "outer"},
                 {"type": "way", "ref": 11, "role": "inner"},
             ],
             "tags": {"type": "multipolygon", "leisure": "park"}},
            {"type": "way", "id": 10, "nodes": [1, 2, 3, 4, 1]},
            {"type": "way", "id": 11, "nodes": [5, 6, 7, 5]},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 10.0},
            {"type": "node", "id": 3, "lat": 10.0, "lon": 10.0},
            {"type": "node", "id": 4, "lat": 10.0, "lon": 0.0},
            {"type": "node", "id": 5, "lat": 2.0, "lon": 2.0},
            {"type": "node", "id": 6, "lat": 2.0, "lon": 4.0},
            {"type": "node", "id": 7, "lat": 4.0, "lon": 4.0},
        ]}
        park = _by_id(convert_to_geojson(data))["relation/1"]
        assert park.geometry_type == "MultiPolygon"
        assert len(park.geometry["coordinates"][0]) == 2

    def test_multipolygon_joins_reversed_segments(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [
                 {"type": "way", "ref": 10, "role": "outer"},
                 {"type": "way", "ref": 11, "role": "outer"},
             ],
             "tags": {"type": "multipolygon", "natural": "beach"}},
            # both ways run away from node 1
            {"type": "way", "id": 10, "nodes": [1, 2, 3]},
            {"type": "way", "id": 11, "nodes": [1, 4, 3]},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0},
            {"type": "node", "id": 3, "lat": 1.0, "lon": 1.0},
            {"type": "node", "id": 4, "lat": 1.0, "lon": 0.0},
        ]}
        beach = _by_id(convert_to_geojson(data))["relation/1"]

        assert beach.geometry_type == "MultiPolygon"
        outer = beach.geometry["coordinates"][0][0]
        assert outer[0] == outer[-1]
        assert len(outer) == 5
        assert {tuple(c) for c in outer} == {(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)}

    def test_inner_ring_goes_to_containing_outer(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [
                 {"type": "way", "ref": 10, "role": "outer"},
                 {"type": "way", "ref": 11, "role": "outer"},
                 {"type": "way", "ref": 12, "role": "inner"},
             ],
             "tags": {"type": "multipolygon", "leisure": "nature_reserve"}},
            {"type": "way", "id": 10, "nodes": [1, 2, 3, 4, 1]},
            {"type": "way", "id": 11, "nodes": [5, 6, 7, 8, 5]},
            {"type": "way", "id": 12, "nodes": [9, 10, 11, 9]},
            # first square at lon 0-10, second at lon 20-30
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 10.0},
            {"type": "node", "id": 3, "lat": 10.0, "lon": 10.0},
            {"type": "node", "id": 4, "lat": 10.0, "lon": 0.0},
            {"type": "node", "id": 5, "lat": 0.0, "lon": 20.0},
            {"type": "node", "id": 6, "lat": 0.0, "lon": 30.0},
            {"type": "node", "id": 7, "lat": 10.0, "lon": 30.0},
            {"type": "node", "id": 8, "lat": 10.0, "lon": 20.0},
            # hole touching the second square's edge at lon 20
            {"type": "node", "id": 9, "lat": 2.0, "lon": 20.0},
            {"type": "node", "id": 10, "lat": 2.0, "lon": 24.0},
            {"type": "node", "id": 11, "lat": 4.0, "lon": 24.0},
        ]}
        reserve = _by_id(convert_to_geojson(data))["relation/1"]
        polygons = reserve.geometry["coordinates"]

        assert len(polygons) == 2
        rings_by_min_lon = {min(c[0] for c in p[0]): len(p) for p in polygons}
        assert rings_by_min_lon == {0.0: 1, 20.0: 2}

    def test_unclosed_multipolygon_falls_back_to_lines(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [{"type": "way", "ref": 10, "role": "outer"}],
             "tags": {"type": "multipolygon", "natural": "beach"}},
            {"type": "way", "id": 10, "nodes": [1, 2, 3]},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0},
            {"type": "node", "id": 3, "lat": 1.0, "lon": 1.0},
        ]}
        beach = _by_id(convert_to_geojson(data))["relation/1"]
        assert beach.geometry_type == "MultiLineString"

    def test_missing_node_reference_drops_way(self):
        data = {"elements": [
            {"type": "way", "id": 1, "nodes": [1, 2, 99],
             "tags": {"tourism": "attraction"}},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0},
        ]}
        assert "way/1" not in _by_id(convert_to_geojson(data))

    def test_missing_way_reference_drops_relation(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [{"type": "way", "ref": 404, "role": "outer"}],
             "tags": {"type": "multipolygon", "leisure": "park"}},
        ]}
        assert convert_to_geojson(data) == []

    def test_relation_without_ways_has_no_geometry(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [{"type": "node", "ref": 1, "role": "label"}],
             "tags": {"type": "site", "historic": "archaeological_site"}},
            {"type": "node", "id": 1, "lat": 7.9, "lon": 80.7},
        ]}
        site = _by_id(convert_to_geojson(data))["relation/1"]
        assert site.geometry is None

    def test_relation_cycle_terminates(self):
        data = {"elements": [
            {"type": "relation", "id": 1,
             "members": [
                 {"type": "relation", "ref": 2, "role": ""},
                 {"type": "way", "ref": 10, "role": ""},
             ],
             "tags": {"type": "route", "tourism": "attraction"}},
            {"type": "relation", "id": 2,
             "members": [{"type": "relation", "ref": 1, "role": ""}],
             "tags": {"type": "route"}},
            {"type": "way", "id": 10, "nodes": [1, 2]},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0},
        ]}
        route = _by_id(convert_to_geojson(data))["relation/1"]
        assert route.geometry_type == "MultiLineString"

    def test_duplicate_elements_are_merged(self):
        data = {"elements": [
            {"type": "node", "id": 1, "lat": 7.0, "lon": 80.0,
             "tags": {"tourism": "museum"}},
            {"type": "node", "id": 1, "lat": 7.0, "lon": 80.0},
        ]}
        assert len(convert_to_geojson(data)) == 1

    def test_conversion_leaves_response_untouched(self):
        response = OsmResponse.from_dict({"elements": [
            {"type": "node", "id": 1, "lat": 7.0, "lon": 80.0},
            {"type": "node", "id": 1, "lat": 7.0, "lon": 80.0,
             "tags": {"tourism": "museum"}},
        ]})

        first = convert_to_geojson(response)
        second = convert_to_geojson(response)

        assert response.elements[0].tags == {}
        assert [f.to_dict() for f in first] == [f.to_dict() for f in second]
        assert first[0].properties["tags"] == {"tourism": "museum"}

    def test_uninteresting_tags_only_referenced_node_skipped(self):
        data = {"elements": [
            {"type": "way", "id": 1, "nodes": [1, 2], "tags": {"tourism": "attraction"}},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0,
             "tags": {"source": "survey"}},
            {"type": "node", "id": 2, "lat": 0.0, "lon": 1.0,
             "tags": {"tourism": "viewpoint"}},
        ]}
        ids = _by_id(convert_to_geojson(data))
        assert "node/1" not in ids
        assert "node/2" in ids

    def test_parent_relations_in_properties(self):
        data = {"elements": [
            {"type": "relation", "id": 5,
             "members": [{"type": "node", "ref": 1, "role": "stop"}],
             "tags": {"type": "route"}},
            {"type": "node", "id": 1, "lat": 0.0, "lon": 0.0,
             "tags": {"tourism": "viewpoint"}},
        ]}
        node = _by_id(convert_to_geojson(data))["node/1"]
        assert node.properties["relations"][0]["rel"] == 5
        assert node.properties["relations"][0]["role"] == "stop"

    def test_flat_properties(self, museum_response):
        feature = convert_to_geojson(museum_response, flat_properties=True)[0]
        assert feature.properties["tourism"] == "museum"
        assert feature.properties["@id"] == "node/1001"
        assert feature.properties["@type"] == "node"

    def test_feature_collection_dict(self, museum_response):
        collection = feature_collection_to_dict(convert_to_geojson(museum_response))
        assert collection["type"] == "FeatureCollection"
        assert collection["features"][0]["type"] == "Feature"
        assert collection["features"][0]["id"] == "node/1001"


# =========================
# Category Resolution Tests
# =========================
@pytest.mark.unit
class TestDetermineCategory:
    """Test category priority"""

    def test_priority_order_is_explicit(self):
        assert [c for c, _ in CATEGORY_PRIORITY] == [
            "tourism", "amenity", "historic", "natural", "leisure"
        ]

    def test_tourism_beats_amenity(self):
        assert determine_category({"tourism": "museum", "amenity": "cafe"}) == (
            "tourism", "museum"
        )

    def test_historic_beats_leisure(self):
        assert determine_category({"leisure": "park", "historic": "ruins"}) == (
            "historic", "ruins"
        )

    def test_single_key(self):
        assert determine_category({"natural": "waterfall"}) == ("natural", "waterfall")

    def test_fallback(self):
        assert determine_category({"shop": "bakery"}) == ("other", "unknown")

    def test_empty_value_skipped(self):
        assert determine_category({"tourism": "", "amenity": "bank"}) == (
            "amenity", "bank"
        )


# =========================
# Centroid Tests
# =========================
@pytest.mark.unit
class TestCalculateCentroid:
    """Test representative point calculation"""

    def test_point(self):
        assert calculate_centroid({"type": "Point", "coordinates": [80.0, 7.0]}) == [80.0, 7.0]

    def test_polygon_outer_ring(self):
        geometry = {
            "type": "Polygon",
            "coordinates": [[[0, 0], [2, 0], [2, 2], [0, 2]]],
        }
        assert calculate_centroid(geometry) == [1, 1]

    def test_linestring(self):
        geometry = {"type": "LineString", "coordinates": [[0, 0], [4, 2]]}
        assert calculate_centroid(geometry) == [2, 1]

    def test_multipolygon_uses_first_polygon(self):
        geometry = {
            "type": "MultiPolygon",
            "coordinates": [
                [[[0, 0], [2, 0], [2, 2], [0, 2]]],
                [[[10, 10], [12, 10], [12, 12], [10, 12]]],
            ],
        }
        assert calculate_centroid(geometry) == [1, 1]

    def test_multilinestring_uses_first_line(self):
        geometry = {
            "type": "MultiLineString",
            "coordinates": [[[0, 0], [2, 2]], [[10, 10], [20, 20]]],
        }
        assert calculate_centroid(geometry) == [1, 1]

    def test_null_geometry(self):
        assert calculate_centroid(None) is None

    def test_empty_vertex_list(self):
        assert calculate_centroid({"type": "LineString", "coordinates": []}) is None
        assert calculate_centroid({"type": "Polygon", "coordinates": [[]]}) is None
        assert calculate_centroid({"type": "Polygon", "coordinates": []}) is None

    def test_unsupported_type(self):
        assert calculate_centroid({"type": "GeometryCollection", "geometries": []}) is None


# =========================
# Normalization Tests
# =========================
@pytest.mark.unit
class TestNormalizeFeature:
    """Test feature → Place mapping"""

    def test_extract_osm_type(self):
        assert extract_osm_type("way/123") == "way"
        assert extract_osm_type("123") == "unknown"
        assert extract_osm_type(None) == "unknown"

    def test_museum_node_end_to_end(self, museum_response):
        places = process_features(convert_to_geojson(museum_response))

        assert len(places) == 1
        place = places[0]
        assert place.osm_id == "node/1001"
        assert place.osm_type == "node"
        assert place.category == "tourism"
        assert place.subcategory == "museum"
        assert place.location == {"type": "Point", "coordinates": [80.0, 7.0]}
        assert place.name == "Colombo National Museum"

    def test_polygon_location_is_centroid(self):
        feature = Feature(
            id="way/1",
            geometry={"type": "Polygon", "coordinates": [[[0, 0], [2, 0], [2, 2], [0, 2]]]},
            properties={"type": "way", "id": 1, "tags": {"leisure": "park"}},
        )
        place = normalize_feature(feature)
        assert place.location == {"type": "Point", "coordinates": [1, 1]}
        assert place.geometry["type"] == "Polygon"

    def test_name_fallbacks(self):
        english = Feature("node/1", {"type": "Point", "coordinates": [0, 0]},
                          {"tags": {"name:en": "Temple of the Tooth", "historic": "temple"}})
        unnamed = Feature("node/2", {"type": "Point", "coordinates": [0, 0]},
                          {"tags": {"historic": "ruins"}})
        assert normalize_feature(english).name == "Temple of the Tooth"
        assert normalize_feature(unnamed).name == "Unnamed"

    def test_localized_names(self):
        feature = Feature("node/1", {"type": "Point", "coordinates": [0, 0]},
                          {"tags": {"name": "Sigiriya", "name:si": "සීගිරිය",
                                    "name:ta": "சிகிரியா"}})
        place = normalize_feature(feature)
        assert place.name_si == "සීගිරිය"
        assert place.name_ta == "சிகிரியா"

    def test_address_and_contact(self):
        feature = Feature("node/1", {"type": "Point", "coordinates": [0, 0]}, {"tags": {
            "tourism": "hotel",
            "addr:street": "Galle Road",
            "addr:city": "Colombo",
            "addr:postcode": "00300",
            "contact:phone": "+94 11 000 0000",
            "email": "info@example.lk",
            "website": "https://example.lk",
            "opening_hours": "24/7",
            "wheelchair": "yes",
            "description": "Seafront hotel",
        }})
        place = normalize_feature(feature)
        assert place.address.street == "Galle Road"
        assert place.address.city == "Colombo"
        assert place.address.postcode == "00300"
        assert place.address.country == "Sri Lanka"
        assert place.contact.phone == "+94 11 000 0000"
        assert place.contact.email == "info@example.lk"
        assert place.contact.website == "https://example.lk"
        assert place.opening_hours == "24/7"
        assert place.wheelchair == "yes"
        assert place.description == "Seafront hotel"
        assert place.source == "OpenStreetMap"

    def test_raw_tags_preserved(self):
        tags = {"tourism": "viewpoint", "ele": "2524", "note": "unusual tag"}
        feature = Feature("node/1", {"type": "Point", "coordinates": [0, 0]}, {"tags": tags})
        assert normalize_feature(feature).tags == tags

    def test_flat_properties_feature(self, museum_response):
        feature = convert_to_geojson(museum_response, flat_properties=True)[0]
        place = normalize_feature(feature)
        assert place.category == "tourism"
        assert place.osm_type == "node"
        assert "@id" not in place.tags

    def test_null_geometry_returns_none(self):
        feature = Feature("relation/1", None, {"tags": {"tourism": "attraction"}})
        assert normalize_feature(feature) is None

    def test_fetched_at_shared_across_batch(self, mixed_response, fetched_at):
        places = process_features(convert_to_geojson(mixed_response), fetched_at=fetched_at)
        assert {p.fetched_at for p in places} == {fetched_at}


@pytest.mark.unit
class TestProcessFeatures:
    """Test batch normalization"""

    def test_skips_features_without_location(self):
        features = [
            Feature("node/1", {"type": "Point", "coordinates": [80.0, 7.0]}, {"tags": {}}),
            Feature("relation/2", None, {"tags": {}}),
            Feature("way/3", {"type": "LineString", "coordinates": []}, {"tags": {}}),
            Feature("way/4", {"type": "LineString", "coordinates": [[0, 0], [2, 2]]}, {"tags": {}}),
        ]
        places = process_features(features)
        assert [p.osm_id for p in places] == ["node/1", "way/4"]

    def test_accepts_feature_collection_dict(self, museum_response):
        collection = feature_collection_to_dict(convert_to_geojson(museum_response))
        places = process_features(collection)
        assert len(places) == 1
        assert places[0].osm_id == "node/1001"

    def test_mixed_graph(self, mixed_response):
        places = {p.osm_id: p for p in process_features(convert_to_geojson(mixed_response))}

        assert set(places) == {"node/1", "way/10", "way/20", "relation/30"}
        assert places["way/20"].location["coordinates"] == [2.0, 1.0]
        assert places["way/10"].category == "leisure"
        assert places["relation/30"].category == "natural"
        assert places["relation/30"].subcategory == "beach"

    def test_location_is_always_point(self, mixed_response):
        for place in process_features(convert_to_geojson(mixed_response)):
            assert place.location["type"] == "Point"
