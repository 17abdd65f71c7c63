"""
Pytest configuration and shared fixtures
"""
import pytest
import sys
from pathlib import Path
import tempfile
import shutil
from datetime import datetime, timezone
from unittest.mock import MagicMock

import mongomock
from pymongo import ASCENDING

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from osm_miner.query_builder import BoundingBox
from osm_miner.database import manager as manager_module
from osm_miner.database import PlaceStore, Place, Address, Contact


# =========================
# Pytest Configuration
# =========================
def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no network or database)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (in-memory MongoDB, file output)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (threaded scheduler, real waits)"
    )


# =========================
# Directory Fixtures
# =========================
@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


# =========================
# Query Fixtures
# =========================
@pytest.fixture
def small_bbox():
    """Bounding box around Colombo"""
    return BoundingBox(south=6.8, west=79.8, north=7.0, east=80.0)


@pytest.fixture
def small_tag_config():
    return {
        "tourism": ["museum", "hotel"],
        "amenity": ["cafe"],
        "historic": ["ruins"],
    }


# =========================
# Overpass Response Fixtures
# =========================
@pytest.fixture
def museum_response():
    """One standalone museum node"""
    return {
        "version": 0.6,
        "generator": "Overpass API",
        "osm3s": {"timestamp_osm_base": "2024-05-01T00:00:00Z"},
        "elements": [
            {
                "type": "node",
                "id": 1001,
                "lat": 7.0,
                "lon": 80.0,
                "tags": {"tourism": "museum", "name": "Colombo National Museum"},
            }
        ],
    }


@pytest.fixture
def mixed_response():
    """
    Node, closed way, open way and a multipolygon relation

    Way nodes are untagged skeleton nodes, as returned by `>; out skel qt;`.
    """
    return {
        "elements": [
            # tagged standalone node
            {"type": "node", "id": 1, "lat": 7.0, "lon": 80.0,
             "tags": {"tourism": "museum", "name": "Museum"}},
            # closed way (park)
            {"type": "way", "id": 10, "nodes": [11, 12, 13, 14, 11],
             "tags": {"leisure": "park", "name": "Viharamahadevi Park"}},
            # open way (trail)
            {"type": "way", "id": 20, "nodes": [21, 22, 23],
             "tags": {"tourism": "attraction", "name": "Trail"}},
            # multipolygon built from two untagged ways
            {"type": "relation", "id": 30,
             "members": [
                 {"type": "way", "ref": 31, "role": "outer"},
                 {"type": "way", "ref": 32, "role": "outer"},
             ],
             "tags": {"type": "multipolygon", "natural": "beach", "name": "Beach"}},
            {"type": "way", "id": 31, "nodes": [41, 42, 43]},
            {"type": "way", "id": 32, "nodes": [43, 44, 41]},
            # skeleton nodes
            {"type": "node", "id": 11, "lat": 0.0, "lon": 0.0},
            {"type": "node", "id": 12, "lat": 0.0, "lon": 2.0},
            {"type": "node", "id": 13, "lat": 2.0, "lon": 2.0},
            {"type": "node", "id": 14, "lat": 2.0, "lon": 0.0},
            {"type": "node", "id": 21, "lat": 1.0, "lon": 1.0},
            {"type": "node", "id": 22, "lat": 1.0, "lon": 2.0},
            {"type": "node", "id": 23, "lat": 1.0, "lon": 3.0},
            {"type": "node", "id": 41, "lat": 0.0, "lon": 10.0},
            {"type": "node", "id": 42, "lat": 0.0, "lon": 12.0},
            {"type": "node", "id": 43, "lat": 2.0, "lon": 12.0},
            {"type": "node", "id": 44, "lat": 2.0, "lon": 10.0},
        ]
    }


# =========================
# Place Fixtures
# =========================
@pytest.fixture
def fetched_at():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_place(fetched_at):
    """Factory for Place records"""
    def _make(osm_id="node/1", name="Museum", category="tourism",
              subcategory="museum", lon=80.0, lat=7.0, **kwargs):
        return Place(
            osm_id=osm_id,
            osm_type=osm_id.split("/")[0],
            name=name,
            category=category,
            subcategory=subcategory,
            location={"type": "Point", "coordinates": [lon, lat]},
            geometry=kwargs.pop(
                "geometry", {"type": "Point", "coordinates": [lon, lat]}
            ),
            tags=kwargs.pop("tags", {category: subcategory, "name": name}),
            address=kwargs.pop("address", Address(city="Colombo", country="Sri Lanka")),
            contact=kwargs.pop("contact", Contact(phone="+94 11 000 0000")),
            fetched_at=fetched_at,
            **kwargs
        )
    return _make


# =========================
# MongoDB Fixtures
# =========================
@pytest.fixture
def mongo_store(monkeypatch):
    """PlaceStore backed by an in-memory mongomock client"""
    # mongomock does not evaluate geo/text indexes; keep the ascending ones
    monkeypatch.setattr(
        manager_module,
        "PLACE_INDEXES",
        [
            ([("category", ASCENDING)], {}),
            ([("osm_id", ASCENDING)], {"unique": True}),
        ],
    )
    store = PlaceStore(
        uri="mongodb://localhost:27017",
        database="test_db",
        collection="places",
        client_factory=mongomock.MongoClient,
        apply_validator=False,
    )
    store.connect()
    store.clear_collection()
    yield store
    store.clear_collection()
    store.close()


@pytest.fixture
def mock_collection():
    """MagicMock standing in for a pymongo collection"""
    collection = MagicMock()
    collection.name = "places"
    return collection


@pytest.fixture
def connected_mock_store(mock_collection):
    """PlaceStore whose collection is a MagicMock"""
    store = PlaceStore(uri="mongodb://test", database="db", collection="places")
    store._collection = mock_collection
    return store
