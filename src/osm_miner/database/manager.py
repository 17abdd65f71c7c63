"""
Place store for OSM Miner
Handles the MongoDB connection, indexes, and idempotent upserts
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Callable

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import CollectionInvalid, PyMongoError

from .. import config
from ..utils import StorageError, create_progress_bar
from .models import (
    Place, StorageResult, PLACE_INDEXES, PLACE_VALIDATOR, validate_document
)

logger = logging.getLogger(__name__)


class PlaceStore:
    """
    Manages the MongoDB places collection

    Features:
    - Explicit connection lifecycle (connect/close, context manager)
    - Geospatial, text, category and unique-id indexes
    - Upsert keyed by osm_id with insert-only created_at
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        client_factory: Callable[..., MongoClient] = MongoClient,
        apply_validator: bool = True
    ):
        """
        Initialize place store

        Args:
            uri: MongoDB connection string (uses config if None)
            database: Database name (uses config if None)
            collection: Collection name (uses config if None)
            client_factory: Callable returning a MongoClient for the uri
            apply_validator: Create the collection with the schema validator
        """
        self.uri = uri or config.MONGODB_CONFIG["uri"]
        self.database_name = database or config.MONGODB_CONFIG["database"]
        self.collection_name = collection or config.MONGODB_CONFIG["collection"]
        self.client_factory = client_factory
        self.apply_validator = apply_validator
        self._client: Optional[MongoClient] = None
        self._collection: Optional[Collection] = None

    @property
    def connected(self) -> bool:
        return self._collection is not None

    @property
    def collection(self) -> Collection:
        """Active collection; raises when the store is not connected"""
        if self._collection is None:
            raise StorageError("Not connected to MongoDB")
        return self._collection

    def connect(self):
        """Open the connection and ensure schema and indexes"""
        logger.info("Connecting to MongoDB...")
        try:
            self._client = self.client_factory(self.uri)
            db = self._client[self.database_name]
            self._ensure_collection(db)
            self._collection = db[self.collection_name]
        except PyMongoError as e:
            logger.error(f"Error connecting to MongoDB: {e}")
            self.close()
            raise StorageError(f"Connection failed: {e}") from e

        logger.info(
            f"Connected to MongoDB: {self.database_name}/{self.collection_name}"
        )
        self.create_indexes()

    def close(self):
        """Close the connection"""
        if self._client is not None:
            self._client.close()
            logger.info("Disconnected from MongoDB")
        self._client = None
        self._collection = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # =========================
    # Schema Management
    # =========================
    def _ensure_collection(self, db):
        if not self.apply_validator:
            return
        if self.collection_name in db.list_collection_names():
            return
        try:
            db.create_collection(self.collection_name, validator=PLACE_VALIDATOR)
            logger.info(f"Created collection {self.collection_name} with validator")
        except CollectionInvalid:
            # created concurrently
            pass
        except PyMongoError as e:
            logger.warning(f"Could not create collection validator: {e}")

    def create_indexes(self) -> int:
        """
        Create indexes for efficient querying

        Failures are logged; the store stays usable without them.

        Returns:
            Number of indexes created or confirmed
        """
        logger.info("Creating indexes...")
        created = 0
        for keys, options in PLACE_INDEXES:
            try:
                self.collection.create_index(keys, **options)
                created += 1
            except PyMongoError as e:
                logger.error(f"Error creating index {keys}: {e}")

        logger.info(f"Indexes ready: {created}/{len(PLACE_INDEXES)}")
        return created

    # =========================
    # Place Operations
    # =========================
    def upsert_place(self, place: Place) -> str:
        """
        Insert or update a place by osm_id

        Returns:
            "inserted", "updated" or "unchanged"

        Raises:
            StorageError: If the document fails validation
            PyMongoError: If the write fails
        """
        doc = place.to_document()
        problems = validate_document(doc)
        if problems:
            raise StorageError("; ".join(problems))

        result = self.collection.update_one(
            {"osm_id": doc["osm_id"]},
            {
                "$set": doc,
                "$setOnInsert": {"created_at": datetime.now(timezone.utc)},
            },
            upsert=True,
        )

        if result.upserted_id is not None:
            return "inserted"
        if result.modified_count > 0:
            return "updated"
        return "unchanged"

    def store_features(
        self,
        places: List[Place],
        show_progress: bool = False
    ) -> StorageResult:
        """
        Store processed places, one upsert per record

        A failing record is counted in `errors` and the batch continues.

        Args:
            places: Normalized places
            show_progress: Display a progress bar

        Returns:
            StorageResult with inserted/updated/error counts
        """
        collection = self.collection  # fail fast when not connected
        results = StorageResult()

        logger.info(f"Storing {len(places)} features in {collection.name}...")
        progress = create_progress_bar(
            len(places), desc="Storing places", enabled=show_progress
        )

        for place in places:
            try:
                outcome = self.upsert_place(place)
                if outcome == "inserted":
                    results.inserted += 1
                elif outcome == "updated":
                    results.updated += 1
            except (StorageError, PyMongoError) as e:
                logger.error(f"Error storing feature {place.osm_id}: {e}")
                results.errors += 1
            progress.update(1)

        progress.close()

        logger.info(
            f"Storage complete: {results.inserted} inserted, "
            f"{results.updated} updated, {results.errors} errors"
        )
        return results

    def get_place(self, osm_id: str) -> Optional[dict]:
        """Get a stored place by osm_id"""
        return self.collection.find_one({"osm_id": osm_id})

    def count(self) -> int:
        return self.collection.count_documents({})

    def clear_collection(self) -> int:
        """Delete all documents from the collection"""
        result = self.collection.delete_many({})
        logger.info(f"Deleted {result.deleted_count} documents from collection")
        return result.deleted_count
