"""
Shared utilities for OSM Miner
Contains the Overpass API client, custom exceptions, and file helpers
"""
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import requests
from tqdm import tqdm

from . import config

logger = logging.getLogger(__name__)


# =========================
# Custom Exceptions
# =========================
class OsmMiningError(Exception):
    """Base exception for OSM Miner errors"""
    pass


class TransportError(OsmMiningError):
    """Raised when the Overpass request fails or returns a non-success status"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(OsmMiningError):
    """Raised when an Overpass response is not well-formed"""
    pass


class StorageError(OsmMiningError):
    """Raised for MongoDB connection and document errors"""
    pass


class InvalidBoundingBoxError(ValueError):
    """Raised when bounding box coordinates are inconsistent"""
    pass


# =========================
# Overpass API Client
# =========================
class OverpassClient:
    """
    Client for the Overpass API

    Executes one query per call. Errors surface to the caller; there is
    no retry at this level.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
        debug: bool = False
    ):
        """
        Initialize Overpass client

        Args:
            api_url: Overpass interpreter endpoint (uses config if None)
            timeout: HTTP timeout in seconds (uses config if None)
            session: Optional requests session to reuse connections
            debug: Enable debug logging
        """
        self.api_url = api_url or config.OVERPASS_CONFIG["api_url"]
        self.timeout = (
            timeout if timeout is not None else config.OVERPASS_CONFIG["timeout"]
        )
        self.session = session or requests.Session()
        self.debug = debug

    def request(self, query: str) -> Dict[str, Any]:
        """
        POST a query and return the decoded JSON body

        Args:
            query: Overpass QL query

        Returns:
            Decoded response body

        Raises:
            TransportError: On network failure or non-2xx status
            ParseError: If the body is not JSON
        """
        logger.info("Executing Overpass query...")
        logger.debug(f"Query: {query[:200]}...")

        try:
            response = self.session.post(
                self.api_url,
                data={"data": query},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Error fetching data from Overpass API: {e}")
            raise TransportError(f"Request failed: {e}") from e

        if not response.ok:
            logger.error(f"Overpass API returned HTTP {response.status_code}")
            raise TransportError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ParseError(f"Response is not valid JSON: {e}") from e

        if self.debug:
            logger.debug(f"Overpass request successful: {self.api_url}")

        return data

    def execute_query(self, query: str):
        """
        Execute a query and parse the element graph

        Args:
            query: Overpass QL query

        Returns:
            OsmResponse with parsed elements
        """
        from .transformers.osm_to_geojson import OsmResponse

        data = self.request(query)
        osm_response = OsmResponse.from_dict(data)
        logger.info(
            f"Received {len(osm_response.elements)} elements from Overpass API"
        )
        return osm_response


# =========================
# JSON Utilities
# =========================
def read_json(file_path: Path) -> Dict[str, Any]:
    """
    Read JSON file safely

    Args:
        file_path: Path to JSON file

    Returns:
        Dictionary (empty if file doesn't exist or is invalid)
    """
    if not file_path.exists():
        return {}

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read JSON {file_path}: {e}")
        return {}


def write_json(file_path: Path, data: Any, atomic: bool = True):
    """
    Write JSON file safely

    Datetimes and other non-JSON values are written as strings.

    Args:
        file_path: Path to output file
        data: Data to write
        atomic: Use atomic write (write to temp, then rename)
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    if atomic:
        temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
        temp_path.replace(file_path)
    else:
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)


# =========================
# Progress Tracking
# =========================
def create_progress_bar(total: int, desc: str = "Processing", enabled: bool = True):
    """
    Create a tqdm progress bar

    Args:
        total: Total items
        desc: Description
        enabled: Render the bar (a disabled bar still accepts updates)

    Returns:
        tqdm progress bar
    """
    return tqdm(total=total, desc=desc, disable=not enabled)
