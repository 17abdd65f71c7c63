"""
Central configuration for OSM Miner
Handles all environment variables, paths, and settings
"""
import os
from pathlib import Path
from typing import Optional, List, Dict
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


# =========================
# Base Paths
# =========================
PROJECT_ROOT = Path(__file__).resolve().parents[2]
OUTPUT_DIR = Path(os.getenv("OSM_OUTPUT_DIR", PROJECT_ROOT / "output"))
LOGS_DIR = PROJECT_ROOT / "logs"

# Ensure critical directories exist
for dir_path in [OUTPUT_DIR, LOGS_DIR]:
    dir_path.mkdir(parents=True, exist_ok=True)

# =========================
# Overpass API Settings
# =========================
OVERPASS_CONFIG = {
    "api_url": os.getenv(
        "OVERPASS_API_URL", "https://overpass-api.de/api/interpreter"
    ),
    # HTTP timeout in seconds; None relies on the [timeout:N] query hint
    "timeout": _env_float("OVERPASS_REQUEST_TIMEOUT", None),
    "delay_seconds": 2.0,  # Pause between per-category requests
    "query_timeout": 180,  # [timeout:N] for single-category queries
    "comprehensive_query_timeout": 300,  # Floor for composite queries
    "seconds_per_clause": 2,  # Composite budget grows with clause count
}

# =========================
# Bounding Box (Sri Lanka)
# =========================
# Format: south, west, north, east
BBOX = {
    "south": _env_float("BBOX_SOUTH", 5.916),
    "west": _env_float("BBOX_WEST", 79.652),
    "north": _env_float("BBOX_NORTH", 9.836),
    "east": _env_float("BBOX_EAST", 81.879),
}

# =========================
# Tag Selectors
# =========================
# Priority order matters: it is also the category resolution order
CATEGORY_KEYS: List[str] = ["tourism", "amenity", "historic", "natural", "leisure"]

TAG_CONFIG: Dict[str, List[str]] = {
    "tourism": [
        "attraction",
        "hotel",
        "museum",
        "viewpoint",
        "guest_house",
        "hostel",
        "motel",
        "camp_site",
        "caravan_site",
        "chalet",
        "alpine_hut",
        "wilderness_hut",
        "information",
        "picnic_site",
        "zoo",
        "theme_park",
        "artwork",
        "gallery",
    ],
    "amenity": [
        "restaurant",
        "cafe",
        "bar",
        "fast_food",
        "bank",
        "atm",
        "pharmacy",
        "hospital",
        "parking",
        "fuel",
        "bus_station",
        "taxi",
    ],
    "historic": [
        "monument",
        "memorial",
        "castle",
        "ruins",
        "archaeological_site",
        "fort",
        "temple",
    ],
    "natural": ["beach", "peak", "waterfall", "hot_spring", "cave_entrance"],
    "leisure": [
        "park",
        "garden",
        "nature_reserve",
        "beach_resort",
        "water_park",
        "swimming_pool",
    ],
}

# =========================
# MongoDB Settings
# =========================
MONGODB_CONFIG = {
    "uri": os.getenv("MONGODB_URI", "mongodb://localhost:27017"),
    "database": os.getenv("MONGODB_DATABASE", "tourism_db"),
    "collection": os.getenv("MONGODB_COLLECTION", "places"),
}

# =========================
# Sync Settings
# =========================
FETCH_INTERVAL_HOURS = _env_float("FETCH_INTERVAL_HOURS", 24)

# =========================
# Normalization Settings
# =========================
ADDRESS_COUNTRY = os.getenv("ADDRESS_COUNTRY", "Sri Lanka")
DATA_SOURCE = "OpenStreetMap"
UNNAMED_PLACE = "Unnamed"

# =========================
# Logging Configuration
# =========================
LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "detailed",
            "filename": str(LOGS_DIR / "osm_miner.log"),
            "mode": "a",
        },
    },
    "loggers": {
        "osm_miner": {
            "level": "DEBUG",
            "handlers": ["console", "file"],
            "propagate": False,
        }
    },
    "root": {"level": "INFO", "handlers": ["console", "file"]},
}


# =========================
# Helper Functions
# =========================
def get_output_path(
    step: str,
    filename: str,
    output_dir: Optional[Path] = None
) -> Path:
    """
    Get standardized output path for a pipeline step

    Args:
        step: Pipeline step name ('geojson', 'processed', 'export')
        filename: Output filename
        output_dir: Optional custom output directory

    Returns:
        Path object for output file
    """
    if output_dir is None:
        output_dir = OUTPUT_DIR

    step_dir = output_dir / step
    step_dir.mkdir(parents=True, exist_ok=True)

    return step_dir / filename


def setup_logging(debug: bool = False):
    """Apply LOG_CONFIG, lowering the console level in debug mode"""
    import copy
    import logging.config

    log_config = copy.deepcopy(LOG_CONFIG)
    if debug:
        log_config["handlers"]["console"]["level"] = "DEBUG"
    logging.config.dictConfig(log_config)


# =========================
# Environment Info
# =========================
def print_config_summary():
    """Print configuration summary for debugging"""
    print("=" * 60)
    print("OSM Miner Configuration")
    print("=" * 60)
    print(f"Project Root: {PROJECT_ROOT}")
    print(f"Output Directory: {OUTPUT_DIR}")
    print(f"Logs Directory: {LOGS_DIR}")
    print(f"\nOverpass API: {OVERPASS_CONFIG['api_url']}")
    print(
        f"Bounding Box: {BBOX['south']},{BBOX['west']},"
        f"{BBOX['north']},{BBOX['east']}"
    )
    print(f"MongoDB: {MONGODB_CONFIG['database']}/{MONGODB_CONFIG['collection']}")
    print("\nTag selectors:")
    for category in CATEGORY_KEYS:
        print(f"  {category}: {len(TAG_CONFIG[category])} values")
    print(f"\nFetch Interval: {FETCH_INTERVAL_HOURS} hours")
    print("=" * 60)


if __name__ == "__main__":
    print_config_summary()
