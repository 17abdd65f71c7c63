"""
Pipeline Orchestrator - Main CLI
Coordinates fetch → convert → normalize → store workflow
"""
import sys
import time
import logging
import threading
import argparse
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable

import pandas as pd
from pymongo.errors import PyMongoError

from . import config
from .fetch import OsmDataFetcher
from .utils import OsmMiningError, write_json
from .transformers import feature_collection_to_dict
from .database import PlaceStore, PlaceQueries

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


# =========================
# Pipeline Runner
# =========================
class Pipeline:
    """Orchestrates the full OSM mining pipeline"""

    def __init__(
        self,
        fetcher: Optional[OsmDataFetcher] = None,
        store_factory: Callable[[], PlaceStore] = PlaceStore,
        output_dir: Optional[Path] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        show_progress: bool = False,
        debug: bool = False
    ):
        """
        Initialize pipeline

        Args:
            fetcher: OSM data fetcher (built from config if None)
            store_factory: Callable returning an unconnected PlaceStore
            output_dir: Directory for GeoJSON/JSON/CSV artifacts
            delay_seconds: Pause between per-category requests
            sleep: Sleep function used for the pause
            show_progress: Display a progress bar while storing
            debug: Enable debug logging
        """
        self.debug = debug
        self.fetcher = fetcher or OsmDataFetcher(debug=debug)
        self.store_factory = store_factory
        self.output_dir = output_dir
        self.delay_seconds = (
            delay_seconds if delay_seconds is not None
            else config.OVERPASS_CONFIG["delay_seconds"]
        )
        self.sleep = sleep
        self.show_progress = show_progress

    def _output_path(self, step: str, filename: str) -> Path:
        return config.get_output_path(step, filename, output_dir=self.output_dir)

    def run_sync(self) -> Dict[str, Any]:
        """
        Run complete sync: fetch → backup → normalize → store → statistics

        Returns:
            Statistics dictionary with fetch, storage and collection stats

        Raises:
            TransportError, ParseError: If the fetch fails
            StorageError: If the store cannot be opened
        """
        stats: Dict[str, Any] = {}

        # ====================
        # Step 1: Fetch
        # ====================
        logger.info("=" * 60)
        logger.info("STEP 1: Fetching OSM data")
        logger.info("=" * 60)
        features = self.fetcher.fetch_all_data()
        stats["features"] = len(features)

        # ====================
        # Step 2: Backup
        # ====================
        backup_path = self._output_path(
            "geojson", f"osm-places-{_timestamp()}.geojson"
        )
        write_json(backup_path, feature_collection_to_dict(features))
        logger.info(f"GeoJSON saved to: {backup_path}")
        stats["backup_file"] = str(backup_path)

        # ====================
        # Step 3: Normalize
        # ====================
        logger.info("=" * 60)
        logger.info("STEP 2: Processing features")
        logger.info("=" * 60)
        places = self.fetcher.process_features(features)
        stats["places"] = len(places)

        # ====================
        # Step 4: Store
        # ====================
        logger.info("=" * 60)
        logger.info("STEP 3: Storing in MongoDB")
        logger.info("=" * 60)
        with self.store_factory() as store:
            result = store.store_features(places, show_progress=self.show_progress)
            stats["storage"] = result.to_dict()
            stats["statistics"] = PlaceQueries(store).get_stats().to_dict()

        return stats

    def run_by_category(
        self,
        categories: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Sync one category at a time

        A failing category is logged and recorded; the remaining
        categories still run.

        Args:
            categories: Category names (defaults to all configured keys)

        Returns:
            {"categories": {name: stats}, "failures": {name: error},
             "statistics": collection stats}
        """
        categories = categories or list(config.CATEGORY_KEYS)
        stats: Dict[str, Any] = {"categories": {}, "failures": {}}

        with self.store_factory() as store:
            for i, category in enumerate(categories):
                if i > 0 and self.delay_seconds:
                    self.sleep(self.delay_seconds)

                try:
                    features = self.fetcher.fetch_by_category(category)
                    places = self.fetcher.process_features(features)
                    result = store.store_features(
                        places, show_progress=self.show_progress
                    )
                except (OsmMiningError, ValueError) as e:
                    logger.error(f"Error syncing {category}: {e}")
                    stats["failures"][category] = str(e)
                    continue

                stats["categories"][category] = {
                    "features": len(features),
                    "places": len(places),
                    "storage": result.to_dict(),
                }

            stats["statistics"] = PlaceQueries(store).get_stats().to_dict()

        return stats

    def fetch_to_files(
        self,
        categories: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Fetch without storage and write results to the output directory

        Writes one GeoJSON file per category, a combined GeoJSON file and
        the processed records as JSON and CSV.

        Returns:
            {"files": [paths], "failures": {name: error}}
        """
        categories = categories or ["tourism", "historic", "natural", "leisure"]
        files: List[str] = []
        failures: Dict[str, str] = {}

        for category in categories:
            logger.info(f"Fetching {category} data...")
            try:
                features = self.fetcher.fetch_by_category(category)
            except (OsmMiningError, ValueError) as e:
                logger.error(f"Error fetching {category}: {e}")
                failures[category] = str(e)
            else:
                if features:
                    path = self._output_path("geojson", f"places-{category}.geojson")
                    write_json(path, feature_collection_to_dict(features))
                    files.append(str(path))
                    logger.info(f"Saved {len(features)} features to {path.name}")
                else:
                    logger.info(f"No features found for {category}")

            self.sleep(self.delay_seconds)

        logger.info("Fetching all combined data...")
        try:
            features = self.fetcher.fetch_all_data()
        except OsmMiningError as e:
            logger.error(f"Error fetching all data: {e}")
            failures["all"] = str(e)
            return {"files": files, "failures": failures}

        all_path = self._output_path("geojson", "places-all.geojson")
        write_json(all_path, feature_collection_to_dict(features))
        files.append(str(all_path))
        logger.info(f"Saved {len(features)} total features to {all_path.name}")

        records = [p.to_dict() for p in self.fetcher.process_features(features)]
        json_path = self._output_path("processed", "places-processed.json")
        write_json(json_path, records)
        files.append(str(json_path))

        csv_path = self._output_path("processed", "places-processed.csv")
        df = pd.json_normalize(records)
        # Geometry and tag columns stay nested in the JSON output
        df = df.drop(
            columns=[c for c in df.columns if c.startswith(("geometry", "tags."))]
        )
        df.to_csv(csv_path, index=False)
        files.append(str(csv_path))
        logger.info(f"Saved {len(records)} processed records to {json_path.name}")

        return {"files": files, "failures": failures}


# =========================
# Periodic Sync
# =========================
class PeriodicSync:
    """
    Re-runs Pipeline.run_sync on a fixed wall-clock interval

    A cycle that would start while the previous one is still running is
    skipped. A failed cycle is counted and the schedule continues.
    """

    # Errors a cycle may raise without ending the schedule
    CYCLE_ERRORS = (OsmMiningError, PyMongoError, OSError)

    def __init__(self, pipeline: Pipeline, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self._lock = threading.Lock()
        self._counter_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._workers: List[threading.Thread] = []
        self.completed_cycles = 0
        self.skipped_cycles = 0
        self.failed_cycles = 0

    def _count(self, counter: str):
        with self._counter_lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def run_once(self) -> Optional[Dict[str, Any]]:
        """
        Run one sync cycle

        Returns:
            Cycle stats, or None when skipped or failed
        """
        if not self._lock.acquire(blocking=False):
            self._count("skipped_cycles")
            logger.warning("Previous sync still running, skipping this cycle")
            return None

        try:
            logger.info("[PERIODIC] Starting scheduled fetch...")
            stats = self.pipeline.run_sync()
            self._count("completed_cycles")
            return stats
        except self.CYCLE_ERRORS as e:
            self._count("failed_cycles")
            logger.error(f"[PERIODIC] Sync cycle failed: {type(e).__name__}: {e}")
            return None
        finally:
            self._lock.release()

    def run_forever(self, max_cycles: Optional[int] = None):
        """
        Run cycles in the calling thread until stopped

        Cycles start on a fixed schedule measured from the first one.

        Args:
            max_cycles: Stop after this many cycles (None runs until stop())
        """
        logger.info(
            f"Starting periodic OSM data fetching every "
            f"{self.interval_seconds / 3600:g} hours"
        )
        cycles = 0
        next_run = time.monotonic()
        while not self._stop.is_set():
            self.run_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            next_run += self.interval_seconds
            if self._stop.wait(max(0.0, next_run - time.monotonic())):
                break

    def _spawn_worker(self):
        # Each tick gets its own worker so a slow cycle cannot delay the clock
        worker = threading.Thread(target=self.run_once, daemon=True)
        self._workers = [w for w in self._workers if w.is_alive()] + [worker]
        worker.start()

    def _schedule(self):
        self._spawn_worker()
        while not self._stop.wait(self.interval_seconds):
            self._spawn_worker()

    def start(self):
        """Start the schedule in a background thread"""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._schedule, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop scheduling new cycles and wait for a running one to finish"""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        for worker in self._workers:
            worker.join(timeout)
        self._workers = []


# =========================
# CLI Commands
# =========================
def _print_statistics(statistics: Dict[str, Any]):
    print("\n" + "=" * 60)
    print("STATISTICS")
    print("=" * 60)
    print(f"Total places: {statistics['total']}")
    print("\nBy Category:")
    for row in statistics["by_category"]:
        print(f"  {row['id']}: {row['count']}")
    print("\nTop Subcategories:")
    for row in statistics["top_subcategories"][:10]:
        print(f"  {row['id']}: {row['count']}")


def cmd_sync(args) -> int:
    """Fetch and store OSM data"""
    pipeline = Pipeline(show_progress=True, debug=args.debug)

    if args.by_category or args.categories:
        stats = pipeline.run_by_category(args.categories)
        for category, failure in stats["failures"].items():
            print(f"❌ {category}: {failure}")
        for category, cat_stats in stats["categories"].items():
            storage = cat_stats["storage"]
            print(
                f"✓ {category}: {cat_stats['places']} places "
                f"({storage['inserted']} inserted, {storage['updated']} updated, "
                f"{storage['errors']} errors)"
            )
    else:
        stats = pipeline.run_sync()
        storage = stats["storage"]
        print("\n✅ Sync complete!")
        print(f"   Features: {stats['features']}")
        print(f"   Inserted: {storage['inserted']}")
        print(f"   Updated: {storage['updated']}")
        print(f"   Errors: {storage['errors']}")
        print(f"   Backup: {stats['backup_file']}")

    _print_statistics(stats["statistics"])
    return 1 if stats.get("failures") else 0


def cmd_fetch(args) -> int:
    """Fetch OSM data to files without MongoDB"""
    pipeline = Pipeline(output_dir=args.output_dir, debug=args.debug)
    result = pipeline.fetch_to_files(args.categories)

    print("\n✅ Fetching complete!")
    for path in result["files"]:
        print(f"   {path}")
    for category, failure in result["failures"].items():
        print(f"❌ {category}: {failure}")

    return 1 if result["failures"] else 0


def cmd_periodic(args) -> int:
    """Sync on a fixed interval"""
    pipeline = Pipeline(debug=args.debug)
    scheduler = PeriodicSync(pipeline, interval_seconds=args.interval_hours * 3600)

    try:
        scheduler.run_forever(max_cycles=args.max_cycles)
    except KeyboardInterrupt:
        print("\nStopping periodic sync")
        scheduler.stop()

    return 0


# =========================
# Main CLI
# =========================
def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="OSM Mining Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Fetch everything in one query and store in MongoDB
  python -m osm_miner.main sync

  # One query per category, with a pause between requests
  python -m osm_miner.main sync --by-category

  # Tourism only
  python -m osm_miner.main sync --categories tourism

  # Fetch to GeoJSON/JSON/CSV files, no MongoDB
  python -m osm_miner.main fetch --output-dir ./output

  # Re-sync every 24 hours
  python -m osm_miner.main periodic --interval-hours 24
        """
    )

    parser.add_argument("--debug", action="store_true", help="Debug mode")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ===== SYNC =====
    sync_parser = subparsers.add_parser("sync", help="Fetch and store places")
    sync_parser.add_argument("--by-category", action="store_true",
                             help="One query per category")
    sync_parser.add_argument("--categories", nargs="+",
                             choices=config.CATEGORY_KEYS,
                             help="Categories to sync (implies --by-category)")
    sync_parser.set_defaults(func=cmd_sync)

    # ===== FETCH =====
    fetch_parser = subparsers.add_parser("fetch",
                                         help="Fetch to files without MongoDB")
    fetch_parser.add_argument("--categories", nargs="+",
                              choices=config.CATEGORY_KEYS)
    fetch_parser.add_argument("--output-dir", type=Path,
                              help="Output directory")
    fetch_parser.set_defaults(func=cmd_fetch)

    # ===== PERIODIC =====
    periodic_parser = subparsers.add_parser("periodic",
                                            help="Sync on a fixed interval")
    periodic_parser.add_argument("--interval-hours", type=float,
                                 default=config.FETCH_INTERVAL_HOURS)
    periodic_parser.add_argument("--max-cycles", type=int,
                                 help="Stop after N cycles")
    periodic_parser.set_defaults(func=cmd_periodic)

    args = parser.parse_args(argv)

    # Setup logging
    config.setup_logging(debug=args.debug)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except OsmMiningError as e:
        logger.error(f"Error during OSM mining: {e}")
        print(f"❌ {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
