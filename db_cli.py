#!/usr/bin/env python3
"""
Database CLI for OSM Miner
Commands for initializing, inspecting, and querying the MongoDB places collection
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from osm_miner import config
from osm_miner.utils import StorageError, write_json
from osm_miner.database import PlaceStore, PlaceQueries, stats_to_frame


def _store(args) -> PlaceStore:
    return PlaceStore(uri=args.uri, database=args.database)


def _print_places(places):
    for place in places:
        coords = (place.get("location") or {}).get("coordinates")
        line = f"   {place.get('osm_id')}  {place.get('name')}  [{place.get('subcategory')}]"
        if coords:
            line += f"  @ {coords[1]:.5f},{coords[0]:.5f}"
        print(line)


def cmd_init(args):
    """Connect, create the collection and ensure indexes"""
    print(f"🗄️  Initializing MongoDB: {args.database or config.MONGODB_CONFIG['database']}")

    with _store(args) as store:
        count = store.count()

    print("✅ Database initialized!")
    print("   Indexes: location (2dsphere), text, category, subcategory, osm_id (unique), fetched_at")
    print(f"   Current places: {count:,}")
    return 0


def cmd_stats(args):
    """Show collection statistics"""
    with _store(args) as store:
        stats = PlaceQueries(store).get_stats()

    frames = stats_to_frame(stats)
    print(f"📊 Total places: {stats.total:,}")
    print("\nBy Category:")
    print(frames["by_category"].to_string(index=False))
    print("\nTop Subcategories:")
    print(frames["top_subcategories"].to_string(index=False))
    return 0


def cmd_export(args):
    """Export the collection as GeoJSON"""
    output_path = Path(args.output) if args.output else config.get_output_path(
        "export", "places.geojson"
    )

    with _store(args) as store:
        collection = PlaceQueries(store).export_as_geojson()

    write_json(output_path, collection)
    print(f"✅ Exported {len(collection['features']):,} places to {output_path}")
    return 0


def cmd_search(args):
    """Full-text search"""
    with _store(args) as store:
        places = PlaceQueries(store).search(
            args.text, category=args.category, limit=args.limit
        )

    print(f"\n🔎 {len(places)} results for '{args.text}':")
    _print_places(places)
    return 0


def cmd_near(args):
    """Places near a coordinate"""
    with _store(args) as store:
        places = PlaceQueries(store).find_near(
            args.lon, args.lat, max_distance=args.radius
        )

    print(f"\n📍 {len(places)} places within {args.radius:g} m:")
    _print_places(places)
    return 0


def cmd_clear(args):
    """Delete every document in the collection"""
    if not args.yes:
        print("❌ Refusing to clear the collection without --yes")
        return 1

    with _store(args) as store:
        deleted = store.clear_collection()

    print(f"✅ Deleted {deleted:,} documents")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="OSM Miner Database CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Initialize collection and indexes
  python db_cli.py init

  # Show statistics
  python db_cli.py stats

  # Search and proximity queries
  python db_cli.py search "Sigiriya" --category tourism --limit 5
  python db_cli.py near 79.8612 6.9271 --radius 2000

  # Export as GeoJSON
  python db_cli.py export --output places.geojson

  # Remove all places
  python db_cli.py clear --yes
        """
    )

    parser.add_argument("--uri", help="MongoDB URI (default: MONGODB_URI)")
    parser.add_argument("--database", help="Database name (default: MONGODB_DATABASE)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Init command
    subparsers.add_parser("init", help="Create collection and indexes")

    # Stats command
    subparsers.add_parser("stats", help="Show collection statistics")

    # Export command
    export_parser = subparsers.add_parser("export", help="Export places as GeoJSON")
    export_parser.add_argument("--output", help="Output file path (.geojson)")

    # Search command
    search_parser = subparsers.add_parser("search", help="Full-text search")
    search_parser.add_argument("text", help="Text to search for")
    search_parser.add_argument("--category", choices=config.CATEGORY_KEYS + ["other"])
    search_parser.add_argument("--limit", type=int, default=20)

    # Near command
    near_parser = subparsers.add_parser("near", help="Find places near a coordinate")
    near_parser.add_argument("lon", type=float, help="Longitude")
    near_parser.add_argument("lat", type=float, help="Latitude")
    near_parser.add_argument("--radius", type=float, default=5000,
                             help="Maximum distance in meters")

    # Clear command
    clear_parser = subparsers.add_parser("clear", help="Delete all places")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    args = parser.parse_args()

    # Setup logging
    config.setup_logging(debug=args.debug)

    if not args.command:
        parser.print_help()
        return 1

    # Route to command
    commands = {
        "init": cmd_init,
        "stats": cmd_stats,
        "export": cmd_export,
        "search": cmd_search,
        "near": cmd_near,
        "clear": cmd_clear,
    }

    try:
        return commands[args.command](args)
    except StorageError as e:
        print(f"❌ Database error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
