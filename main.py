"""
main.py — CLI entry point for the flood risk engine.

Usage:
    python main.py --lat 18.34 --lon -64.93
    python main.py --parcel "Estate Bovoni" --data-dir data
    python main.py --lat 18.34 --lon -64.93 --output summary.json
"""

import argparse
import json
import logging
import os
import sys

from floodrisk.engine import FloodRiskEngine


def main():
    parser = argparse.ArgumentParser(
        prog="floodrisk",
        description="Flood zone, shelter and insurance summary for a location",
        epilog="Example: python main.py --lat 18.34 --lon -64.93",
    )
    parser.add_argument("--lat", type=float, help="Latitude of the query point")
    parser.add_argument("--lon", type=float, help="Longitude of the query point")
    parser.add_argument(
        "--parcel", "-p",
        help="Parcel name to search for instead of a point",
        default=None,
    )
    parser.add_argument(
        "--data-dir", "-d",
        help="Directory with the GeoJSON files (overrides FLOODRISK_DATA_DIR)",
        default=None,
    )
    parser.add_argument(
        "--output", "-o",
        help="Path to write the JSON summary (optional)",
        default=None,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    if args.parcel is None and (args.lat is None or args.lon is None):
        parser.error("either --parcel or both --lat and --lon are required")

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if args.data_dir:
        os.environ["FLOODRISK_DATA_DIR"] = args.data_dir

    engine = FloodRiskEngine()
    state = engine.load()
    for category, message in state.load_errors.items():
        print(f"Warning: {category} unavailable: {message}", file=sys.stderr)

    if args.parcel is not None:
        summary = engine.resolver.summarize_parcel(args.parcel)
    else:
        summary = engine.resolver.summarize_point((args.lon, args.lat))

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, default=str)

    print(json.dumps(summary, indent=2, default=str))
    if summary["status"] not in ("ok", "no_parcel"):
        sys.exit(1)


if __name__ == "__main__":
    main()
