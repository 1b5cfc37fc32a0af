#!/usr/bin/env python3
"""Run the NDVI trend workflow and write its exports.

Writes the per-year CSV table, the time-series chart, and the
interactive difference map into the output directory.

Usage:
    python run_trend.py --output-dir out/

Example:
    python run_trend.py --start-year 2018 --end-year 2020 --per-feature -o out/
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

try:
    import ndvitrend as nt
except ImportError:
    print("Error: ndvitrend not installed. Run: pip install -e .")
    sys.exit(1)

from ndvitrend.config import build_config, resolve_config_path


def main() -> None:
    """Parse arguments and run the trend analysis."""
    parser = argparse.ArgumentParser(
        description="Seasonal NDVI trend for Punjab and Haryana from Landsat 8.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_trend.py -o out/
  python run_trend.py --config my_run.json --per-feature -o out/
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON configuration file (default: $NDVITREND_CONFIG or ~/.ndvitrend/config.json)",
    )
    parser.add_argument("--start-year", type=int, default=None, help="First year")
    parser.add_argument("--end-year", type=int, default=None, help="Last year")
    parser.add_argument("--start-month", type=int, default=None, help="First season month")
    parser.add_argument("--end-month", type=int, default=None, help="Last season month")
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for the exports (default: current directory)",
    )
    parser.add_argument(
        "--per-feature",
        action="store_true",
        help="Export one row per admin feature instead of the merged region",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides = {
        key: value
        for key, value in {
            "start_year": args.start_year,
            "end_year": args.end_year,
            "start_month": args.start_month,
            "end_month": args.end_month,
            "output_dir": args.output_dir,
        }.items()
        if value is not None
    }
    if args.per_feature:
        overrides["export_per_feature"] = True

    try:
        path = args.config or resolve_config_path()
        if path is not None:
            config = nt.load_config(path, **overrides)
        else:
            config = build_config(**overrides)

        result = nt.ndvi_trend(config)
        print(result)
        result.to_csv()
        result.to_png()
        result.to_html()
    except nt.NdviTrendError as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
