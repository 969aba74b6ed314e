#!/usr/bin/env python3
"""
CLI for the Texas TDSP Resolution Engine.

Usage:
    python run_engine.py 75205
    python run_engine.py 75001 --address "1234 Main St"
    python run_engine.py --batch zips.csv --output results.csv
    python run_engine.py 77840 --no-probe -v
"""

import argparse
import csv
import json
import logging
import sys

from tdsp_engine.config import Config
from tdsp_engine.engine import ResolutionEngine
from tdsp_engine.errors import ResolutionError


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def single_lookup(engine: ResolutionEngine, zip_code: str, address: str = None, usage: int = None) -> int:
    """Resolve one ZIP and print the JSON outcome. Returns the exit code."""
    try:
        outcome = engine.analyze(zip_code, address=address, usage=usage)
    except ResolutionError as e:
        print(json.dumps({"error": e.to_dict()}, indent=2))
        return 2
    print(json.dumps(outcome.to_dict(), indent=2))
    return 0


def _find_column(fieldnames, candidates, default=None):
    for col in fieldnames or []:
        if col.lower() in candidates:
            return col
    return default


def batch_lookup(engine: ResolutionEngine, input_csv: str, output_csv: str):
    """Resolve every row of a CSV with a ZIP column (and optional address column)."""
    with open(input_csv, "r", newline="") as f:
        reader = csv.DictReader(f)
        zip_col = _find_column(reader.fieldnames, ("zip", "zip_code", "zipcode"),
                               (reader.fieldnames or ["zip"])[0])
        addr_col = _find_column(reader.fieldnames, ("address", "street", "full_address"))
        rows = [
            ((row.get(zip_col) or "").strip(), (row.get(addr_col) or "").strip() if addr_col else "")
            for row in reader
        ]

    print(f"Loaded {len(rows)} rows from {input_csv}")

    with open(output_csv, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "zip_code", "address", "status", "tdsp_name", "tdsp_duns",
            "method", "confidence", "alternatives", "detail",
        ])
        for zip_code, address in rows:
            try:
                outcome = engine.analyze(zip_code, address=address or None)
            except ResolutionError as e:
                writer.writerow([zip_code, address, "error", "", "", "", "", "", e.kind.value])
                continue
            d = outcome.to_dict()
            if d["status"] == "resolved":
                writer.writerow([
                    zip_code, address, d["status"], d["tdsp"]["name"], d["tdsp"]["duns"],
                    d["method"], d["confidence"],
                    "; ".join(a["name"] for a in d["alternatives"]), d["notes"],
                ])
            elif d["status"] == "municipal_utility":
                writer.writerow([zip_code, address, d["status"], d["utility_name"], "",
                                 "", "", "", d["utility_kind"]])
            else:
                writer.writerow([zip_code, address, d["status"], "", "", "", "", "", d["reason"]])

    print(f"Wrote {len(rows)} results to {output_csv}")


def main():
    parser = argparse.ArgumentParser(description="Texas TDSP Resolution Engine")
    parser.add_argument("zip", nargs="?", help="5-digit Texas ZIP code")
    parser.add_argument("--address", help="Street address (used for boundary ZIPs)")
    parser.add_argument("--usage", type=int, default=None, help="Monthly usage in kWh (100-5000)")
    parser.add_argument("--batch", help="Input CSV file for batch processing")
    parser.add_argument("--output", default="results.csv", help="Output CSV for batch mode")
    parser.add_argument("--no-probe", action="store_true", help="Disable the dynamic pricing probe")
    parser.add_argument("--no-cache", action="store_true", help="Disable cache")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    if not args.zip and not args.batch:
        parser.print_help()
        sys.exit(1)

    config = Config.from_env()
    if args.no_probe:
        config.enable_dynamic_probe = False
    if args.no_cache:
        config.cache_backend = "none"

    engine = ResolutionEngine(config)

    if args.batch:
        batch_lookup(engine, args.batch, args.output)
    else:
        sys.exit(single_lookup(engine, args.zip, args.address, args.usage))


if __name__ == "__main__":
    main()
