"""Command line entrypoint for the places sync pipeline."""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from places_sync.core.db import PostgresPlaceStore, init_pool, init_schema
from places_sync.core.store import PlaceStore, SyncRunInProgress
from places_sync.jobs.match_places import match_and_enrich_places
from places_sync.jobs.sweep_places import (
    get_place_matching_stats,
    inactivate_unmatched_places,
    reclassify_worship_places,
    reverify_all_places,
)
from places_sync.jobs.sync_places import import_from_google, import_from_yelp

logger = logging.getLogger(__name__)

EXIT_RUN_IN_PROGRESS = 3


def get_store() -> PlaceStore:
    init_pool()
    return PostgresPlaceStore()


def _run(args: argparse.Namespace) -> Optional[Dict[str, Any]]:
    if args.command == "init-db":
        init_pool()
        init_schema()
        return None

    store = get_store()
    if args.command == "import-google":
        return import_from_google(args.cities, store=store).to_dict()
    if args.command == "import-yelp":
        return import_from_yelp(args.cities, store=store).to_dict()
    if args.command == "match":
        return match_and_enrich_places(args.limit, store=store).to_dict()
    if args.command == "reverify":
        return reverify_all_places(store=store).to_dict()
    if args.command == "inactivate-unmatched":
        return inactivate_unmatched_places(store=store).to_dict()
    if args.command == "reclassify-worship":
        return reclassify_worship_places(store=store).to_dict()
    if args.command == "stats":
        return get_place_matching_stats(store=store).to_dict()
    raise ValueError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="places-sync", description="Import, match and verify directory places")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the places table and indexes")
    for name, provider in (("import-google", "Google Places"), ("import-yelp", "Yelp")):
        sub = subparsers.add_parser(name, help=f"Import places from {provider}")
        sub.add_argument(
            "--city",
            dest="cities",
            action="append",
            help="City to search (repeatable); defaults to SYNC_CITIES",
        )
    match = subparsers.add_parser("match", help="Attach missing provider ids and merge duplicates")
    match.add_argument("--limit", dest="limit", type=int, help="Maximum number of places to process")
    subparsers.add_parser("reverify", help="Re-check every Google-linked place")
    subparsers.add_parser("inactivate-unmatched", help="Deactivate places unmatched past the retention window")
    subparsers.add_parser("reclassify-worship", help="Fix places of worship typed as restaurants")
    subparsers.add_parser("stats", help="Print matching statistics")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "limit", None) is not None and args.limit <= 0:
        parser.error("--limit must be positive")

    try:
        result = _run(args)
    except SyncRunInProgress as exc:
        logger.error("%s", exc)
        return EXIT_RUN_IN_PROGRESS

    if result is not None:
        print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
