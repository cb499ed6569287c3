from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from typing import Any

from listing_metrics.core.batch import BatchConfig, run_intelligence_batch, run_proximity_batch, run_scores_batch
from listing_metrics.core.errors import NotFoundError
from listing_metrics.core.opportunities import find_project_opportunities
from listing_metrics.core.proximity import ProximitySynchronizer
from listing_metrics.core.supabase_repo import SupabaseRepo
from listing_metrics.core.valuation import refresh_listing_valuation


LOGGER = logging.getLogger(__name__)


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Operator recomputation of listing proximity and valuation.")
    sub = parser.add_subparsers(dest="command", required=True)

    listing = sub.add_parser("listing", help="Resync POI distances and valuation for one listing.")
    listing.add_argument("listing_id")

    poi = sub.add_parser("poi", help="Refresh distance rows of one POI against all listings.")
    poi.add_argument("poi_id")

    repair = sub.add_parser("repair", help="Re-derive nearest-of-category fields from stored distances.")
    repair.add_argument("listing_ids", nargs="+")

    proximity = sub.add_parser("proximity", help="Rebuild POI distances for every listing.")
    proximity.add_argument("--chunk-size", type=positive_int, default=None)

    intelligence = sub.add_parser("intelligence", help="Refresh stale valuation snapshots.")
    intelligence.add_argument("--limit", type=non_negative_int, default=None)

    sub.add_parser("scores", help="Recompute location, value and investment scores for every listing.")

    sub.add_parser("opportunities", help="List floor-adjusted project opportunities.")
    return parser


def main(argv: list[str] | None = None, repo: Any = None) -> int:
    args = build_parser().parse_args(argv)
    if repo is None:
        repo = SupabaseRepo()
    config = BatchConfig.from_env()
    sync = ProximitySynchronizer(repo)

    try:
        if args.command == "listing":
            result = sync.sync_listing(args.listing_id)
            snapshot = refresh_listing_valuation(repo, args.listing_id)
            LOGGER.info(
                "Listing %s rows_written=%s listing_updated=%s valuation_class=%s",
                args.listing_id,
                result.rows_written,
                result.listing_updated,
                snapshot["valuation_class"],
            )
        elif args.command == "poi":
            LOGGER.info("POI %s rows_written=%s", args.poi_id, sync.sync_poi(args.poi_id))
        elif args.command == "repair":
            for listing_id in args.listing_ids:
                fields = sync.recompute_convenience_fields(listing_id)
                LOGGER.info("Listing %s convenience fields=%s", listing_id, fields)
        elif args.command == "proximity":
            if args.chunk_size is not None:
                config = replace(config, chunk_size=args.chunk_size)
            batch = run_proximity_batch(
                repo,
                config,
                on_progress=lambda done, total: LOGGER.info("Proximity progress %s/%s", done, total),
                synchronizer=sync,
            )
            for error in batch.errors:
                LOGGER.warning("Proximity error: %s", error)
            return 1 if batch.errors else 0
        elif args.command == "intelligence":
            if args.limit is not None:
                config = replace(config, intelligence_limit=args.limit)
            run_intelligence_batch(repo, config)
        elif args.command == "scores":
            scored = run_scores_batch(repo)
            for error in scored.errors:
                LOGGER.warning("Score error: %s", error)
            return 1 if scored.errors else 0
        elif args.command == "opportunities":
            for item in find_project_opportunities(repo):
                LOGGER.info(
                    "Project %s unit %s deviation=%s%% fair_value=%.0f instant_equity=%.0f yield=%s",
                    item.project_id,
                    item.reference_id or item.listing_id,
                    item.estimate.price_deviation,
                    item.estimate.fair_value,
                    item.estimate.instant_equity or 0,
                    item.rental_yield,
                )
    except NotFoundError as exc:
        LOGGER.error("%s", exc)
        return 2
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    raise SystemExit(main())
