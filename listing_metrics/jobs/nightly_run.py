from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from listing_metrics.core.batch import BatchConfig, run_intelligence_batch, run_proximity_batch, run_scores_batch
from listing_metrics.core.config import env_bool, env_int, env_str
from listing_metrics.core.supabase_repo import SupabaseRepo


logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
LOGGER = logging.getLogger(__name__)

MARKET_TIMEZONE = "Asia/Bangkok"


def is_scheduled_minute(
    now: datetime | None = None,
    run_hour: int | None = None,
    run_minute: int | None = None,
    tz_name: str | None = None,
) -> bool:
    """
    The scheduler fires every minute in UTC; only the minute that matches
    RUN_HOUR_LOCAL:RUN_MINUTE_LOCAL in the market timezone does any work.
    """
    if run_hour is None:
        run_hour = env_int("RUN_HOUR_LOCAL", 3)
    if run_minute is None:
        run_minute = env_int("RUN_MINUTE_LOCAL", 0)
    market = ZoneInfo(tz_name or env_str("RUN_TIMEZONE", MARKET_TIMEZONE))
    local = (now or datetime.now(timezone.utc)).astimezone(market)
    return (local.hour, local.minute) == (min(max(run_hour, 0), 23), min(max(run_minute, 0), 59))


def run_nightly(
    force_run: bool = False,
    with_proximity: bool = False,
    repo: Any = None,
    now: datetime | None = None,
) -> bool:
    """Returns False when the local-time guard skipped the run."""
    force_run = force_run or env_bool("FORCE_RUN")
    with_proximity = with_proximity or env_bool("NIGHTLY_PROXIMITY_REBUILD")
    if force_run:
        LOGGER.info("FORCE_RUN enabled: bypassing local-time guard.")
    elif not is_scheduled_minute(now):
        LOGGER.info("Local-time guard skipped run.")
        return False

    if repo is None:
        repo = SupabaseRepo()
    config = BatchConfig.from_env()

    if with_proximity:
        result = run_proximity_batch(repo, config)
        for error in result.errors:
            LOGGER.warning("Proximity error: %s", error)
        # location scores follow the rebuilt distances
        scored = run_scores_batch(repo)
        for error in scored.errors:
            LOGGER.warning("Score error: %s", error)

    updated = run_intelligence_batch(repo, config, now=now)
    LOGGER.info("Nightly run completed. valuations_updated=%s", updated)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the scheduled valuation refresh.")
    parser.add_argument("--force", action="store_true", help="Bypass the local-time guard.")
    parser.add_argument("--with-proximity", action="store_true", help="Also rebuild all POI distances and scores first.")
    args = parser.parse_args()
    run_nightly(force_run=args.force, with_proximity=args.with_proximity)
