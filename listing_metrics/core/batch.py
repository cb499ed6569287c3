from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

from listing_metrics.core.config import env_float, env_int
from listing_metrics.core.models import Listing
from listing_metrics.core.proximity import ProximitySynchronizer
from listing_metrics.core.scores import refresh_listing_scores
from listing_metrics.core.valuation import refresh_listing_valuation


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchConfig:
    chunk_size: int = 50
    max_workers: int | None = None  # defaults to chunk_size
    staleness: timedelta = timedelta(hours=24)
    intelligence_limit: int = 100

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1.")
        if self.intelligence_limit < 0:
            raise ValueError("intelligence_limit must not be negative.")

    @classmethod
    def from_env(cls) -> "BatchConfig":
        max_workers = env_int("PROXIMITY_MAX_WORKERS", 0)
        return cls(
            chunk_size=max(1, env_int("PROXIMITY_CHUNK_SIZE", 50)),
            max_workers=max_workers if max_workers > 0 else None,
            staleness=timedelta(hours=env_float("INTELLIGENCE_STALE_HOURS", 24.0)),
            intelligence_limit=max(0, env_int("INTELLIGENCE_BATCH_LIMIT", 100)),
        )


@dataclass(slots=True)
class ProximityBatchResult:
    processed: int = 0
    errors: list[str] = field(default_factory=list)


def chunked(items: list[Any], size: int) -> Iterator[list[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def run_proximity_batch(
    repo: Any,
    config: BatchConfig | None = None,
    on_progress: Callable[[int, int], None] | None = None,
    synchronizer: ProximitySynchronizer | None = None,
) -> ProximityBatchResult:
    """
    Full proximity rebuild. Chunks run one after another; the listings of a
    chunk are synced concurrently. A failing listing is recorded and skipped.
    """
    config = config or BatchConfig()
    sync = synchronizer or ProximitySynchronizer(repo)
    listings = [Listing.from_row(row) for row in repo.get_listings_with_coordinates()]
    active_pois = sync.load_active_pois()
    result = ProximityBatchResult()
    LOGGER.info("Proximity batch started listings=%s active_pois=%s", len(listings), len(active_pois))

    with ThreadPoolExecutor(max_workers=config.max_workers or config.chunk_size) as pool:
        for chunk in chunked(listings, config.chunk_size):
            futures = [pool.submit(sync.sync_listing, listing.id, active_pois) for listing in chunk]
            for listing, future in zip(chunk, futures):
                try:
                    future.result()
                except Exception as exc:  # noqa: BLE001
                    LOGGER.warning("Proximity sync failed listing=%s error=%s", listing.label, exc)
                    result.errors.append(f"Listing {listing.label}: {exc}")
            result.processed += len(chunk)
            if on_progress:
                on_progress(result.processed, len(listings))

    LOGGER.info("Proximity batch completed processed=%s errors=%s", result.processed, len(result.errors))
    return result


def run_intelligence_batch(repo: Any, config: BatchConfig | None = None, now: datetime | None = None) -> int:
    """
    Refresh valuation snapshots that are missing or older than the staleness
    window, one listing at a time. Returns the number of listings updated.
    """
    config = config or BatchConfig()
    current = now or datetime.now(timezone.utc)
    cutoff = current - config.staleness
    listing_ids = repo.get_stale_listing_ids(cutoff.isoformat(), config.intelligence_limit)

    updated = 0
    for listing_id in listing_ids:
        try:
            refresh_listing_valuation(repo, listing_id, now=current)
            updated += 1
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Valuation refresh failed listing=%s: %s", listing_id, exc)
    LOGGER.info("Intelligence batch completed selected=%s updated=%s", len(listing_ids), updated)
    return updated


@dataclass(slots=True)
class ScoreBatchResult:
    updated: int = 0
    errors: list[str] = field(default_factory=list)


def run_scores_batch(repo: Any) -> ScoreBatchResult:
    """
    Recompute location, value and investment scores for every listing from
    the stored distance and valuation fields. A failing listing is recorded
    and skipped.
    """
    listing_ids = repo.get_listing_ids()
    result = ScoreBatchResult()
    for listing_id in listing_ids:
        try:
            refresh_listing_scores(repo, listing_id)
            result.updated += 1
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Score refresh failed listing=%s error=%s", listing_id, exc)
            result.errors.append(f"Listing {listing_id}: {exc}")
    LOGGER.info("Score batch completed selected=%s updated=%s", len(listing_ids), result.updated)
    return result
