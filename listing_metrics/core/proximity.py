from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from listing_metrics.core.errors import NotFoundError
from listing_metrics.core.geo import driving_minutes, haversine_km, round_km, walking_minutes
from listing_metrics.core.models import (
    CONVENIENCE_FIELDS,
    CONVENIENCE_PREFIXES,
    Listing,
    ListingPOIDistance,
    PointOfInterest,
    convenience_columns,
)


LOGGER = logging.getLogger(__name__)

DEFAULT_NEARBY_LIMIT = 20
_CATEGORY_RANK = {category: rank for rank, category in enumerate(CONVENIENCE_FIELDS)}


@dataclass(slots=True)
class SyncResult:
    rows_written: int
    listing_updated: bool


@dataclass(slots=True)
class NearbyPOI:
    poi_id: str
    name: str
    name_local: str | None
    category: str
    tier: str
    distance_km: float
    walking_mins: int
    driving_mins: int


def build_distance_row(listing: Listing, poi: PointOfInterest) -> ListingPOIDistance:
    distance = haversine_km(float(listing.lat), float(listing.lng), poi.lat, poi.lng)
    return ListingPOIDistance(
        listing_id=listing.id,
        poi_id=poi.id,
        poi_category=poi.category,
        distance_km=round_km(distance),
        walking_mins=walking_minutes(distance),
        driving_mins=driving_minutes(distance),
    )


def build_distance_rows(listing: Listing, pois: list[PointOfInterest]) -> list[ListingPOIDistance]:
    if not listing.has_coordinates:
        return []
    return [build_distance_row(listing, poi) for poi in pois if poi.is_active]


def derive_convenience_fields(rows: list[ListingPOIDistance], poi_names: dict[str, str]) -> dict[str, Any]:
    """
    Nearest (distance, name) per convenience field from a listing's fact rows.

    Rows are visited in category order, then POI id, and only a strictly
    smaller distance replaces the current best, so ties resolve the same way
    on every run. Fields without a matching row are returned as None.
    """
    best: dict[str, ListingPOIDistance] = {}
    candidates = [row for row in rows if row.poi_category in _CATEGORY_RANK]
    candidates.sort(key=lambda row: (_CATEGORY_RANK[row.poi_category], row.poi_id))
    for row in candidates:
        prefix = CONVENIENCE_FIELDS[row.poi_category]
        current = best.get(prefix)
        if current is None or row.distance_km < current.distance_km:
            best[prefix] = row

    fields: dict[str, Any] = {}
    for prefix in CONVENIENCE_PREFIXES:
        km_column, name_column = convenience_columns(prefix)
        nearest = best.get(prefix)
        fields[km_column] = nearest.distance_km if nearest else None
        fields[name_column] = poi_names.get(nearest.poi_id) if nearest else None
    return fields


class ProximitySynchronizer:
    def __init__(self, repo: Any) -> None:
        self.repo = repo

    def sync_listing(self, listing_id: str, active_pois: list[PointOfInterest] | None = None) -> SyncResult:
        """
        Recompute every active POI distance for a listing, then refresh its
        nearest-of-category fields from the full fact-row set.
        """
        listing_row = self._require_listing(listing_id)
        listing = Listing.from_row(listing_row)
        if not listing.has_coordinates:
            LOGGER.info("Listing %s has no coordinates; proximity sync skipped.", listing.label)
            return SyncResult(rows_written=0, listing_updated=False)

        pois = active_pois if active_pois is not None else self.load_active_pois()
        distance_rows = build_distance_rows(listing, pois)
        if not distance_rows:
            return SyncResult(rows_written=0, listing_updated=False)

        self.repo.upsert_listing_poi_distances([row.to_record() for row in distance_rows])
        # Only reached once the fact rows are committed.
        _, changed = self._refresh_convenience_fields(listing_row)
        return SyncResult(rows_written=len(distance_rows), listing_updated=changed)

    def sync_poi(self, poi_id: str) -> int:
        """
        Refresh the fact rows of one POI against every listing with coordinates.

        Listings' nearest-of-category fields are left as they are; they catch up
        on the listing's next sync or on a full proximity rebuild.
        """
        poi_row = self.repo.get_poi(poi_id)
        if poi_row is None:
            raise NotFoundError("POI", poi_id)
        poi = PointOfInterest.from_row(poi_row)
        if not poi.is_active:
            LOGGER.info("POI %s is inactive; existing distance rows retained.", poi.id)
            return 0

        listings = [Listing.from_row(row) for row in self.repo.get_listings_with_coordinates()]
        rows = [build_distance_row(listing, poi).to_record() for listing in listings if listing.has_coordinates]
        self.repo.upsert_listing_poi_distances(rows)
        LOGGER.info("POI %s distances refreshed for %s listings.", poi.id, len(rows))
        return len(rows)

    def recompute_convenience_fields(self, listing_id: str) -> dict[str, Any]:
        listing_row = self._require_listing(listing_id)
        fields, _ = self._refresh_convenience_fields(listing_row)
        return fields

    def nearby_pois(
        self,
        listing_id: str,
        max_distance_km: float | None = None,
        categories: list[str] | None = None,
        tier: str | None = None,
        limit: int = DEFAULT_NEARBY_LIMIT,
    ) -> list[NearbyPOI]:
        self._require_listing(listing_id)
        rows = [
            ListingPOIDistance.from_row(row)
            for row in self.repo.get_listing_poi_distances(
                listing_id,
                max_distance_km=max_distance_km,
                categories=categories,
            )
        ]
        pois = {
            str(row["id"]): PointOfInterest.from_row(row)
            for row in self.repo.get_pois_by_ids(sorted({row.poi_id for row in rows}))
        }

        out: list[NearbyPOI] = []
        for row in sorted(rows, key=lambda item: (item.distance_km, item.poi_id)):
            poi = pois.get(row.poi_id)
            if poi is None or (tier and poi.tier != tier):
                continue
            out.append(
                NearbyPOI(
                    poi_id=poi.id,
                    name=poi.name,
                    name_local=poi.name_local,
                    category=poi.category,
                    tier=poi.tier,
                    distance_km=row.distance_km,
                    walking_mins=row.walking_mins,
                    driving_mins=row.driving_mins,
                )
            )
            if len(out) >= limit:
                break
        return out

    def load_active_pois(self) -> list[PointOfInterest]:
        return [PointOfInterest.from_row(row) for row in self.repo.get_active_pois()]

    def _require_listing(self, listing_id: str) -> dict[str, Any]:
        row = self.repo.get_listing(listing_id)
        if row is None:
            raise NotFoundError("Listing", listing_id)
        return row

    def _refresh_convenience_fields(self, listing_row: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        listing_id = str(listing_row["id"])
        rows = [ListingPOIDistance.from_row(row) for row in self.repo.get_listing_poi_distances(listing_id)]
        mapped_ids = sorted({row.poi_id for row in rows if row.poi_category in _CATEGORY_RANK})
        poi_names = {str(row["id"]): row.get("name") or "" for row in self.repo.get_pois_by_ids(mapped_ids)}

        fields = derive_convenience_fields(rows, poi_names)
        changed = any(not _same_value(listing_row.get(key), value) for key, value in fields.items())
        if changed:
            self.repo.update_listing(listing_id, fields)
        return fields, changed


def _same_value(stored: Any, derived: Any) -> bool:
    if stored is None or derived is None:
        return stored is None and derived is None
    if isinstance(derived, float):
        return float(stored) == derived
    return stored == derived
