from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any

import pytest

from listing_metrics.core.models import parse_timestamp


class InMemoryRepo:
    """Dict-backed stand-in for SupabaseRepo with the same method surface."""

    def __init__(self) -> None:
        self.listings: dict[str, dict[str, Any]] = {}
        self.pois: dict[str, dict[str, Any]] = {}
        self.distances: dict[tuple[str, str], dict[str, Any]] = {}
        self.area_stats: list[dict[str, Any]] = []
        self.fail_upsert_for: set[str] = set()
        self.listing_updates: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def add_listing(self, listing_id: str, **fields: Any) -> dict[str, Any]:
        row = {"id": listing_id, "status": "AVAILABLE", "listing_type": "SALE", **fields}
        self.listings[listing_id] = row
        return row

    def add_poi(self, poi_id: str, name: str, category: str, lat: float, lng: float, **fields: Any) -> dict[str, Any]:
        row = {
            "id": poi_id,
            "name": name,
            "category": category,
            "lat": lat,
            "lng": lng,
            "tier": "PRIMARY",
            "is_active": True,
            **fields,
        }
        self.pois[poi_id] = row
        return row

    def get_listing(self, listing_id: str) -> dict[str, Any] | None:
        row = self.listings.get(listing_id)
        return dict(row) if row else None

    def get_listings_with_coordinates(self) -> list[dict[str, Any]]:
        return [
            {"id": row["id"], "reference_id": row.get("reference_id"), "lat": row["lat"], "lng": row["lng"]}
            for _, row in sorted(self.listings.items())
            if row.get("lat") is not None and row.get("lng") is not None
        ]

    def get_listing_ids(self) -> list[str]:
        return sorted(self.listings)

    def get_stale_listing_ids(self, cutoff_iso: str, limit: int) -> list[str]:
        cutoff = parse_timestamp(cutoff_iso)
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        stale = [
            row
            for row in self.listings.values()
            if row.get("status") == "AVAILABLE"
            and (
                row.get("valuation_computed_at") is None
                or parse_timestamp(row["valuation_computed_at"]) < cutoff
            )
        ]
        stale.sort(key=lambda row: (parse_timestamp(row.get("valuation_computed_at")) or oldest, row["id"]))
        return [row["id"] for row in stale[:limit]]

    def update_listing(self, listing_id: str, fields: dict[str, Any]) -> None:
        with self._lock:
            self.listings[listing_id].update(fields)
            self.listing_updates.append((listing_id, dict(fields)))

    def get_poi(self, poi_id: str) -> dict[str, Any] | None:
        row = self.pois.get(poi_id)
        return dict(row) if row else None

    def get_active_pois(self) -> list[dict[str, Any]]:
        return [dict(row) for _, row in sorted(self.pois.items()) if row.get("is_active")]

    def get_pois_by_ids(self, poi_ids: list[str]) -> list[dict[str, Any]]:
        return [dict(self.pois[poi_id]) for poi_id in poi_ids if poi_id in self.pois]

    def upsert_listing_poi_distances(self, rows: list[dict[str, Any]]) -> None:
        for row in rows:
            if row["listing_id"] in self.fail_upsert_for:
                raise RuntimeError("database unavailable")
        with self._lock:
            for row in rows:
                self.distances[(row["listing_id"], row["poi_id"])] = dict(row)

    def get_listing_poi_distances(
        self,
        listing_id: str,
        max_distance_km: float | None = None,
        categories: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        rows = [
            dict(row)
            for (row_listing_id, _), row in self.distances.items()
            if row_listing_id == listing_id
            and (max_distance_km is None or row["distance_km"] <= max_distance_km)
            and (not categories or row["poi_category"] in categories)
        ]
        return sorted(rows, key=lambda row: (row["distance_km"], row["poi_id"]))

    def find_area_stat(self, city: str | None, area: str | None, category: str | None) -> dict[str, Any] | None:
        for row in self.area_stats:
            if row["city"] != city or row["category"] != category:
                continue
            if area and row.get("area") != area:
                continue
            return dict(row)
        return None

    def get_available_project_units(self) -> list[dict[str, Any]]:
        return [
            dict(row)
            for _, row in sorted(self.listings.items())
            if row.get("project_id")
            and row.get("status") == "AVAILABLE"
            and row.get("listing_type") in {"SALE", "BOTH"}
            and row.get("price") is not None
            and (row.get("size_m2") or 0) > 0
        ]


@pytest.fixture
def repo() -> InMemoryRepo:
    return InMemoryRepo()


@pytest.fixture
def pattaya_repo(repo: InMemoryRepo) -> InMemoryRepo:
    repo.add_poi("poi-beach-jomtien", "Jomtien Beach", "BEACH", 12.8886, 100.8742, name_local="หาดจอมเทียน")
    repo.add_poi("poi-beach-wongamat", "Wong Amat Beach", "BEACH", 12.9667, 100.8833)
    repo.add_poi("poi-hospital-bkk", "Bangkok Hospital Pattaya", "HOSPITAL", 12.9292, 100.8987)
    repo.add_poi("poi-mall-central", "Central Festival Pattaya Beach", "SHOPPING_MALL", 12.9358, 100.8847)
    repo.add_poi(
        "poi-airport",
        "U-Tapao International Airport",
        "AIRPORT",
        12.6800,
        101.0050,
        tier="SECONDARY",
    )
    repo.add_listing("lst-1", reference_id="PT-001", lat=12.9266, lng=100.8688)
    repo.add_listing("lst-2", reference_id="PT-002", lat=12.9500, lng=100.8890)
    repo.add_listing("lst-3", reference_id="PT-003", lat=None, lng=None)
    return repo
