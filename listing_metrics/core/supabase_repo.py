from __future__ import annotations

import os
from typing import Any

from supabase import Client, create_client


PAGE_SIZE = 1000
LISTING_COORDINATE_COLUMNS = "id, reference_id, lat, lng"


class SupabaseRepo:
    def __init__(self, url: str | None = None, service_role_key: str | None = None) -> None:
        supabase_url = url or os.environ.get("SUPABASE_URL")
        supabase_key = service_role_key or os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required.")
        self.client: Client = create_client(supabase_url, supabase_key)

    def get_listing(self, listing_id: str) -> dict[str, Any] | None:
        rows = self.client.table("listings").select("*").eq("id", listing_id).limit(1).execute().data or []
        return rows[0] if rows else None

    def get_listings_with_coordinates(self) -> list[dict[str, Any]]:
        return self._fetch_all(
            lambda: self.client.table("listings")
            .select(LISTING_COORDINATE_COLUMNS)
            .not_.is_("lat", "null")
            .not_.is_("lng", "null")
            .order("id")
        )

    def get_listing_ids(self) -> list[str]:
        rows = self._fetch_all(lambda: self.client.table("listings").select("id").order("id"))
        return [str(row["id"]) for row in rows]

    def get_stale_listing_ids(self, cutoff_iso: str, limit: int) -> list[str]:
        rows = (
            self.client.table("listings")
            .select("id")
            .eq("status", "AVAILABLE")
            .or_(f"valuation_computed_at.is.null,valuation_computed_at.lt.{cutoff_iso}")
            .order("valuation_computed_at", desc=False, nullsfirst=True)
            .limit(limit)
            .execute()
            .data
            or []
        )
        return [str(row["id"]) for row in rows]

    def update_listing(self, listing_id: str, fields: dict[str, Any]) -> None:
        self.client.table("listings").update(fields).eq("id", listing_id).execute()

    def get_poi(self, poi_id: str) -> dict[str, Any] | None:
        rows = self.client.table("points_of_interest").select("*").eq("id", poi_id).limit(1).execute().data or []
        return rows[0] if rows else None

    def get_active_pois(self) -> list[dict[str, Any]]:
        return self._fetch_all(
            lambda: self.client.table("points_of_interest").select("*").eq("is_active", True).order("id")
        )

    def get_pois_by_ids(self, poi_ids: list[str]) -> list[dict[str, Any]]:
        if not poi_ids:
            return []
        return self.client.table("points_of_interest").select("*").in_("id", poi_ids).execute().data or []

    def upsert_listing_poi_distances(self, rows: list[dict[str, Any]]) -> None:
        """
        One statement per call: PostgREST runs a bulk upsert in a single transaction.
        """
        if rows:
            self.client.table("listing_poi_distances").upsert(rows, on_conflict="listing_id,poi_id").execute()

    def get_listing_poi_distances(
        self,
        listing_id: str,
        max_distance_km: float | None = None,
        categories: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        query = self.client.table("listing_poi_distances").select("*").eq("listing_id", listing_id)
        if max_distance_km is not None:
            query = query.lte("distance_km", max_distance_km)
        if categories:
            query = query.in_("poi_category", categories)
        return query.order("distance_km").order("poi_id").execute().data or []

    def find_area_stat(self, city: str | None, area: str | None, category: str | None) -> dict[str, Any] | None:
        query = self.client.table("area_stats").select("city, area, category, avg_price_per_sqm")
        query = query.eq("city", city).eq("category", category)
        # A listing without an area matches any area row of its city.
        if area:
            query = query.eq("area", area)
        rows = query.limit(1).execute().data or []
        return rows[0] if rows else None

    def get_available_project_units(self) -> list[dict[str, Any]]:
        return self._fetch_all(
            lambda: self.client.table("listings")
            .select("*")
            .not_.is_("project_id", "null")
            .eq("status", "AVAILABLE")
            .in_("listing_type", ["SALE", "BOTH"])
            .not_.is_("price", "null")
            .gt("size_m2", 0)
            .order("id")
        )

    def _fetch_all(self, build_query: Any) -> list[dict[str, Any]]:
        offset = 0
        out: list[dict[str, Any]] = []
        while True:
            rows = build_query().range(offset, offset + PAGE_SIZE - 1).execute().data or []
            out.extend(rows)
            offset += len(rows)
            if len(rows) < PAGE_SIZE:
                break
        return out
