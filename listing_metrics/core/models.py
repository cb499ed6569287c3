from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


BEACH = "BEACH"
SHOPPING_MALL = "SHOPPING_MALL"
HOSPITAL = "HOSPITAL"
INTERNATIONAL_SCHOOL = "INTERNATIONAL_SCHOOL"
BTS_STATION = "BTS_STATION"
MRT_STATION = "MRT_STATION"
AIRPORT = "AIRPORT"

TIER_PRIMARY = "PRIMARY"
TIER_SECONDARY = "SECONDARY"

SUPER_DEAL = "SUPER_DEAL"
GOOD_VALUE = "GOOD_VALUE"
FAIR = "FAIR"
OVERPRICED = "OVERPRICED"
HIGH_YIELD = "HIGH_YIELD"

# Ordered: the first category listed for a shared field wins exact ties.
CONVENIENCE_FIELDS: dict[str, str] = {
    BEACH: "beach",
    SHOPPING_MALL: "mall",
    HOSPITAL: "hospital",
    INTERNATIONAL_SCHOOL: "school",
    BTS_STATION: "rail",
    MRT_STATION: "rail",
}
CONVENIENCE_PREFIXES: tuple[str, ...] = tuple(dict.fromkeys(CONVENIENCE_FIELDS.values()))

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "price_per_sqm",
    "estimated_rental_yield",
    "fair_value_estimate",
    "price_deviation",
    "valuation_class",
    "lead_score",
    "valuation_computed_at",
)


def convenience_columns(prefix: str) -> tuple[str, str]:
    return f"nearest_{prefix}_km", f"nearest_{prefix}_name"


@dataclass(slots=True)
class Listing:
    id: str
    reference_id: str | None = None
    lat: float | None = None
    lng: float | None = None
    category: str | None = None
    city: str | None = None
    area: str | None = None
    size_m2: float | None = None
    price: float | None = None
    rent_price: float | None = None
    bedrooms: int | None = None
    floor: int | None = None
    project_id: str | None = None
    listing_type: str = "SALE"  # SALE | RENT | BOTH
    status: str = "AVAILABLE"  # AVAILABLE | RESERVED | SOLD | RENTED
    view_count: int = 0
    enquiry_count: int = 0
    created_at: datetime | None = None
    valuation_computed_at: datetime | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    @property
    def label(self) -> str:
        return self.reference_id or self.id

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Listing":
        return cls(
            id=str(row["id"]),
            reference_id=row.get("reference_id"),
            lat=_optional_float(row.get("lat")),
            lng=_optional_float(row.get("lng")),
            category=row.get("category"),
            city=row.get("city"),
            area=row.get("area"),
            size_m2=_optional_float(row.get("size_m2")),
            price=_optional_float(row.get("price")),
            rent_price=_optional_float(row.get("rent_price")),
            bedrooms=row.get("bedrooms"),
            floor=row.get("floor"),
            project_id=row.get("project_id"),
            listing_type=row.get("listing_type") or "SALE",
            status=row.get("status") or "AVAILABLE",
            view_count=int(row.get("view_count") or 0),
            enquiry_count=int(row.get("enquiry_count") or 0),
            created_at=parse_timestamp(row.get("created_at")),
            valuation_computed_at=parse_timestamp(row.get("valuation_computed_at")),
        )


@dataclass(slots=True)
class PointOfInterest:
    id: str
    name: str
    category: str
    lat: float
    lng: float
    tier: str = TIER_PRIMARY
    name_local: str | None = None
    city: str | None = None
    area: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "PointOfInterest":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            category=row["category"],
            lat=float(row["lat"]),
            lng=float(row["lng"]),
            tier=row.get("tier") or TIER_PRIMARY,
            name_local=row.get("name_local"),
            city=row.get("city"),
            area=row.get("area"),
            is_active=bool(row.get("is_active", True)),
        )


@dataclass(slots=True)
class ListingPOIDistance:
    listing_id: str
    poi_id: str
    poi_category: str
    distance_km: float
    walking_mins: int
    driving_mins: int

    def to_record(self) -> dict[str, Any]:
        return {
            "listing_id": self.listing_id,
            "poi_id": self.poi_id,
            "poi_category": self.poi_category,
            "distance_km": self.distance_km,
            "walking_mins": self.walking_mins,
            "driving_mins": self.driving_mins,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ListingPOIDistance":
        return cls(
            listing_id=str(row["listing_id"]),
            poi_id=str(row["poi_id"]),
            poi_category=row["poi_category"],
            distance_km=float(row["distance_km"]),
            walking_mins=int(row.get("walking_mins") or 0),
            driving_mins=int(row.get("driving_mins") or 0),
        )


@dataclass(slots=True)
class AreaStat:
    city: str
    area: str | None
    category: str
    avg_price_per_sqm: float | None


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, str) and value:
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)
