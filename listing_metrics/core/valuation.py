from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from listing_metrics.core.errors import NotFoundError
from listing_metrics.core.geo import round_half_up
from listing_metrics.core.lead_score import lead_quality_score, listing_age_days
from listing_metrics.core.models import (
    FAIR,
    GOOD_VALUE,
    HIGH_YIELD,
    OVERPRICED,
    SUPER_DEAL,
    AreaStat,
    Listing,
)
from listing_metrics.core.scores import ScoreInputs, calculate_listing_scores


LOGGER = logging.getLogger(__name__)

AREA_BASELINE = "area_baseline"  # persisted on the listing
PROJECT_FLOOR = "project_floor"  # on demand only

HIGH_YIELD_PCT = 6.0
SUPER_DEAL_DEVIATION_PCT = -15.0
GOOD_VALUE_DEVIATION_PCT = -5.0
OVERPRICED_DEVIATION_PCT = 5.0
FLOOR_PREMIUM_PCT = 0.005


@dataclass(slots=True)
class FairValueEstimate:
    model: str  # area_baseline | project_floor
    asking_price: float | None
    fair_price_per_sqm: float | None
    fair_value: float | None
    price_deviation: float | None

    @property
    def instant_equity(self) -> float | None:
        if self.asking_price is None or self.fair_value is None:
            return None
        return self.asking_price - self.fair_value


def price_per_sqm(price: float | None, size_m2: float | None) -> int | None:
    if not price or not size_m2 or size_m2 <= 0:
        return None
    return round_half_up(price / size_m2)


def rental_yield(price: float | None, rent_price: float | None) -> float | None:
    if not price or not rent_price:
        return None
    return _round2(rent_price * 12 / price * 100)


def area_fair_value(avg_price_per_sqm: float | None, size_m2: float | None) -> int | None:
    if not avg_price_per_sqm or not size_m2 or size_m2 <= 0:
        return None
    return round_half_up(avg_price_per_sqm * size_m2)


def price_deviation(price: float | None, fair_value: float | None) -> float | None:
    if not price or not fair_value:
        return None
    return _round2((price - fair_value) / fair_value * 100)


def classify_valuation(deviation: float | None, yield_pct: float | None) -> str | None:
    # Yield wins over every deviation class, including a missing deviation.
    if yield_pct is not None and yield_pct > HIGH_YIELD_PCT:
        return HIGH_YIELD
    if deviation is None:
        return None
    if deviation < SUPER_DEAL_DEVIATION_PCT:
        return SUPER_DEAL
    if deviation < GOOD_VALUE_DEVIATION_PCT:
        return GOOD_VALUE
    if deviation > OVERPRICED_DEVIATION_PCT:
        return OVERPRICED
    return FAIR


def estimate_area_baseline(listing: Listing, area_stat: AreaStat | None) -> FairValueEstimate:
    avg = area_stat.avg_price_per_sqm if area_stat else None
    fair_value = area_fair_value(avg, listing.size_m2)
    return FairValueEstimate(
        model=AREA_BASELINE,
        asking_price=listing.price,
        fair_price_per_sqm=float(avg) if fair_value is not None else None,
        fair_value=fair_value,
        price_deviation=price_deviation(listing.price, fair_value),
    )


def project_baseline(units: list[Listing]) -> tuple[float | None, float]:
    """
    Mean price per m2 across a project's priced units and the reference floor
    (mean of the floors units report, 0 when none do).
    """
    psm_values = [unit.price / unit.size_m2 for unit in units if unit.price and unit.size_m2 and unit.size_m2 > 0]
    floors = [unit.floor for unit in units if unit.floor]
    avg_psm = sum(psm_values) / len(psm_values) if psm_values else None
    reference_floor = sum(floors) / len(floors) if floors else 0.0
    return avg_psm, reference_floor


def estimate_project_floor(
    unit: Listing,
    project_units: list[Listing],
    floor_premium_pct: float = FLOOR_PREMIUM_PCT,
) -> FairValueEstimate:
    avg_psm, reference_floor = project_baseline(project_units)
    if avg_psm is None or not unit.size_m2 or unit.size_m2 <= 0:
        return FairValueEstimate(PROJECT_FLOOR, unit.price, None, None, None)

    unit_floor = unit.floor or reference_floor
    fair_psm = avg_psm * (1 + (unit_floor - reference_floor) * floor_premium_pct)
    fair_value = fair_psm * unit.size_m2
    return FairValueEstimate(
        model=PROJECT_FLOOR,
        asking_price=unit.price,
        fair_price_per_sqm=fair_psm,
        fair_value=fair_value,
        price_deviation=price_deviation(unit.price, fair_value),
    )


def compute_snapshot(listing: Listing, area_stat: AreaStat | None, now: datetime | None = None) -> dict[str, Any]:
    current = now or datetime.now(timezone.utc)
    estimate = estimate_area_baseline(listing, area_stat)
    yield_pct = rental_yield(listing.price, listing.rent_price)
    valuation_class = classify_valuation(estimate.price_deviation, yield_pct)
    return {
        "price_per_sqm": price_per_sqm(listing.price, listing.size_m2),
        "estimated_rental_yield": yield_pct,
        "fair_value_estimate": estimate.fair_value,
        "price_deviation": estimate.price_deviation,
        "valuation_class": valuation_class,
        "lead_score": lead_quality_score(
            view_count=listing.view_count,
            enquiry_count=listing.enquiry_count,
            age_days=listing_age_days(listing.created_at, current),
            valuation_class=valuation_class,
        ),
        "valuation_computed_at": current.isoformat(),
    }


def refresh_listing_valuation(repo: Any, listing_id: str, now: datetime | None = None) -> dict[str, Any]:
    row = repo.get_listing(listing_id)
    if row is None:
        raise NotFoundError("Listing", listing_id)
    listing = Listing.from_row(row)
    stat_row = repo.find_area_stat(listing.city, listing.area, listing.category)
    area_stat = (
        AreaStat(
            city=stat_row.get("city"),
            area=stat_row.get("area"),
            category=stat_row.get("category"),
            avg_price_per_sqm=_optional_float(stat_row.get("avg_price_per_sqm")),
        )
        if stat_row
        else None
    )
    snapshot = compute_snapshot(listing, area_stat, now)
    scores = calculate_listing_scores(ScoreInputs.from_row({**row, **snapshot}))
    snapshot.update(scores.to_record())
    repo.update_listing(listing.id, snapshot)
    LOGGER.debug("Valuation refreshed listing=%s class=%s", listing.label, snapshot["valuation_class"])
    return snapshot


def _round2(value: float) -> float:
    return round_half_up(value * 100) / 100


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None
