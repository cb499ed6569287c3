from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from listing_metrics.core.models import Listing
from listing_metrics.core.valuation import (
    FLOOR_PREMIUM_PCT,
    GOOD_VALUE_DEVIATION_PCT,
    HIGH_YIELD_PCT,
    FairValueEstimate,
    estimate_project_floor,
    rental_yield,
)


MIN_PROJECT_UNITS = 2


@dataclass(slots=True)
class Opportunity:
    listing_id: str
    reference_id: str | None
    project_id: str
    floor: int | None
    estimate: FairValueEstimate
    rental_yield: float | None


def find_project_opportunities(
    repo: Any,
    floor_premium_pct: float = FLOOR_PREMIUM_PCT,
    deviation_threshold: float = GOOD_VALUE_DEVIATION_PCT,
    yield_threshold: float = HIGH_YIELD_PCT,
) -> list[Opportunity]:
    """
    Units priced below their floor-adjusted project value, or with a high
    rental yield, cheapest relative to fair value first. Nothing is persisted.
    """
    units_by_project: dict[str, list[Listing]] = defaultdict(list)
    for row in repo.get_available_project_units():
        unit = Listing.from_row(row)
        if unit.project_id:
            units_by_project[unit.project_id].append(unit)
    return rank_opportunities(units_by_project, floor_premium_pct, deviation_threshold, yield_threshold)


def rank_opportunities(
    units_by_project: dict[str, list[Listing]],
    floor_premium_pct: float = FLOOR_PREMIUM_PCT,
    deviation_threshold: float = GOOD_VALUE_DEVIATION_PCT,
    yield_threshold: float = HIGH_YIELD_PCT,
) -> list[Opportunity]:
    out: list[Opportunity] = []
    for project_id, units in units_by_project.items():
        if len(units) < MIN_PROJECT_UNITS:
            continue
        for unit in units:
            estimate = estimate_project_floor(unit, units, floor_premium_pct)
            if estimate.price_deviation is None:
                continue
            yield_pct = rental_yield(unit.price, unit.rent_price)
            is_discounted = estimate.price_deviation < deviation_threshold
            is_high_yield = yield_pct is not None and yield_pct > yield_threshold
            if is_discounted or is_high_yield:
                out.append(
                    Opportunity(
                        listing_id=unit.id,
                        reference_id=unit.reference_id,
                        project_id=project_id,
                        floor=unit.floor,
                        estimate=estimate,
                        rental_yield=yield_pct,
                    )
                )
    out.sort(key=lambda item: (item.estimate.price_deviation, item.listing_id))
    return out
