"""
Composite 0-100 listing scores.

Location comes from the nearest-of-category distances, value from the
area-baseline price deviation and investment from the gross rental yield.
The combined ``deal_quality`` label is stored beside the scores as
``score_deal_quality``; it never replaces ``valuation_class``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from listing_metrics.core.errors import NotFoundError
from listing_metrics.core.geo import round_half_up
from listing_metrics.core.models import FAIR, GOOD_VALUE, OVERPRICED, SUPER_DEAL


LOGGER = logging.getLogger(__name__)

LOCATION_WEIGHT = 0.30
VALUE_WEIGHT = 0.35
INVESTMENT_WEIGHT = 0.35

MAX_KEY_FEATURES = 5
MAX_TARGET_BUYERS = 3


@dataclass(slots=True, frozen=True)
class DistanceThresholds:
    excellent: float
    good: float
    fair: float
    max: float


# Keyed by convenience prefix; rail does not feed the location score.
LOCATION_THRESHOLDS = {
    "beach": DistanceThresholds(0.5, 1.0, 2.0, 5.0),
    "mall": DistanceThresholds(1.0, 2.0, 5.0, 10.0),
    "hospital": DistanceThresholds(2.0, 5.0, 10.0, 20.0),
    "school": DistanceThresholds(1.0, 2.0, 5.0, 10.0),
}
LOCATION_CATEGORY_WEIGHTS = {"beach": 1.2, "mall": 1.0, "hospital": 0.8, "school": 0.9}

# Price deviation (%) band edges, best first.
VALUE_SUPER_DEAL = -15.0
VALUE_GOOD = -5.0
VALUE_FAIR = 0.0
VALUE_OVERPRICED = 10.0

# Gross rental yield (%) band edges, best first.
YIELD_EXCELLENT = 8.0
YIELD_GOOD = 6.0
YIELD_FAIR = 4.0
YIELD_POOR = 2.0

NEUTRAL_SCORE = 50


@dataclass(slots=True)
class ScoreInputs:
    nearest_beach_km: float | None = None
    nearest_mall_km: float | None = None
    nearest_hospital_km: float | None = None
    nearest_school_km: float | None = None
    price_deviation: float | None = None
    rental_yield: float | None = None
    size_m2: float | None = None
    category: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ScoreInputs":
        return cls(
            nearest_beach_km=_optional_float(row.get("nearest_beach_km")),
            nearest_mall_km=_optional_float(row.get("nearest_mall_km")),
            nearest_hospital_km=_optional_float(row.get("nearest_hospital_km")),
            nearest_school_km=_optional_float(row.get("nearest_school_km")),
            price_deviation=_optional_float(row.get("price_deviation")),
            rental_yield=_optional_float(row.get("estimated_rental_yield")),
            size_m2=_optional_float(row.get("size_m2")),
            category=row.get("category"),
        )

    def distance(self, prefix: str) -> float | None:
        return getattr(self, f"nearest_{prefix}_km")


@dataclass(slots=True)
class ListingScores:
    location_score: int
    value_score: int
    investment_score: int
    overall_score: int
    deal_quality: str
    key_features: list[str] = field(default_factory=list)
    target_buyers: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        return {
            "location_score": self.location_score,
            "value_score": self.value_score,
            "investment_score": self.investment_score,
            "overall_score": self.overall_score,
            "key_features": list(self.key_features),
            "target_buyer": list(self.target_buyers),
            "score_deal_quality": self.deal_quality,
        }


def distance_score(distance_km: float | None, thresholds: DistanceThresholds) -> int:
    """Linear fall-off inside each band: 100 at excellent, 75 at good, 50 at fair, 25 at max."""
    if distance_km is None:
        return 0
    if distance_km <= thresholds.excellent:
        return 100
    if distance_km <= thresholds.good:
        ratio = (distance_km - thresholds.excellent) / (thresholds.good - thresholds.excellent)
        return round_half_up(100 - ratio * 25)
    if distance_km <= thresholds.fair:
        ratio = (distance_km - thresholds.good) / (thresholds.fair - thresholds.good)
        return round_half_up(75 - ratio * 25)
    if distance_km <= thresholds.max:
        ratio = (distance_km - thresholds.fair) / (thresholds.max - thresholds.fair)
        return round_half_up(50 - ratio * 25)
    return max(0, round_half_up(25 - (distance_km - thresholds.max) * 5))


def location_score(inputs: ScoreInputs) -> int:
    weighted = []
    for prefix, thresholds in LOCATION_THRESHOLDS.items():
        score = distance_score(inputs.distance(prefix), thresholds)
        if score > 0:
            weighted.append(score * LOCATION_CATEGORY_WEIGHTS[prefix])
    if not weighted:
        return NEUTRAL_SCORE
    return min(100, round_half_up(sum(weighted) / len(weighted)))


def value_score(deviation: float | None) -> int:
    if deviation is None:
        return NEUTRAL_SCORE
    if deviation <= VALUE_SUPER_DEAL:
        return 100
    if deviation <= VALUE_GOOD:
        ratio = (deviation - VALUE_SUPER_DEAL) / (VALUE_GOOD - VALUE_SUPER_DEAL)
        return round_half_up(100 - ratio * 25)
    if deviation <= VALUE_FAIR:
        ratio = (deviation - VALUE_GOOD) / (VALUE_FAIR - VALUE_GOOD)
        return round_half_up(75 - ratio * 25)
    if deviation <= VALUE_OVERPRICED:
        ratio = (deviation - VALUE_FAIR) / (VALUE_OVERPRICED - VALUE_FAIR)
        return round_half_up(50 - ratio * 25)
    return max(0, round_half_up(25 - (deviation - VALUE_OVERPRICED) * 2))


def investment_score(yield_pct: float | None) -> int:
    if yield_pct is None:
        return NEUTRAL_SCORE
    if yield_pct >= YIELD_EXCELLENT:
        return 100
    if yield_pct >= YIELD_GOOD:
        ratio = (yield_pct - YIELD_GOOD) / (YIELD_EXCELLENT - YIELD_GOOD)
        return round_half_up(75 + ratio * 25)
    if yield_pct >= YIELD_FAIR:
        ratio = (yield_pct - YIELD_FAIR) / (YIELD_GOOD - YIELD_FAIR)
        return round_half_up(50 + ratio * 25)
    if yield_pct >= YIELD_POOR:
        ratio = (yield_pct - YIELD_POOR) / (YIELD_FAIR - YIELD_POOR)
        return round_half_up(25 + ratio * 25)
    return max(0, round_half_up(yield_pct * 12.5))


def overall_score(location: int, value: int, investment: int) -> int:
    return round_half_up(location * LOCATION_WEIGHT + value * VALUE_WEIGHT + investment * INVESTMENT_WEIGHT)


def combined_deal_quality(value: int, investment: int) -> str:
    combined = value * 0.6 + investment * 0.4
    if combined >= 85:
        return SUPER_DEAL
    if combined >= 70:
        return GOOD_VALUE
    if combined >= 40:
        return FAIR
    return OVERPRICED


def key_features(inputs: ScoreInputs, location: int, value: int, investment: int) -> list[str]:
    features = []
    beach = inputs.nearest_beach_km
    if beach is not None and beach <= 0.5:
        features.append("Beachfront")
    elif beach is not None and beach <= 1:
        features.append("Near Beach")
    if inputs.nearest_mall_km is not None and inputs.nearest_mall_km <= 1:
        features.append("Near Shopping")
    if value >= 85:
        features.append("Below Market")
    elif value >= 70:
        features.append("Good Value")
    if investment >= 85:
        features.append("High Yield")
    elif investment >= 70:
        features.append("Good ROI")
    if location >= 80:
        features.append("Prime Location")
    return features[:MAX_KEY_FEATURES]


def target_buyers(inputs: ScoreInputs, value: int, investment: int) -> list[str]:
    buyers = []
    if investment >= 70:
        buyers.append("Investor")
    if _within(inputs.nearest_beach_km, 2) and _within(inputs.nearest_hospital_km, 5):
        buyers.append("Retiree")
    if _within(inputs.nearest_school_km, 2):
        buyers.append("Family")
    if value >= 75:
        buyers.append("Value Seeker")
    if _within(inputs.size_m2, 50) and inputs.category == "CONDO":
        buyers.append("First-Time Buyer")
    return buyers[:MAX_TARGET_BUYERS]


def calculate_listing_scores(inputs: ScoreInputs) -> ListingScores:
    location = location_score(inputs)
    value = value_score(inputs.price_deviation)
    investment = investment_score(inputs.rental_yield)
    return ListingScores(
        location_score=location,
        value_score=value,
        investment_score=investment,
        overall_score=overall_score(location, value, investment),
        deal_quality=combined_deal_quality(value, investment),
        key_features=key_features(inputs, location, value, investment),
        target_buyers=target_buyers(inputs, value, investment),
    )


def refresh_listing_scores(repo: Any, listing_id: str) -> dict[str, Any]:
    """Recompute the scores of one listing from its stored distances and valuation fields."""
    row = repo.get_listing(listing_id)
    if row is None:
        raise NotFoundError("Listing", listing_id)
    record = calculate_listing_scores(ScoreInputs.from_row(row)).to_record()
    repo.update_listing(row["id"], record)
    LOGGER.debug("Scores refreshed listing=%s overall=%s", listing_id, record["overall_score"])
    return record


def _within(value: float | None, limit: float) -> bool:
    return value is not None and value <= limit


def _optional_float(value: Any) -> float | None:
    return float(value) if value is not None else None
