from __future__ import annotations

from datetime import datetime, timezone

from listing_metrics.core.models import GOOD_VALUE, HIGH_YIELD, OVERPRICED, SUPER_DEAL


VIEW_POINTS = 2
VIEW_CAP = 30
ENQUIRY_POINTS = 10
ENQUIRY_CAP = 40

CLASS_ADJUSTMENTS = {
    SUPER_DEAL: 15,
    GOOD_VALUE: 10,
    HIGH_YIELD: 10,
    OVERPRICED: -15,
}


def lead_quality_score(
    view_count: int | None = 0,
    enquiry_count: int | None = 0,
    age_days: int | None = 0,
    valuation_class: str | None = None,
) -> int:
    """
    Engagement score in [0, 100] from interaction counters, listing age and
    valuation class.
    """
    score = min((view_count or 0) * VIEW_POINTS, VIEW_CAP)
    score += min((enquiry_count or 0) * ENQUIRY_POINTS, ENQUIRY_CAP)
    score += _recency_bonus(age_days or 0)
    score += CLASS_ADJUSTMENTS.get(valuation_class or "", 0)
    return max(0, min(100, score))


def listing_age_days(created_at: datetime | None, now: datetime | None = None) -> int:
    if created_at is None:
        return 0
    current = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max(0, (current - created_at).days)


def _recency_bonus(age_days: int) -> int:
    if age_days < 7:
        return 15
    if age_days < 30:
        return 10
    if age_days > 90:
        return -10
    return 0
