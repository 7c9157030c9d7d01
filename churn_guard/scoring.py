# churn_guard/scoring.py
from __future__ import annotations

import math
from enum import Enum
from typing import Optional

FLOOR_SCORE = 10
SCORE_CAP_REVENUE = 1_000_000


class LifecycleStage(str, Enum):
    """HubSpot lifecycle stages, valued by their internal property names."""

    SUBSCRIBER = "subscriber"
    LEAD = "lead"
    MARKETING_QUALIFIED = "marketingqualifiedlead"
    SALES_QUALIFIED = "salesqualifiedlead"
    OPPORTUNITY = "opportunity"
    CUSTOMER = "customer"
    EVANGELIST = "evangelist"
    OTHER = "other"


# (lower bound inclusive, stage), highest tier first
STAGE_THRESHOLDS = (
    (80, LifecycleStage.SALES_QUALIFIED),
    (60, LifecycleStage.MARKETING_QUALIFIED),
    (40, LifecycleStage.LEAD),
)


def lead_score(annual_revenue_lost: float) -> int:
    """
    0-100 score proportional to projected annual loss, capped at $1M.
    Degenerate input (non-finite or <= 0) gets the floor score.
    """
    if not math.isfinite(annual_revenue_lost) or annual_revenue_lost <= 0:
        return FLOOR_SCORE

    capped = min(annual_revenue_lost, SCORE_CAP_REVENUE)
    # half-up, not banker's rounding
    return min(100, math.floor(capped / SCORE_CAP_REVENUE * 100 + 0.5))


def lifecycle_stage(score: float, explicit_stage: Optional[LifecycleStage] = None) -> LifecycleStage:
    """
    An explicit stage wins over the score. It must be a LifecycleStage or one of
    its values ("customer" is accepted); anything else raises ValueError, since
    HubSpot rejects unknown lifecycle stages.
    """
    if explicit_stage:
        return LifecycleStage(explicit_stage)

    for lower_bound, stage in STAGE_THRESHOLDS:
        if score >= lower_bound:
            return stage
    return LifecycleStage.SUBSCRIBER
