"""Customer scoring: NPS, engagement, lifetime value and churn risk."""

from .churn import (
    RISK_LEVEL_ORDER,
    ChurnInputs,
    ChurnResult,
    calculate_churn_risk,
    churn_risk_level,
    engagement_decline,
)
from .clv import (
    CLVResult,
    Purchase,
    calculate_clv,
    clv_confidence,
    clv_tier,
    projected_lifespan_months,
    remaining_clv,
)
from .engagement import Activity, EngagementResult, calculate_engagement, engagement_level
from .engine import (
    AtRiskCustomer,
    AtRiskReport,
    CustomerPredictions,
    PredictionsSummary,
    ScoringEngine,
)
from .nps import NPSSummary, calculate_nps, classify_nps, normalize_rating, nps_from_counts

__all__ = [
    "Activity",
    "AtRiskCustomer",
    "AtRiskReport",
    "CLVResult",
    "ChurnInputs",
    "ChurnResult",
    "CustomerPredictions",
    "EngagementResult",
    "NPSSummary",
    "PredictionsSummary",
    "Purchase",
    "RISK_LEVEL_ORDER",
    "ScoringEngine",
    "calculate_churn_risk",
    "calculate_clv",
    "calculate_engagement",
    "calculate_nps",
    "churn_risk_level",
    "classify_nps",
    "clv_confidence",
    "clv_tier",
    "engagement_decline",
    "engagement_level",
    "normalize_rating",
    "nps_from_counts",
    "projected_lifespan_months",
    "remaining_clv",
]
