"""Churn risk scoring from recency, engagement and sentiment signals.

The risk is a weighted sum of factor risks in [0, 1]: days since last
activity (largest weight), days since last purchase, engagement decline,
share of negative sentiment in the last 30 days and recent support tickets.
A value adjustment lowers the risk for loyal buyers and raises it for
people who never bought. The clamped sum is scaled to 0-100.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Sequence

from customer_insights.config import ChurnConfig
from customer_insights.foundation.records import ChurnFactor, round_half_up

RiskLevel = Literal["low", "medium", "high", "critical"]

RISK_LEVEL_ORDER: tuple[str, ...] = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class ChurnInputs:
    """Behavioural signals for one person.

    Attributes
    ----------
    days_since_activity:
        Days since the last journey event or conversion
    days_since_purchase:
        Days since the last purchase
    engagement_decline:
        Percentage drop of recent vs. earlier engagement scores (>= 0 means decline)
    negative_sentiment_ratio:
        Share of negative sentiment records in the sentiment window
    support_tickets:
        Support tickets raised in the sentiment window
    total_purchases:
        Lifetime purchase count
    """

    days_since_activity: int
    days_since_purchase: int
    engagement_decline: float = 0.0
    negative_sentiment_ratio: float = 0.0
    support_tickets: int = 0
    total_purchases: int = 0


@dataclass(frozen=True)
class ChurnResult:
    score: int
    risk_level: RiskLevel
    contributing_factors: tuple[ChurnFactor, ...]
    recommendations: tuple[str, ...]


def churn_risk_level(score: float) -> RiskLevel:
    if score >= 75:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 25:
        return "medium"
    return "low"


def engagement_decline(scores: Sequence[float]) -> float:
    """Percentage drop from the first three to the last three scores.

    Needs at least two scores; returns 0 otherwise or when the earlier
    average is zero.
    """
    if len(scores) < 2:
        return 0.0
    earlier = scores[:3]
    recent = scores[-3:]
    earlier_avg = sum(earlier) / len(earlier)
    recent_avg = sum(recent) / len(recent)
    if earlier_avg <= 0:
        return 0.0
    return (earlier_avg - recent_avg) / earlier_avg * 100


def calculate_churn_risk(
    inputs: ChurnInputs, config: ChurnConfig = ChurnConfig()
) -> ChurnResult:
    activity_risk = min(1.0, inputs.days_since_activity / config.activity_saturation_days)
    purchase_risk = min(1.0, inputs.days_since_purchase / config.purchase_saturation_days)
    decline_risk = min(1.0, max(0.0, inputs.engagement_decline) / 100)
    sentiment_risk = min(1.0, max(0.0, inputs.negative_sentiment_ratio))
    support_risk = min(1.0, inputs.support_tickets / config.support_ticket_threshold)

    factors = (
        ChurnFactor(
            factor="activity",
            value=float(inputs.days_since_activity),
            contribution=round(activity_risk * config.activity_weight, 4),
            description=f"{inputs.days_since_activity} days since last activity",
        ),
        ChurnFactor(
            factor="purchase",
            value=float(inputs.days_since_purchase),
            contribution=round(purchase_risk * config.purchase_weight, 4),
            description=f"{inputs.days_since_purchase} days since last purchase",
        ),
        ChurnFactor(
            factor="engagement_decline",
            value=round(inputs.engagement_decline, 2),
            contribution=round(decline_risk * config.engagement_decline_weight, 4),
            description=f"Engagement changed by {-inputs.engagement_decline:+.1f}%",
        ),
        ChurnFactor(
            factor="negative_sentiment",
            value=round(inputs.negative_sentiment_ratio, 4),
            contribution=round(sentiment_risk * config.sentiment_weight, 4),
            description=f"{inputs.negative_sentiment_ratio:.0%} negative sentiment recently",
        ),
        ChurnFactor(
            factor="support",
            value=float(inputs.support_tickets),
            contribution=round(support_risk * config.support_weight, 4),
            description=f"{inputs.support_tickets} recent support tickets",
        ),
    )

    risk = sum(f.contribution for f in factors)
    if inputs.total_purchases > config.loyal_purchase_count:
        risk += config.loyal_adjustment
    elif inputs.total_purchases == 0:
        risk += config.never_purchased_adjustment
    risk = max(0.0, min(1.0, risk))
    score = int(round_half_up(risk * 100))

    recommendations: list[str] = []
    if inputs.days_since_activity > config.activity_threshold_days:
        recommendations.append("Send re-engagement email campaign")
    if inputs.days_since_purchase > config.purchase_threshold_days:
        recommendations.append("Offer personalized discount or incentive")
    if inputs.engagement_decline > config.engagement_decline_threshold:
        recommendations.append("Reach out for feedback on experience")
    if (
        inputs.negative_sentiment_ratio > config.sentiment_threshold
        or inputs.support_tickets >= config.support_ticket_threshold
    ):
        recommendations.append("Prioritize support outreach to address concerns")

    return ChurnResult(
        score=score,
        risk_level=churn_risk_level(score),
        contributing_factors=factors,
        recommendations=tuple(recommendations),
    )
