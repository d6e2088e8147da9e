"""Heuristic customer lifetime value projection.

CLV is projected from observed purchase behaviour:

    predicted_clv = average_order_value x monthly_frequency x lifespan_months

where the monthly frequency is ``purchase_count / max(1, lifespan_days / 30)``
over the customer's observed life, and the projection horizon depends on
recency: 36 months when the last purchase is within 90 days, 6 months when
it is more than 180 days old, 24 months otherwise.

This is deliberately simpler than a probabilistic BG/NBD + Gamma-Gamma
model; it needs no fitting and works from a single customer's history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Sequence

from customer_insights.config import CLVConfig
from customer_insights.foundation.records import round_half_up

CLVTier = Literal["platinum", "gold", "silver", "bronze"]


@dataclass(frozen=True)
class Purchase:
    value: float
    occurred_at: datetime


@dataclass(frozen=True)
class CLVResult:
    """Projected lifetime value for one customer.

    Attributes
    ----------
    predicted_clv:
        Projected total value over the lifespan horizon (2 dp)
    remaining_clv:
        max(0, predicted_clv - realized_clv) (2 dp)
    realized_clv:
        Revenue already collected (2 dp)
    tier:
        platinum / gold / silver / bronze by predicted_clv
    confidence:
        high (5+ purchases), medium (2+), low otherwise
    """

    predicted_clv: float
    remaining_clv: float
    realized_clv: float
    tier: CLVTier
    confidence: str
    predicted_lifespan_months: int
    predicted_purchases: float
    purchase_count: int
    average_order_value: float
    purchase_frequency: float
    avg_days_between_purchases: Optional[float]
    days_since_last_purchase: Optional[int]


def clv_tier(predicted_clv: float, config: CLVConfig = CLVConfig()) -> CLVTier:
    if predicted_clv >= config.platinum_threshold:
        return "platinum"
    if predicted_clv >= config.gold_threshold:
        return "gold"
    if predicted_clv >= config.silver_threshold:
        return "silver"
    return "bronze"


def clv_confidence(purchase_count: int) -> str:
    if purchase_count >= 5:
        return "high"
    if purchase_count >= 2:
        return "medium"
    return "low"


def remaining_clv(predicted_clv: float, realized_clv: float) -> float:
    return round_half_up(max(0.0, predicted_clv - realized_clv), 2)


def projected_lifespan_months(
    days_since_last_purchase: Optional[int], config: CLVConfig = CLVConfig()
) -> int:
    if days_since_last_purchase is None:
        return config.baseline_lifespan_months
    if days_since_last_purchase < config.active_window_days:
        return config.active_lifespan_months
    if days_since_last_purchase > config.dormant_gap_days:
        return config.dormant_lifespan_months
    return config.baseline_lifespan_months


def calculate_clv(
    purchases: Sequence[Purchase],
    as_of: datetime,
    customer_since: Optional[datetime] = None,
    config: CLVConfig = CLVConfig(),
) -> CLVResult:
    """Project lifetime value from a customer's purchases.

    Parameters
    ----------
    purchases:
        Purchase conversions in any order
    as_of:
        Reference time for recency and observed lifespan
    customer_since:
        When the customer record was created; the first purchase is used
        when unknown
    config:
        Lifespan horizons and tier thresholds

    Returns
    -------
    CLVResult
        Projection with tier and confidence
    """
    ordered = sorted(purchases, key=lambda p: p.occurred_at)
    count = len(ordered)
    total = sum(p.value for p in ordered)

    start = customer_since or (ordered[0].occurred_at if ordered else None)
    lifespan_days = max(1, (as_of - start).days) if start is not None else 1
    frequency = count / max(1.0, lifespan_days / 30)
    aov = total / count if count else 0.0

    gaps = [
        (later.occurred_at - earlier.occurred_at).days
        for earlier, later in zip(ordered, ordered[1:])
    ]
    avg_gap = sum(gaps) / len(gaps) if gaps else None
    days_since_last = max(0, (as_of - ordered[-1].occurred_at).days) if ordered else None

    lifespan_months = projected_lifespan_months(days_since_last, config)
    predicted_purchases = frequency * lifespan_months
    predicted = aov * predicted_purchases

    return CLVResult(
        predicted_clv=round_half_up(predicted, 2),
        remaining_clv=remaining_clv(predicted, total),
        realized_clv=round_half_up(total, 2),
        tier=clv_tier(predicted, config),
        confidence=clv_confidence(count),
        predicted_lifespan_months=lifespan_months,
        predicted_purchases=round_half_up(predicted_purchases, 1),
        purchase_count=count,
        average_order_value=round_half_up(aov, 2),
        purchase_frequency=round_half_up(frequency, 2),
        avg_days_between_purchases=round_half_up(avg_gap, 1) if avg_gap is not None else None,
        days_since_last_purchase=days_since_last,
    )
