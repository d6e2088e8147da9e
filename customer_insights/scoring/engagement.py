"""Engagement scoring from decayed activity points.

Each activity earns its type's weight, decayed by age (full weight inside
30 days, half inside 90 days, a quarter beyond). Valued purchases add
``2 * log10(value + 1)``. The raw total divided by 5 and capped at 100 is
the engagement score.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional

from customer_insights.config import EngagementConfig
from customer_insights.foundation.records import round_half_up


@dataclass(frozen=True)
class Activity:
    activity_type: str
    occurred_at: datetime
    value: Optional[float] = None


@dataclass(frozen=True)
class EngagementResult:
    score: int
    level: str
    raw_points: float
    total_activities: int
    breakdown: Mapping[str, int] = field(default_factory=dict)


def engagement_level(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    if score > 0:
        return "low"
    return "inactive"


def _decay(age_days: int, config: EngagementConfig) -> float:
    if age_days < config.recent_days:
        return 1.0
    if age_days < config.decay_days:
        return config.mid_decay
    return config.old_decay


def calculate_engagement(
    activities: Iterable[Activity],
    as_of: datetime,
    config: EngagementConfig = EngagementConfig(),
) -> EngagementResult:
    """Score a person's activities as of ``as_of``."""
    points = 0.0
    breakdown: Counter[str] = Counter()
    for activity in activities:
        breakdown[activity.activity_type] += 1
        weight = config.activity_weights.get(activity.activity_type, config.default_weight)
        age_days = max(0, (as_of - activity.occurred_at).days)
        points += weight * _decay(age_days, config)
        if activity.activity_type == "purchase" and activity.value and activity.value > 0:
            points += math.log10(activity.value + 1) * config.purchase_value_weight

    score = int(min(100.0, round_half_up(points / config.normalizer)))
    return EngagementResult(
        score=score,
        level=engagement_level(score),
        raw_points=round(points, 2),
        total_activities=sum(breakdown.values()),
        breakdown=dict(breakdown),
    )
