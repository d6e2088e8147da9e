"""Flat customer attribute snapshots for rule evaluation."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from customer_insights.foundation.collaborators import Person
from customer_insights.foundation.mappings import ConversionType
from customer_insights.foundation.records import Conversion, ScoreType, utcnow
from customer_insights.foundation.store import AnalyticsStore

SNAPSHOT_FIELDS: tuple[str, ...] = (
    "person_id",
    "email",
    "created_at",
    "nps_score",
    "engagement_score",
    "clv_score",
    "churn_risk",
    "clv_tier",
    "churn_risk_level",
    "total_purchases",
    "total_revenue",
    "last_purchase_date",
    "days_since_last_purchase",
    "total_conversions",
    "tags",
)


def build_snapshot(
    person: Person,
    store: AnalyticsStore,
    as_of: Optional[datetime] = None,
    conversions: Optional[list[Conversion]] = None,
) -> dict[str, Any]:
    """Derive the snapshot for one person.

    Scores are read from the current score rows; purchase totals are
    computed from stored conversions. Person metadata is flattened into
    ``metadata.<key>`` entries.
    """
    now = as_of or utcnow()
    if conversions is None:
        conversions = store.conversions.filter(lambda c: c.person_id == person.id)
    purchases = [c for c in conversions if c.conversion_type is ConversionType.PURCHASE]
    last_purchase = max((c.converted_at for c in purchases), default=None)
    scores = store.scores_for(person.id)

    def score_value(kind: ScoreType) -> Optional[float]:
        score = scores.get(kind)
        return score.score_value if score is not None else None

    clv = scores.get(ScoreType.CLV)
    churn = scores.get(ScoreType.CHURN_RISK)
    snapshot: dict[str, Any] = {
        "person_id": person.id,
        "email": person.email,
        "created_at": person.created_at,
        "nps_score": score_value(ScoreType.NPS),
        "engagement_score": score_value(ScoreType.ENGAGEMENT),
        "clv_score": score_value(ScoreType.CLV),
        "churn_risk": score_value(ScoreType.CHURN_RISK),
        "clv_tier": clv.tier if clv is not None else None,
        "churn_risk_level": churn.risk_level if churn is not None else None,
        "total_purchases": len(purchases),
        "total_revenue": round(sum(float(c.value or 0) for c in purchases), 2),
        "last_purchase_date": last_purchase,
        "days_since_last_purchase": (
            max(0, (now - last_purchase).days) if last_purchase is not None else None
        ),
        "total_conversions": len(conversions),
        "tags": list(person.tags),
    }
    for key, value in person.metadata.items():
        snapshot[f"metadata.{key}"] = value
    return snapshot
