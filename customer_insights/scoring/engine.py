"""Customer scoring engine.

Gathers a person's history from the store, runs the matching calculator
and upserts exactly one ``CustomerScore`` row per (person, score type).
Each recalculation moves the previous value into the row's history, which
keeps the most recent ``score_history_limit`` entries.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from customer_insights.config import InsightsConfig
from customer_insights.exceptions import ValidationError
from customer_insights.foundation.batch import BatchResult, run_batch
from customer_insights.foundation.collaborators import PersonDirectory
from customer_insights.foundation.mappings import ConversionType, JourneyEventType
from customer_insights.foundation.records import (
    ChurnDetails,
    CLVDetails,
    CustomerScore,
    EngagementDetails,
    NPSDetails,
    ScoreDetails,
    ScoreHistoryEntry,
    ScoreType,
    SentimentLabel,
    SentimentRecord,
    SentimentSource,
    utcnow,
)
from customer_insights.foundation.store import AnalyticsStore, new_id
from customer_insights.scoring.churn import (
    RISK_LEVEL_ORDER,
    ChurnInputs,
    calculate_churn_risk,
    engagement_decline,
)
from customer_insights.scoring.clv import Purchase, calculate_clv
from customer_insights.scoring.engagement import (
    Activity,
    calculate_engagement,
    engagement_level,
)
from customer_insights.scoring.nps import (
    NPSSummary,
    calculate_nps,
    classify_nps,
    normalize_rating,
    nps_from_counts,
)

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SCORE_TYPES: tuple[ScoreType, ...] = (
    ScoreType.ENGAGEMENT,
    ScoreType.CLV,
    ScoreType.CHURN_RISK,
)

HIGH_VALUE_TIERS = frozenset({"gold", "platinum"})

FEEDBACK_ENGAGEMENT_BONUS = 10
POSITIVE_SENTIMENT_BONUS = 5
SEED_ENGAGEMENT_SCORE = 50
SEED_POSITIVE_BONUS = 10

# conversion type -> engagement activity type
_CONVERSION_ACTIVITIES: Mapping[ConversionType, str] = {
    ConversionType.PURCHASE: "purchase",
    ConversionType.ADD_TO_CART: "add_to_cart",
    ConversionType.BEGIN_CHECKOUT: "begin_checkout",
    ConversionType.LEAD_FORM_SUBMISSION: "form_submit",
    ConversionType.PAGE_ENGAGEMENT: "page_view",
}

# journey event type -> engagement activity type
_JOURNEY_ACTIVITIES: Mapping[JourneyEventType, str] = {
    JourneyEventType.PAGE_VIEW: "page_view",
    JourneyEventType.FORM_SUBMIT: "form_submit",
    JourneyEventType.FEEDBACK: "feedback",
    JourneyEventType.SOCIAL_ENGAGE: "social_share",
    JourneyEventType.EMAIL_OPEN: "email_open",
    JourneyEventType.EMAIL_CLICK: "email_click",
    JourneyEventType.PURCHASE: "purchase",
}


@dataclass(frozen=True)
class CustomerPredictions:
    person_id: str
    clv: CustomerScore
    churn_risk: CustomerScore


@dataclass(frozen=True)
class AtRiskCustomer:
    person_id: str
    churn_score: float
    risk_level: str
    clv_tier: Optional[str]
    predicted_clv: float
    remaining_clv: float
    priority: str
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class AtRiskReport:
    """Customers at or above a churn risk level, high-value ones first.

    Attributes
    ----------
    customers:
        At most ``limit`` entries ordered by priority then churn score
    total_at_risk:
        All customers at or above the level (before ``limit``)
    critical_count:
        Customers in the critical band
    high_value_at_risk:
        At-risk customers in the gold or platinum CLV tier
    potential_revenue_at_risk:
        Sum of predicted CLV over all at-risk customers
    """

    customers: tuple[AtRiskCustomer, ...]
    total_at_risk: int
    critical_count: int
    high_value_at_risk: int
    potential_revenue_at_risk: float


@dataclass(frozen=True)
class PredictionsSummary:
    total_customers: int
    by_risk_level: Mapping[str, int] = field(default_factory=dict)
    by_clv_tier: Mapping[str, int] = field(default_factory=dict)
    total_predicted_clv: float = 0.0
    average_churn_risk: float = 0.0


class ScoringEngine:
    """Calculates and persists NPS, engagement, CLV and churn risk scores."""

    def __init__(
        self,
        store: AnalyticsStore,
        people: PersonDirectory,
        config: InsightsConfig = InsightsConfig(),
    ) -> None:
        self.store = store
        self.people = people
        self.config = config

    # -- persistence -------------------------------------------------------

    def _save(
        self,
        person_id: str,
        score_type: ScoreType,
        value: float,
        details: ScoreDetails,
        at: datetime,
    ) -> CustomerScore:
        existing = self.store.get_score(person_id, score_type)
        if existing is None:
            score = CustomerScore(
                id=new_id("score"),
                person_id=person_id,
                score_type=score_type,
                score_value=value,
                calculated_at=at,
                details=details,
            )
        else:
            prior = ScoreHistoryEntry(
                score=existing.score_value,
                recorded_at=existing.calculated_at,
                label=existing.label,
            )
            history = (existing.history + (prior,))[-self.config.score_history_limit :]
            score = replace(
                existing,
                score_value=value,
                calculated_at=at,
                details=details,
                previous_score=existing.score_value,
                score_change=round(value - existing.score_value, 2),
                history=history,
            )
        return self.store.upsert_score(score)

    # -- data gathering ----------------------------------------------------

    def _purchases(self, person_id: str) -> list[Purchase]:
        return [
            Purchase(value=float(c.value or 0), occurred_at=c.converted_at)
            for c in self.store.conversions.filter(
                lambda c: c.person_id == person_id
                and c.conversion_type is ConversionType.PURCHASE
            )
        ]

    def _activities(self, person_id: str) -> list[Activity]:
        activities = [
            Activity(
                activity_type=_CONVERSION_ACTIVITIES.get(
                    c.conversion_type, c.conversion_type.value
                ),
                occurred_at=c.converted_at,
                value=float(c.value) if c.value is not None else None,
            )
            for c in self.store.conversions.filter(lambda c: c.person_id == person_id)
        ]
        activities.extend(
            Activity(activity_type="feedback", occurred_at=s.analyzed_at)
            for s in self.store.sentiments.filter(lambda s: s.person_id == person_id)
        )
        # journey events written by the tracker mirror a conversion already counted
        activities.extend(
            Activity(
                activity_type=_JOURNEY_ACTIVITIES.get(e.event_type, e.event_type.value),
                occurred_at=e.occurred_at,
            )
            for e in self.store.journey_events.filter(
                lambda e: e.person_id == person_id and "conversion_id" not in e.event_data
            )
        )
        return activities

    def _churn_inputs(self, person_id: str, as_of: datetime) -> ChurnInputs:
        churn = self.config.churn
        journey = self.store.journey_events.filter(lambda e: e.person_id == person_id)
        conversions = self.store.conversions.filter(lambda c: c.person_id == person_id)
        purchases = [
            c.converted_at
            for c in conversions
            if c.conversion_type is ConversionType.PURCHASE
        ]
        activity_times = [e.occurred_at for e in journey] + [c.converted_at for c in conversions]

        def days_since(times: Sequence[datetime]) -> int:
            if not times:
                return churn.no_history_days
            return max(0, (as_of - max(times)).days)

        window_start = as_of - timedelta(days=churn.sentiment_window_days)
        recent_sentiments = self.store.sentiments.filter(
            lambda s: s.person_id == person_id and s.analyzed_at >= window_start
        )
        negative = sum(1 for s in recent_sentiments if s.sentiment_label.is_negative)
        support_tickets = sum(
            1
            for e in journey
            if e.event_type is JourneyEventType.SUPPORT_TICKET and e.occurred_at >= window_start
        )

        engagement = self.store.get_score(person_id, ScoreType.ENGAGEMENT)
        engagement_scores: list[float] = []
        if engagement is not None:
            engagement_scores = [h.score for h in engagement.history] + [engagement.score_value]

        return ChurnInputs(
            days_since_activity=days_since(activity_times),
            days_since_purchase=days_since(purchases),
            engagement_decline=engagement_decline(engagement_scores),
            negative_sentiment_ratio=(
                negative / len(recent_sentiments) if recent_sentiments else 0.0
            ),
            support_tickets=support_tickets,
            total_purchases=len(purchases),
        )

    # -- calculators -------------------------------------------------------

    def calculate_engagement(
        self, person_id: str, as_of: Optional[datetime] = None
    ) -> CustomerScore:
        now = as_of or utcnow()
        result = calculate_engagement(
            self._activities(person_id), now, self.config.engagement
        )
        details = EngagementDetails(
            level=result.level,
            raw_points=result.raw_points,
            total_activities=result.total_activities,
            breakdown=result.breakdown,
        )
        return self._save(person_id, ScoreType.ENGAGEMENT, float(result.score), details, now)

    def calculate_clv(self, person_id: str, as_of: Optional[datetime] = None) -> CustomerScore:
        now = as_of or utcnow()
        person = self.people.get_person(person_id)
        result = calculate_clv(
            self._purchases(person_id),
            now,
            customer_since=person.created_at if person is not None else None,
            config=self.config.clv,
        )
        details = CLVDetails(
            tier=result.tier,
            confidence=result.confidence,
            realized_clv=result.realized_clv,
            remaining_clv=result.remaining_clv,
            predicted_lifespan_months=result.predicted_lifespan_months,
            predicted_purchases=result.predicted_purchases,
            purchase_count=result.purchase_count,
            average_order_value=result.average_order_value,
            purchase_frequency=result.purchase_frequency,
            avg_days_between_purchases=result.avg_days_between_purchases,
            days_since_last_purchase=result.days_since_last_purchase,
        )
        return self._save(person_id, ScoreType.CLV, result.predicted_clv, details, now)

    def calculate_churn_risk(
        self, person_id: str, as_of: Optional[datetime] = None
    ) -> CustomerScore:
        now = as_of or utcnow()
        inputs = self._churn_inputs(person_id, now)
        result = calculate_churn_risk(inputs, self.config.churn)
        details = ChurnDetails(
            risk_level=result.risk_level,
            days_since_activity=inputs.days_since_activity,
            days_since_purchase=inputs.days_since_purchase,
            contributing_factors=result.contributing_factors,
            recommendations=result.recommendations,
        )
        return self._save(person_id, ScoreType.CHURN_RISK, float(result.score), details, now)

    def record_nps(
        self,
        person_id: str,
        rating: Optional[float],
        scale: int = 10,
        at: Optional[datetime] = None,
    ) -> CustomerScore:
        """Add a rating to a person's running NPS counts and rescore it."""
        if rating is None:
            raise ValidationError("NPS rating is required")
        try:
            normalized = normalize_rating(rating, scale)
            category = classify_nps(rating, scale)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        counts = {"promoter": 0, "passive": 0, "detractor": 0}
        rating_sum = 0.0
        existing = self.store.get_score(person_id, ScoreType.NPS)
        if existing is not None and isinstance(existing.details, NPSDetails):
            previous = existing.details
            counts.update(
                promoter=previous.promoters,
                passive=previous.passives,
                detractor=previous.detractors,
            )
            rating_sum = previous.rating_sum
        counts[category] += 1
        details = self._nps_details(
            counts, rating_sum + normalized, normalized, category, scale
        )
        return self._save(
            person_id, ScoreType.NPS, float(details.nps_value), details, at or utcnow()
        )

    @staticmethod
    def _nps_details(
        counts: Mapping[str, int],
        rating_sum: float,
        rating: Optional[float],
        category: Optional[str],
        scale: int,
    ) -> NPSDetails:
        summary = nps_from_counts(counts["promoter"], counts["passive"], counts["detractor"])
        return NPSDetails(
            category=category,
            rating=rating,
            scale=scale,
            nps_value=summary.score,
            average_score=round(rating_sum / summary.total, 2) if summary.total else 0.0,
            response_count=summary.total,
            promoters=summary.promoters,
            passives=summary.passives,
            detractors=summary.detractors,
            rating_sum=round(rating_sum, 4),
        )

    def calculate_nps(self, person_id: str, as_of: Optional[datetime] = None) -> CustomerScore:
        """Rescore a person's NPS from the counts already recorded.

        A person without ratings gets a neutral row: NPS 0, no responses and
        no category.
        """
        existing = self.store.get_score(person_id, ScoreType.NPS)
        if existing is not None and isinstance(existing.details, NPSDetails):
            previous = existing.details
            counts = {
                "promoter": previous.promoters,
                "passive": previous.passives,
                "detractor": previous.detractors,
            }
            details = self._nps_details(
                counts, previous.rating_sum, previous.rating, previous.category, previous.scale
            )
        else:
            details = self._nps_details(
                {"promoter": 0, "passive": 0, "detractor": 0}, 0.0, None, None, 10
            )
        return self._save(
            person_id, ScoreType.NPS, float(details.nps_value), details, as_of or utcnow()
        )

    def calculate_score(
        self,
        person_id: str,
        score_type: ScoreType | str,
        as_of: Optional[datetime] = None,
    ) -> CustomerScore:
        try:
            kind = ScoreType(score_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown score type: {score_type!r}") from exc
        calculators = {
            ScoreType.NPS: self.calculate_nps,
            ScoreType.ENGAGEMENT: self.calculate_engagement,
            ScoreType.CLV: self.calculate_clv,
            ScoreType.CHURN_RISK: self.calculate_churn_risk,
        }
        return calculators[kind](person_id, as_of)

    def override_score(
        self, score_id: str, value: float, at: Optional[datetime] = None
    ) -> CustomerScore:
        """Set a score row's value by hand, keeping its details and history."""
        score = self.store.scores.get(score_id)
        return self._save(
            score.person_id, score.score_type, float(value), score.details, at or utcnow()
        )

    # -- sentiment ---------------------------------------------------------

    def record_sentiment(
        self,
        source_type: SentimentSource | str,
        source_id: str,
        text: str,
        sentiment_score: float,
        sentiment_label: SentimentLabel | str,
        person_id: Optional[str] = None,
        confidence: float = 1.0,
        metadata: Optional[Mapping[str, object]] = None,
        at: Optional[datetime] = None,
    ) -> SentimentRecord:
        """Store a scored text and bump the person's engagement score."""
        now = at or utcnow()
        try:
            record = SentimentRecord(
                id=new_id("sent"),
                person_id=person_id,
                source_type=source_type,
                source_id=source_id,
                text=text,
                sentiment_score=sentiment_score,
                sentiment_label=sentiment_label,
                confidence=confidence,
                analyzed_at=now,
                metadata=dict(metadata or {}),
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        self.store.sentiments.add(record)
        if person_id:
            self._bump_engagement(person_id, record.sentiment_label.is_positive, now)
        return record

    def _bump_engagement(self, person_id: str, positive: bool, at: datetime) -> CustomerScore:
        existing = self.store.get_score(person_id, ScoreType.ENGAGEMENT)
        if existing is None:
            value = SEED_ENGAGEMENT_SCORE + (SEED_POSITIVE_BONUS if positive else 0)
            details = EngagementDetails(
                level=engagement_level(value),
                raw_points=0.0,
                total_activities=1,
                breakdown={"feedback": 1},
            )
        else:
            bonus = FEEDBACK_ENGAGEMENT_BONUS + (POSITIVE_SENTIMENT_BONUS if positive else 0)
            value = min(100, int(existing.score_value) + bonus)
            previous = existing.details if isinstance(existing.details, EngagementDetails) else None
            breakdown = Counter(previous.breakdown if previous else {})
            breakdown["feedback"] += 1
            details = EngagementDetails(
                level=engagement_level(value),
                raw_points=previous.raw_points if previous else 0.0,
                total_activities=(previous.total_activities if previous else 0) + 1,
                breakdown=dict(breakdown),
            )
        return self._save(person_id, ScoreType.ENGAGEMENT, float(value), details, at)

    # -- batch and reporting -----------------------------------------------

    def known_person_ids(self) -> list[str]:
        """People in the directory plus anyone referenced by stored events."""
        ids = {p.id for p in self.people.list_people()}
        ids.update(c.person_id for c in self.store.conversions.all() if c.person_id)
        ids.update(e.person_id for e in self.store.journey_events.all())
        return sorted(ids)

    def recalculate_all(
        self,
        score_types: Iterable[ScoreType | str] = DEFAULT_BATCH_SCORE_TYPES,
        person_ids: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
    ) -> BatchResult[CustomerScore]:
        """Recalculate scores for many people, isolating per-item failures.

        NPS is only recalculated for people who already have a rating.
        """
        now = as_of or utcnow()
        kinds = [ScoreType(k) for k in score_types]
        people = list(person_ids) if person_ids is not None else self.known_person_ids()
        items = [
            (person_id, kind)
            for person_id in people
            for kind in kinds
            if kind is not ScoreType.NPS or self.store.get_score(person_id, kind) is not None
        ]
        return run_batch(
            "recalculate_scores",
            items,
            lambda item: self.calculate_score(item[0], item[1], as_of=now),
            item_id=lambda item: f"{item[0]}:{item[1].value}",
        )

    def predictions(self, person_id: str, as_of: Optional[datetime] = None) -> CustomerPredictions:
        now = as_of or utcnow()
        return CustomerPredictions(
            person_id=person_id,
            clv=self.calculate_clv(person_id, now),
            churn_risk=self.calculate_churn_risk(person_id, now),
        )

    def overall_nps(self) -> NPSSummary:
        """NPS over each person's most recent rating."""
        latest = [
            s.details.rating
            for s in self.store.scores.filter(lambda s: s.score_type is ScoreType.NPS)
            if isinstance(s.details, NPSDetails) and s.details.rating is not None
        ]
        return calculate_nps(latest)

    def at_risk_customers(self, min_level: str = "high", limit: int = 50) -> AtRiskReport:
        if min_level not in RISK_LEVEL_ORDER:
            raise ValidationError(
                f"min_level must be one of {RISK_LEVEL_ORDER}, got {min_level!r}"
            )
        threshold = RISK_LEVEL_ORDER.index(min_level)
        at_risk: list[AtRiskCustomer] = []
        for churn in self.store.scores.filter(lambda s: s.score_type is ScoreType.CHURN_RISK):
            level = churn.risk_level or "low"
            if RISK_LEVEL_ORDER.index(level) < threshold:
                continue
            clv = self.store.get_score(churn.person_id, ScoreType.CLV)
            clv_details = clv.details if clv is not None and isinstance(clv.details, CLVDetails) else None
            tier = clv_details.tier if clv_details else None
            at_risk.append(
                AtRiskCustomer(
                    person_id=churn.person_id,
                    churn_score=churn.score_value,
                    risk_level=level,
                    clv_tier=tier,
                    predicted_clv=clv.score_value if clv is not None else 0.0,
                    remaining_clv=clv_details.remaining_clv if clv_details else 0.0,
                    priority="high_value_at_risk" if tier in HIGH_VALUE_TIERS else "standard",
                    recommendations=(
                        churn.details.recommendations
                        if isinstance(churn.details, ChurnDetails)
                        else ()
                    ),
                )
            )

        at_risk.sort(
            key=lambda c: (c.priority != "high_value_at_risk", -c.churn_score, -c.predicted_clv)
        )
        return AtRiskReport(
            customers=tuple(at_risk[:limit]),
            total_at_risk=len(at_risk),
            critical_count=sum(1 for c in at_risk if c.risk_level == "critical"),
            high_value_at_risk=sum(1 for c in at_risk if c.priority == "high_value_at_risk"),
            potential_revenue_at_risk=round(sum(c.predicted_clv for c in at_risk), 2),
        )

    def predictions_summary(self) -> PredictionsSummary:
        churn_scores = self.store.scores.filter(lambda s: s.score_type is ScoreType.CHURN_RISK)
        clv_scores = self.store.scores.filter(lambda s: s.score_type is ScoreType.CLV)
        by_level = Counter(s.risk_level for s in churn_scores if s.risk_level)
        by_tier = Counter(s.tier for s in clv_scores if s.tier)
        people = {s.person_id for s in churn_scores} | {s.person_id for s in clv_scores}
        return PredictionsSummary(
            total_customers=len(people),
            by_risk_level={level: by_level.get(level, 0) for level in RISK_LEVEL_ORDER},
            by_clv_tier={
                tier: by_tier.get(tier, 0) for tier in ("platinum", "gold", "silver", "bronze")
            },
            total_predicted_clv=round(sum(s.score_value for s in clv_scores), 2),
            average_churn_risk=(
                round(sum(s.score_value for s in churn_scores) / len(churn_scores), 2)
                if churn_scores
                else 0.0
            ),
        )
