"""Domain records owned by the analytics core.

All records are frozen dataclasses. Updates go through
``dataclasses.replace`` in the store so that a record handed to a caller
never changes underneath it. Datetimes are normalised to UTC on
construction; naive values are taken to already be in UTC.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Mapping, Optional, Union

from customer_insights.foundation.mappings import (
    ConversionType,
    JourneyEventType,
    JourneyStage,
    Platform,
    classify_platform,
    stage_for_event,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix allowed) or pass a datetime through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def window_bound(value: date | datetime | str | None, end: bool) -> Optional[datetime]:
    """Inclusive window bound; a plain date covers the whole day."""
    if value is None:
        return None
    if isinstance(value, str) and len(value) == 10:
        value = date.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        parsed = parse_datetime(value)
        return parsed + timedelta(days=1) - timedelta(microseconds=1) if end else parsed
    return parse_datetime(value)


def to_money(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero, the way money and scores are reported."""
    exponent = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _normalise_datetimes(record: Any, *names: str) -> None:
    for name in names:
        value = getattr(record, name)
        if value is not None:
            object.__setattr__(record, name, ensure_utc(value))


def to_jsonable(value: Any) -> Any:
    """Convert records (recursively) into JSON-compatible primitives."""
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, float) and math.isinf(value):
        return None
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# Conversions and attribution
# ---------------------------------------------------------------------------


class ResolutionMethod(str, Enum):
    EXACT_UTM_MATCH = "exact_utm_match"
    FUZZY_NAME_MATCH = "fuzzy_name_match"
    MANUAL = "manual"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class Conversion:
    """A tracked conversion event.

    Attributes
    ----------
    id:
        Unique conversion identifier
    conversion_type:
        What the visitor did
    visitor_id:
        Anonymous visitor identifier (``"anonymous"`` when unknown)
    converted_at:
        When the conversion happened
    value:
        Monetary value in ``currency`` (2 dp), if any
    platform:
        Derived from ``utm_source`` on construction; not an init argument
    campaign_id, ad_set_id, ad_id:
        Attribution copied from the session's resolved attribution
    metadata:
        Free-form context (product_id, form_id, landing_page, ...)
    """

    id: str
    conversion_type: ConversionType
    visitor_id: str
    converted_at: datetime
    currency: str = "INR"
    session_id: Optional[str] = None
    person_id: Optional[str] = None
    website_id: Optional[str] = None
    value: Optional[Decimal] = None
    order_id: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    campaign_id: Optional[str] = None
    ad_set_id: Optional[str] = None
    ad_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    platform: Platform = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "conversion_type", ConversionType(self.conversion_type))
        object.__setattr__(self, "platform", classify_platform(self.utm_source))
        object.__setattr__(self, "value", to_money(self.value))
        _normalise_datetimes(self, "converted_at")
        if self.value is not None and self.value < 0:
            raise ValueError(
                f"Conversion value cannot be negative: {self.value} (conversion_id={self.id})"
            )
        if len(self.currency) != 3:
            raise ValueError(
                f"Currency must be a 3-letter code: {self.currency!r} (conversion_id={self.id})"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Conversion":
        payload = {k: v for k, v in data.items() if k != "platform"}
        payload["converted_at"] = parse_datetime(payload["converted_at"])
        return cls(**payload)


@dataclass(frozen=True)
class CampaignAttribution:
    """Resolved (or unresolved) campaign attribution for one session.

    ``ad_set_id`` and ``ad_id`` are only known for manual attributions; UTM
    matching resolves to the campaign level.
    """

    id: str
    session_id: str
    visitor_id: str
    resolution_method: ResolutionMethod
    resolution_confidence: float
    platform: Platform
    resolved_at: datetime
    campaign_id: Optional[str] = None
    ad_set_id: Optional[str] = None
    ad_id: Optional[str] = None
    website_id: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "resolution_method", ResolutionMethod(self.resolution_method)
        )
        object.__setattr__(self, "platform", Platform(self.platform))
        _normalise_datetimes(self, "resolved_at")
        if not 0.0 <= self.resolution_confidence <= 1.0:
            raise ValueError(
                f"Resolution confidence must be in [0, 1]: {self.resolution_confidence} "
                f"(session_id={self.session_id})"
            )
        if self.is_resolved and self.campaign_id is None:
            raise ValueError(
                f"Resolved attribution requires a campaign_id (session_id={self.session_id})"
            )

    @property
    def is_resolved(self) -> bool:
        return self.resolution_method is not ResolutionMethod.UNRESOLVED

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CampaignAttribution":
        payload = dict(data)
        payload["resolved_at"] = parse_datetime(payload["resolved_at"])
        return cls(**payload)


@dataclass(frozen=True)
class ConversionGoal:
    """A conversion target with running counters.

    ``current_count`` and ``current_value`` are only changed through
    ``AnalyticsStore.increment_goal``.
    """

    id: str
    name: str
    goal_type: ConversionType
    website_id: Optional[str] = None
    target_value: Optional[Decimal] = None
    is_active: bool = True
    current_count: int = 0
    current_value: Decimal = Decimal("0.00")
    last_conversion_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "goal_type", ConversionType(self.goal_type))
        object.__setattr__(self, "current_value", to_money(self.current_value))
        object.__setattr__(self, "target_value", to_money(self.target_value))
        _normalise_datetimes(self, "last_conversion_at")
        if self.current_count < 0:
            raise ValueError(
                f"Goal count cannot be negative: {self.current_count} (goal_id={self.id})"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversionGoal":
        payload = dict(data)
        payload["last_conversion_at"] = parse_datetime(payload.get("last_conversion_at"))
        return cls(**payload)


# ---------------------------------------------------------------------------
# Journey and sentiment
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CustomerJourneyEvent:
    """Append-only journey event. ``stage`` defaults from ``event_type``."""

    id: str
    person_id: str
    event_type: JourneyEventType
    occurred_at: datetime
    stage: Optional[JourneyStage] = None
    channel: Optional[str] = None
    website_id: Optional[str] = None
    event_data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_type", JourneyEventType(self.event_type))
        stage = (
            JourneyStage(self.stage)
            if self.stage is not None
            else stage_for_event(self.event_type)
        )
        object.__setattr__(self, "stage", stage)
        _normalise_datetimes(self, "occurred_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomerJourneyEvent":
        payload = dict(data)
        payload["occurred_at"] = parse_datetime(payload["occurred_at"])
        return cls(**payload)


class SentimentSource(str, Enum):
    FEEDBACK = "feedback"
    FORM_RESPONSE = "form_response"
    SOCIAL_MENTION = "social_mention"
    SOCIAL_COMMENT = "social_comment"
    REVIEW = "review"


class SentimentLabel(str, Enum):
    VERY_NEGATIVE = "very_negative"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    POSITIVE = "positive"
    VERY_POSITIVE = "very_positive"
    MIXED = "mixed"

    @property
    def is_positive(self) -> bool:
        return self in (SentimentLabel.POSITIVE, SentimentLabel.VERY_POSITIVE)

    @property
    def is_negative(self) -> bool:
        return self in (SentimentLabel.NEGATIVE, SentimentLabel.VERY_NEGATIVE)


@dataclass(frozen=True)
class SentimentRecord:
    """A scored piece of customer text. The score comes from the caller."""

    id: str
    source_type: SentimentSource
    source_id: str
    text: str
    sentiment_score: float
    sentiment_label: SentimentLabel
    analyzed_at: datetime
    person_id: Optional[str] = None
    confidence: float = 1.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_type", SentimentSource(self.source_type))
        object.__setattr__(self, "sentiment_label", SentimentLabel(self.sentiment_label))
        _normalise_datetimes(self, "analyzed_at")
        if not -1.0 <= self.sentiment_score <= 1.0:
            raise ValueError(
                f"Sentiment score must be in [-1, 1]: {self.sentiment_score} (sentiment_id={self.id})"
            )
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"Confidence must be in [0, 1]: {self.confidence} (sentiment_id={self.id})"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SentimentRecord":
        payload = dict(data)
        payload["analyzed_at"] = parse_datetime(payload["analyzed_at"])
        return cls(**payload)


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


class ScoreType(str, Enum):
    NPS = "nps"
    ENGAGEMENT = "engagement"
    CLV = "clv"
    CHURN_RISK = "churn_risk"


@dataclass(frozen=True)
class ScoreHistoryEntry:
    score: float
    recorded_at: datetime
    label: Optional[str] = None


@dataclass(frozen=True)
class NPSDetails:
    """Latest rating plus running category counts over every response.

    ``category`` and ``rating`` are None until a first rating is recorded.
    ``rating`` and ``rating_sum`` are on the 0-10 scale.
    """

    category: Optional[str]
    rating: Optional[float]
    scale: int
    nps_value: int
    average_score: float
    response_count: int
    promoters: int = 0
    passives: int = 0
    detractors: int = 0
    rating_sum: float = 0.0


@dataclass(frozen=True)
class EngagementDetails:
    level: str
    raw_points: float
    total_activities: int
    breakdown: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CLVDetails:
    tier: str
    confidence: str
    realized_clv: float
    remaining_clv: float
    predicted_lifespan_months: int
    predicted_purchases: float
    purchase_count: int
    average_order_value: float
    purchase_frequency: float
    avg_days_between_purchases: Optional[float]
    days_since_last_purchase: Optional[int]


@dataclass(frozen=True)
class ChurnFactor:
    factor: str
    value: float
    contribution: float
    description: str


@dataclass(frozen=True)
class ChurnDetails:
    risk_level: str
    days_since_activity: int
    days_since_purchase: int
    contributing_factors: tuple[ChurnFactor, ...] = ()
    recommendations: tuple[str, ...] = ()


ScoreDetails = Union[NPSDetails, EngagementDetails, CLVDetails, ChurnDetails]


@dataclass(frozen=True)
class CustomerScore:
    """The current score of one type for one person, with bounded history."""

    id: str
    person_id: str
    score_type: ScoreType
    score_value: float
    calculated_at: datetime
    details: Optional[ScoreDetails] = None
    previous_score: Optional[float] = None
    score_change: Optional[float] = None
    history: tuple[ScoreHistoryEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "score_type", ScoreType(self.score_type))
        _normalise_datetimes(self, "calculated_at")

    @property
    def tier(self) -> Optional[str]:
        return self.details.tier if isinstance(self.details, CLVDetails) else None

    @property
    def risk_level(self) -> Optional[str]:
        if isinstance(self.details, ChurnDetails):
            return self.details.risk_level
        return None

    @property
    def label(self) -> Optional[str]:
        """Category, level, tier or risk level depending on the score type."""
        if isinstance(self.details, NPSDetails):
            return self.details.category
        if isinstance(self.details, EngagementDetails):
            return self.details.level
        return self.tier or self.risk_level

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomerScore":
        payload = dict(data)
        score_type = ScoreType(payload["score_type"])
        payload["calculated_at"] = parse_datetime(payload["calculated_at"])
        payload["details"] = _details_from_dict(score_type, payload.get("details"))
        payload["history"] = tuple(
            ScoreHistoryEntry(
                score=entry["score"],
                recorded_at=parse_datetime(entry["recorded_at"]),
                label=entry.get("label"),
            )
            for entry in payload.get("history", ())
        )
        return cls(**payload)


def _details_from_dict(
    score_type: ScoreType, data: Optional[Mapping[str, Any]]
) -> Optional[ScoreDetails]:
    if data is None:
        return None
    payload = dict(data)
    if score_type is ScoreType.NPS:
        return NPSDetails(**payload)
    if score_type is ScoreType.ENGAGEMENT:
        return EngagementDetails(**payload)
    if score_type is ScoreType.CLV:
        return CLVDetails(**payload)
    payload["contributing_factors"] = tuple(
        ChurnFactor(**factor) for factor in payload.get("contributing_factors", ())
    )
    payload["recommendations"] = tuple(payload.get("recommendations", ()))
    return ChurnDetails(**payload)


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------


class Operator(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"


OPERATOR_ALIASES: dict[str, Operator] = {
    "equals": Operator.EQ,
    "eq": Operator.EQ,
    "not_equals": Operator.NE,
    "ne": Operator.NE,
    "greater_than": Operator.GT,
    "gt": Operator.GT,
    "less_than": Operator.LT,
    "lt": Operator.LT,
    "greater_than_or_equal": Operator.GE,
    "gte": Operator.GE,
    "less_than_or_equal": Operator.LE,
    "lte": Operator.LE,
}


class Logic(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Rule:
    field: str
    operator: Operator
    value: Any = None

    def __post_init__(self) -> None:
        operator = self.operator
        if not isinstance(operator, Operator):
            key = str(operator).strip()
            operator = OPERATOR_ALIASES.get(key.lower()) or Operator(key)
        object.__setattr__(self, "operator", operator)
        if operator is Operator.BETWEEN and (
            not isinstance(self.value, (list, tuple)) or len(self.value) != 2
        ):
            raise ValueError(
                f"'between' needs a [low, high] value, got {self.value!r} (field={self.field})"
            )
        if operator in (Operator.IN, Operator.NOT_IN) and not isinstance(
            self.value, (list, tuple, set, frozenset)
        ):
            raise ValueError(
                f"'{operator.value}' needs a list value, got {self.value!r} (field={self.field})"
            )


@dataclass(frozen=True)
class RuleSet:
    """Flat rule list combined with a single AND/OR."""

    rules: tuple[Rule, ...] = ()
    logic: Logic = Logic.AND

    def __post_init__(self) -> None:
        if not isinstance(self.logic, Logic):
            object.__setattr__(self, "logic", Logic(str(self.logic).upper()))
        object.__setattr__(self, "rules", tuple(self.rules))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleSet":
        """Accept ``{rules, logic}`` or the ``{conditions, type}`` shape."""
        raw_rules = data.get("rules", data.get("conditions", []))
        logic = data.get("logic", data.get("type", "AND"))
        rules = tuple(
            rule
            if isinstance(rule, Rule)
            else Rule(
                field=rule["field"],
                operator=rule["operator"],
                value=rule.get("value"),
            )
            for rule in raw_rules
        )
        return cls(rules=rules, logic=logic)


@dataclass(frozen=True)
class CustomerSegment:
    id: str
    name: str
    criteria: RuleSet
    description: Optional[str] = None
    is_active: bool = True
    auto_update: bool = True
    customer_count: int = 0
    last_calculated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if isinstance(self.criteria, Mapping):
            object.__setattr__(self, "criteria", RuleSet.from_dict(self.criteria))
        _normalise_datetimes(self, "last_calculated_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomerSegment":
        payload = dict(data)
        payload["last_calculated_at"] = parse_datetime(payload.get("last_calculated_at"))
        return cls(**payload)


@dataclass(frozen=True)
class SegmentMember:
    segment_id: str
    person_id: str
    added_at: datetime

    def __post_init__(self) -> None:
        _normalise_datetimes(self, "added_at")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SegmentMember":
        return cls(
            segment_id=data["segment_id"],
            person_id=data["person_id"],
            added_at=parse_datetime(data["added_at"]),
        )


# ---------------------------------------------------------------------------
# Experiments
# ---------------------------------------------------------------------------


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"


class PrimaryMetric(str, Enum):
    CONVERSION_RATE = "conversion_rate"
    CTR = "ctr"
    CPC = "cpc"
    ROAS = "roas"
    LEADS = "leads"
    REVENUE = "revenue"


@dataclass(frozen=True)
class ExperimentVariant:
    name: str
    is_control: bool = False
    samples: int = 0
    conversions: int = 0
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.samples < 0 or self.conversions < 0:
            raise ValueError(
                f"Samples and conversions cannot be negative (variant={self.name})"
            )
        if self.conversions > self.samples:
            raise ValueError(
                f"Conversions ({self.conversions}) cannot exceed samples ({self.samples}) "
                f"(variant={self.name})"
            )

    @property
    def conversion_rate(self) -> float:
        return self.conversions / self.samples if self.samples else 0.0


def default_variants() -> tuple[ExperimentVariant, ...]:
    return (
        ExperimentVariant(name="Control", is_control=True),
        ExperimentVariant(name="Treatment"),
    )


@dataclass(frozen=True)
class ABExperiment:
    """A two-arm experiment (one control, one treatment).

    ``is_significant``, ``p_value`` and ``improvement_percent`` are copied
    from the statistics when the experiment completes.
    """

    id: str
    name: str
    variants: tuple[ExperimentVariant, ...] = field(default_factory=default_variants)
    status: ExperimentStatus = ExperimentStatus.DRAFT
    primary_metric: PrimaryMetric = PrimaryMetric.CONVERSION_RATE
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    website_id: Optional[str] = None
    target_sample_size: Optional[int] = None
    confidence_level: float = 0.95
    minimum_detectable_effect: Optional[float] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    is_significant: bool = False
    p_value: Optional[float] = None
    improvement_percent: Optional[float] = None
    results: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        variants = tuple(
            v if isinstance(v, ExperimentVariant) else ExperimentVariant(**v)
            for v in self.variants
        )
        object.__setattr__(self, "variants", variants)
        object.__setattr__(self, "status", ExperimentStatus(self.status))
        object.__setattr__(self, "primary_metric", PrimaryMetric(self.primary_metric))
        _normalise_datetimes(self, "created_at", "started_at", "ended_at")
        controls = [v for v in variants if v.is_control]
        if len(variants) != 2 or len(controls) != 1:
            raise ValueError(
                f"Experiment needs exactly one control and one treatment variant "
                f"(experiment_id={self.id})"
            )
        if self.target_sample_size is not None and self.target_sample_size <= 0:
            raise ValueError(
                f"Target sample size must be positive: {self.target_sample_size} "
                f"(experiment_id={self.id})"
            )
        if not 0 < self.confidence_level < 1:
            raise ValueError(
                f"Confidence level must be in (0, 1): {self.confidence_level} "
                f"(experiment_id={self.id})"
            )

    @property
    def control(self) -> ExperimentVariant:
        return next(v for v in self.variants if v.is_control)

    @property
    def treatment(self) -> ExperimentVariant:
        return next(v for v in self.variants if not v.is_control)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ABExperiment":
        payload = dict(data)
        for key in ("created_at", "started_at", "ended_at"):
            payload[key] = parse_datetime(payload.get(key))
        if "variants" in payload:
            payload["variants"] = tuple(payload["variants"])
        return cls(**payload)


# ---------------------------------------------------------------------------
# Forecasts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailyForecast:
    date: date
    predicted_spend: float
    predicted_conversions: float
    predicted_revenue: float
    predicted_roas: float = 0.0
    confidence_lower: float = 0.0
    confidence_upper: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", parse_date(self.date))


@dataclass(frozen=True)
class BudgetForecast:
    """A budget forecast with its daily series and post-hoc accuracy."""

    id: str
    forecast_date: datetime
    period_start: date
    period_end: date
    predicted_spend: float
    predicted_revenue: float = 0.0
    predicted_conversions: float = 0.0
    daily_forecasts: tuple[DailyForecast, ...] = ()
    ad_campaign_id: Optional[str] = None
    website_id: Optional[str] = None
    actual_spend: Optional[float] = None
    actual_revenue: Optional[float] = None
    actual_conversions: Optional[int] = None
    accuracy: Optional[float] = None
    mape: Optional[float] = None
    accuracy_calculated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "daily_forecasts",
            tuple(
                d if isinstance(d, DailyForecast) else DailyForecast(**d)
                for d in self.daily_forecasts
            ),
        )
        object.__setattr__(self, "period_start", parse_date(self.period_start))
        object.__setattr__(self, "period_end", parse_date(self.period_end))
        _normalise_datetimes(self, "forecast_date", "accuracy_calculated_at")
        if self.period_end < self.period_start:
            raise ValueError(
                f"Forecast period ends before it starts: {self.period_start} > "
                f"{self.period_end} (forecast_id={self.id})"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BudgetForecast":
        payload = dict(data)
        payload["forecast_date"] = parse_datetime(payload["forecast_date"])
        payload["accuracy_calculated_at"] = parse_datetime(
            payload.get("accuracy_calculated_at")
        )
        return cls(**payload)
