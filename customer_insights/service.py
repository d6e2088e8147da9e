"""Facade over the analytics core.

``AnalyticsCore`` wires the components to one record store and the
platform collaborators passed in by the caller, and exposes every
operation the CLI and the MCP server need. It holds no state of its own.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from customer_insights.attribution import (
    AttributionService,
    BulkResolveResult,
    ConversionTracker,
    TrackConversionInput,
    TrackResult,
)
from customer_insights.config import InsightsConfig
from customer_insights.exceptions import ValidationError
from customer_insights.experiments import ExperimentAnalyzer, ExperimentReport
from customer_insights.forecasting import (
    BudgetRecommendation,
    ForecastAccuracyReport,
    ForecastAnalyzer,
    HistoryPoint,
    recommend_budget,
)
from customer_insights.foundation import (
    ABExperiment,
    AnalyticsStore,
    BatchResult,
    BudgetForecast,
    Campaign,
    CampaignAttribution,
    CampaignDirectory,
    Conversion,
    ConversionGoal,
    CustomerJourneyEvent,
    CustomerScore,
    CustomerSegment,
    ExperimentStatus,
    InMemoryCampaignDirectory,
    InMemoryPersonDirectory,
    InMemorySessionStore,
    Page,
    Person,
    PersonDirectory,
    ScoreType,
    SegmentMember,
    SentimentRecord,
    Session,
    SessionStore,
    new_id,
)
from customer_insights.foundation.records import utcnow
from customer_insights.foundation.store import MAX_PAGE_SIZE
from customer_insights.journeys import FunnelReport, JourneyTimeline, build_funnel, journey_timeline
from customer_insights.reporting import (
    AttributionStats,
    ConversionStats,
    DashboardOverview,
    attribution_stats,
    conversion_stats,
    dashboard_overview,
)
from customer_insights.scoring import (
    AtRiskReport,
    CustomerPredictions,
    NPSSummary,
    PredictionsSummary,
    ScoringEngine,
)
from customer_insights.segments import (
    SegmentBuildResult,
    SegmentBuilder,
    SegmentPreview,
    parse_criteria,
)

logger = logging.getLogger(__name__)

# conversions are immutable apart from identity stitching and annotations
CONVERSION_UPDATABLE_FIELDS = frozenset({"person_id", "metadata"})
SEGMENT_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "criteria", "is_active", "auto_update"}
)
FORECAST_UPDATABLE_FIELDS = frozenset({"actual_spend", "ad_campaign_id", "website_id"})
ATTRIBUTION_UPDATABLE_FIELDS = frozenset({"campaign_id", "ad_set_id", "ad_id"})


def _restrict(entity: str, changes: Mapping[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    rejected = sorted(set(changes) - allowed)
    if rejected:
        raise ValidationError(f"{entity} fields cannot be updated: {rejected}")
    return dict(changes)


class AnalyticsCore:
    """Every analytics operation behind one object.

    Parameters
    ----------
    store:
        Record store owning all analytics entities
    sessions, campaigns, people:
        Platform collaborators; empty in-memory directories by default
    config:
        Calculator policy
    """

    def __init__(
        self,
        store: Optional[AnalyticsStore] = None,
        sessions: Optional[SessionStore] = None,
        campaigns: Optional[CampaignDirectory] = None,
        people: Optional[PersonDirectory] = None,
        config: Optional[InsightsConfig] = None,
    ) -> None:
        self.store = store or AnalyticsStore()
        self.sessions = sessions if sessions is not None else InMemorySessionStore()
        self.campaigns = campaigns if campaigns is not None else InMemoryCampaignDirectory()
        self.people = people if people is not None else InMemoryPersonDirectory()
        self.config = config or InsightsConfig()

        self.attribution = AttributionService(
            self.store, self.sessions, self.campaigns, self.config.resolver
        )
        self.tracker = ConversionTracker(self.store, self.config.default_currency)
        self.scoring = ScoringEngine(self.store, self.people, self.config)
        self.segments = SegmentBuilder(self.store, self.people)
        self.experiments = ExperimentAnalyzer(self.store)
        self.forecasts = ForecastAnalyzer(self.store)

    # -- conversions -------------------------------------------------------

    def track_conversion(self, payload: TrackConversionInput | Mapping[str, Any]) -> TrackResult:
        return self.tracker.track(
            payload if isinstance(payload, TrackConversionInput) else dict(payload)
        )

    create_conversion = track_conversion

    def list_conversions(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[Conversion]:
        return self.store.conversions.list(
            filters, offset, limit, order_by="converted_at", descending=True
        )

    def get_conversion(self, conversion_id: str) -> Conversion:
        return self.store.conversions.get(conversion_id)

    def update_conversion(self, conversion_id: str, changes: Mapping[str, Any]) -> Conversion:
        return self.store.conversions.update(
            conversion_id, **_restrict("Conversion", changes, CONVERSION_UPDATABLE_FIELDS)
        )

    def delete_conversion(self, conversion_id: str) -> Conversion:
        return self.store.conversions.delete(conversion_id)

    # -- goals -------------------------------------------------------------

    def create_goal(self, payload: Mapping[str, Any]) -> ConversionGoal:
        data = dict(payload)
        data.setdefault("id", new_id("goal"))
        try:
            goal = ConversionGoal.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid goal: {exc}") from exc
        return self.store.goals.add(goal)

    def list_goals(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[ConversionGoal]:
        return self.store.goals.list(filters, offset, limit, order_by="name")

    def get_goal(self, goal_id: str) -> ConversionGoal:
        return self.store.goals.get(goal_id)

    # -- attribution -------------------------------------------------------

    def resolve_attribution(self, session_id: str, force: bool = False) -> CampaignAttribution:
        return self.attribution.resolve_session(session_id, force=force)

    create_attribution = resolve_attribution

    def set_manual_attribution(
        self,
        session_id: str,
        campaign_id: str,
        ad_set_id: Optional[str] = None,
        ad_id: Optional[str] = None,
    ) -> CampaignAttribution:
        return self.attribution.set_manual_attribution(
            session_id, campaign_id, ad_set_id=ad_set_id, ad_id=ad_id
        )

    def bulk_resolve_attributions(
        self, days_back: int = 7, limit: int = 1000, as_of: Optional[datetime] = None
    ) -> BulkResolveResult:
        return self.attribution.bulk_resolve(days_back, limit, as_of)

    def list_attributions(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[CampaignAttribution]:
        return self.store.attributions.list(
            filters, offset, limit, order_by="resolved_at", descending=True
        )

    def get_attribution(self, attribution_id: str) -> CampaignAttribution:
        return self.store.attributions.get(attribution_id)

    def update_attribution(
        self, attribution_id: str, changes: Mapping[str, Any]
    ) -> CampaignAttribution:
        """Only the campaign, ad set and ad can be changed; the row becomes a manual attribution."""
        _restrict("CampaignAttribution", changes, ATTRIBUTION_UPDATABLE_FIELDS)
        attribution = self.store.attributions.get(attribution_id)
        campaign_id = changes.get("campaign_id")
        if not campaign_id:
            raise ValidationError("campaign_id is required to update an attribution")
        return self.attribution.set_manual_attribution(
            attribution.session_id,
            campaign_id,
            ad_set_id=changes.get("ad_set_id"),
            ad_id=changes.get("ad_id"),
        )

    def delete_attribution(self, attribution_id: str) -> CampaignAttribution:
        return self.store.attributions.delete(attribution_id)

    # -- journeys and sentiment --------------------------------------------

    def record_journey_event(self, payload: Mapping[str, Any]) -> CustomerJourneyEvent:
        data = dict(payload)
        data.setdefault("id", new_id("jev"))
        data.setdefault("occurred_at", utcnow())
        try:
            event = CustomerJourneyEvent.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid journey event: {exc}") from exc
        return self.store.journey_events.add(event)

    def record_sentiment(self, **fields: Any) -> SentimentRecord:
        return self.scoring.record_sentiment(**fields)

    def journey_timeline(self, person_id: str) -> JourneyTimeline:
        return journey_timeline(person_id, self.store, self.people)

    def funnel(
        self,
        website_id: Optional[str] = None,
        date_from: date | datetime | str | None = None,
        date_to: date | datetime | str | None = None,
    ) -> FunnelReport:
        try:
            return build_funnel(self.store.journey_events.all(), website_id, date_from, date_to)
        except ValueError as exc:
            raise ValidationError(f"Invalid funnel date range: {exc}") from exc

    # -- scores ------------------------------------------------------------

    def calculate_score(self, person_id: str, score_type: ScoreType | str) -> CustomerScore:
        return self.scoring.calculate_score(person_id, score_type)

    create_score = calculate_score

    def record_nps(self, person_id: str, rating: float, scale: int = 10) -> CustomerScore:
        return self.scoring.record_nps(person_id, rating, scale)

    def overall_nps(self) -> NPSSummary:
        return self.scoring.overall_nps()

    def list_scores(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[CustomerScore]:
        if filters and filters.get("score_type") is not None:
            filters = dict(filters)
            try:
                filters["score_type"] = ScoreType(filters["score_type"])
            except ValueError as exc:
                raise ValidationError(f"Unknown score type: {filters['score_type']!r}") from exc
        return self.store.scores.list(
            filters, offset, limit, order_by="calculated_at", descending=True
        )

    def get_score(self, score_id: str) -> CustomerScore:
        return self.store.scores.get(score_id)

    def update_score(self, score_id: str, score_value: float) -> CustomerScore:
        return self.scoring.override_score(score_id, score_value)

    def delete_score(self, score_id: str) -> CustomerScore:
        return self.store.scores.delete(score_id)

    def recalculate_scores(
        self,
        score_types: Optional[Iterable[ScoreType | str]] = None,
        person_ids: Optional[Iterable[str]] = None,
    ) -> BatchResult[CustomerScore]:
        if score_types is None:
            return self.scoring.recalculate_all(person_ids=person_ids)
        try:
            kinds = [ScoreType(kind) for kind in score_types]
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return self.scoring.recalculate_all(kinds, person_ids)

    def predictions(self, person_id: str) -> CustomerPredictions:
        return self.scoring.predictions(person_id)

    def predictions_summary(self) -> PredictionsSummary:
        return self.scoring.predictions_summary()

    def at_risk_customers(self, min_level: str = "high", limit: int = 50) -> AtRiskReport:
        return self.scoring.at_risk_customers(min_level, limit)

    # -- segments ----------------------------------------------------------

    def create_segment(
        self,
        name: str,
        criteria: Mapping[str, Any],
        description: Optional[str] = None,
        is_active: bool = True,
        auto_update: bool = True,
    ) -> CustomerSegment:
        if not name or not name.strip():
            raise ValidationError("Segment name is required")
        segment = CustomerSegment(
            id=new_id("seg"),
            name=name.strip(),
            criteria=parse_criteria(criteria),
            description=description,
            is_active=is_active,
            auto_update=auto_update,
        )
        return self.store.segments.add(segment)

    def list_segments(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[CustomerSegment]:
        return self.store.segments.list(filters, offset, limit, order_by="name")

    def get_segment(self, segment_id: str) -> CustomerSegment:
        return self.store.segments.get(segment_id)

    def update_segment(self, segment_id: str, changes: Mapping[str, Any]) -> CustomerSegment:
        """Update segment settings; membership follows on the next build."""
        data = _restrict("CustomerSegment", changes, SEGMENT_UPDATABLE_FIELDS)
        if "criteria" in data:
            data["criteria"] = parse_criteria(data["criteria"])
        return self.store.segments.update(segment_id, **data)

    def delete_segment(self, segment_id: str) -> CustomerSegment:
        return self.store.delete_segment(segment_id)

    def segment_members(
        self, segment_id: str, offset: int = 0, limit: int = 50
    ) -> Page[SegmentMember]:
        self.store.segments.get(segment_id)
        members = sorted(self.store.members(segment_id), key=lambda m: m.person_id)
        if offset < 0 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"Invalid page: offset={offset} limit={limit}")
        return Page(
            items=tuple(members[offset : offset + limit]),
            total=len(members),
            offset=offset,
            limit=limit,
        )

    def build_segment(self, segment_id: str) -> SegmentBuildResult:
        return self.segments.build_segment(segment_id)

    def rebuild_auto_segments(self) -> BatchResult[SegmentBuildResult]:
        return self.segments.rebuild_auto_segments()

    def preview_segment(self, criteria: Mapping[str, Any]) -> SegmentPreview:
        return self.segments.preview_segment(criteria)

    # -- experiments -------------------------------------------------------

    def create_experiment(self, payload: Mapping[str, Any]) -> ABExperiment:
        data = dict(payload)
        status = data.pop("status", ExperimentStatus.DRAFT.value)
        if status not in (ExperimentStatus.DRAFT, ExperimentStatus.DRAFT.value):
            raise ValidationError("New experiments start as draft")
        if not data.get("name"):
            raise ValidationError("Experiment name is required")
        data.setdefault("id", new_id("exp"))
        data.setdefault("created_at", utcnow())
        try:
            experiment = ABExperiment.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid experiment: {exc}") from exc
        return self.store.experiments.add(experiment)

    def list_experiments(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[ABExperiment]:
        return self.store.experiments.list(
            filters, offset, limit, order_by="created_at", descending=True
        )

    def get_experiment(self, experiment_id: str) -> ABExperiment:
        return self.store.experiments.get(experiment_id)

    def update_experiment(self, experiment_id: str, changes: Mapping[str, Any]) -> ABExperiment:
        return self.experiments.update(experiment_id, changes)

    def delete_experiment(self, experiment_id: str) -> ABExperiment:
        return self.experiments.delete(experiment_id)

    def start_experiment(self, experiment_id: str) -> ABExperiment:
        return self.experiments.start(experiment_id)

    def complete_experiment(self, experiment_id: str) -> ABExperiment:
        return self.experiments.complete(experiment_id)

    def record_experiment_observation(
        self, experiment_id: str, variant_name: str, samples: int, conversions: int
    ) -> ABExperiment:
        return self.experiments.record_observation(
            experiment_id, variant_name, samples, conversions
        )

    def experiment_results(self, experiment_id: str) -> ExperimentReport:
        return self.experiments.results(experiment_id)

    # -- forecasts ---------------------------------------------------------

    def create_forecast(
        self,
        history: Sequence[HistoryPoint | Mapping[str, Any]],
        forecast_days: int,
        daily_budget: float,
        start: Optional[date] = None,
        ad_campaign_id: Optional[str] = None,
        website_id: Optional[str] = None,
    ) -> BudgetForecast:
        return self.forecasts.create_forecast(
            self._history(history), forecast_days, daily_budget, start, ad_campaign_id, website_id
        )

    def recommend_budget(
        self,
        history: Sequence[HistoryPoint | Mapping[str, Any]],
        target_roas: float,
        max_budget: float,
    ) -> BudgetRecommendation:
        if target_roas <= 0 or max_budget <= 0:
            raise ValidationError("target_roas and max_budget must be positive")
        return recommend_budget(self._history(history), target_roas, max_budget)

    @staticmethod
    def _history(points: Sequence[HistoryPoint | Mapping[str, Any]]) -> list[HistoryPoint]:
        try:
            return [p if isinstance(p, HistoryPoint) else HistoryPoint(**p) for p in points]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid forecast history: {exc}") from exc

    def list_forecasts(
        self, filters: Optional[Mapping[str, Any]] = None, offset: int = 0, limit: int = 50
    ) -> Page[BudgetForecast]:
        return self.store.forecasts.list(
            filters, offset, limit, order_by="forecast_date", descending=True
        )

    def get_forecast(self, forecast_id: str) -> BudgetForecast:
        return self.store.forecasts.get(forecast_id)

    def update_forecast(self, forecast_id: str, changes: Mapping[str, Any]) -> BudgetForecast:
        data = _restrict("BudgetForecast", changes, FORECAST_UPDATABLE_FIELDS)
        return self.store.forecasts.update(forecast_id, **data)

    def delete_forecast(self, forecast_id: str) -> BudgetForecast:
        return self.store.forecasts.delete(forecast_id)

    def forecast_accuracy(
        self, forecast_id: Optional[str] = None
    ) -> ForecastAccuracyReport | BatchResult[ForecastAccuracyReport]:
        """Score one forecast, or every forecast whose window has ended."""
        if forecast_id is not None:
            return self.forecasts.forecast_accuracy(forecast_id)
        return self.forecasts.accuracy_for_ended()

    # -- reports -----------------------------------------------------------

    def _campaign_names(self) -> dict[str, str]:
        return {campaign.id: campaign.name for campaign in self.campaigns.list_campaigns()}

    def conversion_stats(
        self,
        website_id: Optional[str] = None,
        date_from: date | datetime | str | None = None,
        date_to: date | datetime | str | None = None,
    ) -> ConversionStats:
        try:
            return conversion_stats(self.store.conversions.all(), website_id, date_from, date_to)
        except ValueError as exc:
            raise ValidationError(f"Invalid report date range: {exc}") from exc

    def attribution_stats(
        self,
        website_id: Optional[str] = None,
        date_from: date | datetime | str | None = None,
        date_to: date | datetime | str | None = None,
    ) -> AttributionStats:
        try:
            return attribution_stats(
                self.store.attributions.all(),
                self.store.conversions.all(),
                self._campaign_names(),
                website_id,
                date_from,
                date_to,
            )
        except ValueError as exc:
            raise ValidationError(f"Invalid report date range: {exc}") from exc

    def dashboard_overview(
        self,
        website_id: Optional[str] = None,
        date_from: date | datetime | str | None = None,
        date_to: date | datetime | str | None = None,
    ) -> DashboardOverview:
        """Conversions, attribution, goals and running experiments for one period."""
        try:
            return dashboard_overview(
                self.store.conversions.all(),
                self.store.attributions.all(),
                goals=self.store.goals.all(),
                experiments=self.store.experiments.all(),
                campaign_names=self._campaign_names(),
                website_id=website_id,
                date_from=date_from,
                date_to=date_to,
            )
        except ValueError as exc:
            raise ValidationError(f"Invalid report date range: {exc}") from exc

    # -- snapshots ---------------------------------------------------------

    @classmethod
    def from_snapshot(
        cls, payload: Mapping[str, Any], config: Optional[InsightsConfig] = None
    ) -> "AnalyticsCore":
        """Build a core from a JSON snapshot of collaborators and records."""
        try:
            sessions = InMemorySessionStore(Session.from_dict(s) for s in payload.get("sessions", ()))
            campaigns = InMemoryCampaignDirectory(
                Campaign.from_dict(c) for c in payload.get("campaigns", ())
            )
            people = InMemoryPersonDirectory(Person.from_dict(p) for p in payload.get("persons", ()))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid snapshot collaborators: {exc}") from exc
        store = AnalyticsStore()
        store.load_snapshot(payload)
        logger.info(
            "Loaded snapshot: %d people, %d conversions",
            len(people.list_people()),
            len(store.conversions),
        )
        return cls(store, sessions, campaigns, people, config)

    def snapshot(self) -> dict[str, Any]:
        return self.store.dump_snapshot()