"""Conversion tracking pipeline.

``ConversionTracker.track`` runs four steps in order:

1. attach the session's resolved attribution, if any (campaign, ad set,
   ad, and the session UTMs when the payload carries none)
2. persist the conversion (required)
3. increment matching active goal counters (best effort)
4. append a journey event for known people (best effort)

Each step may register a compensation. When a required step fails, the
compensations of the steps that already ran are executed in reverse order
and the error propagates. Best-effort steps only log and collect a warning;
they never undo the stored conversion.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from customer_insights.exceptions import ValidationError
from customer_insights.foundation.mappings import (
    ConversionType,
    journey_for_conversion,
)
from customer_insights.foundation.records import (
    CampaignAttribution,
    Conversion,
    CustomerJourneyEvent,
    utcnow,
)
from customer_insights.foundation.store import AnalyticsStore, new_id

logger = logging.getLogger(__name__)

_METADATA_FIELDS = (
    "product_id",
    "form_id",
    "form_response_id",
    "landing_page",
    "conversion_page",
    "custom_event_name",
)

_UTM_FIELDS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


class TrackConversionInput(BaseModel):
    """Validated payload for ``track_conversion``."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    conversion_type: ConversionType
    visitor_id: str = Field(default="anonymous", min_length=1)
    session_id: Optional[str] = None
    person_id: Optional[str] = None
    website_id: Optional[str] = None
    conversion_value: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    form_id: Optional[str] = None
    form_response_id: Optional[str] = None
    landing_page: Optional[str] = None
    conversion_page: Optional[str] = None
    custom_event_name: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None
    converted_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class TrackResult:
    conversion: Conversion
    attributed: bool
    goals_updated: tuple[str, ...] = ()
    journey_event_id: Optional[str] = None
    warnings: tuple[str, ...] = ()


@dataclass
class _Step:
    name: str
    action: Callable[[], Any]
    required: bool = True
    compensate: Optional[Callable[[], None]] = None


@dataclass
class _Pipeline:
    """Sequential steps with per-step rollback."""

    label: str
    steps: list[_Step] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add(
        self,
        name: str,
        action: Callable[[], Any],
        required: bool = True,
        compensate: Optional[Callable[[], None]] = None,
    ) -> None:
        self.steps.append(_Step(name, action, required, compensate))

    def run(self) -> None:
        completed: list[_Step] = []
        for step in self.steps:
            try:
                step.action()
            except Exception as exc:
                if not step.required:
                    logger.warning(
                        "%s: optional step %s failed: %s", self.label, step.name, exc
                    )
                    self.warnings.append(f"{step.name}: {exc}")
                    continue
                logger.error(
                    "%s: step %s failed, rolling back %d step(s)",
                    self.label,
                    step.name,
                    len(completed),
                )
                self._rollback(completed)
                raise
            completed.append(step)

    def _rollback(self, completed: list[_Step]) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate()
            except Exception as exc:
                logger.error(
                    "%s: compensation for %s failed: %s", self.label, step.name, exc
                )


class ConversionTracker:
    """Records conversions and their enrichments against the store."""

    def __init__(self, store: AnalyticsStore, default_currency: str = "INR") -> None:
        self.store = store
        self.default_currency = default_currency

    @staticmethod
    def parse(payload: TrackConversionInput | dict[str, Any]) -> TrackConversionInput:
        if isinstance(payload, TrackConversionInput):
            return payload
        try:
            return TrackConversionInput.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid conversion payload: {exc}") from exc

    def track(self, payload: TrackConversionInput | dict[str, Any]) -> TrackResult:
        data = self.parse(payload)
        state: dict[str, Any] = {"attribution": None, "goals": [], "journey_event": None}
        conversion_id = new_id("conv")

        def attach_attribution() -> None:
            if data.session_id:
                attribution = self.store.attribution_for_session(data.session_id)
                if attribution is not None and attribution.is_resolved:
                    state["attribution"] = attribution

        def persist() -> None:
            state["conversion"] = self.store.conversions.add(
                self._build_conversion(conversion_id, data, state["attribution"])
            )

        def update_goals() -> None:
            state["goals"] = self._increment_goals(state["conversion"])

        def append_journey() -> None:
            if state["conversion"].person_id:
                state["journey_event"] = self._append_journey(state["conversion"])

        pipeline = _Pipeline(label=f"track_conversion[{conversion_id}]")
        pipeline.add("attach_attribution", attach_attribution, required=False)
        pipeline.add(
            "persist_conversion",
            persist,
            compensate=lambda: self.store.conversions.delete(conversion_id),
        )
        pipeline.add("update_goals", update_goals, required=False)
        pipeline.add("append_journey_event", append_journey, required=False)
        pipeline.run()

        conversion: Conversion = state["conversion"]
        logger.info(
            "Tracked %s conversion %s (attributed=%s goals=%d)",
            conversion.conversion_type.value,
            conversion.id,
            state["attribution"] is not None,
            len(state["goals"]),
        )
        journey_event = state["journey_event"]
        return TrackResult(
            conversion=conversion,
            attributed=state["attribution"] is not None,
            goals_updated=tuple(state["goals"]),
            journey_event_id=journey_event.id if journey_event else None,
            warnings=tuple(pipeline.warnings),
        )

    def track_purchase(
        self,
        order_id: str,
        value: Decimal | float,
        currency: Optional[str] = None,
        **fields: Any,
    ) -> TrackResult:
        """Track a completed order as a ``purchase`` conversion."""
        payload = dict(fields)
        payload.update(
            conversion_type=ConversionType.PURCHASE,
            order_id=order_id,
            conversion_value=value,
            currency=currency,
        )
        return self.track(payload)

    def track_lead(
        self,
        form_id: str,
        form_response_id: Optional[str] = None,
        **fields: Any,
    ) -> TrackResult:
        """Track a submitted lead form as a ``lead_form_submission`` conversion."""
        payload = dict(fields)
        payload.update(
            conversion_type=ConversionType.LEAD_FORM_SUBMISSION,
            form_id=form_id,
            form_response_id=form_response_id,
        )
        return self.track(payload)

    def _build_conversion(
        self,
        conversion_id: str,
        data: TrackConversionInput,
        attribution: Optional[CampaignAttribution],
    ) -> Conversion:
        metadata = dict(data.metadata)
        for name in _METADATA_FIELDS:
            value = getattr(data, name)
            if value is not None:
                metadata[name] = value
        # UTMs come from the payload when it has any, else from the attributed session
        utm_origin: Any = data
        if attribution is not None and not any(getattr(data, name) for name in _UTM_FIELDS):
            utm_origin = attribution
        utms = {name: getattr(utm_origin, name) for name in _UTM_FIELDS}
        try:
            return Conversion(
                id=conversion_id,
                conversion_type=data.conversion_type,
                visitor_id=data.visitor_id,
                converted_at=data.converted_at or utcnow(),
                currency=(data.currency or self.default_currency).upper(),
                session_id=data.session_id,
                person_id=data.person_id,
                website_id=data.website_id,
                value=data.conversion_value,
                order_id=data.order_id,
                campaign_id=attribution.campaign_id if attribution else None,
                ad_set_id=attribution.ad_set_id if attribution else None,
                ad_id=attribution.ad_id if attribution else None,
                metadata=metadata,
                **utms,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def _increment_goals(self, conversion: Conversion) -> list[str]:
        updated: list[str] = []
        goals = self.store.goals.filter(
            lambda g: g.is_active
            and g.goal_type == conversion.conversion_type
            and (g.website_id is None or g.website_id == conversion.website_id)
        )
        for goal in goals:
            try:
                self.store.increment_goal(goal.id, conversion.value, conversion.converted_at)
                updated.append(goal.id)
            except Exception as exc:
                logger.warning("Goal %s not updated for %s: %s", goal.id, conversion.id, exc)
        return updated

    def _append_journey(self, conversion: Conversion) -> CustomerJourneyEvent:
        stage, event_type = journey_for_conversion(conversion.conversion_type)
        event = CustomerJourneyEvent(
            id=new_id("jev"),
            person_id=conversion.person_id,
            event_type=event_type,
            stage=stage,
            occurred_at=conversion.converted_at,
            channel=conversion.platform.value,
            website_id=conversion.website_id,
            event_data={
                "conversion_id": conversion.id,
                "conversion_type": conversion.conversion_type.value,
                "value": float(conversion.value) if conversion.value is not None else None,
                "order_id": conversion.order_id,
            },
        )
        return self.store.journey_events.add(event)
