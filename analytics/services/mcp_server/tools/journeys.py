"""Customer journey and sentiment MCP tools."""

from datetime import date, datetime
from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import track_tool
from analytics.services.mcp_server.state import get_core
from customer_insights.foundation import (
    JourneyEventType,
    JourneyStage,
    SentimentLabel,
    SentimentSource,
)
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class RecordJourneyEventRequest(BaseModel):
    """Request to append a journey event for a person."""

    person_id: str = Field(min_length=1)
    event_type: JourneyEventType
    stage: JourneyStage | None = Field(
        default=None, description="Journey stage; derived from event_type when omitted"
    )
    channel: str | None = None
    website_id: str | None = None
    occurred_at: datetime | None = None
    event_data: dict[str, Any] = Field(default_factory=dict)


class JourneyEventResponse(BaseModel):
    event_id: str
    stage: str
    event: dict[str, Any]


class RecordSentimentRequest(BaseModel):
    """Request to store an already scored piece of customer text."""

    source_type: SentimentSource
    source_id: str = Field(min_length=1)
    text: str
    sentiment_score: float = Field(ge=-1.0, le=1.0)
    sentiment_label: SentimentLabel
    person_id: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class SentimentResponse(BaseModel):
    sentiment_id: str
    engagement_updated: bool
    sentiment: dict[str, Any]


class JourneyTimelineRequest(BaseModel):
    person_id: str = Field(min_length=1)


class JourneyTimelineResponse(BaseModel):
    """One person's merged timeline, oldest entry first."""

    person_id: str
    known_person: bool
    total_events: int
    current_stage: str | None
    stages_reached: list[str]
    timeline: list[dict[str, Any]]
    scores: dict[str, Any]


class FunnelRequest(BaseModel):
    """Request for the stage funnel."""

    website_id: str | None = None
    date_from: date | None = Field(default=None, description="Inclusive start date")
    date_to: date | None = Field(default=None, description="Inclusive end date")


class FunnelStageModel(BaseModel):
    stage: str
    count: int
    percentage: float
    dropoff_rate: float


class FunnelResponse(BaseModel):
    total_customers: int
    awareness_to_conversion_rate: float
    biggest_dropoff: dict[str, Any] | None
    funnel: list[FunnelStageModel]
    stage_events: dict[str, int]


async def _record_journey_event_impl(
    request: RecordJourneyEventRequest, ctx: Context
) -> JourneyEventResponse:
    """Implementation of journey event recording."""
    with track_tool("record_journey_event", person_id=request.person_id):
        event = get_core().record_journey_event(request.model_dump(exclude_none=True))
        return JourneyEventResponse(
            event_id=event.id, stage=event.stage.value, event=to_jsonable(event)
        )


async def _record_sentiment_impl(
    request: RecordSentimentRequest, ctx: Context
) -> SentimentResponse:
    """Implementation of sentiment recording."""
    with track_tool("record_sentiment", source_type=request.source_type.value):
        record = get_core().record_sentiment(**request.model_dump())
        logger.info(
            "sentiment_recorded",
            sentiment_id=record.id,
            label=record.sentiment_label.value,
            person_id=record.person_id,
        )
        return SentimentResponse(
            sentiment_id=record.id,
            engagement_updated=record.person_id is not None,
            sentiment=to_jsonable(record),
        )


async def _get_journey_timeline_impl(
    request: JourneyTimelineRequest, ctx: Context
) -> JourneyTimelineResponse:
    """Implementation of the timeline lookup."""
    with track_tool("get_journey_timeline", person_id=request.person_id):
        journey = get_core().journey_timeline(request.person_id)
        if journey.person is None:
            await ctx.warning(f"Person {request.person_id} is not in the directory")
        summary = journey.summary
        return JourneyTimelineResponse(
            person_id=journey.person_id,
            known_person=journey.person is not None,
            total_events=summary.total_events,
            current_stage=summary.current_stage.value if summary.current_stage else None,
            stages_reached=[stage.value for stage in summary.stages_reached],
            timeline=[to_jsonable(entry) for entry in journey.timeline],
            scores=to_jsonable(journey.scores),
        )


async def _analyze_funnel_impl(request: FunnelRequest, ctx: Context) -> FunnelResponse:
    """Implementation of the funnel analysis."""
    with track_tool("analyze_funnel", website_id=request.website_id):
        await ctx.info("Aggregating journey events into the stage funnel")
        report = get_core().funnel(request.website_id, request.date_from, request.date_to)
        summary = report.summary
        return FunnelResponse(
            total_customers=summary.total_customers,
            awareness_to_conversion_rate=summary.awareness_to_conversion_rate,
            biggest_dropoff=to_jsonable(summary.biggest_dropoff),
            funnel=[
                FunnelStageModel(
                    stage=stage.stage.value,
                    count=stage.count,
                    percentage=stage.percentage,
                    dropoff_rate=stage.dropoff_rate,
                )
                for stage in report.funnel
            ],
            stage_events=report.stage_events,
        )


@mcp.tool()
async def record_journey_event(
    request: RecordJourneyEventRequest, ctx: Context
) -> JourneyEventResponse:
    """Append a journey event (page view, signup, purchase, ...) for a person.

    Args:
        request: Person, event type and optional stage, channel and payload

    Returns:
        The stored event with its journey stage
    """
    return await _record_journey_event_impl(request, ctx)


@mcp.tool()
async def record_sentiment(request: RecordSentimentRequest, ctx: Context) -> SentimentResponse:
    """Store a scored piece of customer text.

    When the text names a person their engagement score goes up: 10 points
    for the feedback, 5 more when the sentiment is positive.

    Args:
        request: Source, text, score in [-1, 1] and label

    Returns:
        The stored sentiment record
    """
    return await _record_sentiment_impl(request, ctx)


@mcp.tool()
async def get_journey_timeline(
    request: JourneyTimelineRequest, ctx: Context
) -> JourneyTimelineResponse:
    """Merge a person's journey events, conversions and sentiment into one timeline.

    Args:
        request: Person id

    Returns:
        Timeline entries oldest first, the furthest stage reached and current scores
    """
    return await _get_journey_timeline_impl(request, ctx)


@mcp.tool()
async def analyze_funnel(request: FunnelRequest, ctx: Context) -> FunnelResponse:
    """Count people per journey stage (awareness to advocacy).

    A person counts at every stage up to the furthest one they reached, so
    counts never increase along the funnel.

    Args:
        request: Optional website filter and inclusive date range

    Returns:
        Per-stage counts, share of all people, drop-off rates and the biggest drop-off
    """
    return await _analyze_funnel_impl(request, ctx)
