"""Conversion tracking MCP tools.

Wraps ``ConversionTracker`` (record, attribute, update goals, log journey
event) and conversion goal management.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import track_tool
from analytics.services.mcp_server.state import get_core
from customer_insights.attribution import TrackConversionInput
from customer_insights.foundation import ConversionType
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class TrackConversionRequest(BaseModel):
    """Request to record a conversion."""

    conversion_type: ConversionType = Field(description="What the visitor did")
    visitor_id: str = Field(default="anonymous", description="Anonymous visitor identifier")
    session_id: str | None = Field(
        default=None, description="Session the conversion happened in (enables attribution)"
    )
    person_id: str | None = Field(default=None, description="Identified person, if known")
    website_id: str | None = None
    conversion_value: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(
        default=None, description="ISO 4217 code; the configured default when omitted"
    )
    order_id: str | None = None
    product_id: str | None = None
    form_id: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    converted_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TrackConversionResponse(BaseModel):
    """Outcome of a tracked conversion."""

    conversion_id: str
    attributed: bool
    campaign_id: str | None
    goals_updated: list[str]
    journey_event_id: str | None
    warnings: list[str]
    conversion: dict[str, Any]


class ListConversionsRequest(BaseModel):
    """Request to list stored conversions, newest first."""

    person_id: str | None = None
    campaign_id: str | None = None
    conversion_type: ConversionType | None = None
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=1000)


class ListConversionsResponse(BaseModel):
    total: int
    has_more: bool
    conversions: list[dict[str, Any]]


class CreateGoalRequest(BaseModel):
    """Request to create a conversion goal."""

    name: str = Field(min_length=1)
    goal_type: ConversionType = Field(description="Conversion type the goal counts")
    website_id: str | None = Field(
        default=None, description="Only count conversions on this website"
    )
    target_value: Decimal | None = Field(default=None, ge=0)
    is_active: bool = True


class GoalResponse(BaseModel):
    goal: dict[str, Any]


async def _track_conversion_impl(
    request: TrackConversionRequest, ctx: Context
) -> TrackConversionResponse:
    """Implementation of conversion tracking."""
    with track_tool("track_conversion", session_id=request.session_id) as span:
        await ctx.info(f"Tracking {request.conversion_type.value} conversion")

        payload = TrackConversionInput(**request.model_dump(exclude_none=True))
        result = get_core().track_conversion(payload)
        span.set_attribute("attributed", result.attributed)

        for warning in result.warnings:
            await ctx.warning(warning)

        logger.info(
            "conversion_tracked",
            conversion_id=result.conversion.id,
            attributed=result.attributed,
            goals_updated=len(result.goals_updated),
            warnings=len(result.warnings),
        )

        return TrackConversionResponse(
            conversion_id=result.conversion.id,
            attributed=result.attributed,
            campaign_id=result.conversion.campaign_id,
            goals_updated=list(result.goals_updated),
            journey_event_id=result.journey_event_id,
            warnings=list(result.warnings),
            conversion=to_jsonable(result.conversion),
        )


async def _list_conversions_impl(
    request: ListConversionsRequest, ctx: Context
) -> ListConversionsResponse:
    """Implementation of conversion listing."""
    with track_tool("list_conversions"):
        filters = request.model_dump(include={"person_id", "campaign_id", "conversion_type"})
        filters = {k: v for k, v in filters.items() if v is not None}
        page = get_core().list_conversions(filters, request.offset, request.limit)
        return ListConversionsResponse(
            total=page.total,
            has_more=page.has_more,
            conversions=[to_jsonable(c) for c in page.items],
        )


async def _create_conversion_goal_impl(request: CreateGoalRequest, ctx: Context) -> GoalResponse:
    """Implementation of goal creation."""
    with track_tool("create_conversion_goal"):
        goal = get_core().create_goal(request.model_dump())
        await ctx.info(f"Created conversion goal '{goal.name}'")
        return GoalResponse(goal=to_jsonable(goal))


@mcp.tool()
async def track_conversion(
    request: TrackConversionRequest, ctx: Context
) -> TrackConversionResponse:
    """Record a conversion and run the follow-up steps.

    Copies the session's campaign attribution onto the conversion, bumps every
    matching active goal and logs a journey event. A failing follow-up step is
    reported in ``warnings`` and never loses the conversion itself.

    Args:
        request: Conversion details
        ctx: MCP context

    Returns:
        The stored conversion, attribution outcome and any warnings
    """
    return await _track_conversion_impl(request, ctx)


@mcp.tool()
async def list_conversions(
    request: ListConversionsRequest, ctx: Context
) -> ListConversionsResponse:
    """List stored conversions, newest first, with optional filters.

    Args:
        request: Filters and paging

    Returns:
        One page of conversions plus the total number of matches
    """
    return await _list_conversions_impl(request, ctx)


@mcp.tool()
async def create_conversion_goal(request: CreateGoalRequest, ctx: Context) -> GoalResponse:
    """Create a conversion goal that counts matching conversions.

    Args:
        request: Goal name, conversion type and optional target value

    Returns:
        The stored goal
    """
    return await _create_conversion_goal_impl(request, ctx)
