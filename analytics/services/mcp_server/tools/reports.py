"""Reporting MCP tools: conversion stats, attribution stats and the dashboard."""

from datetime import date
from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import track_tool
from analytics.services.mcp_server.state import get_core
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class ReportRequest(BaseModel):
    """Website filter and inclusive date range shared by every report."""

    website_id: str | None = None
    date_from: date | None = Field(default=None, description="Inclusive start date")
    date_to: date | None = Field(default=None, description="Inclusive end date")


class ConversionStatsResponse(BaseModel):
    totals: dict[str, Any]
    by_platform: dict[str, int]
    by_currency: dict[str, float]
    daily: list[dict[str, Any]]


class AttributionStatsResponse(BaseModel):
    totals: dict[str, Any]
    by_method: dict[str, int]
    by_platform: dict[str, int]
    by_campaign: list[dict[str, Any]]


class DashboardResponse(BaseModel):
    """Headline numbers for one period."""

    period: dict[str, Any]
    conversions: dict[str, Any]
    attribution: dict[str, Any]
    top_campaigns: list[dict[str, Any]]
    goals: list[dict[str, Any]]
    running_experiments: int


async def _get_conversion_stats_impl(
    request: ReportRequest, ctx: Context
) -> ConversionStatsResponse:
    """Implementation of the conversion statistics report."""
    with track_tool("get_conversion_stats", website_id=request.website_id) as span:
        stats = get_core().conversion_stats(request.website_id, request.date_from, request.date_to)
        span.set_attribute("total_conversions", stats.totals.total_conversions)
        if len(stats.by_currency) > 1:
            await ctx.warning(
                f"Values span {len(stats.by_currency)} currencies; see by_currency for the split"
            )
        return ConversionStatsResponse(
            totals=to_jsonable(stats.totals),
            by_platform=stats.by_platform,
            by_currency=stats.by_currency,
            daily=[to_jsonable(day) for day in stats.daily],
        )


async def _get_attribution_stats_impl(
    request: ReportRequest, ctx: Context
) -> AttributionStatsResponse:
    """Implementation of the attribution statistics report."""
    with track_tool("get_attribution_stats", website_id=request.website_id) as span:
        stats = get_core().attribution_stats(
            request.website_id, request.date_from, request.date_to
        )
        span.set_attribute("total_sessions", stats.totals.total_sessions)
        logger.info(
            "attribution_stats_computed",
            total_sessions=stats.totals.total_sessions,
            resolution_rate=stats.totals.resolution_rate,
            campaigns=len(stats.by_campaign),
        )
        return AttributionStatsResponse(
            totals=to_jsonable(stats.totals),
            by_method=stats.by_method,
            by_platform=stats.by_platform,
            by_campaign=[to_jsonable(campaign) for campaign in stats.by_campaign],
        )


async def _get_dashboard_overview_impl(request: ReportRequest, ctx: Context) -> DashboardResponse:
    """Implementation of the dashboard overview."""
    with track_tool("get_dashboard_overview", website_id=request.website_id):
        await ctx.info("Aggregating conversions, attribution and goals for the dashboard")
        overview = get_core().dashboard_overview(
            request.website_id, request.date_from, request.date_to
        )
        return DashboardResponse(
            period=to_jsonable(overview.period),
            conversions=to_jsonable(overview.conversions),
            attribution=to_jsonable(overview.attribution),
            top_campaigns=[to_jsonable(campaign) for campaign in overview.top_campaigns],
            goals=[to_jsonable(goal) for goal in overview.goals],
            running_experiments=overview.running_experiments,
        )


@mcp.tool()
async def get_conversion_stats(request: ReportRequest, ctx: Context) -> ConversionStatsResponse:
    """Summarize conversions by type, platform, currency and day.

    Args:
        request: Optional website filter and inclusive date range

    Returns:
        Totals (count, value, average, per-type split) plus platform,
        currency and daily breakdowns
    """
    return await _get_conversion_stats_impl(request, ctx)


@mcp.tool()
async def get_attribution_stats(request: ReportRequest, ctx: Context) -> AttributionStatsResponse:
    """Report how many sessions were attributed and how each campaign performs.

    Args:
        request: Optional website filter and inclusive date range

    Returns:
        Session totals with the resolution rate, counts per method and
        platform, and sessions, conversions and value per campaign
    """
    return await _get_attribution_stats_impl(request, ctx)


@mcp.tool()
async def get_dashboard_overview(request: ReportRequest, ctx: Context) -> DashboardResponse:
    """Headline marketing numbers for a website and period.

    The period defaults to the last 30 days ending today.

    Args:
        request: Optional website filter and inclusive date range

    Returns:
        The period, conversion and attribution totals, top campaigns,
        active goal progress and the number of running experiments
    """
    return await _get_dashboard_overview_impl(request, ctx)
