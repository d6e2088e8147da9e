"""Campaign attribution MCP tools."""

from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import record_batch_result, track_tool
from analytics.services.mcp_server.resilience import batch_jobs_breaker
from analytics.services.mcp_server.state import get_core
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class ResolveAttributionRequest(BaseModel):
    """Request to resolve one session's campaign."""

    session_id: str = Field(min_length=1)
    force: bool = Field(
        default=False, description="Re-resolve even if a manual attribution exists"
    )


class ManualAttributionRequest(BaseModel):
    """Request to pin a session to a campaign."""

    session_id: str = Field(min_length=1)
    campaign_id: str = Field(min_length=1)
    ad_set_id: str | None = Field(default=None, description="Ad set within the campaign")
    ad_id: str | None = Field(default=None, description="Ad within the ad set")


class AttributionResponse(BaseModel):
    attribution_id: str
    session_id: str
    resolved: bool
    campaign_id: str | None
    resolution_method: str
    resolution_confidence: float
    attribution: dict[str, Any]


class BulkResolveRequest(BaseModel):
    """Request to backfill attribution for recent sessions."""

    days_back: int = Field(default=7, ge=1, le=365)
    limit: int = Field(default=1000, ge=1, le=10000)


class BulkResolveResponse(BaseModel):
    processed: int
    resolved: int
    unresolved: int
    failed: int
    errors: list[dict[str, Any]]


def _attribution_response(attribution) -> AttributionResponse:
    return AttributionResponse(
        attribution_id=attribution.id,
        session_id=attribution.session_id,
        resolved=attribution.is_resolved,
        campaign_id=attribution.campaign_id,
        resolution_method=attribution.resolution_method.value,
        resolution_confidence=attribution.resolution_confidence,
        attribution=to_jsonable(attribution),
    )


async def _resolve_attribution_impl(
    request: ResolveAttributionRequest, ctx: Context
) -> AttributionResponse:
    """Implementation of single-session attribution."""
    with track_tool("resolve_attribution", session_id=request.session_id) as span:
        attribution = get_core().resolve_attribution(request.session_id, force=request.force)
        span.set_attribute("resolution_method", attribution.resolution_method.value)
        await ctx.info(
            f"Session {request.session_id}: {attribution.resolution_method.value} "
            f"(confidence {attribution.resolution_confidence:.2f})"
        )
        return _attribution_response(attribution)


async def _set_manual_attribution_impl(
    request: ManualAttributionRequest, ctx: Context
) -> AttributionResponse:
    """Implementation of manual attribution."""
    with track_tool("set_manual_attribution", session_id=request.session_id):
        attribution = get_core().set_manual_attribution(
            request.session_id,
            request.campaign_id,
            ad_set_id=request.ad_set_id,
            ad_id=request.ad_id,
        )
        logger.info(
            "manual_attribution_set",
            session_id=request.session_id,
            campaign_id=request.campaign_id,
        )
        return _attribution_response(attribution)


async def _bulk_resolve_attributions_impl(
    request: BulkResolveRequest, ctx: Context
) -> BulkResolveResponse:
    """Implementation of the attribution backfill."""
    with track_tool("bulk_resolve_attributions", days_back=request.days_back) as span:
        await ctx.info(f"Resolving sessions from the last {request.days_back} days")
        result = batch_jobs_breaker.call(
            get_core().bulk_resolve_attributions, request.days_back, request.limit
        )
        await ctx.report_progress(1.0, "Attribution backfill complete")

        span.set_attribute("processed", result.processed)
        record_batch_result(
            "bulk_resolve_attributions", result.processed - result.failed, result.failed
        )
        return BulkResolveResponse(
            processed=result.processed,
            resolved=result.resolved,
            unresolved=result.unresolved,
            failed=result.failed,
            errors=[to_jsonable(e) for e in result.errors],
        )


@mcp.tool()
async def resolve_attribution(
    request: ResolveAttributionRequest, ctx: Context
) -> AttributionResponse:
    """Resolve the campaign a session came from.

    Tries an exact UTM match against the campaign directory first, then a
    fuzzy campaign-name match. A manual attribution is kept unless ``force``
    is set. Sessions with nothing to match are stored as unresolved.

    Args:
        request: Session id and force flag
        ctx: MCP context

    Returns:
        The stored attribution with method and confidence
    """
    return await _resolve_attribution_impl(request, ctx)


@mcp.tool()
async def set_manual_attribution(
    request: ManualAttributionRequest, ctx: Context
) -> AttributionResponse:
    """Pin a session to a campaign with full confidence.

    Args:
        request: Session id, campaign id and optional ad set and ad ids

    Returns:
        The stored manual attribution
    """
    return await _set_manual_attribution_impl(request, ctx)


@mcp.tool()
async def bulk_resolve_attributions(
    request: BulkResolveRequest, ctx: Context
) -> BulkResolveResponse:
    """Backfill attribution for recent sessions that have none yet.

    One failing session never stops the batch; failures are listed in ``errors``.

    Args:
        request: Look-back window and maximum number of sessions

    Returns:
        Counts of resolved, unresolved and failed sessions
    """
    return await _bulk_resolve_attributions_impl(request, ctx)
