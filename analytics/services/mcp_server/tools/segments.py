"""Customer segmentation MCP tools."""

from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import record_batch_result, track_tool
from analytics.services.mcp_server.resilience import batch_jobs_breaker
from analytics.services.mcp_server.state import get_core
from customer_insights.foundation.records import to_jsonable
from customer_insights.segments import SNAPSHOT_FIELDS

logger = structlog.get_logger(__name__)

CRITERIA_DESCRIPTION = (
    'Rule set, e.g. {"logic": "AND", "rules": [{"field": "clv_score", '
    '"operator": ">=", "value": 20000}]}. Operators: ==, !=, >, <, >=, <=, '
    "contains, not_contains, in, not_in, between. Fields: "
    + ", ".join(SNAPSHOT_FIELDS)
    + ", metadata.<key>"
)


class CreateSegmentRequest(BaseModel):
    """Request to create a rule-based segment."""

    name: str = Field(min_length=1)
    criteria: dict[str, Any] = Field(description=CRITERIA_DESCRIPTION)
    description: str | None = None
    is_active: bool = True
    auto_update: bool = Field(
        default=True, description="Include the segment in scheduled rebuilds"
    )
    build_now: bool = Field(default=True, description="Compute membership right away")


class SegmentResponse(BaseModel):
    segment_id: str
    name: str
    customer_count: int
    segment: dict[str, Any]
    build: dict[str, Any] | None = None


class BuildSegmentRequest(BaseModel):
    segment_id: str = Field(min_length=1)


class BuildSegmentResponse(BaseModel):
    """Membership diff applied by a build."""

    segment_id: str
    total_evaluated: int
    matching_count: int
    members_added: int
    members_removed: int
    skipped: int


class RebuildSegmentsResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    results: list[BuildSegmentResponse]
    errors: list[dict[str, Any]]


class PreviewSegmentRequest(BaseModel):
    criteria: dict[str, Any] = Field(description=CRITERIA_DESCRIPTION)


class PreviewSegmentResponse(BaseModel):
    total_evaluated: int
    matching_count: int
    sample_person_ids: list[str]


class SegmentMembersRequest(BaseModel):
    segment_id: str = Field(min_length=1)
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=1000)


class SegmentMembersResponse(BaseModel):
    segment_id: str
    total: int
    has_more: bool
    person_ids: list[str]


def _build_response(result) -> BuildSegmentResponse:
    return BuildSegmentResponse(
        segment_id=result.segment_id,
        total_evaluated=result.total_evaluated,
        matching_count=result.matching_count,
        members_added=result.members_added,
        members_removed=result.members_removed,
        skipped=result.skipped,
    )


async def _create_segment_impl(request: CreateSegmentRequest, ctx: Context) -> SegmentResponse:
    """Implementation of segment creation."""
    with track_tool("create_segment"):
        core = get_core()
        segment = core.create_segment(
            request.name,
            request.criteria,
            description=request.description,
            is_active=request.is_active,
            auto_update=request.auto_update,
        )
        build = None
        if request.build_now:
            await ctx.report_progress(0.5, "Evaluating customers...")
            build = to_jsonable(core.build_segment(segment.id))
            segment = core.get_segment(segment.id)
        await ctx.info(f"Created segment '{segment.name}' with {segment.customer_count} members")
        return SegmentResponse(
            segment_id=segment.id,
            name=segment.name,
            customer_count=segment.customer_count,
            segment=to_jsonable(segment),
            build=build,
        )


async def _build_segment_impl(
    request: BuildSegmentRequest, ctx: Context
) -> BuildSegmentResponse:
    """Implementation of a single segment build."""
    with track_tool("build_segment", segment_id=request.segment_id) as span:
        result = get_core().build_segment(request.segment_id)
        span.set_attribute("matching_count", result.matching_count)
        if result.skipped:
            await ctx.warning(
                f"{result.skipped} customers could not be evaluated; their membership is unchanged"
            )
        return _build_response(result)


async def _rebuild_segments_impl(ctx: Context) -> RebuildSegmentsResponse:
    """Implementation of the auto-update rebuild."""
    with track_tool("rebuild_segments") as span:
        await ctx.info("Rebuilding auto-update segments")
        result = batch_jobs_breaker.call(get_core().rebuild_auto_segments)
        span.set_attribute("processed", result.processed)
        record_batch_result("rebuild_segments", result.succeeded, result.failed)
        return RebuildSegmentsResponse(
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            results=[_build_response(r) for r in result.results],
            errors=[to_jsonable(e) for e in result.errors],
        )


async def _preview_segment_impl(
    request: PreviewSegmentRequest, ctx: Context
) -> PreviewSegmentResponse:
    """Implementation of segment preview."""
    with track_tool("preview_segment"):
        preview = get_core().preview_segment(request.criteria)
        return PreviewSegmentResponse(
            total_evaluated=preview.total_evaluated,
            matching_count=preview.matching_count,
            sample_person_ids=list(preview.sample_person_ids),
        )


async def _list_segment_members_impl(
    request: SegmentMembersRequest, ctx: Context
) -> SegmentMembersResponse:
    """Implementation of member listing."""
    with track_tool("list_segment_members", segment_id=request.segment_id):
        page = get_core().segment_members(request.segment_id, request.offset, request.limit)
        return SegmentMembersResponse(
            segment_id=request.segment_id,
            total=page.total,
            has_more=page.has_more,
            person_ids=[m.person_id for m in page.items],
        )


@mcp.tool()
async def create_segment(request: CreateSegmentRequest, ctx: Context) -> SegmentResponse:
    """Create a customer segment from AND/OR rules over customer attributes and scores.

    Args:
        request: Name, rule set and options
        ctx: MCP context

    Returns:
        The stored segment and, when built, the membership result
    """
    return await _create_segment_impl(request, ctx)


@mcp.tool()
async def build_segment(request: BuildSegmentRequest, ctx: Context) -> BuildSegmentResponse:
    """Re-evaluate one segment and apply the membership difference.

    Building twice over unchanged data adds and removes nobody.

    Args:
        request: Segment id

    Returns:
        Evaluated, matching, added and removed counts
    """
    return await _build_segment_impl(request, ctx)


@mcp.tool()
async def rebuild_segments(ctx: Context) -> RebuildSegmentsResponse:
    """Rebuild every active auto-update segment.

    Returns:
        Per-segment build results and any failures
    """
    return await _rebuild_segments_impl(ctx)


@mcp.tool()
async def preview_segment(
    request: PreviewSegmentRequest, ctx: Context
) -> PreviewSegmentResponse:
    """Count who would match a rule set without storing anything.

    Args:
        request: Rule set to evaluate

    Returns:
        Match count and a sample of matching person ids
    """
    return await _preview_segment_impl(request, ctx)


@mcp.tool()
async def list_segment_members(
    request: SegmentMembersRequest, ctx: Context
) -> SegmentMembersResponse:
    """List the people currently in a segment.

    Args:
        request: Segment id and paging

    Returns:
        One page of person ids plus the total member count
    """
    return await _list_segment_members_impl(request, ctx)
