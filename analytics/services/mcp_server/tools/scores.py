"""Customer scoring MCP tools: NPS, engagement, CLV and churn risk."""

from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import record_batch_result, track_tool
from analytics.services.mcp_server.resilience import batch_jobs_breaker
from analytics.services.mcp_server.state import get_core
from customer_insights.foundation import CustomerScore, ScoreType
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class CalculateScoreRequest(BaseModel):
    """Request to (re)calculate one score for one person."""

    person_id: str = Field(min_length=1)
    score_type: ScoreType = Field(
        description="engagement, clv or churn_risk; nps recomputes from recorded ratings"
    )


class RecordNPSRequest(BaseModel):
    """Request to record an NPS survey answer."""

    person_id: str = Field(min_length=1)
    rating: float = Field(ge=0, description="Survey answer on the given scale")
    scale: int = Field(default=10, description="Rating scale: 5 or 10")


class ScoreResponse(BaseModel):
    """One stored score row."""

    score_id: str
    person_id: str
    score_type: str
    score_value: float
    label: str | None
    previous_score: float | None
    score_change: float | None
    details: dict[str, Any] | None


class RecalculateScoresRequest(BaseModel):
    """Request to recalculate scores in bulk."""

    score_types: list[ScoreType] | None = Field(
        default=None, description="Defaults to engagement, clv and churn_risk"
    )
    person_ids: list[str] | None = Field(
        default=None, description="Defaults to every known person"
    )


class RecalculateScoresResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    errors: list[dict[str, Any]]


class PredictionsRequest(BaseModel):
    person_id: str = Field(min_length=1)


class PredictionsResponse(BaseModel):
    """Fresh CLV and churn risk for one person."""

    person_id: str
    predicted_clv: float
    clv_tier: str | None
    churn_risk: float
    risk_level: str | None
    recommendations: list[str]


class AtRiskRequest(BaseModel):
    min_level: str = Field(
        default="high", description="Lowest risk level included: low, medium, high or critical"
    )
    limit: int = Field(default=50, ge=1, le=1000)


class AtRiskResponse(BaseModel):
    total_at_risk: int
    critical_count: int
    high_value_at_risk: int
    potential_revenue_at_risk: float
    customers: list[dict[str, Any]]


class NPSSummaryResponse(BaseModel):
    """Overall NPS across everyone who answered a survey."""

    nps: int
    promoters: int
    passives: int
    detractors: int
    total_responses: int
    promoter_pct: float
    detractor_pct: float


def _score_response(score: CustomerScore) -> ScoreResponse:
    return ScoreResponse(
        score_id=score.id,
        person_id=score.person_id,
        score_type=score.score_type.value,
        score_value=score.score_value,
        label=score.label,
        previous_score=score.previous_score,
        score_change=score.score_change,
        details=to_jsonable(score.details),
    )


async def _calculate_customer_score_impl(
    request: CalculateScoreRequest, ctx: Context
) -> ScoreResponse:
    """Implementation of single score calculation."""
    with track_tool(
        "calculate_customer_score",
        person_id=request.person_id,
        score_type=request.score_type.value,
    ) as span:
        score = get_core().calculate_score(request.person_id, request.score_type)
        span.set_attribute("score_value", score.score_value)
        await ctx.info(
            f"{score.score_type.value} for {score.person_id}: {score.score_value} ({score.label})"
        )
        return _score_response(score)


async def _record_nps_impl(request: RecordNPSRequest, ctx: Context) -> ScoreResponse:
    """Implementation of NPS recording."""
    with track_tool("record_nps", person_id=request.person_id):
        score = get_core().record_nps(request.person_id, request.rating, request.scale)
        return _score_response(score)


async def _recalculate_scores_impl(
    request: RecalculateScoresRequest, ctx: Context
) -> RecalculateScoresResponse:
    """Implementation of bulk recalculation."""
    with track_tool("recalculate_scores") as span:
        await ctx.info("Recalculating customer scores")
        result = batch_jobs_breaker.call(
            get_core().recalculate_scores, request.score_types, request.person_ids
        )
        await ctx.report_progress(1.0, "Score recalculation complete")

        span.set_attribute("processed", result.processed)
        span.set_attribute("failed", result.failed)
        record_batch_result("recalculate_scores", result.succeeded, result.failed)
        if result.is_partial_failure:
            logger.warning(
                "score_recalculation_partial_failure",
                failed=result.failed,
                processed=result.processed,
            )

        return RecalculateScoresResponse(
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
            errors=[to_jsonable(e) for e in result.errors],
        )


async def _get_customer_predictions_impl(
    request: PredictionsRequest, ctx: Context
) -> PredictionsResponse:
    """Implementation of the predictions lookup."""
    with track_tool("get_customer_predictions", person_id=request.person_id):
        predictions = get_core().predictions(request.person_id)
        churn_details = predictions.churn_risk.details
        return PredictionsResponse(
            person_id=predictions.person_id,
            predicted_clv=predictions.clv.score_value,
            clv_tier=predictions.clv.tier,
            churn_risk=predictions.churn_risk.score_value,
            risk_level=predictions.churn_risk.risk_level,
            recommendations=list(getattr(churn_details, "recommendations", ())),
        )


async def _get_at_risk_customers_impl(request: AtRiskRequest, ctx: Context) -> AtRiskResponse:
    """Implementation of the at-risk report."""
    with track_tool("get_at_risk_customers", min_level=request.min_level):
        report = get_core().at_risk_customers(request.min_level, request.limit)
        return AtRiskResponse(
            total_at_risk=report.total_at_risk,
            critical_count=report.critical_count,
            high_value_at_risk=report.high_value_at_risk,
            potential_revenue_at_risk=report.potential_revenue_at_risk,
            customers=[to_jsonable(c) for c in report.customers],
        )


async def _get_nps_summary_impl(ctx: Context) -> NPSSummaryResponse:
    """Implementation of the overall NPS lookup."""
    with track_tool("get_nps_summary"):
        summary = get_core().overall_nps()
        total = summary.total
        return NPSSummaryResponse(
            nps=summary.score,
            promoters=summary.promoters,
            passives=summary.passives,
            detractors=summary.detractors,
            total_responses=total,
            promoter_pct=round(summary.promoters / total * 100, 1) if total else 0.0,
            detractor_pct=round(summary.detractors / total * 100, 1) if total else 0.0,
        )


@mcp.tool()
async def calculate_customer_score(
    request: CalculateScoreRequest, ctx: Context
) -> ScoreResponse:
    """Calculate and store one score for one person.

    Engagement weighs recent activity, CLV projects purchase history over a
    predicted lifespan, churn risk combines inactivity, purchase recency,
    engagement decline, negative sentiment and support tickets. The previous
    value is kept in the score history.

    Args:
        request: Person id and score type
        ctx: MCP context

    Returns:
        The stored score with its label and change since the last calculation
    """
    return await _calculate_customer_score_impl(request, ctx)


@mcp.tool()
async def record_nps(request: RecordNPSRequest, ctx: Context) -> ScoreResponse:
    """Record an NPS survey answer and update the person's NPS score.

    Args:
        request: Person id, rating and scale (5 or 10)

    Returns:
        The NPS score row (category promoter, passive or detractor)
    """
    return await _record_nps_impl(request, ctx)


@mcp.tool()
async def recalculate_scores(
    request: RecalculateScoresRequest, ctx: Context
) -> RecalculateScoresResponse:
    """Recalculate scores for many people at once.

    A failure for one person never stops the batch.

    Args:
        request: Optional score types and person ids

    Returns:
        Processed, succeeded and failed counts with per-item errors
    """
    return await _recalculate_scores_impl(request, ctx)


@mcp.tool()
async def get_customer_predictions(
    request: PredictionsRequest, ctx: Context
) -> PredictionsResponse:
    """Recalculate and return predicted CLV and churn risk for one person.

    Args:
        request: Person id

    Returns:
        Predicted CLV with tier, churn risk with level and retention recommendations
    """
    return await _get_customer_predictions_impl(request, ctx)


@mcp.tool()
async def get_at_risk_customers(request: AtRiskRequest, ctx: Context) -> AtRiskResponse:
    """List customers at or above a churn risk level, high-value customers first.

    Args:
        request: Minimum risk level and result limit

    Returns:
        At-risk customers with priority, plus revenue at risk
    """
    return await _get_at_risk_customers_impl(request, ctx)


@mcp.tool()
async def get_nps_summary(ctx: Context) -> NPSSummaryResponse:
    """Overall Net Promoter Score using each person's latest rating.

    Returns:
        NPS (-100 to 100) and the promoter, passive and detractor split
    """
    return await _get_nps_summary_impl(ctx)
