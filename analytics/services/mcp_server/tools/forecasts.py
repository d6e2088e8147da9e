"""Budget forecasting MCP tools."""

from datetime import date
from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import record_batch_result, track_tool
from analytics.services.mcp_server.resilience import batch_jobs_breaker
from analytics.services.mcp_server.state import get_core
from customer_insights.forecasting import ForecastAccuracyReport
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class HistoryPointModel(BaseModel):
    """One day of observed campaign performance."""

    date: date
    spend: float = Field(ge=0)
    conversions: float = Field(ge=0)
    revenue: float = Field(ge=0)


class CreateForecastRequest(BaseModel):
    """Request to forecast spend, conversions and revenue."""

    history: list[HistoryPointModel] = Field(
        default_factory=list,
        description="Daily history, oldest first; fewer than 7 days uses fallback ratios",
    )
    forecast_days: int = Field(default=30, ge=1, le=365)
    daily_budget: float = Field(gt=0)
    start: date | None = Field(
        default=None, description="First forecast day; today by default"
    )
    ad_campaign_id: str | None = None
    website_id: str | None = None


class ForecastResponse(BaseModel):
    forecast_id: str
    period_start: str
    period_end: str
    predicted_spend: float
    predicted_revenue: float
    predicted_conversions: float
    daily_forecasts: list[dict[str, Any]]


class RecommendBudgetRequest(BaseModel):
    history: list[HistoryPointModel]
    target_roas: float = Field(gt=0)
    max_budget: float = Field(gt=0)


class RecommendBudgetResponse(BaseModel):
    recommended_budget: float
    expected_roas: float
    expected_conversions: float
    expected_revenue: float
    confidence: str


class ForecastAccuracyRequest(BaseModel):
    forecast_id: str | None = Field(
        default=None, description="Forecast to score; every ended forecast when omitted"
    )


class AccuracyModel(BaseModel):
    forecast_id: str
    status: str
    mape: float | None
    accuracy: float | None
    comparable_days: int
    actual_revenue: float
    actual_conversions: int


class ForecastAccuracyResponse(BaseModel):
    processed: int
    failed: int
    reports: list[AccuracyModel]
    errors: list[dict[str, Any]]


def _accuracy_model(report: ForecastAccuracyReport) -> AccuracyModel:
    return AccuracyModel(
        forecast_id=report.forecast.id,
        status=report.result.status,
        mape=report.result.mape,
        accuracy=report.result.accuracy,
        comparable_days=report.result.comparable_days,
        actual_revenue=report.actual_revenue,
        actual_conversions=report.actual_conversions,
    )


async def _create_forecast_impl(
    request: CreateForecastRequest, ctx: Context
) -> ForecastResponse:
    """Implementation of forecast creation."""
    with track_tool("create_forecast", forecast_days=request.forecast_days):
        if len(request.history) < 7:
            await ctx.warning(
                f"Only {len(request.history)} days of history; using fallback ratios"
            )
        forecast = get_core().create_forecast(
            [point.model_dump() for point in request.history],
            request.forecast_days,
            request.daily_budget,
            start=request.start,
            ad_campaign_id=request.ad_campaign_id,
            website_id=request.website_id,
        )
        return ForecastResponse(
            forecast_id=forecast.id,
            period_start=forecast.period_start.isoformat(),
            period_end=forecast.period_end.isoformat(),
            predicted_spend=forecast.predicted_spend,
            predicted_revenue=forecast.predicted_revenue,
            predicted_conversions=forecast.predicted_conversions,
            daily_forecasts=[to_jsonable(d) for d in forecast.daily_forecasts],
        )


async def _recommend_budget_impl(
    request: RecommendBudgetRequest, ctx: Context
) -> RecommendBudgetResponse:
    """Implementation of the budget recommendation."""
    with track_tool("recommend_budget"):
        recommendation = get_core().recommend_budget(
            [point.model_dump() for point in request.history],
            request.target_roas,
            request.max_budget,
        )
        return RecommendBudgetResponse(**to_jsonable(recommendation))


async def _check_forecast_accuracy_impl(
    request: ForecastAccuracyRequest, ctx: Context
) -> ForecastAccuracyResponse:
    """Implementation of forecast accuracy scoring."""
    with track_tool("check_forecast_accuracy", forecast_id=request.forecast_id):
        core = get_core()
        if request.forecast_id is not None:
            report = core.forecast_accuracy(request.forecast_id)
            if not report.result.has_data:
                await ctx.warning("No purchases recorded on any forecast day yet")
            return ForecastAccuracyResponse(
                processed=1, failed=0, reports=[_accuracy_model(report)], errors=[]
            )

        await ctx.info("Scoring every forecast whose window has ended")
        batch = batch_jobs_breaker.call(core.forecast_accuracy)
        record_batch_result("check_forecast_accuracy", batch.succeeded, batch.failed)
        return ForecastAccuracyResponse(
            processed=batch.processed,
            failed=batch.failed,
            reports=[_accuracy_model(r) for r in batch.results],
            errors=[to_jsonable(e) for e in batch.errors],
        )


@mcp.tool()
async def create_forecast(request: CreateForecastRequest, ctx: Context) -> ForecastResponse:
    """Forecast daily spend, conversions and revenue for a budget.

    Extends linear trends of daily conversions and revenue, scaled by weekday
    seasonality, with a confidence band that widens 2% per day.

    Args:
        request: History, horizon, daily budget and optional campaign/website
        ctx: MCP context

    Returns:
        The stored forecast with its daily series
    """
    return await _create_forecast_impl(request, ctx)


@mcp.tool()
async def recommend_budget(
    request: RecommendBudgetRequest, ctx: Context
) -> RecommendBudgetResponse:
    """Suggest a daily budget that meets a target ROAS without exceeding a cap.

    Args:
        request: History, target ROAS and maximum daily budget

    Returns:
        Recommended budget, expected outcome and confidence
    """
    return await _recommend_budget_impl(request, ctx)


@mcp.tool()
async def check_forecast_accuracy(
    request: ForecastAccuracyRequest, ctx: Context
) -> ForecastAccuracyResponse:
    """Compare forecast revenue with actual purchase revenue (MAPE and accuracy).

    Only days with a positive prediction and recorded purchases are compared.

    Args:
        request: Forecast id, or none to score every ended forecast

    Returns:
        MAPE, accuracy and actual totals per forecast
    """
    return await _check_forecast_accuracy_impl(request, ctx)
