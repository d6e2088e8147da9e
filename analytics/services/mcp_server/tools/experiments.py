"""A/B experiment MCP tools."""

from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import track_tool
from analytics.services.mcp_server.state import get_core
from customer_insights.experiments import ExperimentReport
from customer_insights.foundation import ABExperiment, PrimaryMetric
from customer_insights.foundation.records import to_jsonable

logger = structlog.get_logger(__name__)


class VariantModel(BaseModel):
    name: str = Field(min_length=1)
    is_control: bool = False
    config: dict[str, Any] = Field(default_factory=dict)


class CreateExperimentRequest(BaseModel):
    """Request to create a draft experiment."""

    name: str = Field(min_length=1)
    variants: list[VariantModel] | None = Field(
        default=None,
        description="Exactly two variants, one marked is_control; Control/Treatment by default",
    )
    primary_metric: PrimaryMetric = PrimaryMetric.CONVERSION_RATE
    description: str | None = None
    hypothesis: str | None = None
    website_id: str | None = None
    target_sample_size: int | None = Field(default=None, ge=1)
    confidence_level: float = Field(default=0.95, gt=0, lt=1)
    minimum_detectable_effect: float | None = Field(default=None, gt=0)


class ExperimentRequest(BaseModel):
    experiment_id: str = Field(min_length=1)


class RecordObservationRequest(BaseModel):
    """Request to add observed traffic to one variant."""

    experiment_id: str = Field(min_length=1)
    variant_name: str = Field(min_length=1)
    samples: int = Field(ge=0)
    conversions: int = Field(ge=0)


class ExperimentResponse(BaseModel):
    experiment_id: str
    name: str
    status: str
    experiment: dict[str, Any]


class ExperimentResultsResponse(BaseModel):
    """Statistical comparison of treatment against control."""

    experiment_id: str
    status: str
    primary_metric: str
    winner: str
    is_significant: bool
    significance: str
    p_value: float
    z_score: float
    lift_percent: float
    control_rate: float
    treatment_rate: float
    progress_percent: float | None
    required_sample_size: int | None
    days_running: int
    recommendation: str
    statistics: dict[str, Any]


def _experiment_response(experiment: ABExperiment) -> ExperimentResponse:
    return ExperimentResponse(
        experiment_id=experiment.id,
        name=experiment.name,
        status=experiment.status.value,
        experiment=to_jsonable(experiment),
    )


def _results_response(report: ExperimentReport) -> ExperimentResultsResponse:
    statistics = report.statistics
    return ExperimentResultsResponse(
        experiment_id=report.experiment_id,
        status=report.status.value,
        primary_metric=report.primary_metric,
        winner=statistics.winner,
        is_significant=statistics.significance.confident,
        significance=statistics.significance.description,
        p_value=statistics.p_value,
        z_score=statistics.z_score,
        lift_percent=statistics.lift.lift_percent,
        control_rate=statistics.control.rate,
        treatment_rate=statistics.treatment.rate,
        progress_percent=report.progress.percent_complete,
        required_sample_size=report.required_sample_size,
        days_running=report.runtime.days_running,
        recommendation=report.recommendation,
        statistics=to_jsonable(statistics),
    )


async def _create_experiment_impl(
    request: CreateExperimentRequest, ctx: Context
) -> ExperimentResponse:
    """Implementation of experiment creation."""
    with track_tool("create_experiment"):
        payload = request.model_dump(exclude_none=True)
        experiment = get_core().create_experiment(payload)
        await ctx.info(f"Created draft experiment '{experiment.name}'")
        return _experiment_response(experiment)


async def _start_experiment_impl(request: ExperimentRequest, ctx: Context) -> ExperimentResponse:
    """Implementation of experiment start."""
    with track_tool("start_experiment", experiment_id=request.experiment_id):
        experiment = get_core().start_experiment(request.experiment_id)
        logger.info("experiment_started", experiment_id=experiment.id)
        return _experiment_response(experiment)


async def _record_experiment_observation_impl(
    request: RecordObservationRequest, ctx: Context
) -> ExperimentResponse:
    """Implementation of observation recording."""
    with track_tool("record_experiment_observation", experiment_id=request.experiment_id):
        experiment = get_core().record_experiment_observation(
            request.experiment_id, request.variant_name, request.samples, request.conversions
        )
        return _experiment_response(experiment)


async def _complete_experiment_impl(
    request: ExperimentRequest, ctx: Context
) -> ExperimentResultsResponse:
    """Implementation of experiment completion."""
    with track_tool("complete_experiment", experiment_id=request.experiment_id) as span:
        core = get_core()
        core.complete_experiment(request.experiment_id)
        report = core.experiment_results(request.experiment_id)
        span.set_attribute("winner", report.statistics.winner)
        logger.info(
            "experiment_completed",
            experiment_id=request.experiment_id,
            winner=report.statistics.winner,
            p_value=report.statistics.p_value,
        )
        return _results_response(report)


async def _get_experiment_results_impl(
    request: ExperimentRequest, ctx: Context
) -> ExperimentResultsResponse:
    """Implementation of the results lookup."""
    with track_tool("get_experiment_results", experiment_id=request.experiment_id):
        report = get_core().experiment_results(request.experiment_id)
        await ctx.info(report.recommendation)
        return _results_response(report)


@mcp.tool()
async def create_experiment(
    request: CreateExperimentRequest, ctx: Context
) -> ExperimentResponse:
    """Create a draft A/B experiment with one control and one treatment variant.

    Args:
        request: Name, variants, primary metric and statistical settings
        ctx: MCP context

    Returns:
        The stored draft experiment
    """
    return await _create_experiment_impl(request, ctx)


@mcp.tool()
async def start_experiment(request: ExperimentRequest, ctx: Context) -> ExperimentResponse:
    """Move a draft experiment to running.

    Variants, metric and statistical settings are locked from then on.

    Args:
        request: Experiment id

    Returns:
        The running experiment
    """
    return await _start_experiment_impl(request, ctx)


@mcp.tool()
async def record_experiment_observation(
    request: RecordObservationRequest, ctx: Context
) -> ExperimentResponse:
    """Add samples and conversions to one variant of a running experiment.

    Args:
        request: Experiment id, variant name and the new counts

    Returns:
        The experiment with updated variant totals
    """
    return await _record_experiment_observation_impl(request, ctx)


@mcp.tool()
async def complete_experiment(
    request: ExperimentRequest, ctx: Context
) -> ExperimentResultsResponse:
    """Stop a running experiment and freeze its results.

    Args:
        request: Experiment id

    Returns:
        Final statistics, winner and recommendation
    """
    return await _complete_experiment_impl(request, ctx)


@mcp.tool()
async def get_experiment_results(
    request: ExperimentRequest, ctx: Context
) -> ExperimentResultsResponse:
    """Two-proportion z-test of treatment against control.

    A winner is declared only at 95% significance or better; otherwise the
    result is inconclusive.

    Args:
        request: Experiment id

    Returns:
        Rates, lift, z-score, p-value, progress and a recommendation
    """
    return await _get_experiment_results_impl(request, ctx)
