"""Experiment lifecycle and results reporting.

``analyze_experiment`` composes the statistics functions into one report
for a stored experiment. ``ExperimentAnalyzer`` owns the lifecycle
transitions (draft -> running -> completed) against the record store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

from customer_insights.exceptions import ExperimentStateError, ValidationError
from customer_insights.experiments.statistics import (
    ConfidenceInterval,
    Lift,
    Significance,
    confidence_interval,
    lift,
    p_value,
    required_sample_size,
    significance_level,
    z_score,
)
from customer_insights.foundation.records import (
    ABExperiment,
    ExperimentStatus,
    ExperimentVariant,
    to_jsonable,
    utcnow,
)
from customer_insights.foundation.store import AnalyticsStore

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_DETECTABLE_EFFECT = 0.1

# fields that may not change while an experiment is collecting data
_LOCKED_WHILE_RUNNING = frozenset(
    {
        "variants",
        "primary_metric",
        "target_sample_size",
        "confidence_level",
        "minimum_detectable_effect",
    }
)


@dataclass(frozen=True)
class VariantResult:
    name: str
    conversions: int
    samples: int
    rate: float
    confidence_interval: ConfidenceInterval


@dataclass(frozen=True)
class ExperimentStatistics:
    control: VariantResult
    treatment: VariantResult
    z_score: float
    p_value: float
    significance: Significance
    lift: Lift
    winner: Literal["control", "treatment", "inconclusive"]


@dataclass(frozen=True)
class ExperimentProgress:
    current_samples: int
    target_samples: Optional[int]
    percent_complete: Optional[float]


@dataclass(frozen=True)
class ExperimentRuntime:
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    days_running: int


@dataclass(frozen=True)
class ExperimentReport:
    experiment_id: str
    status: ExperimentStatus
    primary_metric: str
    statistics: ExperimentStatistics
    progress: ExperimentProgress
    runtime: ExperimentRuntime
    required_sample_size: Optional[int]
    recommendation: str


def _variant_result(variant: ExperimentVariant, level: float) -> VariantResult:
    interval = confidence_interval(variant.conversions, variant.samples, level)
    return VariantResult(
        name=variant.name,
        conversions=variant.conversions,
        samples=variant.samples,
        rate=interval.rate,
        confidence_interval=interval,
    )


def compare_variants(
    control: ExperimentVariant,
    treatment: ExperimentVariant,
    confidence_level: float = 0.95,
) -> ExperimentStatistics:
    """Full two-proportion comparison of treatment against control.

    A winner is only declared when the significance bucket is confident;
    an underpowered test is always "inconclusive".
    """
    control_result = _variant_result(control, confidence_level)
    treatment_result = _variant_result(treatment, confidence_level)

    z = z_score(control.conversions, control.samples, treatment.conversions, treatment.samples)
    p = p_value(z)
    significance = significance_level(p)

    winner: Literal["control", "treatment", "inconclusive"] = "inconclusive"
    if significance.confident:
        winner = "treatment" if treatment_result.rate > control_result.rate else "control"

    return ExperimentStatistics(
        control=control_result,
        treatment=treatment_result,
        z_score=round(z, 3),
        p_value=round(p, 4),
        significance=significance,
        lift=lift(control_result.rate, treatment_result.rate),
        winner=winner,
    )


def _required_samples(experiment: ABExperiment) -> Optional[int]:
    baseline = experiment.control.conversion_rate
    mde = experiment.minimum_detectable_effect or DEFAULT_MINIMUM_DETECTABLE_EFFECT
    try:
        return required_sample_size(
            baseline, mde, alpha=round(1 - experiment.confidence_level, 4)
        )
    except ValueError:
        # no baseline yet (0 or 100% conversion): the size is undefined
        return None


def _recommendation(
    statistics: ExperimentStatistics, progress: ExperimentProgress
) -> str:
    if statistics.winner == "treatment":
        return (
            f"Treatment '{statistics.treatment.name}' outperforms control "
            f"({statistics.lift.lift_percent:+.2f}% lift, {statistics.significance.description}). "
            "Consider rolling it out."
        )
    if statistics.winner == "control":
        return (
            f"Control '{statistics.control.name}' outperforms the treatment "
            f"({statistics.significance.description}). Keep the current experience."
        )
    target = progress.target_samples
    if target is None or progress.current_samples < target:
        of_target = f" of {target}" if target is not None else ""
        return (
            f"Keep the experiment running: {progress.current_samples}{of_target} "
            "samples collected and no significant difference yet."
        )
    return (
        "Target sample size reached without a significant difference. "
        "The variants perform about the same; consider ending the experiment."
    )


def analyze_experiment(
    experiment: ABExperiment, as_of: Optional[datetime] = None
) -> ExperimentReport:
    """Build the results report for one experiment."""
    statistics = compare_variants(
        experiment.control, experiment.treatment, experiment.confidence_level
    )
    required = _required_samples(experiment)

    current = experiment.control.samples + experiment.treatment.samples
    target = experiment.target_sample_size or (required * 2 if required else None)
    percent = round(min(100.0, current / target * 100), 1) if target else None
    progress = ExperimentProgress(
        current_samples=current, target_samples=target, percent_complete=percent
    )

    end = experiment.ended_at or as_of or utcnow()
    days_running = (
        max(0, (end - experiment.started_at).days) if experiment.started_at else 0
    )
    runtime = ExperimentRuntime(
        started_at=experiment.started_at,
        ended_at=experiment.ended_at,
        days_running=days_running,
    )

    return ExperimentReport(
        experiment_id=experiment.id,
        status=experiment.status,
        primary_metric=experiment.primary_metric.value,
        statistics=statistics,
        progress=progress,
        runtime=runtime,
        required_sample_size=required,
        recommendation=_recommendation(statistics, progress),
    )


class ExperimentAnalyzer:
    """Lifecycle operations for stored experiments."""

    def __init__(self, store: AnalyticsStore) -> None:
        self.store = store

    def start(self, experiment_id: str, at: Optional[datetime] = None) -> ABExperiment:
        experiment = self.store.experiments.get(experiment_id)
        if experiment.status is ExperimentStatus.RUNNING:
            raise ExperimentStateError(f"Experiment {experiment_id} is already running")
        if experiment.status is ExperimentStatus.COMPLETED:
            raise ExperimentStateError(
                f"Cannot restart completed experiment {experiment_id}"
            )
        logger.info("Starting experiment %s", experiment_id)
        return self.store.experiments.update(
            experiment_id, status=ExperimentStatus.RUNNING, started_at=at or utcnow()
        )

    def complete(self, experiment_id: str, at: Optional[datetime] = None) -> ABExperiment:
        """Stop an experiment and freeze its results onto the record."""
        experiment = self.store.experiments.get(experiment_id)
        if experiment.status is ExperimentStatus.COMPLETED:
            raise ExperimentStateError(f"Experiment {experiment_id} is already completed")
        if experiment.status is ExperimentStatus.DRAFT:
            raise ExperimentStateError(
                f"Experiment {experiment_id} has not been started"
            )

        ended_at = at or utcnow()
        report = analyze_experiment(replace(experiment, ended_at=ended_at))
        lift_percent = report.statistics.lift.lift_percent
        logger.info(
            "Completed experiment %s: winner=%s p=%.4f",
            experiment_id,
            report.statistics.winner,
            report.statistics.p_value,
        )
        return self.store.experiments.update(
            experiment_id,
            status=ExperimentStatus.COMPLETED,
            ended_at=ended_at,
            is_significant=report.statistics.significance.confident,
            p_value=report.statistics.p_value,
            improvement_percent=lift_percent,
            results=to_jsonable(report.statistics),
        )

    def record_observation(
        self, experiment_id: str, variant_name: str, samples: int, conversions: int
    ) -> ABExperiment:
        """Add new samples and conversions to one variant of a running experiment."""
        if samples < 0 or conversions < 0:
            raise ValidationError("Observed samples and conversions cannot be negative")
        experiment = self.store.experiments.get(experiment_id)
        if experiment.status is not ExperimentStatus.RUNNING:
            raise ExperimentStateError(
                f"Experiment {experiment_id} is not running (status={experiment.status.value})"
            )
        if variant_name not in {v.name for v in experiment.variants}:
            raise ExperimentStateError(
                f"Unknown variant {variant_name!r} for experiment {experiment_id}"
            )
        try:
            variants = tuple(
                replace(v, samples=v.samples + samples, conversions=v.conversions + conversions)
                if v.name == variant_name
                else v
                for v in experiment.variants
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return self.store.experiments.update(experiment_id, variants=variants)

    def update(self, experiment_id: str, changes: Mapping[str, Any]) -> ABExperiment:
        experiment = self.store.experiments.get(experiment_id)
        locked = _LOCKED_WHILE_RUNNING.intersection(changes)
        if experiment.status is ExperimentStatus.RUNNING and locked:
            raise ExperimentStateError(
                f"Cannot modify {sorted(locked)} while experiment {experiment_id} is running"
            )
        if experiment.status is ExperimentStatus.COMPLETED and locked:
            raise ExperimentStateError(
                f"Cannot modify {sorted(locked)} of completed experiment {experiment_id}"
            )
        if "status" in changes:
            raise ExperimentStateError("Use start or complete to change experiment status")
        return self.store.experiments.update(experiment_id, **changes)

    def delete(self, experiment_id: str) -> ABExperiment:
        experiment = self.store.experiments.get(experiment_id)
        if experiment.status is ExperimentStatus.RUNNING:
            raise ExperimentStateError(
                f"Cannot delete experiment {experiment_id} while it is running"
            )
        return self.store.experiments.delete(experiment_id)

    def results(self, experiment_id: str, as_of: Optional[datetime] = None) -> ExperimentReport:
        return analyze_experiment(self.store.experiments.get(experiment_id), as_of=as_of)
