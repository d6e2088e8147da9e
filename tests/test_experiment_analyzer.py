"""Tests for experiment results reporting and the lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from customer_insights.exceptions import (
    ExperimentStateError,
    NotFoundError,
    ValidationError,
)
from customer_insights.experiments.analyzer import (
    ExperimentAnalyzer,
    analyze_experiment,
    compare_variants,
)
from customer_insights.foundation import (
    ABExperiment,
    AnalyticsStore,
    ExperimentStatus,
    ExperimentVariant,
)

START = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _variants(control=(0, 0), treatment=(0, 0)):
    return (
        ExperimentVariant(
            name="Control", is_control=True, samples=control[1], conversions=control[0]
        ),
        ExperimentVariant(name="Treatment", samples=treatment[1], conversions=treatment[0]),
    )


class TestCompareVariants:
    """Winner is only declared with confident significance."""

    def test_underpowered_difference_is_inconclusive(self):
        control, treatment = _variants((50, 1000), (60, 1000))
        stats = compare_variants(control, treatment)

        assert stats.z_score == pytest.approx(-0.981, abs=1e-3)
        assert stats.p_value == pytest.approx(0.327, abs=1e-3)
        assert stats.significance.level == "none"
        assert stats.winner == "inconclusive"
        assert stats.lift.lift_percent == pytest.approx(20.0)
        assert stats.lift.direction == "positive"

    def test_significant_treatment_wins(self):
        control, treatment = _variants((100, 1000), (150, 1000))
        stats = compare_variants(control, treatment)

        assert stats.significance.level == "high"
        assert stats.winner == "treatment"
        assert stats.control.rate == 0.1
        assert stats.treatment.rate == 0.15

    def test_significant_control_wins(self):
        control, treatment = _variants((150, 1000), (100, 1000))
        assert compare_variants(control, treatment).winner == "control"

    def test_no_samples(self):
        control, treatment = _variants()
        stats = compare_variants(control, treatment)
        assert stats.z_score == 0.0
        assert stats.winner == "inconclusive"
        assert stats.lift.direction == "neutral"


class TestAnalyzeExperiment:
    def test_report_progress_against_required_size(self):
        """Without a target the progress is measured against twice the required size."""
        experiment = ABExperiment(
            id="exp_1",
            name="Checkout",
            variants=_variants((50, 1000), (60, 1000)),
            status=ExperimentStatus.RUNNING,
            started_at=START,
        )
        report = analyze_experiment(experiment, as_of=START + timedelta(days=10))

        assert report.required_sample_size == 31200
        assert report.progress.current_samples == 2000
        assert report.progress.target_samples == 62400
        assert report.progress.percent_complete == 3.2
        assert report.runtime.days_running == 10
        assert "Keep the experiment running" in report.recommendation

    def test_explicit_target_reached(self):
        experiment = ABExperiment(
            id="exp_1",
            name="Checkout",
            variants=_variants((50, 1000), (51, 1000)),
            target_sample_size=1000,
        )
        report = analyze_experiment(experiment)
        assert report.progress.percent_complete == 100.0
        assert "Target sample size reached" in report.recommendation
        assert report.runtime.days_running == 0

    def test_zero_baseline_has_no_required_size(self):
        experiment = ABExperiment(id="exp_1", name="Checkout")
        report = analyze_experiment(experiment)
        assert report.required_sample_size is None
        assert report.progress.target_samples is None
        assert report.progress.percent_complete is None

    def test_winning_treatment_recommendation(self):
        experiment = ABExperiment(
            id="exp_1", name="Checkout", variants=_variants((100, 1000), (150, 1000))
        )
        report = analyze_experiment(experiment)
        assert "Consider rolling it out" in report.recommendation


@pytest.fixture
def analyzer():
    store = AnalyticsStore()
    store.experiments.add(ABExperiment(id="exp_1", name="Checkout", created_at=START))
    return ExperimentAnalyzer(store)


class TestLifecycle:
    """draft -> running -> completed, with no way back."""

    def test_start(self, analyzer):
        experiment = analyzer.start("exp_1", at=START)
        assert experiment.status is ExperimentStatus.RUNNING
        assert experiment.started_at == START

    def test_start_twice(self, analyzer):
        analyzer.start("exp_1")
        with pytest.raises(ExperimentStateError, match="already running"):
            analyzer.start("exp_1")

    def test_complete_requires_start(self, analyzer):
        with pytest.raises(ExperimentStateError, match="has not been started"):
            analyzer.complete("exp_1")

    def test_complete_freezes_results(self, analyzer):
        """Completion copies significance, p-value and lift onto the record."""
        analyzer.start("exp_1", at=START)
        analyzer.record_observation("exp_1", "Control", 1000, 100)
        analyzer.record_observation("exp_1", "Treatment", 1000, 150)
        experiment = analyzer.complete("exp_1", at=START + timedelta(days=14))

        assert experiment.status is ExperimentStatus.COMPLETED
        assert experiment.ended_at == START + timedelta(days=14)
        assert experiment.is_significant
        assert experiment.p_value < 0.01
        assert experiment.improvement_percent == pytest.approx(50.0)
        assert experiment.results["winner"] == "treatment"

    def test_completed_cannot_restart_or_complete(self, analyzer):
        analyzer.start("exp_1")
        analyzer.complete("exp_1")
        with pytest.raises(ExperimentStateError, match="Cannot restart"):
            analyzer.start("exp_1")
        with pytest.raises(ExperimentStateError, match="already completed"):
            analyzer.complete("exp_1")

    def test_unknown_experiment(self, analyzer):
        with pytest.raises(NotFoundError):
            analyzer.start("missing")


class TestObservations:
    def test_observations_accumulate(self, analyzer):
        analyzer.start("exp_1")
        analyzer.record_observation("exp_1", "Treatment", 100, 5)
        experiment = analyzer.record_observation("exp_1", "Treatment", 50, 5)
        assert experiment.treatment.samples == 150
        assert experiment.treatment.conversions == 10
        assert experiment.control.samples == 0

    def test_requires_running(self, analyzer):
        with pytest.raises(ExperimentStateError, match="not running"):
            analyzer.record_observation("exp_1", "Control", 10, 1)

    def test_unknown_variant(self, analyzer):
        analyzer.start("exp_1")
        with pytest.raises(ExperimentStateError, match="Unknown variant"):
            analyzer.record_observation("exp_1", "Variant C", 10, 1)

    def test_conversions_cannot_exceed_samples(self, analyzer):
        analyzer.start("exp_1")
        with pytest.raises(ValidationError, match="cannot exceed samples"):
            analyzer.record_observation("exp_1", "Control", 10, 11)

    @pytest.mark.parametrize("samples,conversions", [(-1, 0), (10, -1)])
    def test_negative_counts_are_invalid_input(self, analyzer, samples, conversions):
        """Negative counts are a bad request, not a lifecycle conflict."""
        analyzer.start("exp_1")
        with pytest.raises(ValidationError, match="cannot be negative") as excinfo:
            analyzer.record_observation("exp_1", "Control", samples, conversions)
        assert not isinstance(excinfo.value, ExperimentStateError)
        assert analyzer.store.experiments.get("exp_1").control.samples == 0


class TestUpdateAndDelete:
    def test_draft_allows_any_field(self, analyzer):
        experiment = analyzer.update("exp_1", {"target_sample_size": 500, "name": "Cart"})
        assert experiment.target_sample_size == 500
        assert experiment.name == "Cart"

    def test_running_locks_design_fields(self, analyzer):
        analyzer.start("exp_1")
        with pytest.raises(ExperimentStateError, match="while experiment exp_1 is running"):
            analyzer.update("exp_1", {"confidence_level": 0.99})
        assert analyzer.update("exp_1", {"description": "new copy"}).description == "new copy"

    def test_status_changes_go_through_lifecycle(self, analyzer):
        with pytest.raises(ExperimentStateError, match="Use start or complete"):
            analyzer.update("exp_1", {"status": "running"})

    def test_cannot_delete_running(self, analyzer):
        analyzer.start("exp_1")
        with pytest.raises(ExperimentStateError, match="while it is running"):
            analyzer.delete("exp_1")

    def test_delete_draft(self, analyzer):
        analyzer.delete("exp_1")
        with pytest.raises(NotFoundError):
            analyzer.results("exp_1")
