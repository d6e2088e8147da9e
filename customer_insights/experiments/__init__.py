"""A/B experiment statistics and lifecycle."""

from .analyzer import (
    ExperimentAnalyzer,
    ExperimentProgress,
    ExperimentReport,
    ExperimentRuntime,
    ExperimentStatistics,
    VariantResult,
    analyze_experiment,
    compare_variants,
)
from .statistics import (
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

__all__ = [
    "ConfidenceInterval",
    "ExperimentAnalyzer",
    "ExperimentProgress",
    "ExperimentReport",
    "ExperimentRuntime",
    "ExperimentStatistics",
    "Lift",
    "Significance",
    "VariantResult",
    "analyze_experiment",
    "compare_variants",
    "confidence_interval",
    "lift",
    "p_value",
    "required_sample_size",
    "significance_level",
    "z_score",
]
