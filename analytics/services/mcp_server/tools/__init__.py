"""MCP Tools for Customer Insights Analytics.

This module exports all MCP tools for snapshots, attribution, journeys,
scoring, segmentation, experiments, forecasting and reporting.
"""

# Data
from .snapshot import export_snapshot, load_snapshot

# Conversions and attribution
from .attribution import (
    bulk_resolve_attributions,
    resolve_attribution,
    set_manual_attribution,
)
from .conversions import create_conversion_goal, list_conversions, track_conversion

# Journeys
from .journeys import (
    analyze_funnel,
    get_journey_timeline,
    record_journey_event,
    record_sentiment,
)

# Scoring and segmentation
from .scores import (
    calculate_customer_score,
    get_at_risk_customers,
    get_customer_predictions,
    get_nps_summary,
    recalculate_scores,
    record_nps,
)
from .segments import (
    build_segment,
    create_segment,
    list_segment_members,
    preview_segment,
    rebuild_segments,
)

# Experiments and forecasting
from .experiments import (
    complete_experiment,
    create_experiment,
    get_experiment_results,
    record_experiment_observation,
    start_experiment,
)
from .forecasts import check_forecast_accuracy, create_forecast, recommend_budget

# Reporting
from .reports import get_attribution_stats, get_conversion_stats, get_dashboard_overview

# Observability
from .health_check import health_check

__all__ = [
    # Data
    "load_snapshot",
    "export_snapshot",
    # Conversions and attribution
    "track_conversion",
    "list_conversions",
    "create_conversion_goal",
    "resolve_attribution",
    "set_manual_attribution",
    "bulk_resolve_attributions",
    # Journeys
    "record_journey_event",
    "record_sentiment",
    "get_journey_timeline",
    "analyze_funnel",
    # Scoring
    "calculate_customer_score",
    "record_nps",
    "recalculate_scores",
    "get_customer_predictions",
    "get_at_risk_customers",
    "get_nps_summary",
    # Segments
    "create_segment",
    "build_segment",
    "rebuild_segments",
    "preview_segment",
    "list_segment_members",
    # Experiments
    "create_experiment",
    "start_experiment",
    "record_experiment_observation",
    "complete_experiment",
    "get_experiment_results",
    # Forecasting
    "create_forecast",
    "recommend_budget",
    "check_forecast_accuracy",
    # Reporting
    "get_conversion_stats",
    "get_attribution_stats",
    "get_dashboard_overview",
    # Observability
    "health_check",
]
