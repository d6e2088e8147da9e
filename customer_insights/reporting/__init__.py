"""Conversion, attribution and dashboard reports."""

from .stats import (
    AttributionStats,
    AttributionTotals,
    CampaignStats,
    ConversionStats,
    ConversionTotals,
    DailyConversions,
    DashboardOverview,
    GoalProgress,
    ReportPeriod,
    TypeStats,
    attribution_stats,
    conversion_stats,
    dashboard_overview,
)

__all__ = [
    "AttributionStats",
    "AttributionTotals",
    "CampaignStats",
    "ConversionStats",
    "ConversionTotals",
    "DailyConversions",
    "DashboardOverview",
    "GoalProgress",
    "ReportPeriod",
    "TypeStats",
    "attribution_stats",
    "conversion_stats",
    "dashboard_overview",
]
