"""Budget forecasting and forecast accuracy."""

from .accuracy import AccuracyResult, DayComparison, compare_forecast, daily_revenue
from .analyzer import ForecastAccuracyReport, ForecastAnalyzer
from .engine import (
    BudgetRecommendation,
    HistoryPoint,
    Trend,
    generate_forecast,
    linear_trend,
    moving_average,
    recommend_budget,
    weekday_seasonality,
)

__all__ = [
    "AccuracyResult",
    "BudgetRecommendation",
    "DayComparison",
    "ForecastAccuracyReport",
    "ForecastAnalyzer",
    "HistoryPoint",
    "Trend",
    "compare_forecast",
    "daily_revenue",
    "generate_forecast",
    "linear_trend",
    "moving_average",
    "recommend_budget",
    "weekday_seasonality",
]
