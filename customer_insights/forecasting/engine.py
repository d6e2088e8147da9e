"""Budget forecasting from daily campaign history.

The forecast fits a least-squares line to daily conversions and revenue,
scales each projected day by a weekday seasonality index and widens the
confidence band by two points per day ahead. With less than a week of
history a flat 3:1 ROAS projection is returned instead.

Weekdays follow ``date.weekday()``: Monday is 0 and Sunday is 6.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Literal, Optional, Sequence

import numpy as np

from customer_insights.foundation.records import DailyForecast, parse_date, round_half_up, utcnow

MIN_TREND_POINTS = 7
MIN_RECOMMENDATION_POINTS = 14
HIGH_CONFIDENCE_POINTS = 30

FALLBACK_ROAS = 3.0
FALLBACK_CONVERSION_RATE = 0.01
FALLBACK_BAND = 0.5

BASE_UNCERTAINTY = 0.1
DAILY_UNCERTAINTY = 0.02


@dataclass(frozen=True)
class HistoryPoint:
    """One day of observed campaign performance."""

    date: date
    spend: float
    conversions: float
    revenue: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "date", parse_date(self.date))
        if self.spend < 0 or self.conversions < 0 or self.revenue < 0:
            raise ValueError(f"History values cannot be negative (date={self.date})")


@dataclass(frozen=True)
class Trend:
    slope: float
    intercept: float
    r2: float

    def at(self, index: float) -> float:
        return self.intercept + self.slope * index


@dataclass(frozen=True)
class BudgetRecommendation:
    """Suggested daily budget.

    Attributes
    ----------
    recommended_budget:
        Daily budget to run with (2 dp)
    expected_roas:
        Observed return on ad spend over the history (2 dp)
    expected_conversions, expected_revenue:
        Projected daily outcome at the recommended budget
    confidence:
        high with 30+ days of history, medium with 14+, low otherwise
    """

    recommended_budget: float
    expected_roas: float
    expected_conversions: float
    expected_revenue: float
    confidence: Literal["high", "medium", "low"]


def moving_average(values: Sequence[float], window: int) -> list[float]:
    """Trailing moving average; the first ``window - 1`` values pass through."""
    if window < 1:
        raise ValueError(f"window must be at least 1, got {window}")
    result: list[float] = []
    for i, value in enumerate(values):
        if i < window - 1:
            result.append(float(value))
        else:
            result.append(float(np.mean(values[i - window + 1 : i + 1])))
    return result


def linear_trend(values: Sequence[float]) -> Trend:
    """Least-squares line over ``values`` indexed 0..n-1, with its R²."""
    n = len(values)
    if n < 2:
        return Trend(slope=0.0, intercept=float(values[0]) if n else 0.0, r2=0.0)

    x = np.arange(n, dtype=float)
    y = np.asarray(values, dtype=float)
    slope = float((n * np.sum(x * y) - x.sum() * y.sum()) / (n * np.sum(x * x) - x.sum() ** 2))
    intercept = float((y.sum() - slope * x.sum()) / n)

    predicted = intercept + slope * x
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r2 = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return Trend(slope=slope, intercept=intercept, r2=r2)


def weekday_seasonality(points: Sequence[HistoryPoint]) -> dict[int, float]:
    """Conversion index per weekday relative to the overall daily average.

    Weekdays without history get an index of 1.
    """
    totals: dict[int, list[float]] = {}
    for point in points:
        totals.setdefault(point.date.weekday(), []).append(point.conversions)

    count = sum(len(v) for v in totals.values())
    overall = sum(sum(v) for v in totals.values()) / count if count else 1.0

    index: dict[int, float] = {}
    for day in range(7):
        observed = totals.get(day)
        if observed and overall > 0:
            index[day] = (sum(observed) / len(observed)) / overall
        else:
            index[day] = 1.0
    return index


def _fallback_forecast(
    forecast_days: int, daily_budget: float, start: date
) -> list[DailyForecast]:
    revenue = daily_budget * FALLBACK_ROAS
    return [
        DailyForecast(
            date=start + timedelta(days=i),
            predicted_spend=daily_budget,
            predicted_conversions=daily_budget * FALLBACK_CONVERSION_RATE,
            predicted_revenue=revenue,
            predicted_roas=FALLBACK_ROAS,
            confidence_lower=revenue * (1 - FALLBACK_BAND),
            confidence_upper=revenue * (1 + FALLBACK_BAND),
        )
        for i in range(forecast_days)
    ]


def generate_forecast(
    history: Sequence[HistoryPoint],
    forecast_days: int,
    daily_budget: float,
    start: Optional[date] = None,
) -> list[DailyForecast]:
    """Project daily spend, conversions and revenue.

    Parameters
    ----------
    history:
        Observed daily performance in any order
    forecast_days:
        Number of days to project
    daily_budget:
        Planned spend per day
    start:
        First projected day (today when omitted)

    Returns
    -------
    list[DailyForecast]
        One entry per projected day
    """
    if forecast_days < 0:
        raise ValueError(f"forecast_days cannot be negative, got {forecast_days}")
    if daily_budget < 0:
        raise ValueError(f"daily_budget cannot be negative, got {daily_budget}")
    first_day = start or utcnow().date()
    if len(history) < MIN_TREND_POINTS:
        return _fallback_forecast(forecast_days, daily_budget, first_day)

    ordered = sorted(history, key=lambda p: p.date)
    conversion_trend = linear_trend([p.conversions for p in ordered])
    revenue_trend = linear_trend([p.revenue for p in ordered])
    seasonality = weekday_seasonality(ordered)
    n = len(ordered)

    forecasts: list[DailyForecast] = []
    for i in range(forecast_days):
        day = first_day + timedelta(days=i)
        factor = seasonality.get(day.weekday(), 1.0)
        conversions = max(0.0, conversion_trend.at(n + i) * factor)
        revenue = max(0.0, revenue_trend.at(n + i) * factor)
        uncertainty = BASE_UNCERTAINTY + DAILY_UNCERTAINTY * i
        forecasts.append(
            DailyForecast(
                date=day,
                predicted_spend=daily_budget,
                predicted_conversions=round_half_up(conversions, 2),
                predicted_revenue=round_half_up(revenue, 2),
                predicted_roas=(
                    round_half_up(revenue / daily_budget, 2) if daily_budget > 0 else 0.0
                ),
                confidence_lower=round_half_up(revenue * (1 - uncertainty), 2),
                confidence_upper=round_half_up(revenue * (1 + uncertainty), 2),
            )
        )
    return forecasts


def recommend_budget(
    history: Sequence[HistoryPoint], target_roas: float, max_budget: float
) -> BudgetRecommendation:
    """Scale the average daily spend by how the observed ROAS meets the target.

    At or above target the budget grows 20% (capped at ``max_budget``);
    within 80% of target it holds; below that it shrinks 20%. With less
    than two weeks of history half of ``max_budget`` is suggested.
    """
    if len(history) < MIN_RECOMMENDATION_POINTS:
        return BudgetRecommendation(
            recommended_budget=max_budget * 0.5,
            expected_roas=target_roas,
            expected_conversions=0.0,
            expected_revenue=0.0,
            confidence="low",
        )

    spend = sum(p.spend for p in history)
    revenue = sum(p.revenue for p in history)
    conversions = sum(p.conversions for p in history)
    roas = revenue / spend if spend > 0 else 0.0
    conversions_per_unit = conversions / spend if spend > 0 else 0.0
    average_spend = spend / len(history)

    if roas >= target_roas:
        budget = min(average_spend * 1.2, max_budget)
    elif roas >= target_roas * 0.8:
        budget = average_spend
    else:
        budget = average_spend * 0.8

    return BudgetRecommendation(
        recommended_budget=round_half_up(budget, 2),
        expected_roas=round_half_up(roas, 2),
        expected_conversions=round_half_up(budget * conversions_per_unit, 2),
        expected_revenue=round_half_up(budget * roas, 2),
        confidence="high" if len(history) >= HIGH_CONFIDENCE_POINTS else "medium",
    )
