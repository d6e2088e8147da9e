"""Forecast accuracy against observed revenue.

Predicted and actual daily revenue are matched by date. For each matched
day the absolute percentage error is ``|predicted - actual| / predicted``;
MAPE is their mean and accuracy is ``100 - MAPE`` clamped to [0, 100].
When no day can be compared the result says so instead of reporting a
figure.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from customer_insights.foundation.records import Conversion, round_half_up

NO_COMPARABLE_DATA = "no_comparable_data"
COMPARED = "compared"


@dataclass(frozen=True)
class DayComparison:
    date: date
    predicted: float
    actual: float
    error: float
    error_percent: float


@dataclass(frozen=True)
class AccuracyResult:
    """Outcome of comparing a forecast with actuals.

    Attributes
    ----------
    status:
        ``"compared"`` or ``"no_comparable_data"``
    mape:
        Mean absolute percentage error (2 dp); None without comparable days
    accuracy:
        ``100 - mape`` clamped to [0, 100] (2 dp); None without comparable days
    comparable_days:
        Days that had both a prediction and recorded actuals
    comparisons:
        Per-day detail, ordered by date
    """

    status: str
    mape: Optional[float]
    accuracy: Optional[float]
    comparable_days: int
    comparisons: tuple[DayComparison, ...] = ()

    @property
    def has_data(self) -> bool:
        return self.status == COMPARED


def daily_revenue(
    conversions: Iterable[Conversion], start: date, end: date
) -> dict[date, float]:
    """Sum conversion values per calendar day (UTC) within [start, end]."""
    frame = pd.DataFrame(
        [
            {"day": c.converted_at.date(), "value": float(c.value or 0)}
            for c in conversions
        ],
        columns=["day", "value"],
    )
    if frame.empty:
        return {}
    frame = frame[(frame["day"] >= start) & (frame["day"] <= end)]
    totals = frame.groupby("day")["value"].sum()
    return {day: float(value) for day, value in totals.items()}


def compare_forecast(
    predicted: Mapping[date, float], actual: Mapping[date, float]
) -> AccuracyResult:
    """Compare daily predicted revenue with daily actual revenue.

    Parameters
    ----------
    predicted:
        Predicted revenue per day
    actual:
        Observed revenue per day; days absent here were not observed

    Returns
    -------
    AccuracyResult
        MAPE and accuracy, or a ``no_comparable_data`` result
    """
    days = sorted(d for d, value in predicted.items() if value > 0 and d in actual)
    if not days:
        return AccuracyResult(
            status=NO_COMPARABLE_DATA, mape=None, accuracy=None, comparable_days=0
        )

    predicted_values = np.array([predicted[d] for d in days], dtype=float)
    actual_values = np.array([actual[d] for d in days], dtype=float)
    errors = np.abs(predicted_values - actual_values)
    error_percents = errors / predicted_values * 100

    mape = float(np.mean(error_percents))
    accuracy = min(100.0, max(0.0, 100.0 - mape))
    comparisons = tuple(
        DayComparison(
            date=d,
            predicted=float(p),
            actual=float(a),
            error=round_half_up(float(e), 2),
            error_percent=round_half_up(float(pct), 2),
        )
        for d, p, a, e, pct in zip(days, predicted_values, actual_values, errors, error_percents)
    )
    return AccuracyResult(
        status=COMPARED,
        mape=round_half_up(mape, 2),
        accuracy=round_half_up(accuracy, 2),
        comparable_days=len(days),
        comparisons=comparisons,
    )
