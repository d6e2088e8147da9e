"""Stored budget forecasts: creation and post-hoc accuracy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional, Sequence

from customer_insights.exceptions import ValidationError
from customer_insights.foundation.batch import BatchResult, run_batch
from customer_insights.foundation.mappings import ConversionType
from customer_insights.foundation.records import BudgetForecast, Conversion, utcnow
from customer_insights.foundation.store import AnalyticsStore, new_id
from customer_insights.forecasting.accuracy import (
    AccuracyResult,
    compare_forecast,
    daily_revenue,
)
from customer_insights.forecasting.engine import HistoryPoint, generate_forecast

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastAccuracyReport:
    forecast: BudgetForecast
    result: AccuracyResult
    actual_revenue: float
    actual_conversions: int


class ForecastAnalyzer:
    """Creates forecasts and scores them once their window has data."""

    def __init__(self, store: AnalyticsStore) -> None:
        self.store = store

    def create_forecast(
        self,
        history: Sequence[HistoryPoint],
        forecast_days: int,
        daily_budget: float,
        start: Optional[date] = None,
        ad_campaign_id: Optional[str] = None,
        website_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> BudgetForecast:
        """Generate a daily forecast and persist it with its totals."""
        if forecast_days < 1:
            raise ValidationError(f"forecast_days must be at least 1, got {forecast_days}")
        try:
            daily = generate_forecast(history, forecast_days, daily_budget, start)
            forecast = BudgetForecast(
                id=new_id("fcst"),
                forecast_date=at or utcnow(),
                period_start=daily[0].date,
                period_end=daily[-1].date,
                predicted_spend=round(sum(d.predicted_spend for d in daily), 2),
                predicted_revenue=round(sum(d.predicted_revenue for d in daily), 2),
                predicted_conversions=round(sum(d.predicted_conversions for d in daily), 2),
                daily_forecasts=tuple(daily),
                ad_campaign_id=ad_campaign_id,
                website_id=website_id,
            )
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        logger.info(
            "Created forecast %s for %s..%s (%d days)",
            forecast.id,
            forecast.period_start,
            forecast.period_end,
            forecast_days,
        )
        return self.store.forecasts.add(forecast)

    def _window_purchases(self, forecast: BudgetForecast) -> list[Conversion]:
        return self.store.conversions.filter(
            lambda c: c.conversion_type is ConversionType.PURCHASE
            and forecast.period_start <= c.converted_at.date() <= forecast.period_end
            and (forecast.ad_campaign_id is None or c.campaign_id == forecast.ad_campaign_id)
            and (forecast.website_id is None or c.website_id == forecast.website_id)
        )

    def forecast_accuracy(
        self, forecast_id: str, as_of: Optional[datetime] = None
    ) -> ForecastAccuracyReport:
        """Compare one forecast with actual purchase revenue and store the result.

        Actual totals are always written back; accuracy and MAPE only when
        at least one day was comparable.
        """
        now = as_of or utcnow()
        forecast = self.store.forecasts.get(forecast_id)
        purchases = self._window_purchases(forecast)
        actual = daily_revenue(purchases, forecast.period_start, forecast.period_end)
        predicted = {d.date: d.predicted_revenue for d in forecast.daily_forecasts}
        result = compare_forecast(predicted, actual)

        actual_revenue = round(sum(actual.values()), 2)
        changes = {
            "actual_revenue": actual_revenue,
            "actual_conversions": len(purchases),
            "accuracy_calculated_at": now,
        }
        if result.has_data:
            changes.update(accuracy=result.accuracy, mape=result.mape)
        updated = self.store.forecasts.save(replace(forecast, **changes))
        logger.info(
            "Forecast %s accuracy: status=%s days=%d mape=%s",
            forecast_id,
            result.status,
            result.comparable_days,
            result.mape,
        )
        return ForecastAccuracyReport(
            forecast=updated,
            result=result,
            actual_revenue=actual_revenue,
            actual_conversions=len(purchases),
        )

    def ended_forecasts(self, as_of: Optional[datetime] = None) -> list[BudgetForecast]:
        today = (as_of or utcnow()).date()
        return self.store.forecasts.filter(lambda f: f.period_end < today)

    def accuracy_for_ended(
        self, as_of: Optional[datetime] = None
    ) -> BatchResult[ForecastAccuracyReport]:
        """Score every forecast whose window has ended."""
        now = as_of or utcnow()
        return run_batch(
            "forecast_accuracy",
            self.ended_forecasts(now),
            lambda forecast: self.forecast_accuracy(forecast.id, now),
            item_id=lambda forecast: forecast.id,
        )
