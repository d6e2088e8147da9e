"""Tests for trend forecasting and budget recommendations."""

from datetime import date, timedelta

import pytest

from customer_insights.forecasting.engine import (
    HistoryPoint,
    generate_forecast,
    linear_trend,
    moving_average,
    recommend_budget,
    weekday_seasonality,
)

MONDAY = date(2024, 6, 3)


def _history(days, spend=100.0, conversions=10.0, revenue=None, start=MONDAY):
    return [
        HistoryPoint(
            date=start + timedelta(days=i),
            spend=spend,
            conversions=conversions,
            revenue=revenue if revenue is not None else 100.0 + 10.0 * i,
        )
        for i in range(days)
    ]


class TestHelpers:
    def test_moving_average(self):
        assert moving_average([1, 2, 3, 4], 2) == [1.0, 1.5, 2.5, 3.5]

    def test_moving_average_window(self):
        with pytest.raises(ValueError, match="window"):
            moving_average([1, 2], 0)

    def test_linear_trend_exact_line(self):
        trend = linear_trend([1, 3, 5, 7])
        assert trend.slope == pytest.approx(2.0)
        assert trend.intercept == pytest.approx(1.0)
        assert trend.r2 == pytest.approx(1.0)
        assert trend.at(4) == pytest.approx(9.0)

    def test_linear_trend_flat_and_short(self):
        assert linear_trend([4, 4, 4]).r2 == 0.0
        single = linear_trend([5])
        assert (single.slope, single.intercept) == (0.0, 5.0)
        assert linear_trend([]).intercept == 0.0

    def test_weekday_seasonality(self):
        """Monday is weekday 0; unseen weekdays get an index of 1."""
        points = [
            HistoryPoint(date=MONDAY, spend=1, conversions=20, revenue=1),
            HistoryPoint(date=MONDAY + timedelta(days=1), spend=1, conversions=10, revenue=1),
        ]
        index = weekday_seasonality(points)
        assert index[0] == pytest.approx(4 / 3)
        assert index[1] == pytest.approx(2 / 3)
        assert index[6] == 1.0

    def test_history_point_parses_dates(self):
        point = HistoryPoint(date="2024-06-03", spend=1, conversions=0, revenue=0)
        assert point.date == MONDAY

    def test_history_point_rejects_negatives(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            HistoryPoint(date=MONDAY, spend=-1, conversions=0, revenue=0)


class TestGenerateForecast:
    def test_fallback_with_short_history(self):
        """Under a week of history projects a flat 3x ROAS."""
        days = generate_forecast(_history(3), 2, 100.0, start=date(2024, 7, 1))

        assert [d.date for d in days] == [date(2024, 7, 1), date(2024, 7, 2)]
        first = days[0]
        assert first.predicted_spend == 100.0
        assert first.predicted_revenue == 300.0
        assert first.predicted_conversions == 1.0
        assert first.predicted_roas == 3.0
        assert (first.confidence_lower, first.confidence_upper) == (150.0, 450.0)

    def test_trend_projection(self):
        """Revenue continues the fitted line and the band widens 2% per day."""
        start = MONDAY + timedelta(days=14)
        days = generate_forecast(_history(14), 6, 100.0, start=start)

        assert days[0].predicted_revenue == pytest.approx(240.0)
        assert days[0].predicted_conversions == pytest.approx(10.0)
        assert days[0].predicted_roas == pytest.approx(2.4)
        assert days[0].confidence_lower == pytest.approx(216.0)
        assert days[0].confidence_upper == pytest.approx(264.0)
        assert days[5].predicted_revenue == pytest.approx(290.0)
        assert days[5].confidence_lower == pytest.approx(232.0)
        assert days[5].confidence_upper == pytest.approx(348.0)

    def test_declining_trend_is_floored_at_zero(self):
        history = _history(7, revenue=0.0)
        history = [
            HistoryPoint(date=p.date, spend=p.spend, conversions=70.0 - 10 * i, revenue=700.0 - 100 * i)
            for i, p in enumerate(history)
        ]
        days = generate_forecast(history, 3, 50.0, start=MONDAY + timedelta(days=7))
        assert all(d.predicted_revenue == 0.0 for d in days)
        assert all(d.predicted_conversions == 0.0 for d in days)

    def test_zero_budget_has_zero_roas(self):
        days = generate_forecast(_history(10), 1, 0.0, start=date(2024, 7, 1))
        assert days[0].predicted_roas == 0.0

    @pytest.mark.parametrize("kwargs", [{"forecast_days": -1}, {"daily_budget": -5.0}])
    def test_invalid_arguments(self, kwargs):
        arguments = {"forecast_days": 1, "daily_budget": 10.0}
        arguments.update(kwargs)
        with pytest.raises(ValueError, match="cannot be negative"):
            generate_forecast(_history(3), **arguments)


class TestRecommendBudget:
    def test_short_history(self):
        result = recommend_budget(_history(5), target_roas=3.0, max_budget=500.0)
        assert result.recommended_budget == 250.0
        assert result.confidence == "low"
        assert result.expected_roas == 3.0

    def test_above_target_grows(self):
        result = recommend_budget(
            _history(14, conversions=5.0, revenue=400.0), target_roas=3.0, max_budget=1000.0
        )
        assert result.recommended_budget == 120.0
        assert result.expected_roas == 4.0
        assert result.expected_conversions == 6.0
        assert result.expected_revenue == 480.0
        assert result.confidence == "medium"

    def test_growth_is_capped(self):
        result = recommend_budget(_history(14, revenue=400.0), target_roas=3.0, max_budget=110.0)
        assert result.recommended_budget == 110.0

    def test_near_target_holds(self):
        result = recommend_budget(_history(14, revenue=250.0), target_roas=3.0, max_budget=1000.0)
        assert result.recommended_budget == 100.0

    def test_below_target_shrinks(self):
        result = recommend_budget(_history(30, revenue=100.0), target_roas=3.0, max_budget=1000.0)
        assert result.recommended_budget == 80.0
        assert result.confidence == "high"
