"""Tests for the heuristic CLV projection."""

from datetime import datetime, timedelta, timezone

import pytest

from customer_insights.config import CLVConfig
from customer_insights.scoring.clv import (
    Purchase,
    calculate_clv,
    clv_confidence,
    clv_tier,
    projected_lifespan_months,
    remaining_clv,
)

AS_OF = datetime(2024, 6, 30, tzinfo=timezone.utc)


class TestTiers:
    @pytest.mark.parametrize(
        "value,tier",
        [(60000, "platinum"), (50000, "platinum"), (22000, "gold"), (5000, "silver"), (4999.99, "bronze"), (0, "bronze")],
    )
    def test_default_thresholds(self, value, tier):
        assert clv_tier(value) == tier

    def test_custom_thresholds(self):
        config = CLVConfig(platinum_threshold=300, gold_threshold=200, silver_threshold=100)
        assert clv_tier(250, config) == "gold"

    def test_thresholds_must_descend(self):
        with pytest.raises(ValueError, match="platinum > gold > silver"):
            CLVConfig(platinum_threshold=100, gold_threshold=200)


class TestHelpers:
    @pytest.mark.parametrize("count,confidence", [(7, "high"), (5, "high"), (3, "medium"), (2, "medium"), (1, "low"), (0, "low")])
    def test_confidence(self, count, confidence):
        assert clv_confidence(count) == confidence

    def test_remaining_clv(self):
        assert remaining_clv(22000, 5000) == 17000.0
        assert remaining_clv(100, 250) == 0.0

    @pytest.mark.parametrize(
        "days,months",
        [(None, 24), (0, 36), (89, 36), (90, 24), (180, 24), (181, 6)],
    )
    def test_lifespan_by_recency(self, days, months):
        assert projected_lifespan_months(days) == months


class TestCalculateCLV:
    def test_active_customer(self):
        """Recent buyers are projected over the 36-month horizon."""
        result = calculate_clv(
            [
                Purchase(3000.0, datetime(2024, 6, 20, tzinfo=timezone.utc)),
                Purchase(1000.0, datetime(2024, 2, 1, tzinfo=timezone.utc)),
                Purchase(2000.0, datetime(2024, 4, 1, tzinfo=timezone.utc)),
            ],
            AS_OF,
            customer_since=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        assert result.purchase_count == 3
        assert result.realized_clv == 6000.0
        assert result.average_order_value == 2000.0
        assert result.days_since_last_purchase == 10
        assert result.predicted_lifespan_months == 36
        assert result.avg_days_between_purchases == 70.0
        assert result.predicted_clv == pytest.approx(6_480_000 / 181, abs=0.01)
        assert result.remaining_clv == pytest.approx(6_480_000 / 181 - 6000, abs=0.01)
        assert result.predicted_purchases == pytest.approx(17.9)
        assert result.tier == "gold"
        assert result.confidence == "medium"

    def test_dormant_customer(self):
        """A purchase older than 180 days shrinks the horizon to 6 months."""
        result = calculate_clv(
            [Purchase(100.0, AS_OF - timedelta(days=200))],
            AS_OF,
        )
        assert result.predicted_lifespan_months == 6
        assert result.purchase_frequency == 0.15
        assert result.predicted_clv == pytest.approx(90.0)
        assert result.remaining_clv == 0.0
        assert result.avg_days_between_purchases is None
        assert result.confidence == "low"

    def test_no_purchases(self):
        result = calculate_clv([], AS_OF)
        assert result.predicted_clv == 0.0
        assert result.tier == "bronze"
        assert result.predicted_lifespan_months == 24
        assert result.days_since_last_purchase is None
        assert result.average_order_value == 0.0
