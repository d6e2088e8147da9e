"""Tests for decayed engagement scoring."""

from datetime import datetime, timedelta, timezone

import pytest

from customer_insights.config import EngagementConfig
from customer_insights.scoring.engagement import (
    Activity,
    calculate_engagement,
    engagement_level,
)

AS_OF = datetime(2024, 6, 30, tzinfo=timezone.utc)


def _activity(activity_type, days_ago, value=None):
    return Activity(activity_type, AS_OF - timedelta(days=days_ago), value)


class TestEngagementLevel:
    @pytest.mark.parametrize(
        "score,level",
        [(100, "high"), (70, "high"), (69, "medium"), (40, "medium"), (39, "low"), (1, "low"), (0, "inactive")],
    )
    def test_levels(self, score, level):
        assert engagement_level(score) == level


class TestCalculateEngagement:
    def test_weights_decay_and_purchase_bonus(self):
        """Recent purchase 25 + log bonus 4, page view 1, aged email 1, old unknown 0.25."""
        result = calculate_engagement(
            [
                _activity("purchase", 5, value=99.0),
                _activity("page_view", 10),
                _activity("email_open", 45),
                _activity("webinar", 100),
            ],
            AS_OF,
        )
        assert result.raw_points == pytest.approx(31.25)
        assert result.score == 6
        assert result.level == "low"
        assert result.total_activities == 4
        assert result.breakdown == {
            "purchase": 1,
            "page_view": 1,
            "email_open": 1,
            "webinar": 1,
        }

    def test_decay_boundaries(self):
        """Day 30 is already half weight and day 90 quarter weight."""
        half = calculate_engagement([_activity("purchase", 30)], AS_OF)
        quarter = calculate_engagement([_activity("purchase", 90)], AS_OF)
        assert half.raw_points == 12.5
        assert quarter.raw_points == 6.25

    def test_score_is_capped(self):
        result = calculate_engagement([_activity("purchase", 1)] * 20, AS_OF)
        assert result.score == 100
        assert result.level == "high"

    def test_medium(self):
        result = calculate_engagement([_activity("purchase", 1)] * 8, AS_OF)
        assert result.score == 40
        assert result.level == "medium"

    def test_no_activity(self):
        result = calculate_engagement([], AS_OF)
        assert result.score == 0
        assert result.level == "inactive"
        assert result.breakdown == {}

    def test_future_activity_counts_as_recent(self):
        result = calculate_engagement([_activity("session", -3)], AS_OF)
        assert result.raw_points == 5.0

    def test_custom_weights(self):
        config = EngagementConfig(activity_weights={"demo": 50.0})
        result = calculate_engagement([_activity("demo", 1)], AS_OF, config)
        assert result.score == 10
