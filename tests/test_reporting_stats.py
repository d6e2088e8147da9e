"""Tests for conversion, attribution and dashboard reports."""

from datetime import date, datetime, timezone

import pytest

from customer_insights.foundation import (
    ABExperiment,
    CampaignAttribution,
    Conversion,
    ConversionGoal,
)
from customer_insights.reporting import (
    TypeStats,
    attribution_stats,
    conversion_stats,
    dashboard_overview,
)


def _at(day, hour=12):
    return datetime(2024, 6, day, hour, tzinfo=timezone.utc)


CONVERSIONS = [
    Conversion(
        id="c1",
        conversion_type="purchase",
        visitor_id="v1",
        converted_at=_at(1, 10),
        website_id="w1",
        value="100.00",
        campaign_id="camp_1",
        utm_source="google",
    ),
    Conversion(
        id="c2",
        conversion_type="purchase",
        visitor_id="v2",
        converted_at=_at(1, 18),
        website_id="w1",
        value="50.50",
    ),
    Conversion(
        id="c3",
        conversion_type="lead_form_submission",
        visitor_id="v3",
        converted_at=_at(2),
        website_id="w1",
    ),
    Conversion(
        id="c4",
        conversion_type="purchase",
        visitor_id="v4",
        converted_at=_at(3),
        website_id="w2",
        value="20.00",
        currency="USD",
        campaign_id="camp_2",
        utm_source="facebook",
    ),
    Conversion(
        id="c5",
        conversion_type="purchase",
        visitor_id="v5",
        converted_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        website_id="w1",
        value="999.00",
    ),
]


def _attribution(id, method, confidence, platform, day, campaign_id=None, website_id="w1"):
    return CampaignAttribution(
        id=id,
        session_id=f"s_{id}",
        visitor_id="v1",
        resolution_method=method,
        resolution_confidence=confidence,
        platform=platform,
        resolved_at=_at(day),
        campaign_id=campaign_id,
        website_id=website_id,
    )


ATTRIBUTIONS = [
    _attribution("a1", "exact_utm_match", 1.0, "google", 1, "camp_1"),
    _attribution("a2", "fuzzy_name_match", 0.7, "google", 1, "camp_1"),
    _attribution("a3", "unresolved", 0.0, "direct", 2),
    _attribution("a4", "manual", 1.0, "meta", 3, "camp_2", website_id="w2"),
]


class TestConversionStats:
    def test_website_and_window(self):
        """Only w1 conversions on the first two days of June are counted."""
        stats = conversion_stats(CONVERSIONS, "w1", "2024-06-01", "2024-06-02")

        totals = stats.totals
        assert totals.total_conversions == 3
        assert totals.total_value == 150.5
        assert totals.average_value == 75.25
        assert totals.attributed_conversions == 1
        assert totals.by_type == {
            "lead_form_submission": TypeStats(count=1, value=0.0),
            "purchase": TypeStats(count=2, value=150.5),
        }
        assert stats.by_platform == {"direct": 2, "google": 1}
        assert stats.by_currency == {"INR": 150.5}
        assert [(d.day, d.conversions, d.value) for d in stats.daily] == [
            (date(2024, 6, 1), 2, 150.5),
            (date(2024, 6, 2), 1, 0.0),
        ]

    def test_all_time_keeps_currencies_apart(self):
        stats = conversion_stats(CONVERSIONS)
        assert stats.totals.total_conversions == 5
        assert stats.by_currency == {"INR": 1149.5, "USD": 20.0}
        assert stats.by_platform["meta"] == 1

    def test_no_conversions(self):
        stats = conversion_stats([])
        assert stats.totals.total_conversions == 0
        assert stats.totals.total_value == 0.0
        assert stats.totals.average_value == 0.0
        assert stats.totals.by_type == {}
        assert stats.daily == ()

    def test_reversed_window_rejected(self):
        with pytest.raises(ValueError, match="is after"):
            conversion_stats(CONVERSIONS, date_from="2024-06-05", date_to="2024-06-01")


class TestAttributionStats:
    def test_totals_and_campaigns(self):
        stats = attribution_stats(ATTRIBUTIONS, CONVERSIONS, {"camp_1": "Summer Sale"})

        assert stats.totals.total_sessions == 4
        assert stats.totals.resolved_sessions == 3
        assert stats.totals.unresolved_sessions == 1
        assert stats.totals.resolution_rate == 0.75
        assert stats.totals.average_confidence == pytest.approx(0.9)
        assert stats.by_method == {
            "exact_utm_match": 1,
            "fuzzy_name_match": 1,
            "manual": 1,
            "unresolved": 1,
        }
        assert stats.by_platform == {"direct": 1, "google": 2, "meta": 1}

        first, second = stats.by_campaign
        assert (first.campaign_id, first.campaign_name) == ("camp_1", "Summer Sale")
        assert (first.sessions, first.conversions, first.conversion_value) == (2, 1, 100.0)
        assert first.conversion_rate == 0.5
        assert second.campaign_id == "camp_2"
        assert second.campaign_name is None
        assert second.conversion_rate == 1.0

    def test_website_filter(self):
        stats = attribution_stats(ATTRIBUTIONS, CONVERSIONS, website_id="w1")
        assert stats.totals.total_sessions == 3
        assert stats.totals.resolution_rate == 0.6667
        assert [c.campaign_id for c in stats.by_campaign] == ["camp_1"]

    def test_date_window(self):
        stats = attribution_stats(ATTRIBUTIONS, date_from="2024-06-02", date_to="2024-06-03")
        assert stats.totals.total_sessions == 2
        assert stats.totals.resolved_sessions == 1

    def test_empty(self):
        stats = attribution_stats([])
        assert stats.totals.total_sessions == 0
        assert stats.totals.resolution_rate == 0.0
        assert stats.by_campaign == ()


class TestDashboardOverview:
    def test_default_period_is_thirty_days(self):
        overview = dashboard_overview(CONVERSIONS, ATTRIBUTIONS, today=date(2024, 6, 3))

        assert overview.period.date_from == date(2024, 5, 5)
        assert overview.period.date_to == date(2024, 6, 3)
        assert overview.period.days == 30
        assert overview.conversions.total_conversions == 4
        assert overview.attribution.total_sessions == 4
        assert overview.top_campaigns[0].campaign_id == "camp_1"

    def test_goals_and_experiments(self):
        goals = [
            ConversionGoal(
                id="g1",
                name="Site sales",
                goal_type="purchase",
                website_id="w1",
                target_value="200.00",
                current_count=2,
                current_value="50.00",
            ),
            ConversionGoal(id="g2", name="All leads", goal_type="lead_form_submission"),
            ConversionGoal(id="g3", name="Old", goal_type="purchase", is_active=False),
            ConversionGoal(id="g4", name="Other", goal_type="purchase", website_id="w2"),
        ]
        experiments = [
            ABExperiment(id="e1", name="Checkout", status="running"),
            ABExperiment(id="e2", name="Banner"),
        ]

        overview = dashboard_overview(
            CONVERSIONS,
            ATTRIBUTIONS,
            goals=goals,
            experiments=experiments,
            website_id="w1",
            date_from="2024-06-01",
            date_to="2024-06-02",
        )

        assert [g.goal_id for g in overview.goals] == ["g2", "g1"]
        assert overview.goals[1].progress_percent == 25.0
        assert overview.goals[0].progress_percent is None
        assert overview.running_experiments == 1
        assert overview.conversions.total_conversions == 3
        assert overview.attribution.resolution_rate == 0.6667

    def test_reversed_period_rejected(self):
        with pytest.raises(ValueError, match="is after"):
            dashboard_overview([], [], date_from=date(2024, 6, 3), date_to=date(2024, 6, 1))
