"""Tests for the AnalyticsCore facade: update rules and snapshots."""

import pytest

from customer_insights.exceptions import ExperimentStateError, NotFoundError, ValidationError
from customer_insights.foundation import BatchResult, Platform, ResolutionMethod
from customer_insights.service import AnalyticsCore

SNAPSHOT = {
    "persons": [
        {"id": "p1", "created_at": "2024-01-01T00:00:00Z", "email": "p1@example.com"},
        {"id": "p2", "created_at": "2024-01-02T00:00:00Z"},
    ],
    "sessions": [
        {
            "id": "s1",
            "visitor_id": "v1",
            "started_at": "2024-06-01T10:00:00Z",
            "utm_source": "google",
            "utm_medium": "cpc",
            "utm_campaign": "summer sale",
        }
    ],
    "campaigns": [
        {"id": "camp_1", "name": "Summer Sale"},
        {"id": "camp_2", "name": "Black Friday"},
    ],
}


@pytest.fixture
def core():
    return AnalyticsCore.from_snapshot(SNAPSHOT)


class TestConversions:
    def test_track_and_list(self, core):
        core.track_conversion({"conversion_type": "purchase", "person_id": "p1", "conversion_value": 10})
        core.track_conversion({"conversion_type": "lead_form_submission", "person_id": "p2"})

        page = core.list_conversions({"conversion_type": "purchase"})
        assert page.total == 1
        assert page.items[0].person_id == "p1"

    def test_only_identity_and_metadata_are_updatable(self, core):
        conversion = core.track_conversion({"conversion_type": "purchase"}).conversion

        updated = core.update_conversion(conversion.id, {"person_id": "p2", "metadata": {"x": 1}})
        assert updated.person_id == "p2"
        with pytest.raises(ValidationError, match="cannot be updated"):
            core.update_conversion(conversion.id, {"value": 5})

    def test_delete_conversion(self, core):
        conversion = core.track_conversion({"conversion_type": "purchase"}).conversion
        core.delete_conversion(conversion.id)
        with pytest.raises(NotFoundError):
            core.get_conversion(conversion.id)


class TestGoals:
    def test_create_goal(self, core):
        goal = core.create_goal({"name": "Sales", "goal_type": "purchase"})
        assert goal.id.startswith("goal")
        assert core.get_goal(goal.id).current_count == 0

    def test_invalid_goal(self, core):
        with pytest.raises(ValidationError, match="Invalid goal"):
            core.create_goal({"name": "Bad", "goal_type": "teleport"})


class TestAttributions:
    def test_resolve_then_override(self, core):
        attribution = core.resolve_attribution("s1")
        assert attribution.campaign_id == "camp_1"

        updated = core.update_attribution(attribution.id, {"campaign_id": "camp_2"})

        assert updated.campaign_id == "camp_2"
        assert updated.resolution_method is ResolutionMethod.MANUAL
        assert core.resolve_attribution("s1").campaign_id == "camp_2"
        assert core.resolve_attribution("s1", force=True).campaign_id == "camp_1"

    def test_update_rejects_other_fields(self, core):
        attribution = core.resolve_attribution("s1")
        with pytest.raises(ValidationError):
            core.update_attribution(attribution.id, {"resolution_confidence": 0.1})
        with pytest.raises(ValidationError, match="campaign_id is required"):
            core.update_attribution(attribution.id, {"campaign_id": ""})

    def test_unknown_campaign(self, core):
        with pytest.raises(NotFoundError):
            core.set_manual_attribution("s1", "camp_missing")

    def test_resolved_session_attributes_later_conversions(self, core):
        """A conversion from a resolved session carries its campaign and platform."""
        core.resolve_attribution("s1")

        result = core.track_conversion({"conversion_type": "purchase", "session_id": "s1"})

        assert result.attributed
        assert result.conversion.campaign_id == "camp_1"
        assert result.conversion.utm_source == "google"
        assert result.conversion.platform is Platform.GOOGLE

    def test_update_with_ad_ids(self, core):
        attribution = core.resolve_attribution("s1")
        updated = core.update_attribution(
            attribution.id, {"campaign_id": "camp_2", "ad_set_id": "as_1", "ad_id": "ad_1"}
        )
        assert (updated.ad_set_id, updated.ad_id) == ("as_1", "ad_1")

        result = core.track_conversion({"conversion_type": "purchase", "session_id": "s1"})
        assert result.conversion.ad_set_id == "as_1"
        assert result.conversion.ad_id == "ad_1"


class TestJourneysAndScores:
    def test_record_journey_event(self, core):
        event = core.record_journey_event({"person_id": "p1", "event_type": "page_view"})
        assert event.id.startswith("jev")
        assert core.journey_timeline("p1").summary.total_events == 1
        assert core.funnel().summary.total_customers == 1

    def test_invalid_journey_event(self, core):
        with pytest.raises(ValidationError, match="Invalid journey event"):
            core.record_journey_event({"person_id": "p1", "event_type": "teleport"})

    def test_invalid_funnel_dates(self, core):
        with pytest.raises(ValidationError, match="date range"):
            core.funnel(date_from="not a date")

    def test_update_score_is_override(self, core):
        score = core.record_nps("p1", 9)
        updated = core.update_score(score.id, 42.0)
        assert updated.score_value == 42.0

    def test_list_scores_unknown_type(self, core):
        with pytest.raises(ValidationError, match="Unknown score type"):
            core.list_scores({"score_type": "loyalty"})

    def test_recalculate_unknown_type(self, core):
        with pytest.raises(ValidationError):
            core.recalculate_scores(["loyalty"])


class TestSegments:
    def test_create_requires_name(self, core):
        with pytest.raises(ValidationError, match="name is required"):
            core.create_segment("  ", {"rules": []})

    def test_update_restricted_fields(self, core):
        segment = core.create_segment("All", {"rules": []})
        with pytest.raises(ValidationError, match="cannot be updated"):
            core.update_segment(segment.id, {"customer_count": 10})

    def test_build_and_page_members(self, core):
        segment = core.create_segment("All", {"rules": []})
        core.build_segment(segment.id)

        page = core.segment_members(segment.id, limit=1)
        assert page.total == 2
        assert [m.person_id for m in page.items] == ["p1"]
        assert page.has_more

    def test_members_bad_page(self, core):
        segment = core.create_segment("All", {"rules": []})
        with pytest.raises(ValidationError, match="Invalid page"):
            core.segment_members(segment.id, limit=0)


class TestExperiments:
    def test_new_experiments_are_drafts(self, core):
        with pytest.raises(ValidationError, match="start as draft"):
            core.create_experiment({"name": "Hero", "status": "running"})

    def test_requires_name(self, core):
        with pytest.raises(ValidationError, match="name is required"):
            core.create_experiment({})

    def test_status_changes_go_through_lifecycle(self, core):
        experiment = core.create_experiment({"name": "Hero"})
        with pytest.raises(ExperimentStateError):
            core.update_experiment(experiment.id, {"status": "running"})
        assert core.start_experiment(experiment.id).status.value == "running"


class TestForecasts:
    HISTORY = [
        {"date": f"2024-06-{day:02d}", "spend": 100, "conversions": 5, "revenue": 400}
        for day in range(1, 15)
    ]

    def test_recommend_budget_requires_positive_inputs(self, core):
        with pytest.raises(ValidationError, match="must be positive"):
            core.recommend_budget(self.HISTORY, target_roas=0, max_budget=100)

    def test_recommend_budget_from_mappings(self, core):
        result = core.recommend_budget(self.HISTORY, target_roas=3.0, max_budget=1000.0)
        assert result.recommended_budget == 120.0

    def test_invalid_history(self, core):
        with pytest.raises(ValidationError, match="Invalid forecast history"):
            core.create_forecast([{"date": "2024-06-01", "spend": -1, "conversions": 0, "revenue": 0}], 3, 10.0)

    def test_forecast_update_rules(self, core):
        forecast = core.create_forecast(self.HISTORY, 3, 100.0)
        assert core.update_forecast(forecast.id, {"actual_spend": 250.0}).actual_spend == 250.0
        with pytest.raises(ValidationError, match="cannot be updated"):
            core.update_forecast(forecast.id, {"predicted_revenue": 1.0})

    def test_accuracy_without_id_is_a_batch(self, core):
        assert isinstance(core.forecast_accuracy(), BatchResult)


class TestSnapshots:
    def test_round_trip(self, core):
        core.track_conversion(
            {"conversion_type": "purchase", "person_id": "p1", "session_id": "s1", "conversion_value": 25}
        )
        core.resolve_attribution("s1")
        core.calculate_score("p1", "engagement")
        segment = core.create_segment("All", {"rules": []})
        core.build_segment(segment.id)

        payload = dict(core.snapshot(), **SNAPSHOT)
        restored = AnalyticsCore.from_snapshot(payload)

        assert restored.list_conversions().total == 1
        assert restored.list_attributions().items[0].campaign_id == "camp_1"
        assert restored.store.get_score("p1", "engagement") is not None
        assert restored.segment_members(segment.id).total == 2

    def test_bad_collaborators(self):
        with pytest.raises(ValidationError, match="collaborators"):
            AnalyticsCore.from_snapshot({"persons": [{"id": "p1"}]})


class TestReports:
    def test_reports_use_directory_campaign_names(self, core):
        core.resolve_attribution("s1")
        core.track_conversion(
            {"conversion_type": "purchase", "session_id": "s1", "conversion_value": 80}
        )

        stats = core.attribution_stats()
        assert stats.totals.resolution_rate == 1.0
        assert stats.by_campaign[0].campaign_name == "Summer Sale"
        assert stats.by_campaign[0].conversion_value == 80.0
        assert core.conversion_stats().by_platform == {"google": 1}

    def test_bad_dates_are_validation_errors(self, core):
        with pytest.raises(ValidationError, match="Invalid report date range"):
            core.conversion_stats(date_from="2024-06-05", date_to="2024-06-01")
        with pytest.raises(ValidationError, match="Invalid report date range"):
            core.dashboard_overview(date_from="not-a-date")
