"""Tests for the record store and the batch runner."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from customer_insights.exceptions import NotFoundError, ValidationError
from customer_insights.foundation import (
    AnalyticsStore,
    CampaignAttribution,
    Conversion,
    ConversionGoal,
    CustomerScore,
    CustomerSegment,
    RuleSet,
    ScoreType,
    run_batch,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _conversion(conversion_id: str, visitor_id: str = "v1", value: str = "10") -> Conversion:
    return Conversion(
        id=conversion_id,
        conversion_type="purchase",
        visitor_id=visitor_id,
        converted_at=NOW,
        value=Decimal(value),
    )


@pytest.fixture
def store():
    return AnalyticsStore()


class TestRepository:
    """Id-keyed CRUD and paging."""

    def test_add_and_get(self, store):
        """Records are retrievable by id once added."""
        store.conversions.add(_conversion("c1"))
        assert store.conversions.get("c1").visitor_id == "v1"
        assert len(store.conversions) == 1

    def test_duplicate_id_rejected(self, store):
        """Adding the same id twice is a validation error."""
        store.conversions.add(_conversion("c1"))
        with pytest.raises(ValidationError, match="already exists"):
            store.conversions.add(_conversion("c1"))

    def test_get_missing_raises_not_found(self, store):
        """Missing ids raise NotFoundError, which is also a LookupError."""
        with pytest.raises(NotFoundError, match="Conversion not found: nope"):
            store.conversions.get("nope")
        with pytest.raises(LookupError):
            store.conversions.get("nope")

    def test_update_replaces_fields(self, store):
        """Updates build a new record with the changed fields."""
        store.conversions.add(_conversion("c1"))
        updated = store.conversions.update("c1", person_id="p1")
        assert updated.person_id == "p1"
        assert store.conversions.get("c1").person_id == "p1"

    def test_update_cannot_change_id(self, store):
        """The id of a record is immutable."""
        store.conversions.add(_conversion("c1"))
        with pytest.raises(ValidationError, match="cannot be changed"):
            store.conversions.update("c1", id="c2")

    def test_update_with_invalid_value(self, store):
        """Record validation failures surface as ValidationError."""
        store.conversions.add(_conversion("c1"))
        with pytest.raises(ValidationError, match="Invalid update"):
            store.conversions.update("c1", value=Decimal("-5"))

    def test_delete(self, store):
        """Deleted records are gone."""
        store.conversions.add(_conversion("c1"))
        store.conversions.delete("c1")
        assert store.conversions.find("c1") is None
        with pytest.raises(NotFoundError):
            store.conversions.delete("c1")

    def test_list_filters_and_pages(self, store):
        """Lists filter by attribute equality and report has_more."""
        for i in range(5):
            store.conversions.add(_conversion(f"c{i}", visitor_id="v1" if i < 4 else "v2"))

        page = store.conversions.list({"visitor_id": "v1"}, offset=0, limit=3, order_by="id")
        assert page.total == 4
        assert [c.id for c in page.items] == ["c0", "c1", "c2"]
        assert page.has_more

        last = store.conversions.list({"visitor_id": "v1"}, offset=3, limit=3, order_by="id")
        assert [c.id for c in last.items] == ["c3"]
        assert not last.has_more

    def test_list_none_filter_is_ignored(self, store):
        """A None filter value matches every record."""
        store.conversions.add(_conversion("c1"))
        assert store.conversions.list({"person_id": None}).total == 1

    def test_list_descending(self, store):
        store.conversions.add(_conversion("a", value="1"))
        store.conversions.add(_conversion("b", value="3"))
        store.conversions.add(_conversion("c", value="2"))
        page = store.conversions.list(order_by="value", descending=True)
        assert [c.id for c in page.items] == ["b", "c", "a"]

    @pytest.mark.parametrize("limit", [0, 1001])
    def test_list_rejects_bad_limit(self, store, limit):
        """Page size is bounded to [1, 1000]."""
        with pytest.raises(ValidationError, match="limit"):
            store.conversions.list(limit=limit)

    def test_list_rejects_negative_offset(self, store):
        with pytest.raises(ValidationError, match="offset"):
            store.conversions.list(offset=-1)


class TestNaturalKeyUpserts:
    """Attribution per session and score per (person, type) are unique."""

    def test_attribution_upsert_keeps_id(self, store):
        """Re-resolving a session replaces the row but keeps its id."""
        first = CampaignAttribution(
            id="attr_1",
            session_id="s1",
            visitor_id="v1",
            resolution_method="unresolved",
            resolution_confidence=0.0,
            platform="direct",
            resolved_at=NOW,
        )
        store.upsert_attribution(first)
        second = CampaignAttribution(
            id="attr_2",
            session_id="s1",
            visitor_id="v1",
            resolution_method="manual",
            resolution_confidence=1.0,
            platform="google",
            resolved_at=NOW,
            campaign_id="camp_1",
        )
        saved = store.upsert_attribution(second)

        assert saved.id == "attr_1"
        assert len(store.attributions) == 1
        assert store.attribution_for_session("s1").campaign_id == "camp_1"

    def test_score_upsert(self, store):
        """Only one score row exists per person and score type."""
        for i, value in enumerate([10.0, 20.0]):
            store.upsert_score(
                CustomerScore(
                    id=f"score_{i}",
                    person_id="p1",
                    score_type=ScoreType.ENGAGEMENT,
                    score_value=value,
                    calculated_at=NOW,
                )
            )
        store.upsert_score(
            CustomerScore(
                id="score_x",
                person_id="p1",
                score_type=ScoreType.CLV,
                score_value=100.0,
                calculated_at=NOW,
            )
        )

        assert len(store.scores) == 2
        assert store.get_score("p1", ScoreType.ENGAGEMENT).score_value == 20.0
        assert store.get_score("p1", ScoreType.ENGAGEMENT).id == "score_0"
        assert set(store.scores_for("p1")) == {ScoreType.ENGAGEMENT, ScoreType.CLV}
        assert store.get_score("p2", ScoreType.CLV) is None


class TestGoalCounters:
    def test_increment_goal(self, store):
        """Each conversion adds one to the count and its value to the total."""
        store.goals.add(ConversionGoal(id="goal_1", name="Sales", goal_type="purchase"))
        store.increment_goal("goal_1", Decimal("99.50"), at=NOW)
        goal = store.increment_goal("goal_1", None, at=NOW)

        assert goal.current_count == 2
        assert goal.current_value == Decimal("99.50")
        assert goal.last_conversion_at == NOW

    def test_increment_missing_goal(self, store):
        with pytest.raises(NotFoundError):
            store.increment_goal("missing", Decimal("1"))


class TestSegmentMembership:
    def test_add_and_remove_members(self, store):
        """Membership is a set per segment."""
        store.add_member("seg_1", "p1", at=NOW)
        store.add_member("seg_1", "p1", at=NOW)
        store.add_member("seg_1", "p2", at=NOW)

        assert store.member_ids("seg_1") == {"p1", "p2"}
        assert store.remove_member("seg_1", "p1")
        assert not store.remove_member("seg_1", "p1")
        assert [m.person_id for m in store.members("seg_1")] == ["p2"]

    def test_delete_segment_drops_members(self, store):
        store.segments.add(CustomerSegment(id="seg_1", name="All", criteria=RuleSet()))
        store.add_member("seg_1", "p1", at=NOW)
        store.delete_segment("seg_1")

        assert store.member_ids("seg_1") == set()
        assert store.segments.find("seg_1") is None


class TestSnapshots:
    def test_dump_and_load(self, store):
        """A dumped store loads back into an empty store unchanged."""
        store.conversions.add(_conversion("c1"))
        store.goals.add(ConversionGoal(id="goal_1", name="Sales", goal_type="purchase"))
        store.segments.add(CustomerSegment(id="seg_1", name="All", criteria=RuleSet()))
        store.add_member("seg_1", "p1", at=NOW)

        payload = store.dump_snapshot()
        restored = AnalyticsStore()
        restored.load_snapshot(payload)

        assert restored.conversions.get("c1") == store.conversions.get("c1")
        assert restored.goals.get("goal_1") == store.goals.get("goal_1")
        assert restored.segments.get("seg_1") == store.segments.get("seg_1")
        assert restored.member_ids("seg_1") == {"p1"}
        assert restored.dump_snapshot() == payload

    def test_invalid_record_in_snapshot(self, store):
        """Malformed snapshot rows raise ValidationError."""
        with pytest.raises(ValidationError, match="Invalid Conversion"):
            store.load_snapshot({"conversions": [{"id": "c1"}]})


class TestRunBatch:
    """Failures are isolated per item."""

    def test_partial_failure(self):
        def operation(value):
            if value == 2:
                raise ValueError("bad item")
            return value * 10

        result = run_batch("test_job", [1, 2, 3], operation)

        assert result.processed == 3
        assert result.succeeded == 2
        assert result.failed == 1
        assert result.results == (10, 30)
        assert result.errors[0].item_id == "2"
        assert result.errors[0].error_type == "ValueError"
        assert result.is_partial_failure

    def test_all_succeed(self):
        result = run_batch("test_job", ["a"], str.upper, item_id=lambda s: f"id-{s}")
        assert result.results == ("A",)
        assert not result.is_partial_failure

    def test_empty_batch(self):
        result = run_batch("test_job", [], lambda item: item)
        assert (result.processed, result.succeeded, result.failed) == (0, 0, 0)
