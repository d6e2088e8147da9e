"""Tests for snapshots and segment membership reconciliation."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from customer_insights.exceptions import NotFoundError, ValidationError
from customer_insights.foundation import (
    AnalyticsStore,
    Conversion,
    CustomerScore,
    CustomerSegment,
    EngagementDetails,
    InMemoryPersonDirectory,
    Person,
    RuleSet,
    ScoreType,
)
from customer_insights.segments import (
    SNAPSHOT_FIELDS,
    SegmentBuilder,
    build_snapshot,
    parse_criteria,
)

AS_OF = datetime(2024, 6, 30, tzinfo=timezone.utc)


def _person(person_id, **fields):
    return Person(id=person_id, created_at=datetime(2024, 1, 1, tzinfo=timezone.utc), **fields)


def _purchase(store, conversion_id, person_id, value, days_ago):
    store.conversions.add(
        Conversion(
            id=conversion_id,
            conversion_type="purchase",
            visitor_id="v",
            person_id=person_id,
            converted_at=AS_OF - timedelta(days=days_ago),
            value=Decimal(str(value)),
        )
    )


@pytest.fixture
def store():
    store = AnalyticsStore()
    _purchase(store, "c1", "p1", 1500, days_ago=10)
    _purchase(store, "c2", "p1", 500, days_ago=40)
    _purchase(store, "c3", "p2", 50, days_ago=5)
    store.segments.add(
        CustomerSegment(
            id="seg_big",
            name="Big spenders",
            criteria={"rules": [{"field": "total_revenue", "operator": ">=", "value": 1000}]},
        )
    )
    return store


@pytest.fixture
def people():
    return InMemoryPersonDirectory(
        [
            _person("p1", email="a@example.com", tags=("vip",), metadata={"city": "Pune"}),
            _person("p2"),
            _person("p3"),
        ]
    )


@pytest.fixture
def builder(store, people):
    return SegmentBuilder(store, people)


class TestSnapshot:
    def test_derived_fields(self, store, people):
        store.upsert_score(
            CustomerScore(
                id="s1",
                person_id="p1",
                score_type=ScoreType.ENGAGEMENT,
                score_value=55.0,
                calculated_at=AS_OF,
                details=EngagementDetails(level="medium", raw_points=275.0, total_activities=9),
            )
        )
        snapshot = build_snapshot(people.get_person("p1"), store, AS_OF)

        assert set(SNAPSHOT_FIELDS) <= set(snapshot)
        assert snapshot["total_purchases"] == 2
        assert snapshot["total_revenue"] == 2000.0
        assert snapshot["days_since_last_purchase"] == 10
        assert snapshot["engagement_score"] == 55.0
        assert snapshot["clv_score"] is None
        assert snapshot["tags"] == ["vip"]
        assert snapshot["metadata.city"] == "Pune"

    def test_person_without_history(self, store, people):
        snapshot = build_snapshot(people.get_person("p3"), store, AS_OF)
        assert snapshot["total_purchases"] == 0
        assert snapshot["last_purchase_date"] is None
        assert snapshot["days_since_last_purchase"] is None


class TestBuildSegment:
    def test_initial_build(self, builder, store):
        result = builder.build_segment("seg_big", as_of=AS_OF)

        assert result.total_evaluated == 3
        assert result.matching_count == 1
        assert result.members_added == 1
        assert result.members_removed == 0
        assert store.member_ids("seg_big") == {"p1"}
        segment = store.segments.get("seg_big")
        assert segment.customer_count == 1
        assert segment.last_calculated_at == AS_OF

    def test_rebuild_is_idempotent(self, builder):
        builder.build_segment("seg_big", as_of=AS_OF)
        again = builder.build_segment("seg_big", as_of=AS_OF)
        assert again.members_added == 0
        assert again.members_removed == 0

    def test_membership_diff(self, builder, store):
        """New matches are added and lapsed members removed."""
        store.add_member("seg_big", "p3", AS_OF)
        _purchase(store, "c4", "p2", 2000, days_ago=1)

        result = builder.build_segment("seg_big", as_of=AS_OF)

        assert result.members_added == 2
        assert result.members_removed == 1
        assert store.member_ids("seg_big") == {"p1", "p2"}

    def test_failed_snapshot_keeps_membership(self, builder, store, monkeypatch):
        store.add_member("seg_big", "p3", AS_OF)
        original = build_snapshot

        def flaky(person, store, as_of=None, conversions=None):
            if person.id == "p3":
                raise RuntimeError("directory timeout")
            return original(person, store, as_of, conversions)

        monkeypatch.setattr("customer_insights.segments.builder.build_snapshot", flaky)
        result = builder.build_segment("seg_big", as_of=AS_OF)

        assert result.skipped == 1
        assert result.total_evaluated == 2
        assert result.members_removed == 0
        assert "p3" in store.member_ids("seg_big")

    def test_unknown_segment(self, builder):
        with pytest.raises(NotFoundError):
            builder.build_segment("seg_missing")


class TestRebuildAutoSegments:
    def test_only_active_auto_segments(self, builder, store):
        store.segments.add(
            CustomerSegment(id="seg_manual", name="Manual", criteria=RuleSet(), auto_update=False)
        )
        store.segments.add(
            CustomerSegment(id="seg_off", name="Off", criteria=RuleSet(), is_active=False)
        )
        store.segments.add(CustomerSegment(id="seg_all", name="Everyone", criteria=RuleSet()))

        result = builder.rebuild_auto_segments(as_of=AS_OF)

        assert result.processed == 2
        assert {r.segment_id for r in result.results} == {"seg_big", "seg_all"}
        assert store.member_ids("seg_all") == {"p1", "p2", "p3"}
        assert store.member_ids("seg_manual") == set()


class TestPreview:
    def test_preview_does_not_write(self, builder, store):
        preview = builder.preview_segment(
            {
                "logic": "OR",
                "rules": [
                    {"field": "total_purchases", "operator": ">=", "value": 1},
                    {"field": "tags", "operator": "contains", "value": "vip"},
                ],
            },
            as_of=AS_OF,
        )
        assert preview.total_evaluated == 3
        assert preview.matching_count == 2
        assert preview.sample_person_ids == ("p1", "p2")
        assert store.member_ids("seg_big") == set()

    def test_invalid_criteria(self, builder):
        with pytest.raises(ValidationError, match="Invalid segment criteria"):
            builder.preview_segment({"rules": [{"field": "x", "operator": "between", "value": 1}]})

    def test_parse_criteria_passthrough(self):
        rule_set = RuleSet()
        assert parse_criteria(rule_set) is rule_set

    def test_unknown_operator(self):
        with pytest.raises(ValidationError):
            parse_criteria({"rules": [{"field": "x", "operator": "~=", "value": 1}]})
