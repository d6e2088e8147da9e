"""Segment membership reconciliation.

A build evaluates the segment's rule set against every customer snapshot
and applies the difference to the stored membership: people who now match
are added, people who no longer match are removed, everyone else is left
alone. Building twice over unchanged data therefore changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from customer_insights.exceptions import ValidationError
from customer_insights.foundation.batch import BatchResult, run_batch
from customer_insights.foundation.collaborators import PersonDirectory
from customer_insights.foundation.records import CustomerSegment, RuleSet, utcnow
from customer_insights.foundation.store import AnalyticsStore
from customer_insights.segments.rules import evaluate
from customer_insights.segments.snapshot import build_snapshot

logger = logging.getLogger(__name__)

PREVIEW_SAMPLE_SIZE = 10


@dataclass(frozen=True)
class SegmentBuildResult:
    """Outcome of one segment build.

    Attributes
    ----------
    segment_id:
        The segment that was rebuilt
    total_evaluated:
        Customers whose snapshot was evaluated
    matching_count:
        Customers matching the rule set (the new ``customer_count``)
    members_added, members_removed:
        Size of the membership diff that was applied
    skipped:
        Customers whose snapshot could not be built; their membership is
        left unchanged
    """

    segment_id: str
    total_evaluated: int
    matching_count: int
    members_added: int
    members_removed: int
    skipped: int = 0


@dataclass(frozen=True)
class SegmentPreview:
    total_evaluated: int
    matching_count: int
    sample_person_ids: tuple[str, ...] = ()


def parse_criteria(criteria: RuleSet | Mapping[str, Any]) -> RuleSet:
    if isinstance(criteria, RuleSet):
        return criteria
    try:
        return RuleSet.from_dict(criteria)
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid segment criteria: {exc}") from exc


class SegmentBuilder:
    """Evaluates segment criteria over the customer base."""

    def __init__(self, store: AnalyticsStore, people: PersonDirectory) -> None:
        self.store = store
        self.people = people

    def _matches(
        self, rule_set: RuleSet, as_of: datetime
    ) -> tuple[set[str], int, set[str]]:
        matching: set[str] = set()
        skipped: set[str] = set()
        evaluated = 0
        for person in self.people.list_people():
            try:
                snapshot = build_snapshot(person, self.store, as_of)
            except Exception as exc:
                logger.warning("Snapshot failed for person %s: %s", person.id, exc)
                skipped.add(person.id)
                continue
            evaluated += 1
            if evaluate(rule_set, snapshot):
                matching.add(person.id)
        return matching, evaluated, skipped

    def build_segment(
        self, segment_id: str, as_of: Optional[datetime] = None
    ) -> SegmentBuildResult:
        """Recompute and reconcile one segment's membership."""
        now = as_of or utcnow()
        segment = self.store.segments.get(segment_id)
        matching, evaluated, skipped = self._matches(segment.criteria, now)

        current = self.store.member_ids(segment_id)
        to_add = matching - current
        to_remove = current - matching - skipped
        for person_id in sorted(to_add):
            self.store.add_member(segment_id, person_id, now)
        for person_id in sorted(to_remove):
            self.store.remove_member(segment_id, person_id)

        self.store.segments.save(
            replace(
                segment,
                customer_count=len(self.store.member_ids(segment_id)),
                last_calculated_at=now,
            )
        )
        logger.info(
            "Built segment %s: evaluated=%d matching=%d added=%d removed=%d",
            segment_id,
            evaluated,
            len(matching),
            len(to_add),
            len(to_remove),
        )
        return SegmentBuildResult(
            segment_id=segment_id,
            total_evaluated=evaluated,
            matching_count=len(matching),
            members_added=len(to_add),
            members_removed=len(to_remove),
            skipped=len(skipped),
        )

    def rebuild_auto_segments(
        self, as_of: Optional[datetime] = None
    ) -> BatchResult[SegmentBuildResult]:
        """Rebuild every active ``auto_update`` segment, one failure at a time."""
        now = as_of or utcnow()
        segments: list[CustomerSegment] = self.store.segments.filter(
            lambda s: s.is_active and s.auto_update
        )
        return run_batch(
            "rebuild_segments",
            segments,
            lambda segment: self.build_segment(segment.id, now),
            item_id=lambda segment: segment.id,
        )

    def preview_segment(
        self,
        criteria: RuleSet | Mapping[str, Any],
        as_of: Optional[datetime] = None,
    ) -> SegmentPreview:
        """Count matching customers without touching any membership."""
        matching, evaluated, _ = self._matches(parse_criteria(criteria), as_of or utcnow())
        return SegmentPreview(
            total_evaluated=evaluated,
            matching_count=len(matching),
            sample_person_ids=tuple(sorted(matching)[:PREVIEW_SAMPLE_SIZE]),
        )
