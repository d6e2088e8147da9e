"""In-process record store for the analytics core.

One ``Repository`` per entity holds records by id. ``AnalyticsStore`` adds
the natural-key upserts (attribution by session, score by person and score
type, segment membership by segment and person) and the atomic goal counter
update. All access goes through one re-entrant lock shared by the
repositories, so the store is safe to share across request threads.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from customer_insights.exceptions import NotFoundError, ValidationError
from customer_insights.foundation.records import (
    ABExperiment,
    BudgetForecast,
    CampaignAttribution,
    Conversion,
    ConversionGoal,
    CustomerJourneyEvent,
    CustomerScore,
    CustomerSegment,
    ScoreType,
    SegmentMember,
    SentimentRecord,
    to_jsonable,
    to_money,
    utcnow,
)

T = TypeVar("T")

MAX_PAGE_SIZE = 1000


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a list operation plus the total number of matches."""

    items: tuple[T, ...]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


def _sort_key(attribute: str) -> Callable[[Any], tuple]:
    def key(record: Any) -> tuple:
        value = getattr(record, attribute, None)
        # None sorts after every real value
        return (value is None, value if value is not None else 0)

    return key


def _matches(record: Any, filters: Mapping[str, Any]) -> bool:
    for name, expected in filters.items():
        if expected is None:
            continue
        if getattr(record, name, None) != expected:
            return False
    return True


class Repository(Generic[T]):
    """Id-keyed record collection guarded by the store lock."""

    def __init__(self, entity: str, lock: threading.RLock) -> None:
        self.entity = entity
        self._lock = lock
        self._rows: dict[str, T] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def add(self, record: T) -> T:
        record_id = getattr(record, "id")
        with self._lock:
            if record_id in self._rows:
                raise ValidationError(f"{self.entity} already exists: {record_id}")
            self._rows[record_id] = record
        return record

    def save(self, record: T) -> T:
        with self._lock:
            self._rows[getattr(record, "id")] = record
        return record

    def find(self, record_id: str) -> Optional[T]:
        with self._lock:
            return self._rows.get(record_id)

    def get(self, record_id: str) -> T:
        record = self.find(record_id)
        if record is None:
            raise NotFoundError(self.entity, record_id)
        return record

    def update(self, record_id: str, **changes: Any) -> T:
        if "id" in changes and changes["id"] != record_id:
            raise ValidationError(f"{self.entity} id cannot be changed")
        with self._lock:
            current = self.get(record_id)
            try:
                updated = replace(current, **changes)
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    f"Invalid update for {self.entity} {record_id}: {exc}"
                ) from exc
            self._rows[record_id] = updated
            return updated

    def delete(self, record_id: str) -> T:
        with self._lock:
            record = self.get(record_id)
            del self._rows[record_id]
            return record

    def all(self) -> list[T]:
        with self._lock:
            return list(self._rows.values())

    def filter(self, predicate: Callable[[T], bool]) -> list[T]:
        return [record for record in self.all() if predicate(record)]

    def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: int = 50,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Page[T]:
        """Return one page of records matching attribute-equality ``filters``."""
        if offset < 0:
            raise ValidationError(f"offset must be >= 0, got {offset}")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be in [1, {MAX_PAGE_SIZE}], got {limit}")

        rows = [r for r in self.all() if _matches(r, filters or {})]
        if order_by is not None:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        return Page(
            items=tuple(rows[offset : offset + limit]),
            total=len(rows),
            offset=offset,
            limit=limit,
        )


class AnalyticsStore:
    """Owner of every analytics entity."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.conversions: Repository[Conversion] = Repository("Conversion", self._lock)
        self.attributions: Repository[CampaignAttribution] = Repository(
            "CampaignAttribution", self._lock
        )
        self.goals: Repository[ConversionGoal] = Repository("ConversionGoal", self._lock)
        self.journey_events: Repository[CustomerJourneyEvent] = Repository(
            "CustomerJourneyEvent", self._lock
        )
        self.sentiments: Repository[SentimentRecord] = Repository(
            "SentimentRecord", self._lock
        )
        self.scores: Repository[CustomerScore] = Repository("CustomerScore", self._lock)
        self.segments: Repository[CustomerSegment] = Repository(
            "CustomerSegment", self._lock
        )
        self.experiments: Repository[ABExperiment] = Repository(
            "ABExperiment", self._lock
        )
        self.forecasts: Repository[BudgetForecast] = Repository(
            "BudgetForecast", self._lock
        )
        self._members: dict[str, dict[str, SegmentMember]] = {}

    # -- attribution -------------------------------------------------------

    def attribution_for_session(self, session_id: str) -> Optional[CampaignAttribution]:
        matches = self.attributions.filter(lambda a: a.session_id == session_id)
        return matches[0] if matches else None

    def upsert_attribution(self, attribution: CampaignAttribution) -> CampaignAttribution:
        """Insert or replace the attribution for ``attribution.session_id``."""
        with self._lock:
            existing = self.attribution_for_session(attribution.session_id)
            if existing is not None:
                attribution = replace(attribution, id=existing.id)
            return self.attributions.save(attribution)

    # -- scores ------------------------------------------------------------

    def get_score(
        self, person_id: str, score_type: ScoreType
    ) -> Optional[CustomerScore]:
        matches = self.scores.filter(
            lambda s: s.person_id == person_id and s.score_type == score_type
        )
        return matches[0] if matches else None

    def scores_for(self, person_id: str) -> dict[ScoreType, CustomerScore]:
        return {s.score_type: s for s in self.scores.filter(lambda s: s.person_id == person_id)}

    def upsert_score(self, score: CustomerScore) -> CustomerScore:
        """Insert or replace the score row for ``(person_id, score_type)``."""
        with self._lock:
            existing = self.get_score(score.person_id, score.score_type)
            if existing is not None:
                score = replace(score, id=existing.id)
            return self.scores.save(score)

    # -- goals -------------------------------------------------------------

    def increment_goal(
        self, goal_id: str, value: Optional[Decimal], at: Optional[datetime] = None
    ) -> ConversionGoal:
        """Add one conversion (and its value) to a goal's running counters."""
        with self._lock:
            goal = self.goals.get(goal_id)
            updated = replace(
                goal,
                current_count=goal.current_count + 1,
                current_value=goal.current_value + (to_money(value) or Decimal("0")),
                last_conversion_at=at or utcnow(),
            )
            return self.goals.save(updated)

    # -- segment membership ------------------------------------------------

    def member_ids(self, segment_id: str) -> set[str]:
        with self._lock:
            return set(self._members.get(segment_id, {}))

    def members(self, segment_id: str) -> list[SegmentMember]:
        with self._lock:
            return list(self._members.get(segment_id, {}).values())

    def add_member(
        self, segment_id: str, person_id: str, at: Optional[datetime] = None
    ) -> SegmentMember:
        with self._lock:
            segment_members = self._members.setdefault(segment_id, {})
            if person_id not in segment_members:
                segment_members[person_id] = SegmentMember(
                    segment_id=segment_id, person_id=person_id, added_at=at or utcnow()
                )
            return segment_members[person_id]

    def remove_member(self, segment_id: str, person_id: str) -> bool:
        with self._lock:
            return self._members.get(segment_id, {}).pop(person_id, None) is not None

    def delete_segment(self, segment_id: str) -> CustomerSegment:
        with self._lock:
            segment = self.segments.delete(segment_id)
            self._members.pop(segment_id, None)
            return segment

    # -- snapshots ---------------------------------------------------------

    _SNAPSHOT_LOADERS: dict[str, tuple[str, Callable[[Mapping[str, Any]], Any]]] = {
        "conversions": ("conversions", Conversion.from_dict),
        "attributions": ("attributions", CampaignAttribution.from_dict),
        "goals": ("goals", ConversionGoal.from_dict),
        "journey_events": ("journey_events", CustomerJourneyEvent.from_dict),
        "sentiments": ("sentiments", SentimentRecord.from_dict),
        "segments": ("segments", CustomerSegment.from_dict),
        "experiments": ("experiments", ABExperiment.from_dict),
        "forecasts": ("forecasts", BudgetForecast.from_dict),
        "scores": ("scores", CustomerScore.from_dict),
    }

    def load_snapshot(self, payload: Mapping[str, Iterable[Mapping[str, Any]]]) -> None:
        """Load raw records keyed by collection name (unknown keys ignored)."""
        with self._lock:
            for key, (attribute, loader) in self._SNAPSHOT_LOADERS.items():
                repository: Repository[Any] = getattr(self, attribute)
                for item in payload.get(key, ()):
                    try:
                        repository.save(loader(item))
                    except (KeyError, TypeError, ValueError) as exc:
                        raise ValidationError(
                            f"Invalid {repository.entity} in snapshot: {exc}"
                        ) from exc
            for item in payload.get("segment_members", ()):
                try:
                    member = SegmentMember.from_dict(item)
                except (KeyError, TypeError, ValueError) as exc:
                    raise ValidationError(f"Invalid SegmentMember in snapshot: {exc}") from exc
                self._members.setdefault(member.segment_id, {})[member.person_id] = member

    def dump_snapshot(self) -> dict[str, list[Any]]:
        with self._lock:
            payload = {
                key: [to_jsonable(r) for r in getattr(self, attribute).all()]
                for key, (attribute, _) in self._SNAPSHOT_LOADERS.items()
            }
            payload["segment_members"] = [
                to_jsonable(m)
                for members in self._members.values()
                for m in members.values()
            ]
            return payload
