"""One person's merged interaction timeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Mapping, Optional

from customer_insights.foundation.collaborators import Person, PersonDirectory
from customer_insights.foundation.mappings import (
    STAGE_ORDER,
    JourneyStage,
    journey_for_conversion,
)
from customer_insights.foundation.records import CustomerScore, ScoreType
from customer_insights.foundation.store import AnalyticsStore

EntryKind = Literal["journey", "conversion", "sentiment"]


@dataclass(frozen=True)
class TimelineEntry:
    timestamp: datetime
    kind: EntryKind
    stage: Optional[JourneyStage]
    description: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TimelineSummary:
    total_events: int
    stages_reached: tuple[JourneyStage, ...]
    current_stage: Optional[JourneyStage]
    first_interaction: Optional[datetime]
    latest_interaction: Optional[datetime]


@dataclass(frozen=True)
class JourneyTimeline:
    """Everything known about one person, oldest first.

    Attributes
    ----------
    person:
        Directory record, or None when the directory does not know the id
    timeline:
        Journey events, conversions and sentiment records merged by time
    summary:
        Counts and the furthest journey stage reached
    scores:
        Current score row per score type, None where never calculated
    """

    person_id: str
    person: Optional[Person]
    timeline: tuple[TimelineEntry, ...]
    summary: TimelineSummary
    scores: Mapping[str, Optional[CustomerScore]]


def _describe(event_type: str) -> str:
    return event_type.replace("_", " ").capitalize()


def journey_timeline(
    person_id: str, store: AnalyticsStore, people: PersonDirectory
) -> JourneyTimeline:
    """Merge a person's journey events, conversions and sentiments.

    An unknown person yields an empty timeline rather than an error.
    """
    entries: list[TimelineEntry] = []
    for event in store.journey_events.filter(lambda e: e.person_id == person_id):
        entries.append(
            TimelineEntry(
                timestamp=event.occurred_at,
                kind="journey",
                stage=event.stage,
                description=_describe(event.event_type.value),
                data={"id": event.id, "channel": event.channel, **event.event_data},
            )
        )
    for conversion in store.conversions.filter(lambda c: c.person_id == person_id):
        stage, _ = journey_for_conversion(conversion.conversion_type)
        value = f" ({conversion.value} {conversion.currency})" if conversion.value else ""
        entries.append(
            TimelineEntry(
                timestamp=conversion.converted_at,
                kind="conversion",
                stage=stage,
                description=f"{_describe(conversion.conversion_type.value)}{value}",
                data={
                    "id": conversion.id,
                    "value": float(conversion.value) if conversion.value is not None else None,
                    "platform": conversion.platform.value,
                    "campaign_id": conversion.campaign_id,
                },
            )
        )
    for sentiment in store.sentiments.filter(lambda s: s.person_id == person_id):
        entries.append(
            TimelineEntry(
                timestamp=sentiment.analyzed_at,
                kind="sentiment",
                stage=JourneyStage.RETENTION,
                description=f"{sentiment.sentiment_label.value.replace('_', ' ')} "
                f"{sentiment.source_type.value.replace('_', ' ')}",
                data={
                    "id": sentiment.id,
                    "score": sentiment.sentiment_score,
                    "text": sentiment.text,
                },
            )
        )
    entries.sort(key=lambda e: e.timestamp)

    reached = {e.stage for e in entries if e.stage is not None}
    stages = tuple(s for s in STAGE_ORDER if s in reached)
    summary = TimelineSummary(
        total_events=len(entries),
        stages_reached=stages,
        current_stage=stages[-1] if stages else None,
        first_interaction=entries[0].timestamp if entries else None,
        latest_interaction=entries[-1].timestamp if entries else None,
    )
    scores = store.scores_for(person_id)
    return JourneyTimeline(
        person_id=person_id,
        person=people.get_person(person_id),
        timeline=tuple(entries),
        summary=summary,
        scores={kind.value: scores.get(kind) for kind in ScoreType},
    )
