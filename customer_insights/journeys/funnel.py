"""Stage funnel over journey events.

A person counts at every stage up to the furthest stage any of their
events reached, so counts never increase along the stage order.
``dropoff_rate`` is the fraction of the previous stage's people that did
not reach this stage; ``percentage`` is the share of all people in the
funnel (0-100).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

import pandas as pd

from customer_insights.foundation.mappings import STAGE_ORDER, JourneyStage
from customer_insights.foundation.records import CustomerJourneyEvent, window_bound


@dataclass(frozen=True)
class FunnelStage:
    stage: JourneyStage
    count: int
    percentage: float
    dropoff_rate: float


@dataclass(frozen=True)
class Dropoff:
    from_stage: JourneyStage
    to_stage: JourneyStage
    rate: float


@dataclass(frozen=True)
class FunnelSummary:
    total_customers: int
    awareness_to_conversion_rate: float
    biggest_dropoff: Optional[Dropoff]


@dataclass(frozen=True)
class FunnelReport:
    funnel: tuple[FunnelStage, ...]
    summary: FunnelSummary
    stage_events: dict[str, int]


def _events_frame(events: Iterable[CustomerJourneyEvent]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "person_id": e.person_id,
                "website_id": e.website_id,
                "occurred_at": e.occurred_at,
                "rank": e.stage.rank,
            }
            for e in events
        ],
        columns=["person_id", "website_id", "occurred_at", "rank"],
    )


def build_funnel(
    events: Iterable[CustomerJourneyEvent],
    website_id: Optional[str] = None,
    date_from: date | datetime | str | None = None,
    date_to: date | datetime | str | None = None,
) -> FunnelReport:
    """Aggregate journey events into a stage funnel.

    Parameters
    ----------
    events:
        Journey events to aggregate
    website_id:
        Keep only events for this website
    date_from, date_to:
        Inclusive bounds on ``occurred_at``; a plain date covers the whole day

    Returns
    -------
    FunnelReport
        One entry per stage in journey order, the summary and the raw
        event count per stage
    """
    frame = _events_frame(events)
    if website_id is not None:
        frame = frame[frame["website_id"] == website_id]
    start = window_bound(date_from, end=False)
    end = window_bound(date_to, end=True)
    if start is not None:
        frame = frame[frame["occurred_at"] >= start]
    if end is not None:
        frame = frame[frame["occurred_at"] <= end]

    event_counts = frame.groupby("rank").size()
    furthest = frame.groupby("person_id")["rank"].max()
    total = int(len(furthest))

    stages: list[FunnelStage] = []
    previous: Optional[int] = None
    for stage in STAGE_ORDER:
        count = int((furthest >= stage.rank).sum())
        if previous:
            dropoff = round((previous - count) / previous, 4)
        else:
            dropoff = 0.0
        stages.append(
            FunnelStage(
                stage=stage,
                count=count,
                percentage=round(count / total * 100, 2) if total else 0.0,
                dropoff_rate=dropoff,
            )
        )
        previous = count

    biggest: Optional[Dropoff] = None
    for before, after in zip(stages, stages[1:]):
        if after.dropoff_rate > 0 and (biggest is None or after.dropoff_rate > biggest.rate):
            biggest = Dropoff(from_stage=before.stage, to_stage=after.stage, rate=after.dropoff_rate)

    awareness = stages[0].count
    converted = next(s.count for s in stages if s.stage is JourneyStage.CONVERSION)
    return FunnelReport(
        funnel=tuple(stages),
        summary=FunnelSummary(
            total_customers=total,
            awareness_to_conversion_rate=round(converted / awareness, 4) if awareness else 0.0,
            biggest_dropoff=biggest,
        ),
        stage_events={
            stage.value: int(event_counts.get(stage.rank, 0)) for stage in STAGE_ORDER
        },
    )
