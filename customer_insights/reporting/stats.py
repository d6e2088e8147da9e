"""Conversion, attribution and dashboard reports.

Every report takes the same filters: an optional website and an inclusive
date window, where a plain date covers the whole day. Conversions are
windowed on ``converted_at`` and attributions on ``resolved_at``.

Values are summed as stored, whatever their currency; ``by_currency``
keeps the per-currency split. Goal counters are running totals and are
not windowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Union

import pandas as pd

from customer_insights.foundation.records import (
    ABExperiment,
    CampaignAttribution,
    Conversion,
    ConversionGoal,
    ExperimentStatus,
    parse_date,
    utcnow,
    window_bound,
)

DASHBOARD_DAYS = 30
TOP_CAMPAIGNS = 5

Window = Union[date, datetime, str, None]


@dataclass(frozen=True)
class TypeStats:
    count: int
    value: float


@dataclass(frozen=True)
class ConversionTotals:
    """Headline conversion numbers.

    Attributes
    ----------
    total_value:
        Sum of the conversion values that were set
    average_value:
        Mean over the conversions that carry a value
    attributed_conversions:
        Conversions tied to a campaign
    by_type:
        Count and value per conversion type present in the window
    """

    total_conversions: int
    total_value: float
    average_value: float
    attributed_conversions: int
    by_type: dict[str, TypeStats]


@dataclass(frozen=True)
class DailyConversions:
    day: date
    conversions: int
    value: float


@dataclass(frozen=True)
class ConversionStats:
    totals: ConversionTotals
    by_platform: dict[str, int]
    by_currency: dict[str, float]
    daily: tuple[DailyConversions, ...]


@dataclass(frozen=True)
class AttributionTotals:
    total_sessions: int
    resolved_sessions: int
    unresolved_sessions: int
    resolution_rate: float
    average_confidence: float


@dataclass(frozen=True)
class CampaignStats:
    campaign_id: str
    campaign_name: Optional[str]
    sessions: int
    conversions: int
    conversion_value: float
    conversion_rate: float


@dataclass(frozen=True)
class AttributionStats:
    totals: AttributionTotals
    by_method: dict[str, int]
    by_platform: dict[str, int]
    by_campaign: tuple[CampaignStats, ...]


@dataclass(frozen=True)
class ReportPeriod:
    date_from: date
    date_to: date
    days: int


@dataclass(frozen=True)
class GoalProgress:
    goal_id: str
    name: str
    goal_type: str
    current_count: int
    current_value: float
    target_value: Optional[float]
    progress_percent: Optional[float]


@dataclass(frozen=True)
class DashboardOverview:
    period: ReportPeriod
    conversions: ConversionTotals
    attribution: AttributionTotals
    top_campaigns: tuple[CampaignStats, ...]
    goals: tuple[GoalProgress, ...]
    running_experiments: int


def _window(
    frame: pd.DataFrame,
    column: str,
    website_id: Optional[str],
    date_from: Window,
    date_to: Window,
) -> pd.DataFrame:
    start = window_bound(date_from, end=False)
    end = window_bound(date_to, end=True)
    if start is not None and end is not None and start > end:
        raise ValueError(f"date_from {start.date()} is after date_to {end.date()}")
    if website_id is not None:
        frame = frame[frame["website_id"] == website_id]
    if start is not None:
        frame = frame[frame[column] >= start]
    if end is not None:
        frame = frame[frame[column] <= end]
    return frame


def _conversions_frame(conversions: Iterable[Conversion]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "conversion_type": c.conversion_type.value,
                "platform": c.platform.value,
                "currency": c.currency,
                "website_id": c.website_id,
                "campaign_id": c.campaign_id,
                "converted_at": c.converted_at,
                "value": float(c.value) if c.value is not None else None,
            }
            for c in conversions
        ],
        columns=[
            "conversion_type",
            "platform",
            "currency",
            "website_id",
            "campaign_id",
            "converted_at",
            "value",
        ],
    )


def _attributions_frame(attributions: Iterable[CampaignAttribution]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "session_id": a.session_id,
                "website_id": a.website_id,
                "resolved_at": a.resolved_at,
                "resolved": a.is_resolved,
                "method": a.resolution_method.value,
                "platform": a.platform.value,
                "campaign_id": a.campaign_id,
                "confidence": a.resolution_confidence,
            }
            for a in attributions
        ],
        columns=[
            "session_id",
            "website_id",
            "resolved_at",
            "resolved",
            "method",
            "platform",
            "campaign_id",
            "confidence",
        ],
    )


def _money(value: float) -> float:
    return round(float(value), 2)


def _counts(series: pd.Series) -> dict[str, int]:
    return {str(key): int(count) for key, count in series.value_counts().sort_index().items()}


def _conversion_totals(frame: pd.DataFrame) -> ConversionTotals:
    values = pd.to_numeric(frame["value"], errors="coerce")
    valued = values.dropna()
    by_type = {
        str(kind): TypeStats(count=int(len(group)), value=_money(group.sum()))
        for kind, group in values.groupby(frame["conversion_type"])
    }
    return ConversionTotals(
        total_conversions=int(len(frame)),
        total_value=_money(valued.sum()),
        average_value=_money(valued.mean()) if len(valued) else 0.0,
        attributed_conversions=int(frame["campaign_id"].notna().sum()),
        by_type=dict(sorted(by_type.items())),
    )


def _attribution_totals(frame: pd.DataFrame) -> AttributionTotals:
    total = int(len(frame))
    resolved = frame[frame["resolved"].astype(bool)]
    return AttributionTotals(
        total_sessions=total,
        resolved_sessions=int(len(resolved)),
        unresolved_sessions=total - int(len(resolved)),
        resolution_rate=round(len(resolved) / total, 4) if total else 0.0,
        average_confidence=round(float(resolved["confidence"].mean()), 4) if len(resolved) else 0.0,
    )


def _campaign_stats(
    attributions: pd.DataFrame,
    conversions: pd.DataFrame,
    campaign_names: Mapping[str, str],
) -> tuple[CampaignStats, ...]:
    sessions = attributions.dropna(subset=["campaign_id"]).groupby("campaign_id").size()
    attributed = conversions.dropna(subset=["campaign_id"])
    values = pd.to_numeric(attributed["value"], errors="coerce")
    conversion_counts = attributed.groupby("campaign_id").size()
    conversion_values = values.groupby(attributed["campaign_id"]).sum()

    stats = []
    for campaign_id in set(sessions.index) | set(conversion_counts.index):
        session_count = int(sessions.get(campaign_id, 0))
        conversion_count = int(conversion_counts.get(campaign_id, 0))
        stats.append(
            CampaignStats(
                campaign_id=str(campaign_id),
                campaign_name=campaign_names.get(campaign_id),
                sessions=session_count,
                conversions=conversion_count,
                conversion_value=_money(conversion_values.get(campaign_id, 0.0)),
                conversion_rate=(
                    round(conversion_count / session_count, 4) if session_count else 0.0
                ),
            )
        )
    stats.sort(key=lambda s: (-s.sessions, -s.conversions, s.campaign_id))
    return tuple(stats)


def conversion_stats(
    conversions: Iterable[Conversion],
    website_id: Optional[str] = None,
    date_from: Window = None,
    date_to: Window = None,
) -> ConversionStats:
    """Aggregate conversions by type, platform, currency and day.

    Parameters
    ----------
    conversions:
        Conversions to aggregate
    website_id:
        Keep only conversions for this website
    date_from, date_to:
        Inclusive bounds on ``converted_at``

    Returns
    -------
    ConversionStats
        Totals with the per-type split, counts per platform, value per
        currency and one entry per day that had conversions

    Raises
    ------
    ValueError
        If a bound cannot be parsed or ``date_from`` is after ``date_to``
    """
    frame = _window(_conversions_frame(conversions), "converted_at", website_id, date_from, date_to)
    values = pd.to_numeric(frame["value"], errors="coerce")

    daily: list[DailyConversions] = []
    if not frame.empty:
        days = pd.to_datetime(frame["converted_at"], utc=True).dt.date
        for day, group in values.groupby(days):
            daily.append(
                DailyConversions(day=day, conversions=int(len(group)), value=_money(group.sum()))
            )

    return ConversionStats(
        totals=_conversion_totals(frame),
        by_platform=_counts(frame["platform"]),
        by_currency={
            str(currency): _money(total)
            for currency, total in values.groupby(frame["currency"]).sum().sort_index().items()
        },
        daily=tuple(daily),
    )


def attribution_stats(
    attributions: Iterable[CampaignAttribution],
    conversions: Iterable[Conversion] = (),
    campaign_names: Optional[Mapping[str, str]] = None,
    website_id: Optional[str] = None,
    date_from: Window = None,
    date_to: Window = None,
) -> AttributionStats:
    """Resolution rate and per-campaign performance over attributed sessions.

    Each attribution row stands for one processed session, resolved or not.
    Campaign conversions come from conversions carrying that campaign id in
    the same window.
    """
    attribution_frame = _window(
        _attributions_frame(attributions), "resolved_at", website_id, date_from, date_to
    )
    conversion_frame = _window(
        _conversions_frame(conversions), "converted_at", website_id, date_from, date_to
    )
    return AttributionStats(
        totals=_attribution_totals(attribution_frame),
        by_method=_counts(attribution_frame["method"]),
        by_platform=_counts(attribution_frame["platform"]),
        by_campaign=_campaign_stats(attribution_frame, conversion_frame, campaign_names or {}),
    )


def _goal_progress(goal: ConversionGoal) -> GoalProgress:
    target = float(goal.target_value) if goal.target_value is not None else None
    current = float(goal.current_value)
    return GoalProgress(
        goal_id=goal.id,
        name=goal.name,
        goal_type=goal.goal_type.value,
        current_count=goal.current_count,
        current_value=_money(current),
        target_value=target,
        progress_percent=round(current / target * 100, 2) if target else None,
    )


def dashboard_overview(
    conversions: Iterable[Conversion],
    attributions: Iterable[CampaignAttribution],
    goals: Iterable[ConversionGoal] = (),
    experiments: Iterable[ABExperiment] = (),
    campaign_names: Optional[Mapping[str, str]] = None,
    website_id: Optional[str] = None,
    date_from: Window = None,
    date_to: Window = None,
    today: Optional[date] = None,
) -> DashboardOverview:
    """Headline numbers for one website over a period.

    The period ends on ``date_to`` (default today, UTC) and starts on
    ``date_from`` (default 30 days including the end day). Goals shown are
    the active ones for the website plus the site-wide ones; without a
    website filter every active goal is shown.
    """
    end = parse_date(date_to) if date_to is not None else (today or utcnow().date())
    start = (
        parse_date(date_from)
        if date_from is not None
        else end - timedelta(days=DASHBOARD_DAYS - 1)
    )
    if start > end:
        raise ValueError(f"date_from {start} is after date_to {end}")

    conversion_frame = _window(
        _conversions_frame(conversions), "converted_at", website_id, start, end
    )
    attribution_frame = _window(
        _attributions_frame(attributions), "resolved_at", website_id, start, end
    )

    active_goals = [
        goal
        for goal in goals
        if goal.is_active and (website_id is None or goal.website_id in (None, website_id))
    ]
    return DashboardOverview(
        period=ReportPeriod(date_from=start, date_to=end, days=(end - start).days + 1),
        conversions=_conversion_totals(conversion_frame),
        attribution=_attribution_totals(attribution_frame),
        top_campaigns=_campaign_stats(
            attribution_frame, conversion_frame, campaign_names or {}
        )[:TOP_CAMPAIGNS],
        goals=tuple(_goal_progress(goal) for goal in sorted(active_goals, key=lambda g: g.name)),
        running_experiments=sum(
            1 for experiment in experiments if experiment.status is ExperimentStatus.RUNNING
        ),
    )
