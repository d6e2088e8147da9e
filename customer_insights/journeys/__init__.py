"""Customer journey timelines and stage funnels."""

from .funnel import Dropoff, FunnelReport, FunnelStage, FunnelSummary, build_funnel
from .timeline import JourneyTimeline, TimelineEntry, TimelineSummary, journey_timeline

__all__ = [
    "Dropoff",
    "FunnelReport",
    "FunnelStage",
    "FunnelSummary",
    "JourneyTimeline",
    "TimelineEntry",
    "TimelineSummary",
    "build_funnel",
    "journey_timeline",
]
