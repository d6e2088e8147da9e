"""Foundational records, lookup tables and storage for the analytics core.

This package exposes the domain records, the collaborator contracts for
platform-owned data (sessions, campaigns, people), the in-process record
store and the per-item batch runner shared by the scheduled jobs.
"""

from .batch import BatchError, BatchResult, run_batch
from .collaborators import (
    Campaign,
    CampaignDirectory,
    InMemoryCampaignDirectory,
    InMemoryPersonDirectory,
    InMemorySessionStore,
    Person,
    PersonDirectory,
    Session,
    SessionStore,
)
from .mappings import (
    ConversionType,
    JourneyEventType,
    JourneyStage,
    Platform,
    STAGE_ORDER,
    classify_platform,
    journey_for_conversion,
    stage_for_event,
)
from .records import (
    ABExperiment,
    BudgetForecast,
    CampaignAttribution,
    ChurnDetails,
    ChurnFactor,
    CLVDetails,
    Conversion,
    ConversionGoal,
    CustomerJourneyEvent,
    CustomerScore,
    CustomerSegment,
    DailyForecast,
    EngagementDetails,
    ExperimentStatus,
    ExperimentVariant,
    Logic,
    NPSDetails,
    Operator,
    PrimaryMetric,
    ResolutionMethod,
    Rule,
    RuleSet,
    ScoreHistoryEntry,
    ScoreType,
    SegmentMember,
    SentimentLabel,
    SentimentRecord,
    SentimentSource,
)
from .store import AnalyticsStore, Page, Repository, new_id

__all__ = [
    "ABExperiment",
    "AnalyticsStore",
    "BatchError",
    "BatchResult",
    "BudgetForecast",
    "Campaign",
    "CampaignAttribution",
    "CampaignDirectory",
    "ChurnDetails",
    "ChurnFactor",
    "CLVDetails",
    "Conversion",
    "ConversionGoal",
    "ConversionType",
    "CustomerJourneyEvent",
    "CustomerScore",
    "CustomerSegment",
    "DailyForecast",
    "EngagementDetails",
    "ExperimentStatus",
    "ExperimentVariant",
    "InMemoryCampaignDirectory",
    "InMemoryPersonDirectory",
    "InMemorySessionStore",
    "JourneyEventType",
    "JourneyStage",
    "Logic",
    "NPSDetails",
    "Operator",
    "Page",
    "Person",
    "PersonDirectory",
    "Platform",
    "PrimaryMetric",
    "Repository",
    "ResolutionMethod",
    "Rule",
    "RuleSet",
    "STAGE_ORDER",
    "ScoreHistoryEntry",
    "ScoreType",
    "SegmentMember",
    "SentimentLabel",
    "SentimentRecord",
    "SentimentSource",
    "Session",
    "SessionStore",
    "classify_platform",
    "journey_for_conversion",
    "new_id",
    "run_batch",
    "stage_for_event",
]
