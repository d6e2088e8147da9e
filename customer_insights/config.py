"""Configuration objects for the customer insights calculators.

Every calculator takes its policy constants from one of the frozen
dataclasses below so that thresholds can be tuned per deployment without
touching the scoring code. ``InsightsConfig.from_env`` builds the aggregate
from environment variables for the CLI and the MCP server.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_ACTIVITY_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "page_view": 1.0,
        "session": 5.0,
        "product_view": 3.0,
        "add_to_cart": 10.0,
        "begin_checkout": 15.0,
        "purchase": 25.0,
        "form_submit": 15.0,
        "feedback": 20.0,
        "social_share": 8.0,
        "email_open": 2.0,
        "email_click": 5.0,
    }
)


@dataclass(frozen=True)
class ResolverConfig:
    """Campaign resolver thresholds.

    Attributes
    ----------
    min_similarity:
        Minimum ``difflib`` ratio (0-1) for an edit-distance fuzzy match
    fuzzy_confidence:
        Confidence assigned to a substring match; edit-distance matches are
        scaled by their ratio below this ceiling
    """

    min_similarity: float = 0.6
    fuzzy_confidence: float = 0.7

    def __post_init__(self) -> None:
        if not 0 < self.min_similarity <= 1:
            raise ValueError(
                f"min_similarity must be in (0, 1], got {self.min_similarity}"
            )
        if not 0 < self.fuzzy_confidence < 1:
            raise ValueError(
                f"fuzzy_confidence must be in (0, 1), got {self.fuzzy_confidence}"
            )


@dataclass(frozen=True)
class EngagementConfig:
    """Engagement scoring weights and recency decay.

    Attributes
    ----------
    activity_weights:
        Points per activity type; unknown types score ``default_weight``
    default_weight:
        Points for activity types missing from ``activity_weights``
    recent_days:
        Activities younger than this keep full weight
    decay_days:
        Activities younger than this (but older than ``recent_days``) keep
        ``mid_decay`` of their weight; older ones keep ``old_decay``
    purchase_value_weight:
        Multiplier for the ``log10(value + 1)`` bonus on valued purchases
    normalizer:
        Raw points per score point; the score is capped at 100
    """

    activity_weights: Mapping[str, float] = field(
        default_factory=lambda: DEFAULT_ACTIVITY_WEIGHTS
    )
    default_weight: float = 1.0
    recent_days: int = 30
    decay_days: int = 90
    mid_decay: float = 0.5
    old_decay: float = 0.25
    purchase_value_weight: float = 2.0
    normalizer: float = 5.0

    def __post_init__(self) -> None:
        if self.recent_days >= self.decay_days:
            raise ValueError(
                f"recent_days ({self.recent_days}) must be less than decay_days ({self.decay_days})"
            )
        if self.normalizer <= 0:
            raise ValueError(f"normalizer must be positive, got {self.normalizer}")


@dataclass(frozen=True)
class CLVConfig:
    """Lifetime value projection policy.

    Attributes
    ----------
    baseline_lifespan_months:
        Projection horizon for customers who are neither recent nor lapsed
    active_lifespan_months:
        Horizon when the last purchase is within ``active_window_days``
    dormant_lifespan_months:
        Floor horizon when the last purchase is older than ``dormant_gap_days``
    platinum_threshold, gold_threshold, silver_threshold:
        Predicted CLV cut-offs for the value tiers
    """

    baseline_lifespan_months: int = 24
    active_lifespan_months: int = 36
    dormant_lifespan_months: int = 6
    active_window_days: int = 90
    dormant_gap_days: int = 180
    platinum_threshold: float = 50_000.0
    gold_threshold: float = 20_000.0
    silver_threshold: float = 5_000.0

    def __post_init__(self) -> None:
        if not (
            self.platinum_threshold > self.gold_threshold > self.silver_threshold > 0
        ):
            raise ValueError(
                "Tier thresholds must satisfy platinum > gold > silver > 0 "
                f"(got {self.platinum_threshold}, {self.gold_threshold}, {self.silver_threshold})"
            )
        if self.active_window_days >= self.dormant_gap_days:
            raise ValueError(
                f"active_window_days ({self.active_window_days}) must be less than "
                f"dormant_gap_days ({self.dormant_gap_days})"
            )


@dataclass(frozen=True)
class ChurnConfig:
    """Churn risk factor weights and thresholds.

    Day-count factors contribute ``weight * min(1, days / saturation_days)``.
    A factor whose signal is past its threshold also produces a
    recommendation.
    """

    activity_weight: float = 0.30
    activity_threshold_days: int = 30
    activity_saturation_days: int = 90
    purchase_weight: float = 0.25
    purchase_threshold_days: int = 60
    purchase_saturation_days: int = 180
    engagement_decline_weight: float = 0.20
    engagement_decline_threshold: float = 20.0
    sentiment_weight: float = 0.15
    sentiment_window_days: int = 30
    sentiment_threshold: float = 0.3
    support_weight: float = 0.10
    support_ticket_threshold: int = 3
    loyal_purchase_count: int = 5
    loyal_adjustment: float = -0.05
    never_purchased_adjustment: float = 0.10
    no_history_days: int = 365

    def __post_init__(self) -> None:
        if self.activity_weight < self.purchase_weight:
            raise ValueError("Recency of activity must carry the largest churn weight")


@dataclass(frozen=True)
class InsightsConfig:
    """Aggregate configuration for the analytics core."""

    default_currency: str = "INR"
    score_history_limit: int = 12
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    engagement: EngagementConfig = field(default_factory=EngagementConfig)
    clv: CLVConfig = field(default_factory=CLVConfig)
    churn: ChurnConfig = field(default_factory=ChurnConfig)

    def __post_init__(self) -> None:
        if self.score_history_limit < 1:
            raise ValueError(
                f"score_history_limit must be at least 1, got {self.score_history_limit}"
            )
        if len(self.default_currency) != 3:
            raise ValueError(
                f"default_currency must be an ISO 4217 code, got {self.default_currency!r}"
            )

    @classmethod
    def from_env(cls) -> "InsightsConfig":
        """Build a configuration from ``INSIGHTS_*`` environment variables."""
        return cls(
            default_currency=os.getenv("INSIGHTS_DEFAULT_CURRENCY", "INR").upper(),
            score_history_limit=int(os.getenv("INSIGHTS_SCORE_HISTORY_LIMIT", "12")),
            resolver=ResolverConfig(
                min_similarity=float(
                    os.getenv("INSIGHTS_FUZZY_MIN_SIMILARITY", "0.6")
                )
            ),
        )
