"""Campaign resolution from UTM parameters.

Maps ``utm_campaign`` onto a known campaign with a confidence score:

1. Exact match on a platform campaign id or on the display name
   (case-insensitive, trimmed) resolves with confidence 1.0.
2. Otherwise names are normalised (lowercase, punctuation and whitespace
   collapsed to single spaces) and scored: equal normalised names,
   substring containment, then ``difflib`` edit similarity above a
   threshold. The best-scoring candidate wins; ties keep directory order.
3. Otherwise the touch is unresolved, which is a legitimate end state.

The resolver is a pure function over the candidate list it is given.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Optional, Sequence

from customer_insights.config import ResolverConfig
from customer_insights.foundation.collaborators import Campaign
from customer_insights.foundation.mappings import Platform, classify_platform
from customer_insights.foundation.records import ResolutionMethod

NORMALIZED_MATCH_CONFIDENCE = 0.9
MIN_CONTAINMENT_LENGTH = 3

_SEPARATORS = re.compile(r"[\W_]+", re.UNICODE)


@dataclass(frozen=True)
class CampaignResolution:
    campaign_id: Optional[str]
    confidence: float
    method: ResolutionMethod
    platform: Platform

    @property
    def is_resolved(self) -> bool:
        return self.method is not ResolutionMethod.UNRESOLVED


def normalize_campaign_name(value: str) -> str:
    """Lowercase and collapse punctuation/whitespace runs to single spaces."""
    return _SEPARATORS.sub(" ", value.lower()).strip()


def _fuzzy_score(term: str, candidate: str, config: ResolverConfig) -> float:
    if term == candidate:
        return NORMALIZED_MATCH_CONFIDENCE
    shorter, longer = sorted((term, candidate), key=len)
    if len(shorter) >= MIN_CONTAINMENT_LENGTH and shorter in longer:
        return config.fuzzy_confidence
    ratio = SequenceMatcher(None, term, candidate).ratio()
    if ratio >= config.min_similarity:
        return config.fuzzy_confidence * ratio
    return 0.0


def resolve_campaign(
    utm_source: Optional[str],
    utm_medium: Optional[str],
    utm_campaign: Optional[str],
    campaigns: Sequence[Campaign],
    config: ResolverConfig = ResolverConfig(),
) -> CampaignResolution:
    """Resolve UTM parameters to a campaign.

    Parameters
    ----------
    utm_source:
        Traffic source; only used to classify the platform
    utm_medium:
        Accepted for signature symmetry with the session record; not scored
    utm_campaign:
        Campaign term to match; empty means unresolved with confidence 0
    campaigns:
        Candidate campaigns from the campaign directory
    config:
        Similarity threshold and fuzzy confidence ceiling

    Returns
    -------
    CampaignResolution
        Campaign id (or None), confidence in [0, 1], method and platform
    """
    platform = classify_platform(utm_source)
    unresolved = CampaignResolution(
        campaign_id=None,
        confidence=0.0,
        method=ResolutionMethod.UNRESOLVED,
        platform=platform,
    )
    if not utm_campaign or not utm_campaign.strip():
        return unresolved

    term = utm_campaign.strip()
    lowered = term.lower()
    for campaign in campaigns:
        platform_id = (campaign.platform_campaign_id or "").strip()
        if (platform_id and platform_id.lower() == lowered) or campaign.id == term:
            return CampaignResolution(
                campaign.id, 1.0, ResolutionMethod.EXACT_UTM_MATCH, platform
            )
        if campaign.name.strip().lower() == lowered:
            return CampaignResolution(
                campaign.id, 1.0, ResolutionMethod.EXACT_UTM_MATCH, platform
            )

    normalized = normalize_campaign_name(term)
    if not normalized:
        return unresolved

    best: Optional[Campaign] = None
    best_score = 0.0
    for campaign in campaigns:
        candidate = normalize_campaign_name(campaign.name)
        if not candidate:
            continue
        score = _fuzzy_score(normalized, candidate, config)
        if score > best_score:
            best, best_score = campaign, score

    if best is None:
        return unresolved
    return CampaignResolution(
        campaign_id=best.id,
        confidence=round(best_score, 4),
        method=ResolutionMethod.FUZZY_NAME_MATCH,
        platform=platform,
    )
