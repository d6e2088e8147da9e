"""Net Promoter Score classification and aggregation.

Ratings on a 5-point scale are doubled onto the 0-10 scale before
classification, so a 5 counts as a 10 and a 4 as an 8.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from customer_insights.foundation.records import round_half_up

NPSCategory = Literal["promoter", "passive", "detractor"]

SUPPORTED_SCALES = (5, 10)


@dataclass(frozen=True)
class NPSSummary:
    """Aggregate NPS over a set of ratings.

    Attributes
    ----------
    score:
        (promoters - detractors) / total * 100, rounded; 0 for no ratings
    promoters, passives, detractors:
        Counts per category
    total:
        Number of ratings
    """

    score: int
    promoters: int
    passives: int
    detractors: int
    total: int


def normalize_rating(rating: float, scale: int = 10) -> float:
    """Map a rating onto the 0-10 scale."""
    if scale not in SUPPORTED_SCALES:
        raise ValueError(f"NPS scale must be one of {SUPPORTED_SCALES}, got {scale}")
    if not 0 <= rating <= scale:
        raise ValueError(f"NPS rating must be between 0 and {scale}, got {rating}")
    return rating * (10 / scale)


def classify_nps(rating: float, scale: int = 10) -> NPSCategory:
    value = normalize_rating(rating, scale)
    if value >= 9:
        return "promoter"
    if value >= 7:
        return "passive"
    return "detractor"


def calculate_nps(ratings: Iterable[float]) -> NPSSummary:
    """NPS over ratings already on the 0-10 scale."""
    promoters = passives = detractors = 0
    for rating in ratings:
        category = classify_nps(rating)
        if category == "promoter":
            promoters += 1
        elif category == "passive":
            passives += 1
        else:
            detractors += 1
    return nps_from_counts(promoters, passives, detractors)


def nps_from_counts(promoters: int, passives: int, detractors: int) -> NPSSummary:
    """NPS from category counts; 0 when there are no responses."""
    total = promoters + passives + detractors
    if total == 0:
        return NPSSummary(score=0, promoters=0, passives=0, detractors=0, total=0)
    score = int(round_half_up((promoters - detractors) / total * 100))
    return NPSSummary(
        score=score,
        promoters=promoters,
        passives=passives,
        detractors=detractors,
        total=total,
    )
