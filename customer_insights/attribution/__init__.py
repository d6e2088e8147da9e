"""Campaign attribution and conversion tracking."""

from .resolver import CampaignResolution, normalize_campaign_name, resolve_campaign
from .sessions import AttributionService, BulkResolveResult
from .tracker import ConversionTracker, TrackConversionInput, TrackResult

__all__ = [
    "AttributionService",
    "BulkResolveResult",
    "CampaignResolution",
    "ConversionTracker",
    "TrackConversionInput",
    "TrackResult",
    "normalize_campaign_name",
    "resolve_campaign",
]
