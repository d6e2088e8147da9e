"""Session attribution: resolve, override and backfill.

Each analytics session carries at most one ``CampaignAttribution``;
resolving a session again updates that row in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from customer_insights.config import ResolverConfig
from customer_insights.exceptions import NotFoundError, ValidationError
from customer_insights.foundation.batch import BatchError, run_batch
from customer_insights.foundation.collaborators import (
    CampaignDirectory,
    Session,
    SessionStore,
)
from customer_insights.foundation.mappings import classify_platform
from customer_insights.foundation.records import (
    CampaignAttribution,
    ResolutionMethod,
    utcnow,
)
from customer_insights.foundation.store import AnalyticsStore, new_id
from customer_insights.attribution.resolver import (
    CampaignResolution,
    resolve_campaign,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BulkResolveResult:
    """Summary of an attribution backfill.

    Attributes
    ----------
    processed:
        Sessions attempted
    resolved:
        Sessions that matched a campaign
    unresolved:
        Sessions stored as unresolved (no candidate matched)
    failed:
        Sessions that raised; see ``errors``
    """

    processed: int
    resolved: int
    unresolved: int
    failed: int
    errors: tuple[BatchError, ...] = ()


class AttributionService:
    """Resolves sessions to campaigns and stores the attribution rows."""

    def __init__(
        self,
        store: AnalyticsStore,
        sessions: SessionStore,
        campaigns: CampaignDirectory,
        config: ResolverConfig = ResolverConfig(),
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.campaigns = campaigns
        self.config = config

    def _session(self, session_id: str) -> Session:
        session = self.sessions.get_session(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    def _store_resolution(
        self,
        session: Session,
        resolution: CampaignResolution,
        at: Optional[datetime],
        ad_set_id: Optional[str] = None,
        ad_id: Optional[str] = None,
    ) -> CampaignAttribution:
        attribution = CampaignAttribution(
            id=new_id("attr"),
            session_id=session.id,
            visitor_id=session.visitor_id,
            website_id=session.website_id,
            utm_source=session.utm_source,
            utm_medium=session.utm_medium,
            utm_campaign=session.utm_campaign,
            utm_term=session.utm_term,
            utm_content=session.utm_content,
            campaign_id=resolution.campaign_id,
            ad_set_id=ad_set_id,
            ad_id=ad_id,
            resolution_method=resolution.method,
            resolution_confidence=resolution.confidence,
            platform=resolution.platform,
            resolved_at=at or utcnow(),
        )
        return self.store.upsert_attribution(attribution)

    def resolve_session(
        self, session_id: str, at: Optional[datetime] = None, force: bool = False
    ) -> CampaignAttribution:
        """Resolve one session's UTM parameters and upsert its attribution.

        A manual attribution is kept unless ``force`` is set.
        """
        session = self._session(session_id)
        existing = self.store.attribution_for_session(session_id)
        if (
            existing is not None
            and existing.resolution_method is ResolutionMethod.MANUAL
            and not force
        ):
            logger.info("Keeping manual attribution for session %s", session_id)
            return existing

        resolution = resolve_campaign(
            session.utm_source,
            session.utm_medium,
            session.utm_campaign,
            self.campaigns.list_campaigns(),
            self.config,
        )
        logger.debug(
            "Resolved session %s: method=%s campaign=%s confidence=%.2f",
            session_id,
            resolution.method.value,
            resolution.campaign_id,
            resolution.confidence,
        )
        return self._store_resolution(session, resolution, at)

    def set_manual_attribution(
        self,
        session_id: str,
        campaign_id: str,
        at: Optional[datetime] = None,
        ad_set_id: Optional[str] = None,
        ad_id: Optional[str] = None,
    ) -> CampaignAttribution:
        """Pin a session to a campaign (and optionally an ad set and ad) with confidence 1.0."""
        session = self._session(session_id)
        if campaign_id not in {c.id for c in self.campaigns.list_campaigns()}:
            raise NotFoundError("Campaign", campaign_id)
        resolution = CampaignResolution(
            campaign_id=campaign_id,
            confidence=1.0,
            method=ResolutionMethod.MANUAL,
            platform=classify_platform(session.utm_source),
        )
        return self._store_resolution(session, resolution, at, ad_set_id, ad_id)

    def bulk_resolve(
        self,
        days_back: int = 7,
        limit: int = 1000,
        as_of: Optional[datetime] = None,
    ) -> BulkResolveResult:
        """Resolve recent sessions that carry a campaign term but no resolved attribution.

        Sessions are taken newest first, at most ``limit`` of them.
        """
        if days_back < 1:
            raise ValidationError(f"days_back must be at least 1, got {days_back}")
        if limit < 1:
            raise ValidationError(f"limit must be at least 1, got {limit}")

        now = as_of or utcnow()
        since = now - timedelta(days=days_back)

        def pending(session: Session) -> bool:
            if not session.utm_campaign or session.started_at < since:
                return False
            existing = self.store.attribution_for_session(session.id)
            return existing is None or not existing.is_resolved

        candidates = sorted(
            (s for s in self.sessions.list_sessions() if pending(s)),
            key=lambda s: s.started_at,
            reverse=True,
        )[:limit]

        batch = run_batch(
            "bulk_resolve_attributions",
            candidates,
            lambda s: self.resolve_session(s.id, at=now),
            item_id=lambda s: s.id,
        )
        resolved = sum(1 for a in batch.results if a.is_resolved)
        return BulkResolveResult(
            processed=batch.processed,
            resolved=resolved,
            unresolved=batch.succeeded - resolved,
            failed=batch.failed,
            errors=batch.errors,
        )
