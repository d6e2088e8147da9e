"""Tests for UTM campaign resolution."""

import pytest

from customer_insights.attribution.resolver import (
    normalize_campaign_name,
    resolve_campaign,
)
from customer_insights.config import ResolverConfig
from customer_insights.foundation import Campaign, Platform, ResolutionMethod

CAMPAIGNS = [
    Campaign(id="camp_1", name="Summer Sale 2024", platform_campaign_id="fb_123"),
    Campaign(id="camp_2", name="Winter Clearance"),
]


class TestNormalizeCampaignName:
    def test_punctuation_collapses_to_spaces(self):
        assert normalize_campaign_name("Summer_Sale-2024!") == "summer sale 2024"

    def test_whitespace_runs(self):
        assert normalize_campaign_name("  Big   Deal  ") == "big deal"


class TestExactMatches:
    """Exact matches resolve with full confidence."""

    def test_platform_campaign_id_case_insensitive(self):
        result = resolve_campaign("facebook", "cpc", "FB_123", CAMPAIGNS)
        assert result.campaign_id == "camp_1"
        assert result.confidence == 1.0
        assert result.method is ResolutionMethod.EXACT_UTM_MATCH
        assert result.platform is Platform.META

    def test_campaign_id(self):
        result = resolve_campaign("google", "cpc", "camp_2", CAMPAIGNS)
        assert result.campaign_id == "camp_2"
        assert result.method is ResolutionMethod.EXACT_UTM_MATCH
        assert result.platform is Platform.GOOGLE

    def test_display_name(self):
        result = resolve_campaign("newsletter", "email", "  summer sale 2024 ", CAMPAIGNS)
        assert result.campaign_id == "camp_1"
        assert result.confidence == 1.0
        assert result.platform is Platform.GENERIC


class TestFuzzyMatches:
    """Normalized, containment and similarity matches score below 1."""

    def test_normalized_name(self):
        result = resolve_campaign("google", None, "summer_sale-2024", CAMPAIGNS)
        assert result.campaign_id == "camp_1"
        assert result.confidence == 0.9
        assert result.method is ResolutionMethod.FUZZY_NAME_MATCH

    def test_containment(self):
        result = resolve_campaign("google", None, "summer sale", CAMPAIGNS)
        assert result.campaign_id == "camp_1"
        assert result.confidence == 0.7

    def test_similarity(self):
        result = resolve_campaign("google", None, "wintr clearance", CAMPAIGNS)
        assert result.campaign_id == "camp_2"
        assert result.confidence == pytest.approx(0.7 * 30 / 31, abs=1e-4)

    def test_stricter_threshold_rejects_similarity(self):
        config = ResolverConfig(min_similarity=0.99)
        result = resolve_campaign("google", None, "wintr clearance", CAMPAIGNS, config)
        assert not result.is_resolved


class TestUnresolved:
    """No match is a legitimate outcome with zero confidence."""

    @pytest.mark.parametrize("term", [None, "", "   "])
    def test_missing_campaign_term(self, term):
        result = resolve_campaign("facebook", "cpc", term, CAMPAIGNS)
        assert result.campaign_id is None
        assert result.confidence == 0.0
        assert result.method is ResolutionMethod.UNRESOLVED
        assert result.platform is Platform.META

    def test_no_candidate_matches(self):
        result = resolve_campaign(None, None, "qqq", CAMPAIGNS)
        assert not result.is_resolved
        assert result.platform is Platform.DIRECT

    def test_empty_directory(self):
        assert not resolve_campaign("google", None, "summer sale", []).is_resolved
