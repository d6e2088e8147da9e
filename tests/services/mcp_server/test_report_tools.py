"""Tests for the reporting MCP tools."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from analytics.services.mcp_server.state import get_core, get_shared_state
from analytics.services.mcp_server.tools.reports import (
    ReportRequest,
    _get_attribution_stats_impl as get_attribution_stats,
    _get_conversion_stats_impl as get_conversion_stats,
    _get_dashboard_overview_impl as get_dashboard_overview,
)
from customer_insights.exceptions import ValidationError
from customer_insights.foundation import Campaign, CampaignAttribution


def create_mock_context():
    """Create a mock FastMCP Context for testing."""
    ctx = AsyncMock()
    ctx.info = AsyncMock()
    ctx.warning = AsyncMock()
    ctx.report_progress = AsyncMock()
    return ctx


@pytest.fixture(autouse=True)
def clear_shared_state():
    get_shared_state()._store.clear()
    yield
    get_shared_state()._store.clear()


@pytest.fixture
def core():
    core = get_core()
    now = datetime.now(timezone.utc)
    core.campaigns.add(Campaign(id="camp_1", name="Summer Sale"))
    core.store.upsert_attribution(
        CampaignAttribution(
            id="attr_1",
            session_id="s1",
            visitor_id="v1",
            resolution_method="exact_utm_match",
            resolution_confidence=1.0,
            platform="google",
            resolved_at=now - timedelta(days=2),
            campaign_id="camp_1",
            website_id="w1",
            utm_source="google",
        )
    )
    core.store.upsert_attribution(
        CampaignAttribution(
            id="attr_2",
            session_id="s2",
            visitor_id="v2",
            resolution_method="unresolved",
            resolution_confidence=0.0,
            platform="direct",
            resolved_at=now - timedelta(days=1),
            website_id="w1",
        )
    )
    core.track_conversion(
        {
            "conversion_type": "purchase",
            "session_id": "s1",
            "website_id": "w1",
            "conversion_value": 120,
            "converted_at": now - timedelta(days=1),
        }
    )
    core.track_conversion(
        {
            "conversion_type": "add_to_cart",
            "website_id": "w1",
            "converted_at": now - timedelta(hours=3),
        }
    )
    return core


@pytest.mark.asyncio
async def test_conversion_stats(core):
    response = await get_conversion_stats(ReportRequest(website_id="w1"), create_mock_context())

    assert response.totals["total_conversions"] == 2
    assert response.totals["total_value"] == 120.0
    assert response.totals["attributed_conversions"] == 1
    assert response.totals["by_type"]["purchase"] == {"count": 1, "value": 120.0}
    assert response.by_platform == {"direct": 1, "google": 1}
    assert response.by_currency == {"INR": 120.0}


@pytest.mark.asyncio
async def test_conversion_stats_warns_on_mixed_currencies(core):
    core.track_conversion(
        {"conversion_type": "purchase", "conversion_value": 5, "currency": "usd"}
    )
    ctx = create_mock_context()

    response = await get_conversion_stats(ReportRequest(), ctx)

    assert response.by_currency == {"INR": 120.0, "USD": 5.0}
    ctx.warning.assert_awaited_once()


@pytest.mark.asyncio
async def test_attribution_stats(core):
    response = await get_attribution_stats(ReportRequest(), create_mock_context())

    assert response.totals["total_sessions"] == 2
    assert response.totals["resolved_sessions"] == 1
    assert response.totals["resolution_rate"] == 0.5
    assert response.by_method == {"exact_utm_match": 1, "unresolved": 1}
    (campaign,) = response.by_campaign
    assert campaign["campaign_id"] == "camp_1"
    assert campaign["campaign_name"] == "Summer Sale"
    assert campaign["conversions"] == 1
    assert campaign["conversion_value"] == 120.0


@pytest.mark.asyncio
async def test_dashboard_overview(core):
    ctx = create_mock_context()
    response = await get_dashboard_overview(ReportRequest(website_id="w1"), ctx)

    assert response.period["days"] == 30
    assert response.period["date_to"] == datetime.now(timezone.utc).date().isoformat()
    assert response.conversions["total_conversions"] == 2
    assert response.attribution["resolution_rate"] == 0.5
    assert response.top_campaigns[0]["campaign_id"] == "camp_1"
    assert response.running_experiments == 0
    ctx.info.assert_awaited()


@pytest.mark.asyncio
async def test_dashboard_rejects_reversed_range(core):
    request = ReportRequest(date_from=date(2024, 6, 10), date_to=date(2024, 6, 1))
    with pytest.raises(ValidationError, match="Invalid report date range"):
        await get_dashboard_overview(request, create_mock_context())
