"""Tests for the customer scoring MCP tools."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from analytics.services.mcp_server.state import get_core, get_shared_state
from analytics.services.mcp_server.tools.scores import (
    AtRiskRequest,
    CalculateScoreRequest,
    PredictionsRequest,
    RecalculateScoresRequest,
    RecordNPSRequest,
    _calculate_customer_score_impl as calculate_customer_score,
    _get_at_risk_customers_impl as get_at_risk_customers,
    _get_customer_predictions_impl as get_customer_predictions,
    _get_nps_summary_impl as get_nps_summary,
    _recalculate_scores_impl as recalculate_scores,
    _record_nps_impl as record_nps,
)
from customer_insights.exceptions import ValidationError
from customer_insights.foundation import Conversion, Person


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
    core.people.add(Person(id="p1", created_at=now - timedelta(days=200)))
    core.people.add(Person(id="p2", created_at=now - timedelta(days=200)))
    core.store.conversions.add(
        Conversion(
            id="c1",
            conversion_type="purchase",
            visitor_id="v1",
            person_id="p1",
            converted_at=now - timedelta(days=5),
            value=Decimal("1500"),
        )
    )
    return core


@pytest.mark.asyncio
async def test_nps_promoter():
    response = await record_nps(RecordNPSRequest(person_id="p1", rating=9), create_mock_context())
    assert response.score_type == "nps"
    assert response.score_value == 100.0
    assert response.label == "promoter"
    assert response.previous_score is None


@pytest.mark.asyncio
async def test_nps_five_point_scale():
    response = await record_nps(
        RecordNPSRequest(person_id="p1", rating=3, scale=5), create_mock_context()
    )
    assert response.label == "detractor"


@pytest.mark.asyncio
async def test_nps_invalid_scale():
    with pytest.raises(ValidationError):
        await record_nps(RecordNPSRequest(person_id="p1", rating=5, scale=7), create_mock_context())


@pytest.mark.asyncio
async def test_nps_summary():
    ctx = create_mock_context()
    await record_nps(RecordNPSRequest(person_id="p1", rating=10), ctx)
    await record_nps(RecordNPSRequest(person_id="p2", rating=8), ctx)
    await record_nps(RecordNPSRequest(person_id="p3", rating=2), ctx)

    summary = await get_nps_summary(ctx)

    assert summary.total_responses == 3
    assert (summary.promoters, summary.passives, summary.detractors) == (1, 1, 1)
    assert summary.nps == 0
    assert summary.promoter_pct == 33.3


@pytest.mark.asyncio
async def test_empty_nps_summary():
    summary = await get_nps_summary(create_mock_context())
    assert summary.total_responses == 0
    assert summary.promoter_pct == 0.0


@pytest.mark.asyncio
async def test_calculate_nps_without_ratings(core):
    response = await calculate_customer_score(
        CalculateScoreRequest(person_id="p2", score_type="nps"), create_mock_context()
    )
    assert response.score_value == 0.0
    assert response.label is None
    assert response.details["response_count"] == 0
    assert response.details["category"] is None


@pytest.mark.asyncio
async def test_calculate_engagement(core):
    ctx = create_mock_context()
    response = await calculate_customer_score(
        CalculateScoreRequest(person_id="p1", score_type="engagement"), ctx
    )
    assert response.score_type == "engagement"
    assert 0 < response.score_value <= 100
    assert response.label in {"low", "medium", "high"}
    ctx.info.assert_called_once()


@pytest.mark.asyncio
async def test_recalculate_keeps_previous_value(core):
    ctx = create_mock_context()
    request = CalculateScoreRequest(person_id="p2", score_type="churn_risk")
    first = await calculate_customer_score(request, ctx)
    second = await calculate_customer_score(request, ctx)

    assert second.score_id == first.score_id
    assert second.previous_score == first.score_value
    assert second.score_change == 0.0


@pytest.mark.asyncio
async def test_predictions_without_history(core):
    response = await get_customer_predictions(
        PredictionsRequest(person_id="p2"), create_mock_context()
    )
    assert response.churn_risk == 65.0
    assert response.risk_level == "high"
    assert response.recommendations


@pytest.mark.asyncio
async def test_recalculate_scores(core):
    ctx = create_mock_context()
    response = await recalculate_scores(
        RecalculateScoresRequest(score_types=["engagement", "clv"]), ctx
    )

    assert response.processed == 4
    assert response.succeeded == 4
    assert response.failed == 0
    ctx.report_progress.assert_called_once()


@pytest.mark.asyncio
async def test_at_risk_customers(core):
    ctx = create_mock_context()
    await recalculate_scores(RecalculateScoresRequest(score_types=["churn_risk"]), ctx)

    response = await get_at_risk_customers(AtRiskRequest(min_level="high"), ctx)

    assert response.total_at_risk == 1
    assert response.customers[0]["person_id"] == "p2"


@pytest.mark.asyncio
async def test_at_risk_invalid_level():
    with pytest.raises(ValidationError, match="min_level"):
        await get_at_risk_customers(AtRiskRequest(min_level="severe"), create_mock_context())
