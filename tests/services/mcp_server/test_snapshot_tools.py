"""Tests for snapshot loading and export through the MCP tools."""

import json
from unittest.mock import AsyncMock

import pytest

from analytics.services.mcp_server.state import CORE_KEY, get_core, get_shared_state
from analytics.services.mcp_server.tools import snapshot as snapshot_module
from analytics.services.mcp_server.tools.snapshot import (
    ExportSnapshotRequest,
    LoadSnapshotRequest,
    _export_snapshot_impl as export_snapshot,
    _load_snapshot_impl as load_snapshot,
)
from customer_insights.exceptions import ValidationError

SNAPSHOT = {
    "persons": [
        {"id": "p1", "created_at": "2024-01-01T00:00:00Z"},
        {"id": "p2", "created_at": "2024-02-01T00:00:00Z"},
    ],
    "sessions": [
        {"id": "s1", "visitor_id": "v1", "started_at": "2024-06-01T00:00:00Z"},
    ],
    "campaigns": [{"id": "camp_1", "name": "Summer Sale"}],
    "conversions": [
        {
            "id": "conv_1",
            "conversion_type": "purchase",
            "visitor_id": "v1",
            "person_id": "p1",
            "converted_at": "2024-06-01T12:00:00Z",
            "value": 120.5,
        }
    ],
}


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
def project_root(tmp_path, monkeypatch):
    """Point the allowed snapshot directory at a temporary folder."""
    monkeypatch.setattr(snapshot_module, "PROJECT_ROOT", tmp_path)
    return tmp_path


@pytest.mark.asyncio
async def test_load_snapshot_replaces_core(project_root):
    (project_root / "snapshot.json").write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    previous = get_core()
    ctx = create_mock_context()

    response = await load_snapshot(LoadSnapshotRequest(file_path="snapshot.json"), ctx)

    assert response.person_count == 2
    assert response.record_counts["conversions"] == 1
    assert response.record_counts["scores"] == 0
    assert get_shared_state().get(CORE_KEY) is not previous
    assert get_core().get_conversion("conv_1").person_id == "p1"
    ctx.info.assert_called_once()
    ctx.report_progress.assert_called_once()


@pytest.mark.asyncio
async def test_export_keeps_collaborators(project_root):
    (project_root / "snapshot.json").write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    ctx = create_mock_context()
    await load_snapshot(LoadSnapshotRequest(file_path="snapshot.json"), ctx)
    get_core().record_nps("p2", 10)

    response = await export_snapshot(
        ExportSnapshotRequest(file_path="exports/out.json"), ctx
    )

    written = json.loads((project_root / "exports" / "out.json").read_text(encoding="utf-8"))
    assert response.person_count == 2
    assert written["campaigns"] == SNAPSHOT["campaigns"]
    assert [s["person_id"] for s in written["scores"]] == ["p2"]
    assert written["conversions"][0]["value"] == 120.5


@pytest.mark.asyncio
async def test_path_outside_project_is_rejected(project_root):
    with pytest.raises(ValidationError, match="outside allowed directory"):
        await load_snapshot(
            LoadSnapshotRequest(file_path=str(project_root.parent / "other.json")),
            create_mock_context(),
        )


@pytest.mark.asyncio
async def test_missing_file(project_root):
    with pytest.raises(ValidationError, match="not found"):
        await load_snapshot(LoadSnapshotRequest(file_path="absent.json"), create_mock_context())


@pytest.mark.asyncio
async def test_snapshot_must_be_an_object(project_root):
    (project_root / "list.json").write_text("[]", encoding="utf-8")
    with pytest.raises(ValidationError, match="JSON object"):
        await load_snapshot(LoadSnapshotRequest(file_path="list.json"), create_mock_context())


@pytest.mark.asyncio
async def test_invalid_json(project_root):
    (project_root / "broken.json").write_text("{", encoding="utf-8")
    with pytest.raises(ValidationError, match="Invalid JSON"):
        await load_snapshot(LoadSnapshotRequest(file_path="broken.json"), create_mock_context())
