"""Snapshot loading and export for the MCP server.

A snapshot is one JSON object holding the platform collaborators
(``persons``, ``sessions``, ``campaigns``) and every stored analytics
collection. Loading replaces the shared analytics core.
"""

import json
from pathlib import Path
from typing import Any

import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import mcp
from analytics.services.mcp_server.metrics import track_tool
from analytics.services.mcp_server.resilience import snapshot_io_breaker
from analytics.services.mcp_server.state import (
    CORE_KEY,
    SNAPSHOT_METADATA_KEY,
    get_core,
    get_shared_state,
)
from customer_insights.config import InsightsConfig
from customer_insights.exceptions import ValidationError
from customer_insights.foundation.records import to_jsonable
from customer_insights.service import AnalyticsCore

logger = structlog.get_logger(__name__)

MAX_SNAPSHOT_BYTES = 25 * 1024 * 1024

# analytics/services/mcp_server/tools/snapshot.py -> project root
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent.parent


class LoadSnapshotRequest(BaseModel):
    """Request to load a snapshot file into the server."""

    file_path: str = Field(
        description="Path to snapshot JSON file (relative to project root or absolute path)",
    )


class ExportSnapshotRequest(BaseModel):
    """Request to write the current records to a snapshot file."""

    file_path: str = Field(description="Destination path inside the project directory")


class SnapshotResponse(BaseModel):
    """Summary of a loaded or exported snapshot."""

    file_path: str
    record_counts: dict[str, int]
    person_count: int
    message: str


def _resolve_within_project(file_path: str) -> Path:
    path = Path(file_path)
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    resolved = path.resolve()
    try:
        resolved.relative_to(PROJECT_ROOT.resolve())
    except ValueError as e:
        raise ValidationError(
            f"Path {resolved} is outside allowed directory {PROJECT_ROOT.resolve()}. "
            f"Only files within the project directory can be used."
        ) from e
    return resolved


def _read_snapshot(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ValidationError(f"Snapshot file not found: {path}")
    size = path.stat().st_size
    if size > MAX_SNAPSHOT_BYTES:
        raise ValidationError(
            f"Snapshot {path} is {size} bytes; exceeds limit of {MAX_SNAPSHOT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        try:
            payload = json.load(fh)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in snapshot file: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError(
            f"Expected snapshot to be a JSON object, got {type(payload).__name__}"
        )
    return payload


def _write_snapshot(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, sort_keys=True)


def _record_counts(core: AnalyticsCore) -> dict[str, int]:
    return {
        name: len(values)
        for name, values in core.snapshot().items()
        if isinstance(values, list)
    }


async def _load_snapshot_impl(request: LoadSnapshotRequest, ctx: Context) -> SnapshotResponse:
    """Implementation of snapshot loading."""
    with track_tool("load_snapshot"):
        path = _resolve_within_project(request.file_path)
        await ctx.info(f"Loading snapshot from {path.name}")

        payload = snapshot_io_breaker.call(_read_snapshot, path)
        await ctx.report_progress(0.5, "Building analytics core...")

        core = AnalyticsCore.from_snapshot(payload, InsightsConfig.from_env())
        state = get_shared_state()
        state.set(CORE_KEY, core)
        state.set(
            SNAPSHOT_METADATA_KEY,
            {
                "file_path": str(path),
                "persons": payload.get("persons", []),
                "sessions": payload.get("sessions", []),
                "campaigns": payload.get("campaigns", []),
            },
        )

        counts = _record_counts(core)
        person_count = len(core.people.list_people())
        logger.info("snapshot_loaded", file_path=str(path), person_count=person_count, **counts)

        return SnapshotResponse(
            file_path=str(path),
            record_counts=counts,
            person_count=person_count,
            message=f"Loaded {sum(counts.values())} records for {person_count} people from {path.name}",
        )


async def _export_snapshot_impl(
    request: ExportSnapshotRequest, ctx: Context
) -> SnapshotResponse:
    """Implementation of snapshot export."""
    with track_tool("export_snapshot"):
        path = _resolve_within_project(request.file_path)
        core = get_core()

        payload = core.snapshot()
        collaborators = get_shared_state().get(SNAPSHOT_METADATA_KEY) or {}
        for key in ("persons", "sessions", "campaigns"):
            payload[key] = collaborators.get(key, [])

        snapshot_io_breaker.call(_write_snapshot, path, to_jsonable(payload))
        await ctx.info(f"Snapshot written to {path.name}")

        counts = _record_counts(core)
        return SnapshotResponse(
            file_path=str(path),
            record_counts=counts,
            person_count=len(payload["persons"]),
            message=f"Exported {sum(counts.values())} records to {path.name}",
        )


@mcp.tool()
async def load_snapshot(request: LoadSnapshotRequest, ctx: Context) -> SnapshotResponse:
    """Load people, sessions, campaigns and stored analytics records from a JSON snapshot.

    Replaces whatever the server currently holds. Paths must stay inside the
    project directory.

    Args:
        request: Path of the snapshot file
        ctx: MCP context

    Returns:
        Record counts per collection and the number of people loaded
    """
    return await _load_snapshot_impl(request, ctx)


@mcp.tool()
async def export_snapshot(request: ExportSnapshotRequest, ctx: Context) -> SnapshotResponse:
    """Write every stored analytics record (plus the loaded collaborators) to a JSON file.

    Args:
        request: Destination path inside the project directory
        ctx: MCP context

    Returns:
        Record counts per collection
    """
    return await _export_snapshot_impl(request, ctx)
