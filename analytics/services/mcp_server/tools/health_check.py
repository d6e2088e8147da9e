"""Health Check MCP Tool

Reports the health of the MCP server and its dependencies:

1. MCP server status
2. Shared state availability
3. Analytics data loaded into the core (record counts)
4. Process memory and CPU
5. Circuit breaker states

Usage:
    Call health_check() to get current system health status
"""

import time
from datetime import datetime, timezone

import psutil
import structlog
from fastmcp import Context
from pydantic import BaseModel, Field

from analytics.services.mcp_server.instance import VERSION, mcp
from analytics.services.mcp_server.metrics import update_system_metrics
from analytics.services.mcp_server.resilience import get_circuit_breaker_status
from analytics.services.mcp_server.state import CORE_KEY, get_shared_state

logger = structlog.get_logger(__name__)


class HealthCheckResponse(BaseModel):
    """Health check response with system status."""

    status: str = Field(
        description="Overall health status: 'healthy', 'degraded', or 'unhealthy'"
    )
    version: str = Field(description="Server version")
    timestamp: str = Field(description="ISO timestamp of health check")
    checks: dict[str, str] = Field(description="Individual component health checks")
    uptime_seconds: float | None = Field(
        default=None, description="Server uptime in seconds (if available)"
    )
    data_status: dict[str, int] = Field(
        description="Record counts held by the analytics core"
    )
    circuit_breakers: dict[str, dict] = Field(
        default_factory=dict, description="State of each circuit breaker"
    )
    resource_usage: dict[str, float] | None = Field(
        default=None, description="System resource usage metrics"
    )


# Track server start time
_SERVER_START_TIME = time.time()


async def _health_check_impl(ctx: Context) -> HealthCheckResponse:
    """Implementation of the health check."""
    logger.info("health_check_starting")

    checks: dict[str, str] = {"mcp_server": "healthy"}
    status = "healthy"

    # Shared state
    shared_state = get_shared_state()
    try:
        shared_state.keys()
        checks["shared_state"] = "healthy"
    except Exception as e:
        checks["shared_state"] = f"unhealthy: {str(e)}"
        status = "unhealthy"
        logger.error("shared_state_check_failed", error=str(e))

    # Analytics data; informational, not a health failure
    data_status: dict[str, int] = {}
    if shared_state.has(CORE_KEY):
        try:
            core = shared_state.core()
            data_status = {
                name: len(values)
                for name, values in core.snapshot().items()
                if isinstance(values, list)
            }
            data_status["people"] = len(core.people.list_people())
            checks["analytics_data"] = f"available ({sum(data_status.values())} records)"
        except Exception as e:
            checks["analytics_data"] = f"check failed: {str(e)}"
            status = "degraded"
            logger.error("analytics_data_check_failed", error=str(e))
    else:
        checks["analytics_data"] = "no data loaded (use load_snapshot)"

    # System resources
    resource_usage: dict[str, float] | None = None
    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        resource_usage = {
            "memory_rss_mb": memory_info.rss / 1024 / 1024,
            "memory_percent": process.memory_percent(),
            "cpu_percent": process.cpu_percent(interval=0.1),
        }
        update_system_metrics()
        checks["system_resources"] = "healthy"
    except psutil.Error as e:
        checks["system_resources"] = f"check failed: {str(e)}"
        logger.error("system_resources_check_failed", error=str(e))

    # Circuit breakers
    breakers = get_circuit_breaker_status()
    open_breakers = [name for name, info in breakers.items() if info["state"] == "open"]
    if open_breakers:
        checks["circuit_breakers"] = f"open: {', '.join(sorted(open_breakers))}"
        if status == "healthy":
            status = "degraded"
    else:
        checks["circuit_breakers"] = "healthy"

    uptime_seconds = time.time() - _SERVER_START_TIME

    logger.info(
        "health_check_complete",
        status=status,
        checks=checks,
        uptime_seconds=uptime_seconds,
    )

    return HealthCheckResponse(
        status=status,
        version=VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
        uptime_seconds=uptime_seconds,
        data_status=data_status,
        circuit_breakers=breakers,
        resource_usage=resource_usage,
    )


@mcp.tool()
async def health_check(ctx: Context) -> HealthCheckResponse:
    """
    Check health of MCP server and all dependencies.

    This tool performs health checks on:
    - MCP server status and uptime
    - Shared state management system
    - Analytics data held in memory (people, conversions, scores, segments, ...)
    - System resource usage (memory and CPU)
    - Circuit breakers guarding snapshot I/O and batch jobs

    Returns:
        HealthCheckResponse with detailed health status and component checks

    Example:
        >>> result = await health_check()
        >>> print(result.status)  # 'healthy'
        >>> print(result.checks)  # {'mcp_server': 'healthy', ...}
    """
    return await _health_check_impl(ctx)
