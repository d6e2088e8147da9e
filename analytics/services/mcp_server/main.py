"""
Customer Insights Analytics MCP Server

This module provides the main MCP server for conversion attribution, customer
scoring, segmentation, A/B experiments and budget forecasting.
"""

import logging
import os
import sys
from contextlib import asynccontextmanager

import structlog

from analytics.services.mcp_server.instance import VERSION

# Configure structlog to write to stderr, not stdout (to avoid interfering with MCP JSON protocol)
logging.basicConfig(
    format="%(message)s",
    stream=sys.stderr,
    level=logging.INFO,
)

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def app_lifespan(app):
    """Initialize and cleanup MCP server resources.

    Installs OpenTelemetry providers and starts the Prometheus metrics
    endpoint on startup; flushes telemetry on shutdown.
    """
    logger.info("mcp_server_starting", version=VERSION)

    from analytics.services.mcp_server.metrics import start_metrics_server
    from analytics.services.mcp_server.observability import configure_observability

    metrics_port = int(os.getenv("PROMETHEUS_METRICS_PORT", "8000"))
    telemetry = configure_observability()

    try:
        start_metrics_server(port=metrics_port)
        logger.info("prometheus_metrics_server_started", port=metrics_port)
    except RuntimeError as e:
        # Server already running (e.g., during hot reload)
        logger.warning("prometheus_metrics_server_already_running", error=str(e))
    except OSError as e:
        logger.error(
            "prometheus_metrics_server_failed", error=str(e), port=metrics_port
        )

    try:
        yield
    finally:
        logger.info("mcp_server_stopping")
        telemetry.shutdown()


# Import MCP server instance (must be imported before tools to avoid circular imports)
from analytics.services.mcp_server.instance import mcp  # noqa: E402

mcp.lifespan = app_lifespan

# These imports MUST happen before mcp.run() is called
# Each module registers its tools using the @mcp.tool() decorator
from analytics.services.mcp_server.tools import (  # noqa: E402, F401
    attribution,
    conversions,
    experiments,
    forecasts,
    health_check,
    journeys,
    reports,
    scores,
    segments,
    snapshot,
)

logger.info("mcp_server_initialized", version=VERSION, tools_registered=35)


if __name__ == "__main__":
    mcp.run()
