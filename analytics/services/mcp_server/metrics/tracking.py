"""Per-tool tracing, timing and logging.

Every tool body runs inside ``track_tool``: one OpenTelemetry span per call,
a Prometheus duration/outcome sample, and a structlog event on completion.
Exceptions are recorded and re-raised so FastMCP reports them to the client.
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

from analytics.services.mcp_server.metrics.prometheus_exporter import (
    decrement_active_tool_calls,
    increment_active_tool_calls,
    record_tool_execution,
)

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


@contextmanager
def track_tool(tool_name: str, **attributes) -> Iterator[Span]:
    """Trace and time one tool execution.

    Args:
        tool_name: Name of the MCP tool, used as span name and metric label
        **attributes: Span attributes (ids, counts) recorded up front

    Yields:
        The active span so the tool can attach result attributes
    """
    start = time.perf_counter()
    increment_active_tool_calls()
    with tracer.start_as_current_span(tool_name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as e:
            duration = time.perf_counter() - start
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            record_tool_execution(tool_name, duration, success=False)
            logger.warning(
                "tool_execution_failed",
                tool_name=tool_name,
                duration_ms=round(duration * 1000, 2),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        else:
            duration = time.perf_counter() - start
            record_tool_execution(tool_name, duration, success=True)
            logger.info(
                "tool_execution_complete",
                tool_name=tool_name,
                duration_ms=round(duration * 1000, 2),
            )
        finally:
            decrement_active_tool_calls()
