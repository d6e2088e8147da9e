"""Metrics package for MCP Server

Prometheus export of tool and batch job metrics, plus the per-tool
tracking context used by every tool.
"""

from analytics.services.mcp_server.metrics.prometheus_exporter import (
    decrement_active_tool_calls,
    get_metrics_text,
    increment_active_tool_calls,
    record_batch_result,
    record_tool_execution,
    start_metrics_server,
    update_circuit_breaker_state,
    update_system_metrics,
)
from analytics.services.mcp_server.metrics.tracking import track_tool

__all__ = [
    "start_metrics_server",
    "get_metrics_text",
    "record_tool_execution",
    "record_batch_result",
    "increment_active_tool_calls",
    "decrement_active_tool_calls",
    "update_system_metrics",
    "update_circuit_breaker_state",
    "track_tool",
]
