"""Prometheus Metrics Exporter

This module exports MCP server metrics to Prometheus for monitoring and alerting.
Tool and batch samples are also handed to the OTel instruments in
``observability``.

Metrics exported:
- tool_execution_duration_seconds: Histogram of tool execution times
- tool_execution_total: Counter of tool executions by status
- batch_items_total: Counter of batch job items by outcome
- active_tool_calls: Gauge of tool calls currently in flight
- system_memory_bytes: Gauge of process memory usage
- system_cpu_percent: Gauge of CPU usage

Usage:
    >>> start_metrics_server(port=8000)
    # Metrics available at http://localhost:8000/metrics
"""

from threading import Lock

import psutil
import structlog
from prometheus_client import Counter, Gauge, Histogram, generate_latest, start_http_server

from analytics.services.mcp_server.observability import instruments

logger = structlog.get_logger(__name__)

tool_execution_duration = Histogram(
    "tool_execution_duration_seconds",
    "Tool execution duration in seconds",
    ["tool_name"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

tool_execution_total = Counter(
    "tool_execution_total",
    "Total tool executions",
    ["tool_name", "status"],  # status: success or failure
)

batch_items_total = Counter(
    "batch_items_total",
    "Items processed by batch jobs",
    ["job", "outcome"],  # outcome: succeeded or failed
)

active_tool_calls = Gauge("active_tool_calls", "Number of tool calls currently running")

system_memory_bytes = Gauge("system_memory_bytes", "Process memory usage in bytes")

system_cpu_percent = Gauge("system_cpu_percent", "Process CPU usage percentage")

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["breaker_name"],
)

_metrics_server_started = False
_metrics_lock = Lock()


def start_metrics_server(port: int = 8000):
    """Start Prometheus metrics HTTP server.

    Args:
        port: Port to expose metrics on (default: 8000)

    Raises:
        RuntimeError: If metrics server is already running
    """
    global _metrics_server_started

    with _metrics_lock:
        if _metrics_server_started:
            raise RuntimeError("Metrics server is already running")

        try:
            start_http_server(port)
            _metrics_server_started = True
            logger.info("prometheus_metrics_server_started", port=port)
        except OSError as e:
            logger.error(
                "prometheus_metrics_server_failed",
                port=port,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise


def get_metrics_text() -> bytes:
    """Get current Prometheus metrics in text format."""
    return generate_latest()


def record_tool_execution(tool_name: str, duration_seconds: float, success: bool):
    """Record a tool execution.

    Args:
        tool_name: Name of the MCP tool (e.g., 'track_conversion')
        duration_seconds: Execution duration in seconds
        success: Whether execution succeeded
    """
    status = "success" if success else "failure"

    tool_execution_duration.labels(tool_name=tool_name).observe(duration_seconds)
    tool_execution_total.labels(tool_name=tool_name, status=status).inc()
    instruments.record_tool_call(tool_name, duration_seconds, success)


def record_batch_result(job: str, succeeded: int, failed: int):
    """Record the item outcomes of a batch job.

    Example:
        >>> record_batch_result('recalculate_scores', succeeded=40, failed=2)
    """
    if succeeded:
        batch_items_total.labels(job=job, outcome="succeeded").inc(succeeded)
    if failed:
        batch_items_total.labels(job=job, outcome="failed").inc(failed)
    instruments.record_batch_items(job, succeeded, failed)


def increment_active_tool_calls():
    active_tool_calls.inc()


def decrement_active_tool_calls():
    active_tool_calls.dec()


def update_system_metrics():
    """Update system resource metrics (memory, CPU).

    Call this periodically to update resource usage metrics.
    """
    try:
        process = psutil.Process()
        system_memory_bytes.set(process.memory_info().rss)
        system_cpu_percent.set(process.cpu_percent(interval=0.1))
    except psutil.Error as e:
        logger.warning("system_metrics_update_failed", error=str(e), error_type=type(e).__name__)


def update_circuit_breaker_state(breaker_name: str, state: str):
    """Update circuit breaker state metric.

    Args:
        breaker_name: Name of the circuit breaker
        state: State name ('closed', 'open', 'half_open')
    """
    state_value = {"closed": 0, "open": 1, "half_open": 2}.get(
        state.lower().replace("-", "_"), 0
    )

    circuit_breaker_state.labels(breaker_name=breaker_name).set(state_value)
