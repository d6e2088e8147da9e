"""Resilience patterns for MCP Server

- Circuit breakers: fail fast on snapshot I/O and batch jobs that keep failing
- Health monitoring: circuit breaker states are reported by health_check
"""

from analytics.services.mcp_server.resilience.circuit_breakers import (
    batch_jobs_breaker,
    get_circuit_breaker,
    get_circuit_breaker_status,
    reset_all_circuit_breakers,
    snapshot_io_breaker,
)

__all__ = [
    "batch_jobs_breaker",
    "get_circuit_breaker",
    "get_circuit_breaker_status",
    "reset_all_circuit_breakers",
    "snapshot_io_breaker",
]
