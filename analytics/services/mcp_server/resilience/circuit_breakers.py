"""Circuit Breaker Pattern

Circuit breakers keep a failing snapshot volume or a misbehaving batch job
from being hammered by repeated tool calls.

Circuit breaker states:
- CLOSED: Normal operation, requests flow through
- OPEN: Failure threshold exceeded, requests fail fast
- HALF_OPEN: Testing if service recovered, limited requests allowed

Caller mistakes (``InsightsError``: unknown ids, invalid input) never count
as failures.

Usage:
    >>> breaker = get_circuit_breaker("snapshot_io")
    >>> payload = breaker.call(read_snapshot, path)
"""

from collections.abc import Callable
from typing import Any

import structlog
from pybreaker import CircuitBreaker

from analytics.services.mcp_server.metrics import update_circuit_breaker_state
from customer_insights.exceptions import InsightsError

logger = structlog.get_logger(__name__)

_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    timeout_duration: int = 60,
) -> CircuitBreaker:
    """Get or create a circuit breaker by name.

    Circuit breakers are singletons per name. If a breaker with the given name
    already exists, it will be returned. Otherwise, a new one is created.

    Args:
        name: Unique name for this circuit breaker (e.g., "snapshot_io")
        fail_max: Maximum number of failures before opening the circuit (default: 5)
        timeout_duration: Seconds to keep circuit open before trying again (default: 60)

    Returns:
        CircuitBreaker instance
    """
    if name not in _circuit_breakers:
        logger.info(
            "creating_circuit_breaker",
            name=name,
            fail_max=fail_max,
            timeout_duration=timeout_duration,
        )

        breaker = CircuitBreaker(
            fail_max=fail_max,
            reset_timeout=timeout_duration,
            exclude=[InsightsError],
            name=name,
            listeners=[_CircuitBreakerListener(name)],
        )

        _circuit_breakers[name] = breaker
        update_circuit_breaker_state(name, "closed")

    return _circuit_breakers[name]


class _CircuitBreakerListener:
    """Logs state transitions and mirrors them to the Prometheus gauge."""

    def __init__(self, name: str):
        self.name = name

    def before_call(self, cb: CircuitBreaker, func: Callable, *args, **kwargs):
        logger.debug(
            "circuit_breaker_before_call",
            name=self.name,
            state=cb.current_state,
            fail_count=cb.fail_counter,
        )

    def success(self, cb: CircuitBreaker):
        logger.debug(
            "circuit_breaker_success",
            name=self.name,
            state=cb.current_state,
            fail_count=cb.fail_counter,
        )

    def failure(self, cb: CircuitBreaker, exc: Exception):
        logger.warning(
            "circuit_breaker_failure",
            name=self.name,
            state=cb.current_state,
            fail_count=cb.fail_counter,
            error_type=type(exc).__name__,
            error=str(exc),
        )

    def state_change(self, cb: CircuitBreaker, old_state, new_state):
        logger.warning(
            "circuit_breaker_state_change",
            name=self.name,
            old_state=old_state.name if old_state else None,
            new_state=new_state.name,
            fail_count=cb.fail_counter,
        )
        update_circuit_breaker_state(self.name, new_state.name)


def get_circuit_breaker_status() -> dict[str, dict[str, Any]]:
    """Get current status of all circuit breakers.

    Returns:
        Dict mapping circuit breaker names to their status:
        {
            "snapshot_io": {
                "state": "closed",  # or "open", "half_open"
                "fail_count": 0,
                "fail_max": 5,
                "timeout_duration": 60
            },
            ...
        }
    """
    status = {}

    for name, breaker in _circuit_breakers.items():
        status[name] = {
            "state": breaker.current_state.lower().replace("-", "_"),
            "fail_count": breaker.fail_counter,
            "fail_max": breaker.fail_max,
            "timeout_duration": breaker.reset_timeout,
        }

    return status


def reset_all_circuit_breakers():
    """Reset all circuit breakers to closed state."""
    logger.info("resetting_all_circuit_breakers", count=len(_circuit_breakers))

    for name, breaker in _circuit_breakers.items():
        breaker.close()
        logger.info("circuit_breaker_reset", name=name)


# Snapshot files: disk full, permissions, corrupted JSON
snapshot_io_breaker = get_circuit_breaker(
    name="snapshot_io",
    fail_max=5,
    timeout_duration=60,
)

# Batch jobs over the whole store (score recalculation, segment rebuilds,
# attribution backfill, forecast accuracy)
batch_jobs_breaker = get_circuit_breaker(
    name="batch_jobs",
    fail_max=3,
    timeout_duration=120,
)
