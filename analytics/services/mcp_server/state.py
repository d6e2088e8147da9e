"""Shared state management for MCP server.

FastMCP's Context is per-request, so the analytics core (record store plus
platform collaborators) lives here and persists across tool calls.
"""

import threading
from typing import Any

from customer_insights.config import InsightsConfig
from customer_insights.service import AnalyticsCore

CORE_KEY = "analytics_core"
SNAPSHOT_METADATA_KEY = "snapshot_metadata"


class SharedState:
    """Thread-safe shared state storage for MCP tools.

    Uses threading.RLock for thread-safe access to shared data.
    Implements basic size-based eviction to prevent unbounded memory growth.

    Protected keys (the analytics core and its snapshot metadata) are only
    evicted as a last resort when all keys in the store are protected.
    """

    MAX_ITEMS = 100

    PROTECTED_KEYS = frozenset({CORE_KEY, SNAPSHOT_METADATA_KEY})

    def __init__(self):
        self._store: dict[str, Any] = {}
        self._lock = threading.RLock()

    def set(self, key: str, value: Any) -> None:
        """Store a value in shared state.

        If MAX_ITEMS is reached, the oldest unprotected item is evicted.

        Args:
            key: Storage key
            value: Value to store
        """
        with self._lock:
            if len(self._store) >= self.MAX_ITEMS and key not in self._store:
                evicted = False
                for k in self._store:
                    if k not in self.PROTECTED_KEYS:
                        del self._store[k]
                        evicted = True
                        break

                if not evicted:
                    first_key = next(iter(self._store))
                    del self._store[first_key]

            self._store[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._store.get(key, default)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._store

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def keys(self) -> list[str]:
        """Get all keys in shared state.

        Returns:
            List of all storage keys (copy, not live view)
        """
        with self._lock:
            return list(self._store.keys())

    def core(self) -> AnalyticsCore:
        """Return the analytics core, creating an empty one on first use."""
        with self._lock:
            core = self._store.get(CORE_KEY)
            if core is None:
                core = AnalyticsCore(config=InsightsConfig.from_env())
                self.set(CORE_KEY, core)
            return core


_shared_state = SharedState()


def get_shared_state() -> SharedState:
    """Get the global shared state instance."""
    return _shared_state


def get_core() -> AnalyticsCore:
    """Get the analytics core shared by all tools."""
    return _shared_state.core()
