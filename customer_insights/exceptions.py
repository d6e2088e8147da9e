"""Error kinds raised by the customer insights core.

Only caller mistakes are raised: unknown ids and malformed input. Numeric
edge cases (zero samples, empty rating sets, no overlapping forecast days)
return neutral values from the calculators instead of raising.
"""

from __future__ import annotations


class InsightsError(Exception):
    """Base class for all customer insights errors."""


class NotFoundError(InsightsError, LookupError):
    """An entity id did not resolve to a stored record."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(InsightsError, ValueError):
    """Input was rejected before any write happened."""


class ExperimentStateError(ValidationError):
    """An experiment lifecycle transition is not allowed from its current status."""
