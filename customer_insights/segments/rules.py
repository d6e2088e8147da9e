"""Rule-set interpreter for segment criteria.

``evaluate`` applies a flat ``RuleSet`` to a customer snapshot (a flat
mapping of derived attributes). A rule whose field is missing or ``None``
never matches, whatever its operator, and so does an ordering comparison between
values of incompatible types. Neither case raises.
"""

from __future__ import annotations

import logging
import operator as op
from datetime import date, datetime
from typing import Any, Callable, Mapping

from customer_insights.foundation.records import (
    Logic,
    Operator,
    Rule,
    RuleSet,
    ensure_utc,
    parse_datetime,
)

logger = logging.getLogger(__name__)

_ORDERING: dict[Operator, Callable[[Any, Any], bool]] = {
    Operator.GT: op.gt,
    Operator.LT: op.lt,
    Operator.GE: op.ge,
    Operator.LE: op.le,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce(actual: Any, expected: Any) -> Any:
    """Bring ``expected`` to the type of ``actual`` where that is unambiguous."""
    if isinstance(actual, (datetime, date)) and isinstance(expected, (str, date)):
        try:
            parsed = parse_datetime(expected)
        except ValueError:
            return expected
        if isinstance(actual, datetime):
            return parsed
        return parsed.date() if parsed is not None else expected
    if _is_number(actual) and isinstance(expected, str):
        try:
            return float(expected)
        except ValueError:
            return expected
    return expected


def _normalise(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return value.lower()
    return value


def _equals(actual: Any, expected: Any) -> bool:
    expected = _coerce(actual, expected)
    if _is_number(actual) and _is_number(expected):
        return float(actual) == float(expected)
    return _normalise(actual) == _normalise(expected)


def _compare(cmp: Callable[[Any, Any], bool], actual: Any, expected: Any) -> bool:
    expected = _coerce(actual, expected)
    try:
        return bool(cmp(_normalise(actual), _normalise(expected)))
    except TypeError:
        return False


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_equals(item, expected) for item in actual)
    if isinstance(expected, (list, tuple, set, frozenset, Mapping)):
        return False
    return str(expected).lower() in str(actual).lower()


def evaluate_rule(rule: Rule, snapshot: Mapping[str, Any]) -> bool:
    """Apply a single rule to a snapshot."""
    actual = snapshot.get(rule.field)
    if actual is None:
        return False

    operator = rule.operator
    if operator is Operator.EQ:
        return _equals(actual, rule.value)
    if operator is Operator.NE:
        return not _equals(actual, rule.value)
    if operator in _ORDERING:
        return _compare(_ORDERING[operator], actual, rule.value)
    if operator is Operator.CONTAINS:
        return _contains(actual, rule.value)
    if operator is Operator.NOT_CONTAINS:
        return not _contains(actual, rule.value)
    if operator is Operator.IN:
        return any(_equals(actual, candidate) for candidate in rule.value)
    if operator is Operator.NOT_IN:
        return not any(_equals(actual, candidate) for candidate in rule.value)
    if operator is Operator.BETWEEN:
        low, high = rule.value
        return _compare(op.ge, actual, low) and _compare(op.le, actual, high)
    logger.warning("Unsupported operator %r on field %s", operator, rule.field)
    return False


def evaluate(rule_set: RuleSet, snapshot: Mapping[str, Any]) -> bool:
    """Evaluate a rule set against one customer snapshot.

    Parameters
    ----------
    rule_set:
        Rules combined with a single AND or OR
    snapshot:
        Flat field -> value mapping for one customer

    Returns
    -------
    bool
        Whether the customer matches. An empty rule set matches everyone.
    """
    results = (evaluate_rule(rule, snapshot) for rule in rule_set.rules)
    if rule_set.logic is Logic.OR:
        return any(results) if rule_set.rules else True
    return all(results)
