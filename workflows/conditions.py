"""Step conditions: optional predicates over document attributes.

A condition block looks like::

    {
        "match": "all",
        "enforce": true,
        "rules": [{"field": "classification", "operator": "equals", "value": "invoice"}]
    }

Unenforced conditions are evaluated and logged but never skip a step.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable

from documents.models import Document


class ConditionError(ValueError):
    """Raised for a malformed condition block."""


def _exists(actual: Any, _: Any) -> bool:
    return actual not in (None, "")


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    return str(expected).lower() in str(actual).lower()


def _in(actual: Any, expected: Any) -> bool:
    return actual in expected


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda actual, expected: actual == expected,
    "not_equals": lambda actual, expected: actual != expected,
    "in": _in,
    "not_in": lambda actual, expected: not _in(actual, expected),
    "contains": _contains,
    "exists": _exists,
}

FIELDS: Dict[str, Callable[[Document], Any]] = {
    "classification": lambda document: document.classification,
    "title": lambda document: document.title,
    "description": lambda document: document.description,
    "status": lambda document: document.status,
    "uploaded_by": lambda document: document.uploaded_by_id,
}

MATCH_MODES = {"all": all, "any": any}


def validate_conditions(conditions: Any) -> None:
    if conditions in (None, {}):
        return
    if not isinstance(conditions, dict):
        raise ConditionError("Conditions must be a JSON object.")
    if conditions.get("match", "all") not in MATCH_MODES:
        raise ConditionError("'match' must be one of: " + ", ".join(sorted(MATCH_MODES)))
    if not isinstance(conditions.get("enforce", False), bool):
        raise ConditionError("'enforce' must be a boolean.")
    rules = conditions.get("rules")
    if not isinstance(rules, list) or not rules:
        raise ConditionError("'rules' must be a non-empty list.")
    for rule in rules:
        if not isinstance(rule, dict):
            raise ConditionError("Each rule must be a JSON object.")
        if rule.get("field") not in FIELDS:
            raise ConditionError(f"Unknown condition field: {rule.get('field')!r}")
        operator = rule.get("operator")
        if operator not in OPERATORS:
            raise ConditionError(f"Unknown condition operator: {operator!r}")
        if operator in {"in", "not_in"} and not isinstance(rule.get("value"), list):
            raise ConditionError(f"Operator '{operator}' expects a list value.")


def _rule_holds(rule: Dict[str, Any], document: Document) -> bool:
    actual = FIELDS[rule["field"]](document)
    return OPERATORS[rule["operator"]](actual, rule.get("value"))


def evaluate(conditions: Dict[str, Any], document: Document) -> bool:
    """Return whether ``document`` satisfies ``conditions``; empty blocks hold."""

    if not conditions:
        return True
    rules: Iterable[Dict[str, Any]] = conditions.get("rules", [])
    matcher = MATCH_MODES[conditions.get("match", "all")]
    return matcher(_rule_holds(rule, document) for rule in rules)


def is_enforced(conditions: Any) -> bool:
    return bool(conditions) and bool(conditions.get("enforce", False))
