"""Capability condition evaluation.

Evaluation is pure and total: each condition yields either ``None`` (pass)
or one human-readable failure message. Failures are accumulated rather
than short-circuited so a caller can fix every violation at once.

Semantics per operator
----------------------
``equals`` / ``not_equals``
    Strict equality. Booleans never equal numbers; ``1`` equals ``1.0``.
``greater_than`` / ``less_than``
    Applied only when both operands are numbers; otherwise ignored.
``contains``
    Substring test, applied only when both operands are strings.
``in``
    Membership in the condition's list value; ignored if the value is not a list.
``before`` / ``after``
    Timestamp comparison (ISO-8601 strings or datetimes); ignored when
    either side is not a timestamp.

A parameter absent from the context always fails its condition.
"""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping

from agent_identity_hub.clock import parse_datetime
from agent_identity_hub.models import Condition, ConditionOperator


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: object, right: object) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left is right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def _fmt(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def evaluate_condition(condition: Condition, context: Mapping[str, object]) -> str | None:
    """Evaluate one condition against *context*.

    Returns
    -------
    str | None
        A failure message, or ``None`` when the condition holds or does not apply.
    """
    param = condition.parameter
    if param not in context:
        return f"Condition failed: {param} is required but missing from context"

    actual = context[param]
    expected = condition.value

    match condition.operator:
        case ConditionOperator.EQUALS:
            if not _strict_equal(actual, expected):
                return f"Condition failed: {param} must equal {_fmt(expected)}"
        case ConditionOperator.NOT_EQUALS:
            if _strict_equal(actual, expected):
                return f"Condition failed: {param} must not equal {_fmt(expected)}"
        case ConditionOperator.GREATER_THAN:
            if _is_number(actual) and _is_number(expected) and not actual > expected:  # type: ignore[operator]
                return f"Condition failed: {param} must be greater than {_fmt(expected)}"
        case ConditionOperator.LESS_THAN:
            if _is_number(actual) and _is_number(expected) and not actual < expected:  # type: ignore[operator]
                return f"Condition failed: {param} must be less than {_fmt(expected)}"
        case ConditionOperator.CONTAINS:
            if isinstance(actual, str) and isinstance(expected, str) and expected not in actual:
                return f"Condition failed: {param} must contain {expected}"
        case ConditionOperator.IN:
            if isinstance(expected, list) and not any(_strict_equal(actual, v) for v in expected):
                return f"Condition failed: {param} must be in [{', '.join(_fmt(v) for v in expected)}]"
        case ConditionOperator.BEFORE:
            actual_ts, expected_ts = parse_datetime(actual), parse_datetime(expected)
            if actual_ts is not None and expected_ts is not None and not actual_ts < expected_ts:
                return f"Condition failed: {param} must be before {_fmt(expected)}"
        case ConditionOperator.AFTER:
            actual_ts, expected_ts = parse_datetime(actual), parse_datetime(expected)
            if actual_ts is not None and expected_ts is not None and not actual_ts > expected_ts:
                return f"Condition failed: {param} must be after {_fmt(expected)}"
    return None


def evaluate_conditions(
    conditions: Iterable[Condition], context: Mapping[str, object] | None
) -> list[str]:
    """Evaluate every condition and return all failure messages in order."""
    ctx: Mapping[str, object] = context or {}
    errors: list[str] = []
    for condition in conditions:
        message = evaluate_condition(condition, ctx)
        if message is not None:
            errors.append(message)
    return errors


__all__ = ["evaluate_condition", "evaluate_conditions"]
