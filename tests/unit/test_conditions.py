"""Tests for agent_identity_hub.capabilities.conditions."""
from __future__ import annotations

import datetime

import pytest

from agent_identity_hub.capabilities.conditions import evaluate_condition, evaluate_conditions
from agent_identity_hub.models import Condition, ConditionOperator, ConditionType


def cond(parameter: str, operator: ConditionOperator, value: object) -> Condition:
    return Condition(type=ConditionType.CONTEXT, parameter=parameter, operator=operator, value=value)


# ---------------------------------------------------------------------------
# Missing parameters
# ---------------------------------------------------------------------------


class TestMissingParameter:
    def test_missing_key_fails(self) -> None:
        message = evaluate_condition(cond("env", ConditionOperator.EQUALS, "prod"), {})
        assert message == "Condition failed: env is required but missing from context"

    def test_none_context_treated_as_empty(self) -> None:
        errors = evaluate_conditions([cond("env", ConditionOperator.EQUALS, "prod")], None)
        assert len(errors) == 1
        assert "missing from context" in errors[0]

    def test_no_conditions_no_errors(self) -> None:
        assert evaluate_conditions([], None) == []


# ---------------------------------------------------------------------------
# Equality
# ---------------------------------------------------------------------------


class TestEquals:
    def test_equal_strings_pass(self) -> None:
        assert evaluate_condition(cond("env", ConditionOperator.EQUALS, "prod"), {"env": "prod"}) is None

    def test_different_strings_fail(self) -> None:
        message = evaluate_condition(cond("env", ConditionOperator.EQUALS, "prod"), {"env": "dev"})
        assert message == "Condition failed: env must equal prod"

    def test_int_equals_float(self) -> None:
        assert evaluate_condition(cond("n", ConditionOperator.EQUALS, 1), {"n": 1.0}) is None

    def test_bool_never_equals_number(self) -> None:
        assert evaluate_condition(cond("flag", ConditionOperator.EQUALS, 1), {"flag": True}) is not None

    def test_string_never_equals_number(self) -> None:
        assert evaluate_condition(cond("n", ConditionOperator.EQUALS, 5), {"n": "5"}) is not None

    def test_not_equals(self) -> None:
        condition = cond("env", ConditionOperator.NOT_EQUALS, "prod")
        assert evaluate_condition(condition, {"env": "dev"}) is None
        assert evaluate_condition(condition, {"env": "prod"}) == "Condition failed: env must not equal prod"

    def test_non_string_expected_rendered_as_json(self) -> None:
        message = evaluate_condition(cond("ok", ConditionOperator.EQUALS, True), {"ok": False})
        assert message == "Condition failed: ok must equal true"


# ---------------------------------------------------------------------------
# Ordering comparisons
# ---------------------------------------------------------------------------


class TestNumericComparison:
    def test_greater_than(self) -> None:
        condition = cond("priority", ConditionOperator.GREATER_THAN, 5)
        assert evaluate_condition(condition, {"priority": 6}) is None
        assert evaluate_condition(condition, {"priority": 5}) == (
            "Condition failed: priority must be greater than 5"
        )

    def test_less_than(self) -> None:
        condition = cond("size", ConditionOperator.LESS_THAN, 10)
        assert evaluate_condition(condition, {"size": 9.5}) is None
        assert evaluate_condition(condition, {"size": 10}) is not None

    def test_non_numeric_operands_ignored(self) -> None:
        condition = cond("priority", ConditionOperator.GREATER_THAN, 5)
        assert evaluate_condition(condition, {"priority": "high"}) is None

    def test_bool_is_not_numeric(self) -> None:
        condition = cond("priority", ConditionOperator.GREATER_THAN, 5)
        assert evaluate_condition(condition, {"priority": False}) is None


class TestTimestampComparison:
    def test_before_with_iso_strings(self) -> None:
        condition = cond("at", ConditionOperator.BEFORE, "2025-06-01T00:00:00Z")
        assert evaluate_condition(condition, {"at": "2025-05-31T23:59:59Z"}) is None
        message = evaluate_condition(condition, {"at": "2025-06-02T00:00:00Z"})
        assert message == "Condition failed: at must be before 2025-06-01T00:00:00Z"

    def test_after_with_datetime(self) -> None:
        condition = cond("at", ConditionOperator.AFTER, "2025-06-01T00:00:00+00:00")
        later = datetime.datetime(2025, 7, 1, tzinfo=datetime.timezone.utc)
        assert evaluate_condition(condition, {"at": later}) is None

    def test_unparseable_timestamp_ignored(self) -> None:
        condition = cond("at", ConditionOperator.AFTER, "2025-06-01T00:00:00Z")
        assert evaluate_condition(condition, {"at": "tomorrow"}) is None


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


class TestMembership:
    def test_contains_substring(self) -> None:
        condition = cond("path", ConditionOperator.CONTAINS, "reports")
        assert evaluate_condition(condition, {"path": "data/reports/q1"}) is None
        assert evaluate_condition(condition, {"path": "data/raw"}) == (
            "Condition failed: path must contain reports"
        )

    def test_contains_ignores_non_strings(self) -> None:
        condition = cond("tags", ConditionOperator.CONTAINS, "x")
        assert evaluate_condition(condition, {"tags": ["x"]}) is None

    def test_in_list(self) -> None:
        condition = cond("region", ConditionOperator.IN, ["eu", "us"])
        assert evaluate_condition(condition, {"region": "eu"}) is None
        assert evaluate_condition(condition, {"region": "ap"}) == (
            "Condition failed: region must be in [eu, us]"
        )

    def test_in_ignored_when_value_not_list(self) -> None:
        condition = cond("region", ConditionOperator.IN, "eu")
        assert evaluate_condition(condition, {"region": "ap"}) is None


# ---------------------------------------------------------------------------
# Accumulation
# ---------------------------------------------------------------------------


class TestAccumulation:
    def test_all_failures_reported_in_order(self) -> None:
        conditions = [
            cond("env", ConditionOperator.EQUALS, "prod"),
            cond("priority", ConditionOperator.GREATER_THAN, 5),
            cond("region", ConditionOperator.IN, ["eu"]),
        ]
        errors = evaluate_conditions(conditions, {"env": "dev", "priority": 1, "region": "eu"})
        assert errors == [
            "Condition failed: env must equal prod",
            "Condition failed: priority must be greater than 5",
        ]

    @pytest.mark.parametrize("operator", list(ConditionOperator))
    def test_every_operator_fails_on_missing_key(self, operator: ConditionOperator) -> None:
        assert evaluate_conditions([cond("k", operator, 1)], {}) != []
