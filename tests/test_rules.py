"""Tests for conditional rule normalisation."""

from __future__ import annotations

import importlib

import pytest

from clinical_forms.errors import InvalidRuleError


def _rules():
    return importlib.import_module("clinical_forms.rules")


def test_normalize_rule_accepts_builder_payload() -> None:
    rules = _rules()

    rule = rules.normalize_rule(
        {
            "sourceQuestionId": "q-a",
            "operator": "EQUALS",
            "compareValue": "yes",
            "actionType": "Show",
            "joinType": "or",
        },
        question_id="q-b",
        index=1,
    )

    assert rule.id == "q-b:rule-2"
    assert rule.operator == rules.EQUALS
    assert rule.action_type == rules.SHOW
    assert rule.join_type == rules.OR
    assert rule.compare_value == "yes"
    assert rule.sort_order == 1


def test_join_type_defaults_to_and() -> None:
    rules = _rules()

    rule = rules.normalize_rule(
        {"id": "r1", "source_question_id": "q-a", "operator": "contains", "compare_value": "b", "action_type": "require"}
    )

    assert rule.join_type == rules.AND
    assert rule.id == "r1"


@pytest.mark.parametrize(
    "payload",
    [
        {"sourceQuestionId": "q-a", "operator": "between", "compareValue": "1", "actionType": "show"},
        {"sourceQuestionId": "q-a", "operator": "equals", "compareValue": "1", "actionType": "collapse"},
        {"sourceQuestionId": "q-a", "operator": "equals", "actionType": "show"},
        {"sourceQuestionId": "q-a", "operator": "equals", "compareValue": "1", "actionType": "show", "joinType": "XOR"},
        {"operator": "equals", "compareValue": "1", "actionType": "show"},
    ],
)
def test_normalize_rule_rejects_malformed_payloads(payload) -> None:
    rules = _rules()

    with pytest.raises(InvalidRuleError) as excinfo:
        rules.normalize_rule(payload, question_id="q-b")

    assert excinfo.value.question_id == "q-b"


def test_empty_compare_value_is_meaningful() -> None:
    rules = _rules()

    rule = rules.normalize_rule(
        {"sourceQuestionId": "q-a", "operator": "equals", "compareValue": "", "actionType": "show"}
    )

    assert rule.compare_value == ""


def test_valueless_operators_ignore_compare_value() -> None:
    rules = _rules()

    rule = rules.normalize_rule(
        {"sourceQuestionId": "q-a", "operator": "is_empty", "compareValue": "ignored", "actionType": "hide"}
    )

    assert rule.compare_value is None


def test_normalize_rules_orders_and_collects_errors() -> None:
    rules = _rules()

    normalised, errors = rules.normalize_rules(
        [
            {"id": "late", "sourceQuestionId": "q-a", "operator": "is_empty", "actionType": "show", "sortOrder": 2},
            {"id": "bad", "sourceQuestionId": "q-a", "operator": "nope", "actionType": "show"},
            {"id": "early", "sourceQuestionId": "q-a", "operator": "is_empty", "actionType": "show", "sortOrder": 1},
        ],
        question_id="q-b",
    )

    assert [rule.id for rule in normalised] == ["early", "late"]
    assert [error.rule_id for error in errors] == ["bad"]
