"""Tests for single-rule evaluation and answer canonicalisation."""

from __future__ import annotations

import importlib

import pytest


def _evaluator():
    return importlib.import_module("clinical_forms.evaluator")


@pytest.mark.parametrize(
    "operator, answer, compare_value, expected",
    [
        ("equals", "yes", "yes", True),
        ("equals", "", "yes", False),
        ("equals", "", "", True),
        ("not_equals", "no", "yes", True),
        ("equals", ["b", "a"], "a,b", True),
        ("equals", ["b", "a"], "b, a", True),
        ("not_equals", ["a"], "a,b", True),
        ("greater_than", "10", "9", True),
        ("greater_than", "9.5", "10", False),
        ("less_than", 3, "4", True),
        ("contains", ["a", "b"], "b", True),
        ("contains", ["a", "bc"], "b", False),
        ("contains", "chest pain", "pain", True),
        ("contains", {("r1", "c1"): "severe"}, "severe", True),
        ("equals", True, "true", True),
        ("equals", 3.0, "3", True),
    ],
)
def test_evaluate_condition_operator_table(operator, answer, compare_value, expected) -> None:
    evaluator = _evaluator()

    assert evaluator.evaluate_condition(operator, answer, compare_value) is expected


@pytest.mark.parametrize(
    "operator, answer, compare_value",
    [
        ("greater_than", "abc", "3"),
        ("greater_than", "5", "abc"),
        ("less_than", "", "3"),
        ("less_than", ["1"], "3"),
        ("greater_than", "nan", "3"),
        ("greater_than", {("r", "c"): "4"}, "3"),
    ],
)
def test_numeric_comparisons_fail_safe_to_false(operator, answer, compare_value) -> None:
    evaluator = _evaluator()

    assert evaluator.evaluate_condition(operator, answer, compare_value) is False


def test_is_empty_semantics() -> None:
    evaluator = _evaluator()
    answers = importlib.import_module("clinical_forms.answers")

    assert evaluator.evaluate_condition("is_empty", answers.MISSING, None)
    assert evaluator.evaluate_condition("is_empty", "", None)
    assert evaluator.evaluate_condition("is_empty", [], None)
    assert evaluator.evaluate_condition("is_empty", {("r", "c"): ""}, None)
    assert not evaluator.evaluate_condition("is_empty", "0", None)
    assert evaluator.evaluate_condition("is_not_empty", "0", None)


def test_evaluate_rule_reads_absent_answers_as_empty() -> None:
    evaluator = _evaluator()
    rule = {"sourceQuestionId": "q-a", "operator": "is_empty", "actionType": "show"}

    assert evaluator.evaluate_rule(rule, {}) is True
    assert evaluator.evaluate_rule(rule, {"q-a": "x"}) is False


def test_evaluate_rule_compares_against_another_question() -> None:
    evaluator = _evaluator()
    rule = {
        "sourceQuestionId": "q-systolic",
        "operator": "greater_than",
        "compareToQuestionId": "q-threshold",
        "actionType": "show",
    }

    assert evaluator.evaluate_rule(rule, {"q-systolic": "150", "q-threshold": "140"})
    assert not evaluator.evaluate_rule(rule, {"q-systolic": "120", "q-threshold": "140"})


def test_answer_text_canonicalises_grids_and_lists() -> None:
    answers = importlib.import_module("clinical_forms.answers")

    grid = {"r2": {"c1": "b"}, "r1": {"c1": "a", "c2": ""}}

    assert answers.answer_text(grid) == "r1:c1=a;r2:c1=b"
    assert answers.answer_text(["z", "a"]) == "a,z"
    assert answers.answer_text(None) == ""


def test_lookup_answer_falls_back_to_plain_key_for_first_instance() -> None:
    answers = importlib.import_module("clinical_forms.answers")
    snapshot = {"q-name": "Aspirin", ("q-name", 1): "Ibuprofen"}

    assert answers.lookup_answer(snapshot, "q-name", 0) == "Aspirin"
    assert answers.lookup_answer(snapshot, "q-name", 1) == "Ibuprofen"
    assert answers.lookup_answer(snapshot, "q-name", 2) is answers.MISSING


def test_snapshot_from_response_answers_groups_records() -> None:
    answers = importlib.import_module("clinical_forms.answers")

    snapshot = answers.snapshot_from_response_answers(
        [
            {"questionId": "q-symptoms", "answerValue": "sleep"},
            {"questionId": "q-symptoms", "answerValue": "fatigue"},
            {"questionId": "q-med", "answerValue": "Aspirin", "repeatIndex": 1},
            {"questionId": "q-adl", "answerValue": "yes", "matrixRowId": "bathing", "matrixColId": "support"},
        ]
    )

    assert snapshot["q-symptoms"] == ["sleep", "fatigue"]
    assert snapshot[("q-med", 1)] == "Aspirin"
    assert snapshot["q-adl"] == {("bathing", "support"): "yes"}
