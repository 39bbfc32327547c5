"""Tests for answer snapshot helpers."""

from __future__ import annotations

import importlib

import pytest

from clinical_forms.form_model import Question
from clinical_forms.question_types import QuestionType


def _answers():
    return importlib.import_module("clinical_forms.answers")


@pytest.mark.parametrize(
    "type_id, expected",
    [
        (QuestionType.CHECKBOX, []),
        (QuestionType.MATRIX, {}),
        (QuestionType.TEXT, ""),
    ],
)
def test_empty_value_for_matches_question_shape(type_id, expected) -> None:
    answers = _answers()

    assert answers.empty_value_for(Question(id="q", type_id=type_id)) == expected


def test_is_empty_answer_covers_grids_and_sentinel() -> None:
    answers = _answers()

    assert answers.is_empty_answer(answers.MISSING)
    assert answers.is_empty_answer({"r1": {"c1": ""}})
    assert not answers.is_empty_answer({("r1", "c1"): "x"})
    assert not answers.is_empty_answer(0)


def test_parse_number_rejects_non_finite_and_booleans() -> None:
    answers = _answers()

    assert answers.parse_number(" 4.5 ") == 4.5
    assert answers.parse_number("nan") is None
    assert answers.parse_number(True) is None
    assert answers.parse_number("four") is None


def test_matrix_cells_flattens_nested_maps() -> None:
    answers = _answers()

    cells = answers.matrix_cells({"bathing": {"support": "full"}, ("dressing", "support"): "none"})

    assert cells == {("bathing", "support"): "full", ("dressing", "support"): "none"}
    assert sorted(answers.answer_items({"r": {"c": ["a", "b"]}})) == ["a", "b"]
