"""Tests for the tabular resolution views."""

from __future__ import annotations

import importlib

from clinical_forms.form_model import FormModel, Question, Section
from clinical_forms.question_types import QuestionType
from clinical_forms.resolver import resolve


def _form() -> FormModel:
    return FormModel(
        sections=[
            Section(
                id="s-main",
                name="Main",
                questions=[
                    Question(id="a", type_id=QuestionType.YES_NO, text="Smoker", code="smoker"),
                    Question(
                        id="b",
                        type_id=QuestionType.NUMBER,
                        text="Packs per day",
                        sort_order=1,
                        conditional_rules=[
                            {"sourceQuestionId": "a", "operator": "equals", "compareValue": "Yes", "actionType": "show"},
                            {"sourceQuestionId": "b", "operator": "is_empty", "actionType": "require"},
                        ],
                    ),
                ],
            ),
            Section(
                id="s-meds",
                name="Medication",
                sort_order=1,
                is_repeatable=True,
                questions=[Question(id="m", type_id=QuestionType.TEXT, text="Name")],
            ),
        ]
    )


def test_decision_frame_has_one_row_per_question_instance() -> None:
    decision_table = importlib.import_module("clinical_forms.decision_table")
    form = _form()

    frame = decision_table.decision_frame(form, resolve(form, {"a": "Yes", ("m", 1): "Aspirin"}))

    assert list(frame.columns) == list(decision_table.DECISION_COLUMNS)
    assert frame["Question"].tolist() == ["Smoker", "Packs per day", "Name", "Name"]
    assert frame["Instance"].tolist() == ["", "", 1, 2]
    assert frame["Type"].tolist()[:2] == ["Yes/No", "Number"]
    assert frame["Visible"].tolist() == [True, True, True, True]


def test_diagnostics_frame_lists_dropped_rules() -> None:
    decision_table = importlib.import_module("clinical_forms.decision_table")
    form = _form()

    frame = decision_table.diagnostics_frame(resolve(form, {}))

    assert list(frame.columns) == list(decision_table.DIAGNOSTIC_COLUMNS)
    assert frame["Code"].tolist() == ["forward_reference"]
    assert frame["Question"].tolist() == ["b"]


def test_diagnostics_frame_is_empty_without_problems() -> None:
    decision_table = importlib.import_module("clinical_forms.decision_table")
    form = FormModel(sections=[Section(id="s", questions=[Question(id="q", type_id=QuestionType.TEXT)])])

    frame = decision_table.diagnostics_frame(resolve(form, {}))

    assert frame.empty
