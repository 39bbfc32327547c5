"""Tests for answer validation and completeness checks."""

from __future__ import annotations

import importlib

import pytest

from clinical_forms.form_model import (
    FileConstraints,
    FormModel,
    Question,
    QuestionOption,
    Section,
    TableColumn,
    TableRow,
    ValidationBounds,
)
from clinical_forms.question_types import QuestionType


def _validation():
    return importlib.import_module("clinical_forms.validation")


def _consent_form() -> FormModel:
    enable_when_consented = [
        {"sourceQuestionId": "consent", "operator": "equals", "compareValue": "Yes", "actionType": "enable"}
    ]
    show_when_consented = [
        {"sourceQuestionId": "consent", "operator": "equals", "compareValue": "Yes", "actionType": "show"}
    ]
    return FormModel(
        sections=[
            Section(
                id="s-main",
                questions=[
                    Question(id="consent", type_id=QuestionType.YES_NO, text="Consent", sort_order=0, is_required=True),
                    Question(
                        id="age",
                        type_id=QuestionType.NUMBER,
                        text="Age",
                        sort_order=1,
                        is_required=True,
                        conditional_rules=enable_when_consented,
                    ),
                    Question(
                        id="history",
                        type_id=QuestionType.TEXT_AREA,
                        text="History",
                        sort_order=2,
                        is_required=True,
                        conditional_rules=show_when_consented,
                    ),
                    Question(id="retired", type_id=QuestionType.TEXT, text="Retired", sort_order=3, is_required=True, is_active=False),
                    Question(id="note", type_id=QuestionType.DISPLAY, text="Note", sort_order=4, is_required=True),
                ],
            ),
            Section(
                id="s-meds",
                sort_order=1,
                is_repeatable=True,
                questions=[Question(id="med", type_id=QuestionType.TEXT, text="Medication", is_required=True)],
            ),
        ]
    )


@pytest.mark.parametrize(
    "type_id, value, expected",
    [
        (QuestionType.TEXT, "  ", False),
        (QuestionType.TEXT, "0", True),
        (QuestionType.CHECKBOX, [], False),
        (QuestionType.CHECKBOX, ["a"], True),
        (QuestionType.MATRIX, {}, False),
        (QuestionType.MATRIX, {("r", "c"): "x"}, True),
        (QuestionType.NUMBER, 0, True),
    ],
)
def test_is_answered_by_type(type_id, value, expected) -> None:
    validation = _validation()

    assert validation.is_answered(Question(id="q", type_id=type_id), value) is expected


def test_missing_required_skips_hidden_disabled_inactive_and_display() -> None:
    validation = _validation()
    form = _consent_form()

    assert validation.collect_missing_required_questions(form, {}) == ["Consent", "Medication"]
    assert validation.collect_missing_required_questions(
        form, {"consent": "Yes", ("med", 0): "Aspirin", ("med", 1): ""}
    ) == ["Age", "History", "Medication (#2)"]


def test_completion_percentage_counts_visible_answerable_questions() -> None:
    validation = _validation()
    form = _consent_form()

    # consent, age and med are visible; history is hidden until consent is given.
    assert validation.completion_percentage(form, {"consent": "No"}) == 33
    assert validation.completion_percentage(FormModel(sections=[Section(id="s")]), {}) == 0


def test_validate_answer_numeric_bounds() -> None:
    validation = _validation()
    question = Question(
        id="age",
        type_id=QuestionType.NUMBER,
        text="Age",
        validation=ValidationBounds(min_value=0, max_value=120),
    )

    assert validation.validate_answer(question, "42") == []
    assert validation.validate_answer(question, "") == []
    assert validation.validate_answer(question, "130") == ["Age must be at most 120."]
    assert validation.validate_answer(question, "old") == ["Age must be a number."]


def test_validate_answer_text_rules_use_author_message() -> None:
    validation = _validation()
    question = Question(
        id="nhs",
        type_id=QuestionType.TEXT,
        text="NHS number",
        validation=ValidationBounds(regex_pattern=r"\d{10}", regex_error_message="Enter 10 digits.", max_length=10),
    )

    assert validation.validate_answer(question, "9434765919") == []
    assert validation.validate_answer(question, "943476") == ["Enter 10 digits."]


def test_validate_answer_options_grids_and_files() -> None:
    validation = _validation()
    choice = Question(
        id="colour",
        type_id=QuestionType.DROPDOWN,
        text="Colour",
        options=[QuestionOption(id="o-red", text="Red", value="red")],
    )
    grid = Question(
        id="adl",
        type_id=QuestionType.MATRIX,
        text="ADL",
        rows=[TableRow(id="bathing", label="Bathing")],
        cols=[TableColumn(id="support", label="Support")],
    )
    upload = Question(
        id="scan",
        type_id=QuestionType.FILE_UPLOAD,
        text="Scan",
        file_constraints=FileConstraints(allowed_extensions=["pdf"], max_size_mb=1, max_files=1),
    )

    assert validation.validate_answer(choice, "red") == []
    assert validation.validate_answer(choice, "blue") == ["'blue' is not an option of Colour."]
    assert validation.validate_answer(grid, {("bathing", "support"): "yes"}) == []
    assert validation.validate_answer(grid, {("eating", "support"): "yes"}) == ["ADL has no row 'eating'."]
    assert validation.validate_answer(upload, [{"name": "scan.pdf", "size": 1024}]) == []
    assert validation.validate_answer(upload, [{"name": "scan.exe", "size": 3 * 1024 * 1024}]) == [
        "scan.exe is not an allowed file type.",
        "scan.exe exceeds 1 MB.",
    ]
