"""Answer validation and completeness checks that honour resolved state."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePath
import re
from typing import Any, Hashable, List, Optional

from clinical_forms.answers import (
    MISSING,
    answer_items,
    is_empty_answer,
    is_multi_value,
    lookup_answer,
    matrix_cells,
    parse_number,
)
from clinical_forms.form_model import FormModel, Question
from clinical_forms.question_types import (
    QuestionType,
    is_display_only,
    is_grid,
    is_numeric,
    supports_options,
)
from clinical_forms.resolver import Resolution, resolve


def is_answered(question: Question, value: Any) -> bool:
    """Return ``True`` when ``value`` counts as an answer for ``question``."""

    if value is MISSING or value is None:
        return False
    if is_grid(question.type_id):
        return isinstance(value, Mapping) and not is_empty_answer(value)
    if is_multi_value(value):
        return any(str(item).strip() for item in value)
    if isinstance(value, str):
        return bool(value.strip())
    return not is_empty_answer(value)


def _counts_towards_completion(question: Question) -> bool:
    return question.is_active and not is_display_only(question.type_id)


def _instances(question: Question, resolution: Resolution) -> List[Optional[int]]:
    indexes = sorted(
        repeat_index
        for (question_id, repeat_index) in resolution.instances
        if question_id == question.id
    )
    return list(indexes) or [None]


def collect_missing_required_questions(
    form: FormModel,
    answers: Mapping[Hashable, Any],
    resolution: Optional[Resolution] = None,
) -> List[str]:
    """Return labels of required questions that still need an answer.

    Only visible, enabled and active questions that hold a value are
    considered; a hidden question is never reported however it is flagged.
    Instances of repeatable sections are reported as ``label (#n)``.
    """

    resolution = resolution or resolve(form, answers)
    missing: List[str] = []
    for question in form.iter_questions():
        if not _counts_towards_completion(question):
            continue
        for repeat_index in _instances(question, resolution):
            state = resolution.state_for(question.id, repeat_index)
            if not (state.visible and state.enabled and state.required):
                continue
            if is_answered(question, lookup_answer(answers, question.id, repeat_index)):
                continue
            label = question.label
            if repeat_index is not None and repeat_index > 0:
                label = f"{label} (#{repeat_index + 1})"
            missing.append(label)
    return missing


def _option_tokens(question: Question) -> List[str]:
    tokens: List[str] = []
    for option in question.options:
        tokens.extend(token for token in (option.value, option.text, option.id) if token)
    return tokens


def _validate_number(question: Question, value: Any) -> List[str]:
    number = parse_number(value)
    if number is None:
        return [f"{question.label} must be a number."]
    bounds = question.validation
    errors: List[str] = []
    if bounds.min_value is not None and number < bounds.min_value:
        errors.append(f"{question.label} must be at least {bounds.min_value:g}.")
    if bounds.max_value is not None and number > bounds.max_value:
        errors.append(f"{question.label} must be at most {bounds.max_value:g}.")
    return errors


def _validate_text(question: Question, text: str) -> List[str]:
    bounds = question.validation
    errors: List[str] = []
    if bounds.min_length is not None and len(text) < bounds.min_length:
        errors.append(f"{question.label} must be at least {bounds.min_length} characters.")
    if bounds.max_length is not None and len(text) > bounds.max_length:
        errors.append(f"{question.label} must be at most {bounds.max_length} characters.")
    if bounds.regex_pattern:
        try:
            matched = re.fullmatch(bounds.regex_pattern, text) is not None
        except re.error:
            matched = True
        if not matched:
            errors.append(bounds.regex_error_message or f"{question.label} has an invalid format.")
    return errors


def _validate_grid(question: Question, value: Any) -> List[str]:
    if not isinstance(value, Mapping):
        return [f"{question.label} expects a grid answer."]
    row_ids = {row.id for row in question.rows}
    col_ids = {col.id for col in question.cols}
    errors: List[str] = []
    for row_id, col_id in sorted(matrix_cells(value)):
        if row_ids and row_id not in row_ids:
            errors.append(f"{question.label} has no row {row_id!r}.")
        if col_ids and col_id not in col_ids:
            errors.append(f"{question.label} has no column {col_id!r}.")
    return errors


def _validate_files(question: Question, value: Any) -> List[str]:
    constraints = question.file_constraints
    if constraints is None:
        return []
    files = list(value) if is_multi_value(value) else [value]
    errors: List[str] = []
    if constraints.max_files is not None and len(files) > constraints.max_files:
        errors.append(f"{question.label} accepts at most {constraints.max_files} files.")
    for entry in files:
        if isinstance(entry, Mapping):
            name = str(entry.get("name") or entry.get("fileName") or "")
            size = parse_number(entry.get("size"))
        else:
            name, size = str(entry), None
        extension = PurePath(name).suffix.lower().lstrip(".")
        if constraints.allowed_extensions and extension not in constraints.allowed_extensions:
            errors.append(f"{name or 'File'} is not an allowed file type.")
        if (
            constraints.max_size_mb is not None
            and size is not None
            and size > constraints.max_size_mb * 1024 * 1024
        ):
            errors.append(f"{name or 'File'} exceeds {constraints.max_size_mb:g} MB.")
    return errors


def validate_answer(question: Question, value: Any) -> List[str]:
    """Return validation messages for ``value``; an empty list means valid.

    Unanswered values are valid here; required checks belong to
    ``collect_missing_required_questions``.
    """

    if not is_answered(question, value) or is_display_only(question.type_id):
        return []
    if is_grid(question.type_id):
        return _validate_grid(question, value)
    if question.question_type is QuestionType.FILE_UPLOAD:
        return _validate_files(question, value)
    if supports_options(question.type_id) and question.options:
        tokens = _option_tokens(question)
        unknown = [item for item in answer_items(value) if item not in tokens]
        return [f"{item!r} is not an option of {question.label}." for item in unknown]
    if is_numeric(question.type_id):
        return _validate_number(question, value)
    return _validate_text(question, str(value))


def completion_percentage(
    form: FormModel,
    answers: Mapping[Hashable, Any],
    resolution: Optional[Resolution] = None,
) -> int:
    """Return the share of visible answerable questions that are answered."""

    resolution = resolution or resolve(form, answers)
    total = 0
    answered = 0
    for question in form.iter_questions():
        if not _counts_towards_completion(question):
            continue
        for repeat_index in _instances(question, resolution):
            if not resolution.state_for(question.id, repeat_index).visible:
                continue
            total += 1
            if is_answered(question, lookup_answer(answers, question.id, repeat_index)):
                answered += 1
    if total == 0:
        return 0
    return round(answered * 100 / total)


__all__ = [
    "collect_missing_required_questions",
    "completion_percentage",
    "is_answered",
    "validate_answer",
]
