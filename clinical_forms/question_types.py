"""Lookup tables describing the behaviour of each question type."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, FrozenSet, Optional


class QuestionType(IntEnum):
    """Question types offered by the form builder palette."""

    TEXT = 1
    TEXT_AREA = 2
    NUMBER = 3
    YES_NO = 4
    MULTIPLE_CHOICE = 5
    CHECKBOX = 6
    DROPDOWN = 7
    RADIO_BUTTON = 8
    DATE = 9
    DATE_TIME = 10
    TIME = 11
    SLIDER = 12
    SCALE = 13
    FILE_UPLOAD = 14
    SIGNATURE = 15
    MATRIX = 16
    CALCULATED = 17
    DISPLAY = 18
    HIDDEN = 19
    RICH_TEXT_BLOCK = 20
    TABLE = 21


QUESTION_TYPE_NAMES: Dict[QuestionType, str] = {
    QuestionType.TEXT: "Text Input",
    QuestionType.TEXT_AREA: "Text Area",
    QuestionType.NUMBER: "Number",
    QuestionType.YES_NO: "Yes/No",
    QuestionType.MULTIPLE_CHOICE: "Multiple Choice",
    QuestionType.CHECKBOX: "Checkboxes",
    QuestionType.DROPDOWN: "Dropdown",
    QuestionType.RADIO_BUTTON: "Radio Buttons",
    QuestionType.DATE: "Date Picker",
    QuestionType.DATE_TIME: "Date & Time",
    QuestionType.TIME: "Time Picker",
    QuestionType.SLIDER: "Slider",
    QuestionType.SCALE: "Rating Scale",
    QuestionType.FILE_UPLOAD: "File Upload",
    QuestionType.SIGNATURE: "Signature",
    QuestionType.MATRIX: "Matrix",
    QuestionType.CALCULATED: "Calculated",
    QuestionType.DISPLAY: "Display Text",
    QuestionType.HIDDEN: "Hidden Field",
    QuestionType.RICH_TEXT_BLOCK: "Rich Text Block",
    QuestionType.TABLE: "Table",
}

OPTION_TYPES: FrozenSet[QuestionType] = frozenset(
    {
        QuestionType.MULTIPLE_CHOICE,
        QuestionType.CHECKBOX,
        QuestionType.DROPDOWN,
        QuestionType.RADIO_BUTTON,
        QuestionType.SCALE,
    }
)
DISPLAY_ONLY_TYPES: FrozenSet[QuestionType] = frozenset(
    {QuestionType.DISPLAY, QuestionType.RICH_TEXT_BLOCK, QuestionType.HIDDEN}
)
MULTI_SELECT_TYPES: FrozenSet[QuestionType] = frozenset({QuestionType.CHECKBOX})
GRID_TYPES: FrozenSet[QuestionType] = frozenset({QuestionType.MATRIX, QuestionType.TABLE})
NUMERIC_TYPES: FrozenSet[QuestionType] = frozenset(
    {QuestionType.NUMBER, QuestionType.SLIDER, QuestionType.SCALE, QuestionType.CALCULATED}
)

COLUMN_INPUT_TYPES: FrozenSet[str] = frozenset({"text", "number", "radio", "checkbox", "dropdown"})
DEFAULT_COLUMN_INPUT_TYPE = "text"

# "MultipleChoice", "multiple_choice" and "MULTIPLE CHOICE" all map to one member.
_TYPES_BY_COMPACT_NAME: Dict[str, QuestionType] = {
    member.name.replace("_", ""): member for member in QuestionType
}


def coerce_question_type(value: Any) -> Optional[QuestionType]:
    """Return the ``QuestionType`` for ``value`` or ``None`` when unknown."""

    if isinstance(value, QuestionType):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            value = int(text)
        else:
            key = "".join(char for char in text.upper() if char.isalnum())
            return _TYPES_BY_COMPACT_NAME.get(key)
    try:
        return QuestionType(int(value))
    except (TypeError, ValueError):
        return None


def question_type_name(type_id: Any) -> str:
    """Return the palette label for ``type_id``."""

    question_type = coerce_question_type(type_id)
    if question_type is None:
        return "Unknown"
    return QUESTION_TYPE_NAMES[question_type]


def supports_options(type_id: Any) -> bool:
    return coerce_question_type(type_id) in OPTION_TYPES


def is_display_only(type_id: Any) -> bool:
    """Display-only questions hold no answer and never gate another question."""

    return coerce_question_type(type_id) in DISPLAY_ONLY_TYPES


def is_multi_select(type_id: Any) -> bool:
    return coerce_question_type(type_id) in MULTI_SELECT_TYPES


def is_grid(type_id: Any) -> bool:
    return coerce_question_type(type_id) in GRID_TYPES


def is_numeric(type_id: Any) -> bool:
    return coerce_question_type(type_id) in NUMERIC_TYPES


__all__ = [
    "COLUMN_INPUT_TYPES",
    "DEFAULT_COLUMN_INPUT_TYPE",
    "DISPLAY_ONLY_TYPES",
    "GRID_TYPES",
    "MULTI_SELECT_TYPES",
    "NUMERIC_TYPES",
    "OPTION_TYPES",
    "QUESTION_TYPE_NAMES",
    "QuestionType",
    "coerce_question_type",
    "is_display_only",
    "is_grid",
    "is_multi_select",
    "is_numeric",
    "question_type_name",
    "supports_options",
]
