"""Helpers for reading and canonicalising values in an answer snapshot.

An answer snapshot maps a question id, or a ``(question_id, repeat_index)``
pair for questions inside repeatable sections, to the raw value entered by
the respondent: a string, a list of strings for multi-select questions, or a
grid cell map for matrix and table questions.
"""

from __future__ import annotations

from collections.abc import Mapping
import math
from typing import Any, Dict, Hashable, Iterable, List, Optional, Set, Tuple, Union

from clinical_forms.question_types import is_grid, is_multi_select

AnswerKey = Union[str, Tuple[str, int]]
CellKey = Tuple[str, str]


class _Missing:
    """Sentinel type for an unanswered question."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

LIST_SEPARATOR = ","
CELL_SEPARATOR = ";"


def answer_key(question_id: str, repeat_index: Optional[int] = None) -> AnswerKey:
    """Return the snapshot key for ``question_id`` at ``repeat_index``."""

    if repeat_index is None:
        return question_id
    return (question_id, int(repeat_index))


def lookup_answer(
    answers: Mapping[Hashable, Any],
    question_id: str,
    repeat_index: Optional[int] = None,
) -> Any:
    """Return the stored answer or ``MISSING`` when the key is absent.

    Repeat index 0 falls back to the plain question id so snapshots from
    hosts that never key the first instance explicitly still resolve.
    """

    if repeat_index is not None:
        key = answer_key(question_id, repeat_index)
        if key in answers:
            return answers[key]
        if repeat_index != 0:
            return MISSING
    if question_id in answers:
        return answers[question_id]
    return MISSING


def empty_value_for(question: Any) -> Any:
    """Return the typed empty value used when ``question`` is unanswered."""

    type_id = getattr(question, "type_id", None)
    if is_multi_select(type_id):
        return []
    if is_grid(type_id):
        return {}
    return ""


def matrix_cells(value: Any) -> Dict[CellKey, Any]:
    """Return grid answers keyed by ``(row_id, col_id)``.

    Accepts either a flat ``{(row, col): value}`` map or a nested
    ``{row: {col: value}}`` map.
    """

    if not isinstance(value, Mapping):
        return {}
    cells: Dict[CellKey, Any] = {}
    for key, cell in value.items():
        if isinstance(key, tuple) and len(key) == 2:
            cells[(str(key[0]), str(key[1]))] = cell
        elif isinstance(cell, Mapping):
            for col_id, nested in cell.items():
                cells[(str(key), str(col_id))] = nested
    return cells


def _scalar_text(value: Any) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def answer_items(value: Any) -> List[str]:
    """Return the element texts of a multi-value answer (or grid cell values)."""

    if _is_sequence(value):
        return [_scalar_text(item) for item in value]
    if isinstance(value, Mapping):
        items: List[str] = []
        for cell in matrix_cells(value).values():
            if _is_sequence(cell):
                items.extend(_scalar_text(item) for item in cell)
            else:
                items.append(_scalar_text(cell))
        return items
    return [_scalar_text(value)]


def is_multi_value(value: Any) -> bool:
    return _is_sequence(value)


def answer_text(value: Any) -> str:
    """Return the canonical textual form of an answer.

    Lists are sorted and joined with ``,`` so selection order never affects
    equality. Grid answers become sorted ``row:col=value`` pairs joined with
    ``;``, skipping empty cells.
    """

    if _is_sequence(value):
        return LIST_SEPARATOR.join(sorted(_scalar_text(item) for item in value))
    if isinstance(value, Mapping):
        pairs = []
        for (row_id, col_id), cell in sorted(matrix_cells(value).items()):
            if is_empty_answer(cell):
                continue
            pairs.append(f"{row_id}:{col_id}={answer_text(cell)}")
        return CELL_SEPARATOR.join(pairs)
    return _scalar_text(value)


def canonical_list_text(text: str) -> str:
    """Canonicalise a comma-separated literal the same way lists are joined."""

    parts = [part.strip() for part in text.split(LIST_SEPARATOR)]
    return LIST_SEPARATOR.join(sorted(part for part in parts if part))


def is_empty_answer(value: Any) -> bool:
    """Absent, ``None``, ``""``, an empty list, or a grid with no filled cell."""

    if value is MISSING or value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if _is_sequence(value):
        return len(value) == 0
    if isinstance(value, Mapping):
        return all(is_empty_answer(cell) for cell in matrix_cells(value).values())
    return False


def parse_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` when it is not numeric."""

    if value is None or value is MISSING or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def repeat_indexes(answers: Mapping[Hashable, Any], question_ids: Iterable[str]) -> Set[int]:
    """Return the repeat indexes answered for any of ``question_ids``."""

    wanted = set(question_ids)
    indexes: Set[int] = set()
    for key in answers:
        if isinstance(key, tuple) and len(key) == 2 and key[0] in wanted:
            try:
                indexes.add(int(key[1]))
            except (TypeError, ValueError):
                continue
    return indexes


def snapshot_from_response_answers(records: Iterable[Mapping[str, Any]]) -> Dict[AnswerKey, Any]:
    """Convert saved response answer records into an answer snapshot.

    Records carry ``questionId``, ``answerValue`` and optionally
    ``repeatIndex``, ``matrixRowId`` and ``matrixColId``. Several records for
    the same key accumulate into a list (one per checked option); grid
    records fill a cell map.
    """

    snapshot: Dict[AnswerKey, Any] = {}
    for record in records:
        if not isinstance(record, Mapping):
            continue
        question_id = str(record.get("questionId") or "").strip()
        if not question_id:
            continue
        repeat_index = record.get("repeatIndex")
        key = answer_key(question_id, int(repeat_index) if repeat_index is not None else None)
        value = record.get("answerValue")
        if value is None:
            value = record.get("answerText")

        row_id = record.get("matrixRowId")
        col_id = record.get("matrixColId")
        if row_id is not None and col_id is not None:
            cells = snapshot.get(key)
            if not isinstance(cells, dict):
                cells = {}
                snapshot[key] = cells
            cells[(str(row_id), str(col_id))] = value
            continue

        if value is None:
            continue
        if key in snapshot:
            existing = snapshot[key]
            if isinstance(existing, list):
                existing.append(value)
            else:
                snapshot[key] = [existing, value]
        else:
            snapshot[key] = value
    return snapshot


__all__ = [
    "AnswerKey",
    "MISSING",
    "answer_items",
    "answer_key",
    "answer_text",
    "canonical_list_text",
    "empty_value_for",
    "is_empty_answer",
    "is_multi_value",
    "lookup_answer",
    "matrix_cells",
    "parse_number",
    "repeat_indexes",
    "snapshot_from_response_answers",
]
