"""Evaluation of a single conditional rule against an answer snapshot."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Hashable, Optional

from clinical_forms.answers import (
    MISSING,
    answer_items,
    answer_text,
    canonical_list_text,
    empty_value_for,
    is_empty_answer,
    is_multi_value,
    lookup_answer,
    parse_number,
)
from clinical_forms.ordering import FormIndex, repeat_scope
from clinical_forms.rules import (
    CONTAINS,
    EQUALS,
    GREATER_THAN,
    IS_EMPTY,
    IS_NOT_EMPTY,
    LESS_THAN,
    NOT_EQUALS,
    ConditionalRule,
    normalize_rule,
)


def read_answer(
    answers: Mapping[Hashable, Any],
    question_id: str,
    *,
    index: Optional[FormIndex] = None,
    owner_id: Optional[str] = None,
    repeat_index: Optional[int] = None,
) -> Any:
    """Return the answer to ``question_id`` as seen from ``owner_id``.

    Unanswered questions yield the typed empty value for their question type
    (``""``, ``[]`` for multi-select, ``{}`` for grids).
    """

    scope = repeat_scope(question_id, owner_id, index, repeat_index)
    value = lookup_answer(answers, question_id, scope)
    if value is MISSING:
        question = index.question(question_id) if index is not None else None
        return empty_value_for(question)
    return value


def _is_structured(value: Any) -> bool:
    return is_multi_value(value) or isinstance(value, Mapping)


def evaluate_condition(operator: str, answer: Any, compare_value: Any) -> bool:
    """Apply ``operator`` to ``answer`` and ``compare_value``.

    Never raises: a numeric comparison where either side does not parse as
    a number is ``False``.
    """

    if operator == IS_EMPTY:
        return is_empty_answer(answer)
    if operator == IS_NOT_EMPTY:
        return not is_empty_answer(answer)

    compare_text = compare_value if isinstance(compare_value, str) else answer_text(compare_value)

    if operator in (GREATER_THAN, LESS_THAN):
        if _is_structured(answer):
            return False
        left = parse_number(answer)
        right = parse_number(compare_text)
        if left is None or right is None:
            return False
        return left > right if operator == GREATER_THAN else left < right

    if operator == CONTAINS:
        if _is_structured(answer):
            return compare_text in answer_items(answer)
        return compare_text in answer_text(answer)

    if operator in (EQUALS, NOT_EQUALS):
        if is_multi_value(answer):
            matched = answer_text(answer) == canonical_list_text(compare_text)
        else:
            matched = answer_text(answer) == compare_text
        return matched if operator == EQUALS else not matched

    return False


def evaluate_rule(
    rule: Any,
    answers: Mapping[Hashable, Any],
    *,
    index: Optional[FormIndex] = None,
    owner_id: Optional[str] = None,
    repeat_index: Optional[int] = None,
) -> bool:
    """Return whether ``rule``'s condition holds for ``answers``.

    ``index`` supplies question types (for typed empty values) and section
    membership (for repeat scoping); without it the source is read at
    ``repeat_index`` directly and an absent answer is ``""``.
    """

    if not isinstance(rule, ConditionalRule):
        rule = normalize_rule(rule, question_id=owner_id)

    answer = read_answer(
        answers,
        rule.source_question_id,
        index=index,
        owner_id=owner_id,
        repeat_index=repeat_index,
    )
    compare_value: Any = rule.compare_value
    if rule.compare_to_question_id:
        compare_value = read_answer(
            answers,
            rule.compare_to_question_id,
            index=index,
            owner_id=owner_id,
            repeat_index=repeat_index,
        )
    return evaluate_condition(rule.operator, answer, compare_value)


__all__ = ["evaluate_condition", "evaluate_rule", "read_answer"]
