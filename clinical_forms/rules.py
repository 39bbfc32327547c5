"""Conditional rule schema and normalisation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Iterable, List, Optional, Tuple

from clinical_forms.errors import InvalidRuleError

EQUALS = "equals"
NOT_EQUALS = "not_equals"
GREATER_THAN = "greater_than"
LESS_THAN = "less_than"
CONTAINS = "contains"
IS_EMPTY = "is_empty"
IS_NOT_EMPTY = "is_not_empty"

OPERATORS: Tuple[str, ...] = (
    EQUALS,
    NOT_EQUALS,
    GREATER_THAN,
    LESS_THAN,
    CONTAINS,
    IS_EMPTY,
    IS_NOT_EMPTY,
)
VALUELESS_OPERATORS = frozenset({IS_EMPTY, IS_NOT_EMPTY})

SHOW = "show"
HIDE = "hide"
ENABLE = "enable"
DISABLE = "disable"
REQUIRE = "require"

ACTION_TYPES: Tuple[str, ...] = (SHOW, HIDE, ENABLE, DISABLE, REQUIRE)

AND = "AND"
OR = "OR"
JOIN_TYPES: Tuple[str, ...] = (AND, OR)
DEFAULT_JOIN_TYPE = AND


@dataclass(frozen=True)
class ConditionalRule:
    """A normalised rule attached to the question it acts upon."""

    id: str
    source_question_id: str
    operator: str
    action_type: str
    compare_value: Optional[str] = None
    join_type: str = DEFAULT_JOIN_TYPE
    sort_order: int = 0
    compare_to_question_id: Optional[str] = None
    rule_group_id: Optional[str] = None

    @property
    def referenced_question_ids(self) -> Tuple[str, ...]:
        """Return every question whose answer this rule reads."""

        if self.compare_to_question_id:
            return (self.source_question_id, self.compare_to_question_id)
        return (self.source_question_id,)


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _clean_token(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _literal_text(value: Any) -> str:
    """Render a compare value literal as the text answers are compared with."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_rule(
    raw: Any,
    *,
    question_id: Optional[str] = None,
    index: int = 0,
) -> ConditionalRule:
    """Validate ``raw`` and return a ``ConditionalRule``.

    ``raw`` may use the builder's camelCase keys or snake_case keys, and may
    already be a ``ConditionalRule`` (which is re-validated). Operator,
    action and join tokens are matched case-insensitively.
    """

    if isinstance(raw, ConditionalRule):
        raw = asdict(raw)
    if not isinstance(raw, Mapping):
        raise InvalidRuleError(
            f"Rule #{index + 1} is not an object.", question_id=question_id
        )

    rule_id = _clean_token(_first_present(raw, "id", "ruleId", "rule_id"))
    if not rule_id:
        rule_id = f"{question_id or 'question'}:rule-{index + 1}"

    operator = _clean_token(raw.get("operator")).lower()
    if operator not in OPERATORS:
        raise InvalidRuleError(
            f"Unsupported operator {raw.get('operator')!r}.",
            rule_id=rule_id,
            question_id=question_id,
        )

    action_type = _clean_token(_first_present(raw, "actionType", "action_type")).lower()
    if action_type not in ACTION_TYPES:
        raise InvalidRuleError(
            f"Unsupported action type {_first_present(raw, 'actionType', 'action_type')!r}.",
            rule_id=rule_id,
            question_id=question_id,
        )

    join_type = _clean_token(_first_present(raw, "joinType", "join_type")).upper() or DEFAULT_JOIN_TYPE
    if join_type not in JOIN_TYPES:
        raise InvalidRuleError(
            f"Unsupported join type {join_type!r}.",
            rule_id=rule_id,
            question_id=question_id,
        )

    source_question_id = _clean_token(_first_present(raw, "sourceQuestionId", "source_question_id"))
    if not source_question_id:
        raise InvalidRuleError(
            "Rule has no source question.", rule_id=rule_id, question_id=question_id
        )

    compare_to_question_id = (
        _clean_token(_first_present(raw, "compareToQuestionId", "compare_to_question_id")) or None
    )

    compare_value: Optional[str] = None
    if operator not in VALUELESS_OPERATORS:
        literal = _first_present(raw, "compareValue", "compare_value", "value")
        if literal is not None:
            compare_value = _literal_text(literal)
        elif compare_to_question_id is None:
            raise InvalidRuleError(
                f"Operator {operator!r} requires a compare value.",
                rule_id=rule_id,
                question_id=question_id,
            )
    else:
        compare_to_question_id = None

    sort_order = _first_present(raw, "sortOrder", "sort_order")
    try:
        sort_order = int(sort_order) if sort_order is not None else index
    except (TypeError, ValueError):
        sort_order = index

    rule_group_id = _clean_token(_first_present(raw, "ruleGroupId", "rule_group_id")) or None

    return ConditionalRule(
        id=rule_id,
        source_question_id=source_question_id,
        operator=operator,
        action_type=action_type,
        compare_value=compare_value,
        join_type=join_type,
        sort_order=sort_order,
        compare_to_question_id=compare_to_question_id,
        rule_group_id=rule_group_id,
    )


def normalize_rules(
    raw_rules: Iterable[Any],
    *,
    question_id: Optional[str] = None,
) -> Tuple[List[ConditionalRule], List[InvalidRuleError]]:
    """Normalise a question's rule list, collecting failures instead of raising.

    Returns the valid rules ordered by ``sort_order`` (list position breaks
    ties) together with the errors for the rules that were dropped.
    """

    rules: List[Tuple[int, int, ConditionalRule]] = []
    errors: List[InvalidRuleError] = []
    for index, raw in enumerate(raw_rules or []):
        try:
            rule = normalize_rule(raw, question_id=question_id, index=index)
        except InvalidRuleError as exc:
            errors.append(exc)
            continue
        rules.append((rule.sort_order, index, rule))

    rules.sort(key=lambda item: (item[0], item[1]))
    return [rule for _, _, rule in rules], errors


__all__ = [
    "ACTION_TYPES",
    "AND",
    "CONTAINS",
    "ConditionalRule",
    "DEFAULT_JOIN_TYPE",
    "DISABLE",
    "ENABLE",
    "EQUALS",
    "GREATER_THAN",
    "HIDE",
    "IS_EMPTY",
    "IS_NOT_EMPTY",
    "JOIN_TYPES",
    "LESS_THAN",
    "NOT_EQUALS",
    "OPERATORS",
    "OR",
    "REQUIRE",
    "SHOW",
    "VALUELESS_OPERATORS",
    "normalize_rule",
    "normalize_rules",
]
