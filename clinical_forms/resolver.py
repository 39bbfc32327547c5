"""Resolve the effective visible/enabled/required state of every question.

``resolve`` is a pure function of a form and an answer snapshot: it keeps
nothing between calls and never mutates its inputs, so hosts may call it
after every keystroke, redundantly, or debounced. Problems with individual
rules are absorbed and returned as diagnostics; only a form whose ids are
not unique raises, because the decision map could not be keyed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Hashable, List, Mapping, Optional, Set, Tuple

from clinical_forms.answers import repeat_indexes
from clinical_forms.calculations import with_calculated_values
from clinical_forms.errors import ForwardReferenceError, InvalidRuleError
from clinical_forms.evaluator import evaluate_rule
from clinical_forms.form_model import FormModel, Question, Section, duplicate_sort_orders
from clinical_forms.ordering import FormIndex, build_form_index, check_rule_reference
from clinical_forms.rules import (
    ACTION_TYPES,
    AND,
    DISABLE,
    ENABLE,
    HIDE,
    REQUIRE,
    SHOW,
    ConditionalRule,
    normalize_rules,
)

logger = logging.getLogger(__name__)

INVALID_RULE = "invalid_rule"
FORWARD_REFERENCE = "forward_reference"
MIXED_JOIN_TYPE = "mixed_join_type"
CALCULATION_ERROR = "calculation_error"
DUPLICATE_SORT_ORDER = "duplicate_sort_order"
REPEAT_INDEX_OUT_OF_RANGE = "repeat_index_out_of_range"

# Upper bound on instances of a repeatable section without a maxRepeat.
MAX_REPEAT_INSTANCES = 100


@dataclass(frozen=True)
class EffectiveState:
    visible: bool = True
    enabled: bool = True
    required: bool = False


@dataclass(frozen=True)
class Diagnostic:
    """A problem found while resolving; never fatal to the resolution."""

    code: str
    question_id: Optional[str]
    message: str
    rule_id: Optional[str] = None


@dataclass
class Resolution:
    """Decisions for one ``(form, answers)`` pair.

    ``questions`` and ``sections`` hold the decision per id; for questions in
    repeatable sections they describe the first instance, while
    ``instances`` and ``section_instances`` hold every instance keyed by
    ``(id, repeat_index)``.
    """

    questions: Dict[str, EffectiveState] = field(default_factory=dict)
    sections: Dict[str, bool] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    instances: Dict[Tuple[str, int], EffectiveState] = field(default_factory=dict)
    section_instances: Dict[Tuple[str, int], bool] = field(default_factory=dict)

    def state_for(self, question_id: str, repeat_index: Optional[int] = None) -> EffectiveState:
        if repeat_index is not None and (question_id, repeat_index) in self.instances:
            return self.instances[(question_id, repeat_index)]
        return self.questions[question_id]

    def is_visible(self, question_id: str, repeat_index: Optional[int] = None) -> bool:
        return self.state_for(question_id, repeat_index).visible


@dataclass(frozen=True)
class _RuleGroup:
    """Rules for one action, each paired with whether it may ever be true."""

    join_type: str
    members: Tuple[Tuple[ConditionalRule, bool], ...]


def _report_sort_order_clashes(
    question: Question, rules: List[ConditionalRule], diagnostics: List[Diagnostic]
) -> None:
    for kind, values in (
        ("option", [option.sort_order for option in question.options]),
        ("rule", [rule.sort_order for rule in rules]),
    ):
        clashes = duplicate_sort_orders(values)
        if clashes:
            orders = ", ".join(str(value) for value in clashes)
            diagnostics.append(
                Diagnostic(
                    DUPLICATE_SORT_ORDER,
                    question.id,
                    f"Question {question.id} repeats {kind} sortOrder {orders}; list position breaks the tie.",
                )
            )


def _usable_rules(
    question: Question, index: FormIndex, diagnostics: List[Diagnostic]
) -> List[Tuple[ConditionalRule, bool]]:
    """Normalise ``question``'s rules and pair each with whether it may apply.

    Malformed rules and rules reading unknown questions are dropped. Forward
    and self references stay in their group but always evaluate false.
    """

    rules, errors = normalize_rules(question.conditional_rules, question_id=question.id)
    for error in errors:
        logger.warning(
            "Dropping rule %s on question %s: %s",
            error.rule_id,
            question.id,
            error,
            extra={"question_id": question.id, "rule_id": error.rule_id},
        )
        diagnostics.append(
            Diagnostic(INVALID_RULE, question.id, str(error), rule_id=error.rule_id)
        )
    _report_sort_order_clashes(question, rules, diagnostics)

    usable: List[Tuple[ConditionalRule, bool]] = []
    for rule in rules:
        try:
            check_rule_reference(rule, question.id, index)
        except ForwardReferenceError as exc:
            logger.warning(
                "Rule %s on question %s is always false: %s",
                rule.id,
                question.id,
                exc,
                extra={"question_id": question.id, "rule_id": rule.id},
            )
            diagnostics.append(Diagnostic(FORWARD_REFERENCE, question.id, str(exc), rule_id=rule.id))
            usable.append((rule, False))
            continue
        except InvalidRuleError as exc:
            logger.warning(
                "Dropping rule %s on question %s: %s",
                rule.id,
                question.id,
                exc,
                extra={"question_id": question.id, "rule_id": rule.id},
            )
            diagnostics.append(Diagnostic(INVALID_RULE, question.id, str(exc), rule_id=rule.id))
            continue
        usable.append((rule, True))
    return usable


def _group_rules(
    question_id: str, rules: List[Tuple[ConditionalRule, bool]], diagnostics: List[Diagnostic]
) -> Dict[str, _RuleGroup]:
    """Partition rules by action; each group joins with its first rule's join type."""

    grouped: Dict[str, List[Tuple[ConditionalRule, bool]]] = {}
    for rule, applies in rules:
        grouped.setdefault(rule.action_type, []).append((rule, applies))

    groups: Dict[str, _RuleGroup] = {}
    for action in ACTION_TYPES:
        members = grouped.get(action)
        if not members:
            continue
        first = members[0][0]
        join_type = first.join_type
        if any(rule.join_type != join_type for rule, _ in members):
            diagnostics.append(
                Diagnostic(
                    MIXED_JOIN_TYPE,
                    question_id,
                    f"Rules in the {action!r} group disagree on join type; using {join_type}.",
                    rule_id=first.id,
                )
            )
        groups[action] = _RuleGroup(join_type=join_type, members=tuple(members))
    return groups


def _group_result(
    group: Optional[_RuleGroup],
    answers: Mapping[Hashable, Any],
    index: FormIndex,
    owner_id: str,
    repeat_index: Optional[int],
) -> Optional[bool]:
    """Combine a group's rule outcomes; ``None`` means the group is empty."""

    if group is None:
        return None
    outcomes = (
        applies
        and evaluate_rule(rule, answers, index=index, owner_id=owner_id, repeat_index=repeat_index)
        for rule, applies in group.members
    )
    if group.join_type == AND:
        return all(outcomes)
    return any(outcomes)


def _question_state(
    question: Question,
    groups: Mapping[str, _RuleGroup],
    answers: Mapping[Hashable, Any],
    index: FormIndex,
    repeat_index: Optional[int],
) -> EffectiveState:
    def result(action: str) -> Optional[bool]:
        return _group_result(groups.get(action), answers, index, question.id, repeat_index)

    shown = result(SHOW)
    hidden = result(HIDE)
    enabled = result(ENABLE)
    disabled = result(DISABLE)
    required = result(REQUIRE)

    return EffectiveState(
        visible=(True if shown is None else shown) and not (hidden or False),
        enabled=(True if enabled is None else enabled) and not (disabled or False),
        required=bool(question.is_required) or bool(required),
    )


def repeat_limit(section: Section) -> int:
    """Return the most instances ``section`` may have.

    ``max_repeat`` when the author set one, otherwise ``MAX_REPEAT_INSTANCES``.
    """

    if section.max_repeat is not None and section.max_repeat > 0:
        return section.max_repeat
    return MAX_REPEAT_INSTANCES


def _answered_indexes(section: Section, answers: Mapping[Hashable, Any]) -> Set[int]:
    return repeat_indexes(answers, [question.id for question in section.questions])


def instance_count(
    section: Section, answers: Mapping[Hashable, Any], requested: int = 0
) -> int:
    """Return how many instances of a repeatable section to resolve.

    At least ``min_repeat`` (or ``requested`` when the host has added empty
    instances), extended to cover the highest answered repeat index below
    the section's limit, and never more than that limit.
    """

    if not section.is_repeatable:
        return 1
    limit = repeat_limit(section)
    answered = [value for value in _answered_indexes(section, answers) if 0 <= value < limit]
    count = max(section.min_repeat, requested, 1, max(answered) + 1 if answered else 0)
    return min(count, limit)


def _report_out_of_range(
    section: Section, answers: Mapping[Hashable, Any], diagnostics: List[Diagnostic]
) -> None:
    limit = repeat_limit(section)
    ignored = sorted(
        value for value in _answered_indexes(section, answers) if value < 0 or value >= limit
    )
    if not ignored:
        return
    logger.warning("Ignoring answers at repeat indexes %s in section %s", ignored, section.id)
    diagnostics.append(
        Diagnostic(
            REPEAT_INDEX_OUT_OF_RANGE,
            None,
            f"Section {section.id} allows repeat indexes 0 to {limit - 1}; "
            f"answers at {', '.join(str(value) for value in ignored)} are ignored.",
        )
    )


def _section_visible(states: List[EffectiveState]) -> bool:
    # Empty sections stay visible so authors can add content.
    return not states or any(state.visible for state in states)


def resolve(
    form: FormModel,
    answers: Mapping[Hashable, Any],
    *,
    instance_counts: Optional[Mapping[str, int]] = None,
) -> Resolution:
    """Return the effective state of every question and section in ``form``.

    ``instance_counts`` lets a host ask for more instances of a repeatable
    section than its answers imply.

    Raises ``FormStructureError`` when section, question, option or grid ids
    are not unique. Every other problem becomes a ``Diagnostic``.
    """

    index = build_form_index(form)
    resolution = Resolution()
    diagnostics = resolution.diagnostics

    requested = instance_counts or {}
    counts = {
        section.id: instance_count(section, answers, requested.get(section.id, 0))
        for section in index.sections
    }
    for section in index.sections:
        if section.is_repeatable:
            _report_out_of_range(section, answers, diagnostics)
    snapshot, calculation_errors = with_calculated_values(
        form,
        answers,
        index=index,
        repeat_indexes={
            section.id: range(counts[section.id])
            for section in index.sections
            if section.is_repeatable
        },
    )
    for error in calculation_errors:
        diagnostics.append(Diagnostic(CALCULATION_ERROR, error.question_id, str(error)))

    for section in index.sections:
        questions = section.sorted_questions()
        grouped = {
            question.id: _group_rules(
                question.id, _usable_rules(question, index, diagnostics), diagnostics
            )
            for question in questions
        }

        if not section.is_repeatable:
            states = []
            for question in questions:
                state = _question_state(question, grouped[question.id], snapshot, index, None)
                resolution.questions[question.id] = state
                states.append(state)
            resolution.sections[section.id] = _section_visible(states)
            continue

        any_instance_visible = False
        for repeat_index in range(counts[section.id]):
            states = []
            for question in questions:
                state = _question_state(
                    question, grouped[question.id], snapshot, index, repeat_index
                )
                resolution.instances[(question.id, repeat_index)] = state
                if repeat_index == 0:
                    resolution.questions[question.id] = state
                states.append(state)
            visible = _section_visible(states)
            resolution.section_instances[(section.id, repeat_index)] = visible
            any_instance_visible = any_instance_visible or visible
        resolution.sections[section.id] = any_instance_visible

    logger.debug(
        "Resolved %d questions in %d sections with %d diagnostics",
        len(resolution.questions),
        len(resolution.sections),
        len(diagnostics),
    )
    return resolution


__all__ = [
    "CALCULATION_ERROR",
    "DUPLICATE_SORT_ORDER",
    "Diagnostic",
    "EffectiveState",
    "FORWARD_REFERENCE",
    "INVALID_RULE",
    "MAX_REPEAT_INSTANCES",
    "MIXED_JOIN_TYPE",
    "REPEAT_INDEX_OUT_OF_RANGE",
    "Resolution",
    "instance_count",
    "repeat_limit",
    "resolve",
]
