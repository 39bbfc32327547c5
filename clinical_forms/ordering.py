"""Flattened question order and the rule-source constraints derived from it.

A rule may only read questions that come strictly before the question it is
attached to, where "before" means the flattened order: sections by
``sort_order``, then questions within each section by ``sort_order``. With
every edge pointing backwards the dependency graph cannot contain a cycle,
so checking each reference against this order is the cycle check.

The index is rebuilt from the form on every call; it is never cached across
structural edits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from clinical_forms.errors import FormStructureError, ForwardReferenceError, InvalidRuleError
from clinical_forms.form_model import FormModel, Question, Section, validate_form_structure
from clinical_forms.question_types import is_display_only
from clinical_forms.rules import ConditionalRule, normalize_rules


@dataclass
class FormIndex:
    """Lookup tables over one form's flattened question order."""

    ordered: List[Question] = field(default_factory=list)
    positions: Dict[str, int] = field(default_factory=dict)
    questions: Dict[str, Question] = field(default_factory=dict)
    section_of: Dict[str, Section] = field(default_factory=dict)
    sections: List[Section] = field(default_factory=list)

    def position(self, question_id: str) -> Optional[int]:
        return self.positions.get(question_id)

    def question(self, question_id: str) -> Optional[Question]:
        return self.questions.get(question_id)

    def section_for(self, question_id: str) -> Optional[Section]:
        return self.section_of.get(question_id)


def build_form_index(form: FormModel) -> FormIndex:
    """Flatten ``form`` and index it, raising on duplicate ids."""

    validate_form_structure(form)
    index = FormIndex(sections=form.sorted_sections())
    for section in index.sections:
        for question in section.sorted_questions():
            if question.id in index.positions:
                raise FormStructureError(f"Duplicate question id: {question.id}")
            index.positions[question.id] = len(index.ordered)
            index.ordered.append(question)
            index.questions[question.id] = question
            index.section_of[question.id] = section
    return index


def flatten_questions(form: FormModel) -> List[Question]:
    """Return every question in evaluation order."""

    return build_form_index(form).ordered


def available_source_questions(form: FormModel, question_id: str) -> List[Question]:
    """Return the questions a rule on ``question_id`` may read.

    These are the questions strictly before it in flattened order, excluding
    display-only types which hold no answer.
    """

    index = build_form_index(form)
    position = index.position(question_id)
    if position is None:
        return []
    return [
        candidate
        for candidate in index.ordered[:position]
        if not is_display_only(candidate.type_id)
    ]


def _check_reference(
    referenced_id: str,
    rule: ConditionalRule,
    owner_id: str,
    owner_position: int,
    index: FormIndex,
) -> None:
    source = index.question(referenced_id)
    if source is None:
        raise InvalidRuleError(
            f"Rule {rule.id} references unknown question {referenced_id}.",
            rule_id=rule.id,
            question_id=owner_id,
        )
    if referenced_id == owner_id:
        raise ForwardReferenceError(
            f"Rule {rule.id} on question {owner_id} references itself.",
            rule_id=rule.id,
            question_id=owner_id,
            source_question_id=referenced_id,
        )
    if index.positions[referenced_id] >= owner_position:
        raise ForwardReferenceError(
            f"Rule {rule.id} on question {owner_id} references later question {referenced_id}.",
            rule_id=rule.id,
            question_id=owner_id,
            source_question_id=referenced_id,
        )
    if is_display_only(source.type_id):
        raise InvalidRuleError(
            f"Rule {rule.id} reads display-only question {referenced_id}.",
            rule_id=rule.id,
            question_id=owner_id,
        )


def check_rule_reference(rule: ConditionalRule, owner_id: str, index: FormIndex) -> None:
    """Raise when ``rule`` may not read the questions it references.

    ``ForwardReferenceError`` covers self references and references at or
    after the owner's position; ``InvalidRuleError`` covers unknown (for
    example deleted) and display-only sources.
    """

    owner_position = index.position(owner_id)
    if owner_position is None:
        raise InvalidRuleError(
            f"Question {owner_id} is not part of the form.", rule_id=rule.id, question_id=owner_id
        )
    for referenced_id in rule.referenced_question_ids:
        _check_reference(referenced_id, rule, owner_id, owner_position, index)


def dependency_map(form: FormModel) -> Dict[str, Set[str]]:
    """Return ``question_id -> source ids`` for every valid rule in ``form``."""

    index = build_form_index(form)
    dependencies: Dict[str, Set[str]] = {}
    for question in index.ordered:
        rules, _ = normalize_rules(question.conditional_rules, question_id=question.id)
        sources: Set[str] = set()
        for rule in rules:
            try:
                check_rule_reference(rule, question.id, index)
            except (ForwardReferenceError, InvalidRuleError):
                continue
            sources.update(rule.referenced_question_ids)
        if sources:
            dependencies[question.id] = sources
    return dependencies


def reverse_dependencies(form: FormModel) -> Dict[str, List[str]]:
    """Return ``source_id -> dependant ids`` in flattened order.

    Hosts use this to warn before deleting or moving a question that other
    questions' rules read.
    """

    index = build_form_index(form)
    dependants: Dict[str, List[str]] = {}
    for question_id, sources in dependency_map(form).items():
        for source_id in sources:
            dependants.setdefault(source_id, []).append(question_id)
    for ids in dependants.values():
        ids.sort(key=lambda item: index.positions[item])
    return dependants


def repeat_scope(
    source_id: str,
    owner_id: Optional[str],
    index: Optional[FormIndex],
    repeat_index: Optional[int],
) -> Optional[int]:
    """Return the repeat index at which ``source_id`` is read.

    A source in the owner's own repeatable section is read at the owner's
    repeat index; a source in a different repeatable section is read at its
    first instance; a source outside any repeatable section has no index.
    """

    if index is None:
        return repeat_index
    source_section = index.section_for(source_id)
    if source_section is None or not source_section.is_repeatable:
        return None
    owner_section = index.section_for(owner_id) if owner_id else None
    if owner_section is not None and owner_section.id == source_section.id:
        return repeat_index if repeat_index is not None else 0
    return 0


__all__ = [
    "FormIndex",
    "available_source_questions",
    "build_form_index",
    "check_rule_reference",
    "dependency_map",
    "flatten_questions",
    "repeat_scope",
    "reverse_dependencies",
]
