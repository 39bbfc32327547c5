"""Formula evaluation for calculated questions.

Formulas are arithmetic over question references written in braces, for
example ``{phq_1} + {phq_2} * 2`` or ``round({weight} / ({height} ** 2), 1)``.
A reference may name a question id or its question code. Formulas are
parsed with ``ast`` and interpreted over a whitelist of nodes; nothing is
handed to ``eval``.
"""

from __future__ import annotations

import ast
from collections.abc import Mapping
from dataclasses import dataclass
import logging
import operator
import re
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from clinical_forms.answers import MISSING, answer_key, is_empty_answer, lookup_answer, parse_number
from clinical_forms.errors import CalculationError
from clinical_forms.form_model import FormModel, Question
from clinical_forms.ordering import FormIndex, build_form_index, repeat_scope
from clinical_forms.question_types import QuestionType

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(r"\{\s*([^{}]+?)\s*\}")
_PLACEHOLDER_PREFIX = "__ref_"

_BINARY_OPERATORS: Dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPERATORS: Dict[type, Callable[[float], float]] = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def _round(value: float, digits: float = 0) -> float:
    return float(round(value, int(digits)))


ALLOWED_FUNCTIONS: Dict[str, Callable[..., float]] = {
    "abs": abs,
    "max": max,
    "min": min,
    "round": _round,
    "sum": lambda *values: sum(values),
}

YES_TOKENS = frozenset({"yes", "true", "y"})
NO_TOKENS = frozenset({"no", "false", "n"})


@dataclass(frozen=True)
class FormulaProgram:
    """A validated formula ready to be evaluated repeatedly."""

    source: str
    tree: ast.Expression
    references: Tuple[str, ...]

    def evaluate(self, resolve: Callable[[str], Optional[float]]) -> Optional[float]:
        """Evaluate with ``resolve`` mapping a reference token to a number.

        Returns ``None`` when a reference has no numeric value or the
        arithmetic fails (division by zero, overflow).
        """

        values: Dict[str, float] = {}
        for position, token in enumerate(self.references):
            number = resolve(token)
            if number is None:
                return None
            values[f"{_PLACEHOLDER_PREFIX}{position}"] = number
        try:
            return float(_interpret(self.tree.body, values))
        except (ArithmeticError, ValueError, TypeError):
            return None


def formula_references(formula: str) -> List[str]:
    """Return the distinct reference tokens in ``formula`` in order of appearance."""

    tokens: List[str] = []
    for match in REFERENCE_PATTERN.finditer(formula or ""):
        token = match.group(1)
        if token not in tokens:
            tokens.append(token)
    return tokens


def _validate(node: ast.AST, placeholders: Iterable[str]) -> None:
    allowed_names = set(placeholders)
    call_targets = {id(child.func) for child in ast.walk(node) if isinstance(child, ast.Call)}
    for child in ast.walk(node):
        if isinstance(child, (ast.Expression, ast.Load)):
            continue
        if isinstance(child, ast.BinOp) and type(child.op) in _BINARY_OPERATORS:
            continue
        if isinstance(child, ast.UnaryOp) and type(child.op) in _UNARY_OPERATORS:
            continue
        if type(child) in _BINARY_OPERATORS or type(child) in _UNARY_OPERATORS:
            continue
        if isinstance(child, ast.Constant):
            if isinstance(child.value, bool) or not isinstance(child.value, (int, float)):
                raise CalculationError(f"Unsupported literal {child.value!r} in formula.")
            continue
        if isinstance(child, ast.Name):
            if child.id in allowed_names or id(child) in call_targets:
                continue
            raise CalculationError(f"Unknown name {child.id!r}; wrap references in braces.")
        if isinstance(child, ast.Call):
            if (
                isinstance(child.func, ast.Name)
                and child.func.id in ALLOWED_FUNCTIONS
                and not child.keywords
            ):
                continue
            raise CalculationError("Only abs, min, max, round and sum may be called.")
        raise CalculationError(f"Unsupported syntax {type(child).__name__} in formula.")


def compile_formula(formula: str) -> FormulaProgram:
    """Parse and validate ``formula``, raising ``CalculationError`` when unsafe."""

    text = (formula or "").strip()
    if not text:
        raise CalculationError("Formula is empty.")

    references = formula_references(text)
    placeholders = {token: f"{_PLACEHOLDER_PREFIX}{position}" for position, token in enumerate(references)}
    rewritten = REFERENCE_PATTERN.sub(lambda match: placeholders[match.group(1)], text)
    try:
        tree = ast.parse(rewritten, mode="eval")
    except SyntaxError as exc:
        raise CalculationError(f"Formula could not be parsed: {exc.msg}") from exc
    _validate(tree, placeholders.values())
    return FormulaProgram(source=text, tree=tree, references=tuple(references))


def _interpret(node: ast.AST, values: Mapping[str, float]) -> float:
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        return values[node.id]
    if isinstance(node, ast.BinOp):
        return _BINARY_OPERATORS[type(node.op)](
            _interpret(node.left, values), _interpret(node.right, values)
        )
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_interpret(node.operand, values))
    if isinstance(node, ast.Call):
        arguments = [_interpret(argument, values) for argument in node.args]
        return ALLOWED_FUNCTIONS[node.func.id](*arguments)  # type: ignore[attr-defined]
    raise CalculationError(f"Unsupported syntax {type(node).__name__} in formula.")


def _option_score(question: Question, selected: Any) -> Optional[float]:
    token = str(selected).strip()
    for option in question.options:
        if token in (option.value, option.text, option.id):
            if option.numeric_score is not None:
                return option.numeric_score
            return parse_number(option.value)
    return parse_number(token)


def question_numeric_value(question: Optional[Question], value: Any) -> Optional[float]:
    """Return the number a formula sees for ``value`` of ``question``.

    Choice answers contribute their options' numeric scores (summed for
    multi-select), yes/no answers count as 1/0, everything else is parsed.
    """

    if value is MISSING or is_empty_answer(value):
        return None
    if question is not None and question.options:
        selections = value if isinstance(value, (list, tuple, set)) else [value]
        scores = [_option_score(question, item) for item in selections]
        if any(score is None for score in scores):
            return None
        return float(sum(scores))  # type: ignore[arg-type]
    if isinstance(value, (list, tuple, set, Mapping)):
        return None
    number = parse_number(value)
    if number is not None:
        return number
    if question is not None and question.question_type is QuestionType.YES_NO:
        token = str(value).strip().lower()
        if token in YES_TOKENS:
            return 1.0
        if token in NO_TOKENS:
            return 0.0
    return None


def _reference_ids(
    program: FormulaProgram, question: Question, index: FormIndex, codes: Mapping[str, str]
) -> Dict[str, str]:
    """Map each reference token to a preceding question id, raising otherwise."""

    owner_position = index.positions[question.id]
    resolved: Dict[str, str] = {}
    for token in program.references:
        question_id = token if token in index.questions else codes.get(token)
        if question_id is None:
            raise CalculationError(
                f"Formula references unknown question {token!r}.", question_id=question.id
            )
        if index.positions[question_id] >= owner_position:
            raise CalculationError(
                f"Formula references {token!r}, which does not precede the calculated question.",
                question_id=question.id,
            )
        resolved[token] = question_id
    return resolved


def with_calculated_values(
    form: FormModel,
    answers: Mapping[Hashable, Any],
    *,
    index: Optional[FormIndex] = None,
    repeat_indexes: Optional[Mapping[str, Iterable[int]]] = None,
) -> Tuple[Dict[Hashable, Any], List[CalculationError]]:
    """Return a copy of ``answers`` with calculated questions filled in.

    ``repeat_indexes`` maps a repeatable section id to the instances to
    compute; instance 0 is computed when a section is not listed. A formula
    whose inputs are incomplete yields ``""`` so the question reads as
    unanswered. Invalid formulas are reported and leave the snapshot as is.
    """

    index = index or build_form_index(form)
    snapshot: Dict[Hashable, Any] = dict(answers)
    errors: List[CalculationError] = []
    codes = {question.code: question.id for question in index.ordered if question.code}

    for question in index.ordered:
        if question.question_type is not QuestionType.CALCULATED or not question.calculation_formula:
            continue
        try:
            program = compile_formula(question.calculation_formula)
            reference_ids = _reference_ids(program, question, index, codes)
        except CalculationError as exc:
            exc.question_id = question.id
            logger.warning("Skipping formula for question %s: %s", question.id, exc)
            errors.append(exc)
            continue

        section = index.section_for(question.id)
        contexts: List[Optional[int]] = [None]
        if section is not None and section.is_repeatable:
            contexts = sorted(set((repeat_indexes or {}).get(section.id, [0])) or {0})

        for repeat_index in contexts:

            def resolve(token: str, repeat_index: Optional[int] = repeat_index) -> Optional[float]:
                source_id = reference_ids[token]
                scope = repeat_scope(source_id, question.id, index, repeat_index)
                return question_numeric_value(
                    index.question(source_id), lookup_answer(snapshot, source_id, scope)
                )

            result = program.evaluate(resolve)
            key = answer_key(question.id, repeat_index)
            snapshot[key] = "" if result is None else round(result, 6)

    return snapshot, errors


__all__ = [
    "ALLOWED_FUNCTIONS",
    "FormulaProgram",
    "compile_formula",
    "formula_references",
    "question_numeric_value",
    "with_calculated_values",
]
