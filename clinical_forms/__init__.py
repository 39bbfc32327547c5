"""Conditional visibility and validation logic for clinical questionnaires."""

from .errors import (  # noqa: F401
    CalculationError,
    FormApiError,
    FormLogicError,
    FormStructureError,
    ForwardReferenceError,
    InvalidRuleError,
)
from .form_model import FormModel, Question, Section, form_from_payload  # noqa: F401
from .resolver import Diagnostic, EffectiveState, Resolution, resolve  # noqa: F401
from .rules import ConditionalRule, normalize_rule  # noqa: F401
from .evaluator import evaluate_rule  # noqa: F401
from .validation import (  # noqa: F401
    collect_missing_required_questions,
    completion_percentage,
    validate_answer,
)
