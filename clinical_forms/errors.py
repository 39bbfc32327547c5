"""Exception types raised by the form logic engine."""

from __future__ import annotations

from typing import Optional


class FormLogicError(Exception):
    """Base class for form logic failures."""


class InvalidRuleError(FormLogicError):
    """Raised when a conditional rule payload cannot be normalised."""

    def __init__(
        self,
        message: str,
        *,
        rule_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.rule_id = rule_id
        self.question_id = question_id


class ForwardReferenceError(FormLogicError):
    """Raised when a rule reads a question at or after its own position."""

    def __init__(
        self,
        message: str,
        *,
        rule_id: Optional[str] = None,
        question_id: Optional[str] = None,
        source_question_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.rule_id = rule_id
        self.question_id = question_id
        self.source_question_id = source_question_id


class FormStructureError(FormLogicError):
    """Raised when a form definition cannot be keyed unambiguously."""


class CalculationError(FormLogicError):
    """Raised when a calculation formula is unsafe or cannot be parsed."""

    def __init__(self, message: str, *, question_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.question_id = question_id


class FormApiError(FormLogicError):
    """Raised when the form builder API returns an error response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "CalculationError",
    "FormApiError",
    "FormLogicError",
    "FormStructureError",
    "ForwardReferenceError",
    "InvalidRuleError",
]
