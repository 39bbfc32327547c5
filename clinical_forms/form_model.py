"""Typed representation of form definitions and their conversion from JSON."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from clinical_forms.errors import FormStructureError
from clinical_forms.question_types import (
    COLUMN_INPUT_TYPES,
    DEFAULT_COLUMN_INPUT_TYPE,
    QuestionType,
    coerce_question_type,
    is_display_only,
    is_grid,
    supports_options,
)

DEFAULT_SECTION_NAME = "New Section"


@dataclass(frozen=True)
class QuestionOption:
    """A selectable choice for option-based question types."""

    id: str
    text: str
    value: str
    sort_order: int = 0
    numeric_score: Optional[float] = None


@dataclass(frozen=True)
class TableRow:
    id: str
    label: str
    code: str = ""
    sort_order: int = 0


@dataclass(frozen=True)
class TableColumn:
    """A grid column; each column carries its own input type and options."""

    id: str
    label: str
    code: str = ""
    sort_order: int = 0
    input_type: str = DEFAULT_COLUMN_INPUT_TYPE
    options: List[QuestionOption] = field(default_factory=list)


@dataclass(frozen=True)
class ValidationBounds:
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    regex_pattern: str = ""
    regex_error_message: str = ""


@dataclass(frozen=True)
class FileConstraints:
    allowed_extensions: List[str] = field(default_factory=list)
    max_size_mb: Optional[float] = None
    max_files: Optional[int] = None


@dataclass
class Question:
    """A single field in a form definition.

    ``conditional_rules`` holds either normalised ``ConditionalRule`` objects or
    the raw payloads received from the builder; the resolver normalises them
    on every call so a malformed rule is reported instead of raised.
    """

    id: str
    type_id: Union[QuestionType, int]
    text: str = ""
    code: str = ""
    sort_order: int = 0
    is_required: bool = False
    is_active: bool = True
    help_text: str = ""
    default_value: str = ""
    options: List[QuestionOption] = field(default_factory=list)
    rows: List[TableRow] = field(default_factory=list)
    cols: List[TableColumn] = field(default_factory=list)
    conditional_rules: List[Any] = field(default_factory=list)
    calculation_formula: str = ""
    validation: ValidationBounds = field(default_factory=ValidationBounds)
    file_constraints: Optional[FileConstraints] = None

    @property
    def question_type(self) -> Optional[QuestionType]:
        return coerce_question_type(self.type_id)

    @property
    def label(self) -> str:
        return self.text or self.code or self.id

    def sorted_options(self) -> List[QuestionOption]:
        return sorted(self.options, key=lambda option: option.sort_order)

    def sorted_rows(self) -> List[TableRow]:
        return sorted(self.rows, key=lambda row: row.sort_order)

    def sorted_cols(self) -> List[TableColumn]:
        return sorted(self.cols, key=lambda col: col.sort_order)


@dataclass
class Section:
    id: str
    name: str = DEFAULT_SECTION_NAME
    sort_order: int = 0
    description: str = ""
    is_repeatable: bool = False
    min_repeat: int = 1
    max_repeat: Optional[int] = None
    questions: List[Question] = field(default_factory=list)

    def sorted_questions(self) -> List[Question]:
        # ``sorted`` is stable, so list position breaks sortOrder ties.
        return sorted(self.questions, key=lambda question: question.sort_order)


@dataclass
class FormModel:
    """A fully materialised form: ordered sections holding ordered questions."""

    sections: List[Section] = field(default_factory=list)
    code: str = ""
    name: str = ""
    definition_id: str = ""
    version_id: str = ""
    description: str = ""

    def sorted_sections(self) -> List[Section]:
        return sorted(self.sections, key=lambda section: section.sort_order)

    def iter_questions(self) -> Iterable[Question]:
        """Yield questions in flattened (section order, question order) order."""

        for section in self.sorted_sections():
            yield from section.sorted_questions()

    def get_question(self, question_id: str) -> Optional[Question]:
        for question in self.iter_questions():
            if question.id == question_id:
                return question
        return None


def _ensure_mapping(value: Any) -> Dict[str, Any]:
    """Return ``value`` if it is a mapping, otherwise an empty dict."""

    return dict(value) if isinstance(value, Mapping) else {}


def _ensure_list(value: Any) -> List[Any]:
    """Return ``value`` if it is a list, otherwise an empty list."""

    return list(value) if isinstance(value, (list, tuple)) else []


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    """Return the first value stored under ``keys`` that is not ``None``."""

    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_optional_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_optional_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


TRUE_TOKENS = frozenset({"1", "true", "yes", "y", "on"})


def _as_bool(value: Any, default: bool) -> bool:
    """Read a flag that may arrive as a JSON boolean, a number or a string."""

    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        return text in TRUE_TOKENS if text else default
    return bool(value)


def _fallback_id(owner_id: str, prefix: str, index: int) -> str:
    # Derived from position so re-parsing the same payload yields the same ids.
    local = f"{prefix}-{index + 1}"
    return f"{owner_id}:{local}" if owner_id else local


def option_from_payload(
    payload: Mapping[str, Any], index: int = 0, owner_id: str = ""
) -> QuestionOption:
    """Build an option, accepting both the builder and API field names."""

    text = _clean_text(_first_present(payload, "optionText", "text", "label"))
    value = _first_present(payload, "optionValue", "value")
    return QuestionOption(
        id=_clean_text(_first_present(payload, "optionId", "id")) or _fallback_id(owner_id, "opt", index),
        text=text,
        value=_clean_text(value) if value is not None and _clean_text(value) else text,
        sort_order=_as_int(_first_present(payload, "sortOrder", "displayOrder"), index),
        numeric_score=_as_optional_float(_first_present(payload, "numericScore", "score")),
    )


def _row_from_payload(payload: Mapping[str, Any], index: int) -> TableRow:
    return TableRow(
        id=_clean_text(_first_present(payload, "rowId", "id")) or f"row-{index + 1}",
        label=_clean_text(_first_present(payload, "rowLabel", "rowText", "label")),
        code=_clean_text(payload.get("rowCode")),
        sort_order=_as_int(_first_present(payload, "sortOrder", "displayOrder"), index),
    )


def _column_from_payload(payload: Mapping[str, Any], index: int) -> TableColumn:
    input_type = _clean_text(payload.get("inputType")).lower()
    if input_type not in COLUMN_INPUT_TYPES:
        input_type = DEFAULT_COLUMN_INPUT_TYPE
    column_id = _clean_text(_first_present(payload, "colId", "id")) or f"col-{index + 1}"
    options = [
        option_from_payload(_ensure_mapping(entry), option_index, column_id)
        for option_index, entry in enumerate(_ensure_list(payload.get("options")))
    ]
    return TableColumn(
        id=column_id,
        label=_clean_text(_first_present(payload, "colLabel", "colText", "label")),
        code=_clean_text(payload.get("colCode")),
        sort_order=_as_int(_first_present(payload, "sortOrder", "displayOrder"), index),
        input_type=input_type,
        options=options,
    )


def _file_constraints_from_payload(payload: Mapping[str, Any]) -> Optional[FileConstraints]:
    extensions = payload.get("allowedExtensions") or payload.get("allowedFileTypes")
    max_size = _as_optional_float(_first_present(payload, "maxFileSizeMb", "maxFileSize"))
    max_files = _as_optional_int(payload.get("maxFiles"))
    if extensions is None and max_size is None and max_files is None:
        return None
    if isinstance(extensions, str):
        extensions = extensions.split(",")
    cleaned = [
        _clean_text(item).lower().lstrip(".")
        for item in _ensure_list(extensions)
        if _clean_text(item)
    ]
    return FileConstraints(allowed_extensions=cleaned, max_size_mb=max_size, max_files=max_files)


def question_from_payload(
    payload: Mapping[str, Any], index: int = 0, section_id: str = ""
) -> Question:
    """Convert an API or builder question payload into a ``Question``.

    A question without an id is named after its section and position.
    """

    question_id = _clean_text(_first_present(payload, "questionId", "id")) or _fallback_id(
        section_id, "q", index
    )
    type_value = _first_present(payload, "questionTypeId", "typeId", "questionType")
    question_type = coerce_question_type(type_value)
    type_id: Union[QuestionType, int] = (
        question_type if question_type is not None else _as_int(type_value, 0)
    )

    options: List[QuestionOption] = []
    if supports_options(type_id) or payload.get("options"):
        options = [
            option_from_payload(_ensure_mapping(entry), option_index, question_id)
            for option_index, entry in enumerate(_ensure_list(payload.get("options")))
        ]

    rows: List[TableRow] = []
    cols: List[TableColumn] = []
    if is_grid(type_id):
        rows = [
            _row_from_payload(_ensure_mapping(entry), row_index)
            for row_index, entry in enumerate(
                _ensure_list(_first_present(payload, "rows", "matrixRows"))
            )
        ]
        cols = [
            _column_from_payload(_ensure_mapping(entry), col_index)
            for col_index, entry in enumerate(
                _ensure_list(_first_present(payload, "cols", "matrixCols"))
            )
        ]

    rules = [
        dict(entry) if isinstance(entry, Mapping) else entry
        for entry in _ensure_list(payload.get("conditionalRules", payload.get("conditional_rules")))
    ]

    return Question(
        id=question_id,
        type_id=type_id,
        text=_clean_text(payload.get("questionText")),
        code=_clean_text(payload.get("questionCode")),
        sort_order=_as_int(_first_present(payload, "sortOrder", "displayOrder"), index),
        is_required=_as_bool(payload.get("isRequired"), False),
        is_active=_as_bool(payload.get("isActive"), True),
        help_text=_clean_text(payload.get("helpText")),
        default_value=_clean_text(payload.get("defaultValue")),
        options=options,
        rows=rows,
        cols=cols,
        conditional_rules=rules,
        calculation_formula=_clean_text(
            _first_present(payload, "calculationFormula", "calculationExpression")
        ),
        validation=ValidationBounds(
            min_value=_as_optional_float(payload.get("minValue")),
            max_value=_as_optional_float(payload.get("maxValue")),
            min_length=_as_optional_int(payload.get("minLength")),
            max_length=_as_optional_int(payload.get("maxLength")),
            regex_pattern=_clean_text(payload.get("regexPattern")),
            regex_error_message=_clean_text(payload.get("regexErrorMessage")),
        ),
        file_constraints=_file_constraints_from_payload(payload),
    )


def section_from_payload(payload: Mapping[str, Any], index: int = 0) -> Section:
    """Convert an API section payload into a ``Section``."""

    section_id = _clean_text(_first_present(payload, "sectionId", "id")) or _fallback_id(
        "", "section", index
    )
    questions = [
        question_from_payload(_ensure_mapping(entry), question_index, section_id)
        for question_index, entry in enumerate(_ensure_list(payload.get("questions")))
    ]
    name = _clean_text(_first_present(payload, "sectionName", "name", "sectionTitle"))
    return Section(
        id=section_id,
        name=name or DEFAULT_SECTION_NAME,
        sort_order=_as_int(payload.get("sortOrder"), index),
        description=_clean_text(_first_present(payload, "sectionDescription", "description")),
        is_repeatable=_as_bool(payload.get("isRepeatable"), False),
        min_repeat=max(_as_int(payload.get("minRepeat"), 1), 1),
        max_repeat=_as_optional_int(payload.get("maxRepeat")),
        questions=questions,
    )


def form_from_payload(payload: Mapping[str, Any]) -> FormModel:
    """Build a ``FormModel`` from a form definition payload.

    Standard payloads nest questions inside ``sections``. Legacy payloads list
    questions at the root; those become a single implicit section at
    position 0. A payload without either yields one empty default section so
    authors have somewhere to add content.
    """

    payload = _ensure_mapping(payload)
    raw_sections = _ensure_list(payload.get("sections"))
    raw_questions = _ensure_list(payload.get("questions"))

    if raw_sections:
        sections = [
            section_from_payload(_ensure_mapping(entry), index)
            for index, entry in enumerate(raw_sections)
        ]
    elif raw_questions:
        sections = [section_from_payload({"sortOrder": 0, "questions": raw_questions}, 0)]
    else:
        sections = [Section(id=_fallback_id("", "section", 0), sort_order=0)]

    return FormModel(
        sections=sections,
        code=_clean_text(payload.get("code")),
        name=_clean_text(payload.get("name")),
        definition_id=_clean_text(payload.get("definitionId")),
        version_id=_clean_text(_first_present(payload, "versionId", "latestVersionId")),
        description=_clean_text(payload.get("description")),
    )


def _duplicates(values: Sequence[str]) -> List[str]:
    seen: Set[str] = set()
    duplicates: List[str] = []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


def duplicate_sort_orders(values: Iterable[int]) -> List[int]:
    """Return sortOrder values used more than once, in ascending order.

    Options and rules should each have a unique sortOrder within their
    question. A clash is not fatal because list position still breaks ties.
    """

    seen: Set[int] = set()
    clashes: Set[int] = set()
    for value in values:
        if value in seen:
            clashes.add(value)
        seen.add(value)
    return sorted(clashes)


def validate_form_structure(form: FormModel) -> None:
    """Raise ``FormStructureError`` when ids are not unique where they must be."""

    section_duplicates = _duplicates([section.id for section in form.sections])
    if section_duplicates:
        raise FormStructureError(f"Duplicate section ids: {', '.join(section_duplicates)}")

    questions = [question for section in form.sections for question in section.questions]
    question_duplicates = _duplicates([question.id for question in questions])
    if question_duplicates:
        raise FormStructureError(f"Duplicate question ids: {', '.join(question_duplicates)}")

    for question in questions:
        option_duplicates = _duplicates([option.id for option in question.options])
        if option_duplicates:
            raise FormStructureError(
                f"Question {question.id} has duplicate option ids: {', '.join(option_duplicates)}"
            )
        row_duplicates = _duplicates([row.id for row in question.rows])
        col_duplicates = _duplicates([col.id for col in question.cols])
        if row_duplicates or col_duplicates:
            raise FormStructureError(
                f"Question {question.id} has duplicate grid ids: "
                f"{', '.join(row_duplicates + col_duplicates)}"
            )


def answerable_questions(form: FormModel) -> List[Question]:
    """Return questions that collect a value, in flattened order."""

    return [question for question in form.iter_questions() if not is_display_only(question.type_id)]


__all__ = [
    "FileConstraints",
    "FormModel",
    "Question",
    "QuestionOption",
    "Section",
    "TableColumn",
    "TableRow",
    "ValidationBounds",
    "answerable_questions",
    "duplicate_sort_orders",
    "form_from_payload",
    "option_from_payload",
    "question_from_payload",
    "section_from_payload",
    "validate_form_structure",
]
