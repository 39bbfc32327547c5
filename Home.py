"""Streamlit preview for form definitions and their conditional logic."""

from __future__ import annotations

from typing import Any, Dict, Hashable, List, Mapping, Optional

import pandas as pd
import streamlit as st

from clinical_forms.answers import MISSING, answer_key, lookup_answer, matrix_cells
from clinical_forms.calculations import with_calculated_values
from clinical_forms.config import Settings
from clinical_forms.decision_table import decision_frame, diagnostics_frame
from clinical_forms.errors import FormApiError, FormStructureError
from clinical_forms.form_client import FormBuilderApiClient
from clinical_forms.form_model import FormModel, Question, Section, form_from_payload
from clinical_forms.form_store import available_form_keys, load_form_payload
from clinical_forms.logging_utils import form_context, setup_logging
from clinical_forms.question_types import QuestionType, is_display_only
from clinical_forms.resolver import EffectiveState, Resolution, repeat_limit, resolve
from clinical_forms.validation import (
    collect_missing_required_questions,
    completion_percentage,
    validate_answer,
)

ANSWERS_STATE_KEY = "preview_answers"
INSTANCES_STATE_KEY = "preview_instances"
SOURCE_LOCAL = "Local definition"
SOURCE_REMOTE = "Form builder API"
UNSELECTED_LABEL = "Select an option"
YES_NO_CHOICES = ("Yes", "No")


def _secrets_dict(name: str) -> Dict[str, Any]:
    """Return a mapping stored under ``name`` in Streamlit secrets."""

    try:
        value = st.secrets.get(name, {})  # type: ignore[arg-type]
    except FileNotFoundError:
        return {}
    if isinstance(value, Mapping):
        return dict(value)
    return {}


def load_settings() -> Settings:
    """Return environment settings overlaid with the ``[forms_api]`` secrets."""

    return Settings.from_env().with_overrides(_secrets_dict("forms_api"))


@st.cache_data(show_spinner=False)
def load_local_payload(form_key: str, root: str) -> Dict[str, Any]:
    return load_form_payload(form_key, root)


@st.cache_data(ttl=60, show_spinner=False)
def load_remote_payload(
    version_id: str, api_url: str, tenant_id: str, token: Optional[str], timeout: float
) -> Dict[str, Any]:
    client = FormBuilderApiClient(api_url, tenant_id, token=token, timeout=timeout)
    return client.get_form_by_version_id(version_id)


def widget_key(form_code: str, question_id: str, repeat_index: Optional[int]) -> str:
    """Return a Streamlit widget key unique per question instance."""

    suffix = "" if repeat_index is None else f":{repeat_index}"
    return f"{form_code}:{question_id}{suffix}"


def option_labels(question: Question) -> Dict[str, str]:
    """Return ``value -> text`` for the question's options in display order."""

    return {option.value: option.text or option.value for option in question.sorted_options()}


def grid_frame(question: Question, value: Any) -> pd.DataFrame:
    """Return a grid answer as a frame indexed by row label."""

    cells = matrix_cells(value)
    rows = question.sorted_rows()
    cols = question.sorted_cols()
    data = {
        col.label or col.id: [str(cells.get((row.id, col.id), "") or "") for row in rows]
        for col in cols
    }
    return pd.DataFrame(data, index=[row.label or row.id for row in rows])


def frame_cells(question: Question, frame: pd.DataFrame) -> Dict[tuple, str]:
    """Convert an edited grid frame back into ``(row_id, col_id)`` cells."""

    cells: Dict[tuple, str] = {}
    rows = question.sorted_rows()
    cols = question.sorted_cols()
    for row_position, row in enumerate(rows):
        for col in cols:
            column = col.label or col.id
            if column not in frame.columns or row_position >= len(frame.index):
                continue
            cell = frame[column].iloc[row_position]
            text = "" if cell is None or pd.isna(cell) else str(cell).strip()
            if text:
                cells[(row.id, col.id)] = text
    return cells


def _label(question: Question, state: EffectiveState) -> str:
    return f"{question.label} *" if state.required else question.label


def _render_choice(question: Question, state: EffectiveState, key: str, current: Any) -> Any:
    labels = option_labels(question)
    choices = [""] + list(labels)

    def format_choice(value: str) -> str:
        return labels.get(value, UNSELECTED_LABEL)

    index = choices.index(current) if current in choices else 0
    widget = st.selectbox if question.question_type is QuestionType.DROPDOWN else st.radio
    return widget(
        _label(question, state),
        choices,
        index=index,
        format_func=format_choice,
        key=key,
        disabled=not state.enabled,
        help=question.help_text or None,
    )


def render_question(
    question: Question,
    state: EffectiveState,
    answers: Dict[Hashable, Any],
    calculated: Mapping[Hashable, Any],
    *,
    form_code: str,
    repeat_index: Optional[int] = None,
) -> None:
    """Render one question instance and store its value in ``answers``."""

    if not state.visible:
        # Hidden answers stay in the snapshot; they just are not shown.
        return

    question_type = question.question_type
    key = widget_key(form_code, question.id, repeat_index)
    snapshot_key = answer_key(question.id, repeat_index)
    current = lookup_answer(answers, question.id, repeat_index)
    current = "" if current is None or current is MISSING else current
    label = _label(question, state)
    disabled = not state.enabled
    help_text = question.help_text or None

    if question_type in (QuestionType.DISPLAY, QuestionType.RICH_TEXT_BLOCK):
        st.markdown(question.text)
        return
    if is_display_only(question.type_id):
        return

    if question_type is QuestionType.CALCULATED:
        value = calculated.get(snapshot_key, "")
        st.text_input(label, value=str(value), key=key, disabled=True, help=help_text)
        return

    if question_type is QuestionType.CHECKBOX:
        labels = option_labels(question)
        selected = [item for item in (current if isinstance(current, list) else []) if item in labels]
        value: Any = st.multiselect(
            label,
            list(labels),
            default=selected,
            format_func=lambda item: labels.get(item, item),
            key=key,
            disabled=disabled,
            help=help_text,
        )
    elif question_type is QuestionType.YES_NO:
        choices = ["", *YES_NO_CHOICES]
        value = st.radio(
            label,
            choices,
            index=choices.index(current) if current in choices else 0,
            format_func=lambda item: item or UNSELECTED_LABEL,
            key=key,
            disabled=disabled,
            horizontal=True,
            help=help_text,
        )
    elif question.options:
        value = _render_choice(question, state, key, current)
    elif question_type in (QuestionType.MATRIX, QuestionType.TABLE):
        st.markdown(f"**{label}**")
        edited = st.data_editor(grid_frame(question, current), key=key, disabled=disabled)
        value = frame_cells(question, edited)
    elif question_type is QuestionType.TEXT_AREA:
        value = st.text_area(label, value=str(current), key=key, disabled=disabled, help=help_text)
    elif question_type is QuestionType.FILE_UPLOAD:
        uploads = st.file_uploader(
            label, accept_multiple_files=True, key=key, disabled=disabled, help=help_text
        )
        value = [{"name": upload.name, "size": upload.size} for upload in uploads or []]
    else:
        value = st.text_input(label, value=str(current), key=key, disabled=disabled, help=help_text)

    answers[snapshot_key] = value
    for message in validate_answer(question, value):
        st.error(message)


def _render_section(
    form: FormModel,
    section: Section,
    answers: Dict[Hashable, Any],
    instance_counts: Dict[str, int],
) -> None:
    st.subheader(section.name)
    if section.description:
        st.caption(section.description)

    if not section.is_repeatable:
        indexes: List[Optional[int]] = [None]
    else:
        resolution = resolve(form, answers, instance_counts=instance_counts)
        indexes = sorted(
            repeat_index
            for (section_id, repeat_index) in resolution.section_instances
            if section_id == section.id
        )

    computed_instances = {section.id: [index for index in indexes if index is not None]}
    for repeat_index in indexes:
        if repeat_index is not None:
            st.markdown(f"##### {section.name} #{repeat_index + 1}")
        for question in section.sorted_questions():
            # Rules only read earlier questions, so resolving here sees every
            # answer this question can depend on.
            resolution = resolve(form, answers, instance_counts=instance_counts)
            calculated, _ = with_calculated_values(
                form, answers, repeat_indexes=computed_instances
            )
            render_question(
                question,
                resolution.state_for(question.id, repeat_index),
                answers,
                calculated,
                form_code=form.code,
                repeat_index=repeat_index,
            )

    if section.is_repeatable:
        can_add = len(indexes) < repeat_limit(section)
        if st.button(f"Add {section.name}", key=f"{form.code}:{section.id}:add", disabled=not can_add):
            instance_counts[section.id] = len(indexes) + 1
            st.rerun()


def _load_form(settings: Settings) -> Optional[FormModel]:
    source = st.sidebar.radio("Definition source", (SOURCE_LOCAL, SOURCE_REMOTE))

    if source == SOURCE_LOCAL:
        keys = available_form_keys(settings.definitions_dir)
        if not keys:
            st.info(f"No form definitions found under {settings.definitions_dir}.")
            return None
        form_key = st.sidebar.selectbox("Form", keys)
        form = form_from_payload(load_local_payload(form_key, settings.definitions_dir))
        form.code = form.code or form_key
        return form

    if not settings.api_configured:
        st.info("Set FORMS_API_URL and FORMS_TENANT_ID, or a [forms_api] secrets block.")
        return None
    version_id = st.sidebar.text_input("Form version id").strip()
    if not version_id:
        return None
    try:
        payload = load_remote_payload(
            version_id,
            settings.api_url or "",
            settings.tenant_id or "",
            settings.api_token,
            settings.api_timeout,
        )
    except FormApiError as exc:
        st.error(f"Unable to load form version {version_id}: {exc}")
        return None
    form = form_from_payload(payload)
    form.version_id = form.version_id or version_id
    form.code = form.code or version_id
    return form


def _render_summary(form: FormModel, resolution: Resolution, answers: Dict[Hashable, Any]) -> None:
    percentage = completion_percentage(form, answers, resolution)
    st.sidebar.progress(percentage / 100, text=f"{percentage}% complete")

    missing = collect_missing_required_questions(form, answers, resolution)
    if missing:
        st.sidebar.warning("Required answers missing:\n\n" + "\n".join(f"- {label}" for label in missing))
    else:
        st.sidebar.success("All required questions answered.")

    st.markdown("---")
    st.markdown("#### Decision table")
    st.dataframe(decision_frame(form, resolution), hide_index=True, use_container_width=True)

    st.markdown("#### Diagnostics")
    diagnostics = diagnostics_frame(resolution)
    if diagnostics.empty:
        st.caption("No rule problems detected.")
    else:
        st.dataframe(diagnostics, hide_index=True, use_container_width=True)


def main() -> None:
    """Render the form preview."""

    settings = load_settings()
    setup_logging(settings.log_level, settings.log_json)
    st.set_page_config(page_title="Form logic preview", page_icon="🧩", layout="wide")
    st.title("Form logic preview")
    st.caption("Answer the form to see which questions are shown, enabled and required.")

    form = _load_form(settings)
    if form is None:
        return
    with form_context(form.code, form.version_id):
        _preview(form)


def _preview(form: FormModel) -> None:
    all_answers: Dict[str, Dict[Hashable, Any]] = st.session_state.setdefault(ANSWERS_STATE_KEY, {})
    all_counts: Dict[str, Dict[str, int]] = st.session_state.setdefault(INSTANCES_STATE_KEY, {})
    answers = all_answers.setdefault(form.code, {})
    instance_counts = all_counts.setdefault(form.code, {})

    if st.sidebar.button("Clear answers"):
        answers.clear()
        instance_counts.clear()
        for key in [key for key in st.session_state if str(key).startswith(f"{form.code}:")]:
            st.session_state.pop(key)
        st.rerun()

    try:
        resolve(form, answers, instance_counts=instance_counts)
    except FormStructureError as exc:
        st.error(f"This form definition cannot be previewed: {exc}")
        return

    for section in form.sorted_sections():
        resolution = resolve(form, answers, instance_counts=instance_counts)
        if not resolution.sections.get(section.id, True):
            continue
        _render_section(form, section, answers, instance_counts)

    _render_summary(form, resolve(form, answers, instance_counts=instance_counts), answers)


if __name__ == "__main__":
    main()
