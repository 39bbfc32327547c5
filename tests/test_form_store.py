"""Tests for the local form definition store."""

from __future__ import annotations

import importlib
import json
from pathlib import Path

import pytest

REPO_DEFINITIONS = Path(__file__).resolve().parents[1] / "form_definitions"


def _form_store():
    return importlib.import_module("clinical_forms.form_store")


def _write_definition(root: Path, key: str, payload) -> Path:
    target = root / key
    target.mkdir(parents=True)
    path = target / "form_definition.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_discover_local_forms_lists_directories_with_definitions(tmp_path) -> None:
    form_store = _form_store()
    path = _write_definition(tmp_path, "intake", {"sections": []})
    (tmp_path / "drafts").mkdir()

    assert form_store.discover_local_forms(tmp_path) == {"intake": path}
    assert form_store.available_form_keys(tmp_path) == ["intake"]


def test_load_form_definition_unwraps_envelopes_and_defaults_code(tmp_path) -> None:
    form_store = _form_store()
    _write_definition(
        tmp_path,
        "intake",
        {"form": {"sections": [{"sectionId": "s-1", "questions": [{"questionId": "q-1", "questionTypeId": 1}]}]}},
    )

    form = form_store.load_form_definition("intake", tmp_path)

    assert form.code == "intake"
    assert [question.id for question in form.iter_questions()] == ["q-1"]


def test_unknown_form_key_raises(tmp_path) -> None:
    form_store = _form_store()

    with pytest.raises(KeyError):
        form_store.load_form_payload("missing", tmp_path)


def test_bundled_screening_definition_resolves_cleanly() -> None:
    form_store = _form_store()
    resolver = importlib.import_module("clinical_forms.resolver")

    form = form_store.load_form_definition("depression_screening", REPO_DEFINITIONS)
    empty = resolver.resolve(form, {})
    screened = resolver.resolve(form, {"q-consent": "Yes", "q-phq1": "2", "q-phq2": "3", "q-age": "70"})

    assert empty.diagnostics == []
    assert empty.questions["q-phq1"].visible is False
    assert empty.questions["q-age"].enabled is False
    assert empty.sections["s-function"] is False
    assert screened.questions["q-symptoms"].visible is True
    assert screened.questions["q-followup"].required is True
    assert screened.sections["s-function"] is True
