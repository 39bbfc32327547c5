"""Tests for the read-only form builder API client."""

from __future__ import annotations

import importlib

import pytest
import requests

from clinical_forms.errors import FormApiError


class DummyResponse:
    def __init__(self, status_code: int, payload=None, *, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        if self._invalid_json:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def _client(**overrides):
    form_client = importlib.import_module("clinical_forms.form_client")
    settings = {"base_url": "https://forms.example/api/", "tenant_id": "tenant-1", "token": "secret"}
    settings.update(overrides)
    return form_client, form_client.FormBuilderApiClient(**settings)


def test_get_form_by_version_id_builds_tenant_url(monkeypatch) -> None:
    form_client, client = _client()
    captured = {}

    def fake_get(url, headers=None, timeout=None):
        captured.update(url=url, headers=headers, timeout=timeout)
        return DummyResponse(200, {"versionId": "v-1", "sections": []})

    monkeypatch.setattr(form_client.requests, "get", fake_get)

    payload = client.get_form_by_version_id("v-1")

    assert payload["versionId"] == "v-1"
    assert captured["url"] == "https://forms.example/api/tenants/tenant-1/form-builder/versions/v-1"
    assert captured["headers"]["Authorization"] == "Bearer secret"
    assert captured["timeout"] == 10


def test_get_form_by_definition_id_without_token(monkeypatch) -> None:
    form_client, client = _client(token=None)
    captured = {}

    def fake_get(url, headers=None, timeout=None):
        captured.update(url=url, headers=headers)
        return DummyResponse(200, {"definitionId": "d-1"})

    monkeypatch.setattr(form_client.requests, "get", fake_get)

    client.get_form_by_definition_id("d-1")

    assert captured["url"].endswith("/tenants/tenant-1/form-builder/d-1")
    assert "Authorization" not in captured["headers"]


@pytest.mark.parametrize(
    "response, message, status_code",
    [
        (DummyResponse(404, {"error": "Form version not found"}), "Form version not found", 404),
        (DummyResponse(500, invalid_json=True), "Server error: 500", 500),
        (DummyResponse(403, {"detail": "nope"}), "Server error: 403", 403),
    ],
)
def test_error_responses_raise_form_api_error(monkeypatch, response, message, status_code) -> None:
    form_client, client = _client()
    monkeypatch.setattr(form_client.requests, "get", lambda *args, **kwargs: response)

    with pytest.raises(FormApiError) as excinfo:
        client.get_form_by_version_id("v-1")

    assert str(excinfo.value) == message
    assert excinfo.value.status_code == status_code


@pytest.mark.parametrize(
    "response",
    [DummyResponse(200, invalid_json=True), DummyResponse(200, ["not", "a", "form"])],
)
def test_successful_status_with_unusable_body_raises_form_api_error(monkeypatch, response) -> None:
    form_client, client = _client()
    monkeypatch.setattr(form_client.requests, "get", lambda *args, **kwargs: response)

    with pytest.raises(FormApiError) as excinfo:
        client.get_form_by_version_id("v-1")

    assert str(excinfo.value) == "Unexpected response body."
    assert excinfo.value.status_code == 200


def test_connection_failures_raise_form_api_error(monkeypatch) -> None:
    form_client, client = _client()

    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(form_client.requests, "get", fake_get)

    with pytest.raises(FormApiError) as excinfo:
        client.get_form_by_definition_id("d-1")

    assert "connection refused" in str(excinfo.value)
    assert excinfo.value.status_code is None


def test_load_form_model_parses_payload(monkeypatch) -> None:
    form_client, client = _client()
    payload = {
        "name": "Intake",
        "sections": [{"sectionId": "s-1", "questions": [{"questionId": "q-1", "questionTypeId": 1}]}],
    }
    monkeypatch.setattr(form_client.requests, "get", lambda *args, **kwargs: DummyResponse(200, payload))

    form = client.load_form_model("v-9")

    assert form.version_id == "v-9"
    assert form.get_question("q-1") is not None
