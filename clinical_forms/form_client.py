"""Read-only client for the form builder HTTP API."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional

import requests

from clinical_forms.errors import FormApiError
from clinical_forms.form_model import FormModel, form_from_payload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


@dataclass
class FormBuilderApiClient:
    """Fetches form definitions for one tenant."""

    base_url: str
    tenant_id: str
    token: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    def _headers(self) -> Dict[str, str]:
        """Build request headers for the form builder API."""

        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, *parts: str) -> str:
        """Construct the form builder URL for the configured tenant."""

        root = f"{self.base_url.rstrip('/')}/tenants/{self.tenant_id}/form-builder"
        return "/".join([root, *(part.strip("/") for part in parts)])

    def _get_json(self, url: str) -> Dict[str, Any]:
        try:
            response = requests.get(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Form builder request to %s failed: %s", url, exc)
            raise FormApiError(f"Error: {exc}") from exc

        if not response.ok:
            message = _error_message(response)
            logger.error("Form builder API error: %s", message)
            raise FormApiError(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            logger.error("Form builder API returned a non-JSON body from %s", url)
            raise FormApiError("Unexpected response body.", status_code=response.status_code) from None
        if not isinstance(payload, dict):
            raise FormApiError("Unexpected response body.", status_code=response.status_code)
        return payload

    def get_form_by_definition_id(self, definition_id: str) -> Dict[str, Any]:
        """Return the latest version of the definition ``definition_id``."""

        return self._get_json(self._url(definition_id))

    def get_form_by_version_id(self, version_id: str) -> Dict[str, Any]:
        """Return the exact form version ``version_id``."""

        return self._get_json(self._url("versions", version_id))

    def load_form_model(self, version_id: str) -> FormModel:
        form = form_from_payload(self.get_form_by_version_id(version_id))
        if not form.version_id:
            form.version_id = version_id
        return form


def _error_message(response: requests.Response) -> str:
    """Prefer the API's ``{"error": ...}`` message over the bare status."""

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Server error: {response.status_code}"


__all__ = ["DEFAULT_TIMEOUT", "FormBuilderApiClient"]
