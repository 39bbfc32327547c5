from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional


def _env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _env_float(key: str, default: float) -> float:
    value = _env_str(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = _env_str(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    # Form builder API
    api_url: Optional[str]
    tenant_id: Optional[str]
    api_token: Optional[str]
    api_timeout: float

    # Local definitions
    definitions_dir: str

    # Logging
    log_level: str
    log_json: bool

    @property
    def api_configured(self) -> bool:
        return bool(self.api_url and self.tenant_id)

    @staticmethod
    def from_env() -> "Settings":
        # Read configuration from environment variables; defaults work offline.
        return Settings(
            api_url=_env_str("FORMS_API_URL"),
            tenant_id=_env_str("FORMS_TENANT_ID"),
            api_token=_env_str("FORMS_API_TOKEN"),
            api_timeout=_env_float("FORMS_API_TIMEOUT", 10.0),
            definitions_dir=_env_str("FORMS_DEFINITIONS_DIR", "form_definitions") or "form_definitions",
            log_level=_env_str("FORMS_LOG_LEVEL", "INFO") or "INFO",
            log_json=_env_bool("FORMS_LOG_JSON", False),
        )

    def with_overrides(self, overrides: Mapping[str, Any]) -> "Settings":
        """Return a copy using non-empty values from ``overrides``.

        Keys match the ``[forms_api]`` secrets block: ``url``, ``tenant_id``,
        ``token`` and ``timeout``.
        """

        changes = {}
        for key, field_name in (("url", "api_url"), ("tenant_id", "tenant_id"), ("token", "api_token")):
            value = overrides.get(key)
            if isinstance(value, str) and value.strip():
                changes[field_name] = value.strip()
        timeout = overrides.get("timeout")
        if timeout is not None:
            try:
                changes["api_timeout"] = float(timeout)
            except (TypeError, ValueError):
                pass
        return replace(self, **changes)
