"""Helpers for working with form definition files stored on disk."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from clinical_forms.form_model import FormModel, form_from_payload

logger = logging.getLogger(__name__)

FORM_DEFINITION_FILENAME = "form_definition.json"
DEFINITIONS_ROOT = Path("form_definitions")
LEGACY_DEFINITION_PATH = Path("form_definition.json")

PathLike = Union[str, Path]


def _root(root: Optional[PathLike]) -> Path:
    return Path(root) if root is not None else DEFINITIONS_ROOT


def discover_local_forms(root: Optional[PathLike] = None) -> Dict[str, Path]:
    """Return a mapping of ``form_key -> path`` for local definition files."""

    base = _root(root)
    forms: Dict[str, Path] = {}
    if base.exists():
        for entry in sorted(base.iterdir()):
            if not entry.is_dir():
                continue
            definition_path = entry / FORM_DEFINITION_FILENAME
            if definition_path.exists():
                forms[entry.name] = definition_path
    if not forms and root is None and LEGACY_DEFINITION_PATH.exists():
        forms["default"] = LEGACY_DEFINITION_PATH
    return forms


def _unwrap_payload(payload: Any) -> Dict[str, Any]:
    """Return the definition body, unwrapping API envelopes when present."""

    if not isinstance(payload, Mapping):
        return {}
    for key in ("form", "definition", "data"):
        inner = payload.get(key)
        if isinstance(inner, Mapping) and ("sections" in inner or "questions" in inner):
            return dict(inner)
    return dict(payload)


def load_form_payload(form_key: str, root: Optional[PathLike] = None) -> Dict[str, Any]:
    """Read the raw definition payload for ``form_key``.

    Raises ``KeyError`` when no definition with that key exists.
    """

    forms = discover_local_forms(root)
    if form_key not in forms:
        raise KeyError(f"Unknown form definition: {form_key}")
    with forms[form_key].open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    return _unwrap_payload(payload)


def load_form_definition(form_key: str, root: Optional[PathLike] = None) -> FormModel:
    """Load ``form_key`` from disk as a ``FormModel``."""

    payload = load_form_payload(form_key, root)
    form = form_from_payload(payload)
    if not form.code:
        form.code = form_key
    if not form.name:
        form.name = form_key
    logger.debug("Loaded form %s with %d sections", form_key, len(form.sections))
    return form


def available_form_keys(root: Optional[PathLike] = None) -> List[str]:
    """Return the list of known form identifiers."""

    return list(discover_local_forms(root).keys())


__all__ = [
    "DEFINITIONS_ROOT",
    "FORM_DEFINITION_FILENAME",
    "available_form_keys",
    "discover_local_forms",
    "load_form_definition",
    "load_form_payload",
]
