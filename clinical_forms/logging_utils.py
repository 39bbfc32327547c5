"""Logging setup for the ``clinical_forms`` package.

Records emitted while a form is being resolved carry the form's code and
version so warnings about dropped rules can be traced back to the
definition that produced them.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
import json
import logging
import sys
from typing import Any, Dict, Iterator, Optional

PACKAGE_LOGGER = "clinical_forms"

_FORM_CODE: ContextVar[Optional[str]] = ContextVar("form_code", default=None)
_FORM_VERSION: ContextVar[Optional[str]] = ContextVar("form_version", default=None)

# Attributes every LogRecord has; anything else was passed through ``extra``.
_STANDARD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "asctime", "form_code", "form_version"}


@contextmanager
def form_context(form_code: Optional[str], version_id: Optional[str] = None) -> Iterator[None]:
    """Tag records logged inside the block with the form being handled."""

    code_token = _FORM_CODE.set(form_code or None)
    version_token = _FORM_VERSION.set(version_id or None)
    try:
        yield
    finally:
        _FORM_VERSION.reset(version_token)
        _FORM_CODE.reset(code_token)


class FormContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.form_code = _FORM_CODE.get()
        record.form_version = _FORM_VERSION.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, including ``extra`` fields such as ``question_id``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).replace(microsecond=0)
        payload: Dict[str, Any] = {
            "ts": timestamp.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "form_code": getattr(record, "form_code", None),
            "form_version": getattr(record, "form_version", None),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRIBUTES:
                continue
            try:
                json.dumps(value, ensure_ascii=False)
                payload[key] = value
            except TypeError:
                payload[key] = str(value)

        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """Attach a single stdout handler to the package logger.

    The root logger is left alone because Streamlit configures its own
    handlers there. Calling this again (Streamlit re-runs the script on
    every interaction) replaces the handler instead of adding another.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(FormContextFilter())
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s %(name)s form=%(form_code)s@%(form_version)s %(message)s"
            )
        )
    logger.addHandler(handler)
    return logger


__all__ = ["FormContextFilter", "JsonFormatter", "PACKAGE_LOGGER", "form_context", "setup_logging"]
