"""Tests for logging setup and the JSON formatter."""

from __future__ import annotations

import importlib
import json
import logging

import pytest


@pytest.fixture
def package_logger():
    logger = logging.getLogger("clinical_forms")
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def _record(message: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("clinical_forms.resolver", logging.WARNING, __file__, 10, message, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_form_context_and_extras() -> None:
    logging_utils = importlib.import_module("clinical_forms.logging_utils")
    record = _record("Dropping rule %s", "r-1", question_id="q-1", rule_id="r-1")

    with logging_utils.form_context("phq", "v-3"):
        logging_utils.FormContextFilter().filter(record)
    payload = json.loads(logging_utils.JsonFormatter().format(record))

    assert payload["msg"] == "Dropping rule r-1"
    assert payload["level"] == "WARNING"
    assert payload["form_code"] == "phq"
    assert payload["form_version"] == "v-3"
    assert payload["question_id"] == "q-1"
    assert payload["rule_id"] == "r-1"
    assert "lineno" not in payload
    assert payload["ts"].endswith("Z")


def test_form_context_restores_outer_values() -> None:
    logging_utils = importlib.import_module("clinical_forms.logging_utils")
    record = _record("outside")

    with logging_utils.form_context("outer"):
        with logging_utils.form_context("inner", "v-2"):
            pass
        logging_utils.FormContextFilter().filter(record)

    assert record.form_code == "outer"
    assert record.form_version is None

    logging_utils.FormContextFilter().filter(record)
    assert record.form_code is None


def test_setup_logging_configures_package_logger_only(package_logger) -> None:
    logging_utils = importlib.import_module("clinical_forms.logging_utils")
    root_handlers = list(logging.getLogger().handlers)

    logging_utils.setup_logging("debug", json_logs=True)
    logger = logging_utils.setup_logging("debug", json_logs=True)

    assert logger is package_logger
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, logging_utils.JsonFormatter)
    assert any(isinstance(item, logging_utils.FormContextFilter) for item in logger.handlers[0].filters)
    assert logging.getLogger().handlers == root_handlers
