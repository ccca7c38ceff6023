"""
Tests for structured logging: formatters, the StructuredLogger sink and
environment-dependent handler setup.

Run with:
    pytest tests/test_logging_config.py -v
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from backend.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    StructuredLogger,
    _installed_handlers,
    clear_request_context,
    set_request_context,
    setup_logging,
)


def _record(message: str = "Incoming request", level: int = logging.INFO, **fields) -> logging.LogRecord:
    record = logging.LogRecord("backend.app.requests", level, __file__, 1, message, None, None)
    if fields:
        record.fields = fields
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    yield
    clear_request_context()


@pytest.fixture
def restore_root_logger(settings_factory):
    root = logging.getLogger()
    level = root.level
    yield root
    # closes any file handlers the test opened
    setup_logging(settings_factory())
    root.setLevel(level)


class TestJSONFormatter:
    def test_base_fields(self):
        entry = json.loads(JSONFormatter(service="rest-backend", version="1.0.0").format(_record()))
        assert entry["level"] == "info"
        assert entry["message"] == "Incoming request"
        assert entry["service"] == "rest-backend"
        assert entry["version"] == "1.0.0"
        assert "timestamp" in entry

    def test_event_fields_merged(self):
        entry = json.loads(JSONFormatter().format(_record(requestId="abc", statusCode=200)))
        assert entry["requestId"] == "abc"
        assert entry["statusCode"] == 200

    def test_request_context_included(self):
        set_request_context(requestId="ctx-id")
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["requestId"] == "ctx-id"

    def test_event_fields_win_over_context(self):
        set_request_context(requestId="ctx-id")
        entry = json.loads(JSONFormatter().format(_record(requestId="event-id")))
        assert entry["requestId"] == "event-id"

    def test_exception_rendered(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"]["type"] == "ValueError"
        assert "bad input" in entry["exception"]["stack"]

    def test_unserializable_values_stringified(self):
        entry = json.loads(JSONFormatter().format(_record(error=object())))
        assert isinstance(entry["error"], str)


class TestPrettyFormatter:
    def test_request_id_and_fields(self):
        line = PrettyFormatter().format(_record(requestId="abc", statusCode=200))
        assert "[abc]" in line
        assert "Incoming request" in line
        assert '"statusCode": 200' in line


class TestStructuredLogger:
    def test_fields_attached_to_record(self, caplog):
        log = StructuredLogger("backend.app.test")
        with caplog.at_level(logging.DEBUG, logger="backend.app.test"):
            log.info("Request completed", statusCode=200, duration="3ms")
        [record] = caplog.records
        assert record.levelno == logging.INFO
        assert record.fields == {"statusCode": 200, "duration": "3ms"}

    @pytest.mark.parametrize("method, level", [
        ("error", logging.ERROR),
        ("warn", logging.WARNING),
        ("info", logging.INFO),
        ("debug", logging.DEBUG),
        ("fatal", logging.CRITICAL),
        ("trace", logging.DEBUG),
    ])
    def test_level_mapping(self, caplog, method, level):
        log = StructuredLogger("backend.app.test")
        with caplog.at_level(logging.DEBUG, logger="backend.app.test"):
            getattr(log, method)("event")
        assert caplog.records[0].levelno == level

    def test_fatal_fields_attached_like_other_levels(self, caplog):
        log = StructuredLogger("backend.app.test")
        with caplog.at_level(logging.DEBUG, logger="backend.app.test"):
            log.fatal("Uncaught exception", code="E_BOOT")
            log.error("Request error", code="E_BOOT")
        fatal, error = caplog.records
        assert fatal.levelno == logging.CRITICAL
        assert fatal.fields == error.fields == {"code": "E_BOOT"}

    def test_wraps_existing_logger(self):
        inner = logging.getLogger("backend.app.wrapped")
        assert StructuredLogger(inner).name == "backend.app.wrapped"


class TestSetupLogging:
    def test_development_console_only(self, settings_factory, restore_root_logger):
        setup_logging(settings_factory(ENVIRONMENT="development", LOG_LEVEL="debug"))
        assert len(_installed_handlers) == 1
        assert _installed_handlers[0] in restore_root_logger.handlers
        assert isinstance(_installed_handlers[0].formatter, PrettyFormatter)
        assert restore_root_logger.level == logging.DEBUG

    def test_production_console_is_json_and_quiet(self, settings_factory, restore_root_logger, tmp_path):
        setup_logging(settings_factory(ENVIRONMENT="production", LOG_FORMAT="json", LOG_DIR=str(tmp_path)))
        console = _installed_handlers[0]
        assert isinstance(console.formatter, JSONFormatter)
        assert console.level == logging.WARNING
        assert len(_installed_handlers) == 3

    def test_rerun_replaces_own_handlers(self, settings_factory, restore_root_logger):
        setup_logging(settings_factory())
        count = len(restore_root_logger.handlers)
        setup_logging(settings_factory())
        assert len(restore_root_logger.handlers) == count

    def test_production_writes_files(self, settings_factory, restore_root_logger, tmp_path):
        setup_logging(settings_factory(ENVIRONMENT="production", LOG_FORMAT="json", LOG_DIR=str(tmp_path)))
        StructuredLogger("backend.app.test").error("Request error", requestId="abc")
        StructuredLogger("backend.app.test").info("Incoming request")
        for handler in restore_root_logger.handlers:
            handler.flush()

        errors = (tmp_path / "error.log").read_text().splitlines()
        combined = (tmp_path / "combined.log").read_text().splitlines()
        assert [json.loads(line)["message"] for line in errors] == ["Request error"]
        assert len(combined) == 2
        assert json.loads(errors[0])["requestId"] == "abc"
