"""
test_logging.py — Log formatters, request-ID binding and the server runner.

Run with:
    pytest tests/test_logging.py -v
"""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

from safecircle.app import main
from safecircle.app.core.config import settings
from safecircle.app.core.logging_config import (
    ConsoleFormatter,
    JSONFormatter,
    bind_request_id,
    reset_request_id,
)


def _make_record(msg="SOS fired", level=logging.WARNING, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "safecircle.app.alerts.lifecycle", level, __file__, 1, msg, None, None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_structured_fields_and_request_id(self):
        token = bind_request_id("a1b2c3d4e5f6")
        try:
            line = JSONFormatter().format(_make_record(alert_id="1718460600000", recipient_count=2))
        finally:
            reset_request_id(token)
        entry = json.loads(line)
        assert entry["level"] == "WARNING"
        assert entry["message"] == "SOS fired"
        assert entry["request_id"] == "a1b2c3d4e5f6"
        assert entry["alert_id"] == "1718460600000"
        assert entry["recipient_count"] == 2

    def test_no_request_outside_a_call(self):
        entry = json.loads(JSONFormatter().format(_make_record()))
        assert "request_id" not in entry
        assert "alert_id" not in entry


class TestConsoleFormatter:

    def test_request_tag_and_fields(self):
        token = bind_request_id("a1b2c3d4e5f6")
        try:
            line = ConsoleFormatter().format(_make_record(countdown=3))
        finally:
            reset_request_id(token)
        assert "[a1b2c3d4]" in line
        assert line.endswith("SOS fired countdown=3")

    def test_plain_line(self):
        line = ConsoleFormatter().format(_make_record("Contact added", level=logging.INFO))
        assert "[" not in line
        assert "INFO" in line
        assert line.endswith("safecircle.app.alerts.lifecycle: Contact added")


class TestRunner:

    def test_serves_configured_host_and_port(self):
        with patch.object(settings, "HOST", "127.0.0.1"), \
                patch.object(settings, "PORT", 9001), \
                patch.object(settings, "RELOAD", True), \
                patch.object(settings, "ENVIRONMENT", "development"), \
                patch.object(main.uvicorn, "run") as run:
            main.run()
        args, kwargs = run.call_args
        assert args == ("safecircle.app.main:app",)
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9001
        assert kwargs["reload"] is True

    def test_no_reload_outside_development(self):
        with patch.object(settings, "RELOAD", True), \
                patch.object(settings, "ENVIRONMENT", "production"), \
                patch.object(main.uvicorn, "run") as run:
            main.run()
        assert run.call_args.kwargs["reload"] is False
