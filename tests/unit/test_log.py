"""Unit tests for log formatting and session-bound loggers."""

from __future__ import annotations

import json
import logging
import sys

from gatepass.log import JsonFormatter, SessionLoggerAdapter, configure_logging


def _record(msg: str = "hello %s", args: tuple = ("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord("gatepass.test", logging.WARNING, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_basic_fields(self) -> None:
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["severity"] == "WARNING"
        assert entry["message"] == "hello world"
        assert entry["logger"] == "gatepass.test"
        assert "time" in entry

    def test_extra_fields_emitted(self) -> None:
        entry = json.loads(JsonFormatter().format(_record(session_id="abc123", state="detecting")))
        assert entry["session_id"] == "abc123"
        assert entry["state"] == "detecting"
        assert "args" not in entry
        assert "levelno" not in entry

    def test_exception_included(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in entry["exception"]


class TestSessionLoggerAdapter:
    def test_prefix_and_extras(self, caplog) -> None:
        adapter = SessionLoggerAdapter(logging.getLogger("gatepass.test"), {"session_id": "s1", "url": "https://x"})
        with caplog.at_level(logging.INFO, logger="gatepass.test"):
            adapter.info("navigating")
        record = caplog.records[-1]
        assert record.getMessage() == "[s1] navigating"
        assert record.session_id == "s1"
        assert record.url == "https://x"

    def test_bind_updates_state(self, caplog) -> None:
        adapter = SessionLoggerAdapter(logging.getLogger("gatepass.test"), {"session_id": "s1", "state": "init"})
        adapter.bind(state="acquiring")
        with caplog.at_level(logging.INFO, logger="gatepass.test"):
            adapter.info("installing")
        assert caplog.records[-1].state == "acquiring"

    def test_call_extra_merges(self, caplog) -> None:
        adapter = SessionLoggerAdapter(logging.getLogger("gatepass.test"), {"session_id": "s1"})
        with caplog.at_level(logging.INFO, logger="gatepass.test"):
            adapter.info("with extra", extra={"surface": "hidden_input"})
        record = caplog.records[-1]
        assert record.surface == "hidden_input"
        assert record.session_id == "s1"


class TestConfigureLogging:
    def test_json_mode_installs_formatter(self) -> None:
        saved_handlers, saved_level = list(logging.root.handlers), logging.root.level
        try:
            configure_logging("DEBUG", json_format=True)
            assert logging.root.level == logging.DEBUG
            assert any(isinstance(h.formatter, JsonFormatter) for h in logging.root.handlers)
        finally:
            logging.root.handlers[:] = saved_handlers
            logging.root.setLevel(saved_level)
