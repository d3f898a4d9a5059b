"""Unit tests for bounded in-page evaluation."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest
from playwright.sync_api import Error as PlaywrightError

from gatepass.browser.remote import RemoteExecutor, build_script
from gatepass.exceptions import ContextDestroyedError, RemoteExecutionError, RemoteExecutionTimeout


class TestBuildScript:
    def test_placeholders_substituted(self) -> None:
        script = build_script("(arg) => arg + 1", 2500)
        assert "(arg) => arg + 1" in script
        assert "2500" in script
        assert "__FUNCTION__" not in script
        assert "__TIMEOUT_MS__" not in script
        assert "__MARKER__" not in script
        assert "Promise.race" in script


class TestRemoteExecutor:
    def test_returns_page_result_and_passes_arg(self) -> None:
        page = MagicMock()
        page.evaluate.return_value = {"ok": True}
        executor = RemoteExecutor(page, timeout_ms=1000)

        assert executor.call("(arg) => arg", {"x": 1}) == {"ok": True}
        script, arg = page.evaluate.call_args.args
        assert "1000" in script
        assert arg == {"x": 1}

    def test_per_call_timeout_override(self) -> None:
        page = MagicMock()
        RemoteExecutor(page, timeout_ms=1000).call("() => 1", timeout_ms=42)
        assert "42)" in page.evaluate.call_args.args[0]

    def test_in_page_deadline_becomes_timeout(self) -> None:
        page = MagicMock()
        page.evaluate.side_effect = PlaywrightError("Error: gatepass:remote-timeout\n    at <anonymous>")
        with pytest.raises(RemoteExecutionTimeout) as exc_info:
            RemoteExecutor(page, timeout_ms=300).call("() => new Promise(() => {})", label="detect")
        assert exc_info.value.label == "detect"
        assert exc_info.value.timeout_ms == 300
        assert str(exc_info.value).startswith("Remote execution timeout:")

    @pytest.mark.parametrize(
        "message",
        [
            "Execution context was destroyed, most likely because of a navigation",
            "Protocol error (Runtime.callFunctionOn): Cannot find context with specified id",
        ],
    )
    def test_destroyed_context(self, message: str) -> None:
        page = MagicMock()
        page.evaluate.side_effect = PlaywrightError(message)
        with pytest.raises(ContextDestroyedError, match="Execution context was destroyed during acquire"):
            RemoteExecutor(page).call("() => 1", label="acquire")

    def test_driver_errors_propagate_unchanged(self) -> None:
        page = MagicMock()
        original = PlaywrightError("net::ERR_CONNECTION_RESET")
        page.evaluate.side_effect = original
        with pytest.raises(PlaywrightError) as exc_info:
            RemoteExecutor(page).call("() => 1")
        assert exc_info.value is original

    def test_in_page_exception_wrapped(self) -> None:
        page = MagicMock()
        page.evaluate.side_effect = PlaywrightError("ReferenceError: foo is not defined")
        with pytest.raises(RemoteExecutionError, match="probe failed in page"):
            RemoteExecutor(page).call("() => foo", label="probe")


class TestDeadlineOverrun:
    """A page with a blocked main thread cannot fire the in-page timer."""

    @patch("gatepass.browser.remote.time")
    def test_late_return_is_logged(self, mock_time, caplog) -> None:
        mock_time.monotonic.side_effect = [100.0, 105.0]
        page = MagicMock()
        page.evaluate.return_value = {"ok": True}

        with caplog.at_level(logging.WARNING, logger="gatepass.browser.remote"):
            result = RemoteExecutor(page, timeout_ms=1000).call("() => 1", label="detect")

        assert result == {"ok": True}
        assert "Remote call detect took 5000ms, past its 1000ms deadline" in caplog.text

    @patch("gatepass.browser.remote.time")
    def test_late_failure_is_logged(self, mock_time, caplog) -> None:
        mock_time.monotonic.side_effect = [0.0, 30.0]
        page = MagicMock()
        page.evaluate.side_effect = PlaywrightError("Target page, context or browser has been closed")

        with caplog.at_level(logging.WARNING, logger="gatepass.browser.remote"):
            with pytest.raises(RemoteExecutionError):
                RemoteExecutor(page, timeout_ms=500).call("() => 1", label="acquire")

        assert "Remote call acquire took 30000ms" in caplog.text

    @patch("gatepass.browser.remote.time")
    def test_prompt_return_is_quiet(self, mock_time, caplog) -> None:
        mock_time.monotonic.side_effect = [0.0, 0.2]
        with caplog.at_level(logging.WARNING, logger="gatepass.browser.remote"):
            RemoteExecutor(MagicMock(), timeout_ms=1000).call("() => 1")
        assert caplog.text == ""
