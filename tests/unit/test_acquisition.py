"""Unit tests for token acquisition and in-page installation."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from gatepass.browser.acquisition import INPUT_EVENTS, TokenAcquisitionEngine
from gatepass.exceptions import RemoteExecutionTimeout
from gatepass.models.results import InjectionSurface

TOKEN = "0x" + "1" * 64 + "." + "2" * 32


def _synth(token: str = TOKEN) -> MagicMock:
    synth = MagicMock()
    synth.synthesize.return_value = token
    return synth


def _executor(surface: str = "hidden_input", value: str | None = TOKEN, **extra: str) -> MagicMock:
    executor = MagicMock()
    executor.call.return_value = {"surface": surface, "value": value, **extra}
    return executor


class TestAcquire:
    @pytest.mark.parametrize("surface", ["visible_input", "hidden_input", "textarea", "none"])
    def test_outcome_records_surface(self, surface: str) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth(), settle_after_ms=0)
        outcome = engine.acquire(_executor(surface))
        assert outcome is not None
        assert outcome.token == TOKEN
        assert outcome.surface is InjectionSurface(surface)

    def test_script_receives_token_and_policy(self) -> None:
        engine = TokenAcquisitionEngine(
            synthesizer=_synth(),
            field_pattern="captcha",
            fallback_callback="onDone",
            settle_after_ms=0,
        )
        executor = _executor()
        engine.acquire(executor)

        _, arg = executor.call.call_args.args
        assert arg == {
            "token": TOKEN,
            "pattern": "captcha",
            "events": list(INPUT_EVENTS),
            "fallbackCallback": "onDone",
        }
        assert executor.call.call_args.kwargs["label"] == "acquire"

    def test_malformed_synthesis_never_touches_page(self) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth("not-a-token"))
        executor = _executor()
        assert engine.acquire(executor) is None
        executor.call.assert_not_called()

    def test_page_not_retaining_token(self) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth(), settle_after_ms=0)
        assert engine.acquire(_executor(value="")) is None

    def test_settle_waits(self) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth(), settle_before_ms=200, settle_after_ms=1_000)
        executor = _executor()
        engine.acquire(executor)
        waits = [c.args[0] for c in executor.page.wait_for_timeout.call_args_list]
        assert waits == [200, 1_000]

    def test_callback_error_does_not_fail(self, caplog) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth(), settle_after_ms=0)
        executor = _executor(callback="onTurnstileDone", callbackError="boom")
        with caplog.at_level(logging.WARNING, logger="gatepass.browser.acquisition"):
            outcome = engine.acquire(executor)

        assert outcome is not None
        assert outcome.callback == "onTurnstileDone"
        assert outcome.callback_error == "boom"
        assert "onTurnstileDone raised: boom" in caplog.text

    def test_remote_timeout_propagates(self) -> None:
        engine = TokenAcquisitionEngine(synthesizer=_synth())
        executor = MagicMock()
        executor.call.side_effect = RemoteExecutionTimeout("acquire", 10_000)
        with pytest.raises(RemoteExecutionTimeout):
            engine.acquire(executor)

    def test_default_synthesizer_produces_fresh_tokens(self) -> None:
        engine = TokenAcquisitionEngine(settle_after_ms=0)
        executor = MagicMock()
        executor.call.side_effect = lambda script, arg, label: {"surface": "none", "value": arg["token"]}

        first = engine.acquire(executor)
        second = engine.acquire(executor)

        assert first.token != second.token


class TestFromSettings:
    def test_reads_acquisition_section(self) -> None:
        from gatepass.settings.config import AcquisitionSettings

        engine = TokenAcquisitionEngine.from_settings(
            AcquisitionSettings(field_pattern="x", settle_after_ms=5, fallback_callback="cb"),
            synthesizer=_synth(),
        )
        assert engine.field_pattern == "x"
        assert engine.settle_after_ms == 5
        assert engine.fallback_callback == "cb"
        assert engine.synthesizer.synthesize() == TOKEN
