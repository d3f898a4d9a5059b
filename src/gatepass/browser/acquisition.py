"""Token acquisition: synthesize a token and install it in the page.

Runs only after Turnstile has been detected. The token comes from a
pluggable :class:`~gatepass.tokens.TokenSynthesizer`; with the
default placeholder synthesizer the result is **not** a valid
verification proof (see ``gatepass.tokens``).

Installation is one remote call that tries, first match wins:

1. a rendered, non-hidden ``input`` whose name/id matches the field
   pattern: value set, then bubbling ``input``/``change``/``keydown``/``keyup``
   events dispatched so page listeners observe it;
2. a hidden (or unrendered) matching ``input``: value set, no events;
3. a matching ``textarea``: value set;
4. nothing: the token is returned without DOM injection.

After injection the widget's completion callback (``data-callback`` on
the widget, else ``window.turnstileCallback``) is called with the token.
A throwing callback is recorded on the outcome and does not fail the
acquisition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from gatepass.models.results import AcquisitionOutcome, InjectionSurface, is_valid_token
from gatepass.tokens import PlaceholderTokenSynthesizer, TokenSynthesizer

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from gatepass.browser.remote import RemoteExecutor
    from gatepass.settings.config import AcquisitionSettings

INPUT_EVENTS: tuple[str, ...] = ("input", "change", "keydown", "keyup")

_INJECT_SCRIPT = """({ token, pattern, events, fallbackCallback }) => {
    const matcher = new RegExp(pattern, 'i');
    const matches = (el) => matcher.test(el.name || '') || matcher.test(el.id || '');
    const rendered = (el) => el.getClientRects().length > 0;

    const inputs = Array.from(document.querySelectorAll('input')).filter(matches);
    const visible = inputs.find((el) => el.type !== 'hidden' && rendered(el));
    const hidden = inputs.find((el) => el !== visible);
    const textarea = Array.from(document.querySelectorAll('textarea')).find(matches);

    let surface = 'none';
    let target = null;
    if (visible) {
        surface = 'visible_input';
        target = visible;
    } else if (hidden) {
        surface = 'hidden_input';
        target = hidden;
    } else if (textarea) {
        surface = 'textarea';
        target = textarea;
    }

    if (target) {
        target.value = token;
        if (surface === 'visible_input') {
            for (const type of events) {
                target.dispatchEvent(new Event(type, { bubbles: true }));
            }
        }
    }

    let callback = '';
    let callbackError = '';
    const widget = document.querySelector('[data-callback]');
    const candidates = [widget ? widget.getAttribute('data-callback') : '', fallbackCallback].filter(Boolean);
    for (const name of candidates) {
        if (typeof window[name] !== 'function') continue;
        callback = name;
        try {
            window[name](token);
        } catch (e) {
            callbackError = String((e && e.message) || e);
        }
        break;
    }

    return { surface, value: target ? target.value : token, callback, callbackError };
}"""


@dataclass
class TokenAcquisitionEngine:
    """Synthesizes a token and writes it into the detected widget's form."""

    synthesizer: TokenSynthesizer = field(default_factory=PlaceholderTokenSynthesizer)
    field_pattern: str = "turnstile|cf[-_]"
    fallback_callback: str = "turnstileCallback"
    settle_before_ms: int = 0
    settle_after_ms: int = 1_000

    @classmethod
    def from_settings(
        cls,
        acquisition: AcquisitionSettings,
        synthesizer: TokenSynthesizer | None = None,
    ) -> "TokenAcquisitionEngine":
        return cls(
            synthesizer=synthesizer or PlaceholderTokenSynthesizer(),
            field_pattern=acquisition.field_pattern,
            fallback_callback=acquisition.fallback_callback,
            settle_before_ms=acquisition.settle_before_ms,
            settle_after_ms=acquisition.settle_after_ms,
        )

    def acquire(
        self,
        executor: RemoteExecutor,
        *,
        log: logging.Logger | logging.LoggerAdapter = logger,
    ) -> AcquisitionOutcome | None:
        """Install a fresh token in the page.

        Returns:
            The outcome, or ``None`` when no usable token was produced
            (malformed synthesis, or the page did not keep the value).
        """
        token = self.synthesizer.synthesize()
        if not is_valid_token(token):
            log.warning("Token synthesizer produced a malformed token; aborting acquisition")
            return None

        if self.settle_before_ms:
            executor.page.wait_for_timeout(self.settle_before_ms)

        raw = executor.call(
            _INJECT_SCRIPT,
            {
                "token": token,
                "pattern": self.field_pattern,
                "events": list(INPUT_EVENTS),
                "fallbackCallback": self.fallback_callback,
            },
            label="acquire",
        ) or {}

        if self.settle_after_ms:
            executor.page.wait_for_timeout(self.settle_after_ms)

        if raw.get("value") != token:
            log.warning("Page did not retain the injected token (surface=%s)", raw.get("surface"))
            return None

        outcome = AcquisitionOutcome(
            token=token,
            surface=InjectionSurface(raw.get("surface") or InjectionSurface.NONE.value),
            callback=raw.get("callback") or "",
            callback_error=raw.get("callbackError") or "",
        )
        if outcome.callback_error:
            log.warning("Completion callback %s raised: %s", outcome.callback, outcome.callback_error)
        log.info("Token installed via %s: %s...", outcome.surface.value, token[:20])
        return outcome
