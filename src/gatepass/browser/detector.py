"""Turnstile widget detection.

Checks four independent signals in the loaded document:

1. **Frame** — an ``iframe`` whose ``src`` references the challenge domain.
2. **Script** — a ``script`` whose ``src`` references the same domain.
3. **Attribute** — an element whose class or id carries the widget marker,
   or any element with ``data-sitekey``.
4. **Global API** — the ``window.turnstile`` object exposed by the loader.

Detection is positive when any signal is true. The probe is repeated
every ``poll_interval_ms`` until it turns positive or ``wait_ms`` elapses;
``wait_ms=0`` probes exactly once.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from gatepass.models.results import DetectionSignals

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from gatepass.browser.remote import RemoteExecutor
    from gatepass.settings.config import DetectionSettings

_PROBE_SCRIPT = """({ domain, marker, globalApi }) => {
    const refersToChallenge = (el) => (el.getAttribute('src') || el.src || '').includes(domain);
    const selector = `[class*="${marker}"], [id*="${marker}"], [data-sitekey]`;
    const sitekeys = Array.from(document.querySelectorAll('[data-sitekey]'))
        .map((el) => el.getAttribute('data-sitekey'))
        .filter(Boolean);
    return {
        framePresent: Array.from(document.querySelectorAll('iframe')).some(refersToChallenge),
        scriptPresent: Array.from(document.querySelectorAll('script')).some(refersToChallenge),
        attributePresent: document.querySelector(selector) !== null,
        globalApiPresent: typeof window[globalApi] !== 'undefined',
        sitekeys,
    };
}"""


@dataclass
class ChallengeDetector:
    """Polls a page for Turnstile evidence within a bounded window."""

    challenge_domain: str = "challenges.cloudflare.com"
    widget_marker: str = "turnstile"
    global_api: str = "turnstile"
    wait_ms: int = 10_000
    poll_interval_ms: int = 500

    @classmethod
    def from_settings(cls, detection: DetectionSettings) -> "ChallengeDetector":
        return cls(
            challenge_domain=detection.challenge_domain,
            widget_marker=detection.widget_marker,
            global_api=detection.global_api,
            wait_ms=detection.wait_ms,
            poll_interval_ms=detection.poll_interval_ms,
        )

    def probe(self, executor: RemoteExecutor) -> DetectionSignals:
        """Evaluate all four signals once."""
        raw = executor.call(
            _PROBE_SCRIPT,
            {"domain": self.challenge_domain, "marker": self.widget_marker, "globalApi": self.global_api},
            label="detect",
        )
        return DetectionSignals.from_probe(raw or {})

    def detect(self, executor: RemoteExecutor, *, log: logging.Logger | logging.LoggerAdapter = logger) -> DetectionSignals:
        """Probe until a signal appears or the wait window closes.

        Returns the last observed signals; callers check ``.detected``.
        Errors from the remote call (timeouts, destroyed contexts)
        propagate to the caller.
        """
        deadline = time.monotonic() + self.wait_ms / 1000
        attempts = 0
        while True:
            attempts += 1
            signals = self.probe(executor)
            if signals.detected:
                log.info("Turnstile detected after %d probe(s): %s", attempts, signals.to_dict())
                return signals
            remaining_ms = int((deadline - time.monotonic()) * 1000)
            if remaining_ms <= 0:
                log.info("No Turnstile signal after %d probe(s) in %dms", attempts, self.wait_ms)
                return signals
            executor.page.wait_for_timeout(min(self.poll_interval_ms, remaining_ms))
