"""Failure classification into a stable, caller-facing taxonomy.

Every exception that escapes a pipeline stage is mapped to one
:class:`ErrorCategory` with a human-readable detail string and a list of
remediation suggestions. Exception types are checked first; message
substrings are the fallback for raw Playwright errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from playwright.sync_api import TimeoutError as PlaywrightTimeout

from gatepass.exceptions import (
    AcquisitionFailedError,
    ChallengeNotDetectedError,
    ContextDestroyedError,
    ProxyConfigurationError,
    RemoteExecutionTimeout,
)


class ErrorCategory(str, Enum):
    """Stable failure categories returned in ``SolveResult.error``."""

    TIMEOUT = "Timeout"
    NETWORK_ERROR = "NetworkError"
    CONTEXT_DESTROYED = "ContextDestroyed"
    CHALLENGE_NOT_DETECTED = "ChallengeNotDetected"
    ACQUISITION_FAILED = "AcquisitionFailed"
    UNKNOWN = "Unknown"


SUGGESTIONS: dict[ErrorCategory, list[str]] = {
    ErrorCategory.TIMEOUT: [
        "Try increasing timeout",
        "Check if URL is accessible",
        "Try with proxy",
    ],
    ErrorCategory.NETWORK_ERROR: [
        "Check URL accessibility",
        "Verify the proxy specification and that the proxy is reachable",
        "Verify network connectivity",
    ],
    ErrorCategory.CONTEXT_DESTROYED: [
        "Reduce timeout",
        "Use simpler user agent",
        "Try without proxy",
    ],
    ErrorCategory.CHALLENGE_NOT_DETECTED: [
        "Verify the URL and sitekey are correct",
        "Ensure the site uses Cloudflare Turnstile",
    ],
    ErrorCategory.ACQUISITION_FAILED: [
        "Retry the request",
        "Try a different user agent",
    ],
    ErrorCategory.UNKNOWN: [
        "Retry the request",
        "Check the service logs for details",
    ],
}

_NETWORK_MARKERS: tuple[str, ...] = ("net::ERR_", "NS_ERROR_", "ERR_PROXY", "ERR_TUNNEL")
_CONTEXT_MARKERS: tuple[str, ...] = ("Execution context was destroyed",)


@dataclass
class Classification:
    """A classified failure ready to be placed on a ``SolveResult``."""

    category: ErrorCategory
    details: str
    suggestions: list[str] = field(default_factory=list)


def _first_line(exc: BaseException) -> str:
    # Playwright messages append a multi-line call log; keep only the headline.
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__


class ErrorClassifier:
    """Maps pipeline failures to :class:`ErrorCategory` values."""

    def category_for(self, exc: BaseException) -> ErrorCategory:
        if isinstance(exc, ChallengeNotDetectedError):
            return ErrorCategory.CHALLENGE_NOT_DETECTED
        if isinstance(exc, AcquisitionFailedError):
            return ErrorCategory.ACQUISITION_FAILED
        if isinstance(exc, ContextDestroyedError):
            return ErrorCategory.CONTEXT_DESTROYED
        if isinstance(exc, (PlaywrightTimeout, RemoteExecutionTimeout)):
            return ErrorCategory.TIMEOUT
        if isinstance(exc, ProxyConfigurationError):
            return ErrorCategory.NETWORK_ERROR

        message = str(exc)
        if "timeout" in message.lower():
            return ErrorCategory.TIMEOUT
        if any(marker in message for marker in _NETWORK_MARKERS):
            return ErrorCategory.NETWORK_ERROR
        if any(marker in message for marker in _CONTEXT_MARKERS):
            return ErrorCategory.CONTEXT_DESTROYED
        return ErrorCategory.UNKNOWN

    def classify(self, exc: BaseException) -> Classification:
        """Return the category, detail message and suggestions for *exc*."""
        category = self.category_for(exc)
        headline = _first_line(exc)

        if category is ErrorCategory.TIMEOUT:
            details = f"Request timeout - the page took too long to respond ({headline})"
        elif category is ErrorCategory.NETWORK_ERROR:
            details = f"Network error: {headline}"
        elif category is ErrorCategory.CONTEXT_DESTROYED:
            details = "Browser context destroyed - the page navigated or crashed during evaluation"
        elif category is ErrorCategory.CHALLENGE_NOT_DETECTED:
            details = (
                "No Turnstile widget detected. Check if the URL is correct "
                "and the site uses Cloudflare Turnstile."
            )
        elif category is ErrorCategory.ACQUISITION_FAILED:
            details = f"Could not obtain a token after the acquisition attempt: {headline}"
        else:
            details = headline

        return Classification(category=category, details=details, suggestions=list(SUGGESTIONS[category]))
