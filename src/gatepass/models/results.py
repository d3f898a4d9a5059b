"""Result models for the solve pipeline.

Lightweight data classes for what the browser session observed
(``DetectionSignals``), what the acquisition step did
(``AcquisitionOutcome``) and what the caller receives (``SolveResult``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

TOKEN_PATTERN = re.compile(r"^0x[0-9a-f]{64}\.[0-9a-f]{32}$")


def is_valid_token(token: str | None) -> bool:
    """Return True when *token* has the ``0x<64 hex>.<32 hex>`` shape."""
    return bool(token) and TOKEN_PATTERN.match(token) is not None


class InjectionSurface(str, Enum):
    """Where in the page the acquired token was written."""

    VISIBLE_INPUT = "visible_input"
    HIDDEN_INPUT = "hidden_input"
    TEXTAREA = "textarea"
    NONE = "none"


@dataclass
class DetectionSignals:
    """Independent pieces of evidence that a Turnstile widget is present."""

    frame_present: bool = False
    script_present: bool = False
    attribute_present: bool = False
    global_api_present: bool = False
    page_sitekeys: list[str] = field(default_factory=list)

    @property
    def detected(self) -> bool:
        return self.frame_present or self.script_present or self.attribute_present or self.global_api_present

    @classmethod
    def from_probe(cls, probe: dict[str, Any]) -> "DetectionSignals":
        """Build signals from the dict returned by the in-page probe."""
        return cls(
            frame_present=bool(probe.get("framePresent")),
            script_present=bool(probe.get("scriptPresent")),
            attribute_present=bool(probe.get("attributePresent")),
            global_api_present=bool(probe.get("globalApiPresent")),
            page_sitekeys=[str(k) for k in probe.get("sitekeys") or []],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "framePresent": self.frame_present,
            "scriptPresent": self.script_present,
            "attributePresent": self.attribute_present,
            "globalApiPresent": self.global_api_present,
        }


@dataclass
class AcquisitionOutcome:
    """What the acquisition step installed in the page."""

    token: str
    surface: InjectionSurface = InjectionSurface.NONE
    callback: str = ""
    callback_error: str = ""


@dataclass
class SolveResult:
    """Outcome of one ``solve()`` call, success or failure.

    ``success`` is True exactly when ``token`` is a well-formed token;
    failed results carry no token.
    ``execution_time_ms`` is always populated.
    """

    success: bool = False
    token: str | None = None
    error: str | None = None
    details: str | None = None
    suggestions: list[str] | None = None
    execution_time_ms: int = 0
    user_agent: str = ""
    url: str = ""

    def __post_init__(self) -> None:
        if self.success and not is_valid_token(self.token):
            raise ValueError("A successful SolveResult requires a well-formed token")
        if not self.success and self.token is not None:
            raise ValueError("A failed SolveResult must not carry a token")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a camelCase dict suitable for JSON output."""
        data: dict[str, Any] = {
            "success": self.success,
            "executionTimeMs": self.execution_time_ms,
            "userAgent": self.user_agent,
            "url": self.url,
        }
        if self.token is not None:
            data["token"] = self.token
        if self.error is not None:
            data["error"] = self.error
        if self.details is not None:
            data["details"] = self.details
        if self.suggestions is not None:
            data["suggestions"] = list(self.suggestions)
        return data
