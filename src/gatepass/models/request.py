"""Solve request model and parameter validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlsplit

from gatepass.exceptions import InvalidRequestError

SITEKEY_PREFIXES: tuple[str, ...] = ("0x", "1x")


def is_absolute_url(url: str) -> bool:
    """Return True when *url* carries a scheme and a usable host.

    Host-less forms such as ``https://:80`` or ``http://user@``, hosts
    containing whitespace and non-numeric ports are rejected.
    """
    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on a non-numeric or out-of-range port
    except ValueError:
        return False
    host = parts.hostname
    if not parts.scheme or not host:
        return False
    return not any(ch.isspace() for ch in url)


@dataclass(frozen=True)
class SolveRequest:
    """One token request against a Turnstile-gated page.

    Construction validates the sitekey and URL, so an instance that
    exists is always safe to hand to the session controller.
    """

    sitekey: str
    url: str
    user_agent: str
    proxy: str | None = None
    timeout_ms: int = 45_000

    def __post_init__(self) -> None:
        if not self.sitekey:
            raise InvalidRequestError("sitekey", "Missing required parameter: sitekey")
        if not self.url:
            raise InvalidRequestError("url", "Missing required parameter: url")
        # URL before sitekey: a request with both malformed reports the URL.
        if not is_absolute_url(self.url):
            raise InvalidRequestError("url", "Invalid URL format", received=self.url)
        if not self.sitekey.startswith(SITEKEY_PREFIXES):
            raise InvalidRequestError("sitekey", "Invalid sitekey format", received=self.sitekey)
        if self.timeout_ms <= 0:
            raise InvalidRequestError("timeout_ms", "timeout_ms must be positive", received=str(self.timeout_ms))

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        *,
        default_user_agent: str,
        default_timeout_ms: int,
    ) -> "SolveRequest":
        """Build a request from loose HTTP/CLI parameters.

        Accepts both ``userAgent`` and ``user_agent`` spellings. Missing
        optional values fall back to the supplied defaults; an explicit
        ``0`` timeout is kept and rejected as non-positive.
        """
        user_agent = params.get("userAgent") or params.get("user_agent") or default_user_agent
        timeout = params.get("timeoutMs")
        if timeout is None:
            timeout = params.get("timeout_ms")
        if timeout is None or timeout == "":
            timeout = default_timeout_ms
        try:
            timeout_ms = int(timeout)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError("timeout_ms", "timeout_ms must be an integer", received=str(timeout)) from exc
        return cls(
            sitekey=str(params.get("sitekey") or "").strip(),
            url=str(params.get("url") or "").strip(),
            user_agent=str(user_agent),
            proxy=str(params["proxy"]).strip() if params.get("proxy") else None,
            timeout_ms=timeout_ms,
        )
