"""Request identity for a browsing session.

``PageConfigurator`` turns the request's user agent plus the configured
header set and viewport into ``browser.new_context()`` options, and
installs stealth patches on the new context. Everything here happens
before the first request leaves the browser, so the user agent and headers
seen by the target are consistent from the very first byte.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gatepass.browser.stealth import apply_stealth_scripts

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from playwright.sync_api import Browser, BrowserContext, Page

    from gatepass.settings.config import PageSettings

BASELINE_HEADERS: dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
}


@dataclass
class PageConfigurator:
    """Applies user agent, headers, viewport and stealth to a new session."""

    headers: dict[str, str] = field(default_factory=lambda: dict(BASELINE_HEADERS))
    viewport: dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    stealth: bool = True
    ignore_https_errors: bool = True

    @classmethod
    def from_settings(cls, page_settings: PageSettings) -> "PageConfigurator":
        return cls(
            headers=dict(page_settings.headers),
            viewport={"width": page_settings.viewport_width, "height": page_settings.viewport_height},
            stealth=page_settings.apply_stealth_scripts,
            ignore_https_errors=page_settings.ignore_https_errors,
        )

    def context_args(self, user_agent: str) -> dict[str, Any]:
        """Return ``new_context()`` keyword arguments for *user_agent*."""
        return {
            "user_agent": user_agent,
            "viewport": dict(self.viewport),
            "extra_http_headers": dict(self.headers),
            "ignore_https_errors": self.ignore_https_errors,
            "java_script_enabled": True,
        }

    def open_page(self, browser: Browser, user_agent: str) -> tuple[BrowserContext, Page]:
        """Create a configured context and page on *browser*.

        The context is returned so the caller can own and close it.
        """
        context = browser.new_context(**self.context_args(user_agent))
        if self.stealth:
            apply_stealth_scripts(context)
        page = context.new_page()
        logger.debug(
            "Configured page: UA=%s..., viewport=%sx%s, headers=%s",
            user_agent[:50],
            self.viewport["width"],
            self.viewport["height"],
            sorted(self.headers),
        )
        return context, page
