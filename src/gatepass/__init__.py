"""gatepass — Cloudflare Turnstile detection and placeholder completion tokens.

Drives a headless Chromium session per request: configures identity and
stealth patches, blocks heavy resources, detects the Turnstile widget and
installs a *placeholder* completion token in the page.

The token only satisfies the structural format ``0x<64 hex>.<32 hex>``.
It is not a proof accepted by Cloudflare's verification backend; see
``gatepass.tokens``.
"""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("gatepass")
except Exception:
    __version__ = "0.0.0"
