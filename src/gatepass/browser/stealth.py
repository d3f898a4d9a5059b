"""Browser anti-detection: launch profile, proxy parsing and stealth patches.

Provides a ``LaunchProfile`` that configures Playwright's ``launch()``
call with:

- Chromium hardening switches suited to containerised headless runs
- An optional proxy, parsed into Playwright's ``{server, username, password}`` form
- ``AutomationControlled`` blink feature disabled

and ``apply_stealth_scripts()`` which installs init scripts that hide the
most common automation tells (``navigator.webdriver``, empty plugin list,
missing ``chrome.runtime``).

Usage::

    from gatepass.browser.stealth import apply_stealth_scripts, build_launch_profile

    profile = build_launch_profile(proxy="user:pass@10.0.0.1:8080")
    browser = pw.chromium.launch(**profile.launch_args)
    context = browser.new_context(...)
    apply_stealth_scripts(context)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from gatepass.exceptions import ProxyConfigurationError

logger = logging.getLogger(__name__)

_CHROMIUM_ARGS: list[str] = [
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]

_PROXY_SCHEMES: frozenset[str] = frozenset({"http", "https", "socks4", "socks5"})

# Stealth JavaScript, installed via add_init_script() so it runs before page scripts
_STEALTH_SCRIPTS: str = """
// Remove navigator.webdriver flag
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });

// Mimic chrome.runtime (present in real Chrome)
if (!window.chrome) window.chrome = {};
if (!window.chrome.runtime) window.chrome.runtime = {};

// Patch navigator.plugins to look non-empty
Object.defineProperty(navigator, 'plugins', {
    get: () => [1, 2, 3, 4, 5],
});

// Patch navigator.languages
Object.defineProperty(navigator, 'languages', {
    get: () => ['en-US', 'en'],
});

// Headless Chrome reports zero outer dimensions
if (window.outerWidth === 0) {
    Object.defineProperty(window, 'outerWidth', { get: () => window.innerWidth });
    Object.defineProperty(window, 'outerHeight', { get: () => window.innerHeight });
}

// Prevent detection via permissions API
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) =>
    parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters);
"""


def parse_proxy(spec: str) -> dict[str, str]:
    """Convert a proxy spec into Playwright ``proxy`` launch options.

    Accepts ``[scheme://][user:pass@]host[:port]``; a missing scheme means
    ``http``. Credentials are split out because Chromium ignores them when
    embedded in the server URL.

    Raises:
        ProxyConfigurationError: The spec has no host, an unsupported
            scheme, or a non-numeric/out-of-range port.
    """
    raw = spec.strip()
    if not raw:
        raise ProxyConfigurationError(spec, "empty proxy")
    candidate = raw if "://" in raw else f"http://{raw}"

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise ProxyConfigurationError(spec, str(exc)) from exc

    scheme = parts.scheme.lower()
    if scheme not in _PROXY_SCHEMES:
        raise ProxyConfigurationError(spec, f"unsupported scheme {scheme!r}")
    if not parts.hostname:
        raise ProxyConfigurationError(spec, "missing host")
    if any(ch.isspace() for ch in parts.hostname):
        raise ProxyConfigurationError(spec, "whitespace in host")
    if parts.path not in ("", "/") or parts.query:
        raise ProxyConfigurationError(spec, "unexpected path or query")

    server = f"{scheme}://{parts.hostname}"
    if port is not None:
        server = f"{server}:{port}"

    options = {"server": server}
    if parts.username:
        options["username"] = parts.username
        options["password"] = parts.password or ""
    return options


@dataclass
class LaunchProfile:
    """Arguments for ``pw.chromium.launch()`` for a single session."""

    launch_args: dict[str, Any] = field(default_factory=dict)

    # Metadata for logging / audit
    proxy_server: str = ""


def build_launch_profile(
    *,
    headless: bool = True,
    sandbox: bool = False,
    proxy: str | None = None,
    window_size: tuple[int, int] = (1920, 1080),
    timeout_ms: int = 30_000,
    extra_args: list[str] | None = None,
) -> LaunchProfile:
    """Build a ``LaunchProfile`` for one isolated browser.

    Args:
        headless: Run browser in headless mode.
        sandbox: Enable the Chromium sandbox (usually off inside containers).
        proxy: Proxy spec, parsed with :func:`parse_proxy`.
        window_size: Outer window size, kept in step with the viewport.
        timeout_ms: Maximum time to wait for the browser process to start.
        extra_args: Additional Chromium switches.

    Returns:
        A ``LaunchProfile`` ready for Playwright.

    Raises:
        ProxyConfigurationError: *proxy* is malformed.
    """
    profile = LaunchProfile()
    args = [*_CHROMIUM_ARGS, f"--window-size={window_size[0]},{window_size[1]}", *(extra_args or [])]

    profile.launch_args["headless"] = headless
    profile.launch_args["chromium_sandbox"] = sandbox
    profile.launch_args["timeout"] = timeout_ms
    profile.launch_args["args"] = args

    if proxy:
        options = parse_proxy(proxy)
        profile.launch_args["proxy"] = options
        profile.proxy_server = options["server"]
        logger.debug("Using proxy: %s", options["server"])

    return profile


def apply_stealth_scripts(target) -> None:
    """Install stealth JavaScript on a Playwright context or page.

    Call this **before** navigating so the scripts execute in every frame
    from the start.

    Args:
        target: Playwright ``BrowserContext`` or ``Page``.
    """
    target.add_init_script(_STEALTH_SCRIPTS)
    logger.debug("Stealth scripts injected")
