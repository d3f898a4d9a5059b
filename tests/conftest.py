"""gatepass test configuration — shared fixtures and a Playwright double.

The double mirrors the slice of the sync Playwright API the pipeline uses
(``start → chromium.launch → new_context → new_page``) and tracks every
handle it hands out, so tests can assert that a session released all of
them. Page probes are answered from fixture HTML.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pytest

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PAGES_DIR = FIXTURES_DIR / "pages"

VALID_SITEKEY = "0x4AAAAAAADUMMY"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Clear the settings LRU cache between tests."""
    from gatepass.settings.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Fixture HTML → probe answers
# ---------------------------------------------------------------------------


def signals_from_html(html: str, domain: str = "challenges.cloudflare.com") -> dict[str, Any]:
    """Cheap static approximation of the in-page detection probe."""
    frame = re.search(r"<iframe[^>]+src=\"[^\"]*" + re.escape(domain), html, re.IGNORECASE)
    script = re.search(r"<script[^>]+src=\"[^\"]*" + re.escape(domain), html, re.IGNORECASE)
    attribute = re.search(r"(class|id)=\"[^\"]*turnstile|data-sitekey=", html, re.IGNORECASE)
    sitekeys = re.findall(r"data-sitekey=\"([^\"]+)\"", html)
    return {
        "framePresent": bool(frame),
        "scriptPresent": bool(script),
        "attributePresent": bool(attribute),
        "globalApiPresent": False,
        "sitekeys": sitekeys,
    }


def load_page(name: str) -> str:
    return (PAGES_DIR / name).read_text()


# ---------------------------------------------------------------------------
# Playwright double
# ---------------------------------------------------------------------------


@dataclass
class HandleTracker:
    """Counts handles opened and closed by the fake driver."""

    opened: list[str] = field(default_factory=list)
    closed: list[str] = field(default_factory=list)

    @property
    def open_count(self) -> int:
        return len(self.opened) - len(self.closed)


class FakeRequest:
    def __init__(self, url: str, resource_type: str) -> None:
        self.url = url
        self.resource_type = resource_type


class FakeRoute:
    def __init__(self, request: FakeRequest, log: list[tuple[str, str]]) -> None:
        self.request = request
        self._log = log

    def continue_(self) -> None:
        self._log.append(("continue", self.request.url))

    def abort(self) -> None:
        self._log.append(("abort", self.request.url))


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.ok = status < 400


class FakePage:
    """Page double answering detection and injection scripts."""

    def __init__(
        self,
        tracker: HandleTracker,
        *,
        probes: list[dict[str, Any]],
        surface: str = "hidden_input",
        retain_token: bool = True,
        goto_error: Exception | None = None,
        evaluate_error: Exception | None = None,
        resources: list[tuple[str, str]] | None = None,
        close_error: Exception | None = None,
    ) -> None:
        self._tracker = tracker
        self._probes = list(probes)
        self._surface = surface
        self._retain_token = retain_token
        self._goto_error = goto_error
        self._evaluate_error = evaluate_error
        self._resources = resources or []
        self._close_error = close_error
        self._route_handler: Callable | None = None
        self.listeners: dict[str, Callable] = {}
        self.route_log: list[tuple[str, str]] = []
        self.evaluated: list[str] = []
        self.waits: list[int] = []
        self.goto_calls: list[dict[str, Any]] = []
        tracker.opened.append("page")

    def route(self, pattern: str, handler: Callable) -> None:
        self._route_handler = handler

    def on(self, event: str, callback: Callable) -> None:
        self.listeners[event] = callback

    def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.goto_calls.append({"url": url, **kwargs})
        if self._goto_error is not None:
            raise self._goto_error
        for resource_url, resource_type in [(url, "document"), *self._resources]:
            if self._route_handler is not None:
                self._route_handler(FakeRoute(FakeRequest(resource_url, resource_type), self.route_log))
        return FakeResponse(200)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        if self._evaluate_error is not None:
            raise self._evaluate_error
        if "framePresent" in script:
            self.evaluated.append("detect")
            return self._probes.pop(0) if len(self._probes) > 1 else self._probes[0]
        if "fallbackCallback" in script:
            self.evaluated.append("acquire")
            value = arg["token"] if self._retain_token else ""
            return {"surface": self._surface, "value": value, "callback": "", "callbackError": ""}
        raise AssertionError(f"unexpected script: {script[:60]}")

    def wait_for_timeout(self, ms: int) -> None:
        self.waits.append(ms)

    def close(self) -> None:
        self._tracker.closed.append("page")
        if self._close_error is not None:
            raise self._close_error


class FakeContext:
    def __init__(self, tracker: HandleTracker, page_factory: Callable[[], FakePage], options: dict[str, Any]) -> None:
        self._tracker = tracker
        self._page_factory = page_factory
        self.options = options
        self.init_scripts: list[str] = []
        self.page: FakePage | None = None
        tracker.opened.append("context")

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def new_page(self) -> FakePage:
        self.page = self._page_factory()
        return self.page

    def close(self) -> None:
        self._tracker.closed.append("context")


class FakeBrowser:
    def __init__(self, tracker: HandleTracker, page_factory: Callable[[], FakePage]) -> None:
        self._tracker = tracker
        self._page_factory = page_factory
        self.contexts: list[FakeContext] = []
        tracker.opened.append("browser")

    def new_context(self, **options: Any) -> FakeContext:
        context = FakeContext(self._tracker, self._page_factory, options)
        self.contexts.append(context)
        return context

    def close(self) -> None:
        self._tracker.closed.append("browser")


class FakeChromium:
    def __init__(self, driver: "FakeDriver") -> None:
        self._driver = driver

    def launch(self, **kwargs: Any) -> FakeBrowser:
        self._driver.launch_kwargs = kwargs
        if self._driver.launch_error is not None:
            raise self._driver.launch_error
        self._driver.browser = FakeBrowser(self._driver.tracker, self._driver.make_page)
        return self._driver.browser


class FakeDriver:
    """Stands in for both ``sync_playwright()`` and the started Playwright."""

    def __init__(self, tracker: HandleTracker, launch_error: Exception | None = None, **page_options: Any) -> None:
        self.tracker = tracker
        self.launch_error = launch_error
        self.page_options = page_options
        self.launch_kwargs: dict[str, Any] | None = None
        self.browser: FakeBrowser | None = None
        self.pages: list[FakePage] = []
        self.chromium = FakeChromium(self)

    def make_page(self) -> FakePage:
        page = FakePage(self.tracker, **self.page_options)
        self.pages.append(page)
        return page

    def start(self) -> "FakeDriver":
        self.tracker.opened.append("driver")
        return self

    def stop(self) -> None:
        self.tracker.closed.append("driver")

    @property
    def page(self) -> FakePage:
        return self.pages[-1]


@pytest.fixture()
def probe_for() -> Callable[[str], dict[str, Any]]:
    """Return the probe answer for a fixture page under ``fixtures/pages``."""
    return lambda name: signals_from_html(load_page(name))


@pytest.fixture()
def tracker() -> HandleTracker:
    return HandleTracker()


@pytest.fixture()
def make_driver(tracker: HandleTracker) -> Callable[..., FakeDriver]:
    """Factory for a ``FakeDriver``; pass ``probes=[...]`` and page options."""

    def _make(**options: Any) -> FakeDriver:
        options.setdefault("probes", [signals_from_html("")])
        return FakeDriver(tracker, **options)

    return _make


@pytest.fixture()
def fast_policy():
    """Pipeline policy with single-probe detection and no settle delays."""
    from gatepass.browser.detector import ChallengeDetector
    from gatepass.solver.session import PipelinePolicy

    return PipelinePolicy(detector=ChallengeDetector(wait_ms=0), settle_after_ms=0)


@pytest.fixture()
def solve_request():
    from gatepass.models.request import SolveRequest

    return SolveRequest(
        sitekey=VALID_SITEKEY,
        url="https://example.com",
        user_agent="Mozilla/5.0 (X11; Linux x86_64) TestAgent/1.0",
        timeout_ms=5_000,
    )


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that require external services or real I/O")
    config.addinivalue_line("markers", "slow: marks tests that take more than a few seconds")
