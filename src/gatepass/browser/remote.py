"""Remote execution inside the page's JavaScript context.

Every in-page evaluation goes through :class:`RemoteExecutor`, which sends
a function source plus a single JSON-serializable argument into the page
and returns the JSON result. The call is bounded: the function races an
in-page timer, so a hung promise surfaces as
:class:`~gatepass.exceptions.RemoteExecutionTimeout` instead of blocking
the session.

Usage::

    executor = RemoteExecutor(page, timeout_ms=5_000)
    title = executor.call("(arg) => document.title", label="title")
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from playwright.sync_api import Error as PlaywrightError

from gatepass.exceptions import ContextDestroyedError, RemoteExecutionError, RemoteExecutionTimeout

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from playwright.sync_api import Page

_TIMEOUT_MARKER = "gatepass:remote-timeout"

# Slack for driver round-trips before a slow call counts as an overrun.
_OVERRUN_GRACE_MS = 1_000

_CONTEXT_DESTROYED_MARKERS: tuple[str, ...] = (
    "Execution context was destroyed",
    "Cannot find context with specified id",
)

# __FUNCTION__ and __TIMEOUT_MS__ are substituted before evaluation.
_WRAPPER = """async (arg) => {
    const fn = (__FUNCTION__);
    let timer = null;
    const expired = new Promise((_, reject) => {
        timer = setTimeout(() => reject(new Error("__MARKER__")), __TIMEOUT_MS__);
    });
    try {
        return await Promise.race([Promise.resolve().then(() => fn(arg)), expired]);
    } finally {
        clearTimeout(timer);
    }
}"""


def build_script(function_source: str, timeout_ms: int) -> str:
    """Wrap *function_source* in the in-page deadline race."""
    return (
        _WRAPPER.replace("__FUNCTION__", function_source.strip())
        .replace("__TIMEOUT_MS__", str(int(timeout_ms)))
        .replace("__MARKER__", _TIMEOUT_MARKER)
    )


class RemoteExecutor:
    """Bounded ``page.evaluate`` front-end for a single page.

    The deadline is enforced by a timer inside the page. A page whose main
    thread is blocked (a synchronous busy loop) never fires that timer, and
    the sync Playwright API offers no way to cancel ``evaluate`` from the
    host, so such a call returns only when the page yields or is closed.
    Calls that come back later than their deadline are logged as overruns
    so blocked pages show up in the session log.

    Args:
        page: Playwright ``Page`` the functions run in.
        timeout_ms: Default per-call deadline in milliseconds.
    """

    def __init__(self, page: Page, timeout_ms: int = 10_000) -> None:
        self._page = page
        self._timeout_ms = timeout_ms

    @property
    def page(self) -> Page:
        return self._page

    def call(
        self,
        function_source: str,
        arg: Any = None,
        *,
        label: str = "evaluate",
        timeout_ms: int | None = None,
    ) -> Any:
        """Run *function_source* with *arg* in the page and return its result.

        Args:
            function_source: A JavaScript function expression taking one argument.
            arg: JSON-serializable argument passed to the function.
            label: Short name used in logs and error messages.
            timeout_ms: Overrides the executor's default deadline.

        Raises:
            RemoteExecutionTimeout: The function did not settle in time.
            ContextDestroyedError: The page navigated or closed mid-call.
            RemoteExecutionError: The function threw inside the page.
        """
        deadline = self._timeout_ms if timeout_ms is None else timeout_ms
        script = build_script(function_source, deadline)
        started = time.monotonic()
        try:
            return self._page.evaluate(script, arg)
        except PlaywrightError as exc:
            message = str(exc)
            if _TIMEOUT_MARKER in message:
                raise RemoteExecutionTimeout(label, deadline) from exc
            if any(marker in message for marker in _CONTEXT_DESTROYED_MARKERS):
                raise ContextDestroyedError(label) from exc
            if "net::ERR" in message or "Timeout" in message:
                # Driver-level failures keep their original type for classification.
                raise
            logger.debug("Remote call %s raised in page: %s", label, message)
            raise RemoteExecutionError(f"{label} failed in page: {message}") from exc
        finally:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            if elapsed_ms > deadline + _OVERRUN_GRACE_MS:
                logger.warning(
                    "Remote call %s took %dms, past its %dms deadline; the page main thread was likely blocked",
                    label,
                    elapsed_ms,
                    deadline,
                )
