"""Session controller: one isolated browser pipeline per solve request.

Lifecycle::

    INIT → LAUNCHING → CONFIGURING → NAVIGATING → DETECTING → ACQUIRING
         → COMPLETED | FAILED → CLOSED

Each request gets its own Playwright driver, browser, context and page.
Nothing is pooled or shared between requests, so ``solve()`` can be
called from several threads at once. Every exception raised inside the
pipeline is classified into a failed :class:`SolveResult`; ``solve()``
itself never raises. Cleanup runs on every exit path and its own errors
are recorded without changing the result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable
from uuid import uuid4

from gatepass.browser.acquisition import TokenAcquisitionEngine
from gatepass.browser.configurator import PageConfigurator
from gatepass.browser.detector import ChallengeDetector
from gatepass.browser.gatekeeper import DEFAULT_BLOCKED_TYPES, ResourceGatekeeper
from gatepass.browser.remote import RemoteExecutor
from gatepass.browser.stealth import build_launch_profile
from gatepass.exceptions import AcquisitionFailedError, ChallengeNotDetectedError, SessionStateError
from gatepass.log import SessionLoggerAdapter
from gatepass.models.request import SolveRequest
from gatepass.models.results import AcquisitionOutcome, DetectionSignals, SolveResult
from gatepass.solver.classifier import ErrorClassifier
from gatepass.tokens import PlaceholderTokenSynthesizer, TokenSynthesizer

if TYPE_CHECKING:
    from gatepass.settings.config import Settings


class SessionState(str, Enum):
    """Lifecycle states of a single solve session."""

    INIT = "init"
    LAUNCHING = "launching"
    CONFIGURING = "configuring"
    NAVIGATING = "navigating"
    DETECTING = "detecting"
    ACQUIRING = "acquiring"
    COMPLETED = "completed"
    FAILED = "failed"
    CLOSED = "closed"


_PIPELINE: dict[SessionState, SessionState] = {
    SessionState.INIT: SessionState.LAUNCHING,
    SessionState.LAUNCHING: SessionState.CONFIGURING,
    SessionState.CONFIGURING: SessionState.NAVIGATING,
    SessionState.NAVIGATING: SessionState.DETECTING,
    SessionState.DETECTING: SessionState.ACQUIRING,
    SessionState.ACQUIRING: SessionState.COMPLETED,
}

_TERMINAL: frozenset[SessionState] = frozenset({SessionState.COMPLETED, SessionState.FAILED})


def _allowed(current: SessionState, target: SessionState) -> bool:
    if target is SessionState.CLOSED:
        return current in _TERMINAL
    if target is SessionState.FAILED:
        return current not in _TERMINAL and current is not SessionState.CLOSED
    return _PIPELINE.get(current) is target


@dataclass
class Session:
    """Everything one request owns; never shared across requests."""

    request: SolveRequest
    session_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: SessionState = SessionState.INIT
    history: list[SessionState] = field(default_factory=lambda: [SessionState.INIT])

    driver: Any = None
    browser: Any = None
    context: Any = None
    page: Any = None

    gatekeeper: ResourceGatekeeper | None = None
    signals: DetectionSignals | None = None
    outcome: AcquisitionOutcome | None = None
    cleanup_errors: list[str] = field(default_factory=list)

    def transition(self, target: SessionState) -> None:
        if not _allowed(self.state, target):
            raise SessionStateError(self.state.value, target.value)
        self.state = target
        self.history.append(target)


@dataclass
class PipelinePolicy:
    """Tunable values for the single solve pipeline."""

    headless: bool = True
    sandbox: bool = False
    launch_timeout_ms: int = 30_000
    extra_args: list[str] = field(default_factory=list)

    configurator: PageConfigurator = field(default_factory=PageConfigurator)

    gatekeeper_enabled: bool = True
    blocked_resource_types: frozenset[str] = DEFAULT_BLOCKED_TYPES

    wait_until: str = "networkidle"
    settle_ms: int = 0
    detector: ChallengeDetector = field(default_factory=ChallengeDetector)

    evaluate_timeout_ms: int = 10_000
    field_pattern: str = "turnstile|cf[-_]"
    fallback_callback: str = "turnstileCallback"
    settle_before_ms: int = 0
    settle_after_ms: int = 1_000

    forward_page_console: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelinePolicy":
        return cls(
            headless=settings.browser.headless,
            sandbox=settings.browser.sandbox,
            launch_timeout_ms=settings.browser.launch_timeout_ms,
            extra_args=list(settings.browser.extra_args),
            configurator=PageConfigurator.from_settings(settings.page),
            gatekeeper_enabled=settings.gatekeeper.enabled,
            blocked_resource_types=frozenset(settings.gatekeeper.blocked_resource_types),
            wait_until=settings.detection.wait_until,
            settle_ms=settings.detection.settle_ms,
            detector=ChallengeDetector.from_settings(settings.detection),
            evaluate_timeout_ms=settings.acquisition.evaluate_timeout_ms,
            field_pattern=settings.acquisition.field_pattern,
            fallback_callback=settings.acquisition.fallback_callback,
            settle_before_ms=settings.acquisition.settle_before_ms,
            settle_after_ms=settings.acquisition.settle_after_ms,
            forward_page_console=settings.logging.forward_page_console,
        )


def _default_playwright_factory():
    from playwright.sync_api import sync_playwright

    return sync_playwright()


class SessionController:
    """Runs the solve pipeline for one request at a time per call.

    Args:
        policy: Pipeline parameters; built from settings when omitted.
        synthesizer: Token source; defaults to the placeholder synthesizer.
        logger: Logger used for every session (bound per session).
        classifier: Failure classifier.
        playwright_factory: Returns an object with ``start()`` yielding a
            Playwright instance. Tests substitute a handle-tracking double.
    """

    def __init__(
        self,
        policy: PipelinePolicy | None = None,
        *,
        synthesizer: TokenSynthesizer | None = None,
        logger: logging.Logger | None = None,
        classifier: ErrorClassifier | None = None,
        playwright_factory: Callable[[], Any] | None = None,
    ) -> None:
        if policy is None:
            from gatepass.settings import get_settings

            policy = PipelinePolicy.from_settings(get_settings())
        self._policy = policy
        self._logger = logger or logging.getLogger(__name__)
        self._classifier = classifier or ErrorClassifier()
        self._playwright_factory = playwright_factory or _default_playwright_factory
        self._engine = TokenAcquisitionEngine(
            synthesizer=synthesizer or PlaceholderTokenSynthesizer(),
            field_pattern=policy.field_pattern,
            fallback_callback=policy.fallback_callback,
            settle_before_ms=policy.settle_before_ms,
            settle_after_ms=policy.settle_after_ms,
        )

    @property
    def policy(self) -> PipelinePolicy:
        return self._policy

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "SessionController":
        return cls(PipelinePolicy.from_settings(settings), **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def solve(self, request: SolveRequest) -> SolveResult:
        """Run the full pipeline for *request* and return its result."""
        session = Session(request=request)
        return self.run_session(session)

    def run_session(self, session: Session) -> SolveResult:
        """Drive *session* through the pipeline, classify failures, clean up."""
        started = time.monotonic()
        request = session.request
        log = SessionLoggerAdapter(
            self._logger,
            {"session_id": session.session_id, "url": request.url, "state": session.state.value},
        )
        log.info("Starting Turnstile session (sitekey=%s...)", request.sitekey[:15])

        try:
            result = self._run(session, log)
        except Exception as exc:
            result = self._failure(session, exc, log)
        finally:
            self._cleanup(session, log)

        result.execution_time_ms = max(0, int((time.monotonic() - started) * 1000))
        log.info(
            "Session finished: success=%s error=%s in %dms",
            result.success,
            result.error,
            result.execution_time_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    def _advance(self, session: Session, target: SessionState, log: SessionLoggerAdapter) -> None:
        session.transition(target)
        log.bind(state=target.value)
        log.debug("State -> %s", target.value)

    def _run(self, session: Session, log: SessionLoggerAdapter) -> SolveResult:
        policy = self._policy
        request = session.request

        self._advance(session, SessionState.LAUNCHING, log)
        viewport = policy.configurator.viewport
        profile = build_launch_profile(
            headless=policy.headless,
            sandbox=policy.sandbox,
            proxy=request.proxy,
            window_size=(viewport["width"], viewport["height"]),
            timeout_ms=policy.launch_timeout_ms,
            extra_args=policy.extra_args,
        )
        if profile.proxy_server:
            log.info("Using proxy: %s", profile.proxy_server)
        session.driver = self._playwright_factory().start()
        session.browser = session.driver.chromium.launch(**profile.launch_args)

        self._advance(session, SessionState.CONFIGURING, log)
        session.context, session.page = policy.configurator.open_page(session.browser, request.user_agent)
        self._attach_listeners(session.page, log)
        if policy.gatekeeper_enabled:
            session.gatekeeper = ResourceGatekeeper(blocked_types=policy.blocked_resource_types)
            session.gatekeeper.install(session.page)

        self._advance(session, SessionState.NAVIGATING, log)
        log.info("Navigating (wait_until=%s, timeout=%dms)", policy.wait_until, request.timeout_ms)
        response = session.page.goto(request.url, wait_until=policy.wait_until, timeout=request.timeout_ms)
        if response is not None and response.status >= 400:
            log.warning("Target answered HTTP %s", response.status)
        if policy.settle_ms:
            session.page.wait_for_timeout(policy.settle_ms)

        self._advance(session, SessionState.DETECTING, log)
        executor = RemoteExecutor(session.page, timeout_ms=policy.evaluate_timeout_ms)
        session.signals = policy.detector.detect(executor, log=log)
        if not session.signals.detected:
            raise ChallengeNotDetectedError(request.url, policy.detector.wait_ms)
        if session.signals.page_sitekeys and request.sitekey not in session.signals.page_sitekeys:
            log.warning(
                "Requested sitekey %s... not among page sitekeys %s",
                request.sitekey[:15],
                [k[:15] for k in session.signals.page_sitekeys],
            )

        self._advance(session, SessionState.ACQUIRING, log)
        outcome = self._engine.acquire(executor, log=log)
        if outcome is None:
            raise AcquisitionFailedError("acquisition produced no token")
        session.outcome = outcome

        self._advance(session, SessionState.COMPLETED, log)
        return SolveResult(
            success=True,
            token=outcome.token,
            details=f"Token installed via {outcome.surface.value}",
            user_agent=request.user_agent,
            url=request.url,
        )

    def _attach_listeners(self, page: Any, log: SessionLoggerAdapter) -> None:
        if self._policy.forward_page_console:
            page.on("console", lambda msg: log.debug("Browser console %s: %s", msg.type, msg.text))
        page.on("pageerror", lambda error: log.debug("Page error: %s", error))

        def on_response(response) -> None:
            if not response.ok:
                log.debug("HTTP %s for %s", response.status, response.url)

        page.on("response", on_response)

    def _failure(self, session: Session, exc: Exception, log: SessionLoggerAdapter) -> SolveResult:
        failed_in = session.state
        if session.state not in _TERMINAL:
            self._advance(session, SessionState.FAILED, log)
        classification = self._classifier.classify(exc)
        log.warning(
            "Session failed in %s: %s (%s)",
            failed_in.value,
            classification.category.value,
            classification.details,
        )
        log.debug("Failure detail", exc_info=exc)
        return SolveResult(
            success=False,
            error=classification.category.value,
            details=classification.details,
            suggestions=classification.suggestions,
            user_agent=session.request.user_agent,
            url=session.request.url,
        )

    def _cleanup(self, session: Session, log: SessionLoggerAdapter) -> None:
        """Release every handle exactly once; errors are recorded, not raised."""
        if session.state is SessionState.CLOSED:
            return
        steps = [
            ("page", session.page, "close"),
            ("context", session.context, "close"),
            ("browser", session.browser, "close"),
            ("driver", session.driver, "stop"),
        ]
        for name, handle, method in steps:
            if handle is None:
                continue
            try:
                getattr(handle, method)()
            except Exception as exc:
                session.cleanup_errors.append(f"{name}: {exc}")
                log.warning("Error closing %s: %s", name, exc)
        session.page = session.context = session.browser = session.driver = None
        if session.gatekeeper is not None:
            log.debug(
                "Gatekeeper: %d allowed, %d aborted",
                session.gatekeeper.allowed,
                session.gatekeeper.aborted,
            )
        self._advance(session, SessionState.CLOSED, log)
