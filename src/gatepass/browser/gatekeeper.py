"""Network resource gatekeeping for a page session.

Heavy or cosmetic resources (images, stylesheets, fonts, media) are
aborted while the page loads. Documents, scripts and XHR/fetch always go
through because the Turnstile loader itself must arrive.

Attach to a page **before** navigation via :meth:`ResourceGatekeeper.install`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from playwright.sync_api import Page, Route

DEFAULT_BLOCKED_TYPES: frozenset[str] = frozenset({"image", "stylesheet", "font", "media"})

_ROUTE_PATTERN = "**/*"


@dataclass
class GatekeeperDecision:
    """One routed request and whether it was allowed through."""

    url: str
    resource_type: str
    allowed: bool


@dataclass
class ResourceGatekeeper:
    """Aborts requests whose resource type is in ``blocked_types``.

    Every decision is kept in :attr:`decisions` so a session can report
    what was blocked.
    """

    blocked_types: frozenset[str] = DEFAULT_BLOCKED_TYPES
    decisions: list[GatekeeperDecision] = field(default_factory=list)

    @classmethod
    def from_types(cls, blocked: Iterable[str]) -> "ResourceGatekeeper":
        return cls(blocked_types=frozenset(t.strip().lower() for t in blocked if t.strip()))

    @property
    def aborted(self) -> int:
        return sum(1 for d in self.decisions if not d.allowed)

    @property
    def allowed(self) -> int:
        return sum(1 for d in self.decisions if d.allowed)

    def allows(self, resource_type: str) -> bool:
        """Return True when requests of *resource_type* may complete."""
        return resource_type.lower() not in self.blocked_types

    def install(self, page: Page) -> None:
        """Route every request of *page* through :meth:`handle`."""
        page.route(_ROUTE_PATTERN, self.handle)
        logger.debug("Resource gatekeeper installed (blocked=%s)", sorted(self.blocked_types))

    def handle(self, route: Route) -> None:
        """Abort or continue a single intercepted request."""
        request = route.request
        allowed = self.allows(request.resource_type)
        self.decisions.append(GatekeeperDecision(request.url, request.resource_type, allowed))
        if allowed:
            route.continue_()
        else:
            route.abort()
