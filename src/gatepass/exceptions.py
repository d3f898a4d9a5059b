"""gatepass exception hierarchy."""

from __future__ import annotations


class GatepassError(Exception):
    """Base exception for all gatepass-specific errors."""


class InvalidRequestError(GatepassError):
    """Raised when a solve request fails validation.

    Attributes:
        field: Name of the offending parameter.
        received: The rejected value.
    """

    def __init__(self, field: str, message: str, received: str = "") -> None:
        self.field = field
        self.received = received
        super().__init__(message)


class ProxyConfigurationError(GatepassError):
    """Raised when a proxy specification cannot be turned into launch options."""

    def __init__(self, proxy: str, reason: str) -> None:
        self.proxy = proxy
        self.reason = reason
        super().__init__(f"Invalid proxy specification {proxy!r}: {reason}")


class SessionStateError(GatepassError):
    """Raised on an illegal session lifecycle transition."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Illegal session transition {current} -> {target}")


class ChallengeNotDetectedError(GatepassError):
    """Raised when no Turnstile signal appears within the detection window."""

    def __init__(self, url: str, waited_ms: int) -> None:
        self.url = url
        self.waited_ms = waited_ms
        super().__init__(f"Turnstile not detected on {url} after {waited_ms}ms")


class AcquisitionFailedError(GatepassError):
    """Raised when token acquisition ran but produced no usable token."""


class RemoteExecutionError(GatepassError):
    """Raised when a function evaluated inside the page fails."""


class RemoteExecutionTimeout(RemoteExecutionError):
    """Raised when an in-page evaluation exceeds its deadline."""

    def __init__(self, label: str, timeout_ms: int) -> None:
        self.label = label
        self.timeout_ms = timeout_ms
        super().__init__(f"Remote execution timeout: {label} exceeded {timeout_ms}ms")


class ContextDestroyedError(RemoteExecutionError):
    """Raised when the page execution context is torn down mid-evaluation."""

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Execution context was destroyed during {label}")
