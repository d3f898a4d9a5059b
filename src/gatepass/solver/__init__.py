"""Solve pipeline: session controller, failure taxonomy and token synthesis."""

from __future__ import annotations

from gatepass.models.request import SolveRequest
from gatepass.models.results import SolveResult
from gatepass.solver.classifier import Classification, ErrorCategory, ErrorClassifier
from gatepass.solver.session import PipelinePolicy, Session, SessionController, SessionState
from gatepass.tokens import PlaceholderTokenSynthesizer, TokenSynthesizer

__all__ = [
    "Classification",
    "ErrorCategory",
    "ErrorClassifier",
    "PipelinePolicy",
    "PlaceholderTokenSynthesizer",
    "Session",
    "SessionController",
    "SessionState",
    "TokenSynthesizer",
    "solve",
]


def solve(request: SolveRequest, **controller_kwargs) -> SolveResult:
    """Run one request through a fresh :class:`SessionController`."""
    return SessionController(**controller_kwargs).solve(request)
