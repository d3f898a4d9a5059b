"""Data models for solve requests, results and detection signals."""

from __future__ import annotations

from gatepass.models.request import SolveRequest
from gatepass.models.results import AcquisitionOutcome, DetectionSignals, InjectionSurface, SolveResult

__all__ = [
    "AcquisitionOutcome",
    "DetectionSignals",
    "InjectionSurface",
    "SolveRequest",
    "SolveResult",
]
