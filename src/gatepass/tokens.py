"""Completion token synthesis.

.. warning::

   The default :class:`PlaceholderTokenSynthesizer` does **not** solve the
   Turnstile challenge. It produces a random string shaped like a token
   (``0x`` + 64 hex + ``.`` + 32 hex) from a non-cryptographic generator.
   Such a value passes structural checks on the page but is rejected by
   Cloudflare's ``siteverify`` backend. Use it for staging and tests only;
   anything that needs a real token must supply its own
   :class:`TokenSynthesizer`.
"""

from __future__ import annotations

import random
from typing import Protocol, runtime_checkable

from gatepass.models.results import TOKEN_PATTERN, is_valid_token

__all__ = ["PlaceholderTokenSynthesizer", "TOKEN_PATTERN", "TokenSynthesizer", "is_valid_token"]

_HEX_DIGITS = "0123456789abcdef"


@runtime_checkable
class TokenSynthesizer(Protocol):
    """Produces one completion token per call."""

    def synthesize(self) -> str: ...


class PlaceholderTokenSynthesizer:
    """Random, format-only token generator (not a verification proof).

    Args:
        rng: Source of randomness; defaults to a fresh ``random.Random``.
            Pass a seeded instance for reproducible tests.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def _hex(self, length: int) -> str:
        return "".join(self._rng.choice(_HEX_DIGITS) for _ in range(length))

    def synthesize(self) -> str:
        return f"0x{self._hex(64)}.{self._hex(32)}"
