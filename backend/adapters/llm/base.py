"""
Generation backend contract.

Purpose:
- Define the interface for one remote text generation call.
- Keep retries, model fallback and failure policy OUT of the backend.

Rules:
- This file contains NO logic.
- No retries.
- No fallback between models.
- Errors propagate to the caller unchanged; classification happens in
  errors.classify_failure().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from adapters.llm.fragments import GenerationRequest


class GenerationBackend(ABC):
    """
    Abstract base class for remote generation calls.

    The backend is a *dumb pipe*:
    request -> vendor -> text deltas.

    Caller responsibilities (NOT here):
    - Which model to try next
    - Retry policy and backoff
    - Turning failures into user-visible fragments
    """

    @abstractmethod
    def stream_text(
        self,
        *,
        model: str,
        system_instruction: str,
        request: GenerationRequest,
    ) -> AsyncIterator[str]:
        """
        Start one streaming generation call.

        Contract:
        - Yields zero or more non-empty text deltas, in generation order.
        - Raises on failure, before or after the first delta.
        - Must NOT retry internally.
        - Deltas are increments, not full text snapshots.
        """
        raise NotImplementedError

    @abstractmethod
    async def complete_text(self, *, model: str, prompt: str) -> str:
        """
        Single-shot, non-streaming generation.

        Returns the full text (possibly empty). Raises on failure.
        """
        raise NotImplementedError

    @abstractmethod
    async def synthesize_speech(self, *, model: str, voice: str, text: str) -> bytes:
        """
        Single-shot text-to-speech.

        Returns raw PCM16 audio bytes. Raises on failure.
        """
        raise NotImplementedError
