"""Best-effort motivational quote generation with a local fallback."""
from __future__ import annotations

import random
from typing import Sequence

from adapters.llm.client import ClientBinding
from constants import LOCAL_QUOTES, QUOTE_PROMPT
from errors import classify_failure
from observability.logger import log_event


class QuoteClient:
    """
    Single attempt, single model, no retry. Never raises.
    """

    def __init__(
        self,
        *,
        binding: ClientBinding,
        model: str | None = None,
        fallback_quotes: Sequence[str] = LOCAL_QUOTES,
        rng: random.Random | None = None,
    ) -> None:
        if not fallback_quotes:
            raise ValueError("fallback_quotes must not be empty")
        self._binding = binding
        self._model = model or binding.config.quote_model
        self._fallback = tuple(fallback_quotes)
        self._rng = rng or random.Random()

    async def get_quote(self) -> str:
        """
        Remote quote, or a random local one on any failure.

        An empty remote answer is not a failure; it maps to the first
        local quote.
        """
        backend = self._binding.backend
        if backend is None:
            return self._local("credential_missing")

        try:
            text = (await backend.complete_text(model=self._model, prompt=QUOTE_PROMPT)).strip()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            return self._local(classify_failure(exc).value)

        if not text:
            log_event({
                "event_type": "QUOTE_FALLBACK",
                "model": self._model,
                "reason": "empty_response",
            })
            return self._fallback[0]
        return text

    def _local(self, reason: str) -> str:
        log_event({
            "event_type": "QUOTE_FALLBACK",
            "model": self._model,
            "reason": reason,
        })
        return self._rng.choice(self._fallback)
