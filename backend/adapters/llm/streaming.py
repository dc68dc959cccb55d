"""Model-fallback streaming chat client."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import AsyncIterator, Sequence

from adapters.llm.client import ClientBinding
from adapters.llm.fragments import (
    CredentialInvalid,
    ErrorFragment,
    Fragment,
    GenerationRequest,
    TextFragment,
)
from constants import (
    CHAT_ERROR_BUSY,
    CHAT_ERROR_CREDENTIAL,
    CHAT_ERROR_OTHER,
    HEALTH_SYSTEM_INSTRUCTION,
)
from errors import CREDENTIAL_KINDS, RETRYABLE_KINDS, FailureKind, classify_failure
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.retry import (
    RetryAttempt,
    RetryDecision,
    chat_backoff_ms,
    decide_chat_retry,
    next_attempt,
    reset_attempt,
)


def terminal_message(failure: FailureKind | None) -> str:
    """User-visible text for the last failure class."""
    if failure in CREDENTIAL_KINDS:
        return CHAT_ERROR_CREDENTIAL
    if failure in RETRYABLE_KINDS:
        return CHAT_ERROR_BUSY
    return CHAT_ERROR_OTHER


class StreamingChatClient:
    """
    Turns one logical generation request into ordered attempts across
    model candidates.

    Design notes:
    - generate() is an async generator; each forwarded chunk reaches the
      caller before the underlying call completes.
    - Retries happen only before the first chunk of an attempt. Once
      text has been forwarded, a failure ends the stream with an error
      fragment so output is never duplicated.
    - Backoff goes through the injected sleep (asyncio.sleep by default)
      so other tasks keep running.
    - No state survives between calls except the shared binding.
    """

    def __init__(
        self,
        *,
        binding: ClientBinding,
        models: Sequence[str] | None = None,
        max_attempts_per_model: int | None = None,
        retry_base_delay_ms: int | None = None,
        system_instruction: str = HEALTH_SYSTEM_INSTRUCTION,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        config = binding.config
        self._binding = binding
        self._models: tuple[str, ...] = tuple(models if models is not None else config.chat_models)
        self._max_attempts = (
            max_attempts_per_model if max_attempts_per_model is not None
            else config.max_attempts_per_model
        )
        self._base_delay_ms = (
            retry_base_delay_ms if retry_base_delay_ms is not None
            else config.retry_base_delay_ms
        )
        self._system_instruction = system_instruction
        self._sleep = sleep

        if not self._models:
            raise ValueError("at least one model candidate is required")
        if self._max_attempts < 1:
            raise ValueError("max_attempts_per_model must be >= 1")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, request: GenerationRequest) -> AsyncIterator[Fragment]:
        """
        Stream fragments for one request.

        Terminates with exactly one of:
        - natural completion (text fragments only)
        - CredentialInvalid (missing or rejected credential)
        - ErrorFragment (every candidate exhausted, or mid-stream failure)
        """
        backend = self._binding.backend
        if not self._binding.has_credential or backend is None:
            log_event({
                "event_type": "CHAT_CREDENTIAL_MISSING",
                "decision": "abort",
            })
            yield CredentialInvalid()
            return

        last_failure: FailureKind | None = None

        for model in self._models:
            attempt: RetryAttempt = reset_attempt()

            while True:
                forwarded = 0
                log_event({
                    "event_type": "CHAT_ATTEMPT_START",
                    "model": model,
                    "attempt": attempt.attempt,
                })
                try:
                    with timed("chat_attempt", model=model, attempt=attempt.attempt):
                        async for delta in backend.stream_text(
                            model=model,
                            system_instruction=self._system_instruction,
                            request=request,
                        ):
                            forwarded += 1
                            yield TextFragment(text=delta)

                except Exception as exc:  # pylint: disable=broad-exception-caught
                    failure = classify_failure(exc)
                    last_failure = failure

                    log_event({
                        "event_type": "CHAT_ATTEMPT_FAILED",
                        "model": model,
                        "attempt": attempt.attempt,
                        "failure": failure.value,
                        "fragments_forwarded": forwarded,
                        "error": f"{type(exc).__name__}: {exc}",
                    })

                    if failure in CREDENTIAL_KINDS:
                        log_event({
                            "event_type": "CHAT_CREDENTIAL_REJECTED",
                            "model": model,
                            "decision": "abort",
                        })
                        yield CredentialInvalid()
                        return

                    if forwarded:
                        log_event({
                            "event_type": "CHAT_MID_STREAM_FAILURE",
                            "model": model,
                            "decision": "terminate",
                        })
                        yield ErrorFragment(message=terminal_message(failure), failure=failure)
                        return

                    decision = decide_chat_retry(
                        failure=failure,
                        attempt=attempt,
                        max_attempts=self._max_attempts,
                    )

                    if decision is RetryDecision.RETRY_SAME:
                        delay_ms = chat_backoff_ms(attempt, base_ms=self._base_delay_ms)
                        log_event({
                            "event_type": "CHAT_RETRY_SCHEDULED",
                            "model": model,
                            "attempt": attempt.attempt,
                            "delay_ms": delay_ms,
                        })
                        await self._sleep(delay_ms / 1000.0)
                        attempt = next_attempt(attempt)
                        continue

                    log_event({
                        "event_type": "CHAT_CANDIDATE_EXHAUSTED",
                        "model": model,
                        "failure": failure.value,
                        "decision": "next_candidate",
                    })
                    break

                log_event({
                    "event_type": "CHAT_DONE",
                    "model": model,
                    "attempt": attempt.attempt,
                    "fragments": forwarded,
                })
                return

        failure = last_failure or FailureKind.UNKNOWN
        log_event({
            "event_type": "CHAT_ALL_CANDIDATES_FAILED",
            "failure": failure.value,
        })
        yield ErrorFragment(message=terminal_message(failure), failure=failure)

    async def generate_text(self, request: GenerationRequest) -> str:
        """
        Non-streaming convenience: drain generate() into one string.

        Error fragments contribute their message; the credential
        sentinel contributes the credential error text.
        """
        pieces: list[str] = []
        async for fragment in self.generate(request):
            if isinstance(fragment, TextFragment):
                pieces.append(fragment.text)
            elif isinstance(fragment, ErrorFragment):
                pieces.append(fragment.message)
            else:
                pieces.append(CHAT_ERROR_CREDENTIAL)
        return "".join(pieces)
