"""
Retry policy helpers.

Purpose:
- Centralize retry rules for chat generation and live reconnection
- Let the callers make deterministic retry decisions

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from constants import (
    CHAT_MAX_ATTEMPTS_PER_MODEL,
    CHAT_RETRY_BASE_DELAY_MS,
    LIVE_MAX_RETRIES,
    LIVE_RECONNECT_BASE_DELAY_MS,
    LIVE_RECONNECT_STEP_DELAY_MS,
)
from errors import CREDENTIAL_KINDS, RETRYABLE_KINDS, FailureKind


# =============================================================================
# Decisions
# =============================================================================

class RetryDecision(str, Enum):
    """
    What the chat client does after a failed attempt.

    RETRY_SAME:
        Transient failure with attempts left; back off, same model.

    NEXT_CANDIDATE:
        Candidate is unusable (or out of attempts); move on.

    ABORT:
        Credential problem; stop the whole operation.
    """

    RETRY_SAME = "retry_same"
    NEXT_CANDIDATE = "next_candidate"
    ABORT = "abort"


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable attempt counter.

    - attempt == 0 represents the initial attempt (no retry yet).
    - attempt >= 1 represents the Nth retry.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


# =============================================================================
# Chat policy
# =============================================================================

def decide_chat_retry(
    *,
    failure: FailureKind,
    attempt: RetryAttempt,
    max_attempts: int = CHAT_MAX_ATTEMPTS_PER_MODEL,
) -> RetryDecision:
    """
    Decide what follows a failed attempt against one model candidate.

    attempt = index of the attempt that just failed (0-based)
    """
    if failure in CREDENTIAL_KINDS:
        return RetryDecision.ABORT

    if failure in RETRYABLE_KINDS and attempt.attempt + 1 < max_attempts:
        return RetryDecision.RETRY_SAME

    return RetryDecision.NEXT_CANDIDATE


def chat_backoff_ms(
    attempt: RetryAttempt,
    *,
    base_ms: int = CHAT_RETRY_BASE_DELAY_MS,
) -> int:
    """
    Delay before retrying after failed attempt N.

    Linear growth: base * (N + 1).
    """
    return base_ms * (attempt.attempt + 1)


# =============================================================================
# Live reconnection policy
# =============================================================================

def should_reconnect(
    attempt: RetryAttempt,
    *,
    max_retries: int = LIVE_MAX_RETRIES,
) -> bool:
    """
    Returns True if another reconnection is allowed.

    attempt = number of reconnections already performed
    """
    return attempt.attempt < max_retries


def reconnect_delay_ms(attempt: RetryAttempt) -> int:
    """
    Delay before reconnection attempt N (N >= 1).

    1000ms + 500ms * N
    """
    return LIVE_RECONNECT_BASE_DELAY_MS + attempt.attempt * LIVE_RECONNECT_STEP_DELAY_MS
