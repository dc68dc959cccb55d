"""
Failure taxonomy for the assistant core.

Every failure the core reacts to is one of the exception classes below.
Remote SDK errors are mapped onto them by classify_failure(), and the
retry policy only ever looks at the resulting FailureKind.
"""

from __future__ import annotations

from enum import Enum

import httpx
import openai
from websockets.exceptions import ConnectionClosed, InvalidStatus

from constants import CREDENTIAL_REJECTION_MARKERS


class FailureKind(str, Enum):
    """
    Failure classification.

    CREDENTIAL_MISSING / CREDENTIAL_REJECTED:
        Never retried; surfaced so the UI can prompt for a new key.

    RATE_LIMITED / OVERLOADED:
        Transient. Retried on the same model with backoff.

    BAD_REQUEST:
        Request rejected or model unavailable. Next candidate.

    DECODE_ERROR:
        Malformed audio payload. Frame dropped.

    CONNECTION_LOST:
        Live connection closed or failed. Bounded reconnection.

    UNKNOWN:
        Anything else. Treated like BAD_REQUEST by the chat client.
    """

    CREDENTIAL_MISSING = "credential_missing"
    CREDENTIAL_REJECTED = "credential_rejected"
    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    BAD_REQUEST = "bad_request"
    DECODE_ERROR = "decode_error"
    CONNECTION_LOST = "connection_lost"
    UNKNOWN = "unknown"


RETRYABLE_KINDS: frozenset[FailureKind] = frozenset(
    {FailureKind.RATE_LIMITED, FailureKind.OVERLOADED}
)
CREDENTIAL_KINDS: frozenset[FailureKind] = frozenset(
    {FailureKind.CREDENTIAL_MISSING, FailureKind.CREDENTIAL_REJECTED}
)


class AssistantError(Exception):
    """Base class for all classified failures."""

    kind: FailureKind = FailureKind.UNKNOWN


class CredentialMissing(AssistantError):
    """No credential was supplied."""

    kind = FailureKind.CREDENTIAL_MISSING


class CredentialRejected(AssistantError):
    """The remote service refused the credential."""

    kind = FailureKind.CREDENTIAL_REJECTED


class RateLimited(AssistantError):
    """Too many requests (HTTP 429)."""

    kind = FailureKind.RATE_LIMITED


class Overloaded(AssistantError):
    """Service temporarily unavailable (HTTP 503)."""

    kind = FailureKind.OVERLOADED


class BadRequest(AssistantError):
    """Request rejected or the model is unavailable."""

    kind = FailureKind.BAD_REQUEST


class AudioDecodeError(AssistantError):
    """
    Raised when an inbound audio payload cannot be decoded.

    Either the transport text is not valid base64 or the byte length is
    not a whole number of samples. The frame must be dropped.
    """

    kind = FailureKind.DECODE_ERROR


class ConnectionLost(AssistantError):
    """The live connection closed or errored."""

    kind = FailureKind.CONNECTION_LOST


class UnknownFailure(AssistantError):
    """Unclassified failure."""

    kind = FailureKind.UNKNOWN


def _mentions_credential(message: str) -> bool:
    return any(marker in message for marker in CREDENTIAL_REJECTION_MARKERS)


def _kind_for_status(status: int, message: str) -> FailureKind:
    if status in (401, 403) or _mentions_credential(message):
        return FailureKind.CREDENTIAL_REJECTED
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status == 503:
        return FailureKind.OVERLOADED
    if status in (400, 404, 422):
        return FailureKind.BAD_REQUEST
    return FailureKind.UNKNOWN


def classify_failure(exc: BaseException) -> FailureKind:
    """
    Map an exception raised by a remote call onto a FailureKind.

    Checks, in order: our own hierarchy, openai status errors, httpx
    status errors (native REST calls), websockets handshake / close
    errors, then the message text for "429" / "503" (some SDK paths only
    surface the status in the text).
    """
    if isinstance(exc, AssistantError):
        return exc.kind

    message = str(exc)

    if isinstance(exc, openai.APIStatusError):
        return _kind_for_status(exc.status_code, message)

    if isinstance(exc, openai.APIConnectionError):
        return FailureKind.UNKNOWN

    if isinstance(exc, httpx.HTTPStatusError):
        return _kind_for_status(exc.response.status_code, f"{message} {exc.response.text}")

    if isinstance(exc, InvalidStatus):
        return _kind_for_status(exc.response.status_code, message)

    if isinstance(exc, ConnectionClosed):
        reason = exc.rcvd.reason if exc.rcvd is not None else ""
        if _mentions_credential(reason):
            return FailureKind.CREDENTIAL_REJECTED
        return FailureKind.CONNECTION_LOST

    if _mentions_credential(message):
        return FailureKind.CREDENTIAL_REJECTED
    if "429" in message:
        return FailureKind.RATE_LIMITED
    if "503" in message:
        return FailureKind.OVERLOADED

    return FailureKind.UNKNOWN
