"""
Live connection event definitions.

Rules:
- Events describe facts reported by the live connection.
- Events carry data only (no behavior).
- Closed set: the session loop handles every variant explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class LiveEventType(str, Enum):
    """Discriminant for live connection events."""

    OPENED = "OPENED"
    INBOUND_AUDIO = "INBOUND_AUDIO"
    INTERRUPTED = "INTERRUPTED"
    CLOSED = "CLOSED"
    ERROR = "ERROR"


@dataclass(frozen=True)
class Opened:
    """Session negotiated; the server accepts audio."""
    event_type: LiveEventType = LiveEventType.OPENED


@dataclass(frozen=True)
class InboundAudio:
    """
    One server audio payload.

    data: base64 PCM16 LE, mono, 24kHz.
    """
    data: str
    event_type: LiveEventType = LiveEventType.INBOUND_AUDIO


@dataclass(frozen=True)
class Interrupted:
    """User spoke over playback; queued audio must be dropped."""
    event_type: LiveEventType = LiveEventType.INTERRUPTED


@dataclass(frozen=True)
class Closed:
    """Connection closed by the remote side or the network."""
    reason: str | None = None
    code: int | None = None
    event_type: LiveEventType = LiveEventType.CLOSED


@dataclass(frozen=True)
class SessionError:
    """
    Connection-level error.

    credential_rejected is True when the server refused the key; the
    session then fails without reconnecting.
    """
    reason: str
    credential_rejected: bool = False
    event_type: LiveEventType = LiveEventType.ERROR


LiveEvent = Union[Opened, InboundAudio, Interrupted, Closed, SessionError]
