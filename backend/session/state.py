"""
Live session state and status.

Rules:
- SessionState defines ONLY the lifecycle states.
- Transitions are performed exclusively by LiveAudioSession.
- SessionStatus is the read-only snapshot delivered to the UI.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SessionState(str, Enum):
    """
    Lifecycle of one duplex voice session.

    IDLE -> CONNECTING -> ACTIVE <-> RECONNECTING -> CLOSED
    CONNECTING / RECONNECTING -> FAILED when the retry budget runs out.
    Any state -> CLOSED on user stop.
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    RECONNECTING = "RECONNECTING"
    CLOSED = "CLOSED"
    FAILED = "FAILED"


# start() is honoured only from these states
STARTABLE_STATES: frozenset[SessionState] = frozenset(
    {SessionState.IDLE, SessionState.FAILED, SessionState.CLOSED}
)


@dataclass(frozen=True)
class SessionStatus:
    """
    Status update for the UI.

    message:
        Human-readable status line.
    error:
        Terminal error text (FAILED only).
    retry_count:
        Reconnection attempts used so far.
    credential_invalid:
        True when the failure was a rejected or missing credential.
    """
    state: SessionState
    message: str
    retry_count: int = 0
    error: str | None = None
    credential_invalid: bool = False

    def to_dict(self) -> dict[str, object]:
        """Serialize for JSON transport."""
        return {
            "type": "STATUS",
            "state": self.state.value,
            "message": self.message,
            "retry_count": self.retry_count,
            "error": self.error,
            "credential_invalid": self.credential_invalid,
        }
