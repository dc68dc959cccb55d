"""
Live connection contract.

Purpose:
- Define the duplex channel the session talks through.
- Keep reconnection, playback and capture policy OUT of the adapter.

Rules:
- No retries, no reconnects.
- Events are delivered through one async iterator, in wire order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

from constants import (
    LIVE_MODEL,
    LIVE_RESPONSE_MODALITY,
    LIVE_SYSTEM_INSTRUCTION,
    LIVE_VOICE,
    OUTBOUND_MIME_TYPE,
)
from session.events import LiveEvent


@dataclass(frozen=True)
class LiveSessionConfig:
    """Session parameters negotiated when the connection opens."""
    model: str = LIVE_MODEL
    voice: str = LIVE_VOICE
    response_modality: str = LIVE_RESPONSE_MODALITY
    system_instruction: str = LIVE_SYSTEM_INSTRUCTION
    input_mime_type: str = OUTBOUND_MIME_TYPE


class LiveConnection(ABC):
    """
    One open duplex channel.

    Contract:
    - events() yields Opened first once the session is negotiated, then
      InboundAudio / Interrupted in wire order, and ends after exactly
      one Closed or SessionError.
    - send_audio() may raise; the caller decides what a failure means.
    - close() is idempotent and never raises.
    """

    @abstractmethod
    def events(self) -> AsyncIterator[LiveEvent]:
        """Inbound event stream."""
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, payload: str) -> None:
        """Send one base64 PCM16 frame."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close the channel."""
        raise NotImplementedError


class LiveConnector(ABC):
    """Factory for live connections (one per connection attempt)."""

    @abstractmethod
    async def connect(self, config: LiveSessionConfig) -> LiveConnection:
        """
        Open a connection and send the session setup.

        Raises on failure; CredentialRejected when the key is refused.
        """
        raise NotImplementedError
