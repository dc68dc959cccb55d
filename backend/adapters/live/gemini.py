"""
Gemini Live websocket adapter.

Core model:
- One websocket per LiveConnection; the session owns reconnection.
- Setup is sent immediately after the handshake; the server answers
  with setupComplete, which becomes the Opened event.
- Audio goes out as realtimeInput.mediaChunks (base64 PCM16 @ 16kHz).
- serverContent.modelTurn.parts[].inlineData becomes InboundAudio,
  serverContent.interrupted becomes Interrupted.
- A close frame or a receive failure ends the stream with Closed or
  SessionError. A close reason naming the API key marks the error as a
  credential rejection.

Design constraints:
- No retries, no playback, no state machine here.
"""

from __future__ import annotations

import json
import urllib.parse
from typing import Any, AsyncIterator

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from adapters.live.base import LiveConnection, LiveConnector, LiveSessionConfig
from constants import (
    CREDENTIAL_REJECTION_MARKERS,
    LIVE_SETUP_TIMEOUT_S,
    LIVE_WS_MAX_MESSAGE_BYTES,
    LIVE_WS_URL,
)
from errors import CredentialMissing, CredentialRejected, FailureKind, classify_failure
from observability.logger import log_event
from session.events import (
    Closed,
    InboundAudio,
    Interrupted,
    LiveEvent,
    Opened,
    SessionError,
)


def build_setup_message(config: LiveSessionConfig) -> dict[str, Any]:
    """BidiGenerateContentSetup payload for the given session parameters."""
    return {
        "setup": {
            "model": f"models/{config.model}",
            "generation_config": {
                "response_modalities": [config.response_modality],
                "speech_config": {
                    "voice_config": {
                        "prebuilt_voice_config": {"voice_name": config.voice},
                    },
                },
            },
            "system_instruction": {
                "parts": [{"text": config.system_instruction}],
            },
        }
    }


def build_audio_message(payload: str, mime_type: str) -> dict[str, Any]:
    """realtimeInput message carrying one audio frame."""
    return {
        "realtimeInput": {
            "mediaChunks": [{"mimeType": mime_type, "data": payload}],
        }
    }


def parse_server_message(data: dict[str, Any]) -> list[LiveEvent]:
    """
    Translate one server message into zero or more events.

    Audio parts come before the interruption flag of the same message.
    """
    events: list[LiveEvent] = []

    if "setupComplete" in data:
        events.append(Opened())

    content = data.get("serverContent")
    if isinstance(content, dict):
        turn = content.get("modelTurn") or {}
        for part in turn.get("parts") or []:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if isinstance(inline, dict) and inline.get("data"):
                events.append(InboundAudio(data=inline["data"]))
        if content.get("interrupted"):
            events.append(Interrupted())

    if "goAway" in data:
        log_event({
            "event_type": "LIVE_GO_AWAY",
            "time_left": (data.get("goAway") or {}).get("timeLeft"),
        })

    return events


def _close_is_credential(reason: str) -> bool:
    return any(marker in reason for marker in CREDENTIAL_REJECTION_MARKERS)


class GeminiLiveConnection(LiveConnection):
    """One Gemini Live websocket."""

    def __init__(self, ws: ClientConnection, config: LiveSessionConfig) -> None:
        self._ws = ws
        self._config = config
        self._closed = False

    async def events(self) -> AsyncIterator[LiveEvent]:
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except (TypeError, ValueError) as e:
                    log_event({
                        "event_type": "LIVE_MESSAGE_DECODE_ERROR",
                        "error": str(e),
                    })
                    continue

                if not isinstance(data, dict):
                    continue

                for event in parse_server_message(data):
                    yield event

        except ConnectionClosedOK as e:
            reason = e.rcvd.reason if e.rcvd is not None else ""
            yield Closed(reason=reason or None, code=e.rcvd.code if e.rcvd else None)
            return

        except ConnectionClosed as e:
            reason = e.rcvd.reason if e.rcvd is not None else str(e)
            yield SessionError(
                reason=f"connection_closed: {reason}",
                credential_rejected=_close_is_credential(reason),
            )
            return

        except OSError as e:
            yield SessionError(reason=f"network_error: {e!r}")
            return

        # Iterator ended: the server closed cleanly.
        reason = self._ws.close_reason or ""
        if _close_is_credential(reason):
            yield SessionError(reason=f"connection_closed: {reason}", credential_rejected=True)
            return
        yield Closed(reason=reason or None, code=self._ws.close_code)

    async def send_audio(self, payload: str) -> None:
        await self._ws.send(
            json.dumps(build_audio_message(payload, self._config.input_mime_type))
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "LIVE_CLOSE_FAILED",
                "error": repr(e),
            })


class GeminiLiveConnector(LiveConnector):
    """
    Opens Gemini Live websockets for one credential.

    Built from a ClientBinding's credential; a new credential means a
    new connector.
    """

    def __init__(self, *, credential: str | None, url: str = LIVE_WS_URL) -> None:
        self._credential = credential
        self._url = url

    def _build_url(self) -> str:
        qs = urllib.parse.urlencode({"key": self._credential})
        return f"{self._url}?{qs}"

    async def connect(self, config: LiveSessionConfig) -> LiveConnection:
        if not self._credential:
            raise CredentialMissing("no credential bound for the live session")

        try:
            ws = await ws_connect(
                self._build_url(),
                max_size=LIVE_WS_MAX_MESSAGE_BYTES,
                open_timeout=LIVE_SETUP_TIMEOUT_S,
            )
        except Exception as e:
            if classify_failure(e) is FailureKind.CREDENTIAL_REJECTED:
                raise CredentialRejected(str(e)) from e
            raise

        connection = GeminiLiveConnection(ws, config)
        try:
            await ws.send(json.dumps(build_setup_message(config)))
        except Exception:
            await connection.close()
            raise

        log_event({
            "event_type": "LIVE_SETUP_SENT",
            "model": config.model,
            "voice": config.voice,
        })
        return connection
