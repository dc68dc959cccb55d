"""
Live session gateway.

Responsibilities:
- Owns one LiveAudioSession per browser websocket
- Routes inbound JSON control messages -> session operations
- Routes inbound binary capture frames -> the current capture source
- Turns playback scheduling into binary frames for the browser
- Queues session status updates for the websocket writer

NOT responsible for:
- Reconnect policy (LiveAudioSession)
- Remote protocol (adapters.live)
- Socket I/O (server.routes drains the outbox)
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence, Union, TYPE_CHECKING

from adapters.live.base import LiveConnector, LiveSessionConfig
from adapters.live.gemini import GeminiLiveConnector
from adapters.llm.client import ClientBinding
from audio.capture import QueueCapture
from audio.frames import PlaybackBuffer
from audio.playback import PlaybackScheduler, PlaybackSink
from constants import (
    BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT,
    CAPTURE_BUFFER_SAMPLES,
    INBOUND_SAMPLE_RATE_HZ,
    STATUS_READY,
)
from observability.logger import log_event
from protocol.binary import (
    BinaryProtocolError,
    decode_capture_frame,
    encode_playback_frame,
    next_sequence_num,
)
from session.live_session import LiveAudioSession
from session.state import SessionStatus

if TYPE_CHECKING:
    from config import AppConfig


OutboundMessage = Union[dict[str, Any], bytes]


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Immediate reply for gateway boundary methods.

    outbound_json:
        JSON messages to send to client

    Asynchronous output (status, playback) goes through the outbox.
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# Playback sink
# ------------------------------------------------------------------

class WebSocketPlaybackSink(PlaybackSink):
    """
    Forwards scheduled buffers to the browser.

    The browser owns the actual audio clock; start times are seconds
    since the sink was created and the browser maps them onto its own
    AudioContext time.
    """

    def __init__(
        self,
        *,
        send: Callable[[OutboundMessage], None],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._send = send
        self._clock = clock
        self._origin = clock()
        self._seq = 0

    def now(self) -> float:
        return self._clock() - self._origin

    def play(self, buffer: PlaybackBuffer, start_at: float) -> int:
        self._seq = next_sequence_num(self._seq)
        self._send(encode_playback_frame(
            sequence_num=self._seq,
            start_at=start_at,
            samples=buffer.samples,
        ))
        return self._seq

    def cancel(self, handle: Any) -> None:
        self._send({"type": "PLAYBACK_CANCEL", "seq": handle})

    def cancel_all(self, handles: Sequence[Any]) -> None:
        # One flush message; the browser drops every frame up to this seq.
        if handles:
            self.cancel(handles[-1])


# ------------------------------------------------------------------
# LiveGateway
# ------------------------------------------------------------------

class LiveGateway:
    """
    One gateway == one browser websocket == one live session.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        binding: ClientBinding,
        capture_sample_rate: int = BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT,
        connector: LiveConnector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._capture_sample_rate = capture_sample_rate
        self._capture: QueueCapture | None = None
        self._start_task: asyncio.Task[bool] | None = None

        self.outbox: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self.playback = PlaybackScheduler(
            WebSocketPlaybackSink(send=self.outbox.put_nowait, clock=clock)
        )

        self.session = LiveAudioSession(
            connector=connector or GeminiLiveConnector(
                credential=binding.credential,
                url=config.live_ws_url,
            ),
            capture_factory=self._new_capture,
            playback=self.playback,
            config=LiveSessionConfig(model=config.live_model, voice=config.live_voice),
            emit_status=self._on_status,
            max_retries=config.live_max_retries,
            reconnect_on_send_failure=config.reconnect_on_send_failure,
        )

    # ------------------------------------------------------------------
    # Socket lifecycle
    # ------------------------------------------------------------------

    def on_ws_connect(self) -> GatewayResult:
        """Called when the browser websocket is accepted."""
        log_event({
            "event_type": "LIVE_WS_CONNECTED",
            "session_id": self.session.session_id,
            "capture_sample_rate": self._capture_sample_rate,
        })

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "session_id": self.session.session_id,
            "audio_format": {
                "capture_sample_rate": self._capture_sample_rate,
                "playback_sample_rate": INBOUND_SAMPLE_RATE_HZ,
                "channels": 1,
                "encoding": "float32le",
                "capture_buffer_samples": CAPTURE_BUFFER_SAMPLES,
            },
        }
        ready = SessionStatus(state=self.session.state, message=STATUS_READY).to_dict()
        return GatewayResult(outbound_json=(init_msg, ready))

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """Called when the browser goes away; the session is stopped for good."""
        log_event({
            "event_type": "LIVE_WS_DISCONNECTED",
            "session_id": self.session.session_id,
            "reason": reason,
        })
        await self._stop_session()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route inbound JSON control messages to session operations."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult(outbound_json=({"type": "ERROR", "message": "invalid json"},))

        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type == "START":
            if self._start_task is None or self._start_task.done():
                self._start_task = asyncio.create_task(self.session.start())
        elif msg_type == "STOP":
            await self._stop_session()
        elif msg_type == "MUTE":
            self.session.mute(bool(data.get("muted", True)))
        elif msg_type == "UNMUTE":
            self.session.unmute()
        else:
            log_event({
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "msg_type": msg_type,
                "session_id": self.session.session_id,
            })
            return GatewayResult(
                outbound_json=({"type": "ERROR", "message": f"unknown message type: {msg_type}"},)
            )

        return GatewayResult()

    def on_binary_message(self, payload: bytes) -> int:
        """
        Feed one browser capture frame to the current capture source.

        Returns the number of capture windows that became ready.
        """
        try:
            samples = decode_capture_frame(payload)
        except BinaryProtocolError as e:
            log_event({
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": self.session.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return 0

        capture = self._capture
        if capture is None or not capture.running:
            return 0
        return capture.push(samples)

    # ------------------------------------------------------------------
    # Session callbacks
    # ------------------------------------------------------------------

    async def _stop_session(self) -> None:
        await self.session.stop()

        task, self._start_task = self._start_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _new_capture(self) -> QueueCapture:
        self._capture = QueueCapture(sample_rate=self._capture_sample_rate)
        return self._capture

    async def _on_status(self, status: SessionStatus) -> None:
        self.outbox.put_nowait(status.to_dict())

