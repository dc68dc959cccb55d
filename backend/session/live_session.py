"""
Live duplex audio session.

Responsibilities:
- Own one capture source and one live connection at a time
- Pump capture windows -> codec -> connection on the capture cadence
- Decode inbound audio and schedule it for gapless playback
- Flush playback on server-signalled interruption
- Reconnect with a bounded, attempt-scaled delay after connection loss
- Treat a connection that never reports Opened in time as lost
- Report lifecycle status to the UI

Concurrency model:
- Single event loop. Capture delivery (pump task), inbound delivery
  (receive task) and reconnect timers (reconnect task) run
  independently and are serialized through two guards:
    * _generation: bumped whenever the current connection is abandoned;
      every task carries the generation it was started for.
    * _manual_disconnect: set synchronously by stop().
  A task that resumes with a stale generation, or after stop(), does
  nothing further.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

import numpy as np

from adapters.live.base import LiveConnection, LiveConnector, LiveSessionConfig
from audio.capture import AudioCapture
from audio.codec import decode_inbound, encode_outbound, rms_level
from audio.playback import PlaybackScheduler
from constants import (
    LIVE_MAX_RETRIES,
    LIVE_SETUP_TIMEOUT_S,
    STATUS_ACTIVE,
    STATUS_CONNECTING,
    STATUS_CREDENTIAL_INVALID,
    STATUS_READY,
    STATUS_REQUESTING_MIC,
    STATUS_UNSTABLE,
)
from errors import CREDENTIAL_KINDS, AudioDecodeError, classify_failure
from observability.logger import log_event
from orchestrator.retry import (
    RetryAttempt,
    next_attempt,
    reconnect_delay_ms,
    reset_attempt,
    should_reconnect,
)
from session.events import (
    Closed,
    InboundAudio,
    Interrupted,
    Opened,
    SessionError,
)
from session.state import STARTABLE_STATES, SessionState, SessionStatus


def _new_session_id() -> str:
    return f"live_{uuid4().hex[:12]}"


class LiveAudioSession:
    """
    One duplex voice session.

    Public operations: start(), stop(), mute(), unmute().
    Everything else is driven by capture, inbound events and timers.
    """

    def __init__(
        self,
        *,
        connector: LiveConnector,
        capture_factory: Callable[[], AudioCapture],
        playback: PlaybackScheduler,
        config: LiveSessionConfig | None = None,
        emit_status: Callable[[SessionStatus], Awaitable[None]] | None = None,
        on_input_level: Callable[[float], None] | None = None,
        max_retries: int = LIVE_MAX_RETRIES,
        setup_timeout_s: float = LIVE_SETUP_TIMEOUT_S,
        reconnect_on_send_failure: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or _new_session_id()

        self._connector = connector
        self._capture_factory = capture_factory
        self._playback = playback
        self._config = config or LiveSessionConfig()
        self._emit_status = emit_status
        self._on_input_level = on_input_level
        self._max_retries = max_retries
        self._setup_timeout_s = setup_timeout_s
        self._reconnect_on_send_failure = reconnect_on_send_failure
        self._sleep = sleep

        self._state: SessionState = SessionState.IDLE
        self._retry: RetryAttempt = reset_attempt()
        self._generation: int = 0
        self._manual_disconnect: bool = False
        self._muted: bool = False
        self._input_level: float = 0.0

        self._connection: LiveConnection | None = None
        self._capture: AudioCapture | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._setup_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        # Counters for observability
        self.frames_sent: int = 0
        self.send_failures: int = 0
        self.frames_dropped: int = 0
        self.connect_attempts: int = 0

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def retry_count(self) -> int:
        """Reconnection attempts used since the last successful open."""
        return self._retry.attempt

    @property
    def muted(self) -> bool:
        """True when outgoing audio is replaced with silence."""
        return self._muted

    @property
    def input_level(self) -> float:
        """RMS of the last capture window (0.0 when muted)."""
        return self._input_level

    @property
    def manual_disconnect(self) -> bool:
        """True after stop() until the next start()."""
        return self._manual_disconnect

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "state": self._state.value,
            "retry_count": self._retry.attempt,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Open the session.

        Honoured from IDLE, FAILED and CLOSED; a no-op (returns False)
        while CONNECTING, ACTIVE or RECONNECTING.
        """
        if self._state not in STARTABLE_STATES:
            log_event({
                **self.log_context(),
                "event_type": "LIVE_START_IGNORED",
                "decision": "ignore",
            })
            return False

        self._manual_disconnect = False
        self._retry = reset_attempt()
        await self._open(SessionState.CONNECTING)
        return True

    async def stop(self) -> None:
        """
        User-initiated stop. Idempotent, safe from any state.

        The manual-disconnect flag is set before the first suspension
        point, so no automatic action can follow.
        """
        self._manual_disconnect = True
        self._generation += 1

        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect is not None and reconnect is not asyncio.current_task() and not reconnect.done():
            reconnect.cancel()
            await asyncio.gather(reconnect, return_exceptions=True)

        await self._teardown()
        cancelled = self._playback.clear()

        if self._state is not SessionState.CLOSED:
            log_event({
                **self.log_context(),
                "event_type": "LIVE_STOPPED",
                "playback_cancelled": cancelled,
            })
            await self._transition(SessionState.CLOSED, STATUS_READY)

    def mute(self, muted: bool = True) -> None:
        """Replace outgoing audio with silence (the pump keeps running)."""
        self._muted = muted
        if muted:
            self._input_level = 0.0
        log_event({
            **self.log_context(),
            "event_type": "LIVE_MUTE_CHANGED",
            "muted": muted,
        })

    def unmute(self) -> None:
        """Resume sending real capture audio."""
        self.mute(False)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int) -> bool:
        return self._manual_disconnect or generation != self._generation

    async def _open(self, state: SessionState) -> None:
        """
        One connection attempt: acquire capture, then connect.

        The session becomes ACTIVE only when the connection reports
        Opened (handled by the receive loop).
        """
        self._generation += 1
        generation = self._generation
        self.connect_attempts += 1

        if state is SessionState.RECONNECTING:
            message = f"Reconnecting ({self._retry.attempt}/{self._max_retries})..."
        else:
            message = STATUS_REQUESTING_MIC
        await self._transition(state, message)
        if self._is_stale(generation):
            return

        capture = self._capture_factory()
        self._capture = capture

        try:
            await capture.start()
            if self._is_stale(generation):
                return

            await self._emit(SessionStatus(
                state=self._state,
                message=STATUS_CONNECTING,
                retry_count=self._retry.attempt,
            ))
            connection = await self._connector.connect(self._config)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            if self._is_stale(generation):
                return
            failure = classify_failure(exc)
            log_event({
                **self.log_context(),
                "event_type": "LIVE_CONNECT_FAILED",
                "failure": failure.value,
                "error": f"{type(exc).__name__}: {exc}",
            })
            if failure in CREDENTIAL_KINDS:
                await self._fail(STATUS_CREDENTIAL_INVALID, credential_invalid=True)
                return
            await self._handle_connection_lost(generation, f"connect_failed: {failure.value}")
            return

        if self._is_stale(generation):
            # stop() or a newer attempt won the race; release what we opened
            await connection.close()
            return

        self._connection = connection
        self._receive_task = asyncio.create_task(
            self._receive_loop(generation, connection, capture)
        )
        self._setup_task = asyncio.create_task(self._setup_watchdog(generation))

    async def _on_opened(
        self,
        generation: int,
        connection: LiveConnection,
        capture: AudioCapture,
    ) -> None:
        if self._state not in (SessionState.CONNECTING, SessionState.RECONNECTING):
            return

        setup, self._setup_task = self._setup_task, None
        if setup is not None and not setup.done():
            setup.cancel()

        self._retry = reset_attempt()
        await self._transition(SessionState.ACTIVE, STATUS_ACTIVE)
        if self._is_stale(generation):
            return

        # Audio captured while negotiating is stale; start from now.
        capture.open_delivery()
        self._pump_task = asyncio.create_task(self._pump(generation, connection, capture))

    async def _setup_watchdog(self, generation: int) -> None:
        """
        Bound the wait for Opened; a silent server counts as connection loss.
        """
        await asyncio.sleep(self._setup_timeout_s)

        if self._is_stale(generation) or self._state is SessionState.ACTIVE:
            return

        log_event({
            **self.log_context(),
            "event_type": "LIVE_SETUP_TIMEOUT",
            "timeout_s": self._setup_timeout_s,
        })
        self._setup_task = None
        await self._handle_connection_lost(generation, "setup_timeout")

    async def _handle_connection_lost(self, generation: int, reason: str) -> None:
        """
        Unsolicited close / error / connect failure.

        Tears down the connection and capture, then either schedules the
        next attempt or fails for good.
        """
        if self._is_stale(generation):
            return

        # Invalidate every task of the lost connection before suspending.
        self._generation += 1

        log_event({
            **self.log_context(),
            "event_type": "LIVE_CONNECTION_LOST",
            "reason": reason,
        })

        await self._teardown()
        self._playback.clear()

        if self._manual_disconnect:
            return

        if not should_reconnect(self._retry, max_retries=self._max_retries):
            log_event({
                **self.log_context(),
                "event_type": "LIVE_RETRY_BUDGET_EXHAUSTED",
                "decision": "fail",
            })
            await self._fail(STATUS_UNSTABLE)
            return

        self._retry = next_attempt(self._retry)
        delay_ms = reconnect_delay_ms(self._retry)
        token = self._generation

        await self._transition(
            SessionState.RECONNECTING,
            f"Reconnecting attempt {self._retry.attempt}...",
        )
        if self._is_stale(token):
            return

        log_event({
            **self.log_context(),
            "event_type": "LIVE_RECONNECT_SCHEDULED",
            "delay_ms": delay_ms,
        })
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms, token))

    async def _reconnect_after(self, delay_ms: int, token: int) -> None:
        await self._sleep(delay_ms / 1000.0)

        if self._is_stale(token) or self._state is not SessionState.RECONNECTING:
            log_event({
                **self.log_context(),
                "event_type": "LIVE_RECONNECT_ABANDONED",
                "decision": "ignore",
            })
            return

        await self._open(SessionState.RECONNECTING)

    async def _fail(self, message: str, *, credential_invalid: bool = False) -> None:
        self._generation += 1
        await self._teardown()
        self._playback.clear()
        await self._transition(
            SessionState.FAILED,
            message,
            error=message,
            credential_invalid=credential_invalid,
        )

    async def _teardown(self) -> None:
        """
        Release connection and capture and stop the session's tasks.

        Safe with half-open resources; never raises.
        """
        current = asyncio.current_task()
        tasks = [
            t for t in (self._receive_task, self._pump_task, self._setup_task)
            if t is not None and t is not current and not t.done()
        ]
        self._receive_task = None
        self._pump_task = None
        self._setup_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        connection, self._connection = self._connection, None
        capture, self._capture = self._capture, None
        self._input_level = 0.0

        if connection is not None:
            try:
                await connection.close()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    **self.log_context(),
                    "event_type": "LIVE_CLOSE_ERROR",
                    "error": f"{type(exc).__name__}: {exc}",
                })

        if capture is not None:
            try:
                await capture.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    **self.log_context(),
                    "event_type": "LIVE_CAPTURE_RELEASE_ERROR",
                    "error": f"{type(exc).__name__}: {exc}",
                })

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    async def _receive_loop(
        self,
        generation: int,
        connection: LiveConnection,
        capture: AudioCapture,
    ) -> None:
        """
        Consume inbound events for one connection, in wire order.
        """
        try:
            async for event in connection.events():
                if self._is_stale(generation):
                    return

                if isinstance(event, Opened):
                    await self._on_opened(generation, connection, capture)

                elif isinstance(event, InboundAudio):
                    self._on_inbound_audio(event)

                elif isinstance(event, Interrupted):
                    cancelled = self._playback.interrupt()
                    log_event({
                        **self.log_context(),
                        "event_type": "LIVE_INTERRUPTED",
                        "playback_cancelled": cancelled,
                    })

                elif isinstance(event, SessionError):
                    if event.credential_rejected:
                        log_event({
                            **self.log_context(),
                            "event_type": "LIVE_CREDENTIAL_REJECTED",
                            "reason": event.reason,
                        })
                        await self._fail(STATUS_CREDENTIAL_INVALID, credential_invalid=True)
                        return
                    await self._handle_connection_lost(generation, f"error: {event.reason}")
                    return

                elif isinstance(event, Closed):
                    await self._handle_connection_lost(generation, f"closed: {event.reason}")
                    return

        except asyncio.CancelledError:
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            await self._handle_connection_lost(
                generation, f"receive_failed: {type(exc).__name__}: {exc}"
            )
            return

        await self._handle_connection_lost(generation, "event_stream_ended")

    def _on_inbound_audio(self, event: InboundAudio) -> None:
        try:
            buffer = decode_inbound(event.data)
        except AudioDecodeError as exc:
            self.frames_dropped += 1
            log_event({
                **self.log_context(),
                "event_type": "LIVE_AUDIO_DECODE_ERROR",
                "error": str(exc),
                "frames_dropped": self.frames_dropped,
            })
            return

        if buffer.num_frames == 0:
            return
        self._playback.schedule(buffer)

    async def _pump(
        self,
        generation: int,
        connection: LiveConnection,
        capture: AudioCapture,
    ) -> None:
        """
        Capture -> encode -> send, once per capture window.
        """
        async for window in capture.frames():
            if self._is_stale(generation):
                return

            if self._muted:
                outgoing = np.zeros_like(window)
                self._input_level = 0.0
            else:
                outgoing = window
                self._input_level = rms_level(window)

            if self._on_input_level is not None:
                self._on_input_level(self._input_level)

            payload = encode_outbound(outgoing, capture.sample_rate)
            if not payload:
                continue

            try:
                await connection.send_audio(payload)
                self.frames_sent += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                if self._is_stale(generation):
                    return
                self.send_failures += 1
                log_event({
                    **self.log_context(),
                    "event_type": "LIVE_SEND_FAILED",
                    "error": f"{type(exc).__name__}: {exc}",
                    "send_failures": self.send_failures,
                    "decision": "reconnect" if self._reconnect_on_send_failure else "drop",
                })
                if self._reconnect_on_send_failure:
                    await self._handle_connection_lost(generation, "send_failed")
                    return

        log_event({
            **self.log_context(),
            "event_type": "LIVE_CAPTURE_ENDED",
        })

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def _transition(
        self,
        state: SessionState,
        message: str,
        *,
        error: str | None = None,
        credential_invalid: bool = False,
    ) -> None:
        """The only mutator of _state."""
        previous = self._state
        self._state = state

        log_event({
            **self.log_context(),
            "event_type": "LIVE_STATE_CHANGED",
            "decision": "state_changed",
            "from": previous.value,
            "to": state.value,
            "message": message,
        })

        await self._emit(SessionStatus(
            state=state,
            message=message,
            retry_count=self._retry.attempt,
            error=error,
            credential_invalid=credential_invalid,
        ))

    async def _emit(self, status: SessionStatus) -> None:
        if self._emit_status is None:
            return
        try:
            await self._emit_status(status)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                **self.log_context(),
                "event_type": "LIVE_STATUS_CALLBACK_ERROR",
                "error": f"{type(exc).__name__}: {exc}",
            })
