# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import Any

import pytest

from adapters.live.base import LiveSessionConfig
from adapters.live.gemini import (
    GeminiLiveConnection,
    GeminiLiveConnector,
    build_audio_message,
    build_setup_message,
    parse_server_message,
)
from errors import CredentialMissing
from observability import logger
from session.events import Closed, InboundAudio, Interrupted, Opened, SessionError


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines


def test_setup_message_carries_model_voice_and_instruction() -> None:
    config = LiveSessionConfig(model="live-model", voice="Kore", system_instruction="Be Aura.")

    setup = build_setup_message(config)["setup"]

    assert setup["model"] == "models/live-model"
    assert setup["generation_config"]["response_modalities"] == ["AUDIO"]
    voice = setup["generation_config"]["speech_config"]["voice_config"]
    assert voice["prebuilt_voice_config"]["voice_name"] == "Kore"
    assert setup["system_instruction"]["parts"] == [{"text": "Be Aura."}]


def test_audio_message_uses_media_chunks() -> None:
    msg = build_audio_message("AAAA", "audio/pcm;rate=16000")

    assert msg == {
        "realtimeInput": {
            "mediaChunks": [{"mimeType": "audio/pcm;rate=16000", "data": "AAAA"}],
        }
    }


def test_setup_complete_opens_the_session() -> None:
    assert parse_server_message({"setupComplete": {}}) == [Opened()]


def test_audio_parts_precede_interruption() -> None:
    events = parse_server_message({
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"inlineData": {"mimeType": "audio/pcm", "data": "AAA="}},
                    {"text": "ignored"},
                    {"inlineData": {"mimeType": "audio/pcm", "data": "BBB="}},
                ]
            },
            "interrupted": True,
        }
    })

    assert events == [InboundAudio("AAA="), InboundAudio("BBB="), Interrupted()]


def test_unrelated_messages_produce_no_events() -> None:
    assert not parse_server_message({"serverContent": {"turnComplete": True}})
    assert not parse_server_message({"goAway": {"timeLeft": "10s"}})


class FakeWebSocket:
    """Async-iterable stand-in for a websockets ClientConnection."""

    def __init__(self, messages: list[Any], *, close_reason: str = "", close_code: int | None = 1000) -> None:
        self._messages = messages
        self.close_reason = close_reason
        self.close_code = close_code
        self.sent: list[str] = []
        self.closed = 0

    def __aiter__(self) -> "FakeWebSocket":
        return self

    async def __anext__(self) -> Any:
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed += 1


def _events(connection: GeminiLiveConnection) -> list[Any]:
    async def run() -> list[Any]:
        return [e async for e in connection.events()]

    return asyncio.run(run())


def test_connection_translates_messages_and_ends_with_closed() -> None:
    ws = FakeWebSocket([
        json.dumps({"setupComplete": {}}),
        "not json",
        json.dumps({"serverContent": {"modelTurn": {"parts": [{"inlineData": {"data": "AAA="}}]}}}),
    ], close_reason="bye")
    connection = GeminiLiveConnection(ws, LiveSessionConfig())  # type: ignore[arg-type]

    events = _events(connection)

    assert events == [Opened(), InboundAudio("AAA="), Closed(reason="bye", code=1000)]


def test_close_naming_the_key_is_a_credential_error() -> None:
    ws = FakeWebSocket([], close_reason="API key not valid. Please pass a valid API key.", close_code=1007)
    connection = GeminiLiveConnection(ws, LiveSessionConfig())  # type: ignore[arg-type]

    events = _events(connection)

    assert len(events) == 1
    assert isinstance(events[0], SessionError)
    assert events[0].credential_rejected


def test_send_audio_and_idempotent_close() -> None:
    ws = FakeWebSocket([])
    connection = GeminiLiveConnection(ws, LiveSessionConfig())  # type: ignore[arg-type]

    async def run() -> None:
        await connection.send_audio("AAAA")
        await connection.close()
        await connection.close()

    asyncio.run(run())

    assert json.loads(ws.sent[0])["realtimeInput"]["mediaChunks"][0]["data"] == "AAAA"
    assert ws.closed == 1


def test_connector_without_credential_fails_fast() -> None:
    connector = GeminiLiveConnector(credential=None)

    with pytest.raises(CredentialMissing):
        asyncio.run(connector.connect(LiveSessionConfig()))
