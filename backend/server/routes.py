"""
Route registration for the health assistant API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Resolve the per-request credential into a client binding
- Wire the live gateway to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from adapters.llm.client import ClientBinding, resolve_credential
from adapters.llm.fragments import GenerationRequest, fragment_to_dict
from adapters.llm.quote import QuoteClient
from adapters.llm.streaming import StreamingChatClient
from adapters.tts.speech import SpeechClient
from constants import BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT, INBOUND_SAMPLE_RATE_HZ
from context.envelope import collect_response
from observability.logger import log_event
from session.gateway import GatewayResult, LiveGateway


# --- Pydantic Models ---


class ChatRequest(BaseModel):
    """One chat turn: text, a base64 JPEG, or both."""

    text: Optional[str] = None
    image: Optional[str] = None


class EnvelopeResponse(BaseModel):
    """Finished reply split into content and follow-up suggestions."""

    content: str
    suggestions: list[str]
    is_error: bool
    credential_invalid: bool


class SpeechRequest(BaseModel):
    """Reply text to read aloud."""

    text: str


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def binding_for(override: str | None) -> ClientBinding:
        default: ClientBinding = app.state.binding
        return default.rebind(resolve_credential(override, app.state.config))

    @app.get("/health")
    async def health() -> dict[str, object]: # pyright: ignore[reportUnusedFunction]
        return {
            "status": "ok",
            "has_default_credential": app.state.binding.has_credential,
        }

    @app.post("/chat")
    async def chat( # pyright: ignore[reportUnusedFunction]
        body: ChatRequest,
        x_api_key: Optional[str] = Header(default=None),
    ) -> StreamingResponse:
        client = StreamingChatClient(binding=binding_for(x_api_key))
        request = _to_generation_request(body)

        async def ndjson() -> AsyncIterator[str]:
            async for fragment in client.generate(request):
                yield json.dumps(fragment_to_dict(fragment)) + "\n"

        return StreamingResponse(
            ndjson(),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.post("/chat/complete", response_model=EnvelopeResponse)
    async def chat_complete( # pyright: ignore[reportUnusedFunction]
        body: ChatRequest,
        x_api_key: Optional[str] = Header(default=None),
    ) -> EnvelopeResponse:
        client = StreamingChatClient(binding=binding_for(x_api_key))
        envelope = await collect_response(client.generate(_to_generation_request(body)))
        return EnvelopeResponse(
            content=envelope.content,
            suggestions=list(envelope.suggestions),
            is_error=envelope.is_error,
            credential_invalid=envelope.credential_invalid,
        )

    @app.get("/quote")
    async def quote( # pyright: ignore[reportUnusedFunction]
        x_api_key: Optional[str] = Header(default=None),
    ) -> dict[str, str]:
        client = QuoteClient(binding=binding_for(x_api_key))
        return {"quote": await client.get_quote()}

    @app.post("/speech")
    async def speech( # pyright: ignore[reportUnusedFunction]
        body: SpeechRequest,
        x_api_key: Optional[str] = Header(default=None),
    ) -> StreamingResponse:
        client = SpeechClient(binding=binding_for(x_api_key))
        return StreamingResponse(
            client.synthesize_reply(body.text),
            media_type=f"audio/L16;rate={INBOUND_SAMPLE_RATE_HZ};channels=1",
        )

    @app.websocket("/ws/live")
    async def live_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        binding = binding_for(ws.query_params.get("key"))
        gateway = LiveGateway(
            config=app.state.config,
            binding=binding,
            capture_sample_rate=_capture_rate(ws.query_params.get("rate")),
            connector=app.state.live_connector_factory(binding),
        )

        await _flush_gateway_result(ws, gateway.on_ws_connect())
        writer = asyncio.create_task(_drain_outbox(ws, gateway))

        try:
            while True:
                msg = await ws.receive()

                if msg["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result)

                elif msg.get("bytes") is not None:
                    gateway.on_binary_message(msg["bytes"])

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": gateway.session.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            writer.cancel()
            await asyncio.gather(writer, return_exceptions=True)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _to_generation_request(body: ChatRequest) -> GenerationRequest:
    image: bytes | None = None
    if body.image:
        try:
            image = base64.b64decode(body.image, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail="image must be base64") from e

    try:
        return GenerationRequest(text=body.text, image=image)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


def _capture_rate(raw: str | None) -> int:
    try:
        rate = int(raw) if raw else BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT
    except ValueError:
        return BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT
    return rate if rate > 0 else BROWSER_CAPTURE_SAMPLE_RATE_HZ_DEFAULT


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
) -> None:
    """Send the gateway's immediate JSON replies."""
    for msg in result.outbound_json:
        await ws.send_text(json.dumps(msg))


async def _drain_outbox(ws: WebSocket, gateway: LiveGateway) -> None:
    """
    Forward asynchronous gateway output (status, playback) in order.
    """
    while True:
        msg = await gateway.outbox.get()
        try:
            if isinstance(msg, bytes):
                await ws.send_bytes(msg)
            else:
                await ws.send_text(json.dumps(msg))
        except (WebSocketDisconnect, RuntimeError) as exc:
            log_event({
                "event_type": "WS_SEND_FAILED",
                "session_id": gateway.session.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return
