"""OpenAI-compatible generation backend (Gemini exposes the same API surface)."""
from __future__ import annotations

import base64
import binascii
from typing import Any, AsyncIterator

import httpx
from openai import AsyncOpenAI

from adapters.llm.base import GenerationBackend
from adapters.llm.fragments import GenerationRequest
from constants import (
    DEFAULT_IMAGE_PROMPT,
    GEMINI_NATIVE_BASE_URL,
    IMAGE_MIME_TYPE,
    SPEECH_TIMEOUT_S,
)


class OpenAICompatibleBackend(GenerationBackend):
    """
    Text generation over an AsyncOpenAI client; speech over the native
    REST endpoint with httpx.

    Design notes:
    - One backend instance may serve many sequential and concurrent calls.
    - Holds no per-call state; everything lives in the async generator.
    - Does NOT retry, fall back or classify errors.
    """

    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        api_key: str | None = None,
        speech_base_url: str = GEMINI_NATIVE_BASE_URL,
        speech_timeout_s: float = SPEECH_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._speech_base_url = speech_base_url
        self._speech_timeout_s = speech_timeout_s
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def stream_text(
        self,
        *,
        model: str,
        system_instruction: str,
        request: GenerationRequest,
    ) -> AsyncIterator[str]:
        stream = await self._client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": self._user_content(request)},
            ],
            stream=True,
        )

        async for chunk in stream:
            delta = self._extract_delta(chunk)
            if delta:
                yield delta

    async def complete_text(self, *, model: str, prompt: str) -> str:
        response = await self._client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
        )
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError):
            return ""

    async def synthesize_speech(self, *, model: str, voice: str, text: str) -> bytes:
        """
        Native generateContent call with the AUDIO response modality.

        The OpenAI-compatible surface does not serve Gemini TTS models, so
        this goes to the native endpoint with the same credential.
        Returns PCM16 LE mono @ 24kHz.
        """
        url = f"{self._speech_base_url.rstrip('/')}/models/{model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                },
            },
        }

        async with httpx.AsyncClient(
            timeout=self._speech_timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self._api_key or ""},
            )
            response.raise_for_status()
            data = response.json()

        return self._extract_audio(data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _user_content(request: GenerationRequest) -> list[dict[str, Any]]:
        """
        Build multimodal content parts: image first (if any), then text.
        """
        parts: list[dict[str, Any]] = []
        if request.image:
            encoded = base64.b64encode(request.image).decode("ascii")
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{IMAGE_MIME_TYPE};base64,{encoded}"},
            })

        text = request.text if request.text and request.text.strip() else DEFAULT_IMAGE_PROMPT
        parts.append({"type": "text", "text": text})
        return parts

    @staticmethod
    def _extract_delta(chunk: Any) -> str:
        """
        Extract token delta from vendor response (OpenAI format).
        """
        try:
            delta = chunk.choices[0].delta
            return delta.content or ""
        except (AttributeError, IndexError):
            return ""

    @staticmethod
    def _extract_audio(data: Any) -> bytes:
        """
        First inlineData part of the first candidate, base64-decoded.

        No audio part yields b"".
        """
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return b""

        for part in parts:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if isinstance(inline, dict) and inline.get("data"):
                try:
                    return base64.b64decode(inline["data"], validate=True)
                except (binascii.Error, ValueError):
                    return b""
        return b""
