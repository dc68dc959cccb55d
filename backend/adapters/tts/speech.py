"""
Best-effort remote speech synthesis for chat replies.

Role in the system:
- Cleans a finished reply (markdown, suggestion block) for reading aloud.
- Splits it into sentence-aligned chunks.
- Performs one synthesis call per chunk, prefetching chunk N+1 while the
  caller plays chunk N.

Never raises to the caller: failed chunks are skipped.
"""

from __future__ import annotations

import asyncio
import re
from typing import AsyncIterator

from adapters.llm.client import ClientBinding
from constants import (
    SPEECH_MIN_CHUNK_CHARS,
    SPEECH_SENTENCE_BREAK_CHARS,
    SPEECH_STRIP_CHARS,
    SUGGESTIONS_DELIMITER,
)
from errors import classify_failure
from observability.logger import log_event

_BREAK_RE = re.compile(
    "([" + "".join(re.escape(c) for c in SPEECH_SENTENCE_BREAK_CHARS) + "]+)"
)
_STRIP_RE = re.compile("[" + re.escape(SPEECH_STRIP_CHARS) + "]")


def clean_for_speech(text: str) -> str:
    """Drop the suggestion block and markdown emphasis characters."""
    body = text.split(SUGGESTIONS_DELIMITER, 1)[0]
    return _STRIP_RE.sub("", body).strip()


def split_text_into_chunks(text: str, min_chars: int = SPEECH_MIN_CHUNK_CHARS) -> list[str]:
    """
    Split text at sentence punctuation, keeping punctuation attached.

    Short sentences are merged until a chunk reaches min_chars; the
    final sentence is always flushed.
    """
    parts = _BREAK_RE.split(text)
    chunks: list[str] = []
    current = ""

    for i, part in enumerate(parts):
        current += part
        if not _BREAK_RE.fullmatch(part):
            continue
        if len(current.strip()) >= min_chars or i >= len(parts) - 2:
            if current.strip():
                chunks.append(current.strip())
            current = ""

    if current.strip():
        chunks.append(current.strip())
    return chunks


class SpeechClient:
    """
    Remote text-to-speech over the shared client binding.
    """

    def __init__(
        self,
        *,
        binding: ClientBinding,
        model: str | None = None,
        voice: str | None = None,
    ) -> None:
        self._binding = binding
        self._model = model or binding.config.speech_model
        self._voice = voice or binding.config.speech_voice

    async def synthesize(self, text: str) -> bytes | None:
        """
        Synthesize one piece of text.

        Returns PCM16 bytes, or None for blank input or any failure.
        """
        if not text or not text.strip():
            return None

        backend = self._binding.backend
        if backend is None:
            log_event({"event_type": "SPEECH_SKIPPED", "reason": "credential_missing"})
            return None

        try:
            audio = await backend.synthesize_speech(
                model=self._model,
                voice=self._voice,
                text=text,
            )
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "SPEECH_ERROR",
                "model": self._model,
                "failure": classify_failure(exc).value,
                "error": f"{type(exc).__name__}: {exc}",
            })
            return None

        return audio or None

    async def synthesize_reply(self, reply: str) -> AsyncIterator[bytes]:
        """
        Yield audio for each chunk of a reply, in order.

        The next chunk is requested before the current one is yielded,
        so synthesis overlaps with the caller's playback.
        """
        chunks = split_text_into_chunks(clean_for_speech(reply))
        if not chunks:
            return

        pending: asyncio.Task[bytes | None] = asyncio.create_task(self.synthesize(chunks[0]))
        try:
            for i in range(len(chunks)):
                current = pending
                if i + 1 < len(chunks):
                    pending = asyncio.create_task(self.synthesize(chunks[i + 1]))
                audio = await current
                if audio:
                    yield audio
        finally:
            if not pending.done():
                pending.cancel()
