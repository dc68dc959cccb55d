"""
Response envelope parsing.

A finished reply may end with a suggestion block:

    <message text>
    ---SUGGESTIONS---
    First question | Second question | Third question

Everything before the delimiter is the user-facing message; the segment
after it is pipe-separated follow-up prompts. Any count is tolerated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AsyncIterable

from adapters.llm.fragments import CredentialInvalid, ErrorFragment, Fragment, TextFragment
from constants import CHAT_ERROR_CREDENTIAL, SUGGESTIONS_DELIMITER, SUGGESTIONS_SEPARATOR


@dataclass(frozen=True)
class ResponseEnvelope:
    """Parsed reply: message content plus follow-up suggestions."""
    content: str
    suggestions: tuple[str, ...] = field(default_factory=tuple)
    is_error: bool = False
    credential_invalid: bool = False


def parse_response(raw_text: str) -> ResponseEnvelope:
    """
    Split accumulated text at the suggestion delimiter.

    Only the first delimiter splits; the suggestion segment ends at a
    second delimiter if the model repeats it.
    """
    parts = raw_text.split(SUGGESTIONS_DELIMITER)
    content = parts[0].strip()

    suggestions: tuple[str, ...] = ()
    if len(parts) > 1:
        suggestions = tuple(
            s.strip() for s in parts[1].split(SUGGESTIONS_SEPARATOR) if s.strip()
        )

    return ResponseEnvelope(content=content, suggestions=suggestions)


async def collect_response(fragments: AsyncIterable[Fragment]) -> ResponseEnvelope:
    """
    Accumulate a fragment stream and parse the result.

    Terminal fragments replace the content with an in-context error
    message and no suggestions.
    """
    pieces: list[str] = []
    async for fragment in fragments:
        if isinstance(fragment, TextFragment):
            pieces.append(fragment.text)
        elif isinstance(fragment, ErrorFragment):
            return ResponseEnvelope(content=fragment.message, is_error=True)
        elif isinstance(fragment, CredentialInvalid):
            return ResponseEnvelope(
                content=CHAT_ERROR_CREDENTIAL,
                is_error=True,
                credential_invalid=True,
            )

    return parse_response("".join(pieces))
