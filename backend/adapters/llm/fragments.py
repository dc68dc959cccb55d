"""
Chat generation data types.

Rules:
- Fragments describe what the stream produced, nothing else.
- Closed set of variants; consumers match on type.
- No behavior, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from errors import FailureKind


class FragmentType(str, Enum):
    """Discriminant used on the wire (NDJSON) and in logs."""

    TEXT = "text"
    ERROR = "error"
    CREDENTIAL_INVALID = "credential_invalid"


@dataclass(frozen=True)
class GenerationRequest:
    """
    One logical "generate a response" request.

    At least one of text / image must be present. Owned by the caller,
    read-only to the client.
    """
    text: str | None = None
    image: bytes | None = None

    def __post_init__(self) -> None:
        has_text = bool(self.text and self.text.strip())
        if not has_text and not self.image:
            raise ValueError("GenerationRequest needs text or an image")


@dataclass(frozen=True)
class TextFragment:
    """Incremental piece of generated text."""
    text: str
    fragment_type: FragmentType = FragmentType.TEXT


@dataclass(frozen=True)
class ErrorFragment:
    """
    Terminal, human-readable failure message.

    failure carries the class of the last failure for callers that want
    to branch on it.
    """
    message: str
    failure: FailureKind
    fragment_type: FragmentType = FragmentType.ERROR


@dataclass(frozen=True)
class CredentialInvalid:
    """Terminal sentinel: the credential is missing or was rejected."""
    fragment_type: FragmentType = FragmentType.CREDENTIAL_INVALID


Fragment = Union[TextFragment, ErrorFragment, CredentialInvalid]


def fragment_to_dict(fragment: Fragment) -> dict[str, str]:
    """Serialize a fragment for NDJSON transport."""
    if isinstance(fragment, TextFragment):
        return {"type": fragment.fragment_type.value, "text": fragment.text}
    if isinstance(fragment, ErrorFragment):
        return {
            "type": fragment.fragment_type.value,
            "message": fragment.message,
            "failure": fragment.failure.value,
        }
    return {"type": fragment.fragment_type.value}
