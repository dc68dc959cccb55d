# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import AsyncIterator

from adapters.llm.fragments import CredentialInvalid, ErrorFragment, Fragment, TextFragment
from constants import CHAT_ERROR_CREDENTIAL
from context.envelope import collect_response, parse_response
from errors import FailureKind


def test_reply_with_suggestions_is_split() -> None:
    raw = "Rest and drink water.\n---SUGGESTIONS---\nIs it serious? | Should I see a doctor? | What helps?"

    envelope = parse_response(raw)

    assert envelope.content == "Rest and drink water."
    assert envelope.suggestions == ("Is it serious?", "Should I see a doctor?", "What helps?")
    assert not envelope.is_error


def test_reply_without_delimiter_has_no_suggestions() -> None:
    envelope = parse_response("  Just rest.  ")

    assert envelope.content == "Just rest."
    assert envelope.suggestions == ()


def test_empty_suggestions_are_dropped_and_any_count_is_kept() -> None:
    envelope = parse_response("ok---SUGGESTIONS--- a || b | c | d |")

    assert envelope.suggestions == ("a", "b", "c", "d")


def _stream(*fragments: Fragment) -> AsyncIterator[Fragment]:
    async def gen() -> AsyncIterator[Fragment]:
        for fragment in fragments:
            yield fragment

    return gen()


def test_collect_response_accumulates_text_across_fragments() -> None:
    envelope = asyncio.run(collect_response(_stream(
        TextFragment("Stay hydrated.---SUGG"),
        TextFragment("ESTIONS---Why?|How?"),
    )))

    assert envelope.content == "Stay hydrated."
    assert envelope.suggestions == ("Why?", "How?")


def test_error_fragment_becomes_in_context_error() -> None:
    envelope = asyncio.run(collect_response(_stream(
        TextFragment("partial"),
        ErrorFragment(message="busy", failure=FailureKind.OVERLOADED),
    )))

    assert envelope.content == "busy"
    assert envelope.is_error
    assert envelope.suggestions == ()


def test_credential_sentinel_flags_the_envelope() -> None:
    envelope = asyncio.run(collect_response(_stream(CredentialInvalid())))

    assert envelope.credential_invalid
    assert envelope.content == CHAT_ERROR_CREDENTIAL
