# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any, AsyncIterator

import pytest

from adapters.llm.base import GenerationBackend
from adapters.llm.client import ClientBinding
from adapters.llm.fragments import (
    CredentialInvalid,
    ErrorFragment,
    Fragment,
    GenerationRequest,
    TextFragment,
    fragment_to_dict,
)
from adapters.llm.streaming import StreamingChatClient
from config import AppConfig
from constants import CHAT_ERROR_BUSY, CHAT_ERROR_CREDENTIAL, CHAT_ERROR_OTHER
from errors import BadRequest, CredentialRejected, FailureKind, Overloaded, RateLimited
from observability import logger

MODELS = ("model-a", "model-b")


class ScriptedBackend(GenerationBackend):
    """
    Each call to stream_text pops the next script entry for the model:
    a list of chunks, an exception, or (chunks, exception) for a
    mid-stream failure.
    """

    def __init__(self, scripts: dict[str, list[Any]]) -> None:
        self.scripts = scripts
        self.calls: list[str] = []
        self.requests: list[GenerationRequest] = []

    async def stream_text(
        self,
        *,
        model: str,
        system_instruction: str,
        request: GenerationRequest,
    ) -> AsyncIterator[str]:
        self.calls.append(model)
        self.requests.append(request)
        step = self.scripts[model].pop(0)

        if isinstance(step, BaseException):
            raise step
        if isinstance(step, tuple):
            chunks, exc = step
            for chunk in chunks:
                yield chunk
            raise exc
        for chunk in step:
            yield chunk

    async def complete_text(self, *, model: str, prompt: str) -> str:
        raise NotImplementedError

    async def synthesize_speech(self, *, model: str, voice: str, text: str) -> bytes:
        raise NotImplementedError


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)
    return lines


def _client(
    backend: GenerationBackend | None,
    *,
    credential: str | None = "test-key",
    sleeps: list[float] | None = None,
) -> StreamingChatClient:
    config = AppConfig(chat_models=MODELS)
    binding = ClientBinding(credential=credential, config=config, backend=backend)

    async def fake_sleep(seconds: float) -> None:
        if sleeps is not None:
            sleeps.append(seconds)

    return StreamingChatClient(binding=binding, sleep=fake_sleep)


def _collect(client: StreamingChatClient, request: GenerationRequest) -> list[Fragment]:
    async def run() -> list[Fragment]:
        return [f async for f in client.generate(request)]

    return asyncio.run(run())


def _texts(fragments: list[Fragment]) -> str:
    return "".join(f.text for f in fragments if isinstance(f, TextFragment))


HEADACHE = GenerationRequest(text="I have a headache")


def test_first_model_answers() -> None:
    backend = ScriptedBackend({"model-a": [["Drink ", "water."]], "model-b": []})

    fragments = _collect(_client(backend), HEADACHE)

    assert fragments == [TextFragment("Drink "), TextFragment("water.")]
    assert backend.calls == ["model-a"]


def test_overloaded_first_model_retries_then_falls_back() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [Overloaded("503"), Overloaded("503"), Overloaded("503")],
        "model-b": [["Rest ", "and hydrate."]],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert _texts(fragments) == "Rest and hydrate."
    assert backend.calls == ["model-a", "model-a", "model-a", "model-b"]
    # Backoff after attempts 0 and 1 only; the third failure moves on
    assert sleeps == [1.5, 3.0]


def test_rate_limit_recovers_on_same_model() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [RateLimited("429"), ["ok"]],
        "model-b": [],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert fragments == [TextFragment("ok")]
    assert backend.calls == ["model-a", "model-a"]
    assert sleeps == [1.5]


def test_headache_recovers_on_last_allowed_attempt() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [RateLimited("429"), RateLimited("429"), ["Rest ", "in a dark room."]],
        "model-b": [["never used"]],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert fragments == [TextFragment("Rest "), TextFragment("in a dark room.")]
    assert backend.calls == ["model-a"] * 3
    assert sleeps == [1.5, 3.0]
    assert backend.scripts["model-b"] == [["never used"]]


def test_non_transient_failure_skips_straight_to_next_model() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [BadRequest("model not found")],
        "model-b": [["fine"]],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert fragments == [TextFragment("fine")]
    assert backend.calls == ["model-a", "model-b"]
    assert not sleeps


def test_all_candidates_failing_yields_one_error_fragment() -> None:
    backend = ScriptedBackend({
        "model-a": [Overloaded("503")] * 3,
        "model-b": [Overloaded("503")] * 3,
    })

    fragments = _collect(_client(backend), HEADACHE)

    assert len(fragments) == 1
    assert isinstance(fragments[0], ErrorFragment)
    assert fragments[0].message == CHAT_ERROR_BUSY
    assert fragments[0].failure is FailureKind.OVERLOADED
    assert len(backend.calls) == 6


def test_unknown_last_failure_uses_network_message() -> None:
    backend = ScriptedBackend({
        "model-a": [BadRequest("gone")],
        "model-b": [RuntimeError("socket reset")],
    })

    fragments = _collect(_client(backend), HEADACHE)

    assert isinstance(fragments[-1], ErrorFragment)
    assert fragments[-1].message == CHAT_ERROR_OTHER


def test_credential_rejection_short_circuits_everything() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [CredentialRejected("API key not valid")],
        "model-b": [["never"]],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert fragments == [CredentialInvalid()]
    assert backend.calls == ["model-a"]
    assert not sleeps


def test_missing_credential_never_touches_the_network() -> None:
    fragments = _collect(_client(None, credential=None), HEADACHE)

    assert fragments == [CredentialInvalid()]


def test_mid_stream_failure_is_not_retried() -> None:
    sleeps: list[float] = []
    backend = ScriptedBackend({
        "model-a": [(["Drink "], Overloaded("503"))],
        "model-b": [["never"]],
    })

    fragments = _collect(_client(backend, sleeps=sleeps), HEADACHE)

    assert fragments[0] == TextFragment("Drink ")
    assert isinstance(fragments[1], ErrorFragment)
    assert len(fragments) == 2
    assert backend.calls == ["model-a"]
    assert not sleeps


def test_image_only_request_reaches_backend() -> None:
    backend = ScriptedBackend({"model-a": [["A rash."]], "model-b": []})
    request = GenerationRequest(image=b"\xff\xd8jpeg")

    fragments = _collect(_client(backend), request)

    assert _texts(fragments) == "A rash."
    assert backend.requests[0].image == b"\xff\xd8jpeg"


def test_fragments_reach_caller_before_stream_finishes() -> None:
    gate = asyncio.Event()
    seen: list[str] = []

    class GatedBackend(ScriptedBackend):
        async def stream_text(self, **kwargs: Any) -> AsyncIterator[str]:
            yield "first"
            await gate.wait()
            yield "second"

    client = _client(GatedBackend({}))

    async def run() -> None:
        async def consume() -> None:
            async for fragment in client.generate(HEADACHE):
                assert isinstance(fragment, TextFragment)
                seen.append(fragment.text)

        task = asyncio.create_task(consume())
        for _ in range(5):
            await asyncio.sleep(0)
        assert seen == ["first"]
        gate.set()
        await task

    asyncio.run(run())
    assert seen == ["first", "second"]


def test_generate_text_joins_fragments() -> None:
    backend = ScriptedBackend({"model-a": [["a", "b"]], "model-b": []})

    assert asyncio.run(_client(backend).generate_text(HEADACHE)) == "ab"
    assert asyncio.run(_client(None, credential=None).generate_text(HEADACHE)) == CHAT_ERROR_CREDENTIAL


def test_request_requires_text_or_image() -> None:
    with pytest.raises(ValueError):
        GenerationRequest()
    with pytest.raises(ValueError):
        GenerationRequest(text="   ")


def test_constructor_validation() -> None:
    binding = ClientBinding(credential="k", config=AppConfig(), backend=None)

    with pytest.raises(ValueError):
        StreamingChatClient(binding=binding, models=())
    with pytest.raises(ValueError):
        StreamingChatClient(binding=binding, max_attempts_per_model=0)


def test_fragment_serialization() -> None:
    assert fragment_to_dict(TextFragment("hi")) == {"type": "text", "text": "hi"}
    assert fragment_to_dict(CredentialInvalid()) == {"type": "credential_invalid"}
    error = fragment_to_dict(ErrorFragment(message="busy", failure=FailureKind.OVERLOADED))
    assert error["type"] == "error"
    assert error["message"] == "busy"
