# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger
from observability.metrics import timed


@pytest.fixture(name="captured")
def fixture_captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    monkeypatch.setattr(logger, "_json_enabled", True)
    return lines


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is, plus ts_ms
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Must be valid JSON
    decoded = json.loads(captured[0])

    assert isinstance(decoded.pop("ts_ms"), int)
    assert decoded == payload


def test_log_event_keeps_caller_timestamp(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "ts_ms": 42})

    assert json.loads(captured[0])["ts_ms"] == 42


def test_log_event_never_raises_on_unserializable_payload(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert "TEST" in decoded["original_event_repr"]


def test_plain_rendering_when_json_disabled(
    captured: list[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(logger, "_json_enabled", False)

    logger.log_event({"event_type": "CHAT_DONE", "ts_ms": 1, "model": "m"})

    assert captured == ["CHAT_DONE ts_ms=1 model='m'"]


def test_timed_emits_metric_with_outcome(captured: list[str]) -> None:
    with timed("unit", model="m"):
        pass

    with pytest.raises(ValueError):
        with timed("unit"):
            raise ValueError("boom")

    events = [json.loads(line) for line in captured]
    assert [e["event_type"] for e in events] == ["METRIC_TIMER", "METRIC_TIMER"]
    assert events[0]["outcome"] == "ok"
    assert events[0]["details"] == {"model": "m"}
    assert events[1]["outcome"] == "ValueError"
    assert events[0]["value_ms"] >= 0
