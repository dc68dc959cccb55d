"""
JSONL event logger.

- Write one JSON object per line
- Output to stdout
- No buffering, no batching
- No side effects beyond logging
- Plain "key=value" rendering when JSON logs are disabled
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_json_enabled: bool = True


def configure(*, enable_json_logs: bool) -> None:
    """Select JSON (default) or plain-text rendering for all later events."""
    global _json_enabled  # pylint: disable=global-statement
    _json_enabled = enable_json_logs


def now_ms() -> int:
    """Wall-clock milliseconds, used for the ts_ms field."""
    return time.time_ns() // 1_000_000


def _render_plain(event: Mapping[str, Any]) -> str:
    head = str(event.get("event_type", "EVENT"))
    rest = " ".join(
        f"{k}={v!r}" for k, v in event.items() if k != "event_type"
    )
    return f"{head} {rest}".rstrip()


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single event line to stdout.

    The caller supplies a fully-formed event dict; ts_ms is filled in
    when missing.

    This function:
    - Serializes to JSON (or plain text, see configure())
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if "ts_ms" not in event:
        event = {"ts_ms": now_ms(), **event}

    if not _json_enabled:
        _print(_render_plain(event))
        return

    try:
        line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        # Last-resort fallback, logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)
