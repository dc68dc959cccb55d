"""
Timing helpers for observability.

Responsibilities:
- Measure durations using monotonic time (immune to clock changes)
- Emit each measurement as one event via observability.logger
- Never aggregate: one metric = one log event
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


@contextmanager
def timed(name: str, **details: Any) -> Iterator[None]:
    """
    Measure the wrapped block and emit a METRIC_TIMER event.

    The metric is emitted exactly once, also when the block raises;
    the exception type is recorded under "outcome".

    Usage:
        with timed("chat_attempt", model=model_id, attempt=attempt):
            ...
    """
    start_ns = time.monotonic_ns()
    outcome = "ok"
    try:
        yield
    except BaseException as exc:
        outcome = type(exc).__name__
        raise
    finally:
        log_event({
            "event_type": "METRIC_TIMER",
            "metric": name,
            "value_ms": (time.monotonic_ns() - start_ns) // 1_000_000,
            "outcome": outcome,
            "details": details,
        })
