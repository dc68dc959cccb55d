"""
Gapless playback scheduling.

Rules:
- Buffers are scheduled back-to-back in arrival order:
      start_i = max(now, end_{i-1})
- No gaps, no overlaps while buffers keep arriving
- An interruption (or stop) cancels every scheduled buffer and resets
  the next-start marker, so the next buffer starts at "now"
- Deterministic, synchronous behavior; the sink owns the clock
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Sequence

from audio.frames import PlaybackBuffer


class PlaybackSink(ABC):
    """
    Speaker output capability.

    The sink is a dumb output: it plays what it is told, when it is
    told. Ordering and timing decisions live in PlaybackScheduler.
    """

    @abstractmethod
    def now(self) -> float:
        """Current playback clock, in seconds."""
        raise NotImplementedError

    @abstractmethod
    def play(self, buffer: PlaybackBuffer, start_at: float) -> Any:
        """
        Schedule a buffer to start at the given clock time.

        Returns an opaque handle accepted by cancel().
        """
        raise NotImplementedError

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """
        Stop a scheduled or playing buffer.

        Best-effort, idempotent, must not raise for finished handles.
        """
        raise NotImplementedError

    def cancel_all(self, handles: Sequence[Any]) -> None:
        """
        Stop several buffers at once, oldest first.

        Sinks that can flush in one step override this.
        """
        for handle in handles:
            self.cancel(handle)


@dataclass(frozen=True)
class ScheduledBuffer:
    """One buffer handed to the sink, with its computed time slot."""
    start_s: float
    end_s: float
    handle: Any


class PlaybackScheduler:
    """
    Ordered set of scheduled-but-not-finished playback buffers.
    """

    def __init__(self, sink: PlaybackSink) -> None:
        self._sink = sink
        self._scheduled: Deque[ScheduledBuffer] = deque()
        self._next_start_s: float = 0.0
        self.interruptions: int = 0

    # -------------------------
    # Core operations
    # -------------------------

    def schedule(self, buffer: PlaybackBuffer) -> ScheduledBuffer:
        """
        Schedule a buffer immediately after the previous one.
        """
        now = self._sink.now()
        self._prune(now)

        start = max(now, self._next_start_s)
        end = start + buffer.duration_s
        handle = self._sink.play(buffer, start)

        entry = ScheduledBuffer(start_s=start, end_s=end, handle=handle)
        self._scheduled.append(entry)
        self._next_start_s = end
        return entry

    def clear(self) -> int:
        """
        Cancel every scheduled buffer and reset the next-start marker.

        Returns the number of buffers cancelled.
        """
        handles = [entry.handle for entry in self._scheduled]
        self._scheduled.clear()
        self._next_start_s = 0.0
        if handles:
            self._sink.cancel_all(handles)
        return len(handles)

    def interrupt(self) -> int:
        """Server-signalled interruption: flush everything queued."""
        self.interruptions += 1
        return self.clear()

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._scheduled)

    @property
    def next_start_s(self) -> float:
        """Clock time at which the next buffer would start (0.0 = now)."""
        return self._next_start_s

    def pending(self) -> tuple[ScheduledBuffer, ...]:
        """Buffers not yet finished as of the sink's current clock."""
        self._prune(self._sink.now())
        return tuple(self._scheduled)

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging.
        """
        now = self._sink.now()
        self._prune(now)
        return {
            "scheduled": len(self._scheduled),
            "queued_s": max(0.0, self._next_start_s - now),
            "interruptions": self.interruptions,
        }

    def _prune(self, now: float) -> None:
        while self._scheduled and self._scheduled[0].end_s <= now:
            self._scheduled.popleft()
