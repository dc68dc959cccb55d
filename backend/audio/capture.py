"""
Microphone capture abstraction.

The session consumes capture as an async stream of fixed-size float32
windows. Device access itself is an external capability; QueueCapture
is the in-process implementation fed by whoever owns the device (the
browser websocket bridge, or a test).

Delivery rules:
- start() acquires the device but delivers nothing yet.
- open_delivery() is called once the connection is negotiated; audio
  captured before that point is discarded, never sent late.
- The window queue is bounded; overflow drops the NEW window.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator

import numpy as np

from constants import CAPTURE_BUFFER_SAMPLES, CAPTURE_QUEUE_MAX_WINDOWS


class AudioCapture(ABC):
    """
    Capture source contract.

    - start() acquires the device; may raise (permission denied, busy).
    - open_delivery() begins delivering windows to frames().
    - frames() yields float32 windows of buffer_size samples in [-1, 1].
    - stop() releases the device; idempotent, safe before start().
    """

    buffer_size: int = CAPTURE_BUFFER_SAMPLES

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        """Capture sample rate in Hz."""
        raise NotImplementedError

    @abstractmethod
    async def start(self) -> None:
        """Acquire the capture device."""
        raise NotImplementedError

    @abstractmethod
    def open_delivery(self) -> None:
        """Start delivering windows; anything captured earlier is dropped."""
        raise NotImplementedError

    @abstractmethod
    def frames(self) -> AsyncIterator[np.ndarray]:
        """Async stream of capture windows; ends when capture stops."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """Release the capture device."""
        raise NotImplementedError


@dataclass
class CaptureDropCounters:
    """
    Drop counters for observability.
    """
    not_delivering: int = 0
    overflow: int = 0


_END = None


class QueueCapture(AudioCapture):
    """
    Capture fed by push(): arbitrary-sized chunks are re-cut into
    fixed buffer_size windows before delivery.
    """

    def __init__(
        self,
        *,
        sample_rate: int,
        buffer_size: int = CAPTURE_BUFFER_SAMPLES,
        max_windows: int = CAPTURE_QUEUE_MAX_WINDOWS,
    ) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        if max_windows <= 0:
            raise ValueError("max_windows must be > 0")
        self._sample_rate = sample_rate
        self.buffer_size = buffer_size
        self._max_windows = max_windows
        # The end marker must always fit; push() enforces max_windows.
        self._queue: asyncio.Queue[np.ndarray | None] = asyncio.Queue()
        self._pending = np.zeros(0, dtype=np.float32)
        self._running = False
        self._delivering = False
        self.drops: CaptureDropCounters = CaptureDropCounters()

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def running(self) -> bool:
        """True between start() and stop()."""
        return self._running

    @property
    def delivering(self) -> bool:
        """True between open_delivery() and stop()."""
        return self._delivering

    def depth(self) -> int:
        """Windows waiting for the consumer."""
        return self._queue.qsize()

    async def start(self) -> None:
        self._running = True

    def open_delivery(self) -> None:
        if not self._running:
            return
        self._pending = np.zeros(0, dtype=np.float32)
        self._delivering = True

    def push(self, samples: np.ndarray) -> int:
        """
        Feed raw samples. Returns the number of full windows queued.

        Samples pushed while stopped are discarded. Samples pushed before
        open_delivery(), and windows beyond max_windows, are counted as
        drops.
        """
        if not self._running:
            return 0

        data = np.asarray(samples, dtype=np.float32).reshape(-1)

        if not self._delivering:
            self.drops.not_delivering += data.shape[0] // self.buffer_size
            return 0

        self._pending = np.concatenate([self._pending, data])

        queued = 0
        while self._pending.shape[0] >= self.buffer_size:
            window = self._pending[: self.buffer_size].copy()
            self._pending = self._pending[self.buffer_size:]
            if self._queue.qsize() >= self._max_windows:
                self.drops.overflow += 1
                continue
            self._queue.put_nowait(window)
            queued += 1
        return queued

    async def frames(self) -> AsyncIterator[np.ndarray]:
        while True:
            window = await self._queue.get()
            if window is _END:
                return
            yield window

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._delivering = False
        self._pending = np.zeros(0, dtype=np.float32)
        self._queue.put_nowait(_END)
