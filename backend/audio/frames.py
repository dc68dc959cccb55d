"""
Audio frame primitives.

Pure data containers only.
No behavior beyond derived properties, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PlaybackBuffer:
    """
    Decoded inbound audio ready for the playback sink.

    samples:
        float32 array shaped (frames, channels), values in [-1.0, 1.0].

    sample_rate:
        Playback rate in Hz (24kHz for live audio).
    """
    samples: np.ndarray
    sample_rate: int

    @property
    def channels(self) -> int:
        """Number of interleaved channels."""
        return int(self.samples.shape[1]) if self.samples.ndim == 2 else 1

    @property
    def num_frames(self) -> int:
        """Number of sample frames (per channel)."""
        return int(self.samples.shape[0])

    @property
    def duration_s(self) -> float:
        """Playback duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return self.num_frames / self.sample_rate
