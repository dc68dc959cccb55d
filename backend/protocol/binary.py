# backend/protocol/binary.py
"""
Binary framing helpers for the browser audio bridge.

- Client → Server (mic):
    N * 4 bytes  float32 samples (little-endian, mono, [-1, 1])
    at the capture rate announced when the socket opened

- Server → Client (playback):
    4 bytes  seq_num  (u32, little-endian)
    8 bytes  start_at (f64, little-endian, seconds on the session clock)
    N * 4 bytes float32 samples (little-endian, mono)

Usage example:

    samples = decode_capture_frame(payload)
    capture.push(samples)

    frame = encode_playback_frame(
        sequence_num=seq,
        start_at=start_s,
        samples=buffer.samples,
    )
"""

from __future__ import annotations

import struct

import numpy as np


SEQ_NUM_START = 1
SEQ_NUM_MAX = 2**32 - 1

PLAYBACK_HEADER = struct.Struct("<Id")
FLOAT32_LE = np.dtype("<f4")


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when a binary audio frame is empty or not a whole number of
    float32 samples.

    The frame is unsafe to process and must be dropped.
    """


class InvalidSequenceNumber(BinaryProtocolError):
    """
    Raised when a sequence number is outside the valid range.
    """


# -------------------------
# Client → Server (mic)
# -------------------------

def decode_capture_frame(payload: bytes) -> np.ndarray:
    """
    Decode a client→server capture frame into float32 samples.
    """
    if not payload or len(payload) % FLOAT32_LE.itemsize != 0:
        raise InvalidFrameLength(
            f"capture frame length {len(payload)} is not a positive multiple of "
            f"{FLOAT32_LE.itemsize}"
        )

    samples = np.frombuffer(payload, dtype=FLOAT32_LE).astype(np.float32)
    return np.clip(np.nan_to_num(samples), -1.0, 1.0)


# -------------------------
# Server → Client (playback)
# -------------------------

def encode_playback_frame(
    *,
    sequence_num: int,
    start_at: float,
    samples: np.ndarray,
) -> bytes:
    """
    Encode a server→client playback frame.

    Multi-channel input is downmixed to mono.
    """
    if sequence_num < SEQ_NUM_START or sequence_num > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {sequence_num}")

    data = np.asarray(samples, dtype=np.float32)
    if data.ndim == 2:
        data = data.mean(axis=1)

    if data.size == 0:
        raise InvalidFrameLength("playback frame has no samples")

    return PLAYBACK_HEADER.pack(sequence_num, float(start_at)) + data.astype(FLOAT32_LE).tobytes()


def next_sequence_num(current: int) -> int:
    """Sequence number following `current`, with wraparound."""
    if current >= SEQ_NUM_MAX:
        return SEQ_NUM_START
    return current + 1
