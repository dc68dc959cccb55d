"""
Transport audio codec.

Outbound: float capture samples -> nearest-neighbour resample -> PCM16 LE
-> base64 text.
Inbound:  base64 text -> PCM16 LE -> float32 playback buffer.

Stateless, no I/O.
"""
from __future__ import annotations

import base64
import binascii

import numpy as np

from audio.frames import PlaybackBuffer
from constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_WIDTH_BYTES,
    INBOUND_SAMPLE_RATE_HZ,
    OUTBOUND_SAMPLE_RATE_HZ,
    PCM16_NEGATIVE_SCALE,
    PCM16_POSITIVE_SCALE,
)
from errors import AudioDecodeError


def resample_nearest(
    samples: np.ndarray,
    source_rate: int,
    target_rate: int,
) -> np.ndarray:
    """
    Naive nearest-neighbour resampling.

    Output length is floor(n * target / source); output sample i takes
    input index floor(i * source / target). No filtering.
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError("sample rates must be > 0")

    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    if source_rate == target_rate:
        return data

    target_len = (data.shape[0] * target_rate) // source_rate
    idx = (np.arange(target_len, dtype=np.int64) * source_rate) // target_rate
    return data[idx]


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """
    Clamp to [-1, 1] and scale to signed 16-bit little-endian bytes.

    Negative values scale by 32768, non-negative by 32767; the result
    is truncated toward zero.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(
        clipped < 0,
        clipped * PCM16_NEGATIVE_SCALE,
        clipped * PCM16_POSITIVE_SCALE,
    )
    return scaled.astype("<i2").tobytes()


def pcm16_to_float(pcm_bytes: bytes, channels: int = AUDIO_CHANNELS) -> np.ndarray:
    """
    Convert PCM16 little-endian bytes to float32 shaped (frames, channels).

    Inverse of float_to_pcm16: negative values divide by 32768,
    non-negative by 32767.

    Raises:
        AudioDecodeError if the length is not a whole number of frames.
    """
    if channels <= 0:
        raise ValueError("channels must be > 0")

    frame_bytes = AUDIO_SAMPLE_WIDTH_BYTES * channels
    if len(pcm_bytes) % frame_bytes != 0:
        raise AudioDecodeError(
            f"pcm payload of {len(pcm_bytes)} bytes is not a multiple of {frame_bytes}"
        )

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2").astype(np.float32)
    audio_f32 = np.where(
        audio_i16 < 0,
        audio_i16 / PCM16_NEGATIVE_SCALE,
        audio_i16 / PCM16_POSITIVE_SCALE,
    ).astype(np.float32)
    return audio_f32.reshape(-1, channels)


def encode_outbound(
    samples: np.ndarray,
    source_rate: int,
    target_rate: int = OUTBOUND_SAMPLE_RATE_HZ,
) -> str:
    """
    Encode capture samples for the wire.

    Empty input returns an empty string.
    """
    resampled = resample_nearest(samples, source_rate, target_rate)
    if resampled.size == 0:
        return ""
    return base64.b64encode(float_to_pcm16(resampled)).decode("ascii")


def decode_inbound(
    payload: str,
    playback_rate: int = INBOUND_SAMPLE_RATE_HZ,
    channels: int = AUDIO_CHANNELS,
) -> PlaybackBuffer:
    """
    Decode a base64 PCM16 payload into a playback buffer.

    Raises:
        AudioDecodeError on invalid base64 or a truncated sample.
    """
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioDecodeError(f"invalid base64 audio payload: {e}") from e

    return PlaybackBuffer(
        samples=pcm16_to_float(raw, channels=channels),
        sample_rate=playback_rate,
    )


def rms_level(samples: np.ndarray) -> float:
    """Root-mean-square of a capture buffer; 0.0 for an empty buffer."""
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))
