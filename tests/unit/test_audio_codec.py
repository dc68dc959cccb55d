# pylint: disable=missing-module-docstring,missing-function-docstring

import base64

import numpy as np
import pytest

from audio.codec import (
    decode_inbound,
    encode_outbound,
    float_to_pcm16,
    pcm16_to_float,
    resample_nearest,
    rms_level,
)
from errors import AudioDecodeError, FailureKind


def test_resample_48k_to_16k_takes_every_third_sample() -> None:
    samples = np.arange(4800, dtype=np.float32)

    out = resample_nearest(samples, 48_000, 16_000)

    assert out.shape == (1600,)
    assert np.array_equal(out, samples[::3])


def test_resample_length_is_floored() -> None:
    out = resample_nearest(np.zeros(100, dtype=np.float32), 44_100, 16_000)

    assert out.shape == ((100 * 16_000) // 44_100,)


def test_resample_same_rate_is_identity() -> None:
    samples = np.linspace(-1.0, 1.0, 64, dtype=np.float32)

    assert np.array_equal(resample_nearest(samples, 16_000, 16_000), samples)


def test_resample_rejects_non_positive_rates() -> None:
    with pytest.raises(ValueError):
        resample_nearest(np.zeros(4, dtype=np.float32), 0, 16_000)


def test_pcm16_scaling_is_asymmetric_and_clamped() -> None:
    pcm = float_to_pcm16(np.array([-1.0, 1.0, 0.0, -2.0, 2.0, 0.5, -0.5]))

    values = np.frombuffer(pcm, dtype="<i2").tolist()
    # 0.5 * 32767 = 16383.5 and -0.5 * 32768 = -16384, truncated toward zero
    assert values == [-32768, 32767, 0, -32768, 32767, 16383, -16384]


def test_encode_outbound_produces_base64_pcm16_at_16k() -> None:
    samples = np.full(4800, 0.25, dtype=np.float32)

    payload = encode_outbound(samples, 48_000)

    raw = base64.b64decode(payload)
    assert len(raw) == 1600 * 2
    assert set(np.frombuffer(raw, dtype="<i2").tolist()) == {int(0.25 * 32767)}


def test_encode_outbound_empty_input_is_empty_string() -> None:
    assert encode_outbound(np.zeros(0, dtype=np.float32), 48_000) == ""
    # Too short to yield a single output sample
    assert encode_outbound(np.zeros(2, dtype=np.float32), 48_000) == ""


def test_decode_inbound_round_trip_is_within_one_lsb() -> None:
    rng = np.random.default_rng(7)
    original = rng.uniform(-1.0, 1.0, 2400).astype(np.float32)
    payload = base64.b64encode(float_to_pcm16(original)).decode("ascii")

    buffer = decode_inbound(payload)

    assert buffer.sample_rate == 24_000
    assert buffer.channels == 1
    assert buffer.num_frames == 2400
    assert buffer.duration_s == pytest.approx(0.1)
    assert np.max(np.abs(buffer.samples[:, 0] - original)) <= 1.0 / 32767 + 1e-6


def test_decode_inbound_preserves_extremes() -> None:
    payload = base64.b64encode(float_to_pcm16(np.array([-1.0, 1.0, 0.0]))).decode("ascii")

    buffer = decode_inbound(payload)

    assert buffer.samples[:, 0].tolist() == [-1.0, 1.0, 0.0]


def test_decode_inbound_rejects_odd_byte_length() -> None:
    payload = base64.b64encode(b"\x01\x02\x03").decode("ascii")

    with pytest.raises(AudioDecodeError) as excinfo:
        decode_inbound(payload)

    assert excinfo.value.kind is FailureKind.DECODE_ERROR


def test_decode_inbound_rejects_invalid_base64() -> None:
    with pytest.raises(AudioDecodeError):
        decode_inbound("not base64 at all!")


def test_pcm16_to_float_reshapes_channels() -> None:
    pcm = np.array([0, 32767, -32768, 0], dtype="<i2").tobytes()

    samples = pcm16_to_float(pcm, channels=2)

    assert samples.shape == (2, 2)
    assert samples[0].tolist() == [0.0, 1.0]
    assert samples[1].tolist() == [-1.0, 0.0]


def test_rms_level() -> None:
    assert rms_level(np.zeros(0)) == 0.0
    assert rms_level(np.full(16, 0.5)) == pytest.approx(0.5)
