# pylint: disable=missing-module-docstring,missing-function-docstring

import struct

import numpy as np
import pytest

from protocol.binary import (
    PLAYBACK_HEADER,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
    InvalidFrameLength,
    InvalidSequenceNumber,
    decode_capture_frame,
    encode_playback_frame,
    next_sequence_num,
)


def test_decode_capture_frame_reads_float32_le() -> None:
    payload = np.array([0.0, 0.5, -0.25], dtype="<f4").tobytes()

    samples = decode_capture_frame(payload)

    assert samples.dtype == np.float32
    assert samples.tolist() == [0.0, 0.5, -0.25]


def test_decode_capture_frame_clamps_and_scrubs() -> None:
    payload = np.array([2.0, -3.0, np.nan], dtype="<f4").tobytes()

    assert decode_capture_frame(payload).tolist() == [1.0, -1.0, 0.0]


@pytest.mark.parametrize("payload", [b"", b"\x00\x01\x02"])
def test_decode_capture_frame_rejects_bad_lengths(payload: bytes) -> None:
    with pytest.raises(InvalidFrameLength):
        decode_capture_frame(payload)


def test_encode_playback_frame_layout() -> None:
    samples = np.array([[0.25], [-0.5]], dtype=np.float32)

    frame = encode_playback_frame(sequence_num=7, start_at=1.25, samples=samples)

    seq, start_at = PLAYBACK_HEADER.unpack_from(frame, 0)
    assert (seq, start_at) == (7, 1.25)
    assert PLAYBACK_HEADER.size == 12
    body = np.frombuffer(frame[PLAYBACK_HEADER.size:], dtype="<f4")
    assert body.tolist() == [0.25, -0.5]


def test_encode_playback_frame_downmixes_stereo() -> None:
    samples = np.array([[1.0, 0.0], [0.5, 0.5]], dtype=np.float32)

    frame = encode_playback_frame(sequence_num=1, start_at=0.0, samples=samples)

    assert struct.unpack_from("<2f", frame, PLAYBACK_HEADER.size) == (0.5, 0.5)


def test_encode_playback_frame_validates_inputs() -> None:
    with pytest.raises(InvalidSequenceNumber):
        encode_playback_frame(sequence_num=0, start_at=0.0, samples=np.zeros(4))
    with pytest.raises(InvalidFrameLength):
        encode_playback_frame(sequence_num=1, start_at=0.0, samples=np.zeros(0))


def test_sequence_numbers_wrap() -> None:
    assert next_sequence_num(0) == SEQ_NUM_START
    assert next_sequence_num(41) == 42
    assert next_sequence_num(SEQ_NUM_MAX) == SEQ_NUM_START
