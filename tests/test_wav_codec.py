import struct

import numpy as np
import pytest

from voxsegment.audio.wav_codec import (
    WAV_HEADER_BYTES,
    decode_wav_pcm16,
    encode_wav_pcm16,
    float_to_pcm16,
)
from voxsegment.errors import EncodingError


def test_encode_header_fields_and_size():
    samples = np.linspace(-0.5, 0.5, 1000, dtype=np.float32)
    raw = encode_wav_pcm16(samples, 16000)
    assert len(raw) == WAV_HEADER_BYTES + 2 * 1000

    riff, total, wave_tag = struct.unpack_from("<4sI4s", raw, 0)
    assert riff == b"RIFF"
    assert total == 36 + 2000
    assert wave_tag == b"WAVE"

    fmt_tag, fmt_size, audio_format, channels, rate, byte_rate, block_align, bits = struct.unpack_from(
        "<4sIHHIIHH", raw, 12
    )
    assert fmt_tag == b"fmt "
    assert fmt_size == 16
    assert audio_format == 1
    assert channels == 1
    assert rate == 16000
    assert byte_rate == 32000
    assert block_align == 2
    assert bits == 16

    data_tag, data_size = struct.unpack_from("<4sI", raw, 36)
    assert data_tag == b"data"
    assert data_size == len(raw) - WAV_HEADER_BYTES


def test_encode_is_deterministic():
    rng = np.random.default_rng(11)
    samples = rng.uniform(-1, 1, size=777).astype(np.float32)
    assert encode_wav_pcm16(samples, 16000) == encode_wav_pcm16(samples.copy(), 16000)


def test_float_to_pcm16_asymmetric_scaling_and_clamp():
    pcm = float_to_pcm16(np.array([-1.0, -0.5, 0.0, 0.5, 1.0, 2.0, -3.0], dtype=np.float32))
    assert pcm.tolist() == [-32768, -16384, 0, 16383, 32767, 32767, -32768]


def test_payload_is_little_endian_in_sample_order():
    raw = encode_wav_pcm16(np.array([1.0, -1.0, 0.0], dtype=np.float32), 8000)
    assert raw[WAV_HEADER_BYTES:] == b"\xff\x7f\x00\x80\x00\x00"


def test_round_trip_within_one_quantization_step():
    rng = np.random.default_rng(5)
    samples = rng.uniform(-1, 1, size=4096).astype(np.float32)
    decoded, rate = decode_wav_pcm16(encode_wav_pcm16(samples, 16000))
    assert rate == 16000
    assert decoded.shape == samples.shape
    # one int16 step, plus float32 rounding of the decoded value
    np.testing.assert_allclose(decoded, samples, rtol=0, atol=1.0 / 32767 + 1e-7)


@pytest.mark.parametrize(
    "samples, match",
    [
        (np.zeros(0, dtype=np.float32), "empty"),
        (np.array([0.1, np.nan], dtype=np.float32), "non-finite"),
        (np.zeros((4, 2), dtype=np.float32), "1-D"),
    ],
)
def test_encode_rejects_malformed_buffers(samples, match):
    with pytest.raises(EncodingError, match=match):
        encode_wav_pcm16(samples, 16000)


def test_encode_rejects_bad_rate():
    with pytest.raises(EncodingError, match="positive"):
        encode_wav_pcm16(np.zeros(4, dtype=np.float32), 0)


def test_decode_rejects_garbage():
    with pytest.raises(EncodingError, match="invalid wav"):
        decode_wav_pcm16(b"not a wav file at all")
