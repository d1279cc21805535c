# coding=utf-8
from __future__ import annotations

import io
import wave
from typing import Tuple

import numpy as np

from voxsegment.errors import EncodingError

WAV_HEADER_BYTES = 44
PCM16_NEG_SCALE = 32768.0
PCM16_POS_SCALE = 32767.0


def float_to_pcm16(samples) -> np.ndarray:
    """
    Clamp to [-1, 1] and scale to int16, truncating toward zero.

    Negative values scale by 32768 and non-negative by 32767 so both -1.0 and 1.0
    stay representable.
    """
    data = np.clip(np.asarray(samples, dtype=np.float64).reshape(-1), -1.0, 1.0)
    scaled = np.where(data < 0.0, data * PCM16_NEG_SCALE, data * PCM16_POS_SCALE)
    return np.trunc(scaled).astype("<i2")


def pcm16_to_float(pcm) -> np.ndarray:
    data = np.asarray(pcm, dtype=np.float64)
    out = np.where(data < 0.0, data / PCM16_NEG_SCALE, data / PCM16_POS_SCALE)
    return out.astype(np.float32)


def encode_wav_pcm16(samples, sample_rate: int) -> bytes:
    """Serialize a mono float buffer as a 44-byte-header RIFF/WAVE PCM16 little-endian container."""
    data = np.asarray(samples)
    if data.ndim != 1:
        raise EncodingError(f"expected a 1-D sample buffer, got shape {data.shape}")
    if data.size == 0:
        raise EncodingError("cannot encode an empty sample buffer")
    if not np.all(np.isfinite(data)):
        raise EncodingError("sample buffer contains non-finite values")
    rate = int(sample_rate)
    if rate <= 0:
        raise EncodingError(f"sample rate must be positive, got {sample_rate}")

    pcm = float_to_pcm16(data)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


def decode_wav_pcm16(raw: bytes) -> Tuple[np.ndarray, int]:
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise EncodingError("wav payload must be bytes")
    try:
        with wave.open(io.BytesIO(bytes(raw)), "rb") as wf:
            channels = wf.getnchannels()
            sample_width = wf.getsampwidth()
            sample_rate = wf.getframerate()
            frames = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        raise EncodingError(f"invalid wav container: {e}") from e
    if channels != 1:
        raise EncodingError(f"wav must be mono, got channels={channels}")
    if sample_width != 2:
        raise EncodingError(f"wav must be 16-bit PCM, got sampwidth={sample_width}")
    pcm = np.frombuffer(frames, dtype="<i2")
    return pcm16_to_float(pcm), sample_rate
