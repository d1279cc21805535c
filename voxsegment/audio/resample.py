# coding=utf-8
from __future__ import annotations

import math

import numpy as np
from scipy import signal

from voxsegment.config import CANONICAL_SAMPLE_RATE


def resampled_length(num_samples: int, source_rate: int, target_rate: int) -> int:
    """ceil(num_samples / source_rate * target_rate) in exact integer arithmetic."""
    n = max(0, int(num_samples))
    return -(-n * int(target_rate) // int(source_rate))


def resample_to_rate(samples, source_rate: float, target_rate: int = CANONICAL_SAMPLE_RATE) -> np.ndarray:
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    src = int(round(float(source_rate)))
    dst = int(target_rate)
    if src <= 0 or dst <= 0:
        raise ValueError(f"sample rates must be positive, got {source_rate} -> {target_rate}")
    if src == dst:
        return data
    if data.size == 0:
        return np.zeros((0,), dtype=np.float32)

    g = math.gcd(src, dst)
    up, down = dst // g, src // g
    out = signal.resample_poly(data, up, down).astype(np.float32, copy=False)

    expected = resampled_length(data.size, src, dst)
    if out.size > expected:
        out = out[:expected]
    elif out.size < expected:
        out = np.pad(out, (0, expected - out.size))
    return out
