# coding=utf-8
from __future__ import annotations

from typing import List, Optional

import numpy as np


def block_samples_for(sample_rate: float, block_ms: float) -> int:
    return max(1, int(round(float(sample_rate) * float(block_ms) / 1000.0)))


def as_mono_float32(chunk) -> np.ndarray:
    """Return a 1-D float32 copy of ``chunk``, averaging channels of (frames, channels) input."""
    data = np.asarray(chunk, dtype=np.float32)
    if data.ndim == 2:
        if data.shape[1] == 1:
            return data[:, 0].copy()
        return data.mean(axis=1, dtype=np.float32)
    return data.reshape(-1).copy()


class FixedBlockReassembler:
    """
    Re-slice arbitrary-sized sample chunks into exact fixed-length blocks.

    Whatever is left over (shorter than one block) is carried into the next push.
    """

    def __init__(self, block_samples: int) -> None:
        self.block_samples = max(1, int(block_samples))
        self._carry: Optional[np.ndarray] = None

    @classmethod
    def for_rate(cls, sample_rate: float, block_ms: float = 10.0) -> "FixedBlockReassembler":
        return cls(block_samples_for(sample_rate, block_ms))

    @property
    def carry(self) -> np.ndarray:
        if self._carry is None:
            return np.zeros((0,), dtype=np.float32)
        return self._carry

    @property
    def carry_samples(self) -> int:
        return 0 if self._carry is None else int(self._carry.size)

    def push(self, chunk) -> List[np.ndarray]:
        src = as_mono_float32(chunk)
        if self._carry is not None:
            src = np.concatenate((self._carry, src))
            self._carry = None
        if src.size == 0:
            return []

        size = self.block_samples
        full = src.size // size
        blocks = [src[i * size : (i + 1) * size] for i in range(full)]
        offset = full * size
        if offset < src.size:
            self._carry = src[offset:].copy()
        return blocks

    def reset(self) -> None:
        self._carry = None
