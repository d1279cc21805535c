# coding=utf-8
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List

import numpy as np

Clock = Callable[[], float]


class StreamClock:
    """Clock that reads audio time consumed so far instead of wall time (seconds)."""

    def __init__(self, sample_rate: float) -> None:
        self.sample_rate = max(1.0, float(sample_rate))
        self.samples = 0

    def advance(self, samples: int) -> None:
        self.samples += max(0, int(samples))

    def __call__(self) -> float:
        return self.samples / self.sample_rate


@dataclass(frozen=True)
class ClosedSegment:
    index: int
    samples: np.ndarray
    sample_rate: int
    started_at: float
    duration_ms: float
    reason: str = "flush"
    peak_rms: float = 0.0

    @property
    def sample_count(self) -> int:
        return int(self.samples.size)

    @property
    def audio_ms(self) -> float:
        return self.sample_count * 1000.0 / float(self.sample_rate)


class SegmentAccumulator:
    """Owns the in-progress segment: a list of blocks, its length and its start time."""

    def __init__(self, sample_rate: int, clock: Clock = time.monotonic) -> None:
        self.sample_rate = int(sample_rate)
        self.clock = clock
        self._chunks: List[np.ndarray] = []
        self._length = 0
        self._peak_rms = 0.0
        self._next_index = 0
        self._started_at = self.clock()

    @property
    def length(self) -> int:
        return self._length

    @property
    def is_empty(self) -> bool:
        return self._length == 0

    @property
    def started_at(self) -> float:
        return self._started_at

    @property
    def peak_rms(self) -> float:
        return self._peak_rms

    @property
    def next_index(self) -> int:
        return self._next_index

    def append(self, block: np.ndarray, rms: float = 0.0) -> None:
        self._chunks.append(block)
        self._length += int(block.size)
        self._peak_rms = max(self._peak_rms, float(rms))

    def elapsed_ms(self) -> float:
        # microsecond resolution, so audio-time differences land exactly on block boundaries
        return round((self.clock() - self._started_at) * 1000.0, 3)

    def close(self, reason: str = "flush") -> ClosedSegment:
        if self._chunks:
            samples = np.concatenate(self._chunks).astype(np.float32, copy=False)
        else:
            samples = np.zeros((0,), dtype=np.float32)
        segment = ClosedSegment(
            index=self._next_index,
            samples=samples,
            sample_rate=self.sample_rate,
            started_at=self._started_at,
            duration_ms=self.elapsed_ms(),
            reason=reason,
            peak_rms=self._peak_rms,
        )
        self._next_index += 1
        self.reset()
        return segment

    def reset(self) -> None:
        self._chunks = []
        self._length = 0
        self._peak_rms = 0.0
        self._started_at = self.clock()
