# coding=utf-8
from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

import numpy as np


def block_rms(block) -> float:
    data = np.asarray(block, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(data))))


class EnergyWindow:
    """Bounded FIFO of the most recent block energies."""

    def __init__(self, capacity: int) -> None:
        self.capacity = max(1, int(capacity))
        self._values: Deque[float] = deque(maxlen=self.capacity)

    def push(self, value: float) -> None:
        self._values.append(float(value))

    def mean(self) -> Optional[float]:
        if not self._values:
            return None
        return sum(self._values) / len(self._values)

    def values(self) -> List[float]:
        return list(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)
