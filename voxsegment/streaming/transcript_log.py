# coding=utf-8
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass
class TranscriptEntry:
    text: str
    segment_index: int = -1
    ts_ms: int = 0


class TranscriptLog:
    """
    Caller-side transcript history: one line per recognized segment.
    """

    def __init__(self) -> None:
        self.entries: List[TranscriptEntry] = []

    def append(self, text: str, segment_index: int = -1, ts_ms: Optional[int] = None) -> bool:
        line = str(text or "").strip()
        if not line:
            return False
        stamp = int(time.time() * 1000) if ts_ms is None else int(ts_ms)
        self.entries.append(TranscriptEntry(text=line, segment_index=int(segment_index), ts_ms=stamp))
        return True

    @property
    def text(self) -> str:
        return "\n".join(e.text for e in self.entries)

    def clear(self) -> None:
        self.entries = []

    def __len__(self) -> int:
        return len(self.entries)

    def snapshot(self) -> Dict[str, object]:
        return {
            "count": len(self.entries),
            "segment_indexes": [e.segment_index for e in self.entries],
            "lines": [e.text for e in self.entries],
        }
