from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from voxsegment.config import ClientConfig
from voxsegment.streaming.segmenter import Segmenter


@dataclass
class SegmentSpan:
    index: int
    start_ms: float
    end_ms: float
    reason: str
    peak_rms: float

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


@dataclass
class SegmentReport:
    sample_rate: int
    total_ms: float
    blocks: int
    spans: List[SegmentSpan]
    carry_samples: int

    @property
    def reasons(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for span in self.spans:
            out[span.reason] = out.get(span.reason, 0) + 1
        return out


def analyze_segments(
    samples: np.ndarray,
    sample_rate: int,
    config: Optional[ClientConfig] = None,
    chunk_frames: int = 128,
    flush: bool = True,
) -> SegmentReport:
    """Run the streaming segmenter over a whole buffer on audio time, chunk by chunk."""
    cfg = (config or ClientConfig()).with_overrides(timebase="stream")
    segmenter = Segmenter.from_config(cfg, sample_rate)
    data = np.asarray(samples, dtype=np.float32).reshape(-1)
    step = max(1, int(chunk_frames))

    spans: List[SegmentSpan] = []
    cursor = 0

    def _record(segment) -> None:
        nonlocal cursor
        start_ms = cursor * 1000.0 / sample_rate
        cursor += segment.sample_count
        spans.append(
            SegmentSpan(
                index=segment.index,
                start_ms=start_ms,
                end_ms=cursor * 1000.0 / sample_rate,
                reason=segment.reason,
                peak_rms=segment.peak_rms,
            )
        )

    for offset in range(0, data.size, step):
        for segment in segmenter.push(data[offset : offset + step]):
            _record(segment)
    if flush:
        tail = segmenter.flush()
        if tail is not None:
            _record(tail)

    return SegmentReport(
        sample_rate=int(sample_rate),
        total_ms=data.size * 1000.0 / sample_rate,
        blocks=segmenter.blocks_processed,
        spans=spans,
        carry_samples=segmenter.reassembler.carry_samples,
    )


def summarize_report(report: SegmentReport) -> str:
    lines = [
        f"sample_rate={report.sample_rate}",
        f"total_ms={report.total_ms:.1f}",
        f"blocks={report.blocks}",
        f"segments={len(report.spans)}",
        f"carry_samples={report.carry_samples}",
    ]
    if report.spans:
        lines.append("reasons: " + ", ".join(f"{k}={v}" for k, v in sorted(report.reasons.items())))
        lines.append("segments:")
        for span in report.spans:
            lines.append(
                f"  - #{span.index} {span.start_ms:.0f}-{span.end_ms:.0f}ms "
                f"({span.duration_ms:.0f}ms) reason={span.reason} peak_rms={span.peak_rms:.4f}"
            )
    return "\n".join(lines)
