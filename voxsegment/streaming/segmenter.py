# coding=utf-8
from __future__ import annotations

import logging
import time
from typing import List, Optional

from .accumulator import Clock, ClosedSegment, SegmentAccumulator, StreamClock
from .block_reassembler import FixedBlockReassembler
from .endpoint import EndpointDecision, EndpointDetector

logger = logging.getLogger(__name__)


class Segmenter:
    """
    Synchronous reassembly -> endpoint detection -> accumulation for one sample stream.

    ``push`` never suspends and never raises for well-formed input; it returns the
    segments closed by this chunk, and a fresh segment is already open when it returns.
    """

    def __init__(
        self,
        sample_rate: int,
        *,
        threshold: float = 0.02,
        block_ms: float = 10.0,
        silence_window_ms: float = 500.0,
        min_speech_ms: float = 200.0,
        max_segment_ms: float = 20000.0,
        timebase: str = "wall",
        clock: Optional[Clock] = None,
    ) -> None:
        self.sample_rate = int(sample_rate)
        self.timebase = str(timebase or "wall").lower()
        self._stream_clock: Optional[StreamClock] = None
        if clock is None:
            if self.timebase == "stream":
                self._stream_clock = StreamClock(self.sample_rate)
                clock = self._stream_clock
            else:
                clock = time.monotonic
        self.reassembler = FixedBlockReassembler.for_rate(self.sample_rate, block_ms)
        self.detector = EndpointDetector(
            threshold=threshold,
            block_ms=block_ms,
            silence_window_ms=silence_window_ms,
            min_speech_ms=min_speech_ms,
            max_segment_ms=max_segment_ms,
        )
        self.accumulator = SegmentAccumulator(self.sample_rate, clock=clock)
        self.blocks_processed = 0
        self.last_decision: Optional[EndpointDecision] = None

    @classmethod
    def from_config(cls, config, sample_rate: int, clock: Optional[Clock] = None) -> "Segmenter":
        return cls(
            sample_rate,
            threshold=config.threshold,
            block_ms=config.block_ms,
            silence_window_ms=config.silence_window_ms,
            min_speech_ms=config.min_speech_ms,
            max_segment_ms=config.max_segment_ms,
            timebase=config.timebase,
            clock=clock,
        )

    @property
    def block_samples(self) -> int:
        return self.reassembler.block_samples

    def push(self, chunk) -> List[ClosedSegment]:
        closed: List[ClosedSegment] = []
        for block in self.reassembler.push(chunk):
            segment = self._consume_block(block)
            if segment is not None:
                closed.append(segment)
        return closed

    def _consume_block(self, block) -> Optional[ClosedSegment]:
        self.blocks_processed += 1
        if self._stream_clock is not None:
            self._stream_clock.advance(block.size)
        decision = self.detector.observe(block, self.accumulator.elapsed_ms())
        self.accumulator.append(block, rms=decision.rms)
        self.last_decision = decision
        if not decision.end_of_segment:
            return None

        segment = self.accumulator.close(reason=decision.reason)
        self.detector.reset()
        logger.debug(
            "segment closed index=%d reason=%s samples=%d elapsed_ms=%.1f window_mean=%.5f",
            segment.index,
            segment.reason,
            segment.sample_count,
            segment.duration_ms,
            decision.window_mean,
        )
        return segment

    def flush(self) -> Optional[ClosedSegment]:
        """Close the open segment if it holds samples (the sub-block carry is not included)."""
        if self.accumulator.is_empty:
            return None
        segment = self.accumulator.close(reason="flush")
        self.detector.reset()
        return segment

    def reset(self) -> None:
        self.reassembler.reset()
        self.detector.reset()
        self.accumulator.reset()
        self.last_decision = None
