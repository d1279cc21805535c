# coding=utf-8

from .accumulator import ClosedSegment, SegmentAccumulator, StreamClock
from .block_reassembler import FixedBlockReassembler, as_mono_float32, block_samples_for
from .endpoint import EndpointDecision, EndpointDetector
from .energy import EnergyWindow, block_rms
from .segmenter import Segmenter
from .transcript_log import TranscriptEntry, TranscriptLog

__all__ = [
    "ClosedSegment",
    "EndpointDecision",
    "EndpointDetector",
    "EnergyWindow",
    "FixedBlockReassembler",
    "SegmentAccumulator",
    "Segmenter",
    "StreamClock",
    "TranscriptEntry",
    "TranscriptLog",
    "as_mono_float32",
    "block_rms",
    "block_samples_for",
]
