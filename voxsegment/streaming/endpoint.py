# coding=utf-8
from __future__ import annotations

from dataclasses import dataclass

from .energy import EnergyWindow, block_rms


@dataclass(frozen=True)
class EndpointDecision:
    end_of_segment: bool
    reason: str
    rms: float
    window_mean: float
    elapsed_ms: float


class EndpointDetector:
    """
    Decide where the current segment ends from the mean RMS of the last silence window.

    A segment ends once it is at least ``min_speech_ms`` old and the window mean is
    below ``threshold``, or unconditionally once it reaches ``max_segment_ms``.
    """

    def __init__(
        self,
        threshold: float = 0.02,
        block_ms: float = 10.0,
        silence_window_ms: float = 500.0,
        min_speech_ms: float = 200.0,
        max_segment_ms: float = 20000.0,
    ) -> None:
        self.threshold = max(0.0, float(threshold))
        self.block_ms = max(1.0, float(block_ms))
        self.silence_window_ms = max(self.block_ms, float(silence_window_ms))
        self.min_speech_ms = max(0.0, float(min_speech_ms))
        self.max_segment_ms = max(self.block_ms, float(max_segment_ms))
        self.window = EnergyWindow(max(1, int(round(self.silence_window_ms / self.block_ms))))

    @classmethod
    def from_config(cls, config) -> "EndpointDetector":
        return cls(
            threshold=config.threshold,
            block_ms=config.block_ms,
            silence_window_ms=config.silence_window_ms,
            min_speech_ms=config.min_speech_ms,
            max_segment_ms=config.max_segment_ms,
        )

    def observe(self, block, elapsed_ms: float) -> EndpointDecision:
        rms = block_rms(block)
        self.window.push(rms)
        mean = self.window.mean()
        # empty window reads as silence
        window_mean = 0.0 if mean is None else mean
        elapsed = max(0.0, float(elapsed_ms))

        if elapsed >= self.min_speech_ms and window_mean < self.threshold:
            reason = "silence"
        elif elapsed >= self.max_segment_ms:
            reason = "max_duration"
        else:
            reason = "none"

        return EndpointDecision(
            end_of_segment=reason != "none",
            reason=reason,
            rms=rms,
            window_mean=window_mean,
            elapsed_ms=elapsed,
        )

    def reset(self) -> None:
        self.window.clear()
