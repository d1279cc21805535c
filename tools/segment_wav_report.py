#!/usr/bin/env python3
from __future__ import annotations

import argparse
from pathlib import Path

from voxsegment.config import ClientConfig
from voxsegment.debug.segment_report import analyze_segments, summarize_report
from voxsegment.sources import read_wav_mono


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Show where the energy endpoint detector would cut a WAV file.")
    p.add_argument("--wav", required=True, help="PCM WAV file (any rate, mono or multi-channel)")
    p.add_argument("--threshold", type=float, default=0.02)
    p.add_argument("--block-ms", type=float, default=10.0)
    p.add_argument("--silence-window-ms", type=float, default=500.0)
    p.add_argument("--min-speech-ms", type=float, default=200.0)
    p.add_argument("--max-segment-ms", type=float, default=20000.0)
    p.add_argument("--chunk-frames", type=int, default=128, help="Simulated capture chunk size")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    samples, sample_rate = read_wav_mono(Path(args.wav).expanduser())
    config = ClientConfig(
        threshold=args.threshold,
        block_ms=args.block_ms,
        silence_window_ms=args.silence_window_ms,
        min_speech_ms=args.min_speech_ms,
        max_segment_ms=args.max_segment_ms,
        timebase="stream",
    )
    report = analyze_segments(samples, sample_rate, config, chunk_frames=args.chunk_frames)
    print(summarize_report(report))


if __name__ == "__main__":
    main()
