# coding=utf-8
"""
Segment microphone or WAV-file audio and print transcripts from a one-shot WebSocket server.
"""
import argparse
import asyncio
import logging
import signal
from contextlib import suppress
from typing import Optional

from voxsegment.client import RealtimeSTTClient, StatusEvent
from voxsegment.config import DEFAULT_WS_URL, ClientConfig
from voxsegment.errors import AcquisitionError
from voxsegment.sources import FrameSource, MicrophoneSource, WavFileSource
from voxsegment.streaming.accumulator import ClosedSegment
from voxsegment.streaming.transcript_log import TranscriptLog

logger = logging.getLogger(__name__)


def _parse_device(raw: Optional[str]):
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    return int(text) if text.isdigit() else text


def build_config(args: argparse.Namespace) -> ClientConfig:
    return ClientConfig.from_env(
        ws_url=args.ws_url,
        threshold=args.threshold,
        block_ms=args.block_ms,
        silence_window_ms=args.silence_window_ms,
        min_speech_ms=args.min_speech_ms,
        max_segment_ms=args.max_segment_ms,
        exchange_timeout_sec=args.exchange_timeout_sec,
        timebase=args.timebase,
        skip_silent_segments=args.skip_silent_segments or None,
    )


def build_source(args: argparse.Namespace) -> FrameSource:
    if args.wav:
        return WavFileSource(args.wav, realtime_factor=args.realtime_factor)
    return MicrophoneSource(device=_parse_device(args.device), sample_rate=args.sample_rate)


async def _run(args: argparse.Namespace) -> int:
    config = build_config(args)
    source = build_source(args)
    transcripts = TranscriptLog()
    stop_requested = asyncio.Event()

    def on_transcript(text: str, segment: ClosedSegment) -> None:
        if transcripts.append(text, segment_index=segment.index):
            print(f"[{segment.index}] {text.strip()}", flush=True)

    def on_status(event: StatusEvent) -> None:
        logger.info("status %s: %s", event.kind, event.message)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_requested.set)

    client = RealtimeSTTClient(config, source, on_transcript=on_transcript, on_status=on_status)
    try:
        async with client:
            await client.start()
            if isinstance(source, WavFileSource):
                while not stop_requested.is_set() and not source.finished.is_set():
                    await asyncio.sleep(0.05)
                # let the tail chunks scheduled by the source thread run before stopping
                await asyncio.sleep(0)
            else:
                await stop_requested.wait()
            await client.stop()
            await client.drain(timeout=config.exchange_timeout_sec + 1.0)
    except AcquisitionError as exc:
        logger.error("audio source unavailable: %s", exc)
        return 2

    m = client.metrics
    logger.info(
        "session done segments=%d sent=%d transcripts=%d empty=%d busy=%d timeouts=%d conn_errors=%d",
        m.segments_closed,
        m.segments_sent,
        m.transcripts_received,
        m.empty_transcripts,
        m.busy_drops,
        m.timeouts,
        m.connection_errors,
    )
    if transcripts.text:
        print("\n--- transcript ---")
        print(transcripts.text)
    return 0


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="VoxSegment realtime segmentation + WebSocket transcription client")
    p.add_argument(
        "--ws-url",
        default=None,
        help=f"One-shot transcription WebSocket endpoint (default: $VOXSEGMENT_WS_URL or {DEFAULT_WS_URL})",
    )
    p.add_argument("--wav", default="", help="Transcribe a PCM WAV file instead of the microphone")
    p.add_argument(
        "--realtime-factor",
        type=float,
        default=1.0,
        help="WAV playback speed: 1.0=realtime, 2.0=2x faster, 0=as fast as possible",
    )
    p.add_argument("--device", default=None, help="Input device index or name (microphone mode)")
    p.add_argument("--sample-rate", type=int, default=None, help="Capture rate; default is the device rate")
    # None falls back to VOXSEGMENT_* environment variables, then to ClientConfig defaults
    p.add_argument("--threshold", type=float, default=None, help="Silence threshold on mean RMS (0.015~0.03)")
    p.add_argument("--block-ms", type=float, default=10.0)
    p.add_argument("--silence-window-ms", type=float, default=500.0)
    p.add_argument("--min-speech-ms", type=float, default=None, help="Minimum segment age before a silence cut")
    p.add_argument("--max-segment-ms", type=float, default=None, help="Hard cut for continuous speech")
    p.add_argument("--exchange-timeout-sec", type=float, default=None)
    p.add_argument(
        "--timebase",
        default=None,
        choices=["wall", "stream"],
        help="Segment clock; default is stream for --wav with --realtime-factor != 1, else wall",
    )
    p.add_argument(
        "--skip-silent-segments",
        action="store_true",
        help="Do not transmit segments whose loudest block stays below the threshold",
    )
    p.add_argument("--log-level", default="info", choices=["critical", "error", "warning", "info", "debug"])
    args = p.parse_args()
    if args.timebase is None:
        args.timebase = "stream" if args.wav and args.realtime_factor != 1.0 else "wall"
    return args


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        code = asyncio.run(_run(args))
    except ValueError as exc:
        logger.error("invalid configuration: %s", exc)
        raise SystemExit(2) from exc
    raise SystemExit(code)


if __name__ == "__main__":
    main()
