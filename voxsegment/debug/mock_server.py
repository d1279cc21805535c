# coding=utf-8
"""
Reference one-shot transcription server over WebSocket.

Protocol: the client sends exactly one binary message holding a 16 kHz mono PCM16
WAV container; the server replies with exactly one message (the transcript, possibly
empty) and closes. Requests are served one at a time.
"""
import argparse
import asyncio
import logging
from types import SimpleNamespace
from typing import Callable, Optional

import numpy as np
import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from voxsegment.audio.wav_codec import decode_wav_pcm16
from voxsegment.errors import EncodingError
from voxsegment.streaming.energy import block_rms

logger = logging.getLogger(__name__)

Transcriber = Callable[[np.ndarray, int], str]


def describe_audio(samples: np.ndarray, sample_rate: int, silence_rms: float = 0.01) -> str:
    """Stand-in transcriber: duration and loudness, or '' for silence."""
    rms = block_rms(samples)
    if rms < silence_rms:
        return ""
    duration = samples.size / float(max(1, sample_rate))
    return f"[{duration:.2f}s rms={rms:.3f}]"


def _create_app(args: argparse.Namespace, transcriber: Optional[Transcriber] = None) -> FastAPI:
    app = FastAPI(title="VoxSegment Mock Transcription Server")
    infer_lock = asyncio.Lock()
    silence_rms = float(getattr(args, "silence_rms", 0.01))
    reply_binary = bool(getattr(args, "reply_binary", False))
    stats = SimpleNamespace(requests=0, rejected=0, last_error="")

    def _transcribe(samples: np.ndarray, sample_rate: int) -> str:
        if transcriber is not None:
            return transcriber(samples, sample_rate)
        return describe_audio(samples, sample_rate, silence_rms=silence_rms)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "busy": infer_lock.locked(),
            "requests": stats.requests,
            "rejected": stats.rejected,
            "last_error": stats.last_error,
        }

    @app.websocket("/ws")
    async def ws_transcribe(ws: WebSocket) -> None:
        await ws.accept()
        peer = f"{ws.client.host}:{ws.client.port}" if ws.client else "unknown"
        try:
            message = await ws.receive()
        except WebSocketDisconnect:
            return
        if message.get("type") == "websocket.disconnect":
            return

        payload = message.get("bytes")
        if payload is None:
            stats.rejected += 1
            stats.last_error = "binary wav message is required"
            logger.warning("ws rejected peer=%s err=%s", peer, stats.last_error)
            await ws.send_text("")
            await ws.close(code=1003)
            return

        async with infer_lock:
            stats.requests += 1
            try:
                samples, sample_rate = decode_wav_pcm16(payload)
            except EncodingError as e:
                stats.rejected += 1
                stats.last_error = str(e)
                logger.warning("ws bad wav peer=%s err=%s", peer, e)
                await ws.send_text("")
                await ws.close(code=1003)
                return
            text = await asyncio.to_thread(_transcribe, samples, sample_rate)

        logger.info(
            "ws transcribed peer=%s rate=%d samples=%d chars=%d",
            peer,
            sample_rate,
            samples.size,
            len(text),
        )
        if reply_binary:
            await ws.send_bytes(text.encode("utf-8"))
        else:
            await ws.send_text(text)
        await ws.close()

    return app


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="VoxSegment mock one-shot transcription server")
    p.add_argument("--host", default="127.0.0.1", help="Bind host")
    p.add_argument("--port", type=int, default=5001, help="Bind port")
    p.add_argument("--silence-rms", type=float, default=0.01, help="Reply empty text below this RMS")
    p.add_argument("--reply-binary", action="store_true", help="Reply with UTF-8 bytes instead of a text frame")
    p.add_argument("--log-level", default="info", choices=["critical", "error", "warning", "info", "debug"])
    return p.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper()))
    app = _create_app(args)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
