# coding=utf-8
"""
Realtime segmentation + transcription client.

Sample chunks arrive from a frame source thread and are scheduled onto the event
loop; segmentation runs synchronously per chunk, and every closed segment is handed
to its own finalize task (resample -> WAV encode -> one WebSocket exchange).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import numpy as np

from voxsegment.audio.resample import resample_to_rate
from voxsegment.audio.wav_codec import encode_wav_pcm16
from voxsegment.config import ClientConfig
from voxsegment.errors import AcquisitionError, EncodingError
from voxsegment.sources import FrameSource
from voxsegment.streaming.accumulator import Clock, ClosedSegment
from voxsegment.streaming.segmenter import Segmenter
from voxsegment.transport.session import ExchangeStatus, TranscriptionSession

logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    IDLE = "idle"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class StatusEvent:
    kind: str
    message: str
    segment_index: Optional[int] = None
    detail: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ClientMetrics:
    blocks_processed: int = 0
    segments_closed: int = 0
    segments_sent: int = 0
    transcripts_received: int = 0
    empty_transcripts: int = 0
    busy_drops: int = 0
    timeouts: int = 0
    connection_errors: int = 0
    encoding_errors: int = 0
    silent_segments_skipped: int = 0

    @property
    def exchange_failures(self) -> int:
        return self.busy_drops + self.timeouts + self.connection_errors


TranscriptCallback = Callable[[str, ClosedSegment], None]
StatusCallback = Callable[[StatusEvent], None]


class RealtimeSTTClient:
    def __init__(
        self,
        config: ClientConfig,
        source: FrameSource,
        on_transcript: Optional[TranscriptCallback] = None,
        on_status: Optional[StatusCallback] = None,
        session: Optional[TranscriptionSession] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.on_transcript = on_transcript
        self.on_status = on_status
        self.session = session or TranscriptionSession.from_config(config)
        self.metrics = ClientMetrics()
        self._clock = clock
        self._state = ClientState.IDLE
        self._segmenter: Optional[Segmenter] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._source_open = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def segmenter(self) -> Optional[Segmenter]:
        return self._segmenter

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def __aenter__(self) -> "RealtimeSTTClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def initialize(self) -> None:
        if self._source_open:
            return
        self._loop = asyncio.get_running_loop()
        try:
            self.source.open(self._post_chunk)
        except AcquisitionError:
            raise
        except Exception as e:
            raise AcquisitionError(f"frame source failed to open: {e}") from e

        rate = int(self.source.sample_rate)
        if rate <= 0:
            self.source.close()
            raise AcquisitionError(f"frame source reported invalid sample rate {rate}")
        self._source_open = True
        self._segmenter = Segmenter.from_config(self.config, rate, clock=self._clock)
        self._state = ClientState.INITIALIZED
        logger.info(
            "client initialized rate=%d block_samples=%d window_blocks=%d url=%s",
            rate,
            self._segmenter.block_samples,
            self.config.window_blocks,
            self.config.ws_url,
        )

    async def start(self) -> None:
        if self._state is ClientState.RUNNING:
            return
        if not self._source_open:
            await self.initialize()
        assert self._segmenter is not None
        self._segmenter.reset()
        self._state = ClientState.RUNNING
        try:
            self.source.resume()
        except Exception as e:
            self._state = ClientState.STOPPED
            if isinstance(e, AcquisitionError):
                raise
            raise AcquisitionError(f"frame source failed to resume: {e}") from e
        self._status("started", "segmentation started")

    async def stop(self) -> None:
        """Leave RUNNING; an unfinished segment is handed to finalize without waiting for it."""
        if self._state is not ClientState.RUNNING:
            return
        self._state = ClientState.STOPPED
        try:
            self.source.pause()
        finally:
            segment = self._segmenter.flush() if self._segmenter is not None else None
            if segment is not None:
                self._handoff(segment)
            self._status("stopped", "segmentation stopped")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight finalize tasks; True when none are left."""
        pending = set(self._tasks)
        if not pending:
            return True
        _, still_pending = await asyncio.wait(pending, timeout=timeout)
        return not still_pending

    async def aclose(self, drain_timeout: float = 0.0) -> None:
        try:
            await self.stop()
            if drain_timeout > 0:
                await self.drain(drain_timeout)
        finally:
            pending = [t for t in self._tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            if self._source_open:
                self._source_open = False
                self.source.close()
            self._state = ClientState.IDLE

    def _post_chunk(self, chunk: np.ndarray) -> None:
        # runs on the source thread; must never block
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.feed, chunk)
        except RuntimeError:
            logger.debug("event loop closed, dropping chunk of %d samples", len(chunk))

    def feed(self, chunk) -> None:
        """Consume one chunk on the event loop thread. Ignored unless RUNNING."""
        if self._state is not ClientState.RUNNING or self._segmenter is None:
            return
        before = self._segmenter.blocks_processed
        closed = self._segmenter.push(chunk)
        self.metrics.blocks_processed += self._segmenter.blocks_processed - before
        for segment in closed:
            self._handoff(segment)

    def _handoff(self, segment: ClosedSegment) -> None:
        self.metrics.segments_closed += 1
        logger.info(
            "segment closed index=%d reason=%s duration_ms=%.1f samples=%d peak_rms=%.4f",
            segment.index,
            segment.reason,
            segment.duration_ms,
            segment.sample_count,
            segment.peak_rms,
        )
        self._status(
            "segment_closed",
            f"segment {segment.index} closed ({segment.reason}, {segment.duration_ms:.0f} ms)",
            segment.index,
            reason=segment.reason,
            duration_ms=segment.duration_ms,
        )
        if self.config.skip_silent_segments and segment.peak_rms < self.config.threshold:
            self.metrics.silent_segments_skipped += 1
            self._status(
                "silent_segment_skipped",
                f"segment {segment.index} has no block above threshold",
                segment.index,
                peak_rms=segment.peak_rms,
            )
            return
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._finalize_and_send(segment), name=f"voxsegment-finalize-{segment.index}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _finalize_and_send(self, segment: ClosedSegment) -> None:
        target_rate = self.config.target_rate
        try:
            audio = await asyncio.to_thread(resample_to_rate, segment.samples, segment.sample_rate, target_rate)
            payload = await asyncio.to_thread(encode_wav_pcm16, audio, target_rate)
        except EncodingError as e:
            self.metrics.encoding_errors += 1
            logger.warning("segment %d dropped, encoding failed: %s", segment.index, e)
            self._status("encoding_failed", f"segment {segment.index} encoding failed: {e}", segment.index)
            return
        except Exception as e:
            logger.exception("segment %d finalize failed", segment.index)
            self._status("finalize_failed", f"segment {segment.index} finalize failed: {e}", segment.index)
            return

        self.metrics.segments_sent += 1
        self._status(
            "segment_sent",
            f"sending segment {segment.index} ({len(payload) / 1024:.1f} KB)",
            segment.index,
            bytes=len(payload),
        )
        try:
            result = await self.session.submit(payload)
        except Exception as e:
            logger.exception("segment %d exchange crashed", segment.index)
            self._status("finalize_failed", f"segment {segment.index} finalize failed: {e}", segment.index)
            return
        if not result.ok:
            if result.status is ExchangeStatus.BUSY:
                self.metrics.busy_drops += 1
            elif result.status is ExchangeStatus.TIMEOUT:
                self.metrics.timeouts += 1
            else:
                self.metrics.connection_errors += 1
            self._status(
                "exchange_failed",
                f"segment {segment.index} transmission failed: {result.error}",
                segment.index,
                status=result.status.value,
            )
            return

        if not result.text.strip():
            self.metrics.empty_transcripts += 1
            self._status("empty_transcript", f"segment {segment.index}: server returned no text", segment.index)
            return

        self.metrics.transcripts_received += 1
        self._status("transcript", f"segment {segment.index} transcribed", segment.index, chars=len(result.text))
        if self.on_transcript is not None:
            try:
                self.on_transcript(result.text, segment)
            except Exception:
                logger.exception("on_transcript callback failed")

    def _status(self, kind: str, message: str, segment_index: Optional[int] = None, **detail: Any) -> None:
        event = StatusEvent(kind=kind, message=message, segment_index=segment_index, detail=detail)
        if self.on_status is None:
            logger.info("status %s: %s", kind, message)
            return
        try:
            self.on_status(event)
        except Exception:
            logger.exception("on_status callback failed")
