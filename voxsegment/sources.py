# coding=utf-8
"""
Frame sources: where raw sample chunks come from.

A source is opened with a ``deliver`` callable and pushes float32 mono chunks of any
length into it from its own thread. ``deliver`` must not block.
"""
from __future__ import annotations

import logging
import threading
import time
import wave
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from voxsegment.errors import AcquisitionError
from voxsegment.streaming.block_reassembler import as_mono_float32

logger = logging.getLogger(__name__)

Deliver = Callable[[np.ndarray], None]

# typical audio callback quantum
DEFAULT_CHUNK_FRAMES = 128

_PCM_DTYPES = {1: np.uint8, 2: np.dtype("<i2"), 4: np.dtype("<i4")}


class FrameSource(ABC):
    sample_rate: int = 0

    @abstractmethod
    def open(self, deliver: Deliver) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...


class MicrophoneSource(FrameSource):
    """Live capture through a sounddevice input stream at the device's native rate."""

    def __init__(
        self,
        device: Optional[Union[int, str]] = None,
        sample_rate: Optional[int] = None,
        channels: int = 1,
        blocksize: int = 0,
    ) -> None:
        self.device = device
        self.requested_rate = sample_rate
        self.channels = max(1, int(channels))
        self.blocksize = max(0, int(blocksize))
        self.sample_rate = int(sample_rate or 0)
        self._stream = None
        self._deliver: Optional[Deliver] = None
        self.overflows = 0

    def open(self, deliver: Deliver) -> None:
        if self._stream is not None:
            return
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise AcquisitionError(f"sounddevice unavailable: {e}") from e

        try:
            if self.requested_rate:
                rate = int(self.requested_rate)
            else:
                info = sd.query_devices(self.device, "input")
                rate = int(round(float(info["default_samplerate"])))
            stream = sd.InputStream(
                samplerate=rate,
                blocksize=self.blocksize,
                device=self.device,
                channels=self.channels,
                dtype="float32",
                callback=self._callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise AcquisitionError(f"cannot open input device {self.device!r}: {e}") from e

        self.sample_rate = rate
        self._deliver = deliver
        self._stream = stream
        logger.info("microphone opened device=%s rate=%d channels=%d", self.device, rate, self.channels)

    def _callback(self, indata, frames: int, time_info, status) -> None:
        if status:
            self.overflows += 1
            logger.warning("input stream status: %s", status)
        if self._deliver is not None:
            self._deliver(as_mono_float32(indata))

    def resume(self) -> None:
        if self._stream is None:
            raise AcquisitionError("microphone is not open")
        if self._stream.active:
            return
        try:
            self._stream.start()
        except Exception as e:
            raise AcquisitionError(f"cannot start input stream: {e}") from e

    def pause(self) -> None:
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def close(self) -> None:
        stream, self._stream = self._stream, None
        self._deliver = None
        if stream is not None:
            stream.close()
            logger.info("microphone closed device=%s", self.device)


def read_wav_mono(path: Path):
    """Read an integer-PCM WAV file as mono float32 in [-1, 1]."""
    with wave.open(str(path), "rb") as wf:
        channels = wf.getnchannels()
        sample_width = wf.getsampwidth()
        sample_rate = wf.getframerate()
        raw = wf.readframes(wf.getnframes())
    dtype = _PCM_DTYPES.get(sample_width)
    if dtype is None:
        raise ValueError(f"unsupported sample width {sample_width} bytes")
    pcm = np.frombuffer(raw, dtype=dtype)
    if sample_width == 1:
        data = (pcm.astype(np.float32) - 128.0) / 128.0
    else:
        data = pcm.astype(np.float32) / float(2 ** (8 * sample_width - 1))
    frames = data.reshape(-1, channels)
    return as_mono_float32(frames), sample_rate


class WavFileSource(FrameSource):
    """
    Playback stream from a PCM WAV file, delivered in small chunks from a worker thread.

    ``realtime_factor`` 1.0 paces delivery at the file's own speed, 2.0 twice as fast,
    0 delivers as fast as possible. ``finished`` is set once the whole file was delivered.
    """

    def __init__(
        self,
        path: Union[str, Path],
        realtime_factor: float = 1.0,
        chunk_frames: int = DEFAULT_CHUNK_FRAMES,
    ) -> None:
        self.path = Path(path).expanduser()
        self.realtime_factor = max(0.0, float(realtime_factor))
        self.chunk_frames = max(1, int(chunk_frames))
        self.sample_rate = 0
        self.finished = threading.Event()
        self._samples: Optional[np.ndarray] = None
        self._position = 0
        self._deliver: Optional[Deliver] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def position(self) -> int:
        return self._position

    @property
    def total_samples(self) -> int:
        return 0 if self._samples is None else int(self._samples.size)

    def open(self, deliver: Deliver) -> None:
        try:
            samples, rate = read_wav_mono(self.path)
        except (OSError, EOFError, wave.Error, ValueError) as e:
            raise AcquisitionError(f"cannot read wav file {self.path}: {e}") from e
        self._samples = samples
        self.sample_rate = int(rate)
        self._position = 0
        self._deliver = deliver
        self.finished.clear()
        logger.info("wav source opened path=%s rate=%d samples=%d", self.path, rate, samples.size)

    def resume(self) -> None:
        if self._samples is None:
            raise AcquisitionError("wav source is not open")
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="voxsegment-wav-source", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        samples = self._samples
        deliver = self._deliver
        if samples is None or deliver is None:
            return
        chunk_sec = self.chunk_frames / float(self.sample_rate)
        sleep_sec = chunk_sec / self.realtime_factor if self.realtime_factor > 0 else 0.0
        next_at = time.monotonic()
        while not self._stop.is_set() and self._position < samples.size:
            end = min(samples.size, self._position + self.chunk_frames)
            deliver(samples[self._position : end].copy())
            self._position = end
            if sleep_sec > 0:
                next_at += sleep_sec
                delay = next_at - time.monotonic()
                if delay > 0:
                    self._stop.wait(delay)
        if self._position >= samples.size:
            self.finished.set()

    def pause(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2)
        self._thread = None

    def close(self) -> None:
        self.pause()
        self._deliver = None
        self._samples = None
