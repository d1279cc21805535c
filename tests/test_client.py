import asyncio
import threading

import numpy as np
import pytest

from voxsegment.audio.wav_codec import WAV_HEADER_BYTES, decode_wav_pcm16
from voxsegment.client import ClientState, RealtimeSTTClient
from voxsegment.config import ClientConfig
from voxsegment.errors import (
    AcquisitionError,
    BusyError,
    EncodingError,
    ExchangeConnectionError,
    ExchangeTimeoutError,
)
from voxsegment.sources import FrameSource
from voxsegment.transport.session import ExchangeResult, ExchangeStatus


class FakeSource(FrameSource):
    def __init__(self, sample_rate=16000, fail_open=False):
        self.sample_rate = sample_rate
        self.fail_open = fail_open
        self.deliver = None
        self.events = []

    def open(self, deliver):
        self.events.append("open")
        if self.fail_open:
            raise RuntimeError("no such device")
        self.deliver = deliver

    def resume(self):
        self.events.append("resume")

    def pause(self):
        self.events.append("pause")

    def close(self):
        self.events.append("close")


class FakeSession:
    def __init__(self, results=None, gate=None):
        self.results = list(results or [])
        self.gate = gate
        self.payloads = []

    async def submit(self, payload):
        self.payloads.append(payload)
        if self.gate is not None:
            await self.gate.wait()
        if self.results:
            return self.results.pop(0)
        return ExchangeResult(status=ExchangeStatus.OK, text="hello")


def _config(**overrides):
    overrides.setdefault("timebase", "stream")
    return ClientConfig(**overrides)


def _loud(blocks, rate=16000, level=0.3):
    return np.full(blocks * rate // 100, level, dtype=np.float32)


def _silent(blocks, rate=16000):
    return np.zeros(blocks * rate // 100, dtype=np.float32)


def _client(source=None, session=None, transcripts=None, statuses=None, **config):
    return RealtimeSTTClient(
        _config(**config),
        source or FakeSource(),
        on_transcript=(lambda text, seg: transcripts.append((text, seg))) if transcripts is not None else None,
        on_status=statuses.append if statuses is not None else None,
        session=session or FakeSession(),
    )


def test_state_machine_walks_idle_to_stopped_and_back():
    source = FakeSource()

    async def body():
        client = _client(source)
        assert client.state is ClientState.IDLE
        await client.initialize()
        assert client.state is ClientState.INITIALIZED
        await client.start()
        assert client.state is ClientState.RUNNING
        await client.stop()
        assert client.state is ClientState.STOPPED
        await client.start()
        assert client.state is ClientState.RUNNING
        await client.aclose()
        return client.state

    assert asyncio.run(body()) is ClientState.IDLE
    assert source.events == ["open", "resume", "pause", "resume", "pause", "close"]


def test_start_is_idempotent_and_initializes_on_demand():
    source = FakeSource()

    async def body():
        client = _client(source)
        await client.start()
        await client.start()
        await client.aclose()

    asyncio.run(body())
    assert source.events.count("open") == 1
    assert source.events.count("resume") == 1


def test_chunks_are_ignored_unless_running():
    async def body():
        client = _client()
        await client.initialize()
        client.feed(_loud(10))
        before_start = client.metrics.blocks_processed
        await client.start()
        client.feed(_loud(10))
        await client.stop()
        client.feed(_loud(10))
        after_stop = client.metrics.blocks_processed
        await client.aclose()
        return before_start, after_stop

    assert asyncio.run(body()) == (0, 10)


def test_open_failure_surfaces_as_acquisition_error():
    async def body():
        client = _client(FakeSource(fail_open=True))
        with pytest.raises(AcquisitionError, match="no such device"):
            await client.initialize()
        return client.state

    assert asyncio.run(body()) is ClientState.IDLE


def test_invalid_source_rate_is_rejected():
    source = FakeSource(sample_rate=0)

    async def body():
        with pytest.raises(AcquisitionError, match="sample rate"):
            await _client(source).initialize()

    asyncio.run(body())
    assert source.events == ["open", "close"]


def test_stop_flushes_open_segment_and_delivers_transcript():
    transcripts, statuses = [], []
    session = FakeSession()

    async def body():
        client = _client(session=session, transcripts=transcripts, statuses=statuses)
        async with client:
            await client.start()
            client.feed(_loud(30))
            await client.stop()
            assert await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    assert len(transcripts) == 1
    text, segment = transcripts[0]
    assert text == "hello"
    assert segment.reason == "flush"
    assert segment.sample_count == 30 * 160
    assert metrics.segments_closed == 1
    assert metrics.segments_sent == 1
    assert metrics.transcripts_received == 1

    kinds = [e.kind for e in statuses]
    assert kinds[0] == "started"
    assert kinds.index("segment_closed") < kinds.index("segment_sent") < kinds.index("transcript")
    assert "stopped" in kinds

    payload = session.payloads[0]
    assert payload[:4] == b"RIFF"
    assert len(payload) == WAV_HEADER_BYTES + 2 * 30 * 160


def test_segments_are_resampled_to_16k_before_sending():
    session = FakeSession()

    async def body():
        client = _client(FakeSource(sample_rate=48000), session=session)
        async with client:
            await client.start()
            client.feed(_loud(30, rate=48000))
            await client.stop()
            await client.drain(timeout=5)

    asyncio.run(body())
    audio, rate = decode_wav_pcm16(session.payloads[0])
    assert rate == 16000
    assert audio.size == 30 * 160


def test_silence_cuts_hand_off_while_running():
    transcripts = []
    session = FakeSession(
        results=[
            ExchangeResult(status=ExchangeStatus.OK, text="first"),
            ExchangeResult(status=ExchangeStatus.OK, text="second"),
        ]
    )

    async def body():
        client = _client(session=session, transcripts=transcripts)
        async with client:
            await client.start()
            client.feed(np.concatenate([_loud(50, level=0.05), _silent(60)]))
            # cuts at block 80 (window mean 0.019) and block 100 (min speech on silence)
            assert client.metrics.segments_closed == 2
            await client.stop()
            await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    # the nine blocks after the second cut are flushed on stop
    assert sorted(t for t, _ in transcripts) == ["first", "hello", "second"]
    by_index = sorted((s.index, s.reason) for _, s in transcripts)
    assert by_index == [(0, "silence"), (1, "silence"), (2, "flush")]
    assert metrics.blocks_processed == 110


def test_exchange_failures_are_counted_and_reported():
    statuses = []
    session = FakeSession(
        results=[
            ExchangeResult(status=ExchangeStatus.BUSY, error=BusyError("busy")),
            ExchangeResult(status=ExchangeStatus.TIMEOUT, error=ExchangeTimeoutError("late")),
            ExchangeResult(status=ExchangeStatus.CONNECTION_ERROR, error=ExchangeConnectionError("refused")),
            ExchangeResult(status=ExchangeStatus.OK, text="   "),
        ]
    )

    async def body():
        client = _client(session=session, statuses=statuses, max_segment_ms=100)
        async with client:
            await client.start()
            client.feed(_loud(40))
            await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    assert metrics.segments_closed == 4
    assert metrics.busy_drops == 1
    assert metrics.timeouts == 1
    assert metrics.connection_errors == 1
    assert metrics.exchange_failures == 3
    assert metrics.empty_transcripts == 1
    assert metrics.transcripts_received == 0
    failed = sorted(e.detail["status"] for e in statuses if e.kind == "exchange_failed")
    assert failed == ["busy", "connection_error", "timeout"]


def test_silent_segments_can_be_skipped():
    session = FakeSession()

    async def body():
        client = _client(session=session, skip_silent_segments=True)
        async with client:
            await client.start()
            client.feed(_silent(20))
            await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    assert metrics.segments_closed == 1
    assert metrics.silent_segments_skipped == 1
    assert session.payloads == []


def test_encoding_failure_drops_only_that_segment(monkeypatch):
    statuses = []

    def broken(samples, rate):
        raise EncodingError("boom")

    monkeypatch.setattr("voxsegment.client.encode_wav_pcm16", broken)
    session = FakeSession()

    async def body():
        client = _client(session=session, statuses=statuses)
        async with client:
            await client.start()
            client.feed(_loud(5))
            await client.stop()
            await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    assert metrics.encoding_errors == 1
    assert session.payloads == []
    assert "encoding_failed" in [e.kind for e in statuses]


def test_aclose_cancels_pending_exchanges_and_closes_source_once():
    source = FakeSource()
    transcripts = []

    async def body():
        session = FakeSession(gate=asyncio.Event())
        client = _client(source, session=session, transcripts=transcripts)
        await client.start()
        client.feed(_loud(5))
        await client.stop()
        await asyncio.sleep(0.05)
        assert client.pending_tasks == 1
        await client.aclose()
        await client.aclose()
        return client.pending_tasks

    assert asyncio.run(body()) == 0
    assert transcripts == []
    assert source.events.count("close") == 1


def test_chunks_from_source_thread_reach_the_loop():
    source = FakeSource()

    async def body():
        client = _client(source)
        async with client:
            await client.start()
            worker = threading.Thread(target=source.deliver, args=(_loud(7),))
            worker.start()
            worker.join()
            await asyncio.sleep(0.05)
            return client.metrics.blocks_processed

    assert asyncio.run(body()) == 7


def test_callback_errors_do_not_break_the_pipeline():
    def bad_status(event):
        raise RuntimeError("observer crashed")

    def bad_transcript(text, segment):
        raise RuntimeError("sink crashed")

    session = FakeSession()

    async def body():
        client = RealtimeSTTClient(
            _config(), FakeSource(), on_transcript=bad_transcript, on_status=bad_status, session=session
        )
        async with client:
            await client.start()
            client.feed(_loud(5))
            await client.stop()
            await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    assert metrics.transcripts_received == 1


def test_exchange_crash_is_reported_as_finalize_failure():
    statuses = []

    class CrashingSession:
        async def submit(self, payload):
            raise RuntimeError("transport exploded")

    async def body():
        client = _client(session=CrashingSession(), statuses=statuses)
        async with client:
            await client.start()
            client.feed(_loud(5))
            await client.stop()
            assert await client.drain(timeout=5)
        return client.metrics

    metrics = asyncio.run(body())
    kinds = [e.kind for e in statuses]
    assert kinds.index("segment_sent") < kinds.index("finalize_failed")
    failed = [e for e in statuses if e.kind == "finalize_failed"][0]
    assert "transport exploded" in failed.message
    assert failed.segment_index == 0
    assert metrics.transcripts_received == 0
