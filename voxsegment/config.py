# coding=utf-8
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

DEFAULT_WS_URL = "ws://127.0.0.1:5001"
CANONICAL_SAMPLE_RATE = 16000
TIMEBASES = ("wall", "stream")

_ENV_FIELDS = {
    "VOXSEGMENT_WS_URL": ("ws_url", str),
    "VOXSEGMENT_THRESHOLD": ("threshold", float),
    "VOXSEGMENT_MIN_SPEECH_MS": ("min_speech_ms", float),
    "VOXSEGMENT_MAX_SEGMENT_MS": ("max_segment_ms", float),
    "VOXSEGMENT_EXCHANGE_TIMEOUT_SEC": ("exchange_timeout_sec", float),
}


@dataclass(frozen=True)
class ClientConfig:
    ws_url: str = DEFAULT_WS_URL
    threshold: float = 0.02
    block_ms: float = 10.0
    silence_window_ms: float = 500.0
    min_speech_ms: float = 200.0
    max_segment_ms: float = 20000.0
    exchange_timeout_sec: float = 30.0
    target_rate: int = CANONICAL_SAMPLE_RATE
    timebase: str = "wall"
    skip_silent_segments: bool = False
    close_timeout_sec: float = 1.0
    max_message_bytes: int = 16 * 1024 * 1024

    def __post_init__(self) -> None:
        url = str(self.ws_url or "").strip()
        if not url.startswith(("ws://", "wss://")):
            raise ValueError(f"ws_url must use ws:// or wss://, got '{self.ws_url}'")
        parts = urlsplit(url)
        try:
            port = parts.port
        except ValueError as e:
            raise ValueError(f"ws_url has an invalid port, got '{self.ws_url}': {e}") from e
        if not parts.hostname or port == 0:
            raise ValueError(f"ws_url needs a host and a non-zero port, got '{self.ws_url}'")
        timebase = str(self.timebase or "").strip().lower()
        if timebase not in TIMEBASES:
            raise ValueError(f"timebase must be one of {TIMEBASES}, got '{self.timebase}'")

        block_ms = max(1.0, float(self.block_ms))
        # frozen dataclass: normalized values go through object.__setattr__
        object.__setattr__(self, "ws_url", url)
        object.__setattr__(self, "timebase", timebase)
        object.__setattr__(self, "threshold", max(0.0, float(self.threshold)))
        object.__setattr__(self, "block_ms", block_ms)
        object.__setattr__(self, "silence_window_ms", max(block_ms, float(self.silence_window_ms)))
        object.__setattr__(self, "min_speech_ms", max(0.0, float(self.min_speech_ms)))
        object.__setattr__(self, "max_segment_ms", max(block_ms, float(self.max_segment_ms)))
        object.__setattr__(self, "exchange_timeout_sec", max(0.01, float(self.exchange_timeout_sec)))
        object.__setattr__(self, "target_rate", max(1, int(self.target_rate)))
        object.__setattr__(self, "skip_silent_segments", bool(self.skip_silent_segments))
        object.__setattr__(self, "close_timeout_sec", max(0.0, float(self.close_timeout_sec)))
        object.__setattr__(self, "max_message_bytes", max(1024, int(self.max_message_bytes)))

    @property
    def window_blocks(self) -> int:
        return max(1, int(round(self.silence_window_ms / self.block_ms)))

    def with_overrides(self, **overrides: Any) -> "ClientConfig":
        known = {f.name for f in fields(self)}
        clean = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **clean)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "ClientConfig":
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for key, (name, cast) in _ENV_FIELDS.items():
            raw = str(env.get(key, "") or "").strip()
            if not raw:
                continue
            try:
                values[name] = cast(raw)
            except ValueError as e:
                raise ValueError(f"invalid {key}={raw!r}: {e}") from e
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
