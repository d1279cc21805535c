# coding=utf-8
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from voxsegment.errors import (
    BusyError,
    ExchangeConnectionError,
    ExchangeError,
    ExchangeTimeoutError,
)

logger = logging.getLogger(__name__)


class ExchangeStatus(str, Enum):
    OK = "ok"
    BUSY = "busy"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"


@dataclass(frozen=True)
class ExchangeResult:
    status: ExchangeStatus
    text: str = ""
    error: Optional[ExchangeError] = None
    request_id: int = 0
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is ExchangeStatus.OK

    def unwrap(self) -> str:
        if self.error is not None:
            raise self.error
        return self.text


@dataclass
class ExchangeRequest:
    request_id: int
    payload: bytes
    timeout_sec: float
    started_at: float = field(default_factory=time.monotonic)

    @property
    def deadline(self) -> float:
        return self.started_at + self.timeout_sec

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000.0


def decode_response(message: Union[str, bytes, bytearray, memoryview]) -> str:
    if isinstance(message, str):
        return message
    try:
        return bytes(message).decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("binary response is not utf-8, treating as empty: %s", e)
        return ""


class TranscriptionSession:
    """
    One-shot WebSocket exchanges against a single-request transcription server.

    Each ``submit`` opens a connection, sends one binary message, waits for one reply
    and closes. At most one exchange is in flight: a concurrent ``submit`` returns a
    BUSY result immediately instead of queuing.
    """

    def __init__(
        self,
        url: str,
        timeout_sec: float = 30.0,
        close_timeout_sec: float = 1.0,
        max_message_bytes: int = 16 * 1024 * 1024,
    ) -> None:
        self.url = str(url)
        self.timeout_sec = max(0.01, float(timeout_sec))
        self.close_timeout_sec = max(0.0, float(close_timeout_sec))
        self.max_message_bytes = max(1024, int(max_message_bytes))
        self._active: Optional[ExchangeRequest] = None
        self._seq = 0

    @classmethod
    def from_config(cls, config) -> "TranscriptionSession":
        return cls(
            config.ws_url,
            timeout_sec=config.exchange_timeout_sec,
            close_timeout_sec=config.close_timeout_sec,
            max_message_bytes=config.max_message_bytes,
        )

    @property
    def busy(self) -> bool:
        return self._active is not None

    @property
    def active_request(self) -> Optional[ExchangeRequest]:
        return self._active

    async def submit(self, payload: bytes) -> ExchangeResult:
        # check-and-set has no await in between, so the gate is atomic on the event loop
        if self._active is not None:
            logger.warning(
                "exchange rejected: request id=%d still in flight", self._active.request_id
            )
            return ExchangeResult(
                status=ExchangeStatus.BUSY,
                error=BusyError(f"exchange {self._active.request_id} still in flight"),
            )

        self._seq += 1
        request = ExchangeRequest(request_id=self._seq, payload=bytes(payload), timeout_sec=self.timeout_sec)
        self._active = request
        try:
            text = await asyncio.wait_for(self._exchange(request), timeout=request.timeout_sec)
        except asyncio.TimeoutError:
            logger.warning(
                "exchange timeout id=%d after %.1fs url=%s", request.request_id, request.timeout_sec, self.url
            )
            return ExchangeResult(
                status=ExchangeStatus.TIMEOUT,
                error=ExchangeTimeoutError(f"no response within {request.timeout_sec:.1f}s"),
                request_id=request.request_id,
                elapsed_ms=request.elapsed_ms(),
            )
        except (OSError, ValueError, WebSocketException) as e:
            # ValueError: malformed address rejected by the connect call (bad port)
            logger.warning("exchange failed id=%d url=%s err=%s", request.request_id, self.url, e)
            return ExchangeResult(
                status=ExchangeStatus.CONNECTION_ERROR,
                error=ExchangeConnectionError(str(e) or type(e).__name__),
                request_id=request.request_id,
                elapsed_ms=request.elapsed_ms(),
            )
        finally:
            self._active = None

        logger.info(
            "exchange done id=%d bytes=%d chars=%d elapsed_ms=%.1f",
            request.request_id,
            len(request.payload),
            len(text),
            request.elapsed_ms(),
        )
        return ExchangeResult(
            status=ExchangeStatus.OK,
            text=text,
            request_id=request.request_id,
            elapsed_ms=request.elapsed_ms(),
        )

    async def _exchange(self, request: ExchangeRequest) -> str:
        async with websockets.connect(
            self.url,
            max_size=self.max_message_bytes,
            open_timeout=None,
            close_timeout=self.close_timeout_sec,
        ) as ws:
            await ws.send(request.payload)
            message = await ws.recv()
        return decode_response(message)
