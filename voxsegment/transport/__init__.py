# coding=utf-8

from .session import ExchangeRequest, ExchangeResult, ExchangeStatus, TranscriptionSession, decode_response

__all__ = [
    "ExchangeRequest",
    "ExchangeResult",
    "ExchangeStatus",
    "TranscriptionSession",
    "decode_response",
]
