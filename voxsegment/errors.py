# coding=utf-8
from __future__ import annotations


class VoxSegmentError(Exception):
    pass


class AcquisitionError(VoxSegmentError):
    """The frame source could not be opened or resumed (device busy, denied, missing file)."""


class EncodingError(VoxSegmentError, ValueError):
    """A segment buffer could not be turned into a WAV container."""


class ExchangeError(VoxSegmentError):
    pass


class BusyError(ExchangeError):
    """A previous exchange is still in flight on this session."""


class ExchangeTimeoutError(ExchangeError, TimeoutError):
    pass


class ExchangeConnectionError(ExchangeError, ConnectionError):
    pass
