# coding=utf-8

from .resample import resample_to_rate, resampled_length
from .wav_codec import WAV_HEADER_BYTES, decode_wav_pcm16, encode_wav_pcm16, float_to_pcm16, pcm16_to_float

__all__ = [
    "WAV_HEADER_BYTES",
    "decode_wav_pcm16",
    "encode_wav_pcm16",
    "float_to_pcm16",
    "pcm16_to_float",
    "resample_to_rate",
    "resampled_length",
]
