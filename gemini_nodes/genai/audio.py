"""WAV packaging for raw PCM speech output."""

from __future__ import annotations

import re
import struct

from ..media.mime import base_mime_type

DEFAULT_SAMPLE_RATE = 24000
CHANNELS = 1
BITS_PER_SAMPLE = 16
WAV_HEADER_SIZE = 44
WAV_MIME_TYPE = "audio/wav"

PCM_MIME_TYPES = frozenset({"audio/l16", "audio/pcm"})

_RATE_RE = re.compile(r"rate=(\d+)", re.IGNORECASE)


def is_pcm(mime_type: str) -> bool:
    return base_mime_type(mime_type) in PCM_MIME_TYPES


def sample_rate_of(mime_type: str, default: int = DEFAULT_SAMPLE_RATE) -> int:
    match = _RATE_RE.search(mime_type or "")
    return int(match.group(1)) if match else default


def wav_header(
    data_length: int,
    sample_rate: int = DEFAULT_SAMPLE_RATE,
    channels: int = CHANNELS,
    bits_per_sample: int = BITS_PER_SAMPLE,
) -> bytes:
    """Canonical 44-byte RIFF/WAVE header for little-endian PCM."""
    block_align = channels * bits_per_sample // 8
    byte_rate = sample_rate * block_align
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,  # PCM fmt chunk size
        1,  # PCM format
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_length,
    )


def pcm_to_wav(pcm: bytes, mime_type: str) -> tuple[bytes, str]:
    """Wrap raw PCM in a WAV container; returns ``(wav_bytes, "audio/wav")``."""
    header = wav_header(len(pcm), sample_rate_of(mime_type))
    return header + pcm, WAV_MIME_TYPE
