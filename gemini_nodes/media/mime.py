"""MIME lookup tables per capability."""

from __future__ import annotations

import posixpath
from urllib.parse import urlsplit

TEXT_GENERATION_MIME_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".avi": "video/avi",
    ".mov": "video/mov",
    ".webm": "video/webm",
}
TEXT_GENERATION_FALLBACK = "application/octet-stream"

IMAGE_MIME_TYPES: dict[str, str] = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".heif": "image/heif",
}
IMAGE_FALLBACK = "image/jpeg"

AUDIO_MIME_TYPES: dict[str, str] = {
    ".wav": "audio/wav",
    ".mp3": "audio/mp3",
    ".aiff": "audio/aiff",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
}
AUDIO_FALLBACK = "audio/wav"

# Output audio container -> file extension
AUDIO_EXTENSIONS: dict[str, str] = {
    "audio/wav": "wav",
    "audio/wave": "wav",
    "audio/x-wav": "wav",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
}


def extension_of(path_or_url: str) -> str:
    """Lower-cased extension of a path or URL, ignoring query and fragment."""
    target = path_or_url or ""
    if target.startswith(("http://", "https://")):
        target = urlsplit(target).path
    return posixpath.splitext(target.replace("\\", "/"))[1].lower()


def guess_mime_type(path_or_url: str, table: dict[str, str], fallback: str) -> str:
    return table.get(extension_of(path_or_url), fallback)


def base_mime_type(mime_type: str) -> str:
    """``audio/L16;rate=24000`` -> ``audio/l16``."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def audio_extension(mime_type: str, default: str = "wav") -> str:
    return AUDIO_EXTENSIONS.get(base_mime_type(mime_type), default)
