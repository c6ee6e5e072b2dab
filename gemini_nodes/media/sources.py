"""Classification of media inputs into explicit source kinds.

Media arrives in many shapes (paths, URLs, data URLs, raw base64, byte
buffers, ``{data, mimeType}`` objects). ``classify_media`` maps a value to
exactly one source, and rejects anything it does not recognise.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeAlias

from ..core.errors import ValidationError
from .mime import guess_mime_type

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
_DATA_PREFIX_RE = re.compile(r"^data:[^;]+;base64,")
_WHITESPACE_RE = re.compile(r"\s+")


class PlainString(str, Enum):
    """How to read a string that is neither a URL nor a data URL."""

    BASE64 = "base64"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class FileSource:
    path: str
    mime_type: str

    def describe(self) -> str:
        return f"file '{self.path}'"


@dataclass(frozen=True, slots=True)
class UrlSource:
    url: str
    mime_type: str

    def describe(self) -> str:
        return f"URL '{self.url}'"


@dataclass(frozen=True, slots=True)
class DataUrlSource:
    data: str
    mime_type: str

    def describe(self) -> str:
        return f"data URL ({self.mime_type})"


@dataclass(frozen=True, slots=True)
class Base64Source:
    data: str
    mime_type: str

    def describe(self) -> str:
        return f"base64 data ({self.mime_type})"


@dataclass(frozen=True, slots=True)
class BytesSource:
    raw: bytes
    mime_type: str

    def describe(self) -> str:
        return f"{len(self.raw)} bytes ({self.mime_type})"


@dataclass(frozen=True, slots=True)
class InlineObjectSource:
    data: str
    mime_type: str

    def describe(self) -> str:
        return f"inline object ({self.mime_type})"


MediaSource: TypeAlias = (
    FileSource | UrlSource | DataUrlSource | Base64Source | BytesSource | InlineObjectSource
)


def is_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def parse_data_url(value: str) -> DataUrlSource:
    """Parse ``data:<mime>;base64,<data>``; anything else is rejected."""
    match = _DATA_URL_RE.match(value.strip())
    if not match:
        raise ValidationError(
            "Invalid data URL format",
            code="INVALID_DATA_URL",
            details={"value": value[:64]},
        )
    return DataUrlSource(data=checked_base64(match.group(2)), mime_type=match.group(1))


def strip_data_prefix(value: str) -> str:
    return _DATA_PREFIX_RE.sub("", value, count=1)


def checked_base64(value: str) -> str:
    """Return ``value`` without whitespace, or raise if it is not base64."""
    data = _WHITESPACE_RE.sub("", value)
    try:
        base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise ValidationError(
            "Media data is not valid base64",
            code="INVALID_BASE64",
            details={"value": value[:64]},
        ) from exc
    return data


def classify_media(
    value: Any,
    *,
    default_mime: str,
    mime_table: dict[str, str],
    plain_string: PlainString = PlainString.BASE64,
    mime_hint: str | None = None,
) -> MediaSource:
    """Map one media input to its source kind.

    ``default_mime`` applies to raw base64 and byte buffers unless a
    ``mime_hint`` is given; paths and URLs use ``mime_table`` with
    ``default_mime`` as the fallback. Raises ``ValidationError`` for
    unrecognised shapes.
    """
    if isinstance(value, bytes | bytearray | memoryview):
        return BytesSource(raw=bytes(value), mime_type=mime_hint or default_mime)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValidationError("Empty media input", code="INVALID_MEDIA_INPUT")
        if text.startswith("data:"):
            return parse_data_url(text)
        if is_url(text):
            return UrlSource(url=text, mime_type=guess_mime_type(text, mime_table, default_mime))
        if plain_string is PlainString.FILE:
            return FileSource(path=text, mime_type=guess_mime_type(text, mime_table, default_mime))
        return Base64Source(data=checked_base64(text), mime_type=mime_hint or default_mime)

    if isinstance(value, dict):
        data = value.get("data")
        mime_type = value.get("mimeType")
        if isinstance(data, str) and data and isinstance(mime_type, str) and mime_type:
            return InlineObjectSource(data=checked_base64(strip_data_prefix(data)), mime_type=mime_type)

    raise ValidationError(
        f"Unsupported media input of type {type(value).__name__}",
        code="INVALID_MEDIA_INPUT",
        details={"type": type(value).__name__},
    )


def as_list(value: Any) -> list[Any]:
    """A single media input or a list of them, as a list."""
    if value is None or value == "":
        return []
    if isinstance(value, list | tuple):
        return list(value)
    return [value]
