"""Request content parts.

A request body is an ordered sequence of parts: plain text or inline media
(base64 data plus its MIME type).
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, TypeAlias

from ..core.errors import ValidationError
from ..core.types import ApiPart


@dataclass(frozen=True, slots=True)
class TextPart:
    value: str

    def to_api(self) -> ApiPart:
        return {"text": self.value}


@dataclass(frozen=True, slots=True)
class InlineMediaPart:
    data: str  # base64
    mime_type: str

    @classmethod
    def from_bytes(cls, raw: bytes, mime_type: str) -> InlineMediaPart:
        return cls(data=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)

    def to_api(self) -> ApiPart:
        return {"inlineData": {"data": self.data, "mimeType": self.mime_type}}

    @property
    def media_family(self) -> str:
        """``image``, ``video``, ``audio``... (the MIME top-level type)."""
        return self.mime_type.split("/", 1)[0].lower()

    @property
    def size_chars(self) -> int:
        return len(self.data)


ContentPart: TypeAlias = TextPart | InlineMediaPart


def part_from_api(raw: Any) -> ContentPart:
    """Rebuild a part from its request-document shape (used for stored history)."""
    if isinstance(raw, dict):
        if isinstance(raw.get("text"), str):
            return TextPart(raw["text"])
        inline = raw.get("inlineData")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str):
            return InlineMediaPart(data=inline["data"], mime_type=str(inline.get("mimeType") or ""))
    raise ValidationError(
        "Unrecognized content part shape",
        code="INVALID_CONTENT_PART",
        details={"part": repr(raw)[:200]},
    )


def count_media(parts: list[ContentPart]) -> dict[str, int]:
    """Count inline media parts per MIME family."""
    counts: dict[str, int] = {}
    for part in parts:
        if isinstance(part, InlineMediaPart):
            counts[part.media_family] = counts.get(part.media_family, 0) + 1
    return counts
