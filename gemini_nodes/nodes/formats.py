"""Output formats for generated media (images and speech)."""

from __future__ import annotations

import base64
import os
from typing import Any

from ..media.loader import MediaLoader
from ..media.parts import InlineMediaPart

OUTPUT_FORMATS = ("base64", "buffer", "url", "file")


def normalize_output_format(value: Any) -> str:
    fmt = str(value or "base64").strip().lower()
    return fmt if fmt in OUTPUT_FORMATS else "base64"


async def format_media(
    part: InlineMediaPart,
    output_format: str,
    loader: MediaLoader,
    *,
    directory: str | None = None,
    filename: str | None = None,
) -> Any:
    """Render ``part`` as base64 text, raw bytes, a data URL or a saved file path."""
    if output_format == "buffer":
        return base64.b64decode(part.data)
    if output_format == "url":
        return f"data:{part.mime_type};base64,{part.data}"
    if output_format == "file":
        if not directory or not filename:
            raise ValueError("File output needs a directory and a filename")
        await loader.mkdir(directory)
        path = os.path.join(directory, filename)
        await loader.write_file(path, base64.b64decode(part.data))
        return path
    return part.data


def decoded_size(part: InlineMediaPart) -> int:
    """Byte size of the base64 payload without decoding it."""
    data = part.data.rstrip("=")
    return len(data) * 3 // 4
