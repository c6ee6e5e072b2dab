"""Media inputs: content parts, MIME tables, source classification and loading."""

from .loader import MediaLoader
from .parts import ContentPart, InlineMediaPart, TextPart, part_from_api
from .sources import (
    Base64Source,
    BytesSource,
    DataUrlSource,
    FileSource,
    InlineObjectSource,
    MediaSource,
    PlainString,
    UrlSource,
    classify_media,
)

__all__ = [
    "Base64Source",
    "BytesSource",
    "ContentPart",
    "DataUrlSource",
    "FileSource",
    "InlineMediaPart",
    "InlineObjectSource",
    "MediaLoader",
    "MediaSource",
    "PlainString",
    "TextPart",
    "UrlSource",
    "classify_media",
    "part_from_api",
]
