"""Storage and network access for media inputs and file outputs.

Blocking I/O (``pathlib`` and ``requests``) runs in worker threads via
``asyncio.to_thread`` so a node invocation never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

import requests

from ..core.errors import MediaAcquisitionError
from .parts import InlineMediaPart
from .sources import (
    Base64Source,
    BytesSource,
    DataUrlSource,
    FileSource,
    InlineObjectSource,
    MediaSource,
    UrlSource,
)

logger = logging.getLogger(__name__)


def _short(value: str, limit: int = 100) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class MediaLoader:
    def __init__(self, fetch_timeout: float = 30.0, session: requests.Session | None = None) -> None:
        self._timeout = fetch_timeout
        self._session = session

    # ------------------------------------------------------------------
    # storage / network primitives
    # ------------------------------------------------------------------
    async def read_file(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(Path(path).expanduser().read_bytes)
        except OSError as e:
            logger.warning("File read failed: %s, error=%s", path, e)
            raise MediaAcquisitionError(
                f"Failed to read file '{path}': {e}",
                code="FILE_READ_ERROR",
                details={"path": path},
            ) from e

    def _get(self, url: str) -> bytes:
        getter = self._session.get if self._session is not None else requests.get
        response = getter(url, timeout=self._timeout)
        logger.debug(
            "Media fetch response: status=%d, content_size=%d bytes, url=%s",
            response.status_code,
            len(response.content),
            _short(url),
        )
        if response.status_code != 200:
            raise MediaAcquisitionError(
                f"Failed to fetch URL '{url}': HTTP {response.status_code} {response.reason or ''}".rstrip(),
                code=f"HTTP_{response.status_code}",
                details={"url": url, "status": response.status_code},
            )
        return response.content

    async def fetch(self, url: str) -> bytes:
        try:
            return await asyncio.to_thread(self._get, url)
        except requests.exceptions.Timeout as e:
            logger.error("Timeout fetching media: %s", _short(url))
            raise MediaAcquisitionError(
                f"Timeout fetching URL '{url}'", code="FETCH_TIMEOUT", details={"url": url}
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error("Network error fetching media: %s, error=%s", _short(url), e)
            raise MediaAcquisitionError(
                f"Failed to fetch URL '{url}': {e}", code="FETCH_ERROR", details={"url": url}
            ) from e

    async def mkdir(self, path: str) -> None:
        try:
            await asyncio.to_thread(Path(path).expanduser().mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise MediaAcquisitionError(
                f"Failed to create directory '{path}': {e}",
                code="MKDIR_ERROR",
                details={"path": path},
            ) from e

    async def write_file(self, path: str, data: bytes | str) -> None:
        target = Path(path).expanduser()
        try:
            if isinstance(data, str):
                await asyncio.to_thread(target.write_text, data, encoding="utf-8")
            else:
                await asyncio.to_thread(target.write_bytes, data)
        except OSError as e:
            raise MediaAcquisitionError(
                f"Failed to save file '{path}': {e}",
                code="FILE_WRITE_ERROR",
                details={"path": path},
            ) from e
        logger.info("Saved %s", path)

    # ------------------------------------------------------------------
    # sources -> parts
    # ------------------------------------------------------------------
    async def acquire(self, source: MediaSource) -> InlineMediaPart:
        if isinstance(source, FileSource):
            raw = await self.read_file(source.path)
            return InlineMediaPart.from_bytes(raw, source.mime_type)
        if isinstance(source, UrlSource):
            raw = await self.fetch(source.url)
            return InlineMediaPart.from_bytes(raw, source.mime_type)
        if isinstance(source, BytesSource):
            return InlineMediaPart.from_bytes(source.raw, source.mime_type)
        if isinstance(source, DataUrlSource | Base64Source | InlineObjectSource):
            return InlineMediaPart(data=source.data, mime_type=source.mime_type)
        raise MediaAcquisitionError(
            f"Unsupported media source {type(source).__name__}",
            code="INVALID_MEDIA_SOURCE",
        )

    async def acquire_all(self, sources: Sequence[MediaSource]) -> list[InlineMediaPart]:
        """Acquire every source concurrently; parts keep the declared order."""
        if not sources:
            return []
        parts = await asyncio.gather(*(self.acquire(source) for source in sources))
        logger.debug("Acquired %d media part(s)", len(parts))
        return list(parts)
