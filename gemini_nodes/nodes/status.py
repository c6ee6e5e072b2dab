"""Advisory status display for nodes.

Status text never affects data flow. It follows idle -> progress ->
success (auto-cleared after a delay) | error for each invocation.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time

from ..core.host import NodeHost
from ..core.results import Failure
from ..genai.safety import summarize_block_reason

logger = logging.getLogger(__name__)

MAX_STATUS_LENGTH = 50

_SHORT_MODEL_NAMES: tuple[tuple[str, str], ...] = (
    ("gemini-2.5-flash", "flash-2.5"),
    ("gemini-2.5-pro", "pro-2.5"),
    ("gemini-2.0-flash", "flash-2.0"),
    ("gemini-1.5-pro", "pro-1.5"),
    ("gemini-1.5-flash", "flash-1.5"),
    ("imagen", "imagen"),
    ("flash-image", "flash-img"),
)


def short_model_name(model: str | None) -> str:
    if not model:
        return "gemini"
    for marker, short in _SHORT_MODEL_NAMES:
        if marker in model:
            return short
    return model.split("-")[0] or model[:10]


def truncate(text: str | None, max_length: int) -> str:
    if not text:
        return ""
    return text[: max_length - 3] + "..." if len(text) > max_length else text


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0B"
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{round(value, 1):g}{unit}"
        value /= 1024
    return f"{round(value, 1):g}GB"


def estimate_tokens(text: str | None) -> int:
    """Roughly four characters per token."""
    return math.ceil(len(text) / 4) if text else 0


class NodeStatus:
    def __init__(self, host: NodeHost, clear_delay: float = 3.0) -> None:
        self._host = host
        self._clear_delay = clear_delay
        self._started = time.monotonic()
        self._clear_handle: asyncio.TimerHandle | None = None

    def _show(self, fill: str, shape: str, text: str) -> None:
        self._cancel_clear()
        self._host.status({"fill": fill, "shape": shape, "text": truncate(text, MAX_STATUS_LENGTH)})

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

    def set_progress(
        self,
        model: str | None,
        operation: str,
        *,
        progress: int | None = None,
        additional: str | None = None,
        count: int | None = None,
    ) -> None:
        text = f"{short_model_name(model)}: {operation}"
        if progress is not None:
            text += f" ({progress}%)"
        if additional:
            text += f" - {additional}"
        if count is not None:
            text += f" ({count})"
        self._show("blue", "dot", text)

    def set_success(
        self,
        model: str | None,
        operation: str,
        *,
        tokens: int | None = None,
        files: int | None = None,
        size: int | None = None,
        duration: bool = True,
    ) -> None:
        text = f"{short_model_name(model)}: {operation}"
        parts: list[str] = []
        if duration:
            parts.append(f"{time.monotonic() - self._started:.1f}s")
        if tokens:
            parts.append(f"{tokens} tokens")
        if files:
            parts.append(f"{files} files")
        if size:
            parts.append(format_bytes(size))
        if parts:
            text += f" ({', '.join(parts)})"
        self._show("green", "dot", text)
        self._schedule_clear()

    def set_error(self, model: str | None, failure: Failure, operation: str | None = None) -> None:
        name = short_model_name(model)
        message = failure.message or ""
        if failure.kind == "BlockedError" or "Content generation blocked" in message:
            text = f"{name}: blocked ({summarize_block_reason(message)})"
        elif "rate limit" in message.lower() or "quota" in message.lower() or failure.code == "HTTP_429":
            text = f"{name}: rate limited"
        elif "API key" in message:
            text = f"{name}: invalid API key"
        elif "Model not" in message:
            text = f"{name}: model not found"
        else:
            prefix = f"{name}: {operation} failed" if operation else f"{name}: error"
            text = f"{prefix} - {truncate(message, 30)}"
        self._show("red", "ring", text)

    def set_chat_status(
        self, model: str | None, session_id: str, history_length: int, is_new: bool = False
    ) -> None:
        session = session_id if session_id == "default" else truncate(session_id, 10)
        self.set_progress(
            model,
            "new chat" if is_new else "chatting",
            additional=f"{session}, {history_length} msgs",
        )

    def set_streaming_status(self, model: str | None, chunk_count: int, full_text: str = "") -> None:
        self.set_progress(
            model,
            "streaming",
            additional=f"{chunk_count} chunks, {estimate_tokens(full_text)} tokens",
        )

    def set_multimodal_status(
        self, model: str | None, *, images: int = 0, videos: int = 0, audio: int = 0
    ) -> None:
        media: list[str] = []
        if images:
            media.append(f"{images} images")
        if videos:
            media.append(f"{videos} videos")
        if audio:
            media.append(f"{audio} audio")
        self.set_progress(model, "analyzing", additional=" + ".join([*media, "text"]))

    def _schedule_clear(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._clear_handle = loop.call_later(self._clear_delay, self.clear)

    def clear(self) -> None:
        self._cancel_clear()
        self._host.status({})
