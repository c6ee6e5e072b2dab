"""Dual-output routing.

Channel 1 carries successes, channel 2 carries failures. Both start from a
shallow copy of the inbound message, so the caller's message is never
mutated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from ..core.errors import ValidationError
from ..core.host import NodeHost, Send
from ..core.message_path import set_message_property
from ..core.results import Failure
from ..core.types import ErrorInfo, Message

logger = logging.getLogger(__name__)


def error_info(failure: Failure) -> ErrorInfo:
    info: ErrorInfo = {
        "message": failure.message,
        "code": failure.code,
        "kind": failure.kind,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    if failure.details is not None:
        info["details"] = failure.details
    return info


class OutputRouter:
    def __init__(self, output_property: str = "payload", passthrough: bool = True) -> None:
        self.output_property = output_property or "payload"
        self.passthrough = passthrough

    def success_message(
        self,
        msg: Message,
        payload: Any,
        metadata: dict[str, Any] | None = None,
        *,
        force_metadata: bool = False,
    ) -> Message:
        """Shallow copy of ``msg`` with ``payload`` at the output property.

        Metadata is merged when passthrough is enabled, or always with
        ``force_metadata`` (streaming partials carry their chunk info).
        """
        out = dict(msg)
        if metadata and (self.passthrough or force_metadata):
            out.update(metadata)
        try:
            set_message_property(out, self.output_property, payload)
        except ValueError as exc:
            raise ValidationError(
                str(exc),
                code="INVALID_OUTPUT_PROPERTY",
                details={"outputProperty": self.output_property},
            ) from exc
        return out

    def error_message(self, msg: Message, failure: Failure) -> Message:
        out = dict(msg)
        out["error"] = error_info(failure)
        return out

    def emit_success(
        self,
        send: Send,
        msg: Message,
        payload: Any,
        metadata: dict[str, Any] | None = None,
        *,
        force_metadata: bool = False,
    ) -> Message:
        out = self.success_message(msg, payload, metadata, force_metadata=force_metadata)
        send([out, None])
        return out

    def emit_failure(self, send: Send, host: NodeHost, msg: Message, failure: Failure) -> Message:
        out = self.error_message(msg, failure)
        logger.error("Routing %s (%s) to error output: %s", failure.kind, failure.code, failure.message)
        send([None, out])
        host.error(failure.message, out)
        return out


__all__ = ["OutputRouter", "error_info"]
