"""Error taxonomy shared by every node.

All errors are terminal for the current invocation. They carry a
human-readable message, a best-effort code and a kind tag (the class name),
which is what ends up on the error output channel.
"""

from __future__ import annotations

from typing import Any


class NodeError(Exception):
    """Base class for every failure a node can route to its error output."""

    default_code = "UNKNOWN_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "kind": self.kind,
            "details": self.details,
        }


class ConfigurationError(NodeError):
    """Missing credential, model or mandatory field. No network call is attempted."""

    default_code = "CONFIGURATION_ERROR"


class ValidationError(NodeError):
    """A parameter is outside its allowed domain. No network call is attempted."""

    default_code = "VALIDATION_ERROR"


class MediaAcquisitionError(NodeError):
    """A file or URL could not be read."""

    default_code = "MEDIA_ACQUISITION_ERROR"


class TemplateError(NodeError):
    """A templated field has malformed syntax."""

    default_code = "TEMPLATE_ERROR"


class BlockedError(NodeError):
    """The remote service declined to produce content."""

    default_code = "CONTENT_BLOCKED"


class EmptyResultError(NodeError):
    """The remote call succeeded but yielded no usable payload."""

    default_code = "EMPTY_RESULT"


class TransportError(NodeError):
    """Network or HTTP failure while talking to the remote service."""

    default_code = "TRANSPORT_ERROR"


__all__ = [
    "BlockedError",
    "ConfigurationError",
    "EmptyResultError",
    "MediaAcquisitionError",
    "NodeError",
    "TemplateError",
    "TransportError",
    "ValidationError",
]
