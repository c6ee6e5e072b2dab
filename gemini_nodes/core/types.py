"""
Common type definitions for the core module.

Messages exchanged with the host are plain dicts; these aliases and
TypedDicts name the few shapes the nodes rely on.
"""

from typing import Any, NotRequired, Required, TypeAlias, TypedDict

Message: TypeAlias = dict[str, Any]


class ErrorInfo(TypedDict):
    """Structured error attached to messages sent on the error output."""

    message: Required[str]
    code: Required[str]
    kind: Required[str]
    timestamp: Required[str]
    details: NotRequired[Any]


class StatusDict(TypedDict, total=False):
    """Advisory status display state accepted by the host."""

    fill: str
    shape: str
    text: str


class InlineData(TypedDict):
    data: str
    mimeType: str


class ApiPart(TypedDict, total=False):
    """One part of a request or response document."""

    text: str
    thought: bool
    inlineData: InlineData


class ApiContent(TypedDict, total=False):
    role: str
    parts: Required[list[ApiPart]]
