"""Host runtime contract and an in-process implementation.

Nodes only talk to their host through the ``NodeHost`` protocol: two scope
accessors, a credential lookup, an advisory status setter and the host's own
error reporting. ``LocalHost`` implements it in memory for the CLI and tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from .types import Message, StatusDict

logger = logging.getLogger(__name__)

Send = Callable[[list[Message | None]], None]
Done = Callable[[BaseException | None], None]


class ScopeAccessor(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class NodeHost(Protocol):
    @property
    def flow(self) -> ScopeAccessor: ...

    @property
    def global_(self) -> ScopeAccessor: ...

    def get_credentials(self, node_id: str) -> dict[str, Any] | None: ...

    def status(self, status: StatusDict) -> None: ...

    def error(self, text: str, msg: Message | None = None) -> None: ...

    def log(self, text: str) -> None: ...


class InMemoryScope:
    """Dict-backed scope accessor."""

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    def get(self, key: str) -> Any:
        return self._values.get(key)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def keys(self) -> list[str]:
        return list(self._values)


@dataclass(slots=True)
class ReportedError:
    text: str
    msg: Message | None = None


@dataclass
class LocalHost:
    """In-process host: scopes, credentials, and recorded status/errors."""

    flow_scope: InMemoryScope = field(default_factory=InMemoryScope)
    global_scope: InMemoryScope = field(default_factory=InMemoryScope)
    credentials: dict[str, dict[str, Any]] = field(default_factory=dict)
    status_history: list[StatusDict] = field(default_factory=list)
    errors: list[ReportedError] = field(default_factory=list)

    @property
    def flow(self) -> InMemoryScope:
        return self.flow_scope

    @property
    def global_(self) -> InMemoryScope:
        return self.global_scope

    def add_credentials(self, node_id: str, **values: Any) -> None:
        self.credentials[node_id] = dict(values)

    def get_credentials(self, node_id: str) -> dict[str, Any] | None:
        return self.credentials.get(node_id)

    def status(self, status: StatusDict) -> None:
        self.status_history.append(dict(status))  # type: ignore[arg-type]

    @property
    def current_status(self) -> StatusDict:
        return self.status_history[-1] if self.status_history else {}

    def error(self, text: str, msg: Message | None = None) -> None:
        logger.error("Node reported error: %s", text)
        self.errors.append(ReportedError(text=text, msg=msg))

    def log(self, text: str) -> None:
        logger.info("%s", text)


__all__ = [
    "Done",
    "InMemoryScope",
    "LocalHost",
    "NodeHost",
    "ReportedError",
    "ScopeAccessor",
    "Send",
]
