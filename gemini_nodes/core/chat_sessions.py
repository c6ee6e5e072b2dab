"""Chat session storage for the multi-turn text generation mode.

A ``ChatHistory`` is the ordered list of turns for one session key. Each
successful exchange appends exactly two turns (the user's turn and the
model's reply); a failed exchange leaves the stored history unchanged.

Invocations against the same session key on one node instance are
serialized with a per-session ``asyncio.Lock``. Histories grow without bound
unless ``max_turns`` / ``max_sessions`` are configured.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Literal, Protocol

import redis

from ..media.parts import ContentPart, part_from_api
from .errors import ValidationError
from .types import ApiContent

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"

Role = Literal["user", "model"]


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    parts: tuple[ContentPart, ...]

    def to_api(self) -> ApiContent:
        return {"role": self.role, "parts": [part.to_api() for part in self.parts]}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ChatTurn:
        role = data.get("role")
        if role not in ("user", "model"):
            raise ValueError(f"Invalid chat role: {role!r}")
        return cls(role=role, parts=tuple(part_from_api(p) for p in data.get("parts") or []))


@dataclass(slots=True)
class ChatHistory:
    session_id: str
    turns: list[ChatTurn] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.turns)

    @property
    def is_new(self) -> bool:
        return not self.turns

    def with_exchange(self, user_turn: ChatTurn, model_turn: ChatTurn) -> ChatHistory:
        """Return a new history with one user/model exchange appended."""
        return ChatHistory(self.session_id, [*self.turns, user_turn, model_turn])

    def to_contents(self, pending: ChatTurn | None = None) -> list[ApiContent]:
        """Request ``contents``: every stored turn, plus ``pending`` if given."""
        turns = [*self.turns, pending] if pending is not None else self.turns
        return [turn.to_api() for turn in turns]

    def trimmed(self, max_turns: int | None) -> ChatHistory:
        """Drop the oldest user/model pairs beyond ``max_turns``."""
        if not max_turns or len(self.turns) <= max_turns:
            return self
        keep = max_turns - (max_turns % 2) or 2
        return ChatHistory(self.session_id, self.turns[-keep:])

    def to_dict(self) -> dict[str, Any]:
        return {"session_id": self.session_id, "turns": [t.to_api() for t in self.turns]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatHistory:
        return cls(
            session_id=str(data.get("session_id") or DEFAULT_SESSION_ID),
            turns=[ChatTurn.from_api(t) for t in data.get("turns") or []],
        )


class ChatSessionStore(Protocol):
    def load(self, session_id: str) -> ChatHistory | None: ...

    def save(self, history: ChatHistory) -> ChatHistory:
        """Persist ``history`` and return it as stored (after any trimming)."""
        ...

    def clear(self, session_id: str) -> None: ...

    def session_lock(self, session_id: str) -> asyncio.Lock: ...


class _SessionLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def discard(self, session_id: str) -> None:
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]


class InMemoryChatSessionStore:
    """Per-node-instance store; optionally bounded by sessions and turns."""

    def __init__(self, max_sessions: int | None = None, max_turns: int | None = None) -> None:
        self._histories: OrderedDict[str, ChatHistory] = OrderedDict()
        self._locks = _SessionLocks()
        self._max_sessions = max_sessions
        self._max_turns = max_turns

    def load(self, session_id: str) -> ChatHistory | None:
        history = self._histories.get(session_id)
        if history is not None:
            self._histories.move_to_end(session_id)
        return history

    def save(self, history: ChatHistory) -> ChatHistory:
        stored = history.trimmed(self._max_turns)
        self._histories[history.session_id] = stored
        self._histories.move_to_end(history.session_id)
        if self._max_sessions:
            while len(self._histories) > self._max_sessions:
                evicted, _ = self._histories.popitem(last=False)
                self._locks.discard(evicted)
                logger.info("Evicted chat session %s", evicted)
        return stored

    def clear(self, session_id: str) -> None:
        self._histories.pop(session_id, None)

    def session_lock(self, session_id: str) -> asyncio.Lock:
        return self._locks.get(session_id)

    def session_ids(self) -> list[str]:
        return list(self._histories)


class RedisChatSessionStore:
    """Chat histories stored as JSON documents in Redis, with a TTL."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        node_id: str,
        namespace: str = "gemini_nodes",
        ttl: timedelta | None = timedelta(days=30),
        max_turns: int | None = None,
        client: Any = None,
    ) -> None:
        if client is None and not redis_url:
            raise ValueError("RedisChatSessionStore needs a redis_url or a client")
        self._r = client if client is not None else redis.from_url(redis_url)
        self._ns = namespace.rstrip(":")
        self._node_id = node_id
        self._ttl = int(ttl.total_seconds()) if ttl else None
        self._max_turns = max_turns
        self._locks = _SessionLocks()

    def _key(self, session_id: str) -> str:
        return f"{self._ns}:chat:{self._node_id}:{session_id}"

    def load(self, session_id: str) -> ChatHistory | None:
        raw = self._r.get(self._key(session_id))
        if not raw:
            return None
        try:
            body = raw.decode("utf-8") if isinstance(raw, bytes | bytearray) else raw
            return ChatHistory.from_dict(json.loads(body))
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Failed to decode chat history for %s: %s", session_id, e)
            return None

    def save(self, history: ChatHistory) -> ChatHistory:
        stored = history.trimmed(self._max_turns)
        body = json.dumps(stored.to_dict())
        key = self._key(history.session_id)
        if self._ttl:
            self._r.setex(key, self._ttl, body)
        else:
            self._r.set(key, body)
        return stored

    def clear(self, session_id: str) -> None:
        self._r.delete(self._key(session_id))

    def session_lock(self, session_id: str) -> asyncio.Lock:
        return self._locks.get(session_id)


__all__ = [
    "DEFAULT_SESSION_ID",
    "ChatHistory",
    "ChatSessionStore",
    "ChatTurn",
    "InMemoryChatSessionStore",
    "RedisChatSessionStore",
]
