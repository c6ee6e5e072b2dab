"""Typed result objects returned by request builders and response normalizers.

Builders and normalizers never raise for expected failures: they return either
a ``Success`` carrying the payload or a ``Failure`` describing what went wrong.
Node invocation handlers branch on the result type to pick an output channel.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, ParamSpec, TypeAlias, TypeVar

from .errors import NodeError

T = TypeVar("T")
P = ParamSpec("P")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """Successful outcome with its primary payload."""

    payload: T
    usage: dict[str, Any] | None = None
    safety_ratings: list[dict[str, Any]] | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_success(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    """Failed outcome, already shaped for the error output channel."""

    message: str
    code: str
    kind: str
    details: Any = None

    @property
    def is_success(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: NodeError) -> Failure:
        return cls(message=error.message, code=error.code, kind=error.kind, details=error.details)

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failure:
        """Wrap an unexpected exception (host or library bug) as a generic failure."""
        if isinstance(exc, NodeError):
            return cls.from_error(exc)
        code = getattr(exc, "code", None)
        return cls(
            message=str(exc) or type(exc).__name__,
            code=str(code) if code else "UNKNOWN_ERROR",
            kind=type(exc).__name__,
        )


Result: TypeAlias = "Success[Any] | Failure"


def capture_errors(
    func: Callable[P, Awaitable[Success[T]]] | Callable[P, Success[T]],
) -> Callable[P, Any]:
    """Turn a raised ``NodeError`` into a ``Failure`` return value.

    Works for both plain and ``async`` functions. Other exceptions propagate:
    they indicate bugs, not expected node failures.
    """
    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def _async_wrapper(*args: P.args, **kwargs: P.kwargs) -> Success[T] | Failure:
            try:
                return await func(*args, **kwargs)  # type: ignore[misc]
            except NodeError as exc:
                return Failure.from_error(exc)

        return _async_wrapper

    @functools.wraps(func)
    def _wrapper(*args: P.args, **kwargs: P.kwargs) -> Success[T] | Failure:
        try:
            return func(*args, **kwargs)  # type: ignore[return-value]
        except NodeError as exc:
            return Failure.from_error(exc)

    return _wrapper


__all__ = ["Failure", "Result", "Success", "capture_errors"]
