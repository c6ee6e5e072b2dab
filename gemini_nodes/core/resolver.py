"""Configuration slot resolution.

Every configurable node field is a ``ConfigurationSlot``: a source kind plus a
source key. ``ValueResolver`` turns a slot into its runtime value for one
inbound message, reading only from the message and the two variable scopes.
Resolved values are deep-copied so later changes to the source cannot leak
into an already-built request.
"""

from __future__ import annotations

import copy
import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import ConfigurationError, ValidationError
from .host import ScopeAccessor
from .message_path import get_message_property
from .templating import TemplateRenderer, get_renderer
from .types import Message

logger = logging.getLogger(__name__)


class SourceKind(str, Enum):
    LITERAL = "literal-template"
    MESSAGE = "message-property"
    FLOW = "flow-variable"
    GLOBAL = "global-variable"

    @classmethod
    def parse(cls, value: Any) -> SourceKind:
        """Accept both the canonical names and the host's short type names."""
        if isinstance(value, SourceKind):
            return value
        key = str(value or "").strip().lower()
        if not key:
            return cls.LITERAL
        try:
            return _SOURCE_ALIASES[key]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported source type '{value}'",
                code="UNSUPPORTED_SOURCE_TYPE",
                details={"sourceType": value},
            ) from None


_SOURCE_ALIASES: dict[str, SourceKind] = {
    "literal-template": SourceKind.LITERAL,
    "str": SourceKind.LITERAL,
    "num": SourceKind.LITERAL,
    "bool": SourceKind.LITERAL,
    "json": SourceKind.LITERAL,
    "message-property": SourceKind.MESSAGE,
    "msg": SourceKind.MESSAGE,
    "flow-variable": SourceKind.FLOW,
    "flow": SourceKind.FLOW,
    "global-variable": SourceKind.GLOBAL,
    "global": SourceKind.GLOBAL,
}


@dataclass(frozen=True, slots=True)
class ConfigurationSlot:
    """One configurable field as designed in the flow editor.

    ``fallback_property`` is read from the message when a message-property
    slot names a property that is absent.
    """

    kind: SourceKind
    key: str = ""
    fallback_property: str | None = None
    field_name: str = "field"

    @classmethod
    def of(
        cls,
        source_type: Any,
        key: Any,
        *,
        fallback_property: str | None = None,
        field_name: str = "field",
    ) -> ConfigurationSlot:
        return cls(
            kind=SourceKind.parse(source_type),
            key="" if key is None else str(key),
            fallback_property=fallback_property,
            field_name=field_name,
        )

    @property
    def is_literal(self) -> bool:
        return self.kind is SourceKind.LITERAL


@dataclass(frozen=True, slots=True)
class ResolutionContext:
    """Inbound message plus the flow and global scopes for one invocation."""

    message: Message
    flow: ScopeAccessor
    global_: ScopeAccessor


def _is_absent(value: Any) -> bool:
    return value is None or value == ""


class ValueResolver:
    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer or get_renderer()

    def resolve(self, slot: ConfigurationSlot, context: ResolutionContext) -> Any:
        """Return the slot's value, or ``None`` when the source holds nothing.

        Raises ``TemplateError`` for malformed literal templates.
        """
        if slot.kind is SourceKind.LITERAL:
            value: Any = self._renderer.render(slot.key, context.message, slot.field_name)
        elif slot.kind is SourceKind.MESSAGE:
            value = get_message_property(context.message, slot.key) if slot.key else None
            if _is_absent(value) and slot.fallback_property:
                value = get_message_property(context.message, slot.fallback_property)
        elif slot.kind is SourceKind.FLOW:
            value = context.flow.get(slot.key) if slot.key else None
        else:
            value = context.global_.get(slot.key) if slot.key else None

        logger.debug("Resolved %s from %s", slot.field_name, slot.kind.value)
        return copy.deepcopy(value)

    def resolve_with_override(
        self,
        slot: ConfigurationSlot,
        context: ResolutionContext,
        override_property: str,
    ) -> Any:
        """Resolve ``slot``, letting ``msg.<override_property>`` win over literals.

        Scalar parameters configured as literals can be overridden per message
        by a same-named message property. Slots of other kinds already name
        their source explicitly and are resolved unchanged.
        """
        if slot.is_literal:
            override = context.message.get(override_property)
            if not _is_absent(override):
                return copy.deepcopy(override)
        return self.resolve(slot, context)

    def resolve_text(self, slot: ConfigurationSlot, context: ResolutionContext) -> str | None:
        """Resolve a free-text field; non-string values are JSON-encoded."""
        value = self.resolve(slot, context)
        if _is_absent(value):
            return None
        return value if isinstance(value, str) else json.dumps(value)

    def resolve_float(
        self,
        slot: ConfigurationSlot,
        context: ResolutionContext,
        override_property: str | None = None,
    ) -> float | None:
        value = (
            self.resolve_with_override(slot, context, override_property)
            if override_property
            else self.resolve(slot, context)
        )
        return parse_float(value, slot.field_name)

    def resolve_int(
        self,
        slot: ConfigurationSlot,
        context: ResolutionContext,
        override_property: str | None = None,
    ) -> int | None:
        value = (
            self.resolve_with_override(slot, context, override_property)
            if override_property
            else self.resolve(slot, context)
        )
        return parse_int(value, slot.field_name)


def parse_float(value: Any, field_name: str = "value") -> float | None:
    """Parse a floating point parameter; empty means unset."""
    if _is_absent(value):
        return None
    if isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}",
            code="INVALID_NUMBER",
            details={"field": field_name, "value": value},
        )
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}",
            code="INVALID_NUMBER",
            details={"field": field_name, "value": value},
        ) from None
    if math.isnan(number):
        raise ValidationError(
            f"{field_name} must be a number, got {value!r}",
            code="INVALID_NUMBER",
            details={"field": field_name, "value": value},
        )
    return number


def parse_int(value: Any, field_name: str = "value") -> int | None:
    """Parse an integer parameter; empty means unset.

    Integral floats (``2.0``) are accepted, fractional values are not.
    """
    number = parse_float(value, field_name)
    if number is None:
        return None
    if math.isinf(number) or not number.is_integer():
        raise ValidationError(
            f"{field_name} must be an integer, got {value!r}",
            code="INVALID_INTEGER",
            details={"field": field_name, "value": value},
        )
    return int(number)


__all__ = [
    "ConfigurationSlot",
    "ResolutionContext",
    "SourceKind",
    "ValueResolver",
    "parse_float",
    "parse_int",
]
