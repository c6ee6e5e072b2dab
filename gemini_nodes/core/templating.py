"""Template rendering for literal configuration fields.

Templates are rendered with jinja2 against the inbound message; missing names
render as empty strings, even when chained (``{{msg.a.b}}``). The context
exposes message fields both at the top level and under ``msg`` so that
``{{payload}}`` and ``{{msg.payload}}`` are equivalent.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

import jinja2

from .errors import TemplateError
from .types import Message

logger = logging.getLogger(__name__)

# {{{field}}} (unescaped mustache) is accepted as a plain {{field}}
_TRIPLE_BRACE_RE = re.compile(r"\{\{\{\s*(.*?)\s*\}\}\}")


class MessageEnvironment(jinja2.Environment):
    """Environment where ``a.b`` on a mapping reads key ``b`` and never a dict method.

    A missing key renders as undefined, so ``{{msg.items}}`` is the message's
    ``items`` field or empty.
    """

    def getattr(self, obj: Any, attribute: str) -> Any:
        if isinstance(obj, Mapping):
            try:
                return obj[attribute]
            except (KeyError, TypeError):
                return self.undefined(obj=obj, name=attribute)
        return super().getattr(obj, attribute)


class TemplateRenderer:
    """Render template strings against a message context."""

    def __init__(self, environment: jinja2.Environment | None = None) -> None:
        self._env = environment or MessageEnvironment(
            autoescape=False,
            keep_trailing_newline=True,
            undefined=jinja2.ChainableUndefined,
        )

    @staticmethod
    def build_context(msg: Message) -> dict[str, Any]:
        return {**msg, "msg": msg}

    def render(self, template: Any, msg: Message, field_name: str = "template") -> Any:
        """Render ``template`` with the message context.

        Non-string and empty templates are returned unchanged. Raises
        ``TemplateError`` when the template cannot be parsed or rendered.
        """
        if not template or not isinstance(template, str):
            return template
        if "{{" not in template and "{%" not in template:
            return template

        source = _TRIPLE_BRACE_RE.sub(r"{{ \1 }}", template)
        try:
            return self._env.from_string(source).render(self.build_context(msg))
        except jinja2.TemplateError as exc:
            logger.warning("Template error in %s: %s", field_name, exc)
            raise TemplateError(
                f"Template error in {field_name}: {exc}",
                details={"field": field_name, "template": template},
            ) from exc


_default_renderer: TemplateRenderer | None = None


def get_renderer() -> TemplateRenderer:
    global _default_renderer
    if _default_renderer is None:
        _default_renderer = TemplateRenderer()
    return _default_renderer
