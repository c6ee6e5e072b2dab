"""Shared invocation flow for every Gemini node.

Each inbound message runs through one ``on_input`` call: resolve fields,
build the request, call the service, normalize the response and route the
outcome. Capabilities implement ``process``; the base class owns API key
lookup, common field resolution, error routing and status handling. Every
invocation completes, whatever happens inside it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.errors import ConfigurationError, ValidationError
from ..core.host import Done, NodeHost, Send
from ..core.logging import bind_invocation_id
from ..core.resolver import ConfigurationSlot, ResolutionContext, ValueResolver
from ..core.results import Failure, Success
from ..core.types import Message
from ..genai.client import GenAIClient, GeminiClient
from ..genai.request import GenerationParameters
from ..genai.safety import SAFETY_CONFIG_FIELDS, build_safety_settings
from ..media.loader import MediaLoader
from ..settings import Settings, get_settings
from .credentials import ApiKeyNode
from .output import OutputRouter
from .status import NodeStatus

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GenAIClient]


class BaseNodeConfig(BaseModel):
    """Fields shared by every capability, keyed the way the host stores them."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    name: str = ""
    api_key: str | None = Field(default=None, alias="apiKey")
    output_property: str = Field(default="payload", alias="outputProperty")
    passthrough_properties: bool = Field(default=True, alias="passthroughProperties")

    system_instruction: str = Field(default="", alias="systemInstruction")
    system_instruction_type: str = Field(default="str", alias="systemInstructionType")

    safety_harassment: str = Field(default="", alias="safetyHarassment")
    safety_hate_speech: str = Field(default="", alias="safetyHateSpeech")
    safety_sexually_explicit: str = Field(default="", alias="safetySexuallyExplicit")
    safety_dangerous_content: str = Field(default="", alias="safetyDangerousContent")

    @field_validator("output_property", mode="before")
    @classmethod
    def default_output_property(cls, v: Any) -> str:
        return str(v).strip() if v else "payload"

    @field_validator("system_instruction", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def slot(self, name: str, *, fallback_property: str | None = None) -> ConfigurationSlot:
        """Slot for the ``name`` / ``name_type`` field pair."""
        return ConfigurationSlot.of(
            getattr(self, f"{name}_type", "str"),
            getattr(self, name),
            fallback_property=fallback_property,
            field_name=name.replace("_", " "),
        )

    def safety_thresholds(self) -> dict[str, str]:
        values = {
            "safetyHarassment": self.safety_harassment,
            "safetyHateSpeech": self.safety_hate_speech,
            "safetySexuallyExplicit": self.safety_sexually_explicit,
            "safetyDangerousContent": self.safety_dangerous_content,
        }
        return {key: values[key] for key, _ in SAFETY_CONFIG_FIELDS}


def coerce_slot_key(v: Any) -> str:
    """Slot keys may arrive as numbers or booleans from the host; keep them as text."""
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


class GenerationParameterFields(BaseModel):
    """Temperature / topP / topK / maxOutputTokens slots."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    temperature: str = ""
    temperature_type: str = Field(default="str", alias="temperatureType")
    top_p: str = Field(default="", alias="topP")
    top_p_type: str = Field(default="str", alias="topPType")
    top_k: str = Field(default="", alias="topK")
    top_k_type: str = Field(default="str", alias="topKType")
    max_output_tokens: str = Field(default="", alias="maxOutputTokens")
    max_output_tokens_type: str = Field(default="str", alias="maxOutputTokensType")

    @field_validator("temperature", "top_p", "top_k", "max_output_tokens", mode="before")
    @classmethod
    def coerce_numbers(cls, v: Any) -> str:
        return coerce_slot_key(v)


@dataclass(slots=True)
class Invocation:
    """Per-message state: the message, its scopes, and what is known so far."""

    msg: Message
    context: ResolutionContext
    send: Send
    status: NodeStatus
    model: str | None = None


class GeminiNode:
    node_type: ClassVar[str] = ""
    config_model: ClassVar[type[BaseNodeConfig]] = BaseNodeConfig
    error_operation: ClassVar[str] = "generation"

    def __init__(
        self,
        config: dict[str, Any] | BaseNodeConfig,
        host: NodeHost,
        *,
        client_factory: ClientFactory | None = None,
        resolver: ValueResolver | None = None,
        loader: MediaLoader | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.config = (
            config if isinstance(config, BaseNodeConfig) else self.config_model.model_validate(config)
        )
        self.host = host
        self.settings = settings or get_settings()
        self.resolver = resolver or ValueResolver()
        self.loader = loader or MediaLoader(fetch_timeout=self.settings.media_fetch_timeout_seconds)
        self._client_factory = client_factory or self._default_client
        self.router = OutputRouter(self.config.output_property, self.config.passthrough_properties)
        self._status: NodeStatus | None = None

    @property
    def id(self) -> str:
        return self.config.id

    def _default_client(self, api_key: str) -> GenAIClient:
        return GeminiClient(api_key, self.settings)

    # ------------------------------------------------------------------
    # host entry points
    # ------------------------------------------------------------------
    async def on_input(self, msg: Message, send: Send, done: Done) -> None:
        status = NodeStatus(self.host, self.settings.status_clear_delay_seconds)
        self._status = status
        invocation = Invocation(
            msg=msg,
            context=ResolutionContext(message=msg, flow=self.host.flow, global_=self.host.global_),
            send=send,
            status=status,
        )

        with bind_invocation_id(node_type=self.node_type):
            try:
                try:
                    result = await self.process(invocation)
                except Exception as exc:
                    logger.error("Unexpected error in %s: %s", self.node_type, exc, exc_info=True)
                    result = Failure.from_exception(exc)

                if isinstance(result, Success):
                    try:
                        self.router.emit_success(send, msg, result.payload, result.metadata)
                        return
                    except ValidationError as exc:
                        result = Failure.from_error(exc)
                status.set_error(invocation.model, result, self.error_operation_for(invocation))
                self.router.emit_failure(send, self.host, msg, result)
            finally:
                done(None)

    async def close(self) -> None:
        if self._status is not None:
            self._status.clear()
        else:
            self.host.status({})

    async def process(self, invocation: Invocation) -> Success[Any] | Failure:
        raise NotImplementedError

    def error_operation_for(self, invocation: Invocation) -> str:
        return self.error_operation

    # ------------------------------------------------------------------
    # shared field resolution
    # ------------------------------------------------------------------
    def api_key(self) -> str:
        key = ApiKeyNode.get_api_key(self.host, self.config.api_key) or self.settings.gemini_api_key
        if not key:
            raise ConfigurationError(
                "API key not configured. Please configure a Gemini API Key.",
                code="API_KEY_MISSING",
            )
        if not ApiKeyNode.validate_api_key(key):
            logger.warning("Configured API key does not look like a Google AI key")
        return key

    def client(self) -> GenAIClient:
        """Client for this invocation; fails before any network call without a key."""
        return self._client_factory(self.api_key())

    def resolve_payload_text(
        self, slot: ConfigurationSlot, context: ResolutionContext
    ) -> str | None:
        """Resolve a text slot, falling back to ``msg.payload`` (JSON-encoded if not a string)."""
        text = self.resolver.resolve_text(slot, context)
        if not text:
            payload = context.message.get("payload")
            if payload not in (None, ""):
                text = payload if isinstance(payload, str) else json.dumps(payload)
        return text or None

    def resolve_system_instruction(self, context: ResolutionContext) -> str | None:
        cfg = self.config
        slot = cfg.slot("system_instruction")
        if slot.is_literal and not cfg.system_instruction:
            value = context.message.get("systemInstruction")
            return str(value) if value else None
        return self.resolver.resolve_text(slot, context)

    def safety_settings(self) -> list[dict[str, str]]:
        return build_safety_settings(self.config.safety_thresholds())

    def generation_parameters(
        self, fields: GenerationParameterFields, context: ResolutionContext
    ) -> GenerationParameters:
        """Numeric parameters; a same-named message property overrides literals."""
        r = self.resolver
        return GenerationParameters(
            temperature=r.resolve_float(_numeric_slot(fields, "temperature"), context, "temperature"),
            top_p=r.resolve_float(_numeric_slot(fields, "top_p"), context, "topP"),
            top_k=r.resolve_int(_numeric_slot(fields, "top_k"), context, "topK"),
            max_output_tokens=r.resolve_int(
                _numeric_slot(fields, "max_output_tokens"), context, "maxOutputTokens"
            ),
        )

    def resolve_override(
        self, slot: ConfigurationSlot, context: ResolutionContext, override_property: str
    ) -> Any:
        return self.resolver.resolve_with_override(slot, context, override_property)

    def resolve_save_directory(
        self, slot: ConfigurationSlot, context: ResolutionContext, default: str
    ) -> str:
        """Save directory slot, then ``msg.saveDirectory``, then ``default``."""
        value = None if slot.is_literal and not slot.key else self.resolver.resolve(slot, context)
        if not value:
            value = context.message.get("saveDirectory")
        return str(value) if value else default


def _numeric_slot(fields: GenerationParameterFields, name: str) -> ConfigurationSlot:
    return ConfigurationSlot.of(
        getattr(fields, f"{name}_type"),
        getattr(fields, name),
        field_name=name.replace("_", " "),
    )


__all__ = [
    "BaseNodeConfig",
    "ClientFactory",
    "GeminiNode",
    "GenerationParameterFields",
    "Invocation",
    "coerce_slot_key",
]
