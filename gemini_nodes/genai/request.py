"""Capability-agnostic generation request.

``GenerationRequest.to_document()`` produces the request document sent to
the remote service::

    {model, contents, config?, systemInstruction?, safetySettings?}

Optional blocks are attached only when at least one of their sub-fields is
set; empty objects are never sent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..core.errors import ConfigurationError, ValidationError
from ..core.types import ApiContent
from ..media.parts import ContentPart


@dataclass(frozen=True, slots=True)
class GenerationParameters:
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    max_output_tokens: int | None = None

    def to_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {}
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.top_p is not None:
            config["topP"] = self.top_p
        if self.top_k is not None:
            config["topK"] = self.top_k
        if self.max_output_tokens is not None:
            config["maxOutputTokens"] = self.max_output_tokens
        return config


@dataclass(frozen=True, slots=True)
class ThinkingOptions:
    budget: int | None = None
    include_thoughts: bool = False

    def to_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {}
        if self.budget is not None:
            config["thinkingBudget"] = self.budget
        if self.include_thoughts:
            config["includeThoughts"] = True
        return config


def user_content(parts: list[ContentPart] | tuple[ContentPart, ...]) -> ApiContent:
    return {"role": "user", "parts": [part.to_api() for part in parts]}


@dataclass(slots=True)
class GenerationRequest:
    model: str
    contents: list[ApiContent]
    system_instruction: str | None = None
    parameters: GenerationParameters = field(default_factory=GenerationParameters)
    thinking: ThinkingOptions = field(default_factory=ThinkingOptions)
    safety_settings: list[dict[str, str]] = field(default_factory=list)
    grounding: bool = False
    response_modalities: list[str] = field(default_factory=list)
    aspect_ratio: str | None = None
    speech_config: dict[str, Any] | None = None

    def validate(self) -> None:
        if not self.model:
            raise ConfigurationError("Model not specified", code="MODEL_NOT_SPECIFIED")
        if not self.contents or not any(c.get("parts") for c in self.contents):
            raise ValidationError("Request has no content parts", code="EMPTY_CONTENT")

    def config_block(self) -> dict[str, Any]:
        config = self.parameters.to_config()
        thinking = self.thinking.to_config()
        if thinking:
            config["thinkingConfig"] = thinking
        if self.grounding:
            config["tools"] = [{"googleSearch": {}}]
        if self.response_modalities:
            config["responseModalities"] = list(self.response_modalities)
        if self.aspect_ratio:
            config["imageConfig"] = {"aspectRatio": self.aspect_ratio}
        if self.speech_config:
            config["speechConfig"] = self.speech_config
        return config

    def to_document(self) -> dict[str, Any]:
        """Serialize to the request document; raises if it would be empty."""
        self.validate()
        document: dict[str, Any] = {"model": self.model, "contents": self.contents}
        config = self.config_block()
        if config:
            document["config"] = config
        if self.system_instruction:
            document["systemInstruction"] = {"parts": [{"text": self.system_instruction}]}
        if self.safety_settings:
            document["safetySettings"] = list(self.safety_settings)
        return document


__all__ = [
    "GenerationParameters",
    "GenerationRequest",
    "ThinkingOptions",
    "user_content",
]
