"""Audio understanding node (``gemini-audio-understand``).

Audio parts are gathered from the configured file, ``msg.audioData`` and
``msg.audioFiles`` (in that order), followed by the analysis prompt. The
answer is emitted as text or written to a timestamped ``.txt`` file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import Field, field_validator

from ..core.errors import ConfigurationError
from ..core.results import Failure, Success, capture_errors
from ..genai.normalizer import normalize_text, total_tokens
from ..genai.request import GenerationRequest, user_content
from ..media.mime import AUDIO_FALLBACK, AUDIO_MIME_TYPES, guess_mime_type
from ..media.parts import TextPart
from ..media.sources import FileSource, MediaSource, PlainString, as_list, classify_media
from .base import BaseNodeConfig, GenerationParameterFields, GeminiNode, Invocation, coerce_slot_key
from .status import estimate_tokens

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_PROMPT = "Please analyze this audio and provide a detailed description of what you hear."
ANALYSIS_SUBDIRECTORY = "audio-analysis"


class AudioUnderstandingConfig(BaseNodeConfig, GenerationParameterFields):
    model: str = DEFAULT_MODEL
    prompt: str = "payload"
    prompt_type: str = Field(default="msg", alias="promptType")
    audio_file: str = Field(default="", alias="audioFile")
    audio_file_type: str = Field(default="str", alias="audioFileType")
    output_format: str = Field(default="text", alias="outputFormat")
    save_directory: str = Field(default="", alias="saveDirectory")
    save_directory_type: str = Field(default="str", alias="saveDirType")

    @field_validator("prompt", "audio_file", "save_directory", mode="before")
    @classmethod
    def coerce_keys(cls, v: Any) -> str:
        return coerce_slot_key(v)

    @field_validator("output_format", mode="before")
    @classmethod
    def coerce_output_format(cls, v: Any) -> str:
        return "file" if str(v or "").strip().lower() == "file" else "text"


@dataclass(frozen=True, slots=True)
class AudioRequestPlan:
    request: GenerationRequest
    prompt: str
    audio_count: int


def analysis_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S")
    return f"audio-analysis-{stamp}.txt"


class AudioUnderstandingNode(GeminiNode):
    node_type = "gemini-audio-understand"
    config_model = AudioUnderstandingConfig

    config: AudioUnderstandingConfig

    def error_operation_for(self, invocation: Invocation) -> str:
        return "file save" if self.config.output_format == "file" else "analysis"

    def resolve_model(self, invocation: Invocation) -> str:
        model = invocation.msg.get("model") or self.config.model
        if not model:
            raise ConfigurationError("Model not specified", code="MODEL_NOT_SPECIFIED")
        return str(model)

    def audio_sources(self, invocation: Invocation) -> list[MediaSource]:
        msg = invocation.msg
        sources: list[MediaSource] = []

        if self.config.audio_file.strip():
            path = self.resolver.resolve(self.config.slot("audio_file"), invocation.context)
            if isinstance(path, str) and path.strip():
                path = path.strip()
                sources.append(FileSource(path, guess_mime_type(path, AUDIO_MIME_TYPES, AUDIO_FALLBACK)))

        audio_data = msg.get("audioData")
        if audio_data not in (None, ""):
            sources.append(
                classify_media(
                    audio_data,
                    default_mime=AUDIO_FALLBACK,
                    mime_table=AUDIO_MIME_TYPES,
                    mime_hint=msg.get("audioMimeType") or None,
                )
            )

        for entry in as_list(msg.get("audioFiles")):
            sources.append(
                classify_media(
                    entry,
                    default_mime=AUDIO_FALLBACK,
                    mime_table=AUDIO_MIME_TYPES,
                    plain_string=PlainString.FILE,
                )
            )
        return sources

    @capture_errors
    async def build_request(self, invocation: Invocation) -> Success[AudioRequestPlan]:
        ctx = invocation.context
        model = self.resolve_model(invocation)
        invocation.model = model

        prompt = (
            self.resolve_payload_text(self.config.slot("prompt", fallback_property="payload"), ctx)
            or DEFAULT_PROMPT
        )

        sources = self.audio_sources(invocation)
        if not sources:
            raise ConfigurationError(
                "No audio data provided. Use audioFile configuration, msg.audioData, or msg.audioFiles",
                code="NO_AUDIO",
            )
        invocation.status.set_multimodal_status(model, audio=len(sources))
        audio = await self.loader.acquire_all(sources)
        logger.info("Processing %d audio file(s) with prompt: %r", len(audio), prompt[:80])

        request = GenerationRequest(
            model=model,
            contents=[user_content([*audio, TextPart(prompt)])],
            system_instruction=self.resolve_system_instruction(ctx),
            parameters=self.generation_parameters(self.config, ctx),
            safety_settings=self.safety_settings(),
        )
        request.validate()
        return Success(AudioRequestPlan(request=request, prompt=prompt, audio_count=len(audio)))

    @capture_errors
    async def process(self, invocation: Invocation) -> Success[Any]:
        client = self.client()
        built = await self.build_request(invocation)
        if isinstance(built, Failure):
            return built
        plan: AudioRequestPlan = built.payload
        model = plan.request.model

        response = await client.generate_content(plan.request.to_document())
        result = normalize_text(response, first_part_only=True)
        if isinstance(result, Failure):
            return result
        text: str = result.payload

        metadata: dict[str, Any] = {
            "model": model,
            "prompt": plan.prompt,
            "audioCount": plan.audio_count,
            "usage": result.usage,
            "safetyRatings": result.safety_ratings,
        }

        if self.config.output_format == "file":
            directory = self.resolve_save_directory(
                self.config.slot("save_directory"),
                invocation.context,
                os.path.join(self.settings.default_save_directory, ANALYSIS_SUBDIRECTORY),
            )
            await self.loader.mkdir(directory)
            path = os.path.join(directory, analysis_filename())
            await self.loader.write_file(path, text)
            self.host.log(f"Analysis saved to: {path}")
            invocation.status.set_success(
                model, "saved analysis", files=1, size=len(text.encode("utf-8"))
            )
            metadata.update(savedToFile=True, filePath=path)
            return Success(path, usage=result.usage, metadata=metadata)

        tokens = total_tokens(response) or estimate_tokens(text)
        invocation.status.set_success(model, "analyzed audio", tokens=tokens)
        return Success(text, usage=result.usage, safety_ratings=result.safety_ratings, metadata=metadata)


__all__ = ["AudioUnderstandingConfig", "AudioUnderstandingNode", "analysis_filename"]
