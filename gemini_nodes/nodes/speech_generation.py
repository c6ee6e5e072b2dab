"""Text-to-speech node (``gemini-speech-generate``)."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

from pydantic import Field, field_validator

from ..core.errors import ConfigurationError
from ..core.resolver import ConfigurationSlot, ResolutionContext
from ..core.results import Failure, Success, capture_errors
from ..genai.normalizer import normalize_audio
from ..genai.request import GenerationParameters, GenerationRequest, user_content
from ..media.mime import audio_extension
from ..media.parts import TextPart
from .base import BaseNodeConfig, GeminiNode, Invocation, coerce_slot_key
from .formats import decoded_size, format_media, normalize_output_format

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-preview-tts"
SPEAKER_MODES = ("single", "multi")
MULTI_SPEAKER = "multi-speaker"

_AUDIO_SUFFIX_RE = re.compile(r"\.(wav|mp3)$", re.IGNORECASE)


class SpeechGenerationConfig(BaseNodeConfig):
    model: str = DEFAULT_MODEL
    text: str = "payload"
    text_type: str = Field(default="msg", alias="textType")
    speaker_mode: str = Field(default="single", alias="speakerMode")
    voice_name: str = Field(default="", alias="voiceName")
    speaker1_name: str = Field(default="", alias="speaker1Name")
    speaker1_voice: str = Field(default="", alias="speaker1Voice")
    speaker2_name: str = Field(default="", alias="speaker2Name")
    speaker2_voice: str = Field(default="", alias="speaker2Voice")
    max_output_tokens: str = Field(default="", alias="maxOutputTokens")
    max_output_tokens_type: str = Field(default="str", alias="maxOutputTokensType")
    filename: str = ""
    filename_type: str = Field(default="str", alias="filenameType")
    output_format: str = Field(default="base64", alias="outputFormat")
    save_directory: str = Field(default="", alias="saveDirectory")
    save_directory_type: str = Field(default="str", alias="saveDirType")

    @field_validator("text", "max_output_tokens", "filename", "save_directory", mode="before")
    @classmethod
    def coerce_keys(cls, v: Any) -> str:
        return coerce_slot_key(v)

    @field_validator("speaker_mode", mode="before")
    @classmethod
    def coerce_speaker_mode(cls, v: Any) -> str:
        mode = str(v or "single").strip().lower()
        return mode if mode in SPEAKER_MODES else "single"

    @field_validator("output_format", mode="before")
    @classmethod
    def coerce_output_format(cls, v: Any) -> str:
        return normalize_output_format(v)


@dataclass(frozen=True, slots=True)
class SpeechRequestPlan:
    request: GenerationRequest
    text: str
    voice_config: str | None


def prebuilt_voice(voice_name: str) -> dict[str, Any]:
    return {"prebuiltVoiceConfig": {"voiceName": voice_name}}


def speech_filename(requested: str | None, mime_type: str, stamp_ms: int | None = None) -> str:
    """Requested name with an audio extension, or ``gemini_speech_<ms>.<ext>``."""
    ext = audio_extension(mime_type)
    if not requested:
        stamp = stamp_ms if stamp_ms is not None else int(time.time() * 1000)
        return f"gemini_speech_{stamp}.{ext}"
    return requested if _AUDIO_SUFFIX_RE.search(requested) else f"{requested}.{ext}"


class SpeechGenerationNode(GeminiNode):
    node_type = "gemini-speech-generate"
    config_model = SpeechGenerationConfig

    config: SpeechGenerationConfig

    def error_operation_for(self, invocation: Invocation) -> str:
        return "save" if self.config.output_format == "file" else "speech generation"

    def _literal(self, value: str, field_name: str, context: ResolutionContext, override: str) -> str | None:
        slot = ConfigurationSlot.of("str", value, field_name=field_name)
        resolved = self.resolver.resolve_with_override(slot, context, override)
        return str(resolved) if resolved not in (None, "") else None

    def speaker_names(self, context: ResolutionContext) -> tuple[str | None, str | None]:
        cfg = self.config
        return (
            self._literal(cfg.speaker1_name, "speaker 1 name", context, "speaker1Name"),
            self._literal(cfg.speaker2_name, "speaker 2 name", context, "speaker2Name"),
        )

    def speech_config(
        self, context: ResolutionContext, names: tuple[str | None, str | None]
    ) -> tuple[dict[str, Any] | None, str | None]:
        """``speechConfig`` block plus the voice label reported in metadata."""
        cfg = self.config
        if cfg.speaker_mode == "multi":
            voices = (
                self._literal(cfg.speaker1_voice, "speaker 1 voice", context, "speaker1Voice"),
                self._literal(cfg.speaker2_voice, "speaker 2 voice", context, "speaker2Voice"),
            )
            speakers = [
                {"speaker": name, "voiceConfig": prebuilt_voice(voice)}
                for name, voice in zip(names, voices)
                if name and voice
            ]
            if not speakers:
                return None, MULTI_SPEAKER
            logger.debug("Multi-speaker configuration: %s", speakers)
            return {"multiSpeakerVoiceConfig": {"speakerVoiceConfigs": speakers}}, MULTI_SPEAKER

        voice = self._literal(cfg.voice_name, "voice name", context, "voiceName")
        if not voice:
            return None, None
        return {"voiceConfig": prebuilt_voice(voice)}, voice

    def resolve_filename(self, context: ResolutionContext) -> str | None:
        slot = self.config.slot("filename")
        value = None if slot.is_literal and not slot.key else self.resolver.resolve(slot, context)
        if not value:
            value = context.message.get("filename")
        return str(value) if value else None

    @capture_errors
    async def build_request(self, invocation: Invocation) -> Success[SpeechRequestPlan]:
        cfg = self.config
        ctx = invocation.context

        model = invocation.msg.get("model") or cfg.model
        if not model:
            raise ConfigurationError("Model not specified", code="MODEL_NOT_SPECIFIED")
        model = str(model)
        invocation.model = model

        text = self.resolve_payload_text(cfg.slot("text", fallback_property="payload"), ctx)
        if not text:
            raise ConfigurationError("No text provided for speech generation", code="NO_TEXT")

        names = self.speaker_names(ctx) if cfg.speaker_mode == "multi" else (None, None)
        if all(names):
            text = f"TTS the following conversation between {names[0]} and {names[1]}:\n{text}"

        speech_config, voice_label = self.speech_config(ctx, names)
        invocation.status.set_progress(
            model, "generating speech", additional=f"{len(text)} chars, {voice_label or 'default'}"
        )

        request = GenerationRequest(
            model=model,
            contents=[user_content([TextPart(text)])],
            system_instruction=self.resolve_system_instruction(ctx),
            parameters=GenerationParameters(
                max_output_tokens=self.resolver.resolve_int(
                    cfg.slot("max_output_tokens"), ctx, "maxOutputTokens"
                )
            ),
            safety_settings=self.safety_settings(),
            response_modalities=["AUDIO"],
            speech_config=speech_config,
        )
        request.validate()
        return Success(SpeechRequestPlan(request=request, text=text, voice_config=voice_label))

    @capture_errors
    async def process(self, invocation: Invocation) -> Success[Any]:
        client = self.client()
        built = await self.build_request(invocation)
        if isinstance(built, Failure):
            return built
        plan: SpeechRequestPlan = built.payload
        model = plan.request.model
        cfg = self.config

        response = await client.generate_content(plan.request.to_document())
        result = normalize_audio(response)
        if isinstance(result, Failure):
            return result
        audio = result.payload

        directory = filename = None
        if cfg.output_format == "file":
            directory = self.resolve_save_directory(
                cfg.slot("save_directory"), invocation.context, self.settings.default_save_directory
            )
            filename = speech_filename(self.resolve_filename(invocation.context), audio.mime_type)
        output = await format_media(
            audio, cfg.output_format, self.loader, directory=directory, filename=filename
        )

        size = decoded_size(audio)
        if cfg.output_format == "file":
            invocation.status.set_success(model, "saved audio", files=1, size=size)
        else:
            invocation.status.set_success(model, "generated speech", size=size)

        metadata = {
            "model": model,
            "text": plan.text,
            "voiceConfig": plan.voice_config,
            "speakerMode": cfg.speaker_mode,
            "outputFormat": cfg.output_format,
            "audioMimeType": audio.mime_type,
            "usage": result.usage,
        }
        return Success(output, usage=result.usage, metadata=metadata)


__all__ = [
    "SpeechGenerationConfig",
    "SpeechGenerationNode",
    "prebuilt_voice",
    "speech_filename",
]
