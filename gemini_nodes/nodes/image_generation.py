"""Image generation and editing node (``gemini-image-generate``)."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

from pydantic import Field, field_validator

from ..core.errors import ConfigurationError, ValidationError
from ..core.results import Failure, Success, capture_errors
from ..genai.normalizer import normalize_images
from ..genai.request import GenerationRequest, user_content
from ..media.mime import IMAGE_FALLBACK, IMAGE_MIME_TYPES, guess_mime_type
from ..media.parts import ContentPart, TextPart
from ..media.sources import FileSource, MediaSource, as_list, classify_media
from .base import BaseNodeConfig, GeminiNode, Invocation, coerce_slot_key
from .formats import decoded_size, format_media, normalize_output_format

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-image-preview"
MIN_IMAGES = 1
MAX_IMAGES = 8
ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4")
RESPONSE_MODALITIES = {
    "image": ["IMAGE"],
    "text": ["TEXT"],
    "both": ["IMAGE", "TEXT"],
}

_INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")


def validate_image_count(value: Any) -> int:
    """Integer in [1, 8]; anything else is a ``ValidationError``."""
    count: int | None = None
    if isinstance(value, bool):
        count = None
    elif isinstance(value, int):
        count = value
    elif isinstance(value, float) and value.is_integer():
        count = int(value)
    elif isinstance(value, str) and _INTEGER_RE.match(value):
        count = int(value)
    if count is None or not MIN_IMAGES <= count <= MAX_IMAGES:
        raise ValidationError(
            f"Number of images must be between {MIN_IMAGES} and {MAX_IMAGES}",
            code="INVALID_IMAGE_COUNT",
            details={"numberOfImages": value},
        )
    return count


def validate_aspect_ratio(value: Any) -> str:
    if value not in ASPECT_RATIOS:
        raise ValidationError(
            f"Invalid aspect ratio: {value}. Must be one of: {', '.join(ASPECT_RATIOS)}",
            code="INVALID_ASPECT_RATIO",
            details={"aspectRatio": value},
        )
    return value


class ImageGenerationConfig(BaseNodeConfig):
    model_selection: str = Field(default=DEFAULT_MODEL, alias="modelSelection")
    custom_model: str = Field(default="", alias="customModel")
    custom_model_type: str = Field(default="str", alias="customModelType")
    prompt: str = "payload"
    prompt_type: str = Field(default="msg", alias="promptType")
    number_of_images: str = Field(default="1", alias="numberOfImages")
    number_of_images_type: str = Field(default="num", alias="numberOfImagesType")
    aspect_ratio: str = Field(default="1:1", alias="aspectRatio")
    input_file: str = Field(default="", alias="inputFile")
    input_file_type: str = Field(default="str", alias="inputFileType")
    response_modalities: str = Field(default="image", alias="responseModalities")
    output_format: str = Field(default="base64", alias="outputFormat")
    save_directory: str = Field(default="", alias="saveDirectory")
    save_directory_type: str = Field(default="str", alias="saveDirType")

    @field_validator("prompt", "custom_model", "number_of_images", "input_file", "save_directory", mode="before")
    @classmethod
    def coerce_keys(cls, v: Any) -> str:
        return coerce_slot_key(v)

    @field_validator("output_format", mode="before")
    @classmethod
    def coerce_output_format(cls, v: Any) -> str:
        return normalize_output_format(v)


@dataclass(frozen=True, slots=True)
class ImageRequestPlan:
    request: GenerationRequest
    prompt: str
    image_count: int
    aspect_ratio: str
    is_edit: bool


class ImageGenerationNode(GeminiNode):
    node_type = "gemini-image-generate"
    config_model = ImageGenerationConfig

    config: ImageGenerationConfig

    def error_operation_for(self, invocation: Invocation) -> str:
        return "save" if self.config.output_format == "file" else "generation"

    def resolve_model(self, invocation: Invocation) -> str:
        cfg = self.config
        model = invocation.msg.get("model")
        if not model and cfg.model_selection == "custom":
            model = self.resolver.resolve(cfg.slot("custom_model"), invocation.context)
        elif not model:
            model = cfg.model_selection
        if not model:
            raise ConfigurationError("Model not specified", code="MODEL_NOT_SPECIFIED")
        return str(model)

    def input_sources(self, invocation: Invocation) -> list[MediaSource]:
        """Configured input file first, then ``msg.inputImages`` in order."""
        sources: list[MediaSource] = []
        cfg = self.config
        if cfg.input_file.strip():
            path = self.resolver.resolve(cfg.slot("input_file"), invocation.context)
            if isinstance(path, str) and path.strip():
                path = path.strip()
                sources.append(FileSource(path, guess_mime_type(path, IMAGE_MIME_TYPES, IMAGE_FALLBACK)))
        for image in as_list(invocation.msg.get("inputImages")):
            sources.append(
                classify_media(image, default_mime=IMAGE_FALLBACK, mime_table=IMAGE_MIME_TYPES)
            )
        return sources

    @capture_errors
    async def build_request(self, invocation: Invocation) -> Success[ImageRequestPlan]:
        cfg = self.config
        ctx = invocation.context
        msg = invocation.msg

        model = self.resolve_model(invocation)
        invocation.model = model
        prompt = self.resolve_payload_text(cfg.slot("prompt", fallback_property="payload"), ctx)
        if not prompt:
            raise ConfigurationError("No prompt provided", code="NO_PROMPT")

        count = validate_image_count(
            self.resolve_override(cfg.slot("number_of_images"), ctx, "numberOfImages")
        )
        aspect_ratio = validate_aspect_ratio(msg.get("aspectRatio") or cfg.aspect_ratio)

        modality = str(msg.get("responseModalities") or cfg.response_modalities or "image").lower()
        modalities = RESPONSE_MODALITIES.get(modality, RESPONSE_MODALITIES["image"])

        sources = self.input_sources(invocation)
        images = await self.loader.acquire_all(sources)
        parts: list[ContentPart] = [*images, TextPart(prompt)]
        for index, part in enumerate(parts):
            if isinstance(part, TextPart):
                logger.debug("Part %d: text prompt (%d chars)", index, len(part.value))
            else:
                logger.debug("Part %d: image %s, %d chars", index, part.mime_type, part.size_chars)

        request = GenerationRequest(
            model=model,
            contents=[user_content(parts)],
            system_instruction=self.resolve_system_instruction(ctx),
            safety_settings=self.safety_settings(),
            response_modalities=modalities,
            aspect_ratio=aspect_ratio,
        )
        request.validate()
        return Success(
            ImageRequestPlan(
                request=request,
                prompt=prompt,
                image_count=count,
                aspect_ratio=aspect_ratio,
                is_edit=bool(images),
            )
        )

    @capture_errors
    async def process(self, invocation: Invocation) -> Success[Any]:
        client = self.client()
        built = await self.build_request(invocation)
        if isinstance(built, Failure):
            return built
        plan: ImageRequestPlan = built.payload
        model = plan.request.model
        cfg = self.config
        status = invocation.status

        status.set_progress(
            model,
            "editing" if plan.is_edit else "generating",
            additional=f"{plan.image_count}x {plan.aspect_ratio} images",
        )
        response = await client.generate_content(plan.request.to_document())
        result = normalize_images(response)
        if isinstance(result, Failure):
            return result

        directory = None
        if cfg.output_format == "file":
            directory = self.resolve_save_directory(
                cfg.slot("save_directory"), invocation.context, self.settings.default_save_directory
            )
        stamp = int(time.time() * 1000)
        outputs = [
            await format_media(
                image,
                cfg.output_format,
                self.loader,
                directory=directory,
                filename=f"gemini_image_{stamp}_{index}.png",
            )
            for index, image in enumerate(result.payload)
        ]

        total_size = sum(decoded_size(image) for image in result.payload)
        status.set_success(
            model,
            "saved images" if cfg.output_format == "file" else "generated images",
            files=len(outputs),
            size=total_size,
        )

        metadata: dict[str, Any] = {
            "model": model,
            "prompt": plan.prompt,
            "imageCount": len(outputs),
            "aspectRatio": plan.aspect_ratio,
            "outputFormat": cfg.output_format,
            "usage": result.usage,
        }
        if result.metadata and result.metadata.get("text"):
            metadata["text"] = result.metadata["text"]
        return Success(outputs[0] if len(outputs) == 1 else outputs, metadata=metadata)


__all__ = [
    "ASPECT_RATIOS",
    "ImageGenerationConfig",
    "ImageGenerationNode",
    "validate_aspect_ratio",
    "validate_image_count",
]
