"""Text generation node (``gemini-generate-content``).

Modes:
- ``single``: one request, one response.
- ``streaming``: every streamed fragment is emitted as a partial message,
  followed by a final aggregate message. Partials already emitted are not
  retracted if the stream later fails.
- ``chat``: the whole session history (keyed by ``msg.topic``) is sent with
  each exchange; the history is saved only after a successful reply.
"""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from pydantic import Field, field_validator

from ..core.chat_sessions import (
    DEFAULT_SESSION_ID,
    ChatHistory,
    ChatSessionStore,
    ChatTurn,
    InMemoryChatSessionStore,
    RedisChatSessionStore,
)
from ..core.errors import ConfigurationError, EmptyResultError, ValidationError
from ..core.host import NodeHost
from ..core.message_path import get_message_property
from ..core.results import Failure, Success, capture_errors
from ..genai.client import GenAIClient
from ..genai.normalizer import (
    normalize_text,
    safety_ratings_of,
    stream_chunk_text,
    total_tokens,
    usage_of,
)
from ..genai.request import GenerationRequest, ThinkingOptions, user_content
from ..media.mime import TEXT_GENERATION_FALLBACK, TEXT_GENERATION_MIME_TYPES, guess_mime_type
from ..media.parts import ContentPart, TextPart, count_media
from ..media.sources import FileSource, MediaSource, UrlSource, classify_media
from .base import (
    BaseNodeConfig,
    GeminiNode,
    GenerationParameterFields,
    Invocation,
    coerce_slot_key,
)
from .status import estimate_tokens

logger = logging.getLogger(__name__)

MODES = ("single", "streaming", "chat")
DEFAULT_MODEL = "gemini-2.5-flash"

_MSG_MEDIA_DEFAULTS = {"image": "image/jpeg", "video": "video/mp4"}


class TextGenerationConfig(BaseNodeConfig, GenerationParameterFields):
    model_selection: str = Field(default=DEFAULT_MODEL, alias="modelSelection")
    custom_model: str = Field(default="", alias="customModel")
    custom_model_type: str = Field(default="str", alias="customModelType")
    prompt: str = "payload"
    prompt_type: str = Field(default="msg", alias="promptType")
    mode: str = "single"
    multimodal_inputs: list[dict[str, Any]] = Field(default_factory=list, alias="multimodalInputsData")
    thinking_budget: str = Field(default="", alias="thinkingBudget")
    thinking_budget_type: str = Field(default="str", alias="thinkingBudgetType")
    include_thoughts: bool = Field(default=False, alias="includeThoughts")
    grounding: bool = False

    @field_validator("prompt", "custom_model", "thinking_budget", mode="before")
    @classmethod
    def coerce_keys(cls, v: Any) -> str:
        return coerce_slot_key(v)

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> str:
        return str(v or "single").strip().lower()

    @field_validator("multimodal_inputs", mode="before")
    @classmethod
    def parse_multimodal_inputs(cls, v: Any) -> list[dict[str, Any]]:
        """The editor stores the list as a JSON string; bad JSON means no inputs."""
        if not v:
            return []
        if isinstance(v, str):
            try:
                v = json.loads(v)
            except json.JSONDecodeError:
                logger.warning("Ignoring unparseable multimodalInputsData")
                return []
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, dict)]


@dataclass(frozen=True, slots=True)
class TextRequestPlan:
    request: GenerationRequest
    user_turn: ChatTurn
    media_counts: dict[str, int]


class TextGenerationNode(GeminiNode):
    node_type = "gemini-generate-content"
    config_model = TextGenerationConfig

    config: TextGenerationConfig

    def __init__(
        self,
        config: dict[str, Any] | TextGenerationConfig,
        host: NodeHost,
        *,
        chat_store: ChatSessionStore | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, host, **kwargs)
        self.chat_store = chat_store or self._default_chat_store()

    def _default_chat_store(self) -> ChatSessionStore:
        s = self.settings
        if s.uses_redis_chat_store:
            return RedisChatSessionStore(
                s.redis_url,
                node_id=self.id or "default",
                ttl=timedelta(days=s.chat_history_ttl_days),
                max_turns=s.chat_max_turns,
            )
        return InMemoryChatSessionStore(max_sessions=s.chat_max_sessions, max_turns=s.chat_max_turns)

    def error_operation_for(self, invocation: Invocation) -> str:
        return {"chat": "chat", "streaming": "streaming"}.get(self.config.mode, "generation")

    # ------------------------------------------------------------------
    # field resolution
    # ------------------------------------------------------------------
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

    def resolve_prompt(self, invocation: Invocation) -> str | None:
        return self.resolve_payload_text(
            self.config.slot("prompt", fallback_property="payload"), invocation.context
        )

    def _multimodal_entry(self, item: dict[str, Any], msg: dict[str, Any]) -> ContentPart | MediaSource:
        kind = str(item.get("type") or "")
        value = item.get("value")
        if kind == "text":
            return TextPart("" if value is None else str(value))
        if kind in ("image-url", "video-url"):
            url = str(value or "")
            return UrlSource(url, guess_mime_type(url, TEXT_GENERATION_MIME_TYPES, TEXT_GENERATION_FALLBACK))
        if kind in ("image-file", "video-file"):
            path = str(value or "")
            return FileSource(path, guess_mime_type(path, TEXT_GENERATION_MIME_TYPES, TEXT_GENERATION_FALLBACK))
        if kind in ("image-msg", "video-msg"):
            data = get_message_property(msg, str(value or "")) if value else None
            if not data:
                data = msg.get("payload")
            if not data:
                raise ValidationError(f"No data found at {value}", code="NO_MEDIA_DATA")
            return classify_media(
                data,
                default_mime=_MSG_MEDIA_DEFAULTS[kind.split("-")[0]],
                mime_table=TEXT_GENERATION_MIME_TYPES,
            )
        raise ValidationError(
            f"Unsupported multimodal input type: {kind}",
            code="UNSUPPORTED_MULTIMODAL_TYPE",
            details={"type": kind},
        )

    async def collect_parts(self, invocation: Invocation, prompt: str) -> list[ContentPart]:
        """Configured then runtime multimodal inputs in declared order, prompt last."""
        items = list(self.config.multimodal_inputs)
        runtime = invocation.msg.get("multimodal")
        if isinstance(runtime, list):
            items.extend(item for item in runtime if isinstance(item, dict))

        entries = [self._multimodal_entry(item, invocation.msg) for item in items]
        sources = [e for e in entries if not isinstance(e, TextPart)]
        acquired = iter(await self.loader.acquire_all(sources))
        parts: list[ContentPart] = [e if isinstance(e, TextPart) else next(acquired) for e in entries]
        parts.append(TextPart(prompt))
        logger.debug("Assembled %d content part(s)", len(parts))
        return parts

    @capture_errors
    async def build_request(self, invocation: Invocation) -> Success[TextRequestPlan]:
        cfg = self.config
        ctx = invocation.context
        if cfg.mode not in MODES:
            raise ConfigurationError(
                f"Mode '{cfg.mode}' is not yet supported. Currently supports: {', '.join(MODES)}",
                code="UNSUPPORTED_MODE",
            )
        model = self.resolve_model(invocation)
        invocation.model = model

        prompt = self.resolve_prompt(invocation)
        if not prompt:
            raise ConfigurationError("No prompt provided", code="NO_PROMPT")

        parts = await self.collect_parts(invocation, prompt)
        thinking_slot = cfg.slot("thinking_budget")
        thinking = ThinkingOptions(
            budget=self.resolver.resolve_int(thinking_slot, ctx, "thinkingBudget"),
            include_thoughts=cfg.include_thoughts or bool(invocation.msg.get("includeThoughts")),
        )
        request = GenerationRequest(
            model=model,
            contents=[user_content(parts)],
            system_instruction=self.resolve_system_instruction(ctx),
            parameters=self.generation_parameters(cfg, ctx),
            thinking=thinking,
            safety_settings=self.safety_settings(),
            grounding=cfg.grounding,
        )
        request.validate()
        return Success(
            TextRequestPlan(
                request=request,
                user_turn=ChatTurn(role="user", parts=tuple(parts)),
                media_counts=count_media(parts),
            )
        )

    # ------------------------------------------------------------------
    # modes
    # ------------------------------------------------------------------
    @capture_errors
    async def process(self, invocation: Invocation) -> Success[str]:
        client = self.client()
        if self.config.mode == "chat":
            return await self._chat(invocation, client)

        built = await self.build_request(invocation)
        if isinstance(built, Failure):
            return built
        plan: TextRequestPlan = built.payload
        if self.config.mode == "streaming":
            return await self._stream(invocation, client, plan)
        return await self._single(invocation, client, plan)

    def _metadata(self, model: str, response: dict[str, Any], result: Success[str]) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "model": model,
            "usage": result.usage,
            "safetyRatings": result.safety_ratings,
            "grounding": self.config.grounding,
        }
        if result.metadata and result.metadata.get("thoughts"):
            metadata["thoughts"] = result.metadata["thoughts"]
        candidates = response.get("candidates") or []
        if self.config.grounding and candidates and candidates[0].get("groundingMetadata"):
            metadata["groundingMetadata"] = candidates[0]["groundingMetadata"]
        return metadata

    async def _single(self, invocation: Invocation, client: GenAIClient, plan: TextRequestPlan) -> Success[str] | Failure:
        model = plan.request.model
        status = invocation.status
        images = plan.media_counts.get("image", 0)
        videos = plan.media_counts.get("video", 0)
        if images or videos:
            status.set_multimodal_status(model, images=images, videos=videos)
        else:
            status.set_progress(model, "generating+search" if self.config.grounding else "generating")

        response = await client.generate_content(plan.request.to_document())
        result = normalize_text(response)
        if isinstance(result, Failure):
            return result

        tokens = total_tokens(response) or estimate_tokens(result.payload)
        status.set_success(model, "completed", tokens=tokens)
        return Success(result.payload, metadata=self._metadata(model, response, result))

    async def _stream(self, invocation: Invocation, client: GenAIClient, plan: TextRequestPlan) -> Success[str]:
        model = plan.request.model
        status = invocation.status
        status.set_progress(model, "streaming+search" if self.config.grounding else "streaming")

        full_text = ""
        chunk_count = 0
        usage: dict[str, Any] | None = None
        safety_ratings: list[dict[str, Any]] | None = None
        async with aclosing(client.stream_generate_content(plan.request.to_document())) as stream:
            async for chunk in stream:
                text = stream_chunk_text(chunk)
                usage = usage_of(chunk) or usage
                safety_ratings = safety_ratings_of(chunk) or safety_ratings
                if not text:
                    continue
                chunk_count += 1
                full_text += text
                self.router.emit_success(
                    invocation.send,
                    invocation.msg,
                    text,
                    {
                        "model": model,
                        "streaming": {"chunk": chunk_count, "isPartial": True, "fullText": full_text},
                    },
                    force_metadata=True,
                )
                status.set_streaming_status(model, chunk_count, full_text)

        if not full_text:
            raise EmptyResultError(
                "No response text generated. This may be due to safety filters or grounding issues.",
                code="NO_TEXT",
            )

        tokens = (usage or {}).get("totalTokenCount") or estimate_tokens(full_text)
        status.set_success(model, "streaming completed", tokens=tokens)
        logger.info("Streamed %d chunk(s) from %s", chunk_count, model)
        return Success(
            full_text,
            usage=usage,
            metadata={
                "model": model,
                "usage": usage,
                "safetyRatings": safety_ratings,
                "grounding": self.config.grounding,
                "streaming": {
                    "chunk": chunk_count + 1,
                    "isPartial": False,
                    "totalChunks": chunk_count,
                    "fullText": full_text,
                    "isComplete": True,
                },
            },
        )

    async def _chat(self, invocation: Invocation, client: GenAIClient) -> Success[str] | Failure:
        msg = invocation.msg
        session_id = str(msg.get("topic") or DEFAULT_SESSION_ID)
        store = self.chat_store

        async with store.session_lock(session_id):
            if msg.get("clearChat"):
                store.clear(session_id)
                logger.info("Cleared chat session %s", session_id)
                if not self.resolve_prompt(invocation):
                    invocation.status.set_success(None, "chat cleared", duration=False)
                    return Success(
                        "",
                        metadata={"chat": {"sessionId": session_id, "historyLength": 0, "cleared": True}},
                    )

            built = await self.build_request(invocation)
            if isinstance(built, Failure):
                return built
            plan: TextRequestPlan = built.payload
            model = plan.request.model

            history = store.load(session_id) or ChatHistory(session_id)
            invocation.status.set_chat_status(model, session_id, len(history), history.is_new)
            plan.request.contents = history.to_contents(plan.user_turn)

            response = await client.generate_content(plan.request.to_document())
            result = normalize_text(response)
            if isinstance(result, Failure):
                return result

            updated = history.with_exchange(
                plan.user_turn, ChatTurn(role="model", parts=(TextPart(result.payload),))
            )
            stored = store.save(updated)

        tokens = total_tokens(response) or estimate_tokens(result.payload)
        invocation.status.set_success(model, "chat completed", tokens=tokens)
        metadata = self._metadata(model, response, result)
        metadata["chat"] = {"sessionId": session_id, "historyLength": len(stored)}
        return Success(result.payload, metadata=metadata)


__all__ = ["TextGenerationConfig", "TextGenerationNode"]
