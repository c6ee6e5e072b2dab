"""REST client for the Gemini generative language API.

Nodes build an SDK-shaped request document (see ``GenerationRequest``); the
client translates it into the public REST body and posts it with ``aiohttp``.
Every call is traced as a Langfuse generation. No retries are performed.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any, Protocol

import aiohttp
from langfuse import get_client

from ..core.errors import TransportError
from ..settings import Settings, get_settings

logger = logging.getLogger(__name__)

# config keys that live outside generationConfig in the REST body
_TOP_LEVEL_CONFIG_KEYS = frozenset({"tools", "systemInstruction", "safetySettings"})


class GenAIClient(Protocol):
    async def generate_content(self, document: dict[str, Any]) -> dict[str, Any]: ...

    def stream_generate_content(self, document: dict[str, Any]) -> AsyncIterator[dict[str, Any]]: ...


def model_path(model: str) -> str:
    """Accept bare model names and ``models/...`` resource names."""
    return model if model.startswith("models/") else f"models/{model}"


def to_rest_body(document: dict[str, Any]) -> dict[str, Any]:
    """Translate a request document into the REST ``generateContent`` body."""
    config = dict(document.get("config") or {})
    body: dict[str, Any] = {"contents": document.get("contents") or []}

    tools = config.pop("tools", None)
    system_instruction = config.pop("systemInstruction", None) or document.get("systemInstruction")
    safety_settings = config.pop("safetySettings", None) or document.get("safetySettings")

    generation_config = {k: v for k, v in config.items() if k not in _TOP_LEVEL_CONFIG_KEYS}
    if generation_config:
        body["generationConfig"] = generation_config
    if tools:
        body["tools"] = tools
    if system_instruction:
        body["systemInstruction"] = system_instruction
    if safety_settings:
        body["safetySettings"] = safety_settings
    return body


async def iter_sse_events(lines: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """Decode ``data:`` lines of a server-sent event stream into JSON documents."""
    async for raw in lines:
        line = raw.decode("utf-8", errors="ignore").strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if not data or data == "[DONE]":
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable stream event: %s", data[:200])
            continue
        if isinstance(event, dict):
            yield event


def _summarize_input(document: dict[str, Any]) -> str:
    contents = document.get("contents") or []
    parts = [p for c in contents if isinstance(c, dict) for p in c.get("parts") or []]
    texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
    media = sum(1 for p in parts if isinstance(p, dict) and "inlineData" in p)
    summary = texts[-1] if texts else ""
    if media:
        summary = f"[{media} media part(s)] {summary}".strip()
    return summary


def _usage_details(usage: dict[str, Any] | None) -> dict[str, int] | None:
    if not usage:
        return None
    return {
        "input": int(usage.get("promptTokenCount") or 0),
        "output": int(usage.get("candidatesTokenCount") or 0)
        + int(usage.get("thoughtsTokenCount") or 0),
        "total": int(usage.get("totalTokenCount") or 0),
    }


class GeminiClient:
    """``GenAIClient`` over ``generativelanguage.googleapis.com``."""

    def __init__(
        self,
        api_key: str,
        settings: Settings | None = None,
        *,
        langfuse_client: Any = None,
    ) -> None:
        self._api_key = api_key
        self._settings = settings or get_settings()
        self._base_url = self._settings.gemini_base_url.rstrip("/")
        self._langfuse = langfuse_client if langfuse_client is not None else get_client()

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    def _url(self, model: str, method: str) -> str:
        return f"{self._base_url}/{model_path(model)}:{method}"

    def _start_generation(self, name: str, document: dict[str, Any]) -> Any:
        return self._langfuse.start_observation(
            name=name,
            as_type="generation",
            model=document.get("model"),
            input=_summarize_input(document),
            metadata={"config": document.get("config") or {}},
        )

    @staticmethod
    def _end_with_error(generation: Any, error: BaseException) -> None:
        generation.update(
            output=f"ERROR: {error}",
            metadata={"error": str(error), "error_type": type(error).__name__},
        )
        generation.end()

    @staticmethod
    async def _raise_for_status(resp: aiohttp.ClientResponse) -> None:
        if resp.status == 200:
            return
        body = await resp.text()
        logger.error("Gemini HTTP %d: %s", resp.status, body[:500])
        raise TransportError(
            f"Gemini API error (HTTP {resp.status}): {_error_message(body)}",
            code=f"HTTP_{resp.status}",
            details={"status": resp.status, "body": body[:1000]},
        )

    async def generate_content(self, document: dict[str, Any]) -> dict[str, Any]:
        model = str(document.get("model") or "")
        url = self._url(model, "generateContent")
        body = to_rest_body(document)
        generation = self._start_generation("gemini_generate_content", document)
        timeout = aiohttp.ClientTimeout(total=self._settings.gemini_request_timeout_seconds)

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, headers=self._headers(), json=body, timeout=timeout) as resp:
                    await self._raise_for_status(resp)
                    data = await resp.json(content_type=None)
        except TransportError as e:
            self._end_with_error(generation, e)
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            self._end_with_error(generation, e)
            raise TransportError(
                f"Network error calling Gemini: {e or type(e).__name__}", code="NETWORK_ERROR"
            ) from e

        usage = data.get("usageMetadata") if isinstance(data, dict) else None
        generation.update(output=_response_summary(data), usage_details=_usage_details(usage))
        generation.end()
        logger.info("Gemini generateContent completed: model=%s", model)
        return data if isinstance(data, dict) else {}

    async def stream_generate_content(self, document: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        model = str(document.get("model") or "")
        url = self._url(model, "streamGenerateContent") + "?alt=sse"
        body = to_rest_body(document)
        generation = self._start_generation("gemini_stream_generate_content", document)
        timeout = aiohttp.ClientTimeout(total=self._settings.gemini_stream_timeout_seconds)
        usage: dict[str, Any] | None = None
        chunks = 0

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, headers=self._headers(), json=body, timeout=timeout) as resp:
                    await self._raise_for_status(resp)
                    async for event in iter_sse_events(resp.content):
                        chunks += 1
                        usage = event.get("usageMetadata") or usage
                        yield event
        except TransportError as e:
            self._end_with_error(generation, e)
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            self._end_with_error(generation, e)
            raise TransportError(
                f"Network error streaming from Gemini: {e or type(e).__name__}", code="NETWORK_ERROR"
            ) from e
        except GeneratorExit:
            # consumer stopped early; the session is already closed by the async with blocks
            generation.update(output=f"closed after {chunks} chunk(s)", usage_details=_usage_details(usage))
            generation.end()
            logger.info("Gemini stream closed by consumer: model=%s chunks=%d", model, chunks)
            raise

        generation.update(output=f"{chunks} chunk(s)", usage_details=_usage_details(usage))
        generation.end()
        logger.info("Gemini stream completed: model=%s chunks=%d", model, chunks)


def _error_message(body: str) -> str:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body[:200]
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return body[:200]


def _response_summary(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    texts: list[str] = []
    for candidate in data.get("candidates") or []:
        for part in (candidate.get("content") or {}).get("parts") or []:
            if isinstance(part.get("text"), str):
                texts.append(part["text"])
            elif "inlineData" in part:
                texts.append(f"[{part['inlineData'].get('mimeType', 'media')}]")
        break
    return "".join(texts)


__all__ = ["GenAIClient", "GeminiClient", "iter_sse_events", "model_path", "to_rest_body"]
