"""Response normalization.

Turns a response document ``{candidates, usageMetadata?, promptFeedback?}``
into a ``Success`` carrying the capability's payload, or a ``Failure`` when
the service blocked the request or produced nothing usable.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any

from ..core.errors import BlockedError, EmptyResultError
from ..core.results import Failure, Success, capture_errors
from ..media.parts import InlineMediaPart
from .audio import is_pcm, pcm_to_wav

logger = logging.getLogger(__name__)

FINISH_STOP = "STOP"


def usage_of(response: dict[str, Any]) -> dict[str, Any] | None:
    usage = response.get("usageMetadata")
    return usage if isinstance(usage, dict) and usage else None


def candidates_of(response: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = response.get("candidates")
    return [c for c in candidates if isinstance(c, dict)] if isinstance(candidates, list) else []


def safety_ratings_of(response: dict[str, Any]) -> list[dict[str, Any]] | None:
    candidates = candidates_of(response)
    if not candidates:
        return None
    ratings = candidates[0].get("safetyRatings")
    return ratings if isinstance(ratings, list) else None


def parts_of(candidate: dict[str, Any]) -> list[dict[str, Any]]:
    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    return [p for p in parts if isinstance(p, dict)] if isinstance(parts, list) else []


def total_tokens(response: dict[str, Any]) -> int | None:
    usage = usage_of(response) or {}
    total = usage.get("totalTokenCount")
    return int(total) if isinstance(total, int | float) else None


def check_candidates(response: dict[str, Any]) -> dict[str, Any]:
    """Return the first candidate, or raise ``BlockedError``."""
    feedback = response.get("promptFeedback")
    block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
    candidates = candidates_of(response)

    if block_reason:
        raise BlockedError(
            f"Content generation blocked: {block_reason}",
            code=f"BLOCKED_{block_reason}",
            details={"blockReason": block_reason, "safetyRatings": feedback.get("safetyRatings")},
        )
    if not candidates:
        raise BlockedError(
            "No candidates returned by API - content may have been blocked by safety filters",
            code="NO_CANDIDATES",
        )

    candidate = candidates[0]
    finish_reason = candidate.get("finishReason")
    if finish_reason and finish_reason != FINISH_STOP:
        ratings = candidate.get("safetyRatings")
        raise BlockedError(
            f"Content generation blocked: {finish_reason}. Safety ratings: {json.dumps(ratings)}",
            code=f"FINISH_{finish_reason}",
            details={"finishReason": finish_reason, "safetyRatings": ratings},
        )
    return candidate


def split_text_parts(candidate: dict[str, Any]) -> tuple[str, str]:
    """Concatenated answer text and concatenated thought text."""
    answer: list[str] = []
    thoughts: list[str] = []
    for part in parts_of(candidate):
        text = part.get("text")
        if not isinstance(text, str):
            continue
        (thoughts if part.get("thought") else answer).append(text)
    return "".join(answer), "".join(thoughts)


def stream_chunk_text(chunk: dict[str, Any]) -> str:
    """Answer text carried by one streamed chunk.

    Chunks without candidates (usage-only trailers) yield ``""``. A chunk that
    reports a block raises ``BlockedError``.
    """
    feedback = chunk.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        check_candidates(chunk)
    candidates = candidates_of(chunk)
    if not candidates:
        return ""
    finish_reason = candidates[0].get("finishReason")
    if finish_reason and finish_reason != FINISH_STOP:
        check_candidates(chunk)
    return split_text_parts(candidates[0])[0]


@capture_errors
def normalize_text(
    response: dict[str, Any], *, first_part_only: bool = False
) -> Success[str] | Failure:
    """Text payload; thought parts are returned as ``metadata["thoughts"]``."""
    candidate = check_candidates(response)
    if first_part_only:
        parts = parts_of(candidate)
        first = parts[0].get("text") if parts else None
        text, thoughts = (first if isinstance(first, str) else ""), ""
    else:
        text, thoughts = split_text_parts(candidate)

    if not text:
        raise EmptyResultError(
            "No response text generated. This may be due to safety filters or grounding issues.",
            code="NO_TEXT",
        )
    return Success(
        payload=text,
        usage=usage_of(response),
        safety_ratings=candidate.get("safetyRatings"),
        metadata={"thoughts": thoughts} if thoughts else None,
    )


@capture_errors
def normalize_images(response: dict[str, Any]) -> Success[list[InlineMediaPart]] | Failure:
    """Every inline-media part, in order; accompanying text goes to metadata."""
    candidate = check_candidates(response)
    images: list[InlineMediaPart] = []
    texts: list[str] = []
    for part in parts_of(candidate):
        inline = part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            images.append(
                InlineMediaPart(data=inline["data"], mime_type=inline.get("mimeType") or "image/png")
            )
        elif isinstance(part.get("text"), str) and not part.get("thought"):
            texts.append(part["text"])

    if not images:
        raise EmptyResultError(
            "No images generated in response - check content policies and model capabilities",
            code="NO_IMAGES",
            details={"text": "".join(texts) or None},
        )
    logger.debug("Extracted %d image part(s)", len(images))
    return Success(
        payload=images,
        usage=usage_of(response),
        safety_ratings=candidate.get("safetyRatings"),
        metadata={"text": "".join(texts)} if texts else None,
    )


@capture_errors
def normalize_audio(response: dict[str, Any]) -> Success[InlineMediaPart] | Failure:
    """First audio part; raw PCM is repackaged as WAV."""
    candidate = check_candidates(response)
    audio: InlineMediaPart | None = None
    for part in parts_of(candidate):
        inline = part.get("inlineData")
        if not isinstance(inline, dict):
            continue
        mime_type = str(inline.get("mimeType") or "")
        if inline.get("data") and mime_type.lower().startswith("audio/"):
            audio = InlineMediaPart(data=inline["data"], mime_type=mime_type)
            break

    if audio is None:
        raise EmptyResultError("No audio generated in response", code="NO_AUDIO")

    source_mime = audio.mime_type
    logger.debug("Audio received with MIME type: %s", source_mime)
    if is_pcm(source_mime):
        try:
            pcm = base64.b64decode(audio.data)
        except (binascii.Error, ValueError) as e:
            raise EmptyResultError(
                f"Audio payload is not valid base64: {e}", code="INVALID_AUDIO"
            ) from e
        wav, wav_mime = pcm_to_wav(pcm, source_mime)
        audio = InlineMediaPart.from_bytes(wav, wav_mime)
        logger.info("Converted PCM audio to WAV (%d bytes of PCM)", len(pcm))

    return Success(
        payload=audio,
        usage=usage_of(response),
        safety_ratings=candidate.get("safetyRatings"),
        metadata={"sourceMimeType": source_mime},
    )


__all__ = [
    "check_candidates",
    "normalize_audio",
    "normalize_images",
    "normalize_text",
    "safety_ratings_of",
    "stream_chunk_text",
    "total_tokens",
    "usage_of",
]
