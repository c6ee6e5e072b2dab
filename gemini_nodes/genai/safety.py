"""Safety threshold settings shared by every capability."""

from __future__ import annotations

from typing import Any

HARM_CATEGORY_HARASSMENT = "HARM_CATEGORY_HARASSMENT"
HARM_CATEGORY_HATE_SPEECH = "HARM_CATEGORY_HATE_SPEECH"
HARM_CATEGORY_SEXUALLY_EXPLICIT = "HARM_CATEGORY_SEXUALLY_EXPLICIT"
HARM_CATEGORY_DANGEROUS_CONTENT = "HARM_CATEGORY_DANGEROUS_CONTENT"

THRESHOLD_UNSPECIFIED = "HARM_BLOCK_THRESHOLD_UNSPECIFIED"

# node config key -> API category, in request order
SAFETY_CONFIG_FIELDS: tuple[tuple[str, str], ...] = (
    ("safetyHarassment", HARM_CATEGORY_HARASSMENT),
    ("safetyHateSpeech", HARM_CATEGORY_HATE_SPEECH),
    ("safetySexuallyExplicit", HARM_CATEGORY_SEXUALLY_EXPLICIT),
    ("safetyDangerousContent", HARM_CATEGORY_DANGEROUS_CONTENT),
)


def build_safety_settings(thresholds: dict[str, Any]) -> list[dict[str, str]]:
    """Safety settings for the configured categories only.

    ``thresholds`` is keyed by node config field name. Empty and unspecified
    thresholds are left out so the service applies its defaults.
    """
    settings: list[dict[str, str]] = []
    for config_key, category in SAFETY_CONFIG_FIELDS:
        threshold = thresholds.get(config_key)
        if not threshold or threshold == THRESHOLD_UNSPECIFIED:
            continue
        settings.append({"category": category, "threshold": str(threshold)})
    return settings


def summarize_block_reason(text: str) -> str:
    """Short label for a block reason, used in status text."""
    if "SEXUALLY_EXPLICIT" in text:
        return "sexual"
    if "HARASSMENT" in text:
        return "harassment"
    if "HATE_SPEECH" in text:
        return "hate"
    if "DANGEROUS_CONTENT" in text:
        return "dangerous"
    if "IMAGE_SAFETY" in text:
        return "image safety"
    return "safety"
