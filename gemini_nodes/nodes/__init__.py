"""Gemini flow nodes: one node class per capability plus the API key node."""

from .audio_understanding import AudioUnderstandingNode
from .base import GeminiNode, Invocation
from .credentials import ApiKeyNode
from .image_generation import ImageGenerationNode
from .output import OutputRouter
from .registry import NodeRegistry, default_registry
from .speech_generation import SpeechGenerationNode
from .status import NodeStatus
from .text_generation import TextGenerationNode

__all__ = [
    "ApiKeyNode",
    "AudioUnderstandingNode",
    "GeminiNode",
    "ImageGenerationNode",
    "Invocation",
    "NodeRegistry",
    "NodeStatus",
    "OutputRouter",
    "SpeechGenerationNode",
    "TextGenerationNode",
    "default_registry",
]
