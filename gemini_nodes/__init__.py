"""Generative-AI flow nodes backed by the Gemini API."""

from .core.errors import NodeError
from .core.host import LocalHost
from .core.results import Failure, Success
from .nodes import (
    ApiKeyNode,
    AudioUnderstandingNode,
    ImageGenerationNode,
    NodeRegistry,
    SpeechGenerationNode,
    TextGenerationNode,
    default_registry,
)

__version__ = "0.1.0"

__all__ = [
    "ApiKeyNode",
    "AudioUnderstandingNode",
    "Failure",
    "ImageGenerationNode",
    "LocalHost",
    "NodeError",
    "NodeRegistry",
    "SpeechGenerationNode",
    "Success",
    "TextGenerationNode",
    "default_registry",
]
