"""Remote generative-AI service: request documents, REST client and response handling."""

from .client import GenAIClient, GeminiClient
from .request import GenerationParameters, GenerationRequest, ThinkingOptions

__all__ = [
    "GenAIClient",
    "GeminiClient",
    "GenerationParameters",
    "GenerationRequest",
    "ThinkingOptions",
]
