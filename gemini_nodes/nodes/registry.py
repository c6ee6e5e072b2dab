"""Node registry mapping node-type names to node classes."""

from __future__ import annotations

import logging
from typing import Any

from ..core.host import NodeHost
from .audio_understanding import AudioUnderstandingNode
from .base import GeminiNode
from .image_generation import ImageGenerationNode
from .speech_generation import SpeechGenerationNode
from .text_generation import TextGenerationNode

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Registry of the node types a host can instantiate."""

    def __init__(self) -> None:
        self._node_types: dict[str, type[GeminiNode]] = {}

    def register(self, node_class: type[GeminiNode]) -> None:
        """Register a node class under its ``node_type``.

        Raises:
            ValueError: If the node type is empty or already registered
        """
        node_type = node_class.node_type
        if not node_type:
            raise ValueError(f"{node_class.__name__} does not declare a node_type")
        if node_type in self._node_types:
            raise ValueError(f"Node type '{node_type}' is already registered")

        self._node_types[node_type] = node_class
        logger.debug("Registered node type: %s", node_type)

    def get(self, node_type: str) -> type[GeminiNode] | None:
        return self._node_types.get(node_type)

    def has(self, node_type: str) -> bool:
        return node_type in self._node_types

    def create(
        self, node_type: str, config: dict[str, Any], host: NodeHost, **kwargs: Any
    ) -> GeminiNode:
        """Instantiate ``node_type``; extra keyword arguments go to the node.

        Raises:
            KeyError: If the node type is not registered
        """
        node_class = self.get(node_type)
        if node_class is None:
            raise KeyError(f"Unknown node type '{node_type}'. Known types: {', '.join(self.list_types())}")
        return node_class(config, host, **kwargs)

    def list_types(self) -> list[str]:
        return list(self._node_types.keys())


def default_registry() -> NodeRegistry:
    registry = NodeRegistry()
    for node_class in (
        TextGenerationNode,
        ImageGenerationNode,
        AudioUnderstandingNode,
        SpeechGenerationNode,
    ):
        registry.register(node_class)
    logger.info("Registered %d node types", len(registry.list_types()))
    return registry


__all__ = ["NodeRegistry", "default_registry"]
