"""API key credential node."""

from __future__ import annotations

import logging

from ..core.host import NodeHost

logger = logging.getLogger(__name__)


class ApiKeyNode:
    """Config node holding the ``apikey`` credential shared by Gemini nodes."""

    node_type = "gemini-api-key"

    def __init__(self, config: dict, host: NodeHost) -> None:
        self.id = str(config.get("id") or "")
        self.name = str(config.get("name") or "")
        self._host = host

    @property
    def api_key(self) -> str | None:
        return self.get_api_key(self._host, self.id)

    @staticmethod
    def get_api_key(host: NodeHost, node_id: str | None) -> str | None:
        if not node_id:
            return None
        credentials = host.get_credentials(node_id) or {}
        key = credentials.get("apikey")
        return str(key) if key else None

    @staticmethod
    def validate_api_key(api_key: str | None) -> bool:
        """Google AI keys start with ``AI`` and are about 39 characters long."""
        if not api_key or not isinstance(api_key, str):
            return False
        return api_key.startswith("AI") and len(api_key) >= 30

    async def close(self) -> None:
        return None
