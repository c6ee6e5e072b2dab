import copy
from collections.abc import Callable
from typing import Any

import pytest

VALID_API_KEY = "AIza" + "x" * 35
CREDENTIAL_NODE_ID = "gemini-key-1"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: Fast unit tests with mocks only")


class FakeGenAIClient:
    """Records every request document and replays canned responses."""

    def __init__(
        self,
        responses: list[dict[str, Any]] | None = None,
        stream_chunks: list[Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        self.responses = list(responses or [])
        self.stream_chunks = list(stream_chunks or [])
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.api_keys: list[str] = []

    async def generate_content(self, document: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(copy.deepcopy(document))
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return copy.deepcopy(self.responses[0])

    async def stream_generate_content(self, document: dict[str, Any]):
        self.calls.append(copy.deepcopy(document))
        for chunk in self.stream_chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk


@pytest.fixture
def settings(tmp_path):
    from gemini_nodes.settings import Settings

    return Settings(
        _env_file=None,
        GEMINI_API_KEY=None,
        DEFAULT_SAVE_DIRECTORY=str(tmp_path),
        STATUS_CLEAR_DELAY_SECONDS=0.01,
        CHAT_STORE="memory",
    )


@pytest.fixture
def host():
    from gemini_nodes.core.host import LocalHost

    local = LocalHost()
    local.add_credentials(CREDENTIAL_NODE_ID, apikey=VALID_API_KEY)
    return local


@pytest.fixture
def fake_client_class() -> type[FakeGenAIClient]:
    return FakeGenAIClient


@pytest.fixture
def make_node(host, settings) -> Callable[..., Any]:
    """Build a node wired to ``host``, ``settings`` and a fake client."""

    def _make(node_class, config: dict[str, Any], client: FakeGenAIClient, **kwargs: Any):
        def factory(api_key: str) -> FakeGenAIClient:
            client.api_keys.append(api_key)
            return client

        full_config = {"id": "node-1", "apiKey": CREDENTIAL_NODE_ID, **config}
        return node_class(full_config, host, client_factory=factory, settings=settings, **kwargs)

    return _make


@pytest.fixture
def invoke() -> Callable[..., Any]:
    """Run one invocation and return ``(sends, done_calls)``."""

    async def _invoke(node, msg: dict[str, Any]) -> tuple[list[list[Any]], list[Any]]:
        sends: list[list[Any]] = []
        done_calls: list[Any] = []
        await node.on_input(msg, sends.append, done_calls.append)
        return sends, done_calls

    return _invoke


def text_response(text: str, **extra: Any) -> dict[str, Any]:
    candidate = {"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}
    response: dict[str, Any] = {"candidates": [candidate]}
    response.update(extra)
    return response


@pytest.fixture
def make_text_response() -> Callable[..., dict[str, Any]]:
    return text_response
