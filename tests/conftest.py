"""Shared fixtures: a fake streaming upstream and a memory store on tmp_path."""

import json
from typing import Iterable, List, Optional

import httpx
import pytest

from relay.core.memory import MemoryStore
from relay.core.storage import JsonFileStore
from relay.relay import ChatRelay
from relay.upstream import CompletionClient

SYSTEM_PROMPT = "你是一个专业的前端导师。"
BASE_URL = "https://upstream.test/api/v3"
DONE_FRAME = b"data: [DONE]\n\n"


def delta_frame(text: str) -> bytes:
    payload = {"choices": [{"delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def decode_frames(frames: Iterable[str]) -> List[dict]:
    decoded = []
    for frame in frames:
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        decoded.append(json.loads(frame[len("data: "):-2]))
    return decoded


def make_completion_client(
    chunks: Iterable[bytes],
    status_code: int = 200,
    requests: Optional[list] = None,
    error: Optional[Exception] = None,
) -> CompletionClient:
    """Build a CompletionClient whose upstream streams ``chunks`` then ends.

    ``error`` is raised by the body after the chunks are sent.
    """
    chunks = list(chunks)

    async def body():
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if status_code >= 300:
            return httpx.Response(status_code, content=b'{"error": "upstream failed"}')
        return httpx.Response(
            status_code,
            headers={"Content-Type": "text/event-stream"},
            content=body(),
        )

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionClient(
        base_url=BASE_URL,
        model="test-model",
        api_key="sk-test",
        http_client=http_client,
    )


@pytest.fixture
def memory_path(tmp_path):
    return tmp_path / "memory" / "long_term_memory.json"


@pytest.fixture
def memory(memory_path):
    store = MemoryStore(
        store=JsonFileStore(memory_path),
        system_prompt=SYSTEM_PROMPT,
        max_history_length=4,
    )
    store.load_long_term_memory()
    return store


@pytest.fixture
def make_relay(memory):
    def _make(chunks, **kwargs) -> ChatRelay:
        return ChatRelay(memory=memory, client=make_completion_client(chunks, **kwargs))

    return _make
