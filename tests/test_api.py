"""Tests for the HTTP surface."""

from fastapi.testclient import TestClient

from app.main import app
from relay.relay import ChatRelay

from tests.conftest import DONE_FRAME, decode_frames, delta_frame, make_completion_client


class TestChatEndpoint:
    """POST /api/chat and friends."""

    def setup_method(self):
        self.client = TestClient(app)

    def _install(self, memory, chunks, **kwargs):
        app.state.relay = ChatRelay(memory, make_completion_client(chunks, **kwargs))

    def _events(self, response):
        return decode_frames(
            frame + "\n\n" for frame in response.text.split("\n\n") if frame
        )

    def test_streams_sse(self, memory):
        self._install(memory, [delta_frame("Hello"), delta_frame(" world"), DONE_FRAME])

        response = self.client.post("/api/chat", json={"query": "hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert self._events(response) == [
            {"status": "started"},
            {"content": "Hello"},
            {"content": " world"},
            {"status": "completed"},
        ]
        assert memory.short_term[-1].content == "Hello world"

    def test_empty_query_rejected(self, memory):
        self._install(memory, [DONE_FRAME])

        for body in ({"query": ""}, {"query": "   "}, {}, {"query": None}):
            response = self.client.post("/api/chat", json=body)
            assert response.status_code == 400
            assert response.json() == {"error": "查询内容不能为空"}

        assert memory.short_term == []

    def test_malformed_body_rejected(self, memory):
        self._install(memory, [DONE_FRAME])

        response = self.client.post("/api/chat", json={"query": ["not", "text"]})

        assert response.status_code == 400
        assert response.json() == {"error": "查询内容不能为空"}

    def test_upstream_failure_reported_in_stream(self, memory):
        self._install(memory, [], status_code=503)

        response = self.client.post("/api/chat", json={"query": "hi"})

        assert response.status_code == 200
        assert self._events(response) == [
            {"status": "started"},
            {"error": "发生错误: HTTP error! status: 503"},
        ]

    def test_memory_stats(self, memory):
        self._install(memory, [delta_frame("好的"), DONE_FRAME])
        self.client.post("/api/chat", json={"query": "记住我叫Alex"})

        response = self.client.get("/api/memory")

        assert response.json() == {
            "short_term_turns": 2,
            "max_history_length": 4,
            "long_term_turns": 2,
        }

    def test_health(self):
        response = self.client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    def test_lone_surrogate_delta_still_completes(self, memory):
        self._install(
            memory,
            [b'data: {"choices": [{"delta": {"content": "a\\ud800b"}}]}\n\n', DONE_FRAME],
        )

        response = self.client.post("/api/chat", json={"query": "hi"})

        assert response.status_code == 200
        assert self._events(response) == [
            {"status": "started"},
            {"content": "a\ufffdb"},
            {"status": "completed"},
        ]
