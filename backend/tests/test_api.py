"""
API tests for the chat, models and health endpoints.

The tutoring pipeline is swapped for one wired to in-memory fakes.
"""

import json

import pytest
from fastapi.testclient import TestClient

from archtutor.main import app
from archtutor.services.scaffolding.orchestrator import get_tutor


@pytest.fixture
def client(make_tutor, fake_index, fake_llm):
    tutor = make_tutor(index=fake_index, llm=fake_llm)
    app.dependency_overrides[get_tutor] = lambda: tutor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def parse_sse(body: str) -> list[tuple[str, dict]]:
    events = []
    for block in body.strip().split("\n\n"):
        lines = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((lines["event"], json.loads(lines["data"])))
    return events


class TestChat:
    """Test query endpoints."""

    def test_chat_returns_guidance(self, client):
        response = client.post("/chat", json={"session_id": "s1", "query": "What is a cache?"})

        assert response.status_code == 200
        data = response.json()
        assert data["type"] == "guidance"
        assert data["support_level"] == "high_support"
        assert data["message"] == "Let's think about it."

    def test_chat_redirects_off_topic(self, client):
        response = client.post(
            "/chat", json={"session_id": "s1", "query": "What's your favorite pizza topping?"}
        )

        assert response.status_code == 200
        assert response.json()["type"] == "redirect"

    def test_missing_session_id_is_rejected(self, client):
        response = client.post("/chat", json={"query": "What is a cache?"})
        assert response.status_code == 422

    def test_stream_emits_chunks_then_complete(self, client):
        response = client.post(
            "/chat/stream", json={"session_id": "s1", "query": "What is a cache?"}
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        names = [name for name, _ in events]
        assert names[-1] == "complete"
        assert set(names[:-1]) == {"chunk"}
        assert "".join(data["text"] for _, data in events[:-1]) == "Let's think about it."
        assert events[-1][1]["response"]["type"] == "guidance"

    def test_requested_model_is_used(self, client, fake_llm):
        response = client.post(
            "/chat", json={"session_id": "s1", "query": "What is a cache?", "model_id": "gpt-4o"}
        )

        assert response.status_code == 200
        assert "gpt-4o" in fake_llm.models

    @pytest.mark.parametrize("path", ["/chat", "/chat/stream"])
    def test_unknown_model_is_rejected(self, client, fake_llm, path):
        response = client.post(
            path, json={"session_id": "s1", "query": "What is a cache?", "model_id": "gpt-0"}
        )

        assert response.status_code == 400
        assert fake_llm.models == []


class TestSessions:
    """Test feedback and session endpoints."""

    def test_feedback_ratio(self, client):
        client.post("/chat", json={"session_id": "s1", "query": "What is a cache?"})
        for is_positive in (True, True, True, False):
            response = client.post(
                "/chat/feedback", json={"session_id": "s1", "is_positive": is_positive}
            )

        assert response.status_code == 200
        assert response.json() == {
            "session_id": "s1",
            "positive_count": 3,
            "negative_count": 1,
            "total_count": 4,
            "performance_ratio": 0.75,
        }

    def test_summary_and_end_session(self, client):
        client.post("/chat", json={"session_id": "s1", "query": "What is a cache?"})

        summary = client.get("/chat/s1/summary").json()
        assert summary["turn_count"] == 1
        assert summary["topics"]

        assert client.delete("/chat/s1").status_code == 204
        assert client.get("/chat/s1/summary").json()["turn_count"] == 0


class TestMisc:
    """Test metadata endpoints."""

    def test_models_lists_one_default(self, client):
        response = client.get("/models")

        assert response.status_code == 200
        models = response.json()
        assert sum(1 for m in models if m["default"]) == 1
        assert all("supports_streaming" in m for m in models)

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
