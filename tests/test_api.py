"""Tests for the HTTP/WebSocket surface."""

import pytest
from fastapi.testclient import TestClient

from chatbot.api.main import create_app
from chatbot.models import PipelineState

from .conftest import FakeIdentity


@pytest.fixture
def client(pipeline, settings):
    app = create_app(lambda: pipeline, settings)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_session_after_startup(client) -> None:
    assert client.get("/session").json() == {"identity": "user-1", "ready": True}


def test_post_message_runs_pipeline(client, conversation) -> None:
    resp = client.post("/messages", json={"text": "hi"})

    assert resp.status_code == 200
    assert resp.json() == {"status": "inference_succeeded"}
    texts = [m["text"] for m in client.get("/messages").json()]
    assert texts == ["hi", "hello"]


def test_post_teach_and_clear(client) -> None:
    assert client.post("/messages", json={"text": '/teach "q" "a"'}).json()["status"] == "teach_handled"
    assert client.post("/messages", json={"text": "/clear"}).json()["status"] == "clear_handled"

    assert [m["text"] for m in client.get("/messages").json()] == ["Chat history cleared."]


def test_blank_message_is_ignored(client, conversation) -> None:
    assert client.post("/messages", json={"text": "  "}).json() == {"status": "ignored"}
    assert conversation.messages == []


def test_busy_pipeline_returns_conflict(client, pipeline) -> None:
    pipeline.state = PipelineState.INFERRING

    resp = client.post("/messages", json={"text": "hi"})

    assert resp.status_code == 409


def test_unauthenticated_session_ignores_messages(settings, conversation, pipeline) -> None:
    pipeline.identity = FakeIdentity(identity=None)
    app = create_app(lambda: pipeline, settings)

    with TestClient(app) as client:
        assert client.get("/session").json() == {"identity": None, "ready": True}
        assert client.post("/messages", json={"text": "hi"}).json() == {"status": "ignored"}

    assert conversation.messages == []


def test_websocket_pushes_transcript(client) -> None:
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"type": "transcript", "messages": []}

        ws.send_text("hi")

        first = ws.receive_json()
        assert [m["text"] for m in first["messages"]] == ["hi"]
        second = ws.receive_json()
        assert [m["text"] for m in second["messages"]] == ["hi", "hello"]
