"""
Tests for the chat HTTP routes.

A small FastAPI app carries the chat router and the error handlers; the
orchestrator runs against FakeGenerationService and an in-memory store.
"""

import asyncio
import json

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from errors import register_error_handlers
from routers import chat
from routers.chat_orchestration import AgentOrchestrator
from routers.chat_streaming import _running_turns, stream_turn_events
from services.chat_store import MessageStore, get_message_store, set_message_store
from services.llm_client import set_generation_service

from conftest import FakeGenerationService


def _sse_payloads(body: str):
    return [json.loads(line[len("data: "):]) for line in body.splitlines() if line.startswith("data: ")]


@pytest.fixture
def llm():
    return FakeGenerationService()


@pytest.fixture
def client(tmp_path, monkeypatch, llm, retriever):
    set_message_store(MessageStore(tmp_path / "chat.db"))
    set_generation_service(llm)
    orchestrator = AgentOrchestrator(retriever=retriever)
    monkeypatch.setattr(chat, "get_orchestrator", lambda: orchestrator)

    app = FastAPI()
    register_error_handlers(app)
    app.include_router(chat.router)
    with TestClient(app) as test_client:
        yield test_client
    set_message_store(None)
    set_generation_service(None)


class TestPostChat:
    def test_turn_returns_both_messages(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [["Hello", "!"]]
        response = client.post("/api/chat", json={"content": "hello"})

        assert response.status_code == 201
        data = response.json()
        user, assistant = data["messages"]
        assert user["role"] == "user"
        assert user["content"] == "hello"
        assert assistant["role"] == "assistant"
        assert assistant["content"].startswith("<think>")
        assert data["answer"] == "Hello!"
        assert "Intent identified: GREETING." in data["reasoning"]
        assert data["intent"] == "GREETING"
        assert data["state"] == "DONE"

    def test_session_cookie_set_once(self, client, llm):
        llm.replies = ["GREETING", "GREETING"]
        llm.streams = [["Hi"], ["Hi again"]]
        first = client.post("/api/chat", json={"content": "hello"})
        assert chat.COOKIE_NAME in first.cookies
        second = client.post("/api/chat", json={"content": "hello again"})
        assert chat.COOKIE_NAME not in second.cookies

        session_id = client.cookies.get(chat.COOKIE_NAME)
        assert get_message_store().count(session_id) == 4

    def test_fast_mode_has_no_reasoning(self, client, llm):
        llm.streams = [["Plain", " answer"]]
        data = client.post("/api/chat", json={"content": "Tell me about Zenlise", "mode": "fast"}).json()
        assert data["messages"][1]["content"] == "Plain answer"
        assert data["reasoning"] == ""
        assert llm.calls_of("invoke") == []

    @pytest.mark.parametrize("body", [{}, {"content": ""}, {"content": "   "}, {"content": 42}])
    def test_empty_content_rejected(self, client, llm, body):
        response = client.post("/api/chat", json=body)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_MISSING_PARAM"
        assert llm.calls == []

    def test_rejected_request_stores_nothing(self, client):
        client.get("/api/chat")
        client.post("/api/chat", json={"content": ""})
        assert client.get("/api/chat").json()["messages"] == []

    def test_history_excludes_reasoning(self, client, llm):
        llm.replies = ["GREETING", "GREETING"]
        llm.streams = [["Hello there"], ["Hi"]]
        client.post("/api/chat", json={"content": "hello"})
        client.post("/api/chat", json={"content": "hey"})

        router_call = llm.calls_of("invoke")[1]
        contents = [m["content"] for m in router_call["messages"]]
        assert not any("<think>" in c for c in contents)
        assert any("Hello there" in c for c in contents)


class TestHistory:
    def test_new_session_is_empty(self, client):
        response = client.get("/api/chat")
        assert response.status_code == 200
        assert response.json() == {"messages": []}
        assert chat.COOKIE_NAME in response.cookies

    def test_history_in_order(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [["Hi"]]
        client.post("/api/chat", json={"content": "hello"})
        messages = client.get("/api/chat").json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_clear_archives_messages(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [["Hi"]]
        client.post("/api/chat", json={"content": "hello"})
        session_id = client.cookies.get(chat.COOKIE_NAME)

        response = client.delete("/api/chat/history")
        assert response.status_code == 200
        assert response.json() == {"success": True, "archived": 2}
        assert client.get("/api/chat").json()["messages"] == []

        archived = get_message_store().list_archived(session_id)
        assert [m.role for m in archived] == ["user", "assistant"]
        assert client.cookies.get(chat.COOKIE_NAME) == session_id

    def test_clear_without_session(self, client):
        assert client.delete("/api/chat/history").json() == {"success": True, "archived": 0}


class TestStream:
    def test_event_sequence(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [["Hello", "!"]]
        response = client.post("/api/chat/stream", json={"content": "hello"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_payloads(response.text)
        assert events[0]["type"] == "user"
        assert events[0]["message"]["content"] == "hello"
        assert events[-1]["type"] == "done"

        chunks = [e["content"] for e in events if e["type"] == "chunk"]
        done = events[-1]
        assert "".join(chunks) == done["message"]["content"]
        assert done["answer"] == "Hello!"
        assert done["intent"] == "GREETING"
        assert done["has_reasoning"] is True

    def test_stream_persists_turn(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [["Hi"]]
        client.post("/api/chat/stream", json={"content": "hello"})
        messages = client.get("/api/chat").json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]

    def test_stream_generation_error_gives_apology(self, client, llm):
        llm.replies = ["GREETING"]
        llm.streams = [[RuntimeError("llama-server went away")]]
        events = _sse_payloads(client.post("/api/chat/stream", json={"content": "hello"}).text)
        done = events[-1]
        assert done["type"] == "done"
        assert done["state"] == "ERROR"
        assert done["answer"].startswith("I apologize")

    def test_stream_empty_content_rejected(self, client):
        response = client.post("/api/chat/stream", json={"content": ""})
        assert response.status_code == 400

    def test_disconnect_cancels_generation(self, llm, retriever):
        """Closing the event stream early stops the turn pulling tokens."""
        script = ["a", "b", "c", "d", "e"]
        llm.streams = [script]
        orchestrator = AgentOrchestrator(generation=llm, retriever=retriever)

        async def run_turn(sink, cancel_event):
            turn = await orchestrator.run("Zenlise", [], mode="fast", sink=sink, cancel_event=cancel_event)
            return {"type": "done", "cancelled": turn.cancelled, "output": turn.output}

        async def scenario():
            cancel = asyncio.Event()
            events = stream_turn_events(run_turn, cancel)
            first = await events.__anext__()
            await events.aclose()
            results = await asyncio.gather(*list(_running_turns))
            return first, cancel.is_set(), results

        first, cancelled, results = asyncio.run(scenario())
        assert json.loads(first[len("data: "):]) == {"type": "chunk", "content": "a"}
        assert cancelled is True
        assert results[0]["cancelled"] is True
        assert results[0]["output"] != "".join(script)
        assert llm.tokens_pulled < len(script)
        assert llm.stream_closed is True
