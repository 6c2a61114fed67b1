"""Tests for API routes."""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from fakes import ScriptedModel, text_step, tool_step
from searchmate.agents.orchestrator import TurnInput
from searchmate.api.deps import clear_conversations, get_orchestrator, live_conversations
from searchmate.config import Settings, settings
from searchmate.errors import ModelConfigurationError
from searchmate.models.conversation import ChatRecord, Conversation, Turn, build_chat_record
from searchmate.models.structured import SearchResults
from searchmate.services.chat_store import MemoryChatStore
from searchmate.services.term_source import SensitiveTerms, StaticTermSource
from searchmate.tools import search as search_tool
from searchmate.tools.registry import ToolDefinition, ToolRegistry


@pytest.fixture
def app():
    from searchmate.main import app
    yield app


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def store():
    store = MemoryChatStore()
    with patch("searchmate.api.routes.search.get_chat_store", return_value=store), \
            patch("searchmate.api.deps.get_chat_store", return_value=store), \
            patch("searchmate.agents.orchestrator.get_chat_store", return_value=store):
        yield store


@pytest.fixture
def live():
    clear_conversations()
    yield
    clear_conversations()


def test_health(client):
    with patch("searchmate.main.get_model", side_effect=ModelConfigurationError("none")):
        response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "searchmate"
    assert data["model_configured"] is False


def test_search_requires_content(client):
    response = client.post("/api/search", json={"chat_id": "abc", "from": "web"})
    assert response.status_code == 400


def test_search_rejects_malformed_body(client):
    response = client.post("/api/search", json={"skip": "not-a-bool"})
    assert response.status_code == 422


def test_unknown_chat_is_404(client, store):
    response = client.get("/api/chats/missing")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_saved_chat_is_returned(client, store):
    record = ChatRecord(
        id="chat1",
        createdAt=datetime(2026, 1, 1, tzinfo=timezone.utc),
        userId="anonymous",
        path="/search/chat1",
        title="Rivian news",
        messages=[Turn(role="user", content='{"input": "Rivian news"}', type="input")],
    )
    await store.save_chat(record)

    response = client.get("/api/chats/chat1")

    assert response.status_code == 200
    data = response.json()
    assert data["title"] == "Rivian news"
    assert data["messages"][0]["type"] == "input"


@pytest.mark.asyncio
async def test_orchestrators_are_kept_per_chat(store, live):
    first = await get_orchestrator("chat1")
    assert await get_orchestrator("chat1") is first
    assert first.chat_id == "chat1"
    assert first.conversation.turns == []
    assert (await get_orchestrator()).chat_id != "chat1"


def _saved_chat() -> ChatRecord:
    conversation = Conversation(
        chat_id="chat1",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    conversation.append(Turn(role="user", content='{"input": "Rivian news"}', type="input"))
    conversation.append(Turn(role="assistant", content="Old answer", type="answer"))
    return build_chat_record(conversation)


@pytest.mark.asyncio
async def test_saved_chat_is_reopened_and_extended(store, live, monkeypatch):
    holder = SensitiveTerms(StaticTermSource())
    monkeypatch.setattr("searchmate.services.term_source.get_terms_holder", lambda: holder)
    monkeypatch.setattr("searchmate.agents.orchestrator.is_assistant_backend", lambda config=None: False)
    await store.save_chat(_saved_chat())

    orchestrator = await get_orchestrator("chat1")
    assert [t.type for t in orchestrator.conversation.turns] == ["input", "answer"]

    async def run(params, route):
        return SearchResults(query=params.query)

    model = ScriptedModel(steps=[tool_step("search", {"query": "R2 price"}), text_step("New answer")])
    orchestrator.model = model
    orchestrator.registry = ToolRegistry([ToolDefinition("search", "Search", search_tool.SearchParams, run)])
    orchestrator.config = Settings(
        _env_file=None,
        ollama_base_url="",
        ollama_model="",
        use_specific_api_for_writer=False,
        enable_related_videos=False,
    )

    events = [event async for event in orchestrator.submit(TurnInput(related_query="R2 price"))]

    assert events[-1].data["persisted"] is True
    assert "Old answer" in [m.content for m in model.seen[0]]
    record = await store.get_chat("chat1")
    contents = [t.content for t in record.messages]
    assert contents[:2] == ['{"input": "Rivian news"}', "Old answer"]
    assert "New answer" in contents
    assert [t.type for t in record.messages].count("end") == 1
    assert record.createdAt == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert record.title == "Rivian news"


@pytest.mark.asyncio
async def test_least_recently_used_conversation_is_evicted(store, live, monkeypatch):
    monkeypatch.setattr(settings, "max_live_conversations", 2)

    first = await get_orchestrator("c1")
    await get_orchestrator("c2")
    assert await get_orchestrator("c1") is first
    await get_orchestrator("c3")

    assert live_conversations() == ["c1", "c3"]


def test_serve_runs_the_app_with_configured_address(monkeypatch):
    from searchmate import main

    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    monkeypatch.setattr(settings, "api_host", "127.0.0.1")
    monkeypatch.setattr(settings, "api_port", 8123)
    monkeypatch.setattr(settings, "app_log_level", "DEBUG")

    main.serve()

    assert calls == [
        (("searchmate.main:app",), {"host": "127.0.0.1", "port": 8123, "reload": False, "log_level": "debug"})
    ]
