from __future__ import annotations

import pytest

from fakes import ScriptedModel, text_step, tool_step
from searchmate.agents.inquire import Inquirer
from searchmate.agents.query_suggestor import QuerySuggestor, select_messages
from searchmate.agents.researcher import Researcher
from searchmate.agents.task_manager import task_manager
from searchmate.agents.writer import Writer
from searchmate.errors import AdapterError
from searchmate.models.events import EventType
from searchmate.models.messages import (
    AssistantMessage,
    Finish,
    StreamError,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    decode_tool_content,
)
from searchmate.models.structured import SearchResults
from searchmate.services.term_source import SensitiveTerms, StaticTermSource
from searchmate.tools import search as search_tool
from searchmate.tools.registry import ToolDefinition, ToolRegistry


@pytest.fixture(autouse=True)
def _no_terms(monkeypatch):
    holder = SensitiveTerms(StaticTermSource({"badword": "term"}))
    monkeypatch.setattr("searchmate.services.term_source.get_terms_holder", lambda: holder)


def _search_registry(fail: bool = False) -> ToolRegistry:
    async def run(params, route):
        if fail:
            raise RuntimeError("search backend down")
        return SearchResults(query=params.query, results=[{"title": "R2", "url": "https://a", "content": "c"}])

    return ToolRegistry([ToolDefinition("search", "Search the web", search_tool.SearchParams, run)])


async def _events(agent, *args, **kwargs) -> list:
    return [event async for event in agent.run(*args, **kwargs)]


# --- Task manager ---


@pytest.mark.asyncio
async def test_task_manager_returns_the_decision_with_terms_in_prompt():
    model = ScriptedModel(decision="inquire")

    decision = await task_manager([UserMessage(content="Rivian")], model=model)

    assert decision.next == "inquire"
    assert '"badword": "term"' in model.calls[0][2].system


@pytest.mark.asyncio
async def test_task_manager_failure_means_no_decision():
    model = ScriptedModel(decision=AdapterError("rate limited", provider="scripted"))

    assert await task_manager([UserMessage(content="Rivian")], model=model) is None


# --- Inquirer ---


@pytest.mark.asyncio
async def test_inquirer_streams_partials_then_the_inquiry():
    inquirer = Inquirer(ScriptedModel())

    events = await _events(inquirer, [UserMessage(content="Rivian")])

    assert events[-1].event == EventType.INQUIRY
    assert events[-1].data["inquiry"]["question"] == "What about Rivian?"
    assert all(e.event == EventType.INQUIRY_PARTIAL for e in events[:-1])
    assert inquirer.inquiry.options[0].value == "products"


# --- Query suggestor ---


def test_select_messages_for_assistant_backend_uses_first_user_message():
    messages = [
        AssistantMessage(content="hello"),
        UserMessage(content="first", id="u1"),
        UserMessage(content="second"),
    ]

    assert select_messages(messages, assistant_backend=True) == [UserMessage(content="first", id="u1")]
    assert select_messages([AssistantMessage(content="x")], assistant_backend=True) == []


def test_select_messages_retags_the_last_message_as_user():
    result = ToolResultPart(tool_call_id="c", tool_name="search", result={"results": []})

    assert select_messages([AssistantMessage(content="answer")], assistant_backend=False) == [
        UserMessage(content="answer")
    ]
    selected = select_messages([ToolMessage(results=[result])], assistant_backend=False)
    assert decode_tool_content(selected[0].content)[0].tool_name == "search"
    assert select_messages([], assistant_backend=False) == []


@pytest.mark.asyncio
async def test_query_suggestor_emits_at_most_three_related(monkeypatch):
    monkeypatch.setattr("searchmate.agents.query_suggestor.is_assistant_backend", lambda: False)
    suggestor = QuerySuggestor(ScriptedModel(related=["a", "b", "c", "d"]))

    events = await _events(suggestor, [AssistantMessage(content="Rivian shipped trucks.")])

    assert events[-1].event == EventType.RELATED
    assert events[-1].data["items"] == [{"query": "a"}, {"query": "b"}, {"query": "c"}]
    assert suggestor.related.queries == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_query_suggestor_failure_is_silent(monkeypatch):
    class FailingModel(ScriptedModel):
        async def stream(self, messages, tools=None, options=None):
            yield StreamError(error=AdapterError("boom", provider="scripted"))
            yield Finish(finish_reason="error")

    monkeypatch.setattr("searchmate.agents.query_suggestor.is_assistant_backend", lambda: False)
    suggestor = QuerySuggestor(FailingModel())

    events = await _events(suggestor, [AssistantMessage(content="answer")])

    assert events == []
    assert suggestor.related.queries == []


# --- Researcher ---


@pytest.mark.asyncio
async def test_researcher_step_runs_tools_and_extends_messages():
    model = ScriptedModel(steps=[tool_step("search", {"query": "Rivian"})])
    researcher = Researcher(_search_registry(), model=model, route="semantic", conversation_id="chat1")
    messages = [UserMessage(content="Rivian news")]

    events = await _events(researcher, messages)

    assert [e.event for e in events] == [EventType.TOOL_RESULT]
    assert events[0].data["args"] == {"query": "Rivian"}
    assert [m.role for m in messages] == ["user", "assistant", "tool"]
    assert messages[2].results[0].result["results"][0]["title"] == "R2"
    result = researcher.result
    assert result.finish_reason == "tool-calls"
    assert not result.has_error
    options = model.calls[0][2]
    assert options.tool_choice == "required"
    assert options.conversation_id == "chat1"
    assert model.calls[0][1] == ["search"]


@pytest.mark.asyncio
async def test_researcher_answer_after_tool_results_streams_detail_deltas():
    model = ScriptedModel(steps=[tool_step("search", {"query": "Rivian"}), text_step("Rivian shipped trucks.")])
    researcher = Researcher(_search_registry(), model=model)
    messages = [UserMessage(content="Rivian news")]

    await _events(researcher, messages)
    pending = researcher.result.tool_responses
    events = await _events(researcher, messages, pending=pending)

    assert {e.event for e in events} == {EventType.ANSWER_DETAIL_DELTA}
    assert events[-1].data["text"] == "Rivian shipped trucks."
    assert researcher.result.finish_reason == "stop"
    options = model.calls[1][2]
    assert options.tool_choice == "auto"
    assert options.tool_results == pending
    assert isinstance(messages[-1], AssistantMessage)


@pytest.mark.asyncio
async def test_researcher_marks_failed_tools_as_errors():
    model = ScriptedModel(steps=[tool_step("search", {"query": "Rivian"})])
    researcher = Researcher(_search_registry(fail=True), model=model)

    events = await _events(researcher, [UserMessage(content="Rivian news")])

    assert events[0].data["is_error"] is True
    assert researcher.result.has_error
    assert "search" in researcher.result.error


@pytest.mark.asyncio
async def test_researcher_stream_error_skips_tools():
    model = ScriptedModel(
        steps=[[StreamError(error=AdapterError("run failed", provider="scripted")), Finish(finish_reason="error")]]
    )
    researcher = Researcher(_search_registry(), model=model)

    events = await _events(researcher, [UserMessage(content="Rivian news")])

    assert events == []
    assert researcher.result.has_error
    assert researcher.result.error == "run failed"


# --- Writer ---


@pytest.mark.asyncio
async def test_writer_streams_without_tools():
    model = ScriptedModel(steps=[text_step("Rivian shipped trucks.")])
    writer = Writer(model)

    events = await _events(writer, [UserMessage(content="Rivian news")])

    assert events[-1].event == EventType.ANSWER_DELTA
    assert writer.response == "Rivian shipped trucks."
    assert model.calls[0][1] == []
