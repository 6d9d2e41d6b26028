"""Tests for the agent graph: nodes, routing and the iteration guard."""

from __future__ import annotations

import itertools
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage
from langgraph.graph import END

from medibot.agent import (
    GIVE_UP_REPLY,
    AgentState,
    _make_llm_call_node,
    create_medibot_agent,
    extract_reply,
    give_up_node,
    message_text,
    should_use_tools,
)
from medibot.services.results import Empty


# ── Helpers ──────────────────────────────────────────────────────────


def _make_mock_llm(*responses):
    """Create a mock LLM returning the given AIMessages in turn."""
    mock_llm = MagicMock()
    mock_llm.invoke.side_effect = list(responses)
    return mock_llm


def _tool_call_message(name: str, args: dict, call_id: str) -> AIMessage:
    return AIMessage(content="", tool_calls=[{"name": name, "args": args, "id": call_id}])


# ── TestLlmCallNode ───────────────────────────────────────────────────────────────────────────────────────────────────


class TestLlmCallNode:
    @patch("medibot.agent._build_llm")
    def test_returns_reply_and_counts_round_trip(self, mock_build):
        mock_build.return_value = _make_mock_llm(AIMessage(content="Hello! How can I help?"))
        node = _make_llm_call_node([])

        state: AgentState = {"messages": [HumanMessage(content="Hi")], "llm_calls": 2}
        result = node(state)

        assert result["llm_calls"] == 3
        assert result["messages"][0].content == "Hello! How can I help?"

    @patch("medibot.agent._build_llm")
    def test_system_prompt_is_sent_first(self, mock_build):
        llm = _make_mock_llm(AIMessage(content="ok"))
        mock_build.return_value = llm
        node = _make_llm_call_node([])

        node({"messages": [HumanMessage(content="Hi")], "llm_calls": 0})

        sent = llm.invoke.call_args[0][0]
        assert isinstance(sent[0], SystemMessage)
        assert "MediBot" in sent[0].content
        assert sent[1].content == "Hi"

    @patch("medibot.agent._build_llm")
    def test_llm_errors_propagate(self, mock_build):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("LLM down")
        mock_build.return_value = llm
        node = _make_llm_call_node([])

        with pytest.raises(RuntimeError, match="LLM down"):
            node({"messages": [HumanMessage(content="Hi")], "llm_calls": 0})


# ── TestShouldUseTools ───────────────────────────────────────────────


class TestShouldUseTools:
    def test_tool_calls_route_to_tools(self):
        state: AgentState = {
            "messages": [_tool_call_message("view_patient_reports", {"patient_id": "p1"}, "1")],
            "llm_calls": 1,
        }
        assert should_use_tools(state) == "tools"

    def test_plain_reply_routes_to_end(self):
        state: AgentState = {"messages": [AIMessage(content="Done.")], "llm_calls": 1}
        assert should_use_tools(state) == END

    def test_tool_calls_after_budget_route_to_give_up(self):
        state: AgentState = {
            "messages": [_tool_call_message("view_patient_reports", {"patient_id": "p1"}, "1")],
            "llm_calls": 8,
        }
        assert should_use_tools(state) == "give_up"

    def test_plain_reply_on_last_round_still_ends(self):
        state: AgentState = {"messages": [AIMessage(content="Done.")], "llm_calls": 8}
        assert should_use_tools(state) == END


class TestGiveUp:
    def test_give_up_appends_fixed_reply(self):
        result = give_up_node({"messages": [], "llm_calls": 8})
        assert result["messages"][0].content == GIVE_UP_REPLY


# ── Reply extraction ─────────────────────────────────────────────────


class TestReplyExtraction:
    def test_string_content(self):
        assert message_text(AIMessage(content="Hello")) == "Hello"

    def test_content_blocks_are_joined(self):
        msg = AIMessage(content=[
            {"type": "text", "text": "Your appointment "},
            {"type": "tool_use", "id": "x", "name": "t", "input": {}},
            {"type": "text", "text": "is booked."},
        ])
        assert message_text(msg) == "Your appointment is booked."

    def test_no_messages(self):
        assert extract_reply({"messages": []}) is None


# ── End-to-end graph with a mocked LLM ───────────────────────────────


class TestGraph:
    @patch("medibot.agent._build_llm")
    def test_graph_nodes(self, mock_build):
        agent = create_medibot_agent(MagicMock())
        assert {"llm_call", "tools", "give_up"} <= set(agent.get_graph().nodes)

    @patch("medibot.agent._build_llm")
    def test_tool_result_is_fed_back_to_the_model(self, mock_build, service, add_patient):
        patient = add_patient(reports=[{"name": "X-Ray", "link": "https://r.example.com/x"}])
        llm = _make_mock_llm(
            _tool_call_message("view_patient_reports", {"patient_id": patient.id}, "call_1"),
            AIMessage(content="You have one report: X-Ray."),
        )
        mock_build.return_value = llm
        agent = create_medibot_agent(service)

        result = agent.invoke({"messages": [HumanMessage(content="Show my reports")], "llm_calls": 0})

        assert extract_reply(result) == "You have one report: X-Ray."
        tool_messages = [m for m in result["messages"] if isinstance(m, ToolMessage)]
        assert len(tool_messages) == 1
        assert "X-Ray" in tool_messages[0].content
        assert result["llm_calls"] == 2

    @patch("medibot.agent._build_llm")
    def test_parallel_tool_results_keep_request_order(self, mock_build):
        service = MagicMock()
        service.list_appointments.return_value = Empty("No appointments found for this patient.")
        service.list_reports.return_value = Empty("No reports found for this patient.")
        llm = _make_mock_llm(
            AIMessage(content="", tool_calls=[
                {"name": "view_patient_appointments", "args": {"patient_id": "p1"}, "id": "a"},
                {"name": "view_patient_reports", "args": {"patient_id": "p1"}, "id": "b"},
            ]),
            AIMessage(content="Nothing on file yet."),
        )
        mock_build.return_value = llm

        result = create_medibot_agent(service).invoke(
            {"messages": [HumanMessage(content="What do you have on me?")], "llm_calls": 0},
        )

        tool_messages = [m for m in result["messages"] if isinstance(m, ToolMessage)]
        assert [m.tool_call_id for m in tool_messages] == ["a", "b"]
        assert tool_messages[0].content == "No appointments found for this patient."
        assert tool_messages[1].content == "No reports found for this patient."

    @patch("medibot.agent.MAX_AGENT_ITERATIONS", 2)
    @patch("medibot.agent._build_llm")
    def test_endless_tool_calls_stop_with_give_up_reply(self, mock_build, service, patient):
        ids = itertools.count()
        llm = MagicMock()
        llm.invoke.side_effect = lambda _messages: _tool_call_message(
            "view_patient_reports", {"patient_id": patient.id}, f"call_{next(ids)}",
        )
        mock_build.return_value = llm

        result = create_medibot_agent(service).invoke(
            {"messages": [HumanMessage(content="Loop forever")], "llm_calls": 0},
        )

        assert extract_reply(result) == GIVE_UP_REPLY
        assert llm.invoke.call_count == 2
