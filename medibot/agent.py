"""LangGraph-based agent for MediBot.

Architecture:
  A LangGraph StateGraph with three nodes:

    1. **llm_call** — Anthropic LLM with the appointment tools bound; decides
                      whether to answer or to call tools
    2. **tools**    — executes every tool call the LLM requested and appends
                      one ToolMessage per call, in request order
    3. **give_up**  — appends a fixed apology once the LLM has used up its
                      round-trips while still asking for tools

  Routing:
    llm_call → (tool calls, budget left?) → tools → llm_call (loop)
             → (tool calls, budget spent?) → give_up → END
             → (no tool calls?)            → END

  Each HTTP request runs the graph once on a fresh conversation; nothing is
  remembered between requests.
"""

from __future__ import annotations

import logging
from typing import Annotated

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, BaseMessage, SystemMessage
from langchain_core.tools import BaseTool
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from langgraph.prebuilt import ToolNode
from typing_extensions import TypedDict

from medibot.config import ANTHROPIC_API_KEY, MAX_AGENT_ITERATIONS, MODEL_NAME
from medibot.prompts import get_system_prompt
from medibot.services.appointments import AppointmentService
from medibot.services.metrics import metrics
from medibot.tools.appointments import build_appointment_tools

logger = logging.getLogger(__name__)

GIVE_UP_REPLY = (
    "I'm sorry, I couldn't finish that request. "
    "Please try again, or ask for one thing at a time."
)


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict):
    """The state that flows through the graph.

    ``messages`` uses the LangGraph ``add_messages`` reducer so that each
    node can append messages without overwriting the full history.

    ``llm_calls`` counts llm_call round-trips for the iteration guard.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    llm_calls: int


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm(tools: list[BaseTool]):
    """Build the Anthropic chat model with tool bindings."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.1,
        max_tokens=1024,
    )
    return llm.bind_tools(tools)


# ── Nodes ────────────────────────────────────────────────────────────


def _make_llm_call_node(tools: list[BaseTool]):
    """Create the llm_call node.

    The LLM + tool bindings are captured in the closure so that repeated
    node invocations (llm_call -> tools -> llm_call -> ...) share one client.
    """
    llm_with_tools = _build_llm(tools)

    def llm_call_node(state: AgentState) -> dict:
        """Ask the LLM for the next step given the conversation so far."""
        system = SystemMessage(content=get_system_prompt())
        with metrics.track("anthropic", "llm_invoke"):
            response = llm_with_tools.invoke([system] + state["messages"])
        calls = state.get("llm_calls", 0) + 1
        logger.debug(
            "llm_call round %d — %d tool call(s)",
            calls, len(getattr(response, "tool_calls", None) or []),
        )
        return {"messages": [response], "llm_calls": calls}

    return llm_call_node


def give_up_node(state: AgentState) -> dict:
    """Stop the loop with a fixed reply when the iteration budget is spent."""
    logger.warning(
        "Agent stopped after %d LLM round-trips with tool calls still pending",
        state.get("llm_calls", 0),
    )
    return {"messages": [AIMessage(content=GIVE_UP_REPLY)]}


# ── Conditional edge ─────────────────────────────────────────────────


def should_use_tools(state: AgentState) -> str:
    """Route to tools while the LLM keeps asking for them and budget is left."""
    last_message = state["messages"][-1]
    if not (hasattr(last_message, "tool_calls") and last_message.tool_calls):
        return END
    if state.get("llm_calls", 0) >= MAX_AGENT_ITERATIONS:
        return "give_up"
    return "tools"


# ── Reply extraction ─────────────────────────────────────────────────


def message_text(message: BaseMessage) -> str:
    """Plain text of a message, joining text blocks when content is a list."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def extract_reply(result: dict) -> str | None:
    """The final model-authored text of a graph run, or ``None``."""
    messages = result.get("messages", [])
    if not messages:
        return None
    return message_text(messages[-1])


# ── Graph assembly ───────────────────────────────────────────────────


def create_medibot_agent(service: AppointmentService):
    """Build and compile the MediBot LangGraph agent.

    Returns a compiled graph that can be invoked with:
        graph.invoke({"messages": [HumanMessage(content="...")], "llm_calls": 0})
    """
    tools = build_appointment_tools(service)

    graph = StateGraph(AgentState)
    graph.add_node("llm_call", _make_llm_call_node(tools))
    graph.add_node("tools", ToolNode(tools))
    graph.add_node("give_up", give_up_node)

    graph.set_entry_point("llm_call")
    graph.add_conditional_edges(
        "llm_call",
        should_use_tools,
        {"tools": "tools", "give_up": "give_up", END: END},
    )
    graph.add_edge("tools", "llm_call")
    graph.add_edge("give_up", END)

    compiled = graph.compile()
    logger.debug(
        "MediBot agent compiled — model: %s, tools: %d, max rounds: %d",
        MODEL_NAME, len(tools), MAX_AGENT_ITERATIONS,
    )
    return compiled
