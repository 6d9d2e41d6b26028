"""FastAPI route definitions for the MediBot chat API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from langchain_core.messages import HumanMessage

from medibot.agent import extract_reply
from medibot.api.auth import AuthenticatedPatient, ServiceUnavailableError, get_current_patient
from medibot.api.schemas import ChatRequest, ChatResponse, HealthResponse
from medibot.prompts import build_patient_message

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR_MESSAGE = "An internal error occurred. Please try again."


def _get_agent(request: Request):
    """Retrieve the compiled LangGraph agent from app state.

    The agent is initialised once during the FastAPI lifespan (see
    ``server.py``).
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise ServiceUnavailableError("The agent is still starting up. Please try again in a moment.")
    return agent


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ChatResponse(success=False, message=message).model_dump(),
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/ai-chats", response_model=ChatResponse)
async def ai_chat(
    request: ChatRequest,
    http_request: Request,
    patient: AuthenticatedPatient = Depends(get_current_patient),
):
    """Send the authenticated patient's message to the agent and return its reply.

    ``agent.invoke()`` blocks on the Anthropic API and the database, so it
    runs in the default thread pool via ``asyncio.to_thread``.
    """
    agent = _get_agent(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    content = build_patient_message(request.input, patient.name, patient.id)

    try:
        result = await asyncio.to_thread(
            agent.invoke,
            {"messages": [HumanMessage(content=content)], "llm_calls": 0},
        )
    except Exception:
        logger.exception("[%s] Error processing chat request", request_id)
        return _failure(500, INTERNAL_ERROR_MESSAGE)

    reply = extract_reply(result)
    if reply is None:
        logger.error("[%s] Agent returned no messages", request_id)
        return _failure(500, INTERNAL_ERROR_MESSAGE)

    return ChatResponse(success=True, message=reply)
