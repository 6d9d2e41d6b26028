"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the patient portal."""

    input: str = Field(..., min_length=1, max_length=2000, description="The patient's message")


class ChatResponse(BaseModel):
    """Envelope used for every ``/ai-chats`` reply, success or failure."""

    success: bool = Field(..., description="Whether the request was handled")
    message: str = Field(..., description="The assistant's reply or the error message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "medibot"
