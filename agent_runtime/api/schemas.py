"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from agent_runtime.tools.scheduling import SchedulingPayload


class ChatRequest(BaseModel):
    """Incoming chat message.

    Both fields are optional at the schema level so a missing value is
    answered with the chat endpoint's own 400 rather than a 422.
    """

    caller_id: str | None = Field(default=None, description="Identity of the caller")
    message: str | None = Field(default=None, description="The user's message")


class ChatResponse(BaseModel):
    """Reply from the agent."""

    message: str = Field(..., description="The agent's reply")
    agent_name: str
    agent_emoji: str | None = None
    scheduling: SchedulingPayload | None = Field(
        default=None, description="Booking card data, for scheduling questions only",
    )


class TurnSchema(BaseModel):
    role: str
    content: str
    created_at: datetime


class HistoryResponse(BaseModel):
    messages: list[TurnSchema]


class ClearHistoryResponse(BaseModel):
    deleted: int


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "agent-runtime"
