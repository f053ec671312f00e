"""FastAPI route definitions for the agent chat API."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request

from agent_runtime.agent import ChatService
from agent_runtime.api.schemas import (
    ChatRequest,
    ChatResponse,
    ClearHistoryResponse,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    TurnSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _get_service(request: Request) -> ChatService:
    """Retrieve the chat service created during the FastAPI lifespan."""
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return service


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post(
    "/agents/{agent_id}/chat", response_model=ChatResponse, responses=_ERROR_RESPONSES,
)
async def chat(agent_id: str, request: ChatRequest, http_request: Request):
    """Send a message to an agent and get its reply.

    The pipeline makes several blocking network calls (model, tool servers,
    calendar), so it runs in a worker thread via ``asyncio.to_thread``.
    ``ChatError`` is rendered by the handler registered in ``server.py``.
    """
    service = _get_service(http_request)
    request_id = getattr(http_request.state, "request_id", "?")
    logger.info("[%s] Chat with agent %s", request_id, agent_id)

    reply = await asyncio.to_thread(service.chat, agent_id, request.caller_id, request.message)
    return ChatResponse(
        message=reply.message,
        agent_name=reply.agent_name,
        agent_emoji=reply.agent_emoji,
        scheduling=reply.scheduling,
    )


@router.get(
    "/agents/{agent_id}/chat", response_model=HistoryResponse, responses=_ERROR_RESPONSES,
)
async def chat_history(
    agent_id: str,
    http_request: Request,
    caller_id: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
):
    """The caller's conversation with an agent, oldest first."""
    service = _get_service(http_request)
    turns = service.history(agent_id, caller_id, limit=limit)
    return HistoryResponse(
        messages=[
            TurnSchema(role=t.role, content=t.content, created_at=t.created_at) for t in turns
        ],
    )


@router.delete(
    "/agents/{agent_id}/chat", response_model=ClearHistoryResponse, responses=_ERROR_RESPONSES,
)
async def clear_chat_history(agent_id: str, http_request: Request, caller_id: str | None = None):
    """Delete the caller's conversation with an agent."""
    service = _get_service(http_request)
    return ClearHistoryResponse(deleted=service.clear_history(agent_id, caller_id))
