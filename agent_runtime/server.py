"""FastAPI server for the agent chat runtime.

Run with:
    uvicorn agent_runtime.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_runtime.agent import ChatError, create_chat_service
from agent_runtime.api.routes import router
from agent_runtime.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, missing_required_config
from agent_runtime.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: load the agent store and create the chat service once.

    The model clients are built lazily on the first chat request, so a
    deployment missing its API key still starts and answers health checks.
    """
    missing = missing_required_config()
    if missing:
        logger.warning("Missing configuration: %s (chat will answer 500)", ", ".join(missing))
    application.state.chat_service = create_chat_service()
    logger.info("Chat service ready.")
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Agent Chat Runtime",
    description=(
        "Grounded agent chat: knowledge retrieval, tool servers, "
        "HTTP tools and scheduling availability."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Error rendering ──────────────────────────────────────────────────
@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "?")
    logger.info("[%s] Chat error %d: %s", request_id, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Full traceback server-side only
    request_id = getattr(request.state, "request_id", "?")
    logger.exception("[%s] Unhandled error", request_id, exc_info=exc)
    return JSONResponse(
        status_code=500, content={"error": "An internal error occurred. Please try again."},
    )


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Agent Chat Runtime",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting agent chat server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "agent_runtime.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
