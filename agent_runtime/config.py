"""Centralized configuration for the agent chat runtime.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/agent-runtime/<VARIABLE_NAME>``.

Missing secrets do not fail the import.  The chat endpoint checks
:func:`missing_required_config` on every request and answers 500 when a
required credential is absent, so health checks and history reads keep
working on a half-configured deployment.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import to avoid boto3 dep in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/agent-runtime/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _get_secret(name: str) -> str | None:
    """Return a secret from env-var or SSM, or ``None`` when unset."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        return _get_ssm_parameter(name)
    return None


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str | None = _get_secret("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")

# Cheap model for tool selection, query synthesis and server summaries
FAST_MODEL_NAME: str = os.getenv("FAST_MODEL_NAME", "claude-haiku-4-5")

REPLY_MAX_TOKENS: int = int(os.getenv("REPLY_MAX_TOKENS", "2048"))
REPLY_TEMPERATURE: float = float(os.getenv("REPLY_TEMPERATURE", "0.7"))

# ── Google Calendar (free/busy reconciliation) ──────────────────────
GOOGLE_CLIENT_ID: str | None = _get_secret("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET: str | None = _get_secret("GOOGLE_CLIENT_SECRET")
GOOGLE_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"

# ── Retrieval ───────────────────────────────────────────────────────
QDRANT_URL: str | None = os.getenv("QDRANT_URL")
QDRANT_PATH: str = os.getenv("QDRANT_PATH", "./qdrant_data")
QDRANT_COLLECTION: str = os.getenv("QDRANT_COLLECTION", "agent_knowledge_chunks")
EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "nomic-ai/nomic-embed-text-v1")
RETRIEVAL_MATCH_THRESHOLD: float = float(os.getenv("RETRIEVAL_MATCH_THRESHOLD", "0.5"))
RETRIEVAL_MAX_CHUNKS: int = int(os.getenv("RETRIEVAL_MAX_CHUNKS", "5"))

# ── Collaborator data ───────────────────────────────────────────────
# JSON document seeding the in-memory store (agents, windows, settings…)
AGENTS_FILE: str | None = os.getenv("AGENTS_FILE")

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")


def missing_required_config() -> list[str]:
    """Return the names of required credentials that are not configured."""
    missing = []
    if not ANTHROPIC_API_KEY:
        missing.append("ANTHROPIC_API_KEY")
    return missing
