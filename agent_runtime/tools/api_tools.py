"""Invoker for statically configured HTTP tools.

Every configured tool is checked against the message with
:func:`~agent_runtime.tools.relevance.is_api_tool_relevant`; relevant tools
are called once with a 15 s timeout.  The raw response text is opaque
context for the reply model.

``maybe_invoke`` never raises.  Transport failures and timeouts become an
``--- Error calling <name> ---`` note so the reply model can tell the user
the API was unreachable.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from langchain_core.messages import HumanMessage

from agent_runtime.llm import response_text, strip_code_fences
from agent_runtime.models import ApiToolBase
from agent_runtime.prompts import API_TOOLS_HEADER, GRAPHQL_QUERY_PROMPT, OPENAPI_BODY_PROMPT
from agent_runtime.services.metrics import metrics
from agent_runtime.tools.relevance import is_api_tool_relevant, looks_like_graphql

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0
SUCCESS_TEXT_LIMIT = 8_000
ERROR_TEXT_LIMIT = 1_000
USER_AGENT = "AgentRuntime/1.0"


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Drop header names that are blank or contain a colon or a space."""
    clean = {}
    for key, value in headers.items():
        name = key.strip()
        if not name or ":" in name or " " in name:
            logger.warning("Skipping invalid header name: %r", key)
            continue
        clean[name] = str(value)
    return clean


def build_request_headers(tool: ApiToolBase) -> dict[str, str]:
    headers = {"User-Agent": USER_AGENT, "Content-Type": "application/json"}
    headers.update(sanitize_headers(tool.headers))
    if tool.api_key and not any(k.lower() == "authorization" for k in headers):
        headers["Authorization"] = f"Bearer {tool.api_key}"
    return headers


def render_api_tool_listing(tools: list[ApiToolBase]) -> str:
    """The "Available API Tools" block listing every configured tool."""
    if not tools:
        return ""
    lines = [API_TOOLS_HEADER]
    for tool in tools:
        line = f"- **{tool.name}** [{tool.method}] {tool.url}"
        if tool.description:
            line += f": {tool.description}"
        if tool.instructions:
            line += f"\n  Instructions: {tool.instructions}"
        lines.append(line + "\n")
    return "".join(lines)


def _schema_context(tool: ApiToolBase) -> str:
    return tool.schema_text or tool.instructions or tool.description or ""


class ApiToolInvoker:
    """Calls relevant HTTP tools and formats their responses for the model.

    Args:
        llm: fast model used to write GraphQL queries and OpenAPI bodies.
            ``None`` falls back to the plain message envelope.
        http_client: injectable for tests.
    """

    def __init__(self, llm: Any | None = None, http_client: httpx.Client | None = None):
        self._llm = llm
        self._client = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    # ── Request bodies ───────────────────────────────────────────────

    def _synthesise(self, prompt: str, operation: str) -> str:
        with metrics.track("anthropic", operation):
            reply = self._llm.invoke([HumanMessage(content=prompt)])
        return strip_code_fences(response_text(reply))

    def build_request_body(self, tool: ApiToolBase, message: str) -> str:
        """Serialized JSON body for a POST to *tool*."""
        schema = _schema_context(tool)

        if self._llm is not None and looks_like_graphql(tool):
            schema_block = f"Available Schema/Types:\n{schema}\n" if schema else ""
            query = self._synthesise(
                GRAPHQL_QUERY_PROMPT.format(message=message, schema_block=schema_block),
                "graphql_query",
            )
            logger.info("Generated GraphQL query for %s: %s", tool.name, query)
            return json.dumps({"query": query})

        if self._llm is not None and tool.kind == "openapi":
            schema_block = f"API Schema:\n{schema}\n" if schema else ""
            body = self._synthesise(
                OPENAPI_BODY_PROMPT.format(message=message, schema_block=schema_block),
                "openapi_body",
            )
            logger.info("Generated request body for %s: %s", tool.name, body)
            return body or "{}"

        return json.dumps({"query": message, "message": message, "text": message})

    # ── Invocation ───────────────────────────────────────────────────

    def maybe_invoke(self, tool: ApiToolBase, message: str) -> str | None:
        """Call *tool* if it looks relevant to *message*.

        Returns a formatted result or error note, or ``None`` when the tool
        was skipped or answered non-2xx with an empty body.
        """
        if not is_api_tool_relevant(tool, message):
            logger.debug("API tool %s not relevant to this message", tool.name)
            return None

        logger.info("Calling API tool %s - %s", tool.name, tool.url)
        try:
            body = self.build_request_body(tool, message) if tool.method == "POST" else None
            with metrics.track("api_tool", tool.method):
                response = self._client.request(
                    tool.method,
                    tool.url,
                    headers=build_request_headers(tool),
                    content=body,
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
        except Exception as exc:
            logger.warning("Error calling API tool %s: %s", tool.name, exc)
            return f"\n--- Error calling {tool.name} ---\nFailed to reach the API: {exc}"

        text = response.text
        logger.info(
            "API tool %s response: status=%d, length=%d", tool.name, response.status_code, len(text),
        )
        if response.is_success:
            if len(text) > SUCCESS_TEXT_LIMIT:
                text = text[:SUCCESS_TEXT_LIMIT] + "..."
            return f"\n--- Result from {tool.name} ---\n{text}"

        logger.warning("API tool %s error %d: %s", tool.name, response.status_code, text[:500])
        if not text:
            return None
        return f"\n--- Error from {tool.name} ({response.status_code}) ---\n{text[:ERROR_TEXT_LIMIT]}"

    def gather(self, tools: list[ApiToolBase], message: str) -> list[str]:
        results = []
        for tool in tools:
            result = self.maybe_invoke(tool, message)
            if result:
                results.append(result)
        return results
