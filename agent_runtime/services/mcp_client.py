"""Client for tool servers speaking the JSON-RPC discovery protocol.

Two methods are used:

* ``tools/list``  → ``{"result": {"tools": [...]}}``
* ``tools/call``  → ``{"result": {"content": [{"text": ...}]}}`` or ``{"error": ...}``

Neither method raises.  Discovery returns ``[]`` on any failure and
invocation returns ``None``, so a broken server only costs the request its
contribution to the context.  Successful discovery results are cached per
endpoint URL; failures are never cached.
"""

from __future__ import annotations

import itertools
import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from agent_runtime.models import McpServerConfig, ToolDescriptor
from agent_runtime.services.cache import ToolCache, tool_discovery_cache
from agent_runtime.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0

_request_ids = itertools.count(1)


def build_server_headers(server: McpServerConfig) -> dict[str, str]:
    """Default headers, then configured headers, then the bearer token.

    The API key is only used when no ``Authorization`` header (any case)
    was configured explicitly.
    """
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json, text/event-stream",
    }
    headers.update(server.headers)
    if server.api_key and not any(k.lower() == "authorization" for k in headers):
        headers["Authorization"] = f"Bearer {server.api_key}"
    return headers


class McpClient:
    """Discovers and invokes tools on remote tool servers."""

    def __init__(
        self,
        *,
        cache: ToolCache | None = None,
        http_client: httpx.Client | None = None,
    ):
        self._cache = cache if cache is not None else tool_discovery_cache
        self._client = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)

    def discover(self, server_url: str, headers: dict[str, str]) -> list[ToolDescriptor]:
        """Return the tools advertised by *server_url* (cached for the TTL)."""
        if not self._cache.is_expired(server_url):
            cached = self._cache.get(server_url)
            if cached is not None:
                logger.debug("Using cached tools for %s", server_url)
                return cached

        logger.info("Discovering tools from %s", server_url)
        payload = {"jsonrpc": "2.0", "id": 0, "method": "tools/list", "params": {}}
        try:
            with metrics.track("mcp", "tools/list"):
                response = self._client.post(server_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Tool discovery from %s failed: %s", server_url, exc)
            return []

        if not response.is_success:
            logger.warning(
                "Tool discovery from %s returned HTTP %d", server_url, response.status_code,
            )
            return []

        try:
            raw_tools = (response.json().get("result") or {}).get("tools") or []
        except (ValueError, AttributeError) as exc:
            logger.warning("Tool discovery from %s returned a malformed list: %s", server_url, exc)
            return []

        tools = []
        for raw in raw_tools:
            try:
                tools.append(ToolDescriptor.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed tool from %s: %s", server_url, exc)

        logger.info("Discovered %d tools from %s", len(tools), server_url)
        self._cache.set(server_url, tools)
        return tools

    def call_tool(
        self,
        server_url: str,
        headers: dict[str, str],
        tool_name: str,
        arguments: dict[str, Any],
    ) -> str | None:
        """Invoke *tool_name* and return its text result, or ``None`` on failure."""
        logger.info("Calling tool %s with args %s", tool_name, arguments)
        payload = {
            "jsonrpc": "2.0",
            "id": next(_request_ids),
            "method": "tools/call",
            "params": {"name": tool_name, "arguments": arguments},
        }
        try:
            with metrics.track("mcp", "tools/call"):
                response = self._client.post(server_url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("Tool %s call failed: %s", tool_name, exc)
            return None

        if not response.is_success:
            logger.warning(
                "Tool %s HTTP error %d: %s",
                tool_name, response.status_code, response.text[:300],
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Tool %s returned a non-JSON body", tool_name)
            return None

        if not isinstance(data, dict):
            return json.dumps(data)
        if data.get("error"):
            logger.warning("Tool %s returned error: %s", tool_name, data["error"])
            return None

        result = data.get("result")
        text = _first_text_block(result)
        if text is None:
            text = json.dumps(result if result is not None else data)
        logger.info("Tool %s returned %d chars", tool_name, len(text))
        return text


def _first_text_block(result: Any) -> str | None:
    if not isinstance(result, dict):
        return None
    content = result.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        text = content[0].get("text")
        if isinstance(text, str) and text:
            return text
    return None
