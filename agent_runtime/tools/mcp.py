"""Model-driven tool selection against discovered tool servers.

For each relevant server the fast model picks at most one tool per
iteration.  The chosen tool runs, its result is classified, and
intermediate results (identifier lookups, searches, listings) are fed back
for another pick.  The loop is bounded to ``MAX_ITERATIONS`` model calls
per server.

The model reply is parsed into one of three outcomes:

* ``TOOL_CALL``  - a well-formed ``{"toolName": ..., "args": {...}}`` naming
  an advertised tool;
* ``NO_TOOL``    - the model explicitly declined (``"toolName": null``);
* ``MALFORMED``  - anything else.  Logged and treated as the end of the loop.

The intermediate/final classification is a best-effort substring heuristic
tuned against real documentation servers; it is not a correctness
guarantee.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agent_runtime.llm import response_text
from agent_runtime.models import McpServerConfig, ToolDescriptor
from agent_runtime.prompts import (
    PREVIOUS_RESULTS_BLOCK,
    SERVER_SUMMARY_PROMPT,
    TOOL_SELECTION_PROMPT,
)
from agent_runtime.services.mcp_client import McpClient, build_server_headers
from agent_runtime.services.metrics import metrics
from agent_runtime.tools.relevance import is_server_relevant

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 3
RUNNING_RESULT_LIMIT = 5_000
FINAL_RESULT_LIMIT = 10_000
MIN_SUMMARY_LENGTH = 50

INTERMEDIATE_NAME_MARKERS = ("resolve", "search", "list")
INTERMEDIATE_RESULT_MARKERS = ("library ID", "libraryId", "Context7-compatible")


# ── Parsing the model's choice ───────────────────────────────────────


class SelectionOutcome(str, Enum):
    TOOL_CALL = "tool_call"
    NO_TOOL = "no_tool"
    MALFORMED = "malformed"


class _SelectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool_name: str | None = Field(default=None, alias="toolName")
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _null_args(cls, value: Any) -> Any:
        return {} if value is None else value


@dataclass(frozen=True)
class ToolSelection:
    outcome: SelectionOutcome
    tool_name: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    reason: str = ""


def first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` substring of *text*.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : i + 1]
        # Unbalanced from this brace; no later brace can close either
        return None
    return None


def parse_tool_selection(text: str, known_tools: set[str] | None = None) -> ToolSelection:
    """Classify a raw model reply as a tool call, an explicit no-tool, or malformed."""
    candidate = first_json_object(text)
    if candidate is None:
        return ToolSelection(SelectionOutcome.MALFORMED, reason="no JSON object found")

    try:
        payload = _SelectionPayload.model_validate(json.loads(candidate))
    except (ValueError, ValidationError) as exc:
        return ToolSelection(SelectionOutcome.MALFORMED, reason=f"invalid JSON: {exc}")

    name = (payload.tool_name or "").strip()
    if not name or name.lower() == "null":
        return ToolSelection(SelectionOutcome.NO_TOOL)
    if known_tools is not None and name not in known_tools:
        return ToolSelection(SelectionOutcome.MALFORMED, reason=f"unknown tool {name!r}")
    return ToolSelection(SelectionOutcome.TOOL_CALL, tool_name=name, args=payload.args)


# ── Catalogue rendering and result classification ────────────────────


def render_tool_catalogue(tools: list[ToolDescriptor]) -> str:
    """Describe each tool with its parameters marked required/optional."""
    blocks = []
    for tool in tools:
        lines = [f"Tool: {tool.name}"]
        if tool.description:
            lines.append(f"Description: {tool.description}")
        schema = tool.input_schema
        if schema and schema.properties:
            lines.append("Parameters:")
            for name, param in schema.properties.items():
                marker = "(required)" if name in schema.required else "(optional)"
                line = f"  - {name} {marker}: {param.type_label}"
                if param.description:
                    line += f" - {param.description}"
                lines.append(line)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def is_intermediate_result(tool_name: str, result: str) -> bool:
    """Heuristic: does this result only feed another tool call?"""
    name = tool_name.lower()
    if any(marker in name for marker in INTERMEDIATE_NAME_MARKERS):
        return True
    return any(marker in result for marker in INTERMEDIATE_RESULT_MARKERS)


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


# ── The selection loop ───────────────────────────────────────────────


@dataclass(frozen=True)
class ToolInvocationResult:
    server_name: str
    tool_name: str
    text: str
    iterations: int

    def render(self) -> str:
        return f"\n--- Results from {self.server_name} ({self.tool_name}) ---\n{self.text}"


class ToolSelector:
    """Runs the bounded select → invoke → classify loop for tool servers.

    Args:
        llm: fast chat model used to pick tools (anything with ``invoke``).
        client: tool-server client for discovery and invocation.
        search_llm: web-search-enabled model used to describe servers that
            advertise no tools.  ``None`` disables that fallback.
    """

    def __init__(self, llm: Any, client: McpClient, search_llm: Any | None = None):
        self._llm = llm
        self._client = client
        self._search_llm = search_llm

    def choose(
        self,
        message: str,
        tools: list[ToolDescriptor],
        server_name: str,
        previous_results: str = "",
    ) -> ToolSelection:
        """Ask the model for the next tool to call."""
        previous_block = (
            PREVIOUS_RESULTS_BLOCK.format(previous_results=previous_results)
            if previous_results else ""
        )
        prompt = TOOL_SELECTION_PROMPT.format(
            server_name=server_name,
            catalogue=render_tool_catalogue(tools),
            message=message,
            previous_block=previous_block,
        )
        try:
            with metrics.track("anthropic", "tool_selection"):
                reply = self._llm.invoke([HumanMessage(content=prompt)])
        except Exception as exc:
            logger.warning("Tool selection model call failed for %s: %s", server_name, exc)
            return ToolSelection(SelectionOutcome.MALFORMED, reason="model call failed")

        text = response_text(reply)
        logger.debug("Tool selection reply for %s: %s", server_name, text[:300])
        return parse_tool_selection(text, {t.name for t in tools})

    def select_and_run(
        self,
        message: str,
        tools: list[ToolDescriptor],
        server: McpServerConfig,
        headers: dict[str, str],
        prior_results: str | None = None,
    ) -> ToolInvocationResult | None:
        """Pick and invoke tools on *server* until a final result or the bound."""
        previous = prior_results or ""
        for iteration in range(1, MAX_ITERATIONS + 1):
            selection = self.choose(message, tools, server.name, previous)
            if selection.outcome is SelectionOutcome.NO_TOOL:
                logger.info(
                    "Model needs no more tools from %s after %d iterations",
                    server.name, iteration - 1,
                )
                return None
            if selection.outcome is SelectionOutcome.MALFORMED:
                logger.warning(
                    "Malformed tool selection for %s (%s), stopping", server.name, selection.reason,
                )
                return None

            logger.info("Iteration %d: selected tool %r on %s", iteration, selection.tool_name, server.name)
            result = self._client.call_tool(server.url, headers, selection.tool_name, selection.args)
            if result is None:
                logger.info("Tool %s returned no result", selection.tool_name)
                return None

            previous += f"\n\nResult from {selection.tool_name}:\n{result[:RUNNING_RESULT_LIMIT]}"
            intermediate = is_intermediate_result(selection.tool_name, result)
            logger.info(
                "Tool %s result is %s", selection.tool_name, "intermediate" if intermediate else "final",
            )
            if intermediate and iteration < MAX_ITERATIONS:
                continue
            return ToolInvocationResult(
                server_name=server.name,
                tool_name=selection.tool_name,
                text=truncate(result, FINAL_RESULT_LIMIT),
                iterations=iteration,
            )
        return None

    def describe_server(self, server: McpServerConfig) -> str | None:
        """Web-search summary of a server whose tools could not be discovered."""
        if self._search_llm is None:
            return None
        prompt = SERVER_SUMMARY_PROMPT.format(server_name=server.name)
        try:
            with metrics.track("anthropic", "server_summary"):
                reply = self._search_llm.invoke([HumanMessage(content=prompt)])
        except Exception as exc:
            logger.warning("Could not get context for server %s: %s", server.name, exc)
            return None
        summary = response_text(reply)
        return summary if len(summary) > MIN_SUMMARY_LENGTH else None

    def run_server(self, server: McpServerConfig, message: str) -> str | None:
        """Context contributed by one server for *message*, if any."""
        if not is_server_relevant(server, message):
            logger.debug("Server %s not relevant to this message", server.name)
            return None

        headers = build_server_headers(server)
        tools = self._client.discover(server.url, headers)
        if not tools:
            logger.info("No tools discovered on %s, falling back to web search", server.name)
            summary = self.describe_server(server)
            return f"\n\nContext about {server.name}:\n{summary}" if summary else None

        result = self.select_and_run(message, tools, server, headers)
        return result.render() if result else None

    def gather(self, servers: list[McpServerConfig], message: str) -> list[str]:
        """Run every server in order; a failing server contributes nothing."""
        results = []
        for server in servers:
            try:
                snippet = self.run_server(server, message)
            except Exception:
                logger.exception("Error processing tool server %s", server.name)
                continue
            if snippet:
                results.append(snippet)
        return results
