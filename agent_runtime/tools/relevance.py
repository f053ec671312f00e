"""Heuristic relevance gates deciding whether a tool is worth calling.

These are deliberately cheap substring checks, not classifiers: a false
positive costs one wasted HTTP call, a false negative costs some grounding.
All functions are pure so they can be tuned without touching network code.
"""

from __future__ import annotations

from agent_runtime.models import ApiToolBase, McpServerConfig

SERVER_QUERY_PATTERNS = (
    "docs", "documentation", "how to", "what is", "tell me", "search",
    "find", "help", "show", "get", "explain",
)
DOC_QUERY_PATTERNS = (
    "docs", "documentation", "how to", "what is", "tell me about",
    "looking at", "using",
)
DOC_TOOL_MARKERS = ("doc", "search", "library")
DATA_QUERY_PATTERNS = (
    "get", "fetch", "show", "list", "find", "last", "recent", "latest",
    "first", "top", "all",
)
EXPLICIT_TOOL_REQUESTS = ("api", "tool", "use your")
SCHEDULING_PATTERNS = (
    "schedule", "book", "meeting", "call", "appointment", "availability",
    "available", "time slot", "when can", "set up a",
)


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    return any(n in text for n in needles)


def wants_every_question(instructions: str | None, *, include_all: bool = False) -> bool:
    """Instructions asking for the tool to be used on every message."""
    text = (instructions or "").lower()
    phrases = ("always", "every question", "all questions") if include_all else (
        "always", "every question",
    )
    return _contains_any(text, phrases)


def is_server_relevant(server: McpServerConfig, message: str) -> bool:
    """Gate for engaging a tool server at all."""
    text = message.lower()
    return (
        wants_every_question(server.instructions)
        or server.name.lower() in text
        or _contains_any(text, SERVER_QUERY_PATTERNS)
    )


def looks_like_graphql(tool: ApiToolBase) -> bool:
    """Declared GraphQL, or GraphQL-flavoured url / metadata."""
    if tool.kind == "graphql":
        return True
    described = f"{tool.description or ''} {tool.instructions or ''}".lower()
    return (
        "graph" in tool.url.lower()
        or "graph" in tool.name.lower()
        or "graphql" in described
    )


def keyword_overlap(tool: ApiToolBase, message: str) -> bool:
    """A metadata token longer than three characters appears in the message."""
    text = message.lower()
    return any(word in text for word in tool.metadata_text.split() if len(word) > 3)


def is_api_tool_relevant(tool: ApiToolBase, message: str) -> bool:
    """Gate for calling a configured HTTP tool on this message."""
    text = message.lower()
    metadata = tool.metadata_text

    if wants_every_question(tool.instructions, include_all=True):
        return True
    if tool.name.lower() in text:
        return True
    if keyword_overlap(tool, message):
        return True
    if _contains_any(text, DOC_QUERY_PATTERNS) and _contains_any(metadata, DOC_TOOL_MARKERS):
        return True
    graphql_flavoured = (
        tool.kind == "graphql"
        or "graph" in tool.url.lower()
        or "graphql" in metadata
        or "subgraph" in metadata
    )
    if graphql_flavoured and _contains_any(text, DATA_QUERY_PATTERNS):
        return True
    return _contains_any(text, EXPLICIT_TOOL_REQUESTS)


def is_scheduling_query(message: str) -> bool:
    """Message asks about meetings, bookings or availability."""
    return _contains_any(message.lower(), SCHEDULING_PATTERNS)
