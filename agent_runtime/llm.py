"""ChatAnthropic builders and helpers for reading model replies.

Two tiers, as in any cost-aware agent:

* the main model writes the user-facing reply;
* the fast model does the internal work (tool selection, GraphQL / JSON
  body synthesis, tool-server summaries).

Web-search grounding uses Anthropic's server-side ``web_search`` tool, so
replies that use it come back as a list of content blocks rather than a
plain string.  :func:`response_text` flattens either shape.
"""

from __future__ import annotations

import re
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_core.runnables import Runnable

from agent_runtime import config

WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 3}

_CODE_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?")


def build_reply_llm(*, web_search: bool = False) -> Runnable:
    """Main model for the final reply, optionally grounded with web search."""
    llm = ChatAnthropic(
        model=config.MODEL_NAME,
        api_key=config.ANTHROPIC_API_KEY,
        temperature=config.REPLY_TEMPERATURE,
        max_tokens=config.REPLY_MAX_TOKENS,
    )
    if web_search:
        return llm.bind_tools([WEB_SEARCH_TOOL])
    return llm


def build_fast_llm(max_tokens: int = 512) -> ChatAnthropic:
    """Fast model for tool selection and request synthesis (no tools)."""
    return ChatAnthropic(
        model=config.FAST_MODEL_NAME,
        api_key=config.ANTHROPIC_API_KEY,
        temperature=0.0,  # Deterministic selection
        max_tokens=max_tokens,
    )


def build_search_llm() -> Runnable:
    """Fast model with web search, used to describe unknown tool servers."""
    llm = ChatAnthropic(
        model=config.FAST_MODEL_NAME,
        api_key=config.ANTHROPIC_API_KEY,
        temperature=0.2,
        max_tokens=1024,
    )
    return llm.bind_tools([WEB_SEARCH_TOOL])


def response_text(message: Any) -> str:
    """Return the text of a model reply, joining text blocks if needed."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts).strip()
    return str(content).strip()


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences (```graphql, ```json, ```) from *text*."""
    return _CODE_FENCE_RE.sub("", text).strip()
