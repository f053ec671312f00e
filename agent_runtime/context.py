"""Assembles the system instruction for the reply model.

Section order is fixed:

  1. tool-server results   (with the "present, don't code" directive)
  2. HTTP tool results     (same directive)
  3. agent personality
  4. knowledge-base context
  5. scheduling guidance and availability
  6. listing of configured HTTP tools
  7. closing reminder, only when a results block was included

Retrieved data goes first so the reply model reads it before anything
else; the closing reminder repeats the directive after the long middle
sections.
"""

from __future__ import annotations

from collections.abc import Sequence

from agent_runtime.models import Agent
from agent_runtime.prompts import (
    API_RESULTS_SECTION,
    DEFAULT_PERSONALITY,
    KNOWLEDGE_INTRO,
    MCP_RESULTS_SECTION,
    SCHEDULING_CAPABILITY,
    TOOL_DATA_REMINDER,
)


def personality(agent: Agent) -> str:
    return agent.system_instructions or DEFAULT_PERSONALITY.format(name=agent.name)


def assemble_instructions(
    agent: Agent,
    *,
    mcp_results: Sequence[str] = (),
    api_results: Sequence[str] = (),
    knowledge: str = "",
    api_tool_listing: str = "",
    scheduling_context: str | None = None,
) -> str:
    """Build the system instruction from the pipeline's outputs.

    ``scheduling_context`` is ``None`` when the agent cannot schedule; an
    empty string still adds the capability guidance.
    """
    parts: list[str] = []
    if mcp_results:
        parts.append(MCP_RESULTS_SECTION.format(results="\n".join(mcp_results)))
    if api_results:
        parts.append(API_RESULTS_SECTION.format(results="\n".join(api_results)))

    parts.append(personality(agent))

    if knowledge:
        parts.append(KNOWLEDGE_INTRO + knowledge)
    if scheduling_context is not None:
        parts.append(SCHEDULING_CAPABILITY)
        parts.append(scheduling_context)
    if api_tool_listing:
        parts.append(api_tool_listing)

    if mcp_results or api_results:
        parts.append(TOOL_DATA_REMINDER)
    return "".join(parts)
