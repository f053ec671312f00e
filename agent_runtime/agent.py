"""LangGraph chat pipeline and the chat service around it.

Architecture:
  One chat request runs a linear LangGraph ``StateGraph``:

    retrieval → mcp_tools → api_tools → availability → generate → END

  1. **retrieval**   - vector search over the agent's indexed knowledge,
                       falling back to fetching pending knowledge URLs
  2. **mcp_tools**   - discover tools on each configured tool server and
                       run the bounded model-driven selection loop
  3. **api_tools**   - call relevant statically configured HTTP tools
  4. **availability** - owner availability, for scheduling questions only
  5. **generate**    - assemble the system instruction and call the
                       main model with the last 10 turns

  Stages 1-4 are gated by the agent's capability flags and are fail-soft:
  an exception is logged and the stage contributes nothing.  Only a
  failure in ``generate`` fails the request.

  Memory:
    Conversation turns live in the store, not in a LangGraph checkpoint.
    :class:`ChatService` loads the recent turns before the run and appends
    the new user/assistant pair after it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from typing_extensions import TypedDict

from agent_runtime import config
from agent_runtime.context import assemble_instructions
from agent_runtime.llm import build_fast_llm, build_reply_llm, build_search_llm, response_text
from agent_runtime.models import Agent, ConversationTurn, utcnow
from agent_runtime.prompts import FALLBACK_REPLY
from agent_runtime.services.calendar_client import GoogleCalendarClient
from agent_runtime.services.mcp_client import McpClient
from agent_runtime.services.metrics import metrics
from agent_runtime.services.retrieval import KnowledgeRetriever
from agent_runtime.services.store import InMemoryStore
from agent_runtime.tools.api_tools import ApiToolInvoker, render_api_tool_listing
from agent_runtime.tools.mcp import ToolSelector
from agent_runtime.tools.relevance import is_scheduling_query
from agent_runtime.tools.scheduling import SchedulingPayload, SchedulingResult, SchedulingService

logger = logging.getLogger(__name__)

HISTORY_TURNS = 10


# ── State schema ─────────────────────────────────────────────────────


class AgentState(TypedDict, total=False):
    """State flowing through the pipeline.

    Inputs are ``agent``, ``message``, ``history`` and ``now``; each stage
    writes only its own output key.
    """

    agent: Agent
    message: str
    history: list[ConversationTurn]
    now: datetime

    knowledge: str
    mcp_results: list[str]
    api_results: list[str]
    scheduling: SchedulingResult | None
    reply: str


def history_messages(turns: list[ConversationTurn]) -> list[AnyMessage]:
    """Convert stored turns to chat messages, oldest first."""
    return [
        HumanMessage(content=t.content) if t.role == "user" else AIMessage(content=t.content)
        for t in turns
    ]


# ── Pipeline ─────────────────────────────────────────────────────────


class ChatPipeline:
    """Builds and runs the compiled pipeline graph.

    Collaborators are injected so tests can swap any of them.
    ``reply_llm_factory`` receives the agent's web-search flag.
    """

    def __init__(
        self,
        *,
        retriever: KnowledgeRetriever,
        tool_selector: ToolSelector,
        api_invoker: ApiToolInvoker,
        scheduler: SchedulingService,
        reply_llm_factory: Callable[[bool], Any] = lambda web: build_reply_llm(web_search=web),
    ):
        self._retriever = retriever
        self._selector = tool_selector
        self._api = api_invoker
        self._scheduler = scheduler
        self._reply_llm_factory = reply_llm_factory
        self._graph = self._build_graph()

    # ── Nodes ────────────────────────────────────────────────────────

    def retrieval_node(self, state: AgentState) -> dict:
        agent = state["agent"]
        if not agent.use_knowledge_base:
            return {"knowledge": ""}
        try:
            return {"knowledge": self._retriever.knowledge_context(agent.id, state["message"])}
        except Exception:
            logger.exception("Knowledge retrieval failed for agent %s", agent.id)
            return {"knowledge": ""}

    def mcp_node(self, state: AgentState) -> dict:
        agent = state["agent"]
        if not agent.mcp_enabled or not agent.mcp_servers:
            return {"mcp_results": []}
        try:
            return {"mcp_results": self._selector.gather(agent.mcp_servers, state["message"])}
        except Exception:
            logger.exception("Tool server stage failed for agent %s", agent.id)
            return {"mcp_results": []}

    def api_node(self, state: AgentState) -> dict:
        agent = state["agent"]
        if not agent.api_enabled or not agent.api_tools:
            return {"api_results": []}
        try:
            return {"api_results": self._api.gather(agent.api_tools, state["message"])}
        except Exception:
            logger.exception("API tool stage failed for agent %s", agent.id)
            return {"api_results": []}

    def scheduling_node(self, state: AgentState) -> dict:
        agent = state["agent"]
        if not agent.scheduling_enabled or not is_scheduling_query(state["message"]):
            return {"scheduling": None}
        logger.info("Scheduling query detected, fetching availability")
        try:
            return {"scheduling": self._scheduler.build(agent.owner_id, state["now"])}
        except Exception:
            logger.exception("Error fetching scheduling info for %s", agent.owner_id)
            return {"scheduling": None}

    def generate_node(self, state: AgentState) -> dict:
        agent = state["agent"]
        scheduling = state.get("scheduling")
        scheduling_context = None
        if agent.scheduling_enabled:
            scheduling_context = scheduling.context if scheduling else ""

        instructions = assemble_instructions(
            agent,
            mcp_results=state.get("mcp_results", []),
            api_results=state.get("api_results", []),
            knowledge=state.get("knowledge", ""),
            api_tool_listing=render_api_tool_listing(agent.api_tools) if agent.api_enabled else "",
            scheduling_context=scheduling_context,
        )
        messages = [
            SystemMessage(content=instructions),
            *history_messages(state.get("history", [])),
            HumanMessage(content=state["message"]),
        ]

        llm = self._reply_llm_factory(agent.web_search_enabled)
        with metrics.track("anthropic", "reply"):
            response = llm.invoke(messages)
        return {"reply": response_text(response) or FALLBACK_REPLY}

    # ── Graph assembly ───────────────────────────────────────────────

    def _build_graph(self):
        graph = StateGraph(AgentState)
        graph.add_node("retrieval", self.retrieval_node)
        graph.add_node("mcp_tools", self.mcp_node)
        graph.add_node("api_tools", self.api_node)
        graph.add_node("availability", self.scheduling_node)
        graph.add_node("generate", self.generate_node)

        graph.set_entry_point("retrieval")
        graph.add_edge("retrieval", "mcp_tools")
        graph.add_edge("mcp_tools", "api_tools")
        graph.add_edge("api_tools", "availability")
        graph.add_edge("availability", "generate")
        graph.add_edge("generate", END)
        return graph.compile()

    def run(
        self,
        agent: Agent,
        message: str,
        history: list[ConversationTurn],
        now: datetime | None = None,
    ) -> AgentState:
        """Run every stage and return the final state."""
        return self._graph.invoke({
            "agent": agent,
            "message": message,
            "history": history,
            "now": now or utcnow(),
        })


def create_chat_pipeline(store: InMemoryStore) -> ChatPipeline:
    """Build the pipeline with the production collaborators."""
    fast_llm = build_fast_llm()
    return ChatPipeline(
        retriever=KnowledgeRetriever(store),
        tool_selector=ToolSelector(fast_llm, McpClient(), search_llm=build_search_llm()),
        api_invoker=ApiToolInvoker(fast_llm),
        scheduler=SchedulingService(store, GoogleCalendarClient()),
    )


# ── Service ──────────────────────────────────────────────────────────


class ChatError(Exception):
    """A chat request that cannot be served; carries the HTTP status."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class ChatReply:
    message: str
    agent_name: str
    agent_emoji: str | None
    scheduling: SchedulingPayload | None = None


class ChatService:
    """Access checks, history and persistence around the pipeline.

    The pipeline is built on the first chat request, after the model
    credentials have been checked, unless one is injected.
    """

    def __init__(
        self,
        store: InMemoryStore,
        pipeline: ChatPipeline | None = None,
        *,
        pipeline_factory: Callable[[InMemoryStore], ChatPipeline] = create_chat_pipeline,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self._pipeline = pipeline
        self._pipeline_factory = pipeline_factory
        self._clock = clock
        self._lock = threading.Lock()

    def _get_pipeline(self) -> ChatPipeline:
        if self._pipeline is None:
            with self._lock:
                if self._pipeline is None:
                    logger.info("Building chat pipeline")
                    self._pipeline = self._pipeline_factory(self.store)
        return self._pipeline

    def _readable_agent(self, agent_id: str, caller_id: str) -> Agent:
        agent = self.store.get_agent(agent_id)
        if agent is None:
            raise ChatError("Agent not found", 404)
        if not agent.can_be_read_by(caller_id):
            raise ChatError("Access denied", 403)
        return agent

    def chat(self, agent_id: str, caller_id: str | None, message: str | None) -> ChatReply:
        """Answer *message* from *caller_id* as agent *agent_id*."""
        missing = config.missing_required_config()
        if missing:
            logger.error("Chat unavailable, missing configuration: %s", ", ".join(missing))
            raise ChatError("Anthropic API key not configured", 500)

        caller = (caller_id or "").strip().lower()
        text = (message or "").strip()
        if not caller or not text:
            raise ChatError("Caller ID and message are required", 400)

        agent = self._readable_agent(agent_id, caller)
        history = self.store.recent_turns(agent.id, caller, limit=HISTORY_TURNS)

        try:
            state = self._get_pipeline().run(agent, text, history, now=self._clock())
        except Exception as exc:
            logger.exception("Failed to generate response for agent %s", agent.id)
            raise ChatError(f"Failed to generate response: {exc}", 500) from exc

        reply = state.get("reply") or FALLBACK_REPLY
        self.store.append_turn(agent.id, caller, "user", text)
        self.store.append_turn(agent.id, caller, "assistant", reply)
        self.store.increment_message_count(agent.id)

        scheduling = state.get("scheduling")
        return ChatReply(
            message=reply,
            agent_name=agent.name,
            agent_emoji=agent.avatar_emoji,
            scheduling=scheduling.payload if scheduling else None,
        )

    def history(
        self, agent_id: str, caller_id: str | None, limit: int = 50,
    ) -> list[ConversationTurn]:
        caller = (caller_id or "").strip().lower()
        if not caller:
            raise ChatError("Caller ID is required", 400)
        agent = self._readable_agent(agent_id, caller)
        return self.store.history(agent.id, caller, limit=limit)

    def clear_history(self, agent_id: str, caller_id: str | None) -> int:
        caller = (caller_id or "").strip().lower()
        if not caller:
            raise ChatError("Caller ID is required", 400)
        agent = self._readable_agent(agent_id, caller)
        removed = self.store.clear_turns(agent.id, caller)
        logger.info("Cleared %d turns for agent %s", removed, agent.id)
        return removed


def create_chat_service(store: InMemoryStore | None = None) -> ChatService:
    """Chat service over *store*, or over the ``AGENTS_FILE`` seed."""
    if store is None:
        if config.AGENTS_FILE:
            store = InMemoryStore.from_file(config.AGENTS_FILE)
        else:
            logger.warning("AGENTS_FILE not set, starting with an empty store")
            store = InMemoryStore()
    return ChatService(store)
