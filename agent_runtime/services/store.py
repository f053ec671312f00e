"""In-memory data access for agents, conversation turns and scheduling records.

Everything the chat pipeline reads or writes about the outside world goes
through :class:`InMemoryStore`.  Agent records, availability, calendar
connections and pending knowledge items are owned by other parts of the
product; here they are seeded from a JSON document (``AGENTS_FILE``) and
validated with the pydantic models on load, so malformed tool configs are
rejected at start-up rather than mid-request.

Owner and caller identifiers are compared case-insensitively.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import datetime
from pathlib import Path

from agent_runtime.models import (
    Agent,
    AvailabilityWindow,
    CalendarConnection,
    ConversationTurn,
    KnowledgeItem,
    Role,
    SchedulingSettings,
    SeedData,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Thread-safe store keyed by agent, owner and (agent, caller) pairs."""

    def __init__(self, seed: SeedData | None = None) -> None:
        self._lock = threading.Lock()
        self._agents: dict[str, Agent] = {}
        self._turns: dict[tuple[str, str], list[ConversationTurn]] = defaultdict(list)
        self._windows: dict[str, list[AvailabilityWindow]] = defaultdict(list)
        self._settings: dict[str, SchedulingSettings] = {}
        self._connections: dict[str, CalendarConnection] = {}
        self._knowledge: dict[str, list[KnowledgeItem]] = defaultdict(list)
        if seed is not None:
            self.load(seed)

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryStore:
        """Build a store from a JSON seed document.

        Raises ``pydantic.ValidationError`` if any record is malformed.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        seed = SeedData.model_validate(raw)
        logger.info(
            "Loaded %d agents, %d availability windows from %s",
            len(seed.agents), len(seed.availability_windows), path,
        )
        return cls(seed)

    def load(self, seed: SeedData) -> None:
        for agent in seed.agents:
            self.save_agent(agent)
        for window in seed.availability_windows:
            self.add_availability_window(window)
        for settings in seed.scheduling_settings:
            self.save_scheduling_settings(settings)
        for connection in seed.calendar_connections:
            self.save_calendar_connection(connection)
        for item in seed.knowledge_items:
            self.add_knowledge_item(item)

    # ── Agents ───────────────────────────────────────────────────────

    def get_agent(self, agent_id: str) -> Agent | None:
        with self._lock:
            return self._agents.get(agent_id)

    def save_agent(self, agent: Agent) -> None:
        with self._lock:
            self._agents[agent.id] = agent

    def increment_message_count(self, agent_id: str) -> None:
        with self._lock:
            agent = self._agents.get(agent_id)
            if agent is not None:
                self._agents[agent_id] = agent.model_copy(
                    update={"message_count": agent.message_count + 1},
                )

    # ── Conversation turns ───────────────────────────────────────────

    def recent_turns(
        self, agent_id: str, caller_id: str, limit: int = 10,
    ) -> list[ConversationTurn]:
        """Return the last *limit* turns in chronological order."""
        with self._lock:
            turns = self._turns.get((agent_id, caller_id.lower()), [])
            return list(turns[-limit:]) if limit > 0 else []

    def history(
        self, agent_id: str, caller_id: str, limit: int = 50,
    ) -> list[ConversationTurn]:
        """Return the first *limit* turns in chronological order."""
        with self._lock:
            return list(self._turns.get((agent_id, caller_id.lower()), [])[:limit])

    def append_turn(
        self,
        agent_id: str,
        caller_id: str,
        role: Role,
        content: str,
    ) -> ConversationTurn:
        turn = ConversationTurn(
            agent_id=agent_id, caller_id=caller_id.lower(), role=role, content=content,
        )
        with self._lock:
            self._turns[(agent_id, turn.caller_id)].append(turn)
        return turn

    def clear_turns(self, agent_id: str, caller_id: str) -> int:
        """Delete a caller's turns with an agent.  Returns count removed."""
        with self._lock:
            removed = self._turns.pop((agent_id, caller_id.lower()), [])
            return len(removed)

    # ── Scheduling ───────────────────────────────────────────────────

    def add_availability_window(self, window: AvailabilityWindow) -> None:
        with self._lock:
            self._windows[window.owner_id.lower()].append(window)

    def active_availability_windows(self, owner_id: str) -> list[AvailabilityWindow]:
        with self._lock:
            return [w for w in self._windows.get(owner_id.lower(), []) if w.is_active]

    def save_scheduling_settings(self, settings: SchedulingSettings) -> None:
        with self._lock:
            self._settings[settings.owner_id.lower()] = settings

    def get_scheduling_settings(self, owner_id: str) -> SchedulingSettings | None:
        with self._lock:
            return self._settings.get(owner_id.lower())

    def save_calendar_connection(self, connection: CalendarConnection) -> None:
        with self._lock:
            self._connections[connection.owner_id.lower()] = connection

    def get_calendar_connection(self, owner_id: str) -> CalendarConnection | None:
        """Return the owner's active Google connection, if any."""
        with self._lock:
            connection = self._connections.get(owner_id.lower())
        if connection is None or not connection.is_active:
            return None
        return connection

    def update_calendar_token(
        self, owner_id: str, access_token: str, expires_at: datetime,
    ) -> None:
        with self._lock:
            key = owner_id.lower()
            connection = self._connections.get(key)
            if connection is not None:
                self._connections[key] = connection.model_copy(
                    update={"access_token": access_token, "token_expires_at": expires_at},
                )

    # ── Knowledge items ──────────────────────────────────────────────

    def add_knowledge_item(self, item: KnowledgeItem) -> None:
        with self._lock:
            self._knowledge[item.agent_id].append(item)

    def pending_knowledge_items(self, agent_id: str, limit: int = 3) -> list[KnowledgeItem]:
        """Knowledge items not yet indexed into the chunk store."""
        with self._lock:
            pending = [i for i in self._knowledge.get(agent_id, []) if i.status == "pending"]
        return pending[:limit]
