"""Tests for the in-memory collaborator store."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from agent_runtime.models import Agent, CalendarConnection, KnowledgeItem
from agent_runtime.services.store import InMemoryStore


@pytest.fixture
def store():
    s = InMemoryStore()
    s.save_agent(Agent(id="a1", owner_id="owner", name="Helper"))
    return s


class TestConversationTurns:
    def test_recent_turns_are_last_n_in_order(self, store):
        for i in range(12):
            store.append_turn("a1", "Caller", "user", f"m{i}")
        turns = store.recent_turns("a1", "caller", limit=10)
        assert [t.content for t in turns] == [f"m{i}" for i in range(2, 12)]

    def test_turns_scoped_by_caller(self, store):
        store.append_turn("a1", "alice", "user", "hi")
        store.append_turn("a1", "bob", "user", "yo")
        assert [t.content for t in store.history("a1", "alice")] == ["hi"]

    def test_clear_turns_returns_count(self, store):
        store.append_turn("a1", "alice", "user", "hi")
        store.append_turn("a1", "alice", "assistant", "hello")
        assert store.clear_turns("a1", "ALICE") == 2
        assert store.history("a1", "alice") == []


class TestAgents:
    def test_increment_message_count(self, store):
        store.increment_message_count("a1")
        store.increment_message_count("a1")
        assert store.get_agent("a1").message_count == 2

    def test_unknown_agent_is_none(self, store):
        assert store.get_agent("missing") is None


class TestCalendarConnections:
    def test_inactive_connection_hidden(self, store):
        store.save_calendar_connection(CalendarConnection(owner_id="owner", is_active=False))
        assert store.get_calendar_connection("owner") is None

    def test_update_token_persists(self, store):
        store.save_calendar_connection(CalendarConnection(owner_id="owner", refresh_token="r"))
        expires = datetime(2030, 1, 1, tzinfo=UTC)
        store.update_calendar_token("OWNER", "fresh", expires)
        connection = store.get_calendar_connection("owner")
        assert connection.access_token == "fresh"
        assert connection.token_expires_at == expires


class TestKnowledgeItems:
    def test_pending_items_limited(self, store):
        for i in range(5):
            store.add_knowledge_item(KnowledgeItem(agent_id="a1", url=f"https://k/{i}"))
        store.add_knowledge_item(KnowledgeItem(agent_id="a1", url="https://k/done", status="indexed"))
        pending = store.pending_knowledge_items("a1", limit=3)
        assert [i.url for i in pending] == ["https://k/0", "https://k/1", "https://k/2"]


class TestFromFile:
    def test_loads_seed_document(self, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text(json.dumps({
            "agents": [{"id": "a9", "owner_id": "o", "name": "Nine", "visibility": "public"}],
        }))
        store = InMemoryStore.from_file(path)
        assert store.get_agent("a9").name == "Nine"

    def test_rejects_malformed_tool_config(self, tmp_path):
        path = tmp_path / "agents.json"
        path.write_text(json.dumps({
            "agents": [{
                "id": "a9", "owner_id": "o", "name": "Nine",
                "api_tools": [{"name": "broken", "method": "GET"}],
            }],
        }))
        with pytest.raises(ValidationError):
            InMemoryStore.from_file(path)
