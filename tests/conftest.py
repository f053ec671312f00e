"""Shared test fixtures for the agent runtime test suite."""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import httpx
import pytest
from langchain_core.messages import AIMessage


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py sees a complete setup.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("GOOGLE_CLIENT_ID", "test-google-client")
    os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-google-secret")
    os.environ["METRICS_ENABLED"] = "false"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


def make_llm(*replies: str):
    """Mock chat model returning the given replies in order."""
    llm = MagicMock()
    messages = [AIMessage(content=r) for r in replies]
    if len(messages) == 1:
        llm.invoke.return_value = messages[0]
    else:
        llm.invoke.side_effect = messages
    return llm


@pytest.fixture
def mock_llm():
    """Factory fixture for mock chat models."""
    return make_llm


@pytest.fixture
def http_recorder():
    """Factory for an ``httpx.Client`` backed by a handler, recording requests.

    Usage::

        client, seen = http_recorder(lambda req: httpx.Response(200, json={}))
    """

    def _make(handler):
        seen: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        return httpx.Client(transport=httpx.MockTransport(_record)), seen

    return _make
