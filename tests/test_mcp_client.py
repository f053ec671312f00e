"""Tests for tool-server discovery and invocation."""

from __future__ import annotations

import json

import httpx

from agent_runtime.models import McpServerConfig
from agent_runtime.services.cache import TTLCache
from agent_runtime.services.mcp_client import McpClient, build_server_headers

URL = "https://tools.example.com/mcp"
TOOLS_BODY = {"result": {"tools": [
    {"name": "resolve-library-id", "description": "Find a library"},
    {"name": "get-library-docs", "inputSchema": {"properties": {"id": {"type": "string"}}}},
]}}


# ── Headers ──────────────────────────────────────────────────────────


class TestServerHeaders:
    def test_defaults_and_bearer_token(self):
        headers = build_server_headers(McpServerConfig(name="s", url=URL, api_key="k"))
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept"] == "application/json, text/event-stream"
        assert headers["Authorization"] == "Bearer k"

    def test_explicit_authorization_wins_in_any_case(self):
        server = McpServerConfig(
            name="s", url=URL, api_key="k", headers={"authorization": "Token abc"},
        )
        headers = build_server_headers(server)
        assert headers["authorization"] == "Token abc"
        assert "Authorization" not in headers


# ── Discovery ────────────────────────────────────────────────────────


class TestDiscovery:
    def test_parses_tools_and_sends_tools_list(self, http_recorder):
        http, seen = http_recorder(lambda req: httpx.Response(200, json=TOOLS_BODY))
        client = McpClient(cache=TTLCache(), http_client=http)

        tools = client.discover(URL, {})

        assert [t.name for t in tools] == ["resolve-library-id", "get-library-docs"]
        assert json.loads(seen[0].content)["method"] == "tools/list"

    def test_union_typed_parameter_is_accepted(self, http_recorder):
        body = {"result": {"tools": [
            {"name": "search", "inputSchema": {"properties": {"q": {"type": ["string", "null"]}}}},
            {"name": "get-docs", "inputSchema": {"properties": {"id": {"type": "string"}}}},
        ]}}
        http, _ = http_recorder(lambda req: httpx.Response(200, json=body))
        client = McpClient(cache=TTLCache(), http_client=http)

        tools = client.discover(URL, {})

        assert [t.name for t in tools] == ["search", "get-docs"]
        assert tools[0].input_schema.properties["q"].type_label == "string | null"

    def test_malformed_tool_is_skipped_not_the_server(self, http_recorder):
        body = {"result": {"tools": [
            {"description": "no name"},
            {"name": "get-docs"},
        ]}}
        http, _ = http_recorder(lambda req: httpx.Response(200, json=body))
        client = McpClient(cache=TTLCache(), http_client=http)

        assert [t.name for t in client.discover(URL, {})] == ["get-docs"]

    def test_cache_hit_within_ttl_makes_no_call(self, http_recorder, fake_clock):
        http, seen = http_recorder(lambda req: httpx.Response(200, json=TOOLS_BODY))
        client = McpClient(cache=TTLCache(ttl_seconds=3600, clock=fake_clock), http_client=http)

        client.discover(URL, {})
        fake_clock.advance(3599)
        client.discover(URL, {})

        assert len(seen) == 1

    def test_expired_entry_refetches_exactly_once(self, http_recorder, fake_clock):
        http, seen = http_recorder(lambda req: httpx.Response(200, json=TOOLS_BODY))
        client = McpClient(cache=TTLCache(ttl_seconds=3600, clock=fake_clock), http_client=http)

        client.discover(URL, {})
        fake_clock.advance(3600)
        client.discover(URL, {})
        client.discover(URL, {})

        assert len(seen) == 2

    def test_http_failure_returns_empty_and_is_not_cached(self, http_recorder):
        responses = iter([httpx.Response(500), httpx.Response(200, json=TOOLS_BODY)])
        http, seen = http_recorder(lambda req: next(responses))
        client = McpClient(cache=TTLCache(), http_client=http)

        assert client.discover(URL, {}) == []
        assert len(client.discover(URL, {})) == 2
        assert len(seen) == 2

    def test_transport_error_returns_empty(self, http_recorder):
        def _fail(request):
            raise httpx.ConnectError("refused", request=request)

        http, _ = http_recorder(_fail)
        assert McpClient(cache=TTLCache(), http_client=http).discover(URL, {}) == []


# ── Invocation ───────────────────────────────────────────────────────


class TestCallTool:
    def _client(self, http_recorder, handler):
        http, seen = http_recorder(handler)
        return McpClient(cache=TTLCache(), http_client=http), seen

    def test_returns_first_text_block(self, http_recorder):
        body = {"result": {"content": [{"type": "text", "text": "docs here"}]}}
        client, seen = self._client(http_recorder, lambda req: httpx.Response(200, json=body))

        assert client.call_tool(URL, {}, "get-library-docs", {"id": "/x"}) == "docs here"
        payload = json.loads(seen[0].content)
        assert payload["method"] == "tools/call"
        assert payload["params"] == {"name": "get-library-docs", "arguments": {"id": "/x"}}

    def test_falls_back_to_result_json(self, http_recorder):
        body = {"result": {"value": 42}}
        client, _ = self._client(http_recorder, lambda req: httpx.Response(200, json=body))
        assert json.loads(client.call_tool(URL, {}, "t", {})) == {"value": 42}

    def test_jsonrpc_error_yields_none(self, http_recorder):
        body = {"error": {"code": -32601, "message": "no such tool"}}
        client, _ = self._client(http_recorder, lambda req: httpx.Response(200, json=body))
        assert client.call_tool(URL, {}, "t", {}) is None

    def test_http_error_yields_none(self, http_recorder):
        client, _ = self._client(http_recorder, lambda req: httpx.Response(502, text="bad"))
        assert client.call_tool(URL, {}, "t", {}) is None
