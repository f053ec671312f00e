"""Tests for the model-driven tool selection loop."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from agent_runtime.models import McpServerConfig, ToolDescriptor
from agent_runtime.tools.mcp import (
    MAX_ITERATIONS,
    SelectionOutcome,
    ToolSelector,
    first_json_object,
    is_intermediate_result,
    parse_tool_selection,
    render_tool_catalogue,
)

SERVER = McpServerConfig(name="Context7", url="https://ctx.example/mcp")
TOOLS = [
    ToolDescriptor.model_validate({
        "name": "resolve-library-id",
        "description": "Resolve a package name",
        "inputSchema": {
            "properties": {"libraryName": {"type": "string", "description": "Name"}},
            "required": ["libraryName"],
        },
    }),
    ToolDescriptor.model_validate({
        "name": "get-library-docs",
        "inputSchema": {"properties": {"topic": {"type": "string"}}},
    }),
]


def _client(discovered=TOOLS, results=("docs",)):
    client = MagicMock()
    client.discover.return_value = list(discovered)
    client.call_tool.side_effect = list(results)
    return client


# ── Parsing ──────────────────────────────────────────────────────────


class TestFirstJsonObject:
    def test_extracts_object_from_prose(self):
        assert first_json_object('Sure! {"a": {"b": 1}} done') == '{"a": {"b": 1}}'

    def test_ignores_braces_inside_strings(self):
        assert first_json_object('{"q": "}{"}') == '{"q": "}{"}'

    def test_no_object(self):
        assert first_json_object("no json here") is None

    def test_unbalanced(self):
        assert first_json_object('{"a": 1') is None


class TestParseToolSelection:
    def test_valid_call(self):
        selection = parse_tool_selection(
            '```json\n{"toolName": "get-library-docs", "args": {"topic": "hooks"}}\n```',
            {"get-library-docs"},
        )
        assert selection.outcome is SelectionOutcome.TOOL_CALL
        assert selection.tool_name == "get-library-docs"
        assert selection.args == {"topic": "hooks"}

    def test_explicit_no_tool(self):
        selection = parse_tool_selection('{"toolName": null, "args": {}}')
        assert selection.outcome is SelectionOutcome.NO_TOOL

    def test_null_args_is_a_call_without_arguments(self):
        selection = parse_tool_selection('{"toolName": "get-docs", "args": null}', {"get-docs"})
        assert selection.outcome is SelectionOutcome.TOOL_CALL
        assert selection.args == {}

    @pytest.mark.parametrize("text", [
        "I think you should call get-library-docs",
        '{"toolName": "x", "args": [1, 2]}',
        '{"toolName": "nope"}',
    ])
    def test_malformed(self, text):
        selection = parse_tool_selection(text, {"x"})
        assert selection.outcome is SelectionOutcome.MALFORMED


class TestCatalogueAndClassification:
    def test_catalogue_marks_required_and_optional(self):
        text = render_tool_catalogue(TOOLS)
        assert "Tool: resolve-library-id" in text
        assert "Description: Resolve a package name" in text
        assert "  - libraryName (required): string - Name" in text
        assert "  - topic (optional): string" in text

    def test_catalogue_renders_union_types(self):
        tool = ToolDescriptor.model_validate({
            "name": "search",
            "inputSchema": {"properties": {"q": {"type": ["string", "null"]}}},
        })
        assert "  - q (optional): string | null" in render_tool_catalogue([tool])

    def test_intermediate_by_tool_name(self):
        assert is_intermediate_result("resolve-library-id", "anything")
        assert is_intermediate_result("list-repos", "anything")

    def test_intermediate_by_result_marker(self):
        assert is_intermediate_result("lookup", "Context7-compatible library ID: /a/b")

    def test_final(self):
        assert not is_intermediate_result("get-library-docs", "Use the hook like this")


# ── The loop ─────────────────────────────────────────────────────────


class TestSelectAndRun:
    def test_resolve_then_docs_takes_two_iterations(self, mock_llm):
        llm = mock_llm(
            '{"toolName": "resolve-library-id", "args": {"libraryName": "react"}}',
            '{"toolName": "get-library-docs", "args": {"topic": "hooks"}}',
        )
        client = _client(results=["Context7-compatible library ID: /facebook/react", "Hooks docs"])
        selector = ToolSelector(llm, client)

        result = selector.select_and_run("how to use react hooks", TOOLS, SERVER, {})

        assert result.tool_name == "get-library-docs"
        assert result.text == "Hooks docs"
        assert result.iterations == 2
        second_prompt = llm.invoke.call_args_list[1][0][0][0].content
        assert "Result from resolve-library-id:" in second_prompt

    def test_never_more_than_three_model_calls(self, mock_llm):
        llm = mock_llm('{"toolName": "resolve-library-id", "args": {}}')
        client = _client(results=["libraryId: a"] * 5)
        selector = ToolSelector(llm, client)

        result = selector.select_and_run("docs please", TOOLS, SERVER, {})

        assert llm.invoke.call_count == MAX_ITERATIONS
        assert result is not None
        assert result.iterations == MAX_ITERATIONS

    def test_no_tool_stops_without_invoking(self, mock_llm):
        client = _client()
        selector = ToolSelector(mock_llm('{"toolName": null}'), client)
        assert selector.select_and_run("hi", TOOLS, SERVER, {}) is None
        client.call_tool.assert_not_called()

    def test_malformed_reply_stops(self, mock_llm):
        client = _client()
        selector = ToolSelector(mock_llm("not json"), client)
        assert selector.select_and_run("hi", TOOLS, SERVER, {}) is None
        client.call_tool.assert_not_called()

    def test_failed_invocation_ends_loop(self, mock_llm):
        llm = mock_llm('{"toolName": "get-library-docs", "args": {}}')
        selector = ToolSelector(llm, _client(results=[None]))
        assert selector.select_and_run("docs", TOOLS, SERVER, {}) is None
        assert llm.invoke.call_count == 1

    def test_final_result_truncated(self, mock_llm):
        llm = mock_llm('{"toolName": "get-library-docs", "args": {}}')
        selector = ToolSelector(llm, _client(results=["x" * 12_000]))
        result = selector.select_and_run("docs", TOOLS, SERVER, {})
        assert len(result.text) == 10_003
        assert result.text.endswith("...")

    def test_model_failure_treated_as_malformed(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("overloaded")
        assert ToolSelector(llm, _client()).select_and_run("docs", TOOLS, SERVER, {}) is None


class TestRunServer:
    def test_irrelevant_server_is_skipped(self, mock_llm):
        client = _client()
        selector = ToolSelector(mock_llm("{}"), client)
        assert selector.run_server(SERVER, "hi there") is None
        client.discover.assert_not_called()

    def test_result_is_labelled(self, mock_llm):
        llm = mock_llm('{"toolName": "get-library-docs", "args": {}}')
        selector = ToolSelector(llm, _client(results=["Hooks docs"]))
        snippet = selector.run_server(SERVER, "show me the docs")
        assert snippet == "\n--- Results from Context7 (get-library-docs) ---\nHooks docs"

    def test_zero_tools_uses_web_search_and_skips_loop(self, mock_llm):
        llm = mock_llm('{"toolName": "x"}')
        search_llm = mock_llm("Context7 is a documentation server. Call resolve then get docs.")
        selector = ToolSelector(llm, _client(discovered=[]), search_llm=search_llm)

        snippet = selector.run_server(SERVER, "what is context7")

        assert snippet.startswith("\n\nContext about Context7:\n")
        llm.invoke.assert_not_called()

    def test_short_summary_is_discarded(self, mock_llm):
        selector = ToolSelector(
            mock_llm("{}"), _client(discovered=[]), search_llm=mock_llm("Unknown."),
        )
        assert selector.run_server(SERVER, "what is context7") is None

    def test_gather_skips_failing_server(self, mock_llm):
        client = _client()
        client.discover.side_effect = [RuntimeError("boom"), TOOLS]
        client.call_tool.side_effect = ["Hooks docs"]
        llm = mock_llm('{"toolName": "get-library-docs", "args": {}}')
        other = McpServerConfig(name="Other", url="https://other/mcp")

        results = ToolSelector(llm, client).gather([SERVER, other], "show docs")

        assert results == ["\n--- Results from Other (get-library-docs) ---\nHooks docs"]
