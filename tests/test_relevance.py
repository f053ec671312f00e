"""Tests for the relevance heuristics."""

from __future__ import annotations

from agent_runtime.models import GenericApiTool, GraphQLApiTool, McpServerConfig
from agent_runtime.tools.relevance import (
    is_api_tool_relevant,
    is_scheduling_query,
    is_server_relevant,
    looks_like_graphql,
)


class TestServerRelevance:
    def test_always_instruction(self):
        server = McpServerConfig(name="Ctx", url="https://x", instructions="Always use this")
        assert is_server_relevant(server, "hi there")

    def test_server_name_mentioned(self):
        server = McpServerConfig(name="Context7", url="https://x")
        assert is_server_relevant(server, "Ask context7 please")

    def test_query_intent_phrase(self):
        server = McpServerConfig(name="Ctx", url="https://x")
        assert is_server_relevant(server, "How to configure routing?")

    def test_small_talk_is_not_relevant(self):
        server = McpServerConfig(name="Ctx", url="https://x")
        assert not is_server_relevant(server, "hi there, nice day")


class TestApiToolRelevance:
    def test_all_questions_instruction(self):
        tool = GenericApiTool(name="Z", url="https://z", instructions="Use for all questions")
        assert is_api_tool_relevant(tool, "hello")

    def test_keyword_overlap_needs_tokens_longer_than_three(self):
        tool = GenericApiTool(name="Z", url="https://z", description="the weather api")
        assert is_api_tool_relevant(tool, "what's the weather in Porto")
        tool = GenericApiTool(name="Z", url="https://z", description="the cat")
        assert not is_api_tool_relevant(tool, "the cat sat")

    def test_doc_query_with_doc_flavoured_tool(self):
        tool = GenericApiTool(name="Q", url="https://q", description="doc index")
        assert is_api_tool_relevant(tool, "I am looking at routing")

    def test_graphql_tool_with_data_query(self):
        tool = GenericApiTool(name="Q", url="https://api.thegraph.com/subgraphs/x")
        assert is_api_tool_relevant(tool, "show the latest domains")

    def test_explicit_tool_request(self):
        tool = GenericApiTool(name="Q", url="https://q")
        assert is_api_tool_relevant(tool, "use your tool")

    def test_unrelated_message(self):
        tool = GenericApiTool(name="Q", url="https://q", description="stocks")
        assert not is_api_tool_relevant(tool, "hello there")


class TestGraphQLDetection:
    def test_declared_kind(self):
        assert looks_like_graphql(GraphQLApiTool(kind="graphql", name="X", url="https://x"))

    def test_url_or_name(self):
        assert looks_like_graphql(GenericApiTool(name="X", url="https://x.io/graphql"))
        assert looks_like_graphql(GenericApiTool(name="ENS Graph", url="https://x"))

    def test_description_mentions_graphql(self):
        assert looks_like_graphql(GenericApiTool(name="X", url="https://x", description="A GraphQL API"))

    def test_plain_rest(self):
        assert not looks_like_graphql(GenericApiTool(name="X", url="https://x/rest"))


class TestSchedulingQuery:
    def test_detects_scheduling_language(self):
        assert is_scheduling_query("Can I book a meeting next week?")
        assert is_scheduling_query("When can we talk?")

    def test_ignores_other_messages(self):
        assert not is_scheduling_query("What is your favourite colour?")
