"""Tests for the search provider client and the two-phase orchestrator."""

import base64
from datetime import date

import pytest

from conftest import SEARCH_URL, UPSTREAM_BASE_URL
from msgbridge.cache import EphemeralCache
from msgbridge.core.backend import Backend, BackendClient
from msgbridge.core.exceptions import SearchProviderError
from msgbridge.core.models import ModelMapping
from msgbridge.messages.stream_adapter import StreamPacing
from msgbridge.testing import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    build_search_response,
    build_search_tool_result_request,
    build_web_search_request,
    collect_tool_input,
    sse_payloads,
)
from msgbridge.websearch import (
    SearchSettings,
    WebSearchOrchestrator,
    WebSearchProvider,
    build_search_history,
)
from msgbridge.websearch.orchestrator import format_page_age

MAPPING = ModelMapping("claude-3-5-sonnet-20241022", "gpt-4o", 8192)
RESULTS = [
    {"link": "https://news.example/ai", "title": "AI News", "content": "Big AI things happened."},
    {"link": "https://blog.example/ml", "title": "ML Blog", "content": "", "snippet": "A snippet."},
]


def _orchestrator(cache=None, search_url=SEARCH_URL):
    return WebSearchOrchestrator(
        WebSearchProvider(SearchSettings(base_url=search_url, api_key="search-key")),
        cache or EphemeralCache(),
        BackendClient(Backend("openai", UPSTREAM_BASE_URL, "test-key")),
        today=lambda: date(2025, 6, 19),
    )


class TestSearchHistory:
    def test_flattens_system_and_blocks(self):
        request = {
            "system": [{"type": "text", "text": "sys"}],
            "messages": [
                {"role": "user", "content": "q"},
                {"role": "assistant", "content": [{"type": "text", "text": "a"}, {"type": "tool_use", "id": "t"}]},
            ],
        }
        history = build_search_history(request)
        assert history[0] == {"role": "system", "content": "sys"}
        assert history[1] == {"role": "user", "content": "q"}
        assert history[2]["content"].startswith("a\n{")


class TestWebSearchProvider:
    """Tests for the provider HTTP client."""

    @pytest.mark.asyncio
    async def test_posts_query_with_bearer_auth(self, search_provider):
        search_provider.enqueue_results(RESULTS)
        provider = WebSearchProvider(SearchSettings(base_url=SEARCH_URL, api_key="search-key", top_k=5))

        payload = await provider.search("ai news", {"messages": [{"role": "user", "content": "hi"}]})

        assert len(payload["result"]["search_result"]) == 2
        sent = search_provider.received[0]
        assert sent["headers"]["authorization"] == "Bearer search-key"
        assert sent["json"]["query"] == "ai news"
        assert sent["json"]["top_k"] == 5
        assert sent["json"]["query_rewrite"] is True
        assert sent["json"]["content_type"] == "snippet"
        assert sent["json"]["history"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_error_status_returns_none(self, search_provider):
        search_provider.enqueue_error(503)
        provider = WebSearchProvider(SearchSettings(base_url=SEARCH_URL))
        assert await provider.search("q", {}) is None

    @pytest.mark.asyncio
    async def test_unconfigured_returns_none(self):
        assert await WebSearchProvider(SearchSettings()).search("q", {}) is None


class TestSearchPhase:
    """Phase 1: the bridge performs the search itself."""

    @pytest.mark.asyncio
    async def test_builds_server_tool_message_and_caches_results(self, search_provider):
        search_provider.enqueue(build_search_response(RESULTS, search_count=2))
        cache = EphemeralCache()
        orchestrator = _orchestrator(cache)
        request = build_web_search_request("latest AI news")

        context = orchestrator.detect(request)
        message = await orchestrator.handle(request, MAPPING, context)

        assert_anthropic_message_valid(message)
        text, tool_use, tool_result = message["content"]
        assert text == {"type": "text", "text": "I'll search for information about latest AI news."}
        assert tool_use["type"] == "server_tool_use"
        assert tool_use["id"].startswith("srvtoolu_")
        assert tool_use["input"] == {"query": "latest AI news"}
        assert tool_result["tool_use_id"] == tool_use["id"]
        entries = tool_result["content"]
        assert [e["url"] for e in entries] == ["https://news.example/ai", "https://blog.example/ml"]
        assert entries[0]["page_age"] == "June 19, 2025"
        assert base64.b64decode(entries[0]["encrypted_content"]).decode() == "Big AI things happened."
        assert base64.b64decode(entries[1]["encrypted_content"]).decode() == "A snippet."
        assert message["usage"]["server_tool_use"] == {"web_search_requests": 2}
        assert message["stop_reason"] == "end_turn"

        assert cache.get("https://news.example/ai")["title"] == "AI News"
        cache.close()

    @pytest.mark.asyncio
    async def test_provider_failure_raises(self, search_provider):
        search_provider.enqueue_error(500)
        orchestrator = _orchestrator()
        request = build_web_search_request("anything")
        with pytest.raises(SearchProviderError, match="anything"):
            await orchestrator.handle(request, MAPPING, orchestrator.detect(request))

    @pytest.mark.asyncio
    async def test_stream_replays_the_same_message(self, search_provider):
        search_provider.enqueue_results(RESULTS)
        orchestrator = _orchestrator()
        request = build_web_search_request("latest AI news", stream=True)

        raw = b"".join([
            e async for e in orchestrator.stream(
                request, MAPPING, orchestrator.detect(request), StreamPacing.instant()
            )
        ])
        events = sse_payloads(raw)

        assert_anthropic_sse_valid(events)
        types = [e["content_block"]["type"] for e in events if e["type"] == "content_block_start"]
        assert types == ["text", "server_tool_use", "web_search_tool_result"]
        assert collect_tool_input(events, 1) == {"query": "latest AI news"}
        orchestrator.cache.close()


class TestAnswerPhase:
    """Phase 2: links come back in a tool_result and get answered."""

    LINKS = [
        {"title": "AI News", "url": "https://news.example/ai"},
        {"title": "Uncached", "url": "https://other.example/page"},
    ]

    @pytest.mark.asyncio
    async def test_backend_answer_with_cached_content(self, upstream):
        cache = EphemeralCache()
        cache.set("https://news.example/ai", RESULTS[0])
        upstream.enqueue_openai_chat_response("AI is moving fast.")
        orchestrator = _orchestrator(cache)
        request = build_search_tool_result_request("latest AI news", self.LINKS)

        message = await orchestrator.handle(request, MAPPING, orchestrator.detect(request))

        assert_anthropic_message_valid(message)
        result_block, text_block = message["content"]
        assert result_block["type"] == "web_search_tool_result"
        assert [e["title"] for e in result_block["content"]] == ["AI News", "Uncached"]
        assert text_block == {"type": "text", "text": "AI is moving fast."}

        sent = upstream.last_json
        assert sent["model"] == "gpt-4o"
        assert sent["max_tokens"] == 1000
        assert sent["temperature"] == 0.7
        assert sent["stream"] is False
        prompt = sent["messages"][1]["content"]
        assert '"latest AI news"' in prompt
        assert "Big AI things happened." in prompt
        assert "No content available" in prompt
        cache.close()

    @pytest.mark.asyncio
    async def test_backend_failure_uses_template(self, upstream):
        upstream.enqueue_error_response(500, "backend down")
        orchestrator = _orchestrator()
        request = build_search_tool_result_request("latest AI news", self.LINKS)

        message = await orchestrator.handle(request, MAPPING, orchestrator.detect(request))

        answer = message["content"][1]["text"]
        assert answer.startswith('Based on the search results for "latest AI news"')
        assert "Found 2 relevant sources from news.example, other.example." in answer
        assert "**Summary:**" in answer

    @pytest.mark.asyncio
    async def test_empty_backend_answer_uses_template(self, upstream):
        upstream.enqueue_openai_chat_response("   ")
        orchestrator = _orchestrator()
        request = build_search_tool_result_request("q", self.LINKS)
        message = await orchestrator.handle(request, MAPPING, orchestrator.detect(request))
        assert "**Summary:**" in message["content"][1]["text"]

    @pytest.mark.asyncio
    async def test_no_links_answers_without_backend(self, upstream):
        orchestrator = _orchestrator()
        request = build_search_tool_result_request("obscure thing", [])
        message = await orchestrator.handle(request, MAPPING, orchestrator.detect(request))
        assert message["content"][1]["text"] == (
            'I searched for "obscure thing" but couldn\'t find any relevant results.'
        )
        assert upstream.received == []

    @pytest.mark.asyncio
    async def test_unparseable_links_raise(self, upstream):
        orchestrator = _orchestrator()
        request = build_search_tool_result_request("q", [])
        request["messages"][-1]["content"][0]["content"] = "Web search results for query: q [oops"
        with pytest.raises(SearchProviderError):
            await orchestrator.handle(request, MAPPING, orchestrator.detect(request))


def test_format_page_age():
    assert format_page_age(date(2025, 1, 5)) == "January 5, 2025"


def test_fallback_answer_truncates_content():
    answer = WebSearchOrchestrator.fallback_answer(
        "q", [{"title": "T", "url": "https://a.example/x", "content": "z" * 500}]
    )
    assert "z" * 200 + "..." in answer
    assert "z" * 201 not in answer
