"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, AsyncGenerator, Generator

import httpx
import pytest
import pytest_asyncio

from msgbridge.core.upstream_transport import clear_upstream_transports, register_upstream_transport
from msgbridge.testing import BridgeHarness, FakeSearchProvider, FakeUpstream

UPSTREAM_BASE_URL = "http://upstream.local/v1"
SEARCH_URL = "http://search.local/search"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


def register_fake_upstream(host: str, upstream: Any) -> None:
    """Register a FakeUpstream (or FakeSearchProvider) for the given host."""
    register_upstream_transport(host, httpx.ASGITransport(app=upstream.app))


# =============================================================================
# Configuration Builders
# =============================================================================


def build_bridge_config(
    base_url: str = UPSTREAM_BASE_URL,
    *,
    search_url: str | None = SEARCH_URL,
    models: list[dict[str, Any]] | None = None,
    router: dict[str, Any] | None = None,
    api_key: str = "test-key",
) -> dict[str, Any]:
    """Build a bridge config pointing at the fake services.

    Args:
        base_url: Chat backend base URL
        search_url: Search service URL (None leaves search unconfigured)
        models: Model mappings (defaults to two claude models)
        router: Optional router section
        api_key: Backend API key

    Returns:
        Config dict for create_app / BridgeHarness
    """
    config: dict[str, Any] = {
        "backend": {"base_url": base_url, "api_key": api_key, "timeout": 5},
        "models": models
        or [
            {
                "source_model": "claude-3-5-sonnet-20241022",
                "target_model": "gpt-4o",
                "max_tokens": 8192,
                "description": "Claude 3.5 Sonnet mapped to GPT-4o",
            },
            {
                "source_model": "claude-3-5-haiku-20241022",
                "target_model": "gpt-4o-mini",
                "max_tokens": 4096,
            },
        ],
        "stream": {"pacing": False},
    }
    if search_url is not None:
        config["web_search"] = {"base_url": search_url, "api_key": "search-key", "timeout": 5}
    if router is not None:
        config["router"] = router
    return config


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def upstream(clear_transport_registry: None) -> FakeUpstream:
    """A FakeUpstream registered for upstream.local."""
    fake = FakeUpstream()
    register_fake_upstream("upstream.local", fake)
    return fake


@pytest.fixture
def search_provider(clear_transport_registry: None) -> FakeSearchProvider:
    """A FakeSearchProvider registered for search.local."""
    fake = FakeSearchProvider()
    register_fake_upstream("search.local", fake)
    return fake


@pytest_asyncio.fixture
async def bridge(
    upstream: FakeUpstream,
    search_provider: FakeSearchProvider,
) -> AsyncGenerator[tuple[FakeUpstream, FakeSearchProvider, BridgeHarness], None]:
    """Create a bridge harness wired to the fake backend and search service.

    Returns:
        Tuple of (FakeUpstream, FakeSearchProvider, BridgeHarness)

    Usage:
        async def test_messages(bridge):
            upstream, search, harness = bridge
            upstream.enqueue_openai_chat_response("Hello")
            ...
    """
    harness = BridgeHarness(build_bridge_config())
    try:
        yield upstream, search_provider, harness
    finally:
        await harness.aclose()
