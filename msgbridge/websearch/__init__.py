"""Simulated web search server tool."""

from .detector import (
    ParsedSearchResult,
    WebSearchContext,
    detect_web_search,
    extract_search_query,
    parse_search_result,
)
from .orchestrator import WebSearchOrchestrator, format_page_age
from .provider import SearchSettings, WebSearchProvider, build_search_history

__all__ = [
    "ParsedSearchResult",
    "SearchSettings",
    "WebSearchContext",
    "WebSearchOrchestrator",
    "WebSearchProvider",
    "build_search_history",
    "detect_web_search",
    "extract_search_query",
    "format_page_age",
    "parse_search_result",
]
