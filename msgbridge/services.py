"""Application service wiring."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .batches import BatchRepository
from .cache import EphemeralCache
from .core.backend import Backend, BackendClient
from .core.exceptions import ConfigurationError
from .core.models import ModelManager
from .core.tokenizer import CharacterTokenizer, Tokenizer
from .messages.service import MessagesService
from .messages.stream_adapter import StreamPacing
from .websearch import SearchSettings, WebSearchOrchestrator, WebSearchProvider

logger = logging.getLogger("msgbridge")


@dataclass
class AppServices:
    """Everything the routes need, owned by one application instance."""

    config: Mapping[str, Any]
    models: ModelManager
    backend: BackendClient
    cache: EphemeralCache
    search: WebSearchOrchestrator
    messages: MessagesService
    batches: BatchRepository
    tokenizer: Tokenizer

    async def close(self) -> None:
        await self.batches.close()
        self.cache.close()


def _stream_settings(config: Mapping[str, Any]) -> tuple[StreamPacing, Optional[dict[str, str]]]:
    section = config.get("stream") or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError("'stream' section must be a mapping")
    pacing = StreamPacing() if section.get("pacing", True) else StreamPacing.instant()
    explanations = section.get("tool_explanations")
    if explanations is not None and not isinstance(explanations, Mapping):
        raise ConfigurationError("stream.tool_explanations must be a mapping of tool name to text")
    return pacing, dict(explanations) if explanations is not None else None


def build_services(
    config: Mapping[str, Any],
    *,
    tokenizer: Optional[Tokenizer] = None,
    cache: Optional[EphemeralCache] = None,
) -> AppServices:
    models = ModelManager.from_config(config)
    backend = BackendClient(Backend.from_config(config))
    tokenizer = tokenizer or CharacterTokenizer()
    cache = cache or EphemeralCache()
    search = WebSearchOrchestrator(
        WebSearchProvider(SearchSettings.from_config(config)),
        cache,
        backend,
        tokenizer,
    )
    pacing, explanations = _stream_settings(config)
    messages = MessagesService(
        backend,
        models,
        search,
        tokenizer,
        pacing=pacing,
        explanations=explanations,
    )
    batches = BatchRepository(messages)

    logger.info(
        f"Services initialized: {len(models.names())} models, backend {backend.backend.base_url}, "
        f"routing {'enabled' if models.router_policy else 'disabled'}"
    )
    return AppServices(
        config=config,
        models=models,
        backend=backend,
        cache=cache,
        search=search,
        messages=messages,
        batches=batches,
        tokenizer=tokenizer,
    )
