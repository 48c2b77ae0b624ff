"""Model mappings and routing policy loaded from configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .exceptions import ConfigurationError

logger = logging.getLogger("msgbridge")

DEFAULT_LONG_CONTEXT_THRESHOLD = 60000


@dataclass
class ModelMapping:
    """Maps an Anthropic model id onto a backend chat model."""

    source_model: str
    target_model: str
    max_tokens: int
    description: Optional[str] = None


@dataclass
class RouterPolicy:
    """Optional overrides picked by the model router."""

    default: str
    long_context: Optional[str] = None
    long_context_threshold: int = DEFAULT_LONG_CONTEXT_THRESHOLD
    web_search: Optional[str] = None
    background: Optional[str] = None
    think: Optional[str] = None


DEFAULT_MODELS: list[ModelMapping] = [
    ModelMapping(
        "claude-3-5-sonnet-20241022", "gpt-4o", 8192,
        "Claude 3.5 Sonnet mapped to GPT-4o",
    ),
    ModelMapping(
        "claude-3-5-haiku-20241022", "gpt-4o-mini", 8192,
        "Claude 3.5 Haiku mapped to GPT-4o Mini",
    ),
    ModelMapping(
        "claude-3-opus-20240229", "gpt-4-turbo", 4096,
        "Claude 3 Opus mapped to GPT-4 Turbo",
    ),
    ModelMapping(
        "claude-3-sonnet-20240229", "gpt-4", 4096,
        "Claude 3 Sonnet mapped to GPT-4",
    ),
    ModelMapping(
        "claude-3-haiku-20240307", "gpt-3.5-turbo", 4096,
        "Claude 3 Haiku mapped to GPT-3.5 Turbo",
    ),
]


def _parse_mapping(entry: Mapping[str, Any]) -> ModelMapping:
    source = entry.get("source_model") or entry.get("model_name")
    target = entry.get("target_model")
    if not source or not target:
        raise ConfigurationError(
            f"Model entry needs 'source_model' and 'target_model': {dict(entry)}"
        )
    try:
        max_tokens = int(entry.get("max_tokens", 4096))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid max_tokens for model '{source}': {entry.get('max_tokens')}"
        ) from exc
    return ModelMapping(
        source_model=str(source),
        target_model=str(target),
        max_tokens=max_tokens,
        description=entry.get("description"),
    )


def _parse_router(raw: Mapping[str, Any], default_model: Optional[str]) -> RouterPolicy:
    default = raw.get("default") or default_model
    if not default:
        raise ConfigurationError("router.default is required when no default_model is set")
    threshold = raw.get("long_context_threshold") or DEFAULT_LONG_CONTEXT_THRESHOLD
    return RouterPolicy(
        default=str(default),
        long_context=raw.get("long_context"),
        long_context_threshold=int(threshold),
        web_search=raw.get("web_search"),
        background=raw.get("background"),
        think=raw.get("think"),
    )


@dataclass
class ModelManager:
    """Registry of model mappings plus the optional routing policy."""

    models: dict[str, ModelMapping] = field(default_factory=dict)
    default_model: Optional[str] = None
    router_policy: Optional[RouterPolicy] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ModelManager":
        raw_models = config.get("models") or []
        if not isinstance(raw_models, list):
            raise ConfigurationError("'models' must be a list")

        mappings = [_parse_mapping(entry) for entry in raw_models]
        if not mappings:
            logger.info("No models configured, using built-in default mappings")
            mappings = [ModelMapping(**vars(m)) for m in DEFAULT_MODELS]

        manager = cls()
        for mapping in mappings:
            manager.add(mapping)

        manager.default_model = config.get("default_model") or mappings[0].source_model

        raw_router = config.get("router")
        if isinstance(raw_router, Mapping):
            manager.router_policy = _parse_router(raw_router, manager.default_model)
        return manager

    def get(self, source_model: str) -> Optional[ModelMapping]:
        return self.models.get(source_model)

    def all_models(self) -> list[ModelMapping]:
        return list(self.models.values())

    def add(self, mapping: ModelMapping) -> None:
        # Last registration wins
        if mapping.source_model in self.models:
            logger.info(f"Replacing model mapping for '{mapping.source_model}'")
        self.models[mapping.source_model] = mapping

    def remove(self, source_model: str) -> bool:
        return self.models.pop(source_model, None) is not None

    def names(self) -> list[str]:
        return list(self.models.keys())
