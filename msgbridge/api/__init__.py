"""API module for the bridge."""

from .routes import (
    batch_results,
    cancel_batch,
    count_tokens_endpoint,
    create_batch,
    get_batch,
    get_model,
    health,
    list_batches,
    list_models,
    messages_endpoint,
)

__all__ = [
    "batch_results",
    "cancel_batch",
    "count_tokens_endpoint",
    "create_batch",
    "get_batch",
    "get_model",
    "health",
    "list_batches",
    "list_models",
    "messages_endpoint",
]
