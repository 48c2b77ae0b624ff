"""API routes for the bridge."""

from .batches import batch_results, cancel_batch, create_batch, get_batch, list_batches
from .messages import count_tokens_endpoint, messages_endpoint
from .models import get_model, health, list_models

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
