"""Core module initialization."""

from .backend import Backend, BackendClient, format_httpx_error
from .exceptions import (
    BackendError,
    BackendResponseError,
    ConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    NotFoundError,
    ProxyError,
    SearchProviderError,
)
from .models import ModelManager, ModelMapping, RouterPolicy
from .registry import get_services, set_services
from .router import route_model
from .tokenizer import CharacterTokenizer, Tokenizer, count_request_tokens

__all__ = [
    "Backend",
    "BackendClient",
    "BackendError",
    "BackendResponseError",
    "CharacterTokenizer",
    "ConfigurationError",
    "InvalidRequestError",
    "ModelManager",
    "ModelMapping",
    "ModelNotFoundError",
    "NotFoundError",
    "ProxyError",
    "RouterPolicy",
    "SearchProviderError",
    "Tokenizer",
    "count_request_tokens",
    "format_httpx_error",
    "get_services",
    "route_model",
    "set_services",
]
