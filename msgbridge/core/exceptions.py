"""Core exceptions for the bridge.

Every error carries the Anthropic error ``type`` it is rendered as and the HTTP
status used when it escapes a route handler.
"""

from typing import Any, Optional

from fastapi.responses import JSONResponse


class ProxyError(Exception):
    """Base exception for bridge errors."""

    error_type = "api_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "error",
            "error": {"type": self.error_type, "message": self.message},
        }


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    error_type = "invalid_request_error"
    status_code = 400

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class NotFoundError(ProxyError):
    """Raised when a referenced resource (batch, model) does not exist."""

    error_type = "not_found_error"
    status_code = 404


class ModelNotFoundError(NotFoundError):
    """Raised when a requested model is not found in the configuration."""
    pass


class BackendError(ProxyError):
    """Raised when the chat backend cannot be reached or answers with an error."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class BackendResponseError(BackendError):
    """Raised when the backend answered but the body is unusable."""
    pass


class SearchProviderError(ProxyError):
    """Raised when a web search flow cannot produce a result."""

    status_code = 502


def anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
) -> JSONResponse:
    payload = {"type": "error", "error": {"type": error_type, "message": message}}
    return JSONResponse(payload, status_code=status_code)


def error_response_from_exception(exc: ProxyError) -> JSONResponse:
    """Render a bridge exception as an Anthropic error response."""
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)
