"""Remote API clients, error taxonomy and cursor pagination."""

from reconciler.clients.exceptions import (
    APIError,
    ConflictError,
    NetworkError,
    PermissionDeniedError,
    RateLimitedError,
    ResourceNotFoundError,
    ServerError,
    StateError,
    TransientNetworkError,
    ValidationError,
)
from reconciler.clients.openai import ApiScope, OpenAIClient
from reconciler.clients.pagination import CursorPage, CursorWalker

__all__ = [
    "APIError",
    "ApiScope",
    "ConflictError",
    "CursorPage",
    "CursorWalker",
    "NetworkError",
    "OpenAIClient",
    "PermissionDeniedError",
    "RateLimitedError",
    "ResourceNotFoundError",
    "ServerError",
    "StateError",
    "TransientNetworkError",
    "ValidationError",
]
