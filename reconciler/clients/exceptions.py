"""Exception taxonomy for remote calls and reconciliation."""

from typing import Optional


class APIError(Exception):
    """Base exception for API-related errors."""

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        remote_message: Optional[str] = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code if available
            response_text: Response body text if available
            remote_message: Error message reported by the remote service
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
        self.remote_message = remote_message

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"Status: {self.status_code}")
        if self.remote_message:
            parts.append(f"Remote: {self.remote_message}")
        elif self.response_text:
            # Truncate response text for readability
            response_preview = self.response_text[:200]
            if len(self.response_text) > 200:
                response_preview += "..."
            parts.append(f"Response: {response_preview}")
        return " | ".join(parts)


class TransientNetworkError(APIError):
    """Retryable failure: the exchange may succeed if attempted again."""

    retryable = True


class NetworkError(TransientNetworkError):
    """Raised for transport-level failures (connect, read, timeout)."""
    pass


class ServerError(TransientNetworkError):
    """Raised for 5xx server errors."""
    pass


class RateLimitedError(APIError):
    """Raised when rate limit is exceeded (429)."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        remote_message: Optional[str] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        """Initialize rate limit error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_text: Response body text
            remote_message: Error message reported by the remote service
            retry_after: Seconds to wait before retrying, as hinted by the server
        """
        super().__init__(message, status_code, response_text, remote_message)
        self.retry_after = retry_after


class ClientError(APIError):
    """Raised for 4xx client errors without a more specific class."""
    pass


class ResourceNotFoundError(ClientError):
    """Raised when a requested resource is not found (404)."""
    pass


class ConflictError(ClientError):
    """Raised when there's a conflict with the current state (409)."""
    pass


class RemoteValidationError(ClientError):
    """Raised when the remote service rejects a request body (400/422)."""
    pass


class PermissionDeniedError(ClientError):
    """Raised when a call is not authorised.

    ``reason`` distinguishes a missing or invalid credential
    (``missing_auth``), a credential of the wrong scope that was never sent
    (``missing_scope``) and a credential the remote refused (``forbidden``).
    """

    def __init__(
        self,
        message: str,
        reason: str = "forbidden",
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        remote_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code, response_text, remote_message)
        self.reason = reason


class ConfigurationError(Exception):
    """Raised when client configuration is invalid."""
    pass


class ValidationError(Exception):
    """Raised when declared attributes fail validation before any remote call."""

    def __init__(self, message: str, attribute: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.attribute = attribute


class StateError(Exception):
    """Raised for protocol-sequence violations (always fatal, never retried)."""
    pass


class UploadPartConflictError(StateError):
    """A part number was re-submitted with different content."""

    def __init__(self, message: str, part_number: int) -> None:
        super().__init__(message)
        self.part_number = part_number


class ManifestError(Exception):
    """Raised when a resource manifest cannot be turned into instances."""
    pass


class ReconciliationError(Exception):
    """Fatal failure of one operation on one resource instance."""

    def __init__(
        self,
        message: str,
        address: str,
        operation: str,
        identity: Optional[str] = None,
        remote_message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize reconciliation error.

        Args:
            message: Error message
            address: Address of the resource instance (``kind.name``)
            operation: Attempted operation (create, read, update, delete, import)
            identity: Remote identity, when one was known
            remote_message: Raw message reported by the remote service
            cause: Underlying exception
        """
        super().__init__(message)
        self.message = message
        self.address = address
        self.operation = operation
        self.identity = identity
        self.remote_message = remote_message
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"{self.address}: {self.operation} failed: {self.message}"]
        if self.identity:
            parts.append(f"identity={self.identity}")
        if self.remote_message:
            parts.append(f"remote={self.remote_message}")
        return " | ".join(parts)


def error_kind(exc: BaseException) -> str:
    """Map an exception onto the reconciliation error taxonomy.

    Args:
        exc: Exception raised by a controller or the client

    Returns:
        Taxonomy name used in reports
    """
    if isinstance(exc, ReconciliationError) and exc.cause is not None:
        return error_kind(exc.cause)
    if isinstance(exc, TransientNetworkError):
        return "TransientNetwork"
    if isinstance(exc, RateLimitedError):
        return "RateLimited"
    if isinstance(exc, ResourceNotFoundError):
        return "NotFound"
    if isinstance(exc, ConflictError):
        return "Conflict"
    if isinstance(exc, (ValidationError, RemoteValidationError)):
        return "ValidationError"
    if isinstance(exc, PermissionDeniedError):
        return "PermissionDenied"
    if isinstance(exc, StateError):
        return "StateError"
    return "Unknown"


def is_retryable(exc: BaseException) -> bool:
    """Whether the driver may retry an operation that raised ``exc``."""
    return isinstance(exc, (TransientNetworkError, RateLimitedError))
