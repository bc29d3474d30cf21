"""Base client with retry logic, error handling, and rate limiting."""

import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from reconciler.clients.exceptions import (
    APIError,
    ClientError,
    ConflictError,
    NetworkError,
    PermissionDeniedError,
    RateLimitedError,
    RemoteValidationError,
    ResourceNotFoundError,
    ServerError,
    TransientNetworkError,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MAX_RETRY_AFTER_SECONDS = 120.0


class BaseAPIClient(ABC):
    """Abstract base class for API clients with common functionality."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 60,
        rate_limit_per_minute: int = 600,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the base API client.

        Args:
            base_url: Base URL for the API
            timeout_seconds: Per-call timeout in seconds
            rate_limit_per_minute: Maximum requests per minute
            max_retries: Maximum retry attempts for transient failures
            retry_delay_seconds: Initial delay between retries
            user_agent: Custom user agent string
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limit_per_minute = rate_limit_per_minute
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds

        headers = {
            "User-Agent": user_agent or self._get_default_user_agent(),
            "Accept": "application/json",
        }

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
            transport=transport,
        )

        self._throttler = Throttler(rate_limit=rate_limit_per_minute, period=60)
        self._backoff = wait_exponential(
            multiplier=retry_delay_seconds,
            min=retry_delay_seconds,
            max=60,
        )

        # Request tracking for logging and debugging
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: Optional[float] = None

        self._logger = logger.bind(
            client_type=self.__class__.__name__,
            base_url=self.base_url,
        )

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()

    @abstractmethod
    def _get_auth_headers(self, scope: Any = None) -> Dict[str, str]:
        """Get authentication headers for a request of the given scope.

        Args:
            scope: Credential scope the call requires

        Returns:
            Dictionary of authentication headers
        """
        pass

    def _get_default_user_agent(self) -> str:
        """Get default user agent string."""
        from reconciler.version import __version__
        return f"openai-reconcile/{__version__}"

    async def _make_request(
        self,
        method: str,
        path: str,
        scope: Any = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Any] = None,
        content: Optional[bytes] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Make a single HTTP request with rate limiting and error mapping.

        Args:
            method: HTTP method (GET, POST, DELETE, etc.)
            path: API endpoint path (relative to base URL)
            scope: Credential scope the call requires
            params: Query parameters
            json_data: JSON request body
            content: Raw binary request body
            data: Form fields for multipart bodies
            files: Files for multipart bodies
            headers: Additional headers

        Returns:
            HTTP response object

        Raises:
            APIError: If the request fails
        """
        # Credentials are resolved before throttling so scope errors fail fast
        request_headers = self._get_auth_headers(scope)
        if headers:
            request_headers.update(headers)

        async with self._throttler:
            url = f"/{path.lstrip('/')}"

            self._request_count += 1
            self._last_request_time = time.time()
            request_id = f"req_{self._request_count}"

            self._logger.debug(
                "Making API request",
                request_id=request_id,
                method=method,
                url=url,
                params=params,
                has_json_data=json_data is not None,
                has_content=content is not None,
            )

            try:
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    content=content,
                    data=data,
                    files=files,
                    headers=request_headers,
                )
            except httpx.RequestError as e:
                self._error_count += 1
                self._logger.warning(
                    "Network error during API request",
                    request_id=request_id,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e

        self._logger.debug(
            "API request completed",
            request_id=request_id,
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            return response

        self._error_count += 1
        raise self._error_from_response(response)

    def _error_from_response(self, response: httpx.Response) -> APIError:
        """Translate an unsuccessful response into the error taxonomy.

        Args:
            response: HTTP response with a non-2xx status

        Returns:
            The exception to raise
        """
        status = response.status_code
        remote_message = self._extract_remote_message(response)
        kwargs = {
            "status_code": status,
            "response_text": response.text,
            "remote_message": remote_message,
        }

        if status == 401:
            return PermissionDeniedError("Authentication failed", reason="missing_auth", **kwargs)
        if status == 403:
            return PermissionDeniedError("Permission denied", reason="forbidden", **kwargs)
        if status == 404:
            return ResourceNotFoundError("Resource not found", **kwargs)
        if status == 409:
            return ConflictError("Conflict with existing resource", **kwargs)
        if status in (400, 422):
            return RemoteValidationError(f"Request rejected: {status}", **kwargs)
        if status == 429:
            return RateLimitedError(
                "Rate limit exceeded",
                retry_after=self._get_retry_after(response),
                **kwargs,
            )
        if 400 <= status < 500:
            return ClientError(f"Client error: {status}", **kwargs)
        if 500 <= status < 600:
            return ServerError(f"Server error: {status}", **kwargs)
        return APIError(f"Unexpected status code: {status}", **kwargs)

    @staticmethod
    def _extract_remote_message(response: httpx.Response) -> Optional[str]:
        """Pull the human readable message out of an error body."""
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return error.get("message")
            if isinstance(error, str):
                return error
            if "message" in body:
                return str(body["message"])
        return None

    def _get_retry_after(self, response: httpx.Response) -> Optional[float]:
        """Extract retry-after value from response headers.

        Args:
            response: HTTP response

        Returns:
            Retry-after value in seconds, or None if not present
        """
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return None

    def _wait(self, retry_state: RetryCallState) -> float:
        """Backoff strategy honouring server-supplied retry hints."""
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        if isinstance(exc, RateLimitedError) and exc.retry_after:
            return min(exc.retry_after, MAX_RETRY_AFTER_SECONDS)
        return self._backoff(retry_state)

    async def with_retry(
        self,
        operation_name: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """Execute an operation with bounded exponential-backoff retries.

        Only transient network errors, 5xx responses and rate limiting are
        retried; semantic errors (404/409/422, permissions) surface at once.

        Args:
            operation_name: Name of the operation for logging
            operation: Callable returning a fresh awaitable per attempt

        Returns:
            Result of the operation

        Raises:
            APIError: If the operation fails after all retries
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self._wait,
            retry=retry_if_exception_type((TransientNetworkError, RateLimitedError)),
            reraise=True,
        ):
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    self._logger.info(
                        "Retrying API request",
                        operation=operation_name,
                        attempt_number=attempt_number,
                    )
                return await operation()
        raise AssertionError("unreachable")  # pragma: no cover

    async def request(
        self,
        method: str,
        path: str,
        scope: Any = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make a request with retry on transient failures.

        Args:
            method: HTTP method
            path: API endpoint path
            scope: Credential scope the call requires
            **kwargs: Passed through to ``_make_request``

        Returns:
            HTTP response
        """
        return await self.with_retry(
            f"{method} {path}",
            lambda: self._make_request(method, path, scope=scope, **kwargs),
        )

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        """Decode a JSON response body."""
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Failed to parse JSON response: {e}",
                status_code=response.status_code,
                response_text=response.text,
            ) from e

    def get_stats(self) -> Dict[str, Any]:
        """Get client statistics for monitoring.

        Returns:
            Dictionary with client statistics
        """
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
            "last_request_time": self._last_request_time,
            "rate_limit_per_minute": self.rate_limit_per_minute,
            "base_url": self.base_url,
        }
