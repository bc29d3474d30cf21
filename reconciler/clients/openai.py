"""OpenAI platform REST client used by every resource controller."""

from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
import structlog
from pydantic import SecretStr

from reconciler.clients.base import BaseAPIClient
from reconciler.clients.exceptions import PermissionDeniedError
from reconciler.clients.pagination import CursorWalker
from reconciler.security.validation import validate_api_token, validate_url

logger = structlog.get_logger(__name__)

ASSISTANTS_BETA_HEADER = {"OpenAI-Beta": "assistants=v2"}


class ApiScope(str, Enum):
    """Credential scope a call requires."""
    PROJECT = "project"
    ADMIN = "admin"


class OpenAIClient(BaseAPIClient):
    """Typed request/response layer over the OpenAI REST API.

    Two credentials are supported: a project-scoped key for project
    resources (files, assistants, ...) and an organization admin key for
    organization resources (projects, users, invites, rate limits, admin
    keys). Admin calls never fall back to the project key.
    """

    def __init__(
        self,
        project_api_key: Optional[SecretStr] = None,
        admin_api_key: Optional[SecretStr] = None,
        api_url: str = "https://api.openai.com/v1",
        organization_id: Optional[str] = None,
        project_id: Optional[str] = None,
        timeout_seconds: float = 60,
        rate_limit_per_minute: int = 600,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize OpenAI client.

        Args:
            project_api_key: Project-scoped API key
            admin_api_key: Organization admin API key
            api_url: API base URL including the ``/v1`` prefix
            organization_id: Optional ``OpenAI-Organization`` header value
            project_id: Optional ``OpenAI-Project`` header value
            timeout_seconds: Per-call timeout in seconds
            rate_limit_per_minute: Maximum requests per minute
            max_retries: Maximum retry attempts
            retry_delay_seconds: Initial retry delay
            transport: Optional httpx transport
        """
        if project_api_key is None and admin_api_key is None:
            raise ValueError("At least one of project_api_key or admin_api_key is required")

        for key in (project_api_key, admin_api_key):
            if key is not None and not validate_api_token(key.get_secret_value(), "openai"):
                raise ValueError("Invalid OpenAI API key format")

        if transport is None and not validate_url(api_url, allowed_schemes=["https"]):
            raise ValueError(f"Invalid API URL: {api_url}. Only HTTPS URLs are allowed.")

        self._project_api_key = project_api_key
        self._admin_api_key = admin_api_key
        self.organization_id = organization_id
        self.project_id = project_id

        super().__init__(
            base_url=api_url,
            timeout_seconds=timeout_seconds,
            rate_limit_per_minute=rate_limit_per_minute,
            max_retries=max_retries,
            retry_delay_seconds=retry_delay_seconds,
            transport=transport,
        )

    @property
    def has_admin_scope(self) -> bool:
        return self._admin_api_key is not None

    def require_scope(self, scope: ApiScope) -> None:
        """Fail fast when no credential for ``scope`` is configured.

        Raises:
            PermissionDeniedError: reason ``missing_scope``
        """
        if scope == ApiScope.ADMIN and self._admin_api_key is None:
            raise PermissionDeniedError(
                "Organization admin API key required for this resource; "
                "only a project-scoped key is configured",
                reason="missing_scope",
            )

    def _get_auth_headers(self, scope: Any = None) -> Dict[str, str]:
        scope = ApiScope(scope or ApiScope.PROJECT)
        self.require_scope(scope)

        if scope == ApiScope.ADMIN:
            key = self._admin_api_key
        else:
            key = self._project_api_key or self._admin_api_key

        headers = {"Authorization": f"Bearer {key.get_secret_value()}"}
        if self.organization_id:
            headers["OpenAI-Organization"] = self.organization_id
        if self.project_id and scope == ApiScope.PROJECT:
            headers["OpenAI-Project"] = self.project_id
        return headers

    # JSON helpers

    async def get_json(
        self,
        path: str,
        scope: ApiScope = ApiScope.PROJECT,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        response = await self.request("GET", path, scope=scope, params=params, headers=headers)
        return self._parse_json(response)

    async def post_json(
        self,
        path: str,
        json_data: Optional[Any] = None,
        scope: ApiScope = ApiScope.PROJECT,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        response = await self.request(
            "POST", path, scope=scope, params=params, json_data=json_data, headers=headers
        )
        return self._parse_json(response)

    async def delete_json(
        self,
        path: str,
        scope: ApiScope = ApiScope.PROJECT,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        response = await self.request("DELETE", path, scope=scope, headers=headers)
        return self._parse_json(response)

    async def post_multipart(
        self,
        path: str,
        data: Dict[str, Any],
        files: Dict[str, Any],
        scope: ApiScope = ApiScope.PROJECT,
    ) -> Dict[str, Any]:
        """POST a multipart/form-data body (file uploads, transcriptions)."""
        response = await self.request("POST", path, scope=scope, data=data, files=files)
        return self._parse_json(response)

    async def post_binary(
        self,
        path: str,
        json_data: Dict[str, Any],
        scope: ApiScope = ApiScope.PROJECT,
    ) -> bytes:
        """POST JSON and return the raw response body (speech synthesis)."""
        response = await self.request("POST", path, scope=scope, json_data=json_data)
        return response.content

    # Pagination

    def walker(
        self,
        path: str,
        scope: ApiScope = ApiScope.PROJECT,
        limit: Optional[int] = 100,
        order: Optional[str] = None,
        reverse: bool = False,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> CursorWalker:
        """Build a CursorWalker over a list endpoint.

        Args:
            path: List endpoint path
            scope: Credential scope the endpoint requires
            limit: Page size
            order: Optional sort order
            reverse: Walk backwards with ``before``
            params: Extra query parameters
            headers: Extra headers sent with every page

        Returns:
            A fresh CursorWalker
        """
        async def fetch(page_params: Dict[str, Any]) -> Dict[str, Any]:
            return await self.get_json(path, scope=scope, params=page_params, headers=headers)

        return CursorWalker(fetch, limit=limit, order=order, reverse=reverse, extra_params=params)

    # Chunked uploads

    async def create_upload(
        self,
        filename: str,
        purpose: str,
        total_bytes: int,
        mime_type: str,
    ) -> Dict[str, Any]:
        return await self.post_json(
            "/uploads",
            {
                "filename": filename,
                "purpose": purpose,
                "bytes": total_bytes,
                "mime_type": mime_type,
            },
        )

    async def add_upload_part(
        self,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> Dict[str, Any]:
        """Submit one part; the response carries ``{part_number, etag}``."""
        response = await self.request(
            "POST",
            f"/uploads/{upload_id}/parts",
            scope=ApiScope.PROJECT,
            params={"part_number": part_number},
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        return self._parse_json(response)

    async def complete_upload(
        self,
        upload_id: str,
        parts: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return await self.post_json(f"/uploads/{upload_id}/complete", {"parts": parts})

    async def cancel_upload(self, upload_id: str) -> Dict[str, Any]:
        return await self.post_json(f"/uploads/{upload_id}/cancel")

    # Organization lookups

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Look up an organization member by email (case-insensitive).

        Returns:
            The user payload, or None when no member has this email
        """
        walker = self.walker(
            "/organization/users",
            scope=ApiScope.ADMIN,
            params={"emails": [email]},
        )
        wanted = email.lower()
        return await walker.find(lambda user: str(user.get("email", "")).lower() == wanted)

    async def health_check(self) -> bool:
        """Check that the API answers with the configured credentials."""
        try:
            if self._project_api_key is not None:
                await self.get_json("/models", params={"limit": 1})
            else:
                await self.get_json("/organization/projects", scope=ApiScope.ADMIN, params={"limit": 1})
            return True
        except Exception as e:
            self._logger.error("OpenAI health check failed", error=str(e))
            return False
