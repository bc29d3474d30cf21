"""Unit tests for the OpenAI client: credentials, error mapping and retries."""

import httpx
import pytest
from pydantic import SecretStr

from reconciler.clients.exceptions import (
    ConflictError,
    NetworkError,
    PermissionDeniedError,
    RateLimitedError,
    RemoteValidationError,
    ResourceNotFoundError,
    ServerError,
    error_kind,
    is_retryable,
)
from reconciler.clients.openai import ApiScope, OpenAIClient
from tests.fakes import ADMIN_KEY, PROJECT_KEY, error_response, page


class TestClientConstruction:
    """Test client initialization."""

    def test_requires_a_credential(self):
        with pytest.raises(ValueError, match="At least one"):
            OpenAIClient()

    def test_rejects_malformed_key(self):
        with pytest.raises(ValueError, match="Invalid OpenAI API key format"):
            OpenAIClient(project_api_key=SecretStr("not-a-key"))

    def test_rejects_plain_http_url(self):
        with pytest.raises(ValueError, match="Only HTTPS"):
            OpenAIClient(project_api_key=SecretStr(PROJECT_KEY), api_url="http://api.openai.com/v1")

    def test_admin_scope_flag(self, make_client):
        assert make_client(admin=True).has_admin_scope
        assert not make_client(admin=False).has_admin_scope


@pytest.mark.asyncio
class TestCredentials:
    """Test that each call carries the key of its scope."""

    async def test_project_call_uses_project_key(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", {"id": "file-1"})
        client = make_client(project_id="proj_1")

        await client.get_json("/files/file-1")

        request = fake_api.requests[0]
        assert request.headers["Authorization"] == f"Bearer {PROJECT_KEY}"
        assert request.headers["OpenAI-Project"] == "proj_1"

    async def test_admin_call_uses_admin_key(self, make_client, fake_api):
        fake_api.add("GET", "/organization/projects/proj_1", {"id": "proj_1"})
        client = make_client(project_id="proj_1")

        await client.get_json("/organization/projects/proj_1", scope=ApiScope.ADMIN)

        request = fake_api.requests[0]
        assert request.headers["Authorization"] == f"Bearer {ADMIN_KEY}"
        assert "OpenAI-Project" not in request.headers

    async def test_admin_call_without_admin_key_fails_before_sending(self, make_client, fake_api):
        client = make_client(admin=False)

        with pytest.raises(PermissionDeniedError) as exc_info:
            await client.get_json("/organization/projects", scope=ApiScope.ADMIN)

        assert exc_info.value.reason == "missing_scope"
        assert error_kind(exc_info.value) == "PermissionDenied"
        assert fake_api.requests == []

    async def test_project_call_falls_back_to_admin_key(self, make_client, fake_api):
        fake_api.add("GET", "/models", page([]))
        client = make_client(project=False)

        await client.get_json("/models")

        assert fake_api.requests[0].headers["Authorization"] == f"Bearer {ADMIN_KEY}"


@pytest.mark.asyncio
class TestErrorMapping:
    """Test translation of HTTP statuses into the error taxonomy."""

    @pytest.mark.parametrize(
        "status_code,expected,kind",
        [
            (400, RemoteValidationError, "ValidationError"),
            (404, ResourceNotFoundError, "NotFound"),
            (409, ConflictError, "Conflict"),
            (422, RemoteValidationError, "ValidationError"),
        ],
    )
    async def test_client_errors(self, make_client, fake_api, status_code, expected, kind):
        fake_api.add("GET", "/files/file-1", error_response(status_code, "nope"))
        client = make_client()

        with pytest.raises(expected) as exc_info:
            await client.get_json("/files/file-1")

        assert exc_info.value.status_code == status_code
        assert exc_info.value.remote_message == "nope"
        assert error_kind(exc_info.value) == kind
        assert not is_retryable(exc_info.value)
        # Semantic errors are never retried
        assert len(fake_api.requests) == 1

    async def test_forbidden_and_unauthenticated(self, make_client, fake_api):
        fake_api.add("GET", "/files/a", error_response(401, "bad key"))
        fake_api.add("GET", "/files/b", error_response(403, "no access"))
        client = make_client()

        with pytest.raises(PermissionDeniedError) as unauthenticated:
            await client.get_json("/files/a")
        with pytest.raises(PermissionDeniedError) as forbidden:
            await client.get_json("/files/b")

        assert unauthenticated.value.reason == "missing_auth"
        assert forbidden.value.reason == "forbidden"

    async def test_plain_text_error_body(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", httpx.Response(404, text="gone"))
        client = make_client()

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await client.get_json("/files/file-1")

        assert exc_info.value.remote_message == "gone"


@pytest.mark.asyncio
class TestRetries:
    """Test bounded retries of transient failures."""

    async def test_server_error_then_success(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", error_response(502), {"id": "file-1"})
        client = make_client(max_retries=2)

        payload = await client.get_json("/files/file-1")

        assert payload == {"id": "file-1"}
        assert len(fake_api.requests) == 2

    async def test_rate_limited_then_success(self, make_client, fake_api):
        fake_api.add(
            "GET",
            "/files/file-1",
            error_response(429, "slow down", **{"Retry-After": "0"}),
            {"id": "file-1"},
        )
        client = make_client(max_retries=1)

        assert await client.get_json("/files/file-1") == {"id": "file-1"}
        assert len(fake_api.requests) == 2

    async def test_retries_are_bounded(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", error_response(500, "boom"))
        client = make_client(max_retries=2)

        with pytest.raises(ServerError) as exc_info:
            await client.get_json("/files/file-1")

        assert error_kind(exc_info.value) == "TransientNetwork"
        assert len(fake_api.requests) == 3

    async def test_rate_limit_error_keeps_retry_hint(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", error_response(429, "slow down", **{"Retry-After": "0"}))
        client = make_client(max_retries=0)

        with pytest.raises(RateLimitedError) as exc_info:
            await client.get_json("/files/file-1")

        assert exc_info.value.retry_after == 0
        assert error_kind(exc_info.value) == "RateLimited"

    async def test_network_error_is_retried(self, make_client, fake_api):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"id": "file-1"})

        fake_api.add("GET", "/files/file-1", flaky)
        client = make_client(max_retries=1)

        assert await client.get_json("/files/file-1") == {"id": "file-1"}
        assert len(attempts) == 2

    async def test_network_error_surfaces_after_retries(self, make_client, fake_api):
        def down(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_api.add("GET", "/files/file-1", down)
        client = make_client(max_retries=0)

        with pytest.raises(NetworkError):
            await client.get_json("/files/file-1")


@pytest.mark.asyncio
class TestLookups:
    """Test organization lookups and health checks."""

    async def test_find_user_by_email_is_case_insensitive(self, client, fake_api):
        fake_api.add(
            "GET",
            "/organization/users",
            page([
                {"id": "user_1", "email": "someone@example.com"},
                {"id": "user_2", "email": "Ada@Example.com"},
            ]),
        )

        user = await client.find_user_by_email("ada@example.com")

        assert user["id"] == "user_2"
        assert fake_api.requests[0].url.params["emails"] == "ada@example.com"

    async def test_find_user_by_email_missing(self, client, fake_api):
        fake_api.add("GET", "/organization/users", page([]))

        assert await client.find_user_by_email("nobody@example.com") is None

    async def test_health_check(self, client, fake_api):
        fake_api.add("GET", "/models", page([{"id": "gpt-4o"}]))
        assert await client.health_check() is True

    async def test_health_check_failure(self, make_client, fake_api):
        fake_api.add("GET", "/models", error_response(401, "bad key"))
        assert await make_client(max_retries=0).health_check() is False

    async def test_stats_track_errors(self, make_client, fake_api):
        fake_api.add("GET", "/files/file-1", error_response(404))
        client = make_client()

        with pytest.raises(ResourceNotFoundError):
            await client.get_json("/files/file-1")

        stats = client.get_stats()
        assert stats["request_count"] == 1
        assert stats["error_count"] == 1
