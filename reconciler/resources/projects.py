"""Project-level administration: projects, members, service accounts, rate limits, API keys."""

from typing import Any, Dict, Optional

from reconciler.clients.exceptions import ResourceNotFoundError, StateError, ValidationError
from reconciler.clients.openai import ApiScope
from reconciler.core.models import FieldSpec, RemoteObject, ResourceKind
from reconciler.resources.base import RestResourceController, not_found
from reconciler.security.validation import validate_email

PROJECT_ROLES = ("owner", "member")

RATE_LIMIT_FIELDS = (
    "max_requests_per_1_minute",
    "max_tokens_per_1_minute",
    "max_images_per_1_minute",
    "max_audio_megabytes_per_1_minute",
    "max_requests_per_1_day",
    "batch_1_day_max_input_tokens",
)


class ProjectController(RestResourceController):
    """Projects cannot be deleted; destroying one archives it."""

    kind = ResourceKind.PROJECT
    scope = ApiScope.ADMIN
    path = "/organization/projects"
    schema = {
        "name": FieldSpec(required=True, updatable=True, remote_key="name"),
    }

    def check_gone(self, payload: Dict[str, Any]) -> None:
        if payload.get("status") == "archived":
            raise not_found(self.kind, str(payload.get("id")), "archived")

    async def delete(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.post_json(f"{self.item_path(identity)}/archive", scope=self.scope)
        self._logger.info("Archived project", identity=identity)


class ProjectUserController(RestResourceController):
    """Membership of an organization user in a project.

    The user may be named by ``user_id`` or by ``email``; an email is
    resolved against the organization's member list at create time.
    """

    kind = ResourceKind.PROJECT_USER
    scope = ApiScope.ADMIN
    path = "/organization/projects/{parent}/users"
    parent_attribute = "project_id"
    schema = {
        "project_id": FieldSpec(required=True, force_new=True, remote_key="project_id"),
        "user_id": FieldSpec(force_new=True, computed=True, remote_key="id"),
        "email": FieldSpec(force_new=True, computed=True, remote_key="email"),
        "role": FieldSpec(required=True, updatable=True, remote_key="role"),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        if not declared.get("user_id") and not declared.get("email"):
            raise ValidationError("Either user_id or email is required", attribute="user_id")
        if declared.get("email") and not validate_email(declared["email"]):
            raise ValidationError(f"Invalid email address: {declared['email']}", attribute="email")
        if declared.get("role") not in PROJECT_ROLES:
            raise ValidationError(
                f"role must be one of {', '.join(PROJECT_ROLES)}", attribute="role"
            )

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        project_id = declared["project_id"]
        user_id = declared.get("user_id")
        if not user_id:
            user = await self.client.find_user_by_email(declared["email"])
            if user is None:
                raise ResourceNotFoundError(
                    f"No organization user with email {declared['email']}",
                    status_code=404,
                )
            user_id = user["id"]

        payload = await self.client.post_json(
            self.collection_path(project_id),
            {"user_id": user_id, "role": declared["role"]},
            scope=self.scope,
        )
        self._logger.info("Added user to project", project_id=project_id, user_id=user_id)
        return self.to_remote(payload, project_id)


class ServiceAccountController(RestResourceController):
    """Service accounts; the API key is returned only once, at creation."""

    kind = ResourceKind.SERVICE_ACCOUNT
    scope = ApiScope.ADMIN
    path = "/organization/projects/{parent}/service_accounts"
    parent_attribute = "project_id"
    preserved_keys = ("api_key",)
    schema = {
        "project_id": FieldSpec(required=True, force_new=True, remote_key="project_id"),
        "name": FieldSpec(required=True, force_new=True, remote_key="name"),
    }


class RateLimitController(RestResourceController):
    """Per-(project, model) rate-limit ceilings.

    Every model available to a project always has a limit, so "create"
    locates the existing limit and overwrites it and "delete" resets it
    to the documented default.
    """

    kind = ResourceKind.RATE_LIMIT
    scope = ApiScope.ADMIN
    path = "/organization/projects/{parent}/rate_limits"
    parent_attribute = "project_id"
    schema = {
        "project_id": FieldSpec(required=True, force_new=True, remote_key="project_id"),
        "model": FieldSpec(required=True, force_new=True, remote_key="model"),
        **{
            name: FieldSpec(updatable=True, computed=True, remote_key=name)
            for name in RATE_LIMIT_FIELDS
        },
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        for name in RATE_LIMIT_FIELDS:
            value = declared.get(name)
            if value is not None and (not isinstance(value, int) or value < 0):
                raise ValidationError(f"{name} must be a non-negative integer", attribute=name)

    def _ceilings(self, attributes: Dict[str, Any]) -> Dict[str, Any]:
        return {name: attributes[name] for name in RATE_LIMIT_FIELDS if attributes.get(name) is not None}

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        project_id = declared["project_id"]
        model = declared["model"]
        existing = await self.find(lambda limit: limit.get("model") == model, parent_id=project_id)
        if existing is None:
            raise ResourceNotFoundError(
                f"Project {project_id} has no rate limit for model {model}",
                status_code=404,
            )

        ceilings = self._ceilings(declared)
        if not ceilings:
            return existing
        return await self.update(existing.identity, ceilings, declared)

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        # No single-object endpoint; the limit is located in the project's list
        project_id, limit_id = self.split(identity)
        found = await self.find(lambda limit: limit.get("id") == limit_id, parent_id=project_id)
        if found is None:
            raise not_found(self.kind, identity, "no longer listed")
        return found

    async def update(
        self,
        identity: str,
        changes: Dict[str, Any],
        declared: Dict[str, Any],
        observed: Optional[Dict[str, Any]] = None,
    ) -> RemoteObject:
        project_id, _ = self.split(identity)
        payload = await self.client.post_json(
            self.item_path(identity), self._ceilings(changes), scope=self.scope
        )
        self._logger.info("Updated rate limit", identity=identity, attributes=sorted(self._ceilings(changes)))
        return self.to_remote(payload, project_id)

    async def reset_to_default(self, identity: str, observed: Dict[str, Any]) -> None:
        model = observed.get("model", "")
        defaults = self.platform.rate_limit_default(model).as_payload()
        await self.client.post_json(self.item_path(identity), defaults, scope=self.scope)
        self._logger.info("Reset rate limit to platform default", identity=identity, model=model)


__all__ = [
    "ProjectController",
    "ProjectUserController",
    "ServiceAccountController",
    "RateLimitController",
]


class ProjectApiKeyController(RestResourceController):
    """Project API keys.

    The API offers no way to create a project key; existing keys are
    imported with ``import_id: <project_id>/<key_id>`` and can be revoked.
    """

    kind = ResourceKind.PROJECT_API_KEY
    scope = ApiScope.ADMIN
    path = "/organization/projects/{parent}/api_keys"
    parent_attribute = "project_id"
    schema = {
        "project_id": FieldSpec(required=True, force_new=True, remote_key="project_id"),
        "name": FieldSpec(force_new=True, computed=True, remote_key="name"),
    }

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        raise StateError(
            "Project API keys cannot be created through the API; "
            "create the key in the dashboard and import it"
        )
