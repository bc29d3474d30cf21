"""Organization-level administration: members, invites, admin API keys."""

from typing import Any, Dict

from reconciler.clients.exceptions import ResourceNotFoundError, ValidationError
from reconciler.clients.openai import ApiScope
from reconciler.core.models import FieldSpec, RemoteObject, ResourceKind
from reconciler.resources.base import RestResourceController, not_found
from reconciler.security.validation import validate_email

ORGANIZATION_ROLES = ("owner", "reader")


def _check_email(declared: Dict[str, Any]) -> None:
    if not validate_email(str(declared.get("email", ""))):
        raise ValidationError(f"Invalid email address: {declared.get('email')}", attribute="email")


class OrganizationUserController(RestResourceController):
    """Role of an existing organization member.

    Members join through invites; this controller only binds an existing
    member (found by email) and manages the role.
    """

    kind = ResourceKind.ORGANIZATION_USER
    scope = ApiScope.ADMIN
    path = "/organization/users"
    schema = {
        "email": FieldSpec(required=True, force_new=True, remote_key="email"),
        "role": FieldSpec(required=True, updatable=True, remote_key="role"),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        _check_email(declared)
        if declared.get("role") not in ORGANIZATION_ROLES:
            raise ValidationError(
                f"role must be one of {', '.join(ORGANIZATION_ROLES)}", attribute="role"
            )

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        email = declared["email"]
        user = await self.client.find_user_by_email(email)
        if user is None:
            # An invite has to be accepted before the member exists
            raise ResourceNotFoundError(
                f"No organization user with email {email}; invite them first",
                status_code=404,
            )

        remote = self.to_remote(user)
        if user.get("role") != declared["role"]:
            remote = await self.update(remote.identity, {"role": declared["role"]}, declared)
        self._logger.info("Bound organization user", user_id=remote.identity)
        return remote


class InviteController(RestResourceController):
    """Organization invites. Invites are immutable; accepted ones are terminal."""

    kind = ResourceKind.INVITE
    scope = ApiScope.ADMIN
    path = "/organization/invites"
    schema = {
        "email": FieldSpec(required=True, force_new=True, remote_key="email"),
        "role": FieldSpec(required=True, force_new=True, remote_key="role"),
        "projects": FieldSpec(force_new=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        _check_email(declared)
        if declared.get("role") not in ORGANIZATION_ROLES:
            raise ValidationError(
                f"role must be one of {', '.join(ORGANIZATION_ROLES)}", attribute="role"
            )
        for project in declared.get("projects") or []:
            if not isinstance(project, dict) or not project.get("id") or not project.get("role"):
                raise ValidationError("Each invite project needs an id and a role", attribute="projects")

    def check_gone(self, payload: Dict[str, Any]) -> None:
        if payload.get("status") == "expired":
            raise not_found(self.kind, str(payload.get("id")), "expired")


class AdminApiKeyController(RestResourceController):
    """Organization admin API keys; the key value is returned only at creation."""

    kind = ResourceKind.ADMIN_API_KEY
    scope = ApiScope.ADMIN
    path = "/organization/admin_api_keys"
    preserved_keys = ("value",)
    schema = {
        "name": FieldSpec(required=True, force_new=True, remote_key="name"),
    }
