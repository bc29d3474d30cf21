"""Read-only list data sources.

A data source never creates or deletes anything. Every pass it walks a list
endpoint and records the result so other instances can reference it, e.g.
``${projects.all.ids}`` or ``${files.training.count}``.
"""

from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from reconciler.clients.exceptions import StateError, ValidationError
from reconciler.clients.openai import OpenAIClient
from reconciler.config.options_models import ReconciliationOptions
from reconciler.config.platform_models import PlatformConstants
from reconciler.core.models import FieldSpec, ImportResult, RemoteObject, ResourceKind
from reconciler.resources.assistants import AssistantController
from reconciler.resources.base import ResourceController, RestResourceController, join_identity
from reconciler.resources.files import FILE_PURPOSES, FileController
from reconciler.resources.jobs import BatchController, FineTuningJobController
from reconciler.resources.organization import InviteController, OrganizationUserController
from reconciler.resources.projects import (
    ProjectApiKeyController,
    ProjectController,
    ProjectUserController,
    RateLimitController,
    ServiceAccountController,
)
from reconciler.resources.vector_stores import VectorStoreController, VectorStoreFileController

PAGE_SIZE = 100
SORT_ORDERS = ("asc", "desc")
VECTOR_STORE_FILE_FILTERS = ("in_progress", "completed", "failed", "cancelled")


class ListDataSource(ResourceController):
    """Lists every object of one collection.

    ``source`` is the controller of the listed kind; its path, scope and
    headers are reused so the list goes through the same cursor walker.
    """

    read_only = True
    source: ClassVar[Type[RestResourceController]]
    # Key of the list of payloads in the observed result
    result_key: ClassVar[str]
    # Declared attributes passed through as query parameters
    query_attributes: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        client: OpenAIClient,
        options: Optional[ReconciliationOptions] = None,
        platform: Optional[PlatformConstants] = None,
    ) -> None:
        super().__init__(client, options, platform)
        self.target = self.source(client, options, platform)

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        schema: Dict[str, FieldSpec] = {}
        if cls.source.parent_attribute:
            schema[cls.source.parent_attribute] = FieldSpec(required=True)
        for name in cls.query_attributes:
            schema[name] = FieldSpec()
        schema["limit"] = FieldSpec(local_only=True)
        for name in (cls.result_key, "ids", "count"):
            schema[name] = FieldSpec(computed=True, remote_key=name)
        cls.scope = cls.source.scope
        cls.schema = schema

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        limit = declared.get("limit")
        if limit is not None and (not isinstance(limit, int) or isinstance(limit, bool) or limit < 1):
            raise ValidationError("limit must be a positive integer", attribute="limit")
        order = declared.get("order")
        if order is not None and order not in SORT_ORDERS:
            raise ValidationError("order must be 'asc' or 'desc'", attribute="order")
        for name in (self.result_key, "ids", "count"):
            if declared.get(name) is not None:
                raise ValidationError(f"{name} is read-only", attribute=name)

    def query_params(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        return {
            name: declared[name]
            for name in self.query_attributes
            if declared.get(name) is not None
        }

    def identity_for(self, declared: Dict[str, Any]) -> str:
        parent = self.source.parent_attribute
        if parent:
            return join_identity(self.kind.value, str(declared[parent]))
        return self.kind.value

    async def fetch(self, declared: Dict[str, Any]) -> RemoteObject:
        """Walk the collection and build the observed result.

        Args:
            declared: Fully resolved declared attributes

        Returns:
            RemoteObject whose attributes hold the items, their IDs and the count
        """
        parent_attribute = self.source.parent_attribute
        parent_id = declared.get(parent_attribute) if parent_attribute else None
        limit = declared.get("limit")
        page_size = min(PAGE_SIZE, limit) if limit else PAGE_SIZE

        items: List[Dict[str, Any]] = []
        async for remote in self.target.list(parent_id, limit=page_size, params=self.query_params(declared) or None):
            items.append(remote.attributes)
            if limit and len(items) >= limit:
                break

        self._logger.debug("Listed collection", parent_id=parent_id, count=len(items))
        attributes = {
            self.result_key: items,
            "ids": [str(item.get("id")) for item in items],
            "count": len(items),
        }
        if parent_attribute:
            attributes[parent_attribute] = parent_id
        return RemoteObject(identity=self.identity_for(declared), attributes=attributes)

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        raise StateError(f"{self.kind.value} is a read-only data source")

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        # The listing depends on declared filters; the driver re-fetches instead
        return RemoteObject(identity=identity, attributes=dict(previous or {}))

    async def import_(self, identity: str) -> ImportResult:
        raise StateError(f"{self.kind.value} is a read-only data source and cannot be imported")


class ProjectsDataSource(ListDataSource):
    kind = ResourceKind.PROJECTS
    source = ProjectController
    result_key = "projects"
    query_attributes = ("include_archived",)


class ProjectUsersDataSource(ListDataSource):
    kind = ResourceKind.PROJECT_USERS
    source = ProjectUserController
    result_key = "users"


class ServiceAccountsDataSource(ListDataSource):
    kind = ResourceKind.SERVICE_ACCOUNTS
    source = ServiceAccountController
    result_key = "service_accounts"


class RateLimitsDataSource(ListDataSource):
    kind = ResourceKind.RATE_LIMITS
    source = RateLimitController
    result_key = "rate_limits"


class ProjectApiKeysDataSource(ListDataSource):
    kind = ResourceKind.PROJECT_API_KEYS
    source = ProjectApiKeyController
    result_key = "api_keys"


class OrganizationUsersDataSource(ListDataSource):
    kind = ResourceKind.ORGANIZATION_USERS
    source = OrganizationUserController
    result_key = "users"


class InvitesDataSource(ListDataSource):
    kind = ResourceKind.INVITES
    source = InviteController
    result_key = "invites"


class FilesDataSource(ListDataSource):
    kind = ResourceKind.FILES
    source = FileController
    result_key = "files"
    query_attributes = ("purpose", "order")

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        super().validate_extra(declared)
        purpose = declared.get("purpose")
        if purpose is not None and purpose not in FILE_PURPOSES:
            raise ValidationError(
                f"purpose must be one of {', '.join(FILE_PURPOSES)}", attribute="purpose"
            )


class AssistantsDataSource(ListDataSource):
    kind = ResourceKind.ASSISTANTS
    source = AssistantController
    result_key = "assistants"
    query_attributes = ("order",)


class VectorStoresDataSource(ListDataSource):
    kind = ResourceKind.VECTOR_STORES
    source = VectorStoreController
    result_key = "vector_stores"
    query_attributes = ("order",)


class VectorStoreFilesDataSource(ListDataSource):
    kind = ResourceKind.VECTOR_STORE_FILES
    source = VectorStoreFileController
    result_key = "files"
    query_attributes = ("order", "filter")

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        super().validate_extra(declared)
        status = declared.get("filter")
        if status is not None and status not in VECTOR_STORE_FILE_FILTERS:
            raise ValidationError(
                f"filter must be one of {', '.join(VECTOR_STORE_FILE_FILTERS)}", attribute="filter"
            )


class BatchesDataSource(ListDataSource):
    kind = ResourceKind.BATCHES
    source = BatchController
    result_key = "batches"


class FineTuningJobsDataSource(ListDataSource):
    kind = ResourceKind.FINE_TUNING_JOBS
    source = FineTuningJobController
    result_key = "jobs"
    query_attributes = ("metadata",)

    def query_params(self, declared: Dict[str, Any]) -> Dict[str, Any]:
        # The API filters on metadata[key]=value
        metadata = declared.get("metadata") or {}
        return {f"metadata[{key}]": value for key, value in metadata.items()}
