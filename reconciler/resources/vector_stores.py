"""Vector stores and the files attached to them."""

from typing import Any, Dict

from reconciler.clients.exceptions import ValidationError
from reconciler.clients.openai import ASSISTANTS_BETA_HEADER
from reconciler.core.models import FieldSpec, RemoteObject, ResourceKind
from reconciler.resources.base import RestResourceController, not_found

FILE_PROCESSED_STATUSES = ["completed", "failed", "cancelled"]


class VectorStoreController(RestResourceController):
    kind = ResourceKind.VECTOR_STORE
    path = "/vector_stores"
    extra_headers = ASSISTANTS_BETA_HEADER
    schema = {
        "name": FieldSpec(updatable=True, computed=True, remote_key="name"),
        "file_ids": FieldSpec(force_new=True),
        "expires_after": FieldSpec(updatable=True, computed=True, remote_key="expires_after"),
        "chunking_strategy": FieldSpec(force_new=True, computed=True),
        "metadata": FieldSpec(updatable=True, computed=True, remote_key="metadata"),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        expires_after = declared.get("expires_after")
        if expires_after is not None:
            if not isinstance(expires_after, dict) or expires_after.get("anchor") != "last_active_at":
                raise ValidationError(
                    "expires_after needs anchor 'last_active_at' and days",
                    attribute="expires_after",
                )
            days = expires_after.get("days")
            if not isinstance(days, int) or not 1 <= days <= 365:
                raise ValidationError("expires_after.days must be between 1 and 365", attribute="expires_after")

    def check_gone(self, payload: Dict[str, Any]) -> None:
        if payload.get("status") == "expired":
            raise not_found(self.kind, str(payload.get("id")), "expired")


class VectorStoreFileController(RestResourceController):
    """A file attached to a vector store; processing is asynchronous."""

    kind = ResourceKind.VECTOR_STORE_FILE
    path = "/vector_stores/{parent}/files"
    parent_attribute = "vector_store_id"
    extra_headers = ASSISTANTS_BETA_HEADER
    schema = {
        "vector_store_id": FieldSpec(required=True, force_new=True, remote_key="vector_store_id"),
        "file_id": FieldSpec(required=True, force_new=True, remote_key="id"),
        "chunking_strategy": FieldSpec(force_new=True, computed=True),
        "attributes": FieldSpec(updatable=True, computed=True, remote_key="attributes"),
        "wait_for_completion": FieldSpec(updatable=True, local_only=True),
    }

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        remote = await super().create(declared)
        wait = declared.get("wait_for_completion")
        if self.options.wait_for_completion if wait is None else wait:
            return await self.wait_for(remote.identity, FILE_PROCESSED_STATUSES)
        return remote


class VectorStoreFileBatchController(RestResourceController):
    """Several files attached to a vector store in one asynchronous batch.

    A batch cannot be deleted; destroying it cancels it while it is still
    processing and otherwise only forgets it.
    """

    kind = ResourceKind.VECTOR_STORE_FILE_BATCH
    path = "/vector_stores/{parent}/file_batches"
    parent_attribute = "vector_store_id"
    extra_headers = ASSISTANTS_BETA_HEADER
    schema = {
        "vector_store_id": FieldSpec(required=True, force_new=True, remote_key="vector_store_id"),
        "file_ids": FieldSpec(required=True, force_new=True),
        "attributes": FieldSpec(force_new=True),
        "chunking_strategy": FieldSpec(force_new=True, computed=True),
        "wait_for_completion": FieldSpec(updatable=True, local_only=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        file_ids = declared.get("file_ids")
        if isinstance(file_ids, list) and not file_ids:
            raise ValidationError("file_ids must not be empty", attribute="file_ids")

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        remote = await super().create(declared)
        self._logger.info(
            "Submitted file batch",
            identity=remote.identity,
            files=len(declared["file_ids"]),
            file_counts=remote.attributes.get("file_counts"),
        )
        wait = declared.get("wait_for_completion")
        if self.options.wait_for_completion if wait is None else wait:
            return await self.wait_for(remote.identity, FILE_PROCESSED_STATUSES)
        return remote

    async def cancel(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.post_json(
            f"{self.item_path(identity)}/cancel", scope=self.scope, headers=self.extra_headers
        )
        self._logger.info("Cancelled file batch", identity=identity, status=observed.get("status"))
