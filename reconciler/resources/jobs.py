"""Long-running jobs (batches, fine-tuning jobs) and access to their checkpoints."""

from typing import Any, Dict, List, Optional, Tuple

from reconciler.clients.exceptions import ResourceNotFoundError, StateError, ValidationError
from reconciler.clients.openai import ApiScope
from reconciler.core.models import FieldSpec, RemoteObject, ResourceKind
from reconciler.resources.base import RestResourceController

BATCH_ENDPOINTS = (
    "/v1/responses",
    "/v1/chat/completions",
    "/v1/embeddings",
    "/v1/completions",
    "/v1/moderations",
)
BATCH_FINISHED_STATUSES = ["completed", "failed", "expired", "cancelled"]
FINE_TUNING_FINISHED_STATUSES = ["succeeded", "failed", "cancelled"]


class _JobController(RestResourceController):
    """Jobs are immutable once submitted and can only be cancelled."""

    finished_statuses: List[str] = []

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        remote = await super().create(declared)
        wait = declared.get("wait_for_completion")
        if self.options.wait_for_completion if wait is None else wait:
            return await self.wait_for(remote.identity, self.finished_statuses)
        return remote

    async def cancel(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.post_json(f"{self.item_path(identity)}/cancel", scope=self.scope)
        self._logger.info("Cancelled job", identity=identity, status=observed.get("status"))


class BatchController(_JobController):
    kind = ResourceKind.BATCH
    path = "/batches"
    finished_statuses = BATCH_FINISHED_STATUSES
    schema = {
        "input_file_id": FieldSpec(required=True, force_new=True, remote_key="input_file_id"),
        "endpoint": FieldSpec(required=True, force_new=True, remote_key="endpoint"),
        "completion_window": FieldSpec(force_new=True, computed=True, remote_key="completion_window"),
        "metadata": FieldSpec(force_new=True, computed=True, remote_key="metadata"),
        "wait_for_completion": FieldSpec(updatable=True, local_only=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        if declared.get("endpoint") not in BATCH_ENDPOINTS:
            raise ValidationError(
                f"endpoint must be one of {', '.join(BATCH_ENDPOINTS)}", attribute="endpoint"
            )

    def request_body(self, declared: Dict[str, Any], exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
        body = super().request_body(declared, exclude)
        body.setdefault("completion_window", "24h")
        return body


class FineTuningJobController(_JobController):
    kind = ResourceKind.FINE_TUNING_JOB
    path = "/fine_tuning/jobs"
    finished_statuses = FINE_TUNING_FINISHED_STATUSES
    schema = {
        "model": FieldSpec(required=True, force_new=True, remote_key="model"),
        "training_file": FieldSpec(required=True, force_new=True, remote_key="training_file"),
        "validation_file": FieldSpec(force_new=True, computed=True, remote_key="validation_file"),
        "suffix": FieldSpec(force_new=True, computed=True),
        "seed": FieldSpec(force_new=True, computed=True, remote_key="seed"),
        # The server fills in "auto" hyperparameters; compared with the applied value
        "hyperparameters": FieldSpec(force_new=True, computed=True),
        "method": FieldSpec(force_new=True, computed=True),
        "integrations": FieldSpec(force_new=True),
        "metadata": FieldSpec(force_new=True, computed=True, remote_key="metadata"),
        "wait_for_completion": FieldSpec(updatable=True, local_only=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        suffix = declared.get("suffix")
        if suffix is not None and not 1 <= len(suffix) <= 64:
            raise ValidationError("suffix must be 1 to 64 characters", attribute="suffix")


class FineTuningCheckpointPermissionController(RestResourceController):
    """Access of one project to a fine-tuned model checkpoint.

    The API grants several projects per call and answers with a list of
    permissions; each instance grants exactly one project.
    """

    kind = ResourceKind.FINE_TUNING_CHECKPOINT_PERMISSION
    scope = ApiScope.ADMIN
    path = "/fine_tuning/checkpoints/{parent}/permissions"
    parent_attribute = "checkpoint_id"
    schema = {
        "checkpoint_id": FieldSpec(required=True, force_new=True, remote_key="checkpoint_id"),
        "project_id": FieldSpec(required=True, force_new=True, remote_key="project_id"),
    }

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        checkpoint_id = declared["checkpoint_id"]
        project_id = declared["project_id"]
        payload = await self.client.post_json(
            self.collection_path(checkpoint_id), {"project_ids": [project_id]}, scope=self.scope
        )
        for item in payload.get("data") or []:
            if item.get("project_id") == project_id:
                self._logger.info("Granted checkpoint access", checkpoint_id=checkpoint_id, project_id=project_id)
                return self.to_remote(item, checkpoint_id)
        raise StateError(f"Permission response did not include project {project_id}")

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        # No single-permission endpoint; the list is filtered by project
        checkpoint_id, _ = self.split(identity)
        project_id = (previous or {}).get("project_id")
        params = {"project_id": project_id} if project_id else None
        async for remote in self.list(checkpoint_id, params=params):
            if remote.identity == identity:
                return remote
        raise ResourceNotFoundError(f"Checkpoint permission {identity} not found", status_code=404)
