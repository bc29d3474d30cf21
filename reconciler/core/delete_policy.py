"""Per-kind rules that reinterpret "delete" for the remote platform.

Many remote objects are append-only or reach a terminal status after which
the API refuses deletion. A DeletePolicy says which remote verb (if any) a
destroy maps onto and which remote errors already satisfy the intent of
the destroy.
"""

from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from reconciler.clients.exceptions import APIError
from reconciler.core.models import ResourceKind
from reconciler.core.state import StateEntry
from reconciler.security.validation import sanitize_log_input

if TYPE_CHECKING:
    from reconciler.resources.base import ResourceController

logger = structlog.get_logger(__name__)


class DeleteMode(str, Enum):
    """Remote effect of destroying an instance."""
    REMOTE = "remote"                        # Controller delete
    LOCAL_ONLY = "local_only"                # Forget locally, no remote call
    RESET_TO_DEFAULT = "reset_to_default"    # Update back to platform defaults
    CANCEL_OR_FORGET = "cancel_or_forget"    # Cancel a running job, else forget


class ErrorSignature(BaseModel):
    """A remote error that is converted into a successful delete."""

    status_code: Optional[int] = None
    message_contains: Optional[str] = None

    def matches(self, error: APIError) -> bool:
        if self.status_code is not None and error.status_code != self.status_code:
            return False
        if self.message_contains is not None:
            text = " ".join(
                filter(None, [error.remote_message, error.response_text, error.message])
            )
            if self.message_contains.lower() not in text.lower():
                return False
        return self.status_code is not None or self.message_contains is not None


class DeletePolicy(BaseModel):
    """How one resource kind is destroyed."""

    mode: DeleteMode = DeleteMode.REMOTE
    status_attribute: str = "status"
    terminal_statuses: List[str] = Field(default_factory=list)
    tolerated_errors: List[ErrorSignature] = Field(
        default_factory=lambda: [ErrorSignature(status_code=404)]
    )


class DeleteOutcome(BaseModel):
    """What a destroy actually did remotely."""

    remote_call: str  # delete, cancel, reset or none
    reason: str = ""


ALREADY_ABSENT = ErrorSignature(status_code=404)

# Cancelling a job that finished in the meantime is refused with 400 or 409
NOT_CANCELLABLE = [ALREADY_ABSENT, ErrorSignature(status_code=400), ErrorSignature(status_code=409)]

DEFAULT_DELETE_POLICIES: Dict[ResourceKind, DeletePolicy] = {
    ResourceKind.INVITE: DeletePolicy(
        terminal_statuses=["accepted"],
        tolerated_errors=[ALREADY_ABSENT, ErrorSignature(message_contains="already accepted")],
    ),
    ResourceKind.RATE_LIMIT: DeletePolicy(mode=DeleteMode.RESET_TO_DEFAULT),
    ResourceKind.FINE_TUNING_JOB: DeletePolicy(
        mode=DeleteMode.CANCEL_OR_FORGET,
        terminal_statuses=["succeeded", "failed", "cancelled"],
        tolerated_errors=NOT_CANCELLABLE,
    ),
    ResourceKind.BATCH: DeletePolicy(
        mode=DeleteMode.CANCEL_OR_FORGET,
        terminal_statuses=["completed", "failed", "expired", "cancelling", "cancelled"],
        tolerated_errors=NOT_CANCELLABLE,
    ),
    ResourceKind.RUN: DeletePolicy(
        mode=DeleteMode.CANCEL_OR_FORGET,
        terminal_statuses=["completed", "failed", "cancelling", "cancelled", "expired", "incomplete"],
        tolerated_errors=NOT_CANCELLABLE,
    ),
    ResourceKind.VECTOR_STORE_FILE_BATCH: DeletePolicy(
        mode=DeleteMode.CANCEL_OR_FORGET,
        terminal_statuses=["completed", "failed", "cancelled"],
        tolerated_errors=NOT_CANCELLABLE,
    ),
    ResourceKind.UPLOAD: DeletePolicy(
        mode=DeleteMode.CANCEL_OR_FORGET,
        terminal_statuses=["completed", "cancelled", "expired"],
        tolerated_errors=NOT_CANCELLABLE,
    ),
    ResourceKind.PROJECT: DeletePolicy(
        terminal_statuses=["archived"],
    ),
}

for _kind in (
    ResourceKind.MODEL_RESPONSE,
    ResourceKind.MODERATION,
    ResourceKind.CHAT_COMPLETION,
    ResourceKind.EMBEDDING,
    ResourceKind.IMAGE_GENERATION,
    ResourceKind.IMAGE_EDIT,
    ResourceKind.IMAGE_VARIATION,
    ResourceKind.SPEECH,
    ResourceKind.TRANSCRIPTION,
    ResourceKind.TRANSLATION,
    ResourceKind.PROJECTS,
    ResourceKind.PROJECT_USERS,
    ResourceKind.SERVICE_ACCOUNTS,
    ResourceKind.RATE_LIMITS,
    ResourceKind.PROJECT_API_KEYS,
    ResourceKind.ORGANIZATION_USERS,
    ResourceKind.INVITES,
    ResourceKind.FILES,
    ResourceKind.ASSISTANTS,
    ResourceKind.VECTOR_STORES,
    ResourceKind.VECTOR_STORE_FILES,
    ResourceKind.BATCHES,
    ResourceKind.FINE_TUNING_JOBS,
):
    DEFAULT_DELETE_POLICIES[_kind] = DeletePolicy(mode=DeleteMode.LOCAL_ONLY)


class DeletePolicyTable:
    """Lookup table of delete policies keyed by resource kind."""

    def __init__(self, policies: Optional[Dict[ResourceKind, DeletePolicy]] = None) -> None:
        self._policies = dict(DEFAULT_DELETE_POLICIES)
        if policies:
            self._policies.update(policies)
        self._default = DeletePolicy()

    def policy_for(self, kind: ResourceKind) -> DeletePolicy:
        return self._policies.get(ResourceKind(kind), self._default)

    def _tolerated(self, policy: DeletePolicy, error: APIError) -> bool:
        return any(signature.matches(error) for signature in policy.tolerated_errors)

    async def execute(self, controller: "ResourceController", entry: StateEntry) -> DeleteOutcome:
        """Destroy the remote side of ``entry`` according to its kind's policy.

        Args:
            controller: Controller of the entry's kind
            entry: State entry being destroyed

        Returns:
            The DeleteOutcome; the caller removes the local entry on return

        Raises:
            APIError: A remote error the policy does not tolerate
        """
        policy = self.policy_for(entry.kind)
        status = entry.observed.get(policy.status_attribute)
        log = logger.bind(address=entry.address, identity=entry.identity, mode=policy.mode.value)

        if policy.mode == DeleteMode.LOCAL_ONLY:
            log.debug("Destroy is local only")
            return DeleteOutcome(remote_call="none", reason="write-once object")

        if policy.mode == DeleteMode.RESET_TO_DEFAULT:
            await controller.reset_to_default(entry.identity, entry.observed)
            log.info("Reset to platform defaults")
            return DeleteOutcome(remote_call="reset", reason="reset to platform defaults")

        if status is not None and status in policy.terminal_statuses:
            log.info("Remote object already terminal, forgetting", status=status)
            return DeleteOutcome(remote_call="none", reason=f"already {status}")

        try:
            if policy.mode == DeleteMode.CANCEL_OR_FORGET:
                await controller.cancel(entry.identity, entry.observed)
                log.info("Cancelled remote job", status=status)
                return DeleteOutcome(remote_call="cancel", reason=f"cancelled while {status}")

            await controller.delete(entry.identity, entry.observed)
        except APIError as e:
            if not self._tolerated(policy, e):
                raise
            log.info(
                "Remote delete error satisfies absence",
                status_code=e.status_code,
                remote_message=sanitize_log_input(e.remote_message),
            )
            return DeleteOutcome(remote_call="none", reason=e.remote_message or e.message)

        return DeleteOutcome(remote_call="delete")
