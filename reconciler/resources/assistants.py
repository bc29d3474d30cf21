"""Assistants API objects: assistants, threads, messages and runs."""

from typing import Any, Dict, Tuple

from reconciler.clients.exceptions import ValidationError
from reconciler.clients.openai import ASSISTANTS_BETA_HEADER
from reconciler.core.models import FieldSpec, ImportResult, RemoteObject, ResourceKind
from reconciler.resources.base import RestResourceController
from reconciler.resources.tools import parse_tools, tools_payload

# Statuses after which a run no longer progresses on its own
RUN_SETTLED_STATUSES = [
    "requires_action",
    "cancelled",
    "failed",
    "completed",
    "incomplete",
    "expired",
]

MESSAGE_ROLES = ("user", "assistant")


class _AssistantsApiController(RestResourceController):
    extra_headers = ASSISTANTS_BETA_HEADER

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        if "tools" in declared:
            parse_tools(declared["tools"])

    def request_body(self, declared: Dict[str, Any], exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
        body = super().request_body(declared, exclude)
        if "tools" in body:
            body["tools"] = tools_payload(body["tools"])
        return body


class AssistantController(_AssistantsApiController):
    """Assistants are updated in place; only deletion removes them."""

    kind = ResourceKind.ASSISTANT
    path = "/assistants"
    schema = {
        "model": FieldSpec(required=True, updatable=True, remote_key="model"),
        "name": FieldSpec(updatable=True, computed=True, remote_key="name"),
        "description": FieldSpec(updatable=True, computed=True, remote_key="description"),
        "instructions": FieldSpec(updatable=True, computed=True, remote_key="instructions"),
        # Compared with the applied value; the server adds defaults to tool blocks
        "tools": FieldSpec(updatable=True, computed=True),
        "tool_resources": FieldSpec(updatable=True, computed=True),
        "metadata": FieldSpec(updatable=True, computed=True, remote_key="metadata"),
        "temperature": FieldSpec(updatable=True, computed=True, remote_key="temperature"),
        "top_p": FieldSpec(updatable=True, computed=True, remote_key="top_p"),
        "response_format": FieldSpec(updatable=True, computed=True),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        super().validate_extra(declared)
        temperature = declared.get("temperature")
        if temperature is not None and not 0 <= temperature <= 2:
            raise ValidationError("temperature must be between 0 and 2", attribute="temperature")
        top_p = declared.get("top_p")
        if top_p is not None and not 0 <= top_p <= 1:
            raise ValidationError("top_p must be between 0 and 1", attribute="top_p")

    async def import_(self, identity: str) -> ImportResult:
        result = await super().import_(identity)
        observed = result.observed.attributes
        if observed.get("tools"):
            result.declared_defaults["tools"] = observed["tools"]
        if observed.get("tool_resources"):
            result.declared_defaults["tool_resources"] = observed["tool_resources"]
        return result


class ThreadController(_AssistantsApiController):
    kind = ResourceKind.THREAD
    path = "/threads"
    schema = {
        # Initial messages only; later messages are message instances
        "messages": FieldSpec(force_new=True),
        "tool_resources": FieldSpec(updatable=True, computed=True),
        "metadata": FieldSpec(updatable=True, computed=True, remote_key="metadata"),
    }


class MessageController(_AssistantsApiController):
    """Messages of a thread; only metadata can change after creation."""

    kind = ResourceKind.MESSAGE
    path = "/threads/{parent}/messages"
    parent_attribute = "thread_id"
    schema = {
        "thread_id": FieldSpec(required=True, force_new=True, remote_key="thread_id"),
        "role": FieldSpec(required=True, force_new=True, remote_key="role"),
        "content": FieldSpec(required=True, force_new=True),
        "attachments": FieldSpec(force_new=True),
        "metadata": FieldSpec(updatable=True, computed=True, remote_key="metadata"),
    }

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        if declared.get("role") not in MESSAGE_ROLES:
            raise ValidationError(
                f"role must be one of {', '.join(MESSAGE_ROLES)}", attribute="role"
            )

    async def import_(self, identity: str) -> ImportResult:
        result = await super().import_(identity)
        texts = [
            block["text"]["value"]
            for block in result.observed.attributes.get("content") or []
            if block.get("type") == "text"
        ]
        if len(texts) == 1:
            result.declared_defaults["content"] = texts[0]
        else:
            result.declared_defaults["content"] = self.platform.import_placeholder_text
            result.suppressed.append("content")
        return result


class RunController(_AssistantsApiController):
    """Runs of an assistant on a thread.

    Destroying a run cancels it while it is still in progress; settled runs
    are only forgotten.
    """

    kind = ResourceKind.RUN
    path = "/threads/{parent}/runs"
    parent_attribute = "thread_id"
    schema = {
        "thread_id": FieldSpec(required=True, force_new=True, remote_key="thread_id"),
        "assistant_id": FieldSpec(required=True, force_new=True, remote_key="assistant_id"),
        "model": FieldSpec(force_new=True, computed=True, remote_key="model"),
        "instructions": FieldSpec(force_new=True, computed=True),
        "additional_instructions": FieldSpec(force_new=True),
        "tools": FieldSpec(force_new=True, computed=True),
        "metadata": FieldSpec(updatable=True, computed=True, remote_key="metadata"),
        "wait_for_completion": FieldSpec(updatable=True, local_only=True),
    }

    def _should_wait(self, declared: Dict[str, Any]) -> bool:
        wait = declared.get("wait_for_completion")
        return self.options.wait_for_completion if wait is None else bool(wait)

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        remote = await super().create(declared)
        if self._should_wait(declared):
            return await self.wait_for(remote.identity, RUN_SETTLED_STATUSES)
        return remote

    async def cancel(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.post_json(
            f"{self.item_path(identity)}/cancel", scope=self.scope, headers=self.extra_headers
        )
        self._logger.info("Cancelled run", identity=identity)
