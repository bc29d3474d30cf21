"""Base resource controller with the common CRUD contract."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, ClassVar, Dict, List, Optional, Tuple

import structlog
from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_fixed

from reconciler.clients.exceptions import ResourceNotFoundError, StateError, ValidationError
from reconciler.clients.openai import ApiScope, OpenAIClient
from reconciler.config.options_models import ReconciliationOptions
from reconciler.config.platform_models import PlatformConstants
from reconciler.core.delete_policy import DEFAULT_DELETE_POLICIES, DeletePolicy
from reconciler.core.diff import MISSING, lookup
from reconciler.core.models import FieldSpec, ImportResult, RemoteObject, ResourceKind

logger = structlog.get_logger(__name__)


def join_identity(*parts: str) -> str:
    """Composite identity of a nested object: ``parent_id/child_id``."""
    return "/".join(parts)


def split_identity(identity: str, parts: int = 2) -> Tuple[str, ...]:
    """Split a composite identity.

    Raises:
        ValidationError: If the identity does not have ``parts`` components
    """
    pieces = tuple(identity.split("/"))
    if len(pieces) != parts or not all(pieces):
        raise ValidationError(
            f"Identity {identity!r} must have the form "
            + "/".join(f"<id{i + 1}>" for i in range(parts)),
            attribute="identity",
        )
    return pieces


async def poll_until(
    fetch: Callable[[], Any],
    is_done: Callable[[Dict[str, Any]], bool],
    interval_seconds: float,
    timeout_seconds: float,
) -> Dict[str, Any]:
    """Poll ``fetch`` until ``is_done`` or the timeout elapses.

    A timeout is not an error: the last observed payload is returned.

    Args:
        fetch: Coroutine function returning the current payload
        is_done: Predicate on the payload
        interval_seconds: Delay between polls
        timeout_seconds: Overall polling budget

    Returns:
        The last payload fetched
    """
    async for attempt in AsyncRetrying(
        retry=retry_if_result(lambda payload: not is_done(payload)),
        wait=wait_fixed(interval_seconds),
        stop=stop_after_delay(timeout_seconds),
        retry_error_callback=lambda state: state.outcome.result(),
    ):
        with attempt:
            payload = await fetch()
        if not attempt.retry_state.outcome.failed:
            attempt.retry_state.set_result(payload)
    return payload


class ResourceController(ABC):
    """Implements create/read/update/delete/import for one resource kind.

    Controllers receive fully resolved declared attributes. They never touch
    the state snapshot; the driver commits whatever they return.
    """

    kind: ClassVar[ResourceKind]
    scope: ClassVar[ApiScope] = ApiScope.PROJECT
    schema: ClassVar[Dict[str, FieldSpec]] = {}
    # Data sources are read every pass and never written
    read_only: ClassVar[bool] = False
    # Observed keys returned only once (at create) and kept across refreshes
    preserved_keys: ClassVar[Tuple[str, ...]] = ()

    def __init__(
        self,
        client: OpenAIClient,
        options: Optional[ReconciliationOptions] = None,
        platform: Optional[PlatformConstants] = None,
    ) -> None:
        """Initialize controller.

        Args:
            client: OpenAI API client
            options: Reconciliation options (polling, chunk size)
            platform: Overridable platform constants
        """
        self.client = client
        self.options = options or ReconciliationOptions()
        self.platform = platform or PlatformConstants()
        self._logger = logger.bind(controller=self.__class__.__name__, kind=self.kind.value)

    @property
    def delete_policy(self) -> DeletePolicy:
        return DEFAULT_DELETE_POLICIES.get(self.kind, DeletePolicy())

    def check_scope(self) -> None:
        """Fail fast when the client lacks the credential this kind requires."""
        self.client.require_scope(self.scope)

    def validate(self, declared: Dict[str, Any]) -> None:
        """Validate declared attributes before any remote call.

        Raises:
            ValidationError: On unknown or missing attributes
        """
        unknown = sorted(set(declared) - set(self.schema))
        if unknown:
            raise ValidationError(
                f"Unknown attributes for {self.kind.value}: {', '.join(unknown)}",
                attribute=unknown[0],
            )
        for name, spec in self.schema.items():
            if spec.required and declared.get(name) is None:
                raise ValidationError(
                    f"Attribute '{name}' is required for {self.kind.value}",
                    attribute=name,
                )
        self.validate_extra(declared)

    def validate_extra(self, declared: Dict[str, Any]) -> None:
        """Kind-specific validation hook."""
        return None

    def request_body(self, declared: Dict[str, Any], exclude: Tuple[str, ...] = ()) -> Dict[str, Any]:
        """Declared attributes that are sent to the API."""
        return {
            name: value
            for name, value in declared.items()
            if value is not None
            and name not in exclude
            and not self.schema.get(name, FieldSpec()).local_only
        }

    def attributes_from_observed(self, observed: Dict[str, Any]) -> Dict[str, Any]:
        """Declared-shaped attributes recoverable from an observed payload."""
        attributes = {}
        for name, spec in self.schema.items():
            if not spec.remote_key:
                continue
            value = lookup(observed, spec.remote_key)
            if value is not MISSING and value is not None:
                attributes[name] = value
        return attributes

    def merge_observed(self, previous: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
        """Carry keys that are only returned once over to a fresh observation."""
        merged = dict(current)
        for key in self.preserved_keys:
            if merged.get(key) is None and previous.get(key) is not None:
                merged[key] = previous[key]
        return merged

    @abstractmethod
    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        """Create the remote object.

        Args:
            declared: Fully resolved declared attributes

        Returns:
            The created object as observed
        """
        pass

    @abstractmethod
    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        """Read the remote object.

        Args:
            identity: Remote identity
            previous: Last observed payload, for kinds without a read endpoint

        Returns:
            The object as currently observed

        Raises:
            ResourceNotFoundError: If the object no longer exists
        """
        pass

    async def update(
        self,
        identity: str,
        changes: Dict[str, Any],
        declared: Dict[str, Any],
        observed: Optional[Dict[str, Any]] = None,
    ) -> RemoteObject:
        """Apply in-place changes.

        Args:
            identity: Remote identity
            changes: Updatable attributes that differ, mapped to their declared value
            declared: All declared attributes
            observed: Last observed payload

        Returns:
            The updated object as observed
        """
        raise StateError(f"{self.kind.value} does not support in-place updates")

    async def fetch(self, declared: Dict[str, Any]) -> RemoteObject:
        """Read the result of a read-only data source."""
        raise StateError(f"{self.kind.value} is not a data source")

    async def delete(self, identity: str, observed: Dict[str, Any]) -> None:
        raise StateError(f"{self.kind.value} has no remote delete")

    async def cancel(self, identity: str, observed: Dict[str, Any]) -> None:
        raise StateError(f"{self.kind.value} cannot be cancelled")

    async def reset_to_default(self, identity: str, observed: Dict[str, Any]) -> None:
        raise StateError(f"{self.kind.value} has no platform default to reset to")

    async def import_(self, identity: str) -> ImportResult:
        """Bind a pre-existing remote object.

        Returns:
            Declared defaults recovered from the observation plus the observation
        """
        observed = await self.read(identity)
        return ImportResult(
            declared_defaults=self.attributes_from_observed(observed.attributes),
            observed=observed,
        )


class RestResourceController(ResourceController):
    """Controller for a conventional REST collection.

    ``path`` may contain ``{parent}`` when the kind is nested under another
    object; the parent's ID comes from the ``parent_attribute`` declared
    attribute and the identity becomes ``parent_id/child_id``.
    """

    path: ClassVar[str]
    parent_attribute: ClassVar[Optional[str]] = None
    extra_headers: ClassVar[Optional[Dict[str, str]]] = None

    def collection_path(self, parent_id: Optional[str] = None) -> str:
        if self.parent_attribute:
            if not parent_id:
                raise ValidationError(
                    f"{self.parent_attribute} is required for {self.kind.value}",
                    attribute=self.parent_attribute,
                )
            return self.path.format(parent=parent_id)
        return self.path

    def split(self, identity: str) -> Tuple[Optional[str], str]:
        """Split an identity into (parent_id, object_id)."""
        if self.parent_attribute:
            parent_id, object_id = split_identity(identity)
            return parent_id, object_id
        return None, identity

    def item_path(self, identity: str) -> str:
        parent_id, object_id = self.split(identity)
        return f"{self.collection_path(parent_id)}/{object_id}"

    def to_remote(self, payload: Dict[str, Any], parent_id: Optional[str] = None) -> RemoteObject:
        object_id = str(payload.get("id", ""))
        if not object_id:
            raise StateError(f"{self.kind.value} response did not include an id")
        identity = join_identity(parent_id, object_id) if parent_id else object_id
        attributes = dict(payload)
        if self.parent_attribute and parent_id:
            attributes.setdefault(self.parent_attribute, parent_id)
        return RemoteObject(identity=identity, attributes=attributes)

    def check_gone(self, payload: Dict[str, Any]) -> None:
        """Raise ResourceNotFoundError for objects that exist but count as absent."""
        return None

    async def create(self, declared: Dict[str, Any]) -> RemoteObject:
        parent_id = declared.get(self.parent_attribute) if self.parent_attribute else None
        body = self.request_body(declared, exclude=(self.parent_attribute,) if self.parent_attribute else ())
        payload = await self.client.post_json(
            self.collection_path(parent_id), body, scope=self.scope, headers=self.extra_headers
        )
        self._logger.info("Created remote object", id=payload.get("id"))
        return self.to_remote(payload, parent_id)

    async def read(self, identity: str, previous: Optional[Dict[str, Any]] = None) -> RemoteObject:
        parent_id, _ = self.split(identity)
        payload = await self.client.get_json(
            self.item_path(identity), scope=self.scope, headers=self.extra_headers
        )
        self.check_gone(payload)
        remote = self.to_remote(payload, parent_id)
        if previous:
            remote.attributes = self.merge_observed(previous, remote.attributes)
        return remote

    async def update(
        self,
        identity: str,
        changes: Dict[str, Any],
        declared: Dict[str, Any],
        observed: Optional[Dict[str, Any]] = None,
    ) -> RemoteObject:
        parent_id, _ = self.split(identity)
        body = self.request_body(changes)
        if not body:
            return await self.read(identity, observed)
        payload = await self.client.post_json(
            self.item_path(identity), body, scope=self.scope, headers=self.extra_headers
        )
        self._logger.info("Updated remote object", identity=identity, attributes=sorted(body))
        return self.to_remote(payload, parent_id)

    async def delete(self, identity: str, observed: Dict[str, Any]) -> None:
        await self.client.delete_json(self.item_path(identity), scope=self.scope, headers=self.extra_headers)
        self._logger.info("Deleted remote object", identity=identity)

    async def list(
        self,
        parent_id: Optional[str] = None,
        limit: int = 100,
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[RemoteObject]:
        """Walk the collection with the cursor walker."""
        walker = self.client.walker(
            self.collection_path(parent_id),
            scope=self.scope,
            limit=limit,
            params=params,
            headers=self.extra_headers,
        )
        async for item in walker.items():
            yield self.to_remote(item, parent_id)

    async def find(
        self,
        predicate: Callable[[Dict[str, Any]], bool],
        parent_id: Optional[str] = None,
    ) -> Optional[RemoteObject]:
        """First object of the collection whose payload matches ``predicate``."""
        async for remote in self.list(parent_id):
            if predicate(remote.attributes):
                return remote
        return None

    async def wait_for(
        self,
        identity: str,
        terminal_statuses: List[str],
        status_key: str = "status",
    ) -> RemoteObject:
        """Poll until the object's status is terminal or polling times out."""
        async def fetch() -> Dict[str, Any]:
            return (await self.read(identity)).attributes

        payload = await poll_until(
            fetch,
            lambda p: p.get(status_key) in terminal_statuses,
            interval_seconds=self.options.poll_interval_seconds,
            timeout_seconds=self.options.poll_timeout_seconds,
        )
        if payload.get(status_key) not in terminal_statuses:
            self._logger.warning(
                "Polling timed out; recording last observed status",
                identity=identity,
                status=payload.get(status_key),
            )
        return RemoteObject(identity=identity, attributes=payload)


def not_found(kind: ResourceKind, identity: str, reason: str) -> ResourceNotFoundError:
    """NotFound for objects that still exist remotely but count as absent."""
    return ResourceNotFoundError(f"{kind.value} {identity} is {reason}", status_code=404, remote_message=reason)
