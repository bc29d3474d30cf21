"""Reconciliation driver: plans and applies declared instances against the API."""

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

import structlog
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from reconciler.audit.logger import AuditLogger
from reconciler.clients.exceptions import (
    ConflictError,
    ReconciliationError,
    ResourceNotFoundError,
    StateError,
    error_kind,
    is_retryable,
)
from reconciler.clients.openai import OpenAIClient
from reconciler.config.options_models import ReconciliationOptions
from reconciler.config.platform_models import PlatformConstants
from reconciler.core.delete_policy import DeleteMode, DeletePolicyTable
from reconciler.core.diff import MISSING, compute_diff, contains_reference, declared_hash, lookup
from reconciler.core.drift import DriftRuleRegistry, default_registry
from reconciler.core.graph import resolve_references, topological_order
from reconciler.core.models import PlanAction, Reference, ResourceInstance, ResourceKind, ResultStatus
from reconciler.core.plan import InstanceResult, PassReport, PlanItem, ReconciliationPlan
from reconciler.core.state import StateEntry, StateManager, StateSnapshot
from reconciler.resources import build_controllers
from reconciler.resources.base import ResourceController
from reconciler.security.validation import sanitize_log_input

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Planned actions whose target identity is only known after apply
_NEW_IDENTITY_ACTIONS = (PlanAction.CREATE, PlanAction.REPLACE, PlanAction.FORGET)


class _Operation:
    """Name and attempt count of the operation an instance is running."""

    def __init__(self) -> None:
        self.name = "validate"
        self.attempts = 0


class ReconciliationDriver:
    """Runs reconciliation passes over declared instances.

    The driver is the only writer of the StateSnapshot. Every instance runs
    as its own task: it waits until the instances it references have
    committed, then refreshes, diffs and executes. Instances that were
    recorded in state but are no longer declared are destroyed, dependents
    first.
    """

    def __init__(
        self,
        client: OpenAIClient,
        state_manager: StateManager,
        controllers: Optional[Dict[ResourceKind, ResourceController]] = None,
        options: Optional[ReconciliationOptions] = None,
        platform: Optional[PlatformConstants] = None,
        drift_rules: Optional[DriftRuleRegistry] = None,
        delete_policies: Optional[DeletePolicyTable] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize reconciliation driver.

        Args:
            client: OpenAI API client
            state_manager: Lock-guarded state store, injected per driver
            controllers: Controllers by kind (built from the client when omitted)
            options: Reconciliation options
            platform: Overridable platform constants
            drift_rules: Drift suppression rules
            delete_policies: Delete policy table
            audit_logger: Optional audit logger
        """
        self.client = client
        self.state_manager = state_manager
        self.options = options or ReconciliationOptions()
        self.platform = platform or PlatformConstants()
        self.controllers = controllers or build_controllers(client, self.options, self.platform)
        self.drift_rules = drift_rules or default_registry(self.platform.model_aliases)
        self.delete_policies = delete_policies or DeletePolicyTable()
        self.audit_logger = audit_logger

        self._cancelled = False
        self._logger = logger.bind(driver="ReconciliationDriver")

    def cancel(self) -> None:
        """Stop scheduling instances; operations already running finish and commit."""
        if not self._cancelled:
            self._logger.warning("Cancellation requested; no new instances will start")
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def controller_for(self, kind: ResourceKind) -> ResourceController:
        controller = self.controllers.get(ResourceKind(kind))
        if controller is None:
            raise StateError(f"No controller registered for {kind}")
        return controller

    # References

    def _lookup_reference(self, reference: Reference, snapshot: StateSnapshot) -> Any:
        entry = snapshot.get(reference.address)
        if entry is None:
            return reference
        if reference.attribute == "identity":
            return entry.identity
        if reference.attribute == "id":
            return entry.observed.get("id", entry.identity)

        value = lookup(entry.observed, reference.attribute)
        if value is MISSING:
            value = lookup(entry.applied_attributes, reference.attribute)
        return reference if value is MISSING else value

    def _resolve(
        self,
        instance: ResourceInstance,
        snapshot: StateSnapshot,
        pending: Optional[Set[str]] = None,
    ) -> Tuple[Dict[str, Any], List[str]]:
        """Substitute references from the snapshot.

        Args:
            instance: Instance to resolve
            snapshot: Snapshot to read referenced values from
            pending: Addresses whose identity will change in this pass

        Returns:
            Resolved attributes and the names of attributes still unresolved
        """
        pending = pending or set()

        def resolver(reference: Reference) -> Any:
            if reference.address in pending:
                return reference
            return self._lookup_reference(reference, snapshot)

        resolved = resolve_references(instance.declared_attributes, resolver)
        unresolved = sorted(name for name, value in resolved.items() if contains_reference(value))
        return resolved, unresolved

    # Retry

    async def _call(
        self,
        operation: _Operation,
        name: str,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one remote operation with operation-level retries.

        Only TransientNetwork and RateLimited failures are retried.
        """
        operation.name = name
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.options.operation_retries + 1),
            wait=wait_exponential(multiplier=self.options.operation_retry_delay_seconds, max=60),
            retry=retry_if_exception(is_retryable),
            reraise=True,
        ):
            with attempt:
                operation.attempts += 1
                if attempt.retry_state.attempt_number > 1:
                    self._logger.info(
                        "Retrying operation",
                        operation=name,
                        attempt_number=attempt.retry_state.attempt_number,
                    )
                return await func()
        raise AssertionError("unreachable")  # pragma: no cover

    # Planning

    async def plan(self, instances: List[ResourceInstance]) -> ReconciliationPlan:
        """Compute the operations a pass would run, without mutating state.

        Existing objects are refreshed with read calls only.

        Args:
            instances: Declared instances

        Returns:
            The ReconciliationPlan, destroys last

        Raises:
            ReconciliationError: If an instance fails validation or refresh
        """
        snapshot = self.state_manager.snapshot()
        by_address = {instance.address: instance for instance in instances}
        order = topological_order({a: i.depends_on for a, i in by_address.items()})

        plan = ReconciliationPlan(plan_id=f"plan_{uuid.uuid4().hex[:12]}")
        pending: Set[str] = set()

        for address in order:
            item = await self._plan_instance(by_address[address], snapshot, pending)
            if item.action in _NEW_IDENTITY_ACTIONS or (item.action == PlanAction.READ and item.unresolved):
                pending.add(address)
            plan.items.append(item)

        for address in self._destroy_order(snapshot, set(by_address)):
            entry = snapshot.entries[address]
            policy = self.delete_policies.policy_for(entry.kind)
            plan.items.append(PlanItem(
                address=address,
                kind=entry.kind,
                action=PlanAction.DELETE,
                identity=entry.identity,
                reason=f"no longer declared ({policy.mode.value})",
                dependencies=entry.dependencies,
            ))

        self._logger.info("Computed plan", plan_id=plan.plan_id, **plan.summary())
        return plan

    async def _plan_instance(
        self,
        instance: ResourceInstance,
        snapshot: StateSnapshot,
        pending: Set[str],
    ) -> PlanItem:
        controller = self.controller_for(instance.kind)
        operation = _Operation()
        entry = snapshot.get(instance.address)
        resolved, unresolved = self._resolve(instance, snapshot, pending)

        def item(action: PlanAction, reason: str, **kwargs: Any) -> PlanItem:
            return PlanItem(
                address=instance.address,
                kind=instance.kind,
                action=action,
                identity=entry.identity if entry else instance.identity,
                reason=reason,
                dependencies=instance.depends_on,
                unresolved=unresolved,
                **kwargs,
            )

        try:
            controller.check_scope()
            self._validate(controller, resolved, unresolved)

            if controller.read_only:
                if instance.import_mode:
                    raise StateError(f"{instance.address} is a data source and cannot be imported")
                if unresolved:
                    return item(PlanAction.READ, "read once its dependencies are applied")
                fetched = await self._call(operation, "read", lambda: controller.fetch(resolved))
                # Instances planned later resolve against the fresh listing
                snapshot.entries[instance.address] = self._entry(
                    instance, fetched.identity, fetched.attributes, resolved
                )
                return item(PlanAction.READ, f"lists {fetched.attributes.get('count', 0)} objects")

            if entry is None:
                if instance.import_mode:
                    return item(PlanAction.IMPORT, f"bind existing {instance.identity}")
                return item(PlanAction.CREATE, "not yet created")

            try:
                observed = await self._call(
                    operation, "read", lambda: controller.read(entry.identity, entry.observed)
                )
            except ResourceNotFoundError:
                return item(PlanAction.FORGET, "disappeared remotely; will be re-created next pass")

            refreshed = entry.model_copy(update={"observed": observed.attributes})
            diff = compute_diff(instance.kind, controller.schema, resolved, refreshed, self.drift_rules)
            changes = diff.changes()

            replacing = list(diff.replacing)
            for name in diff.unresolvable:
                spec = controller.schema.get(name)
                if spec is None or spec.force_new or not spec.updatable:
                    replacing.append(name)

            if replacing:
                return item(PlanAction.REPLACE, f"forces replacement: {', '.join(sorted(replacing))}", changes=changes)
            if changes:
                names = sorted(change.attribute for change in changes)
                return item(PlanAction.UPDATE, f"update in place: {', '.join(names)}", changes=changes)
            return item(PlanAction.NOOP, "up to date")

        except Exception as e:
            raise self._wrap(e, instance.address, operation.name, entry.identity if entry else None) from e

    def _validate(self, controller: ResourceController, resolved: Dict[str, Any], unresolved: List[str]) -> None:
        # Values known only after apply are validated once resolved
        known = {name: value for name, value in resolved.items() if name not in unresolved}
        for name in unresolved:
            known[name] = "(known after apply)"
        controller.validate(known)

    def _destroy_order(self, snapshot: StateSnapshot, declared: Set[str]) -> List[str]:
        """Undeclared entries ordered so dependents are destroyed first."""
        orphans = {a: e for a, e in snapshot.entries.items() if a not in declared}
        order = topological_order({a: set(e.dependencies) & set(orphans) for a, e in orphans.items()})
        return list(reversed(order))

    # Applying

    async def apply(
        self,
        instances: List[ResourceInstance],
        plan: Optional[ReconciliationPlan] = None,
    ) -> PassReport:
        """Run one reconciliation pass.

        The pass refreshes every instance itself; a plan computed beforehand
        is only recorded in the audit trail.

        Args:
            instances: Declared instances
            plan: Plan the caller approved, if any

        Returns:
            PassReport with one InstanceResult per declared or destroyed instance
        """
        self._cancelled = False
        report = PassReport(pass_id=f"pass_{uuid.uuid4().hex[:12]}")
        by_address = {instance.address: instance for instance in instances}
        order = topological_order({a: i.depends_on for a, i in by_address.items()})

        snapshot = self.state_manager.snapshot()
        destroys = self._destroy_order(snapshot, set(by_address))

        self._logger.info(
            "Starting reconciliation pass",
            pass_id=report.pass_id,
            instances=len(order),
            destroys=len(destroys),
        )
        if self.audit_logger:
            self.audit_logger.start_pass_audit(report.pass_id)
            for item in plan.items if plan else []:
                self.audit_logger.log_plan_item(item, report.pass_id)

        semaphore = asyncio.Semaphore(self.options.max_concurrent_operations)
        done: Dict[str, asyncio.Event] = {a: asyncio.Event() for a in list(order) + destroys}
        results: Dict[str, InstanceResult] = {}

        async def wait_for(addresses: List[str]) -> List[str]:
            """Wait for ``addresses`` and return those that left nothing to depend on.

            A forgotten dependency succeeded but has no identity until it is
            re-created next pass, so its dependents wait for that pass too.
            """
            for address in addresses:
                await done[address].wait()
            return [
                a for a in addresses
                if not results[a].success or results[a].action == PlanAction.FORGET
            ]

        async def run_declared(instance: ResourceInstance) -> None:
            try:
                failed = await wait_for([a for a in instance.depends_on if a in done])
                if failed:
                    result = self._skipped(instance.address, instance.kind, ResultStatus.BLOCKED, failed)
                else:
                    async with semaphore:
                        if self._cancelled:
                            result = self._skipped(instance.address, instance.kind, ResultStatus.CANCELLED)
                        else:
                            result = await self._reconcile(instance)
                self._record(report.pass_id, result, results)
            finally:
                done[instance.address].set()

        async def run_destroy(entry: StateEntry) -> None:
            try:
                dependents = [a for a in snapshot.dependents_of(entry.address) if a in destroys]
                failed = await wait_for(dependents)
                if failed:
                    result = self._skipped(
                        entry.address, entry.kind, ResultStatus.BLOCKED, failed, PlanAction.DELETE, entry.identity
                    )
                else:
                    async with semaphore:
                        if self._cancelled:
                            result = self._skipped(
                                entry.address, entry.kind, ResultStatus.CANCELLED,
                                action=PlanAction.DELETE, identity=entry.identity,
                            )
                        else:
                            result = await self._destroy(entry)
                self._record(report.pass_id, result, results)
            finally:
                done[entry.address].set()

        tasks = [run_declared(by_address[a]) for a in order]
        tasks += [run_destroy(snapshot.entries[a]) for a in destroys]
        await asyncio.gather(*tasks)

        report.results = [results[a] for a in list(order) + destroys]
        report.cancelled = self._cancelled
        report.completed_at = datetime.now(timezone.utc)

        self._logger.info("Completed reconciliation pass", pass_id=report.pass_id, **report.summary())
        if self.audit_logger:
            self.audit_logger.complete_pass_audit(
                success=report.success,
                error_message=None if report.success else f"{len(report.failed)} instance(s) failed",
            )
        return report

    def _record(self, pass_id: str, result: InstanceResult, results: Dict[str, InstanceResult]) -> None:
        results[result.address] = result
        if self.audit_logger:
            self.audit_logger.log_result(result, pass_id)
        if result.status == ResultStatus.FAILED and not self.options.continue_on_error:
            self.cancel()

    @staticmethod
    def _skipped(
        address: str,
        kind: ResourceKind,
        status: ResultStatus,
        blocked_by: Optional[List[str]] = None,
        action: PlanAction = PlanAction.NOOP,
        identity: Optional[str] = None,
    ) -> InstanceResult:
        metadata = {"blocked_by": blocked_by} if blocked_by else {}
        message = None
        if status == ResultStatus.BLOCKED:
            message = f"Dependencies are not available in this pass: {', '.join(blocked_by or [])}"
        elif status == ResultStatus.CANCELLED:
            message = "Pass cancelled before this instance started"
        return InstanceResult(
            address=address,
            kind=kind,
            action=action,
            status=status,
            identity=identity,
            error_message=message,
            metadata=metadata,
        )

    def _wrap(self, exc: Exception, address: str, operation: str, identity: Optional[str]) -> ReconciliationError:
        if isinstance(exc, ReconciliationError):
            return exc
        message = str(exc)
        if isinstance(exc, ConflictError) and operation == "create":
            message = f"Conflict on create; the object already exists outside this configuration: {exc}"
        return ReconciliationError(
            message,
            address=address,
            operation=operation,
            identity=identity,
            remote_message=getattr(exc, "remote_message", None),
            cause=exc,
        )

    def _failed(
        self,
        exc: Exception,
        instance_address: str,
        kind: ResourceKind,
        action: PlanAction,
        operation: _Operation,
        identity: Optional[str],
        started: float,
    ) -> InstanceResult:
        error = self._wrap(exc, instance_address, operation.name, identity)
        self._logger.error(
            "Instance reconciliation failed",
            address=instance_address,
            identity=identity,
            operation=operation.name,
            error_kind=error_kind(error),
            error=sanitize_log_input(error.message),
            remote_message=sanitize_log_input(error.remote_message),
        )
        return InstanceResult(
            address=instance_address,
            kind=kind,
            action=action,
            status=ResultStatus.FAILED,
            identity=identity,
            operation=operation.name,
            error_kind=error_kind(error),
            error_message=error.message,
            remote_message=error.remote_message,
            attempts=operation.attempts,
            duration_seconds=time.monotonic() - started,
        )

    def _entry(
        self,
        instance: ResourceInstance,
        identity: str,
        observed: Dict[str, Any],
        applied: Dict[str, Any],
        suppressed: Optional[List[str]] = None,
        imported: bool = False,
    ) -> StateEntry:
        return StateEntry(
            address=instance.address,
            kind=instance.kind,
            identity=identity,
            observed=observed,
            applied_attributes=applied,
            last_applied_hash=declared_hash(applied),
            dependencies=instance.depends_on,
            suppressed_attributes=suppressed or [],
            imported=imported,
        )

    async def _reconcile(self, instance: ResourceInstance) -> InstanceResult:
        """Refresh, diff and execute one declared instance."""
        started = time.monotonic()
        controller = self.controller_for(instance.kind)
        operation = _Operation()
        action = PlanAction.NOOP
        entry = self.state_manager.get(instance.address)
        identity = entry.identity if entry else instance.identity
        log = self._logger.bind(address=instance.address)

        def done(status: ResultStatus, observed: Dict[str, Any], **metadata: Any) -> InstanceResult:
            return InstanceResult(
                address=instance.address,
                kind=instance.kind,
                action=action,
                status=status,
                identity=identity,
                observed=observed,
                attempts=operation.attempts,
                duration_seconds=time.monotonic() - started,
                metadata=metadata,
            )

        try:
            controller.check_scope()
            resolved, unresolved = self._resolve(instance, self.state_manager.snapshot())
            if unresolved:
                raise StateError(
                    f"References could not be resolved for: {', '.join(unresolved)}"
                )
            controller.validate(resolved)

            if controller.read_only:
                if instance.import_mode:
                    raise StateError(f"{instance.address} is a data source and cannot be imported")
                action = PlanAction.READ
                fetched = await self._call(operation, "read", lambda: controller.fetch(resolved))
                identity = fetched.identity
                await self.state_manager.commit(self._entry(instance, fetched.identity, fetched.attributes, resolved))
                log.debug("Read data source", identity=identity, count=fetched.attributes.get("count"))
                return done(ResultStatus.NOOP, fetched.attributes)

            if entry is None and instance.import_mode:
                action = PlanAction.IMPORT
                entry = await self._import(controller, instance, instance.identity or "", operation)
                identity = entry.identity
                log.info("Imported existing object", identity=identity)

            if entry is None:
                action = PlanAction.CREATE
                created = await self._call(operation, "create", lambda: controller.create(resolved))
                identity = created.identity
                await self.state_manager.commit(self._entry(instance, created.identity, created.attributes, resolved))
                log.info("Created instance", identity=identity)
                return done(ResultStatus.APPLIED, created.attributes)

            if action != PlanAction.IMPORT:
                try:
                    refreshed = await self._call(
                        operation, "read", lambda: controller.read(entry.identity, entry.observed)
                    )
                except ResourceNotFoundError:
                    action = PlanAction.FORGET
                    await self.state_manager.remove(instance.address)
                    log.warning("Instance disappeared remotely; it will be re-created next pass", identity=identity)
                    return done(ResultStatus.APPLIED, {}, reason="disappeared remotely")
                entry.observed = refreshed.attributes

            diff = compute_diff(instance.kind, controller.schema, resolved, entry, self.drift_rules)
            if diff.unresolvable:
                raise StateError(f"Unresolvable attributes: {', '.join(diff.unresolvable)}")

            if diff.replacing:
                action = PlanAction.REPLACE
                log.info("Replacing instance", identity=identity, attributes=diff.replacing)
                outcome = await self._call(
                    operation, "delete", lambda: self.delete_policies.execute(controller, entry)
                )
                await self.state_manager.remove(instance.address)
                created = await self._call(operation, "create", lambda: controller.create(resolved))
                identity = created.identity
                await self.state_manager.commit(self._entry(instance, created.identity, created.attributes, resolved))
                return done(
                    ResultStatus.APPLIED,
                    created.attributes,
                    replaced=diff.replacing,
                    previous_identity=entry.identity,
                    remote_call=outcome.remote_call,
                )

            if diff.updatable:
                action = PlanAction.UPDATE
                updated = await self._call(
                    operation,
                    "update",
                    lambda: controller.update(entry.identity, diff.updatable, resolved, observed=entry.observed),
                )
                await self.state_manager.commit(self._entry(
                    instance, entry.identity, updated.attributes, resolved,
                    entry.suppressed_attributes, entry.imported,
                ))
                log.info("Updated instance", identity=identity, attributes=sorted(diff.updatable))
                return done(ResultStatus.APPLIED, updated.attributes, updated=sorted(diff.updatable))

            # Record the refresh and the declared values that now produce it
            await self.state_manager.commit(self._entry(
                instance, entry.identity, entry.observed, resolved,
                entry.suppressed_attributes, entry.imported,
            ))
            status = ResultStatus.APPLIED if action == PlanAction.IMPORT else ResultStatus.NOOP
            return done(status, entry.observed)

        except Exception as e:
            return self._failed(e, instance.address, instance.kind, action, operation, identity, started)

    async def _import(
        self,
        controller: ResourceController,
        instance: ResourceInstance,
        identity: str,
        operation: _Operation,
    ) -> StateEntry:
        """Bind a pre-existing remote object and commit its entry."""
        if not identity:
            raise StateError(f"{instance.address} has no identity to import")
        bound = self.state_manager.snapshot().find_by_identity(instance.kind, identity)
        if bound is not None and bound.address != instance.address:
            raise StateError(f"{identity} is already managed as {bound.address}")

        result = await self._call(operation, "import", lambda: controller.import_(identity))
        entry = self._entry(
            instance,
            result.observed.identity,
            result.observed.attributes,
            result.declared_defaults,
            suppressed=result.suppressed,
            imported=True,
        )
        await self.state_manager.commit(entry)
        return entry

    async def import_instance(self, address: str, kind: ResourceKind, identity: str) -> InstanceResult:
        """Bind a pre-existing remote object into the snapshot.

        Args:
            address: Address the object will be managed under (``kind.name``)
            kind: Resource kind
            identity: Remote identity

        Returns:
            InstanceResult with the imported observation
        """
        kind = ResourceKind(kind)
        prefix = f"{kind.value}."
        if not address.startswith(prefix) or len(address) == len(prefix):
            raise StateError(f"Address {address} does not match kind {kind.value}")

        instance = ResourceInstance(kind=kind, name=address[len(prefix):], identity=identity, import_mode=True)
        started = time.monotonic()
        operation = _Operation()
        controller = self.controller_for(kind)

        try:
            if self.state_manager.get(address) is not None:
                raise StateError(f"{address} is already managed")
            controller.check_scope()
            entry = await self._import(controller, instance, identity, operation)
        except Exception as e:
            return self._failed(e, address, kind, PlanAction.IMPORT, operation, identity, started)

        self._logger.info("Imported object", address=address, identity=entry.identity, suppressed=entry.suppressed_attributes)
        return InstanceResult(
            address=address,
            kind=kind,
            action=PlanAction.IMPORT,
            status=ResultStatus.APPLIED,
            identity=entry.identity,
            observed=entry.observed,
            attempts=operation.attempts,
            duration_seconds=time.monotonic() - started,
            metadata={
                "declared_defaults": entry.applied_attributes,
                "suppressed": entry.suppressed_attributes,
            },
        )

    async def _destroy(self, entry: StateEntry) -> InstanceResult:
        """Destroy an instance that is no longer declared."""
        started = time.monotonic()
        controller = self.controller_for(entry.kind)
        operation = _Operation()
        policy = self.delete_policies.policy_for(entry.kind)

        try:
            if policy.mode != DeleteMode.LOCAL_ONLY:
                controller.check_scope()
                try:
                    refreshed = await self._call(
                        operation, "read", lambda: controller.read(entry.identity, entry.observed)
                    )
                    entry.observed = refreshed.attributes
                except ResourceNotFoundError:
                    await self.state_manager.remove(entry.address)
                    return InstanceResult(
                        address=entry.address,
                        kind=entry.kind,
                        action=PlanAction.DELETE,
                        status=ResultStatus.APPLIED,
                        identity=entry.identity,
                        attempts=operation.attempts,
                        duration_seconds=time.monotonic() - started,
                        metadata={"remote_call": "none", "reason": "already absent"},
                    )

            outcome = await self._call(operation, "delete", lambda: self.delete_policies.execute(controller, entry))
            await self.state_manager.remove(entry.address)
        except Exception as e:
            return self._failed(e, entry.address, entry.kind, PlanAction.DELETE, operation, entry.identity, started)

        self._logger.info(
            "Destroyed instance",
            address=entry.address,
            identity=entry.identity,
            remote_call=outcome.remote_call,
        )
        return InstanceResult(
            address=entry.address,
            kind=entry.kind,
            action=PlanAction.DELETE,
            status=ResultStatus.APPLIED,
            identity=entry.identity,
            attempts=operation.attempts,
            duration_seconds=time.monotonic() - started,
            metadata={"remote_call": outcome.remote_call, "reason": outcome.reason},
        )
