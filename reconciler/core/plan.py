"""Plans and per-pass reports produced by the reconciliation driver."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from reconciler.core.diff import AttributeDiff
from reconciler.core.models import PlanAction, ResourceKind, ResultStatus


class PlanItem(BaseModel):
    """Operation selected for one instance."""

    address: str
    kind: ResourceKind
    action: PlanAction
    identity: Optional[str] = None
    reason: str = ""
    changes: List[AttributeDiff] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    # Attributes still waiting on another instance's identity
    unresolved: List[str] = Field(default_factory=list)


class ReconciliationPlan(BaseModel):
    """Ordered plan for one pass; computed without mutating state."""

    plan_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    items: List[PlanItem] = Field(default_factory=list)

    def get_item(self, address: str) -> Optional[PlanItem]:
        for item in self.items:
            if item.address == address:
                return item
        return None

    def summary(self) -> Dict[str, int]:
        """Number of items per action."""
        counts: Dict[str, int] = {}
        for item in self.items:
            counts[item.action.value] = counts.get(item.action.value, 0) + 1
        return counts

    @property
    def has_changes(self) -> bool:
        return any(item.action not in (PlanAction.NOOP, PlanAction.READ) for item in self.items)


class InstanceResult(BaseModel):
    """Outcome of reconciling one instance."""

    address: str
    kind: ResourceKind
    action: PlanAction
    status: ResultStatus
    identity: Optional[str] = None
    observed: Dict[str, Any] = Field(default_factory=dict)

    # Failure details
    operation: Optional[str] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    remote_message: Optional[str] = None

    attempts: int = 0
    duration_seconds: float = 0.0
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status in (ResultStatus.APPLIED, ResultStatus.NOOP)


class PassReport(BaseModel):
    """Results of one reconciliation pass."""

    pass_id: str
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    cancelled: bool = False
    results: List[InstanceResult] = Field(default_factory=list)

    def get(self, address: str) -> Optional[InstanceResult]:
        for result in self.results:
            if result.address == address:
                return result
        return None

    def count(self, status: ResultStatus) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def failed(self) -> List[InstanceResult]:
        return [r for r in self.results if r.status == ResultStatus.FAILED]

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    def summary(self) -> Dict[str, int]:
        """Number of results per status."""
        return {status.value: self.count(status) for status in ResultStatus}
