"""Audit trail of reconciliation passes."""

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

import structlog
from pydantic import BaseModel, Field

from reconciler.core.plan import InstanceResult, PlanItem
from reconciler.security.validation import sanitize_log_input

# Keys whose values are masked unless sensitive data is explicitly allowed
SENSITIVE_KEYS = {"value", "api_key", "key", "secret", "redacted_value"}


class AuditEvent(BaseModel):
    """Individual audit event."""

    event_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    event_type: str  # pass_start, pass_complete, plan_item, instance_result
    pass_id: str

    # Instance information
    kind: Optional[str] = None
    address: str
    identity: Optional[str] = None

    # Operation details
    operation: str
    success: bool
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)
    after_state: Optional[Dict[str, Any]] = None

    def to_log_record(self) -> Dict[str, Any]:
        """Convert to structured log record format."""
        record = self.model_dump(mode="json")
        record["timestamp"] = self.timestamp.isoformat()
        return record


class AuditSummary(BaseModel):
    """Summary of audit events for one pass."""

    pass_id: str
    started_at: datetime
    completed_at: Optional[datetime] = None

    total_events: int = 0
    success_events: int = 0
    error_events: int = 0

    operations: Dict[str, int] = Field(default_factory=dict)
    kinds: Dict[str, int] = Field(default_factory=dict)
    error_kinds: Dict[str, int] = Field(default_factory=dict)

    def add_event(self, event: AuditEvent) -> None:
        """Add an event to the summary statistics."""
        self.total_events += 1

        if event.success:
            self.success_events += 1
        else:
            self.error_events += 1
            error_kind = event.error_kind or "Unknown"
            self.error_kinds[error_kind] = self.error_kinds.get(error_kind, 0) + 1

        self.operations[event.operation] = self.operations.get(event.operation, 0) + 1
        if event.kind:
            self.kinds[event.kind] = self.kinds.get(event.kind, 0) + 1

    def get_success_rate(self) -> float:
        """Get success rate as percentage."""
        if self.total_events == 0:
            return 0.0
        return (self.success_events / self.total_events) * 100.0


def _mask(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            k: ("(sensitive)" if k in SENSITIVE_KEYS and v is not None else _mask(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_mask(item) for item in data]
    return data


class AuditLogger:
    """Writes one JSONL file per pass plus a JSON summary."""

    def __init__(
        self,
        audit_dir: Path = Path("./logs/audit"),
        retention_days: int = 90,
        include_sensitive_data: bool = False,
    ) -> None:
        """Initialize audit logger.

        Args:
            audit_dir: Directory to store audit logs
            retention_days: Number of days to retain audit logs
            include_sensitive_data: Whether key values are written unmasked
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.retention_days = retention_days
        self.include_sensitive_data = include_sensitive_data

        self.current_file: Optional[Path] = None
        self.file_handle: Optional[TextIO] = None
        self.current_summary: Optional[AuditSummary] = None

        self._logger = structlog.get_logger(__name__)

    def start_pass_audit(self, pass_id: str) -> AuditSummary:
        """Open the audit file of a pass and record its start."""
        self.current_summary = AuditSummary(
            pass_id=pass_id,
            started_at=datetime.now(timezone.utc),
        )

        self._close_current_file()
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        self.current_file = self.audit_dir / f"audit_{timestamp}_{pass_id}.jsonl"
        self.file_handle = open(self.current_file, "w", encoding="utf-8")

        self.log_event(AuditEvent(
            event_id=f"{pass_id}_start",
            event_type="pass_start",
            pass_id=pass_id,
            address="system",
            operation="START",
            success=True,
        ))

        self._logger.info("Started audit logging for pass", pass_id=pass_id, audit_file=str(self.current_file))
        return self.current_summary

    def complete_pass_audit(
        self,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> Optional[AuditSummary]:
        """Record the end of a pass and write its summary.

        Returns:
            Final AuditSummary, or None when no pass was started
        """
        if not self.current_summary:
            return None

        summary = self.current_summary
        summary.completed_at = datetime.now(timezone.utc)

        self.log_event(AuditEvent(
            event_id=f"{summary.pass_id}_complete",
            event_type="pass_complete",
            pass_id=summary.pass_id,
            address="system",
            operation="COMPLETE" if success else "FAILED",
            success=success,
            error_message=error_message,
            metadata={
                "total_events": summary.total_events,
                "success_rate": summary.get_success_rate(),
                "duration_seconds": (summary.completed_at - summary.started_at).total_seconds(),
            },
        ))

        self._write_pass_summary()
        self._close_current_file()

        self._logger.info(
            "Completed audit logging for pass",
            pass_id=summary.pass_id,
            total_events=summary.total_events,
            success_rate=summary.get_success_rate(),
        )
        self.current_summary = None
        return summary

    def log_event(self, event: AuditEvent) -> None:
        """Record one event in the summary and the audit file."""
        if self.current_summary:
            self.current_summary.add_event(event)

        if self.file_handle:
            try:
                self.file_handle.write(json.dumps(event.to_log_record(), default=str) + "\n")
                self.file_handle.flush()
            except OSError as e:
                self._logger.error("Failed to write audit event to file", event_id=event.event_id, error=str(e))

        self._logger.debug("Audit event", event_id=event.event_id, operation=event.operation, success=event.success)

    def log_plan_item(self, item: PlanItem, pass_id: str) -> None:
        self.log_event(AuditEvent(
            event_id=f"{pass_id}_{item.address}_plan",
            event_type="plan_item",
            pass_id=pass_id,
            kind=item.kind.value,
            address=item.address,
            identity=item.identity,
            operation=item.action.value.upper(),
            success=True,
            metadata={
                "reason": item.reason,
                "changes": [change.model_dump(mode="json") for change in item.changes],
                "dependencies": item.dependencies,
            },
        ))

    def log_result(self, result: InstanceResult, pass_id: str) -> None:
        """Record the outcome of one instance."""
        after_state = result.observed if self.include_sensitive_data else _mask(result.observed)
        self.log_event(AuditEvent(
            event_id=f"{pass_id}_{result.address}_result",
            event_type="instance_result",
            pass_id=pass_id,
            kind=result.kind.value,
            address=result.address,
            identity=result.identity,
            operation=result.action.value.upper(),
            success=result.success,
            error_kind=result.error_kind,
            error_message=sanitize_log_input(result.error_message),
            metadata={
                "status": result.status.value,
                "attempts": result.attempts,
                "duration_seconds": result.duration_seconds,
                **result.metadata,
            },
            after_state=after_state or None,
        ))

    def _write_pass_summary(self) -> None:
        if not self.current_summary:
            return

        summary_file = self.audit_dir / f"summary_{self.current_summary.pass_id}.json"
        try:
            with open(summary_file, "w", encoding="utf-8") as f:
                json.dump(self.current_summary.model_dump(mode="json"), f, indent=2, default=str)
        except OSError as e:
            self._logger.error("Failed to write pass summary", error=str(e))
            return
        self._logger.debug("Wrote pass summary", file=str(summary_file))

    def _close_current_file(self) -> None:
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def cleanup_old_files(self) -> int:
        """Remove audit and summary files older than the retention period.

        Returns:
            Number of audit files removed
        """
        cutoff_time = time.time() - (self.retention_days * 24 * 60 * 60)
        cleaned_count = 0

        for audit_file in self.audit_dir.glob("audit_*.jsonl"):
            if audit_file.stat().st_mtime >= cutoff_time:
                continue
            audit_file.unlink()
            cleaned_count += 1

        for summary_file in self.audit_dir.glob("summary_*.json"):
            if summary_file.stat().st_mtime < cutoff_time:
                summary_file.unlink()

        if cleaned_count > 0:
            self._logger.info("Cleaned up old audit files", count=cleaned_count)
        return cleaned_count

    def get_pass_summaries(self, limit: int = 10) -> List[AuditSummary]:
        """Most recent pass summaries, newest first."""
        summaries = []
        summary_files = sorted(
            self.audit_dir.glob("summary_*.json"),
            key=lambda f: f.stat().st_mtime,
            reverse=True,
        )

        for summary_file in summary_files[:limit]:
            try:
                with open(summary_file, "r", encoding="utf-8") as f:
                    summaries.append(AuditSummary.model_validate(json.load(f)))
            except (OSError, ValueError) as e:
                self._logger.warning("Failed to load summary file", file=str(summary_file), error=str(e))

        return summaries
