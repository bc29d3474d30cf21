"""Audit trail for reconciliation passes."""

from reconciler.audit.logger import AuditEvent, AuditLogger, AuditSummary

__all__ = ["AuditEvent", "AuditLogger", "AuditSummary"]
