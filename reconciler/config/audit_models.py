"""Audit, logging and state management configuration models."""

from pathlib import Path

from pydantic import BaseModel, Field

from .base_models import LogFormat, LogLevel


class LoggingConfig(BaseModel):
    """Structured logging configuration."""

    level: LogLevel = Field(
        LogLevel.INFO,
        description="Logging level"
    )
    format: LogFormat = Field(
        LogFormat.TEXT,
        description="Log output format"
    )


class AuditConfig(BaseModel):
    """Audit trail configuration."""

    enabled: bool = Field(
        True,
        description="Whether audit logging is enabled"
    )
    audit_directory: Path = Field(
        Path("./logs/audit"),
        description="Directory for per-pass audit files"
    )
    retention_days: int = Field(
        90,
        description="Number of days to retain audit logs",
        ge=1
    )
    include_sensitive_data: bool = Field(
        False,
        description="Whether to include sensitive values in audit records (not recommended)"
    )


class StateManagementConfig(BaseModel):
    """State snapshot persistence configuration."""

    state_directory: Path = Field(
        Path("./state"),
        description="Directory to store the state snapshot"
    )
    state_file: str = Field(
        "state.json",
        description="File name of the state snapshot",
        min_length=1
    )
