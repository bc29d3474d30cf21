"""Main configuration model for openai-reconcile."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, model_validator

from .api_models import OpenAIConfig
from .audit_models import AuditConfig, LoggingConfig, StateManagementConfig
from .base_models import LogFormat, LogLevel
from .manifest_models import ResourceDeclaration
from .options_models import ReconciliationOptions
from .platform_models import DEFAULT_RATE_LIMITS, PlatformConstants, RateLimitValues


class ReconcilerConfig(BaseModel):
    """Complete configuration: API access, pass options and declared resources."""

    openai: OpenAIConfig = Field(
        ...,
        description="OpenAI API configuration"
    )
    reconciliation: ReconciliationOptions = Field(
        default_factory=ReconciliationOptions,
        description="Reconciliation pass options"
    )
    platform: PlatformConstants = Field(
        default_factory=PlatformConstants,
        description="Overridable platform constants"
    )
    resources: List[ResourceDeclaration] = Field(
        default_factory=list,
        description="Declared resource instances"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )
    audit: AuditConfig = Field(
        default_factory=AuditConfig,
        description="Audit trail configuration"
    )
    state_management: StateManagementConfig = Field(
        default_factory=StateManagementConfig,
        description="State management configuration"
    )

    @model_validator(mode='after')
    def validate_unique_addresses(self) -> 'ReconcilerConfig':
        """Every declared instance needs a unique kind.name address."""
        seen = set()
        for declaration in self.resources:
            if declaration.address in seen:
                raise ValueError(f"Duplicate resource address: {declaration.address}")
            seen.add(declaration.address)
        return self


__all__ = [
    "AuditConfig",
    "DEFAULT_RATE_LIMITS",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "OpenAIConfig",
    "PlatformConstants",
    "RateLimitValues",
    "ReconcilerConfig",
    "ReconciliationOptions",
    "ResourceDeclaration",
    "StateManagementConfig",
]
