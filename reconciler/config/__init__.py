"""Configuration package for openai-reconcile."""

from .loader import ConfigLoader, find_config_file, load_config_from_dict, load_config_from_path
from .models import (
    AuditConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    OpenAIConfig,
    PlatformConstants,
    RateLimitValues,
    ReconcilerConfig,
    ReconciliationOptions,
    ResourceDeclaration,
    StateManagementConfig,
)

__all__ = [
    "AuditConfig",
    "ConfigLoader",
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
    "find_config_file",
    "load_config_from_dict",
    "load_config_from_path",
]
