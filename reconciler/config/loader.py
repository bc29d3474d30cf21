"""Configuration loader with YAML parsing and environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from reconciler.clients.exceptions import ConfigurationError
from reconciler.config.models import ReconcilerConfig
from reconciler.security.validation import (
    SecurityError,
    sanitize_log_input,
    validate_environment_variable_name,
)

logger = structlog.get_logger(__name__)


class EnvironmentVariableError(ConfigurationError):
    """Raised when environment variable substitution fails."""
    pass


# Allowlist of environment variables a configuration file may read
ALLOWED_ENV_VARS: Set[str] = {
    # API credentials
    "OPENAI_API_KEY",
    "OPENAI_ADMIN_KEY",
    "OPENAI_ADMIN_API_KEY",
    "OPENAI_PROJECT_API_KEY",

    # Organization configuration
    "OPENAI_API_URL",
    "OPENAI_ORGANIZATION_ID",
    "OPENAI_ORG_ID",
    "OPENAI_PROJECT_ID",

    # Logging and audit
    "LOG_LEVEL",
    "LOG_FORMAT",
    "AUDIT_DIR",

    # Reconciliation
    "MAX_CONCURRENT_OPERATIONS",
    "OPENAI_RATE_LIMIT_PER_MINUTE",
    "STATE_DIR",

    # Common environment variables
    "HOME",
    "USER",
    "PWD",
    "TMPDIR",
}


def _validate_env_var_name(var_name: str) -> None:
    """Validate that an environment variable may be substituted.

    Raises:
        SecurityError: If the name is malformed or not in the allowlist
    """
    if not validate_environment_variable_name(var_name):
        raise SecurityError(
            f"Invalid environment variable name format: '{sanitize_log_input(var_name)}'"
        )

    if var_name not in ALLOWED_ENV_VARS:
        raise SecurityError(
            f"Unauthorized environment variable '{sanitize_log_input(var_name)}' is not in allowlist. "
            f"Allowed variables: {sorted(ALLOWED_ENV_VARS)}"
        )


def _sanitize_env_value(value: str) -> str:
    """Reject values that could inject YAML structure.

    Args:
        value: Raw environment variable value

    Returns:
        Stripped value
    """
    sanitized = value.strip()

    dangerous_chars = ['${', '#{', '&', '*', '!', '|', '>', "'", '"', '`', '\n']
    for char in dangerous_chars:
        if char in sanitized:
            raise SecurityError(
                f"Environment variable contains potentially dangerous character {char!r}. "
                "Values with special YAML characters are not allowed."
            )

    return sanitized


class ConfigLoader:
    """Configuration loader with environment variable substitution.

    ``${VAR}`` and ``${VAR:default}`` are substituted from the environment.
    Dotted placeholders such as ``${project.main.id}`` are instance
    references and are left for the manifest graph.
    """

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*?)(?::([^}]*))?\}')

    def __init__(self, require_env_vars: bool = True, dotenv_path: Optional[Path] = None) -> None:
        """Initialize the configuration loader.

        Args:
            require_env_vars: Whether every referenced variable without a default must be set
            dotenv_path: Optional .env file loaded before substitution
        """
        self.require_env_vars = require_env_vars
        self.dotenv_path = dotenv_path

    def load_config(self, config_path: Path) -> ReconcilerConfig:
        """Load and validate configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Validated ReconcilerConfig instance

        Raises:
            ConfigurationError: If loading or validation fails
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        if self.dotenv_path is not None:
            load_dotenv(self.dotenv_path, override=False)
        else:
            load_dotenv(override=False)

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw_content = f.read()

            substituted_content = self._substitute_env_vars(raw_content)
            config_data = yaml.safe_load(substituted_content)

            if not isinstance(config_data, dict):
                raise ConfigurationError("Configuration file must contain a YAML object")

            config = ReconcilerConfig.model_validate(config_data)
        except (ConfigurationError, SecurityError):
            raise
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax: {e}") from e
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        logger.debug(
            "Loaded configuration",
            file=str(config_path),
            resources=len(config.resources),
        )
        return config

    def _substitute_env_vars(self, content: str) -> str:
        """Substitute environment variables in the content.

        Raises:
            EnvironmentVariableError: If a required variable is missing
            SecurityError: If a variable is not allowlisted or its value is unsafe
        """
        missing_vars: List[str] = []
        security_errors: List[str] = []

        def replace_env_var(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2)

            try:
                _validate_env_var_name(var_name)
            except SecurityError as e:
                security_errors.append(str(e))
                return match.group(0)

            env_value = os.getenv(var_name)
            if env_value is not None:
                return _sanitize_env_value(env_value)
            if default_value is not None:
                return _sanitize_env_value(default_value)
            if self.require_env_vars:
                missing_vars.append(var_name)
            return match.group(0)

        result = self.ENV_VAR_PATTERN.sub(replace_env_var, content)

        if security_errors:
            raise SecurityError(f"Security validation failed: {'; '.join(security_errors)}")

        if missing_vars:
            if len(missing_vars) == 1:
                raise EnvironmentVariableError(
                    f"Required environment variable '{missing_vars[0]}' is not set"
                )
            raise EnvironmentVariableError(
                f"Required environment variables are not set: {', '.join(sorted(set(missing_vars)))}"
            )

        return result

    def validate_config_file(self, config_path: Path) -> Tuple[bool, Optional[str]]:
        """Validate a configuration file without keeping the result.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.load_config(config_path)
            return True, None
        except (ConfigurationError, SecurityError) as e:
            return False, str(e)

    def get_missing_env_vars(self, config_path: Path) -> List[str]:
        """List variables referenced without default and not set in the environment."""
        config_path = Path(config_path)
        if not config_path.exists():
            return []

        with open(config_path, 'r', encoding='utf-8') as f:
            content = f.read()

        missing_vars = set()
        for match in self.ENV_VAR_PATTERN.finditer(content):
            var_name, default_value = match.group(1), match.group(2)
            if default_value is None and os.getenv(var_name) is None:
                missing_vars.add(var_name)
        return sorted(missing_vars)


def load_config_from_path(config_path: Path, require_env_vars: bool = True) -> ReconcilerConfig:
    """Convenience function to load configuration from a path."""
    loader = ConfigLoader(require_env_vars=require_env_vars)
    return loader.load_config(config_path)


def load_config_from_dict(config_data: Dict[str, Any]) -> ReconcilerConfig:
    """Load configuration from a dictionary (used by tests).

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        return ReconcilerConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Find a configuration file by searching up the directory tree.

    Searches for ``reconcile.yaml``, ``reconcile.yml``, ``config.yaml`` and
    ``config.yml`` in that order.

    Args:
        start_path: Directory to start from (defaults to the current directory)

    Returns:
        Path to the configuration file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    config_filenames = [
        "reconcile.yaml",
        "reconcile.yml",
        "config.yaml",
        "config.yml",
    ]

    current_path = start_path.resolve()
    while True:
        for filename in config_filenames:
            config_path = current_path / filename
            if config_path.exists():
                return config_path

        parent = current_path.parent
        if parent == current_path:
            break
        current_path = parent

    return None
