"""Factories building clients and reconciliation components from configuration."""

from typing import List, Optional

import httpx
import structlog

from reconciler.audit.logger import AuditLogger
from reconciler.clients.openai import OpenAIClient
from reconciler.config.models import OpenAIConfig, ReconcilerConfig
from reconciler.core.driver import ReconciliationDriver
from reconciler.core.graph import build_instances
from reconciler.core.models import ResourceInstance
from reconciler.core.state import StateManager
from reconciler.security.validation import sanitize_log_input

logger = structlog.get_logger(__name__)


class ClientFactory:
    """Factory for creating API clients from configuration."""

    @staticmethod
    def create_openai_client(
        config: OpenAIConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> OpenAIClient:
        """Create OpenAI client from configuration.

        Args:
            config: OpenAI configuration
            transport: Optional httpx transport (tests)

        Returns:
            Configured OpenAI client

        Raises:
            ValueError: If configuration is invalid
        """
        try:
            return OpenAIClient(
                project_api_key=config.project_api_key,
                admin_api_key=config.admin_api_key,
                api_url=config.api_url,
                organization_id=config.organization_id,
                project_id=config.project_id,
                timeout_seconds=config.timeout_seconds,
                rate_limit_per_minute=config.rate_limit_per_minute,
                max_retries=config.max_retries,
                retry_delay_seconds=config.retry_delay_seconds,
                transport=transport,
            )
        except Exception as e:
            logger.error(
                "Failed to create OpenAI client",
                api_url=sanitize_log_input(config.api_url),
                error=sanitize_log_input(str(e)),
            )
            raise ValueError(f"Failed to create OpenAI client: {e}") from e

    @staticmethod
    async def validate_client(client: OpenAIClient) -> bool:
        """Check API connectivity with the configured credentials."""
        healthy = await client.health_check()
        logger.info("OpenAI connectivity check", healthy=healthy)
        return healthy


class ComponentFactory:
    """Factory for creating reconciliation components."""

    @staticmethod
    def create_state_manager(config: ReconcilerConfig) -> StateManager:
        """Create a state manager and load the persisted snapshot."""
        state_manager = StateManager(
            state_dir=config.state_management.state_directory,
            state_file=config.state_management.state_file,
        )
        state_manager.load()
        return state_manager

    @staticmethod
    def create_audit_logger(config: ReconcilerConfig) -> Optional[AuditLogger]:
        if not config.audit.enabled:
            return None
        audit_logger = AuditLogger(
            audit_dir=config.audit.audit_directory,
            retention_days=config.audit.retention_days,
            include_sensitive_data=config.audit.include_sensitive_data,
        )
        audit_logger.cleanup_old_files()
        return audit_logger

    @staticmethod
    def create_driver(
        client: OpenAIClient,
        state_manager: StateManager,
        config: ReconcilerConfig,
        audit_logger: Optional[AuditLogger] = None,
    ) -> ReconciliationDriver:
        return ReconciliationDriver(
            client=client,
            state_manager=state_manager,
            options=config.reconciliation,
            platform=config.platform,
            audit_logger=audit_logger,
        )

    @staticmethod
    def create_instances(config: ReconcilerConfig) -> List[ResourceInstance]:
        """Declared instances in dependency order.

        Raises:
            ManifestError: On unknown references or dependency cycles
        """
        instances = build_instances(config.resources)
        logger.debug("Built declared instances", count=len(instances))
        return instances
