"""Dependency injection container for service management.

This module provides a centralized container that builds the pipeline and
its external collaborators once per process and tears them down on
shutdown. Request handlers receive the services through FastAPI
dependencies instead of module-level singletons.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from copilot_edge.core.errors import ConfigurationError
from copilot_edge.core.logging import get_logger

if TYPE_CHECKING:
    from copilot_edge.core.config import Settings
    from copilot_edge.services.pipeline import CopilotEdgePipeline
    from copilot_edge.services.provider_client import WorkersAIClient
    from copilot_edge.services.telemetry import PerformanceMonitor
    from copilot_edge.services.unified_cache.backends.redis_backend import RedisDurableStore

logger = get_logger(__name__)

MIN_HMAC_SECRET_LENGTH = 32


class ServiceNotInitializedError(Exception):
    """Raised when accessing a service that hasn't been initialized."""

    def __init__(self, service_name: str):
        super().__init__(f"Service '{service_name}' has not been initialized. "
                         f"Call container.initialize() first.")
        self.service_name = service_name


def check_settings(settings: Settings) -> None:
    """Fail fast on configuration the service cannot run with.

    Raises:
        ConfigurationError: if credentials are missing or the signing
            secret is too short.
    """
    if not settings.api_key:
        raise ConfigurationError(
            "Cloudflare API token is required. Set CLOUDFLARE_API_TOKEN."
        )
    if not settings.account_id:
        raise ConfigurationError(
            "Cloudflare account id is required. Set CLOUDFLARE_ACCOUNT_ID."
        )
    if settings.hmac_secret is not None and len(settings.hmac_secret) < MIN_HMAC_SECRET_LENGTH:
        raise ConfigurationError(
            f"HMAC secret must be at least {MIN_HMAC_SECRET_LENGTH} characters"
        )


@dataclass
class ServiceContainer:
    """Centralized container for dependency injection.

    Usage:
        container = ServiceContainer()
        await container.initialize(settings)

        pipeline = container.pipeline

        await container.shutdown()
    """

    _pipeline: Optional[CopilotEdgePipeline] = field(default=None, repr=False)
    _provider: Optional[WorkersAIClient] = field(default=None, repr=False)
    _durable_store: Optional[RedisDurableStore] = field(default=None, repr=False)
    _performance_monitor: Optional[PerformanceMonitor] = field(default=None, repr=False)
    _initialized: bool = field(default=False, repr=True)
    _settings: Optional[Settings] = field(default=None, repr=False)

    async def initialize(self, settings: Settings) -> None:
        """Initialize all services.

        Args:
            settings: Application settings.

        Raises:
            ConfigurationError: If required configuration is missing.
        """
        if self._initialized:
            logger.warning("Container already initialized, skipping")
            return

        check_settings(settings)
        self._settings = settings
        logger.info("Initializing service container...")

        try:
            # Import here to avoid circular imports
            import httpx

            from copilot_edge.services.pipeline import CopilotEdgePipeline
            from copilot_edge.services.provider_client import RegionSelector, WorkersAIClient
            from copilot_edge.services.session_store import InMemorySessionStore, RedisSessionStore
            from copilot_edge.services.telemetry import PerformanceMonitor
            from copilot_edge.services.token_utils import TokenCounter
            from copilot_edge.services.unified_cache.backends.redis_backend import RedisDurableStore

            self._performance_monitor = PerformanceMonitor()

            http_client = httpx.AsyncClient(timeout=settings.request_timeout)
            self._provider = WorkersAIClient(
                api_key=settings.api_key,
                account_id=settings.account_id,
                client=http_client,
                regions=RegionSelector(
                    http_client,
                    settings.regions,
                    api_key=settings.api_key,
                    probe_timeout=settings.region_probe_timeout,
                    recheck_interval=settings.region_recheck_interval,
                    enabled=settings.region_probe_enabled,
                ),
                timeout=settings.request_timeout,
                chat_completions_prefixes=settings.chat_completions_model_prefixes,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
            )
            logger.info("Provider client initialized")

            durable_store = None
            if settings.redis_url:
                store = RedisDurableStore(settings.redis_url)
                await store.connect()
                if store.enabled:
                    durable_store = store
                    self._durable_store = store
                    logger.info("Durable cache tier initialized")

            session_store = None
            if settings.persist_conversations:
                if self._durable_store is not None:
                    session_store = RedisSessionStore(
                        self._durable_store.client,
                        ttl_seconds=settings.conversation_ttl,
                        max_messages=settings.conversation_max_messages,
                    )
                else:
                    session_store = InMemorySessionStore(
                        settings.conversation_max_messages,
                        ttl_seconds=settings.conversation_ttl,
                    )
                logger.info(f"Conversation store initialized ({type(session_store).__name__})")

            self._pipeline = CopilotEdgePipeline.from_settings(
                settings,
                self._provider,
                durable_store=durable_store,
                session_store=session_store,
                telemetry=self._performance_monitor,
                token_counter=TokenCounter(settings.model),
            )

            self._initialized = True
            logger.info("Service container initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize service container: {e}")
            await self.shutdown()
            raise

    async def shutdown(self) -> None:
        """Shutdown all services and cleanup resources."""
        logger.info("Shutting down service container...")

        if self._provider:
            try:
                await self._provider.http_client.aclose()
                logger.info("Provider client closed")
            except Exception as e:
                logger.error(f"Error closing provider client: {e}")

        if self._durable_store:
            try:
                await self._durable_store.disconnect()
            except Exception as e:
                logger.error(f"Error disconnecting durable tier: {e}")

        self._pipeline = None
        self._provider = None
        self._durable_store = None
        self._initialized = False
        logger.info("Service container shut down")

    @property
    def is_initialized(self) -> bool:
        """Check if the container is initialized."""
        return self._initialized

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        if self._settings is None:
            raise ServiceNotInitializedError("settings")
        return self._settings

    @property
    def pipeline(self) -> CopilotEdgePipeline:
        """Get the request pipeline."""
        if self._pipeline is None:
            raise ServiceNotInitializedError("pipeline")
        return self._pipeline

    @property
    def performance_monitor(self) -> PerformanceMonitor:
        """Get the telemetry sink."""
        if self._performance_monitor is None:
            raise ServiceNotInitializedError("performance_monitor")
        return self._performance_monitor

    def set_pipeline(self, pipeline: CopilotEdgePipeline) -> None:
        """Set the pipeline (for testing)."""
        self._pipeline = pipeline

    def set_performance_monitor(self, monitor: PerformanceMonitor) -> None:
        """Set the telemetry sink (for testing)."""
        self._performance_monitor = monitor

    def set_settings(self, settings: Settings) -> None:
        """Set settings (for testing)."""
        self._settings = settings


# Module-level container instance
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Get the global service container instance.

    Raises:
        RuntimeError: If the container hasn't been created yet.
    """
    global _container
    if _container is None:
        raise RuntimeError(
            "Service container not created. Call set_container() first "
            "or use the FastAPI app.state.container."
        )
    return _container


def set_container(container: Optional[ServiceContainer]) -> None:
    """Set the global service container instance."""
    global _container
    _container = container
