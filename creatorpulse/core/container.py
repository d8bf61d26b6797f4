"""
Dependency Injection Container for CreatorPulse.

Provides centralized management of service dependencies with lazy initialization
and proper lifecycle management.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    # Pass to components that need dependencies
    poller = container.snapshot_poller

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from creatorpulse.config.settings import Settings, get_settings
from creatorpulse.core.exceptions import ConfigurationError, InitializationError

if TYPE_CHECKING:
    from supabase import Client

    from creatorpulse.collectors.apify.client import ApifyScraperClient
    from creatorpulse.collectors.brightdata.client import BrightDataClient
    from creatorpulse.collectors.normalization.pipeline import ContentNormalizer
    from creatorpulse.collectors.rss.fetcher import FeedFetcher
    from creatorpulse.core.rate_limiter import RateLimiter
    from creatorpulse.queue import QueueOrchestrator
    from creatorpulse.services.creator_refresh import CreatorRefreshService
    from creatorpulse.services.deduplication import ContentDeduplicator
    from creatorpulse.services.relevancy import RelevancyJudge, RelevancyProcessor
    from creatorpulse.services.snapshot_poller import SnapshotPoller
    from creatorpulse.store import ContentStore, CreatorStore, SnapshotStore
    from creatorpulse.store.tables import ContentTable, CreatorTable, SnapshotTable

logger = structlog.get_logger(__name__)


class DependencyContainer:
    """
    Central container for all service dependencies.

    Services are created on first access and cached. The queue orchestrator
    and rate limiter need a connection, so they are built in initialize().
    Any dependency can be supplied up front, which is how tests swap in
    in-memory tables and fake clients.

    Example:
        container = DependencyContainer()
        await container.initialize()

        store = container.content_store
        summary = await container.relevancy_processor.process_relevancy_checks()

        await container.shutdown()
    """

    def __init__(self, settings: Settings | None = None, **overrides: Any):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
            **overrides: Prebuilt dependencies keyed by property name
                (content_table, orchestrator, brightdata_client, judge, ...).
        """
        self._settings = settings or get_settings()
        self._instances: dict[str, Any] = dict(overrides)
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    def _get(self, name: str, factory: Any) -> Any:
        if name not in self._instances:
            try:
                self._instances[name] = factory()
            except (ConfigurationError, InitializationError):
                raise
            except Exception as e:
                logger.error(f"{name}_creation_failed", error=str(e))
                raise InitializationError(name, f"Failed to create {name}: {e}") from e
            logger.info(f"{name}_created")
        return self._instances[name]

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    @property
    def has_supabase(self) -> bool:
        return bool(self._settings.supabase_url and self._settings.supabase_key)

    @property
    def supabase(self) -> "Client":
        """
        Get Supabase client (lazy initialization).

        Raises:
            ConfigurationError: If Supabase is not configured.
        """

        def build() -> "Client":
            if not self.has_supabase:
                raise ConfigurationError("Supabase is not configured", "supabase_url")
            from creatorpulse.store.supabase_tables import create_supabase_client

            return create_supabase_client(
                self._settings.supabase_url,
                self._settings.supabase_key.get_secret_value(),
            )

        return self._get("supabase", build)

    def _table(self, name: str, supabase_cls: str, memory_cls: str) -> Any:
        def build() -> Any:
            if self.has_supabase:
                from creatorpulse.store import supabase_tables

                return getattr(supabase_tables, supabase_cls)(self.supabase)
            if self._settings.is_production:
                raise ConfigurationError("Supabase is required in production", "supabase_url")
            from creatorpulse.store import tables

            logger.warning("table_using_in_memory_backend", table=name)
            return getattr(tables, memory_cls)()

        return self._get(name, build)

    @property
    def content_table(self) -> "ContentTable":
        return self._table("content_table", "SupabaseContentTable", "InMemoryContentTable")

    @property
    def snapshot_table(self) -> "SnapshotTable":
        return self._table("snapshot_table", "SupabaseSnapshotTable", "InMemorySnapshotTable")

    @property
    def creator_table(self) -> "CreatorTable":
        return self._table("creator_table", "SupabaseCreatorTable", "InMemoryCreatorTable")

    @property
    def creator_store(self) -> "CreatorStore":
        from creatorpulse.store import CreatorStore

        return self._get("creator_store", lambda: CreatorStore(self.creator_table))

    @property
    def content_store(self) -> "ContentStore":
        """Content store with the creator ownership check enabled."""
        from creatorpulse.store import ContentStore

        return self._get(
            "content_store",
            lambda: ContentStore(self.content_table, self.creator_store.exists),
        )

    @property
    def snapshot_store(self) -> "SnapshotStore":
        from creatorpulse.store import SnapshotStore

        return self._get("snapshot_store", lambda: SnapshotStore(self.snapshot_table))

    # -------------------------------------------------------------------------
    # Queue & resilience
    # -------------------------------------------------------------------------

    @property
    def orchestrator(self) -> "QueueOrchestrator":
        """
        Get the queue orchestrator.

        Raises:
            RuntimeError: If accessed before initialize().
        """
        if "orchestrator" not in self._instances:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._instances["orchestrator"]

    @property
    def rate_limiter(self) -> "RateLimiter":
        if "rate_limiter" not in self._instances:
            raise RuntimeError("Container not initialized. Call initialize() first.")
        return self._instances["rate_limiter"]

    # -------------------------------------------------------------------------
    # Collectors
    # -------------------------------------------------------------------------

    @property
    def normalizer(self) -> "ContentNormalizer":
        from creatorpulse.collectors.normalization import get_normalizer

        return self._get("normalizer", get_normalizer)

    @property
    def feed_fetcher(self) -> "FeedFetcher":
        from creatorpulse.collectors.rss.fetcher import FeedFetcher

        return self._get(
            "feed_fetcher",
            lambda: FeedFetcher(
                timeout=self._settings.feed_timeout_seconds,
                max_items=self._settings.feed_max_items,
            ),
        )

    @property
    def has_brightdata(self) -> bool:
        return "brightdata_client" in self._instances or bool(self._settings.brightdata_api_key)

    @property
    def brightdata_client(self) -> "BrightDataClient":
        """
        Get BrightData client (lazy initialization).

        Raises:
            ConfigurationError: If the API key is missing.
        """
        from creatorpulse.collectors.brightdata.client import BrightDataClient

        return self._get(
            "brightdata_client",
            lambda: BrightDataClient(settings=self._settings, rate_limiter=self.rate_limiter),
        )

    @property
    def apify_client(self) -> "ApifyScraperClient | None":
        """Apify client, or None when no token is configured."""
        if "apify_client" not in self._instances and not self._settings.apify_api_token:
            return None
        from creatorpulse.collectors.apify.client import ApifyScraperClient

        return self._get("apify_client", lambda: ApifyScraperClient(settings=self._settings))

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    @property
    def snapshot_poller(self) -> "SnapshotPoller":
        from creatorpulse.services.snapshot_poller import SnapshotPoller

        return self._get(
            "snapshot_poller",
            lambda: SnapshotPoller(
                snapshots=self.snapshot_store,
                contents=self.content_store,
                orchestrator=self.orchestrator,
                client=self.brightdata_client,
                normalizer=self.normalizer,
            ),
        )

    @property
    def creator_refresh(self) -> "CreatorRefreshService":
        from creatorpulse.services.creator_refresh import CreatorRefreshService

        return self._get(
            "creator_refresh",
            lambda: CreatorRefreshService(
                creators=self.creator_store,
                contents=self.content_store,
                orchestrator=self.orchestrator,
                fetcher=self.feed_fetcher,
                normalizer=self.normalizer,
                apify=self.apify_client,
                poller=self.snapshot_poller if self.has_brightdata else None,
                max_items=self._settings.feed_max_items,
            ),
        )

    @property
    def has_judge(self) -> bool:
        return "judge" in self._instances or bool(self._settings.openai_api_key)

    @property
    def judge(self) -> "RelevancyJudge":
        """
        Get the relevancy judge.

        Raises:
            ConfigurationError: If the OpenAI key is missing.
        """

        def build() -> "RelevancyJudge":
            if not self._settings.openai_api_key:
                raise ConfigurationError("OpenAI API key not configured", "openai_api_key")
            from creatorpulse.services.relevancy import OpenAIRelevancyJudge

            return OpenAIRelevancyJudge(
                api_key=self._settings.openai_api_key.get_secret_value(),
                theme=self._settings.relevancy_theme,
                model=self._settings.relevancy_model,
            )

        return self._get("judge", build)

    @property
    def relevancy_processor(self) -> "RelevancyProcessor":
        from creatorpulse.services.relevancy import RelevancyProcessor

        return self._get(
            "relevancy_processor",
            lambda: RelevancyProcessor(
                contents=self.content_store,
                judge=self.judge,
                window_days=self._settings.relevancy_window_days,
                concurrency=self._settings.relevancy_concurrency,
                threshold=self._settings.relevancy_threshold,
            ),
        )

    @property
    def content_deduplicator(self) -> "ContentDeduplicator":
        from creatorpulse.services.deduplication import ContentDeduplicator

        return self._get(
            "content_deduplicator",
            lambda: ContentDeduplicator(
                contents=self.content_store,
                similarity_threshold=self._settings.dedup_similarity_threshold,
                similarity_window_days=self._settings.dedup_window_days,
            ),
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Connect the queue backend and rate limiter.

        Raises:
            InitializationError: If the queue backend cannot be reached.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing")

        try:
            if "rate_limiter" not in self._instances:
                from creatorpulse.core.rate_limiter import get_rate_limiter

                self._instances["rate_limiter"] = await get_rate_limiter(self._settings)

            if "orchestrator" not in self._instances:
                from creatorpulse.queue import create_orchestrator

                self._instances["orchestrator"] = await create_orchestrator(self._settings)

            self._initialized = True
            logger.info("container_initialized")

        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "DependencyContainer",
                f"Failed to initialize dependencies: {e}",
            ) from e

    async def shutdown(self) -> None:
        """
        Shutdown all services gracefully.

        Call this at application shutdown.
        """
        logger.info("container_shutting_down")

        for name, closer in (
            ("orchestrator", "close"),
            ("brightdata_client", "close"),
            ("rate_limiter", "disconnect"),
        ):
            instance = self._instances.get(name)
            if instance is None or not hasattr(instance, closer):
                continue
            try:
                await getattr(instance, closer)()
                logger.info(f"{name}_closed")
            except Exception as e:
                logger.error(f"{name}_close_error", error=str(e))

        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """
    Get the global container instance.

    Creates one if it doesn't exist. Prefer passing container
    explicitly for better testability.

    Returns:
        Global DependencyContainer instance.
    """
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


def set_container(container: DependencyContainer | None) -> None:
    """Replace the global container (for testing)."""
    global _container
    _container = container


async def initialize_container() -> DependencyContainer:
    """
    Initialize and return the global container.

    Convenience function for application startup.
    """
    container = get_container()
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """
    Shutdown the global container.

    Convenience function for application shutdown.
    """
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
