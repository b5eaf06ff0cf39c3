"""Dependency Injection Container

Purpose: Builds the investigation engine's object graph from settings

Core Responsibilities:
- Singleton container with explicit async initialization
- Constructor injection of every collaborator, no module-level registries
- Ordered shutdown: workers, tool providers, HTTP sessions, queue

Key Components:
- Infrastructure layer: Redis (or in-memory) queue and store, tool provider
  registry, completion client
- Core layer: agent catalog, runner, dispatcher, hypothesis loop, engine,
  worker pool
"""

import logging
from typing import Optional

from investigator.config.settings import InvestigatorSettings, StorageBackend, get_settings
from investigator.core.agent.definitions import AgentCatalog, ModelRegistry
from investigator.core.agent.runner import AgentRunner
from investigator.core.orchestrator.delivery import CallbackNotifier
from investigator.core.orchestrator.dispatcher import Dispatcher
from investigator.core.orchestrator.engine import OrchestratorEngine
from investigator.core.orchestrator.hypothesis_loop import HypothesisLoop
from investigator.core.orchestrator.worker import WorkerPool
from investigator.models.interfaces import ICompletionClient, IInvestigationStore, IJobQueue, IToolRegistry

logger = logging.getLogger(__name__)


class InvestigatorContainer:
    """Singleton container for the engine's components"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
            cls._instance.settings = None
        return cls._instance

    async def initialize(
        self,
        settings: Optional[InvestigatorSettings] = None,
        tool_registry: Optional[IToolRegistry] = None,
        completion_client: Optional[ICompletionClient] = None,
    ) -> None:
        """Build every component. Calling again after success is a no-op.

        ``tool_registry`` and ``completion_client`` replace the configured
        implementations when given.
        """
        if self._initialized:
            logger.debug("Container already initialized, skipping")
            return

        self.settings = settings or get_settings()
        logger.info("Initializing investigator container")

        self._create_infrastructure_layer(tool_registry, completion_client)
        self._create_core_layer()

        self._initialized = True
        logger.info(
            f"Container initialized (storage={self.settings.queue.backend.value}, "
            f"providers={len(self.tool_registry.list_providers())}, "
            f"workers={self.settings.engine.worker_concurrency})"
        )

    def _create_infrastructure_layer(
        self,
        tool_registry: Optional[IToolRegistry],
        completion_client: Optional[ICompletionClient],
    ) -> None:
        settings = self.settings

        self.redis_client = None
        if settings.queue.backend is StorageBackend.REDIS:
            from investigator.infrastructure.persistence.redis_investigation_store import RedisInvestigationStore
            from investigator.infrastructure.queue.redis_job_queue import RedisJobQueue
            from investigator.infrastructure.redis_client import create_redis_client

            self.redis_client = create_redis_client(settings.queue.redis_url)
            self.store: IInvestigationStore = RedisInvestigationStore(self.redis_client)
            self.job_queue: IJobQueue = RedisJobQueue(
                self.redis_client,
                queue_name=settings.queue.queue_name,
                dedup_ttl_seconds=settings.queue.dedup_ttl_seconds,
            )
        else:
            from investigator.infrastructure.persistence.inmemory_investigation_store import (
                InMemoryInvestigationStore,
            )
            from investigator.infrastructure.queue.inmemory_job_queue import InMemoryJobQueue

            self.store = InMemoryInvestigationStore()
            self.job_queue = InMemoryJobQueue()

        if tool_registry is None:
            from investigator.infrastructure.tools.registry import ToolProviderRegistry
            tool_registry = ToolProviderRegistry.from_settings(settings.tool_providers)
        self.tool_registry: IToolRegistry = tool_registry

        if completion_client is None:
            from investigator.infrastructure.llm.anthropic_client import AnthropicCompletionClient
            completion_client = AnthropicCompletionClient(settings.llm)
            if not completion_client.is_available():
                logger.warning("No Anthropic API key configured; completion calls will be rejected")
        self.completion_client: ICompletionClient = completion_client

    def _create_core_layer(self) -> None:
        engine_settings = self.settings.engine

        self.agent_catalog = AgentCatalog(
            agents_dir=engine_settings.agents_dir,
            skills_dir=engine_settings.skills_dir,
        )
        self.model_registry = ModelRegistry(self.settings.llm)
        self.agent_runner = AgentRunner(
            self.completion_client,
            self.tool_registry,
            self.agent_catalog,
            self.model_registry,
            max_iterations=engine_settings.agent_max_iterations,
            max_tokens=engine_settings.agent_max_tokens,
        )
        self.dispatcher = Dispatcher(self.agent_runner, self.store)
        self.hypothesis_loop = HypothesisLoop(
            self.dispatcher,
            self.store,
            confidence_threshold=engine_settings.hypothesis_confidence_threshold,
            max_iterations=engine_settings.hypothesis_max_iterations,
        )
        self.engine = OrchestratorEngine(
            self.dispatcher,
            self.hypothesis_loop,
            self.store,
            notifier=CallbackNotifier(timeout_seconds=engine_settings.callback_timeout_seconds),
            gather_agents=engine_settings.gather_agents,
            report_summary_chars=engine_settings.report_summary_chars,
            report_url_template=engine_settings.report_url_template,
        )
        self.worker_pool = WorkerPool(
            self.job_queue,
            self.engine,
            concurrency=engine_settings.worker_concurrency,
            poll_timeout=self.settings.queue.poll_timeout_seconds,
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("InvestigatorContainer.initialize() has not been awaited")

    def get_settings(self) -> InvestigatorSettings:
        self._require_initialized()
        return self.settings

    def get_engine(self) -> OrchestratorEngine:
        self._require_initialized()
        return self.engine

    def get_worker_pool(self) -> WorkerPool:
        self._require_initialized()
        return self.worker_pool

    def get_job_queue(self) -> IJobQueue:
        self._require_initialized()
        return self.job_queue

    def get_store(self) -> IInvestigationStore:
        self._require_initialized()
        return self.store

    def get_tool_registry(self) -> IToolRegistry:
        self._require_initialized()
        return self.tool_registry

    async def shutdown(self, graceful: bool = True) -> None:
        """Stop workers, then release providers, HTTP sessions and the queue."""
        if not self._initialized:
            return

        await self.worker_pool.stop(graceful=graceful)

        disconnect_all = getattr(self.tool_registry, "disconnect_all", None)
        if disconnect_all is not None:
            await disconnect_all()

        close_client = getattr(self.completion_client, "close", None)
        if close_client is not None:
            await close_client()

        await self.job_queue.close()
        self._initialized = False
        logger.info("Container shut down")

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (primarily for testing)."""
        cls._instance = None


container = InvestigatorContainer()
