"""Harvest scheduler service.

This module wires the scheduling components into a long-running service:
- Database engine and periodic configuration store
- HTTP client for the harvester's start interface
- Job executor, scheduler backend and job registry
- Signal handling for graceful shutdown
"""

import asyncio
import logging
import signal
from typing import Optional

import httpx
from sqlalchemy.engine import Engine

from harvest_scheduler.config import HarvestSchedulerConfig
from harvest_scheduler.database import (
    SqlPeriodicConfigStore,
    create_tables,
    get_session_maker,
    init_engine,
)
from harvest_scheduler.scheduler.backend import JobCompletion, SchedulerBackend
from harvest_scheduler.scheduler.job_executor import ExecutionContext, HarvestJobExecutor
from harvest_scheduler.scheduler.job_registry import JobRegistry

logger = logging.getLogger(__name__)


class HarvestSchedulerService:
    """Long-running harvest scheduler.

    The service owns every runtime resource of the scheduler. On start it
    reinstalls the recurring job of each stored periodic configuration, so
    a restarted scheduler resumes from the tenants' ``last_triggered_at``.

    Example:
        service = HarvestSchedulerService(config)

        await service.start()
        service.registry.create_or_update_job(periodic_config, "diku")

        await service.run_until_shutdown()
        await service.stop()
    """

    def __init__(self, config: HarvestSchedulerConfig):
        """Initialize the service.

        Args:
            config: Harvest scheduler configuration
        """
        self._config = config
        self._engine: Optional[Engine] = None
        self._http_client: Optional[httpx.AsyncClient] = None
        self._config_store: Optional[SqlPeriodicConfigStore] = None
        self._backend: Optional[SchedulerBackend] = None
        self._registry: Optional[JobRegistry] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the service.

        Components are created in dependency order:
        1. Database engine, tables and configuration store
        2. HTTP client and job executor
        3. Scheduler backend and job registry
        """
        if self._running:
            logger.warning("Harvest scheduler already running")
            return

        logger.info("Starting harvest scheduler...")

        self._engine = init_engine(self._config)
        create_tables(self._engine)
        self._config_store = SqlPeriodicConfigStore(
            get_session_maker(self._engine), self._config.scheduler.timezone
        )

        self._http_client = httpx.AsyncClient(timeout=self._config.webhook.timeout)
        context = ExecutionContext.from_config(
            self._config.webhook,
            self._http_client,
            self._config_store,
        )
        executor = HarvestJobExecutor(context)

        self._backend = SchedulerBackend(self._config.scheduler, executor)
        self._backend.add_completion_listener(self._log_completion)
        self._registry = JobRegistry(self._backend)
        self._backend.start()

        if self._config.scheduler.restore_on_start:
            await self.restore_jobs()

        self._running = True
        logger.info("Harvest scheduler started successfully")

    async def stop(self) -> None:
        """Stop the service, releasing resources in reverse order."""
        logger.info("Stopping harvest scheduler...")

        self._running = False

        if self._backend:
            try:
                self._backend.shutdown()
            except Exception as e:
                logger.warning(f"Error stopping scheduler backend: {e}")

        if self._http_client:
            try:
                await self._http_client.aclose()
            except Exception as e:
                logger.warning(f"Error closing HTTP client: {e}")
            self._http_client = None

        if self._engine:
            self._engine.dispose()
            self._engine = None

        logger.info("Harvest scheduler stopped")

    async def restore_jobs(self) -> int:
        """Install the recurring job of every stored periodic configuration.

        Returns:
            Number of configurations processed
        """
        if self._config_store is None or self._registry is None:
            raise RuntimeError("Service not started")

        configs = await self._config_store.list_all()
        for tenant_id, periodic_config in configs.items():
            self._registry.create_or_update_job(periodic_config, tenant_id)

        logger.info(f"Restored schedules of {len(configs)} tenants")
        return len(configs)

    async def run_until_shutdown(self) -> None:
        """Block until request_shutdown() is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @staticmethod
    def _log_completion(completion: JobCompletion) -> None:
        result = completion.result
        if result.success:
            logger.debug(f"Tenant: {result.tenant_id}, job {completion.job_key} finished")
        else:
            logger.debug(
                f"Tenant: {result.tenant_id}, job {completion.job_key} failed "
                f"({result.failure_reason.value if result.failure_reason else 'unknown'})"
            )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def config(self) -> HarvestSchedulerConfig:
        return self._config

    @property
    def registry(self) -> Optional[JobRegistry]:
        """The job registry, or None if not started."""
        return self._registry

    @property
    def backend(self) -> Optional[SchedulerBackend]:
        """The scheduler backend, or None if not started."""
        return self._backend

    @property
    def config_store(self) -> Optional[SqlPeriodicConfigStore]:
        """The periodic configuration store, or None if not started."""
        return self._config_store


async def run_service(config: HarvestSchedulerConfig) -> None:
    """Run the harvest scheduler until SIGINT or SIGTERM.

    Args:
        config: Harvest scheduler configuration
    """
    service = HarvestSchedulerService(config)

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        service.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await service.start()
        await service.run_until_shutdown()
    finally:
        await service.stop()
