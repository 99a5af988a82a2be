"""
searchsync Worker Entry Point

Connects to MongoDB and Meilisearch, then runs one sync pipeline per
configured collection until interrupted.

Usage:
    python -m searchsync.workers.main

Exit codes:
    0 - interrupted (SIGINT/SIGTERM) and shut down
    1 - invalid configuration, or a service unreachable at startup
"""

import asyncio
import signal
import sys
from typing import List, Optional

from searchsync.platform.config import Settings, get_settings
from searchsync.platform.logging import configure_logging, get_logger
from searchsync.storage.search.base import SearchStore
from searchsync.storage.search.meilisearch import MeiliSearchStore
from searchsync.storage.source.base import SourceStore
from searchsync.storage.source.mongodb import MongoSourceStore
from searchsync.sync.config import SyncConfig, load_collections
from searchsync.sync.errors import ConfigurationError, StartupConnectionError
from searchsync.sync.supervisor import SyncSupervisor
from searchsync.workers.health import create_health_server

logger = get_logger(__name__)


class WorkerManager:
    """Manages the lifecycle of the sync supervisor and its connections."""

    def __init__(
        self,
        settings: Settings,
        configs: List[SyncConfig],
        source_store: Optional[SourceStore] = None,
        search_store: Optional[SearchStore] = None,
    ):
        self.settings = settings
        self.configs = configs
        self.source_store = source_store or MongoSourceStore.from_settings(settings)
        self.search_store = search_store or MeiliSearchStore.from_settings(settings)
        self.supervisor: Optional[SyncSupervisor] = None
        self.health_server = None
        self._health_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()
        self._shutting_down = False

    async def connect(self) -> None:
        """Connect both external services or raise StartupConnectionError."""
        logger.info("connecting_to_mongodb")
        try:
            await self.source_store.connect()
        except Exception as e:
            raise StartupConnectionError(f"cannot connect to MongoDB: {e}") from e
        logger.info("connected_to_mongodb")

        try:
            await self.search_store.connect()
            healthy = await self.search_store.health_check()
        except Exception as e:
            raise StartupConnectionError(f"cannot connect to Meilisearch: {e}") from e
        if not healthy:
            raise StartupConnectionError("Meilisearch is not available")
        logger.info("connected_to_meilisearch")

    async def start(self) -> None:
        """Connect, start every pipeline and run until shutdown."""
        await self.connect()
        if self._shutting_down:
            # Interrupted while connecting: shutdown closed the stores before
            # the connection finished opening
            await self._shutdown_event.wait()
            await self._close_stores()
            logger.info("startup_interrupted")
            return

        self.supervisor = SyncSupervisor.build(
            self.configs, self.source_store, self.search_store, self.settings
        )

        if self.settings.WORKER_HEALTH_ENABLED:
            self.health_server = create_health_server(self)
            self._health_task = asyncio.create_task(
                self.health_server.serve(), name="health-check-server"
            )

        self.supervisor.start()
        logger.info("workers_started", collections=[c.collection for c in self.configs])

        # Keep running until shutdown
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Signal-handler entry point."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self.shutdown(), name="shutdown")

    async def shutdown(self) -> None:
        """Stop pipelines and close connections; in-flight writes are not awaited."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("workers_stopping")

        if self.supervisor:
            await self.supervisor.stop()

        if self.health_server and self._health_task:
            self.health_server.should_exit = True
            try:
                await self._health_task
            except Exception as e:
                logger.error("health_server_stop_failed", error=str(e))

        await self._close_stores()

        self._shutdown_event.set()
        logger.info("workers_stopped")

    async def _close_stores(self) -> None:
        try:
            await self.source_store.close()
        except Exception as e:
            logger.error("mongodb_close_failed", error=str(e))
        try:
            await self.search_store.close()
        except Exception as e:
            logger.error("meilisearch_close_failed", error=str(e))


async def main() -> int:
    """Main entry point; returns the process exit code."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, settings.APP_ENV, service=settings.APP_NAME)

    # Validate every collection before touching the network
    try:
        configs = load_collections(settings.SYNC_COLLECTIONS)
    except ConfigurationError as e:
        logger.error("invalid_configuration", error=str(e))
        return 1

    manager = WorkerManager(settings, configs)

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, manager.request_shutdown)

    try:
        await manager.start()
    except StartupConnectionError as e:
        logger.error("startup_failed", error=str(e))
        await manager.shutdown()
        return 1
    except Exception as e:
        logger.error("worker_failed", error=str(e), exc_info=True)
        await manager.shutdown()
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
