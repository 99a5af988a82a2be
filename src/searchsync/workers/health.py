"""
Health check server for the sync worker.
"""

import contextlib
from typing import Dict, Any, Iterator

from fastapi import FastAPI
from uvicorn import Config, Server

from searchsync.platform.logging import get_logger

logger = get_logger(__name__)


class HealthServer(Server):
    """uvicorn server that leaves signal handling to the worker manager."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def create_health_app(manager: Any) -> FastAPI:
    """Create FastAPI application for health checks."""
    app = FastAPI(title="searchsync Worker Health", version=manager.settings.VERSION)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        """Health check endpoint."""
        checks = {}
        is_healthy = True

        # Check MongoDB
        if manager.source_store:
            try:
                source_healthy = await manager.source_store.health_check()
                checks["mongodb"] = "healthy" if source_healthy else "unhealthy"
                if not source_healthy:
                    is_healthy = False
            except Exception as e:
                checks["mongodb"] = f"error: {str(e)}"
                is_healthy = False
        else:
            checks["mongodb"] = "unknown"

        # Check Meilisearch
        if manager.search_store:
            try:
                search_healthy = await manager.search_store.health_check()
                checks["meilisearch"] = "healthy" if search_healthy else "unhealthy"
                if not search_healthy:
                    is_healthy = False
            except Exception as e:
                checks["meilisearch"] = f"error: {str(e)}"
                is_healthy = False
        else:
            checks["meilisearch"] = "unknown"

        # Pipelines that are not streaming are loading or waiting to restart
        pipelines = manager.supervisor.status() if manager.supervisor else []
        if any(p["state"] == "restarting" for p in pipelines):
            is_healthy = False

        return {
            "status": "alive" if is_healthy else "degraded",
            "version": manager.settings.VERSION,
            "checks": checks,
            "pipelines": pipelines,
        }

    return app


def create_health_server(manager: Any, port: int | None = None) -> HealthServer:
    """
    Build a lightweight HTTP server for health checks.

    Args:
        manager: The WorkerManager instance holding the adapters and supervisor.
        port: Port to listen on (defaults to settings.WORKER_HEALTH_PORT).
    """
    app = create_health_app(manager)

    listen_port = port or manager.settings.WORKER_HEALTH_PORT
    logger.info("health_server_configured", port=listen_port)

    config = Config(
        app=app,
        host="0.0.0.0",
        port=listen_port,
        log_level="error",  # Keep logs quiet
        loop="asyncio",
    )
    return HealthServer(config)
