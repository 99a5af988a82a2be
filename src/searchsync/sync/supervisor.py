"""
Supervisor - one restartable sync pipeline per collection.

A pipeline run is: prepare index -> bulk load -> attach listener -> stream.
When any step fails the listener is torn down, and after a fixed delay a
brand-new bulk pass and listener replace it. The bulk pass repairs whatever
the feed missed while it was down.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional

from searchsync.platform.logging import get_logger
from searchsync.storage.search.base import SearchStore
from searchsync.storage.source.base import SourceStore
from searchsync.sync.config import SyncConfig
from searchsync.sync.dead_letter import DeadLetterSink
from searchsync.sync.listener import ChangeStreamListener
from searchsync.sync.loader import BulkLoader
from searchsync.sync.writer import IndexWriter

logger = get_logger(__name__)

DEFAULT_RESTART_DELAY = 10.0


class PipelineState(str, Enum):
    """Where a collection pipeline currently is."""

    STARTING = "starting"
    PREPARING = "preparing"
    BULK_LOADING = "bulk_loading"
    STREAMING = "streaming"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class CollectionSync:
    """
    Supervised sync pipeline for a single collection.

    Args:
        config: Collection configuration
        source: Source store adapter
        writer: Index writer bound to ``config.index``
        restart_delay: Seconds between a failure and the next pipeline run
        max_concurrency: Concurrent index writes per listener
        max_pending: Queued change events per listener before backpressure
        prune_stale: Delete index documents the bulk pass did not produce
    """

    def __init__(
        self,
        config: SyncConfig,
        source: SourceStore,
        writer: IndexWriter,
        restart_delay: float = DEFAULT_RESTART_DELAY,
        max_concurrency: int = 16,
        max_pending: int = 1000,
        prune_stale: bool = True,
    ):
        self.config = config
        self.source = source
        self.writer = writer
        self.loader = BulkLoader(source, writer, prune_stale=prune_stale)
        self.restart_delay = restart_delay
        self.max_concurrency = max_concurrency
        self.max_pending = max_pending

        self.state = PipelineState.STARTING
        self.runs = 0
        self.restarts = 0
        self.last_bulk_count: Optional[int] = None
        self.last_error: Optional[str] = None
        self._listener: Optional[ChangeStreamListener] = None

    @property
    def listener(self) -> Optional[ChangeStreamListener]:
        return self._listener

    async def run(self) -> None:
        """Run the pipeline forever, restarting it after every failure."""
        collection = self.config.collection
        try:
            while True:
                try:
                    await self._run_once()
                    logger.info("pipeline_listener_closed", collection=collection)
                    return
                except Exception as e:
                    self.last_error = f"{type(e).__name__}: {e}"
                    logger.error(
                        "pipeline_failed",
                        collection=collection,
                        state=self.state.value,
                        error=str(e),
                    )

                await self._teardown_listener()
                self.state = PipelineState.RESTARTING
                self.restarts += 1
                logger.info(
                    "pipeline_restart_scheduled",
                    collection=collection,
                    delay_seconds=self.restart_delay,
                    restarts=self.restarts,
                )
                await asyncio.sleep(self.restart_delay)
        except asyncio.CancelledError:
            # Shutdown: in-flight writes are abandoned, the next start repairs them
            self._abort_listener()
            raise
        finally:
            self.state = PipelineState.STOPPED

    async def _run_once(self) -> None:
        config = self.config
        self.runs += 1

        self.state = PipelineState.PREPARING
        await self.writer.prepare(config.settings)

        self.state = PipelineState.BULK_LOADING
        self.last_bulk_count = await self.loader.load_all(config)

        listener = self._attach_listener()
        self.state = PipelineState.STREAMING
        await listener.run()

    def _attach_listener(self) -> ChangeStreamListener:
        if self._listener is not None:
            raise RuntimeError(
                f"a listener is still attached for '{self.config.collection}'"
            )
        self._listener = ChangeStreamListener(
            self.config,
            self.source,
            self.writer,
            max_concurrency=self.max_concurrency,
            max_pending=self.max_pending,
        )
        return self._listener

    async def _teardown_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            await listener.close()

    def _abort_listener(self) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.abort()

    def status(self) -> Dict[str, Any]:
        listener = self._listener
        return {
            "collection": self.config.collection,
            "index": self.config.index,
            "state": self.state.value,
            "runs": self.runs,
            "restarts": self.restarts,
            "last_bulk_count": self.last_bulk_count,
            "last_error": self.last_error,
            "listener": listener.state.value if listener else None,
            "events_applied": listener.events_applied if listener else 0,
            "events_failed": listener.events_failed if listener else 0,
        }


class SyncSupervisor:
    """Owns one CollectionSync task per configured collection."""

    def __init__(self, pipelines: List[CollectionSync]):
        self.pipelines = pipelines
        self._tasks: Dict[str, asyncio.Task] = {}

    @classmethod
    def build(
        cls,
        configs: List[SyncConfig],
        source: SourceStore,
        search: SearchStore,
        settings,
        dead_letter: Optional[DeadLetterSink] = None,
    ) -> "SyncSupervisor":
        """Wire writers and pipelines for every configuration from process settings."""
        dead_letter = dead_letter or DeadLetterSink(settings.SYNC_DEAD_LETTER_PATH)
        pipelines = []
        for config in configs:
            writer = IndexWriter(
                search,
                config.index,
                primary_key=config.primary_key,
                dead_letter=dead_letter,
                max_retries=settings.SYNC_WRITE_MAX_RETRIES,
                retry_delay=settings.SYNC_WRITE_RETRY_DELAY_SECONDS,
                max_retry_delay=settings.SYNC_WRITE_MAX_RETRY_DELAY_SECONDS,
                wait_for_tasks=settings.MEILISEARCH_WAIT_FOR_TASKS,
                task_timeout=settings.MEILISEARCH_TASK_TIMEOUT_SECONDS,
            )
            pipelines.append(
                CollectionSync(
                    config,
                    source,
                    writer,
                    restart_delay=settings.SYNC_RESTART_DELAY_SECONDS,
                    max_concurrency=settings.SYNC_MAX_CONCURRENT_WRITES,
                    max_pending=settings.SYNC_MAX_PENDING_EVENTS,
                    prune_stale=settings.SYNC_PRUNE_STALE_DOCUMENTS,
                )
            )
        return cls(pipelines)

    def start(self) -> None:
        """Start every pipeline as an independent task."""
        for pipeline in self.pipelines:
            name = pipeline.config.collection
            if name in self._tasks:
                raise RuntimeError(f"pipeline for '{name}' already started")
            task = asyncio.create_task(pipeline.run(), name=f"sync-{name}")
            task.add_done_callback(self._on_pipeline_done)
            self._tasks[name] = task
            logger.info("pipeline_started", collection=name, index=pipeline.config.index)

    def _on_pipeline_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("pipeline_crashed", task=task.get_name(), error=str(error))

    async def stop(self) -> None:
        """Cancel every pipeline; in-flight index writes are not drained."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("supervisor_stopped", pipelines=len(tasks))

    def status(self) -> List[Dict[str, Any]]:
        return [pipeline.status() for pipeline in self.pipelines]
