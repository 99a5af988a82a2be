"""
Change Capture Listener - mirrors change feed events into the index.

State machine: ATTACHING -> STREAMING -> (ERROR | CLOSED).

Each event is handed to a KeyedDispatcher keyed by record id, so writes for
the same record are applied in arrival order while different records proceed
concurrently. A failed write is contained at the event boundary; a broken
feed raises ChangeFeedError for the supervisor to handle.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError

from searchsync.platform.logging import get_logger
from searchsync.storage.source.base import ChangeFeed, SourceStore
from searchsync.sync.config import SyncConfig
from searchsync.sync.dispatcher import KeyedDispatcher
from searchsync.sync.errors import ChangeFeedError, IndexWriteError
from searchsync.sync.events import WATCHED_OPERATIONS, ChangeEvent, OperationType
from searchsync.sync.writer import IndexWriter

logger = get_logger(__name__)


class ListenerState(str, Enum):
    """Lifecycle of a listener instance."""

    CREATED = "created"
    ATTACHING = "attaching"
    STREAMING = "streaming"
    ERROR = "error"
    CLOSED = "closed"


class ChangeStreamListener:
    """
    One attachment to the change feed of one collection.

    A listener is single-use: after it reaches ERROR or CLOSED a new instance
    must be created to attach again.
    """

    def __init__(
        self,
        config: SyncConfig,
        source: SourceStore,
        writer: IndexWriter,
        max_concurrency: int = 16,
        max_pending: int = 1000,
    ):
        self.config = config
        self.source = source
        self.writer = writer
        self.dispatcher = KeyedDispatcher(
            max_concurrency=max_concurrency,
            max_pending=max_pending,
            name=f"listener-{config.collection}",
        )
        self.state = ListenerState.CREATED
        self.events_received = 0
        self.events_applied = 0
        self.events_failed = 0
        self._feed: Optional[ChangeFeed] = None

    async def run(self) -> None:
        """
        Attach to the feed and stream until closed.

        Returns normally only after close()/abort(). Any feed failure, including
        the feed ending on its own, raises ChangeFeedError.
        """
        if self.state is not ListenerState.CREATED:
            raise RuntimeError(f"listener for '{self.config.collection}' already used")

        collection = self.config.collection
        self.state = ListenerState.ATTACHING
        logger.info("change_stream_attaching", collection=collection)
        try:
            self._feed = await self.source.watch(collection, WATCHED_OPERATIONS)
        except Exception as e:
            self.state = ListenerState.ERROR
            raise ChangeFeedError(collection, str(e)) from e

        if self.state is ListenerState.CLOSED:
            # closed while attaching
            await self._close_feed()
            return

        self.state = ListenerState.STREAMING
        logger.info("change_stream_streaming", collection=collection, index=self.config.index)
        try:
            async for raw in self._feed:
                await self._dispatch(raw)
        except Exception as e:
            if self.state is ListenerState.CLOSED:
                return
            self.state = ListenerState.ERROR
            raise ChangeFeedError(collection, str(e)) from e
        finally:
            await self._close_feed()

        if self.state is not ListenerState.CLOSED:
            self.state = ListenerState.ERROR
            raise ChangeFeedError(collection, "change feed ended unexpectedly")

    async def close(self) -> None:
        """Tear down: close the feed and cancel in-flight writes, waiting for them to unwind."""
        self.state = ListenerState.CLOSED
        await self._close_feed()
        await self.dispatcher.close()

    def abort(self) -> None:
        """Shutdown path: cancel in-flight writes without waiting for them."""
        self.state = ListenerState.CLOSED
        self.dispatcher.abort()

    async def _close_feed(self) -> None:
        feed, self._feed = self._feed, None
        if feed is None:
            return
        try:
            await feed.close()
        except Exception as e:
            logger.warning(
                "change_stream_close_failed", collection=self.config.collection, error=str(e)
            )

    async def _dispatch(self, raw: Dict[str, Any]) -> None:
        self.events_received += 1
        try:
            event = ChangeEvent.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "change_event_ignored",
                collection=self.config.collection,
                operation=raw.get("operationType"),
                error=str(e),
            )
            return

        await self.dispatcher.submit(event.record_id, lambda: self._apply(event))

    async def _apply(self, event: ChangeEvent) -> None:
        """Apply one event to the index; failures are logged, never raised."""
        collection = self.config.collection
        doc_id = event.record_id
        try:
            if event.is_delete:
                await self.writer.delete_by_id(doc_id)
                logger.info("change_applied", collection=collection, op="delete", doc_id=doc_id)
            elif event.full_document is None:
                # record deleted before the lookup ran; its delete event follows
                logger.info(
                    "change_event_dropped",
                    collection=collection,
                    op=event.operation_type.value,
                    doc_id=doc_id,
                    reason="missing_full_document",
                )
                return
            else:
                document = self.config.apply_transform(event.full_document)
                if document is None:
                    logger.debug(
                        "change_event_skipped",
                        collection=collection,
                        op=event.operation_type.value,
                        doc_id=doc_id,
                    )
                    return
                await self.writer.upsert_one(
                    document, update=event.operation_type is OperationType.UPDATE
                )
                logger.info(
                    "change_applied",
                    collection=collection,
                    op=event.operation_type.value,
                    doc_id=doc_id,
                )
            self.events_applied += 1
        except IndexWriteError as e:
            self.events_failed += 1
            logger.error(
                "change_write_failed",
                collection=collection,
                op=event.operation_type.value,
                doc_id=doc_id,
                error=str(e),
            )
        except Exception as e:
            self.events_failed += 1
            logger.error(
                "change_apply_failed",
                collection=collection,
                op=event.operation_type.value,
                doc_id=doc_id,
                error=str(e),
                exc_info=True,
            )
