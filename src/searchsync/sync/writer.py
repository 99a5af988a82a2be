"""
Index Writer - idempotent upsert/delete-by-id against one search index.

Upserts are full-document writes keyed by id, so replaying one any number of
times converges to the last applied value, and deleting an absent id is a
no-op. The writer does not order calls for the same id against each other;
that is the caller's job (see KeyedDispatcher).
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from searchsync.platform.logging import get_logger
from searchsync.storage.search.base import SearchStore
from searchsync.sync.config import IndexSettings, SearchDocument
from searchsync.sync.dead_letter import DeadLetterSink
from searchsync.sync.errors import IndexWriteError

logger = get_logger(__name__)


class IndexWriter:
    """
    Writes documents into one index with bounded retry and a dead-letter path.

    Args:
        store: Search engine adapter (shared across writers)
        index: Target index name
        primary_key: Primary key field of the documents
        dead_letter: Sink for writes that exhaust their retries
        max_retries: Retries after the first attempt (0 = single attempt)
        retry_delay: First backoff in seconds, doubled on every retry
        max_retry_delay: Backoff ceiling in seconds
        wait_for_tasks: Wait for the engine task and treat task failure as a failed attempt
        task_timeout: Seconds to wait for an engine task
    """

    def __init__(
        self,
        store: SearchStore,
        index: str,
        primary_key: str = "id",
        dead_letter: Optional[DeadLetterSink] = None,
        max_retries: int = 3,
        retry_delay: float = 0.5,
        max_retry_delay: float = 30.0,
        wait_for_tasks: bool = False,
        task_timeout: float = 30.0,
    ):
        self.store = store
        self.index = index
        self.primary_key = primary_key
        self.dead_letter = dead_letter or DeadLetterSink()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.wait_for_tasks = wait_for_tasks
        self.task_timeout = task_timeout

    # ================================================================
    # Index preparation
    # ================================================================

    async def prepare(self, settings: IndexSettings) -> None:
        """Ensure the index exists and apply its settings (idempotent)."""
        if await self.store.get_index(self.index) is not None:
            logger.info("index_exists", index=self.index)
        else:
            logger.info("index_creating", index=self.index, primary_key=self.primary_key)
            task_uid = await self.store.create_index(self.index, primary_key=self.primary_key)
            await self._await_task(task_uid)

        payload = settings.to_payload()
        if payload:
            task_uid = await self.store.update_settings(self.index, payload)
            await self._await_task(task_uid)
        logger.info("index_settings_applied", index=self.index)

    # ================================================================
    # Writes
    # ================================================================

    async def upsert_batch(self, documents: List[SearchDocument]) -> None:
        """Insert-or-replace a batch of documents."""
        if not documents:
            return
        await self._with_retry(
            "upsert_batch",
            lambda: self.store.add_documents(self.index, documents, self.primary_key),
            {"ids": [doc.get(self.primary_key) for doc in documents]},
        )

    async def upsert_one(self, document: SearchDocument, update: bool = False) -> None:
        """
        Write a single document.

        Args:
            document: Full document produced by the transform
            update: Merge into the stored document instead of replacing it
        """
        if update:
            operation = "update_one"
            write = lambda: self.store.update_documents(self.index, [document], self.primary_key)
        else:
            operation = "upsert_one"
            write = lambda: self.store.add_documents(self.index, [document], self.primary_key)
        await self._with_retry(operation, write, {"document": document})

    async def delete_by_id(self, doc_id: str) -> None:
        """Delete a document by id; absent ids are a no-op."""
        await self._with_retry(
            "delete_by_id",
            lambda: self.store.delete_document(self.index, doc_id),
            {"id": doc_id},
        )

    async def delete_many(self, doc_ids: List[str]) -> None:
        """Delete a batch of documents by id; absent ids are a no-op."""
        if not doc_ids:
            return
        await self._with_retry(
            "delete_many",
            lambda: self.store.delete_documents(self.index, doc_ids),
            {"ids": doc_ids},
        )

    async def stored_ids(self, page_size: int = 1000) -> List[str]:
        """Every document id currently held by the index."""
        ids: List[str] = []
        offset = 0
        while True:
            page = await self.store.list_document_ids(
                self.index, self.primary_key, offset=offset, limit=page_size
            )
            ids.extend(page)
            if len(page) < page_size:
                return ids
            offset += page_size

    # ================================================================
    # Retry
    # ================================================================

    async def _await_task(self, task_uid: Optional[int]) -> None:
        if self.wait_for_tasks and task_uid is not None:
            await self.store.wait_for_task(task_uid, timeout=self.task_timeout)

    def _backoff(self, attempt: int) -> float:
        return min(self.retry_delay * (2 ** (attempt - 1)), self.max_retry_delay)

    async def _with_retry(
        self,
        operation: str,
        write: Callable[[], Awaitable[Optional[int]]],
        payload: Dict[str, Any],
    ) -> None:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                task_uid = await write()
                await self._await_task(task_uid)
                return
            except Exception as e:
                if attempt >= attempts:
                    await self.dead_letter.record(self.index, operation, payload, e, attempt)
                    raise IndexWriteError(self.index, operation, attempt, e) from e

                backoff = self._backoff(attempt)
                logger.warning(
                    "index_write_retrying",
                    index=self.index,
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    backoff_seconds=backoff,
                    error=str(e),
                )
                await asyncio.sleep(backoff)
