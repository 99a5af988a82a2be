"""
Bulk Loader - paginated full-collection scan into the index.

Offset pagination can skip or repeat a few records when the collection is
mutated during the scan; the change listener attached afterwards restores
convergence. After the scan, index documents whose ids the scan did not
produce are checked against the source and pruned when the record is gone
or now skipped.
"""

from typing import Set

from searchsync.platform.logging import get_logger
from searchsync.storage.source.base import SourceStore
from searchsync.sync.config import SyncConfig
from searchsync.sync.writer import IndexWriter

logger = get_logger(__name__)

PRUNE_BATCH_SIZE = 1000


class BulkLoader:
    """Drains a source collection page by page through the transform."""

    def __init__(self, source: SourceStore, writer: IndexWriter, prune_stale: bool = True):
        self.source = source
        self.writer = writer
        self.prune_stale = prune_stale

    async def load_all(self, config: SyncConfig) -> int:
        """
        Load every record of ``config.collection`` into the index.

        Returns:
            Number of documents written (skipped records excluded)
        """
        page_size = config.page_size
        logger.info(
            "bulk_load_started",
            collection=config.collection,
            index=config.index,
            page_size=page_size,
        )

        total = 0
        offset = 0
        seen: Set[str] = set()
        while True:
            records = await self.source.find_page(config.collection, skip=offset, limit=page_size)
            if not records:
                break

            documents = []
            for record in records:
                document = config.apply_transform(record)
                if document is not None:
                    documents.append(document)

            if documents:
                await self.writer.upsert_batch(documents)
                total += len(documents)
                seen.update(str(doc[config.primary_key]) for doc in documents)
                logger.info(
                    "bulk_load_progress",
                    collection=config.collection,
                    loaded=total,
                    offset=offset,
                )

            # A short page is the last one
            if len(records) < page_size:
                break
            offset += page_size

        logger.info(
            "bulk_load_completed",
            collection=config.collection,
            index=config.index,
            total=total,
        )

        if self.prune_stale:
            await self._prune(config, seen)
        return total

    async def _prune(self, config: SyncConfig, seen: Set[str]) -> int:
        """
        Remove index documents the source no longer produces.

        An id the scan did not see is only a candidate: a concurrent delete
        shifts the offset window, so a live record can be missed. Candidates
        are re-read from the source; live ones are rewritten, the rest deleted.
        """
        candidates = [doc_id for doc_id in await self.writer.stored_ids() if doc_id not in seen]
        pruned = 0
        restored = 0
        for start in range(0, len(candidates), PRUNE_BATCH_SIZE):
            batch = candidates[start:start + PRUNE_BATCH_SIZE]
            live = {}
            for record in await self.source.find_by_ids(config.collection, batch):
                document = config.apply_transform(record)
                if document is not None:
                    live[str(document[config.primary_key])] = document

            if live:
                await self.writer.upsert_batch(list(live.values()))
                restored += len(live)
            stale = [doc_id for doc_id in batch if doc_id not in live]
            await self.writer.delete_many(stale)
            pruned += len(stale)

        if candidates:
            logger.info(
                "bulk_load_pruned",
                collection=config.collection,
                index=config.index,
                pruned=pruned,
                restored=restored,
            )
        return pruned
