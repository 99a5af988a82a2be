"""
In-memory stand-ins for the source store and the search engine.
"""

import asyncio
import copy
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from searchsync.storage.search.base import SearchStore
from searchsync.storage.source.base import SourceStore

_END = object()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class FakeChangeFeed:
    """Change feed fed by the test through push()/fail()/end()."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, change: Dict[str, Any]) -> None:
        self._queue.put_nowait(change)

    def fail(self, error: BaseException) -> None:
        self._queue.put_nowait(error)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def __aiter__(self) -> "FakeChangeFeed":
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END or self.closed:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_END)


class InMemorySourceStore(SourceStore):
    """Collections held in lists; mutations are echoed to the open feed."""

    def __init__(self) -> None:
        self.collections: Dict[str, List[Dict[str, Any]]] = {}
        self.page_reads: List[Dict[str, Any]] = []
        self.feeds: Dict[str, List[FakeChangeFeed]] = {}
        self.watch_error: Optional[BaseException] = None
        self.connected = False
        self.connect_error: Optional[BaseException] = None
        self.after_page: Optional[Callable[[Dict[str, Any]], None]] = None
        self.id_lookups: List[List[str]] = []

    async def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def health_check(self) -> bool:
        return self.connected

    async def find_page(self, collection: str, skip: int, limit: int) -> List[Dict[str, Any]]:
        records = self.collections.get(collection, [])[skip:skip + limit]
        read = {"skip": skip, "limit": limit, "count": len(records)}
        self.page_reads.append(read)
        records = copy.deepcopy(records)
        if self.after_page:
            self.after_page(read)
        return records

    async def find_by_ids(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
        self.id_lookups.append(list(ids))
        wanted = set(ids)
        return [
            copy.deepcopy(r) for r in self.collections.get(collection, []) if str(r["_id"]) in wanted
        ]

    async def watch(self, collection: str, operation_types: Sequence[str]) -> FakeChangeFeed:
        if self.watch_error:
            raise self.watch_error
        feed = FakeChangeFeed()
        self.feeds.setdefault(collection, []).append(feed)
        return feed

    def open_feed(self, collection: str) -> Optional[FakeChangeFeed]:
        for feed in reversed(self.feeds.get(collection, [])):
            if not feed.closed:
                return feed
        return None

    def _emit(self, collection: str, change: Dict[str, Any]) -> None:
        feed = self.open_feed(collection)
        if feed is not None:
            feed.push(change)

    def seed(self, collection: str, records: List[Dict[str, Any]]) -> None:
        self.collections[collection] = copy.deepcopy(records)

    def insert(self, collection: str, record: Dict[str, Any]) -> None:
        self.collections.setdefault(collection, []).append(copy.deepcopy(record))
        self._emit(collection, {
            "operationType": "insert",
            "documentKey": {"_id": record["_id"]},
            "fullDocument": copy.deepcopy(record),
        })

    def update(self, collection: str, record_id: Any, **fields: Any) -> None:
        for record in self.collections.get(collection, []):
            if record["_id"] == record_id:
                record.update(fields)
                self._emit(collection, {
                    "operationType": "update",
                    "documentKey": {"_id": record_id},
                    "fullDocument": copy.deepcopy(record),
                })
                return
        raise KeyError(record_id)

    def delete(self, collection: str, record_id: Any) -> None:
        records = self.collections.get(collection, [])
        self.collections[collection] = [r for r in records if r["_id"] != record_id]
        self._emit(collection, {"operationType": "delete", "documentKey": {"_id": record_id}})


class InMemorySearchStore(SearchStore):
    """Applies writes synchronously; supports failure and latency injection."""

    def __init__(self) -> None:
        self.indexes: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.failures: Dict[str, List[BaseException]] = {}
        self.before_write: Optional[Callable[[str, List[Dict[str, Any]]], Awaitable[None]]] = None
        self.healthy = True
        self._task_uid = 0

    def fail_next(self, operation: str, error: BaseException, times: int = 1) -> None:
        self.failures.setdefault(operation, []).extend([error] * times)

    def _maybe_fail(self, operation: str) -> None:
        pending = self.failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _next_task(self) -> int:
        self._task_uid += 1
        return self._task_uid

    def docs(self, index: str) -> Dict[str, Dict[str, Any]]:
        return self.indexes.get(index, {}).get("docs", {})

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return self.healthy

    async def get_index(self, name: str) -> Optional[Dict[str, Any]]:
        index = self.indexes.get(name)
        if index is None:
            return None
        return {"uid": name, "primaryKey": index["primary_key"]}

    async def create_index(self, name: str, primary_key: str = "id") -> Optional[int]:
        self.calls.append(("create_index", name))
        self.indexes.setdefault(name, {"primary_key": primary_key, "settings": {}, "docs": {}})
        return self._next_task()

    async def update_settings(self, name: str, settings: Dict[str, Any]) -> Optional[int]:
        self.calls.append(("update_settings", name))
        self.indexes[name]["settings"] = copy.deepcopy(settings)
        return self._next_task()

    async def _write(self, operation: str, index: str, documents, primary_key: str, merge: bool):
        self.calls.append((operation, index, [d[primary_key] for d in documents]))
        if self.before_write:
            await self.before_write(operation, documents)
        self._maybe_fail(operation)
        target = self.indexes.setdefault(
            index, {"primary_key": primary_key, "settings": {}, "docs": {}}
        )["docs"]
        for doc in documents:
            doc_id = str(doc[primary_key])
            if merge and doc_id in target:
                target[doc_id].update(copy.deepcopy(doc))
            else:
                target[doc_id] = copy.deepcopy(doc)
        return self._next_task()

    async def add_documents(self, index, documents, primary_key="id") -> Optional[int]:
        return await self._write("add_documents", index, documents, primary_key, merge=False)

    async def update_documents(self, index, documents, primary_key="id") -> Optional[int]:
        return await self._write("update_documents", index, documents, primary_key, merge=True)

    async def delete_document(self, index: str, doc_id: str) -> Optional[int]:
        self.calls.append(("delete_document", index, doc_id))
        if self.before_write:
            await self.before_write("delete_document", [{"id": doc_id}])
        self._maybe_fail("delete_document")
        self.docs(index).pop(doc_id, None)
        return self._next_task()

    async def delete_documents(self, index: str, doc_ids: List[str]) -> Optional[int]:
        self.calls.append(("delete_documents", index, list(doc_ids)))
        self._maybe_fail("delete_documents")
        docs = self.docs(index)
        for doc_id in doc_ids:
            docs.pop(doc_id, None)
        return self._next_task()

    async def list_document_ids(
        self, index: str, primary_key: str = "id", offset: int = 0, limit: int = 1000
    ) -> List[str]:
        return list(self.docs(index))[offset:offset + limit]

    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self.docs(index).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def wait_for_task(self, task_uid: int, timeout: float = 30.0) -> Dict[str, Any]:
        return {"taskUid": task_uid, "status": "succeeded"}
