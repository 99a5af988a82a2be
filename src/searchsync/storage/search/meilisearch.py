import asyncio
from typing import List, Dict, Any, Optional
import structlog
import httpx

from searchsync.storage.search.base import SearchStore
from searchsync.sync.errors import IndexTaskFailedError

logger = structlog.get_logger()

_FINISHED_TASK_STATUSES = frozenset({"succeeded", "failed", "canceled"})


class MeiliSearchStore(SearchStore):
    """Meilisearch implementation of SearchStore using httpx for async."""

    def __init__(self, url: str, api_key: str = "", timeout: float = 10.0):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self.client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings) -> "MeiliSearchStore":
        return cls(
            url=settings.MEILISEARCH_HOST,
            api_key=settings.MEILISEARCH_API_KEY,
            timeout=settings.MEILISEARCH_TIMEOUT_SECONDS,
        )

    async def connect(self) -> None:
        if not self.client:
            headers = {}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self.client = httpx.AsyncClient(
                base_url=self._url,
                headers=headers,
                timeout=self._timeout,
            )

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def _ensure_connected(self):
        if not self.client:
            await self.connect()

    @staticmethod
    def _task_uid(resp: httpx.Response) -> Optional[int]:
        return resp.json().get("taskUid")

    async def health_check(self) -> bool:
        await self._ensure_connected()
        try:
            resp = await self.client.get("/health")
            return resp.status_code == 200 and resp.json().get("status") == "available"
        except Exception as e:
            logger.error("meilisearch_health_check_failed", error=str(e))
            return False

    async def get_index(self, name: str) -> Optional[Dict[str, Any]]:
        await self._ensure_connected()
        resp = await self.client.get(f"/indexes/{name}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def create_index(self, name: str, primary_key: str = "id") -> Optional[int]:
        await self._ensure_connected()
        try:
            payload = {"uid": name, "primaryKey": primary_key}
            resp = await self.client.post("/indexes", json=payload)
            resp.raise_for_status()
            logger.info("created_meilisearch_index", index=name)
            return self._task_uid(resp)
        except Exception as e:
            logger.error("create_index_failed", index=name, error=str(e))
            raise

    async def update_settings(self, name: str, settings: Dict[str, Any]) -> Optional[int]:
        await self._ensure_connected()
        try:
            resp = await self.client.patch(f"/indexes/{name}/settings", json=settings)
            resp.raise_for_status()
            return self._task_uid(resp)
        except Exception as e:
            logger.error("update_settings_failed", index=name, error=str(e))
            raise

    async def _write_documents(
        self, method: str, index: str, documents: List[Dict[str, Any]], primary_key: str
    ) -> Optional[int]:
        await self._ensure_connected()
        if not documents:
            return None
        resp = await self.client.request(
            method,
            f"/indexes/{index}/documents",
            params={"primaryKey": primary_key},
            json=documents,
        )
        resp.raise_for_status()
        task_uid = self._task_uid(resp)
        logger.debug("indexed_documents", index=index, count=len(documents), task_uid=task_uid)
        return task_uid

    async def add_documents(
        self, index: str, documents: List[Dict[str, Any]], primary_key: str = "id"
    ) -> Optional[int]:
        try:
            return await self._write_documents("POST", index, documents, primary_key)
        except Exception as e:
            logger.error("add_documents_failed", index=index, error=str(e))
            raise

    async def update_documents(
        self, index: str, documents: List[Dict[str, Any]], primary_key: str = "id"
    ) -> Optional[int]:
        try:
            return await self._write_documents("PUT", index, documents, primary_key)
        except Exception as e:
            logger.error("update_documents_failed", index=index, error=str(e))
            raise

    async def delete_document(self, index: str, doc_id: str) -> Optional[int]:
        await self._ensure_connected()
        try:
            resp = await self.client.delete(f"/indexes/{index}/documents/{doc_id}")
            if resp.status_code == 404:
                # No index means no document to delete
                return None
            resp.raise_for_status()
            task_uid = self._task_uid(resp)
            logger.debug("deleted_document", index=index, doc_id=doc_id, task_uid=task_uid)
            return task_uid
        except Exception as e:
            logger.error("delete_document_failed", index=index, error=str(e))
            raise

    async def delete_documents(self, index: str, doc_ids: List[str]) -> Optional[int]:
        await self._ensure_connected()
        if not doc_ids:
            return None
        try:
            resp = await self.client.post(f"/indexes/{index}/documents/delete-batch", json=doc_ids)
            resp.raise_for_status()
            task_uid = self._task_uid(resp)
            logger.debug("deleted_documents", index=index, count=len(doc_ids), task_uid=task_uid)
            return task_uid
        except Exception as e:
            logger.error("delete_documents_failed", index=index, error=str(e))
            raise

    async def list_document_ids(
        self, index: str, primary_key: str = "id", offset: int = 0, limit: int = 1000
    ) -> List[str]:
        await self._ensure_connected()
        resp = await self.client.get(
            f"/indexes/{index}/documents",
            params={"offset": offset, "limit": limit, "fields": primary_key},
        )
        if resp.status_code == 404:
            return []
        resp.raise_for_status()
        return [str(doc[primary_key]) for doc in resp.json().get("results", [])]

    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        await self._ensure_connected()
        resp = await self.client.get(f"/indexes/{index}/documents/{doc_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def wait_for_task(
        self, task_uid: int, timeout: float = 30.0, interval: float = 0.05
    ) -> Dict[str, Any]:
        """
        Poll a task until it finishes.

        Raises:
            IndexTaskFailedError: task failed or was canceled
            asyncio.TimeoutError: task still pending after ``timeout`` seconds
        """
        await self._ensure_connected()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            resp = await self.client.get(f"/tasks/{task_uid}")
            resp.raise_for_status()
            task = resp.json()
            status = task.get("status")
            if status in _FINISHED_TASK_STATUSES:
                if status != "succeeded":
                    raise IndexTaskFailedError(task_uid, status, task.get("error"))
                return task
            if loop.time() >= deadline:
                raise asyncio.TimeoutError(f"task {task_uid} still '{status}' after {timeout}s")
            await asyncio.sleep(interval)
