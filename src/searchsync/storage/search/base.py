"""
Search Storage interface (Full-Text Search engine).
"""
from typing import List, Dict, Any, Optional
from abc import ABC, abstractmethod


class SearchStore(ABC):
    """Abstract interface for the search engine operations the sync engine needs.

    Write methods return the engine task id when the engine processes writes
    asynchronously, or None when the write is applied synchronously.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connection."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if reachable."""
        pass

    @abstractmethod
    async def get_index(self, name: str) -> Optional[Dict[str, Any]]:
        """Return index metadata, or None when the index does not exist."""
        pass

    @abstractmethod
    async def create_index(self, name: str, primary_key: str = "id") -> Optional[int]:
        """Create a new index."""
        pass

    @abstractmethod
    async def update_settings(self, name: str, settings: Dict[str, Any]) -> Optional[int]:
        """Apply index settings."""
        pass

    @abstractmethod
    async def add_documents(
        self, index: str, documents: List[Dict[str, Any]], primary_key: str = "id"
    ) -> Optional[int]:
        """Add documents, replacing any existing document with the same id."""
        pass

    @abstractmethod
    async def update_documents(
        self, index: str, documents: List[Dict[str, Any]], primary_key: str = "id"
    ) -> Optional[int]:
        """Add documents, merging fields into any existing document with the same id."""
        pass

    @abstractmethod
    async def delete_document(self, index: str, doc_id: str) -> Optional[int]:
        """Delete a document by id. Deleting an absent id is not an error."""
        pass

    @abstractmethod
    async def delete_documents(self, index: str, doc_ids: List[str]) -> Optional[int]:
        """Delete documents by ID."""
        pass

    @abstractmethod
    async def list_document_ids(
        self, index: str, primary_key: str = "id", offset: int = 0, limit: int = 1000
    ) -> List[str]:
        """List one page of the ids stored in an index."""
        pass

    @abstractmethod
    async def get_document(self, index: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a document by id, or None when absent."""
        pass

    @abstractmethod
    async def wait_for_task(self, task_uid: int, timeout: float = 30.0) -> Dict[str, Any]:
        """Wait until an engine task finishes and return its final state."""
        pass
