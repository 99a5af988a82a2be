"""
Source Storage interface (authoritative document collections).
"""
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Protocol, Sequence


class ChangeFeed(Protocol):
    """An open, ordered stream of raw change documents."""

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        ...

    async def close(self) -> None:
        ...


class SourceStore(ABC):
    """Abstract interface for the source store operations the sync engine needs."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection and verify the server is reachable."""
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
    async def find_page(self, collection: str, skip: int, limit: int) -> List[Dict[str, Any]]:
        """Read one page of a collection in natural order."""
        pass

    @abstractmethod
    async def find_by_ids(self, collection: str, ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Read the records whose identifiers, in string form, are in ``ids``."""
        pass

    @abstractmethod
    async def watch(self, collection: str, operation_types: Sequence[str]) -> ChangeFeed:
        """
        Open a change feed for a collection.

        Args:
            collection: Collection name
            operation_types: Operation types to keep (filtered server-side)

        Returns:
            Open change feed; events carry the current full document (lookup)
        """
        pass
