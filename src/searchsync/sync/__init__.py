"""searchsync synchronization engine - bulk load plus change capture."""

from .config import IndexSettings, SyncConfig, load_collections
from .dispatcher import KeyedDispatcher
from .errors import (
    ChangeFeedError,
    ConfigurationError,
    IndexTaskFailedError,
    IndexWriteError,
    StartupConnectionError,
    SyncError,
)
from .events import ChangeEvent, OperationType
from .listener import ChangeStreamListener, ListenerState
from .loader import BulkLoader
from .supervisor import CollectionSync, PipelineState, SyncSupervisor
from .writer import IndexWriter

__all__ = [
    # Configuration
    "IndexSettings",
    "SyncConfig",
    "load_collections",
    # Events
    "ChangeEvent",
    "OperationType",
    # Pipeline components
    "BulkLoader",
    "ChangeStreamListener",
    "ListenerState",
    "IndexWriter",
    "KeyedDispatcher",
    "CollectionSync",
    "PipelineState",
    "SyncSupervisor",
    # Errors
    "SyncError",
    "ConfigurationError",
    "StartupConnectionError",
    "ChangeFeedError",
    "IndexWriteError",
    "IndexTaskFailedError",
]
