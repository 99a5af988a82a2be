from .base import ChangeFeed, SourceStore
from .mongodb import MongoSourceStore

__all__ = ["ChangeFeed", "SourceStore", "MongoSourceStore"]
