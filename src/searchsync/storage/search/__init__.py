from .base import SearchStore
from .meilisearch import MeiliSearchStore

__all__ = ["SearchStore", "MeiliSearchStore"]
