"""
searchsync - Keeps a Meilisearch index mirrored from a MongoDB collection.

This package contains:
- sync: Synchronization engine (transform, bulk load, change capture, supervisor)
- storage: Source store (MongoDB) and search engine (Meilisearch) adapters
- collections: Operator-supplied collection configurations
- workers: Process entry point and health server
- platform: Cross-cutting concerns (configuration, logging)
"""

__version__ = "0.1.0"
