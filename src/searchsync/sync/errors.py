"""
Error taxonomy for the synchronization engine.

A transform declining a record is not an error (it returns None) and an
orderly shutdown is plain task cancellation, so neither appears here.
"""


class SyncError(Exception):
    """Base class for synchronization errors."""


class ConfigurationError(SyncError, ValueError):
    """A collection configuration failed validation at startup."""


class StartupConnectionError(SyncError, ConnectionError):
    """The source store or the search engine is unreachable at launch."""


class ChangeFeedError(SyncError):
    """The change feed broke; the whole pipeline must be restarted."""

    def __init__(self, collection: str, message: str):
        super().__init__(f"change feed for '{collection}' failed: {message}")
        self.collection = collection


class IndexWriteError(SyncError):
    """An index write failed after exhausting its retries."""

    def __init__(self, index: str, operation: str, attempts: int, cause: BaseException):
        super().__init__(
            f"{operation} on index '{index}' failed after {attempts} attempt(s): {cause}"
        )
        self.index = index
        self.operation = operation
        self.attempts = attempts
        self.cause = cause


class IndexTaskFailedError(SyncError):
    """The search engine accepted a write but its task ended in failure."""

    def __init__(self, task_uid: int, status: str, error: object = None):
        super().__init__(f"task {task_uid} ended with status '{status}': {error}")
        self.task_uid = task_uid
        self.status = status
        self.error = error
