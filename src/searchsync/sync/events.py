"""
Change feed event model.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class OperationType(str, Enum):
    """Mutation kinds the listener subscribes to."""

    INSERT = "insert"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


WATCHED_OPERATIONS = tuple(op.value for op in OperationType)


class ChangeEvent(BaseModel):
    """
    A single mutation read from the change feed.

    ``full_document`` carries the current state of the record (lookup
    semantics), not a diff. It is None for deletes, and also for updates whose
    record was deleted before the lookup ran.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    operation_type: OperationType = Field(alias="operationType")
    document_key: Dict[str, Any] = Field(alias="documentKey")
    full_document: Optional[Dict[str, Any]] = Field(default=None, alias="fullDocument")

    @property
    def record_id(self) -> str:
        """String form of the mutated record's identifier."""
        return str(self.document_key.get("_id"))

    @property
    def is_delete(self) -> bool:
        return self.operation_type is OperationType.DELETE
