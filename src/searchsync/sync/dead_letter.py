"""
Dead-letter sink for index writes that exhausted their retries.

Every dead letter is logged. When a path is configured it is also appended
to a JSONL file so the writes can be replayed by hand.
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from searchsync.platform.logging import get_logger

logger = get_logger(__name__)


class DeadLetterSink:
    """Records failed writes; safe for concurrent use from many tasks."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._lock = asyncio.Lock()
        self._count = 0
        if path is not None:
            path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def count(self) -> int:
        return self._count

    async def record(
        self,
        index: str,
        operation: str,
        payload: Dict[str, Any],
        error: BaseException,
        attempts: int,
    ) -> None:
        """Record one failed write."""
        entry = {
            "index": index,
            "operation": operation,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "attempts": attempts,
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "payload": payload,
        }
        async with self._lock:
            if self.path is not None:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")
            self._count += 1

        logger.error(
            "index_write_dead_lettered",
            index=index,
            operation=operation,
            attempts=attempts,
            error=str(error),
        )
