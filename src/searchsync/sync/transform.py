"""
Helpers for writing record -> document transforms.

Transforms must be pure, total and deterministic. These helpers never raise:
absent or malformed values collapse to None or an empty list.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, List, Optional


def record_id(record: dict, field: str = "_id") -> str:
    """Stable string form of a record's unique identifier."""
    return str(record.get(field))


def ref_to_str(value: Any) -> Optional[str]:
    """Coerce a reference to another entity into its string identifier."""
    if value is None or value == "":
        return None
    return str(value)


def refs_to_str_list(value: Any) -> List[str]:
    """Map an array of references element-wise to string identifiers."""
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def to_timestamp_ms(value: Any) -> Optional[int]:
    """
    Convert a date-like value into a sortable epoch timestamp (milliseconds).

    Naive datetimes are taken as UTC, which is how the MongoDB driver returns
    them. Unparsable or non-finite values yield None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, int):
        return value
    elif isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        return int(moment.timestamp() * 1000)
    except (OverflowError, ValueError, OSError):
        return None
