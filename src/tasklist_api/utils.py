from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Sequence, Union


# PUBLIC_INTERFACE
def calendar_date(value: datetime) -> date:
    """
    Return the calendar date of `value` in the server's local timezone.
    Naive datetimes are taken to be local already.
    """
    if value.tzinfo is not None:
        value = value.astimezone()
    return value.date()


# PUBLIC_INTERFACE
def list_envelope(items: Union[Sequence[Any], Iterable[Any]]) -> Dict[str, Any]:
    """
    Build the standard envelope for listing endpoints.

    Returns:
        Dict with keys: items, total.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": len(materialized),
    }
