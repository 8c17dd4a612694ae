from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, TypedDict


class Priority(str, Enum):
    """Allowed task priorities."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Boolean task fields that may be flipped in place by the store.
FLAG_FIELDS = frozenset({"important", "complete"})


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A task document as held by the document store.

    Fields:
    - id: Opaque unique identifier (hex string)
    - title: Short title, required
    - desc: Optional free text
    - priority: One of Priority's values
    - deadline: Due datetime; only its calendar date matters for filtering
    - important: Boolean flag, default False
    - complete: Boolean flag, default False
    - created_at: Creation timestamp, immutable, the listing sort key
    """

    id: str
    title: str
    desc: Optional[str]
    priority: Priority
    deadline: Optional[datetime]
    important: bool
    complete: bool
    created_at: datetime


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    A user document. `tasks` holds the ids of the tasks the user owns, in
    insertion order; it does not define display order.
    """

    id: str
    username: str
    tasks: List[str]
    created_at: datetime
