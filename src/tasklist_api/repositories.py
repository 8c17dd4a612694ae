from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional

from .models import FLAG_FIELDS, Priority, TaskEntity, UserEntity
from .settings import Settings, get_settings

# Task fields update_task may overwrite; id and created_at are immutable.
UPDATABLE_FIELDS = frozenset({"title", "desc", "priority", "deadline", "important", "complete"})


@dataclass(frozen=True)
class TaskMatch:
    """
    Store-level match applied while expanding a user's task references.
    Unset fields do not constrain. `text` matches title OR desc,
    case-insensitive substring.
    """
    important: Optional[bool] = None
    complete: Optional[bool] = None
    text: Optional[str] = None

    def matches(self, task: Mapping[str, Any]) -> bool:
        if self.important is not None and task["important"] != self.important:
            return False
        if self.complete is not None and task["complete"] != self.complete:
            return False
        if self.text:
            needle = self.text.lower()
            title_ok = needle in (task["title"] or "").lower()
            desc_ok = needle in (task["desc"] or "").lower()
            return title_ok or desc_ok
        return True


def new_id() -> str:
    return uuid.uuid4().hex


def newest_first(tasks: List[TaskEntity]) -> List[TaskEntity]:
    """Sort by created_at descending; equal timestamps fall back to id."""
    return sorted(tasks, key=lambda t: (t["created_at"], t["id"]), reverse=True)


# PUBLIC_INTERFACE
class DocumentStore(ABC):
    """Abstract document store holding users and tasks."""

    backend_name = "abstract"

    @abstractmethod
    def insert_user(self, username: str) -> UserEntity:
        """Create and return a user with an empty task reference list."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None if not found."""

    @abstractmethod
    def insert_task(self, fields: Mapping[str, Any]) -> TaskEntity:
        """Create a task from title/desc/priority/deadline; flags start False."""

    @abstractmethod
    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        """Return a task by id, or None if not found."""

    @abstractmethod
    def update_task(self, task_id: str, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        """Overwrite the given fields. Return the updated task or None if not found."""

    @abstractmethod
    def delete_task(self, task_id: str) -> bool:
        """Delete a task by id. Return True if deleted, False if not found."""

    @abstractmethod
    def flip_task_flag(self, task_id: str, field: str) -> Optional[bool]:
        """Atomically negate a boolean field. Return the new value or None if not found."""

    @abstractmethod
    def push_task_ref(self, user_id: str, task_id: str) -> bool:
        """Append a task id to the user's references. False if the user is missing."""

    @abstractmethod
    def pull_task_ref(self, user_id: str, task_id: str) -> bool:
        """Remove a task id from the user's references. False if the user is missing."""

    @abstractmethod
    def find_user_tasks(self, user_id: str, match: Optional[TaskMatch] = None) -> Optional[List[TaskEntity]]:
        """
        Expand the user's task references, keep those satisfying `match`, and
        return them newest first. None if the user is missing.
        """


def check_updatable_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"fields cannot be updated: {sorted(unknown)}")


def check_flag_field(field: str) -> None:
    if field not in FLAG_FIELDS:
        raise ValueError(f"{field!r} is not a boolean task flag")


class InMemoryDocumentStore(DocumentStore):
    """
    Thread-safe in-memory store suitable for testing and default runtime.
    """

    backend_name = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._lock = RLock()
        self._users: Dict[str, UserEntity] = {}
        self._tasks: Dict[str, TaskEntity] = {}
        self._clock = clock or datetime.now

    def _now(self) -> datetime:
        return self._clock()

    def insert_user(self, username: str) -> UserEntity:
        user: UserEntity = {
            "id": new_id(),
            "username": username,
            "tasks": [],
            "created_at": self._now(),
        }
        with self._lock:
            self._users[user["id"]] = user
            return {**user, "tasks": list(user["tasks"])}

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._users.get(user_id)
            return None if user is None else {**user, "tasks": list(user["tasks"])}

    def insert_task(self, fields: Mapping[str, Any]) -> TaskEntity:
        task: TaskEntity = {
            "id": new_id(),
            "title": fields["title"],
            "desc": fields.get("desc"),
            "priority": Priority(fields.get("priority") or Priority.MEDIUM),
            "deadline": fields.get("deadline"),
            "important": False,
            "complete": False,
            "created_at": self._now(),
        }
        with self._lock:
            self._tasks[task["id"]] = task
            return task.copy()

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock:
            task = self._tasks.get(task_id)
            return None if task is None else task.copy()

    def update_task(self, task_id: str, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        check_updatable_fields(fields)
        with self._lock:
            existing = self._tasks.get(task_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update(fields)  # type: ignore[typeddict-item]
            updated["priority"] = Priority(updated["priority"])
            self._tasks[task_id] = updated
            return updated.copy()

    def delete_task(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    def flip_task_flag(self, task_id: str, field: str) -> Optional[bool]:
        check_flag_field(field)
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                return None
            task[field] = not task[field]  # type: ignore[literal-required]
            return task[field]  # type: ignore[literal-required]

    def push_task_ref(self, user_id: str, task_id: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user["tasks"].append(task_id)
            return True

    def pull_task_ref(self, user_id: str, task_id: str) -> bool:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return False
            user["tasks"] = [t for t in user["tasks"] if t != task_id]
            return True

    def find_user_tasks(self, user_id: str, match: Optional[TaskMatch] = None) -> Optional[List[TaskEntity]]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            # References whose task is gone are skipped, like a populate would
            tasks = [self._tasks[t].copy() for t in user["tasks"] if t in self._tasks]
        if match is not None:
            tasks = [t for t in tasks if match.matches(t)]
        return newest_first(tasks)


# PUBLIC_INTERFACE
def build_store(settings: Optional[Settings] = None) -> DocumentStore:
    """
    Return the configured document store based on settings.
    - memory: InMemoryDocumentStore
    - sqlite: SQLiteDocumentStore (standard library sqlite3)
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteDocumentStore

        return SQLiteDocumentStore(settings.sqlite_db_path)
    return InMemoryDocumentStore()
