"""
Task directory: the per-user task operations.

Every operation receives the caller's user id from the authentication layer
and trusts it. Task ownership is checked against the caller's reference list
before any mutation.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .errors import StoreError, TaskNotFoundError, UserNotFoundError
from .models import Priority, TaskEntity, UserEntity
from .repositories import DocumentStore, TaskMatch
from .schemas import TaskCreate, TaskUpdate
from .utils import calendar_date

logger = logging.getLogger(__name__)


class TaskDirectory:
    """Task queries and mutations over an injected document store."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ---- users ----

    def register_user(self, username: str) -> UserEntity:
        user = self.store.insert_user(username)
        logger.info("user registered", extra={"user_id": user["id"]})
        return user

    def get_user(self, user_id: str) -> UserEntity:
        user = self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _require_owned(self, user_id: str, task_id: str) -> UserEntity:
        user = self.get_user(user_id)
        if task_id not in user["tasks"]:
            raise TaskNotFoundError(task_id)
        return user

    # ---- mutations ----

    def create(self, user_id: str, data: TaskCreate) -> TaskEntity:
        """
        Insert the task, then append its id to the caller. If the append
        fails the inserted task is removed again.
        """
        task = self.store.insert_task(
            {
                "title": data.title,
                "desc": data.desc,
                "priority": data.priority or Priority.MEDIUM,
                "deadline": data.deadline,
            }
        )
        try:
            pushed = self.store.push_task_ref(user_id, task["id"])
        except StoreError:
            self._discard_orphan(user_id, task["id"])
            raise
        if not pushed:
            self._discard_orphan(user_id, task["id"])
            raise UserNotFoundError(user_id)
        logger.info("task created", extra={"user_id": user_id, "task_id": task["id"]})
        return task

    def _discard_orphan(self, user_id: str, task_id: str) -> None:
        extra = {"user_id": user_id, "task_id": task_id}
        try:
            self.store.delete_task(task_id)
        except StoreError:
            logger.error("could not remove orphaned task", extra=extra)
            raise
        logger.warning("removed task that could not be linked to its owner", extra=extra)

    def delete(self, user_id: str, task_id: str) -> None:
        """
        Remove the task and the caller's reference to it. Ids that exist
        nowhere are a no-op; ids owned by another user are not found.
        """
        user = self.get_user(user_id)
        extra = {"user_id": user_id, "task_id": task_id}
        if task_id not in user["tasks"]:
            if self.store.get_task(task_id) is not None:
                raise TaskNotFoundError(task_id)
            logger.info("delete of unknown task ignored", extra=extra)
            return

        self.store.pull_task_ref(user_id, task_id)
        try:
            self.store.delete_task(task_id)
        except StoreError:
            # Put the reference back so the task is not orphaned
            self.store.push_task_ref(user_id, task_id)
            raise
        logger.info("task deleted", extra=extra)

    def replace(self, user_id: str, task_id: str, data: TaskCreate) -> TaskEntity:
        """Overwrite title, desc, priority and deadline; omitted desc is cleared."""
        self._require_owned(user_id, task_id)
        updated = self.store.update_task(
            task_id,
            {
                "title": data.title,
                "desc": data.desc,
                "priority": data.priority or Priority.MEDIUM,
                "deadline": data.deadline,
            },
        )
        if updated is None:
            raise TaskNotFoundError(task_id)
        logger.info("task replaced", extra={"user_id": user_id, "task_id": task_id})
        return updated

    def patch(self, user_id: str, task_id: str, data: TaskUpdate) -> TaskEntity:
        """Change only the fields present in the request."""
        self._require_owned(user_id, task_id)
        updated = self.store.update_task(task_id, data.changes())
        if updated is None:
            raise TaskNotFoundError(task_id)
        logger.info("task patched", extra={"user_id": user_id, "task_id": task_id})
        return updated

    def toggle_important(self, user_id: str, task_id: str) -> bool:
        return self._toggle(user_id, task_id, "important")

    def toggle_complete(self, user_id: str, task_id: str) -> bool:
        return self._toggle(user_id, task_id, "complete")

    def _toggle(self, user_id: str, task_id: str, field: str) -> bool:
        self._require_owned(user_id, task_id)
        value = self.store.flip_task_flag(task_id, field)
        if value is None:
            raise TaskNotFoundError(task_id)
        logger.info("task %s set to %s", field, value, extra={"user_id": user_id, "task_id": task_id})
        return value

    # ---- queries ----

    def _find(self, user_id: str, match: Optional[TaskMatch] = None) -> List[TaskEntity]:
        tasks = self.store.find_user_tasks(user_id, match)
        if tasks is None:
            raise UserNotFoundError(user_id)
        return tasks

    def list_all(
        self,
        user_id: str,
        query: Optional[str] = None,
        priority: Optional[Priority] = None,
        deadline: Optional[datetime] = None,
    ) -> List[TaskEntity]:
        """
        All of the caller's tasks, newest first, narrowed by each filter given:
        - query: case-insensitive substring of the title
        - priority: exact match
        - deadline: same local calendar date, time of day ignored
        """
        tasks = self._find(user_id)

        if query:
            needle = query.lower()
            tasks = [t for t in tasks if needle in t["title"].lower()]

        if priority:
            tasks = [t for t in tasks if t["priority"] == priority]

        if deadline is not None:
            target = calendar_date(deadline)
            tasks = [t for t in tasks if t["deadline"] is not None and calendar_date(t["deadline"]) == target]

        return tasks

    def list_important(self, user_id: str) -> List[TaskEntity]:
        return self._find(user_id, TaskMatch(important=True))

    def list_complete(self, user_id: str) -> List[TaskEntity]:
        return self._find(user_id, TaskMatch(complete=True))

    def list_incomplete(self, user_id: str) -> List[TaskEntity]:
        return self._find(user_id, TaskMatch(complete=False))

    def search(self, user_id: str, query: str) -> List[TaskEntity]:
        """Tasks whose title or desc contains `query`, ignoring case."""
        return self._find(user_id, TaskMatch(text=query))
