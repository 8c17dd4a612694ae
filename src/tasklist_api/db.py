from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generator, List, Mapping, Optional

from .errors import StoreError
from .models import Priority, TaskEntity, UserEntity
from .repositories import DocumentStore, TaskMatch, check_updatable_fields, check_flag_field, new_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    tasks: str = "tasks"
    users: str = "users"
    refs: str = "user_tasks"
    id: str = "id"
    title: str = "title"
    # "desc" is an SQL keyword
    desc: str = "description"
    priority: str = "priority"
    deadline: str = "deadline"
    important: str = "important"
    complete: str = "complete"
    created_at: str = "created_at"
    username: str = "username"
    user_id: str = "user_id"
    task_id: str = "task_id"


_COLS = _Cols()

_FIELD_TO_COL = {
    "title": _COLS.title,
    "desc": _COLS.desc,
    "priority": _COLS.priority,
    "deadline": _COLS.deadline,
    "important": _COLS.important,
    "complete": _COLS.complete,
}


def _fmt_dt(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat(timespec="microseconds")


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


def _icontains(haystack: Optional[str], needle: Optional[str]) -> int:
    if haystack is None or not needle:
        return 0
    return 1 if needle.lower() in haystack.lower() else 0


def _to_column_value(field: str, value: Any) -> Any:
    if field in ("important", "complete"):
        return 1 if value else 0
    if field == "priority":
        return Priority(value).value
    if field == "deadline":
        return _fmt_dt(value)
    return value


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-backed document store. A user's task references live in their own
    table, ordered by an autoincrement position.
    """

    backend_name = "sqlite"

    def __init__(self, db_path: str, clock: Optional[Callable[[], datetime]] = None) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._clock = clock or datetime.now
        self._init_db()
        logger.info("SQLiteDocumentStore ready db=%s", db_path)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0)
        except sqlite3.Error as e:
            raise StoreError("Task store unavailable", cause=e) from e
        conn.row_factory = sqlite3.Row
        conn.create_function("icontains", 2, _icontains, deterministic=True)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("sqlite operation failed: %s", e)
            raise StoreError("Task store rejected the operation", cause=e) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.users} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.username} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.tasks} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.desc} TEXT NULL,
                    {_COLS.priority} TEXT NOT NULL DEFAULT 'Medium',
                    {_COLS.deadline} TEXT NULL,
                    {_COLS.important} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.complete} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.refs} (
                    position INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.user_id} TEXT NOT NULL,
                    {_COLS.task_id} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.refs}_user ON {_COLS.refs}({_COLS.user_id})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.tasks}_created_at ON {_COLS.tasks}({_COLS.created_at})"
            )

    def _row_to_task(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "desc": row[_COLS.desc],
            "priority": Priority(row[_COLS.priority]),
            "deadline": _parse_dt(row[_COLS.deadline]),
            "important": bool(row[_COLS.important]),
            "complete": bool(row[_COLS.complete]),
            "created_at": _parse_dt(row[_COLS.created_at]),  # type: ignore[typeddict-item]
        }

    def _fetch_task(self, conn: sqlite3.Connection, task_id: str) -> Optional[TaskEntity]:
        row = conn.execute(f"SELECT * FROM {_COLS.tasks} WHERE {_COLS.id} = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def _user_exists(self, conn: sqlite3.Connection, user_id: str) -> bool:
        row = conn.execute(f"SELECT 1 FROM {_COLS.users} WHERE {_COLS.id} = ?", (user_id,)).fetchone()
        return row is not None

    def insert_user(self, username: str) -> UserEntity:
        user_id = new_id()
        now = self._clock()
        with self._conn() as conn:
            conn.execute(
                f"INSERT INTO {_COLS.users} ({_COLS.id}, {_COLS.username}, {_COLS.created_at}) VALUES (?, ?, ?)",
                (user_id, username, _fmt_dt(now)),
            )
        return {"id": user_id, "username": username, "tasks": [], "created_at": now}

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT * FROM {_COLS.users} WHERE {_COLS.id} = ?", (user_id,)).fetchone()
            if row is None:
                return None
            refs = conn.execute(
                f"SELECT {_COLS.task_id} FROM {_COLS.refs} WHERE {_COLS.user_id} = ? ORDER BY position",
                (user_id,),
            ).fetchall()
            return {
                "id": str(row[_COLS.id]),
                "username": str(row[_COLS.username]),
                "tasks": [str(r[_COLS.task_id]) for r in refs],
                "created_at": _parse_dt(row[_COLS.created_at]),  # type: ignore[typeddict-item]
            }

    def insert_task(self, fields: Mapping[str, Any]) -> TaskEntity:
        task_id = new_id()
        priority = Priority(fields.get("priority") or Priority.MEDIUM)
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.tasks} ({_COLS.id}, {_COLS.title}, {_COLS.desc}, {_COLS.priority},
                    {_COLS.deadline}, {_COLS.important}, {_COLS.complete}, {_COLS.created_at})
                VALUES (?, ?, ?, ?, ?, 0, 0, ?)
                """,
                (
                    task_id,
                    fields["title"],
                    fields.get("desc"),
                    priority.value,
                    _fmt_dt(fields.get("deadline")),
                    _fmt_dt(self._clock()),
                ),
            )
            task = self._fetch_task(conn, task_id)
            if task is None:
                raise StoreError("Task store lost a newly inserted task")
            return task

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            return self._fetch_task(conn, task_id)

    def update_task(self, task_id: str, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        check_updatable_fields(fields)
        with self._conn() as conn:
            if fields:
                assignments = ", ".join(f"{_FIELD_TO_COL[f]} = ?" for f in fields)
                params = [_to_column_value(f, v) for f, v in fields.items()]
                cur = conn.execute(
                    f"UPDATE {_COLS.tasks} SET {assignments} WHERE {_COLS.id} = ?",
                    [*params, task_id],
                )
                if cur.rowcount == 0:
                    return None
            return self._fetch_task(conn, task_id)

    def delete_task(self, task_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.tasks} WHERE {_COLS.id} = ?", (task_id,))
            return cur.rowcount > 0

    def flip_task_flag(self, task_id: str, field: str) -> Optional[bool]:
        check_flag_field(field)
        col = _FIELD_TO_COL[field]
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_COLS.tasks} SET {col} = 1 - {col} WHERE {_COLS.id} = ?", (task_id,)
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute(f"SELECT {col} FROM {_COLS.tasks} WHERE {_COLS.id} = ?", (task_id,)).fetchone()
            return bool(row[col])

    def push_task_ref(self, user_id: str, task_id: str) -> bool:
        with self._conn() as conn:
            if not self._user_exists(conn, user_id):
                return False
            conn.execute(
                f"INSERT INTO {_COLS.refs} ({_COLS.user_id}, {_COLS.task_id}) VALUES (?, ?)",
                (user_id, task_id),
            )
            return True

    def pull_task_ref(self, user_id: str, task_id: str) -> bool:
        with self._conn() as conn:
            if not self._user_exists(conn, user_id):
                return False
            conn.execute(
                f"DELETE FROM {_COLS.refs} WHERE {_COLS.user_id} = ? AND {_COLS.task_id} = ?",
                (user_id, task_id),
            )
            return True

    def find_user_tasks(self, user_id: str, match: Optional[TaskMatch] = None) -> Optional[List[TaskEntity]]:
        clauses = [f"r.{_COLS.user_id} = ?"]
        params: list = [user_id]

        if match is not None:
            if match.important is not None:
                clauses.append(f"t.{_COLS.important} = ?")
                params.append(1 if match.important else 0)
            if match.complete is not None:
                clauses.append(f"t.{_COLS.complete} = ?")
                params.append(1 if match.complete else 0)
            if match.text:
                clauses.append(f"(icontains(t.{_COLS.title}, ?) OR icontains(t.{_COLS.desc}, ?))")
                params.extend([match.text, match.text])

        with self._conn() as conn:
            if not self._user_exists(conn, user_id):
                return None
            rows = conn.execute(
                f"""
                SELECT DISTINCT t.* FROM {_COLS.refs} r
                JOIN {_COLS.tasks} t ON t.{_COLS.id} = r.{_COLS.task_id}
                WHERE {' AND '.join(clauses)}
                ORDER BY t.{_COLS.created_at} DESC, t.{_COLS.id} DESC
                """,
                params,
            ).fetchall()
            return [self._row_to_task(r) for r in rows]
