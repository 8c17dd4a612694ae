from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from ..auth import get_current_user_id
from ..directory import TaskDirectory
from ..models import Priority, TaskEntity
from ..schemas import MessageOut, TaskCreate, TaskListOut, TaskOut, TaskUpdate, parse_deadline
from ..utils import list_envelope

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)

_NOT_FOUND = {404: {"description": "Task or user not found"}}


def get_directory(request: Request) -> TaskDirectory:
    """
    Dependency building a TaskDirectory over the application's store.
    """
    return TaskDirectory(request.app.state.store)


def _envelope(tasks: Iterable[TaskEntity]) -> TaskListOut:
    return TaskListOut(**list_envelope([TaskOut(**t) for t in tasks]))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a task for the caller. Priority defaults to Medium.",
    responses={201: {"description": "Task created"}, **_NOT_FOUND},
)
def create_task(
    payload: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.create(user_id, payload)
    return MessageOut(message="Task Created")


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=TaskListOut,
    summary="List Tasks",
    description=(
        "List the caller's tasks, newest first.\n\n"
        "Query parameters (combined with AND):\n"
        "- query: case-insensitive substring of the title\n"
        "- priority: Low, Medium or High\n"
        "- deadline: ISO8601 date; matches tasks due on that calendar day"
    ),
    responses={400: {"description": "Invalid query parameters"}, **_NOT_FOUND},
)
def list_tasks(
    query: Optional[str] = Query(None, description="Search text for the title"),
    priority: Optional[str] = Query(None, description="Exact priority: Low, Medium or High"),
    deadline: Optional[str] = Query(None, description="Calendar date of the deadline"),
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> TaskListOut:
    wanted: Optional[Priority] = None
    if priority:
        try:
            wanted = Priority(priority)
        except ValueError:
            raise HTTPException(status_code=400, detail="priority must be one of Low, Medium, High") from None
    target: Optional[datetime] = None
    if deadline:
        try:
            target = parse_deadline(deadline)
        except ValueError:
            raise HTTPException(status_code=400, detail="deadline must be an ISO8601 date or datetime") from None
    tasks = directory.list_all(user_id, query=query, priority=wanted, deadline=target)
    return _envelope(tasks)


# PUBLIC_INTERFACE
@router.get(
    "/important",
    response_model=TaskListOut,
    summary="List Important Tasks",
    responses=_NOT_FOUND,
)
def list_important_tasks(
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> TaskListOut:
    return _envelope(directory.list_important(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/complete",
    response_model=TaskListOut,
    summary="List Completed Tasks",
    responses=_NOT_FOUND,
)
def list_complete_tasks(
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> TaskListOut:
    return _envelope(directory.list_complete(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/incomplete",
    response_model=TaskListOut,
    summary="List Incomplete Tasks",
    responses=_NOT_FOUND,
)
def list_incomplete_tasks(
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> TaskListOut:
    return _envelope(directory.list_incomplete(user_id))


# PUBLIC_INTERFACE
@router.get(
    "/search",
    response_model=TaskListOut,
    summary="Search Tasks",
    description="Tasks whose title or description contains the query, ignoring case.",
    responses=_NOT_FOUND,
)
def search_tasks(
    query: str = Query(..., min_length=1, description="Text to look for in title or description"),
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> TaskListOut:
    return _envelope(directory.search(user_id, query))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=MessageOut,
    summary="Replace Task",
    description=(
        "Overwrite title, desc, priority and deadline. Omitted desc is cleared "
        "and omitted priority resets to Medium."
    ),
    responses=_NOT_FOUND,
)
def replace_task(
    task_id: str,
    payload: TaskCreate,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.replace(user_id, task_id, payload)
    return MessageOut(message="Task updated successfully")


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=MessageOut,
    summary="Update Task",
    description="Partially update a task; fields not sent are left untouched.",
    responses=_NOT_FOUND,
)
def patch_task(
    task_id: str,
    payload: TaskUpdate,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.patch(user_id, task_id, payload)
    return MessageOut(message="Task updated successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}/important",
    response_model=MessageOut,
    summary="Toggle Important",
    responses=_NOT_FOUND,
)
def toggle_important(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.toggle_important(user_id, task_id)
    return MessageOut(message="Task updated successfully")


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}/complete",
    response_model=MessageOut,
    summary="Toggle Complete",
    responses=_NOT_FOUND,
)
def toggle_complete(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.toggle_complete(user_id, task_id)
    return MessageOut(message="Task updated successfully")


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    response_model=MessageOut,
    summary="Delete Task",
    description="Delete a task owned by the caller. Unknown ids succeed without effect.",
    responses=_NOT_FOUND,
)
def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> MessageOut:
    directory.delete(user_id, task_id)
    return MessageOut(message="Task deleted successfully")
