from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from ..auth import get_current_user_id, issue_token
from ..directory import TaskDirectory
from ..schemas import UserCreate, UserCreated, UserOut
from .tasks import get_directory

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=UserCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Register User",
    description="Create a user. A bearer token is returned when token auth is enabled.",
)
def register_user(
    payload: UserCreate,
    request: Request,
    directory: TaskDirectory = Depends(get_directory),
) -> UserCreated:
    user = directory.register_user(payload.username)
    token = issue_token(user["id"], request.app.state.settings)
    return UserCreated(**user, token=token)


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserOut,
    summary="Current User",
    description="Return the caller's record, including its task reference list.",
    responses={404: {"description": "User not found"}},
)
def get_me(
    user_id: str = Depends(get_current_user_id),
    directory: TaskDirectory = Depends(get_directory),
) -> UserOut:
    return UserOut(**directory.get_user(user_id))
