from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import Priority

# Incoming deadlines may be a date, a datetime, or an ISO8601 string
DeadlineInput = Union[date, datetime, str]


# PUBLIC_INTERFACE
def parse_deadline(value: Optional[DeadlineInput]) -> Optional[datetime]:
    """
    Normalize a deadline into a datetime.
    - Strings are parsed with datetime.fromisoformat; a bare date becomes 00:00.
    - A date (not datetime) is promoted to midnight.
    - A datetime is returned as-is, including any tzinfo.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        # fromisoformat only learned the 'Z' suffix in 3.11
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(s)
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(
                    "Invalid deadline format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError("Invalid type for deadline; expected date, datetime, or ISO8601 string.")


def _clean_title(v: str) -> str:
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a task, and for full (overwrite) updates.
    Omitted `desc` is stored as null; omitted `priority` becomes Medium.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries",
                "desc": "Milk, eggs, bread",
                "priority": "High",
                "deadline": "2025-02-01",
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    desc: Optional[str] = Field(default=None, description="Optional detailed description")
    priority: Priority = Field(default=Priority.MEDIUM, description="Low, Medium or High")
    deadline: datetime = Field(
        ..., description="Deadline of the task. Accepts ISO8601 date or datetime; dates are set to 00:00"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Strip whitespace and enforce 1..200 length."""
        return _clean_title(v)

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v: Any) -> Any:
        """An empty or null priority falls back to Medium."""
        if v is None or v == "":
            return Priority.MEDIUM
        return v

    @field_validator("deadline", mode="before")
    @classmethod
    def validate_deadline(cls, v: Optional[DeadlineInput]) -> Optional[datetime]:
        """Normalize deadline from str/date/datetime to datetime."""
        return parse_deadline(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for partially updating a task.
    Only provided fields change; `desc` may be explicitly set to null.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Buy groceries and supplies",
                "priority": "Low",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    desc: Optional[str] = Field(default=None, description="Optional detailed description")
    priority: Optional[Priority] = Field(default=None, description="Low, Medium or High")
    deadline: Optional[datetime] = Field(default=None, description="Deadline as ISO8601 date or datetime")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_title(v)

    @field_validator("deadline", mode="before")
    @classmethod
    def validate_deadline(cls, v: Optional[DeadlineInput]) -> Optional[datetime]:
        return parse_deadline(v)

    @model_validator(mode="after")
    def reject_null_required(self) -> "TaskUpdate":
        for name in ("title", "priority", "deadline"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> Dict[str, Any]:
        """Return only the fields the client actually sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """Schema returned by the API for a task."""

    id: str = Field(..., description="Unique identifier of the task")
    title: str = Field(..., description="Short title for the task")
    desc: Optional[str] = Field(default=None, description="Optional detailed description")
    priority: Priority = Field(..., description="Low, Medium or High")
    deadline: Optional[datetime] = Field(default=None, description="Deadline as an ISO8601 datetime")
    important: bool = Field(..., description="Important flag")
    complete: bool = Field(..., description="Completion flag")
    created_at: datetime = Field(..., description="Creation timestamp")


# PUBLIC_INTERFACE
class TaskListOut(BaseModel):
    """Envelope shared by every task listing."""

    items: List[TaskOut] = Field(..., description="Tasks, newest first")
    total: int = Field(..., description="Number of tasks returned")


# PUBLIC_INTERFACE
class MessageOut(BaseModel):
    """Confirmation body for mutations."""

    message: str


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """Schema for registering a user."""

    username: str = Field(..., min_length=1, max_length=100, description="Display name of the user")

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("username must not be blank")
        return s


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    """A user record with its task reference list."""

    id: str
    username: str
    tasks: List[str]
    created_at: datetime


# PUBLIC_INTERFACE
class UserCreated(UserOut):
    """Registration response; `token` is set only when token auth is enabled."""

    token: Optional[str] = None
