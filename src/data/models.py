"""
HomeBase Assistant — Data Models.

Tasks, shopping items and calendar events persist in SQLite and share one
ownership template: a personal owner, a group, or an explicit list of
assignees. Users and groups mirror the chat platform's identities.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RecordKind(str, Enum):
    TASK = "task"
    SHOPPING = "shopping"
    EVENT = "event"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Sort weight: higher first
PRIORITY_RANK = {"high": 3, "medium": 2, "low": 1}


@dataclass
class User:
    """A chat-platform user, keyed by the platform's numeric user id."""

    id: int
    username: str | None = None      # platform handle, without "@"
    display_name: str | None = None  # platform first + last name
    custom_name: str | None = None   # set via /setname
    timezone: str = "UTC"
    created_at: str = ""
    updated_at: str = ""

    @property
    def resolved_name(self) -> str:
        """Name used everywhere a human reads it."""
        return self.custom_name or self.display_name or self.username or f"User {self.id}"


@dataclass
class Group:
    """A group chat. Members see every record owned by the group."""

    id: int                  # platform chat id
    title: str | None = None
    timezone: str = "UTC"
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Ownership:
    """Stored combination of owner-user, owner-group and assignee list."""

    user_id: int | None = None
    group_id: int | None = None
    assigned_user_ids: tuple[int, ...] | None = None

    def is_empty(self) -> bool:
        return self.user_id is None and self.group_id is None and not self.assigned_user_ids


@dataclass
class _Record:
    id: int
    created_by: int
    user_id: int | None = None
    group_id: int | None = None
    assigned_user_ids: list[int] | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def ownership(self) -> Ownership:
        ids = tuple(self.assigned_user_ids) if self.assigned_user_ids else None
        return Ownership(self.user_id, self.group_id, ids)


@dataclass
class Task(_Record):
    task: str = ""
    priority: str = Priority.MEDIUM.value
    deadline: str | None = None        # UTC "YYYY-MM-DD HH:MM:SS"
    completed: bool = False
    completed_by: int | None = None


@dataclass
class ShoppingItem(_Record):
    item: str = ""
    category: str | None = None
    amount: str | None = None          # free-text quantity, e.g. "2 liters"
    purchased: bool = False
    purchased_by: int | None = None


@dataclass
class Event(_Record):
    title: str = ""
    description: str | None = None
    start_time: str = ""               # UTC "YYYY-MM-DD HH:MM:SS"
    end_time: str | None = None


@dataclass
class ListFilters:
    """Optional, AND-composed filters for the list_by_* store operations.

    Date filters apply to a task's deadline and an event's start time.
    ``start``/``end`` are inclusive UTC datetime bounds; ``on_date`` matches
    the UTC date part.
    """

    include_done: bool = False
    on_date: str | None = None
    start: str | None = None
    end: str | None = None
    category: str | None = None
