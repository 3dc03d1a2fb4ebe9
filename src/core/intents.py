"""
HomeBase Assistant — Action Intents.

The classifier returns a loose JSON envelope:

    {"action": "task", "operation": "create", "scope": "me_and_x",
     "scope_users": ["Dana"], "parameters": {"task": "...", ...}}

`build_intent()` turns that envelope into one typed command per
(action kind x operation), each carrying only the fields its operation
needs. Every check on the classifier's output happens here, so the
dispatcher works with validated values only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from src.core.errors import UnknownActionError, ValidationError
from src.data.models import Priority

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Raw envelope, as produced by the classifier
# ---------------------------------------------------------------------------

ACTION_ALIASES = {
    "todo": "task",
    "todos": "task",
    "tasks": "task",
    "calendar": "event",
    "events": "event",
    "shopping_list": "shopping",
}

QUERY_TYPE_ALIASES = {
    "all": "all",
    "todo": "tasks",
    "todos": "tasks",
    "task": "tasks",
    "tasks": "tasks",
    "shopping": "shopping",
    "calendar": "events",
    "event": "events",
    "events": "events",
}

# camelCase spellings the model sometimes produces
_PARAM_ALIASES = {
    "startDate": "start_date",
    "endDate": "end_date",
    "queryType": "query_type",
    "startTime": "start_time",
    "endTime": "end_time",
    "customName": "name",
}


class ParsedAction(BaseModel):
    """The classifier's raw structured action."""

    model_config = ConfigDict(extra="ignore")

    action: str
    operation: str
    scope: str | None = None
    scope_users: list[str] = []
    parameters: dict[str, Any] = {}

    @field_validator("action", "operation", mode="before")
    @classmethod
    def normalize_label(cls, v: str) -> str:
        if not isinstance(v, str):
            raise ValueError("must be a string")
        return v.strip().lower()

    @field_validator("scope", mode="before")
    @classmethod
    def normalize_scope(cls, v: str | None) -> str | None:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return str(v).strip().lower()

    @field_validator("scope_users", mode="before")
    @classmethod
    def parse_scope_users(cls, v: str | list | None) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            return [n.strip() for n in v.split(",") if n.strip()]
        return [str(n) for n in v if n is not None and str(n).strip()]

    @field_validator("parameters", mode="before")
    @classmethod
    def parse_parameters(cls, v: dict | None) -> dict:
        if v is None:
            return {}
        return {_PARAM_ALIASES.get(k, k): val for k, val in dict(v).items()}


# ---------------------------------------------------------------------------
# Typed commands
# ---------------------------------------------------------------------------


class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v.strip() if isinstance(v, str) else v


class _ByIdCommand(_Command):
    id: int


class _UpdateCommand(_ByIdCommand):
    """Partial update: only fields present in the parameters are changed."""

    # Fields that may be explicitly cleared with null
    clearable: ClassVar[frozenset[str]] = frozenset()

    def changes(self) -> dict[str, Any]:
        out = {}
        for name, value in self.model_dump(exclude_unset=True, exclude={"id"}).items():
            if value is None and name not in self.clearable:
                continue
            out[name] = value
        return out


class _DateFilterCommand(_Command):
    date: str | None = None
    start_date: str | None = None
    end_date: str | None = None

    @field_validator("date", "start_date", "end_date", mode="before")
    @classmethod
    def strip_dates(cls, v: Any) -> Any:
        return _blank_to_none(v)


# --- Tasks ---

class CreateTask(_Command):
    task: str
    priority: Priority = Priority.MEDIUM
    deadline: str | None = None

    @field_validator("task", mode="before")
    @classmethod
    def require_task(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Task description is required")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def default_priority(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        if v is None:
            return Priority.MEDIUM
        return v.lower() if isinstance(v, str) else v

    @field_validator("deadline", mode="before")
    @classmethod
    def strip_deadline(cls, v: Any) -> Any:
        return _blank_to_none(v)


class UpdateTask(_UpdateCommand):
    task: str | None = None
    priority: Priority | None = None
    deadline: str | None = None

    clearable: ClassVar[frozenset[str]] = frozenset({"deadline"})

    @field_validator("priority", mode="before")
    @classmethod
    def lower_priority(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class CompleteTask(_ByIdCommand):
    pass


# --- Shopping ---

class CreateShoppingItem(_Command):
    item: str
    category: str | None = None
    amount: str | None = None

    @field_validator("item", mode="before")
    @classmethod
    def require_item(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Item name is required")
        return v

    @field_validator("category", "amount", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        v = _blank_to_none(v)
        return str(v) if v is not None else None


class UpdateShoppingItem(_UpdateCommand):
    item: str | None = None
    category: str | None = None
    amount: str | None = None

    clearable: ClassVar[frozenset[str]] = frozenset({"category", "amount"})


class MarkPurchased(_Command):
    """Select items by id, by names, or everything in the current list."""

    id: int | None = None
    names: list[str] = []


# --- Events ---

class CreateEvent(_Command):
    title: str
    start_time: str
    description: str | None = None
    end_time: str | None = None

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Event title is required")
        return v

    @field_validator("start_time", mode="before")
    @classmethod
    def require_start(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Event start time is required")
        return v

    @field_validator("description", "end_time", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)


class UpdateEvent(_UpdateCommand):
    title: str | None = None
    description: str | None = None
    start_time: str | None = None
    end_time: str | None = None

    clearable: ClassVar[frozenset[str]] = frozenset({"description", "end_time"})


# --- Shared ---

class DeleteRecord(_ByIdCommand):
    pass


class ListRecords(_DateFilterCommand):
    category: str | None = None
    include_done: bool = False


class QueryRecords(_DateFilterCommand):
    query_type: str = "all"
    category: str | None = None

    @field_validator("query_type", mode="before")
    @classmethod
    def normalize_query_type(cls, v: Any) -> str:
        key = (v or "all").strip().lower() if isinstance(v, str) or v is None else v
        if key not in QUERY_TYPE_ALIASES:
            raise ValueError(f"Unknown query type: {v!r}")
        return QUERY_TYPE_ALIASES[key]


# --- User settings ---

class SetName(_Command):
    name: str

    @field_validator("name", mode="before")
    @classmethod
    def require_name(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Name cannot be empty")
        return v


class SetTimezone(_Command):
    timezone: str

    @field_validator("timezone", mode="before")
    @classmethod
    def require_timezone(cls, v: Any) -> str:
        v = _blank_to_none(v)
        if v is None:
            raise ValueError("Timezone is required")
        return v


# ---------------------------------------------------------------------------
# (kind, operation) -> command
# ---------------------------------------------------------------------------

_COMMANDS: dict[tuple[str, str], type[_Command]] = {
    ("task", "create"): CreateTask,
    ("task", "update"): UpdateTask,
    ("task", "delete"): DeleteRecord,
    ("task", "list"): ListRecords,
    ("task", "mark_complete"): CompleteTask,
    ("shopping", "create"): CreateShoppingItem,
    ("shopping", "update"): UpdateShoppingItem,
    ("shopping", "delete"): DeleteRecord,
    ("shopping", "list"): ListRecords,
    ("shopping", "mark_purchased"): MarkPurchased,
    ("event", "create"): CreateEvent,
    ("event", "update"): UpdateEvent,
    ("event", "delete"): DeleteRecord,
    ("event", "list"): ListRecords,
    ("query", "list"): QueryRecords,
    ("user", "set_name"): SetName,
    ("user", "set_timezone"): SetTimezone,
}

@dataclass
class Intent:
    """A validated action ready for dispatch."""

    kind: str
    operation: str
    command: _Command
    scope: str | None = None
    scope_users: list[str] = field(default_factory=list)


def _mark_purchased_params(params: dict[str, Any]) -> dict[str, Any]:
    """Map the classifier's item/items/id selectors onto MarkPurchased."""
    if params.get("id") is not None:
        return {"id": params["id"]}
    item = params.get("item")
    items = params.get("items")
    if isinstance(item, str) and item.strip():
        return {"names": [n.strip() for n in item.split(",") if n.strip()]}
    if isinstance(items, list) and items:
        return {"names": [str(n).strip() for n in items if str(n).strip()]}
    return {}


_MISSING_MESSAGES = {
    "task": "Task description is required",
    "item": "Item name is required",
    "title": "Event title is required",
    "start_time": "Event start time is required",
    "name": "Name cannot be empty",
    "timezone": "Timezone is required",
}


def _first_error(exc: PydanticValidationError) -> str:
    err = exc.errors()[0]
    msg = err.get("msg", "invalid value")
    # pydantic prefixes custom ValueError messages with "Value error, "
    msg = msg.removeprefix("Value error, ")
    loc = ".".join(str(p) for p in err.get("loc", ()))
    if loc == "id":
        return "missing id" if err.get("type") == "missing" else "invalid id"
    if err.get("type") == "missing":
        return _MISSING_MESSAGES.get(loc, f"missing {loc}")
    return msg if err.get("type") == "value_error" else f"{loc}: {msg}"


def build_intent(parsed: ParsedAction) -> Intent:
    """Validate a raw action and build its typed command.

    Raises UnknownActionError for an unknown action/operation pair and
    ValidationError for missing or malformed fields.
    """
    kind = ACTION_ALIASES.get(parsed.action, parsed.action)
    operation = parsed.operation
    command_cls = _COMMANDS.get((kind, operation))
    if command_cls is None:
        logger.warning("Unknown action: %s/%s", parsed.action, parsed.operation)
        raise UnknownActionError(f"Unknown action {parsed.action}/{parsed.operation}")

    params = dict(parsed.parameters)
    if command_cls is MarkPurchased:
        params = _mark_purchased_params(params)
    elif issubclass(command_cls, _ByIdCommand) and params.get("id") in (None, ""):
        raise ValidationError("missing id")

    try:
        command = command_cls.model_validate(params)
    except PydanticValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc

    return Intent(
        kind=kind,
        operation=operation,
        command=command,
        scope=parsed.scope,
        scope_users=list(parsed.scope_users),
    )


def parse_action(data: dict[str, Any]) -> ParsedAction:
    """Validate the classifier's JSON object into a ParsedAction."""
    return ParsedAction.model_validate(data)
