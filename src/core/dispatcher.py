"""
HomeBase Assistant — Action Dispatcher.

UI-agnostic service layer: free text -> classifier -> typed intent ->
scope resolution -> entity-store operation -> aggregation/rendering ->
DispatchResult. The transport renders the result; the dispatcher never
sends messages itself.

Every expected failure is an AssistantError subclass and is converted to a
user-facing message in `dispatch()`. Anything else is logged and reported
as a generic failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from src.core.classifier import ClassifierContext
from src.core.errors import (
    ClassifierError,
    NotFoundError,
    ScopeError,
    UnknownActionError,
    ValidationError,
)
from src.core.intents import (
    CompleteTask,
    CreateEvent,
    CreateShoppingItem,
    CreateTask,
    DeleteRecord,
    Intent,
    ListRecords,
    MarkPurchased,
    ParsedAction,
    QueryRecords,
    SetName,
    SetTimezone,
    UpdateEvent,
    UpdateShoppingItem,
    UpdateTask,
    build_intent,
)
from src.core.messages import t, timezone_label
from src.core.scope import Scope, personal_scope
from src.core.timezones import (
    is_valid_timezone,
    local_range_to_utc,
    normalize_keyword,
    parse_date_range,
    to_user_tz,
    to_utc,
)
from src.data.models import ListFilters, RecordKind

if TYPE_CHECKING:
    from src.core.aggregator import ResultAggregator
    from src.core.classifier import IntentClassifier
    from src.core.scope import ScopeResolver
    from src.data.db import GroupDB, UserDB
    from src.data.models import Group, User
    from src.data.stores import EntityStore, EventDB, ShoppingDB, TaskDB

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    SUCCESS = "success"
    ERROR = "error"
    QUERY_RESULT = "query_result"
    NO_ACTION = "no_action"


@dataclass
class DispatchResult:
    success: bool
    kind: ResponseKind
    message: str
    records: list[Any] = field(default_factory=list)


@dataclass
class MessageContext:
    """Who sent the message and where."""

    user: User
    group: Group | None = None
    chat_id: int | None = None
    message_audit_id: int | None = None

    @property
    def group_id(self) -> int | None:
        return self.group.id if self.group is not None else None

    @property
    def timezone(self) -> str:
        """Group chats use the group's timezone, private chats the user's."""
        if self.group is not None:
            return self.group.timezone or "UTC"
        return self.user.timezone or "UTC"


_Handler = Callable[[Intent, MessageContext], Awaitable[DispatchResult]]


# ---------------------------------------------------------------------------
# ActionDispatcher
# ---------------------------------------------------------------------------


class ActionDispatcher:
    """Routes validated intents to the stores. Holds no per-message state."""

    def __init__(
        self,
        tasks: TaskDB,
        shopping: ShoppingDB,
        events: EventDB,
        user_db: UserDB,
        group_db: GroupDB,
        resolver: ScopeResolver,
        aggregator: ResultAggregator,
        classifier: IntentClassifier | None = None,
        lang: str = "he",
    ) -> None:
        self._tasks = tasks
        self._shopping = shopping
        self._events = events
        self._user_db = user_db
        self._group_db = group_db
        self._resolver = resolver
        self._aggregator = aggregator
        self._classifier = classifier
        self._lang = lang

        self._stores: dict[str, EntityStore] = {
            "task": tasks, "shopping": shopping, "event": events,
        }
        self._handlers: dict[tuple[str, str], _Handler] = {
            ("task", "create"): self._create_task,
            ("task", "update"): self._update,
            ("task", "delete"): self._delete,
            ("task", "list"): self._list,
            ("task", "mark_complete"): self._complete_task,
            ("shopping", "create"): self._create_shopping,
            ("shopping", "update"): self._update,
            ("shopping", "delete"): self._delete,
            ("shopping", "list"): self._list,
            ("shopping", "mark_purchased"): self._mark_purchased,
            ("event", "create"): self._create_event,
            ("event", "update"): self._update,
            ("event", "delete"): self._delete,
            ("event", "list"): self._list,
            ("query", "list"): self._query,
            ("user", "set_name"): self._set_name_intent,
            ("user", "set_timezone"): self._set_timezone_intent,
        }

    # ------------------------------------------------------------------
    # Public: process free-text
    # ------------------------------------------------------------------

    async def process_text(self, text: str, context: MessageContext) -> DispatchResult:
        """Classify free text and dispatch the resulting action."""
        if self._classifier is None:
            raise RuntimeError("ActionDispatcher was built without a classifier")

        available = self._resolver.available_users(context.user.id, context.group_id)
        classifier_context = ClassifierContext(
            user_id=context.user.id,
            user_name=context.user.resolved_name,
            timezone=context.timezone,
            group_id=context.group_id,
            available_names=[u.resolved_name for u in available],
            message_audit_id=context.message_audit_id,
        )
        try:
            parsed = await self._classifier.classify(text, classifier_context)
        except ClassifierError as exc:
            logger.info("Could not classify message from %d: %s", context.user.id, exc)
            return self._error(t("could_not_understand", self._lang))

        return await self.dispatch(parsed, context)

    async def dispatch(self, parsed: ParsedAction, context: MessageContext) -> DispatchResult:
        """Validate and execute one raw action, converting failures to replies."""
        try:
            intent = build_intent(parsed)
            return await self.execute(intent, context)
        except (ValidationError, ScopeError) as exc:
            logger.info("Rejected %s/%s: %s", parsed.action, parsed.operation, exc)
            return self._error(t("error", self._lang, message=str(exc)))
        except NotFoundError as exc:
            logger.info("Not found: %s", exc)
            return self._error(t(f"{exc.kind}_not_found", self._lang))
        except UnknownActionError as exc:
            logger.warning("Unknown action: %s", exc)
            return self._error(t("generic_error", self._lang))
        except ClassifierError:
            return self._error(t("could_not_understand", self._lang))
        except Exception:
            logger.exception(
                "Unexpected error dispatching %s/%s for user %d",
                parsed.action, parsed.operation, context.user.id,
            )
            return self._error(t("generic_error", self._lang))

    async def execute(self, intent: Intent, context: MessageContext) -> DispatchResult:
        """Run a validated intent. Raises AssistantError subclasses on failure."""
        handler = self._handlers.get((intent.kind, intent.operation))
        if handler is None:
            raise UnknownActionError(f"No handler for {intent.kind}/{intent.operation}")
        return await handler(intent, context)

    # ------------------------------------------------------------------
    # Public: direct user-setting commands (bypass the classifier)
    # ------------------------------------------------------------------

    def set_name(self, context: MessageContext, name: str) -> DispatchResult:
        name = (name or "").strip()
        if not name:
            return self._error(t("setname_usage", self._lang))
        user = self._user_db.update_user(context.user.id, custom_name=name)
        if user is None:
            return self._error(t("generic_error", self._lang))
        context.user = user
        logger.info("User %d set custom name '%s'", user.id, name)
        return self._ok(t("name_set", self._lang, name=name), [user])

    def set_timezone(self, context: MessageContext, tz_name: str) -> DispatchResult:
        """Set the group's timezone in a group chat, else the user's."""
        tz_name = (tz_name or "").strip()
        if not is_valid_timezone(tz_name):
            return self._error(t("timezone_invalid", self._lang, timezone=tz_name))

        if context.group is not None:
            group = self._group_db.set_timezone(context.group.id, tz_name)
            if group is not None:
                context.group = group
            return self._ok(
                t("timezone_set_group", self._lang, timezone=timezone_label(tz_name)),
                [group] if group else [],
            )

        user = self._user_db.update_user(context.user.id, timezone=tz_name)
        if user is not None:
            context.user = user
        logger.info("User %d timezone set to %s", context.user.id, tz_name)
        return self._ok(
            t("timezone_set_user", self._lang, timezone=timezone_label(tz_name)),
            [user] if user else [],
        )

    # ------------------------------------------------------------------
    # Scope stage
    # ------------------------------------------------------------------

    def _resolve_scope(self, intent: Intent, context: MessageContext) -> Scope:
        """Ownership for a new record. No scope label means personal."""
        if not intent.scope:
            return personal_scope(context.user.id)
        return self._resolver.resolve(
            intent.scope, intent.scope_users, context.user.id, context.group_id,
        )

    def _scope_text(self, scope: Scope) -> str:
        if scope.assigned_user_ids and len(scope.assigned_user_ids) > 1:
            return t("scope_assignees", self._lang, count=len(scope.assigned_user_ids) - 1)
        if scope.group_id is not None:
            return t("scope_group", self._lang)
        return ""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _create_task(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: CreateTask = intent.command
        scope = self._resolve_scope(intent, context)
        payload = {
            "task": cmd.task,
            "priority": cmd.priority,
            "deadline": to_utc(cmd.deadline, context.timezone),
        }
        task = self._tasks.create(scope.to_ownership(), payload, context.user.id)
        message = t("task_created", self._lang, scope=self._scope_text(scope), task=task.task)
        return self._ok(message, [task])

    async def _create_shopping(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: CreateShoppingItem = intent.command
        scope = self._resolve_scope(intent, context)
        payload = {"item": cmd.item, "category": cmd.category, "amount": cmd.amount}
        item = self._shopping.create(scope.to_ownership(), payload, context.user.id)
        message = t(
            "shopping_created", self._lang,
            scope=self._scope_text(scope),
            category=f" ({item.category})" if item.category else "",
            amount=f" - {item.amount}" if item.amount else "",
            item=item.item,
        )
        return self._ok(message, [item])

    async def _create_event(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: CreateEvent = intent.command
        scope = self._resolve_scope(intent, context)
        tz = context.timezone
        payload = {
            "title": cmd.title,
            "description": cmd.description,
            "start_time": to_utc(cmd.start_time, tz),
            "end_time": to_utc(cmd.end_time, tz),
        }
        event = self._events.create(scope.to_ownership(), payload, context.user.id)
        start = to_user_tz(event.start_time, tz)
        if event.end_time:
            time_text = t("event_time_span", self._lang, start=start, end=to_user_tz(event.end_time, tz))
        else:
            time_text = t("event_time_at", self._lang, start=start)
        message = t(
            "event_created", self._lang,
            scope=self._scope_text(scope), time=time_text, title=event.title,
        )
        return self._ok(message, [event])

    # ------------------------------------------------------------------
    # Update / delete / complete
    # ------------------------------------------------------------------

    _DATETIME_FIELDS = ("deadline", "start_time", "end_time")

    async def _update(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: UpdateTask | UpdateShoppingItem | UpdateEvent = intent.command
        changes = cmd.changes()
        for name in self._DATETIME_FIELDS:
            if name in changes:
                changes[name] = to_utc(changes[name], context.timezone)

        record = self._stores[intent.kind].update(cmd.id, changes)
        if record is None:
            raise NotFoundError(intent.kind, cmd.id)

        if intent.kind == "task":
            message = t("task_updated", self._lang, task=record.task)
        elif intent.kind == "shopping":
            message = t("shopping_updated", self._lang, item=record.item)
        else:
            message = t("event_updated", self._lang, title=record.title)
        return self._ok(message, [record])

    async def _delete(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: DeleteRecord = intent.command
        if not self._stores[intent.kind].delete(cmd.id):
            raise NotFoundError(intent.kind, cmd.id)
        return self._ok(t(f"{intent.kind}_deleted", self._lang))

    async def _complete_task(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: CompleteTask = intent.command
        task = self._tasks.mark_complete(cmd.id, context.user.id)
        if task is None:
            raise NotFoundError("task", cmd.id)
        return self._ok(t("task_completed", self._lang, task=task.task), [task])

    async def _mark_purchased(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: MarkPurchased = intent.command
        actor = context.user.id

        if cmd.id is not None:
            item = self._shopping.mark_purchased(cmd.id, actor)
            if item is None:
                raise NotFoundError("shopping", cmd.id)
            return self._ok(t("shopping_purchased_one", self._lang, item=item.item), [item])

        if cmd.names:
            marked = []
            for name in cmd.names:
                matches = self._shopping.search_by_name(
                    name,
                    user_id=None if context.group else actor,
                    group_id=context.group_id,
                )
                if not matches:
                    logger.info("No unpurchased item matches '%s'", name)
                    continue
                marked.append(self._shopping.mark_purchased(matches[0].id, actor))
            marked = [m for m in marked if m is not None]
            if not marked:
                return self._error(t("shopping_no_match", self._lang))
            return self._ok(
                t("shopping_purchased_many", self._lang, count=len(marked)), marked,
            )

        # No selector: everything on the current list
        if context.group is not None:
            pending = self._shopping.list_by_group(context.group.id)
        else:
            pending = self._shopping.list_by_owner(actor)
        if not pending:
            return self._ok(t("shopping_nothing_to_mark", self._lang))
        marked = [self._shopping.mark_purchased(item.id, actor) for item in pending]
        marked = [m for m in marked if m is not None]
        return self._ok(t("shopping_purchased_many", self._lang, count=len(marked)), marked)

    # ------------------------------------------------------------------
    # List / query
    # ------------------------------------------------------------------

    def _filters_for(
        self, cmd: ListRecords | QueryRecords, tz: str,
    ) -> tuple[ListFilters, str | None]:
        """Build store filters from the date parameters, in the user's timezone."""
        filters = ListFilters(
            include_done=getattr(cmd, "include_done", False),
            category=cmd.category,
        )
        label = None
        start_end = None
        if cmd.date:
            start_end = parse_date_range(cmd.date, tz)
            label = normalize_keyword(cmd.date) or start_end[0]
        elif cmd.start_date or cmd.end_date:
            first_text = cmd.start_date or cmd.end_date
            last_text = cmd.end_date or cmd.start_date
            first = parse_date_range(first_text, tz)
            last = parse_date_range(last_text, tz)
            start_end = (first[0], last[1])
            if first_text == last_text:
                label = normalize_keyword(first_text)
            if label is None:
                label = start_end[0] if start_end[0] == start_end[1] else f"{start_end[0]} - {start_end[1]}"

        if start_end is not None:
            filters.start, filters.end = local_range_to_utc(start_end[0], start_end[1], tz)
        return filters, label

    async def _list(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: ListRecords = intent.command
        kind = RecordKind(intent.kind)
        scope = None
        if intent.scope:
            scope = self._resolver.resolve(
                intent.scope, intent.scope_users, context.user.id, context.group_id,
            )
        filters, label = self._filters_for(cmd, context.timezone)
        records = await self._aggregator.collect(
            kind, context.user.id, context.group_id, scope, filters,
        )
        message = self._aggregator.render(kind, records, context.timezone, label)
        return DispatchResult(True, ResponseKind.QUERY_RESULT, message, records)

    async def _query(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: QueryRecords = intent.command
        filters, label = self._filters_for(cmd, context.timezone)
        kinds = {
            "tasks": [RecordKind.TASK],
            "shopping": [RecordKind.SHOPPING],
            "events": [RecordKind.EVENT],
            "all": [RecordKind.TASK, RecordKind.SHOPPING, RecordKind.EVENT],
        }[cmd.query_type]

        results = await asyncio.gather(*(
            self._aggregator.collect(kind, context.user.id, context.group_id, None, filters)
            for kind in kinds
        ))

        if len(kinds) == 1:
            message = self._aggregator.render(kinds[0], results[0], context.timezone, label)
            return DispatchResult(True, ResponseKind.QUERY_RESULT, message, results[0])

        sections = [
            self._aggregator.render(kind, records, context.timezone, label)
            for kind, records in zip(kinds, results)
            if records
        ]
        records = [r for group in results for r in group]
        if not sections:
            return DispatchResult(True, ResponseKind.QUERY_RESULT, t("nothing_found", self._lang))
        return DispatchResult(True, ResponseKind.QUERY_RESULT, "\n\n".join(sections), records)

    # ------------------------------------------------------------------
    # User settings
    # ------------------------------------------------------------------

    async def _set_name_intent(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: SetName = intent.command
        return self.set_name(context, cmd.name)

    async def _set_timezone_intent(self, intent: Intent, context: MessageContext) -> DispatchResult:
        cmd: SetTimezone = intent.command
        if not is_valid_timezone(cmd.timezone):
            raise ValidationError(f"Unknown timezone: {cmd.timezone}")
        return self.set_timezone(context, cmd.timezone)

    # ------------------------------------------------------------------
    # Result helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _ok(message: str, records: list[Any] | None = None) -> DispatchResult:
        return DispatchResult(True, ResponseKind.SUCCESS, message, records or [])

    @staticmethod
    def _error(message: str) -> DispatchResult:
        return DispatchResult(False, ResponseKind.ERROR, message)
