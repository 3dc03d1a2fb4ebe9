"""
HomeBase Assistant — Result Aggregator.

A user sees records from three ownership dimensions: their own, their
group's, and those assigned to them. `collect()` queries the relevant
dimensions concurrently, merges them (first-seen-wins by id) and sorts the
result with the kind's store ordering. `render()` turns the list into the
localized, numbered reply.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Iterable

from src.core.messages import PRIORITY_EMOJI, t
from src.core.timezones import to_user_tz
from src.data.models import ListFilters, RecordKind
from src.data.stores import sort_records

if TYPE_CHECKING:
    from src.core.scope import Scope
    from src.data.models import Event, ShoppingItem, Task, _Record
    from src.data.stores import EntityStore

logger = logging.getLogger(__name__)


def merge_unique(sources: Iterable[list[_Record]]) -> list[_Record]:
    """Concatenate result sets, keeping only the first record seen per id."""
    seen: set[int] = set()
    merged: list[_Record] = []
    for records in sources:
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            merged.append(record)
    return merged


class ResultAggregator:
    """Merges personal, group and assigned-to-me results for one kind."""

    def __init__(self, stores: dict[RecordKind, EntityStore], lang: str = "he") -> None:
        self._stores = stores
        self._lang = lang

    # ------------------------------------------------------------------
    # Collect
    # ------------------------------------------------------------------

    async def collect(
        self,
        kind: RecordKind,
        user_id: int,
        group_id: int | None = None,
        scope: Scope | None = None,
        filters: ListFilters | None = None,
    ) -> list[_Record]:
        """Deduplicated, sorted records of ``kind`` visible to ``user_id``.

        Without a scope, every dimension the context allows is queried:
        personal, the current group (when there is one) and assigned-to-me.
        With a scope, only the dimensions the scope selects are queried.
        """
        store = self._stores[kind]
        filters = filters or ListFilters()

        if scope is None:
            want_personal = True
            want_group = group_id is not None
            want_assigned = True
        else:
            want_personal = scope.user_id == user_id
            want_group = group_id is not None and scope.group_id == group_id
            want_assigned = bool(scope.assigned_user_ids) and user_id in scope.assigned_user_ids

        queries = []
        if want_personal:
            queries.append(asyncio.to_thread(store.list_by_owner, user_id, filters))
        if want_group:
            queries.append(asyncio.to_thread(store.list_by_group, group_id, filters))
        if want_assigned:
            queries.append(asyncio.to_thread(store.list_by_assignee, user_id, filters))

        if not queries:
            return []
        results = await asyncio.gather(*queries)
        merged = merge_unique(results)
        logger.debug(
            "Aggregated %d %s records for user %d from %d sources",
            len(merged), kind.value, user_id, len(results),
        )
        return sort_records(kind, merged)

    # ------------------------------------------------------------------
    # Render
    # ------------------------------------------------------------------

    def render(
        self,
        kind: RecordKind,
        records: list[_Record],
        tz_name: str,
        date_label: str | None = None,
    ) -> str:
        """Localized listing, or the kind's "nothing found" message when empty."""
        date_text = self._date_text(date_label)
        if kind is RecordKind.TASK:
            if not records:
                return t("tasks_empty", self._lang, date=date_text)
            lines = [t("tasks_header", self._lang, date=date_text)]
            lines += self.format_tasks(records, tz_name)
        elif kind is RecordKind.EVENT:
            if not records:
                return t("events_empty", self._lang, date=date_text)
            lines = [t("events_header", self._lang, date=date_text)]
            lines += self.format_events(records, tz_name)
        else:
            if not records:
                return t("shopping_empty", self._lang)
            lines = [t("shopping_header", self._lang)]
            lines += self.format_shopping(records)
        return "\n".join(lines)

    def _date_text(self, date_label: str | None) -> str:
        if not date_label:
            return ""
        key = f"date_{date_label}"
        label = t(key, self._lang) if key in _KEYWORD_KEYS else date_label
        return t("date_suffix", self._lang, label=label)

    def format_tasks(self, tasks: list[Task], tz_name: str) -> list[str]:
        lines = []
        for i, task in enumerate(tasks, 1):
            emoji = PRIORITY_EMOJI.get(task.priority, PRIORITY_EMOJI["medium"])
            deadline = ""
            if task.deadline:
                deadline = t("deadline", self._lang, deadline=to_user_tz(task.deadline, tz_name))
            lines.append(f"{i}. {emoji} {task.task}{deadline} [#{task.id}]")
        return lines

    def format_events(
        self, events: list[Event], tz_name: str, with_description: bool = True,
    ) -> list[str]:
        lines = []
        for i, event in enumerate(events, 1):
            start = to_user_tz(event.start_time, tz_name)
            span = f"{start} - {to_user_tz(event.end_time, tz_name)}" if event.end_time else start
            lines.append(f"{i}. {event.title} - {span} [#{event.id}]")
            if with_description and event.description:
                lines.append(f"   {event.description}")
        return lines

    def format_shopping(self, items: list[ShoppingItem]) -> list[str]:
        by_category: dict[str, list[ShoppingItem]] = {}
        for item in items:
            category = item.category or t("no_category", self._lang)
            by_category.setdefault(category, []).append(item)

        lines = []
        for category, group in by_category.items():
            lines.append(f"📦 {category}:")
            for item in group:
                amount = f" ({item.amount})" if item.amount else ""
                lines.append(f"  • {item.item}{amount} [#{item.id}]")
        return lines


_KEYWORD_KEYS = {
    "date_today", "date_tomorrow", "date_this week", "date_next week",
    "date_this month", "date_next month",
}
