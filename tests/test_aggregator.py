"""Tests for src.core.aggregator — merge, collect and render."""

import pytest

from src.core.aggregator import merge_unique
from src.core.scope import Scope
from src.data.models import Event, ListFilters, Ownership, RecordKind, ShoppingItem, Task


class TestMergeUnique:
    def test_first_seen_wins(self):
        first = Task(id=1, created_by=1, task="from personal")
        duplicate = Task(id=1, created_by=1, task="from assignee")
        other = Task(id=2, created_by=1, task="other")
        merged = merge_unique([[first], [duplicate, other]])
        assert merged == [first, other]
        assert merged[0].task == "from personal"

    def test_empty_sources(self):
        assert merge_unique([[], []]) == []


class TestCollect:
    @pytest.mark.asyncio
    async def test_unscoped_queries_all_dimensions(self, aggregator, task_db):
        mine = task_db.create(Ownership(user_id=1), {"task": "Mine"}, 1)
        group = task_db.create(Ownership(group_id=-100), {"task": "Group"}, 2)
        shared = task_db.create(Ownership(assigned_user_ids=(2, 1)), {"task": "Shared"}, 2)
        task_db.create(Ownership(user_id=2), {"task": "Dana's"}, 2)

        in_group = await aggregator.collect(RecordKind.TASK, 1, group_id=-100)
        assert {t.id for t in in_group} == {mine.id, group.id, shared.id}

        private = await aggregator.collect(RecordKind.TASK, 1)
        assert {t.id for t in private} == {mine.id, shared.id}

    @pytest.mark.asyncio
    async def test_no_duplicate_ids(self, aggregator, task_db):
        # Group-owned and assigned: visible through two dimensions
        task_db.create(Ownership(group_id=-100, assigned_user_ids=(1, 2)), {"task": "Both"}, 1)
        records = await aggregator.collect(RecordKind.TASK, 1, group_id=-100)
        ids = [r.id for r in records]
        assert len(ids) == len(set(ids)) == 1

    @pytest.mark.asyncio
    async def test_result_is_sorted_undated_last(self, aggregator, task_db):
        task_db.create(Ownership(user_id=1), {"task": "Someday"}, 1)
        task_db.create(Ownership(group_id=-100), {"task": "Soon", "deadline": "2026-03-01 09:00:00"}, 1)
        task_db.create(
            Ownership(assigned_user_ids=(1,)), {"task": "Sooner", "deadline": "2026-02-01 09:00:00"}, 1,
        )
        records = await aggregator.collect(RecordKind.TASK, 1, group_id=-100)
        assert [t.task for t in records] == ["Sooner", "Soon", "Someday"]

    @pytest.mark.asyncio
    async def test_scope_restricts_dimensions(self, aggregator, task_db):
        task_db.create(Ownership(user_id=1), {"task": "Mine"}, 1)
        group = task_db.create(Ownership(group_id=-100), {"task": "Group"}, 1)
        records = await aggregator.collect(
            RecordKind.TASK, 1, group_id=-100, scope=Scope(group_id=-100),
        )
        assert [t.id for t in records] == [group.id]

    @pytest.mark.asyncio
    async def test_me_and_x_scope_in_group_includes_group_records(self, aggregator, task_db):
        group = task_db.create(Ownership(group_id=-100), {"task": "Group"}, 2)
        shared = task_db.create(
            Ownership(group_id=-100, assigned_user_ids=(1, 2)), {"task": "Shared"}, 1,
        )
        task_db.create(Ownership(user_id=1), {"task": "Mine"}, 1)
        records = await aggregator.collect(
            RecordKind.TASK, 1, group_id=-100,
            scope=Scope(group_id=-100, assigned_user_ids=(1, 2)),
        )
        assert {t.id for t in records} == {group.id, shared.id}

    @pytest.mark.asyncio
    async def test_filters_are_applied(self, aggregator, event_db):
        event_db.create(Ownership(user_id=1), {"title": "Mon", "start_time": "2026-03-02 10:00:00"}, 1)
        event_db.create(Ownership(user_id=1), {"title": "Tue", "start_time": "2026-03-03 10:00:00"}, 1)
        records = await aggregator.collect(
            RecordKind.EVENT, 1, filters=ListFilters(on_date="2026-03-03"),
        )
        assert [e.title for e in records] == ["Tue"]


class TestRender:
    def test_empty_lists(self, aggregator):
        assert aggregator.render(RecordKind.TASK, [], "UTC") == "📝 No tasks found."
        assert aggregator.render(RecordKind.SHOPPING, [], "UTC") == "🛒 The shopping list is empty."
        assert aggregator.render(RecordKind.EVENT, [], "UTC", "today") == "📅 No events found for today."

    def test_tasks(self, aggregator):
        tasks = [
            Task(id=7, created_by=1, task="Pay bill", priority="high", deadline="2026-03-05 08:00:00"),
            Task(id=9, created_by=1, task="Read", priority="low"),
        ]
        text = aggregator.render(RecordKind.TASK, tasks, "Asia/Jerusalem")
        assert text.splitlines() == [
            "📝 Tasks:",
            "1. 🔴 Pay bill (due: 2026-03-05 10:00) [#7]",
            "2. 🟢 Read [#9]",
        ]

    def test_events_with_span_and_description(self, aggregator):
        events = [Event(
            id=3, created_by=1, title="Dentist", description="Bring card",
            start_time="2026-03-05 08:00:00", end_time="2026-03-05 09:00:00",
        )]
        text = aggregator.render(RecordKind.EVENT, events, "UTC", "2026-03-05")
        assert text.splitlines() == [
            "📅 Calendar for 2026-03-05:",
            "1. Dentist - 2026-03-05 08:00 - 2026-03-05 09:00 [#3]",
            "   Bring card",
        ]

    def test_shopping_grouped_by_category(self, aggregator):
        items = [
            ShoppingItem(id=1, created_by=1, item="Milk", category="Dairy", amount="2 liters"),
            ShoppingItem(id=2, created_by=1, item="Cheese", category="Dairy"),
            ShoppingItem(id=3, created_by=1, item="Batteries"),
        ]
        text = aggregator.render(RecordKind.SHOPPING, items, "UTC")
        assert text.splitlines() == [
            "🛒 Shopping list:",
            "📦 Dairy:",
            "  • Milk (2 liters) [#1]",
            "  • Cheese [#2]",
            "📦 Uncategorized:",
            "  • Batteries [#3]",
        ]
