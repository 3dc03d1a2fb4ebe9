"""Tests for src.data.stores — TaskDB, ShoppingDB and EventDB."""

import sqlite3

import pytest

from src.core.errors import ValidationError
from src.data.models import ListFilters, Ownership, RecordKind, Task
from src.data.stores import sort_records

ME = Ownership(user_id=1)


class TestCreateAndGet:
    def test_create_round_trips_payload(self, task_db):
        task = task_db.create(ME, {"task": "Pay bill", "priority": "high", "deadline": None}, 1)
        fetched = task_db.get(task.id)
        assert fetched == task
        assert fetched.task == "Pay bill"
        assert fetched.priority == "high"
        assert fetched.completed is False
        assert fetched.created_by == 1
        assert fetched.created_at == fetched.updated_at != ""

    def test_assignees_round_trip_in_order(self, task_db):
        ownership = Ownership(group_id=-100, assigned_user_ids=(5, 2, 9))
        task = task_db.create(ownership, {"task": "Plan trip"}, 5)
        fetched = task_db.get(task.id)
        assert fetched.assigned_user_ids == [5, 2, 9]
        assert fetched.user_id is None
        assert fetched.group_id == -100

    def test_empty_ownership_rejected(self, shopping_db):
        with pytest.raises(ValidationError):
            shopping_db.create(Ownership(), {"item": "Milk"}, 1)

    def test_missing_mandatory_field_rejected(self, event_db):
        with pytest.raises(ValidationError):
            event_db.create(ME, {"title": "Dentist"}, 1)
        with pytest.raises(ValidationError):
            event_db.create(ME, {"title": "  ", "start_time": "2026-03-01 10:00:00"}, 1)

    def test_unknown_field_rejected(self, shopping_db):
        with pytest.raises(ValidationError):
            shopping_db.create(ME, {"item": "Milk", "colour": "white"}, 1)

    def test_invalid_priority_rejected(self, task_db):
        with pytest.raises(ValidationError):
            task_db.create(ME, {"task": "x", "priority": "urgent"}, 1)

    def test_get_missing_returns_none(self, task_db):
        assert task_db.get(404) is None


class TestUpdateAndDelete:
    def test_empty_update_is_noop(self, task_db):
        task = task_db.create(ME, {"task": "Pay bill", "priority": "low"}, 1)
        assert task_db.update(task.id, {}) == task
        assert task_db.update(task.id, {}) == task_db.get(task.id)

    def test_update_missing_returns_none(self, shopping_db):
        assert shopping_db.update(404, {"item": "Bread"}) is None

    def test_update_cannot_blank_mandatory_field(self, task_db):
        task = task_db.create(ME, {"task": "Pay bill"}, 1)
        with pytest.raises(ValidationError):
            task_db.update(task.id, {"task": ""})

    def test_sequential_updates_do_not_clobber(self, task_db):
        task = task_db.create(ME, {"task": "Report", "priority": "low"}, 1)
        task_db.update(task.id, {"priority": "high"})
        task_db.update(task.id, {"deadline": "2026-03-01 09:00:00"})
        updated = task_db.get(task.id)
        assert updated.priority == "high"
        assert updated.deadline == "2026-03-01 09:00:00"
        assert updated.task == "Report"

    def test_update_assignees(self, task_db):
        task = task_db.create(Ownership(assigned_user_ids=(1, 2)), {"task": "x"}, 1)
        updated = task_db.update(task.id, {"assigned_user_ids": [1, 2, 3]})
        assert updated.assigned_user_ids == [1, 2, 3]

    def test_delete(self, event_db):
        event = event_db.create(ME, {"title": "Dentist", "start_time": "2026-03-01 10:00:00"}, 1)
        assert event_db.delete(event.id) is True
        assert event_db.get(event.id) is None
        assert event_db.delete(event.id) is False


class TestCompletion:
    def test_mark_complete_records_actor(self, task_db):
        task = task_db.create(Ownership(group_id=-100), {"task": "Dishes"}, 1)
        done = task_db.mark_complete(task.id, 2)
        assert done.completed is True
        assert done.completed_by == 2

    def test_completed_tasks_hidden_unless_requested(self, task_db):
        open_task = task_db.create(ME, {"task": "Open"}, 1)
        closed = task_db.create(ME, {"task": "Closed"}, 1)
        task_db.mark_complete(closed.id, 1)
        assert [t.id for t in task_db.list_by_owner(1)] == [open_task.id]
        assert len(task_db.list_by_owner(1, ListFilters(include_done=True))) == 2

    def test_mark_purchased_missing_returns_none(self, shopping_db):
        shopping_db.create(ME, {"item": "Milk"}, 1)
        assert shopping_db.mark_purchased(404, 1) is None
        assert len(shopping_db.list_by_owner(1)) == 1


class TestListing:
    def test_owner_group_assignee_dimensions(self, task_db):
        mine = task_db.create(ME, {"task": "Mine"}, 1)
        group = task_db.create(Ownership(group_id=-100), {"task": "Group"}, 1)
        shared = task_db.create(Ownership(assigned_user_ids=(1, 2)), {"task": "Shared"}, 1)

        assert [t.id for t in task_db.list_by_owner(1)] == [mine.id]
        assert [t.id for t in task_db.list_by_group(-100)] == [group.id]
        assert [t.id for t in task_db.list_by_assignee(2)] == [shared.id]
        assert task_db.list_by_assignee(3) == []

    def test_assignee_match_is_exact(self, task_db):
        task_db.create(Ownership(assigned_user_ids=(12, 123)), {"task": "x"}, 12)
        assert task_db.list_by_assignee(1) == []
        assert len(task_db.list_by_assignee(123)) == 1

    def test_task_ordering(self, task_db):
        undated = task_db.create(ME, {"task": "Someday", "priority": "high"}, 1)
        late = task_db.create(ME, {"task": "Late", "deadline": "2026-03-05 09:00:00"}, 1)
        low = task_db.create(ME, {"task": "Low", "priority": "low", "deadline": "2026-03-01 09:00:00"}, 1)
        high = task_db.create(ME, {"task": "High", "priority": "high", "deadline": "2026-03-01 09:00:00"}, 1)

        listed = task_db.list_by_owner(1)
        assert [t.id for t in listed] == [high.id, low.id, late.id, undated.id]
        assert listed[-1].deadline is None

    def test_shopping_ordering_by_category_then_newest(self, shopping_db):
        bread = shopping_db.create(ME, {"item": "Bread", "category": "Bakery"}, 1)
        misc = shopping_db.create(ME, {"item": "Batteries"}, 1)
        milk = shopping_db.create(ME, {"item": "Milk", "category": "Dairy"}, 1)
        cheese = shopping_db.create(ME, {"item": "Cheese", "category": "Dairy"}, 1)
        listed = shopping_db.list_by_owner(1)
        assert [i.id for i in listed] == [bread.id, cheese.id, milk.id, misc.id]

    def test_event_ordering_by_start(self, event_db):
        later = event_db.create(ME, {"title": "B", "start_time": "2026-03-02 10:00:00"}, 1)
        sooner = event_db.create(ME, {"title": "A", "start_time": "2026-03-01 10:00:00"}, 1)
        assert [e.id for e in event_db.list_by_owner(1)] == [sooner.id, later.id]

    def test_date_filters(self, event_db):
        event_db.create(ME, {"title": "Mon", "start_time": "2026-03-02 10:00:00"}, 1)
        event_db.create(ME, {"title": "Tue", "start_time": "2026-03-03 23:30:00"}, 1)
        event_db.create(ME, {"title": "Wed", "start_time": "2026-03-04 08:00:00"}, 1)

        on_tue = event_db.list_by_owner(1, ListFilters(on_date="2026-03-03"))
        assert [e.title for e in on_tue] == ["Tue"]

        ranged = event_db.list_by_owner(
            1, ListFilters(start="2026-03-03 00:00:00", end="2026-03-04 23:59:59"),
        )
        assert [e.title for e in ranged] == ["Tue", "Wed"]

    def test_category_filter(self, shopping_db):
        shopping_db.create(ME, {"item": "Milk", "category": "Dairy"}, 1)
        shopping_db.create(ME, {"item": "Bread", "category": "Bakery"}, 1)
        assert [i.item for i in shopping_db.list_by_owner(1, ListFilters(category="Dairy"))] == ["Milk"]

    def test_shopping_ignores_date_filters(self, shopping_db):
        shopping_db.create(ME, {"item": "Milk"}, 1)
        assert len(shopping_db.list_by_owner(1, ListFilters(on_date="2000-01-01"))) == 1


class TestSearchByName:
    def test_substring_case_insensitive_unpurchased_only(self, shopping_db):
        milk = shopping_db.create(ME, {"item": "Milk 3%"}, 1)
        bought = shopping_db.create(ME, {"item": "Oat milk"}, 1)
        shopping_db.mark_purchased(bought.id, 1)
        assert [i.id for i in shopping_db.search_by_name("milk", user_id=1)] == [milk.id]

    def test_restricted_to_group_when_given(self, shopping_db):
        shopping_db.create(ME, {"item": "Milk"}, 1)
        group_milk = shopping_db.create(Ownership(group_id=-100), {"item": "Milk"}, 1)
        found = shopping_db.search_by_name("Milk", user_id=1, group_id=-100)
        assert [i.id for i in found] == [group_milk.id]

    def test_no_context_returns_empty(self, shopping_db):
        shopping_db.create(ME, {"item": "Milk"}, 1)
        assert shopping_db.search_by_name("Milk") == []


class TestSchemaMigration:
    def test_adds_missing_columns_to_old_tables(self, tmp_db_path):
        with sqlite3.connect(tmp_db_path) as conn:
            conn.execute("""
                CREATE TABLE tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER, group_id INTEGER, assigned_user_ids TEXT,
                    task TEXT NOT NULL, priority TEXT NOT NULL DEFAULT 'medium',
                    deadline TEXT, completed INTEGER NOT NULL DEFAULT 0,
                    created_by INTEGER NOT NULL,
                    created_at TEXT NOT NULL, updated_at TEXT NOT NULL
                )
            """)
        from src.data.stores import TaskDB

        store = TaskDB(db_path=tmp_db_path)
        task = store.create(ME, {"task": "x"}, 1)
        assert store.mark_complete(task.id, 1).completed_by == 1


class TestSortRecords:
    def test_matches_task_store_order(self, task_db):
        for payload in (
            {"task": "a"},
            {"task": "b", "deadline": "2026-03-01 09:00:00", "priority": "low"},
            {"task": "c", "deadline": "2026-03-01 09:00:00", "priority": "high"},
            {"task": "d", "deadline": "2026-02-01 09:00:00"},
        ):
            task_db.create(ME, payload, 1)
        stored = task_db.list_by_owner(1)
        assert sort_records(RecordKind.TASK, list(reversed(stored))) == stored

    def test_undated_last_newest_first(self):
        older = Task(id=1, created_by=1, task="old", created_at="2026-01-01 00:00:00.000000")
        newer = Task(id=2, created_by=1, task="new", created_at="2026-01-02 00:00:00.000000")
        dated = Task(id=3, created_by=1, task="dated", deadline="2026-05-01 00:00:00")
        assert [t.id for t in sort_records(RecordKind.TASK, [older, dated, newer])] == [3, 2, 1]
