"""Tests for src.data.models — users, ownership and record dataclasses."""

from src.data.models import (
    ListFilters,
    Ownership,
    Priority,
    RecordKind,
    ShoppingItem,
    Task,
    User,
)


def test_resolved_name_prefers_custom_name():
    user = User(id=1, username="amit", display_name="Amit Cohen", custom_name="Abba")
    assert user.resolved_name == "Abba"


def test_resolved_name_falls_back_in_order():
    assert User(id=1, username="amit", display_name="Amit Cohen").resolved_name == "Amit Cohen"
    assert User(id=1, username="amit").resolved_name == "amit"
    assert User(id=7).resolved_name == "User 7"


def test_ownership_is_empty():
    assert Ownership().is_empty()
    assert Ownership(assigned_user_ids=()).is_empty()
    assert not Ownership(user_id=1).is_empty()
    assert not Ownership(group_id=-5).is_empty()
    assert not Ownership(assigned_user_ids=(1, 2)).is_empty()


def test_record_ownership_property():
    task = Task(id=1, created_by=1, group_id=-5, assigned_user_ids=[1, 2], task="x")
    assert task.ownership == Ownership(None, -5, (1, 2))


def test_task_defaults():
    task = Task(id=1, created_by=1, user_id=1, task="Pay bill")
    assert task.priority == Priority.MEDIUM.value
    assert task.deadline is None
    assert task.completed is False
    assert task.completed_by is None


def test_shopping_item_defaults():
    item = ShoppingItem(id=1, created_by=1, user_id=1, item="Milk")
    assert item.category is None
    assert item.amount is None
    assert item.purchased is False


def test_record_kind_values():
    assert RecordKind("task") is RecordKind.TASK
    assert RecordKind.SHOPPING.value == "shopping"
    assert RecordKind.EVENT == "event"


def test_list_filters_defaults():
    filters = ListFilters()
    assert filters.include_done is False
    assert filters.on_date is None
    assert filters.start is None and filters.end is None
    assert filters.category is None
