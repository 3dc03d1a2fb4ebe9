"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides stores that share one temp-file SQLite database.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("LANGUAGE", "en")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_homebase.db")


@pytest.fixture
def user_db(tmp_db_path):
    from src.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def group_db(tmp_db_path):
    from src.data.db import GroupDB
    return GroupDB(db_path=tmp_db_path)


@pytest.fixture
def audit_db(tmp_db_path):
    from src.data.db import AuditDB
    return AuditDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.stores import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def shopping_db(tmp_db_path):
    from src.data.stores import ShoppingDB
    return ShoppingDB(db_path=tmp_db_path)


@pytest.fixture
def event_db(tmp_db_path):
    from src.data.stores import EventDB
    return EventDB(db_path=tmp_db_path)


@pytest.fixture
def aggregator(task_db, shopping_db, event_db):
    from src.core.aggregator import ResultAggregator
    from src.data.models import RecordKind
    return ResultAggregator(
        {RecordKind.TASK: task_db, RecordKind.SHOPPING: shopping_db, RecordKind.EVENT: event_db},
        lang="en",
    )


@pytest.fixture
def resolver(user_db, group_db):
    from src.core.scope import ScopeResolver
    return ScopeResolver(user_db, group_db)


@pytest.fixture
def dispatcher(task_db, shopping_db, event_db, user_db, group_db, resolver, aggregator):
    """ActionDispatcher without a classifier; tests call dispatch() directly."""
    from src.core.dispatcher import ActionDispatcher
    return ActionDispatcher(
        task_db, shopping_db, event_db, user_db, group_db, resolver, aggregator, lang="en",
    )


@pytest.fixture
def household(user_db, group_db):
    """Group -100 with members Amit (1) and Dana (2); Noa (3) is outside it."""
    amit = user_db.add_user(1, username="amit", display_name="Amit Cohen")
    dana = user_db.add_user(2, username="dana_k", display_name="Dana")
    noa = user_db.add_user(3, username="noa", display_name="Noa")
    group = group_db.ensure_group(-100, "Home", "UTC")
    group_db.add_member(group.id, amit.id)
    group_db.add_member(group.id, dana.id)
    return {"amit": amit, "dana": dana, "noa": noa, "group": group}
