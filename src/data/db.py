"""
HomeBase Assistant — User, Group and Audit Database.

Users and groups mirror the chat platform's identities and are upserted on
every inbound message. The audit tables record each message and each
classifier call; nothing in the dispatch pipeline depends on them.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import Group, User

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as a sortable string with microseconds."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")


class SQLiteDB:
    """Shared connection handling: one short-lived connection per operation."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


_USERS_DDL = """
    CREATE TABLE IF NOT EXISTS users (
        id            INTEGER PRIMARY KEY,
        username      TEXT,
        display_name  TEXT,
        custom_name   TEXT,
        timezone      TEXT NOT NULL DEFAULT 'UTC',
        created_at    TEXT NOT NULL,
        updated_at    TEXT NOT NULL
    )
"""


class UserDB(SQLiteDB):
    """SQLite-backed storage for chat users."""

    _UPDATABLE = ("username", "display_name", "custom_name", "timezone")

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(_USERS_DDL)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(users)").fetchall()
            }
            if "timezone" not in existing_cols:
                conn.execute(
                    "ALTER TABLE users ADD COLUMN timezone TEXT NOT NULL DEFAULT 'UTC'"
                )
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            display_name=row["display_name"],
            custom_name=row["custom_name"],
            timezone=row["timezone"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def add_user(
        self,
        user_id: int,
        username: str | None = None,
        display_name: str | None = None,
        custom_name: str | None = None,
        timezone: str = "UTC",
    ) -> User:
        """Register a new user. Raises sqlite3.IntegrityError on a duplicate id."""
        now = utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users
                    (id, username, display_name, custom_name, timezone, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, username, display_name, custom_name, timezone, now, now),
            )
        logger.info("User registered: %d '%s'", user_id, display_name or username or "")
        return User(
            id=user_id,
            username=username,
            display_name=display_name,
            custom_name=custom_name,
            timezone=timezone,
            created_at=now,
            updated_at=now,
        )

    def get_user(self, user_id: int) -> User | None:
        """Fetch a user by platform user id."""
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_users(self, user_ids: list[int]) -> list[User]:
        """Fetch several users, in id order. Unknown ids are skipped."""
        if not user_ids:
            return []
        placeholders = ",".join("?" for _ in user_ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders}) ORDER BY id",
                list(user_ids),
            ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields: str | None) -> User | None:
        """Apply only the given fields. Returns the updated user, or None if unknown."""
        unknown = set(fields) - set(self._UPDATABLE)
        if unknown:
            raise ValueError(f"Cannot update user fields: {', '.join(sorted(unknown))}")
        if not fields:
            return self.get_user(user_id)

        assignments = ", ".join(f"{col} = ?" for col in fields)
        params = [*fields.values(), utc_now(), user_id]
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE users SET {assignments}, updated_at = ? WHERE id = ?",
                params,
            )
        if cursor.rowcount == 0:
            return None
        return self.get_user(user_id)

    def ensure_user(
        self,
        user_id: int,
        username: str | None,
        display_name: str | None,
        default_timezone: str = "UTC",
    ) -> tuple[User, bool]:
        """Create the user on first contact, else refresh platform-provided names.

        Returns (user, is_new).
        """
        user = self.get_user(user_id)
        if user is None:
            return self.add_user(
                user_id, username=username, display_name=display_name,
                timezone=default_timezone,
            ), True

        changes: dict[str, str | None] = {}
        if username != user.username:
            changes["username"] = username
        if display_name != user.display_name:
            changes["display_name"] = display_name
        if changes:
            user = self.update_user(user_id, **changes) or user
        return user, False

    def find_by_name(self, name: str) -> User | None:
        """Exact, case-sensitive match on custom name, display name or username."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM users
                WHERE custom_name = ? OR display_name = ? OR username = ?
                ORDER BY CASE
                    WHEN custom_name = ? THEN 0
                    WHEN display_name = ? THEN 1
                    ELSE 2
                END, id
                LIMIT 1
                """,
                (name, name, name, name, name),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)


class GroupDB(SQLiteDB):
    """SQLite-backed storage for group chats and their members."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(_USERS_DDL)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS groups (
                    id          INTEGER PRIMARY KEY,
                    title       TEXT,
                    timezone    TEXT NOT NULL DEFAULT 'UTC',
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS group_members (
                    group_id   INTEGER NOT NULL,
                    user_id    INTEGER NOT NULL,
                    joined_at  TEXT    NOT NULL,
                    UNIQUE (group_id, user_id)
                )
            """)
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(groups)").fetchall()
            }
            if "timezone" not in existing_cols:
                conn.execute(
                    "ALTER TABLE groups ADD COLUMN timezone TEXT NOT NULL DEFAULT 'UTC'"
                )
        logger.debug("Groups tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_group(row: sqlite3.Row) -> Group:
        return Group(
            id=row["id"],
            title=row["title"],
            timezone=row["timezone"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def get_group(self, group_id: int) -> Group | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM groups WHERE id = ?", (group_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_group(row)

    def ensure_group(
        self, group_id: int, title: str | None, default_timezone: str = "UTC",
    ) -> Group:
        """Create the group on first contact, else refresh its title."""
        group = self.get_group(group_id)
        now = utc_now()
        if group is None:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO groups (id, title, timezone, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (group_id, title, default_timezone, now, now),
                )
            logger.info("Group registered: %d '%s'", group_id, title or "")
            return Group(
                id=group_id, title=title, timezone=default_timezone,
                created_at=now, updated_at=now,
            )

        if title and title != group.title:
            with self._connect() as conn:
                conn.execute(
                    "UPDATE groups SET title = ?, updated_at = ? WHERE id = ?",
                    (title, now, group_id),
                )
            group.title = title
            group.updated_at = now
        return group

    def set_timezone(self, group_id: int, tz_name: str) -> Group | None:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE groups SET timezone = ?, updated_at = ? WHERE id = ?",
                (tz_name, utc_now(), group_id),
            )
        if cursor.rowcount == 0:
            return None
        logger.info("Group %d timezone set to %s", group_id, tz_name)
        return self.get_group(group_id)

    def list_groups(self) -> list[Group]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM groups ORDER BY created_at").fetchall()
        return [self._row_to_group(r) for r in rows]

    def add_member(self, group_id: int, user_id: int) -> bool:
        """Join a user to a group. Idempotent; returns True only on the first join."""
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
                (group_id, user_id, utc_now()),
            )
        joined = cursor.rowcount > 0
        if joined:
            logger.info("User %d joined group %d", user_id, group_id)
        return joined

    def remove_member(self, group_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM group_members WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            )
        return cursor.rowcount > 0

    def is_member(self, group_id: int, user_id: int) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            ).fetchone()
        return row is not None

    def get_members(self, group_id: int) -> list[User]:
        """Return the group's members, in join order."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT u.* FROM users u
                JOIN group_members gm ON gm.user_id = u.id
                WHERE gm.group_id = ?
                ORDER BY gm.joined_at, u.id
                """,
                (group_id,),
            ).fetchall()
        return [UserDB._row_to_user(r) for r in rows]


class AuditDB(SQLiteDB):
    """Append-only record of inbound messages and classifier calls."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS message_audit (
                    id            INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_id    INTEGER NOT NULL,
                    user_id       INTEGER NOT NULL,
                    group_id      INTEGER,
                    chat_id       INTEGER NOT NULL,
                    message_text  TEXT    NOT NULL,
                    message_type  TEXT    NOT NULL DEFAULT 'text',
                    received_at   TEXT    NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS llm_audit (
                    id                INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_audit_id  INTEGER,
                    user_id           INTEGER NOT NULL,
                    group_id          INTEGER,
                    prompt            TEXT    NOT NULL,
                    llm_response      TEXT    NOT NULL,
                    parsed_action     TEXT,
                    model             TEXT,
                    response_time_ms  INTEGER,
                    error             TEXT,
                    created_at        TEXT    NOT NULL
                )
            """)
        logger.debug("Audit tables initialized at %s", self._db_path)

    def log_message(
        self,
        message_id: int,
        user_id: int,
        group_id: int | None,
        chat_id: int,
        message_text: str,
        message_type: str = "text",
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO message_audit
                    (message_id, user_id, group_id, chat_id, message_text, message_type, received_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (message_id, user_id, group_id, chat_id, message_text, message_type, utc_now()),
            )
        return cursor.lastrowid

    def log_llm(
        self,
        message_audit_id: int | None,
        user_id: int,
        group_id: int | None,
        prompt: str,
        llm_response: str,
        parsed_action: dict | None = None,
        model: str | None = None,
        response_time_ms: int | None = None,
        error: str | None = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO llm_audit
                    (message_audit_id, user_id, group_id, prompt, llm_response,
                     parsed_action, model, response_time_ms, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message_audit_id, user_id, group_id, prompt, llm_response,
                    json.dumps(parsed_action, ensure_ascii=False) if parsed_action is not None else None,
                    model, response_time_ms, error, utc_now(),
                ),
            )
        return cursor.lastrowid

    def get_message(self, audit_id: int) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM message_audit WHERE id = ?", (audit_id,)
            ).fetchone()
        return dict(row) if row is not None else None

    def list_llm_calls(self, user_id: int, limit: int = 100) -> list[dict]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM llm_audit WHERE user_id = ? ORDER BY id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    def private_chat_recipients(self) -> list[tuple[int, int]]:
        """(user_id, chat_id) of each user's most recent private-chat message."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.user_id, m.chat_id FROM message_audit m
                WHERE m.group_id IS NULL
                  AND m.id = (
                      SELECT MAX(id) FROM message_audit
                      WHERE user_id = m.user_id AND group_id IS NULL
                  )
                ORDER BY m.user_id
                """
            ).fetchall()
        return [(r["user_id"], r["chat_id"]) for r in rows]
