"""
HomeBase Assistant — Entity Stores.

One store per record kind (tasks, shopping items, calendar events), all
sharing the same contract: create / get / list_by_owner / list_by_group /
list_by_assignee / update / delete, plus the kind's completion operation.

Assignee ids are stored as a JSON array and read back as the identical
ordered list of ints. Every operation is a single statement or a fixed
insert-then-fetch on its own connection; concurrent writers to the same row
are settled by last-write-wins.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from src.core.errors import ValidationError
from src.data.db import SQLiteDB, utc_now
from src.data.models import (
    PRIORITY_RANK,
    Event,
    ListFilters,
    Ownership,
    Priority,
    RecordKind,
    ShoppingItem,
    Task,
    _Record,
)

logger = logging.getLogger(__name__)

_OWNERSHIP_COLUMNS = ("user_id", "group_id", "assigned_user_ids")


def _encode_assignees(ids: list[int] | tuple[int, ...] | None) -> str | None:
    if not ids:
        return None
    return json.dumps([int(i) for i in ids])


def _decode_assignees(raw: str | None) -> list[int] | None:
    if raw is None or raw == "":
        return None
    return [int(i) for i in json.loads(raw)]


class EntityStore(SQLiteDB):
    """Shared CRUD and filtered listing for one record kind.

    Subclasses declare the table, its payload columns, the mandatory fields,
    the completion columns (if any), the date column used by date filters
    and the ORDER BY clause.
    """

    kind: RecordKind
    _table: str = ""
    _model: type[_Record] = _Record
    _ddl: str = ""
    _payload_columns: tuple[str, ...] = ()
    _required: tuple[str, ...] = ()
    _done_column: str | None = None
    _done_by_column: str | None = None
    _date_column: str | None = None
    _order_by: str = "id"

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(self._ddl)
            self._migrate(conn)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._table}_user ON {self._table}(user_id)"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._table}_group ON {self._table}(group_id)"
            )
        logger.debug("%s table initialized at %s", self._table, self._db_path)

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Add columns introduced after the table's first release."""

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _row_to_record(self, row: sqlite3.Row) -> _Record:
        data = dict(row)
        data["assigned_user_ids"] = _decode_assignees(data.get("assigned_user_ids"))
        if self._done_column:
            data[self._done_column] = bool(data[self._done_column])
        return self._model(**data)

    def _validate_payload(self, payload: dict[str, Any]) -> None:
        unknown = set(payload) - set(self._payload_columns)
        if unknown:
            raise ValidationError(
                f"Unknown {self.kind.value} field(s): {', '.join(sorted(unknown))}"
            )
        for name in self._required:
            value = payload.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{self.kind.value}: '{name}' is required")

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self, ownership: Ownership, payload: dict[str, Any], created_by: int,
    ) -> _Record:
        """Insert a new record and return it as stored."""
        if ownership.is_empty():
            raise ValidationError(
                f"{self.kind.value}: a record needs an owner, a group or assignees"
            )
        self._validate_payload(payload)

        now = utc_now()
        columns = [
            "user_id", "group_id", "assigned_user_ids", "created_by",
            *payload.keys(), "created_at", "updated_at",
        ]
        values = [
            ownership.user_id,
            ownership.group_id,
            _encode_assignees(ownership.assigned_user_ids),
            created_by,
            *payload.values(),
            now,
            now,
        ]
        placeholders = ", ".join("?" for _ in columns)
        with self._connect() as conn:
            cursor = conn.execute(
                f"INSERT INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            record_id = cursor.lastrowid
            row = conn.execute(
                f"SELECT * FROM {self._table} WHERE id = ?", (record_id,)
            ).fetchone()
        logger.info("%s #%d created by %d", self.kind.value, record_id, created_by)
        return self._row_to_record(row)

    def get(self, record_id: int) -> _Record | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {self._table} WHERE id = ?", (record_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def update(self, record_id: int, fields: dict[str, Any]) -> _Record | None:
        """Apply only the supplied fields. Returns None if the record does not exist.

        An empty ``fields`` dict is a no-op that returns the current record.
        """
        allowed = set(self._payload_columns) | set(_OWNERSHIP_COLUMNS)
        if self._done_column:
            allowed |= {self._done_column, self._done_by_column}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(
                f"Unknown {self.kind.value} field(s): {', '.join(sorted(unknown))}"
            )
        if not fields:
            return self.get(record_id)

        for name in self._required:
            if name in fields and (fields[name] is None or str(fields[name]).strip() == ""):
                raise ValidationError(f"{self.kind.value}: '{name}' cannot be empty")

        values = []
        for name, value in fields.items():
            if name == "assigned_user_ids":
                value = _encode_assignees(value)
            elif name == self._done_column:
                value = int(bool(value))
            values.append(value)

        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE {self._table} SET {assignments}, updated_at = ? WHERE id = ?",
                [*values, utc_now(), record_id],
            )
        if cursor.rowcount == 0:
            return None
        logger.info("%s #%d updated: %s", self.kind.value, record_id, ", ".join(fields))
        return self.get(record_id)

    def delete(self, record_id: int) -> bool:
        """Hard-delete a record. Returns False if nothing was removed."""
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self._table} WHERE id = ?", (record_id,)
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("%s #%d deleted", self.kind.value, record_id)
        return deleted

    def _mark_done(self, record_id: int, actor_id: int) -> _Record | None:
        return self.update(
            record_id, {self._done_column: True, self._done_by_column: actor_id}
        )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_by_owner(self, user_id: int, filters: ListFilters | None = None) -> list[_Record]:
        """Records personally owned by ``user_id``."""
        return self._list("user_id = ?", [user_id], filters)

    def list_by_group(self, group_id: int, filters: ListFilters | None = None) -> list[_Record]:
        """Records owned by ``group_id``."""
        return self._list("group_id = ?", [group_id], filters)

    def list_by_assignee(self, user_id: int, filters: ListFilters | None = None) -> list[_Record]:
        """Records whose assignee list contains ``user_id``."""
        return self._list(
            f"EXISTS (SELECT 1 FROM json_each({self._table}.assigned_user_ids)"
            " WHERE json_each.value = ?)",
            [user_id],
            filters,
        )

    def _list(
        self, where: str, params: list[Any], filters: ListFilters | None,
    ) -> list[_Record]:
        filters = filters or ListFilters()
        clauses = [where]
        params = list(params)

        if self._done_column and not filters.include_done:
            clauses.append(f"{self._done_column} = 0")

        if self._date_column:
            if filters.on_date:
                clauses.append(f"substr({self._date_column}, 1, 10) = ?")
                params.append(filters.on_date)
            if filters.start:
                clauses.append(f"{self._date_column} >= ?")
                params.append(filters.start)
            if filters.end:
                clauses.append(f"{self._date_column} <= ?")
                params.append(filters.end)

        if filters.category and "category" in self._payload_columns:
            clauses.append("category = ?")
            params.append(filters.category)

        sql = (
            f"SELECT * FROM {self._table} WHERE {' AND '.join(clauses)}"
            f" ORDER BY {self._order_by}"
        )
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_record(r) for r in rows]


# ----------------------------------------------------------------------
# Tasks
# ----------------------------------------------------------------------

class TaskDB(EntityStore):
    """SQLite-backed task storage."""

    kind = RecordKind.TASK
    _table = "tasks"
    _model = Task
    _ddl = """
        CREATE TABLE IF NOT EXISTS tasks (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id            INTEGER,
            group_id           INTEGER,
            assigned_user_ids  TEXT,
            task               TEXT    NOT NULL,
            priority           TEXT    NOT NULL DEFAULT 'medium',
            deadline           TEXT,
            completed          INTEGER NOT NULL DEFAULT 0,
            completed_by       INTEGER,
            created_by         INTEGER NOT NULL,
            created_at         TEXT    NOT NULL,
            updated_at         TEXT    NOT NULL
        )
    """
    _payload_columns = ("task", "priority", "deadline")
    _required = ("task",)
    _done_column = "completed"
    _done_by_column = "completed_by"
    _date_column = "deadline"
    _order_by = (
        "deadline IS NULL, deadline ASC, "
        "CASE priority WHEN 'high' THEN 3 WHEN 'medium' THEN 2 ELSE 1 END DESC, "
        "created_at DESC, id DESC"
    )

    def _migrate(self, conn: sqlite3.Connection) -> None:
        existing_cols = {
            row[1] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()
        }
        if "completed_by" not in existing_cols:
            conn.execute("ALTER TABLE tasks ADD COLUMN completed_by INTEGER")

    def _validate_payload(self, payload: dict[str, Any]) -> None:
        super()._validate_payload(payload)
        _check_priority(payload)

    def update(self, record_id: int, fields: dict[str, Any]) -> Task | None:
        _check_priority(fields)
        return super().update(record_id, fields)

    def mark_complete(self, record_id: int, actor_id: int) -> Task | None:
        """Set the completed flag and record who completed it."""
        return self._mark_done(record_id, actor_id)


def _check_priority(fields: dict[str, Any]) -> None:
    if "priority" in fields and fields["priority"] not in PRIORITY_RANK:
        allowed = ", ".join(p.value for p in Priority)
        raise ValidationError(
            f"Invalid priority {fields['priority']!r}. Use one of: {allowed}"
        )


# ----------------------------------------------------------------------
# Shopping
# ----------------------------------------------------------------------

class ShoppingDB(EntityStore):
    """SQLite-backed shopping list storage."""

    kind = RecordKind.SHOPPING
    _table = "shopping_items"
    _model = ShoppingItem
    _ddl = """
        CREATE TABLE IF NOT EXISTS shopping_items (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id            INTEGER,
            group_id           INTEGER,
            assigned_user_ids  TEXT,
            item               TEXT    NOT NULL,
            category           TEXT,
            amount             TEXT,
            purchased          INTEGER NOT NULL DEFAULT 0,
            purchased_by       INTEGER,
            created_by         INTEGER NOT NULL,
            created_at         TEXT    NOT NULL,
            updated_at         TEXT    NOT NULL
        )
    """
    _payload_columns = ("item", "category", "amount")
    _required = ("item",)
    _done_column = "purchased"
    _done_by_column = "purchased_by"
    _order_by = "category IS NULL, category ASC, created_at DESC, id DESC"

    def _migrate(self, conn: sqlite3.Connection) -> None:
        existing_cols = {
            row[1] for row in conn.execute("PRAGMA table_info(shopping_items)").fetchall()
        }
        if "amount" not in existing_cols:
            conn.execute("ALTER TABLE shopping_items ADD COLUMN amount TEXT")

    def mark_purchased(self, record_id: int, actor_id: int) -> ShoppingItem | None:
        """Set the purchased flag and record the purchaser."""
        return self._mark_done(record_id, actor_id)

    def search_by_name(
        self, name: str, user_id: int | None = None, group_id: int | None = None,
    ) -> list[ShoppingItem]:
        """Unpurchased items whose name contains ``name`` (case-insensitive).

        Restricted to the group when ``group_id`` is given, else to the
        user's personal list.
        """
        if group_id is not None:
            where, params = "group_id = ?", [group_id]
        elif user_id is not None:
            where, params = "user_id = ?", [user_id]
        else:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM shopping_items
                WHERE {where} AND purchased = 0 AND item LIKE ?
                ORDER BY created_at DESC, id DESC
                """,
                [*params, f"%{name.strip()}%"],
            ).fetchall()
        return [self._row_to_record(r) for r in rows]


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

class EventDB(EntityStore):
    """SQLite-backed calendar event storage."""

    kind = RecordKind.EVENT
    _table = "events"
    _model = Event
    _ddl = """
        CREATE TABLE IF NOT EXISTS events (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id            INTEGER,
            group_id           INTEGER,
            assigned_user_ids  TEXT,
            title              TEXT    NOT NULL,
            description        TEXT,
            start_time         TEXT    NOT NULL,
            end_time           TEXT,
            created_by         INTEGER NOT NULL,
            created_at         TEXT    NOT NULL,
            updated_at         TEXT    NOT NULL
        )
    """
    _payload_columns = ("title", "description", "start_time", "end_time")
    _required = ("title", "start_time")
    _date_column = "start_time"
    _order_by = "start_time ASC, id ASC"


# ----------------------------------------------------------------------
# In-memory ordering, identical to each store's ORDER BY
# ----------------------------------------------------------------------

def sort_records(kind: RecordKind, records: list[_Record]) -> list[_Record]:
    """Sort merged records the way the store for ``kind`` orders them."""
    ordered = list(records)
    if kind is RecordKind.EVENT:
        ordered.sort(key=lambda r: (r.start_time, r.id))
        return ordered

    # Newest first as the innermost key; the outer sort is stable.
    ordered.sort(key=lambda r: (r.created_at, r.id), reverse=True)
    if kind is RecordKind.TASK:
        ordered.sort(key=lambda r: (
            r.deadline is None,
            r.deadline or "",
            -PRIORITY_RANK.get(r.priority, 1),
        ))
    else:
        ordered.sort(key=lambda r: (r.category is None, r.category or ""))
    return ordered
