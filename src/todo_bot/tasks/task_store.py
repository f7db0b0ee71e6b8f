# tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .task_models import Recurrence, Task, TaskStatus, ViewTab, unique_users

logger = logging.getLogger(__name__)

# Columns that update_task_fields() may touch.
_UPDATABLE = frozenset(
    {"title", "note", "assigned_to", "watchers", "due_at", "reminder_at", "recurring", "channel_id"}
)

_IS_WATCHER = "EXISTS (SELECT 1 FROM json_each(tasks.watchers) WHERE json_each.value = ?)"


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Watchers are a JSON array column; membership queries use json_each().

    Thread-safety:
    - each method opens its own SQLite connection
    - every public method is a single statement or a single transaction
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    note TEXT,
                    status TEXT NOT NULL DEFAULT 'open',
                    created_by TEXT NOT NULL,
                    assigned_to TEXT NOT NULL,
                    watchers TEXT NOT NULL DEFAULT '[]',
                    due_at REAL,
                    reminder_at REAL,
                    recurring TEXT,
                    channel_id TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    completed_at REAL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("note", "TEXT")
            add_col("watchers", "TEXT NOT NULL DEFAULT '[]'")
            add_col("due_at", "REAL")
            add_col("reminder_at", "REAL")
            add_col("recurring", "TEXT")
            add_col("channel_id", "TEXT")
            add_col("updated_at", "REAL NOT NULL DEFAULT 0")
            add_col("completed_at", "REAL")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assigned_to, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(created_by, status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_reminder ON tasks(status, reminder_at)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _watchers_to_str(watchers: Iterable[str] | None) -> str:
        return json.dumps(unique_users(watchers), ensure_ascii=False)

    @staticmethod
    def _str_to_watchers(s: str | None) -> list[str]:
        if not s:
            return []
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Corrupt watchers column %r; treating as empty.", s)
            return []
        return unique_users(val) if isinstance(val, list) else []

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            status=TaskStatus.from_db(row["status"]),
            created_by=str(row["created_by"] or ""),
            assigned_to=str(row["assigned_to"] or ""),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            note=row["note"],
            watchers=self._str_to_watchers(row["watchers"]),
            due_at=float(row["due_at"]) if row["due_at"] is not None else None,
            reminder_at=float(row["reminder_at"]) if row["reminder_at"] is not None else None,
            recurring=Recurrence.parse(row["recurring"]),
            channel_id=row["channel_id"],
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
        )

    def _select(self, where: str, params: Iterable[Any], *, order: str, limit: int) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT * FROM tasks WHERE {where} ORDER BY {order} LIMIT ?",
                (*params, int(limit)),
            )
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)
        finally:
            conn.close()

    def add_task(
        self,
        *,
        title: str,
        created_by: str,
        assigned_to: str | None = None,
        watchers: Iterable[str] | None = None,
        note: str | None = None,
        due_at: float | None = None,
        reminder_at: float | None = None,
        recurring: Recurrence | None = None,
        channel_id: str | None = None,
        status: TaskStatus = TaskStatus.OPEN,
    ) -> int:
        if not title or not title.strip():
            raise ValueError("title is required")
        if not created_by:
            raise ValueError("created_by is required")

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    title, note, status, created_by, assigned_to, watchers,
                    due_at, reminder_at, recurring, channel_id,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    note,
                    status.value,
                    created_by,
                    assigned_to or created_by,
                    self._watchers_to_str(watchers),
                    due_at,
                    reminder_at,
                    recurring.value if recurring else None,
                    channel_id,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            logger.debug(
                "Task added id=%s owner=%s assignee=%s due_at=%s recurring=%s",
                task_id,
                created_by,
                assigned_to or created_by,
                due_at,
                recurring,
            )
            return task_id
        finally:
            conn.close()

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),))
            row = cur.fetchone()
            return self._row_to_task(row) if row else None
        finally:
            conn.close()

    def update_task_fields(self, task_id: int, **fields: Any) -> bool:
        """
        Update-by-id. Only keys in _UPDATABLE are accepted; None clears a column.

        Returns True if the row exists.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")

        sets: list[str] = []
        params: list[Any] = []
        for name, value in fields.items():
            if name == "watchers":
                value = self._watchers_to_str(value)
            elif name == "recurring" and value is not None:
                value = Recurrence(value).value
            elif name == "title":
                value = str(value).strip()
            sets.append(f"{name} = ?")
            params.append(value)

        if not sets:
            return self.get_task(task_id) is not None

        sets.append("updated_at = ?")
        params.append(time.time())
        params.append(int(task_id))

        conn = self._get_conn()
        try:
            cur = conn.execute(f"UPDATE tasks SET {', '.join(sets)} WHERE id = ?", params)
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def add_watcher(self, task_id: int, user_id: str) -> bool:
        """
        Append user_id to watchers unless already present (single statement).

        Returns True if the watcher was added.
        """
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"""
                UPDATE tasks
                SET watchers = json_insert(watchers, '$[#]', ?), updated_at = ?
                WHERE id = ?
                  AND NOT {_IS_WATCHER}
                """,
                (user_id, time.time(), int(task_id), user_id),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def transition_status(
        self,
        task_id: int,
        new_status: TaskStatus,
        *,
        expected: Iterable[TaskStatus],
    ) -> bool:
        """
        Atomically transitions:
          status IN expected -> status = new_status

        Returns True if the row was updated by this caller.
        """
        exp = [e.value for e in expected]
        if not exp:
            return False

        placeholders = ",".join("?" for _ in exp)
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"""
                UPDATE tasks
                SET status = ?, updated_at = ?
                WHERE id = ?
                  AND status IN ({placeholders})
                """,
                (new_status.value, time.time(), int(task_id), *exp),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def complete_task(
        self,
        task_id: int,
        *,
        completed_at: float,
        next_due_at: float | None = None,
    ) -> tuple[bool, int | None]:
        """
        open -> done, and for recurring tasks insert the successor, in one transaction.

        The successor clones title, owner, assignee, recurrence and channel; it is
        only inserted when the row still has `recurring` set.

        Returns (completed, successor_id). completed is False if the task was not open.
        """
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                UPDATE tasks
                SET status = 'done', completed_at = ?, updated_at = ?
                WHERE id = ?
                  AND status = 'open'
                """,
                (float(completed_at), float(completed_at), int(task_id)),
            )
            if cur.rowcount != 1:
                conn.rollback()
                return False, None

            successor_id: int | None = None
            if next_due_at is not None:
                now = time.time()
                cur.execute(
                    """
                    INSERT INTO tasks(
                        title, status, created_by, assigned_to, watchers,
                        recurring, channel_id, due_at, created_at, updated_at
                    )
                    SELECT title, 'open', created_by, assigned_to, '[]',
                           recurring, channel_id, ?, ?, ?
                    FROM tasks
                    WHERE id = ?
                      AND recurring IS NOT NULL
                    """,
                    (float(next_due_at), now, now, int(task_id)),
                )
                if cur.rowcount == 1 and cur.lastrowid is not None:
                    successor_id = int(cur.lastrowid)

            conn.commit()
            return True, successor_id
        finally:
            conn.close()

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def list_tasks(self, *, user_id: str, tab: ViewTab, limit: int = 50) -> list[Task]:
        """
        Role-based listing. Ordered oldest first (created_at ASC, id ASC).
        """
        if not user_id:
            return []

        involved = "(assigned_to = ? OR created_by = ?)"
        if tab == ViewTab.OPEN:
            where, params = f"status = 'open' AND {involved}", (user_id, user_id)
        elif tab == ViewTab.ASSIGNED:
            where, params = "status = 'open' AND assigned_to = ?", (user_id,)
        elif tab == ViewTab.COMPLETED:
            where, params = f"status = 'done' AND {involved}", (user_id, user_id)
        elif tab == ViewTab.ARCHIVED:
            where, params = f"status = 'archived' AND {involved}", (user_id, user_id)
        elif tab == ViewTab.DELEGATED:
            where, params = "status = 'open' AND created_by = ? AND assigned_to != ?", (user_id, user_id)
        elif tab == ViewTab.WATCHING:
            where, params = _IS_WATCHER, (user_id,)
        else:
            raise ValueError(f"Unknown view tab: {tab!r}")

        return self._select(where, params, order="created_at ASC, id ASC", limit=limit)

    def search_tasks(self, query: str, *, user_id: str | None = None, limit: int = 50) -> list[Task]:
        """
        Case-insensitive substring match on title, any status.
        With user_id, only tasks the user owns, is assigned or watches.
        """
        pattern = f"%{_escape_like(query.strip())}%"
        where = "title LIKE ? ESCAPE '\\'"
        params: list[Any] = [pattern]
        if user_id:
            where += f" AND (created_by = ? OR assigned_to = ? OR {_IS_WATCHER})"
            params.extend([user_id, user_id, user_id])
        return self._select(where, params, order="created_at ASC, id ASC", limit=limit)

    # ---- reminder dispatcher API ----

    def list_due_reminders(self, *, now_ts: float, limit: int = 32) -> list[Task]:
        """Open tasks whose reminder_at is set and <= now_ts, earliest first."""
        return self._select(
            "status = 'open' AND reminder_at IS NOT NULL AND reminder_at <= ?",
            (float(now_ts),),
            order="reminder_at ASC, id ASC",
            limit=limit,
        )

    def try_claim_reminder(self, task_id: int, *, expected_at: float) -> bool:
        """
        Best-effort claim to avoid duplicate delivery.

        Atomically clears reminder_at if it still holds the value the caller saw.
        Returns True if the reminder was claimed by this caller.
        """
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE tasks
                SET reminder_at = NULL, updated_at = ?
                WHERE id = ?
                  AND reminder_at = ?
                """,
                (time.time(), int(task_id), float(expected_at)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()

    def reschedule_reminder(self, task_id: int, reminder_at: float) -> bool:
        """Restore a claimed reminder unless someone set a new one meanwhile."""
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE tasks
                SET reminder_at = ?, updated_at = ?
                WHERE id = ?
                  AND reminder_at IS NULL
                  AND status = 'open'
                """,
                (float(reminder_at), time.time(), int(task_id)),
            )
            conn.commit()
            return cur.rowcount == 1
        finally:
            conn.close()
