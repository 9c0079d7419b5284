"""SQLite-backed repository for users, tasks, calendar sources and agents."""

from __future__ import annotations

import datetime
import json
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional

import aiosqlite

from taskboard.calendars.models import (
    DEFAULT_SOURCE_COLOR,
    DEFAULT_SOURCE_TYPE,
    CalendarSource,
)
from taskboard.tasks.models import Task, TaskPriority, TaskStatus
from taskboard.utils.datetime_utils import ensure_utc, normalize_rfc3339, parse_db_timestamp

logger = logging.getLogger(__name__)

CALENDAR_SOURCES_TABLE = "calendar_sources"

_TASK_COLUMNS = frozenset(
    {
        "user_id",
        "title",
        "description",
        "status",
        "priority",
        "due_date",
        "is_recurring",
        "recurrence_pattern",
    }
)
_USER_COLUMNS = frozenset({"email", "full_name", "is_admin", "is_active"})
_AGENT_COLUMNS = frozenset(
    {"name", "description", "url", "open_in_new_window", "is_active"}
)


class StoreError(RuntimeError):
    """Raised when the database rejects an operation."""


class SchemaNotProvisionedError(StoreError):
    """Raised when a table the operation needs has not been created."""

    def __init__(self, table: str):
        super().__init__(f"Database table '{table}' is missing")
        self.table = table


class DuplicateRecordError(StoreError):
    """Raised when an insert violates a uniqueness constraint."""


@dataclass(slots=True)
class User:
    """A member of the workspace; admins may act on other users' data."""

    id: str
    email: str
    full_name: Optional[str] = None
    is_admin: bool = False
    is_active: bool = True
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "is_admin": self.is_admin,
            "is_active": self.is_active,
            "created_at": normalize_rfc3339(self.created_at),
        }


@dataclass(slots=True)
class Agent:
    """A link tile to an external assistant, managed by admins."""

    id: str
    name: str
    url: str
    description: Optional[str] = None
    open_in_new_window: bool = False
    is_active: bool = True
    created_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "open_in_new_window": self.open_in_new_window,
            "is_active": self.is_active,
            "created_at": normalize_rfc3339(self.created_at),
        }


def _to_db_timestamp(value: datetime.datetime) -> str:
    # Fixed-width UTC strings so that SQL comparisons order chronologically.
    return ensure_utc(value).isoformat(timespec="microseconds")


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _encode_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime.datetime):
        return _to_db_timestamp(value)
    if isinstance(value, dict):
        return json.dumps(value)
    return value


def _decode_pattern(value: str | None) -> Optional[dict[str, Any]]:
    if value is None:
        return None
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        # Legacy rows hold the bare frequency name.
        return {"type": value}
    if isinstance(decoded, str):
        return {"type": decoded}
    return decoded if isinstance(decoded, dict) else None


@contextmanager
def _store_errors(table: str) -> Iterator[None]:
    """Translate sqlite failures into the store's error hierarchy."""

    try:
        yield
    except aiosqlite.IntegrityError as exc:
        raise DuplicateRecordError(str(exc)) from exc
    except aiosqlite.OperationalError as exc:
        if "no such table" in str(exc).lower():
            raise SchemaNotProvisionedError(table) from exc
        raise StoreError(str(exc)) from exc
    except aiosqlite.DatabaseError as exc:
        raise StoreError(str(exc)) from exc


class TaskRepository:
    """Persist and retrieve taskboard records from SQLite."""

    def __init__(
        self,
        database_path: Path,
        *,
        provision_calendar_sources: bool = True,
    ):
        self._path = database_path
        self._provision_calendar_sources = provision_calendar_sources
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL UNIQUE,
                full_name TEXT,
                is_admin INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                title TEXT NOT NULL,
                description TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                priority TEXT NOT NULL DEFAULT 'medium',
                due_date TEXT,
                is_recurring INTEGER NOT NULL DEFAULT 0,
                recurrence_pattern TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS agents (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                url TEXT NOT NULL,
                open_in_new_window INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS notification_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                recipient TEXT NOT NULL,
                type TEXT NOT NULL,
                status TEXT NOT NULL,
                subject TEXT,
                message TEXT,
                task_id TEXT,
                sent_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_user_id ON tasks(user_id);
            CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date);
            """
        )
        if self._provision_calendar_sources:
            await self._connection.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS {CALENDAR_SOURCES_TABLE} (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                    name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    type TEXT NOT NULL DEFAULT '{DEFAULT_SOURCE_TYPE}',
                    color TEXT NOT NULL DEFAULT '{DEFAULT_SOURCE_COLOR}',
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_calendar_sources_user_id
                    ON {CALENDAR_SOURCES_TABLE}(user_id);
                """
            )
        else:
            logger.warning(
                "Calendar source table provisioning disabled; "
                "calendar views will only show tasks until it exists"
            )
        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _conn(self) -> aiosqlite.Connection:
        assert self._connection is not None, "repository is not initialized"
        return self._connection

    async def _fetchall(
        self, table: str, query: str, params: tuple[Any, ...] = ()
    ) -> list[aiosqlite.Row]:
        with _store_errors(table):
            cursor = await self._conn().execute(query, params)
            rows = await cursor.fetchall()
            await cursor.close()
        return list(rows)

    async def _fetchone(
        self, table: str, query: str, params: tuple[Any, ...] = ()
    ) -> aiosqlite.Row | None:
        with _store_errors(table):
            cursor = await self._conn().execute(query, params)
            row = await cursor.fetchone()
            await cursor.close()
        return row

    async def _write(self, table: str, query: str, params: tuple[Any, ...] = ()) -> int:
        """Execute a write and commit; return the affected row count."""
        with _store_errors(table):
            cursor = await self._conn().execute(query, params)
            affected = cursor.rowcount
            await cursor.close()
            await self._conn().commit()
        return affected

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            full_name=row["full_name"],
            is_admin=bool(row["is_admin"]),
            is_active=bool(row["is_active"]),
            created_at=parse_db_timestamp(row["created_at"]) or _now(),
        )

    async def create_user(
        self,
        email: str,
        *,
        full_name: Optional[str] = None,
        is_admin: bool = False,
        is_active: bool = True,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email.strip().lower(),
            full_name=full_name,
            is_admin=is_admin,
            is_active=is_active,
        )
        await self._write(
            "users",
            """
            INSERT INTO users (id, email, full_name, is_admin, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user.id,
                user.email,
                user.full_name,
                int(user.is_admin),
                int(user.is_active),
                _to_db_timestamp(user.created_at),
            ),
        )
        return user

    async def get_user(self, user_id: str) -> User | None:
        row = await self._fetchone("users", "SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(row) if row is not None else None

    async def list_users(self, *, active_only: bool = False) -> list[User]:
        query = "SELECT * FROM users"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC"
        rows = await self._fetchall("users", query)
        return [self._row_to_user(row) for row in rows]

    async def update_user(self, user_id: str, changes: Mapping[str, Any]) -> User | None:
        await self._update_columns("users", _USER_COLUMNS, user_id, changes)
        return await self.get_user(user_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=TaskPriority(row["priority"]),
            due_date=parse_db_timestamp(row["due_date"]),
            is_recurring=bool(row["is_recurring"]),
            recurrence_pattern=_decode_pattern(row["recurrence_pattern"]),
            created_at=parse_db_timestamp(row["created_at"]) or _now(),
            updated_at=parse_db_timestamp(row["updated_at"]) or _now(),
        )

    async def insert_task(self, task: Task) -> Task:
        """Insert ``task`` exactly as given, including its identifier."""

        await self._write(
            "tasks",
            """
            INSERT INTO tasks (
                id, user_id, title, description, status, priority, due_date,
                is_recurring, recurrence_pattern, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.user_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                _to_db_timestamp(task.due_date) if task.due_date else None,
                int(task.is_recurring),
                json.dumps(task.recurrence_pattern)
                if task.recurrence_pattern is not None
                else None,
                _to_db_timestamp(task.created_at),
                _to_db_timestamp(task.updated_at),
            ),
        )
        return task

    async def get_task(self, task_id: str) -> Task | None:
        row = await self._fetchone("tasks", "SELECT * FROM tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row is not None else None

    async def list_tasks(self, user_id: str) -> list[Task]:
        """Return a user's tasks, newest first."""
        rows = await self._fetchall(
            "tasks",
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [self._row_to_task(row) for row in rows]

    async def list_scheduled_tasks(self, user_id: str) -> list[Task]:
        """Return a user's tasks that carry a due date."""
        rows = await self._fetchall(
            "tasks",
            """
            SELECT * FROM tasks
            WHERE user_id = ? AND due_date IS NOT NULL
            ORDER BY due_date ASC
            """,
            (user_id,),
        )
        return [self._row_to_task(row) for row in rows]

    async def list_open_tasks_due_by(
        self, user_id: str, cutoff: datetime.datetime
    ) -> list[Task]:
        """Return tasks still open whose due date is at or before ``cutoff``."""
        rows = await self._fetchall(
            "tasks",
            """
            SELECT * FROM tasks
            WHERE user_id = ?
              AND status NOT IN (?, ?)
              AND due_date IS NOT NULL
              AND due_date <= ?
            ORDER BY due_date ASC
            """,
            (
                user_id,
                TaskStatus.COMPLETED.value,
                TaskStatus.CANCELLED.value,
                _to_db_timestamp(cutoff),
            ),
        )
        return [self._row_to_task(row) for row in rows]

    async def update_task(
        self,
        task_id: str,
        changes: Mapping[str, Any],
        *,
        unless_status: TaskStatus | None = None,
    ) -> bool:
        """Apply ``changes`` to a task; return False when no row was updated.

        With ``unless_status`` the update only applies while the stored status
        differs from it, which makes status transitions race-free.
        """

        return await self._update_columns(
            "tasks",
            _TASK_COLUMNS,
            task_id,
            changes,
            touch="updated_at",
            unless_status=unless_status,
        )

    async def delete_task(self, task_id: str) -> bool:
        deleted = await self._write("tasks", "DELETE FROM tasks WHERE id = ?", (task_id,))
        return bool(deleted)

    # ------------------------------------------------------------------
    # Calendar sources
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_source(row: aiosqlite.Row) -> CalendarSource:
        return CalendarSource(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            url=row["url"],
            type=row["type"],
            color=row["color"],
            created_at=parse_db_timestamp(row["created_at"]) or _now(),
        )

    async def list_calendar_sources(
        self, user_id: str, *, newest_first: bool = True
    ) -> list[CalendarSource]:
        """Return a user's sources, newest first or in registration order.

        Raises:
            SchemaNotProvisionedError: when the sources table does not exist.
        """
        order = "DESC" if newest_first else "ASC"
        rows = await self._fetchall(
            CALENDAR_SOURCES_TABLE,
            f"""
            SELECT * FROM {CALENDAR_SOURCES_TABLE}
            WHERE user_id = ?
            ORDER BY created_at {order}, rowid {order}
            """,
            (user_id,),
        )
        return [self._row_to_source(row) for row in rows]

    async def create_calendar_source(
        self,
        user_id: str,
        *,
        name: str,
        url: str,
        type: str = DEFAULT_SOURCE_TYPE,
        color: str = DEFAULT_SOURCE_COLOR,
    ) -> CalendarSource:
        source = CalendarSource(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            url=url,
            type=type,
            color=color,
        )
        await self._write(
            CALENDAR_SOURCES_TABLE,
            f"""
            INSERT INTO {CALENDAR_SOURCES_TABLE}
                (id, user_id, name, url, type, color, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                source.id,
                source.user_id,
                source.name,
                source.url,
                source.type,
                source.color,
                _to_db_timestamp(source.created_at),
            ),
        )
        return source

    async def delete_calendar_source(self, source_id: str, user_id: str) -> bool:
        deleted = await self._write(
            CALENDAR_SOURCES_TABLE,
            f"DELETE FROM {CALENDAR_SOURCES_TABLE} WHERE id = ? AND user_id = ?",
            (source_id, user_id),
        )
        return bool(deleted)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_agent(row: aiosqlite.Row) -> Agent:
        return Agent(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            url=row["url"],
            open_in_new_window=bool(row["open_in_new_window"]),
            is_active=bool(row["is_active"]),
            created_at=parse_db_timestamp(row["created_at"]) or _now(),
        )

    async def list_agents(self, *, active_only: bool = True) -> list[Agent]:
        query = "SELECT * FROM agents"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY created_at DESC"
        rows = await self._fetchall("agents", query)
        return [self._row_to_agent(row) for row in rows]

    async def get_agent(self, agent_id: str) -> Agent | None:
        row = await self._fetchone("agents", "SELECT * FROM agents WHERE id = ?", (agent_id,))
        return self._row_to_agent(row) if row is not None else None

    async def create_agent(
        self,
        *,
        name: str,
        url: str,
        description: Optional[str] = None,
        open_in_new_window: bool = False,
    ) -> Agent:
        agent = Agent(
            id=str(uuid.uuid4()),
            name=name,
            url=url,
            description=description,
            open_in_new_window=open_in_new_window,
        )
        await self._write(
            "agents",
            """
            INSERT INTO agents
                (id, name, description, url, open_in_new_window, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, 1, ?)
            """,
            (
                agent.id,
                agent.name,
                agent.description,
                agent.url,
                int(agent.open_in_new_window),
                _to_db_timestamp(agent.created_at),
            ),
        )
        return agent

    async def update_agent(self, agent_id: str, changes: Mapping[str, Any]) -> Agent | None:
        await self._update_columns("agents", _AGENT_COLUMNS, agent_id, changes)
        return await self.get_agent(agent_id)

    async def delete_agent(self, agent_id: str) -> bool:
        deleted = await self._write("agents", "DELETE FROM agents WHERE id = ?", (agent_id,))
        return bool(deleted)

    # ------------------------------------------------------------------
    # Notification logs
    # ------------------------------------------------------------------
    async def add_notification_log(
        self,
        *,
        user_id: str,
        recipient: str,
        type: str,
        status: str,
        subject: Optional[str] = None,
        message: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> None:
        await self._write(
            "notification_logs",
            """
            INSERT INTO notification_logs
                (user_id, recipient, type, status, subject, message, task_id, sent_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                recipient,
                type,
                status,
                subject,
                message,
                task_id,
                _to_db_timestamp(_now()),
            ),
        )

    async def list_notification_logs(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self._fetchall(
            "notification_logs",
            "SELECT * FROM notification_logs WHERE user_id = ? ORDER BY id ASC",
            (user_id,),
        )
        return [dict(row) for row in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _update_columns(
        self,
        table: str,
        allowed: frozenset[str],
        record_id: str,
        changes: Mapping[str, Any],
        *,
        touch: str | None = None,
        unless_status: TaskStatus | None = None,
    ) -> bool:
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot update {table} columns: {', '.join(sorted(unknown))}")

        assignments = [f"{column} = ?" for column in changes]
        params: list[Any] = [_encode_value(value) for value in changes.values()]
        if touch:
            assignments.append(f"{touch} = ?")
            params.append(_to_db_timestamp(_now()))
        if not assignments:
            row = await self._fetchone(table, f"SELECT 1 FROM {table} WHERE id = ?", (record_id,))
            return row is not None

        query = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?"
        params.append(record_id)
        if unless_status is not None:
            query += " AND status != ?"
            params.append(unless_status.value)

        updated = await self._write(table, query, tuple(params))
        return bool(updated)


__all__ = [
    "Agent",
    "CALENDAR_SOURCES_TABLE",
    "DuplicateRecordError",
    "SchemaNotProvisionedError",
    "StoreError",
    "TaskRepository",
    "User",
]
