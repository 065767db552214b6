"""
Agentwatch Event Store - Database access layer

Durable task/session history with full-text search and retention.

Thread Safety:
- One connection per store, shared by the watch loop and any reader thread
- Every statement runs while holding a single gate lock
- SQLite in WAL mode with synchronous=NORMAL: readers are never blocked by
  the writer, and a crash may lose the last few milliseconds of writes
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from agentwatch.exceptions import (
    StoreConnectionError,
    StoreIOError,
    StoreLockError,
    StoreQueryError,
    StoreSchemaError,
)
from agentwatch.persistence.models import (
    TASK_COLUMNS,
    StoredSession,
    StoredTask,
    TaskStats,
    TaskStatus,
    now_ms,
)

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"
DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_LOCK_TIMEOUT = 5.0

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def build_match_query(text: str) -> str | None:
    """
    Turn free text into a safe FTS5 MATCH expression.

    Each word becomes a quoted string token; tokens are ANDed.
    Returns None when the text contains no searchable word.
    """
    tokens = _TOKEN_RE.findall(text)
    if not tokens:
        return None
    return " ".join(f'"{token}"' for token in tokens)


class EventStore:
    """
    SQLite-backed store for agent task history.

    Usage:
        store = EventStore(Path("~/.claude/overlay-history.db").expanduser())
        store.insert_task(task)
        store.update_task_status("t1", TaskStatus.COMPLETED, ended_at=2500)

        # Or as a context manager
        with EventStore.in_memory() as store:
            ...
    """

    def __init__(
        self,
        db_path: Path | str,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ):
        """
        Open (creating if needed) the database and apply the schema.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            lock_timeout: Seconds to wait for the connection gate

        Raises:
            StoreIOError: If the parent directory cannot be created
            StoreConnectionError: If the database cannot be opened
            StoreSchemaError: If the schema cannot be applied
        """
        self.db_path = str(db_path) if str(db_path) == IN_MEMORY else Path(db_path)
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = self._connect()

    @classmethod
    def in_memory(cls, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> EventStore:
        """Create a throwaway store (tests, or when the database file is unusable)."""
        return cls(IN_MEMORY, lock_timeout=lock_timeout)

    @property
    def is_in_memory(self) -> bool:
        return self.db_path == IN_MEMORY

    def __enter__(self) -> EventStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreIOError(
                    f"Cannot create database directory {self.db_path.parent}",
                    {"error": str(e)},
                ) from e

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,  # Serialized by self._lock
                isolation_level=None,  # Autocommit mode, we use explicit transactions
            )
        except sqlite3.Error as e:
            raise StoreConnectionError(
                f"Cannot open database {self.db_path}", {"error": str(e)}
            ) from e

        try:
            if not self.is_in_memory:
                # Readers proceed while one writer commits
                conn.execute("PRAGMA journal_mode=WAL")
                # Relaxed fsync; data still consistent with WAL
                conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")
            self._apply_schema(conn)
        except (sqlite3.Error, OSError) as e:
            conn.close()
            raise StoreSchemaError(
                f"Failed to initialize schema for {self.db_path}", {"error": str(e)}
            ) from e

        logger.info(f"Initialized event store at {self.db_path}")
        return conn

    @staticmethod
    def _apply_schema(conn: sqlite3.Connection) -> None:
        """Apply the database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, encoding="utf-8") as f:
            schema_sql = f.read()

        # CREATE IF NOT EXISTS makes this idempotent
        conn.executescript(schema_sql)
        logger.debug("Database schema applied")

    def close(self) -> None:
        """Close the database connection. Safe to call twice."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def _gate(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Hold the connection gate for one unit of work.

        Raises:
            StoreLockError: If the gate is not acquired within lock_timeout
            StoreConnectionError: If the store has been closed
            StoreQueryError: If a statement fails
        """
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise StoreLockError("Timed out waiting for the database lock", self.lock_timeout)
        try:
            if self._conn is None:
                raise StoreConnectionError("Event store is closed", {"db_path": str(self.db_path)})
            try:
                yield self._conn
            except sqlite3.Error as e:
                raise StoreQueryError(str(e), {"error_type": type(e).__name__}) from e
        finally:
            self._lock.release()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """Run several statements atomically under the gate."""
        with self._gate() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("BEGIN")
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise
            finally:
                cursor.close()

    # =========================================================================
    # SESSION OPERATIONS
    # =========================================================================

    def upsert_session(self, session: StoredSession) -> None:
        """
        Insert a session, or merge into an existing one.

        Existing ended_at/project_path are only replaced by non-null values;
        started_at is never overwritten.
        """
        with self._gate() as conn:
            conn.execute(
                """INSERT INTO sessions (id, started_at, ended_at, project_path)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       ended_at = COALESCE(excluded.ended_at, sessions.ended_at),
                       project_path = COALESCE(excluded.project_path, sessions.project_path)""",
                session.to_row(),
            )

    def get_session(self, session_id: str) -> StoredSession | None:
        """Get session by ID."""
        with self._gate() as conn:
            row = conn.execute(
                "SELECT id, started_at, ended_at, project_path FROM sessions WHERE id = ?",
                (session_id,),
            ).fetchone()
        return StoredSession.from_row(row) if row else None

    # =========================================================================
    # TASK OPERATIONS
    # =========================================================================

    def insert_task(self, task: StoredTask) -> None:
        """
        Insert a new task, creating its session row if missing.

        Raises:
            StoreQueryError: If the task id already exists
        """
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT OR IGNORE INTO sessions (id, started_at) VALUES (?, ?)",
                (task.session_id, task.started_at),
            )
            cursor.execute(
                f"""INSERT INTO tasks ({TASK_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                task.to_row(),
            )
        logger.debug(f"Stored task {task.id} ({task.tool})")

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus | str,
        ended_at: int,
    ) -> bool:
        """
        Finalize an active task.

        Sets status and ended_at, and recomputes duration_ms from started_at.
        Tasks that are already finalized are left untouched.

        Returns:
            True if a row was updated
        """
        status = TaskStatus(status)
        with self._gate() as conn:
            cursor = conn.execute(
                """UPDATE tasks SET
                       status = ?,
                       ended_at = ?,
                       duration_ms = ? - started_at
                   WHERE id = ? AND status = 'active'""",
                (status.value, ended_at, ended_at, task_id),
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.debug(f"No active task {task_id} to mark {status.value}")
        return updated

    def get_task(self, task_id: str) -> StoredTask | None:
        """Get task by ID."""
        with self._gate() as conn:
            row = conn.execute(
                f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)
            ).fetchone()
        return StoredTask.from_row(row) if row else None

    def get_recent_tasks(self, limit: int = 10) -> list[StoredTask]:
        """Most recently started tasks, newest first."""
        with self._gate() as conn:
            rows = conn.execute(
                f"""SELECT {TASK_COLUMNS} FROM tasks
                    ORDER BY started_at DESC LIMIT ?""",
                (limit,),
            ).fetchall()
        return [StoredTask.from_row(row) for row in rows]

    def get_tasks_by_session(self, session_id: str) -> list[StoredTask]:
        """All tasks of one session, newest first."""
        with self._gate() as conn:
            rows = conn.execute(
                f"""SELECT {TASK_COLUMNS} FROM tasks
                    WHERE session_id = ?
                    ORDER BY started_at DESC""",
                (session_id,),
            ).fetchall()
        return [StoredTask.from_row(row) for row in rows]

    def search_tasks(self, query: str, limit: int = 20) -> list[StoredTask]:
        """
        Full-text search over task description and tool.

        Matching is per word and case-insensitive; results are newest first.
        """
        match = build_match_query(query)
        if match is None:
            return []

        columns = ", ".join(f"t.{c.strip()}" for c in TASK_COLUMNS.split(","))
        with self._gate() as conn:
            rows = conn.execute(
                f"""SELECT {columns}
                    FROM tasks_fts f
                    JOIN tasks t ON t.id = f.task_id
                    WHERE tasks_fts MATCH ?
                    ORDER BY t.started_at DESC
                    LIMIT ?""",
                (match, limit),
            ).fetchall()
        return [StoredTask.from_row(row) for row in rows]

    def get_active_task_count(self) -> int:
        """Number of tasks not yet finalized."""
        with self._gate() as conn:
            row = conn.execute("SELECT COUNT(*) FROM tasks WHERE status = 'active'").fetchone()
        return row[0]

    def get_task_stats(self) -> TaskStats:
        """Counts by status and mean duration over tasks that have one."""
        with self._gate() as conn:
            row = conn.execute(
                """SELECT
                       COUNT(*),
                       COALESCE(SUM(status = 'active'), 0),
                       COALESCE(SUM(status = 'completed'), 0),
                       COALESCE(SUM(status = 'error'), 0),
                       COALESCE(SUM(status = 'canceled'), 0),
                       AVG(duration_ms)
                   FROM tasks"""
            ).fetchone()

        return TaskStats(
            total_tasks=row[0],
            active_tasks=row[1],
            completed_tasks=row[2],
            error_tasks=row[3],
            canceled_tasks=row[4],
            avg_duration_ms=row[5],
        )

    def cleanup_old_tasks(self, days_to_keep: int, now: int | None = None) -> int:
        """
        Delete finalized tasks started more than days_to_keep days ago.

        Active tasks are always kept.

        Args:
            days_to_keep: Retention window in days
            now: Reference time in ms (defaults to the wall clock)

        Returns:
            Number of tasks deleted
        """
        reference = now if now is not None else now_ms()
        cutoff = reference - days_to_keep * DAY_MS
        with self._gate() as conn:
            cursor = conn.execute(
                "DELETE FROM tasks WHERE started_at < ? AND status != 'active'",
                (cutoff,),
            )
            deleted = cursor.rowcount

        if deleted:
            logger.info(f"Retention cleanup removed {deleted} tasks older than {days_to_keep} days")
        return deleted
