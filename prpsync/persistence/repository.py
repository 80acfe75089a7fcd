"""
PRP Repository - Database access layer

Every operation opens its own short-lived connection and closes it before
returning, so no connection is ever held across a network call made by the
tool layer. Writes that must be atomic run inside ``transaction()``.

SQLite errors never escape this module raw: they are re-raised as
``StorageError`` carrying only the operation name and the driver's error
class, never the SQL text or bound values.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import TypeVar

from prpsync.config import DEFAULT_DB_PATH
from prpsync.exceptions import StorageError
from prpsync.persistence.models import (
    ParsedPRP,
    PRPSummary,
    PRPTask,
    SyncRecord,
    SyncStatus,
    TaskDraft,
    TaskStatus,
    TaskStatusChange,
    now_iso,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PRP_COLUMNS = (
    "id, youtube_url, video_id, video_title, video_description, channel_title, "
    "published_at, duration, transcript, parsed_content, created_by, created_at, "
    "updated_at, notion_page_id, notion_sync_status, notion_sync_error, notion_synced_at"
)

_TASK_COLUMNS = (
    "id, prp_id, order_num, title, description, type, file_path, pseudocode, "
    "status, created_at, updated_at, completed_at, completed_by"
)


class PRPRepository:
    """
    Repository for parsed PRPs and their tasks.

    Usage:
        repo = PRPRepository("/tmp/prps.db")
        repo.initialize()

        repo.insert_prp(prp, tasks)
        total, summaries = repo.list_summaries(limit=20, offset=0)
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file. If None, uses default location.
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._initialized = False

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def initialize(self) -> None:
        """
        Create the database file and apply the schema.

        Safe to call repeatedly; the schema only uses IF NOT EXISTS.
        """
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        schema_path = Path(__file__).parent / "schema.sql"
        if not schema_path.exists():
            logger.error(f"Schema file not found: {schema_path}")
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        schema_sql = schema_path.read_text()
        with self._guard("initialize"), self.connection() as conn:
            conn.executescript(schema_sql)

        # WAL lets readers proceed while another process writes
        with self._guard("initialize"), self.connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

        self._initialized = True
        logger.debug(f"Database schema applied at {self.db_path}")

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Open a connection for the duration of one operation."""
        conn = sqlite3.connect(
            self.db_path,
            timeout=10.0,
            isolation_level=None,  # Autocommit, explicit transactions only
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a write transaction on a fresh connection.

        Usage:
            with repo.transaction() as cursor:
                cursor.execute(...)
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            try:
                # IMMEDIATE takes the write lock up front so concurrent
                # appends compute the next order from committed state
                cursor.execute("BEGIN IMMEDIATE")
                yield cursor
                cursor.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    cursor.execute("ROLLBACK")
                raise
            finally:
                cursor.close()

    def with_connection(self, work: Callable[[sqlite3.Connection], T], operation: str = "query") -> T:
        """Run ``work`` on a short-lived connection with error mapping."""
        self.initialize()
        with self._guard(operation), self.connection() as conn:
            return work(conn)

    @contextmanager
    def _guard(self, operation: str) -> Generator[None, None, None]:
        """Translate driver errors into StorageError."""
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"Database error during {operation}: {type(e).__name__}")
            raise StorageError(
                f"Database error during {operation}",
                {"operation": operation, "error_type": type(e).__name__},
            ) from e

    # =========================================================================
    # PRP OPERATIONS
    # =========================================================================

    def insert_prp(self, prp: ParsedPRP, tasks: Sequence[PRPTask]) -> ParsedPRP:
        """
        Insert a PRP and all of its tasks atomically.

        Either the PRP and every task are stored, or nothing is.
        """
        self.initialize()
        with self._guard("insert_prp"), self.transaction() as cursor:
            cursor.execute(
                f"INSERT INTO parsed_prps ({_PRP_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                prp.to_row(),
            )
            cursor.executemany(
                f"INSERT INTO prp_tasks ({_TASK_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [task.to_row() for task in tasks],
            )

        logger.info(f"Stored PRP {prp.id} with {len(tasks)} tasks")
        return prp

    def get_prp(self, prp_id: str) -> ParsedPRP | None:
        """Get PRP by ID."""

        def work(conn: sqlite3.Connection) -> ParsedPRP | None:
            row = conn.execute(
                f"SELECT {_PRP_COLUMNS} FROM parsed_prps WHERE id = ?", (prp_id,)
            ).fetchone()
            return ParsedPRP.from_row(row) if row else None

        return self.with_connection(work, "get_prp")

    def list_summaries(
        self,
        limit: int = 20,
        offset: int = 0,
        created_by: str | None = None,
        sync_status: SyncStatus | None = None,
    ) -> tuple[int, list[PRPSummary]]:
        """
        Page through PRP summaries, newest first.

        Returns:
            Tuple of (total matching PRPs, summaries in this page)
        """

        def work(conn: sqlite3.Connection) -> tuple[int, list[PRPSummary]]:
            where, params = _filter_clause(created_by=created_by, sync_status=sync_status)
            total = conn.execute(
                f"SELECT COUNT(*) FROM parsed_prps {where}", params
            ).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM prp_summaries {where} "
                "ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                params + (limit, offset),
            ).fetchall()
            return total, [PRPSummary.from_row(row) for row in rows]

        return self.with_connection(work, "list_summaries")

    # =========================================================================
    # TASK OPERATIONS
    # =========================================================================

    def get_tasks(self, prp_id: str) -> list[PRPTask]:
        """Get all tasks of a PRP in ascending order."""

        def work(conn: sqlite3.Connection) -> list[PRPTask]:
            rows = conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM prp_tasks WHERE prp_id = ? ORDER BY order_num",
                (prp_id,),
            ).fetchall()
            return [PRPTask.from_row(row) for row in rows]

        return self.with_connection(work, "get_tasks")

    def get_task(self, task_id: str) -> PRPTask | None:
        """Get task by ID."""

        def work(conn: sqlite3.Connection) -> PRPTask | None:
            row = conn.execute(
                f"SELECT {_TASK_COLUMNS} FROM prp_tasks WHERE id = ?", (task_id,)
            ).fetchone()
            return PRPTask.from_row(row) if row else None

        return self.with_connection(work, "get_task")

    def append_tasks(self, prp_id: str, drafts: Sequence[TaskDraft]) -> list[PRPTask]:
        """
        Append tasks after the PRP's current last task.

        The next order number is read inside the same write transaction as
        the inserts, so orders stay unique and gap-free under concurrency.

        Returns:
            The newly stored tasks, in order
        """
        self.initialize()
        with self._guard("append_tasks"), self.transaction() as cursor:
            row = cursor.execute(
                "SELECT COALESCE(MAX(order_num), 0) FROM prp_tasks WHERE prp_id = ?",
                (prp_id,),
            ).fetchone()
            start = row[0] + 1
            tasks = [
                PRPTask.from_draft(prp_id, start + i, draft) for i, draft in enumerate(drafts)
            ]
            cursor.executemany(
                f"INSERT INTO prp_tasks ({_TASK_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [task.to_row() for task in tasks],
            )

        logger.info(f"Appended {len(tasks)} tasks to PRP {prp_id}")
        return tasks

    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        updated_by: str,
    ) -> TaskStatusChange | None:
        """
        Update task status.

        Moving to completed stamps completed_at and completed_by. Any other
        status leaves those two fields as they were.

        Returns:
            The change with the updated task, or None if the task does not exist
        """
        self.initialize()
        with self._guard("update_task_status"), self.transaction() as cursor:
            row = cursor.execute(
                "SELECT t.status, json_extract(p.parsed_content, '$.name') AS prp_name "
                "FROM prp_tasks t JOIN parsed_prps p ON p.id = t.prp_id WHERE t.id = ?",
                (task_id,),
            ).fetchone()
            if not row:
                return None

            old_status = TaskStatus(row["status"])
            now = now_iso()
            if status == TaskStatus.COMPLETED:
                cursor.execute(
                    "UPDATE prp_tasks SET status = ?, updated_at = ?, completed_at = ?, "
                    "completed_by = ? WHERE id = ?",
                    (status.value, now, now, updated_by, task_id),
                )
            else:
                cursor.execute(
                    "UPDATE prp_tasks SET status = ?, updated_at = ? WHERE id = ?",
                    (status.value, now, task_id),
                )

            updated = cursor.execute(
                f"SELECT {_TASK_COLUMNS} FROM prp_tasks WHERE id = ?", (task_id,)
            ).fetchone()

        logger.info(f"Task {task_id}: {old_status.value} -> {status.value} by {updated_by}")
        return TaskStatusChange(
            task=PRPTask.from_row(updated),
            old_status=old_status,
            prp_name=row["prp_name"] or "",
        )

    # =========================================================================
    # NOTION SYNC STATE
    # =========================================================================

    def update_sync_state(
        self,
        prp_id: str,
        status: SyncStatus,
        page_id: str | None = None,
        error: str | None = None,
    ) -> None:
        """
        Record the outcome of a sync attempt.

        ``synced`` stores the page id and timestamp and clears any previous
        error. ``failed`` stores the error and keeps a previously stored
        page id.

        Raises:
            StorageError: If the PRP does not exist, the transition is not
                allowed, or the write fails
        """
        if status == SyncStatus.SYNCED and not page_id:
            raise ValueError("synced state requires a page id")
        if status == SyncStatus.FAILED and not error:
            raise ValueError("failed state requires an error message")

        self.initialize()
        with self._guard("update_sync_state"), self.transaction() as cursor:
            row = cursor.execute(
                "SELECT notion_sync_status FROM parsed_prps WHERE id = ?", (prp_id,)
            ).fetchone()
            if not row:
                raise StorageError(
                    "Cannot record sync state for unknown PRP", {"prp_id": prp_id}
                )

            current = SyncStatus(row[0])
            if not current.can_transition_to(status):
                raise StorageError(
                    "Invalid sync state transition",
                    {"from": current.value, "to": status.value},
                )

            now = now_iso()
            if status == SyncStatus.SYNCED:
                cursor.execute(
                    "UPDATE parsed_prps SET notion_sync_status = ?, notion_page_id = ?, "
                    "notion_synced_at = ?, notion_sync_error = NULL, updated_at = ? "
                    "WHERE id = ?",
                    (status.value, page_id, now, now, prp_id),
                )
            elif status == SyncStatus.FAILED:
                cursor.execute(
                    "UPDATE parsed_prps SET notion_sync_status = ?, notion_sync_error = ?, "
                    "updated_at = ? WHERE id = ?",
                    (status.value, error, now, prp_id),
                )
            else:
                cursor.execute(
                    "UPDATE parsed_prps SET notion_sync_status = ?, updated_at = ? WHERE id = ?",
                    (status.value, now, prp_id),
                )

        logger.info(f"PRP {prp_id} sync state: {current.value} -> {status.value}")

    def sync_records(
        self,
        prp_ids: Sequence[str] | None = None,
        sync_status: SyncStatus | None = None,
        limit: int = 50,
    ) -> list[SyncRecord]:
        """Sync columns of the most recent matching PRPs, newest first."""

        def work(conn: sqlite3.Connection) -> list[SyncRecord]:
            where, params = _filter_clause(sync_status=sync_status, prp_ids=prp_ids)
            rows = conn.execute(
                "SELECT id, video_title, json_extract(parsed_content, '$.name') AS prp_name, "
                "notion_sync_status, notion_page_id, notion_synced_at, notion_sync_error "
                f"FROM parsed_prps {where} ORDER BY created_at DESC, id LIMIT ?",
                params + (limit,),
            ).fetchall()
            return [SyncRecord.from_row(row) for row in rows]

        return self.with_connection(work, "sync_records")


def _filter_clause(
    created_by: str | None = None,
    sync_status: SyncStatus | None = None,
    prp_ids: Sequence[str] | None = None,
) -> tuple[str, tuple]:
    """Build a WHERE clause over parsed_prps columns."""
    conditions: list[str] = []
    params: list = []
    if created_by:
        conditions.append("created_by = ?")
        params.append(created_by)
    if sync_status:
        conditions.append("notion_sync_status = ?")
        params.append(SyncStatus(sync_status).value)
    if prp_ids:
        conditions.append(f"id IN ({', '.join('?' for _ in prp_ids)})")
        params.extend(prp_ids)

    if not conditions:
        return "", ()
    return "WHERE " + " AND ".join(conditions), tuple(params)
