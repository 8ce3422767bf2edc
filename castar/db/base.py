"""
Base module with the database handle and the generic repository.

Provides the foundation for all database operations in CaStar: one explicitly
constructed ``Database`` owns the SQLite connection and is passed to every
repository, so tests can use a fresh in-memory instance each.
"""

import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generic, Iterator, Optional, Sequence, TypeVar, Union

from castar.config import DB_TIMEOUT

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

E = TypeVar("E")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Generate a primary key for a new record."""
    return str(uuid.uuid4())


class Database:
    """
    Process-wide SQLite handle shared by all repositories.

    The connection is opened lazily on first use and kept for the lifetime of
    the handle. SQLite allows a single writer, so every statement goes through
    one re-entrant lock. File databases run in WAL mode so readers in other
    processes are not blocked by the writer.
    """

    def __init__(
        self,
        path: Union[Path, str, None] = None,
        timeout: float = DB_TIMEOUT,
    ):
        """
        Initialize the handle without connecting.

        Args:
            path: Path to the SQLite database file, or ":memory:"
            timeout: Seconds to wait on a locked database
        """
        self.path = path if path is not None else MEMORY_PATH
        self.timeout = timeout
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    @property
    def is_memory(self) -> bool:
        return str(self.path) == MEMORY_PATH

    @property
    def connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is None:
                self._conn = self._connect()
            return self._conn

    def _connect(self) -> sqlite3.Connection:
        if not self.is_memory:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: transactions are begun explicitly in transaction()
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if not self.is_memory:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        logger.debug(f"Opened database connection: {self.path}")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a group of statements atomically.

        The outermost call opens a write transaction; nested calls become
        savepoints, so an inner failure that is caught by the caller only
        undoes the inner block.
        """
        with self._lock:
            conn = self.connection
            savepoint = f"sp_{self._depth}" if self._depth else None
            if savepoint:
                conn.execute(f"SAVEPOINT {savepoint}")
            else:
                conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield conn
            except BaseException:
                self._depth -= 1
                try:
                    if savepoint:
                        conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                        conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                    else:
                        conn.execute("ROLLBACK")
                except sqlite3.Error as e:
                    # SQLite already rolled back on its own
                    logger.warning(f"Rollback skipped: {e}")
                raise
            else:
                self._depth -= 1
                if savepoint:
                    conn.execute(f"RELEASE SAVEPOINT {savepoint}")
                else:
                    conn.execute("COMMIT")

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.connection.execute(sql, tuple(params))

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.connection.execute(sql, tuple(params)).fetchone()

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.connection.execute(sql, tuple(params)).fetchall()

    def close(self):
        """Close the connection. The next access reopens it."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug(f"Closed database connection: {self.path}")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info):
        self.close()


class BaseRepository(Generic[E]):
    """
    Typed CRUD over one table.

    Subclasses set ``table`` and ``model``; the model supplies the explicit
    row mapping (``from_row``, ``to_row`` and ``columns_for``). Each method
    is a single statement. Constraint violations surface as
    ``sqlite3.IntegrityError`` and a missing row is ``None``, never an error.
    """

    table: str = ""
    model: Any = None

    def __init__(self, db: Database):
        self.db = db

    def _to_entity(self, row: Optional[sqlite3.Row]) -> Optional[E]:
        return self.model.from_row(row) if row else None

    def _find_many(self, sql: str, params: Sequence[Any] = ()) -> list[E]:
        return [self.model.from_row(row) for row in self.db.fetch_all(sql, params)]

    def find_by_id(self, record_id: str) -> Optional[E]:
        row = self.db.fetch_one(f"SELECT * FROM {self.table} WHERE id = ?", (record_id,))
        return self._to_entity(row)

    def find_all(self) -> list[E]:
        return self._find_many(f"SELECT * FROM {self.table}")

    def insert(self, entity: E) -> E:
        """Insert a new row. A duplicate id raises sqlite3.IntegrityError."""
        row = entity.to_row()  # type: ignore[attr-defined]
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        self.db.execute(
            f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
            [row[c] for c in columns],
        )
        return entity

    def update(self, record_id: str, changes: dict[str, Any]) -> bool:
        """
        Update the given fields of one row.

        Args:
            record_id: Primary key of the row
            changes: Entity field names mapped to their new values

        Returns:
            True if a row was updated. An empty ``changes`` runs no statement.
        """
        row = self.model.columns_for(changes)
        if not row:
            return False
        assignments = ", ".join(f"{column} = ?" for column in row)
        cursor = self.db.execute(
            f"UPDATE {self.table} SET {assignments} WHERE id = ?",
            [*row.values(), record_id],
        )
        return cursor.rowcount > 0

    def delete(self, record_id: str) -> bool:
        """Hard delete. Deleting a missing id is a no-op."""
        cursor = self.db.execute(f"DELETE FROM {self.table} WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    def count(self) -> int:
        row = self.db.fetch_one(f"SELECT COUNT(*) AS cnt FROM {self.table}")
        return row["cnt"] if row else 0


class SyncedRepository(BaseRepository[E]):
    """Repository for tables that carry ``remote_id`` and ``synced_at``."""

    def mark_remote(
        self,
        record_id: str,
        remote_id: Optional[str] = None,
        synced_at: Optional[int] = None,
    ) -> bool:
        """Record that the server acknowledged this row."""
        cursor = self.db.execute(
            f"""
            UPDATE {self.table}
            SET remote_id = COALESCE(?, remote_id), synced_at = ?
            WHERE id = ?
            """,
            (remote_id, synced_at if synced_at is not None else now_ms(), record_id),
        )
        return cursor.rowcount > 0
