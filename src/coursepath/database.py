"""SQLite store for the course catalog.

Every catalog mutation follows the same protocol: take the write lock, read a
fresh snapshot of courses and pathways, validate the change against it, write,
append the audit record, commit. CatalogDB provides the lock and the unit of
work for that protocol:

- transaction() issues BEGIN IMMEDIATE, so the write lock is held before the
  snapshot is read and no other writer can change the graph between the
  validation and the write
- Writers that find the lock taken wait up to ``busy_timeout`` seconds, then
  fail with TransactionError instead of writing on stale data
- Nested transaction() calls join the outer one, so a seed file or a cascade
  delete commits or rolls back as a whole
- Outside transaction() the connection is in autocommit mode (reads, and the
  one-off statements of ``coursepath init``)
- Foreign keys are enforced: pathways keep their courses from being deleted
  underneath them, and courses must name an existing domain
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from coursepath.schema import init_database

if TYPE_CHECKING:
    from types import TracebackType

DEFAULT_BUSY_TIMEOUT = 5.0

Parameters = tuple[Any, ...] | dict[str, Any]


class DatabaseError(Exception):
    """Base exception for catalog store errors."""


class ConnectionError(DatabaseError):
    """Raised when the catalog database cannot be opened or is not open."""


class TransactionError(DatabaseError):
    """Raised when the write lock cannot be taken or a commit/rollback fails."""


class CatalogDB:
    """Connection to one catalog database, used for one command.

    Example usage:
        >>> with CatalogDB(".coursepath/catalog.db") as db:
        ...     with db.transaction():
        ...         snapshot = load_snapshot(db)
        ...         ...  # validate against snapshot, then write

    Attributes:
        db_path: Path to the SQLite database file.
        auto_init: Create the catalog schema when the file does not exist.
        busy_timeout: Seconds to wait for another writer's lock.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        auto_init: bool = True,
        busy_timeout: float = DEFAULT_BUSY_TIMEOUT,
    ) -> None:
        self.db_path = Path(db_path)
        self.auto_init = auto_init
        self.busy_timeout = busy_timeout
        self._connection: sqlite3.Connection | None = None
        self._in_transaction: bool = False

    def __enter__(self) -> CatalogDB:
        self._open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        # commit and rollback belong to transaction()
        self._close()

    def _open(self) -> None:
        if self._connection is not None:
            return

        if self.auto_init and not self.db_path.exists():
            try:
                init_database(self.db_path)
            except (sqlite3.Error, OSError) as e:
                raise ConnectionError(f"Failed to create catalog database: {e}") from e

        try:
            self._connection = sqlite3.connect(
                str(self.db_path), timeout=self.busy_timeout, isolation_level=None
            )
            self._connection.execute("PRAGMA foreign_keys = ON")
            self._connection.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise ConnectionError(f"Failed to open catalog database: {e}") from e

    def _close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @property
    def connection(self) -> sqlite3.Connection:
        """The open SQLite connection.

        Raises:
            ConnectionError: If not connected.
        """
        if self._connection is None:
            raise ConnectionError("Catalog database not connected. Use 'with CatalogDB(...)'.")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def in_transaction(self) -> bool:
        """True while inside the outermost transaction() block."""
        return self._in_transaction

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the catalog write lock for one unit of work.

        Commits when the block succeeds and rolls back when it raises. An
        inner call inside an open transaction only yields: the outer block
        decides the outcome for everything written.

        Raises:
            ConnectionError: If not connected.
            TransactionError: If the write lock is not granted within
                ``busy_timeout`` or the commit fails.
        """
        if self._connection is None:
            raise ConnectionError("Catalog database not connected. Use 'with CatalogDB(...)'.")

        if self._in_transaction:
            yield
            return

        self.begin_transaction()
        self._in_transaction = True
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise
        finally:
            self._in_transaction = False

    def begin_transaction(self) -> None:
        """Take the write lock (BEGIN IMMEDIATE).

        Raises:
            TransactionError: If another writer keeps the lock past
                ``busy_timeout``.
        """
        try:
            self.connection.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            raise TransactionError(f"Catalog is locked by another writer: {e}") from e
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to begin transaction: {e}") from e

    def commit(self) -> None:
        try:
            self.connection.commit()
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to commit transaction: {e}") from e

    def rollback(self) -> None:
        try:
            self.connection.rollback()
        except sqlite3.Error as e:
            raise TransactionError(f"Failed to roll back transaction: {e}") from e

    def execute(self, sql: str, parameters: Parameters = ()) -> sqlite3.Cursor:
        """Run one statement; sqlite3 errors propagate to the caller."""
        return self.connection.execute(sql, parameters)

    def insert(self, sql: str, parameters: Parameters = ()) -> int:
        """Run an INSERT and return the new row's id."""
        return cast(int, self.execute(sql, parameters).lastrowid)

    def fetchone(self, sql: str, parameters: Parameters = ()) -> sqlite3.Row | None:
        return cast(sqlite3.Row | None, self.execute(sql, parameters).fetchone())

    def fetchall(self, sql: str, parameters: Parameters = ()) -> list[sqlite3.Row]:
        return self.execute(sql, parameters).fetchall()

    def table_exists(self, table_name: str) -> bool:
        result = self.fetchone(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,),
        )
        return result is not None
