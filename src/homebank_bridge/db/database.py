"""
SQLite connection owner.

A single :class:`Database` value is created at startup and handed to every
repository and service that needs the store. It owns the connection, the
lock that serialises access to it, and the explicit transaction boundary
used by multi-statement operations.

The connection runs in autocommit mode; ``transaction()`` issues ``BEGIN``,
``COMMIT`` and ``ROLLBACK`` itself so a failure anywhere in the block leaves
no partial writes behind.

During an administrative restore the connection is released and reopened
inside ``released()``. The lock is held for the whole window, so other
callers wait for reacquisition, and any access attempted while the
connection is closed raises :class:`StoreUnavailableError`.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from homebank_bridge.core.errors import StoreUnavailableError
from homebank_bridge.logger import get_logger

logger = get_logger(__name__)

Params = Sequence[Any] | dict[str, Any]

SQLITE_HEADER = b"SQLite format 3\x00"


class Database:
    def __init__(self, path: str | Path, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self._depth = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        with self._lock:
            if self._conn is not None:
                return
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            try:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
                conn.execute("PRAGMA synchronous = NORMAL")
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA temp_store = MEMORY")
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn
            self._depth = 0
            logger.info("[DB] SQLite database opened at %s", self.path)

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None
                self._depth = 0
            logger.info("[DB] SQLite connection closed.")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        conn = self._conn
        if conn is None:
            raise StoreUnavailableError("The database connection is not available.")
        return conn

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def released(self, after: Callable[[Database], object] | None = None) -> Iterator[None]:
        """Close the connection for the duration of the block, then reopen it.

        The lock is held throughout, so no other caller can use the store
        until the connection is back. ``after`` runs on the reopened
        connection before the lock is given up, and only when the block
        succeeded.
        """
        with self._lock:
            if self._depth:
                raise RuntimeError("Cannot release the database inside a transaction.")
            self.close()
            try:
                yield
            finally:
                self.open()
            if after is not None:
                after(self)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        with self._lock:
            return self.connection.execute(sql, params)

    def fetch_one(self, sql: str, params: Params = ()) -> sqlite3.Row | None:
        with self._lock:
            return self.connection.execute(sql, params).fetchone()

    def fetch_all(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self.connection.execute(sql, params).fetchall()

    def insert(self, sql: str, params: Params = ()) -> int:
        with self._lock:
            cursor = self.connection.execute(sql, params)
            return int(cursor.lastrowid or 0)

    def scalar(self, sql: str, params: Params = ()) -> Any:
        row = self.fetch_one(sql, params)
        return row[0] if row is not None else None

    @contextmanager
    def transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """Run the block inside ``BEGIN``/``COMMIT``; roll back on any error.

        Re-entrant: a nested call joins the outer transaction and the outer
        block decides whether it commits.
        """
        with self._lock:
            conn = self.connection
            if self._depth:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            self._depth = 1
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error:
                    logger.exception("[DB] Rollback failed.")
                else:
                    logger.debug("[DB] Transaction rolled back.")
                raise
            finally:
                self._depth = 0

    @contextmanager
    def foreign_keys_disabled(self) -> Iterator[None]:
        """Turn foreign key enforcement off for the block.

        SQLite ignores the pragma inside a transaction, so this must wrap
        ``transaction()``, never the other way round.
        """
        with self._lock:
            if self._depth:
                raise RuntimeError("Cannot toggle foreign keys inside a transaction.")
            self.connection.execute("PRAGMA foreign_keys = OFF")
            try:
                yield
            finally:
                if self._conn is not None:
                    self._conn.execute("PRAGMA foreign_keys = ON")

    def snapshot(self, destination: str | Path) -> Path:
        """Write a consistent copy of the database to ``destination``."""
        target_path = Path(destination)
        with self._lock:
            target = sqlite3.connect(str(target_path))
            try:
                self.connection.backup(target)
            finally:
                target.close()
        logger.info("[DB] Snapshot written to %s", target_path)
        return target_path


def is_sqlite_file(header: bytes) -> bool:
    return header.startswith(SQLITE_HEADER[:15])
