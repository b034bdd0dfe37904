"""
core/common/db_interface.py
===========================

Shared interface + helpers for SQLite-backed stores.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from threading import RLock
from typing import Iterator, Optional
import sqlite3

MEMORY = ":memory:"


def create_sqlite_connection(
    db_path: Path | str,
    *,
    check_same_thread: bool = False,
    foreign_keys: bool = False,
) -> sqlite3.Connection:
    """Open a connection with Row factory; creates the parent directory of file databases."""
    path = str(db_path)
    if path != MEMORY:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=check_same_thread)
    conn.row_factory = sqlite3.Row
    if foreign_keys:
        conn.execute("PRAGMA foreign_keys = ON")
    return conn


class DatabaseAccess(ABC):
    """Interface for stores that depend on a database."""

    @property
    @abstractmethod
    def db_path(self) -> Path:
        raise NotImplementedError

    @abstractmethod
    def connect(self) -> sqlite3.Connection:
        raise NotImplementedError


class SQLiteRepository(DatabaseAccess):
    """Base for SQLite stores sharing one lock-guarded connection.

    The connection is opened lazily with ``check_same_thread=False`` so the
    audit writer thread and request threads can use it; every statement
    sequence that must be atomic runs inside :meth:`transaction`.
    """

    schema: str = ""

    def __init__(self, db_path: Path | str, *, foreign_keys: bool = False) -> None:
        self._db_path = Path(db_path)
        self._foreign_keys = foreign_keys
        self._conn: Optional[sqlite3.Connection] = None
        self._db_lock = RLock()
        if self.schema:
            with self.transaction() as conn:
                conn.executescript(self.schema)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def conn(self) -> sqlite3.Connection:
        return self.connect()

    def connect(self) -> sqlite3.Connection:
        with self._db_lock:
            if self._conn is None:
                self._conn = create_sqlite_connection(
                    self._db_path,
                    check_same_thread=False,
                    foreign_keys=self._foreign_keys,
                )
            return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the connection lock; commit on success, roll back on any exception."""
        with self._db_lock:
            conn = self.connect()
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._db_lock:
            return self.connect().execute(query, params).fetchone()

    def fetch_all(self, query: str, params: tuple = ()) -> list:
        with self._db_lock:
            return self.connect().execute(query, params).fetchall()

    def close(self) -> None:
        with self._db_lock:
            if self._conn is not None:
                try:
                    self._conn.close()
                finally:
                    self._conn = None
