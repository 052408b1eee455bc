"""Embedded key-value storage: logical tables of JSON documents.

``KeyValueStore`` is the seam between the record store and the engine. The
SQLite engine keeps one file on disk (the file the sync mirror copies); the
memory engine is for tests and throwaway sessions.
"""
from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Iterator

from jobseeker.errors import PersistenceError
from jobseeker.log import get_logger

log = get_logger(__name__)

TABLES: tuple[str, ...] = ("job_ads", "drafts", "settings")


def _check_table(table: str) -> str:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table!r}")
    return table


class Transaction(ABC):
    @abstractmethod
    def get(self, table: str, key: str) -> str | None: ...

    @abstractmethod
    def put(self, table: str, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, table: str, key: str) -> bool: ...

    @abstractmethod
    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]: ...


class KeyValueStore(ABC):
    path: Path | None = None

    @abstractmethod
    def transaction(self) -> ContextManager[Transaction]:
        """Context manager yielding a ``Transaction``; commits on clean exit."""

    @abstractmethod
    def get(self, table: str, key: str) -> str | None: ...

    @abstractmethod
    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]: ...

    def put(self, table: str, key: str, value: str) -> None:
        with self.transaction() as txn:
            txn.put(table, key, value)

    def delete(self, table: str, key: str) -> bool:
        with self.transaction() as txn:
            return txn.delete(table, key)

    def close(self) -> None:
        pass


# ── SQLite ───────────────────────────────────────────────────────────────


class _SqliteTransaction(Transaction):
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, table: str, key: str) -> str | None:
        row = self._conn.execute(
            f'SELECT value FROM "{_check_table(table)}" WHERE key = ?', (key,)
        ).fetchone()
        return row[0] if row else None

    def put(self, table: str, key: str, value: str) -> None:
        self._conn.execute(
            f'INSERT INTO "{_check_table(table)}" (key, value) VALUES (?, ?) '
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def delete(self, table: str, key: str) -> bool:
        cur = self._conn.execute(
            f'DELETE FROM "{_check_table(table)}" WHERE key = ?', (key,)
        )
        return cur.rowcount > 0

    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]:
        rows = self._conn.execute(
            f'SELECT key, value FROM "{_check_table(table)}" '
            "WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [(k, v) for k, v in rows]


class SqliteKeyValueStore(KeyValueStore):
    """One SQLite file, one two-column table per logical table.

    A connection is opened per call, so reads never wait on a writer.
    The default rollback journal is kept: after each commit the main file
    alone is a complete copy of the store.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._connect()
            try:
                for table in TABLES:
                    conn.execute(
                        f'CREATE TABLE IF NOT EXISTS "{table}" ('
                        "key TEXT PRIMARY KEY, value TEXT NOT NULL)"
                    )
            finally:
                conn.close()
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceError(f"cannot open store at {self.path}: {exc}") from exc
        log.debug("Opened SQLite store %s", self.path)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.path), timeout=30, isolation_level=None,
                               check_same_thread=False)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open store at {self.path}: {exc}") from exc
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield _SqliteTransaction(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise PersistenceError(f"store write failed: {exc}") from exc
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _read(self, fn):
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(f"cannot open store at {self.path}: {exc}") from exc
        try:
            return fn(_SqliteTransaction(conn))
        except sqlite3.Error as exc:
            raise PersistenceError(f"store read failed: {exc}") from exc
        finally:
            conn.close()

    def get(self, table: str, key: str) -> str | None:
        return self._read(lambda txn: txn.get(table, key))

    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]:
        return self._read(lambda txn: txn.scan(table, prefix))


# ── In-memory ────────────────────────────────────────────────────────────


class _MemoryTransaction(Transaction):
    def __init__(self, tables: dict[str, dict[str, str]]) -> None:
        self._tables = tables
        self._writes: dict[tuple[str, str], str | None] = {}

    def get(self, table: str, key: str) -> str | None:
        if (table, key) in self._writes:
            return self._writes[(table, key)]
        return self._tables[_check_table(table)].get(key)

    def put(self, table: str, key: str, value: str) -> None:
        _check_table(table)
        self._writes[(table, key)] = value

    def delete(self, table: str, key: str) -> bool:
        existed = self.get(table, key) is not None
        self._writes[(table, key)] = None
        return existed

    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]:
        merged = dict(self._tables[_check_table(table)])
        for (t, k), v in self._writes.items():
            if t != table:
                continue
            if v is None:
                merged.pop(k, None)
            else:
                merged[k] = v
        return sorted((k, v) for k, v in merged.items() if k.startswith(prefix))

    def commit(self) -> None:
        for (table, key), value in self._writes.items():
            if value is None:
                self._tables[table].pop(key, None)
            else:
                self._tables[table][key] = value


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self) -> None:
        self._tables: dict[str, dict[str, str]] = {t: {} for t in TABLES}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self._lock:
            txn = _MemoryTransaction(self._tables)
            yield txn
            txn.commit()

    def get(self, table: str, key: str) -> str | None:
        return self._tables[_check_table(table)].get(key)

    def scan(self, table: str, prefix: str = "") -> list[tuple[str, str]]:
        with self._lock:
            return sorted(
                (k, v) for k, v in self._tables[_check_table(table)].items()
                if k.startswith(prefix)
            )
