#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
SQLite-backed store of install records.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from loguru import logger

from .core.errors import NotFoundError, PersistenceError
from .core.models import InstallRecord, Metadata, PackageType

SCHEMA_VERSION = 1

_SCHEMA = """
CREATE TABLE IF NOT EXISTS installs (
    install_id TEXT PRIMARY KEY,
    package_type TEXT NOT NULL,
    name TEXT NOT NULL,
    version TEXT,
    install_date TEXT NOT NULL,
    original_file TEXT NOT NULL,
    install_path TEXT NOT NULL,
    desktop_file TEXT,
    metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_installs_name ON installs(name);
CREATE INDEX IF NOT EXISTS idx_installs_type ON installs(package_type);
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

_COLUMNS = (
    "install_id, package_type, name, version, install_date, "
    "original_file, install_path, desktop_file, metadata"
)


class InstallStore:
    """
    Persistent install records.

    Writes share one connection behind a lock; reads open a short-lived
    connection each, which WAL mode lets proceed alongside a writer.
    """

    BUSY_TIMEOUT_MS = 5000

    def __init__(self, db_path: Union[str, Path]) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._write = self._connect()
            self._write.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(
                f"failed to open database {self.db_path}: {e}", cause=e
            ) from e
        logger.debug(f"Opened install database {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.BUSY_TIMEOUT_MS / 1000,
            check_same_thread=False,
        )
        conn.execute(f"PRAGMA busy_timeout={self.BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        with self._write:
            self._write.executescript(_SCHEMA)
            self._write.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, applied_at, description) "
                "VALUES (?, ?, ?)",
                (SCHEMA_VERSION, _now(), "initial schema"),
            )

    def close(self) -> None:
        with self._lock:
            self._write.close()

    def __enter__(self) -> InstallStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def schema_version(self) -> int:
        row = self._query_one("SELECT MAX(version) FROM schema_migrations", ())
        return int(row[0]) if row and row[0] is not None else 0

    def create(self, record: InstallRecord, superseded: Sequence[str] = ()) -> None:
        """
        Insert ``record``, deleting the ``superseded`` install IDs in the same
        SQLite transaction.

        Raises:
            PersistenceError: If the insert fails, including a duplicate install_id.
        """
        with self._lock:
            try:
                with self._write:
                    self._write.executemany(
                        "DELETE FROM installs WHERE install_id = ?",
                        [(install_id,) for install_id in superseded],
                    )
                    self._write.execute(
                        f"INSERT INTO installs ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        _record_params(record),
                    )
            except sqlite3.Error as e:
                raise PersistenceError(
                    f"failed to insert install {record.install_id}: {e}", cause=e
                ) from e
        for install_id in superseded:
            logger.debug(f"Replaced install record {install_id}")
        logger.debug(f"Stored install record {record.install_id}")

    def get(self, install_id: str) -> InstallRecord:
        row = self._query_one(
            f"SELECT {_COLUMNS} FROM installs WHERE install_id = ?", (install_id,)
        )
        if row is None:
            raise NotFoundError(f"install not found: {install_id}")
        return _row_to_record(row)

    def find_by_name(self, name: str) -> List[InstallRecord]:
        """Case-insensitive exact match on the record name, newest first."""
        return self._query_records(
            f"SELECT {_COLUMNS} FROM installs WHERE lower(name) = lower(?) "
            "ORDER BY install_date DESC, rowid DESC",
            (name,),
        )

    def list(self) -> List[InstallRecord]:
        return self._query_records(
            f"SELECT {_COLUMNS} FROM installs ORDER BY install_date DESC, rowid DESC", ()
        )

    def update(self, record: InstallRecord) -> None:
        """Rewrite the mutable columns of an existing record: desktop_file and metadata."""
        changed = self._execute(
            "UPDATE installs SET desktop_file = ?, metadata = ? WHERE install_id = ?",
            (record.desktop_file, json.dumps(record.metadata.to_dict()), record.install_id),
            f"update install {record.install_id}",
        )
        if changed == 0:
            raise NotFoundError(f"install not found: {record.install_id}")

    def delete(self, install_id: str) -> None:
        changed = self._execute(
            "DELETE FROM installs WHERE install_id = ?",
            (install_id,),
            f"delete install {install_id}",
        )
        if changed == 0:
            raise NotFoundError(f"install not found: {install_id}")
        logger.debug(f"Deleted install record {install_id}")

    def _execute(self, sql: str, params: tuple, action: str) -> int:
        with self._lock:
            try:
                with self._write:
                    cursor = self._write.execute(sql, params)
                    return cursor.rowcount
            except sqlite3.Error as e:
                raise PersistenceError(f"failed to {action}: {e}", cause=e) from e

    def _query_one(self, sql: str, params: tuple) -> Optional[tuple]:
        try:
            with closing(self._connect()) as conn:
                return conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"query failed: {e}", cause=e) from e

    def _query_records(self, sql: str, params: tuple) -> List[InstallRecord]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"query failed: {e}", cause=e) from e
        return [_row_to_record(row) for row in rows]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _format_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _record_params(record: InstallRecord) -> tuple:
    return (
        record.install_id,
        record.package_type.value,
        record.name,
        record.version,
        _format_date(record.install_date),
        record.original_file,
        record.install_path,
        record.desktop_file,
        json.dumps(record.metadata.to_dict()),
    )


def _row_to_record(row: tuple) -> InstallRecord:
    (install_id, package_type, name, version, install_date,
     original_file, install_path, desktop_file, metadata_json) = row
    try:
        metadata = Metadata.from_dict(json.loads(metadata_json) if metadata_json else None)
        return InstallRecord(
            install_id=install_id,
            package_type=PackageType(package_type),
            name=name,
            version=version or "",
            install_date=datetime.fromisoformat(install_date),
            original_file=original_file or "",
            install_path=install_path or "",
            desktop_file=desktop_file or "",
            metadata=metadata,
        )
    except (ValueError, TypeError) as e:
        raise PersistenceError(f"corrupt install record {install_id}: {e}", cause=e) from e
