# sqlite_sink.py -- SQLite storage backend
# WAL mode so several probes (one sink each) can share a database file.
# Schema is created on connect; CREATE ... IF NOT EXISTS keeps it idempotent.

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..models import FlowRecord
from .base import COLUMNS, TABLE_NAME, record_to_row, row_to_record

log = logging.getLogger(__name__)

BUSY_TIMEOUT = 10.0  # seconds

SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
        FlowID INTEGER PRIMARY KEY AUTOINCREMENT,
        SourceIP TEXT NOT NULL,
        DestinationIP TEXT NOT NULL,
        SourcePort INTEGER NOT NULL,
        DestinationPort INTEGER NOT NULL,
        Protocol INTEGER NOT NULL,
        PacketCount INTEGER NOT NULL,
        ByteCount INTEGER NOT NULL,
        FlowStart TEXT NOT NULL,
        FlowEnd TEXT NOT NULL,
        SourceSond TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_nf_sond ON {TABLE_NAME}(SourceSond);
"""

_INSERT = (
    f"INSERT INTO {TABLE_NAME} ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in COLUMNS)})"
)


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    return {col[0]: row[i] for i, col in enumerate(cursor.description)}


class SQLiteSink:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._conn: sqlite3.Connection | None = None

    def _open(self) -> sqlite3.Connection:
        # Opened on the main thread, then used only by the owning probe's thread
        conn = sqlite3.connect(str(self.path), check_same_thread=False, timeout=BUSY_TIMEOUT)
        conn.row_factory = _dict_factory
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def connect(self) -> bool:
        if self._conn is None:
            try:
                if self.path.parent != Path():
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = self._open()
            except (sqlite3.Error, OSError) as e:
                log.error("Cannot open SQLite database %s: %s", self.path, e)
                return False
        if not self.initialize_schema():
            return False
        log.info("Connected to SQLite database: %s", self.path)
        return True

    def initialize_schema(self) -> bool:
        if self._conn is None:
            log.error("SQLite schema init before connect: %s", self.path)
            return False
        try:
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            log.error("Error creating table %s: %s", TABLE_NAME, e)
            return False
        return True

    def check_reachability(self) -> bool:
        try:
            conn = sqlite3.connect(str(self.path), timeout=BUSY_TIMEOUT)
            try:
                conn.execute("SELECT 1")
            finally:
                conn.close()
        except sqlite3.Error as e:
            log.error("Cannot open SQLite database %s: %s", self.path, e)
            return False
        log.info("Successfully connected to SQLite database: %s", self.path)
        return True

    def insert_flow(self, record: FlowRecord) -> bool:
        if self._conn is None:
            log.error("SQLite insert before connect: %s", self.path)
            return False
        try:
            with self._conn:
                self._conn.execute(_INSERT, record_to_row(record))
        except sqlite3.Error as e:
            log.error("Error inserting flow into %s: %s", self.path, e)
            return False
        return True

    def fetch_flows(self, limit: int | None = None) -> list[FlowRecord]:
        if self._conn is None:
            return []
        sql = f"SELECT * FROM {TABLE_NAME} ORDER BY FlowID"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return [row_to_record(row) for row in self._conn.execute(sql, params).fetchall()]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
