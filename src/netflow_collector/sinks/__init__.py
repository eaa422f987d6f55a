# sinks -- Storage backends behind the FlowSink contract

from __future__ import annotations

import logging

from ..config import ConfigError, DatabaseConfig
from .base import FlowSink
from .csv_sink import CSVSink
from .mysql_sink import MySQLSink, mysql_url
from .sqlite_sink import SQLiteSink

log = logging.getLogger(__name__)

__all__ = ["CSVSink", "FlowSink", "MySQLSink", "SQLiteSink", "check_database", "create_sink"]


def create_sink(db: DatabaseConfig) -> FlowSink:
    """Build an unconnected sink for the configured backend."""
    if db.type == "sqlite":
        return SQLiteSink(db.sqlite_path)
    if db.type == "csv":
        return CSVSink(db.csv_path)
    if db.type == "mysql":
        return MySQLSink(
            mysql_url(db.mysql_host, db.mysql_port, db.mysql_user, db.mysql_password, db.mysql_database)
        )
    raise ConfigError(f"Database type not implemented: {db.type!r}")


def check_database(db: DatabaseConfig) -> bool:
    """Offline check: target reachable, schema provisioned. Used by --checkdb."""
    sink = create_sink(db)
    if not sink.check_reachability():
        log.error("Database connection failed")
        return False
    try:
        if not sink.connect():
            log.error("Failed to initialize database")
            return False
    finally:
        sink.close()
    return True
