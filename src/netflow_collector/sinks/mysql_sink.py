# mysql_sink.py -- Relational storage backend (MySQL by default)
# SQLAlchemy Core against any database URL; production configs build a
# mysql+pymysql URL from the [Database] section. Inserts are parameterised.

from __future__ import annotations

import logging

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    insert,
    select,
    text,
)
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..models import FlowRecord
from .base import COLUMNS, TABLE_NAME, record_to_row, row_to_record

log = logging.getLogger(__name__)

metadata = MetaData()

netflow_data = Table(
    TABLE_NAME,
    metadata,
    Column("FlowID", Integer, primary_key=True, autoincrement=True),
    Column("SourceIP", String(45), nullable=False),
    Column("DestinationIP", String(45), nullable=False),
    Column("SourcePort", Integer, nullable=False),
    Column("DestinationPort", Integer, nullable=False),
    Column("Protocol", Integer, nullable=False),
    Column("PacketCount", BigInteger, nullable=False),
    Column("ByteCount", BigInteger, nullable=False),
    Column("FlowStart", String(64), nullable=False),
    Column("FlowEnd", String(64), nullable=False),
    Column("SourceSond", String(255), nullable=False),
)


def mysql_url(host: str, port: int, user: str, password: str, database: str) -> URL:
    return URL.create(
        "mysql+pymysql",
        username=user or None,
        password=password or None,
        host=host,
        port=port,
        database=database or None,
    )


class MySQLSink:
    def __init__(self, url: str | URL) -> None:
        self.url = url
        self._engine: Engine | None = None

    @property
    def target(self) -> str:
        if isinstance(self.url, URL):
            return self.url.render_as_string(hide_password=True)
        return str(self.url)

    def _create_engine(self) -> Engine:
        return create_engine(self.url, pool_pre_ping=True)

    def connect(self) -> bool:
        if self._engine is None:
            try:
                self._engine = self._create_engine()
                with self._engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            except SQLAlchemyError as e:
                log.error("Cannot connect to database %s: %s", self.target, e)
                self._engine = None
                return False
        if not self.initialize_schema():
            return False
        log.info("Connected to database: %s", self.target)
        return True

    def initialize_schema(self) -> bool:
        if self._engine is None:
            log.error("Schema init before connect: %s", self.target)
            return False
        try:
            metadata.create_all(self._engine, checkfirst=True)
        except SQLAlchemyError as e:
            log.error("Error creating table %s: %s", TABLE_NAME, e)
            return False
        return True

    def check_reachability(self) -> bool:
        try:
            engine = self._create_engine()
            try:
                with engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
            finally:
                engine.dispose()
        except SQLAlchemyError as e:
            log.error("Cannot connect to database %s: %s", self.target, e)
            return False
        log.info("Successfully connected to database: %s", self.target)
        return True

    def insert_flow(self, record: FlowRecord) -> bool:
        if self._engine is None:
            log.error("Insert before connect: %s", self.target)
            return False
        try:
            with self._engine.begin() as conn:
                conn.execute(insert(netflow_data).values(dict(zip(COLUMNS, record_to_row(record)))))
        except SQLAlchemyError as e:
            log.error("Error inserting flow into %s: %s", self.target, e)
            return False
        return True

    def fetch_flows(self, limit: int | None = None) -> list[FlowRecord]:
        if self._engine is None:
            return []
        query = select(*(netflow_data.c[name] for name in COLUMNS)).order_by(netflow_data.c.FlowID)
        if limit is not None:
            query = query.limit(limit)
        with self._engine.connect() as conn:
            return [row_to_record(dict(row._mapping)) for row in conn.execute(query)]

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
