"""Relational store access over a SQLAlchemy engine."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.engine import Connection, Dialect, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable

from .planner import TableSchema
from .registry import TypeRegistry

logger = logging.getLogger(__name__)


def build_table(schema: TableSchema, registry: Optional[TypeRegistry] = None, db_schema: Optional[str] = None) -> sa.Table:
    """SQLAlchemy Table for a TableSchema, columns in schema order, all nullable."""
    registry = registry or TypeRegistry.default()
    columns = [sa.Column(c.name, registry.resolve(c.column_type), nullable=True) for c in schema.columns]
    return sa.Table(schema.table_name, sa.MetaData(), *columns, schema=db_schema)


def render_create_table(schema: TableSchema, dialect: Dialect, registry: Optional[TypeRegistry] = None) -> str:
    """CREATE TABLE text for the dialect."""
    return str(CreateTable(build_table(schema, registry)).compile(dialect=dialect)).strip()


class StoreSession:
    """One connection for one ingestion run.

    Outside ``transaction()`` every statement commits on its own.
    """

    def __init__(self, conn: Connection, db_schema: Optional[str] = None, registry: Optional[TypeRegistry] = None):
        self.conn = conn
        self.db_schema = db_schema
        self.registry = registry or TypeRegistry.default()
        self._tables: Dict[str, sa.Table] = {}
        self._in_tx = False

    @property
    def dialect(self) -> Dialect:
        return self.conn.dialect

    def _commit(self) -> None:
        if not self._in_tx:
            self.conn.commit()

    def has_table(self, table: str) -> bool:
        exists = sa.inspect(self.conn).has_table(table, schema=self.db_schema)
        self._commit()
        return exists

    def drop_table(self, table: str) -> None:
        q = self.dialect.identifier_preparer.quote
        pre = f"{q(self.db_schema)}." if self.db_schema else ""
        self.conn.execute(sa.text(f"DROP TABLE IF EXISTS {pre}{q(table)}"))
        self._commit()
        self._tables.pop(table, None)
        logger.info("Dropped table %s", table)

    def create_table(self, schema: TableSchema) -> sa.Table:
        table = build_table(schema, self.registry, self.db_schema)
        table.create(self.conn)
        self._commit()
        self._tables[schema.table_name] = table
        logger.info("Created table %s (%s)", schema.table_name, ", ".join(schema.names))
        return table

    def insert_row(self, table: str, row: Mapping[str, Any]) -> None:
        target = self._tables.get(table)
        if target is None:
            target = sa.Table(table, sa.MetaData(), schema=self.db_schema, autoload_with=self.conn)
            self._tables[table] = target
        self.conn.execute(target.insert(), [dict(row)])
        self._commit()

    def row_count(self, table: str) -> int:
        q = self.dialect.identifier_preparer.quote
        pre = f"{q(self.db_schema)}." if self.db_schema else ""
        count = self.conn.execute(sa.text(f"SELECT COUNT(*) FROM {pre}{q(table)}")).scalar()
        self._commit()
        return int(count or 0)

    @contextmanager
    def transaction(self) -> Iterator["StoreSession"]:
        """Group statements into one transaction; rolls back on any exception."""
        if self.conn.in_transaction():
            self.conn.commit()
        self._in_tx = True
        try:
            with self.conn.begin():
                yield self
        finally:
            self._in_tx = False


def _enable_sqlite_transactional_ddl(engine: Engine) -> None:
    """Let pysqlite run DDL inside BEGIN/ROLLBACK like any other statement.

    pysqlite only emits BEGIN ahead of DML, so without this a DROP or CREATE
    commits on its own even inside ``conn.begin()``.
    """

    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


class TableStore:
    """Process-wide store handle; hand out one session per ingestion run."""

    def __init__(self, engine: Engine, db_schema: Optional[str] = None, registry: Optional[TypeRegistry] = None):
        self.engine = engine
        self.db_schema = db_schema
        self.registry = registry or TypeRegistry.default()
        # table name -> [lock, holders]; dropped when the last holder leaves
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_uri(cls, uri: str, db_schema: Optional[str] = None, **engine_kwargs: Any) -> "TableStore":
        engine = sa.create_engine(uri, **engine_kwargs)
        if engine.dialect.name == "sqlite":
            _enable_sqlite_transactional_ddl(engine)
        return cls(engine, db_schema=db_schema)

    @property
    def dialect(self) -> Dialect:
        return self.engine.dialect

    @contextmanager
    def session(self) -> Iterator[StoreSession]:
        """Scoped connection, released on every exit path."""
        with self.engine.connect() as conn:
            yield StoreSession(conn, self.db_schema, self.registry)

    @contextmanager
    def table_lock(self, table: str) -> Iterator[None]:
        """In-process mutual exclusion keyed by table name."""
        with self._locks_guard:
            entry = self._locks.setdefault(table, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[table]

    def check_connection(self) -> bool:
        """Open one connection and run a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(sa.text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database connection failed: %s", e)
            return False
        logger.info("Database connection successful (%s)", self.dialect.name)
        return True

    def has_table(self, table: str) -> bool:
        with self.session() as s:
            return s.has_table(table)

    def row_count(self, table: str) -> int:
        with self.session() as s:
            return s.row_count(table)

    def dispose(self) -> None:
        self.engine.dispose()
