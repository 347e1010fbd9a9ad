"""SQLAlchemy engine factory and the transactional store used by migrations.

Manifesto:
    The migration runner needs exactly one thing from the database: a
    transaction per step in which DDL, row reads, row writes and the
    ledger insert all commit or roll back together. ``SqlStore`` hands
    out those transactions; ``StoreTransaction`` is the only handle a step
    body ever sees.

This module provides:

* ``create_broker_engine`` -- Create a SA engine from a URL with sane defaults.
* ``SqlStore``             -- Opens ``StoreTransaction`` objects, answers
  table-existence checks and out-of-transaction reads.
* ``StoreTransaction``     -- One open transaction; satisfies
  ``brokerdb.core.protocols.Transaction``.

SQLite:
    pysqlite commits implicitly before DDL and only opens transactions
    before DML. The engine hands transaction control to SQLAlchemy
    (driver autocommit, explicit ``BEGIN`` on begin) so a failing step
    also rolls back its ``CREATE TABLE`` statements.

Tags:
    brokerdb, sqlalchemy, engine, transaction, store

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import Table, create_engine, event, inspect, text, update
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import SQLAlchemyError

from brokerdb.core.errors import DatabaseError


def create_broker_engine(
    url: str = "sqlite:///brokerdb.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine for the broker database.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``mysql+pymysql://…``,
        ``postgresql://…``).
    echo:
        If ``True``, log all SQL.
    pool_size, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _emit_begin(conn: Connection) -> None:
            conn.exec_driver_sql("BEGIN")

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return create_engine(url, echo=echo, **pool_kwargs, **kwargs)


def _as_statement(statement: Any) -> Any:
    if isinstance(statement, str):
        return text(statement)
    return statement


class StoreTransaction:
    """One open transaction on a :class:`SqlStore`.

    ``commit()`` and ``rollback()`` end the transaction and release the
    connection; calling ``rollback()`` on a finished transaction is a
    no-op so error paths can always call it.
    """

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._transaction = connection.begin()

    # --- statements ---

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def dialect_name(self) -> str:
        return self._connection.dialect.name

    @property
    def is_active(self) -> bool:
        return self._transaction.is_active

    def execute(self, statement: Any, params: Mapping[str, Any] | None = None) -> Any:
        if params:
            return self._connection.execute(_as_statement(statement), dict(params))
        return self._connection.execute(_as_statement(statement))

    def fetch_all(self, statement: Any) -> list[RowMapping]:
        return list(self._connection.execute(_as_statement(statement)).mappings())

    def fetch_one(self, statement: Any) -> RowMapping | None:
        return self._connection.execute(_as_statement(statement)).mappings().first()

    def update_row(self, table: Table, row_id: Any, values: dict[str, Any]) -> int:
        (pk,) = table.primary_key.columns
        result = self._connection.execute(
            update(table).where(pk == row_id).values(**values)
        )
        return result.rowcount

    def has_table(self, name: str) -> bool:
        return inspect(self._connection).has_table(name)

    # --- transaction ---

    def commit(self) -> None:
        try:
            self._transaction.commit()
        finally:
            self._connection.close()

    def rollback(self) -> None:
        try:
            if self._transaction.is_active:
                self._transaction.rollback()
        finally:
            self._connection.close()

    def __enter__(self) -> StoreTransaction:
        return self

    def __exit__(self, exc_type: Any, *args: Any) -> None:
        if exc_type is None and self.is_active:
            self.commit()
        else:
            self.rollback()

    def __repr__(self) -> str:
        state = "active" if self.is_active else "closed"
        return f"StoreTransaction(dialect={self.dialect_name!r}, {state})"


class SqlStore:
    """The broker database as seen by the migration engine.

    Example::

        store = SqlStore.from_url("sqlite:///broker.db")
        tx = store.begin()
        try:
            tx.execute("CREATE TABLE IF NOT EXISTS t (id INTEGER)")
            tx.commit()
        except Exception:
            tx.rollback()
            raise
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **kwargs: Any) -> SqlStore:
        """Build a store for ``url``; a URL SQLAlchemy rejects raises ``DatabaseError``."""
        try:
            engine = create_broker_engine(url, echo=echo, **kwargs)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Invalid database URL: {exc}", cause=exc) from exc
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def begin(self) -> StoreTransaction:
        try:
            return StoreTransaction(self._engine.connect())
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Could not open a transaction: {exc}", cause=exc) from exc

    def has_table(self, name: str) -> bool:
        with self._engine.connect() as conn:
            return inspect(conn).has_table(name)

    def fetch_all(self, statement: Any) -> list[RowMapping]:
        with self._engine.connect() as conn:
            return list(conn.execute(_as_statement(statement)).mappings())

    def dispose(self) -> None:
        self._engine.dispose()

    def __repr__(self) -> str:
        return f"SqlStore({self._engine.url.render_as_string(hide_password=True)!r})"


__all__ = ["create_broker_engine", "SqlStore", "StoreTransaction"]
