"""Migration ledger: which migration ordinals have been applied.

One row per applied step lives in the ``migrations`` table. Entries are
written through the step's own transaction, so a step and its ledger entry
commit or roll back together, and they are never updated or deleted by
the engine.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError

from brokerdb.core import tables
from brokerdb.core.errors import LedgerReadError, LedgerWriteError
from brokerdb.core.logging import get_logger
from brokerdb.core.protocols import Store, Transaction

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerEntry:
    """Record of a single applied migration."""

    migration_id: int
    applied_at: datetime.datetime | None


class MigrationLedger:
    """Reads and appends ``migrations`` rows on a :class:`Store`.

    Example::

        ledger = MigrationLedger(store)
        ledger.last_applied()     # None on a fresh database
    """

    table = tables.migrations

    def __init__(self, store: Store) -> None:
        self._store = store

    def last_applied(self) -> int | None:
        """Return the highest applied ordinal, or ``None`` on a first run.

        A missing ``migrations`` table means nothing was ever applied. Any
        storage failure raises ``LedgerReadError``.
        """
        try:
            if not self._store.has_table(self.table.name):
                logger.info("migration.ledger.missing", table=self.table.name)
                return None
            rows = self._store.fetch_all(
                select(func.max(self.table.c.migration_id).label("last"))
                .where(tables.live(self.table))
            )
        except SQLAlchemyError as exc:
            raise LedgerReadError(
                f"Error getting last migration id even though migration table exists: {exc}",
                cause=exc,
            ).with_context(table=self.table.name) from exc

        return rows[0]["last"] if rows else None

    def applied(self) -> list[LedgerEntry]:
        """Return all live ledger entries ordered by ordinal."""
        try:
            if not self._store.has_table(self.table.name):
                return []
            rows = self._store.fetch_all(
                select(self.table.c.migration_id, self.table.c.created_at)
                .where(tables.live(self.table))
                .order_by(self.table.c.migration_id)
            )
        except SQLAlchemyError as exc:
            raise LedgerReadError(
                f"Error reading migration ledger: {exc}", cause=exc
            ).with_context(table=self.table.name) from exc

        return [
            LedgerEntry(migration_id=row["migration_id"], applied_at=row["created_at"])
            for row in rows
        ]

    def record_applied(self, tx: Transaction, migration_id: int) -> None:
        """Append the entry for ``migration_id`` inside ``tx``.

        Creates the ``migrations`` table first if it does not exist yet, in
        the same transaction.
        """
        now = datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
        try:
            self.table.create(tx.connection, checkfirst=True)
            tx.execute(
                insert(self.table).values(
                    migration_id=migration_id, created_at=now, updated_at=now
                )
            )
        except SQLAlchemyError as exc:
            raise LedgerWriteError(
                f"Error recording migration {migration_id}: {exc}", cause=exc
            ).with_context(table=self.table.name, migration_id=migration_id) from exc
