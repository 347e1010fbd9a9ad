"""
Protocols consumed by the migration core.

The runner and the data-transform steps depend on shapes, not on concrete
classes: any object matching these protocols can stand in for the
SQLAlchemy store, the Cloud SQL Admin client or the service catalog. The
test-suite relies on this to inject failing lookups.

Architecture:
    ::

        protocols.py
        ├── Transaction          - one step's unit of work on the store
        ├── Store                - opens transactions, checks tables
        ├── ProvisioningLookup   - external instance lookup (Cloud SQL)
        └── ServiceResolver      - service id → ServiceKind

Tags:
    protocol, store, transaction, lookup, brokerdb
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.engine import Connection as SAConnection

    from brokerdb.services.catalog import ServiceKind
    from brokerdb.services.cloudsql import InstanceDescriptor


@runtime_checkable
class Transaction(Protocol):
    """A single open transaction on the store.

    Every statement issued through the same ``Transaction`` commits or
    rolls back together.
    """

    @property
    def connection(self) -> SAConnection:
        """The SQLAlchemy connection the transaction is bound to."""
        ...

    def execute(self, statement: Any, params: dict[str, Any] | None = None) -> Any:
        """Execute a statement (SQL string, Core construct or DDL element)."""
        ...

    def fetch_all(self, statement: Any) -> list[Any]:
        """Return every row of a query as mappings."""
        ...

    def fetch_one(self, statement: Any) -> Any:
        """Return the first row of a query as a mapping, or ``None``."""
        ...

    def update_row(self, table: Table, row_id: Any, values: dict[str, Any]) -> int:
        """Overwrite columns of the row whose primary key is ``row_id``."""
        ...

    def has_table(self, name: str) -> bool:
        """Whether ``name`` exists, as seen from inside the transaction."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


@runtime_checkable
class Store(Protocol):
    """The relational store migrations run against."""

    def begin(self) -> Transaction:
        """Open a new transaction."""
        ...

    def has_table(self, name: str) -> bool:
        """Whether table ``name`` exists."""
        ...

    def fetch_all(self, statement: Any) -> list[Any]:
        """Run a read outside of any migration transaction."""
        ...


@runtime_checkable
class ProvisioningLookup(Protocol):
    """Synchronous lookup of an externally provisioned instance."""

    def get_instance(self, project_id: str, instance_name: str) -> InstanceDescriptor:
        """Return the descriptor of ``instance_name`` in ``project_id``.

        Transport and not-found errors are raised, never swallowed.
        """
        ...


@runtime_checkable
class ServiceResolver(Protocol):
    """Maps the stable service id stored on a row to its ``ServiceKind``."""

    def resolve(self, service_id: str) -> ServiceKind:
        """Raise ``UnknownServiceError`` for ids without transformation rules."""
        ...


__all__ = ["Transaction", "Store", "ProvisioningLookup", "ServiceResolver"]
