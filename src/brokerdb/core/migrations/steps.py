"""The broker's numbered migrations.

Migrations are append-only. Once a step is released its body, ordinal and
DDL never change; new schema or data changes are added as new steps at
the end of ``build_migrations``.

The DDL of each step is frozen here as its own ``Table`` definitions and
compiled for the store's dialect at run time. Statements keep their
``IF NOT EXISTS`` phrasing so a re-run against a database whose engine
committed DDL outside the step transaction still succeeds.

    0  create broker tables + the migrations ledger
    1  add cloud_operations, copy provision request details into
       service instance details (Cloud SQL lookup)
    2  no-op (formerly: drop plan_details)
"""

from __future__ import annotations

from functools import partial

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, String, Table, Text, inspect
from sqlalchemy.dialects import mysql
from sqlalchemy.schema import CreateIndex, CreateTable

from brokerdb.core.migrations.runner import MigrationStep, noop
from brokerdb.core.migrations.transforms import copy_provision_details
from brokerdb.core.protocols import ProvisioningLookup, ServiceResolver, Transaction

_MYSQL_TABLE_ARGS = {"mysql_engine": "InnoDB", "mysql_charset": "utf8"}

_UnsignedInt = Integer().with_variant(mysql.INTEGER(display_width=10, unsigned=True), "mysql")
_Timestamp = DateTime().with_variant(mysql.TIMESTAMP(), "mysql")


def _timestamps() -> list[Column]:
    return [
        Column("created_at", _Timestamp, nullable=True),
        Column("updated_at", _Timestamp, nullable=True),
        Column("deleted_at", _Timestamp, nullable=True),
    ]


def _create_table(tx: Transaction, table: Table) -> None:
    """``CREATE TABLE IF NOT EXISTS`` plus any missing indexes."""
    tx.execute(CreateTable(table, if_not_exists=True))

    existing = {ix["name"] for ix in inspect(tx.connection).get_indexes(table.name)}
    for index in sorted(table.indexes, key=lambda ix: ix.name):
        if index.name not in existing:
            tx.execute(CreateIndex(index))


# ── 0: initial tables ────────────────────────────────────────────────────

_v0 = MetaData()

_v0_service_instance_details = Table(
    "service_instance_details",
    _v0,
    Column("id", String(255), primary_key=True, nullable=False, server_default=""),
    *_timestamps(),
    Column("name", String(255)),
    Column("location", String(255)),
    Column("url", String(255)),
    Column("other_details", Text),
    Column("service_id", String(255)),
    Column("plan_id", String(255)),
    Column("space_guid", String(255)),
    Column("organization_guid", String(255)),
    **_MYSQL_TABLE_ARGS,
)

_v0_service_binding_credentials = Table(
    "service_binding_credentials",
    _v0,
    Column("id", _UnsignedInt, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("other_details", Text),
    Column("service_id", String(255)),
    Column("service_instance_id", String(255)),
    Column("binding_id", String(255)),
    Index("idx_service_binding_credentials_deleted_at", "deleted_at"),
    **_MYSQL_TABLE_ARGS,
)

_v0_provision_request_details = Table(
    "provision_request_details",
    _v0,
    Column("id", _UnsignedInt, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("service_instance_id", String(255)),
    Column("request_details", String(255)),
    Index("idx_provision_request_details_deleted_at", "deleted_at"),
    **_MYSQL_TABLE_ARGS,
)

_v0_plan_details = Table(
    "plan_details",
    _v0,
    Column("id", String(255), primary_key=True, nullable=False, server_default=""),
    *_timestamps(),
    Column("service_id", String(255)),
    Column("name", String(255)),
    Column("features", Text),
    **_MYSQL_TABLE_ARGS,
)

_v0_migrations = Table(
    "migrations",
    _v0,
    Column("id", _UnsignedInt, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("migration_id", Integer),
    **_MYSQL_TABLE_ARGS,
)


def create_initial_tables(tx: Transaction) -> None:
    for table in (
        _v0_service_instance_details,
        _v0_service_binding_credentials,
        _v0_provision_request_details,
        _v0_plan_details,
        _v0_migrations,
    ):
        _create_table(tx, table)


# ── 1: cloud operations + provision details copy ─────────────────────────

_v1 = MetaData()

_v1_cloud_operations = Table(
    "cloud_operations",
    _v1,
    Column("id", _UnsignedInt, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("name", String(255)),
    Column("status", String(255)),
    Column("operation_type", String(255)),
    Column("error_message", Text),
    Column("insert_time", String(255)),
    Column("start_time", String(255)),
    Column("target_id", String(255)),
    Column("target_link", String(255)),
    Column("service_id", String(255)),
    Column("service_instance_id", String(255)),
    **_MYSQL_TABLE_ARGS,
)


def add_cloud_operations(
    tx: Transaction,
    *,
    catalog: ServiceResolver,
    lookup: ProvisioningLookup,
    project_id: str | None,
) -> None:
    _create_table(tx, _v1_cloud_operations)
    copy_provision_details(tx, catalog=catalog, lookup=lookup, project_id=project_id)


# ── migration list ───────────────────────────────────────────────────────


def build_migrations(
    *,
    catalog: ServiceResolver,
    lookup: ProvisioningLookup,
    project_id: str | None,
) -> tuple[MigrationStep, ...]:
    """Return the broker's migrations in ordinal order.

    ``catalog``, ``lookup`` and ``project_id`` are only consulted by the
    data-transform step (1).
    """
    return (
        MigrationStep(0, "create broker tables", create_initial_tables),
        MigrationStep(
            1,
            "add cloud operations, copy provision details",
            partial(add_cloud_operations, catalog=catalog, lookup=lookup, project_id=project_id),
        ),
        # Used to drop plan_details. Dropping it could leave operators who skip
        # the upgrade path unable to recover their plan details.
        MigrationStep(2, "drop plan details (no-op)", noop),
    )
