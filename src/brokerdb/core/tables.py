"""Core table definitions for the broker tables the migration engine touches.

These describe the *current* shape of the tables the ledger and the
data-transform steps read and write. The DDL that creates them lives,
frozen, inside each migration step (:mod:`brokerdb.core.migrations.steps`)
so that later changes here never alter what an old step does.

Every broker table carries ``created_at`` / ``updated_at`` / ``deleted_at``;
rows with a non-NULL ``deleted_at`` are soft-deleted and ignored.

Tags:
    brokerdb, sqlalchemy, tables, core

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text

metadata = MetaData()


def _timestamps() -> list[Column]:
    return [
        Column("created_at", DateTime, nullable=True),
        Column("updated_at", DateTime, nullable=True),
        Column("deleted_at", DateTime, nullable=True),
    ]


migrations = Table(
    "migrations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("migration_id", Integer, nullable=True),
)

service_instance_details = Table(
    "service_instance_details",
    metadata,
    Column("id", String(255), primary_key=True, server_default=""),
    *_timestamps(),
    Column("name", String(255)),
    Column("location", String(255)),
    Column("url", String(255)),
    Column("other_details", Text),
    Column("service_id", String(255)),
    Column("plan_id", String(255)),
    Column("space_guid", String(255)),
    Column("organization_guid", String(255)),
)

provision_request_details = Table(
    "provision_request_details",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    *_timestamps(),
    Column("service_instance_id", String(255)),
    Column("request_details", String(255)),
)


def live(table: Table):
    """``WHERE deleted_at IS NULL`` for ``table``."""
    return table.c.deleted_at.is_(None)
