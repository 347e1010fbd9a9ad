"""Versioned schema migrations for the broker database.

Applies a fixed, numbered list of migration steps exactly once each,
tracking applied ordinals in the ``migrations`` table. Each step runs in
its own transaction together with its ledger entry.

Modules
-------
ledger      MigrationLedger: last_applied() / record_applied()
runner      MigrationStep, MigrationRunner, run_migrations()
transforms  Data-transform steps (provision details copy)
steps       build_migrations(): the broker's migration list

Tags:
    brokerdb, migrations, schema, ledger, transactional
"""

from brokerdb.core.migrations.ledger import LedgerEntry, MigrationLedger
from brokerdb.core.migrations.runner import (
    MigrationReport,
    MigrationRunner,
    MigrationStep,
    noop,
    run_migrations,
)
from brokerdb.core.migrations.steps import build_migrations

__all__ = [
    "LedgerEntry",
    "MigrationLedger",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStep",
    "build_migrations",
    "noop",
    "run_migrations",
]
