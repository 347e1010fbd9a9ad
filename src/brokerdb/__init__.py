"""
brokerdb - versioned schema migrations for the service broker database.

The hosting process calls ``migrate()`` (or ``run_migrations()`` with its
own step list) once at startup, before it serves requests.
"""

from __future__ import annotations

__version__ = "0.1.0"

from brokerdb.bootstrap import migrate
from brokerdb.core.migrations import (
    MigrationReport,
    MigrationRunner,
    MigrationStep,
    build_migrations,
    run_migrations,
)
from brokerdb.core.store import SqlStore

__all__ = [
    "MigrationReport",
    "MigrationRunner",
    "MigrationStep",
    "SqlStore",
    "build_migrations",
    "migrate",
    "run_migrations",
]
