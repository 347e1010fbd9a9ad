"""
Shared pytest fixtures for brokerdb tests.

This module provides:
- File-backed SQLite stores (fresh per test)
- Row seeding helpers for the broker tables
- Fake provisioning lookups (recording / failing)
- Log capture and settings-cache isolation

Fixtures are auto-discovered by pytest; use them as function arguments.
"""

from __future__ import annotations

import datetime
import json
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import structlog
from sqlalchemy import insert

from brokerdb.core import tables
from brokerdb.core.errors import ProvisioningLookupError
from brokerdb.core.settings import clear_settings_cache
from brokerdb.core.store import SqlStore
from brokerdb.services.catalog import DEFAULT_SERVICES, ServiceCatalog, ServiceKind
from brokerdb.services.cloudsql import InstanceDescriptor

SERVICE_IDS: dict[ServiceKind, str] = {
    ServiceKind(name): service_id for service_id, name in DEFAULT_SERVICES.items()
}


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def log_events() -> Generator[list[dict[str, Any]], None, None]:
    """Capture structlog events instead of printing them."""
    with structlog.testing.capture_logs() as captured:
        yield captured
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def _clear_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Fresh settings per test, never influenced by a developer's environment."""
    import os

    for key in list(os.environ):
        if key.startswith("BROKERDB_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Store fixtures
# =============================================================================


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'broker.db'}"


@pytest.fixture()
def store(database_url: str) -> Generator[SqlStore, None, None]:
    """A broker store on a fresh SQLite file."""
    s = SqlStore.from_url(database_url)
    yield s
    s.dispose()


def table_names(store: SqlStore) -> set[str]:
    rows = store.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row["name"] for row in rows}


@pytest.fixture()
def tables_in(store: SqlStore) -> Callable[[], set[str]]:
    return lambda: table_names(store)


class BrokerRows:
    """Seeds and reads broker rows through a store."""

    def __init__(self, store: SqlStore) -> None:
        self._store = store
        self._now = datetime.datetime(2024, 1, 1, 12, 0, 0)

    def instance(
        self,
        instance_id: str,
        kind: ServiceKind | None = None,
        *,
        service_id: str | None = None,
        other_details: str | None = '{"legacy": "value"}',
    ) -> None:
        with self._store.begin() as tx:
            tx.execute(
                insert(tables.service_instance_details).values(
                    id=instance_id,
                    created_at=self._now,
                    updated_at=self._now,
                    name=instance_id,
                    service_id=service_id or SERVICE_IDS[kind],
                    plan_id="plan",
                    other_details=other_details,
                )
            )

    def request(self, instance_id: str, details: dict[str, Any] | str) -> None:
        raw = details if isinstance(details, str) else json.dumps(details)
        with self._store.begin() as tx:
            tx.execute(
                insert(tables.provision_request_details).values(
                    created_at=self._now,
                    updated_at=self._now,
                    service_instance_id=instance_id,
                    request_details=raw,
                )
            )

    def other_details(self, instance_id: str) -> str | None:
        rows = self._store.fetch_all(
            tables.service_instance_details.select().where(
                tables.service_instance_details.c.id == instance_id
            )
        )
        return rows[0]["other_details"]

    def all_other_details(self) -> dict[str, str | None]:
        rows = self._store.fetch_all(tables.service_instance_details.select())
        return {row["id"]: row["other_details"] for row in rows}

    def ledger_ids(self) -> list[int]:
        rows = self._store.fetch_all(
            tables.migrations.select().order_by(tables.migrations.c.migration_id)
        )
        return [row["migration_id"] for row in rows]


@pytest.fixture()
def rows(store: SqlStore) -> BrokerRows:
    return BrokerRows(store)


# =============================================================================
# Collaborator fakes
# =============================================================================


class RecordingLookup:
    """Provisioning lookup that answers from a dict and records every call."""

    def __init__(self, addresses: dict[str, str] | None = None) -> None:
        self.addresses = addresses or {}
        self.calls: list[tuple[str, str]] = []

    def get_instance(self, project_id: str, instance_name: str) -> InstanceDescriptor:
        self.calls.append((project_id, instance_name))
        ip = self.addresses.get(instance_name, "10.0.0.1")
        return InstanceDescriptor.model_validate(
            {"name": instance_name, "ipAddresses": [{"ipAddress": ip, "type": "PRIMARY"}]}
        )

    def close(self) -> None:
        pass


class FailingLookup:
    """Provisioning lookup whose every call fails."""

    def __init__(self, message: str = "Error getting instance from api: HTTP 503") -> None:
        self.message = message
        self.calls: list[tuple[str, str]] = []

    def get_instance(self, project_id: str, instance_name: str) -> InstanceDescriptor:
        self.calls.append((project_id, instance_name))
        raise ProvisioningLookupError(self.message)

    def close(self) -> None:
        pass


@pytest.fixture()
def lookup() -> RecordingLookup:
    return RecordingLookup({"prod-db": "10.1.2.3"})


@pytest.fixture()
def failing_lookup() -> FailingLookup:
    return FailingLookup()


@pytest.fixture()
def catalog() -> ServiceCatalog:
    return ServiceCatalog.default()
