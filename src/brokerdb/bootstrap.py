"""Wire settings into a migration run.

``migrate()`` is what a hosting process calls at startup: it opens the
store, builds the broker's migration list with the configured Cloud SQL
lookup and project id, and runs it. Anything it creates itself it also
closes.
"""

from __future__ import annotations

from brokerdb.core.migrations import MigrationReport, build_migrations, run_migrations
from brokerdb.core.protocols import ProvisioningLookup, ServiceResolver
from brokerdb.core.settings import BrokerDbSettings, get_settings
from brokerdb.core.store import SqlStore
from brokerdb.services.catalog import ServiceCatalog
from brokerdb.services.cloudsql import lookup_from_settings


def migrate(
    settings: BrokerDbSettings | None = None,
    *,
    store: SqlStore | None = None,
    catalog: ServiceResolver | None = None,
    lookup: ProvisioningLookup | None = None,
) -> MigrationReport:
    """Run the broker migrations against the configured database.

    Any collaborator passed explicitly is used as-is and left open.
    """
    settings = settings or get_settings()
    project_id = settings.project_id()

    owned_store = store is None
    if store is None:
        store = SqlStore.from_url(settings.database_url, echo=settings.database_echo)

    owned_lookup = lookup is None
    if lookup is None:
        lookup = lookup_from_settings(settings)

    steps = build_migrations(
        catalog=catalog or ServiceCatalog.default(),
        lookup=lookup,
        project_id=project_id,
    )

    try:
        return run_migrations(store, steps)
    finally:
        if owned_lookup:
            lookup.close()  # type: ignore[attr-defined]
        if owned_store:
            store.dispose()
