"""Collaborators consulted by data-transform migrations."""

from brokerdb.services.catalog import ServiceCatalog, ServiceKind
from brokerdb.services.cloudsql import CloudSqlInstanceLookup, InstanceDescriptor

__all__ = [
    "CloudSqlInstanceLookup",
    "InstanceDescriptor",
    "ServiceCatalog",
    "ServiceKind",
]
