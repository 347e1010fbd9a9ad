"""Service catalog: resolves the service id stored on a row to a ``ServiceKind``.

Instance rows only store the opaque, stable service id the broker
advertised in its catalog. Data-transform steps need to know which kind
of resource the row represents to decide how its details are reshaped.

Example::

    catalog = ServiceCatalog.default()
    catalog.resolve("b9e4332e-b42b-4680-bda5-ea1506797474")
    # <ServiceKind.STORAGE: 'google-storage'>
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from brokerdb.core.errors import UnknownServiceError


class ServiceKind(str, Enum):
    """Broker services, keyed by their catalog name."""

    CLOUDSQL_MYSQL = "google-cloudsql-mysql"
    BIGQUERY = "google-bigquery"
    ML_APIS = "google-ml-apis"
    STORAGE = "google-storage"
    PUBSUB = "google-pubsub"


# Service ids advertised by the broker catalog; they never change once released.
DEFAULT_SERVICES: dict[str, str] = {
    "4bc59b9a-8520-409f-85da-1c7552315863": ServiceKind.CLOUDSQL_MYSQL.value,
    "f80c0a3e-bd4d-4809-a900-b4e33a6450f1": ServiceKind.BIGQUERY.value,
    "5ad2dce0-51f7-4ede-8b46-293d6df1e8d4": ServiceKind.ML_APIS.value,
    "b9e4332e-b42b-4680-bda5-ea1506797474": ServiceKind.STORAGE.value,
    "628629e3-79f5-4255-b981-d14c6c7856be": ServiceKind.PUBSUB.value,
}


class ServiceCatalog:
    """Maps service ids to service names and names to ``ServiceKind``.

    An id that is not in the catalog, or a name with no ``ServiceKind``,
    raises ``UnknownServiceError``: the caller is looking at data it does
    not know how to handle.
    """

    def __init__(self, services: Mapping[str, str]) -> None:
        self._services = dict(services)

    @classmethod
    def default(cls) -> ServiceCatalog:
        return cls(DEFAULT_SERVICES)

    def name_of(self, service_id: str) -> str:
        try:
            return self._services[service_id]
        except KeyError:
            raise UnknownServiceError(
                f"service id {service_id!r} is not in the catalog",
                service_id=service_id,
            ) from None

    def resolve(self, service_id: str) -> ServiceKind:
        name = self.name_of(service_id)
        try:
            return ServiceKind(name)
        except ValueError:
            raise UnknownServiceError(
                f"unrecognized service: {service_id} ({name})",
                service_id=service_id,
            ) from None

    def __contains__(self, service_id: object) -> bool:
        return service_id in self._services

    def __len__(self) -> int:
        return len(self._services)
