"""Cloud SQL Admin API lookup used by the data-transform migration.

Fetches a Cloud SQL instance (``instances.get``) to learn values that were
assigned out-of-band and never stored by the broker, such as the
instance's IP address.

Every request carries an explicit ``httpx.Timeout``: migrations run during
process startup and a hung call would otherwise hang the whole startup
sequence. The limit applies to each phase of a request (connect, write,
each read, pool acquisition) separately, not to the request as a whole.
Failures are raised as ``ProvisioningLookupError`` subclasses and never
retried.

Usage::

    lookup = CloudSqlInstanceLookup.from_settings(get_settings())
    descriptor = lookup.get_instance("my-project", "broker-db-1")
    descriptor.primary_address   # "10.0.0.3"
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from brokerdb.core.errors import (
    InstanceNotFoundError,
    LookupTimeoutError,
    MissingConfigError,
    ProvisioningLookupError,
)
from brokerdb.core.logging import get_logger
from brokerdb.core.settings import BrokerDbSettings

logger = get_logger(__name__)

DEFAULT_SQLADMIN_URL = "https://sqladmin.googleapis.com/sql/v1beta4/"


class IpMapping(BaseModel):
    """One entry of an instance's ``ipAddresses`` list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ip_address: str = Field(alias="ipAddress")
    type: str | None = None


class InstanceDescriptor(BaseModel):
    """The subset of a Cloud SQL ``DatabaseInstance`` the migrations use."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    project: str | None = None
    ip_addresses: list[IpMapping] = Field(default_factory=list, alias="ipAddresses")

    @property
    def primary_address(self) -> str:
        """First IP address of the instance.

        Raises ``ProvisioningLookupError`` when the instance has none.
        """
        if not self.ip_addresses:
            raise ProvisioningLookupError(
                f"Cloud SQL instance {self.name!r} has no IP addresses"
            ).with_context(instance_name=self.name)
        return self.ip_addresses[0].ip_address


class CloudSqlInstanceLookup:
    """Synchronous Cloud SQL Admin client satisfying ``ProvisioningLookup``.

    Parameters
    ----------
    access_token:
        OAuth2 bearer token with the ``sqlservice.admin`` scope.
    base_url:
        Admin API root, ``https://sqladmin.googleapis.com/sql/v1beta4/``.
    timeout:
        Seconds allowed for each phase of a request (connect, write,
        each read, pool); not a total deadline.
    transport:
        Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_SQLADMIN_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: BrokerDbSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> CloudSqlInstanceLookup:
        if settings.access_token is None:
            raise MissingConfigError(
                "Cloud SQL lookups need BROKERDB_ACCESS_TOKEN",
                setting="access_token",
            )
        return cls(
            settings.access_token.get_secret_value(),
            base_url=settings.sqladmin_url,
            timeout=settings.lookup_timeout_seconds,
            transport=transport,
        )

    @property
    def timeout(self) -> httpx.Timeout:
        return self._client.timeout

    def get_instance(self, project_id: str, instance_name: str) -> InstanceDescriptor:
        path =f"projects/{project_id}/instances/{instance_name}"
        url = str(self._client.base_url.join(path))
        logger.debug("cloudsql.lookup", project_id=project_id, instance_name=instance_name)

        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise LookupTimeoutError(
                f"Error getting instance from api: {exc}", cause=exc
            ).with_context(url=url, instance_name=instance_name) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            error_cls = InstanceNotFoundError if status == 404 else ProvisioningLookupError
            raise error_cls(
                f"Error getting instance from api: {_error_message(exc.response)}",
                cause=exc,
            ).with_context(
                url=url, http_status=status, instance_name=instance_name
            ) from exc
        except httpx.HTTPError as exc:
            raise ProvisioningLookupError(
                f"Error getting instance from api: {exc}", cause=exc
            ).with_context(instance_name=instance_name) from exc

        try:
            return InstanceDescriptor.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProvisioningLookupError(
                f"Unexpected instance payload from api: {exc}", cause=exc
            ).with_context(url=url, instance_name=instance_name) from exc

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> CloudSqlInstanceLookup:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of a Google API error body, if present."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        if message:
            return f"HTTP {response.status_code}: {message}"
    return f"HTTP {response.status_code}"


class UnconfiguredLookup:
    """Lookup used when no Admin API credentials are configured.

    Databases without Cloud SQL instances migrate without credentials; the
    first Cloud SQL row fails the step with ``MissingConfigError``.
    """

    def get_instance(self, project_id: str, instance_name: str) -> InstanceDescriptor:
        raise MissingConfigError(
            f"Cloud SQL instance {instance_name!r} needs BROKERDB_ACCESS_TOKEN to be migrated",
            setting="access_token",
        )

    def close(self) -> None:
        pass


def lookup_from_settings(settings: BrokerDbSettings) -> CloudSqlInstanceLookup | UnconfiguredLookup:
    if settings.access_token is None:
        return UnconfiguredLookup()
    return CloudSqlInstanceLookup.from_settings(settings)
