"""Data-transform migrations: reshape stored rows, not just structure.

``copy_provision_details`` moves the per-service details the broker used to
keep in ``provision_request_details.request_details`` into
``service_instance_details.other_details``, reshaped per service kind. For
Cloud SQL instances the host address is not stored anywhere, so it is
fetched from the Cloud SQL Admin API while the migration runs.

Every rewrite happens inside the step's transaction. Any failure
(malformed details, an unknown service, a missing instance row, a failed
lookup) fails the whole step and the runner rolls every rewrite back.
"""

from __future__ import annotations

import datetime

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select

from brokerdb.core import tables
from brokerdb.core.errors import (
    MalformedDetailsError,
    MissingConfigError,
    MissingRecordError,
    UnknownServiceError,
)
from brokerdb.core.logging import get_logger
from brokerdb.core.protocols import ProvisioningLookup, ServiceResolver, Transaction
from brokerdb.services.catalog import ServiceKind

logger = get_logger(__name__)

_DETAILS = TypeAdapter(dict[str, str])
_STORED_DETAILS = TypeAdapter(dict[str, str | None] | None)


def parse_details(raw: str | None) -> dict[str, str]:
    """Deserialize a detail blob into a string-to-string mapping.

    A JSON ``null`` blob is an empty mapping and ``null`` values become
    ``""``. Raises ``MalformedDetailsError`` for SQL NULL and for anything
    else that is not a JSON object of string values.
    """
    if raw is None:
        raise MalformedDetailsError("details are NULL")
    try:
        stored = _STORED_DETAILS.validate_json(raw, strict=True)
    except ValidationError as exc:
        raise MalformedDetailsError(
            f"details are not a JSON object of strings: {exc.errors()[0]['msg']}",
            cause=exc,
        ) from exc
    if stored is None:
        return {}
    return {key: "" if value is None else value for key, value in stored.items()}


def serialize_details(details: dict[str, str]) -> str:
    return _DETAILS.dump_json(details).decode("utf-8")


def reshape_details(
    kind: ServiceKind,
    details: dict[str, str],
    *,
    lookup: ProvisioningLookup,
    project_id: str | None,
) -> dict[str, str]:
    """Map the old request details of one instance onto its new details.

    Keys that are not carried forward are dropped. Missing source keys
    carry forward as empty strings.
    """
    match kind:
        case ServiceKind.CLOUDSQL_MYSQL:
            instance_name = details.get("instance_name", "")
            if not project_id:
                raise MissingConfigError(
                    "Cloud SQL instances need the service account project_id",
                    setting="service_account_json",
                )
            instance = lookup.get_instance(project_id, instance_name)
            return {
                "instance_name": instance_name,
                "database_name": details.get("database_name", ""),
                "host": instance.primary_address,
            }
        case ServiceKind.BIGQUERY:
            return {"dataset_id": details.get("name", "")}
        case ServiceKind.ML_APIS:
            return {}
        case ServiceKind.STORAGE:
            return {"bucket_name": details.get("name", "")}
        case ServiceKind.PUBSUB:
            return {
                "topic_name": details.get("topic_name", ""),
                "subscription_name": details.get("subscription_name", ""),
            }
        case _:
            raise UnknownServiceError(f"unrecognized service kind: {kind!r}")


def copy_provision_details(
    tx: Transaction,
    *,
    catalog: ServiceResolver,
    lookup: ProvisioningLookup,
    project_id: str | None,
) -> int:
    """Rewrite ``other_details`` of every instance that has a provision request.

    Returns the number of instance rows rewritten.
    """
    requests = tables.provision_request_details
    instances = tables.service_instance_details

    rows = tx.fetch_all(
        select(requests).where(tables.live(requests)).order_by(requests.c.id)
    )

    rewritten = 0
    for request in rows:
        instance = tx.fetch_one(
            select(instances).where(
                instances.c.id == request["service_instance_id"],
                tables.live(instances),
            )
        )
        if instance is None:
            raise MissingRecordError(
                f"record not found: service instance {request['service_instance_id']!r}"
            ).with_context(table=instances.name, row_id=request["service_instance_id"])

        try:
            details = parse_details(request["request_details"])
            kind = catalog.resolve(instance["service_id"])
        except (MalformedDetailsError, UnknownServiceError) as exc:
            raise exc.with_context(
                table=requests.name,
                row_id=request["id"],
                service_id=instance["service_id"],
            )

        new_details = reshape_details(kind, details, lookup=lookup, project_id=project_id)
        tx.update_row(
            instances,
            instance["id"],
            {
                "other_details": serialize_details(new_details),
                "updated_at": _utcnow(),
            },
        )
        rewritten += 1
        logger.debug(
            "transform.row.rewritten",
            instance_id=instance["id"],
            service=kind.value,
            keys=sorted(new_details),
        )

    logger.info("transform.completed", rows=rewritten)
    return rewritten


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)
