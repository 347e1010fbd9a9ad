"""
Structured error types for brokerdb.

Every failure the migration engine can raise is a ``BrokerError`` carrying
a category, a retryable hint, structured context and an optional chained
cause. The engine itself never retries: the retryable flag only tells the
hosting process whether restarting later has a chance of succeeding.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        BrokerError                           │
        │           (category, retryable, context, cause)              │
        ├─────────────────────────────────────────────────────────────┤
        │  ConfigError          DatabaseError        MigrationError    │
        │  (CONFIG)             (DATABASE)           (MIGRATION)       │
        │     │                    │                    │              │
        │  MissingConfigError   LedgerReadError      MigrationDefinit- │
        │  InvalidConfigError   LedgerWriteError       ionError        │
        │                                            MigrationStepError│
        │                                                              │
        │  DataError            ProvisioningLookupError                │
        │  (DATA)               (SOURCE)                               │
        │     │                    │                                   │
        │  MalformedDetails-    InstanceNotFoundError                  │
        │    Error              LookupTimeoutError (NETWORK, retry)    │
        │  UnknownServiceError                                         │
        │  MissingRecordError                                          │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = MalformedDetailsError("request_details is not a JSON object")
    >>> error.with_context(table="provision_request_details", row_id=7)
    MalformedDetailsError('request_details is not a JSON object', category=DATA)
    >>> error.context.row_id
    7

    >>> try:
    ...     raise ConnectionError("DNS failure")
    ... except ConnectionError as e:
    ...     raise ProvisioningLookupError("Admin API unreachable", cause=e)
    Traceback (most recent call last):
    ...
    ProvisioningLookupError: Admin API unreachable

Guardrails:
    ❌ DON'T: Raise plain Exception from a migration step
    ✅ DO: Raise the BrokerError subclass that names the failure

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, migrations, brokerdb
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Attributes:
        NETWORK: Connection, timeout, DNS errors
        DATABASE: Store unavailable, statement failures
        SOURCE: External provisioning API errors
        DATA: Stored rows the engine cannot interpret
        CONFIG: Missing or invalid settings
        MIGRATION: Step definition or execution failures
        INTERNAL: Bugs, unexpected state
    """

    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    SOURCE = "SOURCE"
    DATA = "DATA"
    CONFIG = "CONFIG"
    MIGRATION = "MIGRATION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Typed fields cover what a migration failure usually needs for triage:
    which step, which table and row, which service, and for lookup
    failures the URL and HTTP status. Anything else goes in ``metadata``.

    Examples:
        >>> ctx = ErrorContext(step="copy provision details", migration_id=1)
        >>> ctx.to_dict()
        {'step': 'copy provision details', 'migration_id': 1}

    Attributes:
        step: Description of the migration step
        migration_id: Ordinal of the migration step
        table: Table being read or written
        row_id: Primary key of the offending row
        service_id: Service id stored on the offending row
        url: URL that was being accessed
        http_status: HTTP status code if applicable
        metadata: Additional key-value pairs
    """

    step: str | None = None
    migration_id: int | None = None
    table: str | None = None
    row_id: Any = None
    service_id: str | None = None
    url: str | None = None
    http_status: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["step", "migration_id", "table", "row_id",
                    "service_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BrokerError(Exception):
    """
    Base exception for all brokerdb errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass what differs from the defaults.

    Examples:
        >>> error = BrokerError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
        >>> error.to_dict()["error_type"]
        'BrokerError'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BrokerError:
        """
        Add context to this error (fluent API).

        Usage:
            raise UnknownServiceError("unrecognized service").with_context(
                service_id=row.service_id,
                table="service_instance_details",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BrokerError):
    """Configuration error. Never retryable - configuration must be fixed."""

    default_category = ErrorCategory.CONFIG


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, message: str, *, setting: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.setting = setting


class InvalidConfigError(ConfigError):
    """Configuration is present but cannot be used."""

    def __init__(self, message: str, *, setting: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.setting = setting


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(BrokerError):
    """Store-level failure (connection, statement, I/O)."""

    default_category = ErrorCategory.DATABASE


class LedgerReadError(DatabaseError):
    """The migrations ledger exists but could not be read.

    Raised before any step executes. A missing ledger table is a first run
    and never produces this error.
    """


class LedgerWriteError(DatabaseError):
    """The ledger entry for a step could not be written."""


# =============================================================================
# MIGRATION ERRORS
# =============================================================================


class MigrationError(BrokerError):
    """Base class for migration definition and execution failures."""

    default_category = ErrorCategory.MIGRATION


class MigrationDefinitionError(MigrationError):
    """The step list is not a contiguous, 0-based ordinal sequence."""


class MigrationStepError(MigrationError):
    """A step failed with an error that is not itself a ``BrokerError``.

    The original exception is chained as ``cause``.
    """

    def __init__(self, message: str, *, migration_id: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.migration_id = migration_id
        self.context.migration_id = migration_id


# =============================================================================
# DATA ERRORS
# =============================================================================


class DataError(BrokerError):
    """Stored data the migration does not know how to handle.

    Never retryable - the rows must be fixed by an operator.
    """

    default_category = ErrorCategory.DATA


class MalformedDetailsError(DataError):
    """A detail blob is not a JSON object of string values."""


class UnknownServiceError(DataError):
    """A service id (or the service it names) has no transformation rules."""

    def __init__(self, message: str, *, service_id: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.service_id = service_id
        if service_id is not None:
            self.context.service_id = service_id


class MissingRecordError(DataError):
    """A row referenced by another row does not exist."""


# =============================================================================
# PROVISIONING LOOKUP ERRORS
# =============================================================================


class ProvisioningLookupError(BrokerError):
    """The external provisioning API call failed.

    ``http_status`` and ``url`` are recorded in the context when known.
    """

    default_category = ErrorCategory.SOURCE


class InstanceNotFoundError(ProvisioningLookupError):
    """The provisioning API has no instance with the requested name."""


class LookupTimeoutError(ProvisioningLookupError):
    """The provisioning API did not answer before the deadline."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BrokerError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "DatabaseError",
    "LedgerReadError",
    "LedgerWriteError",
    "MigrationError",
    "MigrationDefinitionError",
    "MigrationStepError",
    "DataError",
    "MalformedDetailsError",
    "UnknownServiceError",
    "MissingRecordError",
    "ProvisioningLookupError",
    "InstanceNotFoundError",
    "LookupTimeoutError",
]
