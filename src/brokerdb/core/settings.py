"""
Centralized settings for brokerdb.

All fields can be set via ``BROKERDB_*`` environment variables (e.g.
``BROKERDB_DATABASE_URL=mysql+pymysql://broker:pw@db/broker``) or a
``.env`` file in the working directory.

The migration core never reads settings itself: the hosting process (or
the CLI) loads them once and passes the store, the Cloud SQL lookup and
the project id explicitly.

Tags:
    settings, configuration, pydantic, environment, brokerdb
"""

from __future__ import annotations

import json

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from brokerdb.core.errors import InvalidConfigError


class BrokerDbSettings(BaseSettings):
    """brokerdb configuration.

    Fields
    ──────
    database_url           : SQLAlchemy URL of the broker database
    database_echo          : Log every SQL statement
    log_level              : structlog log level
    log_format             : ``json`` or ``console``
    service_account_json   : Service account key JSON (source of the project id)
    access_token           : OAuth bearer token for the Cloud SQL Admin API
    sqladmin_url           : Base URL of the Cloud SQL Admin API
    lookup_timeout_seconds : Per-phase httpx timeout (connect, write, each
                             read, pool) of a provisioning lookup
    """

    model_config = SettingsConfigDict(
        env_prefix="BROKERDB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///brokerdb.db")
    database_echo: bool = Field(default=False)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # ── Cloud SQL Admin API ──────────────────────────────────────
    service_account_json: SecretStr | None = Field(default=None)
    access_token: SecretStr | None = Field(default=None)
    sqladmin_url: str = Field(default="https://sqladmin.googleapis.com/sql/v1beta4/")
    lookup_timeout_seconds: float = Field(default=30.0, gt=0)

    def project_id(self) -> str | None:
        """Return the ``project_id`` of the configured service account.

        ``None`` when no service account is configured. Raises
        ``InvalidConfigError`` when the JSON cannot be parsed or has no
        ``project_id``.
        """
        if self.service_account_json is None:
            return None

        try:
            account = json.loads(self.service_account_json.get_secret_value())
        except ValueError as exc:
            raise InvalidConfigError(
                "Could not unmarshal service account details",
                setting="service_account_json",
                cause=exc,
            ) from exc

        if not isinstance(account, dict) or not account.get("project_id"):
            raise InvalidConfigError(
                "Service account details have no project_id",
                setting="service_account_json",
            )
        return str(account["project_id"])

    @property
    def json_logs(self) -> bool:
        return self.log_format.lower() == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, BrokerDbSettings] = {}


def get_settings(*, _force_reload: bool = False) -> BrokerDbSettings:
    """Load, validate, and cache a :class:`BrokerDbSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]

    settings = BrokerDbSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, config reloads)."""
    _settings_cache.clear()


__all__ = ["BrokerDbSettings", "get_settings", "clear_settings_cache"]
