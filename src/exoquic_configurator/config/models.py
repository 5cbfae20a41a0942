"""Pydantic configuration models for the configurator."""

from __future__ import annotations

import re
from typing import Any, Self

from pydantic import (
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)?$")
# pg_create_logical_replication_slot only accepts lower case, digits and "_".
_SLOT_NAME = re.compile(r"^[a-z0-9_]{1,63}$")
_HTTP_URL: TypeAdapter[AnyHttpUrl] = TypeAdapter(AnyHttpUrl)


def _check_identifier(value: str, what: str) -> str:
    if not _IDENTIFIER.match(value):
        msg = f"{what} '{value}' is not a valid SQL identifier"
        raise ValueError(msg)
    return value


class PostgresConfig(BaseModel):
    """Connection to the PostgreSQL instance being prepared (needs superuser)."""

    model_config = ConfigDict(frozen=True)

    host: str = ""
    port: int = Field(default=5432, ge=1, le=65535)
    user: str = ""
    password: SecretStr = SecretStr("")
    database: str = ""
    sslmode: str = "disable"
    connect_timeout_seconds: int = Field(default=10, ge=1)
    # Connections older than this are replaced before the next statement.
    max_lifetime_seconds: float = Field(default=180.0, gt=0)


class ReplicationConfig(BaseModel):
    """Replication role, publication and slot to provision."""

    model_config = ConfigDict(frozen=True)

    user: str = "exoquic_replication"
    password: SecretStr = SecretStr("")
    publication_name: str = "exoquic_publication"
    slot_name: str = "exoquic_replication_slot"
    # Empty means the publication covers all tables.
    tables: list[str] = Field(default_factory=list)
    # Schema that receives grants and replica identity normalization.
    schema_name: str = "public"
    helper_schema: str = "exoquic"

    @field_validator("tables", mode="before")
    @classmethod
    def split_table_list(cls, v: Any) -> Any:
        """Accept the comma-separated form used by ``TABLES_TO_CAPTURE``."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, list):
            return [str(t).strip() for t in v if str(t).strip()]
        return v

    @field_validator("tables")
    @classmethod
    def validate_table_names(cls, v: list[str]) -> list[str]:
        """Table names are ``table`` or ``schema.table`` identifiers."""
        for table in v:
            if not _TABLE_NAME.match(table):
                msg = (
                    f"Table '{table}' must be a plain or schema-qualified "
                    f"identifier (e.g. 'orders' or 'public.orders')"
                )
                raise ValueError(msg)
        return v

    @field_validator("user")
    @classmethod
    def validate_user(cls, v: str) -> str:
        return _check_identifier(v, "Replication user")

    @field_validator("publication_name")
    @classmethod
    def validate_publication(cls, v: str) -> str:
        return _check_identifier(v, "Publication name")

    @field_validator("slot_name")
    @classmethod
    def validate_slot(cls, v: str) -> str:
        if not _SLOT_NAME.match(v):
            msg = (
                f"Slot name '{v}' may only contain lower-case letters, "
                f"numbers and underscores (at most 63 characters)"
            )
            raise ValueError(msg)
        return v

    @field_validator("schema_name", "helper_schema")
    @classmethod
    def validate_schema(cls, v: str) -> str:
        return _check_identifier(v, "Schema name")


class CloudConfig(BaseModel):
    """Exoquic control-plane registration settings."""

    model_config = ConfigDict(frozen=True)

    api_key: SecretStr | None = None
    url: str = "https://api.exoquic.com"
    register_path: str = "/api/postgres"
    timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("api_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("api_key")
    @classmethod
    def validate_key_is_ascii(cls, v: SecretStr | None) -> SecretStr | None:
        """The key travels in an HTTP header, which must be ASCII."""
        if v is not None and not v.get_secret_value().isascii():
            msg = "EXOQUIC_API_KEY must contain only ASCII characters"
            raise ValueError(msg)
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        try:
            parsed = _HTTP_URL.validate_python(v)
        except ValidationError as exc:
            msg = f"EXOQUIC_CLOUD_URL '{v}' is not a valid http(s) URL"
            raise ValueError(msg) from exc
        host = (parsed.host or "").rstrip(".")
        if not host or "" in host.split("."):
            msg = f"EXOQUIC_CLOUD_URL '{v}' has an invalid host name"
            raise ValueError(msg)
        return v.rstrip("/")

    @property
    def enabled(self) -> bool:
        return self.api_key is not None


class ConnectRetryConfig(BaseModel):
    """Backoff for the initial database connection."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=5, ge=1)
    initial_wait_seconds: float = Field(default=3.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)


# (getter, environment variable) pairs that must be non-empty before connecting.
_REQUIRED = (
    (lambda c: c.postgres.host, "PGHOST"),
    (lambda c: c.postgres.user, "PGUSER"),
    (lambda c: c.postgres.password.get_secret_value(), "PGPASSWORD"),
    (lambda c: c.postgres.database, "PGDATABASE"),
    (
        lambda c: c.replication.password.get_secret_value(),
        "EXOQUIC_REPLICATION_PASSWORD",
    ),
)


class ConfiguratorConfig(BaseModel):
    """Top-level configuration, built once per run."""

    model_config = ConfigDict(frozen=True)

    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    replication: ReplicationConfig = Field(default_factory=ReplicationConfig)
    cloud: CloudConfig = Field(default_factory=CloudConfig)
    retry: ConnectRetryConfig = Field(default_factory=ConnectRetryConfig)

    @model_validator(mode="after")
    def check_required(self) -> Self:
        """Reject empty connection credentials before anything touches the DB."""
        missing = [env for getter, env in _REQUIRED if not getter(self).strip()]
        if missing:
            msg = "; ".join(f"{env} environment variable is required" for env in missing)
            raise ValueError(msg)
        return self
