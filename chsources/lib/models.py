"""Declarative external table bindings.

An :class:`ExternalTableSpec` describes how an entity reaches a remote
table. It is built once when the schema configuration is finalized and is
immutable afterwards; credentials are resolved fresh on every render.

Example (literal connection):
    spec = ExternalTableSpec(
        entity="Customer",
        provider=Provider.POSTGRESQL,
        table="customers",
        schema="sales",
        connection=ConnectionSettings(
            host_port="pg.example.com:5432",
            database="production",
            user=ResolvableValue.from_env("PG_USER"),
            password=ResolvableValue.from_env("PG_PASSWORD"),
        ),
    )

Example (named profile):
    spec = ExternalTableSpec(
        entity="Customer",
        provider="postgresql",
        connection=ConnectionSettings(profile="analytics"),
    )
"""

from __future__ import annotations

import dataclasses
import logging
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from chsources.lib.errors import (
    ConfigurationError,
    InvalidRangeError,
    UnsupportedProviderError,
)
from chsources.lib.metadata import get_key_columns
from chsources.lib.quoting import to_snake_case
from chsources.lib.types import clickhouse_type_for

logger = logging.getLogger(__name__)

__all__ = [
    "ColumnSpec",
    "ConnectionSettings",
    "ExternalTableSpec",
    "Provider",
    "ResolvableValue",
    "columns_from_shape",
    "parse_bounded_int",
]

REDIS_MAX_DB_INDEX = 15


class Provider(Enum):
    """Which system a binding targets."""

    CLICKHOUSE = "clickhouse"  # Native table, no binding needed
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    ODBC = "odbc"
    REDIS = "redis"
    HTTP = "http"
    S3 = "s3"
    FILE = "file"
    REMOTE = "remote"
    CLUSTER = "cluster"

    @classmethod
    def parse(cls, value: "Provider | str") -> "Provider":
        """Convert a tag such as ``"PostgreSQL"`` to a member.

        Raises:
            UnsupportedProviderError: If the tag names no known provider
        """
        if isinstance(value, Provider):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedProviderError(value) from None


@dataclass(frozen=True)
class ResolvableValue:
    """A literal value or the name of an environment variable.

    When ``env`` is set it takes precedence over ``value``.
    """

    value: Optional[str] = None
    env: Optional[str] = None

    @classmethod
    def literal(cls, value: Any) -> "ResolvableValue":
        return cls(value=None if value is None else str(value))

    @classmethod
    def from_env(cls, name: str) -> "ResolvableValue":
        return cls(env=name)

    @classmethod
    def coerce(cls, value: Any) -> "ResolvableValue":
        """Accept a ResolvableValue, a plain literal or None."""
        if isinstance(value, ResolvableValue):
            return value
        if value is None:
            return cls()
        return cls.literal(value)

    @property
    def is_set(self) -> bool:
        return bool(self.env) or bool(self.value)


def parse_bounded_int(
    value: Any,
    field: str,
    *,
    entity: Optional[str] = None,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    """Parse an int or numeric string and check it against its domain.

    Raises:
        InvalidRangeError: If the value is a bool, not an integer, or out of range
    """
    if isinstance(value, bool):
        raise InvalidRangeError(field, value, minimum=minimum, maximum=maximum, entity=entity)

    try:
        number = int(str(value).strip())
    except ValueError:
        raise InvalidRangeError(
            field, value, minimum=minimum, maximum=maximum, entity=entity
        ) from None

    if (minimum is not None and number < minimum) or (maximum is not None and number > maximum):
        raise InvalidRangeError(field, number, minimum=minimum, maximum=maximum, entity=entity)

    return number


def _coerce_fields(instance: Any, names: Tuple[str, ...]) -> None:
    for name in names:
        object.__setattr__(instance, name, ResolvableValue.coerce(getattr(instance, name)))


@dataclass(frozen=True)
class ConnectionSettings:
    """Per-entity connection fields.

    Plain strings are treated as literals. If ``profile`` is set it
    supersedes every other field.
    """

    host_port: ResolvableValue = field(default_factory=ResolvableValue)
    host: ResolvableValue = field(default_factory=ResolvableValue)
    port: ResolvableValue = field(default_factory=ResolvableValue)
    database: ResolvableValue = field(default_factory=ResolvableValue)
    user: ResolvableValue = field(default_factory=ResolvableValue)
    password: ResolvableValue = field(default_factory=ResolvableValue)
    profile: Optional[str] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, ("host_port", "host", "port", "database", "user", "password"))

    @classmethod
    def from_profile(cls, name: str) -> "ConnectionSettings":
        return cls(profile=name)

    @property
    def uses_profile(self) -> bool:
        return bool(self.profile)


@dataclass(frozen=True)
class ColumnSpec:
    """One column of a bound shape.

    ``clickhouse_type`` overrides the type inferred from ``python_type``.
    """

    name: str
    python_type: Any = None
    clickhouse_type: Optional[str] = None

    @property
    def type_name(self) -> str:
        if self.clickhouse_type:
            return self.clickhouse_type
        return clickhouse_type_for(self.python_type)


def columns_from_shape(shape: type) -> Tuple[ColumnSpec, ...]:
    """Derive columns from a dataclass in field-declaration order."""
    if not dataclasses.is_dataclass(shape):
        raise TypeError(f"{shape!r} is not a dataclass")

    hints = typing.get_type_hints(shape)
    return tuple(
        ColumnSpec(name=f.name, python_type=hints.get(f.name, f.type))
        for f in dataclasses.fields(shape)
    )


@dataclass(frozen=True)
class ExternalTableSpec:
    """Declarative binding of an entity to a remote table."""

    # Identity
    entity: str
    provider: Provider

    # Remote object
    table: Optional[str] = None  # Defaults to snake_case(entity)
    schema: Optional[str] = None  # PostgreSQL only, defaults to "public"
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)

    # ODBC
    dsn: ResolvableValue = field(default_factory=ResolvableValue)

    # Redis
    key_column: Optional[str] = None
    structure: Optional[str] = None  # Derived from columns when omitted
    db_index: Optional[int] = None  # 0-15, rendered as 0 when unset
    pool_size: Optional[int] = None

    # Writes
    read_only: bool = True
    replace_on_insert: bool = False  # MySQL REPLACE INTO
    on_duplicate_clause: Optional[str] = None  # MySQL ON DUPLICATE KEY ...

    # Bound shape
    columns: Tuple[ColumnSpec, ...] = ()
    has_primary_key: bool = False

    # HTTP / S3 / file
    url: ResolvableValue = field(default_factory=ResolvableValue)
    path: Optional[str] = None
    format: Optional[str] = None
    compression: Optional[str] = None
    access_key: ResolvableValue = field(default_factory=ResolvableValue)
    secret_key: ResolvableValue = field(default_factory=ResolvableValue)

    # Remote ClickHouse / cluster
    addresses: ResolvableValue = field(default_factory=ResolvableValue)
    cluster: Optional[str] = None
    sharding_key: Optional[str] = None  # Expression, rendered unquoted

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", Provider.parse(self.provider))
        object.__setattr__(self, "columns", tuple(self.columns))
        _coerce_fields(self, ("dsn", "url", "access_key", "secret_key", "addresses"))
        self._validate()

    def _validate(self) -> None:
        if not self.entity:
            raise ConfigurationError("External table spec requires an entity name", field="entity")

        if self.has_primary_key:
            raise ConfigurationError(
                "External table entities must be keyless; they are views over remote data",
                entity=self.entity,
                field="has_primary_key",
                suggestion="Remove the primary key from the entity bound to the external table.",
            )

        if self.db_index is not None:
            object.__setattr__(
                self,
                "db_index",
                parse_bounded_int(
                    self.db_index,
                    "db_index",
                    entity=self.entity,
                    minimum=0,
                    maximum=REDIS_MAX_DB_INDEX,
                ),
            )

        if self.pool_size is not None:
            object.__setattr__(
                self,
                "pool_size",
                parse_bounded_int(self.pool_size, "pool_size", entity=self.entity, minimum=1),
            )

        if self.replace_on_insert or self.on_duplicate_clause:
            if self.provider is not Provider.MYSQL:
                raise ConfigurationError(
                    "replace_on_insert and on_duplicate_clause are only valid for MySQL",
                    entity=self.entity,
                    field="provider",
                    value=self.provider.value,
                )
            if self.replace_on_insert and self.on_duplicate_clause:
                raise ConfigurationError(
                    "replace_on_insert and on_duplicate_clause are mutually exclusive",
                    entity=self.entity,
                    field="on_duplicate_clause",
                )

    @classmethod
    def from_shape(cls, shape: type, provider: "Provider | str", **kwargs: Any) -> "ExternalTableSpec":
        """Build a spec whose entity name and columns come from a dataclass.

        Raises:
            ConfigurationError: If the shape declares key fields
        """
        keys = get_key_columns(shape)
        if keys:
            raise ConfigurationError(
                "External table entities must be keyless; they are views over remote data",
                entity=shape.__name__,
                field="key",
                value=", ".join(keys),
            )

        kwargs.setdefault("entity", shape.__name__)
        kwargs.setdefault("columns", columns_from_shape(shape))
        return cls(provider=provider, **kwargs)

    @property
    def table_name(self) -> str:
        return self.table or to_snake_case(self.entity)

    @property
    def schema_name(self) -> str:
        return self.schema or "public"
