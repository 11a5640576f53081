"""Validation models for catalog files and compiler settings.

Catalog YAML is validated with Pydantic v2 before any spec object is
built, so typos and wrong types surface with the offending path instead
of as a render failure later on. Compiler defaults come from
``CHSOURCES_*`` environment variables via pydantic-settings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chsources.lib.dictionaries import DEFAULT_HTTP_FORMAT, DictionaryLayout
from chsources.lib.models import Provider
from chsources.lib.types import python_type_from_name

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogConfig",
    "ColumnConfig",
    "CompilerSettings",
    "ConnectionConfig",
    "DictionaryConfig",
    "DictionarySourceConfig",
    "ResolvableConfig",
    "TableConfig",
]

VALID_PROVIDERS = [p.value for p in Provider]
DICTIONARY_PROVIDERS = ["clickhouse", "postgresql", "mysql", "http"]


def _normalize_layout(name: str) -> str:
    return name.replace("_", "").replace("-", "").lower()


# ============================================
# Catalog models
# ============================================


class ResolvableConfig(BaseModel):
    """A field written as ``{env: NAME}`` or ``{value: literal}``.

    Example YAML:
        password:
          env: PG_PASSWORD
    """

    model_config = ConfigDict(extra="forbid")

    env: Optional[str] = Field(default=None, description="Environment variable name")
    value: Optional[str] = Field(default=None, description="Literal value")

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @model_validator(mode="after")
    def require_one_form(self) -> "ResolvableConfig":
        if not self.env and self.value is None:
            raise ValueError("set either 'env' or 'value'")
        if self.env and self.value:
            logger.warning(
                "Both env (%s) and a literal are set; the environment variable wins",
                self.env,
            )
        return self


# A plain scalar is a literal
Resolvable = Union[ResolvableConfig, str, int]


class ConnectionConfig(BaseModel):
    """Connection fields of a table or dictionary source."""

    model_config = ConfigDict(extra="forbid")

    host_port: Optional[Resolvable] = Field(default=None, description="Combined host:port")
    host: Optional[Resolvable] = Field(default=None, description="Host name")
    port: Optional[Resolvable] = Field(default=None, description="TCP port")
    database: Optional[Resolvable] = Field(default=None, description="Database name")
    user: Optional[Resolvable] = Field(default=None, description="User name")
    password: Optional[Resolvable] = Field(default=None, description="Password")
    profile: Optional[str] = Field(default=None, description="Named connection profile")

    @model_validator(mode="after")
    def warn_profile_with_fields(self) -> "ConnectionConfig":
        """A profile supersedes every other field."""
        if self.profile:
            ignored = [
                name
                for name in ("host_port", "host", "port", "database", "user", "password")
                if getattr(self, name) is not None
            ]
            if ignored:
                logger.warning(
                    "Connection profile '%s' supersedes fields: %s",
                    self.profile,
                    ", ".join(ignored),
                )
        return self


class ColumnConfig(BaseModel):
    """One column; ``type`` is a Python type name, ``clickhouse_type`` overrides it."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    type: Optional[str] = Field(default=None, description="Python type name (int64, str, ...)")
    clickhouse_type: Optional[str] = Field(default=None, description="Explicit ClickHouse type")

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and python_type_from_name(v) is None:
            raise ValueError(f"unknown column type '{v}'")
        return v


class TableConfig(BaseModel):
    """Pydantic model for an external table binding.

    Example YAML:
        tables:
          - entity: Customer
            provider: postgresql
            table: customers
            schema: sales
            connection:
              profile: analytics
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    entity: str = Field(..., min_length=1, description="Entity name")
    provider: str = Field(..., description="postgresql, mysql, odbc, redis, http, s3, ...")
    table: Optional[str] = Field(default=None, description="Remote table, snake_case(entity) by default")
    schema_name: Optional[str] = Field(default=None, alias="schema", description="PostgreSQL schema")
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    dsn: Optional[Resolvable] = Field(default=None, description="ODBC data source name")
    key_column: Optional[str] = Field(default=None, description="Redis key column")
    structure: Optional[str] = Field(default=None, description="Explicit column structure")
    db_index: Optional[int] = Field(default=None, description="Redis database index")
    pool_size: Optional[int] = Field(default=None, description="Redis connection pool size")
    read_only: bool = Field(default=True)
    replace_on_insert: bool = Field(default=False)
    on_duplicate_clause: Optional[str] = Field(default=None)
    columns: List[ColumnConfig] = Field(default_factory=list)
    url: Optional[Resolvable] = Field(default=None)
    path: Optional[str] = Field(default=None)
    format: Optional[str] = Field(default=None)
    compression: Optional[str] = Field(default=None)
    access_key: Optional[Resolvable] = Field(default=None)
    secret_key: Optional[Resolvable] = Field(default=None)
    addresses: Optional[Resolvable] = Field(default=None)
    cluster: Optional[str] = Field(default=None)
    sharding_key: Optional[str] = Field(default=None)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider is a known value."""
        if v.lower() not in VALID_PROVIDERS:
            raise ValueError(f"provider must be one of: {VALID_PROVIDERS}")
        return v.lower()


class DictionarySourceConfig(BaseModel):
    """Pydantic model for a dictionary SOURCE."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    provider: str = Field(default="clickhouse")
    table: Optional[str] = Field(default=None)
    query: Optional[str] = Field(default=None)
    schema_name: Optional[str] = Field(default=None, alias="schema")
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    where: Optional[str] = Field(default=None)
    invalidate_query: Optional[str] = Field(default=None)
    fail_on_connection_loss: Optional[bool] = Field(default=None)
    url: Optional[Resolvable] = Field(default=None)
    format: str = Field(default=DEFAULT_HTTP_FORMAT)
    user: Optional[Resolvable] = Field(default=None)
    password: Optional[Resolvable] = Field(default=None)
    headers: Dict[str, str] = Field(default_factory=dict)
    headers_env: Dict[str, str] = Field(default_factory=dict)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v.lower() not in DICTIONARY_PROVIDERS:
            raise ValueError(f"dictionary source provider must be one of: {DICTIONARY_PROVIDERS}")
        return v.lower()


class DictionaryConfig(BaseModel):
    """Pydantic model for a dictionary.

    Example YAML:
        dictionaries:
          - name: country_lookup
            key_columns: [Id]
            columns:
              - {name: Id, type: uint64}
              - {name: Name, type: str}
            layout: flat
            layout_options: {max_array_size: 100000}
            lifetime_min: 60
            lifetime_max: 600
            source:
              provider: clickhouse
              table: countries
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    key_columns: List[str] = Field(default_factory=list)
    columns: List[ColumnConfig] = Field(default_factory=list)
    layout: str = Field(default="hashed")
    layout_options: Dict[str, Any] = Field(default_factory=dict)
    lifetime_min: int = Field(default=0, ge=0)
    lifetime_max: int = Field(default=300, ge=0)
    defaults: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[DictionarySourceConfig] = Field(default=None)

    @field_validator("layout")
    @classmethod
    def validate_layout(cls, v: str) -> str:
        valid = {_normalize_layout(m.value): m.value for m in DictionaryLayout}
        if _normalize_layout(v) not in valid:
            raise ValueError(f"layout must be one of: {sorted(m.lower() for m in valid.values())}")
        return valid[_normalize_layout(v)]

    @model_validator(mode="after")
    def validate_lifetime(self) -> "DictionaryConfig":
        if self.lifetime_min > self.lifetime_max:
            raise ValueError("lifetime_min must not exceed lifetime_max")
        return self

    @model_validator(mode="after")
    def validate_defaults(self) -> "DictionaryConfig":
        names = {column.name for column in self.columns}
        unknown = [key for key in self.defaults if names and key not in names]
        if unknown:
            raise ValueError(f"defaults reference unknown columns: {unknown}")
        return self


class CatalogConfig(BaseModel):
    """Top-level catalog file."""

    model_config = ConfigDict(extra="forbid")

    tables: List[TableConfig] = Field(default_factory=list)
    dictionaries: List[DictionaryConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_names(self) -> "CatalogConfig":
        for kind, names in (
            ("table entity", [t.entity for t in self.tables]),
            ("dictionary", [d.name for d in self.dictionaries]),
        ):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"duplicate {kind} names: {duplicates}")
        return self


# ============================================
# Settings
# ============================================


class CompilerSettings(BaseSettings):
    """Environment-based compiler settings using pydantic-settings.

    Automatically loads from environment variables with CHSOURCES_ prefix.

    Example:
        >>> # CHSOURCES_CONFIG_FILE=./appsettings.yaml
        >>> # CHSOURCES_LOG_LEVEL=DEBUG
        >>> settings = CompilerSettings()
        >>> settings.config_file
        './appsettings.yaml'
    """

    config_file: Optional[str] = Field(default=None, description="Configuration store file (YAML/JSON)")
    env_file: Optional[str] = Field(default=None, description="Optional .env file to load first")
    config_env_prefix: Optional[str] = Field(
        default=None,
        description="Also read A__B environment variables with this prefix into the store",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="CHSOURCES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate format is a known value."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()
