"""YAML catalog loader.

Lets external tables and dictionaries be declared in a YAML file instead
of Python code.

Example YAML (sources.yaml):
    tables:
      - entity: Customer
        provider: postgresql
        table: customers
        schema: sales
        connection:
          host_port: pg.example.com:5432
          database: production
          user: {env: PG_USER}
          password: {env: PG_PASSWORD}

    dictionaries:
      - name: country_lookup
        key_columns: [Id]
        columns:
          - {name: Id, type: uint64}
          - {name: Name, type: str}
        layout: flat
        source:
          table: countries

Usage:
    # Command line
    chsources ./sources.yaml --config ./appsettings.yaml

    # Python API
    from chsources.lib.config_loader import load_catalog
    catalog = load_catalog("./sources.yaml")
    spec = catalog.table("Customer")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from chsources.lib.dictionaries import DictionaryLayout, DictionarySourceSpec, DictionarySpec
from chsources.lib.errors import ConfigurationError, SourceError
from chsources.lib.models import (
    ColumnSpec,
    ConnectionSettings,
    ExternalTableSpec,
    ResolvableValue,
)
from chsources.lib.types import python_type_from_name
from chsources.lib.validate import (
    CatalogConfig,
    ColumnConfig,
    ConnectionConfig,
    DictionaryConfig,
    DictionarySourceConfig,
    ResolvableConfig,
    TableConfig,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Catalog",
    "YAMLConfigError",
    "dictionary_from_config",
    "load_catalog",
    "parse_catalog",
    "table_from_config",
    "validate_catalog",
]


class YAMLConfigError(ConfigurationError):
    """Error in a YAML catalog file."""

    pass


@dataclass(frozen=True)
class Catalog:
    """Specs loaded from a catalog file."""

    tables: List[ExternalTableSpec] = field(default_factory=list)
    dictionaries: List[DictionarySpec] = field(default_factory=list)
    path: Optional[Path] = None

    def table(self, entity: str) -> ExternalTableSpec:
        for spec in self.tables:
            if spec.entity == entity:
                return spec
        raise ConfigurationError(
            f"No external table for entity '{entity}' in catalog",
            field="entity",
            value=entity,
            suggestion="Available: " + (", ".join(t.entity for t in self.tables) or "(none)"),
        )

    def dictionary(self, name: str) -> DictionarySpec:
        for spec in self.dictionaries:
            if spec.name == name:
                return spec
        raise ConfigurationError(
            f"No dictionary named '{name}' in catalog",
            field="name",
            value=name,
            suggestion="Available: " + (", ".join(d.name for d in self.dictionaries) or "(none)"),
        )


def _resolvable(value: Union[ResolvableConfig, str, int, None]) -> ResolvableValue:
    if value is None:
        return ResolvableValue()
    if isinstance(value, ResolvableConfig):
        return ResolvableValue(value=value.value, env=value.env)
    return ResolvableValue.literal(value)


def _connection(config: ConnectionConfig) -> ConnectionSettings:
    return ConnectionSettings(
        host_port=_resolvable(config.host_port),
        host=_resolvable(config.host),
        port=_resolvable(config.port),
        database=_resolvable(config.database),
        user=_resolvable(config.user),
        password=_resolvable(config.password),
        profile=config.profile,
    )


def _column(config: ColumnConfig) -> ColumnSpec:
    python_type = python_type_from_name(config.type) if config.type else None
    return ColumnSpec(
        name=config.name,
        python_type=python_type,
        clickhouse_type=config.clickhouse_type,
    )


def table_from_config(config: TableConfig) -> ExternalTableSpec:
    """Create an ExternalTableSpec from a validated table entry."""
    return ExternalTableSpec(
        entity=config.entity,
        provider=config.provider,
        table=config.table,
        schema=config.schema_name,
        connection=_connection(config.connection),
        dsn=_resolvable(config.dsn),
        key_column=config.key_column,
        structure=config.structure,
        db_index=config.db_index,
        pool_size=config.pool_size,
        read_only=config.read_only,
        replace_on_insert=config.replace_on_insert,
        on_duplicate_clause=config.on_duplicate_clause,
        columns=tuple(_column(c) for c in config.columns),
        url=_resolvable(config.url),
        path=config.path,
        format=config.format,
        compression=config.compression,
        access_key=_resolvable(config.access_key),
        secret_key=_resolvable(config.secret_key),
        addresses=_resolvable(config.addresses),
        cluster=config.cluster,
        sharding_key=config.sharding_key,
    )


def _source(config: DictionarySourceConfig) -> DictionarySourceSpec:
    return DictionarySourceSpec(
        provider=config.provider,
        table=config.table,
        query=config.query,
        schema=config.schema_name,
        connection=_connection(config.connection),
        where=config.where,
        invalidate_query=config.invalidate_query,
        fail_on_connection_loss=config.fail_on_connection_loss,
        url=_resolvable(config.url),
        format=config.format,
        user=_resolvable(config.user),
        password=_resolvable(config.password),
        headers=dict(config.headers),
        headers_env=dict(config.headers_env),
    )


def dictionary_from_config(config: DictionaryConfig) -> DictionarySpec:
    """Create a DictionarySpec from a validated dictionary entry."""
    return DictionarySpec(
        name=config.name,
        key_columns=tuple(config.key_columns),
        columns=tuple(_column(c) for c in config.columns),
        layout=DictionaryLayout.parse(config.layout),
        layout_options=dict(config.layout_options),
        lifetime_min=config.lifetime_min,
        lifetime_max=config.lifetime_max,
        defaults=dict(config.defaults),
        source=_source(config.source) if config.source else None,
    )


def _format_validation_error(error: ValidationError) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        details[location] = item["msg"]
    return details


def parse_catalog(data: Mapping[str, Any], *, path: Optional[Path] = None) -> Catalog:
    """Validate parsed YAML and build the spec objects.

    Raises:
        YAMLConfigError: If the structure fails validation
        SourceError: If a spec rejects its values (range checks, keyed entities, ...)
    """
    try:
        config = CatalogConfig.model_validate(dict(data))
    except ValidationError as e:
        raise YAMLConfigError(
            f"Invalid catalog{f' {path}' if path else ''}: {e.error_count()} error(s)",
            details=_format_validation_error(e),
        ) from e

    catalog = Catalog(
        tables=[table_from_config(t) for t in config.tables],
        dictionaries=[dictionary_from_config(d) for d in config.dictionaries],
        path=path,
    )
    logger.debug(
        "Loaded catalog with %d table(s) and %d dictionary(ies)",
        len(catalog.tables),
        len(catalog.dictionaries),
    )
    return catalog


def load_catalog(config_path: Union[str, Path]) -> Catalog:
    """Load a catalog from a YAML file.

    Args:
        config_path: Path to the YAML catalog

    Returns:
        Catalog with table and dictionary specs

    Raises:
        FileNotFoundError: If the file does not exist
        YAMLConfigError: If the YAML is malformed or invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Catalog file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise YAMLConfigError(f"Invalid YAML syntax: {e}") from e

    if not data:
        raise YAMLConfigError("Empty catalog file")
    if not isinstance(data, dict):
        raise YAMLConfigError("Catalog must be a mapping with 'tables' and/or 'dictionaries'")

    return parse_catalog(data, path=config_path)


def validate_catalog(config_path: Union[str, Path]) -> List[str]:
    """Validate a catalog file without rendering anything.

    Args:
        config_path: Path to the YAML catalog

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[str] = []

    try:
        load_catalog(config_path)
    except SourceError as e:
        errors.append(str(e))
    except FileNotFoundError as e:
        errors.append(str(e))

    return errors
