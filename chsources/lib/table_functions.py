"""Inline table-function rendering for external table bindings.

Each provider renders as ``<function>(arg1, arg2, ...)`` with a fixed
argument order. String arguments are single-quoted with backslash-escaped
quotes; absent optional positions are filled with their defaults rather
than omitted.

    postgresql('pg.example.com:5432', 'production', 'customers', 'readonly', 'secret', 'sales')
    mysql('mysql:3306', 'shop', 'orders', 'app', 'pass')
    odbc('MsSqlDsn', 'master', 'customers')
    redis('localhost:6379', 'SessionId', 'SessionId String, Hits Int64', 0, '')

Credentials are resolved on every call, never cached on the renderer.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from chsources.lib.errors import (
    ConfigurationError,
    MissingKeyColumnError,
    ProviderMismatchError,
    UnsupportedProviderError,
)
from chsources.lib.models import ExternalTableSpec, Provider, ResolvableValue
from chsources.lib.quoting import quote_string_literal
from chsources.lib.resolver import ConnectionResolver

logger = logging.getLogger(__name__)

__all__ = [
    "CURRENT_DATABASE",
    "INSERTABLE_PROVIDERS",
    "TableFunctionRenderer",
    "redis_structure",
]

CURRENT_DATABASE = "currentDatabase()"
DEFAULT_REMOTE_USER = "default"

# Providers that accept INSERT INTO FUNCTION
INSERTABLE_PROVIDERS = frozenset(
    {Provider.POSTGRESQL, Provider.MYSQL, Provider.ODBC, Provider.REDIS}
)


def redis_structure(spec: ExternalTableSpec) -> str:
    """Return the explicit structure or derive it from the bound columns.

    Raises:
        ConfigurationError: If there is neither a structure nor any column
    """
    if spec.structure and spec.structure.strip():
        return spec.structure
    if not spec.columns:
        raise ConfigurationError(
            "Redis external table requires a structure or bound columns",
            entity=spec.entity,
            field="structure",
            suggestion="Set structure, for example 'Key String, Value String', or bind a shape.",
        )
    return ", ".join(f"{column.name} {column.type_name}" for column in spec.columns)


def _call(function: str, args: List[str]) -> str:
    return f"{function}({', '.join(args)})"


class TableFunctionRenderer:
    """Render :class:`ExternalTableSpec` bindings as table-function calls.

    Args:
        resolver: Resolver used for every credential lookup.

    Example:
        >>> renderer = TableFunctionRenderer(ConnectionResolver())
        >>> renderer.render(spec)
        "postgresql('pg:5432', 'db', 'customers', 'user', 'pass', 'public')"
    """

    def __init__(self, resolver: Optional[ConnectionResolver] = None) -> None:
        self._resolver = resolver or ConnectionResolver()
        self._dispatch: Dict[Provider, Callable[[ExternalTableSpec], str]] = {
            Provider.POSTGRESQL: self.render_postgresql,
            Provider.MYSQL: self.render_mysql,
            Provider.ODBC: self.render_odbc,
            Provider.REDIS: self.render_redis,
            Provider.HTTP: self.render_url,
            Provider.S3: self.render_s3,
            Provider.FILE: self.render_file,
            Provider.REMOTE: self.render_remote,
            Provider.CLUSTER: self.render_cluster,
        }

    @property
    def resolver(self) -> ConnectionResolver:
        return self._resolver

    def render(self, spec: ExternalTableSpec) -> str:
        """Render the table-function call for ``spec``.

        Raises:
            UnsupportedProviderError: For the native ClickHouse provider
        """
        handler = self._dispatch.get(spec.provider)
        if handler is None:
            raise UnsupportedProviderError(spec.provider, entity=spec.entity)

        logger.debug("Rendering %s table function for %s", spec.provider.value, spec.entity)
        return handler(spec)

    # ------------------------------------------------------------------
    # Relational providers
    # ------------------------------------------------------------------

    def render_postgresql(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.POSTGRESQL)

        conn = self._resolver.resolve_connection(spec.connection, entity=spec.entity)
        # A profile carries its own schema
        schema = conn.schema if spec.connection.uses_profile else spec.schema_name

        return _call(
            "postgresql",
            [
                quote_string_literal(conn.host_port),
                quote_string_literal(conn.database),
                quote_string_literal(spec.table_name),
                quote_string_literal(conn.user),
                quote_string_literal(conn.password),
                quote_string_literal(schema),
            ],
        )

    def render_mysql(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.MYSQL)
        return _call("mysql", self._mysql_args(spec))

    def _mysql_args(self, spec: ExternalTableSpec) -> List[str]:
        conn = self._resolver.resolve_connection(spec.connection, entity=spec.entity)
        return [
            quote_string_literal(conn.host_port),
            quote_string_literal(conn.database),
            quote_string_literal(spec.table_name),
            quote_string_literal(conn.user),
            quote_string_literal(conn.password),
        ]

    def render_odbc(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.ODBC)

        dsn = self._resolver.resolve(spec.dsn, setting="dsn", entity=spec.entity)
        database = self._resolver.resolve(
            spec.connection.database, required=False, setting="database", entity=spec.entity
        )

        return _call(
            "odbc",
            [
                quote_string_literal(dsn),
                quote_string_literal(database),
                quote_string_literal(spec.table_name),
            ],
        )

    def render_redis(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.REDIS)

        if not spec.key_column:
            raise MissingKeyColumnError(entity=spec.entity)
        structure = redis_structure(spec)

        conn = self._resolver.resolve_connection(
            spec.connection,
            ("host_port", "password"),
            entity=spec.entity,
            optional=("password",),
        )
        db_index = spec.db_index if spec.db_index is not None else 0

        return _call(
            "redis",
            [
                quote_string_literal(conn.host_port),
                quote_string_literal(spec.key_column),
                quote_string_literal(structure),
                str(db_index),
                quote_string_literal(conn.password),
            ],
        )

    # ------------------------------------------------------------------
    # Object storage and files
    # ------------------------------------------------------------------

    def render_url(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.HTTP)

        url = self._resolver.resolve(spec.url, setting="url", entity=spec.entity)
        if not spec.format:
            raise ConfigurationError(
                "URL external table requires a format",
                entity=spec.entity,
                field="format",
                suggestion="Set format, for example 'JSONEachRow' or 'CSVWithNames'.",
            )

        args = [quote_string_literal(url), quote_string_literal(spec.format)]
        args.extend(self._trailing(spec.structure, spec.compression))
        return _call("url", args)

    def render_s3(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.S3)

        path = self._require_path(spec)
        args = [quote_string_literal(path)]

        access_key = self._optional(spec.access_key, "access_key", spec)
        secret_key = self._optional(spec.secret_key, "secret_key", spec)
        # Keys are positional; only emitted as a pair
        if access_key and secret_key:
            args.append(quote_string_literal(access_key))
            args.append(quote_string_literal(secret_key))

        args.extend(self._trailing(spec.format, spec.structure, spec.compression))
        return _call("s3", args)

    def render_file(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.FILE)

        args = [quote_string_literal(self._require_path(spec))]
        args.extend(self._trailing(spec.format, spec.structure, spec.compression))
        return _call("file", args)

    # ------------------------------------------------------------------
    # ClickHouse to ClickHouse
    # ------------------------------------------------------------------

    def render_remote(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.REMOTE)

        addresses = self._resolver.resolve(spec.addresses, setting="addresses", entity=spec.entity)
        database = self._resolver.resolve(
            spec.connection.database, setting="database", entity=spec.entity
        )
        user = self._optional(spec.connection.user, "user", spec) or DEFAULT_REMOTE_USER
        password = self._optional(spec.connection.password, "password", spec)

        args = [
            quote_string_literal(addresses),
            quote_string_literal(database),
            quote_string_literal(spec.table_name),
            quote_string_literal(user),
            quote_string_literal(password),
        ]
        if spec.sharding_key:
            args.append(spec.sharding_key)
        return _call("remote", args)

    def render_cluster(self, spec: ExternalTableSpec) -> str:
        self._check_provider(spec, Provider.CLUSTER)

        if not spec.cluster:
            raise ConfigurationError(
                "Cluster external table requires a cluster name",
                entity=spec.entity,
                field="cluster",
            )

        database = self._optional(spec.connection.database, "database", spec) or CURRENT_DATABASE
        database_arg = database if database == CURRENT_DATABASE else quote_string_literal(database)

        args = [
            quote_string_literal(spec.cluster),
            database_arg,
            quote_string_literal(spec.table_name),
        ]
        if spec.sharding_key:
            args.append(spec.sharding_key)
        return _call("cluster", args)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def inserts_enabled(self, spec: ExternalTableSpec) -> bool:
        return not spec.read_only and spec.provider in INSERTABLE_PROVIDERS

    def render_insert_target(self, spec: ExternalTableSpec) -> str:
        """Render the ``INSERT INTO FUNCTION ...`` target for a writable binding.

        MySQL appends ``replace_query`` (``1``) for REPLACE INTO semantics, or
        ``0`` followed by the ``on_duplicate_clause``.

        Raises:
            ConfigurationError: If the binding is read-only or not writable
        """
        if spec.read_only:
            raise ConfigurationError(
                "External table is read-only",
                entity=spec.entity,
                field="read_only",
                suggestion="Set read_only to false to allow INSERT INTO FUNCTION.",
            )
        if spec.provider not in INSERTABLE_PROVIDERS:
            raise ConfigurationError(
                f"Provider '{spec.provider.value}' does not support inserts",
                entity=spec.entity,
                field="provider",
                value=spec.provider.value,
            )

        if spec.provider is Provider.MYSQL:
            args = self._mysql_args(spec)
            if spec.replace_on_insert:
                args.append("1")
            elif spec.on_duplicate_clause:
                args.append("0")
                args.append(quote_string_literal(spec.on_duplicate_clause))
            target = _call("mysql", args)
        else:
            target = self.render(spec)

        return f"INSERT INTO FUNCTION {target}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_provider(self, spec: ExternalTableSpec, expected: Provider) -> None:
        if spec.provider is not expected:
            raise ProviderMismatchError(spec.provider, expected, entity=spec.entity)

    def _optional(self, field: ResolvableValue, setting: str, spec: ExternalTableSpec) -> str:
        return self._resolver.resolve(field, required=False, setting=setting, entity=spec.entity)

    def _require_path(self, spec: ExternalTableSpec) -> str:
        if not spec.path:
            raise ConfigurationError(
                f"{spec.provider.value} external table requires a path",
                entity=spec.entity,
                field="path",
            )
        return spec.path

    @staticmethod
    def _trailing(*values: Optional[str]) -> List[str]:
        """Quote optional trailing positions, stopping at the first gap."""
        args: List[str] = []
        for value in values:
            if not value:
                break
            args.append(quote_string_literal(value))
        return args
