"""Dictionary definitions and DDL rendering.

A :class:`DictionarySpec` renders to a multi-line ``CREATE DICTIONARY``
statement:

    CREATE DICTIONARY IF NOT EXISTS "country_lookup"
    (
        "Id" UInt64,
        "Name" String DEFAULT 'Unknown'
    )
    PRIMARY KEY "Id"
    SOURCE(POSTGRESQL(
        host 'pg.internal'
        port 5432
        user 'reader'
        password 'secret'
        db 'reference'
        table 'countries'
        schema 'public'
    ))
    LAYOUT(FLAT(MAX_ARRAY_SIZE 100000))
    LIFETIME(MIN 60 MAX 600)

Identifiers use double quotes with doubled-quote escaping; every value
inside SOURCE(...) and DEFAULT uses single quotes with backslash escaping.
Connection values are resolved on every render.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from chsources.lib.errors import (
    ConfigurationError,
    InvalidRangeError,
    MissingDictionarySourceError,
    MissingPrimaryKeyError,
    UnsupportedProviderError,
)
from chsources.lib.metadata import get_key_columns
from chsources.lib.models import (
    ColumnSpec,
    ConnectionSettings,
    Provider,
    ResolvableValue,
    columns_from_shape,
)
from chsources.lib.quoting import quote_identifier, quote_string_literal, to_snake_case
from chsources.lib.resolver import ConnectionResolver

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_LIFETIME_MAX",
    "DEFAULT_LIFETIME_MIN",
    "DictionaryLayout",
    "DictionaryRenderer",
    "DictionarySourceSpec",
    "DictionarySpec",
    "format_literal",
]

DEFAULT_LIFETIME_MIN = 0
DEFAULT_LIFETIME_MAX = 300
DEFAULT_HTTP_FORMAT = "JSONEachRow"

DEFAULT_PORTS: Dict[Provider, int] = {
    Provider.POSTGRESQL: 5432,
    Provider.MYSQL: 3306,
}

INDENT = "    "


class DictionaryLayout(Enum):
    """In-memory storage layout of a dictionary."""

    FLAT = "FLAT"
    HASHED = "HASHED"
    HASHED_ARRAY = "HASHED_ARRAY"
    COMPLEX_KEY_HASHED = "COMPLEX_KEY_HASHED"
    COMPLEX_KEY_HASHED_ARRAY = "COMPLEX_KEY_HASHED_ARRAY"
    RANGE_HASHED = "RANGE_HASHED"
    CACHE = "CACHE"
    DIRECT = "DIRECT"

    @classmethod
    def parse(cls, value: "DictionaryLayout | str") -> "DictionaryLayout":
        """Accept ``"complex_key_hashed"``, ``"ComplexKeyHashed"`` and similar.

        Raises:
            ConfigurationError: If the name matches no layout
        """
        if isinstance(value, DictionaryLayout):
            return value

        wanted = str(value).replace("_", "").replace("-", "").lower()
        for member in cls:
            if member.value.replace("_", "").lower() == wanted:
                return member

        raise ConfigurationError(
            f"Unknown dictionary layout '{value}'",
            field="layout",
            value=value,
            suggestion="Use one of: " + ", ".join(m.value.lower() for m in cls),
        )


def format_literal(value: Any) -> str:
    """Render a Python value as a ClickHouse literal.

    Strings are quoted and escaped, booleans become ``1``/``0``, ``None``
    becomes ``NULL`` and datetimes use ``'YYYY-MM-DD HH:MM:SS'``.
    """
    if value is None:
        return "NULL"
    if isinstance(value, str):
        return quote_string_literal(value)
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, datetime.datetime):
        return f"'{value:%Y-%m-%d %H:%M:%S}'"
    if isinstance(value, datetime.date):
        return f"'{value:%Y-%m-%d}'"
    return str(value)


@dataclass(frozen=True)
class DictionarySourceSpec:
    """Where a dictionary loads its rows from.

    Native sources use ``table`` or ``query``. PostgreSQL and MySQL use
    ``connection`` plus ``table``; HTTP uses ``url``.
    """

    provider: Provider = Provider.CLICKHOUSE

    # Native / relational
    table: Optional[str] = None
    query: Optional[str] = None
    schema: Optional[str] = None
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    where: Optional[str] = None
    invalidate_query: Optional[str] = None
    fail_on_connection_loss: Optional[bool] = None  # MySQL only

    # HTTP
    url: ResolvableValue = field(default_factory=ResolvableValue)
    format: str = DEFAULT_HTTP_FORMAT
    user: ResolvableValue = field(default_factory=ResolvableValue)
    password: ResolvableValue = field(default_factory=ResolvableValue)
    headers: Mapping[str, str] = field(default_factory=dict)
    headers_env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", Provider.parse(self.provider))
        for name in ("url", "user", "password"):
            object.__setattr__(self, name, ResolvableValue.coerce(getattr(self, name)))

    @property
    def is_external(self) -> bool:
        return self.provider is not Provider.CLICKHOUSE


@dataclass(frozen=True)
class DictionarySpec:
    """A persistent key to attribute lookup with its own reload lifetime."""

    name: str
    key_columns: Tuple[str, ...] = ()
    columns: Tuple[ColumnSpec, ...] = ()
    layout: DictionaryLayout = DictionaryLayout.HASHED
    layout_options: Mapping[str, Any] = field(default_factory=dict)
    lifetime_min: int = DEFAULT_LIFETIME_MIN
    lifetime_max: int = DEFAULT_LIFETIME_MAX
    defaults: Mapping[str, Any] = field(default_factory=dict)
    source: Optional[DictionarySourceSpec] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("Dictionary spec requires a name", field="name")

        object.__setattr__(self, "key_columns", tuple(self.key_columns))
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "layout", DictionaryLayout.parse(self.layout))

        if self.lifetime_min < 0:
            raise InvalidRangeError("lifetime_min", self.lifetime_min, minimum=0, entity=self.name)
        if self.lifetime_max < 0:
            raise InvalidRangeError("lifetime_max", self.lifetime_max, minimum=0, entity=self.name)
        if self.lifetime_min > self.lifetime_max:
            raise InvalidRangeError(
                "lifetime_min",
                self.lifetime_min,
                minimum=0,
                maximum=self.lifetime_max,
                entity=self.name,
            )

    @classmethod
    def from_shape(cls, shape: type, **kwargs: Any) -> "DictionarySpec":
        """Build a spec whose name, columns and key come from a dataclass.

        Example:
            @dataclass
            class CountryLookup:
                Id: UInt64 = key_field()
                Name: str = ""

            DictionarySpec.from_shape(CountryLookup, layout="flat")
        """
        kwargs.setdefault("name", to_snake_case(shape.__name__))
        kwargs.setdefault("columns", columns_from_shape(shape))
        kwargs.setdefault("key_columns", get_key_columns(shape))
        return cls(**kwargs)

    @property
    def is_manual_reload(self) -> bool:
        return self.lifetime_min == 0 and self.lifetime_max == 0


class DictionaryRenderer:
    """Render dictionary DDL and lookup expressions.

    Args:
        resolver: Resolver used for external source credentials.
    """

    def __init__(self, resolver: Optional[ConnectionResolver] = None) -> None:
        self._resolver = resolver or ConnectionResolver()

    @property
    def resolver(self) -> ConnectionResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def render_create(self, spec: DictionarySpec, if_not_exists: bool = True) -> str:
        """Render ``CREATE DICTIONARY`` for ``spec``.

        Raises:
            MissingPrimaryKeyError: If no key columns are defined
            MissingDictionarySourceError: If no source is configured
            UnsupportedProviderError: If the source provider cannot feed a dictionary
        """
        logger.debug("Rendering CREATE DICTIONARY for %s", spec.name)

        header = "CREATE DICTIONARY "
        if if_not_exists:
            header += "IF NOT EXISTS "
        header += quote_identifier(spec.name)

        lines = [header, "("]
        lines.append(",\n".join(self._column_lines(spec)))
        lines.append(")")
        lines.append(self._primary_key(spec))
        lines.extend(self._source(spec))
        lines.append(self.render_layout(spec))
        lines.append(self.render_lifetime(spec))
        return "\n".join(lines)

    def render_drop(self, spec: DictionarySpec, if_exists: bool = True) -> str:
        if if_exists:
            return f"DROP DICTIONARY IF EXISTS {quote_identifier(spec.name)}"
        return f"DROP DICTIONARY {quote_identifier(spec.name)}"

    def render_reload(self, spec: DictionarySpec) -> str:
        return f"SYSTEM RELOAD DICTIONARY {quote_identifier(spec.name)}"

    def render_layout(self, spec: DictionarySpec) -> str:
        """Render ``LAYOUT(NAME(OPTION value ...))``; options are upper-cased."""
        options = " ".join(
            f"{key.upper()} {self._layout_value(value)}" for key, value in spec.layout_options.items()
        )
        return f"LAYOUT({spec.layout.value}({options}))"

    def render_lifetime(self, spec: DictionarySpec) -> str:
        """Render the LIFETIME clause.

        ``(0, 0)`` disables automatic reloads, a zero minimum or equal bounds
        collapse to a single value, anything else is a MIN/MAX range.
        """
        low, high = spec.lifetime_min, spec.lifetime_max
        if low == 0 and high == 0:
            return "LIFETIME(0)"
        if low == 0 or low == high:
            return f"LIFETIME({high})"
        return f"LIFETIME(MIN {low} MAX {high})"

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def render_dict_get(self, spec: DictionarySpec, attribute: str, key_expression: str) -> str:
        """Render ``dictGet('name', 'attribute', key)``.

        ``key_expression`` is inserted verbatim; composite keys pass a tuple
        expression such as ``tuple(country, city)``.
        """
        return (
            f"dictGet({quote_string_literal(spec.name)}, "
            f"{quote_string_literal(attribute)}, {key_expression})"
        )

    def render_dict_get_or_default(
        self,
        spec: DictionarySpec,
        attribute: str,
        key_expression: str,
        default: Any,
    ) -> str:
        return (
            f"dictGetOrDefault({quote_string_literal(spec.name)}, "
            f"{quote_string_literal(attribute)}, {key_expression}, {format_literal(default)})"
        )

    def render_dict_has(self, spec: DictionarySpec, key_expression: str) -> str:
        return f"dictHas({quote_string_literal(spec.name)}, {key_expression})"

    def render_status_query(self, spec: DictionarySpec) -> str:
        """Query ``system.dictionaries`` for load status of ``spec``."""
        return "\n".join(
            [
                "SELECT",
                f"{INDENT}status,",
                f"{INDENT}element_count,",
                f"{INDENT}bytes_allocated,",
                f"{INDENT}last_successful_update_time,",
                f"{INDENT}last_exception",
                "FROM system.dictionaries",
                f"WHERE name = {quote_string_literal(spec.name)}",
                "LIMIT 1",
            ]
        )

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def _column_lines(self, spec: DictionarySpec) -> List[str]:
        lines = []
        for column in spec.columns:
            line = f"{INDENT}{quote_identifier(column.name)} {column.type_name}"
            if column.name in spec.defaults:
                line += f" DEFAULT {format_literal(spec.defaults[column.name])}"
            lines.append(line)
        return lines

    def _primary_key(self, spec: DictionarySpec) -> str:
        if not spec.key_columns:
            raise MissingPrimaryKeyError(spec.name)

        if len(spec.key_columns) == 1:
            return f"PRIMARY KEY {quote_identifier(spec.key_columns[0])}"

        keys = ", ".join(quote_identifier(key) for key in spec.key_columns)
        return f"PRIMARY KEY ({keys})"

    def _source(self, spec: DictionarySpec) -> List[str]:
        source = spec.source
        if source is None:
            raise MissingDictionarySourceError(spec.name)

        if source.provider is Provider.CLICKHOUSE:
            return [self._clickhouse_source(spec, source)]
        if source.provider is Provider.POSTGRESQL:
            return self._postgresql_source(spec, source)
        if source.provider is Provider.MYSQL:
            return self._mysql_source(spec, source)
        if source.provider is Provider.HTTP:
            return self._http_source(spec, source)

        raise UnsupportedProviderError(
            source.provider,
            entity=spec.name,
            suggestion="Dictionaries load from clickhouse, postgresql, mysql or http sources.",
        )

    def _clickhouse_source(self, spec: DictionarySpec, source: DictionarySourceSpec) -> str:
        if source.query:
            return f"SOURCE(CLICKHOUSE(QUERY {quote_string_literal(source.query)}))"
        return f"SOURCE(CLICKHOUSE(TABLE {quote_string_literal(source.table or spec.name)}))"

    def _relational_lines(self, spec: DictionarySpec, source: DictionarySourceSpec) -> List[str]:
        """host/port/user/password/db/table lines shared by PostgreSQL and MySQL."""
        if not source.table:
            raise ConfigurationError(
                f"{source.provider.value} dictionary source requires a table",
                entity=spec.name,
                field="table",
            )

        host, port = self._resolver.resolve_host_and_port(
            source.connection,
            entity=spec.name,
            default_port=DEFAULT_PORTS.get(source.provider),
        )
        conn = self._resolver.resolve_connection(
            source.connection, ("database", "user", "password"), entity=spec.name
        )

        return [
            f"{INDENT}host {quote_string_literal(host)}",
            f"{INDENT}port {port}",
            f"{INDENT}user {quote_string_literal(conn.user)}",
            f"{INDENT}password {quote_string_literal(conn.password)}",
            f"{INDENT}db {quote_string_literal(conn.database)}",
            f"{INDENT}table {quote_string_literal(source.table)}",
        ]

    def _filter_lines(self, source: DictionarySourceSpec) -> List[str]:
        lines = []
        if source.where:
            lines.append(f"{INDENT}where {quote_string_literal(source.where)}")
        if source.invalidate_query:
            lines.append(f"{INDENT}invalidate_query {quote_string_literal(source.invalidate_query)}")
        return lines

    def _postgresql_source(self, spec: DictionarySpec, source: DictionarySourceSpec) -> List[str]:
        schema = source.schema
        if not schema and source.connection.uses_profile:
            schema = self._resolver.resolve_profile(
                source.connection.profile or "", (), entity=spec.name
            ).schema

        lines = ["SOURCE(POSTGRESQL("]
        lines.extend(self._relational_lines(spec, source))
        lines.append(f"{INDENT}schema {quote_string_literal(schema or 'public')}")
        lines.extend(self._filter_lines(source))
        lines.append("))")
        return lines

    def _mysql_source(self, spec: DictionarySpec, source: DictionarySourceSpec) -> List[str]:
        lines = ["SOURCE(MYSQL("]
        lines.extend(self._relational_lines(spec, source))
        lines.extend(self._filter_lines(source))
        if source.fail_on_connection_loss is not None:
            flag = "true" if source.fail_on_connection_loss else "false"
            lines.append(f"{INDENT}fail_on_connection_loss '{flag}'")
        lines.append("))")
        return lines

    def _http_source(self, spec: DictionarySpec, source: DictionarySourceSpec) -> List[str]:
        url = self._resolver.resolve(source.url, setting="url", entity=spec.name)

        lines = [
            "SOURCE(HTTP(",
            f"{INDENT}url {quote_string_literal(url)}",
            f"{INDENT}format {quote_string_literal(source.format or DEFAULT_HTTP_FORMAT)}",
        ]

        user = self._resolver.resolve(source.user, required=False, setting="user", entity=spec.name)
        password = self._resolver.resolve(
            source.password, required=False, setting="password", entity=spec.name
        )
        if user and password:
            lines.append(
                f"{INDENT}credentials(user {quote_string_literal(user)} "
                f"password {quote_string_literal(password)})"
            )

        pairs = [(key, value) for key, value in source.headers.items()]
        for key, env_name in source.headers_env.items():
            pairs.append((key, self._resolver.require_env(env_name, entity=spec.name)))

        if pairs:
            rendered = " ".join(
                f"{quote_string_literal(key)} {quote_string_literal(value)}" for key, value in pairs
            )
            lines.append(f"{INDENT}headers({rendered})")

        lines.append("))")
        return lines

    @staticmethod
    def _layout_value(value: Any) -> str:
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, str):
            return quote_string_literal(value)
        return str(value)
