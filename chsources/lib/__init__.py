"""External source compiler library modules.

This package contains the connection resolver, the table-function and
dictionary renderers, and the configuration and logging utilities they
share.
"""

from chsources.lib.config_loader import Catalog, YAMLConfigError, load_catalog, validate_catalog
from chsources.lib.config_store import ConfigSection, ConfigStore
from chsources.lib.dictionaries import (
    DictionaryLayout,
    DictionaryRenderer,
    DictionarySourceSpec,
    DictionarySpec,
    format_literal,
)
from chsources.lib.env import get_env_value, load_env_file
from chsources.lib.errors import (
    ConfigurationError,
    InvalidRangeError,
    MissingConfigurationValueError,
    MissingConnectionProfileError,
    MissingDictionarySourceError,
    MissingEnvironmentVariableError,
    MissingKeyColumnError,
    MissingPrimaryKeyError,
    MissingProfileFieldError,
    ProviderMismatchError,
    SourceError,
    UnsupportedProviderError,
)
from chsources.lib.logging import JSONFormatter, setup_logging
from chsources.lib.metadata import get_key_columns, key_field
from chsources.lib.models import (
    ColumnSpec,
    ConnectionSettings,
    ExternalTableSpec,
    Provider,
    ResolvableValue,
    columns_from_shape,
)
from chsources.lib.quoting import (
    escape_string_literal,
    quote_identifier,
    quote_string_literal,
    to_snake_case,
)
from chsources.lib.resolver import ConnectionResolver, ResolvedConnection
from chsources.lib.table_functions import TableFunctionRenderer
from chsources.lib.types import clickhouse_type_for
from chsources.lib.validate import CompilerSettings

__all__ = [
    # Configuration
    "Catalog",
    "CompilerSettings",
    "ConfigSection",
    "ConfigStore",
    "YAMLConfigError",
    "get_env_value",
    "load_catalog",
    "load_env_file",
    "validate_catalog",
    # Specs
    "ColumnSpec",
    "ConnectionSettings",
    "DictionaryLayout",
    "DictionarySourceSpec",
    "DictionarySpec",
    "ExternalTableSpec",
    "Provider",
    "ResolvableValue",
    "columns_from_shape",
    "get_key_columns",
    "key_field",
    # Rendering
    "ConnectionResolver",
    "DictionaryRenderer",
    "ResolvedConnection",
    "TableFunctionRenderer",
    "clickhouse_type_for",
    "escape_string_literal",
    "format_literal",
    "quote_identifier",
    "quote_string_literal",
    "to_snake_case",
    # Errors
    "ConfigurationError",
    "InvalidRangeError",
    "MissingConfigurationValueError",
    "MissingConnectionProfileError",
    "MissingDictionarySourceError",
    "MissingEnvironmentVariableError",
    "MissingKeyColumnError",
    "MissingPrimaryKeyError",
    "MissingProfileFieldError",
    "ProviderMismatchError",
    "SourceError",
    "UnsupportedProviderError",
    # Logging
    "JSONFormatter",
    "setup_logging",
]
