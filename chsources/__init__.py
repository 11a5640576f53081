"""Declarative ClickHouse access to external data sources.

Describe how to reach PostgreSQL, MySQL, ODBC, Redis, HTTP and other
sources once, then render them as inline table functions or as
dictionaries with their own reload lifetime.

Usage:
    python -m chsources sources.yaml --config appsettings.yaml
"""

from chsources.lib.dictionaries import DictionaryLayout, DictionaryRenderer, DictionarySourceSpec, DictionarySpec
from chsources.lib.models import ConnectionSettings, ExternalTableSpec, Provider, ResolvableValue
from chsources.lib.resolver import ConnectionResolver
from chsources.lib.table_functions import TableFunctionRenderer

__all__ = [
    "ConnectionResolver",
    "ConnectionSettings",
    "DictionaryLayout",
    "DictionaryRenderer",
    "DictionarySourceSpec",
    "DictionarySpec",
    "ExternalTableSpec",
    "Provider",
    "ResolvableValue",
    "TableFunctionRenderer",
]
