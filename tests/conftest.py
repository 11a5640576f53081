"""Pytest configuration and fixtures."""

import pytest

from chsources.lib.config_store import ConfigStore
from chsources.lib.dictionaries import DictionaryRenderer
from chsources.lib.metadata import clear_key_column_cache
from chsources.lib.resolver import ConnectionResolver
from chsources.lib.table_functions import TableFunctionRenderer


@pytest.fixture(autouse=True)
def _fresh_key_column_cache():
    clear_key_column_cache()
    yield
    clear_key_column_cache()


@pytest.fixture
def profile_store() -> ConfigStore:
    """Configuration store with one literal and one env-backed profile."""
    return ConfigStore(
        {
            "ExternalConnections": {
                "analytics": {
                    "HostPort": "pg.internal:5432",
                    "Database": "analytics",
                    "User": "reporter",
                    "Password": "s3cret",
                    "Schema": "reporting",
                },
                "from-env": {
                    "HostPort": "mysql.internal:3306",
                    "Database": "shop",
                    "UserEnv": "SHOP_USER",
                    "PasswordEnv": "SHOP_PASSWORD",
                },
                "cache": {
                    "HostPort": "redis.internal:6379",
                },
            }
        }
    )


@pytest.fixture
def resolver(profile_store) -> ConnectionResolver:
    return ConnectionResolver(profile_store, environ={})


@pytest.fixture
def table_renderer(resolver) -> TableFunctionRenderer:
    return TableFunctionRenderer(resolver)


@pytest.fixture
def dictionary_renderer(resolver) -> DictionaryRenderer:
    return DictionaryRenderer(resolver)
